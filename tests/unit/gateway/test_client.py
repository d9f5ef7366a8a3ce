"""Unit tests for gateway/client.py — session cookie, JSON calls and error mapping."""

import json
import socket
from http.client import IncompleteRead
from io import BytesIO
from unittest.mock import MagicMock, patch
from urllib.error import HTTPError, URLError

import pytest
import requests

from remote_files.auth import AuthenticationContext
from remote_files.errors import (
    ConflictError,
    NotFoundError,
    TransportFailureError,
    UnauthorizedError,
    UnknownServerError,
)
from remote_files.gateway.client import StorageClient, error_for_status, extract_detail
from remote_files.gateway.storage import StorageGateway
from remote_files.navigation.navigator import ResourceNavigator

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_client(timeout: float = 30.0) -> StorageClient:
    auth = AuthenticationContext(username="alice", role="user", session_token="tok-abc")
    return StorageClient("http://nas.local:8080/", auth, timeout=timeout)


def _mock_response(body: bytes) -> MagicMock:
    mock_response = MagicMock()
    mock_response.read.return_value = body
    mock_response.__enter__ = lambda s: s
    mock_response.__exit__ = MagicMock(return_value=False)
    return mock_response


def _http_error(code: int, body: bytes, msg: str = "Error") -> HTTPError:
    return HTTPError(
        url="http://nas.local:8080/x",
        code=code,
        msg=msg,
        hdrs=MagicMock(),  # type: ignore[arg-type]
        fp=BytesIO(body),
    )


# ---------------------------------------------------------------------------
# request_json() tests
# ---------------------------------------------------------------------------


class TestRequestJson:
    def test_get_builds_url_with_query_and_cookie(self) -> None:
        client = _make_client(timeout=7)

        with patch("remote_files.gateway.client.urllib_request.urlopen") as mock_urlopen:
            mock_urlopen.return_value = _mock_response(b'[{"name": "a.txt"}]')
            result = client.request_json("GET", "/files", params={"directory": "Research/2024"})

        assert result == [{"name": "a.txt"}]
        req = mock_urlopen.call_args[0][0]
        assert req.full_url == "http://nas.local:8080/files?directory=Research%2F2024"
        assert req.get_method() == "GET"
        assert req.get_header("Cookie") == "session=tok-abc"
        assert mock_urlopen.call_args.kwargs["timeout"] == 7

    def test_body_is_sent_as_json(self) -> None:
        client = _make_client()

        with patch("remote_files.gateway.client.urllib_request.urlopen") as mock_urlopen:
            mock_urlopen.return_value = _mock_response(b'{"message": "ok"}')
            client.request_json("DELETE", "/delete-resource", body={"name": "a.txt"})

        req = mock_urlopen.call_args[0][0]
        assert req.get_method() == "DELETE"
        assert req.get_header("Content-type") == "application/json"
        assert json.loads(req.data) == {"name": "a.txt"}

    def test_empty_body_returns_empty_dict(self) -> None:
        client = _make_client()

        with patch("remote_files.gateway.client.urllib_request.urlopen") as mock_urlopen:
            mock_urlopen.return_value = _mock_response(b"")
            assert client.request_json("POST", "/directory/create", body={}) == {}

    def test_malformed_json_raises_unknown_server_error(self) -> None:
        client = _make_client()

        with (
            patch("remote_files.gateway.client.urllib_request.urlopen") as mock_urlopen,
            pytest.raises(UnknownServerError),
        ):
            mock_urlopen.return_value = _mock_response(b"<html>")
            client.request_json("GET", "/files")

    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            (401, UnauthorizedError),
            (403, UnauthorizedError),
            (404, NotFoundError),
            (409, ConflictError),
            (500, UnknownServerError),
        ],
    )
    def test_http_errors_are_mapped(self, code: int, expected: type) -> None:
        client = _make_client()
        body = json.dumps({"error": "server says no"}).encode()

        with (
            patch(
                "remote_files.gateway.client.urllib_request.urlopen",
                side_effect=_http_error(code, body),
            ),
            pytest.raises(expected) as exc_info,
        ):
            client.request_json("GET", "/files")

        assert "server says no" in str(exc_info.value)

    def test_unknown_server_error_carries_message_field(self) -> None:
        client = _make_client()
        body = json.dumps({"message": "Disk full"}).encode()

        with (
            patch(
                "remote_files.gateway.client.urllib_request.urlopen",
                side_effect=_http_error(507, body),
            ),
            pytest.raises(UnknownServerError) as exc_info,
        ):
            client.request_json("POST", "/upload")

        assert exc_info.value.status_code == 507
        assert exc_info.value.user_message == "Disk full"

    def test_url_error_is_transport_failure(self) -> None:
        client = _make_client()

        with (
            patch(
                "remote_files.gateway.client.urllib_request.urlopen",
                side_effect=URLError("Connection refused"),
            ),
            pytest.raises(TransportFailureError),
        ):
            client.request_json("GET", "/files")

    def test_timeout_is_transport_failure(self) -> None:
        client = _make_client()

        with (
            patch(
                "remote_files.gateway.client.urllib_request.urlopen",
                side_effect=socket.timeout("timed out"),
            ),
            pytest.raises(TransportFailureError),
        ):
            client.request_json("GET", "/files")

    def test_no_automatic_retry(self) -> None:
        client = _make_client()

        with (
            patch(
                "remote_files.gateway.client.urllib_request.urlopen",
                side_effect=URLError("down"),
            ) as mock_urlopen,
            pytest.raises(TransportFailureError),
        ):
            client.request_json("GET", "/files")

        assert mock_urlopen.call_count == 1


# ---------------------------------------------------------------------------
# iter_content() tests
# ---------------------------------------------------------------------------


class TestIterContent:
    def test_yields_chunks_until_empty_read(self) -> None:
        client = _make_client()
        response = _mock_response(b"")
        response.read.side_effect = [b"abc", b"def", b""]

        with patch("remote_files.gateway.client.urllib_request.urlopen") as mock_urlopen:
            mock_urlopen.return_value = response
            chunks = list(client.iter_content("/download", {"filename": "a.bin"}, chunk_size=3))

        assert chunks == [b"abc", b"def"]
        response.read.assert_called_with(3)
        req = mock_urlopen.call_args[0][0]
        assert req.full_url == "http://nas.local:8080/download?filename=a.bin"

    def test_not_found_raises(self) -> None:
        client = _make_client()

        with (
            patch(
                "remote_files.gateway.client.urllib_request.urlopen",
                side_effect=_http_error(404, b'{"error": "File not found"}'),
            ),
            pytest.raises(NotFoundError),
        ):
            list(client.iter_content("/download"))

    def test_connection_lost_mid_body_raises_transport_failure(self) -> None:
        client = _make_client()
        response = _mock_response(b"")
        response.read.side_effect = [b"abc", IncompleteRead(b"de", 5)]

        with patch("remote_files.gateway.client.urllib_request.urlopen") as mock_urlopen:
            mock_urlopen.return_value = response
            chunks = client.iter_content("/download", chunk_size=3)
            assert next(chunks) == b"abc"
            with pytest.raises(TransportFailureError):
                next(chunks)


# ---------------------------------------------------------------------------
# Response body read failure tests
# ---------------------------------------------------------------------------


class TestBodyReadFailures:
    def test_timeout_while_reading_raises_transport_failure(self) -> None:
        client = _make_client()
        response = _mock_response(b"")
        response.read.side_effect = TimeoutError("timed out")

        with (
            patch(
                "remote_files.gateway.client.urllib_request.urlopen", return_value=response
            ),
            pytest.raises(TransportFailureError) as exc_info,
        ):
            client.request_json("GET", "/files")

        assert isinstance(exc_info.value.__cause__, TimeoutError)

    def test_connection_reset_while_reading_raises_transport_failure(self) -> None:
        client = _make_client()
        response = _mock_response(b"")
        response.read.side_effect = ConnectionResetError("reset by peer")

        with (
            patch(
                "remote_files.gateway.client.urllib_request.urlopen", return_value=response
            ),
            pytest.raises(TransportFailureError),
        ):
            client.request_json("GET", "/directory/list")

    def test_navigator_refresh_keeps_cached_listing_on_read_timeout(self) -> None:
        client = _make_client()
        gateway = StorageGateway(client, container="research")
        on_error = MagicMock()
        navigator = ResourceNavigator(gateway, on_error=on_error)
        stalled = _mock_response(b"")
        stalled.read.side_effect = TimeoutError("timed out")

        with patch("remote_files.gateway.client.urllib_request.urlopen") as mock_urlopen:
            mock_urlopen.side_effect = [
                _mock_response(b'[{"name": "2024", "created_by": "bob"}]'),
                _mock_response(b'[{"name": "notes.txt", "size": 3, "uploader": "alice"}]'),
            ]
            cached = navigator.go_to("Research")
            mock_urlopen.side_effect = [stalled]
            listing = navigator.refresh()

        assert [r.name for r in listing] == ["2024", "notes.txt"]
        assert listing == cached
        on_error.assert_called_once()
        assert isinstance(on_error.call_args[0][0], TransportFailureError)
        assert isinstance(navigator.last_error, TransportFailureError)


# ---------------------------------------------------------------------------
# post_multipart() tests
# ---------------------------------------------------------------------------


class TestPostMultipart:
    def test_posts_fields_files_and_cookie(self) -> None:
        client = _make_client(timeout=9)
        mock_resp = MagicMock(ok=True, status_code=200, content=b'{"message": "done"}')
        mock_resp.json.return_value = {"message": "done"}

        with patch("remote_files.gateway.client.requests.post", return_value=mock_resp) as post:
            result = client.post_multipart(
                "/upload",
                {"directory": "Research"},
                [("file", ("a.txt", b"hello", "text/plain"))],
            )

        assert result == {"message": "done"}
        post.assert_called_once()
        args, kwargs = post.call_args
        assert args[0] == "http://nas.local:8080/upload"
        assert kwargs["data"] == {"directory": "Research"}
        assert kwargs["files"] == [("file", ("a.txt", b"hello", "text/plain"))]
        assert kwargs["cookies"] == {"session": "tok-abc"}
        assert kwargs["timeout"] == 9

    def test_non_2xx_is_mapped(self) -> None:
        client = _make_client()
        mock_resp = MagicMock(
            ok=False, status_code=400, reason="Bad Request", content=b'{"error": "File rejected"}'
        )

        with (
            patch("remote_files.gateway.client.requests.post", return_value=mock_resp),
            pytest.raises(UnknownServerError) as exc_info,
        ):
            client.post_multipart("/upload", {}, [])

        assert exc_info.value.user_message == "File rejected"

    def test_connection_error_is_transport_failure(self) -> None:
        client = _make_client()

        with (
            patch(
                "remote_files.gateway.client.requests.post",
                side_effect=requests.ConnectionError("refused"),
            ),
            pytest.raises(TransportFailureError),
        ):
            client.post_multipart("/upload", {}, [])


# ---------------------------------------------------------------------------
# Helper function tests
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_extract_detail_prefers_error_field(self) -> None:
        assert extract_detail(b'{"error": "a", "message": "b"}') == "a"

    def test_extract_detail_falls_back_on_non_json(self) -> None:
        assert extract_detail(b"oops", fallback="Bad Gateway") == "Bad Gateway"

    def test_conflict_without_detail_has_message(self) -> None:
        err = error_for_status(409, "")
        assert isinstance(err, ConflictError)
        assert str(err)
