"""HTTP client for the file server with session-cookie authentication."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from http.client import HTTPException
from typing import TYPE_CHECKING, Any, BinaryIO
from urllib import request as urllib_request
from urllib.error import HTTPError
from urllib.parse import urlencode

import requests

from remote_files.auth import DEFAULT_SESSION_COOKIE
from remote_files.errors import (
    ConflictError,
    NotFoundError,
    ResourceError,
    TransportFailureError,
    UnauthorizedError,
    UnknownServerError,
)
from remote_files.gateway.models import FIELD_ERROR, FIELD_MESSAGE

if TYPE_CHECKING:
    from remote_files.auth import AuthenticationContext

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_CHUNK_BYTES = 65536

# (form field, (filename, content, content type))
MultipartFile = tuple[str, tuple[str, "bytes | BinaryIO", str]]


def error_for_status(status_code: int, detail: str) -> ResourceError:
    """Map a non-2xx status code to the error taxonomy."""
    if status_code in (401, 403):
        return UnauthorizedError(detail or f"HTTP {status_code}")
    if status_code == 404:
        return NotFoundError(detail or "Resource not found")
    if status_code == 409:
        return ConflictError(name="", message=detail or "Resource already exists")
    return UnknownServerError(status_code, detail)


def extract_detail(raw: bytes, fallback: str = "") -> str:
    """Pull the ``error`` or ``message`` text out of a JSON error body."""
    try:
        body = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return fallback
    if isinstance(body, dict):
        return str(body.get(FIELD_ERROR) or body.get(FIELD_MESSAGE) or fallback)
    return fallback


class StorageClient:
    """Authenticated JSON-over-HTTP client for the file server.

    Every call carries the session cookie of the AuthenticationContext and
    is made exactly once; retries are left to the caller.
    """

    def __init__(
        self,
        base_url: str,
        auth: AuthenticationContext,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session_cookie: str = DEFAULT_SESSION_COOKIE,
    ) -> None:
        """Initialise the client.

        Args:
            base_url: Base URL of the file server (e.g. "http://nas.local:8080").
            auth: Identity and session credential of the current user.
            timeout: Transport timeout in seconds for every request.
            session_cookie: Name of the cookie carrying the session credential.
        """
        self.base_url = base_url.rstrip("/")
        self._auth = auth
        self._timeout = timeout
        self._session_cookie = session_cookie

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _headers(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        cookie = f"{self._session_cookie}={self._auth.session_token}"
        headers = {"Cookie": cookie, "Accept": "application/json"}
        if extra:
            headers.update(extra)
        return headers

    def _build_request(
        self,
        method: str,
        path: str,
        params: Mapping[str, str] | None = None,
        body: Any = None,
    ) -> urllib_request.Request:
        url = self.url(path)
        if params:
            url = f"{url}?{urlencode(params)}"
        data = None
        extra: dict[str, str] = {}
        if body is not None:
            data = json.dumps(body).encode("utf-8")
            extra["Content-Type"] = "application/json"
        return urllib_request.Request(url, data=data, headers=self._headers(extra), method=method)

    def request_json(
        self,
        method: str,
        path: str,
        params: Mapping[str, str] | None = None,
        body: Any = None,
    ) -> Any:
        """Perform an authenticated request and decode the JSON response.

        Args:
            method: HTTP method ("GET", "POST", "PUT" or "DELETE").
            path: URL path relative to the base URL (must start with '/').
            params: Optional query string parameters.
            body: Optional JSON-serialisable request body.

        Returns:
            Parsed JSON response body, or an empty dict for an empty body.

        Raises:
            ResourceError: The mapped error for any transport failure or
                non-2xx status code.
        """
        req = self._build_request(method, path, params, body)
        with self._open(req) as resp:
            raw = self._read(req, resp)
        if not raw:
            return {}
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise UnknownServerError(200, "Malformed JSON response") from exc

    def iter_content(
        self,
        path: str,
        params: Mapping[str, str] | None = None,
        chunk_size: int = DEFAULT_CHUNK_BYTES,
    ) -> Iterator[bytes]:
        """Stream an authenticated GET response in chunks of ``chunk_size`` bytes.

        Raises:
            ResourceError: The mapped error for any non-2xx status code or
                transport failure, including a connection lost mid-body.
        """
        req = self._build_request("GET", path, params)
        with self._open(req) as resp:
            while chunk := self._read(req, resp, chunk_size):
                yield chunk

    @contextmanager
    def _open(self, req: urllib_request.Request) -> Iterator[Any]:
        try:
            resp = urllib_request.urlopen(req, timeout=self._timeout)
        except HTTPError as exc:
            detail = extract_detail(exc.read(), fallback=str(exc.reason))
            logger.error(
                "[request] server rejected request; method:%s;url:%s;status:%d",
                req.get_method(),
                req.full_url,
                exc.code,
            )
            raise error_for_status(exc.code, detail) from exc
        except (OSError, HTTPException) as exc:
            logger.error(
                "[request] transport failure; method:%s;url:%s;error:%s",
                req.get_method(),
                req.full_url,
                exc,
            )
            raise TransportFailureError(str(exc)) from exc
        with resp:
            yield resp

    @staticmethod
    def _read(req: urllib_request.Request, resp: Any, size: int = -1) -> bytes:
        try:
            data: bytes = resp.read(size)
        except (OSError, HTTPException) as exc:
            logger.error(
                "[request] transport failure while reading body; method:%s;url:%s;error:%s",
                req.get_method(),
                req.full_url,
                exc,
            )
            raise TransportFailureError(str(exc)) from exc
        return data

    def post_multipart(
        self,
        path: str,
        fields: Mapping[str, str],
        files: Sequence[MultipartFile],
    ) -> Any:
        """Stream a multipart/form-data upload and decode the JSON response.

        Args:
            path: URL path relative to the base URL.
            fields: Plain form fields.
            files: ``(field, (filename, content, content_type))`` entries; the
                same field may repeat (e.g. ``files[]``).

        Returns:
            Parsed JSON response body, or an empty dict for an empty body.

        Raises:
            ResourceError: The mapped error for any transport failure or
                non-2xx status code.
        """
        url = self.url(path)
        try:
            resp = requests.post(
                url,
                data=dict(fields),
                files=list(files),
                cookies=self._auth.cookies(self._session_cookie),
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.error("[post_multipart] transport failure; url:%s;error:%s", url, exc)
            raise TransportFailureError(str(exc)) from exc

        if not resp.ok:
            detail = extract_detail(resp.content, fallback=resp.reason or "")
            logger.error(
                "[post_multipart] server rejected upload; url:%s;status:%d",
                url,
                resp.status_code,
            )
            raise error_for_status(resp.status_code, detail)

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as exc:
            raise UnknownServerError(resp.status_code, "Malformed JSON response") from exc
