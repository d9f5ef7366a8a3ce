"""Remote Storage Gateway — one method per file server endpoint."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, BinaryIO

from remote_files.gateway.client import DEFAULT_CHUNK_BYTES, StorageClient
from remote_files.gateway.models import (
    FIELD_CREATED_AT,
    FIELD_CREATED_BY,
    FIELD_DIRECTORY,
    FIELD_MESSAGE,
    FIELD_NAME,
    FIELD_SIZE,
    FIELD_TYPE,
    FIELD_UPLOADER,
    TYPE_DIRECTORY,
    TYPE_FILE,
    DownloadRequest,
    FileBlob,
    Resource,
    ResourceKind,
    ResourcePath,
    TreeNode,
    UploadResult,
    join_path,
    parse_timestamp,
    split_path,
)

if TYPE_CHECKING:
    from remote_files.auth import AuthenticationContext
    from remote_files.config import AppConfig

logger = logging.getLogger(__name__)


class StorageGateway:
    """Translates core operations into file server requests.

    Each method issues exactly one request and returns the parsed result.
    Failures arrive as the ResourceError subclasses raised by StorageClient;
    nothing here retries.
    """

    def __init__(
        self,
        client: StorageClient,
        container: str = "",
        chunk_size: int = DEFAULT_CHUNK_BYTES,
    ) -> None:
        """Initialise the gateway.

        Args:
            client: Authenticated StorageClient.
            container: Top-level container sent with directory calls
                (e.g. "research"); empty for the whole store.
            chunk_size: Bytes read per chunk when streaming downloads.
        """
        self._client = client
        self._container = container
        self._chunk_size = chunk_size

    @property
    def container(self) -> str:
        return self._container

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def list_files(self, directory: ResourcePath) -> list[Resource]:
        """List the files directly inside ``directory``.

        Entries typed as directories, or carrying a ``directory`` field for
        some other folder, are dropped.
        """
        wire_directory = join_path(directory)
        raw = self._client.request_json("GET", "/files", params={"directory": wire_directory})
        return [
            self._parse_file(item, directory)
            for item in _as_list(raw)
            if item.get(FIELD_TYPE, TYPE_FILE) == TYPE_FILE
            and join_path(split_path(item.get(FIELD_DIRECTORY, wire_directory))) == wire_directory
        ]

    def list_directories(self, directory: ResourcePath) -> list[Resource]:
        """List the sub-directories directly inside ``directory``.

        Entries explicitly typed as something other than a directory are ignored.
        """
        raw = self._client.request_json(
            "GET", "/directory/list", params={"directory": join_path(directory)}
        )
        return [
            self._parse_directory(item, directory)
            for item in _as_list(raw)
            if item.get(FIELD_TYPE, TYPE_DIRECTORY) == TYPE_DIRECTORY
        ]

    def directory_tree(self) -> list[TreeNode]:
        """Fetch the full directory tree of the configured container.

        Returns:
            Root-level TreeNode entries, each carrying its nested children.

        Raises:
            ResourceError: On any transport or server failure.
        """
        raw = self._client.request_json(
            "GET", "/directory/tree", params={"container": self._container}
        )
        return [TreeNode.from_json(node) for node in _as_list(raw)]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_resource(
        self,
        parent: ResourcePath,
        name: str,
        kind: ResourceKind,
        content: str | None = None,
        overwrite: bool = False,
    ) -> str:
        """Create a file (or directory) under ``parent`` via /create-resource.

        Args:
            parent: Path of the directory that will hold the new resource.
            name: Name of the new resource.
            kind: Resource kind sent as ``resource_type``.
            content: Optional initial text content for a file.
            overwrite: Replace an existing resource of the same name.

        Returns:
            The server's confirmation message.

        Raises:
            ConflictError: The name is taken and ``overwrite`` is not set.
            ResourceError: On any other transport or server failure.
        """
        body: dict[str, Any] = {
            "resource_type": kind.value,
            "name": join_path((*parent, name)),
        }
        if content is not None:
            body["content"] = content
        if overwrite:
            body["overwrite"] = True
        return self._message(self._client.request_json("POST", "/create-resource", body=body))

    def create_directory(self, parent: ResourcePath, name: str, overwrite: bool = False) -> str:
        """Create a directory in the configured container."""
        body: dict[str, Any] = {
            "name": name,
            "parent": join_path(parent),
            "container": self._container,
        }
        if overwrite:
            body["overwrite"] = True
        return self._message(self._client.request_json("POST", "/directory/create", body=body))

    def rename_file(
        self, directory: ResourcePath, old_name: str, new_name: str, overwrite: bool = False
    ) -> str:
        """Rename a file in place.

        Args:
            directory: Path of the directory holding the file.
            old_name: Current file name.
            new_name: Desired file name.
            overwrite: Replace an existing file called ``new_name``.

        Returns:
            The server's confirmation message.

        Raises:
            NotFoundError: The file does not exist.
            ConflictError: ``new_name`` is taken and ``overwrite`` is not set.
        """
        body: dict[str, Any] = {
            "old_filename": old_name,
            "new_filename": new_name,
            "directory": join_path(directory),
        }
        if overwrite:
            body["overwrite"] = True
        return self._message(self._client.request_json("PUT", "/file/rename", body=body))

    def rename_directory(
        self, parent: ResourcePath, old_name: str, new_name: str, overwrite: bool = False
    ) -> str:
        body: dict[str, Any] = {
            "old_name": old_name,
            "new_name": new_name,
            "parent": join_path(parent),
        }
        if overwrite:
            body["overwrite"] = True
        return self._message(self._client.request_json("PUT", "/directory/rename", body=body))

    def move_file(
        self,
        name: str,
        old_parent: ResourcePath,
        new_parent: ResourcePath,
        overwrite: bool = False,
    ) -> str:
        """Move a file to another directory, keeping its name.

        Args:
            name: File name.
            old_parent: Path of the directory currently holding the file.
            new_parent: Path of the destination directory.
            overwrite: Replace an existing file of the same name at the
                destination.

        Returns:
            The server's confirmation message.

        Raises:
            NotFoundError: The file or the destination does not exist.
            ConflictError: The name is taken at the destination.
        """
        body: dict[str, Any] = {
            "filename": name,
            "old_parent": join_path(old_parent),
            "new_parent": join_path(new_parent),
            "overwrite": overwrite,
        }
        return self._message(self._client.request_json("POST", "/file/move", body=body))

    def move_directory(
        self,
        name: str,
        old_parent: ResourcePath,
        new_parent: ResourcePath,
        overwrite: bool = False,
    ) -> str:
        body: dict[str, Any] = {
            "name": name,
            "old_parent": join_path(old_parent),
            "new_parent": join_path(new_parent),
            "overwrite": overwrite,
        }
        return self._message(self._client.request_json("POST", "/directory/move", body=body))

    def copy_file(
        self,
        source_name: str,
        source_directory: ResourcePath,
        target_name: str,
        target_directory: ResourcePath,
        overwrite: bool = False,
    ) -> str:
        """Copy a file, possibly under a different name.

        Args:
            source_name: Name of the file to copy.
            source_directory: Path of the directory holding the source.
            target_name: Name of the copy.
            target_directory: Path of the directory receiving the copy.
            overwrite: Replace an existing file called ``target_name``.

        Returns:
            The server's confirmation message.

        Raises:
            NotFoundError: The source file or the target directory is missing.
            ConflictError: ``target_name`` is taken and ``overwrite`` is not set.
        """
        body: dict[str, Any] = {
            "source_filename": source_name,
            "source_directory": join_path(source_directory),
            "target_filename": target_name,
            "target_directory": join_path(target_directory),
            "overwrite": overwrite,
        }
        return self._message(self._client.request_json("POST", "/file/copy", body=body))

    def delete_resource(self, resource: Resource) -> str:
        """Delete a file, or a directory together with its contents.

        Args:
            resource: The resource to delete.

        Returns:
            The server's confirmation message.

        Raises:
            NotFoundError: The resource no longer exists.
            UnauthorizedError: The current user may not delete it.
        """
        body = {"resource_type": resource.kind.value, "name": join_path(resource.path)}
        return self._message(self._client.request_json("DELETE", "/delete-resource", body=body))

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def upload(self, directory: ResourcePath, blob: FileBlob, overwrite: bool = False) -> str:
        fields = {
            "directory": join_path(directory),
            "overwrite": "true" if overwrite else "false",
        }
        files = [("file", (blob.name, blob.content, blob.content_type))]
        return self._message(self._client.post_multipart("/upload", fields, files))

    def upload_multiple(
        self, directory: ResourcePath, blobs: Sequence[FileBlob], overwrite: bool = False
    ) -> list[UploadResult]:
        """Upload several files in one request.

        Returns:
            One UploadResult per entry reported by the server.
        """
        fields = {
            "directory": join_path(directory),
            "container": self._container,
            "overwrite": "true" if overwrite else "false",
        }
        files = [("files[]", (blob.name, blob.content, blob.content_type)) for blob in blobs]
        raw = self._client.post_multipart("/upload/multiple", fields, files)
        return [UploadResult.from_json(item) for item in _as_list(raw)]

    def download_request(self, resource: Resource) -> DownloadRequest:
        """Build the transfer descriptor for a file without contacting the server."""
        return DownloadRequest(
            url=self._client.url("/download"),
            filename=resource.name,
            params={"directory": resource.directory, "filename": resource.name},
        )

    def download_to(self, request: DownloadRequest, sink: BinaryIO) -> int:
        """Stream a download descriptor into a writable binary file object.

        Returns:
            Number of bytes written.
        """
        written = 0
        chunks = self._client.iter_content(
            "/download", params=request.params, chunk_size=self._chunk_size
        )
        for chunk in chunks:
            sink.write(chunk)
            written += len(chunk)
        logger.info(
            "[download_to] downloaded file; filename:%s;bytes:%d", request.filename, written
        )
        return written

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_file(raw: dict, directory: ResourcePath) -> Resource:  # type: ignore[type-arg]
        """Map a raw file entry to a File Resource."""
        size = raw.get(FIELD_SIZE)
        return Resource(
            name=raw.get(FIELD_NAME, ""),
            kind=ResourceKind.FILE,
            parent_path=directory,
            size=int(size) if size is not None else 0,
            uploader=raw.get(FIELD_UPLOADER, ""),
            created_at=parse_timestamp(raw.get(FIELD_CREATED_AT)),
        )

    @staticmethod
    def _parse_directory(raw: dict, parent: ResourcePath) -> Resource:  # type: ignore[type-arg]
        """Map a raw directory entry to a Directory Resource."""
        return Resource(
            name=raw.get(FIELD_NAME, ""),
            kind=ResourceKind.DIRECTORY,
            parent_path=parent,
            created_by=raw.get(FIELD_CREATED_BY),
            created_at=parse_timestamp(raw.get(FIELD_CREATED_AT)),
        )

    @staticmethod
    def _message(raw: Any) -> str:
        if isinstance(raw, dict):
            return str(raw.get(FIELD_MESSAGE, ""))
        return ""


def _as_list(raw: Any) -> list[dict]:  # type: ignore[type-arg]
    # The server encodes an empty listing as null.
    if isinstance(raw, list):
        return [item for item in raw if isinstance(item, dict)]
    return []


def storage_gateway_from_config(config: AppConfig, auth: AuthenticationContext) -> StorageGateway:
    """Construct a StorageGateway from application configuration.

    Args:
        config: Application configuration instance.
        auth: Identity and session credential of the current user.

    Returns:
        Configured StorageGateway instance.
    """
    client = StorageClient(
        base_url=config.base_url,
        auth=auth,
        timeout=config.timeout_seconds,
        session_cookie=config.session_cookie,
    )
    return StorageGateway(
        client=client,
        container=config.container,
        chunk_size=config.download_chunk_bytes,
    )
