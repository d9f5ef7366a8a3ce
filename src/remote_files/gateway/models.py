"""Data models for files, directories and the file server's JSON payloads."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import BinaryIO
from urllib.parse import urlencode

# File server JSON field names
FIELD_NAME = "name"
FIELD_TYPE = "type"
FIELD_SIZE = "size"
FIELD_UPLOADER = "uploader"
FIELD_CREATED_AT = "created_at"
FIELD_CREATED_BY = "created_by"
FIELD_DIRECTORY = "directory"
FIELD_STATUS = "status"
FIELD_MESSAGE = "message"
FIELD_ERROR = "error"
FIELD_TITLE = "title"
FIELD_VALUE = "value"
FIELD_CHILDREN = "children"

TYPE_FILE = "file"
TYPE_DIRECTORY = "directory"

PATH_SEPARATOR = "/"

ResourcePath = tuple[str, ...]

_FRACTION_RE = re.compile(r"(\.\d{6})\d+")
_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


class ResourceKind(str, Enum):
    FILE = TYPE_FILE
    DIRECTORY = TYPE_DIRECTORY


def split_path(path: str | ResourcePath) -> ResourcePath:
    """Normalise a slash-separated path (or an existing tuple) into path segments.

    Empty segments are dropped, so "", "/" and "a//b/" become (), () and ("a", "b").
    """
    if isinstance(path, tuple):
        return path
    return tuple(part for part in path.split(PATH_SEPARATOR) if part)


def join_path(path: ResourcePath) -> str:
    """Render path segments in the wire format used by the file server ("" is root)."""
    return PATH_SEPARATOR.join(path)


def is_descendant(path: ResourcePath, ancestor: ResourcePath) -> bool:
    """Return True if ``path`` equals ``ancestor`` or lies anywhere beneath it."""
    return path[: len(ancestor)] == ancestor


def parse_timestamp(raw: str | None) -> datetime | None:
    """Parse an RFC 3339 timestamp as emitted by the file server.

    Fractional seconds beyond microseconds are truncated. Unparseable
    values yield None rather than failing the whole listing.
    """
    if not raw:
        return None
    text = _FRACTION_RE.sub(r"\1", raw.replace("Z", "+00:00"))
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def format_size(size: int | None) -> str:
    """Format a byte count in human-readable form (e.g. "1.50 KB")."""
    if size is None:
        return "Unknown"
    if size <= 0:
        return "0 B"
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    if unit == 0:
        return f"{size} B"
    return f"{value:.2f} {_SIZE_UNITS[unit]}"


@dataclass(frozen=True)
class ResourceKey:
    """Identity of a resource: its parent path, name and kind."""

    parent_path: ResourcePath
    name: str
    kind: ResourceKind


@dataclass(frozen=True)
class Resource:
    """A file or directory entry in the remote store.

    Instances are never mutated; the client replaces them wholesale by
    re-fetching the containing directory after every change.

    Attributes:
        name: Name, unique (case-sensitively) within the parent directory.
        kind: File or Directory.
        parent_path: Directory names from the root; () is the root.
        size: Size in bytes. Files only.
        uploader: Username of the uploader. Files only.
        created_by: Username of the creator. Directories only.
        created_at: Creation timestamp, when the server reports one.
    """

    name: str
    kind: ResourceKind
    parent_path: ResourcePath = ()
    size: int | None = None
    uploader: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None

    @property
    def is_directory(self) -> bool:
        return self.kind is ResourceKind.DIRECTORY

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.parent_path, self.name, self.kind)

    @property
    def path(self) -> ResourcePath:
        """Full path of the resource itself (parent path plus name)."""
        return (*self.parent_path, self.name)

    @property
    def directory(self) -> str:
        """Parent path in wire format."""
        return join_path(self.parent_path)

    @property
    def owner(self) -> str | None:
        return self.created_by if self.is_directory else self.uploader


@dataclass
class TreeNode:
    """A node of the folder tree returned by the directory tree endpoint."""

    title: str
    value: str
    children: list[TreeNode] = field(default_factory=list)

    @classmethod
    def from_json(cls, raw: dict) -> TreeNode:  # type: ignore[type-arg]
        return cls(
            title=raw.get(FIELD_TITLE, ""),
            value=raw.get(FIELD_VALUE, ""),
            children=[cls.from_json(child) for child in raw.get(FIELD_CHILDREN) or []],
        )


class UploadStatus(str, Enum):
    UPLOADED = "uploaded"
    OVERWRITTEN = "overwritten"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass(frozen=True)
class UploadResult:
    """Per-file result of an upload."""

    name: str
    status: UploadStatus
    reason: str = ""

    @classmethod
    def from_json(cls, raw: dict) -> UploadResult:  # type: ignore[type-arg]
        """Parse ``{name, status}`` where status may be ``"error: <reason>"``."""
        status_text = str(raw.get(FIELD_STATUS, ""))
        head, _, reason = status_text.partition(":")
        try:
            status = UploadStatus(head.strip().lower())
        except ValueError:
            return cls(name=raw.get(FIELD_NAME, ""), status=UploadStatus.ERROR, reason=status_text)
        return cls(name=raw.get(FIELD_NAME, ""), status=status, reason=reason.strip())


@dataclass
class FileBlob:
    """Content to upload: a name plus bytes or a readable binary stream."""

    name: str
    content: bytes | BinaryIO
    content_type: str = "application/octet-stream"


@dataclass(frozen=True)
class DownloadRequest:
    """Descriptor of a file transfer; the caller decides how to perform it."""

    url: str
    filename: str
    params: dict[str, str] = field(default_factory=dict)

    @property
    def full_url(self) -> str:
        if not self.params:
            return self.url
        return f"{self.url}?{urlencode(self.params)}"
