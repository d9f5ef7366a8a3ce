"""Resource Mutation Engine — one create/rename/move/copy/delete/upload per call."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from remote_files.errors import (
    ConflictError,
    InvalidDestinationError,
    InvalidNameError,
    NotFoundError,
    ResourceError,
    UnsupportedOperationError,
)
from remote_files.gateway.models import (
    PATH_SEPARATOR,
    DownloadRequest,
    FileBlob,
    Resource,
    ResourceKind,
    ResourcePath,
    UploadResult,
    UploadStatus,
    is_descendant,
    join_path,
    split_path,
)
from remote_files.operations.conflicts import (
    ConflictDecision,
    ConflictProtocol,
    ConflictRequest,
    DecisionSource,
    FixedDecision,
    Resolution,
)

if TYPE_CHECKING:
    from remote_files.auth import AuthenticationContext
    from remote_files.gateway.storage import StorageGateway
    from remote_files.navigation.navigator import ResourceNavigator

logger = logging.getLogger(__name__)


class MutationStatus(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class MutationResult:
    """Result of a single successful or skipped mutation.

    Attributes:
        operation: Operation name ("create", "rename", "move", ...).
        name: Name of the item the operation was applied to.
        status: Succeeded or Skipped.
        final_name: Name committed at the destination (differs on Keep Both).
        decision: Conflict decision taken, or None if there was no conflict.
        message: Server message, when one was returned.
        already_absent: True when a delete found the resource already gone.
    """

    operation: str
    name: str
    status: MutationStatus
    final_name: str = ""
    decision: ConflictDecision | None = None
    message: str = ""
    already_absent: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status is MutationStatus.SUCCEEDED


def validate_name(name: str) -> str:
    """Reject empty (or blank) names and names containing a path separator.

    Raises:
        InvalidNameError: If the name cannot be used for a resource.
    """
    if not name or not name.strip() or PATH_SEPARATOR in name or "\\" in name:
        raise InvalidNameError(name)
    return name


def _reports_conflict(result: UploadResult) -> bool:
    return result.status is UploadStatus.ERROR and "already exists" in result.reason.casefold()


@dataclass
class _UploadBatch:
    """Shared state of one upload_many call."""

    parent: ResourcePath
    protocols: dict[int, ConflictProtocol]
    occupied: set[str]
    results: list[UploadResult | None]


# ----------------------------------------------------------------------
# Command objects — one parameter object per operation
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class CreateCommand:
    parent_path: ResourcePath
    name: str
    kind: ResourceKind
    content: str | None = None

    def run(
        self, engine: MutationEngine, decision: ConflictDecision | None = None
    ) -> MutationResult:
        return engine.create(self.parent_path, self.name, self.kind, self.content, decision)


@dataclass(frozen=True)
class RenameCommand:
    resource: Resource
    new_name: str

    def run(
        self, engine: MutationEngine, decision: ConflictDecision | None = None
    ) -> MutationResult:
        return engine.rename(self.resource, self.new_name, decision)


@dataclass(frozen=True)
class MoveCommand:
    resource: Resource
    destination: ResourcePath

    def run(
        self, engine: MutationEngine, decision: ConflictDecision | None = None
    ) -> MutationResult:
        return engine.move(self.resource, self.destination, decision)


@dataclass(frozen=True)
class CopyCommand:
    resource: Resource
    destination: ResourcePath
    new_name: str | None = None

    def run(
        self, engine: MutationEngine, decision: ConflictDecision | None = None
    ) -> MutationResult:
        return engine.copy(self.resource, self.destination, self.new_name, decision)


@dataclass(frozen=True)
class DeleteCommand:
    resource: Resource

    def run(
        self, engine: MutationEngine, decision: ConflictDecision | None = None
    ) -> MutationResult:
        return engine.remove(self.resource)


Command = CreateCommand | RenameCommand | MoveCommand | CopyCommand | DeleteCommand


class MutationEngine:
    """Executes single mutations against the gateway.

    Client-side validation failures (InvalidName, InvalidDestination,
    UnsupportedOperation) are raised before any request is made. Conflicts
    go through the ConflictProtocol and never escape as raw errors unless
    the backend keeps rejecting an item after its decision was applied.
    Every success refreshes the affected directories in the navigator.
    """

    def __init__(
        self,
        gateway: StorageGateway,
        navigator: ResourceNavigator,
        decide: DecisionSource,
        auth: AuthenticationContext | None = None,
    ) -> None:
        """Initialise the engine.

        Args:
            gateway: StorageGateway for every backend call.
            navigator: Navigator whose cached listings are refreshed on success.
            decide: Decision source consulted once per conflicting item.
            auth: Identity of the current user (used for log context).
        """
        self._gateway = gateway
        self._navigator = navigator
        self._decide = decide
        self._user = auth.username if auth is not None else ""

    @property
    def navigator(self) -> ResourceNavigator:
        return self._navigator

    def execute(self, command: Command, decision: ConflictDecision | None = None) -> MutationResult:
        return command.run(self, decision)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create(
        self,
        parent_path: str | ResourcePath,
        name: str,
        kind: ResourceKind,
        content: str | None = None,
        decision: ConflictDecision | None = None,
    ) -> MutationResult:
        """Create a file or directory named ``name`` inside ``parent_path``."""
        parent = split_path(parent_path)
        validate_name(name)

        def perform(target_name: str, overwrite: bool) -> str:
            if kind is ResourceKind.DIRECTORY:
                return self._gateway.create_directory(parent, target_name, overwrite=overwrite)
            return self._gateway.create_resource(
                parent, target_name, kind, content=content, overwrite=overwrite
            )

        result = self._with_conflicts("create", name, kind, parent, decision, perform)
        if result.succeeded:
            self._navigator.refresh_affected([parent])
        return result

    def rename(
        self,
        resource: Resource,
        new_name: str,
        decision: ConflictDecision | None = None,
    ) -> MutationResult:
        """Rename a resource within its current directory.

        Renaming a directory changes the path of every descendant; their
        cached listings are dropped rather than patched.
        """
        validate_name(new_name)
        parent = resource.parent_path
        if new_name == resource.name:
            return MutationResult("rename", resource.name, MutationStatus.SUCCEEDED, new_name)

        def perform(target_name: str, overwrite: bool) -> str:
            if resource.is_directory:
                return self._gateway.rename_directory(
                    parent, resource.name, target_name, overwrite=overwrite
                )
            return self._gateway.rename_file(
                parent, resource.name, target_name, overwrite=overwrite
            )

        result = self._with_conflicts("rename", new_name, resource.kind, parent, decision, perform)
        if result.succeeded:
            if resource.is_directory:
                self._navigator.forget(resource.path)
            self._navigator.refresh_affected([parent])
        return result

    def move(
        self,
        resource: Resource,
        destination_path: str | ResourcePath,
        decision: ConflictDecision | None = None,
    ) -> MutationResult:
        """Move a resource into ``destination_path``.

        Raises:
            InvalidDestinationError: If the destination is the resource's own
                directory, or (for directories) the resource itself or one of
                its descendants.
        """
        destination = split_path(destination_path)
        if resource.is_directory and is_descendant(destination, resource.path):
            raise InvalidDestinationError(
                f"Cannot move '{resource.name}' into itself or one of its subfolders"
            )
        if destination == resource.parent_path:
            raise InvalidDestinationError(
                f"'{resource.name}' is already in '{join_path(destination) or '/'}'"
            )

        def perform(target_name: str, overwrite: bool) -> str:
            if target_name == resource.name:
                return self._relocate(resource, resource.name, destination, overwrite)
            return self._relocate_as(resource, target_name, destination)

        def occupied() -> set[str]:
            # A Keep Both name is applied in the source directory before the move.
            siblings = self._occupied_names(resource.parent_path, resource.kind)
            siblings.discard(resource.name)
            return self._occupied_names(destination, resource.kind) | siblings

        result = self._with_conflicts(
            "move", resource.name, resource.kind, destination, decision, perform, occupied
        )
        if result.succeeded:
            if resource.is_directory:
                self._navigator.forget(resource.path)
            self._navigator.refresh_affected([resource.parent_path, destination])
        return result

    def _relocate(
        self, resource: Resource, name: str, destination: ResourcePath, overwrite: bool
    ) -> str:
        mover = self._gateway.move_directory if resource.is_directory else self._gateway.move_file
        return mover(name, resource.parent_path, destination, overwrite=overwrite)

    def _rename_in_place(self, resource: Resource, old_name: str, new_name: str) -> str:
        if resource.is_directory:
            return self._gateway.rename_directory(resource.parent_path, old_name, new_name)
        return self._gateway.rename_file(resource.parent_path, old_name, new_name)

    def _relocate_as(self, resource: Resource, target_name: str, destination: ResourcePath) -> str:
        """Move under a new name: rename in the source directory, then move.

        A failed move restores the original name before the error propagates.
        """
        self._rename_in_place(resource, resource.name, target_name)
        try:
            return self._relocate(resource, target_name, destination, overwrite=False)
        except ResourceError:
            try:
                self._rename_in_place(resource, target_name, resource.name)
            except ResourceError as restore_exc:
                logger.error(
                    "[move] could not restore name after failed move; name:%s;renamed:%s;error:%s",
                    resource.name,
                    target_name,
                    restore_exc,
                )
            raise

    def copy(
        self,
        resource: Resource,
        destination_path: str | ResourcePath,
        new_name: str | None = None,
        decision: ConflictDecision | None = None,
    ) -> MutationResult:
        """Copy a file into ``destination_path`` as ``new_name`` (default: same name).

        Raises:
            UnsupportedOperationError: If the resource is a directory.
        """
        if resource.is_directory:
            raise UnsupportedOperationError(f"Copying folders is not supported: '{resource.name}'")
        destination = split_path(destination_path)
        target = validate_name(new_name if new_name is not None else resource.name)

        def perform(target_name: str, overwrite: bool) -> str:
            return self._gateway.copy_file(
                resource.name,
                resource.parent_path,
                target_name,
                destination,
                overwrite=overwrite,
            )

        result = self._with_conflicts("copy", target, resource.kind, destination, decision, perform)
        if result.succeeded:
            self._navigator.refresh_affected([destination])
        return result

    def remove(self, resource: Resource) -> MutationResult:
        """Delete a resource. A resource that is already gone counts as deleted."""
        already_absent = False
        message = ""
        try:
            message = self._gateway.delete_resource(resource)
        except NotFoundError:
            already_absent = True
            logger.warning(
                "[remove] resource already absent; treating as deleted; path:%s;kind:%s",
                join_path(resource.path),
                resource.kind.value,
            )
        else:
            logger.info(
                "[remove] resource deleted; path:%s;kind:%s;user:%s",
                join_path(resource.path),
                resource.kind.value,
                self._user,
            )
        if resource.is_directory:
            self._navigator.forget(resource.path)
        self._navigator.refresh_affected([resource.parent_path])
        return MutationResult(
            "remove",
            resource.name,
            MutationStatus.SUCCEEDED,
            final_name=resource.name,
            message=message,
            already_absent=already_absent,
        )

    def download(self, resource: Resource) -> DownloadRequest:
        """Produce a transfer descriptor for a file; nothing is fetched here.

        Raises:
            UnsupportedOperationError: If the resource is a directory.
        """
        if resource.is_directory:
            raise UnsupportedOperationError(
                f"Downloading folders is not supported: '{resource.name}'"
            )
        return self._gateway.download_request(resource)

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    def upload(
        self,
        parent_path: str | ResourcePath,
        blob: FileBlob,
        decision: ConflictDecision | None = None,
    ) -> UploadResult:
        """Upload one file into ``parent_path``.

        Returns:
            UploadResult with status uploaded, overwritten, skipped or error.
        """
        parent = split_path(parent_path)
        try:
            validate_name(blob.name)

            def perform(target_name: str, overwrite: bool) -> str:
                sent = dataclasses.replace(blob, name=target_name)
                return self._gateway.upload(parent, sent, overwrite=overwrite)

            result = self._with_conflicts(
                "upload", blob.name, ResourceKind.FILE, parent, decision, perform
            )
        except ResourceError as exc:
            logger.error("[upload] upload failed; name:%s;error:%s", blob.name, exc)
            return UploadResult(blob.name, UploadStatus.ERROR, exc.user_message)

        if not result.succeeded:
            return UploadResult(blob.name, UploadStatus.SKIPPED)
        self._navigator.refresh_affected([parent])
        if result.decision is ConflictDecision.OVERWRITE:
            return UploadResult(blob.name, UploadStatus.OVERWRITTEN)
        return UploadResult(result.final_name, UploadStatus.UPLOADED)

    def upload_many(
        self,
        parent_path: str | ResourcePath,
        blobs: Sequence[FileBlob],
        decide: DecisionSource | None = None,
    ) -> list[UploadResult]:
        """Upload several files into ``parent_path`` with one decision per conflict.

        Skipped files are never sent. Files to overwrite and files to write
        fresh (including Keep Both renames) go in separate requests. A file
        the backend reports as already existing is resolved through its own
        ConflictProtocol and sent again alone. The returned report has one
        entry per input blob, in input order.
        """
        parent = split_path(parent_path)
        decide = decide or self._decide
        results: list[UploadResult | None] = [None] * len(blobs)
        protocols: dict[int, ConflictProtocol] = {}
        fresh: list[tuple[int, FileBlob]] = []
        replacing: list[tuple[int, FileBlob]] = []

        try:
            occupied = {f.name for f in self._gateway.list_files(parent)}
        except ResourceError as exc:
            logger.error("[upload_many] destination probe failed; error:%s", exc)
            return [UploadResult(b.name, UploadStatus.ERROR, exc.user_message) for b in blobs]

        for index, blob in enumerate(blobs):
            try:
                validate_name(blob.name)
            except InvalidNameError as exc:
                results[index] = UploadResult(blob.name, UploadStatus.ERROR, exc.user_message)
                continue
            protocol = ConflictProtocol(
                ConflictRequest("upload", blob.name, ResourceKind.FILE, parent),
                decide,
                lambda: frozenset(occupied),
            )
            protocols[index] = protocol
            resolution = protocol.start()
            if resolution.skipped:
                results[index] = UploadResult(blob.name, UploadStatus.SKIPPED)
            elif resolution.overwrite:
                replacing.append((index, blob))
            else:
                fresh.append((index, dataclasses.replace(blob, name=resolution.target_name)))
                occupied.add(resolution.target_name)

        batch = _UploadBatch(parent, protocols, occupied, results)
        for group, overwrite in ((replacing, True), (fresh, False)):
            if group:
                self._send_group(batch, group, overwrite)

        report = [
            r if r is not None else UploadResult(b.name, UploadStatus.ERROR, "No result reported")
            for r, b in zip(results, blobs, strict=True)
        ]
        if any(r.status in (UploadStatus.UPLOADED, UploadStatus.OVERWRITTEN) for r in report):
            self._navigator.refresh_affected([parent])
        logger.info(
            "[upload_many] upload complete; directory:%s;files:%d;sent:%d",
            join_path(parent),
            len(blobs),
            len(fresh) + len(replacing),
        )
        return report

    def _send_group(
        self, batch: _UploadBatch, group: list[tuple[int, FileBlob]], overwrite: bool
    ) -> None:
        try:
            reported = self._gateway.upload_multiple(
                batch.parent, [blob for _, blob in group], overwrite=overwrite
            )
        except ConflictError:
            logger.warning(
                "[upload_many] request rejected with conflict; sending files one by one; files:%d",
                len(group),
            )
            for index, blob in group:
                batch.results[index] = self._send_one(batch, index, blob, overwrite)
            return
        except ResourceError as exc:
            logger.error(
                "[upload_many] upload request failed; overwrite:%s;files:%d;error:%s",
                overwrite,
                len(group),
                exc,
            )
            for index, blob in group:
                batch.results[index] = UploadResult(blob.name, UploadStatus.ERROR, exc.user_message)
            return
        by_name = {r.name: r for r in reported}
        for index, blob in group:
            result = by_name.get(blob.name)
            if result is not None and _reports_conflict(result):
                error = ConflictError(blob.name, join_path(batch.parent), result.reason)
                result = self._resolve_upload_conflict(batch, index, blob, error)
            batch.results[index] = result

    def _send_one(
        self, batch: _UploadBatch, index: int, blob: FileBlob, overwrite: bool
    ) -> UploadResult:
        try:
            reported = self._gateway.upload_multiple(batch.parent, [blob], overwrite=overwrite)
        except ConflictError as exc:
            return self._resolve_upload_conflict(batch, index, blob, exc)
        except ResourceError as exc:
            logger.error("[upload_many] upload failed; name:%s;error:%s", blob.name, exc)
            return UploadResult(blob.name, UploadStatus.ERROR, exc.user_message)
        result = next((r for r in reported if r.name == blob.name), None)
        if result is None:
            return UploadResult(blob.name, UploadStatus.ERROR, "No result reported")
        if _reports_conflict(result):
            error = ConflictError(blob.name, join_path(batch.parent), result.reason)
            return self._resolve_upload_conflict(batch, index, blob, error)
        return result

    def _resolve_upload_conflict(
        self, batch: _UploadBatch, index: int, blob: FileBlob, error: ConflictError
    ) -> UploadResult:
        batch.occupied.add(blob.name)
        try:
            resolution = batch.protocols[index].report_conflict(error)
        except ConflictError as exc:
            return UploadResult(blob.name, UploadStatus.ERROR, exc.user_message)
        if resolution.skipped:
            return UploadResult(blob.name, UploadStatus.SKIPPED)
        batch.occupied.add(resolution.target_name)
        sent = dataclasses.replace(blob, name=resolution.target_name)
        return self._send_one(batch, index, sent, resolution.overwrite)

    # ------------------------------------------------------------------
    # Conflict handling
    # ------------------------------------------------------------------

    def _with_conflicts(
        self,
        operation: str,
        name: str,
        kind: ResourceKind,
        destination: ResourcePath,
        decision: ConflictDecision | None,
        perform: Callable[[str, bool], str],
        occupied: Callable[[], set[str]] | None = None,
    ) -> MutationResult:
        decide = self._decide if decision is None else FixedDecision(decision)
        protocol = ConflictProtocol(
            ConflictRequest(operation, name, kind, destination),
            decide,
            occupied or (lambda: self._occupied_names(destination, kind)),
        )
        resolution: Resolution = protocol.start()
        while True:
            if resolution.skipped:
                logger.info(
                    "[%s] skipped after conflict; name:%s;destination:%s",
                    operation,
                    name,
                    join_path(destination),
                )
                return MutationResult(
                    operation, name, MutationStatus.SKIPPED, name, resolution.decision
                )
            try:
                message = perform(resolution.target_name, resolution.overwrite)
            except ConflictError as exc:
                resolution = protocol.report_conflict(exc)
                continue
            logger.info(
                "[%s] succeeded; name:%s;final_name:%s;destination:%s;user:%s",
                operation,
                name,
                resolution.target_name,
                join_path(destination),
                self._user,
            )
            return MutationResult(
                operation,
                name,
                MutationStatus.SUCCEEDED,
                resolution.target_name,
                resolution.decision,
                message,
            )

    def _occupied_names(self, destination: ResourcePath, kind: ResourceKind) -> set[str]:
        if kind is ResourceKind.DIRECTORY:
            entries = self._gateway.list_directories(destination)
        else:
            entries = self._gateway.list_files(destination)
        return {entry.name for entry in entries}
