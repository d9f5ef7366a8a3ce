"""Batch Operation Coordinator — apply one operation to every selected resource."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from remote_files.errors import ResourceError
from remote_files.gateway.models import (
    DownloadRequest,
    Resource,
    ResourcePath,
    join_path,
    split_path,
)
from remote_files.operations.engine import (
    Command,
    CopyCommand,
    DeleteCommand,
    MoveCommand,
    MutationResult,
    MutationStatus,
)

if TYPE_CHECKING:
    from remote_files.navigation.selection import SelectionManager
    from remote_files.operations.engine import MutationEngine

logger = logging.getLogger(__name__)

ItemAction = Callable[[Resource], "MutationResult | DownloadRequest"]
CancelCheck = Callable[[], bool]


class ItemStatus(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ItemOutcome:
    """Final outcome for one resource of a batch."""

    resource: Resource
    status: ItemStatus
    reason: str = ""
    result: MutationResult | DownloadRequest | None = None


@dataclass
class BatchOutcome:
    """Per-item outcomes of one batch call plus aggregate counts."""

    operation: str
    items: list[ItemOutcome] = field(default_factory=list)
    cancelled: bool = False

    def _count(self, status: ItemStatus) -> int:
        return sum(1 for item in self.items if item.status is status)

    @property
    def succeeded(self) -> int:
        return self._count(ItemStatus.SUCCEEDED)

    @property
    def skipped(self) -> int:
        return self._count(ItemStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(ItemStatus.FAILED)

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def downloads(self) -> list[DownloadRequest]:
        return [item.result for item in self.items if isinstance(item.result, DownloadRequest)]

    def summary(self) -> str:
        text = (
            f"{self.operation}: {self.succeeded} succeeded, "
            f"{self.skipped} skipped, {self.failed} failed"
        )
        if self.cancelled:
            text += " (cancelled)"
        return text


class BatchCoordinator:
    """Applies a mutation to each member of the selection, strictly in sequence.

    Items are processed one at a time so each conflict gets its own decision
    before the next item starts. A failing item never stops the batch; every
    error is captured in the BatchOutcome and the batch itself never raises.
    """

    def __init__(self, engine: MutationEngine, selection: SelectionManager) -> None:
        self._engine = engine
        self._selection = selection

    def run(
        self,
        operation: str,
        action: ItemAction,
        should_cancel: CancelCheck | None = None,
    ) -> BatchOutcome:
        """Apply ``action`` to every selected resource and report the outcome.

        Args:
            operation: Label used in the outcome and logs (e.g. "delete").
            action: Called once per resource; returns a MutationResult or
                DownloadRequest, or raises ResourceError.
            should_cancel: Checked before each item; when it returns True the
                remaining items are left unprocessed and still selected.

        Returns:
            BatchOutcome with one ItemOutcome per processed resource.
        """
        outcome = BatchOutcome(operation)
        pending = self._selection.items
        if not pending:
            logger.info("[run] empty selection; nothing to do; operation:%s", operation)
            return outcome

        for resource in pending:
            if should_cancel is not None and should_cancel():
                outcome.cancelled = True
                logger.warning(
                    "[run] batch cancelled; operation:%s;processed:%d;remaining:%d",
                    operation,
                    outcome.total,
                    len(pending) - outcome.total,
                )
                break
            outcome.items.append(self._apply(operation, action, resource))
            self._selection.deselect(resource)

        if not outcome.cancelled:
            self._selection.clear()
        logger.info(
            "[run] batch complete; operation:%s;succeeded:%d;skipped:%d;failed:%d",
            operation,
            outcome.succeeded,
            outcome.skipped,
            outcome.failed,
        )
        return outcome

    def run_commands(
        self,
        operation: str,
        build: Callable[[Resource], Command],
        should_cancel: CancelCheck | None = None,
    ) -> BatchOutcome:
        """Apply a command built per resource (see MutationEngine.execute)."""
        return self.run(operation, lambda r: self._engine.execute(build(r)), should_cancel)

    def delete(self, should_cancel: CancelCheck | None = None) -> BatchOutcome:
        return self.run_commands("delete", DeleteCommand, should_cancel)

    def move(
        self, destination: str | ResourcePath, should_cancel: CancelCheck | None = None
    ) -> BatchOutcome:
        target = split_path(destination)
        return self.run_commands("move", lambda r: MoveCommand(r, target), should_cancel)

    def copy(
        self, destination: str | ResourcePath, should_cancel: CancelCheck | None = None
    ) -> BatchOutcome:
        target = split_path(destination)
        return self.run_commands("copy", lambda r: CopyCommand(r, target), should_cancel)

    def download(self, should_cancel: CancelCheck | None = None) -> BatchOutcome:
        return self.run("download", self._engine.download, should_cancel)

    @staticmethod
    def _apply(operation: str, action: ItemAction, resource: Resource) -> ItemOutcome:
        try:
            result = action(resource)
        except ResourceError as exc:
            logger.error(
                "[run] item failed; operation:%s;path:%s;error:%s",
                operation,
                join_path(resource.path),
                exc,
            )
            return ItemOutcome(resource, ItemStatus.FAILED, exc.user_message)
        except Exception as exc:
            logger.exception(
                "[run] unexpected item failure; operation:%s;path:%s",
                operation,
                join_path(resource.path),
            )
            return ItemOutcome(resource, ItemStatus.FAILED, str(exc) or type(exc).__name__)

        if isinstance(result, MutationResult) and result.status is MutationStatus.SKIPPED:
            return ItemOutcome(resource, ItemStatus.SKIPPED, result=result)
        return ItemOutcome(resource, ItemStatus.SUCCEEDED, result=result)
