"""Conflict Resolution Protocol — detect name collisions and apply a per-item decision."""

from __future__ import annotations

import logging
import posixpath
import re
from collections.abc import Callable, Collection, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from remote_files.errors import ConflictError
from remote_files.gateway.models import ResourceKind, ResourcePath, join_path

logger = logging.getLogger(__name__)


class ConflictDecision(str, Enum):
    OVERWRITE = "overwrite"
    KEEP_BOTH = "keep_both"
    SKIP = "skip"


class ConflictState(str, Enum):
    IDLE = "idle"
    PROBING = "probing"
    NO_CONFLICT = "no_conflict"
    CONFLICT_DETECTED = "conflict_detected"
    AWAITING_DECISION = "awaiting_decision"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class ConflictRequest:
    """What the decision source is asked about: one item colliding at one destination."""

    operation: str
    name: str
    kind: ResourceKind
    destination: ResourcePath

    def describe(self) -> str:
        noun = "folder" if self.kind is ResourceKind.DIRECTORY else "file"
        where = join_path(self.destination) or "/"
        return f"A {noun} named '{self.name}' already exists in '{where}'."


class DecisionSource(Protocol):
    """Anything that turns a ConflictRequest into a ConflictDecision.

    The Presentation Layer supplies one backed by a modal; tests and
    headless callers use FixedDecision or ScriptedDecisions.
    """

    def __call__(self, request: ConflictRequest) -> ConflictDecision: ...


class FixedDecision:
    """Answers every conflict with the same decision (e.g. always Skip)."""

    def __init__(self, decision: ConflictDecision) -> None:
        self.decision = decision

    def __call__(self, request: ConflictRequest) -> ConflictDecision:
        return self.decision


@dataclass
class ScriptedDecisions:
    """Answers conflicts by item name, falling back to a default decision.

    Every request received is recorded in ``asked`` in arrival order.
    """

    by_name: Mapping[str, ConflictDecision] = field(default_factory=dict)
    default: ConflictDecision = ConflictDecision.SKIP
    asked: list[ConflictRequest] = field(default_factory=list)

    def __call__(self, request: ConflictRequest) -> ConflictDecision:
        self.asked.append(request)
        return self.by_name.get(request.name, self.default)


def keep_both_name(name: str, occupied: Collection[str], split_extension: bool = True) -> str:
    """Return the first free ``"<stem> (n)<ext>"`` alternative to ``name``.

    ``n`` starts at 1 and increases until the candidate is not occupied.
    If the destination already holds names numbered after the full name
    (``"<name> (k)"``), that series is continued instead, so "report.txt"
    next to "report.txt (1)" becomes "report.txt (2)".

    Args:
        name: The colliding name.
        occupied: Names already present at the destination.
        split_extension: Keep the extension after the counter (files only).
    """
    stem, ext = posixpath.splitext(name) if split_extension else (name, "")
    full_name_series = re.compile(rf"^{re.escape(name)} \(\d+\)$")
    if any(full_name_series.match(existing) for existing in occupied):
        stem, ext = name, ""
    counter = 1
    while True:
        candidate = f"{stem} ({counter}){ext}"
        if candidate not in occupied:
            return candidate
        counter += 1


@dataclass(frozen=True)
class Resolution:
    """Outcome of the protocol for one item: which name to write and how."""

    target_name: str
    overwrite: bool = False
    decision: ConflictDecision | None = None

    @property
    def skipped(self) -> bool:
        return self.decision is ConflictDecision.SKIP

    @property
    def conflicted(self) -> bool:
        return self.decision is not None


class ConflictProtocol:
    """State machine for a single attempted item.

    ``IDLE → PROBING → NO_CONFLICT | CONFLICT_DETECTED → AWAITING_DECISION → RESOLVED``

    A conflict can be found by the pre-check listing (``start``) or reported
    by the backend rejecting the write (``report_conflict``); both lead to
    the same single decision. The decision applies to this item only.
    """

    def __init__(
        self,
        request: ConflictRequest,
        decide: DecisionSource,
        occupied: Callable[[], Collection[str]],
    ) -> None:
        """Initialise the protocol for one item.

        Args:
            request: The item and destination being written.
            decide: Source of the ConflictDecision, asked at most once.
            occupied: Returns the names of same-kind items at the destination.
        """
        self.request = request
        self.state = ConflictState.IDLE
        self._decide = decide
        self._occupied = occupied
        self.resolution: Resolution | None = None

    def start(self) -> Resolution:
        """Probe the destination and resolve immediately if the name is taken."""
        self.state = ConflictState.PROBING
        names = self._occupied()
        if self.request.name in names:
            self.state = ConflictState.CONFLICT_DETECTED
            return self._await_decision(names)
        self.state = ConflictState.NO_CONFLICT
        self.resolution = Resolution(target_name=self.request.name)
        return self.resolution

    def report_conflict(self, error: ConflictError) -> Resolution:
        """Handle a conflict signalled by the backend after a clean probe.

        Raises:
            ConflictError: If this item already consumed its decision.
        """
        if self.state is ConflictState.RESOLVED:
            logger.error(
                "[report_conflict] conflict persisted after resolution; operation:%s;name:%s",
                self.request.operation,
                self.request.name,
            )
            raise error
        self.state = ConflictState.CONFLICT_DETECTED
        return self._await_decision(self._occupied())

    def _await_decision(self, names: Collection[str]) -> Resolution:
        self.state = ConflictState.AWAITING_DECISION
        decision = ConflictDecision(self._decide(self.request))
        logger.info(
            "[conflict] decision received; operation:%s;name:%s;destination:%s;decision:%s",
            self.request.operation,
            self.request.name,
            join_path(self.request.destination),
            decision.value,
        )
        if decision is ConflictDecision.OVERWRITE:
            resolution = Resolution(self.request.name, overwrite=True, decision=decision)
        elif decision is ConflictDecision.KEEP_BOTH:
            taken = {*names, self.request.name}
            alternative = keep_both_name(
                self.request.name,
                taken,
                split_extension=self.request.kind is ResourceKind.FILE,
            )
            resolution = Resolution(alternative, decision=decision)
        else:
            resolution = Resolution(self.request.name, decision=decision)
        self.state = ConflictState.RESOLVED
        self.resolution = resolution
        return resolution
