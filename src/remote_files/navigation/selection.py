"""Selection Manager — the set of resources currently marked selected."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from remote_files.gateway.models import Resource, ResourceKey

logger = logging.getLogger(__name__)


class SelectionManager:
    """Tracks selected resources by identity, in the order they were selected."""

    def __init__(self) -> None:
        self._selected: dict[ResourceKey, Resource] = {}

    def __len__(self) -> int:
        return len(self._selected)

    def __contains__(self, resource: object) -> bool:
        return isinstance(resource, Resource) and resource.key in self._selected

    @property
    def items(self) -> list[Resource]:
        return list(self._selected.values())

    def select(self, resource: Resource) -> None:
        self._selected[resource.key] = resource

    def deselect(self, resource: Resource) -> None:
        self._selected.pop(resource.key, None)

    def toggle(self, resource: Resource) -> bool:
        """Flip the selection state of ``resource``; returns the new state."""
        if resource in self:
            self.deselect(resource)
            return False
        self.select(resource)
        return True

    def select_all(self, listing: Iterable[Resource]) -> None:
        for resource in listing:
            self.select(resource)

    def clear(self) -> None:
        self._selected.clear()

    def prune(self, listing: Iterable[Resource]) -> list[Resource]:
        """Drop members missing from ``listing``; returns the dropped resources.

        Surviving members are replaced by their fresh listing entries.
        """
        fresh = {resource.key: resource for resource in listing}
        dropped = [r for key, r in self._selected.items() if key not in fresh]
        self._selected = {key: fresh[key] for key in self._selected if key in fresh}
        if dropped:
            logger.info("[prune] dropped stale selection; count:%d", len(dropped))
        return dropped
