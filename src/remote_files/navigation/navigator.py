"""Resource Tree Navigator — current path, cached listings and breadcrumbs."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from remote_files.errors import InvalidNameError, ResourceError
from remote_files.gateway.models import (
    PATH_SEPARATOR,
    Resource,
    ResourcePath,
    is_descendant,
    join_path,
    split_path,
)
from remote_files.navigation.tree import ResourceTree

if TYPE_CHECKING:
    from remote_files.gateway.storage import StorageGateway

logger = logging.getLogger(__name__)

ROOT_TITLE = "Home"

ListingListener = Callable[[list[Resource]], object]
ErrorHandler = Callable[[ResourceError], object]


@dataclass(frozen=True)
class Breadcrumb:
    title: str
    path: ResourcePath


def sort_listing(resources: Iterable[Resource]) -> list[Resource]:
    """Order a listing with directories before files, then by name."""
    return sorted(resources, key=lambda r: (not r.is_directory, r.name))


def filter_listing(resources: Iterable[Resource], term: str) -> list[Resource]:
    """Case-insensitive substring match on names, preserving the given order."""
    needle = term.strip().casefold()
    if not needle:
        return list(resources)
    return [r for r in resources if needle in r.name.casefold()]


class ResourceNavigator:
    """Single source of truth for where the user is in the remote store.

    Listings are cached per path and merged from the directory and file
    listing calls. A failed fetch keeps whatever was cached before and
    reports the error instead of blanking the listing.
    """

    def __init__(
        self,
        gateway: StorageGateway,
        on_error: ErrorHandler | None = None,
    ) -> None:
        """Initialise the navigator at the root of the store.

        Args:
            gateway: StorageGateway used for every listing call.
            on_error: Optional callback receiving fetch errors for display.
        """
        self._gateway = gateway
        self._on_error = on_error
        self._current: ResourcePath = ()
        self._listings: dict[ResourcePath, list[Resource]] = {}
        self._listeners: list[ListingListener] = []
        self.tree = ResourceTree()
        self.last_error: ResourceError | None = None

    @property
    def current_path(self) -> ResourcePath:
        return self._current

    @property
    def is_root(self) -> bool:
        return not self._current

    def add_listener(self, listener: ListingListener) -> None:
        """Register a callback invoked whenever the current listing is replaced."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def enter(self, directory_name: str) -> list[Resource]:
        """Descend into a child directory of the current path."""
        if not directory_name or PATH_SEPARATOR in directory_name:
            raise InvalidNameError(directory_name)
        return self.go_to((*self._current, directory_name))

    def go_to(self, path: str | ResourcePath) -> list[Resource]:
        """Jump to ``path`` and fetch its listing.

        If the fetch fails and nothing is cached for ``path``, the navigator
        stays where it was.
        """
        previous = self._current
        self._current = split_path(path)
        listing = self.refresh()
        if self.last_error is not None and self._current not in self._listings:
            logger.warning(
                "[go_to] fetch failed; staying on previous path; path:%s;previous:%s",
                join_path(self._current),
                join_path(previous),
            )
            self._current = previous
            return self.list_current()
        return listing

    def go_up(self) -> list[Resource]:
        """Move to the parent directory; no-op at the root."""
        if self.is_root:
            return self.list_current()
        return self.go_to(self._current[:-1])

    def breadcrumbs(self) -> list[Breadcrumb]:
        crumbs = [Breadcrumb(ROOT_TITLE, ())]
        for depth, name in enumerate(self._current, start=1):
            crumbs.append(Breadcrumb(name, self._current[:depth]))
        return crumbs

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def list_current(self) -> list[Resource]:
        """Return the cached listing for the current path (empty if never fetched)."""
        return list(self._listings.get(self._current, []))

    def cached_listing(self, path: ResourcePath) -> list[Resource] | None:
        listing = self._listings.get(path)
        return None if listing is None else list(listing)

    def search(self, term: str) -> list[Resource]:
        return filter_listing(self.list_current(), term)

    def refresh(self, path: ResourcePath | None = None) -> list[Resource]:
        """Re-fetch the listing of ``path`` (default: the current path).

        Only that path's cache entry is replaced; siblings and ancestors are
        left untouched.

        Returns:
            The fresh listing, or the previously cached one if the fetch failed.
        """
        target = self._current if path is None else path
        try:
            directories = self._gateway.list_directories(target)
            files = self._gateway.list_files(target)
        except ResourceError as exc:
            self._report(exc, "refresh", target)
            return list(self._listings.get(target, []))

        self.last_error = None
        listing = sort_listing([*directories, *files])
        self._listings[target] = listing
        self.tree.set_children(target, [d.name for d in directories])
        logger.info(
            "[refresh] listing fetched; path:%s;directories:%d;files:%d",
            join_path(target),
            len(directories),
            len(files),
        )
        if target == self._current:
            for listener in self._listeners:
                listener(list(listing))
        return list(listing)

    def refresh_affected(self, paths: Iterable[ResourcePath]) -> None:
        """Refresh every listed path that is current or already cached."""
        seen: set[ResourcePath] = set()
        for path in paths:
            if path in seen:
                continue
            seen.add(path)
            if path == self._current or path in self._listings:
                self.refresh(path)

    def forget(self, path: ResourcePath) -> None:
        """Drop cached listings and tree nodes for ``path`` and its descendants.

        Used after a directory is renamed, moved or deleted; the entries are
        fetched again on the next visit.
        """
        for known in [p for p in self._listings if is_descendant(p, path)]:
            del self._listings[known]
        self.tree.remove(path)
        if path and is_descendant(self._current, path):
            logger.info(
                "[forget] current path no longer exists; moving to parent; path:%s",
                join_path(self._current),
            )
            self._current = path[:-1]

    def load_tree(self) -> ResourceTree:
        """Fetch the folder tree and merge it into the cache."""
        try:
            nodes = self._gateway.directory_tree()
        except ResourceError as exc:
            self._report(exc, "load_tree", ())
            return self.tree
        self.tree.load(nodes)
        logger.info("[load_tree] folder tree loaded; known_paths:%d", len(self.tree))
        return self.tree

    def _report(self, exc: ResourceError, operation: str, path: ResourcePath) -> None:
        self.last_error = exc
        logger.warning(
            "[%s] fetch failed; keeping cached listing; path:%s;error:%s",
            operation,
            join_path(path),
            exc,
        )
        if self._on_error is not None:
            self._on_error(exc)
