"""Prefix-closed cache of the directories discovered so far."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from remote_files.gateway.models import ResourcePath, TreeNode, is_descendant, split_path


class ResourceTree:
    """Known directories keyed by path, each holding its child directory names.

    The set of known paths is prefix-closed: adding a path also adds every
    ancestor, and removing a path removes every descendant. File listings
    are never stored here.
    """

    def __init__(self) -> None:
        self._children: dict[ResourcePath, list[str]] = {(): []}

    def __contains__(self, path: object) -> bool:
        return path in self._children

    def __iter__(self) -> Iterator[ResourcePath]:
        return iter(sorted(self._children))

    def __len__(self) -> int:
        return len(self._children)

    def add(self, path: ResourcePath) -> None:
        """Record ``path`` and every ancestor, linking each to its parent."""
        for depth in range(1, len(path) + 1):
            node = path[:depth]
            parent, name = node[:-1], node[-1]
            siblings = self._children.setdefault(parent, [])
            if name not in siblings:
                siblings.append(name)
                siblings.sort()
            self._children.setdefault(node, [])

    def children(self, path: ResourcePath) -> list[str]:
        """Return the known child directory names of ``path`` (empty if unknown)."""
        return list(self._children.get(path, []))

    def set_children(self, path: ResourcePath, names: Iterable[str]) -> None:
        """Replace the child directories of ``path`` with a freshly fetched set.

        Children that disappeared are removed together with their subtrees.
        """
        self.add(path)
        fresh = sorted(set(names))
        for gone in set(self._children[path]) - set(fresh):
            self.remove((*path, gone))
        for name in fresh:
            self.add((*path, name))

    def remove(self, path: ResourcePath) -> None:
        """Forget ``path`` and all of its descendants. The root is never removed."""
        if not path:
            return
        for known in [p for p in self._children if is_descendant(p, path)]:
            del self._children[known]
        siblings = self._children.get(path[:-1])
        if siblings is not None and path[-1] in siblings:
            siblings.remove(path[-1])

    def load(self, nodes: Iterable[TreeNode], parent: ResourcePath = ()) -> None:
        """Merge nodes from the directory tree endpoint beneath ``parent``."""
        for node in nodes:
            path = split_path(node.value) or (*parent, node.title)
            self.add(path)
            self.load(node.children, path)

    def clear(self) -> None:
        self._children = {(): []}
