"""Unit tests for navigation/tree.py — ResourceTree."""

from remote_files.gateway.models import TreeNode
from remote_files.navigation.tree import ResourceTree


class TestAdd:
    def test_adds_every_ancestor(self) -> None:
        tree = ResourceTree()

        tree.add(("Research", "2024", "Q1"))

        assert ("Research",) in tree
        assert ("Research", "2024") in tree
        assert tree.children(()) == ["Research"]
        assert tree.children(("Research",)) == ["2024"]

    def test_root_is_always_known(self) -> None:
        tree = ResourceTree()
        assert () in tree
        assert len(tree) == 1


class TestSetChildren:
    def test_replaces_children_and_drops_vanished_subtrees(self) -> None:
        tree = ResourceTree()
        tree.add(("Research", "2023", "old"))
        tree.add(("Research", "2024"))

        tree.set_children(("Research",), ["2024", "2025"])

        assert tree.children(("Research",)) == ["2024", "2025"]
        assert ("Research", "2023") not in tree
        assert ("Research", "2023", "old") not in tree
        assert ("Research", "2025") in tree


class TestRemove:
    def test_removes_descendants_and_unlinks_from_parent(self) -> None:
        tree = ResourceTree()
        tree.add(("a", "b", "c"))
        tree.add(("ab",))

        tree.remove(("a",))

        assert list(tree) == [(), ("ab",)]
        assert tree.children(()) == ["ab"]

    def test_root_cannot_be_removed(self) -> None:
        tree = ResourceTree()
        tree.add(("a",))

        tree.remove(())

        assert ("a",) in tree


class TestLoad:
    def test_merges_nested_nodes(self) -> None:
        tree = ResourceTree()
        nodes = [
            TreeNode(
                "Research",
                "Research",
                [TreeNode("2024", "Research/2024", [])],
            ),
            TreeNode("Training", "", []),
        ]

        tree.load(nodes)

        assert ("Research", "2024") in tree
        assert ("Training",) in tree

    def test_clear_resets_to_root(self) -> None:
        tree = ResourceTree()
        tree.add(("a",))

        tree.clear()

        assert list(tree) == [()]
