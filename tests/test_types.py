import pytest

from source_minimizer import types


def _make_tree() -> types.Tree:
    tree = types.Tree("sample.py")
    root = tree.add("Module", (1, 1, 3, 5))
    first = tree.add("Assign", (1, 1, 1, 5), root)
    tree.add("Name", (1, 1, 1, 1), first, image="x")
    tree.add("Constant", (1, 5, 1, 5), first)
    tree.add("Expr", (3, 1, 3, 5), root)
    return tree


def test_walk_yields_document_order():
    tree = _make_tree()
    kinds = [node.kind for node in tree.root.walk()]
    assert kinds == ["Module", "Assign", "Name", "Constant", "Expr"]


def test_node_navigation():
    tree = _make_tree()
    assign, expr = tree.root.children
    name, constant = assign.children
    assert name.image == "x"
    assert name.parent == assign
    assert tree.root.parent is None
    assert constant.child_index == 1
    assert expr.child_index == 1
    assert tree.root.child_index == 0
    assert (expr.begin_line, expr.begin_column, expr.end_line, expr.end_column) == (3, 1, 3, 5)
    assert len(tree) == 5


def test_nodes_compare_by_tree_and_index():
    tree = _make_tree()
    other = _make_tree()
    assert types.Node(tree, 1) == tree.root.children[0]
    assert types.Node(tree, 1) != types.Node(other, 1)
    assert len({types.Node(tree, 1), types.Node(tree, 1), types.Node(other, 1)}) == 2


def test_add_rejects_parent_from_another_tree():
    tree = _make_tree()
    other = _make_tree()
    with pytest.raises(ValueError):
        tree.add("Name", (1, 1, 1, 1), other.root)


def test_is_valid_requires_begin_before_end():
    tree = types.Tree()
    root = tree.add("Module", (1, 1, 2, 1))
    assert root.is_valid()
    assert tree.add("Single", (1, 1, 1, 1), root).is_valid() is False
    assert tree.add("Inverted", (2, 3, 1, 1), root).is_valid() is False
    assert tree.add("SameLine", (2, 1, 2, 4), root).is_valid()


def test_explain_node_lists_path_from_root():
    tree = _make_tree()
    name = tree.root.children[0].children[0]
    assert types.explain_node(name) == "1:1: Module[1] / Assign[1] / Name[1:x]"


def test_delete_operations_sort_by_position():
    ops = [types.DeleteOperation(2, 2, 0, 1), types.DeleteOperation(0, 1, 4, 0)]
    assert sorted(ops)[0] == types.DeleteOperation(0, 1, 4, 0)
