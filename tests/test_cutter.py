import itertools

from source_minimizer import cutter, document, python_language, types
from source_minimizer.types import DeleteOperation


def _parse(text: str) -> types.Node:
    return python_language.PythonLanguage().parse("sample.py", text)


def _kinds(root: types.Node):
    return [node.kind for node in root.walk()]


def _trim(text: str):
    language = python_language.PythonLanguage()
    return cutter.calculate_holes_trimming(
        text.split("\n"), language.parse("sample.py", text), removable=language.is_removable_hole
    )


def test_tree_cutting_emits_region_of_marked_node():
    root = _parse("x = 1\ny = 2\n")
    second = root.children[1]
    ops = cutter.calculate_tree_cutting(root, {second})
    assert ops == [DeleteOperation(1, 1, 0, 5)]
    assert document.delete_regions("x = 1\ny = 2\n", ops) == "x = 1\n\n"


def test_tree_cutting_covers_marked_descendants_once():
    root = _parse("value = compute(1, 2)\n")
    assign = root.children[0]
    call = assign.children[1]
    ops = cutter.calculate_tree_cutting(root, {assign, call, call.children[0]})
    assert len(ops) == 1


def test_tree_cutting_skips_invalid_nodes_unless_disabled():
    tree = types.Tree()
    root = tree.add("Root", (1, 1, 1, 10))
    broken = tree.add("Broken", (1, 5, 1, 2), root)
    assert cutter.calculate_tree_cutting(root, {broken}) == []
    assert cutter.calculate_tree_cutting(root, {broken}, validate_nodes=False) == [DeleteOperation(0, 0, 4, 2)]


def test_cut_text_reparses_to_tree_without_marked_nodes():
    text = "import os\n\n\ndef f(a):\n    return a + 1\n\n\nprint(f(2), os.sep)\n"
    root = _parse(text)
    function = root.children[1]
    expected = [node.kind for node in root.walk() if node != function and not _inside(node, function)]
    cut = document.delete_regions(text, cutter.calculate_tree_cutting(root, {function}))
    assert _kinds(_parse(cut)) == expected


def _inside(node: types.Node, ancestor: types.Node) -> bool:
    current = node.parent
    while current is not None:
        if current == ancestor:
            return True
        current = current.parent
    return False


def test_tree_cutting_never_produces_overlapping_regions():
    text = "def f(a, b):\n    return [a, b, a * b]\n\nx = f(1, 2)\n"
    root = _parse(text)
    nodes = list(root.walk())
    for pair in itertools.combinations(nodes, 2):
        ops = cutter.calculate_tree_cutting(root, set(pair))
        document.delete_regions(text, ops)


def test_holes_trimming_removes_comments_between_statements():
    text = "x = 1\n\n# comment\n\n\ny = 2\n"
    ops = _trim(text)
    assert ops == [DeleteOperation(1, 4, 0, 0)]
    assert document.delete_regions(text, ops) == "x = 1\n\ny = 2\n"


def test_holes_trimming_is_idempotent():
    text = "import os\n\n# first\n\n\ndef f():\n    x = 1\n\n    # second\n    return x\n"
    once = document.delete_regions(text, _trim(text))
    assert _kinds(_parse(once)) == _kinds(_parse(text))
    assert _trim(once) == []


def test_holes_trimming_keeps_block_keywords():
    text = "if a:\n    x = 1\n\nelse:\n    y = 2\n"
    assert _trim(text) == []


def test_holes_trimming_keeps_text_on_previous_line():
    text = "x = [1,\n  2]  # tail\n\n\ny = 2\n"
    ops = _trim(text)
    trimmed = document.delete_regions(text, ops)
    assert "# tail" in trimmed
    assert _kinds(_parse(trimmed)) == _kinds(_parse(text))


def test_strip_blank_lines():
    assert cutter.strip_blank_lines("a\n  \n\tb\n\n") == "a\n\tb\n"
