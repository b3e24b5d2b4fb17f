import pytest

from source_minimizer import python_language, query

SOURCE = """\
def a():
    return 1


def b():
    return 2


class C:
    def b(self):
        return 3
"""


@pytest.fixture()
def root():
    return python_language.PythonLanguage().parse("sample.py", SOURCE)


def test_descendant_step_selects_all_matches(root):
    result = query.compile_query("//FunctionDef").evaluate(root)
    assert [node.image for node in result] == ["a", "b", "b"]


def test_bare_expression_searches_descendants(root):
    assert query.compile_query("ClassDef").evaluate(root)[0].image == "C"


def test_image_predicate(root):
    result = query.compile_query("//FunctionDef[@Image='b']").evaluate(root)
    assert len(result) == 2
    assert {node.begin_line for node in result} == {5, 10}


def test_child_steps_from_root(root):
    result = query.compile_query("/Module/FunctionDef").evaluate(root)
    assert [node.image for node in result] == ["a", "b"]
    assert query.compile_query("/ClassDef").evaluate(root) == []


def test_position_predicate_counts_per_context(root):
    result = query.compile_query("/Module/*[2]").evaluate(root)
    assert [node.image for node in result] == ["b"]
    result = query.compile_query('//ClassDef/FunctionDef[@Image="b"][1]').evaluate(root)
    assert [node.begin_line for node in result] == [10]


def test_wildcard_matches_every_node(root):
    assert len(query.compile_query("//*").evaluate(root)) == len(root.tree)


def test_results_are_unique_and_in_document_order(root):
    result = query.compile_query("//*//Return").evaluate(root)
    lines = [node.begin_line for node in result]
    assert lines == sorted(set(lines))


@pytest.mark.parametrize("expression", ["", "   ", "//[1]", "//A[@Kind='x']", "//A[0]", "//A b"])
def test_invalid_expressions_are_rejected(expression):
    with pytest.raises(query.QuerySyntaxError):
        query.compile_query(expression)
