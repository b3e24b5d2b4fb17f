"""Conversion of AST node subsets into text deletions.

For an original source ``TEXT`` and a subset ``NODES`` of its AST nodes the
expected property is ``parse(cut(TEXT, NODES)) == drop(parse(TEXT), NODES)``:
re-parsing the cut text yields the original tree with every marked node
removed together with its descendants. Nodes that merely became empty need
not be preserved, and formatting is not retained.
"""

from __future__ import annotations

from typing import Callable, Collection, List, Optional, Sequence, Tuple

from .types import DeleteOperation, Node

WHITESPACE_CHARS = " \t"

Position = Tuple[int, int]


def _always_removable(_text: str) -> bool:
    return True


def calculate_tree_cutting(
    root: Node,
    deleted_nodes: Collection[Node],
    *,
    validate_nodes: bool = True,
) -> List[DeleteOperation]:
    """Return the delete operations removing *deleted_nodes* from the text of *root*.

    Marked descendants of a marked node are covered by the ancestor's region
    and are not emitted separately.
    """

    result: List[DeleteOperation] = []
    marked = set(deleted_nodes)
    stack = [root]
    while stack:
        node = stack.pop()
        if node in marked and (not validate_nodes or node.is_valid()):
            result.append(
                DeleteOperation(
                    node.begin_line - 1,
                    node.end_line - 1,
                    node.begin_column - 1,
                    node.end_column,
                )
            )
        else:
            stack.extend(reversed(node.children))
    return result


def _hole_end(lines: Sequence[str], begin_line: int, begin_column: int) -> Position:
    # keep the indentation to the left of the node
    line = lines[begin_line]
    end_line = begin_line
    end_column = begin_column - 1
    while end_column >= 0 and line[end_column] in WHITESPACE_CHARS:
        end_column -= 1
    if end_column == -1 and end_line > 0:
        end_line -= 1
        end_column = len(lines[end_line])
    else:
        end_column += 1
    return end_line, end_column


def _hole_text(lines: Sequence[str], start: Position, end: Position) -> str:
    if start[0] == end[0]:
        return lines[start[0]][start[1]:end[1]]
    parts = [lines[start[0]][start[1]:]]
    parts.extend(lines[start[0] + 1:end[0]])
    parts.append(lines[end[0]][:end[1]])
    return "\n".join(parts)


def calculate_holes_trimming(
    lines: Sequence[str],
    root: Node,
    *,
    validate_nodes: bool = True,
    removable: Optional[Callable[[str], bool]] = None,
) -> List[DeleteOperation]:
    """Conservatively trim text between AST nodes, such as block comments.

    *lines* is the text that *root* was parsed from, split on newlines.
    *removable* may veto a hole by looking at its text.
    """

    result: List[DeleteOperation] = []
    _trim_holes(result, lines, root, (-1, 0), False, validate_nodes, removable or _always_removable)
    return result


def _trim_holes(
    result: List[DeleteOperation],
    lines: Sequence[str],
    node: Node,
    prev_end: Position,
    was_just_trimmed: bool,
    validate_nodes: bool,
    removable: Callable[[str], bool],
) -> None:
    begin = (node.begin_line - 1, node.begin_column - 1)
    prev_line, prev_column = prev_end
    cur_end = prev_end
    trimmed_here = False

    if (
        not was_just_trimmed
        and prev_line < begin[0] - 1
        and (not validate_nodes or node.is_valid())
    ):
        end = _hole_end(lines, *begin)
        prev_text = "" if prev_line == -1 else lines[prev_line]
        tail_is_blank = all(ch in WHITESPACE_CHARS for ch in prev_text[prev_column + 1:])
        start = (prev_line + 1, 0)
        if tail_is_blank and removable(_hole_text(lines, start, end)):
            if start < end:
                result.append(DeleteOperation(start[0], end[0], start[1], end[1]))
            cur_end = end
            trimmed_here = True

    # the parent's own text before its first child is never a hole
    cur_end = max(cur_end, begin)
    for index, child in enumerate(node.children):
        _trim_holes(
            result,
            lines,
            child,
            cur_end,
            index == 0 and (trimmed_here or was_just_trimmed),
            validate_nodes,
            removable,
        )
        cur_end = max(cur_end, (child.end_line - 1, child.end_column - 1))


def strip_blank_lines(text: str) -> str:
    """Drop every line that contains only whitespace."""

    kept = [line for line in text.split("\n") if line.strip(WHITESPACE_CHARS)]
    return "".join(line + "\n" for line in kept)


__all__ = [
    "WHITESPACE_CHARS",
    "calculate_holes_trimming",
    "calculate_tree_cutting",
    "strip_blank_lines",
]
