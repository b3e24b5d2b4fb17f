"""Structural path queries over node trees.

A small XPath-like language: ``//Kind`` selects nodes of ``Kind`` at any
depth, ``/Kind`` selects children (or the root for the first step), ``*``
matches any kind. Steps may carry predicates ``[@Image='text']`` and
``[n]`` (1-based position among the step's matches for one context node).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .types import Node

_STEP_RE = re.compile(r"(?P<axis>//?)(?P<name>\*|[A-Za-z_][A-Za-z0-9_]*)(?P<predicates>(?:\[[^\]]*\])*)")
_PREDICATE_RE = re.compile(r"\[([^\]]*)\]")
_IMAGE_RE = re.compile(r"""^\s*@Image\s*=\s*(?:'(?P<single>[^']*)'|"(?P<double>[^"]*)")\s*$""")
_POSITION_RE = re.compile(r"^\s*(?P<position>\d+)\s*$")


class QuerySyntaxError(ValueError):
    """Raised when a query expression cannot be parsed."""


@dataclass(frozen=True)
class Step:
    descendant: bool
    kind: str
    image: Optional[str] = None
    position: Optional[int] = None

    def matches(self, node: Node) -> bool:
        if self.kind != "*" and node.kind != self.kind:
            return False
        return self.image is None or node.image == self.image


@dataclass(frozen=True)
class PathQuery:
    """A compiled query expression."""

    expression: str
    steps: Tuple[Step, ...] = ()

    def evaluate(self, root: Node) -> List[Node]:
        context: List[Optional[Node]] = [None]
        for step in self.steps:
            selected: Dict[Node, None] = {}
            for ctx in context:
                if ctx is None:
                    candidates = list(root.walk()) if step.descendant else [root]
                elif step.descendant:
                    candidates = list(ctx.walk())[1:]
                else:
                    candidates = ctx.children
                matches = [node for node in candidates if step.matches(node)]
                if step.position is not None:
                    matches = matches[step.position - 1:step.position]
                for node in matches:
                    selected.setdefault(node, None)
            context = list(selected)
        return [node for node in context if node is not None]


def _parse_step(match: "re.Match[str]", expression: str) -> Step:
    image: Optional[str] = None
    position: Optional[int] = None
    for raw in _PREDICATE_RE.findall(match.group("predicates")):
        image_match = _IMAGE_RE.match(raw)
        position_match = _POSITION_RE.match(raw)
        if image_match:
            image = image_match.group("single")
            if image is None:
                image = image_match.group("double")
        elif position_match:
            position = int(position_match.group("position"))
            if position < 1:
                raise QuerySyntaxError(f"Positions are 1-based in {expression!r}")
        else:
            raise QuerySyntaxError(f"Unsupported predicate [{raw}] in {expression!r}")
    return Step(
        descendant=match.group("axis") == "//",
        kind=match.group("name"),
        image=image,
        position=position,
    )


def compile_query(expression: str) -> PathQuery:
    """Parse *expression* into a :class:`PathQuery`."""

    text = expression.strip()
    if not text:
        raise QuerySyntaxError("Empty query expression.")
    if not text.startswith("/"):
        text = "//" + text
    steps: List[Step] = []
    pos = 0
    while pos < len(text):
        match = _STEP_RE.match(text, pos)
        if match is None:
            raise QuerySyntaxError(f"Cannot parse {expression!r} at offset {pos}")
        steps.append(_parse_step(match, expression))
        pos = match.end()
    return PathQuery(expression=expression, steps=tuple(steps))


__all__ = ["PathQuery", "QuerySyntaxError", "Step", "compile_query"]
