"""Core datatypes for source-minimizer."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple


class Tree:
    """Arena holding every node of one parsed file.

    Nodes are addressed by stable indices; parent and child relations are
    stored as index lists. Positions are 1-based, end columns inclusive.
    """

    def __init__(self, source_name: str = "") -> None:
        self.source_name = source_name
        self.kinds: List[str] = []
        self.images: List[Optional[str]] = []
        self.spans: List[Tuple[int, int, int, int]] = []
        self.parents: List[int] = []
        self.children: List[List[int]] = []

    def add(
        self,
        kind: str,
        span: Tuple[int, int, int, int],
        parent: Optional["Node"] = None,
        image: Optional[str] = None,
    ) -> "Node":
        """Append a node and link it as the last child of *parent*."""

        index = len(self.kinds)
        self.kinds.append(kind)
        self.images.append(image)
        self.spans.append(span)
        self.children.append([])
        if parent is None:
            self.parents.append(-1)
        else:
            if parent.tree is not self:
                raise ValueError("Parent node belongs to a different tree.")
            self.parents.append(parent.index)
            self.children[parent.index].append(index)
        return Node(self, index)

    @property
    def root(self) -> "Node":
        return Node(self, 0)

    def __len__(self) -> int:
        return len(self.kinds)

    def __repr__(self) -> str:
        return f"<Tree {self.source_name!r} nodes={len(self)}>"


@dataclass(frozen=True)
class Node:
    """Handle to a node stored in a :class:`Tree` arena."""

    tree: Tree = field(repr=False)
    index: int

    @property
    def kind(self) -> str:
        return self.tree.kinds[self.index]

    @property
    def image(self) -> Optional[str]:
        return self.tree.images[self.index]

    @property
    def begin_line(self) -> int:
        return self.tree.spans[self.index][0]

    @property
    def begin_column(self) -> int:
        return self.tree.spans[self.index][1]

    @property
    def end_line(self) -> int:
        return self.tree.spans[self.index][2]

    @property
    def end_column(self) -> int:
        return self.tree.spans[self.index][3]

    @property
    def parent(self) -> Optional["Node"]:
        parent = self.tree.parents[self.index]
        return None if parent < 0 else Node(self.tree, parent)

    @property
    def children(self) -> List["Node"]:
        return [Node(self.tree, child) for child in self.tree.children[self.index]]

    @property
    def child_index(self) -> int:
        parent = self.tree.parents[self.index]
        if parent < 0:
            return 0
        return self.tree.children[parent].index(self.index)

    def is_valid(self) -> bool:
        """Check that the begin position strictly precedes the end position."""

        return self.begin_line < self.end_line or (
            self.begin_line == self.end_line and self.begin_column < self.end_column
        )

    def walk(self) -> Iterator["Node"]:
        """Yield this node and all its descendants in document order."""

        stack = [self.index]
        while stack:
            index = stack.pop()
            yield Node(self.tree, index)
            stack.extend(reversed(self.tree.children[index]))


@dataclass(frozen=True, order=True)
class DeleteOperation:
    """Half-open region of a document to erase (0-based, end column exclusive)."""

    begin_line: int
    end_line: int
    begin_column: int
    end_column: int


class Outcome(enum.Enum):
    """Result of a reduction step returned up the call chain."""

    PROGRESSED = "progressed"
    NO_PROGRESS = "no-progress"
    FORCED_STOP = "forced-stop"


def explain_node(node: Node) -> str:
    """Describe *node* as ``line:column: Kind[i:image] / ...`` from the root down."""

    descriptions: List[str] = []
    current: Optional[Node] = node
    while current is not None:
        suffix = f":{current.image}" if current.image is not None else ""
        descriptions.append(f"{current.kind}[{current.child_index + 1}{suffix}]")
        current = current.parent
    path = " / ".join(reversed(descriptions))
    return f"{node.begin_line}:{node.begin_column}: {path}"


__all__ = ["DeleteOperation", "Node", "Outcome", "Tree", "explain_node"]
