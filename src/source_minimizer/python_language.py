"""Python front-end built on the standard :mod:`ast` module."""

from __future__ import annotations

import ast
import weakref
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from . import language, query
from .types import Node, Tree

# f-strings are kept atomic: older interpreters report bogus positions for their parts
_ATOMIC = tuple(
    getattr(ast, name) for name in ("JoinedStr", "TemplateStr") if hasattr(ast, name)
)


def _has_position(node: ast.AST) -> bool:
    return getattr(node, "lineno", None) is not None and getattr(node, "end_lineno", None) is not None


def _image(node: ast.AST) -> Optional[str]:
    if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
        return node.name
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.arg):
        return node.arg
    if isinstance(node, ast.Attribute):
        return node.attr
    if isinstance(node, ast.keyword):
        return node.arg
    if isinstance(node, ast.alias):
        return node.asname or node.name
    if isinstance(node, ast.ImportFrom):
        return node.module
    return None


@dataclass
class _Relations:
    dependents: Dict[int, Set[int]] = field(default_factory=dict)
    dependencies: Dict[int, Set[int]] = field(default_factory=dict)


class _TreeBuilder:
    def __init__(self, source_name: str, text: str) -> None:
        self.lines = text.split("\n")
        self.tree = Tree(source_name)
        self.ast_nodes: List[ast.AST] = []

    def _column(self, lineno: int, byte_offset: int) -> int:
        if lineno - 1 >= len(self.lines):
            return byte_offset
        encoded = self.lines[lineno - 1].encode("utf-8")
        return len(encoded[:byte_offset].decode("utf-8", errors="ignore"))

    def _span(self, node: ast.AST) -> Tuple[int, int, int, int]:
        return (
            node.lineno,
            self._column(node.lineno, node.col_offset) + 1,
            node.end_lineno,
            self._column(node.end_lineno, node.end_col_offset),
        )

    def build(self, module: ast.Module) -> Node:
        root = self.tree.add("Module", (1, 1, 1, 1))
        self.ast_nodes.append(module)
        self._visit(module, root)
        self._normalize()
        return root

    def _visit(self, node: ast.AST, parent: Node) -> None:
        if isinstance(node, _ATOMIC):
            return
        for child in ast.iter_child_nodes(node):
            if _has_position(child):
                handle = self.tree.add(type(child).__name__, self._span(child), parent, _image(child))
                self.ast_nodes.append(child)
                self._visit(child, handle)
            else:
                # position-less helpers (arguments, comprehension, ...) are flattened
                self._visit(child, parent)

    def _normalize(self) -> None:
        spans = self.tree.spans
        # children always have larger indices than their parents
        for index in range(len(spans) - 1, -1, -1):
            children = self.tree.children[index]
            if not children:
                continue
            children.sort(key=lambda child: spans[child][:2])
            begin = min(spans[child][:2] for child in children)
            end = max(spans[child][2:] for child in children)
            if index == 0:
                spans[0] = begin + end
            else:
                own = spans[index]
                spans[index] = min(own[:2], begin) + max(own[2:], end)


def _enclosing_statement(tree: Tree, nodes: List[ast.AST], index: int) -> int:
    current = index
    while current >= 0:
        if isinstance(nodes[current], ast.stmt):
            return current
        current = tree.parents[current]
    return index


def _is_ancestor(tree: Tree, ancestor: int, index: int) -> bool:
    current = tree.parents[index]
    while current >= 0:
        if current == ancestor:
            return True
        current = tree.parents[current]
    return False


def _collect_relations(tree: Tree, nodes: List[ast.AST]) -> _Relations:
    definitions: Dict[str, List[int]] = {}
    parameters: Dict[str, List[int]] = {}
    uses: Dict[str, List[int]] = {}

    for index, node in enumerate(nodes):
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            definitions.setdefault(node.name, []).append(index)
        elif isinstance(node, (ast.Import, ast.ImportFrom)):
            for alias in node.names:
                name = alias.asname or alias.name.split(".")[0]
                definitions.setdefault(name, []).append(index)
        elif isinstance(node, ast.arg):
            parameters.setdefault(node.arg, []).append(index)
        elif isinstance(node, ast.Name):
            statement = _enclosing_statement(tree, nodes, index)
            if isinstance(node.ctx, ast.Load):
                uses.setdefault(node.id, []).append(statement)
            else:
                definitions.setdefault(node.id, []).append(statement)

    relations = _Relations()

    def link(definition: int, user: int) -> None:
        if user == definition or _is_ancestor(tree, user, definition) or _is_ancestor(tree, definition, user):
            return
        relations.dependents.setdefault(definition, set()).add(user)
        relations.dependencies.setdefault(user, set()).add(definition)

    for name, defined_at in definitions.items():
        for definition in defined_at:
            for user in uses.get(name, []):
                link(definition, user)
    for name, defined_at in parameters.items():
        for definition in defined_at:
            scope = tree.parents[definition]
            for user in uses.get(name, []):
                if _is_ancestor(tree, scope, user):
                    link(definition, user)
    return relations


class PythonNodeInformation:
    """Name-based definition/use relation between Python statements.

    Removing a definition (function, class, import, assignment or parameter)
    requires removing every statement that loads the defined name.
    """

    def __init__(self, owner: "PythonLanguage") -> None:
        self._owner = owner

    def _relations(self, node: Node) -> _Relations:
        return self._owner.relations_for(node.tree)

    def direct_dependencies(self, node: Node) -> Set[Node]:
        indices = self._relations(node).dependencies.get(node.index, set())
        return {Node(node.tree, index) for index in indices}

    def directly_depending_nodes(self, node: Node) -> Set[Node]:
        indices = self._relations(node).dependents.get(node.index, set())
        return {Node(node.tree, index) for index in indices}


class PythonLanguage:
    name = "python"

    def __init__(self) -> None:
        self._relations: "weakref.WeakKeyDictionary[Tree, _Relations]" = weakref.WeakKeyDictionary()
        self._pending: "weakref.WeakKeyDictionary[Tree, List[ast.AST]]" = weakref.WeakKeyDictionary()
        self._information = PythonNodeInformation(self)

    def parse(self, source_name: str, text: str) -> Node:
        try:
            module = ast.parse(text, filename=source_name)
        except (SyntaxError, ValueError) as exc:
            raise language.ParseError(f"{source_name}: {exc}") from exc
        builder = _TreeBuilder(source_name, text)
        root = builder.build(module)
        # relations are built on first use, parseability checks never need them
        self._pending[root.tree] = builder.ast_nodes
        return root

    def relations_for(self, tree: Tree) -> _Relations:
        relations = self._relations.get(tree)
        if relations is None:
            nodes = self._pending.pop(tree, None)
            relations = _collect_relations(tree, nodes) if nodes is not None else _Relations()
            self._relations[tree] = relations
        return relations

    def node_information(self) -> PythonNodeInformation:
        return self._information

    def compile_query(self, expression: str) -> query.PathQuery:
        return query.compile_query(expression)

    def is_removable_hole(self, text: str) -> bool:
        """Only blank lines and comments may be trimmed; keywords such as ``else:`` may not."""

        for line in text.split("\n"):
            stripped = line.strip()
            if stripped and not stripped.startswith("#"):
                return False
        return True


language.register(PythonLanguage.name, PythonLanguage)


__all__ = ["PythonLanguage", "PythonNodeInformation"]
