"""Language front-ends consumed by the minimizer."""

from __future__ import annotations

from typing import Callable, Dict, List, Protocol, Set

from .types import Node


class ParseError(Exception):
    """Raised by a parser when the input is not syntactically valid."""


class NodeInformationProvider(Protocol):
    def direct_dependencies(self, node: Node) -> Set[Node]:  # pragma: no cover - protocol
        """Nodes that *node* needs to stay valid."""
        ...

    def directly_depending_nodes(self, node: Node) -> Set[Node]:  # pragma: no cover - protocol
        """Nodes that have to be removed whenever *node* is removed."""
        ...


class Query(Protocol):
    def evaluate(self, root: Node) -> List[Node]:  # pragma: no cover - protocol
        ...


class Language(Protocol):
    name: str

    def parse(self, source_name: str, text: str) -> Node:  # pragma: no cover - protocol
        ...

    def node_information(self) -> NodeInformationProvider:  # pragma: no cover - protocol
        ...

    def compile_query(self, expression: str) -> Query:  # pragma: no cover - protocol
        ...

    def is_removable_hole(self, text: str) -> bool:  # pragma: no cover - protocol
        ...


_LANGUAGES: Dict[str, Callable[[], Language]] = {}


def register(name: str, factory: Callable[[], Language]) -> None:
    """Register a language factory under a case-insensitive *name*."""

    _LANGUAGES[name.lower()] = factory


def get_language(name: str) -> Language:
    """Instantiate the language registered as *name*."""

    from . import config as config_module, python_language  # noqa: F401  (registers built-ins)

    factory = _LANGUAGES.get(name.lower())
    if factory is None:
        raise config_module.ConfigurationError(
            f"Unknown language {name!r}; supported: {', '.join(supported_languages())}"
        )
    return factory()


def supported_languages() -> List[str]:
    return sorted(_LANGUAGES)


__all__ = [
    "Language",
    "NodeInformationProvider",
    "ParseError",
    "Query",
    "get_language",
    "register",
    "supported_languages",
]
