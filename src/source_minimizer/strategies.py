"""Strategies deciding which AST nodes to try removing next."""

from __future__ import annotations

from typing import Callable, Collection, Dict, FrozenSet, Iterator, List, Protocol, Set, TextIO, Tuple

from . import config as config_module, language as language_module
from .types import Node, Outcome


class MinimizerOperations(Protocol):
    """Operations a strategy may request from the minimizer."""

    def node_information_provider(self) -> language_module.NodeInformationProvider:  # pragma: no cover - protocol
        ...

    def try_cleanup(self) -> Outcome:  # pragma: no cover - protocol
        ...

    def try_remove_nodes(self, nodes_to_remove: Collection[Node]) -> Outcome:  # pragma: no cover - protocol
        ...

    def try_remove_multiple_variants(self, variants: Collection[Collection[Node]]) -> Outcome:  # pragma: no cover - protocol
        ...

    def force_remove_nodes_and_exit(self, nodes_to_remove: Collection[Node]) -> Outcome:  # pragma: no cover - protocol
        ...


class Strategy:
    """Base class for minimization strategies."""

    def initialize(self, ops: MinimizerOperations) -> None:
        """Called once before the minimization starts."""

        self.ops = ops

    def perform_single_pass(self, roots: List[Node]) -> Outcome:
        raise NotImplementedError

    def statistics(self) -> Dict[str, int]:
        return {}

    def print_statistics(self, stream: TextIO) -> None:
        pass


class GreedyStrategy(Strategy):
    """Cuts off AST subtrees together with their depending nodes until no step succeeds.

    Each pass resumes scanning near the position of the last successful
    removal; if that finds nothing, the scan is restarted once from the
    beginning of the first tree.
    """

    def __init__(self) -> None:
        self.directly_depending_nodes: Dict[Node, Set[Node]] = {}
        self.transitively_depending_nodes: Dict[Node, FrozenSet[Node]] = {}
        self.previous_position = 0
        self.position_countdown = 0
        self.restart_count = 0

    def _fetch_direct_dependents(self, root: Node) -> None:
        provider = self.ops.node_information_provider()
        for node in root.walk():
            self.directly_depending_nodes.setdefault(node, set()).update(
                provider.directly_depending_nodes(node)
            )
            for dependency in provider.direct_dependencies(node):
                self.directly_depending_nodes.setdefault(dependency, set()).add(node)

    def transitive_closure(self, node: Node) -> FrozenSet[Node]:
        """Return *node* with everything that has to be removed together with it.

        Memoized depth-first search. A node being visited is marked with an
        empty set, so a dependency cycle ends at the node already entered.
        """

        known = self.transitively_depending_nodes
        if node in known:
            return known[node]
        known[node] = frozenset()
        partial: Dict[Node, Set[Node]] = {node: set()}
        stack: List[Tuple[Node, Iterator[Node]]] = [
            (node, iter(self.directly_depending_nodes.get(node, ())))
        ]
        while stack:
            current, pending = stack[-1]
            descended = False
            for depending in pending:
                if depending not in known:
                    known[depending] = frozenset()
                    partial[depending] = set()
                    stack.append((depending, iter(self.directly_depending_nodes.get(depending, ()))))
                    descended = True
                    break
                partial[current].update(known[depending])
            if descended:
                continue
            stack.pop()
            result = partial.pop(current)
            result.add(current)
            known[current] = frozenset(result)
            if stack:
                partial[stack[-1][0]].update(known[current])
        return known[node]

    def _collect_nodes_to_remove(self, result: Set[Node], subtree: Node) -> None:
        for node in subtree.walk():
            result.update(self.transitive_closure(node))

    def _try_remove_at(self, node: Node) -> Outcome:
        variants: List[Set[Node]] = []
        if node.parent is not None:
            # the root itself is never dropped
            with_this: Set[Node] = set()
            self._collect_nodes_to_remove(with_this, node)
            variants.append(with_this)

        children = node.children
        half = len(children) // 2
        first_half: Set[Node] = set()
        second_half: Set[Node] = set()
        for index, child in enumerate(children):
            self._collect_nodes_to_remove(first_half if index < half else second_half, child)
        variants.append(first_half)
        variants.append(second_half)
        return self.ops.try_remove_multiple_variants(variants)

    def _find_node_to_remove(self, root: Node) -> Outcome:
        for node in root.walk():
            self.previous_position += 1
            self.position_countdown -= 1
            # "<=" restarts right at the node following the last success
            if self.position_countdown <= 0:
                outcome = self._try_remove_at(node)
                if outcome is not Outcome.NO_PROGRESS:
                    return outcome
        return Outcome.NO_PROGRESS

    def perform_single_pass(self, roots: List[Node]) -> Outcome:
        self.position_countdown = self.previous_position
        self.previous_position = 0
        self.directly_depending_nodes.clear()
        self.transitively_depending_nodes.clear()
        for root in roots:
            self._fetch_direct_dependents(root)
        for root in roots:
            outcome = self._find_node_to_remove(root)
            if outcome is not Outcome.NO_PROGRESS:
                return outcome

        # the fast restart found nothing, scan everything from the start
        self.previous_position = 0
        self.position_countdown = 0
        self.restart_count += 1
        for root in roots:
            outcome = self._find_node_to_remove(root)
            if outcome is not Outcome.NO_PROGRESS:
                return outcome
        return Outcome.NO_PROGRESS

    def statistics(self) -> Dict[str, int]:
        return {"restart_count": self.restart_count}

    def print_statistics(self, stream: TextIO) -> None:
        print(f"Greedy strategy restart count: {self.restart_count}", file=stream)


class QueryStrategy(Strategy):
    """Drops every node matched by a structural query, then stops the run."""

    def __init__(self, query: language_module.Query) -> None:
        self.query = query

    def perform_single_pass(self, roots: List[Node]) -> Outcome:
        nodes_to_remove: List[Node] = []
        for root in roots:
            nodes_to_remove.extend(self.query.evaluate(root))
        return self.ops.force_remove_nodes_and_exit(nodes_to_remove)


def _create_query(cfg: config_module.StrategyConfig, language: language_module.Language) -> Strategy:
    if not cfg.query:
        raise config_module.ConfigurationError("The query strategy requires a query expression.")
    try:
        return QueryStrategy(language.compile_query(cfg.query))
    except ValueError as exc:
        raise config_module.ConfigurationError(f"Invalid query expression: {exc}") from exc


STRATEGIES: Dict[str, Callable[[config_module.StrategyConfig, language_module.Language], Strategy]] = {
    "greedy": lambda cfg, language: GreedyStrategy(),
    "query": _create_query,
}


def create_strategy(cfg: config_module.StrategyConfig, language: language_module.Language) -> Strategy:
    factory = STRATEGIES.get(cfg.name)
    if factory is None:
        raise config_module.ConfigurationError(
            f"Unknown strategy {cfg.name!r}; supported: {', '.join(sorted(STRATEGIES))}"
        )
    return factory(cfg, language)


__all__ = [
    "GreedyStrategy",
    "MinimizerOperations",
    "QueryStrategy",
    "STRATEGIES",
    "Strategy",
    "create_strategy",
]
