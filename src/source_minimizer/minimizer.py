"""Orchestrator driving strategies and invariants over the scratch files."""

from __future__ import annotations

import hashlib
import shutil
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Collection, Dict, List, Optional, Set

from . import (
    config as config_module,
    document,
    invariants,
    language as language_module,
    logging,
    scratch,
    strategies,
)
from .types import Node, Outcome, explain_node

CLEANUP_PERIOD = 10


class ReductionAborted(RuntimeError):
    """Raised when the reduction cannot go on, e.g. nodes overlap when cut."""


@dataclass
class MinimizationResult:
    original_size: int
    original_node_count: int
    final_size: int
    final_node_count: int
    pass_count: int
    forced_stop: bool = False
    statistics: Dict[str, Dict[str, int]] = field(default_factory=dict)


class SourceCodeMinimizer:
    """Reduces a set of source files while an invariant keeps holding.

    The inputs are copied to their outputs first; all further edits happen
    in the output files, which always end up in the last committed state.
    """

    def __init__(
        self,
        config: config_module.Config,
        *,
        language: Optional[language_module.Language] = None,
        invariant: Optional[invariants.Invariant] = None,
        strategy: Optional[strategies.Strategy] = None,
        logger: Optional[logging.RunLogger] = None,
    ) -> None:
        self.config = config
        self.language = language or language_module.get_language(config.language)
        self.invariant = invariant or invariants.create_invariant(config.invariant)
        self.strategy = strategy or strategies.create_strategy(config.strategy, self.language)
        self.logger = logger or logging.RunLogger(config.logging.dir, stream=config.logging.stream or None)
        self.known_hashes: Set[str] = set()
        self.trial_count = 0
        self.skipped_trial_count = 0

        self.output_paths: List[Path] = []
        self.scratch_files: List[scratch.ScratchFile] = []
        for mapping in config.files:
            source = Path(mapping.input)
            target = Path(mapping.output)
            try:
                if source.resolve() != target.resolve():
                    shutil.copyfile(source, target)
            except OSError as exc:
                self.close()
                raise config_module.ConfigurationError(
                    f"Cannot copy {source} to {target}: {exc}"
                ) from exc
            self.output_paths.append(target)
            self.scratch_files.append(
                scratch.ScratchFile(
                    self.language,
                    target,
                    encoding=config.charset,
                    validate_nodes=config.validate_nodes,
                )
            )

        roots = scratch.commit_all(self.scratch_files)
        if roots is None:
            self.close()
            raise config_module.ConfigurationError("Cannot parse the original input files.")
        self.current_roots: List[Node] = roots
        self.known_hashes.add(self._hash_all_inputs())

    # Operations used by invariants

    def all_inputs_are_parseable(self) -> bool:
        return all(scratch_file.is_parseable() for scratch_file in self.scratch_files)

    def scratch_file_names(self) -> List[Path]:
        return list(self.output_paths)

    # Operations used by strategies

    def node_information_provider(self) -> language_module.NodeInformationProvider:
        return self.language.node_information()

    def _hash_all_inputs(self) -> str:
        hasher = hashlib.sha512()
        for scratch_file in self.scratch_files:
            scratch_file.hash_into(hasher)
        return hasher.hexdigest()

    def _try_commit(self) -> bool:
        """Check the invariant on the current scratch contents and commit them on success."""

        digest = self._hash_all_inputs()
        if digest in self.known_hashes:
            self.skipped_trial_count += 1
            return False
        self.known_hashes.add(digest)

        self.trial_count += 1
        satisfied = self.invariant.check_is_satisfied()
        self.logger.log_event(
            "trial.result",
            trial=self.trial_count,
            satisfied=satisfied,
            size=sum(scratch_file.size() for scratch_file in self.scratch_files),
        )
        if not satisfied:
            return False

        roots = scratch.commit_all(self.scratch_files)
        if roots is None:
            return False
        self.current_roots = roots
        self.logger.log_event("commit", size=self.total_size(), nodes=self.total_node_count())
        return True

    def try_cleanup(self, strict: bool = True) -> Outcome:
        """Trim white-space holes in every file and try to commit the result.

        A non-strict cleanup never counts as progress.
        """

        for scratch_file in self.scratch_files:
            scratch_file.write_cleaned_up_source()
        committed = self._try_commit()
        return Outcome.PROGRESSED if committed and strict else Outcome.NO_PROGRESS

    def _write_trimmed_sources(self, nodes_to_remove: Collection[Node]) -> None:
        nodes = set(nodes_to_remove)
        for scratch_file in self.scratch_files:
            current = nodes & scratch_file.all_nodes
            try:
                scratch_file.write_trimmed_source(current)
            except document.OverlappingRegionsError as exc:
                print("An error occurred while cutting off the following nodes:", file=sys.stderr)
                for node in sorted(current, key=lambda n: n.index):
                    print(f"{scratch_file.path}:{explain_node(node)}", file=sys.stderr)
                raise ReductionAborted(f"Cannot cut nodes from {scratch_file.path}: {exc}") from exc
            nodes -= current
        if nodes:
            print("WARNING: strategy tries to remove unknown nodes!", file=sys.stderr)
            self.logger.log_event("strategy.unknown_nodes", count=len(nodes))

    def try_remove_nodes(self, nodes_to_remove: Collection[Node]) -> Outcome:
        if not nodes_to_remove:
            # only strict subsets of the current state are tried
            return Outcome.NO_PROGRESS
        self._write_trimmed_sources(nodes_to_remove)
        return Outcome.PROGRESSED if self._try_commit() else Outcome.NO_PROGRESS

    def try_remove_multiple_variants(self, variants: Collection[Collection[Node]]) -> Outcome:
        for variant in variants:
            outcome = self.try_remove_nodes(variant)
            if outcome is not Outcome.NO_PROGRESS:
                return outcome
        return Outcome.NO_PROGRESS

    def force_remove_nodes_and_exit(self, nodes_to_remove: Collection[Node]) -> Outcome:
        """Cut the nodes unconditionally and end the minimization."""

        self._write_trimmed_sources(nodes_to_remove)
        roots = scratch.commit_all(self.scratch_files)
        if roots is not None:
            self.current_roots = roots
        return Outcome.FORCED_STOP

    # Statistics

    def total_size(self) -> int:
        """Size of the last committed state of all files."""

        return sum(scratch_file.committed_size() for scratch_file in self.scratch_files)

    def total_node_count(self) -> int:
        return sum(len(root.tree) for root in self.current_roots)

    def print_stats(self, when: str, original_size: int, original_node_count: int) -> None:
        total_size = self.total_size()
        total_node_count = self.total_node_count()
        pc_size = total_size * 100 // original_size if original_size else 100
        pc_nodes = total_node_count * 100 // original_node_count if original_node_count else 100
        print(
            f"{when}: size {total_size} bytes ({pc_size}%), {total_node_count} nodes ({pc_nodes}%)",
            flush=True,
        )

    def run_minimization(self) -> MinimizationResult:
        try:
            self.strategy.initialize(self)
            self.invariant.initialize(self)
            return self._run()
        except Exception:
            # outputs are left in the last committed state
            self._rollback_all()
            raise
        finally:
            self.invariant.close()
            self.close()

    def _run(self) -> MinimizationResult:
        original_size = self.total_size()
        original_node_count = self.total_node_count()
        print(f"Original file(s): {original_size} bytes, {original_node_count} nodes.", flush=True)
        self.logger.log_event(
            "minimizer.start",
            files=[str(path) for path in self.output_paths],
            invariant=self.invariant.describe(),
            size=original_size,
            nodes=original_node_count,
        )

        self.try_cleanup(strict=False)
        self.print_stats("After initial white-space cleanup", original_size, original_node_count)

        pass_number = 0
        forced_stop = False
        should_continue = True
        while should_continue:
            pass_number += 1
            perform_cleanup = pass_number % CLEANUP_PERIOD == 0
            if perform_cleanup:
                outcome = self.try_cleanup()
            else:
                outcome = self.strategy.perform_single_pass(self.current_roots)
                should_continue = outcome is Outcome.PROGRESSED
            forced_stop = outcome is Outcome.FORCED_STOP
            if forced_stop:
                should_continue = False
            self.logger.log_event(
                "pass.result",
                pass_number=pass_number,
                cleanup=perform_cleanup,
                outcome=outcome.value,
                size=self.total_size(),
            )
            label = " (white-space cleanup)" if perform_cleanup else ""
            self.print_stats(f"After pass #{pass_number}{label}", original_size, original_node_count)

        if not forced_stop:
            self.try_cleanup(strict=False)
            self.print_stats("After final white-space cleanup", original_size, original_node_count)
            for scratch_file in self.scratch_files:
                self._rollback_all()
                scratch_file.write_without_empty_lines()
                self._try_commit()
            self.print_stats("After blank line clean up", original_size, original_node_count)
            self._rollback_all()

        result = MinimizationResult(
            original_size=original_size,
            original_node_count=original_node_count,
            final_size=self.total_size(),
            final_node_count=self.total_node_count(),
            pass_count=pass_number,
            forced_stop=forced_stop,
            statistics={
                "invariant": self.invariant.statistics(),
                "strategy": self.strategy.statistics(),
                "minimizer": {"trials": self.trial_count, "skipped_trials": self.skipped_trial_count},
            },
        )
        self.invariant.print_statistics(sys.stdout)
        self.strategy.print_statistics(sys.stdout)
        self.logger.log_event(
            "minimizer.finish",
            passes=pass_number,
            forced_stop=forced_stop,
            size=result.final_size,
            nodes=result.final_node_count,
        )
        self.logger.log_json(
            "statistics",
            {
                "original_size": original_size,
                "original_node_count": original_node_count,
                "final_size": result.final_size,
                "final_node_count": result.final_node_count,
                "passes": pass_number,
                "forced_stop": forced_stop,
                **result.statistics,
            },
        )
        return result

    def _rollback_all(self) -> None:
        for scratch_file in self.scratch_files:
            scratch_file.rollback()

    def close(self) -> None:
        for scratch_file in self.scratch_files:
            scratch_file.close()


__all__ = ["CLEANUP_PERIOD", "MinimizationResult", "ReductionAborted", "SourceCodeMinimizer"]
