"""Scratch files with atomic multi-file commit and rollback."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import Collection, List, Optional, Sequence, Set

from . import cutter, document, language as language_module
from .types import Node


class ScratchFile:
    """Owns one input file: its live scratch copy and last committed snapshot.

    Please note, committing here does not relate to version control; it only
    accepts the current scratch contents as the new intermediate state.
    """

    def __init__(
        self,
        language: language_module.Language,
        path: Path | str,
        *,
        encoding: str = "utf-8",
        validate_nodes: bool = True,
    ) -> None:
        self.language = language
        self.path = Path(path)
        self.encoding = encoding
        self.validate_nodes = validate_nodes
        fd, name = tempfile.mkstemp(prefix="source-minimizer-", suffix=".tmp")
        os.close(fd)
        self.last_committed = Path(name)
        self.root: Optional[Node] = None
        self.prepared_root: Optional[Node] = None
        self._all_nodes: Set[Node] = set()

    def __enter__(self) -> "ScratchFile":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def all_nodes(self) -> Set[Node]:
        return self._all_nodes

    def _load(self, path: Path) -> Node:
        text = path.read_text(encoding=self.encoding)
        return self.language.parse(str(self.path), text)

    def is_parseable(self) -> bool:
        """Check that the scratch file can be parsed; the result is discarded."""

        try:
            self._load(self.path)
        except language_module.ParseError:
            return False
        return True

    def size(self) -> int:
        return self.path.stat().st_size

    def committed_size(self) -> int:
        return self.last_committed.stat().st_size

    def hash_into(self, hasher) -> None:
        """Feed the length-prefixed scratch contents to *hasher*."""

        data = self.path.read_bytes()
        hasher.update(len(data).to_bytes(8, "big"))
        hasher.update(data)

    def _parse_changed(self) -> None:
        self.prepared_root = self._load(self.path)

    def _commit(self) -> Node:
        assert self.prepared_root is not None
        self.root = self.prepared_root
        shutil.copyfile(self.path, self.last_committed)
        self._all_nodes = set(self.root.walk())
        return self.root

    def _forget_parsed(self) -> None:
        self.prepared_root = None

    def commit_change(self) -> Optional[Node]:
        """Accept the current scratch contents, or return ``None`` if they do not parse."""

        roots = commit_all([self])
        return None if roots is None else roots[0]

    def rollback(self) -> None:
        """Restore the scratch file to the last committed state."""

        shutil.copyfile(self.last_committed, self.path)

    def _delete_regions(self, operations) -> None:
        document.apply_deletes(self.path, self.encoding, operations)

    def write_trimmed_source(self, nodes_to_remove: Collection[Node]) -> None:
        """Roll back, then cut *nodes_to_remove* with their descendants.

        The nodes must belong to the tree of the last commit.
        """

        self.rollback()
        assert self.root is not None
        assert self._all_nodes.issuperset(nodes_to_remove)
        operations = cutter.calculate_tree_cutting(
            self.root, nodes_to_remove, validate_nodes=self.validate_nodes
        )
        self._delete_regions(operations)

    def write_cleaned_up_source(self) -> None:
        self.rollback()
        text = self.last_committed.read_text(encoding=self.encoding)
        root = self.language.parse(str(self.path), text)
        operations = cutter.calculate_holes_trimming(
            text.split("\n"),
            root,
            validate_nodes=self.validate_nodes,
            removable=self.language.is_removable_hole,
        )
        self._delete_regions(operations)

    def write_without_empty_lines(self) -> None:
        self.rollback()
        text = self.path.read_text(encoding=self.encoding)
        self.path.write_text(cutter.strip_blank_lines(text), encoding=self.encoding)

    def close(self) -> None:
        if self.last_committed.exists():
            self.last_committed.unlink()


def commit_all(files: Sequence[ScratchFile]) -> Optional[List[Node]]:
    """Atomically commit every scratch file.

    Either all files parse and advance their snapshots, or ``None`` is
    returned and nothing changes.
    """

    try:
        for scratch in files:
            scratch._parse_changed()
        return [scratch._commit() for scratch in files]
    except language_module.ParseError:
        return None
    finally:
        for scratch in files:
            scratch._forget_parsed()


__all__ = ["ScratchFile", "commit_all"]
