"""In-place text editing of scratch files."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Tuple

from .types import DeleteOperation


class OverlappingRegionsError(ValueError):
    """Raised when delete operations overlap or describe an inverted region."""


def _line_offsets(lines: List[str]) -> List[int]:
    offsets: List[int] = []
    total = 0
    for line in lines:
        offsets.append(total)
        total += len(line) + 1
    return offsets


def _to_offset(lines: List[str], offsets: List[int], line: int, column: int) -> int:
    if line < 0 or line >= len(lines):
        raise OverlappingRegionsError(f"Line {line} is outside of the document.")
    return offsets[line] + max(0, min(column, len(lines[line])))


def delete_regions(text: str, operations: Iterable[DeleteOperation]) -> str:
    """Return *text* with every region erased.

    Regions are given as line/column pairs and must not overlap.
    """

    lines = text.split("\n")
    offsets = _line_offsets(lines)
    ranges: List[Tuple[int, int, DeleteOperation]] = []
    for op in operations:
        start = _to_offset(lines, offsets, op.begin_line, op.begin_column)
        end = _to_offset(lines, offsets, op.end_line, op.end_column)
        if end < start:
            raise OverlappingRegionsError(f"Inverted region: {op}")
        if end > start:
            ranges.append((start, end, op))
    ranges.sort(key=lambda item: item[0])

    pieces: List[str] = []
    pointer = 0
    previous: DeleteOperation | None = None
    for start, end, op in ranges:
        if start < pointer:
            raise OverlappingRegionsError(f"Overlapping regions: {previous} and {op}")
        pieces.append(text[pointer:start])
        pointer = end
        previous = op
    pieces.append(text[pointer:])
    return "".join(pieces)


def apply_deletes(path: Path | str, encoding: str, operations: Iterable[DeleteOperation]) -> None:
    """Apply non-overlapping delete operations to the file at *path*."""

    path = Path(path)
    text = path.read_text(encoding=encoding)
    path.write_text(delete_regions(text, operations), encoding=encoding)
