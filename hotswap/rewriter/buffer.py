"""
hotswap Edit Buffer

Collects edits against the offsets of the original text and renders them
in one go, so that every edit can be expressed in original coordinates no
matter how many other edits were made before it.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from typing import List, Optional, Tuple

from hotswap.types import LineMap


@dataclass
class _Edit:
    start: int
    end: int
    text: str
    seq: int

    @property
    def is_insert(self) -> bool:
        return self.start == self.end


class EditBuffer:
    """
    Offset-stable text editor.

    Supports:
    - Overwriting a span of the original text
    - Inserting text at an original offset
    - Prepending and appending
    - A generated-to-original line map of the result
    """

    def __init__(self, original: str):
        self.original = original
        self._edits: List[_Edit] = []
        self._seq = 0
        self._line_starts = [0]
        for index, char in enumerate(original):
            if char == "\n":
                self._line_starts.append(index + 1)

    def __bool__(self) -> bool:
        return bool(self._edits)

    def _add(self, start: int, end: int, text: str) -> None:
        if not 0 <= start <= end <= len(self.original):
            raise ValueError(f"Edit span out of range: {start}..{end}")
        if start != end:
            for edit in self._edits:
                if not edit.is_insert and start < edit.end and edit.start < end:
                    raise ValueError(
                        f"Overlapping overwrite: {start}..{end} and {edit.start}..{edit.end}"
                    )
        self._edits.append(_Edit(start, end, text, self._seq))
        self._seq += 1

    def overwrite(self, start: int, end: int, text: str) -> "EditBuffer":
        """Replace original[start:end] with text."""
        if start == end:
            raise ValueError("Cannot overwrite an empty span")
        self._add(start, end, text)
        return self

    def insert(self, offset: int, text: str) -> "EditBuffer":
        """Insert text at an original offset, after earlier inserts there."""
        self._add(offset, offset, text)
        return self

    def prepend(self, text: str) -> "EditBuffer":
        return self.insert(0, text)

    def append(self, text: str) -> "EditBuffer":
        return self.insert(len(self.original), text)

    def _segments(self) -> List[Tuple[Optional[int], Optional[int], str]]:
        """Ordered segments: (start, end, text); start is None for new text."""
        ordered = sorted(
            self._edits,
            key=lambda e: (e.start, 1 if not e.is_insert else 0, e.seq),
        )
        segments: List[Tuple[Optional[int], Optional[int], str]] = []
        pos = 0
        for edit in ordered:
            if edit.start > pos:
                segments.append((pos, edit.start, self.original[pos:edit.start]))
            if edit.text:
                segments.append((None, None, edit.text))
            pos = max(pos, edit.end)
        if pos < len(self.original):
            segments.append((pos, len(self.original), self.original[pos:]))
        return segments

    def to_string(self) -> str:
        return "".join(text for _, _, text in self._segments())

    def __str__(self) -> str:
        return self.to_string()

    def _line_of(self, offset: int) -> int:
        return bisect.bisect_right(self._line_starts, offset)

    def line_map(self) -> LineMap:
        """Map every generated line to the original line it starts in."""
        lines: List[Optional[int]] = []
        at_line_start = True

        for start, end, text in self._segments():
            i = 0
            while i < len(text):
                if at_line_start:
                    lines.append(self._line_of(start + i) if start is not None else None)
                    at_line_start = False
                newline = text.find("\n", i)
                if newline == -1:
                    break
                i = newline + 1
                at_line_start = True

        return LineMap(lines=lines)
