"""Program grid and supplied-value queue for the Befunge-93 engine."""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterable, List, Optional, Sequence, Union

import numpy as np
from numpy.typing import NDArray


class BefungeError(Exception):
    """Base class for interpreter errors."""

    def __init__(
        self,
        message: str,
        *,
        position: Optional["Position"] = None,
        instruction: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.position = position
        self.instruction = instruction
        self.step_index: Optional[int] = None


class EmptyInputError(BefungeError):
    """Raised when a program asks for a supplied value and none are left."""


class GridIndexError(BefungeError, IndexError):
    """Raised for a cell access outside the grid."""


@dataclass(frozen=True)
class Position:
    row: int
    column: int

    def __str__(self) -> str:
        return f"({self.row}, {self.column})"


Row = Union[str, Sequence[str]]


class Program:
    def __init__(self, values: Iterable[int], instructions: Iterable[Row]) -> None:
        self._values: Deque[int] = deque(int(v) & 0xFFFFFFFF for v in values)
        # One codepoint array per row; rows keep their own length.
        self._grid: List[NDArray[np.uint32]] = [
            np.array([ord(ch) for ch in row], dtype=np.uint32) for row in instructions
        ]

    @classmethod
    def from_text(cls, text: str, values: Iterable[int] = ()) -> "Program":
        return cls(values, text.splitlines())

    def line_count(self) -> int:
        return len(self._grid)

    def chars_in_line(self, row: int) -> int:
        return len(self._row(row, None))

    def get_instruction(self, position: Position) -> str:
        row = self._row(position.row, position)
        self._check_column(row, position)
        return chr(int(row[position.column]))

    def set_instruction(self, position: Position, char: str) -> None:
        if len(char) != 1:
            raise ValueError(f"Grid cells hold a single character, got {char!r}")
        row = self._row(position.row, position)
        self._check_column(row, position)
        row[position.column] = ord(char)

    def next_value(self) -> int:
        try:
            return self._values.popleft()
        except IndexError:
            raise EmptyInputError("No supplied values left to read") from None

    def remaining_values(self) -> List[int]:
        return list(self._values)

    def rows(self) -> List[str]:
        return ["".join(chr(int(cp)) for cp in row) for row in self._grid]

    def _row(self, index: int, position: Optional[Position]) -> NDArray[np.uint32]:
        # Negative indexes are out of bounds here, not counted from the end.
        if not 0 <= index < len(self._grid):
            raise GridIndexError(
                f"Row {index} outside grid of {len(self._grid)} rows",
                position=position,
            )
        return self._grid[index]

    def _check_column(self, row: NDArray[np.uint32], position: Position) -> None:
        if not 0 <= position.column < len(row):
            raise GridIndexError(
                f"Column {position.column} outside row {position.row} of length {len(row)}",
                position=position,
            )
