from __future__ import annotations
from typing import List


# Stack cells are unsigned 32-bit words.
WORD_MASK = 0xFFFFFFFF


class Stack:
    """LIFO of 32-bit words where popping an empty stack yields 0."""

    def __init__(self) -> None:
        self.items: List[int] = []

    def __len__(self) -> int:
        return len(self.items)

    def pop(self) -> int:
        if not self.items:
            return 0
        return self.items.pop()

    def push(self, value: int) -> None:
        self.items.append(value & WORD_MASK)

    def duplicate_top(self) -> None:
        value = self.pop()
        self.items.append(value)
        self.items.append(value)

    def swap_top_two(self) -> None:
        items = self.items
        if not items:
            items.extend((0, 0))
            return
        a = items.pop()
        if not items:
            # Lone value stays below a fresh zero.
            items.extend((a, 0))
            return
        b = items.pop()
        items.extend((a, b))

    def snapshot(self) -> List[int]:
        return list(self.items)
