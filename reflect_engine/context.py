"""Rolling window of recent reflections."""

from __future__ import annotations

from collections import deque


class ReflectionContext:
    def __init__(self, max_items: int = 5) -> None:
        if max_items < 1:
            raise ValueError("max_items must be at least 1")
        self.max_items = max_items
        self._items: deque[str] = deque(maxlen=max_items)

    def push(self, text: str) -> None:
        self._items.append(text)

    def clear(self) -> None:
        self._items.clear()

    def items(self) -> list[str]:
        return list(self._items)

    def joined(self, separator: str = "\n---\n") -> str:
        return separator.join(self._items)

    def __len__(self) -> int:
        return len(self._items)
