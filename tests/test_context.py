from __future__ import annotations

import pytest

from reflect_engine.context import ReflectionContext


def test_context_keeps_last_five_in_order() -> None:
    context = ReflectionContext(max_items=5)
    for idx in range(1, 9):
        context.push(f"r{idx}")
        assert len(context) <= 5
    assert context.items() == ["r4", "r5", "r6", "r7", "r8"]


def test_context_joined_and_clear() -> None:
    context = ReflectionContext(max_items=3)
    context.push("a")
    context.push("b")
    assert context.joined() == "a\n---\nb"
    assert context.joined(" | ") == "a | b"
    context.clear()
    assert len(context) == 0
    assert context.joined() == ""


def test_context_rejects_zero_capacity() -> None:
    with pytest.raises(ValueError):
        ReflectionContext(max_items=0)
