"""Removal of hidden reasoning spans from reasoning-model output.

Reasoning models such as DeepSeek-R1 wrap their chain of thought in
``<think> ... </think>``. Only the text outside those spans is usable as an
image prompt; the raw text is kept separately for the session log.
"""

from __future__ import annotations

import re

THINK_START = "<think>"
THINK_END = "</think>"

_THINK_SPAN = re.compile(re.escape(THINK_START) + r".*?" + re.escape(THINK_END), re.IGNORECASE | re.DOTALL)


def strip_hidden_reasoning(text: str) -> str:
    """Drop every paired ``<think>`` span; unmatched markers are left alone."""
    if not text:
        return ""
    cleaned = text
    while True:
        # Removing a span can splice a new pair together; repeat until stable.
        reduced = _THINK_SPAN.sub("", cleaned)
        if reduced == cleaned:
            break
        cleaned = reduced
    return cleaned.strip()
