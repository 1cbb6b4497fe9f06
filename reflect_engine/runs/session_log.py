"""Append-only, human-readable record of completed iterations."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class LogEntry:
    session_started_at: str
    iteration: int
    original_topic: str
    raw_reasoning: str
    cleaned_prompt: str
    analysis: str
    image_path: str | None = None

    def render(self) -> str:
        lines = [
            f"=== Session {self.session_started_at} | Iteration {self.iteration} ===",
            f"Original topic: {self.original_topic}",
        ]
        if self.image_path:
            lines.append(f"Image: {self.image_path}")
        lines.extend(
            [
                "",
                "--- Reasoning (raw) ---",
                self.raw_reasoning.strip(),
                "",
                "--- Prompt ---",
                self.cleaned_prompt.strip(),
                "",
                "--- Analysis ---",
                self.analysis.strip(),
                "",
                "",
            ]
        )
        return "\n".join(lines)


class SessionLog:
    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._entries_written = 0

    @property
    def entries_written(self) -> int:
        return self._entries_written

    def append(self, entry: LogEntry) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        block = entry.render()
        with self._lock:
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(block)
            self._entries_written += 1
