"""Lifecycle events for reflection sessions, one JSON object per line."""

from __future__ import annotations

import itertools
import json
import threading
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Any, Iterator

from ..utils import now_utc_iso


@dataclass
class EventWriter:
    path: Path
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, init=False)
    _last: dict[str, Any] | None = field(default=None, repr=False, init=False)

    def emit(self, event_type: str, session_id: str | None = None, **payload: Any) -> dict[str, Any]:
        event = {
            "type": event_type,
            "session_id": session_id,
            "ts": now_utc_iso(),
        }
        event.update(payload)
        line = f"{json.dumps(event)}\n"
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line)
            self._last = event
        return event

    def for_session(self, session_id: str) -> SessionEvents:
        return SessionEvents(self, session_id)

    @property
    def last_event(self) -> dict[str, Any] | None:
        """Most recent event written by this writer, if any."""
        with self._lock:
            return dict(self._last) if self._last is not None else None


@dataclass(frozen=True)
class SessionEvents:
    """Emitter bound to one session id.

    Every event it writes carries the session's id plus a per-session
    ``seq`` counter, so interleaved lines from an old worker and a new
    session stay attributable.
    """

    writer: EventWriter
    session_id: str
    _seq: Iterator[int] = field(default_factory=itertools.count, repr=False, compare=False)

    def emit(self, event_type: str, **payload: Any) -> dict[str, Any]:
        return self.writer.emit(event_type, session_id=self.session_id, seq=next(self._seq), **payload)


def read_events(path: Path, session_id: str | None = None) -> list[dict[str, Any]]:
    """Load events back from ``path``; a torn trailing line is skipped."""
    if not path.exists():
        return []
    events: list[dict[str, Any]] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        if not line.strip():
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            continue
        if session_id is not None and event.get("session_id") != session_id:
            continue
        events.append(event)
    return events
