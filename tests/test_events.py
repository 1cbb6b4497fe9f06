from __future__ import annotations

import json
from pathlib import Path

from reflect_engine.runs.events import EventWriter, read_events


def test_event_writer(tmp_path: Path) -> None:
    path = tmp_path / "events.jsonl"
    writer = EventWriter(path)
    writer.emit("session_started", session_id="abc", topic="a cat")
    writer.emit("session_stopped")
    lines = path.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 2
    payload = json.loads(lines[0])
    assert payload["type"] == "session_started"
    assert payload["session_id"] == "abc"
    assert payload["topic"] == "a cat"
    assert "ts" in payload
    assert json.loads(lines[1])["session_id"] is None
    assert writer.last_event is not None
    assert writer.last_event["type"] == "session_stopped"


def test_session_events_stamp_id_and_sequence(tmp_path: Path) -> None:
    writer = EventWriter(tmp_path / "events.jsonl")
    assert writer.last_event is None
    old = writer.for_session("old")
    new = writer.for_session("new")

    old.emit("session_started", topic="a cat")
    new.emit("session_started", topic="a dog")
    old.emit("reflection_ready", iteration=0)
    new.emit("reflection_ready", iteration=0)
    new.emit("session_stopped", iterations=0)

    old_events = read_events(writer.path, session_id="old")
    new_events = read_events(writer.path, session_id="new")
    assert [(e["type"], e["seq"]) for e in old_events] == [("session_started", 0), ("reflection_ready", 1)]
    assert [e["seq"] for e in new_events] == [0, 1, 2]
    assert new_events[0]["topic"] == "a dog"
    assert len(read_events(writer.path)) == 5


def test_read_events_skips_torn_lines(tmp_path: Path) -> None:
    path = tmp_path / "events.jsonl"
    assert read_events(path) == []
    writer = EventWriter(path)
    writer.emit("session_started", session_id="abc")
    with path.open("a", encoding="utf-8") as handle:
        handle.write('{"type": "reflection_rea')
    events = read_events(path)
    assert [event["type"] for event in events] == ["session_started"]
