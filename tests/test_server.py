from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Iterator
from urllib.error import HTTPError
from urllib.request import Request, urlopen

import pytest

from reflect_engine.config import EngineConfig
from reflect_engine.gateway.base import ServiceGateway
from reflect_engine.gateway.dryrun import DryRunAnalyzer, DryRunGenerator, DryRunReasoner
from reflect_engine.runs.events import EventWriter
from reflect_engine.server import ReflectServer, create_server


@pytest.fixture
def server(tmp_path: Path) -> Iterator[ReflectServer]:
    config = EngineConfig(
        host="127.0.0.1",
        port=0,
        image_dir=tmp_path / "images",
        log_path=tmp_path / "reflection_log.txt",
        events_path=tmp_path / "events.jsonl",
        iteration_delay_s=30.0,
    )
    gateway = ServiceGateway(DryRunReasoner(), DryRunGenerator(size=(32, 32)), DryRunAnalyzer())
    srv = create_server(config, gateway)
    srv.watcher.interval_s = 0.05
    thread = threading.Thread(target=srv.serve_forever, daemon=True)
    thread.start()
    try:
        yield srv
    finally:
        srv.shutdown()
        srv.server_close()
        thread.join(timeout=5)


def _url(srv: ReflectServer, path: str) -> str:
    host, port = srv.server_address[:2]
    return f"http://{host}:{port}{path}"


def _post(srv: ReflectServer, path: str, payload: Any | None = None) -> dict[str, Any]:
    data = json.dumps(payload).encode("utf-8") if payload is not None else b""
    req = Request(_url(srv, path), data=data, headers={"Content-Type": "application/json"}, method="POST")
    with urlopen(req, timeout=10) as response:
        return json.loads(response.read().decode("utf-8"))


def _get_json(srv: ReflectServer, path: str) -> Any:
    with urlopen(_url(srv, path), timeout=10) as response:
        return json.loads(response.read().decode("utf-8"))


def test_control_endpoints(server: ReflectServer) -> None:
    assert _get_json(server, "/generated_images") == []
    assert _post(server, "/start", {"prompt": "   "}) == {"message": "Please enter a starting prompt."}
    assert _post(server, "/start", {"prompt": "a cat"}) == {"message": "Infinite reflection started."}
    assert _post(server, "/start", {"prompt": "a dog"}) == {"message": "Reflection is already running."}
    status = _get_json(server, "/status")
    assert status["running"] is True
    assert status["topic"] == "a cat"
    assert _post(server, "/stop") == {"message": "Infinite reflection stopped."}
    assert _post(server, "/stop") == {"message": "Reflection is not running."}
    assert server.engine.wait_idle(5)


def test_invalid_json_and_unknown_route(server: ReflectServer) -> None:
    req = Request(_url(server, "/start"), data=b"{not json", headers={"Content-Type": "application/json"}, method="POST")
    with pytest.raises(HTTPError) as excinfo:
        urlopen(req, timeout=10)
    assert excinfo.value.code == 400
    with pytest.raises(HTTPError) as excinfo:
        urlopen(_url(server, "/nope"), timeout=10)
    assert excinfo.value.code == 404


def test_failed_start_reports_error_and_stays_idle(server: ReflectServer, tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    server.engine.events = EventWriter(blocker / "events.jsonl")
    with pytest.raises(HTTPError) as excinfo:
        _post(server, "/start", {"prompt": "a cat"})
    assert excinfo.value.code == 500
    body = json.loads(excinfo.value.read().decode("utf-8"))
    assert body["error"].startswith("could not start reflection:")
    assert _get_json(server, "/status")["running"] is False


def test_image_stream_delivers_paths_and_closes_on_stop(server: ReflectServer) -> None:
    with urlopen(_url(server, "/image-stream"), timeout=10) as stream:
        assert stream.headers.get("Content-Type") == "text/event-stream"
        assert stream.readline() == b": connected\n"
        assert stream.readline() == b"\n"

        _post(server, "/start", {"prompt": "a cat"})
        line = stream.readline().decode("utf-8").strip()
        assert line.startswith("data: /images/generated_0_")
        path = line[len("data: "):]

        assert _get_json(server, "/generated_images") == [path]
        head = Request(_url(server, path), method="HEAD")
        with urlopen(head, timeout=10) as response:
            assert response.status == 200
            assert response.headers.get("Content-Type") == "image/png"
        with urlopen(_url(server, path), timeout=10) as response:
            assert response.read().startswith(b"\x89PNG")

        _post(server, "/stop")
        remaining = stream.read()
        assert b"data:" not in remaining
    assert server.engine.wait_idle(5)


def test_static_client_and_traversal(server: ReflectServer) -> None:
    with urlopen(_url(server, "/"), timeout=10) as response:
        assert b"initialPrompt" in response.read()
    with urlopen(_url(server, "/script.js"), timeout=10) as response:
        assert b"/image-stream" in response.read()
    with pytest.raises(HTTPError) as excinfo:
        urlopen(_url(server, "/images/..%2Fsecret.png"), timeout=10)
    assert excinfo.value.code == 400
    assert _get_json(server, "/healthz")["ok"] is True
