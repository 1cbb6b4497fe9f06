"""HTTP surface: control endpoints, the artifact event stream and static files.

Endpoints:
  POST /start            {"prompt": "..."} -> {"message": "..."}
  POST /stop             -> {"message": "..."}
  GET  /image-stream     text/event-stream, one artifact path per event
  GET  /generated_images JSON list of artifact paths
  GET  /status           engine snapshot
  GET  /healthz
  GET  /images/<file>    artifact files (also HEAD)
  GET  /<file>           web client
"""

from __future__ import annotations

import json
import logging
import mimetypes
import queue
import time
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

from .config import EngineConfig
from .engine import IterationEngine
from .gateway import default_gateway
from .gateway.base import ServiceGateway
from .notify import ArtifactWatcher, SubscriberRegistry
from .runs.artifacts import ArtifactStore
from .runs.events import EventWriter
from .runs.session_log import SessionLog
from .utils import json_bytes

log = logging.getLogger("reflect.server")

PUBLIC_DIR = Path(__file__).resolve().parent / "public"
KEEPALIVE_S = 15.0


def _safe_filename(name: str) -> str | None:
    # Restrict to simple filenames to avoid path traversal.
    if not name or "/" in name or "\\" in name or name.startswith("."):
        return None
    return name


class ReflectServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(
        self,
        address: tuple[str, int],
        engine: IterationEngine,
        watcher: ArtifactWatcher,
        public_dir: Path = PUBLIC_DIR,
    ) -> None:
        super().__init__(address, _Handler)
        self.engine = engine
        self.store = engine.store
        self.registry = engine.registry
        self.watcher = watcher
        self.public_dir = public_dir

    def serve_forever(self, poll_interval: float = 0.5) -> None:
        self.watcher.start()
        try:
            super().serve_forever(poll_interval)
        finally:
            self.watcher.stop()

    def server_close(self) -> None:
        # Also reached from a failed bind, before the engine is attached.
        engine = getattr(self, "engine", None)
        if engine is not None:
            engine.stop()
        super().server_close()


def build_engine(config: EngineConfig, gateway: ServiceGateway | None = None) -> IterationEngine:
    store = ArtifactStore(config.image_dir, config.public_prefix)
    return IterationEngine(
        gateway or default_gateway(config),
        store,
        SessionLog(config.log_path),
        SubscriberRegistry(),
        EventWriter(config.events_path),
        iteration_delay_s=config.iteration_delay_s,
        context_size=config.context_size,
        generation_failure=config.generation_failure,
    )


def create_server(config: EngineConfig, gateway: ServiceGateway | None = None) -> ReflectServer:
    engine = build_engine(config, gateway)
    watcher = ArtifactWatcher(engine.store, engine.registry)
    return ReflectServer((config.host, config.port), engine, watcher)


class _Handler(BaseHTTPRequestHandler):
    server_version = "reflect/0"
    server: ReflectServer

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002 (BaseHTTPRequestHandler API)
        log.debug("%s - %s", self.address_string(), format % args)

    def _send_json(self, status: int, payload: Any) -> None:
        body = json_bytes(payload)
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", "no-store")
        self.end_headers()
        self.wfile.write(body)

    def _read_json_body(self) -> dict[str, Any] | None:
        try:
            length = int(self.headers.get("Content-Length", "0"))
        except ValueError:
            return None
        if length <= 0:
            return {}
        raw = self.rfile.read(length)
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None
        return payload if isinstance(payload, dict) else None

    def _send_file(self, path: Path, *, head: bool = False) -> None:
        if not path.is_file():
            self._send_json(HTTPStatus.NOT_FOUND, {"error": "not found"})
            return
        data = path.read_bytes()
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        self.send_response(HTTPStatus.OK)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        if not head:
            self.wfile.write(data)

    def _serve_static(self, route: str, *, head: bool = False) -> None:
        store = self.server.store
        if route.startswith(store.public_prefix + "/"):
            file_path = store.resolve(route)
            if file_path is None:
                self._send_json(HTTPStatus.BAD_REQUEST, {"error": "invalid artifact path"})
                return
            self._send_file(file_path, head=head)
            return
        name = "index.html" if route in {"", "/"} else _safe_filename(route.lstrip("/"))
        if not name:
            self._send_json(HTTPStatus.NOT_FOUND, {"error": "not found"})
            return
        self._send_file(self.server.public_dir / name, head=head)

    def do_HEAD(self) -> None:  # noqa: N802 (BaseHTTPRequestHandler API)
        self._serve_static(unquote(urlparse(self.path).path), head=True)

    def do_GET(self) -> None:  # noqa: N802 (BaseHTTPRequestHandler API)
        route = unquote(urlparse(self.path).path)
        if route == "/healthz":
            self._send_json(HTTPStatus.OK, {"ok": True, "ts": int(time.time())})
            return
        if route == "/status":
            self._send_json(HTTPStatus.OK, self.server.engine.status())
            return
        if route == "/generated_images":
            self._send_json(HTTPStatus.OK, self.server.store.list_paths())
            return
        if route == "/image-stream":
            self._stream_images()
            return
        self._serve_static(route)

    def do_POST(self) -> None:  # noqa: N802 (BaseHTTPRequestHandler API)
        route = urlparse(self.path).path
        if route == "/start":
            body = self._read_json_body()
            if body is None:
                self._send_json(HTTPStatus.BAD_REQUEST, {"error": "invalid json"})
                return
            prompt = body.get("prompt")
            try:
                result = self.server.engine.start(prompt if isinstance(prompt, str) else "")
            except Exception as exc:
                log.error("Start request failed: %s", exc)
                self._send_json(HTTPStatus.INTERNAL_SERVER_ERROR, {"error": f"could not start reflection: {exc}"})
                return
            self._send_json(HTTPStatus.OK, {"message": result.message})
            return
        if route == "/stop":
            result = self.server.engine.stop()
            self._send_json(HTTPStatus.OK, {"message": result.message})
            return
        self._send_json(HTTPStatus.NOT_FOUND, {"error": "not found"})

    def _stream_images(self) -> None:
        registry = self.server.registry
        subscriber = registry.subscribe()
        try:
            self.send_response(HTTPStatus.OK)
            self.send_header("Content-Type", "text/event-stream")
            self.send_header("Cache-Control", "no-cache")
            self.send_header("Connection", "keep-alive")
            self.send_header("X-Accel-Buffering", "no")
            self.end_headers()
            self.wfile.write(b": connected\n\n")
            self.wfile.flush()
            while True:
                try:
                    path = subscriber.next_event(timeout=KEEPALIVE_S)
                except queue.Empty:
                    self.wfile.write(b": keepalive\n\n")
                    self.wfile.flush()
                    continue
                if path is None:
                    break
                self.wfile.write(f"data: {path}\n\n".encode("utf-8"))
                self.wfile.flush()
        except (BrokenPipeError, ConnectionResetError):
            log.debug("Observer %d went away", subscriber.handle)
        finally:
            registry.unsubscribe(subscriber)
            self.close_connection = True
