"""Iteration engine: the reflect -> generate -> analyze loop and its session state."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any

from .context import ReflectionContext
from .gateway.base import ReflectionResult, ServiceGateway
from .notify import SubscriberRegistry
from .runs.artifacts import ArtifactStore
from .runs.events import EventWriter, SessionEvents
from .runs.session_log import LogEntry, SessionLog
from .utils import now_utc_iso

log = logging.getLogger("reflect.engine")

PHASE_IDLE = "idle"
PHASE_RUNNING = "running"
PHASE_STOPPING = "stopping"

MSG_STARTED = "Infinite reflection started."
MSG_ALREADY_RUNNING = "Reflection is already running."
MSG_EMPTY_PROMPT = "Please enter a starting prompt."
MSG_STOPPED = "Infinite reflection stopped."
MSG_NOT_RUNNING = "Reflection is not running."


@dataclass
class Session:
    original_topic: str
    context: ReflectionContext
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: str = field(default_factory=now_utc_iso)
    iteration: int = 0
    running: bool = True
    stop_requested: threading.Event = field(default_factory=threading.Event, repr=False)
    events: SessionEvents | None = field(default=None, repr=False)


@dataclass(frozen=True)
class StartResult:
    accepted: bool
    message: str
    session_id: str | None = None


@dataclass(frozen=True)
class StopResult:
    accepted: bool
    message: str


class EngineState:
    """Holds the single active session; begin/end are compare-and-set."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._session: Session | None = None

    @property
    def session(self) -> Session | None:
        with self._lock:
            return self._session

    def begin(self, session: Session) -> bool:
        with self._lock:
            if self._session is not None:
                return False
            self._session = session
            return True

    def end(self, session: Session | None = None) -> Session | None:
        """Clear the active session (only if it is ``session`` when given)."""
        with self._lock:
            current = self._session
            if current is None or (session is not None and current is not session):
                return None
            self._session = None
        current.running = False
        current.stop_requested.set()
        current.context.clear()
        return current

    def is_current(self, session: Session) -> bool:
        with self._lock:
            return self._session is session and session.running


class _Halt(Exception):
    """Ends the session from inside the worker."""


class IterationEngine:
    def __init__(
        self,
        gateway: ServiceGateway,
        store: ArtifactStore,
        session_log: SessionLog,
        registry: SubscriberRegistry,
        events: EventWriter,
        *,
        iteration_delay_s: float = 5.0,
        context_size: int = 5,
        generation_failure: str = "halt",
        state: EngineState | None = None,
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.session_log = session_log
        self.registry = registry
        self.events = events
        self.iteration_delay_s = iteration_delay_s
        self.context_size = context_size
        self.generation_failure = generation_failure
        self.state = state or EngineState()
        self._start_lock = threading.Lock()
        self._worker: threading.Thread | None = None

    # -- control ---------------------------------------------------------

    def start(self, topic: str) -> StartResult:
        topic = (topic or "").strip()
        if not topic:
            return StartResult(accepted=False, message=MSG_EMPTY_PROMPT)
        with self._start_lock:
            session = Session(original_topic=topic, context=ReflectionContext(self.context_size))
            session.events = self.events.for_session(session.session_id)
            if not self.state.begin(session):
                log.info("Start ignored: a session is already running")
                return StartResult(accepted=False, message=MSG_ALREADY_RUNNING)
            # Until the worker is running, any failure releases the claim.
            try:
                self._launch(session)
            except Exception as exc:
                self.state.end(session)
                log.error("Could not start reflection loop %s: %s", session.session_id, exc)
                raise
        return StartResult(accepted=True, message=MSG_STARTED, session_id=session.session_id)

    def _launch(self, session: Session) -> None:
        purged = self.store.purge_all()
        log.info(
            "Starting reflection loop %s on %r (purged %d artifacts)",
            session.session_id,
            session.original_topic,
            purged,
        )
        session.events.emit("session_started", topic=session.original_topic, purged=purged)
        worker = threading.Thread(
            target=self._run,
            args=(session,),
            name=f"reflect-{session.session_id}",
            daemon=True,
        )
        worker.start()
        self._worker = worker

    def stop(self) -> StopResult:
        session = self.state.end()
        closed = self.registry.close_all()
        if session is None:
            return StopResult(accepted=True, message=MSG_NOT_RUNNING)
        log.info("Reflection loop %s stopped after %d iteration(s)", session.session_id, session.iteration)
        session.events.emit(
            "session_stopped",
            iterations=session.iteration,
            subscribers_closed=closed,
        )
        return StopResult(accepted=True, message=MSG_STOPPED)

    @property
    def phase(self) -> str:
        if self.state.session is not None:
            return PHASE_RUNNING
        worker = self._worker
        if worker is not None and worker.is_alive():
            return PHASE_STOPPING
        return PHASE_IDLE

    @property
    def running(self) -> bool:
        return self.state.session is not None

    def context_items(self) -> list[str]:
        session = self.state.session
        if session is None:
            return []
        return session.context.items()

    def status(self) -> dict[str, Any]:
        session = self.state.session
        payload: dict[str, Any] = {
            "phase": self.phase,
            "running": session is not None,
            "subscribers": len(self.registry),
        }
        if session is not None:
            payload.update(
                {
                    "session_id": session.session_id,
                    "topic": session.original_topic,
                    "started_at": session.started_at,
                    "iteration": session.iteration,
                    "context_size": len(session.context),
                    "last_event": (self.events.last_event or {}).get("type"),
                }
            )
        return payload

    def wait_idle(self, timeout: float | None = None) -> bool:
        worker = self._worker
        if worker is None:
            return True
        worker.join(timeout=timeout)
        return not worker.is_alive()

    # -- loop ------------------------------------------------------------

    def _run(self, session: Session) -> None:
        current = session.original_topic
        try:
            while self.state.is_current(session):
                current = self.run_iteration(session, current)
                if not self.state.is_current(session):
                    break
                # stop() sets the event, cutting the pause short.
                if session.stop_requested.wait(self.iteration_delay_s):
                    break
        except _Halt as halt:
            self._halt(session, str(halt))
        except Exception:
            log.exception("Reflection loop %s crashed", session.session_id)
            self._halt(session, "unexpected error")
        log.info("Reflection loop %s exited", session.session_id)

    def run_iteration(self, session: Session, current: str) -> str:
        """Run one reflect/generate/persist/analyze cycle; returns the next reflection text."""
        index = session.iteration
        log.info("=== Iteration %d (%s) ===", index, session.session_id)

        reflection = self._reflect(session, current)
        session.events.emit(
            "reflection_ready",
            iteration=index,
            prompt=reflection.cleaned,
            fallback=reflection.fallback,
        )
        if not self.state.is_current(session):
            return current

        image = self.gateway.generate(reflection.cleaned)
        if image is None:
            session.events.emit("generation_failed", iteration=index)
            if self.generation_failure != "continue":
                raise _Halt(f"image generation failed at iteration {index}")
            log.warning("Image generation failed at iteration %d; continuing per policy", index)
            session.iteration += 1
            return reflection.cleaned
        if not self.state.is_current(session):
            return current

        try:
            artifact = self.store.save(index, image)
        except OSError as exc:
            session.events.emit(
                "artifact_write_failed",
                iteration=index,
                error=str(exc),
            )
            raise _Halt(f"could not write artifact for iteration {index}: {exc}") from exc
        log.info("Iteration %d: image saved to %s", index, artifact.path)
        session.events.emit(
            "artifact_created",
            iteration=index,
            path=artifact.path,
        )

        analysis = self.gateway.analyze(session.original_topic, artifact.file_path)
        session.events.emit("analysis_ready", iteration=index)
        if not self.state.is_current(session):
            return current

        self.session_log.append(
            LogEntry(
                session_started_at=session.started_at,
                iteration=index,
                original_topic=session.original_topic,
                raw_reasoning=reflection.raw,
                cleaned_prompt=reflection.cleaned,
                analysis=analysis,
                image_path=artifact.path,
            )
        )

        follow_up = self._reflect(session, analysis)
        session.iteration += 1
        session.events.emit(
            "iteration_completed",
            iteration=index,
            image_path=artifact.path,
        )
        return follow_up.cleaned

    def _reflect(self, session: Session, text: str) -> ReflectionResult:
        # The model sees its own immediately-prior input as history.
        session.context.push(text)
        return self.gateway.reflect(session.original_topic, text, session.context.joined())

    def _halt(self, session: Session, reason: str) -> None:
        ended = self.state.end(session)
        if ended is None:
            return
        log.error("Reflection loop %s halted: %s", session.session_id, reason)
        session.events.emit(
            "session_halted",
            iterations=session.iteration,
            reason=reason,
        )
