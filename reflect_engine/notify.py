"""Fan-out of new-artifact notifications to connected observers."""

from __future__ import annotations

import itertools
import logging
import queue
import threading
from pathlib import Path

from .runs.artifacts import ArtifactStore, is_artifact_name

log = logging.getLogger("reflect.notify")

_CLOSE = object()


class Subscriber:
    """One observer connection; events are read with :meth:`next_event`."""

    def __init__(self, handle: int) -> None:
        self.handle = handle
        self._queue: queue.Queue[object] = queue.Queue()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def deliver(self, path: str) -> bool:
        if self.closed:
            return False
        self._queue.put(path)
        return True

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        self._queue.put(_CLOSE)

    def next_event(self, timeout: float | None = None) -> str | None:
        """Return the next path, ``None`` on close; raises ``queue.Empty`` on timeout."""
        item = self._queue.get(timeout=timeout)
        if item is _CLOSE:
            return None
        return str(item)


class SubscriberRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles = itertools.count(1)
        self._subscribers: dict[int, Subscriber] = {}

    def subscribe(self) -> Subscriber:
        with self._lock:
            subscriber = Subscriber(next(self._handles))
            self._subscribers[subscriber.handle] = subscriber
        log.info("Observer %d connected", subscriber.handle)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber | int) -> None:
        handle = subscriber if isinstance(subscriber, int) else subscriber.handle
        with self._lock:
            removed = self._subscribers.pop(handle, None)
        if removed is not None:
            removed.close()
            log.info("Observer %d disconnected", handle)

    def notify_all(self, path: str) -> int:
        # Dicts keep insertion order, so the snapshot is in registration order.
        with self._lock:
            snapshot = list(self._subscribers.values())
        delivered = 0
        for subscriber in snapshot:
            if subscriber.deliver(path):
                delivered += 1
        return delivered

    def close_all(self) -> int:
        with self._lock:
            subscribers = list(self._subscribers.values())
            self._subscribers.clear()
        for subscriber in subscribers:
            subscriber.close()
        if subscribers:
            log.info("Closed %d observer connection(s)", len(subscribers))
        return len(subscribers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)


class ArtifactWatcher:
    """Polls the artifact directory and announces files created since the last reset."""

    def __init__(self, store: ArtifactStore, registry: SubscriberRegistry, interval_s: float = 0.5) -> None:
        self.store = store
        self.registry = registry
        self.interval_s = interval_s
        self._lock = threading.Lock()
        self._seen: set[str] = set()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.reset()

    def reset(self) -> None:
        """Treat everything currently on disk as already announced."""
        with self._lock:
            self._seen = set(self._list_names(self.store.root))

    def scan(self) -> list[str]:
        names = self._list_names(self.store.root)
        with self._lock:
            fresh = [name for name in names if name not in self._seen]
            self._seen.update(fresh)
            # Forget purged files so the set does not grow across sessions.
            self._seen.intersection_update(names)
        paths: list[str] = []
        for name in sorted(fresh, key=_creation_key):
            path = self.store.public_path(name)
            self.registry.notify_all(path)
            paths.append(path)
        return paths

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="artifact-watcher", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 2.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.scan()
            except OSError as exc:
                log.warning("Artifact directory scan failed: %s", exc)
            self._stop.wait(self.interval_s)

    @staticmethod
    def _list_names(root: Path) -> list[str]:
        if not root.exists():
            return []
        return [entry.name for entry in root.iterdir() if is_artifact_name(entry.name)]


def _creation_key(name: str) -> tuple[int, int]:
    # generated_<iteration>_<stamp>.png
    stem = name[len("generated_"):-len(".png")]
    iteration, _, stamp = stem.partition("_")
    return int(stamp), int(iteration)
