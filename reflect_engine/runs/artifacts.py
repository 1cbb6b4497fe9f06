"""On-disk image artifacts."""

from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass
from pathlib import Path

from ..utils import ensure_dir

ARTIFACT_PATTERN = re.compile(r"^generated_(\d+)_(\d+)\.png$")


@dataclass(frozen=True)
class Artifact:
    iteration: int
    stamp: int
    path: str
    file_path: Path


def artifact_filename(iteration: int, stamp: int) -> str:
    return f"generated_{iteration}_{stamp}.png"


def is_artifact_name(name: str) -> bool:
    return ARTIFACT_PATTERN.match(name) is not None


class ArtifactStore:
    """Names, writes and purges generated images under a public prefix."""

    def __init__(self, root: Path, public_prefix: str = "/images") -> None:
        self.root = root
        self.public_prefix = "/" + public_prefix.strip("/")
        ensure_dir(self.root)
        self._lock = threading.Lock()
        self._last_stamp = 0

    def public_path(self, filename: str) -> str:
        return f"{self.public_prefix}/{filename}"

    def _next_stamp(self) -> int:
        # Millisecond clock, bumped so two saves never share a stamp.
        with self._lock:
            stamp = max(int(time.time() * 1000), self._last_stamp + 1)
            self._last_stamp = stamp
            return stamp

    def save(self, iteration: int, data: bytes) -> Artifact:
        ensure_dir(self.root)
        stamp = self._next_stamp()
        filename = artifact_filename(iteration, stamp)
        file_path = self.root / filename
        # Write then rename so directory watchers never see a partial file.
        partial = self.root / f".{filename}.part"
        partial.write_bytes(data)
        partial.replace(file_path)
        return Artifact(iteration=iteration, stamp=stamp, path=self.public_path(filename), file_path=file_path)

    def purge_all(self) -> int:
        if not self.root.exists():
            return 0
        removed = 0
        for entry in self.root.iterdir():
            if entry.is_file() and is_artifact_name(entry.name):
                entry.unlink(missing_ok=True)
                removed += 1
        return removed

    def resolve(self, public_path: str) -> Path | None:
        prefix = self.public_prefix + "/"
        if not public_path.startswith(prefix):
            return None
        name = public_path[len(prefix):]
        # Restrict to simple filenames to avoid path traversal.
        if not name or "/" in name or "\\" in name or name in {".", ".."}:
            return None
        return self.root / name

    def exists(self, public_path: str) -> bool:
        file_path = self.resolve(public_path)
        if file_path is None:
            return False
        return file_path.is_file()

    def list_paths(self) -> list[str]:
        if not self.root.exists():
            return []
        return [self.public_path(entry.name) for entry in self.root.iterdir() if is_artifact_name(entry.name)]
