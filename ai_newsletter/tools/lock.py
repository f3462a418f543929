from __future__ import annotations

from pathlib import Path
import os
import time


class RunInProgress(RuntimeError):
    pass


class RunLock:
    """Single-flight guard for scheduled runs: one newsletter run per host at a time."""

    def __init__(self, path: str | Path = "data/run.lock", timeout_seconds: int = 60 * 60):
        self.path = Path(path)
        self.timeout_seconds = timeout_seconds

    def _create(self) -> bool:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(str(os.getpid()))
        return True

    def __enter__(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)

        if self._create():
            return self

        try:
            age = time.time() - self.path.stat().st_mtime
        except FileNotFoundError:
            age = self.timeout_seconds
        if age < self.timeout_seconds:
            raise RunInProgress(f"Another newsletter run is already in progress (lock {self.path} exists).")

        # stale lock
        self.path.unlink(missing_ok=True)
        if not self._create():
            raise RunInProgress(f"Another newsletter run is already in progress (lock {self.path} exists).")
        return self

    def __exit__(self, exc_type, exc, tb):
        self.path.unlink(missing_ok=True)
