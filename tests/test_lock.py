from __future__ import annotations

import os
import time

import pytest

from ai_newsletter.tools.lock import RunInProgress, RunLock


def test_lock_is_released_on_exit(tmp_path) -> None:
    path = tmp_path / "run.lock"
    with RunLock(path):
        assert path.exists()
    assert not path.exists()


def test_second_run_is_refused(tmp_path) -> None:
    path = tmp_path / "run.lock"
    with RunLock(path):
        with pytest.raises(RuntimeError, match="already in progress"):
            with RunLock(path):
                pass


def test_held_lock_raises_run_in_progress(tmp_path) -> None:
    path = tmp_path / "run.lock"
    with RunLock(path):
        with pytest.raises(RunInProgress):
            RunLock(path).__enter__()
    assert not path.exists()


def test_stale_lock_is_replaced(tmp_path) -> None:
    path = tmp_path / "run.lock"
    path.write_text("12345", encoding="utf-8")
    old = time.time() - 7200
    os.utime(path, (old, old))

    with RunLock(path, timeout_seconds=60):
        assert path.read_text(encoding="utf-8") == str(os.getpid())
