"""Tests for agentplan.lib.locking module."""

import os
import time

import pytest

from agentplan.lib.constants import LOCK_FILE
from agentplan.lib.errors import ConcurrentModificationError
from agentplan.lib.locking import project_lock


class TestProjectLock:
    def test_creates_and_removes_lock_file(self, tmp_path):
        with project_lock(tmp_path) as lock_file:
            assert lock_file == tmp_path / LOCK_FILE
            assert lock_file.exists()
            assert lock_file.read_text().split()[0] == str(os.getpid())
        assert not (tmp_path / LOCK_FILE).exists()

    def test_released_on_exception(self, tmp_path):
        with pytest.raises(RuntimeError):
            with project_lock(tmp_path):
                raise RuntimeError("boom")
        assert not (tmp_path / LOCK_FILE).exists()

    def test_held_lock_times_out(self, tmp_path):
        (tmp_path / LOCK_FILE).write_text("99999 0\n")
        with pytest.raises(ConcurrentModificationError) as exc:
            with project_lock(tmp_path, timeout=0.2):
                pass
        assert exc.value.category == "concurrency"
        assert (tmp_path / LOCK_FILE).exists()

    def test_stale_lock_reclaimed(self, tmp_path):
        lock_file = tmp_path / LOCK_FILE
        lock_file.write_text("99999 0\n")
        old = time.time() - 3600
        os.utime(lock_file, (old, old))
        with project_lock(tmp_path, timeout=0.2, stale_after=60):
            assert lock_file.read_text().split()[0] == str(os.getpid())
        assert not lock_file.exists()

    def test_creates_claude_dir(self, tmp_path):
        claude_dir = tmp_path / "new" / ".claude"
        with project_lock(claude_dir):
            assert claude_dir.is_dir()
