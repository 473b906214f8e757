"""
Advisory project lock for agentplan.

One lock file per project (.claude/.agentplan.lock), created exclusively and
removed on exit. It guards every load-mutate-persist sequence so two
invocations in the same repository can't interleave writes. A lock file
older than the stale threshold is left over from a crashed run and is
reclaimed.
"""

import atexit
import logging
import os
import signal
import sys
import time
from contextlib import contextmanager
from pathlib import Path

from agentplan.lib.constants import LOCK_FILE
from agentplan.lib.errors import ConcurrentModificationError

logger = logging.getLogger(__name__)

LOCK_TIMEOUT_SECONDS = 10
LOCK_STALE_SECONDS = 300
POLL_INTERVAL_SECONDS = 0.1


def _try_create(lock_file: Path) -> bool:
    """Create the lock file exclusively. False if it already exists."""
    try:
        fd = os.open(str(lock_file), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError:
        return False
    with os.fdopen(fd, "w") as f:
        f.write(f"{os.getpid()} {time.time():.0f}\n")
    return True


def _lock_age(lock_file: Path) -> float | None:
    """Seconds since the lock file was written, or None if it vanished."""
    try:
        return time.time() - lock_file.stat().st_mtime
    except FileNotFoundError:
        return None


def _owner_pid(lock_file: Path) -> int | None:
    try:
        return int(lock_file.read_text().split()[0])
    except (OSError, ValueError, IndexError):
        return None


@contextmanager
def project_lock(
    claude_dir: Path,
    timeout: float = LOCK_TIMEOUT_SECONDS,
    stale_after: float = LOCK_STALE_SECONDS,
):
    """
    Acquire the project lock, yield, release on exit.

    Args:
        claude_dir: The project's .claude directory
        timeout: Seconds to wait for a live lock before giving up
        stale_after: Age in seconds after which an existing lock is reclaimed

    Raises:
        ConcurrentModificationError: If another invocation holds the lock
    """
    claude_dir.mkdir(parents=True, exist_ok=True)
    lock_file = claude_dir / LOCK_FILE
    start = time.monotonic()

    while not _try_create(lock_file):
        age = _lock_age(lock_file)
        if age is not None and age > stale_after:
            logger.warning(
                f"[LOCK] Reclaiming stale lock {lock_file} "
                f"(pid {_owner_pid(lock_file)}, {age:.0f}s old)"
            )
            lock_file.unlink(missing_ok=True)
            continue
        if time.monotonic() - start >= timeout:
            raise ConcurrentModificationError(
                f"Another agentplan command holds {lock_file} (pid {_owner_pid(lock_file)}); retry shortly",
                lock_file=str(lock_file),
                pid=_owner_pid(lock_file),
            )
        time.sleep(POLL_INTERVAL_SECONDS)

    my_pid = os.getpid()

    # Register cleanup
    def cleanup():
        if _owner_pid(lock_file) == my_pid:
            lock_file.unlink(missing_ok=True)

    atexit.register(cleanup)
    original_sigterm = signal.signal(signal.SIGTERM, lambda *_: sys.exit(1))

    try:
        yield lock_file
    finally:
        atexit.unregister(cleanup)
        signal.signal(signal.SIGTERM, original_sigterm)
        cleanup()
