"""
Issue tracker backend contract.

Every backend maps the same four operations onto its own primitives and
raises ExternalMirrorError on any failure. The engine decides whether a
failure matters (it never does for local state).
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from agentplan.git.runner import run_command
from agentplan.lib.errors import ExternalMirrorError
from agentplan.workflow.models import Task, TaskStatus

logger = logging.getLogger(__name__)

# Timeout for tracker CLI operations (seconds)
CLI_TIMEOUT_SECONDS = 30


def require_total(status_map: dict, backend: str) -> dict:
    """Fail at import if a status map misses any TaskStatus."""
    missing = [s.value for s in TaskStatus if s.value not in status_map]
    if missing:
        raise RuntimeError(f"{backend} status map has no entry for: {', '.join(missing)}")
    return status_map


def item_title(task: Task) -> str:
    return f"[{task.id}] {task.title}"


class TrackerBackend(ABC):
    """One external issue tracker."""

    name = "base"

    def __init__(self, cwd: Path | None = None):
        self.cwd = cwd

    @abstractmethod
    def is_configured(self) -> bool:
        """True when enough settings are present to make calls."""

    @abstractmethod
    def create_item(self, task: Task) -> int | str:
        """Create an item for task and return its external id."""

    @abstractmethod
    def update_item(self, task: Task, external_id: int | str) -> None:
        """Bring the item's state in line with the task's status."""

    @abstractmethod
    def close_item(self, external_id: int | str, comment: str | None = None) -> None:
        """Close the item, posting comment first when given."""

    @abstractmethod
    def add_comment(self, external_id: int | str, comment: str) -> None:
        """Post a comment on the item."""

    def _run(self, cmd: list[str], action: str) -> str:
        """Run a tracker CLI command. Returns stdout.

        Raises:
            ExternalMirrorError: On timeout, missing CLI or non-zero exit
        """
        result = run_command(cmd, cwd=self.cwd, timeout=CLI_TIMEOUT_SECONDS)
        if not result.success:
            detail = result.stderr.strip() or f"exit code {result.returncode}"
            raise ExternalMirrorError(
                f"{self.name}: failed to {action}: {detail}",
                backend=self.name,
                action=action,
                returncode=result.returncode,
                timed_out=result.timed_out,
            )
        return result.stdout

    def _run_json(self, cmd: list[str], action: str) -> dict:
        stdout = self._run(cmd, action)
        try:
            data = json.loads(stdout)
        except json.JSONDecodeError:
            raise ExternalMirrorError(
                f"{self.name}: unexpected output when trying to {action}",
                backend=self.name,
                action=action,
            ) from None
        if not isinstance(data, dict):
            raise ExternalMirrorError(f"{self.name}: unexpected output when trying to {action}", backend=self.name)
        return data
