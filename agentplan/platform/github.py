"""
GitHub Issues backend, driven through the gh CLI.

Uses the REST endpoints via `gh api` so labels that don't exist yet are
created on first use. Authentication is whatever `gh auth login` set up.
"""

import logging
import re
from pathlib import Path

from agentplan.lib.config import GitHubSettings
from agentplan.lib.errors import ExternalMirrorError
from agentplan.platform.base import TrackerBackend, item_title, require_total
from agentplan.workflow.models import Task

logger = logging.getLogger(__name__)

STATE_OPEN = "open"
STATE_CLOSED = "closed"

# status -> (issue state, labels)
STATUS_MAP = require_total(
    {
        "pending": (STATE_OPEN, ["status: todo"]),
        "in_progress": (STATE_OPEN, ["status: in progress"]),
        "completed": (STATE_CLOSED, ["status: done"]),
        "blocked": (STATE_OPEN, ["status: todo", "blocked"]),
    },
    "GitHub",
)

_REMOTE_RE = re.compile(r"github\.com[:/]([^/]+)/(.+?)(?:\.git)?/?$")


def parse_repo(remote_url: str | None) -> tuple[str, str] | None:
    """(owner, repo) from a GitHub remote URL, https or ssh."""
    if not remote_url:
        return None
    match = _REMOTE_RE.search(remote_url)
    if not match:
        return None
    return match.group(1), match.group(2)


def issue_labels(task: Task) -> list[str]:
    _, labels = STATUS_MAP[task.status]
    return labels + [f"phase: {task.phase}"]


def issue_body(task: Task) -> str:
    """Markdown issue body."""
    lines = [task.description or task.title, ""]
    lines.append(f"**Phase:** {task.phase}")
    if task.estimated_hours is not None:
        lines.append(f"**Estimated hours:** {task.estimated_hours}")
    if task.dependencies:
        lines.append(f"**Depends on:** {', '.join(task.dependencies)}")
    if task.completion_criteria:
        lines.extend(["", "### Completion criteria"])
        lines.extend(f"- [ ] {c}" for c in task.completion_criteria)
    return "\n".join(lines) + "\n"


class GitHubBackend(TrackerBackend):
    name = "github"

    def __init__(self, settings: GitHubSettings, remote_url: str | None = None, cwd: Path | None = None):
        super().__init__(cwd)
        self.settings = settings
        self.owner = settings.owner
        self.repo = settings.repo
        if not (self.owner and self.repo):
            parsed = parse_repo(remote_url)
            if parsed:
                self.owner = self.owner or parsed[0]
                self.repo = self.repo or parsed[1]

    def is_configured(self) -> bool:
        return bool(self.settings.enabled and self.owner and self.repo)

    @property
    def issues_path(self) -> str:
        return f"repos/{self.owner}/{self.repo}/issues"

    def _api(self, method: str, path: str, fields: list[tuple[str, str]], action: str) -> dict:
        cmd = ["gh", "api", "-X", method, path]
        for key, value in fields:
            cmd += ["-f", f"{key}={value}"]
        return self._run_json(cmd, action)

    def create_item(self, task: Task) -> int:
        fields = [("title", item_title(task)), ("body", issue_body(task))]
        fields += [("labels[]", label) for label in issue_labels(task)]
        data = self._api("POST", self.issues_path, fields, f"create issue for {task.id}")
        number = data.get("number")
        if not isinstance(number, int):
            raise ExternalMirrorError(f"github: no issue number returned for {task.id}", backend=self.name)
        logger.info(f"[MIRROR] {task.id} -> GitHub issue #{number}")
        return number

    def update_item(self, task: Task, external_id: int | str) -> None:
        state, _ = STATUS_MAP[task.status]
        fields = [("state", state)] + [("labels[]", label) for label in issue_labels(task)]
        self._api("PATCH", f"{self.issues_path}/{external_id}", fields, f"update issue #{external_id}")
        logger.info(f"[MIRROR] GitHub issue #{external_id} -> {task.status}")

    def close_item(self, external_id: int | str, comment: str | None = None) -> None:
        if comment:
            self.add_comment(external_id, comment)
        self._api("PATCH", f"{self.issues_path}/{external_id}", [("state", STATE_CLOSED)],
                  f"close issue #{external_id}")
        logger.info(f"[MIRROR] Closed GitHub issue #{external_id}")

    def add_comment(self, external_id: int | str, comment: str) -> None:
        self._api("POST", f"{self.issues_path}/{external_id}/comments", [("body", comment)],
                  f"comment on issue #{external_id}")
