"""
Azure Boards backend, driven through `az boards work-item`.

Requires the azure-devops CLI extension and `az login`. Azure has no
blocked state, so blocked tasks stay New and carry a "blocked" tag.
"""

import html
import logging
from pathlib import Path

from agentplan.lib.config import AzureSettings
from agentplan.lib.errors import ExternalMirrorError
from agentplan.platform.base import TrackerBackend, item_title, require_total
from agentplan.workflow.models import Task

logger = logging.getLogger(__name__)

# status -> (work item state, extra tags)
STATUS_MAP = require_total(
    {
        "pending": ("New", []),
        "in_progress": ("Active", []),
        "completed": ("Closed", []),
        "blocked": ("New", ["blocked"]),
    },
    "Azure",
)


def work_item_tags(task: Task) -> str:
    """System.Tags value: semicolon separated."""
    _, extra = STATUS_MAP[task.status]
    return "; ".join([f"phase: {task.phase}"] + extra)


def work_item_description(task: Task) -> str:
    """HTML description, as Azure Boards renders it."""
    parts = [f"<h2>{html.escape(task.title)}</h2>"]
    if task.description:
        parts.append(f"<p>{html.escape(task.description)}</p>")
    parts.append(f"<p><strong>Phase:</strong> {html.escape(task.phase)}</p>")
    if task.estimated_hours is not None:
        parts.append(f"<p><strong>Estimated Hours:</strong> {task.estimated_hours}</p>")
    if task.completion_criteria:
        items = "".join(f"<li>{html.escape(c)}</li>" for c in task.completion_criteria)
        parts.append(f"<h3>Completion Criteria</h3><ul>{items}</ul>")
    return "\n".join(parts)


class AzureBackend(TrackerBackend):
    name = "azure"

    def __init__(self, settings: AzureSettings, cwd: Path | None = None):
        super().__init__(cwd)
        self.settings = settings

    def is_configured(self) -> bool:
        return bool(self.settings.enabled and self.settings.organization and self.settings.project)

    def _org(self) -> list[str]:
        return [
            "--organization", f"https://dev.azure.com/{self.settings.organization}",
            "--output", "json",
        ]

    def create_item(self, task: Task) -> int:
        cmd = [
            "az", "boards", "work-item", "create",
            "--title", item_title(task),
            "--type", self.settings.work_item_type,
            "--description", work_item_description(task),
            "--fields", f"System.Tags={work_item_tags(task)}",
            "--project", self.settings.project,
        ] + self._org()
        data = self._run_json(cmd, f"create work item for {task.id}")
        item_id = data.get("id")
        if not isinstance(item_id, int):
            raise ExternalMirrorError(f"azure: no work item id returned for {task.id}", backend=self.name)
        logger.info(f"[MIRROR] {task.id} -> Azure work item {item_id}")
        return item_id

    def _update(self, external_id: int | str, extra: list[str], action: str) -> None:
        cmd = ["az", "boards", "work-item", "update", "--id", str(external_id)] + extra
        self._run_json(cmd + self._org(), action)

    def update_item(self, task: Task, external_id: int | str) -> None:
        state, _ = STATUS_MAP[task.status]
        self._update(
            external_id,
            ["--state", state, "--fields", f"System.Tags={work_item_tags(task)}"],
            f"update work item {external_id}",
        )
        logger.info(f"[MIRROR] Azure work item {external_id} -> {state}")

    def close_item(self, external_id: int | str, comment: str | None = None) -> None:
        extra = ["--state", STATUS_MAP["completed"][0]]
        if comment:
            extra += ["--discussion", comment]
        self._update(external_id, extra, f"close work item {external_id}")
        logger.info(f"[MIRROR] Closed Azure work item {external_id}")

    def add_comment(self, external_id: int | str, comment: str) -> None:
        self._update(external_id, ["--discussion", comment], f"comment on work item {external_id}")
