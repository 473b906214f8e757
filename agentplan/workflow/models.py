"""
Plan, Task, TaskTracker and AmendmentLogEntry records.

These are transient snapshots of the on-disk documents: every command run
re-reads them. Unknown keys in task documents (testCases, artifacts, ...)
are carried through untouched so authored detail is never lost.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from agentplan.lib.constants import DEFAULT_PHASE


class TaskStatus(Enum):
    """All valid task statuses. Values match the persisted strings."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"


def utc_now() -> str:
    """ISO-8601 UTC timestamp used for every persisted time field."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


# JSON key -> Task attribute, for the fields Task models explicitly
_TASK_FIELDS = {
    "id": "id",
    "title": "title",
    "description": "description",
    "phase": "phase",
    "estimatedHours": "estimated_hours",
    "status": "status",
    "dependencies": "dependencies",
    "completionCriteria": "completion_criteria",
    "startedAt": "started_at",
    "completedAt": "completed_at",
    "externalIssue": "external_issue",
    "deprecated": "deprecated",
}

# Fields an author defines; the rest is runtime state
STRUCTURAL_FIELDS = (
    "title",
    "description",
    "phase",
    "estimatedHours",
    "dependencies",
    "completionCriteria",
    "deprecated",
)


@dataclass
class Task:
    id: str
    title: str
    description: str = ""
    phase: str = DEFAULT_PHASE
    estimated_hours: float | None = None
    status: str = TaskStatus.PENDING.value
    dependencies: list[str] = field(default_factory=list)
    completion_criteria: list[str] = field(default_factory=list)
    started_at: str | None = None
    completed_at: str | None = None
    external_issue: int | str | None = None
    deprecated: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "Task":
        kwargs = {attr: data[key] for key, attr in _TASK_FIELDS.items() if key in data}
        kwargs["dependencies"] = list(kwargs.get("dependencies") or [])
        kwargs["completion_criteria"] = list(kwargs.get("completion_criteria") or [])
        kwargs.setdefault("description", "")
        kwargs.setdefault("phase", DEFAULT_PHASE)
        kwargs["deprecated"] = bool(kwargs.get("deprecated", False))
        extra = {k: v for k, v in data.items() if k not in _TASK_FIELDS}
        return cls(extra=extra, **kwargs)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "phase": self.phase,
            "estimatedHours": self.estimated_hours,
            "status": self.status,
            "dependencies": list(self.dependencies),
            "completionCriteria": list(self.completion_criteria),
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "externalIssue": self.external_issue,
        }
        if self.deprecated:
            data["deprecated"] = True
        data.update(self.extra)
        return data

    def structural(self) -> dict:
        """Author-defined fields only, as stored in the plan document."""
        full = self.to_dict()
        data = {"id": self.id}
        for key in STRUCTURAL_FIELDS:
            if key == "deprecated":
                if self.deprecated:
                    data[key] = True
            elif full[key] is not None:
                data[key] = full[key]
        data.update(self.extra)
        return data

    def get_field(self, key: str) -> Any:
        """Value of a field by its JSON key."""
        return getattr(self, _TASK_FIELDS[key])

    def set_field(self, key: str, value: Any) -> None:
        setattr(self, _TASK_FIELDS[key], value)

    @property
    def is_active(self) -> bool:
        return self.status == TaskStatus.IN_PROGRESS.value

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED.value


@dataclass
class Plan:
    """The authored plan document plus the attributes the engine reads."""
    plan_id: str
    structure: str
    estimated_hours: float | None
    locked_at: str | None
    document: dict

    @property
    def is_locked(self) -> bool:
        return self.locked_at is not None

    @classmethod
    def from_document(cls, document: dict, plan_id: str) -> "Plan":
        hierarchical = any(k in document for k in ("project", "projects"))
        hours = document.get("estimatedHours")
        if hours is None and isinstance(document.get("project"), dict):
            hours = document["project"].get("estimatedHours")
        return cls(
            plan_id=document.get("planId", plan_id),
            structure=document.get("structure", "hierarchical" if hierarchical else "flat"),
            estimated_hours=hours,
            locked_at=document.get("lockedAt"),
            document=document,
        )


@dataclass
class TaskTracker:
    """Denormalized view of every task in a plan."""
    plan_id: str
    active_task: str | None = None
    statistics: dict[str, int] = field(default_factory=dict)
    task_files: list[dict] = field(default_factory=list)
    project_name: str = ""
    locked_at: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "TaskTracker":
        return cls(
            plan_id=data["planId"],
            active_task=data.get("activeTask"),
            statistics=dict(data.get("statistics") or {}),
            task_files=[dict(row) for row in data.get("taskFiles") or []],
            project_name=data.get("projectName", ""),
            locked_at=data.get("lockedAt"),
        )

    def to_dict(self) -> dict:
        return {
            "planId": self.plan_id,
            "projectName": self.project_name,
            "lockedAt": self.locked_at,
            "activeTask": self.active_task,
            "statistics": dict(self.statistics),
            "taskFiles": [dict(row) for row in self.task_files],
        }

    @property
    def task_ids(self) -> list[str]:
        return [row["id"] for row in self.task_files]


@dataclass
class AmendmentLogEntry:
    """One append-only audit record. Never edited after it is written."""
    timestamp: str
    task_id: str
    field: str
    old_value: Any
    new_value: Any
    reason: str
    amended_by: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "AmendmentLogEntry":
        return cls(
            timestamp=data["timestamp"],
            task_id=data["taskId"],
            field=data["field"],
            old_value=data.get("oldValue"),
            new_value=data.get("newValue"),
            reason=data["reason"],
            amended_by=data.get("amendedBy"),
        )

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "taskId": self.task_id,
            "field": self.field,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "reason": self.reason,
            "amendedBy": self.amended_by,
        }
