"""Post-lock plan amendments.

A locked plan changes only through apply_amendment(). Each accepted change
appends one AmendmentLogEntry per field changed; nothing is ever deleted,
a task is retired by setting deprecated.

Change kinds:
    set        {"kind": "set", "taskId": ..., "field": ..., "value": ...}
    add        {"kind": "add", "task": {"title": ..., ...}}
    deprecate  {"kind": "deprecate", "taskId": ...}

replay_amendments() rebuilds the task set from the plan as it was locked
plus the log, which is how the log is audited.
"""

import copy
import logging
from dataclasses import dataclass, field as dc_field
from typing import Any

from agentplan.lib.constants import format_task_id
from agentplan.lib.errors import AmendmentRejected, SchemaInvalid, TaskNotFound
from agentplan.lib.validate import validate
from agentplan.workflow import deps
from agentplan.workflow.lock import extract_tasks, find_task_dict, highest_task_number, last_task_container
from agentplan.workflow.models import AmendmentLogEntry, Task, TaskStatus, utc_now
from agentplan.workflow.state_machine import set_blocked

logger = logging.getLogger(__name__)

KINDS = ("set", "add", "deprecate")

SETTABLE_FIELDS = (
    "title",
    "description",
    "phase",
    "estimatedHours",
    "dependencies",
    "completionCriteria",
    "status",
)


@dataclass
class Amendment:
    kind: str
    task_id: str | None = None
    field: str | None = None
    value: Any = None
    task: dict = dc_field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "Amendment":
        return cls(
            kind=data.get("kind", "set"),
            task_id=data.get("taskId"),
            field=data.get("field"),
            value=data.get("value"),
            task=dict(data.get("task") or {}),
        )


def _require_task(tasks: list[Task], task_id: str | None) -> Task:
    for task in tasks:
        if task.id == task_id:
            return task
    raise TaskNotFound(task_id or "")


def _check_schema(task: Task) -> None:
    validate(task.to_dict(), "task")


def _check_dependency_targets(task: Task, tasks: list[Task], added: list[str]) -> None:
    by_id = {t.id: t for t in tasks}
    for dep in added:
        target = by_id.get(dep)
        if target is not None and target.deprecated:
            raise AmendmentRejected(f"{task.id} cannot depend on deprecated task {dep}", task_id=task.id)
    if task.status in (TaskStatus.COMPLETED.value, TaskStatus.IN_PROGRESS.value):
        incomplete = [d for d in added if d in by_id and not by_id[d].is_completed]
        if incomplete:
            raise AmendmentRejected(
                f"{task.id} is {task.status}; it cannot gain incomplete dependencies: {', '.join(incomplete)}",
                task_id=task.id,
            )


def _set_field(document: dict, tasks: list[Task], change: Amendment) -> tuple[list[AmendmentLogEntry], list[Task]]:
    task = _require_task(tasks, change.task_id)
    if change.field not in SETTABLE_FIELDS:
        raise AmendmentRejected(
            f"Field '{change.field}' cannot be amended (allowed: {', '.join(SETTABLE_FIELDS)})",
            task_id=task.id,
        )
    if task.deprecated:
        raise AmendmentRejected(f"{task.id} is deprecated", task_id=task.id)

    old_value = copy.deepcopy(task.get_field(change.field))
    new_value = copy.deepcopy(change.value)
    if old_value == new_value:
        raise AmendmentRejected(f"{task.id}.{change.field} is already {new_value!r}", task_id=task.id)

    candidate = copy.deepcopy(task)
    if change.field == "status":
        if new_value not in (TaskStatus.BLOCKED.value, TaskStatus.PENDING.value):
            raise AmendmentRejected(
                f"Amendments can only set status to blocked or pending, not {new_value!r}",
                task_id=task.id,
            )
        set_blocked(candidate, new_value == TaskStatus.BLOCKED.value)
    else:
        candidate.set_field(change.field, new_value)
    _check_schema(candidate)

    if change.field == "dependencies":
        if task.id in new_value:
            raise AmendmentRejected(f"{task.id} cannot depend on itself", task_id=task.id)
        added = [d for d in new_value if d not in old_value]
        deps.validate([candidate if t.id == task.id else t for t in tasks])
        _check_dependency_targets(candidate, tasks, added)

    # All checks passed; apply
    if change.field == "status":
        task.status = candidate.status
        task.started_at = candidate.started_at
        task.completed_at = candidate.completed_at
    else:
        task.set_field(change.field, new_value)
        raw = find_task_dict(document, task.id)
        if raw is not None:
            if new_value is None:
                raw.pop(change.field, None)
            else:
                raw[change.field] = copy.deepcopy(new_value)

    entry = AmendmentLogEntry(
        timestamp=utc_now(),
        task_id=task.id,
        field=change.field,
        old_value=old_value,
        new_value=new_value,
        reason="",
    )
    return [entry], [task]


def _add_task(document: dict, tasks: list[Task], change: Amendment) -> tuple[list[AmendmentLogEntry], list[Task]]:
    if not change.task.get("title"):
        raise AmendmentRejected("A new task needs a title")
    if change.task.get("id"):
        raise AmendmentRejected("New task ids are assigned, not supplied", task_id=change.task["id"])

    # Ids of deprecated tasks stay taken
    known = [{"id": t.id} for t in tasks] + extract_tasks(document)
    new_id = format_task_id(highest_task_number(known) + 1)

    task = Task.from_dict({**change.task, "id": new_id})
    task.status = TaskStatus.PENDING.value
    task.started_at = task.completed_at = task.external_issue = None
    task.deprecated = False
    try:
        _check_schema(task)
    except SchemaInvalid as e:
        raise AmendmentRejected(f"New task is invalid: {e.message}", task_id=new_id) from None

    candidates = tasks + [task]
    deps.validate(candidates)
    _check_dependency_targets(task, tasks, task.dependencies)

    tasks.append(task)
    structural = task.structural()
    last_task_container(document)["tasks"].append(copy.deepcopy(structural))

    entry = AmendmentLogEntry(
        timestamp=utc_now(),
        task_id=new_id,
        field="task",
        old_value=None,
        new_value=structural,
        reason="",
    )
    return [entry], [task]


def _deprecate(document: dict, tasks: list[Task], change: Amendment) -> tuple[list[AmendmentLogEntry], list[Task]]:
    task = _require_task(tasks, change.task_id)
    if task.deprecated:
        raise AmendmentRejected(f"{task.id} is already deprecated", task_id=task.id)
    if task.is_active:
        raise AmendmentRejected(f"{task.id} is in progress; reset it before deprecating", task_id=task.id)
    dependents = deps.dependents_of(task.id, tasks)
    if dependents:
        raise AmendmentRejected(
            f"{task.id} is still a dependency of {', '.join(dependents)}",
            task_id=task.id,
        )

    task.deprecated = True
    raw = find_task_dict(document, task.id)
    if raw is not None:
        raw["deprecated"] = True

    entry = AmendmentLogEntry(
        timestamp=utc_now(),
        task_id=task.id,
        field="deprecated",
        old_value=False,
        new_value=True,
        reason="",
    )
    return [entry], [task]


_HANDLERS = {
    "set": _set_field,
    "add": _add_task,
    "deprecate": _deprecate,
}


def apply_amendment(
    document: dict,
    tasks: list[Task],
    change: Amendment,
    reason: str,
    amended_by: str | None = None,
) -> tuple[list[AmendmentLogEntry], list[Task]]:
    """
    Validate and apply one change to a locked plan, in memory.

    document and tasks are updated in place only once every check has
    passed. Returns the new log entries and the tasks whose files changed.

    Raises:
        AmendmentRejected: Empty reason, unknown kind or field, no-op change,
            or a change the plan's state doesn't allow
        TaskNotFound: If the target task doesn't exist
        SchemaInvalid: If the new value breaks the task schema
        UnknownDependency, CycleDetected: From the dependency validator
        InvalidTransition: For a status change the state machine refuses
    """
    if not reason or not reason.strip():
        raise AmendmentRejected("An amendment needs a reason", task_id=change.task_id)
    handler = _HANDLERS.get(change.kind)
    if handler is None:
        raise AmendmentRejected(f"Unknown amendment kind '{change.kind}' (expected one of: {', '.join(KINDS)})")

    entries, changed = handler(document, tasks, change)
    for entry in entries:
        entry.reason = reason.strip()
        entry.amended_by = amended_by
        logger.info(f"[AMEND] {entry.task_id}.{entry.field}: {entry.old_value!r} -> {entry.new_value!r}")
    return entries, changed


def replay_amendments(locked_document: dict, entries: list[AmendmentLogEntry]) -> list[Task]:
    """
    Rebuild the task set from the plan as locked plus the amendment log.

    Only amendment-owned state is reproduced: structure, deprecation and
    blocked status. Progress made with start/complete is not in the log.
    """
    tasks = [Task.from_dict(raw) for raw in extract_tasks(copy.deepcopy(locked_document))]
    for entry in entries:
        if entry.field == "task":
            tasks.append(Task.from_dict(copy.deepcopy(entry.new_value)))
            continue
        task = _require_task(tasks, entry.task_id)
        if entry.field == "deprecated":
            task.deprecated = bool(entry.new_value)
        else:
            task.set_field(entry.field, copy.deepcopy(entry.new_value))
    return tasks
