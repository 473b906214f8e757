"""Plan locking.

Turns an authored PROJECT-PLAN.json into task files and a tracker. The plan
may hold tasks directly or nest them under project/projects, subprojects
and milestones; either way the flattened list keeps declaration order.

Usage:
    from agentplan.workflow.lock import materialize

    locked = materialize(document, plan_id, locked_at=utc_now())
"""

import copy
import logging
from dataclasses import dataclass

from agentplan.lib.constants import format_task_id, task_number
from agentplan.lib.errors import SchemaInvalid
from agentplan.lib.validate import validate
from agentplan.workflow import deps
from agentplan.workflow.models import Task, TaskStatus, TaskTracker
from agentplan.workflow.tracker import build_tracker

logger = logging.getLogger(__name__)

# Nesting keys walked in this order at every level
_NESTED_LISTS = ("milestones", "subprojects", "projects")


@dataclass
class LockedPlan:
    document: dict  # Plan document with ids, planId and lockedAt stamped
    locked_document: dict  # Frozen copy kept as the replay base
    tasks: list[Task]
    tracker: TaskTracker


def extract_tasks(node: dict) -> list[dict]:
    """All task dicts under node, depth first, in declaration order.

    The returned dicts are the plan document's own objects, so stamping an
    id on one updates the document.
    """
    found: list[dict] = []
    found.extend(t for t in node.get("tasks") or [] if isinstance(t, dict))
    for key in _NESTED_LISTS:
        for child in node.get(key) or []:
            if isinstance(child, dict):
                found.extend(extract_tasks(child))
    if isinstance(node.get("project"), dict):
        found.extend(extract_tasks(node["project"]))
    return found


def find_task_dict(document: dict, task_id: str) -> dict | None:
    for task in extract_tasks(document):
        if task.get("id") == task_id:
            return task
    return None


def last_task_container(document: dict) -> dict:
    """The container holding the last declared task; new tasks go here."""

    def walk(node: dict) -> dict | None:
        last = None
        if node.get("tasks"):
            last = node
        for key in _NESTED_LISTS:
            for child in node.get(key) or []:
                if isinstance(child, dict):
                    last = walk(child) or last
        if isinstance(node.get("project"), dict):
            last = walk(node["project"]) or last
        return last

    container = walk(document)
    if container is None:
        container = document
        container.setdefault("tasks", [])
    return container


def highest_task_number(task_dicts: list[dict]) -> int:
    numbers = [task_number(t.get("id", "")) for t in task_dicts]
    return max((n for n in numbers if n is not None), default=0)


def assign_ids(task_dicts: list[dict]) -> list[str]:
    """Give every task without an id the next free TASK-NNN.

    Declared ids are kept. New ids continue after the highest declared one,
    in declaration order. Returns the ids that were assigned.
    """
    next_number = highest_task_number(task_dicts) + 1
    assigned = []
    for task in task_dicts:
        if not task.get("id"):
            task["id"] = format_task_id(next_number)
            assigned.append(task["id"])
            next_number += 1
    if assigned:
        logger.info(f"[LOCK] Assigned ids {assigned[0]}..{assigned[-1]}")
    return assigned


def project_name(document: dict, plan_id: str) -> str:
    project = document.get("project")
    if isinstance(project, dict) and project.get("name"):
        return project["name"]
    return document.get("projectName") or document.get("name") or plan_id


def materialize(document: dict, plan_id: str, locked_at: str) -> LockedPlan:
    """
    Validate an authored plan and build its locked form.

    The document is not modified; the returned copy carries the stamps.

    Raises:
        SchemaInvalid: If the plan fails its schema or declares no tasks
        DuplicateTaskId, UnknownDependency, CycleDetected: From the
            dependency validator
    """
    validate(document, "plan")
    document = copy.deepcopy(document)

    raw_tasks = extract_tasks(document)
    if not raw_tasks:
        raise SchemaInvalid("plan", ["Plan declares no tasks"])

    assign_ids(raw_tasks)
    tasks = []
    for raw in raw_tasks:
        task = Task.from_dict(raw)
        # Every task starts pending; authored runtime fields are ignored
        task.status = TaskStatus.PENDING.value
        task.started_at = None
        task.completed_at = None
        task.external_issue = None
        tasks.append(task)

    deps.validate(tasks)

    document["planId"] = plan_id
    document["lockedAt"] = locked_at
    document.setdefault("structure", "flat" if "tasks" in document else "hierarchical")

    tracker = build_tracker(plan_id, tasks, project_name(document, plan_id), locked_at)
    logger.info(f"[LOCK] {plan_id}: {len(tasks)} task(s) locked")
    return LockedPlan(
        document=document,
        locked_document=copy.deepcopy(document),
        tasks=tasks,
        tracker=tracker,
    )
