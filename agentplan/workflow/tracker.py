"""TaskTracker maintenance.

The tracker is derived from the task files. It is rebuilt after every
mutation and checked on every load; a tracker that disagrees with its tasks
is reported as corruption, not repaired.
"""

from agentplan.lib.errors import CorruptionError
from agentplan.workflow.models import Task, TaskStatus, TaskTracker

__all__ = ["compute_statistics", "build_tracker", "refresh_tracker", "check_consistency"]


def compute_statistics(tasks: list[Task]) -> dict[str, int]:
    """Per-status counts. Deprecated tasks are counted separately."""
    live = [t for t in tasks if not t.deprecated]

    def count(status: TaskStatus) -> int:
        return sum(1 for t in live if t.status == status.value)

    return {
        "totalTasks": len(live),
        "pending": count(TaskStatus.PENDING),
        "inProgress": count(TaskStatus.IN_PROGRESS),
        "completed": count(TaskStatus.COMPLETED),
        "blocked": count(TaskStatus.BLOCKED),
        "deprecated": len(tasks) - len(live),
    }


def _row(task: Task) -> dict:
    row = {
        "id": task.id,
        "title": task.title,
        "phase": task.phase,
        "status": task.status,
    }
    if task.deprecated:
        row["deprecated"] = True
    return row


def _active_id(tasks: list[Task]) -> str | None:
    active = [t.id for t in tasks if t.is_active]
    if len(active) > 1:
        raise CorruptionError(
            f"Multiple tasks in progress: {', '.join(active)}",
            active=active,
        )
    return active[0] if active else None


def build_tracker(plan_id: str, tasks: list[Task], project_name: str = "",
                  locked_at: str | None = None) -> TaskTracker:
    tracker = TaskTracker(plan_id=plan_id, project_name=project_name, locked_at=locked_at)
    return refresh_tracker(tracker, tasks)


def refresh_tracker(tracker: TaskTracker, tasks: list[Task]) -> TaskTracker:
    """Re-derive rows, activeTask and statistics from tasks (in place)."""
    tracker.active_task = _active_id(tasks)
    tracker.task_files = [_row(t) for t in tasks]
    tracker.statistics = compute_statistics(tasks)
    return tracker


def check_consistency(tracker: TaskTracker, tasks: list[Task]) -> None:
    """Verify a loaded tracker against its task files.

    Raises:
        CorruptionError: If activeTask disagrees with the in-progress tasks,
            or a tracker row disagrees with its task file
    """
    active_id = _active_id(tasks)
    if tracker.active_task != active_id:
        raise CorruptionError(
            f"Tracker activeTask is {tracker.active_task!r} but in-progress task is {active_id!r}",
            tracker_active=tracker.active_task,
            task_active=active_id,
        )

    by_id = {t.id: t for t in tasks}
    for row in tracker.task_files:
        task = by_id.get(row["id"])
        if task is None:
            raise CorruptionError(f"Tracker lists {row['id']} but its task file is missing", task_id=row["id"])
        if row["status"] != task.status:
            raise CorruptionError(
                f"Tracker says {row['id']} is {row['status']} but task file says {task.status}",
                task_id=row["id"],
            )
