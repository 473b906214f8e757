"""Task transitions with plan-wide guards.

fsm.py defines which edges exist. This module adds the guards that need the
whole task list and raises typed errors before anything is mutated:

- start: no other task in progress, every dependency completed
- reset: only the active task, unless forced
- block/unblock: amendment path only

Usage:
    from agentplan.workflow.state_machine import start_task

    start_task(task, tasks)
"""

import logging

from transitions import MachineError

from agentplan.lib.errors import (
    InvalidTransition,
    TaskAlreadyActive,
    TaskAlreadyCompleted,
    UnmetDependencies,
)
from agentplan.workflow.deps import unmet_dependencies
from agentplan.workflow.fsm import TRIGGER_FOR, TaskFSM
from agentplan.workflow.models import Task, TaskStatus

logger = logging.getLogger(__name__)


def active_task(tasks: list[Task]) -> Task | None:
    """The single in-progress task, if any."""
    for task in tasks:
        if task.is_active:
            return task
    return None


def transition(task: Task, to_status: TaskStatus, reason: str = "") -> bool:
    """Move task to to_status through the FSM.

    Returns False for a self-transition (no-op), True otherwise.

    Raises:
        InvalidTransition: If no edge leads from the current status to to_status
    """
    reason_str = f" ({reason})" if reason else ""
    current = task.status

    if current == to_status.value:
        logger.debug(f"[STATE] {task.id}: already {current}, no-op")
        return False

    trigger = TRIGGER_FOR.get((current, to_status.value))
    if trigger is None:
        raise InvalidTransition(task.id, current, to_status.value)

    fsm = TaskFSM(task)
    try:
        logger.info(f"[STATE] {task.id}: {current} -> {to_status.value}{reason_str}")
        getattr(fsm, trigger)()
    except MachineError as e:
        raise InvalidTransition(task.id, current, to_status.value) from e
    return True


def check_can_start(task: Task, tasks: list[Task]) -> None:
    """Raise the first guard violation for starting task, if any."""
    if task.deprecated:
        raise InvalidTransition(task.id, task.status, TaskStatus.IN_PROGRESS.value, "task is deprecated")
    if task.is_completed:
        raise TaskAlreadyCompleted(task.id)

    current = active_task(tasks)
    if current is not None and current.id != task.id:
        raise TaskAlreadyActive(current.id)

    if task.status == TaskStatus.BLOCKED.value:
        raise InvalidTransition(
            task.id, task.status, TaskStatus.IN_PROGRESS.value,
            "blocked tasks return to pending only by amendment",
        )

    unmet = unmet_dependencies(task, tasks)
    if unmet:
        raise UnmetDependencies(task.id, unmet)


def start_task(task: Task, tasks: list[Task]) -> bool:
    """pending -> in_progress. Starting the already active task is a no-op."""
    check_can_start(task, tasks)
    return transition(task, TaskStatus.IN_PROGRESS, reason="start")


def complete_task(task: Task) -> bool:
    """in_progress -> completed."""
    if task.is_completed:
        raise TaskAlreadyCompleted(task.id)
    return transition(task, TaskStatus.COMPLETED, reason="complete")


def reset_task(task: Task, force: bool = False) -> bool:
    """Return task to pending.

    in_progress resets freely. completed needs force. blocked never resets
    here (amendment only). The task keeps its id.
    """
    if task.status == TaskStatus.BLOCKED.value:
        raise InvalidTransition(
            task.id, task.status, TaskStatus.PENDING.value,
            "blocked tasks return to pending only by amendment",
        )
    if task.status == TaskStatus.IN_PROGRESS.value:
        return transition(task, TaskStatus.PENDING, reason="reset")
    if not force:
        raise InvalidTransition(
            task.id, task.status, TaskStatus.PENDING.value,
            "task is not in progress; use --force to reset it anyway",
        )
    if task.status == TaskStatus.PENDING.value:
        return False
    logger.warning(f"[STATE] {task.id}: forcing reset of {task.status} task")
    return transition(task, TaskStatus.PENDING, reason="forced reset")


def set_blocked(task: Task, blocked: bool) -> bool:
    """Amendment-only move into or out of blocked."""
    target = TaskStatus.BLOCKED if blocked else TaskStatus.PENDING
    if not blocked and task.status != TaskStatus.BLOCKED.value:
        raise InvalidTransition(task.id, task.status, target.value, "only blocked tasks can be unblocked")
    return transition(task, target, reason="amendment")
