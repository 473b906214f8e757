"""Tests for agentplan.workflow.state_machine module."""

import pytest

from agentplan.lib.errors import (
    InvalidTransition,
    TaskAlreadyActive,
    TaskAlreadyCompleted,
    UnmetDependencies,
)
from agentplan.workflow.models import Task, TaskStatus
from agentplan.workflow.state_machine import (
    active_task,
    complete_task,
    reset_task,
    set_blocked,
    start_task,
    transition,
)


def make(task_id, deps=(), status="pending", deprecated=False):
    return Task(id=task_id, title=task_id, dependencies=list(deps), status=status, deprecated=deprecated)


class TestTransition:
    def test_self_transition_is_noop(self):
        task = make("TASK-001")
        assert transition(task, TaskStatus.PENDING) is False

    def test_missing_edge_raises(self):
        task = make("TASK-001")
        with pytest.raises(InvalidTransition) as exc:
            transition(task, TaskStatus.COMPLETED)
        assert exc.value.from_state == "pending"
        assert exc.value.to_state == "completed"
        assert task.status == "pending"


class TestStartTask:
    """Single active task and dependency guards."""

    def test_start_ready_task(self):
        tasks = [make("TASK-001")]
        assert start_task(tasks[0], tasks) is True
        assert tasks[0].status == "in_progress"
        assert active_task(tasks) is tasks[0]

    def test_starting_active_task_again_is_noop(self):
        tasks = [make("TASK-001", status="in_progress")]
        assert start_task(tasks[0], tasks) is False

    def test_second_active_rejected(self):
        tasks = [make("TASK-001", status="in_progress"), make("TASK-002")]
        with pytest.raises(TaskAlreadyActive) as exc:
            start_task(tasks[1], tasks)
        assert exc.value.active_id == "TASK-001"
        assert tasks[1].status == "pending"

    def test_unmet_dependencies_listed(self):
        tasks = [make("TASK-001"), make("TASK-002"), make("TASK-003", ["TASK-001", "TASK-002"])]
        with pytest.raises(UnmetDependencies) as exc:
            start_task(tasks[2], tasks)
        assert exc.value.unmet == ["TASK-001", "TASK-002"]

    def test_completed_cannot_start(self):
        tasks = [make("TASK-001", status="completed")]
        with pytest.raises(TaskAlreadyCompleted):
            start_task(tasks[0], tasks)

    def test_blocked_cannot_start(self):
        tasks = [make("TASK-001", status="blocked")]
        with pytest.raises(InvalidTransition):
            start_task(tasks[0], tasks)

    def test_deprecated_cannot_start(self):
        tasks = [make("TASK-001", deprecated=True)]
        with pytest.raises(InvalidTransition):
            start_task(tasks[0], tasks)


class TestCompleteAndReset:
    def test_complete(self):
        task = make("TASK-001", status="in_progress")
        assert complete_task(task) is True
        assert task.status == "completed"

    def test_complete_twice_rejected(self):
        with pytest.raises(TaskAlreadyCompleted):
            complete_task(make("TASK-001", status="completed"))

    def test_complete_pending_rejected(self):
        with pytest.raises(InvalidTransition):
            complete_task(make("TASK-001"))

    def test_reset_in_progress(self):
        task = make("TASK-001", status="in_progress")
        assert reset_task(task) is True
        assert task.status == "pending"
        assert task.id == "TASK-001"

    def test_reset_completed_needs_force(self):
        task = make("TASK-001", status="completed")
        with pytest.raises(InvalidTransition):
            reset_task(task)
        assert reset_task(task, force=True) is True
        assert task.status == "pending"
        assert task.completed_at is None

    def test_force_reset_pending_is_noop(self):
        assert reset_task(make("TASK-001"), force=True) is False

    def test_blocked_never_resets(self):
        with pytest.raises(InvalidTransition):
            reset_task(make("TASK-001", status="blocked"), force=True)


class TestSetBlocked:
    def test_block_and_unblock(self):
        task = make("TASK-001")
        assert set_blocked(task, True) is True
        assert task.status == "blocked"
        assert set_blocked(task, False) is True
        assert task.status == "pending"

    def test_block_in_progress(self):
        task = make("TASK-001", status="in_progress")
        set_blocked(task, True)
        assert task.status == "blocked"

    def test_unblock_requires_blocked(self):
        with pytest.raises(InvalidTransition):
            set_blocked(make("TASK-001"), False)

    def test_completed_cannot_block(self):
        with pytest.raises(InvalidTransition):
            set_blocked(make("TASK-001", status="completed"), True)
