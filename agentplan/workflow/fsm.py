"""Task state machine using transitions library.

Each trigger is one edge of the task lifecycle:

    pending --start--> in_progress --complete--> completed
    in_progress --reset--> pending
    completed --force_reset--> pending
    pending/in_progress --block--> blocked --unblock--> pending

Guards that need the whole plan (single active task, dependencies) live in
state_machine.py; this module only knows which edges exist.

Usage:
    from agentplan.workflow.fsm import TaskFSM

    fsm = TaskFSM(task)
    fsm.start()
    fsm.complete()
"""

import logging
from transitions import Machine

from agentplan.lib.errors import CorruptionError
from agentplan.workflow.models import Task, utc_now

logger = logging.getLogger(__name__)


# State values must match TaskStatus enum
STATES = [
    "pending",
    "in_progress",
    "completed",
    "blocked",
]

TRANSITIONS = [
    {"trigger": "start", "source": "pending", "dest": "in_progress"},
    {"trigger": "complete", "source": "in_progress", "dest": "completed"},

    # Reset escape hatch; completed tasks need an explicit force
    {"trigger": "reset", "source": "in_progress", "dest": "pending"},
    {"trigger": "force_reset", "source": "completed", "dest": "pending"},

    # Blocking is set and cleared by amendment only
    {"trigger": "block", "source": "pending", "dest": "blocked"},
    {"trigger": "block", "source": "in_progress", "dest": "blocked"},
    {"trigger": "unblock", "source": "blocked", "dest": "pending"},
]


def _build_trigger_lookup() -> dict[tuple[str, str], str]:
    """Build lookup from (source, dest) -> trigger name."""
    lookup: dict[tuple[str, str], str] = {}
    for t in TRANSITIONS:
        key = (t["source"], t["dest"])
        if key not in lookup:  # First trigger wins for a given source->dest
            lookup[key] = t["trigger"]
    return lookup


TRIGGER_FOR = _build_trigger_lookup()


class TaskFSM:
    """State machine for a single task.

    Wraps the transitions library with task-specific side effects:
    - Starts from the task's persisted status
    - Writes the new status and lifecycle timestamps back onto the task
    - Logs all transitions

    Persisting is the caller's job; the store writes all documents together.
    """

    def __init__(self, task: Task):
        self.task = task

        if task.status not in STATES:
            raise CorruptionError(
                f"Task {task.id} has unknown status '{task.status}'",
                task_id=task.id,
                status=task.status,
            )

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=task.status,
            auto_transitions=False,  # Only explicit transitions
            send_event=True,  # Pass EventData to callbacks
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        """Callback after any state transition. Applies side effects to the task."""
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        self.task.status = to_state
        if to_state == "in_progress":
            self.task.started_at = utc_now()
            self.task.completed_at = None
        elif to_state == "completed":
            self.task.completed_at = utc_now()
        elif to_state == "pending":
            self.task.started_at = None
            self.task.completed_at = None

        logger.info(f"[FSM] {self.task.id}: {from_state} -> {to_state} ({trigger})")
