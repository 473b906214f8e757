"""Shared constants for agentplan."""

import re

CLAUDE_DIR = ".claude"
PLANS_DIR = "plans"
ARCHIVED_DIR = "archived"
ACTIVE_PLAN_FILE = "ACTIVE-PLAN"
PROJECT_PLAN_FILE = "PROJECT-PLAN.json"
REQUIREMENTS_FILE = "PROJECT-REQUIREMENTS.txt"
TRACKER_FILE = "TASK-TRACKER.json"
AMENDMENTS_FILE = "AMENDMENTS.json"
LOCKED_PLAN_FILE = "LOCKED-PLAN.json"
ARCHIVE_META_FILE = "ARCHIVE-META.json"
LOCKED_MARKER = ".plan-locked"
TASKS_DIR = "tasks"
LOCK_FILE = ".agentplan.lock"

# Id formats
TASK_ID_PATTERN = re.compile(r'^TASK-(\d{3,})$')

DEFAULT_PHASE = "implementation"

JSON_INDENT = 2


def format_task_id(number: int) -> str:
    return f"TASK-{number:03d}"


def task_number(task_id: str) -> int | None:
    """Numeric part of a TASK-NNN id, or None if it doesn't match."""
    match = TASK_ID_PATTERN.match(task_id or "")
    return int(match.group(1)) if match else None
