"""
Persistent store for agentplan.

The JSON tree under .claude/plans/<planId>/ is the single source of truth.
Every command re-reads it, validates it at the boundary and writes back
through commit(), which stages every document to a temp file before
renaming any of them into place.

Layout:
    PROJECT-REQUIREMENTS.txt   free-text requirements (draft)
    PROJECT-PLAN.json          authored plan, lockedAt stamped at lock
    LOCKED-PLAN.json           plan as it was at lock time (replay base)
    TASK-TRACKER.json          derived summary of every task
    tasks/TASK-NNN.json        one file per task (authoritative)
    AMENDMENTS.json            append-only audit log
    .plan-locked               lock timestamp
"""

import json
import logging
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from agentplan.lib.config import ProjectContext
from agentplan.lib.constants import (
    AMENDMENTS_FILE,
    ARCHIVE_META_FILE,
    ARCHIVED_DIR,
    JSON_INDENT,
    LOCKED_MARKER,
    LOCKED_PLAN_FILE,
    PROJECT_PLAN_FILE,
    REQUIREMENTS_FILE,
    TASKS_DIR,
    TRACKER_FILE,
)
from agentplan.lib.errors import (
    CorruptionError,
    NoActivePlan,
    PlanNotFound,
    PlanNotLocked,
    SchemaInvalid,
    TrackerMissing,
)
from agentplan.lib.validate import validate, validate_before_write
from agentplan.workflow.models import AmendmentLogEntry, Plan, Task, TaskTracker
from agentplan.workflow.tracker import check_consistency

logger = logging.getLogger(__name__)

_PLAN_DIR_RE = re.compile(r"^plan-(\d{3})-", re.IGNORECASE)


@dataclass
class PlanSnapshot:
    """Everything loaded for one locked plan during one command run."""
    plan: Plan
    tasks: list[Task]
    tracker: TaskTracker
    amendments: list[AmendmentLogEntry] = field(default_factory=list)

    def get_task(self, task_id: str) -> Task | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None


def dump_json(data) -> str:
    return json.dumps(data, indent=JSON_INDENT, ensure_ascii=False) + "\n"


def read_json(path: Path, schema_name: str):
    """Parse a stored JSON document. Unparseable content is a schema failure."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise SchemaInvalid(schema_name, [f"Invalid JSON in {path}: {e}"]) from None


def _stage(path: Path, content: str) -> str:
    """Write content to a temp file beside path. Returns the temp path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
    except BaseException:
        os.unlink(tmp_path)
        raise
    return tmp_path


def commit(writes: list[tuple[Path, str]]) -> None:
    """
    Write several files so that no reader sees a half-written document.

    All contents are staged first. If staging fails nothing on disk
    changes; only then is each temp file renamed over its target.
    """
    staged: list[tuple[str, Path]] = []
    try:
        for path, content in writes:
            staged.append((_stage(path, content), path))
    except BaseException:
        for tmp_path, _ in staged:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise

    for tmp_path, path in staged:
        os.replace(tmp_path, path)
    logger.debug(f"[STORE] Committed {len(staged)} file(s)")


def next_plan_id(plans_dir: Path, suffix: str = "generated") -> str:
    """plan-NNN-<suffix>, one past the highest number used, archived plans included."""
    numbers = []
    for parent in (plans_dir, plans_dir / ARCHIVED_DIR):
        if not parent.exists():
            continue
        for entry in parent.iterdir():
            match = _PLAN_DIR_RE.match(entry.name)
            if entry.is_dir() and match:
                numbers.append(int(match.group(1)))
    return f"plan-{max(numbers, default=0) + 1:03d}-{suffix}"


class PlanStore:
    """File access for one plan of one project."""

    def __init__(self, ctx: ProjectContext, plan_id: str | None = None):
        plan_id = plan_id or ctx.plan_id
        if not plan_id:
            raise NoActivePlan()
        self.ctx = ctx
        self.plan_id = plan_id
        self.plan_dir = ctx.plans_dir / plan_id

    # --- paths ---

    @property
    def plan_file(self) -> Path:
        return self.plan_dir / PROJECT_PLAN_FILE

    @property
    def requirements_file(self) -> Path:
        return self.plan_dir / REQUIREMENTS_FILE

    @property
    def tracker_file(self) -> Path:
        return self.plan_dir / TRACKER_FILE

    @property
    def amendments_file(self) -> Path:
        return self.plan_dir / AMENDMENTS_FILE

    @property
    def locked_plan_file(self) -> Path:
        return self.plan_dir / LOCKED_PLAN_FILE

    @property
    def marker_file(self) -> Path:
        return self.plan_dir / LOCKED_MARKER

    @property
    def tasks_dir(self) -> Path:
        return self.plan_dir / TASKS_DIR

    def task_file(self, task_id: str) -> Path:
        return self.tasks_dir / f"{task_id}.json"

    def exists(self) -> bool:
        return self.plan_dir.is_dir()

    def is_locked(self) -> bool:
        return self.marker_file.exists()

    # --- reads ---

    def load_plan_document(self) -> dict:
        """Read and validate PROJECT-PLAN.json."""
        if not self.exists():
            raise PlanNotFound(self.plan_id, str(self.plan_dir))
        if not self.plan_file.exists():
            raise PlanNotFound(self.plan_id, str(self.plan_file))
        document = read_json(self.plan_file, "plan")
        validate(document, "plan")
        return document

    def load_plan(self) -> Plan:
        return Plan.from_document(self.load_plan_document(), self.plan_id)

    def load_locked_document(self) -> dict:
        """The plan document as it was when the plan was locked."""
        if not self.locked_plan_file.exists():
            raise PlanNotFound(self.plan_id, str(self.locked_plan_file))
        return read_json(self.locked_plan_file, "plan")

    def load_tracker(self) -> TaskTracker:
        if not self.tracker_file.exists():
            raise TrackerMissing(self.plan_id)
        data = read_json(self.tracker_file, "tracker")
        validate(data, "tracker")
        return TaskTracker.from_dict(data)

    def load_tasks(self, order: list[str]) -> list[Task]:
        """
        Read every task file, in the given declaration order.

        Raises:
            SchemaInvalid: If a task file is not valid JSON or fails its schema
            CorruptionError: If a file name disagrees with its id, or a task
                file exists that the order doesn't mention
        """
        by_id: dict[str, Task] = {}
        if self.tasks_dir.exists():
            for path in sorted(self.tasks_dir.glob("*.json")):
                data = read_json(path, "task")
                validate(data, "task")
                if data["id"] != path.stem:
                    raise CorruptionError(
                        f"Task file {path.name} holds task {data['id']}",
                        task_id=data["id"],
                        path=str(path),
                    )
                by_id[data["id"]] = Task.from_dict(data)

        unlisted = sorted(set(by_id) - set(order))
        if unlisted:
            raise CorruptionError(
                f"Task files not listed in the tracker: {', '.join(unlisted)}",
                task_ids=unlisted,
            )
        return [by_id[task_id] for task_id in order if task_id in by_id]

    def load_amendments(self) -> list[AmendmentLogEntry]:
        if not self.amendments_file.exists():
            return []
        data = read_json(self.amendments_file, "amendments")
        validate(data, "amendments")
        return [AmendmentLogEntry.from_dict(entry) for entry in data]

    def load_snapshot(self) -> PlanSnapshot:
        """
        Load a locked plan and verify its tracker against the task files.

        Raises:
            PlanNotFound: If the plan directory or document is missing
            PlanNotLocked: If the plan has not been locked yet
            TrackerMissing: If the tracker file is missing
            CorruptionError: If the tracker disagrees with the task files
        """
        plan = self.load_plan()
        if not self.is_locked():
            raise PlanNotLocked(self.plan_id)
        tracker = self.load_tracker()
        tasks = self.load_tasks(tracker.task_ids)
        check_consistency(tracker, tasks)
        return PlanSnapshot(plan=plan, tasks=tasks, tracker=tracker, amendments=self.load_amendments())

    # --- writes ---

    def save(
        self,
        plan_document: dict | None = None,
        tasks: list[Task] | None = None,
        tracker: TaskTracker | None = None,
        amendments: list[AmendmentLogEntry] | None = None,
        locked_document: dict | None = None,
        marker: str | None = None,
    ) -> None:
        """
        Validate and atomically persist the given documents together.

        The lock marker is renamed into place last, so a crash mid-lock
        leaves the plan unlocked rather than half locked.
        """
        writes: list[tuple[Path, str]] = []
        for task in tasks or []:
            data = task.to_dict()
            validate_before_write(data, "task", self.task_file(task.id))
            writes.append((self.task_file(task.id), dump_json(data)))
        if plan_document is not None:
            validate_before_write(plan_document, "plan", self.plan_file)
            writes.append((self.plan_file, dump_json(plan_document)))
        if locked_document is not None:
            writes.append((self.locked_plan_file, dump_json(locked_document)))
        if tracker is not None:
            data = tracker.to_dict()
            validate_before_write(data, "tracker", self.tracker_file)
            writes.append((self.tracker_file, dump_json(data)))
        if amendments is not None:
            data = [entry.to_dict() for entry in amendments]
            validate_before_write(data, "amendments", self.amendments_file)
            writes.append((self.amendments_file, dump_json(data)))
        if marker is not None:
            writes.append((self.marker_file, marker + "\n"))
        commit(writes)

    def create_draft(self, requirements: str) -> Path:
        """Create the plan directory with its requirements file."""
        self.plan_dir.mkdir(parents=True, exist_ok=True)
        commit([(self.requirements_file, requirements)])
        return self.requirements_file

    def archive(self, meta: dict) -> Path:
        """Move the plan to plans/archived/<planId> and write ARCHIVE-META.json."""
        if not self.exists():
            raise PlanNotFound(self.plan_id, str(self.plan_dir))
        archived_root = self.ctx.plans_dir / ARCHIVED_DIR
        target = archived_root / self.plan_id
        if target.exists():
            raise CorruptionError(
                f"Archive target {target} already exists",
                plan_id=self.plan_id,
                path=str(target),
            )
        archived_root.mkdir(parents=True, exist_ok=True)
        shutil.move(str(self.plan_dir), str(target))
        commit([(target / ARCHIVE_META_FILE, dump_json(meta))])
        logger.info(f"[STORE] Archived {self.plan_id} to {target}")
        return target
