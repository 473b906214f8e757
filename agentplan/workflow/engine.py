"""Plan engine: the operations the CLI exposes.

Each operation follows the same path:

    acquire project lock -> load store -> validate -> mutate -> persist
    -> release lock -> mirror to the issue tracker -> record external ids

Local state is committed before any external call. A mirror failure is a
warning on the Result, never a failure, and never rolls anything back.
Errors raised by inner layers come back as Result.failure(); only truly
unexpected exceptions propagate.
"""

import logging
from typing import Callable

from agentplan.lib.config import ProjectContext, clear_active_plan, get_active_plan, set_active_plan
from agentplan.lib.constants import ARCHIVED_DIR
from agentplan.lib.errors import (
    ActivePlanExists,
    ExternalMirrorError,
    NoActiveTask,
    PlanError,
    TaskAlreadyActive,
    TaskNotFound,
    ValidationError,
)
from agentplan.lib.locking import LOCK_TIMEOUT_SECONDS, project_lock
from agentplan.lib.result import Result
from agentplan.lib.store import PlanSnapshot, PlanStore, next_plan_id
from agentplan.platform.router import PlatformRouter
from agentplan.workflow import deps, state_machine
from agentplan.workflow.amend import Amendment, apply_amendment, replay_amendments
from agentplan.workflow.lock import materialize
from agentplan.workflow.models import Task, utc_now
from agentplan.workflow.tracker import refresh_tracker

logger = logging.getLogger(__name__)

REQUIREMENTS_TEMPLATE = """PROJECT REQUIREMENTS
{rule}

{description}

Generated: {generated}
PLAN ID: {plan_id}
{rule}

NEXT STEPS
{rule}

1. Write PROJECT-PLAN.json in this directory: tasks with titles,
   phases (design, implementation, testing, deployment), dependencies,
   estimated hours and completion criteria. Tasks may sit directly
   under "tasks" or inside project / subprojects / milestones.
2. Run `agentplan plan lock` to validate the plan and create the tasks.
"""


class PlanEngine:
    """Task/plan lifecycle for one project."""

    def __init__(
        self,
        ctx: ProjectContext,
        router: PlatformRouter | None = None,
        lock_timeout: float = LOCK_TIMEOUT_SECONDS,
    ):
        self.ctx = ctx
        self._router = router
        self.lock_timeout = lock_timeout

    @property
    def router(self) -> PlatformRouter:
        if self._router is None:
            self._router = PlatformRouter.from_project(self.ctx.root)
        return self._router

    # --- plumbing ---

    def _lock(self):
        return project_lock(self.ctx.claude_dir, timeout=self.lock_timeout)

    def _store(self) -> PlanStore:
        return PlanStore(self.ctx, self.ctx.plan_id or get_active_plan(self.ctx.root))

    def _guarded(self, operation: str, fn: Callable, *args) -> Result:
        """Run an operation, turning PlanErrors into failed Results."""
        warnings: list[str] = []
        try:
            value = fn(*args, warnings)
        except PlanError as e:
            logger.info(f"[ENGINE] {operation} rejected: {e.kind}: {e.message}")
            return Result.failure(e, warnings)
        return Result.success(value, warnings)

    def _mirror(self, action: str, fn: Callable, warnings: list[str], *args):
        """Call the router; a failure becomes a warning."""
        try:
            return fn(*args)
        except ExternalMirrorError as e:
            message = f"Could not {action} in {self.router.name}: {e.message}"
            logger.warning(f"[MIRROR] {message}")
            warnings.append(message)
            return None

    def _record_external_ids(self, external_ids: dict[str, int | str], warnings: list[str]) -> None:
        """Write backend ids onto task files, under the lock again.

        A failure here becomes a warning naming the unrecorded ids.
        """
        if not external_ids:
            return
        try:
            with self._lock():
                store = self._store()
                snapshot = store.load_snapshot()
                changed = []
                for task in snapshot.tasks:
                    if task.id in external_ids and task.external_issue != external_ids[task.id]:
                        task.external_issue = external_ids[task.id]
                        changed.append(task)
                if changed:
                    store.save(tasks=changed)
        except PlanError as e:
            created = ", ".join(f"{task_id} -> {ext}" for task_id, ext in sorted(external_ids.items()))
            message = f"Created {self.router.name} items but could not record them locally ({created}): {e.message}"
            logger.warning(f"[MIRROR] {message}")
            warnings.append(message)

    def _mirror_status(self, task: Task, warnings: list[str], comment: str | None = None) -> None:
        """Bring the task's external item in line with its local status."""
        router = self.router
        if not router.is_configured():
            return
        if task.external_issue is None:
            if router.should_create():
                external_id = self._mirror(f"create an item for {task.id}", router.create_item, warnings, task)
                if external_id is not None:
                    task.external_issue = external_id
                    self._record_external_ids({task.id: external_id}, warnings)
            if task.external_issue is None or not task.is_completed:
                return
        if task.is_completed and router.should_close():
            self._mirror(f"close the item for {task.id}", router.close_item, warnings,
                         task.external_issue, comment or f"{task.id} completed.")
        elif router.should_update():
            self._mirror(f"update the item for {task.id}", router.update_item, warnings,
                         task, task.external_issue)
            if comment:
                self._mirror(f"comment on the item for {task.id}", router.add_comment, warnings,
                             task.external_issue, comment)

    @staticmethod
    def _require_task(snapshot: PlanSnapshot, task_id: str) -> Task:
        task = snapshot.get_task(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    @staticmethod
    def _summary(snapshot: PlanSnapshot) -> dict:
        return {
            "planId": snapshot.plan.plan_id,
            "projectName": snapshot.tracker.project_name,
            "lockedAt": snapshot.plan.locked_at,
            "activeTask": snapshot.tracker.active_task,
            "statistics": dict(snapshot.tracker.statistics),
        }

    # --- plan lifecycle ---

    def generate_plan(self, description: str) -> Result:
        """Start a new draft plan from free-text requirements."""
        return self._guarded("generate_plan", self._generate_plan, description)

    def _generate_plan(self, description: str, warnings: list[str]) -> dict:
        if not description or not description.strip():
            raise ValidationError("Requirements description is empty")
        with self._lock():
            active = get_active_plan(self.ctx.root)
            if active and (self.ctx.plans_dir / active).is_dir():
                raise ActivePlanExists(active)
            plan_id = next_plan_id(self.ctx.plans_dir)
            store = PlanStore(self.ctx, plan_id)
            path = store.create_draft(REQUIREMENTS_TEMPLATE.format(
                rule="-" * 60,
                description=description.strip(),
                generated=utc_now(),
                plan_id=plan_id,
            ))
            set_active_plan(self.ctx.root, plan_id)
        self.ctx = self.ctx.with_plan(plan_id)
        logger.info(f"[ENGINE] Generated {plan_id}")
        return {"planId": plan_id, "requirementsFile": str(path), "planFile": str(store.plan_file)}

    def lock_plan(self) -> Result:
        """Lock the active plan. Re-locking a locked plan just reports it."""
        return self._guarded("lock_plan", self._lock_plan)

    def _lock_plan(self, warnings: list[str]) -> dict:
        with self._lock():
            store = self._store()
            if store.is_locked():
                snapshot = store.load_snapshot()
                return {**self._summary(snapshot), "alreadyLocked": True}

            document = store.load_plan_document()
            locked = materialize(document, store.plan_id, utc_now())
            store.save(
                plan_document=locked.document,
                tasks=locked.tasks,
                tracker=locked.tracker,
                amendments=[],
                locked_document=locked.locked_document,
                marker=locked.document["lockedAt"],
            )
            snapshot = PlanSnapshot(
                plan=store.load_plan(),
                tasks=locked.tasks,
                tracker=locked.tracker,
            )
        return {**self._summary(snapshot), "alreadyLocked": False}

    def archive_plan(self, reason: str = "") -> Result:
        """Move the active plan to plans/archived and clear ACTIVE-PLAN."""
        return self._guarded("archive_plan", self._archive_plan, reason)

    def _archive_plan(self, reason: str, warnings: list[str]) -> dict:
        with self._lock():
            store = self._store()
            original = store.plan_dir
            archived = self.ctx.plans_dir / ARCHIVED_DIR / store.plan_id
            meta = {
                "archivedAt": utc_now(),
                "reason": reason or "Archived",
                "originalPath": str(original.relative_to(self.ctx.root)),
                "archivedPath": str(archived.relative_to(self.ctx.root)),
            }
            store.archive(meta)
            clear_active_plan(self.ctx.root)
        self.ctx = self.ctx.with_plan(None)
        return {"planId": store.plan_id, **meta}

    def amend_plan(self, change: Amendment | dict, reason: str, amended_by: str | None = None) -> Result:
        """Apply one amendment to the locked plan and log it."""
        if isinstance(change, dict):
            change = Amendment.from_dict(change)
        return self._guarded("amend_plan", self._amend_plan, change, reason, amended_by)

    def _amend_plan(self, change: Amendment, reason: str, amended_by: str | None, warnings: list[str]) -> dict:
        with self._lock():
            store = self._store()
            snapshot = store.load_snapshot()
            entries, changed = apply_amendment(snapshot.plan.document, snapshot.tasks, change, reason, amended_by)
            snapshot.amendments.extend(entries)
            refresh_tracker(snapshot.tracker, snapshot.tasks)
            store.save(
                plan_document=snapshot.plan.document,
                tasks=changed,
                tracker=snapshot.tracker,
                amendments=snapshot.amendments,
            )

        for task in changed:
            if task.deprecated:
                continue
            self._mirror_status(task, warnings)
        return {
            "entries": [entry.to_dict() for entry in entries],
            "tasks": [task.to_dict() for task in changed],
            "statistics": dict(snapshot.tracker.statistics),
        }

    def history(self) -> Result:
        """Amendment log, plus whether replaying it reproduces the plan."""
        return self._guarded("history", self._history)

    def _history(self, warnings: list[str]) -> dict:
        with self._lock():
            store = self._store()
            snapshot = store.load_snapshot()
            locked_document = store.load_locked_document()
        replayed = [t.structural() for t in replay_amendments(locked_document, snapshot.amendments)]
        current = [t.structural() for t in snapshot.tasks]
        if replayed != current:
            logger.warning(f"[AMEND] Replaying the log does not reproduce {store.plan_id}")
        return {
            "planId": store.plan_id,
            "entries": [entry.to_dict() for entry in snapshot.amendments],
            "consistent": replayed == current,
        }

    # --- task lifecycle ---

    def start_task(self, task_id: str) -> Result:
        return self._guarded("start_task", self._start_task, task_id)

    def _start_task(self, task_id: str | None, warnings: list[str]) -> dict:
        with self._lock():
            store = self._store()
            snapshot = store.load_snapshot()
            if task_id is None:
                task = self._pick_next(snapshot)
                if task is None:
                    live = [t for t in snapshot.tasks if not t.deprecated]
                    return {
                        "task": None,
                        "allCompleted": all(t.is_completed for t in live),
                        "statistics": dict(snapshot.tracker.statistics),
                    }
            else:
                task = self._require_task(snapshot, task_id)
            changed = state_machine.start_task(task, snapshot.tasks)
            if changed:
                refresh_tracker(snapshot.tracker, snapshot.tasks)
                store.save(tasks=[task], tracker=snapshot.tracker)

        if changed:
            self._mirror_status(task, warnings)
        return {"task": task.to_dict(), "changed": changed, "statistics": dict(snapshot.tracker.statistics)}

    @staticmethod
    def _pick_next(snapshot: PlanSnapshot) -> Task | None:
        active = state_machine.active_task(snapshot.tasks)
        if active is not None:
            raise TaskAlreadyActive(active.id)
        ready = deps.ready_tasks(snapshot.tasks)
        return ready[0] if ready else None

    def start_next(self) -> Result:
        """Start the first ready task in declaration order."""
        return self._guarded("start_next", self._start_task, None)

    def complete_active_task(self, comment: str | None = None) -> Result:
        return self._guarded("complete_active_task", self._complete_active_task, comment)

    def _complete_active_task(self, comment: str | None, warnings: list[str]) -> dict:
        with self._lock():
            store = self._store()
            snapshot = store.load_snapshot()
            task = state_machine.active_task(snapshot.tasks)
            if task is None:
                raise NoActiveTask()
            state_machine.complete_task(task)
            refresh_tracker(snapshot.tracker, snapshot.tasks)
            store.save(tasks=[task], tracker=snapshot.tracker)
            ready = [t.id for t in deps.ready_tasks(snapshot.tasks)]

        self._mirror_status(task, warnings, comment)
        return {"task": task.to_dict(), "ready": ready, "statistics": dict(snapshot.tracker.statistics)}

    def reset_task(self, task_id: str, force: bool = False) -> Result:
        return self._guarded("reset_task", self._reset_task, task_id, force)

    def _reset_task(self, task_id: str, force: bool, warnings: list[str]) -> dict:
        with self._lock():
            store = self._store()
            snapshot = store.load_snapshot()
            task = self._require_task(snapshot, task_id)
            changed = state_machine.reset_task(task, force=force)
            if changed:
                refresh_tracker(snapshot.tracker, snapshot.tasks)
                store.save(tasks=[task], tracker=snapshot.tracker)

        if changed and task.external_issue is not None:
            self._mirror_status(task, warnings)
        return {"task": task.to_dict(), "changed": changed, "statistics": dict(snapshot.tracker.statistics)}

    # --- queries ---

    def status(self) -> Result:
        return self._guarded("status", self._status)

    def _status(self, warnings: list[str]) -> dict:
        with self._lock():
            store = self._store()
            if not store.is_locked():
                has_plan = store.plan_file.exists()
                if has_plan:
                    store.load_plan_document()
                return {
                    "planId": store.plan_id,
                    "locked": False,
                    "hasPlanFile": has_plan,
                    "hasRequirements": store.requirements_file.exists(),
                }
            snapshot = store.load_snapshot()
        return {
            **self._summary(snapshot),
            "locked": True,
            "tasks": [dict(row) for row in snapshot.tracker.task_files],
            "ready": [t.id for t in deps.ready_tasks(snapshot.tasks)],
            "amendments": len(snapshot.amendments),
        }

    def ready(self) -> Result:
        """Pending tasks whose dependencies are all completed."""
        return self._guarded("ready", self._ready)

    def _ready(self, warnings: list[str]) -> list[dict]:
        with self._lock():
            snapshot = self._store().load_snapshot()
        return [t.to_dict() for t in deps.ready_tasks(snapshot.tasks)]

    def show_task(self, task_id: str) -> Result:
        return self._guarded("show_task", self._show_task, task_id)

    def _show_task(self, task_id: str, warnings: list[str]) -> dict:
        with self._lock():
            snapshot = self._store().load_snapshot()
        task = self._require_task(snapshot, task_id)
        return {
            "task": task.to_dict(),
            "unmetDependencies": deps.unmet_dependencies(task, snapshot.tasks),
            "dependents": deps.dependents_of(task.id, snapshot.tasks),
        }

    # --- mirroring ---

    def sync_external(self) -> Result:
        """Create or update tracker items for every live task."""
        return self._guarded("sync_external", self._sync_external)

    def _sync_external(self, warnings: list[str]) -> dict:
        with self._lock():
            snapshot = self._store().load_snapshot()

        router = self.router
        summary = {"platform": router.platform, "configured": router.is_configured(), "created": [], "updated": []}
        if not router.is_configured():
            return summary

        created: dict[str, int | str] = {}
        for task in snapshot.tasks:
            if task.deprecated:
                continue
            if task.external_issue is None:
                if not router.should_create():
                    continue
                external_id = self._mirror(f"create an item for {task.id}", router.create_item, warnings, task)
                if external_id is not None:
                    created[task.id] = external_id
            elif router.should_update():
                before = len(warnings)
                self._mirror(f"update the item for {task.id}", router.update_item, warnings,
                             task, task.external_issue)
                if len(warnings) == before:
                    summary["updated"].append(task.id)

        self._record_external_ids(created, warnings)
        summary["created"] = sorted(created)
        return summary
