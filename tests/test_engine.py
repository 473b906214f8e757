"""Tests for agentplan.workflow.engine module."""

import json

from agentplan.lib.config import ProjectContext, get_active_plan
from agentplan.lib.constants import LOCK_FILE
from agentplan.platform.router import MirrorGates, PlatformRouter
from agentplan.workflow.engine import PlanEngine

from conftest import PLAN_ID, FakeBackend, flat_plan, read_json, snapshot_files, write_plan


def plan_dir(project):
    return project / ".claude" / "plans" / PLAN_ID


def task_json(project, task_id):
    return read_json(plan_dir(project) / "tasks" / f"{task_id}.json")


def tracker_json(project):
    return read_json(plan_dir(project) / "TASK-TRACKER.json")


def mirrored_engine(project, backend, gates=None):
    router = PlatformRouter("github", backend, gates or MirrorGates(True, True, True))
    return PlanEngine(ProjectContext.load(project), router=router, lock_timeout=0.5)


class TestGeneratePlan:
    def test_creates_draft_and_sets_active(self, engine, project):
        result = engine.generate_plan("Build an online shop")
        assert result.ok
        assert result.value["planId"] == "plan-001-generated"
        assert get_active_plan(project) == "plan-001-generated"
        requirements = (project / ".claude" / "plans" / "plan-001-generated" / "PROJECT-REQUIREMENTS.txt").read_text()
        assert "Build an online shop" in requirements
        assert "PLAN ID: plan-001-generated" in requirements

    def test_empty_description(self, engine):
        result = engine.generate_plan("   ")
        assert not result.ok
        assert result.kind == "ValidationError"

    def test_active_plan_blocks_new_one(self, engine):
        assert engine.generate_plan("first").ok
        result = engine.generate_plan("second")
        assert result.kind == "ActivePlanExists"
        assert result.category == "state_conflict"


class TestLockPlan:
    def test_lock_writes_tasks_and_tracker(self, locked_engine, project):
        for task_id in ("TASK-001", "TASK-002", "TASK-003", "TASK-004"):
            assert task_json(project, task_id)["status"] == "pending"
        tracker = tracker_json(project)
        assert tracker["activeTask"] is None
        assert tracker["statistics"]["totalTasks"] == 4
        assert (plan_dir(project) / ".plan-locked").exists()
        assert read_json(plan_dir(project) / "AMENDMENTS.json") == []
        assert read_json(plan_dir(project) / "LOCKED-PLAN.json")["planId"] == PLAN_ID

    def test_relock_is_idempotent(self, locked_engine, project):
        before = snapshot_files(plan_dir(project))
        result = locked_engine.lock_plan()
        assert result.ok
        assert result.value["alreadyLocked"] is True
        assert snapshot_files(plan_dir(project)) == before

    def test_invalid_plan_writes_nothing(self, engine, project):
        document = flat_plan()
        document["tasks"][0]["dependencies"] = ["TASK-004"]
        write_plan(project, document)
        before = snapshot_files(plan_dir(project))
        result = engine.lock_plan()
        assert result.kind == "CycleDetected"
        assert snapshot_files(plan_dir(project)) == before

    def test_missing_plan_file(self, engine, project):
        assert engine.generate_plan("shop").ok
        result = engine.lock_plan()
        assert result.kind == "PlanNotFound"

    def test_no_active_plan(self, engine):
        assert engine.lock_plan().kind == "NoActivePlan"


class TestTaskLifecycle:
    """Start / complete / reset against the files on disk."""

    def test_start_next_picks_first_ready(self, locked_engine, project):
        result = locked_engine.start_next()
        assert result.ok
        assert result.value["task"]["id"] == "TASK-001"
        assert task_json(project, "TASK-001")["status"] == "in_progress"
        assert task_json(project, "TASK-001")["startedAt"]
        assert tracker_json(project)["activeTask"] == "TASK-001"

    def test_second_start_rejected_and_disk_unchanged(self, locked_engine, project):
        locked_engine.start_next()
        before = snapshot_files(plan_dir(project))
        result = locked_engine.start_task("TASK-002")
        assert result.kind == "TaskAlreadyActive"
        assert result.error.active_id == "TASK-001"
        assert snapshot_files(plan_dir(project)) == before

    def test_start_next_with_active_task_rejected(self, locked_engine):
        locked_engine.start_next()
        assert locked_engine.start_next().kind == "TaskAlreadyActive"

    def test_unmet_dependencies(self, locked_engine, project):
        before = snapshot_files(plan_dir(project))
        result = locked_engine.start_task("TASK-004")
        assert result.kind == "UnmetDependencies"
        assert result.error.unmet == ["TASK-002", "TASK-003"]
        assert snapshot_files(plan_dir(project)) == before

    def test_start_same_task_twice_is_noop(self, locked_engine):
        locked_engine.start_task("TASK-001")
        result = locked_engine.start_task("TASK-001")
        assert result.ok
        assert result.value["changed"] is False

    def test_unknown_task(self, locked_engine):
        assert locked_engine.start_task("TASK-404").kind == "TaskNotFound"

    def test_complete_unlocks_dependents(self, locked_engine, project):
        locked_engine.start_next()
        result = locked_engine.complete_active_task()
        assert result.ok
        assert result.value["ready"] == ["TASK-002", "TASK-003"]
        assert task_json(project, "TASK-001")["status"] == "completed"
        assert tracker_json(project)["activeTask"] is None
        assert tracker_json(project)["statistics"]["completed"] == 1

    def test_complete_without_active_task(self, locked_engine):
        assert locked_engine.complete_active_task().kind == "NoActiveTask"

    def test_run_whole_plan(self, locked_engine):
        order = []
        while True:
            result = locked_engine.start_next()
            assert result.ok
            if result.value["task"] is None:
                break
            order.append(result.value["task"]["id"])
            assert locked_engine.complete_active_task().ok
        assert order == ["TASK-001", "TASK-002", "TASK-003", "TASK-004"]
        assert result.value["allCompleted"] is True
        assert result.value["statistics"]["completed"] == 4

    def test_reset_active_task(self, locked_engine, project):
        locked_engine.start_next()
        result = locked_engine.reset_task("TASK-001")
        assert result.ok
        assert result.value["task"]["status"] == "pending"
        assert tracker_json(project)["activeTask"] is None

    def test_reset_completed_needs_force(self, locked_engine, project):
        locked_engine.start_next()
        locked_engine.complete_active_task()
        assert locked_engine.reset_task("TASK-001").kind == "InvalidTransition"
        result = locked_engine.reset_task("TASK-001", force=True)
        assert result.ok
        assert task_json(project, "TASK-001")["status"] == "pending"

    def test_force_reset_pending_is_noop(self, locked_engine):
        result = locked_engine.reset_task("TASK-002", force=True)
        assert result.ok
        assert result.value["changed"] is False


class TestAmendAndHistory:
    def test_amend_persists_log(self, locked_engine, project):
        result = locked_engine.amend_plan(
            {"taskId": "TASK-002", "field": "title", "value": "Build REST API"},
            reason="clarified scope",
            amended_by="sam",
        )
        assert result.ok
        log = read_json(plan_dir(project) / "AMENDMENTS.json")
        assert len(log) == 1
        assert log[0]["reason"] == "clarified scope"
        assert task_json(project, "TASK-002")["title"] == "Build REST API"
        plan = read_json(plan_dir(project) / "PROJECT-PLAN.json")
        assert plan["tasks"][1]["title"] == "Build REST API"
        # the replay base is untouched
        assert read_json(plan_dir(project) / "LOCKED-PLAN.json")["tasks"][1]["title"] == "Build API"

    def test_rejected_amendment_writes_nothing(self, locked_engine, project):
        before = snapshot_files(plan_dir(project))
        result = locked_engine.amend_plan(
            {"taskId": "TASK-001", "field": "dependencies", "value": ["TASK-004"]}, reason="oops")
        assert result.kind == "CycleDetected"
        assert snapshot_files(plan_dir(project)) == before

    def test_add_task_updates_tracker(self, locked_engine, project):
        result = locked_engine.amend_plan({"kind": "add", "task": {"title": "Write docs"}}, reason="docs")
        assert result.ok
        assert task_json(project, "TASK-005")["status"] == "pending"
        assert tracker_json(project)["statistics"]["totalTasks"] == 5

    def test_block_via_amendment(self, locked_engine, project):
        result = locked_engine.amend_plan(
            {"taskId": "TASK-001", "field": "status", "value": "blocked"}, reason="waiting on vendor")
        assert result.ok
        assert tracker_json(project)["statistics"]["blocked"] == 1
        assert locked_engine.start_next().value["task"] is None

    def test_history_consistent(self, locked_engine):
        locked_engine.amend_plan({"taskId": "TASK-003", "field": "estimatedHours", "value": 5}, reason="sized")
        locked_engine.amend_plan({"kind": "deprecate", "taskId": "TASK-004"}, reason="dropped")
        result = locked_engine.history()
        assert result.ok
        assert [e["field"] for e in result.value["entries"]] == ["estimatedHours", "deprecated"]
        assert result.value["consistent"] is True

    def test_history_detects_hand_edits(self, locked_engine, project):
        path = plan_dir(project) / "tasks" / "TASK-002.json"
        data = json.loads(path.read_text())
        data["title"] = "Edited by hand"
        path.write_text(json.dumps(data))
        assert locked_engine.history().value["consistent"] is False


class TestQueries:
    def test_status_of_draft(self, engine, project):
        engine.generate_plan("shop")
        result = engine.status()
        assert result.ok
        assert result.value["locked"] is False
        assert result.value["hasPlanFile"] is False
        assert result.value["hasRequirements"] is True

    def test_status_of_locked_plan(self, locked_engine):
        locked_engine.start_next()
        value = locked_engine.status().value
        assert value["locked"] is True
        assert value["activeTask"] == "TASK-001"
        assert [row["id"] for row in value["tasks"]] == ["TASK-001", "TASK-002", "TASK-003", "TASK-004"]
        assert value["ready"] == []

    def test_show_task(self, locked_engine):
        value = locked_engine.show_task("TASK-004").value
        assert value["unmetDependencies"] == ["TASK-002", "TASK-003"]
        assert locked_engine.show_task("TASK-001").value["dependents"] == ["TASK-002", "TASK-003"]

    def test_ready(self, locked_engine):
        assert [t["id"] for t in locked_engine.ready().value] == ["TASK-001"]

    def test_corrupt_tracker_reported(self, locked_engine, project):
        path = plan_dir(project) / "TASK-TRACKER.json"
        data = json.loads(path.read_text())
        data["activeTask"] = "TASK-003"
        path.write_text(json.dumps(data))
        result = locked_engine.status()
        assert result.kind == "CorruptionError"
        assert result.category == "corruption"

    def test_held_lock(self, locked_engine, project):
        (project / ".claude" / LOCK_FILE).write_text("99999 0\n")
        result = locked_engine.start_next()
        assert result.kind == "ConcurrentModificationError"
        assert task_json(project, "TASK-001")["status"] == "pending"


class TestArchive:
    def test_archive_and_start_over(self, locked_engine, project):
        result = locked_engine.archive_plan("shipped")
        assert result.ok
        assert result.value["reason"] == "shipped"
        archived = project / ".claude" / "plans" / "archived" / PLAN_ID
        assert (archived / "ARCHIVE-META.json").exists()
        assert not plan_dir(project).exists()
        assert get_active_plan(project) is None

        assert locked_engine.status().kind == "NoActivePlan"
        new = locked_engine.generate_plan("v2")
        assert new.value["planId"] == "plan-002-generated"


class TestMirroring:
    """Local state first; tracker calls afterwards, failures as warnings."""

    def test_start_creates_item_and_records_id(self, project):
        write_plan(project, flat_plan())
        backend = FakeBackend()
        engine = mirrored_engine(project, backend)
        engine.lock_plan()
        result = engine.start_next()
        assert result.ok
        assert backend.calls == [("create", "TASK-001")]
        assert task_json(project, "TASK-001")["externalIssue"] == 101

    def test_complete_closes_item(self, project):
        write_plan(project, flat_plan())
        backend = FakeBackend()
        engine = mirrored_engine(project, backend)
        engine.lock_plan()
        engine.start_next()
        engine.complete_active_task(comment="All green")
        assert backend.calls[-1] == ("close", 101, "All green")

    def test_failure_is_a_warning(self, project):
        write_plan(project, flat_plan())
        backend = FakeBackend(fail=True)
        engine = mirrored_engine(project, backend)
        engine.lock_plan()
        result = engine.start_next()
        assert result.ok
        assert len(result.warnings) == 1
        assert "fake: create failed" in result.warnings[0]
        assert task_json(project, "TASK-001")["status"] == "in_progress"
        assert task_json(project, "TASK-001")["externalIssue"] is None

    def test_gates_respected(self, project):
        write_plan(project, flat_plan())
        backend = FakeBackend()
        engine = mirrored_engine(project, backend, MirrorGates(False, False, False))
        engine.lock_plan()
        engine.start_next()
        engine.complete_active_task()
        assert backend.calls == []

    def test_unconfigured_backend_skipped(self, project):
        write_plan(project, flat_plan())
        backend = FakeBackend(configured=False)
        engine = mirrored_engine(project, backend)
        engine.lock_plan()
        assert engine.start_next().warnings == []
        assert backend.calls == []

    def test_sync_creates_then_updates(self, project):
        write_plan(project, flat_plan())
        backend = FakeBackend()
        engine = mirrored_engine(project, backend)
        engine.lock_plan()

        first = engine.sync_external()
        assert first.value["created"] == ["TASK-001", "TASK-002", "TASK-003", "TASK-004"]
        assert task_json(project, "TASK-004")["externalIssue"] == 104

        second = engine.sync_external()
        assert second.value["created"] == []
        assert second.value["updated"] == ["TASK-001", "TASK-002", "TASK-003", "TASK-004"]

    def test_sync_local_only(self, locked_engine):
        value = locked_engine.sync_external().value
        assert value == {"platform": "none", "configured": False, "created": [], "updated": []}

    def test_unrecorded_id_is_a_warning(self, project):
        write_plan(project, flat_plan())

        class LockTakingBackend(FakeBackend):
            def create_item(self, task):
                external_id = super().create_item(task)
                (project / ".claude" / LOCK_FILE).write_text("99999 0\n")
                return external_id

        engine = mirrored_engine(project, LockTakingBackend())
        engine.lock_plan()
        result = engine.start_next()
        assert result.ok
        assert len(result.warnings) == 1
        assert "TASK-001 -> 101" in result.warnings[0]
        assert task_json(project, "TASK-001")["status"] == "in_progress"
