"""Shared fixtures: a project directory with an authored plan."""

import json
from pathlib import Path

import pytest

from agentplan.lib.config import ProjectContext
from agentplan.platform.router import PlatformRouter
from agentplan.workflow.engine import PlanEngine

PLAN_ID = "plan-001-generated"


def flat_plan() -> dict:
    """Four tasks: TASK-001 -> (TASK-002, TASK-003) -> TASK-004."""
    return {
        "tasks": [
            {"id": "TASK-001", "title": "Design schema", "phase": "design", "estimatedHours": 2,
             "completionCriteria": ["Schema reviewed"]},
            {"id": "TASK-002", "title": "Build API", "dependencies": ["TASK-001"], "estimatedHours": 4},
            {"id": "TASK-003", "title": "Build UI", "dependencies": ["TASK-001"]},
            {"id": "TASK-004", "title": "Ship it", "phase": "deployment",
             "dependencies": ["TASK-002", "TASK-003"]},
        ]
    }


def hierarchical_plan() -> dict:
    return {
        "project": {
            "name": "Shop",
            "estimatedHours": 12,
            "subprojects": [
                {
                    "name": "Backend",
                    "milestones": [
                        {"name": "M1", "tasks": [
                            {"title": "Model orders", "phase": "design"},
                            {"title": "Order API", "dependencies": ["TASK-001"]},
                        ]},
                    ],
                },
                {
                    "name": "Frontend",
                    "milestones": [
                        {"name": "M2", "tasks": [
                            {"title": "Checkout page", "dependencies": ["TASK-002"]},
                        ]},
                    ],
                },
            ],
        }
    }


def write_plan(root: Path, document: dict, plan_id: str = PLAN_ID) -> Path:
    """Create a draft plan with PROJECT-PLAN.json and make it active."""
    plan_dir = root / ".claude" / "plans" / plan_id
    plan_dir.mkdir(parents=True, exist_ok=True)
    (plan_dir / "PROJECT-PLAN.json").write_text(json.dumps(document, indent=2))
    (root / ".claude" / "ACTIVE-PLAN").write_text(plan_id)
    return plan_dir


def read_json(path: Path):
    return json.loads(path.read_text())


def snapshot_files(plan_dir: Path) -> dict[str, str]:
    """Every file under plan_dir, by relative path, for before/after comparison."""
    return {
        str(p.relative_to(plan_dir)): p.read_text()
        for p in sorted(plan_dir.rglob("*"))
        if p.is_file()
    }


class FakeBackend:
    """Records router calls; can be told to fail."""

    name = "fake"

    def __init__(self, fail: bool = False, configured: bool = True):
        self.fail = fail
        self.configured = configured
        self.calls: list[tuple] = []
        self.next_id = 100

    def _maybe_fail(self, action):
        if self.fail:
            from agentplan.lib.errors import ExternalMirrorError
            raise ExternalMirrorError(f"fake: {action} failed")

    def is_configured(self):
        return self.configured

    def create_item(self, task):
        self.calls.append(("create", task.id))
        self._maybe_fail("create")
        self.next_id += 1
        return self.next_id

    def update_item(self, task, external_id):
        self.calls.append(("update", task.id, external_id, task.status))
        self._maybe_fail("update")

    def close_item(self, external_id, comment=None):
        self.calls.append(("close", external_id, comment))
        self._maybe_fail("close")

    def add_comment(self, external_id, comment):
        self.calls.append(("comment", external_id, comment))
        self._maybe_fail("comment")


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "repo"
    (root / ".claude").mkdir(parents=True)
    return root


@pytest.fixture
def local_router():
    return PlatformRouter("none", None)


@pytest.fixture
def engine(project, local_router):
    return PlanEngine(ProjectContext.load(project), router=local_router, lock_timeout=0.5)


@pytest.fixture
def locked_engine(project, local_router):
    """Engine over a locked copy of flat_plan()."""
    write_plan(project, flat_plan())
    eng = PlanEngine(ProjectContext.load(project), router=local_router, lock_timeout=0.5)
    assert eng.lock_plan().ok
    return eng
