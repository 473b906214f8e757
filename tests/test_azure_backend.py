"""Tests for agentplan.platform.azure module."""

import json
from unittest.mock import MagicMock, patch

import pytest

from agentplan.lib.config import AzureSettings
from agentplan.lib.errors import ExternalMirrorError
from agentplan.platform.azure import STATUS_MAP, AzureBackend, work_item_description, work_item_tags
from agentplan.workflow.models import Task, TaskStatus


def completed(stdout="{}", returncode=0, stderr=""):
    return MagicMock(returncode=returncode, stdout=stdout, stderr=stderr)


def make_task(**kwargs):
    defaults = dict(id="TASK-001", title="Design <schema>", phase="design", completion_criteria=["Reviewed"])
    defaults.update(kwargs)
    return Task(**defaults)


@pytest.fixture
def backend():
    return AzureBackend(AzureSettings(enabled=True, organization="acme", project="Shop"))


class TestHelpers:
    def test_status_map_is_total(self):
        assert set(STATUS_MAP) == {s.value for s in TaskStatus}

    def test_blocked_stays_new_with_tag(self):
        task = make_task(status="blocked")
        assert STATUS_MAP["blocked"][0] == "New"
        assert work_item_tags(task) == "phase: design; blocked"

    def test_description_is_escaped_html(self):
        html = work_item_description(make_task())
        assert "<h2>Design &lt;schema&gt;</h2>" in html
        assert "<li>Reviewed</li>" in html


class TestConfiguration:
    def test_needs_org_and_project(self):
        assert not AzureBackend(AzureSettings(enabled=True, organization="acme")).is_configured()
        assert not AzureBackend(AzureSettings(organization="acme", project="Shop")).is_configured()

    def test_configured(self, backend):
        assert backend.is_configured()


class TestCalls:
    """az boards invocations."""

    @patch("agentplan.git.runner.subprocess.run")
    def test_create(self, mock_run, backend):
        mock_run.return_value = completed(json.dumps({"id": 7}))
        assert backend.create_item(make_task()) == 7
        cmd = mock_run.call_args[0][0]
        assert cmd[:4] == ["az", "boards", "work-item", "create"]
        assert cmd[cmd.index("--type") + 1] == "Task"
        assert cmd[cmd.index("--project") + 1] == "Shop"
        assert cmd[cmd.index("--organization") + 1] == "https://dev.azure.com/acme"
        assert "System.Tags=phase: design" in cmd

    @patch("agentplan.git.runner.subprocess.run")
    def test_update_state(self, mock_run, backend):
        mock_run.return_value = completed()
        backend.update_item(make_task(status="in_progress"), 7)
        cmd = mock_run.call_args[0][0]
        assert cmd[:6] == ["az", "boards", "work-item", "update", "--id", "7"]
        assert cmd[cmd.index("--state") + 1] == "Active"
        assert "--project" not in cmd

    @patch("agentplan.git.runner.subprocess.run")
    def test_close_with_discussion(self, mock_run, backend):
        mock_run.return_value = completed()
        backend.close_item(7, "Shipped")
        cmd = mock_run.call_args[0][0]
        assert cmd[cmd.index("--state") + 1] == "Closed"
        assert cmd[cmd.index("--discussion") + 1] == "Shipped"

    @patch("agentplan.git.runner.subprocess.run")
    def test_non_json_output(self, mock_run, backend):
        mock_run.return_value = completed(stdout="not json")
        with pytest.raises(ExternalMirrorError):
            backend.add_comment(7, "hi")
