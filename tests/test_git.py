"""Tests for agentplan.git module."""

import subprocess
from unittest.mock import MagicMock, patch

from agentplan.git import get_remote_url, read_remote_from_config, run_command, run_git


class TestRunCommand:
    @patch("agentplan.git.runner.subprocess.run")
    def test_success(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="ok\n", stderr="")
        result = run_command(["echo", "ok"])
        assert result.success
        assert result.stdout == "ok\n"

    @patch("agentplan.git.runner.subprocess.run")
    def test_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="gh", timeout=5)
        result = run_command(["gh"], timeout=5)
        assert not result.success
        assert result.timed_out
        assert "5s" in result.stderr

    @patch("agentplan.git.runner.subprocess.run")
    def test_missing_binary(self, mock_run):
        mock_run.side_effect = FileNotFoundError()
        result = run_command(["az", "boards"])
        assert result.returncode == 127
        assert "az" in result.stderr

    @patch("agentplan.git.runner.subprocess.run")
    def test_not_executable(self, mock_run):
        mock_run.side_effect = PermissionError(13, "Permission denied", "gh")
        result = run_command(["gh", "api"])
        assert result.returncode == 126
        assert not result.success
        assert "gh" in result.stderr

    @patch("agentplan.git.runner.subprocess.run")
    def test_run_git_uses_dash_c(self, mock_run, tmp_path):
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")
        run_git(["status"], tmp_path)
        assert mock_run.call_args[0][0] == ["git", "-C", str(tmp_path), "status"]


class TestRemote:
    def write_config(self, repo, body):
        (repo / ".git").mkdir()
        (repo / ".git" / "config").write_text(body)

    @patch("agentplan.git.runner.subprocess.run")
    def test_from_git(self, mock_run, tmp_path):
        mock_run.return_value = MagicMock(returncode=0, stdout="https://github.com/acme/shop.git\n", stderr="")
        assert get_remote_url(tmp_path) == "https://github.com/acme/shop.git"

    @patch("agentplan.git.runner.subprocess.run")
    def test_falls_back_to_config(self, mock_run, tmp_path):
        mock_run.side_effect = FileNotFoundError()
        self.write_config(tmp_path, '[core]\n\tbare = false\n[remote "origin"]\n\turl = git@github.com:acme/shop.git\n')
        assert get_remote_url(tmp_path) == "git@github.com:acme/shop.git"

    def test_no_git_dir(self, tmp_path):
        assert read_remote_from_config(tmp_path) is None

    def test_other_remote_only(self, tmp_path):
        self.write_config(tmp_path, '[remote "upstream"]\n\turl = https://github.com/x/y\n')
        assert read_remote_from_config(tmp_path) is None
