"""Shell command runner with timeout handling.

Used for git, gh and az. A missing executable or a timeout comes back as a
failed CommandResult, never an exception, so callers check .success.
"""

import subprocess
from dataclasses import dataclass
from pathlib import Path

DEFAULT_TIMEOUT = 30


@dataclass
class CommandResult:
    """Result of a shell command."""
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out


def run_command(
    cmd: list[str],
    cwd: Path | None = None,
    timeout: int = DEFAULT_TIMEOUT,
) -> CommandResult:
    """
    Run a command with timeout handling.

    Args:
        cmd: Command and arguments (e.g., ["gh", "api", "user"])
        cwd: Working directory for the command
        timeout: Timeout in seconds

    Returns:
        CommandResult with returncode, stdout, stderr, and timed_out flag
    """
    try:
        result = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        return CommandResult(
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )
    except subprocess.TimeoutExpired:
        return CommandResult(
            returncode=-1,
            stdout="",
            stderr=f"Command timed out after {timeout}s",
            timed_out=True,
        )
    except FileNotFoundError:
        return CommandResult(
            returncode=127,
            stdout="",
            stderr=f"Command not found: {cmd[0]}",
        )
    except OSError as e:
        return CommandResult(
            returncode=126,
            stdout="",
            stderr=f"Cannot execute {cmd[0]}: {e}",
        )


def run_git(
    args: list[str],
    cwd: Path,
    timeout: int = DEFAULT_TIMEOUT,
) -> CommandResult:
    """Run a git command against the repository at cwd."""
    return run_command(["git", "-C", str(cwd)] + args, timeout=timeout)
