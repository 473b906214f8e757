"""Shell and git helpers.

Return type conventions:
- Functions returning CommandResult: Caller must check .success before using output.
- Functions returning parsed values (str): Return None on failure.
"""

from agentplan.git.runner import CommandResult, run_command, run_git
from agentplan.git.remote import get_remote_url, read_remote_from_config

__all__ = [
    "CommandResult",
    "run_command",
    "run_git",
    "get_remote_url",
    "read_remote_from_config",
]
