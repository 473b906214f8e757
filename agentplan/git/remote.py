"""Git remote lookup."""

import configparser
import logging
from pathlib import Path

from agentplan.git.runner import run_git

logger = logging.getLogger(__name__)


def get_remote_url(repo: Path, remote: str = "origin") -> str | None:
    """
    URL of a remote, or None if there isn't one.

    Asks git first. If git is unavailable or fails, reads .git/config
    directly so detection still works without a git binary.
    """
    result = run_git(["remote", "get-url", remote], repo, timeout=10)
    if result.success and result.stdout.strip():
        return result.stdout.strip()
    logger.debug(f"git remote get-url {remote} failed: {result.stderr.strip()}")
    return read_remote_from_config(repo, remote)


def read_remote_from_config(repo: Path, remote: str = "origin") -> str | None:
    """Parse [remote "<name>"] url from .git/config."""
    config_file = Path(repo) / ".git" / "config"
    if not config_file.is_file():
        return None
    parser = configparser.ConfigParser(strict=False, interpolation=None)
    try:
        parser.read(config_file, encoding="utf-8")
    except configparser.Error as e:
        logger.warning(f"Failed to parse {config_file}: {e}")
        return None
    section = f'remote "{remote}"'
    if not parser.has_option(section, "url"):
        return None
    return parser.get(section, "url").strip() or None
