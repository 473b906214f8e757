"""
Configuration loaders for agentplan.

Settings come from .claude/settings.json, then .claude/settings.local.json
(user overrides, gitignored), then environment variables (highest priority).
The active plan id lives in .claude/ACTIVE-PLAN.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from agentplan.lib.constants import ACTIVE_PLAN_FILE, CLAUDE_DIR, PLANS_DIR

logger = logging.getLogger(__name__)

SETTINGS_FILES = ("settings.json", "settings.local.json")


@dataclass
class GitHubSettings:
    """GitHub Issues mirroring, from the "github" settings block."""
    enabled: bool = True
    owner: str | None = None  # Auto-detected from the remote when unset
    repo: str | None = None
    auto_create: bool = True
    auto_update: bool = True
    auto_close: bool = True


@dataclass
class AzureSettings:
    """Azure Boards mirroring, from the "azureDevOps" settings block."""
    enabled: bool = False  # Off unless explicitly configured
    organization: str | None = None
    project: str | None = None
    work_item_type: str = "Task"
    auto_create: bool = False
    auto_update: bool = False
    auto_close: bool = False


@dataclass
class PlatformSettings:
    """Platform detection override, from the "platform" settings block."""
    auto_detect: bool = True
    type: str | None = None  # Used only when auto_detect is False


@dataclass
class Settings:
    github: GitHubSettings = field(default_factory=GitHubSettings)
    azure: AzureSettings = field(default_factory=AzureSettings)
    platform: PlatformSettings = field(default_factory=PlatformSettings)


@dataclass(frozen=True)
class ProjectContext:
    """Explicit project root and active plan passed into every engine call."""
    root: Path
    plan_id: str | None = None

    @property
    def claude_dir(self) -> Path:
        return self.root / CLAUDE_DIR

    @property
    def plans_dir(self) -> Path:
        return self.claude_dir / PLANS_DIR

    def with_plan(self, plan_id: str | None) -> "ProjectContext":
        return ProjectContext(root=self.root, plan_id=plan_id)

    @classmethod
    def load(cls, root: Path) -> "ProjectContext":
        """Build a context for root, resolving the active plan from disk."""
        root = Path(root).resolve()
        return cls(root=root, plan_id=get_active_plan(root))


# camelCase settings key -> dataclass attribute
_GITHUB_KEYS = {
    "enabled": "enabled",
    "owner": "owner",
    "repo": "repo",
    "autoCreate": "auto_create",
    "autoUpdate": "auto_update",
    "autoClose": "auto_close",
}

_AZURE_KEYS = {
    "enabled": "enabled",
    "organization": "organization",
    "project": "project",
    "workItemType": "work_item_type",
    "autoCreate": "auto_create",
    "autoUpdate": "auto_update",
    "autoClose": "auto_close",
}

_PLATFORM_KEYS = {
    "autoDetect": "auto_detect",
    "type": "type",
}

_BOOL_ENV = {
    "GITHUB_ENABLED": ("github", "enabled"),
    "GITHUB_AUTO_CREATE": ("github", "auto_create"),
    "GITHUB_AUTO_UPDATE": ("github", "auto_update"),
    "GITHUB_AUTO_CLOSE": ("github", "auto_close"),
    "AZURE_DEVOPS_ENABLED": ("azure", "enabled"),
    "AZURE_DEVOPS_AUTO_CREATE": ("azure", "auto_create"),
    "AZURE_DEVOPS_AUTO_UPDATE": ("azure", "auto_update"),
    "AZURE_DEVOPS_AUTO_CLOSE": ("azure", "auto_close"),
}

_STR_ENV = {
    "GITHUB_OWNER": ("github", "owner"),
    "GITHUB_REPO": ("github", "repo"),
    "AZURE_DEVOPS_ORGANIZATION": ("azure", "organization"),
    "AZURE_DEVOPS_PROJECT": ("azure", "project"),
}


def _read_settings_file(path: Path) -> dict:
    """Read one settings file. Malformed files are ignored with a warning."""
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Failed to load {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring {path}: expected a JSON object")
        return {}
    return data


def _coerce_bool(value) -> bool | None:
    """JSON booleans as-is; "true"/"false" strings accepted, anything else None."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def _apply_block(target, block, keys: dict) -> None:
    """Copy a settings block onto target. Values of the wrong type are ignored with a warning."""
    if not isinstance(block, dict):
        return
    for key, attr in keys.items():
        if key not in block:
            continue
        value = block[key]
        if isinstance(getattr(target, attr), bool):
            coerced = _coerce_bool(value)
            if coerced is None:
                logger.warning(f"Ignoring setting {key}={value!r}: expected true or false")
                continue
            value = coerced
        elif value is not None and not isinstance(value, str):
            logger.warning(f"Ignoring setting {key}={value!r}: expected a string")
            continue
        setattr(target, attr, value)


def load_settings(root: Path, environ: dict | None = None) -> Settings:
    """Merge settings files and environment overrides for a project root."""
    env = os.environ if environ is None else environ
    settings = Settings()
    claude_dir = Path(root) / CLAUDE_DIR

    for name in SETTINGS_FILES:
        data = _read_settings_file(claude_dir / name)
        _apply_block(settings.github, data.get("github"), _GITHUB_KEYS)
        _apply_block(settings.azure, data.get("azureDevOps"), _AZURE_KEYS)
        _apply_block(settings.platform, data.get("platform"), _PLATFORM_KEYS)

    for var, (section, attr) in _BOOL_ENV.items():
        if var in env:
            setattr(getattr(settings, section), attr, env[var].lower() == "true")
    for var, (section, attr) in _STR_ENV.items():
        if env.get(var):
            setattr(getattr(settings, section), attr, env[var])

    # AGENTPLAN_PLATFORM pins the backend and disables detection
    if env.get("AGENTPLAN_PLATFORM"):
        settings.platform.type = env["AGENTPLAN_PLATFORM"]
        settings.platform.auto_detect = False

    return settings


def get_active_plan(root: Path) -> str | None:
    """Get the active plan id, or None if unset or empty (e.g. after archive)."""
    active_file = Path(root) / CLAUDE_DIR / ACTIVE_PLAN_FILE
    if not active_file.exists():
        return None
    plan_id = active_file.read_text(encoding="utf-8").strip()
    return plan_id or None


def set_active_plan(root: Path, plan_id: str) -> None:
    claude_dir = Path(root) / CLAUDE_DIR
    claude_dir.mkdir(parents=True, exist_ok=True)
    (claude_dir / ACTIVE_PLAN_FILE).write_text(plan_id + "\n", encoding="utf-8")


def clear_active_plan(root: Path) -> None:
    """Clear the active plan pointer. The file stays, emptied."""
    active_file = Path(root) / CLAUDE_DIR / ACTIVE_PLAN_FILE
    if active_file.exists():
        active_file.write_text("", encoding="utf-8")
