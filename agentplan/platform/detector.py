"""
Platform detection: which issue tracker does this repository use?

An explicit override wins. Otherwise the origin remote decides:
github.com means GitHub, dev.azure.com or visualstudio.com means Azure
Boards, anything else (including no remote) means none, which callers
treat as local-only.
"""

import logging
from pathlib import Path

from agentplan.git.remote import get_remote_url
from agentplan.lib.config import PlatformSettings, Settings, load_settings

logger = logging.getLogger(__name__)

PLATFORM_GITHUB = "github"
PLATFORM_AZURE = "azure"
PLATFORM_NONE = "none"

SUPPORTED_PLATFORMS = (PLATFORM_GITHUB, PLATFORM_AZURE)

PLATFORM_NAMES = {
    PLATFORM_GITHUB: "GitHub",
    PLATFORM_AZURE: "Azure DevOps",
    PLATFORM_NONE: "none (local only)",
}

# Project root -> detected platform, for the life of the process
_cache: dict[Path, str] = {}


def parse_remote_url(url: str | None) -> str:
    """Map a remote URL to a platform. Empty or unrecognized -> none."""
    if not url or not isinstance(url, str) or not url.strip():
        return PLATFORM_NONE
    normalized = url.strip().lower()
    if "github.com" in normalized:
        return PLATFORM_GITHUB
    if "dev.azure.com" in normalized or "visualstudio.com" in normalized:
        return PLATFORM_AZURE
    return PLATFORM_NONE


def detect(remote_url: str | None, override: PlatformSettings | None = None) -> str:
    """
    Decide the platform from a remote URL and an optional override.

    With override.auto_detect False, the override's type is returned
    without looking at the remote. An unsupported override type degrades
    to none.
    """
    if override is not None and not override.auto_detect:
        pinned = (override.type or "").lower()
        if pinned in SUPPORTED_PLATFORMS or pinned == PLATFORM_NONE:
            return pinned
        logger.warning(f"Unknown platform override '{override.type}'; mirroring disabled")
        return PLATFORM_NONE
    return parse_remote_url(remote_url)


def detect_for_project(root: Path, settings: Settings | None = None, use_cache: bool = True) -> str:
    """Detect the platform for a project root, reading its origin remote."""
    root = Path(root).resolve()
    if use_cache and root in _cache:
        return _cache[root]

    if settings is None:
        settings = load_settings(root)
    if settings.platform.auto_detect:
        platform = detect(get_remote_url(root), settings.platform)
    else:
        platform = detect(None, settings.platform)

    logger.info(f"[PLATFORM] {root}: {platform}")
    _cache[root] = platform
    return platform


def clear_cache() -> None:
    _cache.clear()


def platform_name(platform: str) -> str:
    return PLATFORM_NAMES.get(platform, "Unknown")
