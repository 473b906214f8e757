"""Issue tracker mirroring: detection, routing and the two backends."""

from agentplan.platform.detector import (
    PLATFORM_AZURE,
    PLATFORM_GITHUB,
    PLATFORM_NONE,
    clear_cache,
    detect,
    detect_for_project,
)
from agentplan.platform.router import PlatformRouter

__all__ = [
    "PLATFORM_AZURE",
    "PLATFORM_GITHUB",
    "PLATFORM_NONE",
    "PlatformRouter",
    "clear_cache",
    "detect",
    "detect_for_project",
]
