"""
Platform router: one backend, chosen once, behind one interface.

The router does no per-call branching. It picks GitHub, Azure or nothing
at construction and forwards. The engine asks is_configured() and the
auto_* gates before mirroring anything.

Usage:
    router = PlatformRouter.from_project(ctx.root)
    if router.should_create():
        issue = router.create_item(task)
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from agentplan.git.remote import get_remote_url
from agentplan.lib.config import Settings, load_settings
from agentplan.platform.azure import AzureBackend
from agentplan.platform.base import TrackerBackend
from agentplan.platform.detector import (
    PLATFORM_AZURE,
    PLATFORM_GITHUB,
    PLATFORM_NONE,
    detect_for_project,
    platform_name,
)
from agentplan.platform.github import GitHubBackend
from agentplan.workflow.models import Task

logger = logging.getLogger(__name__)


@dataclass
class MirrorGates:
    auto_create: bool = False
    auto_update: bool = False
    auto_close: bool = False


class PlatformRouter:
    def __init__(self, platform: str, backend: TrackerBackend | None, gates: MirrorGates | None = None):
        self.platform = platform
        self.backend = backend
        self.gates = gates or MirrorGates()

    @classmethod
    def from_project(cls, root: Path, settings: Settings | None = None, use_cache: bool = True) -> "PlatformRouter":
        """Detect the platform for root and build its backend."""
        settings = settings or load_settings(root)
        platform = detect_for_project(root, settings, use_cache=use_cache)

        if platform == PLATFORM_GITHUB:
            backend = GitHubBackend(settings.github, remote_url=get_remote_url(root), cwd=root)
            gates = MirrorGates(settings.github.auto_create, settings.github.auto_update, settings.github.auto_close)
        elif platform == PLATFORM_AZURE:
            backend = AzureBackend(settings.azure, cwd=root)
            gates = MirrorGates(settings.azure.auto_create, settings.azure.auto_update, settings.azure.auto_close)
        else:
            return cls(PLATFORM_NONE, None)

        if not backend.is_configured():
            logger.info(f"[PLATFORM] {platform_name(platform)} detected but not configured; mirroring off")
        return cls(platform, backend, gates)

    @property
    def name(self) -> str:
        return platform_name(self.platform)

    def is_configured(self) -> bool:
        return self.backend is not None and self.backend.is_configured()

    def should_create(self) -> bool:
        return self.is_configured() and self.gates.auto_create

    def should_update(self) -> bool:
        return self.is_configured() and self.gates.auto_update

    def should_close(self) -> bool:
        return self.is_configured() and self.gates.auto_close

    def create_item(self, task: Task) -> int | str:
        return self.backend.create_item(task)

    def update_item(self, task: Task, external_id: int | str) -> None:
        self.backend.update_item(task, external_id)

    def close_item(self, external_id: int | str, comment: str | None = None) -> None:
        self.backend.close_item(external_id, comment)

    def add_comment(self, external_id: int | str, comment: str) -> None:
        self.backend.add_comment(external_id, comment)

    def describe(self) -> dict:
        """Summary for `agentplan platform`."""
        info = {
            "platform": self.platform,
            "name": self.name,
            "isConfigured": self.is_configured(),
            "autoCreate": self.gates.auto_create,
            "autoUpdate": self.gates.auto_update,
            "autoClose": self.gates.auto_close,
        }
        if isinstance(self.backend, GitHubBackend):
            info["repository"] = f"{self.backend.owner}/{self.backend.repo}" if self.backend.owner else None
        elif isinstance(self.backend, AzureBackend):
            info["organization"] = self.backend.settings.organization
            info["project"] = self.backend.settings.project
        return info
