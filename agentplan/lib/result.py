"""
Typed results returned by engine operations.

A Result is either a success payload or a failure wrapping a PlanError.
Warnings (e.g. external mirror failures) can be attached to either.
"""

from dataclasses import dataclass, field
from typing import Any

from agentplan.lib.errors import PlanError


@dataclass
class Result:
    ok: bool
    value: Any = None
    error: PlanError | None = None
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def success(cls, value: Any = None, warnings: list[str] | None = None) -> "Result":
        return cls(ok=True, value=value, warnings=list(warnings or []))

    @classmethod
    def failure(cls, error: PlanError, warnings: list[str] | None = None) -> "Result":
        return cls(ok=False, error=error, warnings=list(warnings or []))

    @property
    def kind(self) -> str | None:
        """Failure kind (e.g. "TaskAlreadyActive"), None on success."""
        return self.error.kind if self.error else None

    @property
    def category(self) -> str | None:
        return self.error.category if self.error else None
