"""Core data models for the dev mode pipeline.

All dataclasses, enums, and type aliases. Single source of truth
to avoid circular imports.
"""
from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Generic, TypeVar

T = TypeVar("T")

UNKNOWN = "unknown"

# Zero-argument async callback the host registers to persist its own
# state (open conversations etc.) right before a restart.
SaveHook = Callable[[], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(str, Enum):
    """Session lifecycle states. See lifecycle.py for transition rules."""
    INACTIVE = "inactive"
    WATCHING = "watching"
    BUILDING = "building"
    AWAITING_RELOAD_DECISION = "awaiting_reload_decision"
    RELOADING = "reloading"
    BUILD_FAILED = "build_failed"


class ReloadChoice(str, Enum):
    """Labels offered to the operator. Values are the button text."""
    RELOAD_NOW = "Reload Now"
    RELOAD_LATER = "Reload Later"
    TEST_FIRST = "Test First"
    SHOW_DIFF = "Show Diff"
    VIEW_OUTPUT = "View Output"
    ROLLBACK = "Rollback"
    RELOAD_WINDOW = "Reload Window"
    CANCEL = "Cancel"


@dataclass(frozen=True)
class Probe(Generic[T]):
    """Outcome of a best-effort external lookup.

    Either ``value`` is set, or ``reason`` explains why it is not.
    Callers always go through ``value_or`` so a missing tool never
    turns into a crash.
    """
    value: T | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.value is not None

    def value_or(self, default: T) -> T:
        return self.value if self.value is not None else default

    @classmethod
    def success(cls, value: T) -> Probe[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, reason: str) -> Probe[T]:
        return cls(reason=reason)


@dataclass(frozen=True)
class Snapshot:
    """Whole-tree file state plus version metadata at one instant.

    ``files`` maps project-relative POSIX paths to full text content and
    is wrapped read-only on construction.
    """
    files: Mapping[str, str]
    timestamp: datetime = field(default_factory=_utcnow)
    branch_name: str = UNKNOWN
    commit_hash: str = UNKNOWN
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "files", MappingProxyType(dict(self.files)))

    @property
    def file_count(self) -> int:
        return len(self.files)

    def summary(self) -> str:
        label = f" ({self.description})" if self.description else ""
        return (
            f"{self.timestamp.isoformat()} {self.branch_name}@"
            f"{self.commit_hash[:12]} {self.file_count} files{label}"
        )


@dataclass
class BuildOutcome:
    """Captured result of one build command run."""
    command: str
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0
