"""Exception hierarchy for the dev mode pipeline.

One exception per failure mode. Only FileSystemError and BuildError are
meant to reach the operator; VersionControlError is downgraded to a
warning wherever it is caught.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import BuildOutcome


class DevModeError(Exception):
    """Base exception for all dev mode errors."""


class FileSystemError(DevModeError):
    """A tracked file could not be read or written."""
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"File system error on {path}: {reason}")


class VersionControlError(DevModeError):
    """A version-control command failed or git is unavailable."""
    def __init__(self, command: str, reason: str):
        self.command = command
        self.reason = reason
        super().__init__(f"git {command} failed: {reason}")


class BuildError(DevModeError):
    """The build command exited non-zero."""
    def __init__(self, outcome: BuildOutcome):
        self.outcome = outcome
        detail = (outcome.stderr or outcome.stdout).strip()
        if len(detail) > 500:
            detail = detail[-500:]
        message = (
            f"Build command '{outcome.command}' exited with "
            f"code {outcome.returncode}"
        )
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ReloadError(DevModeError):
    """The host could not restart into the rebuilt code."""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Reload failed: {reason}")
