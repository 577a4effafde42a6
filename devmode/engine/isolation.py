"""Isolation branch manager.

Each activation moves work onto a disposable canary branch so
self-modifications never land on the stable baseline. Isolation is
best-effort: when git refuses (no repository, dirty tree, missing
binary) the session carries on without it.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable

from .errors import VersionControlError
from .output import OutputChannel
from .vcs import GitClient

logger = logging.getLogger(__name__)


def _epoch_millis() -> int:
    return int(time.time() * 1000)


class IsolationBranchManager:
    """Creates the canary branch and auto-commits to it."""

    def __init__(
        self,
        git: GitClient,
        output: OutputChannel,
        *,
        branch_prefix: str = "dev-mode-canary-",
        stage_path: str = "src",
        clock: Callable[[], int] = _epoch_millis,
    ) -> None:
        self._git = git
        self._output = output
        self._branch_prefix = branch_prefix
        self._stage_path = stage_path
        self._clock = clock

    def branch_name(self) -> str:
        return f"{self._branch_prefix}{self._clock()}"

    async def create_branch(self) -> str | None:
        """Create and switch to a fresh canary branch.

        Returns the branch name, or None when isolation is unavailable.
        """
        name = self.branch_name()
        try:
            await self._git.create_and_switch_branch(name)
        except VersionControlError as exc:
            self._output.warning(f"Warning: Could not create canary branch: {exc.reason}")
            return None
        self._output.append_line(f"Created canary branch: {name}")
        return name

    async def commit(self, message: str) -> bool:
        """Stage the source directory and commit. Never raises."""
        try:
            await self._git.stage(self._stage_path)
            await self._git.commit(message)
        except VersionControlError as exc:
            # Most commonly "nothing to commit".
            self._output.append_line(f"Auto-commit note: {exc.reason}")
            return False
        self._output.append_line("Auto-committed changes to canary branch")
        return True
