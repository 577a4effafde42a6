"""Git command interface.

Thin async wrapper over the ``git`` binary. Every failure, including
git not being installed or the directory not being a repository, is
raised as VersionControlError so callers can downgrade it to a warning
in one place. Metadata lookups return Probe results instead of raising.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from .errors import VersionControlError
from .models import Probe

logger = logging.getLogger(__name__)


class GitClient:
    """Runs git subcommands inside the project root."""

    def __init__(self, cwd: Path, executable: str = "git", timeout: float = 30.0) -> None:
        self._cwd = Path(cwd)
        self._executable = executable
        self._timeout = timeout

    async def run(self, *args: str) -> str:
        """Run ``git <args>`` and return stripped stdout."""
        command = " ".join(args)
        try:
            proc = await asyncio.create_subprocess_exec(
                self._executable,
                *args,
                cwd=str(self._cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as exc:
            raise VersionControlError(command, f"{self._executable} unavailable: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise VersionControlError(command, f"timed out after {self._timeout}s") from exc

        if proc.returncode != 0:
            reason = (
                stderr.decode(errors="replace").strip()
                or stdout.decode(errors="replace").strip()
                or f"exit code {proc.returncode}"
            )
            raise VersionControlError(command, reason)
        return stdout.decode(errors="replace").strip()

    async def create_and_switch_branch(self, name: str) -> None:
        await self.run("checkout", "-b", name)

    async def stage(self, pathspec: str) -> None:
        await self.run("add", "--", pathspec)

    async def commit(self, message: str) -> None:
        await self.run("commit", "-m", message)

    async def current_branch(self) -> Probe[str]:
        try:
            return Probe.success(await self.run("rev-parse", "--abbrev-ref", "HEAD"))
        except VersionControlError as exc:
            logger.debug("current_branch unavailable: %s", exc)
            return Probe.failure(str(exc))

    async def current_commit(self) -> Probe[str]:
        try:
            return Probe.success(await self.run("rev-parse", "HEAD"))
        except VersionControlError as exc:
            logger.debug("current_commit unavailable: %s", exc)
            return Probe.failure(str(exc))
