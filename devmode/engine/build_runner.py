"""Build runner: invoke the project's build command with a usable PATH.

The process hosting dev mode is often launched from a GUI or service
manager with a minimal PATH that lacks the user's toolchain. Before
each build the runner merges three sources into PATH:

1. the inherited PATH,
2. a fixed list of common install locations,
3. the PATH reported by the user's login shell (best-effort, bounded
   by a short timeout).

Only the build's exit code decides success. Text on stderr is logged
but is not a failure by itself.
"""
from __future__ import annotations

import asyncio
import glob
import logging
import os
import shutil
import time
from collections.abc import Iterable, Mapping
from pathlib import Path

from .errors import BuildError
from .models import BuildOutcome, Probe
from .output import OutputChannel

logger = logging.getLogger(__name__)


def expand_search_paths(entries: Iterable[str]) -> list[str]:
    """Expand ``~`` and globs. Glob entries with no match are dropped."""
    expanded: list[str] = []
    for entry in entries:
        entry = os.path.expanduser(entry)
        if glob.has_magic(entry):
            expanded.extend(sorted(glob.glob(entry)))
        else:
            expanded.append(entry)
    return expanded


def merge_search_path(*parts: str) -> str:
    """Join PATH fragments, dropping empties and duplicates, keeping order."""
    seen: set[str] = set()
    merged: list[str] = []
    for part in parts:
        for entry in part.split(os.pathsep):
            entry = entry.strip()
            if entry and entry not in seen:
                seen.add(entry)
                merged.append(entry)
    return os.pathsep.join(merged)


def _login_shell_argv(shell: str) -> list[str]:
    # fish has no -l semantics for this; everything else gets a login shell.
    if "fish" in Path(shell).name:
        return [shell, "-c", "echo $PATH"]
    return [shell, "-l", "-c", "echo $PATH"]


async def probe_shell_path(
    timeout: float,
    env: Mapping[str, str] | None = None,
) -> Probe[str]:
    """Ask the user's login shell for its PATH."""
    environ = env if env is not None else os.environ
    shell = environ.get("SHELL") or "/bin/bash"
    try:
        proc = await asyncio.create_subprocess_exec(
            *_login_shell_argv(shell),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
            stdin=asyncio.subprocess.DEVNULL,
        )
    except OSError as exc:
        return Probe.failure(f"cannot start {shell}: {exc}")

    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        return Probe.failure(f"{shell} did not answer within {timeout}s")

    if proc.returncode != 0:
        return Probe.failure(f"{shell} exited with code {proc.returncode}")
    # Login shells may print banners first; PATH is the last line.
    lines = [line.strip() for line in stdout.decode(errors="replace").splitlines() if line.strip()]
    if not lines:
        return Probe.failure(f"{shell} printed an empty PATH")
    return Probe.success(lines[-1])


class BuildRunner:
    """Runs the configured build command in the project root."""

    def __init__(
        self,
        command: str,
        cwd: Path,
        output: OutputChannel,
        *,
        search_paths: Iterable[str] = (),
        shell_path_timeout: float = 2.0,
    ) -> None:
        self._command = command
        self._cwd = Path(cwd)
        self._output = output
        self._search_paths = list(search_paths)
        self._shell_path_timeout = shell_path_timeout

    @property
    def command(self) -> str:
        return self._command

    async def resolve_path(self) -> str:
        """Build the PATH value used for the build subprocess."""
        base = merge_search_path(
            os.environ.get("PATH", ""),
            os.pathsep.join(expand_search_paths(self._search_paths)),
        )
        shell_path = await probe_shell_path(self._shell_path_timeout)
        if not shell_path.ok:
            self._output.append_line("Using fallback PATH (shell PATH unavailable)")
            logger.debug("Shell PATH probe failed: %s", shell_path.reason)
            return base
        return merge_search_path(base, shell_path.value_or(""))

    async def build(self) -> BuildOutcome:
        """Run the build. Raises BuildError on a non-zero exit."""
        path = await self.resolve_path()
        self._output.append_line(f"Running: {self._command} with PATH={path[:100]}...")

        started = time.monotonic()
        shell_executable = shutil.which("bash", path=path) or shutil.which("bash") or None
        try:
            proc = await asyncio.create_subprocess_shell(
                self._command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self._cwd),
                env={**os.environ, "PATH": path},
                executable=shell_executable,
            )
        except OSError as exc:
            self._output.error(f"Could not start build: {exc}")
            raise BuildError(BuildOutcome(
                command=self._command,
                returncode=-1,
                stderr=str(exc),
                duration_seconds=time.monotonic() - started,
            )) from exc
        stdout, stderr = await proc.communicate()
        outcome = BuildOutcome(
            command=self._command,
            returncode=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
            duration_seconds=time.monotonic() - started,
        )

        if outcome.stderr.strip():
            self._output.append_line(f"Build stderr: {outcome.stderr.rstrip()}")
        if outcome.stdout.strip():
            self._output.append_line(f"Build stdout: {outcome.stdout.rstrip()}")

        logger.info(
            "Build %r finished rc=%s in %.2fs",
            self._command, outcome.returncode, outcome.duration_seconds,
        )
        if not outcome.succeeded:
            raise BuildError(outcome)
        return outcome
