"""Console host: drives dev mode from a terminal.

Prompts are rendered and validated with rich. Answers are read from
stdin through the event loop (``loop.add_reader``), so a prompt that is
cancelled by deactivate, dispose or Ctrl-C leaves nothing blocked on
stdin. Restarts run configured shell commands: ``reload_command`` for a
soft restart, ``full_restart_command`` for the fallback.
"""
from __future__ import annotations

import asyncio
import logging
import os
import sys
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.prompt import InvalidResponse, Prompt

from devmode.engine.errors import ReloadError
from devmode.engine.host import HostSurface

logger = logging.getLogger(__name__)

# Returns one line without its newline, or None at end of input.
LineReader = Callable[[], Awaitable[Optional[str]]]

_SEVERITY_STYLES = {
    "info": "bold cyan",
    "warning": "bold yellow",
    "error": "bold red",
}


class ConsoleHost(HostSurface):
    """HostSurface backed by a rich console and shell restart commands."""

    def __init__(
        self,
        project_root: Path,
        *,
        reload_command: str = "",
        full_restart_command: str = "",
        console: Console | None = None,
        echo_output: bool = False,
        stdin_fd: int | None = None,
        read_line: LineReader | None = None,
    ) -> None:
        self._root = Path(project_root)
        self._reload_command = reload_command
        self._full_restart_command = full_restart_command
        self._console = console or Console()
        self._echo_output = echo_output
        self._stdin_fd = stdin_fd
        self._read_line: LineReader = read_line or self._read_stdin_line
        self._pending_input = b""
        self._stdin_eof = False
        self._output: list[str] = []
        self._prompt_lock = asyncio.Lock()

    @property
    def output_lines(self) -> list[str]:
        return list(self._output)

    async def choose(
        self,
        message: str,
        options: Sequence[str],
        *,
        severity: str = "info",
    ) -> str | None:
        # One prompt at a time; stdin cannot be shared.
        async with self._prompt_lock:
            style = _SEVERITY_STYLES.get(severity, "bold")
            self._console.print(f"[{style}]{message}[/{style}]")
            for index, option in enumerate(options, start=1):
                self._console.print(f"  {index}. {option}")

            prompt = Prompt(
                "Choose (enter to dismiss)",
                console=self._console,
                choices=[str(i) for i in range(1, len(options) + 1)] + [""],
                show_default=False,
                show_choices=False,
            )
            while True:
                self._console.print(prompt.make_prompt(""), end="")
                try:
                    line = await self._read_line()
                except OSError as exc:
                    logger.warning("Cannot read prompt answer: %s", exc)
                    return None
                if line is None:
                    return None
                try:
                    answer = prompt.process_response(line)
                except InvalidResponse as error:
                    prompt.on_validate_error(line, error)
                    continue
                if not answer:
                    return None
                return options[int(answer) - 1]

    async def _read_stdin_line(self) -> str | None:
        """Read one line from stdin without blocking the event loop."""
        while b"\n" not in self._pending_input and not self._stdin_eof:
            chunk = await self._next_chunk()
            if not chunk:
                self._stdin_eof = True
            self._pending_input += chunk
        if not self._pending_input:
            return None
        line, _, self._pending_input = self._pending_input.partition(b"\n")
        return line.decode(errors="replace").rstrip("\r")

    async def _next_chunk(self) -> bytes:
        fd = self._stdin_fd if self._stdin_fd is not None else sys.stdin.fileno()
        loop = asyncio.get_running_loop()
        future: asyncio.Future[bytes] = loop.create_future()

        def on_readable() -> None:
            if future.done():
                return
            try:
                future.set_result(os.read(fd, 4096))
            except OSError as exc:
                future.set_exception(exc)

        loop.add_reader(fd, on_readable)
        try:
            return await future
        finally:
            loop.remove_reader(fd)

    async def notify(self, message: str, *, severity: str = "info") -> None:
        style = _SEVERITY_STYLES.get(severity, "bold")
        self._console.print(f"[{style}]{message}[/{style}]")

    def append_output(self, line: str) -> None:
        self._output.append(line)
        if self._echo_output:
            self._console.print(line, style="dim", markup=False, highlight=False)

    async def show_output(self) -> None:
        self._console.rule("Dev Mode output")
        for line in self._output:
            self._console.print(line, markup=False, highlight=False)
        self._console.rule()

    async def open_diff(self) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                "git", "--no-pager", "diff", "HEAD~1", "--stat", "--patch",
                cwd=str(self._root),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            self._console.print(f"[bold yellow]Cannot show diff: {exc}[/bold yellow]")
            return
        stdout, _ = await proc.communicate()
        text = stdout.decode(errors="replace").strip() or "(no changes)"
        self._console.print(text, markup=False, highlight=False)

    async def soft_restart(self) -> None:
        await self._run_restart(self._reload_command, "reload_command")

    async def full_restart(self) -> None:
        await self._run_restart(self._full_restart_command, "full_restart_command")

    async def _run_restart(self, command: str, label: str) -> None:
        if not command:
            raise ReloadError(f"no {label} configured")
        logger.info("Running %s: %s", label, command)
        proc = await asyncio.create_subprocess_shell(
            command,
            cwd=str(self._root),
            env=dict(os.environ),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        stdout, _ = await proc.communicate()
        if proc.returncode != 0:
            detail = stdout.decode(errors="replace").strip()
            raise ReloadError(
                f"{label} exited with code {proc.returncode}"
                + (f": {detail[-300:]}" if detail else "")
            )
