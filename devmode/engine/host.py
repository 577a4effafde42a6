"""Abstract host surface.

The host is whatever embeds dev mode: an editor extension, a TUI, or
the console host in devmode.adapters. The pipeline never renders
anything itself; it asks the host to show prompts, reveal the output
log and perform restarts through this interface.
"""
from __future__ import annotations

import abc
from collections.abc import Sequence


class HostSurface(abc.ABC):
    """Operations dev mode consumes from its embedding host."""

    @abc.abstractmethod
    async def choose(
        self,
        message: str,
        options: Sequence[str],
        *,
        severity: str = "info",
    ) -> str | None:
        """Show *message* with labelled *options*.

        Returns the chosen label, or None if the prompt was dismissed.
        severity is one of "info", "warning", "error".
        """

    @abc.abstractmethod
    async def notify(self, message: str, *, severity: str = "info") -> None:
        """Show a passive notification."""

    @abc.abstractmethod
    def append_output(self, line: str) -> None:
        """Append a line to the host's output panel."""

    @abc.abstractmethod
    async def show_output(self) -> None:
        """Reveal the output panel."""

    @abc.abstractmethod
    async def open_diff(self) -> None:
        """Show the operator the uncommitted/branch changes."""

    @abc.abstractmethod
    async def soft_restart(self) -> None:
        """Reinitialize running code while keeping workspace state.

        Raises on failure; the caller falls back to full_restart().
        """

    @abc.abstractmethod
    async def full_restart(self) -> None:
        """Reload everything. Only called after operator confirmation."""
