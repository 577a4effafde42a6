"""Reload coordinator: save, soft restart, full-restart fallback.

A reload attempt always runs the host's save hook first (its failure is
logged and never blocks the reload), then asks the host for a soft
restart. If that raises, the operator is offered a full restart and it
only happens on explicit confirmation.
"""
from __future__ import annotations

import logging

from .errors import ReloadError
from .host import HostSurface
from .models import ReloadChoice, SaveHook
from .output import OutputChannel

logger = logging.getLogger(__name__)


class ReloadCoordinator:
    """Executes one reload attempt against the host."""

    def __init__(self, host: HostSurface, output: OutputChannel) -> None:
        self._host = host
        self._output = output
        self.save_hook: SaveHook | None = None

    async def run_save_hook(self) -> bool:
        """Invoke the save hook if one is registered. Never raises."""
        if self.save_hook is None:
            return False
        try:
            await self.save_hook()
        except Exception as exc:
            self._output.warning(f"Warning: Could not save state before reload: {exc}")
            logger.debug("Save hook failed", exc_info=True)
            return False
        self._output.append_line("State saved before reload")
        return True

    async def reload(self) -> bool:
        """Save state and restart the host.

        Returns True when a restart was requested, False when the
        operator declined the full-restart fallback. Raises ReloadError
        if the confirmed full restart itself fails.
        """
        self._output.append_line("Soft reloading (preserving workspace state)...")
        await self.run_save_hook()
        return await self.restart()

    async def restart(self) -> bool:
        try:
            await self._host.soft_restart()
        except Exception as exc:
            self._output.error(f"Could not restart: {exc}")
            return await self._offer_full_restart(exc)
        self._output.append_line("Soft restart requested")
        return True

    async def _offer_full_restart(self, cause: Exception) -> bool:
        choice = await self._host.choose(
            "Could not restart. Try a full reload?",
            [ReloadChoice.RELOAD_WINDOW.value, ReloadChoice.CANCEL.value],
            severity="warning",
        )
        if choice != ReloadChoice.RELOAD_WINDOW.value:
            self._output.append_line("Full reload declined")
            return False
        try:
            await self._host.full_restart()
        except Exception as exc:
            raise ReloadError(
                f"soft restart failed ({cause}); full restart failed ({exc})"
            ) from exc
        self._output.append_line("Full restart requested")
        return True
