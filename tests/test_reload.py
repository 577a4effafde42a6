from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from devmode.engine.errors import ReloadError
from devmode.engine.host import HostSurface
from devmode.engine.output import OutputChannel
from devmode.engine.reload import ReloadCoordinator


def _host(choice: str | None = None) -> MagicMock:
    host = MagicMock(spec=HostSurface)
    host.choose = AsyncMock(return_value=choice)
    host.soft_restart = AsyncMock()
    host.full_restart = AsyncMock()
    return host


@pytest.mark.asyncio
async def test_save_hook_runs_before_soft_restart() -> None:
    host = _host()
    calls: list[str] = []
    host.soft_restart.side_effect = lambda: calls.append("restart")

    async def save() -> None:
        calls.append("save")

    coordinator = ReloadCoordinator(host, OutputChannel())
    coordinator.save_hook = save

    assert await coordinator.reload() is True
    assert calls == ["save", "restart"]
    host.full_restart.assert_not_awaited()


@pytest.mark.asyncio
async def test_failing_save_hook_does_not_block_restart() -> None:
    host = _host()
    output = OutputChannel()
    coordinator = ReloadCoordinator(host, output)
    coordinator.save_hook = AsyncMock(side_effect=RuntimeError("disk full"))

    assert await coordinator.reload() is True

    host.soft_restart.assert_awaited_once()
    assert any("Could not save state before reload" in line for line in output.lines)


@pytest.mark.asyncio
async def test_soft_restart_failure_offers_full_restart() -> None:
    host = _host(choice="Reload Window")
    host.soft_restart.side_effect = RuntimeError("not supported")

    assert await ReloadCoordinator(host, OutputChannel()).reload() is True

    args, kwargs = host.choose.call_args
    assert args[1] == ["Reload Window", "Cancel"]
    assert kwargs["severity"] == "warning"
    host.full_restart.assert_awaited_once()


@pytest.mark.asyncio
@pytest.mark.parametrize("answer", ["Cancel", None])
async def test_full_restart_needs_explicit_confirmation(answer: str | None) -> None:
    host = _host(choice=answer)
    host.soft_restart.side_effect = RuntimeError("not supported")

    assert await ReloadCoordinator(host, OutputChannel()).reload() is False

    host.full_restart.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_full_restart_raises_reload_error() -> None:
    host = _host(choice="Reload Window")
    host.soft_restart.side_effect = RuntimeError("soft broke")
    host.full_restart.side_effect = RuntimeError("full broke")

    with pytest.raises(ReloadError, match="full broke"):
        await ReloadCoordinator(host, OutputChannel()).reload()


@pytest.mark.asyncio
async def test_reload_without_save_hook() -> None:
    host = _host()
    coordinator = ReloadCoordinator(host, OutputChannel())
    assert await coordinator.run_save_hook() is False
    assert await coordinator.reload() is True
    host.soft_restart.assert_awaited_once()
