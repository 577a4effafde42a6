from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from devmode.engine.cli import _build_parser, load_config, run
from devmode.engine.config import DevModeConfig
from devmode.engine.errors import FileSystemError


def test_command_line_overrides_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "devmode.yaml"
    config_path.write_text("devmode:\n  build_command: make\n  quiet_period_seconds: 2\n")

    args = _build_parser().parse_args([
        "--config", str(config_path),
        "--build", "npm run compile",
        "--reload-command", "kill -HUP 1234",
    ])
    config = load_config(args)

    assert config.build_command == "npm run compile"
    assert config.quiet_period_seconds == 2.0
    assert config.reload_command == "kill -HUP 1234"


def test_env_config_used_without_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DEVMODE_BUILD_COMMAND", "cargo build")
    args = _build_parser().parse_args(["--root", str(tmp_path), "--quiet-period", "0.2"])

    config = load_config(args)

    assert config.build_command == "cargo build"
    assert config.project_root == str(tmp_path)
    assert config.quiet_period_seconds == 0.2
    assert args.rollback_on_exit is False


@pytest.mark.asyncio
async def test_run_disposes_session_when_exit_rollback_fails(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    events: list[str] = []

    class StubSession:
        def __init__(self, config, host) -> None:
            pass

        async def activate(self) -> None:
            events.append("activate")

        async def deactivate(self, rollback: bool = False) -> None:
            events.append(f"deactivate rollback={rollback}")
            raise FileSystemError(str(tmp_path / "src" / "app.py"), "read-only file system")

        async def dispose(self) -> None:
            events.append("dispose")

    monkeypatch.setattr("devmode.engine.session.DevModeSession", StubSession)
    monkeypatch.setattr("devmode.adapters.console_host.ConsoleHost", lambda *a, **kw: object())

    task = asyncio.ensure_future(
        run(DevModeConfig(project_root=str(tmp_path)), rollback_on_exit=True, verbose=False)
    )
    while "activate" not in events:
        await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(FileSystemError):
        await task

    assert events == ["activate", "deactivate rollback=True", "dispose"]
