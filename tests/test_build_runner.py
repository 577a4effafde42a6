from __future__ import annotations

import os
from pathlib import Path

import pytest

from devmode.engine.build_runner import (
    BuildRunner,
    _login_shell_argv,
    expand_search_paths,
    merge_search_path,
    probe_shell_path,
)
from devmode.engine.errors import BuildError
from devmode.engine.output import OutputChannel


@pytest.fixture
def no_login_shell(monkeypatch: pytest.MonkeyPatch) -> None:
    """Point SHELL somewhere that cannot start, forcing the fallback PATH."""
    monkeypatch.setenv("SHELL", "/nonexistent/devmode-test-shell")


def test_merge_search_path_dedupes_and_keeps_order() -> None:
    merged = merge_search_path(
        os.pathsep.join(["/a", "/b", ""]),
        os.pathsep.join(["/b", "/c"]),
        "",
        "/a",
    )
    assert merged.split(os.pathsep) == ["/a", "/b", "/c"]


def test_expand_search_paths_expands_globs_and_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    (tmp_path / "versions" / "v18" / "bin").mkdir(parents=True)
    (tmp_path / "versions" / "v20" / "bin").mkdir(parents=True)

    expanded = expand_search_paths([
        "~/versions/*/bin",
        "~/.local/bin",
        "~/missing/*/bin",
        "/usr/bin",
    ])

    assert expanded == [
        str(tmp_path / "versions" / "v18" / "bin"),
        str(tmp_path / "versions" / "v20" / "bin"),
        str(tmp_path / ".local" / "bin"),
        "/usr/bin",
    ]


def test_login_shell_argv_skips_login_flag_for_fish() -> None:
    assert _login_shell_argv("/usr/bin/fish") == ["/usr/bin/fish", "-c", "echo $PATH"]
    assert _login_shell_argv("/bin/zsh") == ["/bin/zsh", "-l", "-c", "echo $PATH"]


@pytest.mark.asyncio
async def test_probe_shell_path_unstartable_shell_fails_softly() -> None:
    probe = await probe_shell_path(1.0, env={"SHELL": "/nonexistent/devmode-test-shell"})
    assert not probe.ok
    assert probe.value_or("fallback") == "fallback"


@pytest.mark.asyncio
async def test_probe_shell_path_times_out(tmp_path: Path) -> None:
    slow_shell = tmp_path / "slowsh"
    slow_shell.write_text("#!/bin/sh\nexec sleep 5\n")
    slow_shell.chmod(0o755)

    probe = await probe_shell_path(0.2, env={"SHELL": str(slow_shell)})

    assert not probe.ok
    assert "did not answer" in (probe.reason or "")


@pytest.mark.asyncio
async def test_probe_shell_path_uses_last_line(tmp_path: Path) -> None:
    chatty_shell = tmp_path / "chattysh"
    chatty_shell.write_text("#!/bin/sh\necho 'Welcome!'\necho /opt/tools/bin:/usr/bin\n")
    chatty_shell.chmod(0o755)

    probe = await probe_shell_path(2.0, env={"SHELL": str(chatty_shell)})

    assert probe.value == "/opt/tools/bin:/usr/bin"


@pytest.mark.asyncio
async def test_build_success_with_stderr_is_not_a_failure(tmp_path: Path, no_login_shell: None) -> None:
    output = OutputChannel()
    runner = BuildRunner("echo built; echo 'deprecated flag' >&2", tmp_path, output)

    outcome = await runner.build()

    assert outcome.succeeded
    assert outcome.stdout.strip() == "built"
    assert "deprecated flag" in outcome.stderr
    assert any("Using fallback PATH" in line for line in output.lines)
    assert any("Build stderr: deprecated flag" in line for line in output.lines)


@pytest.mark.asyncio
async def test_build_nonzero_exit_raises_build_error(tmp_path: Path, no_login_shell: None) -> None:
    runner = BuildRunner("echo 'syntax error' >&2; exit 3", tmp_path, OutputChannel())

    with pytest.raises(BuildError) as excinfo:
        await runner.build()

    assert excinfo.value.outcome.returncode == 3
    assert "syntax error" in str(excinfo.value)


@pytest.mark.asyncio
async def test_build_runs_in_project_root(tmp_path: Path, no_login_shell: None) -> None:
    runner = BuildRunner("pwd", tmp_path, OutputChannel())
    outcome = await runner.build()
    assert Path(outcome.stdout.strip()).resolve() == tmp_path.resolve()


@pytest.mark.asyncio
async def test_build_finds_tools_in_extra_search_paths(tmp_path: Path, no_login_shell: None) -> None:
    tool_dir = tmp_path / "toolchain" / "bin"
    tool_dir.mkdir(parents=True)
    tool = tool_dir / "devmode-fake-compiler"
    tool.write_text("#!/bin/sh\necho compiled\n")
    tool.chmod(0o755)

    runner = BuildRunner(
        "devmode-fake-compiler",
        tmp_path,
        OutputChannel(),
        search_paths=[str(tool_dir)],
    )
    outcome = await runner.build()

    assert outcome.stdout.strip() == "compiled"


@pytest.mark.asyncio
async def test_build_missing_cwd_raises_build_error(tmp_path: Path, no_login_shell: None) -> None:
    runner = BuildRunner("true", tmp_path / "gone", OutputChannel())
    with pytest.raises(BuildError) as excinfo:
        await runner.build()
    assert excinfo.value.outcome.returncode == -1
