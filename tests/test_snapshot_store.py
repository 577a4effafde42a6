from __future__ import annotations

import os
import stat
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from devmode.engine.errors import FileSystemError
from devmode.engine.models import UNKNOWN, Probe
from devmode.engine.snapshot_store import SnapshotStore
from devmode.engine.tracked_files import TrackedFileSet
from devmode.engine.vcs import GitClient


@pytest.fixture
def project(tmp_path: Path) -> Path:
    src = tmp_path / "src"
    (src / "pkg").mkdir(parents=True)
    (src / "app.py").write_text("print('v1')\n")
    # CRLF and no trailing newline must survive a round trip untouched.
    (src / "pkg" / "win.py").write_bytes(b"a = 1\r\nb = 2")
    (src / "pkg" / "conf.json").write_text('{"k": "é"}\n', encoding="utf-8")
    return tmp_path


def _git(branch: str | None = "main", commit: str | None = "abc123") -> MagicMock:
    git = MagicMock(spec=GitClient)
    git.current_branch = AsyncMock(
        return_value=Probe.success(branch) if branch else Probe.failure("not a repo")
    )
    git.current_commit = AsyncMock(
        return_value=Probe.success(commit) if commit else Probe.failure("not a repo")
    )
    return git


def _store(root: Path, git: MagicMock | None = None, prune: bool = False) -> SnapshotStore:
    tracked = TrackedFileSet(root, "src", [".py", ".json"], ["__pycache__"])
    return SnapshotStore(tracked, git or _git(), prune_new_files=prune)


def _tree_bytes(root: Path) -> dict[str, bytes]:
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted((root / "src").rglob("*"))
        if p.is_file()
    }


@pytest.mark.asyncio
async def test_capture_reads_tracked_files_with_metadata(project: Path) -> None:
    snapshot = await _store(project).capture("activation")

    assert set(snapshot.files) == {"src/app.py", "src/pkg/conf.json", "src/pkg/win.py"}
    assert snapshot.branch_name == "main"
    assert snapshot.commit_hash == "abc123"
    assert snapshot.description == "activation"
    assert snapshot.timestamp.tzinfo is not None


@pytest.mark.asyncio
async def test_capture_degrades_metadata_to_unknown(project: Path) -> None:
    snapshot = await _store(project, _git(branch=None, commit=None)).capture()

    assert snapshot.branch_name == UNKNOWN
    assert snapshot.commit_hash == UNKNOWN
    assert snapshot.file_count == 3


@pytest.mark.asyncio
async def test_snapshot_files_are_read_only(project: Path) -> None:
    snapshot = await _store(project).capture()
    with pytest.raises(TypeError):
        snapshot.files["src/app.py"] = "tampered"  # type: ignore[index]


@pytest.mark.asyncio
async def test_restore_immediately_after_capture_is_byte_identical(project: Path) -> None:
    before = _tree_bytes(project)
    store = _store(project)

    await store.restore(await store.capture())

    assert _tree_bytes(project) == before


@pytest.mark.asyncio
async def test_restore_reverts_edits_and_recreates_deleted_files(project: Path) -> None:
    store = _store(project)
    snapshot = await store.capture()

    (project / "src" / "app.py").write_text("print('v2')\n")
    (project / "src" / "pkg" / "win.py").unlink()
    (project / "src" / "pkg").joinpath("conf.json").write_text("{}")

    written = await store.restore(snapshot)

    assert sorted(written) == sorted(snapshot.files)
    assert (project / "src" / "app.py").read_text() == "print('v1')\n"
    assert (project / "src" / "pkg" / "win.py").read_bytes() == b"a = 1\r\nb = 2"
    assert snapshot.files["src/app.py"] == "print('v1')\n"


@pytest.mark.asyncio
async def test_restore_keeps_file_mode(project: Path) -> None:
    script = project / "src" / "app.py"
    os.chmod(script, 0o755)
    store = _store(project)
    snapshot = await store.capture()
    script.write_text("changed\n")

    await store.restore(snapshot)

    assert stat.S_IMODE(script.stat().st_mode) == 0o755


@pytest.mark.asyncio
async def test_restore_leaves_new_files_by_default(project: Path) -> None:
    store = _store(project)
    snapshot = await store.capture()
    new_file = project / "src" / "added.py"
    new_file.write_text("new\n")

    await store.restore(snapshot)

    assert new_file.exists()


@pytest.mark.asyncio
async def test_restore_prunes_new_files_when_enabled(project: Path) -> None:
    store = _store(project, prune=True)
    snapshot = await store.capture()
    new_file = project / "src" / "pkg" / "added.py"
    new_file.write_text("new\n")
    untracked = project / "src" / "scratch.txt"
    untracked.write_text("not tracked\n")

    touched = await store.restore(snapshot)

    assert not new_file.exists()
    assert "src/pkg/added.py" in touched
    assert untracked.exists()


@pytest.mark.asyncio
async def test_capture_fails_on_undecodable_file(project: Path) -> None:
    bad = project / "src" / "bad.py"
    bad.write_bytes(b"\xff\xfe\x00broken")
    with pytest.raises(FileSystemError) as excinfo:
        await _store(project).capture()
    assert Path(excinfo.value.path) == bad


@pytest.mark.asyncio
async def test_capture_fails_when_source_dir_missing(tmp_path: Path) -> None:
    with pytest.raises(FileSystemError, match="does not exist"):
        await _store(tmp_path).capture()


@pytest.mark.asyncio
async def test_restore_failure_keeps_earlier_writes(project: Path) -> None:
    store = _store(project)
    snapshot = await store.capture()
    (project / "src" / "app.py").write_text("edited\n")
    # Replace a later file's parent with a plain file so its write fails.
    pkg = project / "src" / "pkg"
    for child in pkg.iterdir():
        child.unlink()
    pkg.rmdir()
    pkg.write_text("now a file")

    with pytest.raises(FileSystemError):
        await store.restore(snapshot)

    assert (project / "src" / "app.py").read_text() == "print('v1')\n"
