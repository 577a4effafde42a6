"""Snapshot store: capture and restore the tracked source tree.

Snapshots live in memory only. A snapshot holds the full text of every
tracked file plus the branch and commit that were checked out when it
was taken, so a rollback never depends on git being usable.
"""
from __future__ import annotations

import logging
from pathlib import Path

from devmode.shared.services.durable_write import atomic_write_text, read_text_exact

from .errors import FileSystemError
from .models import UNKNOWN, Snapshot
from .tracked_files import TrackedFileSet
from .vcs import GitClient

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Create and restore whole-tree snapshots of tracked files."""

    def __init__(
        self,
        tracked: TrackedFileSet,
        git: GitClient,
        *,
        prune_new_files: bool = False,
    ) -> None:
        self._tracked = tracked
        self._git = git
        self._prune_new_files = prune_new_files

    async def capture(self, description: str = "") -> Snapshot:
        """Read every tracked file into a new Snapshot.

        Branch/commit lookups are best-effort and fall back to
        "unknown". Any unreadable file aborts the capture with
        FileSystemError.
        """
        source_root = self._tracked.source_root
        if not source_root.is_dir():
            raise FileSystemError(str(source_root), "source directory does not exist")

        branch = (await self._git.current_branch()).value_or(UNKNOWN)
        commit = (await self._git.current_commit()).value_or(UNKNOWN)

        files: dict[str, str] = {}
        for path in self._tracked.iter_files():
            try:
                files[self._tracked.relative(path)] = read_text_exact(path)
            except (OSError, UnicodeDecodeError) as exc:
                raise FileSystemError(str(path), str(exc)) from exc

        snapshot = Snapshot(
            files=files,
            branch_name=branch,
            commit_hash=commit,
            description=description,
        )
        logger.info(
            "Captured snapshot: %d files on %s@%s",
            snapshot.file_count, branch, commit[:12],
        )
        return snapshot

    async def restore(self, snapshot: Snapshot) -> list[str]:
        """Write every file in *snapshot* back to disk.

        Returns the project-relative paths that were written (and, with
        pruning enabled, the ones removed). Writes already performed are
        not undone when a later file fails.
        """
        root = self._tracked.project_root
        touched: list[str] = []
        for rel_path, content in snapshot.files.items():
            target = root / rel_path
            try:
                atomic_write_text(target, content)
            except OSError as exc:
                raise FileSystemError(str(target), str(exc)) from exc
            touched.append(rel_path)

        if self._prune_new_files:
            touched.extend(self._prune(snapshot))

        logger.info(
            "Restored snapshot from %s (%d paths)",
            snapshot.timestamp.isoformat(), len(touched),
        )
        return touched

    def _prune(self, snapshot: Snapshot) -> list[str]:
        """Delete tracked files that did not exist at capture time."""
        removed: list[str] = []
        if not self._tracked.source_root.is_dir():
            return removed
        for path in list(self._tracked.iter_files()):
            rel_path = self._tracked.relative(path)
            if rel_path in snapshot.files:
                continue
            try:
                Path(path).unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise FileSystemError(str(path), str(exc)) from exc
            logger.info("Removed %s (created after snapshot)", rel_path)
            removed.append(rel_path)
        return removed
