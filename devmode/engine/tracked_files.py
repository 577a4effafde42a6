"""Tracked file set: which files dev mode snapshots and watches.

A path is tracked when it lives under the source directory, has one of
the configured extensions, and no component of its path (relative to
the source directory) is an excluded directory.
"""
from __future__ import annotations

import os
from collections.abc import Iterable, Iterator
from pathlib import Path


class TrackedFileSet:
    """Path predicate plus a walker over the project tree."""

    def __init__(
        self,
        project_root: Path,
        source_dir: str,
        extensions: Iterable[str],
        excluded_dirs: Iterable[str],
    ) -> None:
        self.project_root = Path(project_root)
        self.source_root = self.project_root / source_dir
        self.extensions = frozenset(
            (ext if ext.startswith(".") else f".{ext}").lower()
            for ext in extensions
        )
        self.excluded_dirs = frozenset(excluded_dirs)

    @classmethod
    def from_config(cls, config) -> TrackedFileSet:
        return cls(
            config.root_path,
            config.source_dir,
            config.extensions,
            config.excluded_dirs,
        )

    def matches(self, path: str | Path) -> bool:
        """True if *path* (absolute or project-relative) is tracked."""
        p = Path(path)
        if not p.is_absolute():
            p = self.project_root / p
        try:
            rel_parts = p.relative_to(self.source_root).parts
        except ValueError:
            return False
        if not rel_parts:
            return False
        if any(part in self.excluded_dirs for part in rel_parts[:-1]):
            return False
        return p.suffix.lower() in self.extensions

    def relative(self, path: Path) -> str:
        """Project-relative POSIX path used as a snapshot key."""
        return path.relative_to(self.project_root).as_posix()

    def iter_files(self) -> Iterator[Path]:
        """Yield every tracked file, in a stable (sorted) order."""
        for dirpath, dirnames, filenames in os.walk(self.source_root):
            dirnames[:] = sorted(d for d in dirnames if d not in self.excluded_dirs)
            for name in sorted(filenames):
                full = Path(dirpath) / name
                if full.suffix.lower() in self.extensions and full.is_file():
                    yield full
