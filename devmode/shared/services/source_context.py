"""Source context export: a text digest of the project a chat agent edits.

Lists every tracked file and includes the configured key files in full,
as fenced markdown blocks.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from devmode.engine.tracked_files import TrackedFileSet

logger = logging.getLogger(__name__)

_FENCE_LANGUAGES = {
    ".py": "python",
    ".pyi": "python",
    ".json": "json",
    ".toml": "toml",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".md": "markdown",
    ".ts": "typescript",
    ".js": "javascript",
}


def build_source_context(tracked: TrackedFileSet, key_files: Iterable[str]) -> str:
    """Return a markdown digest of the tracked tree.

    Key files that do not exist or cannot be decoded are skipped.
    """
    root = tracked.project_root
    parts = [
        "# Project Source Code\n",
        f"Project Path: {root}\n",
        "## File Structure:",
    ]
    if tracked.source_root.is_dir():
        parts.extend(f"- {tracked.relative(path)}" for path in tracked.iter_files())
    else:
        parts.append(f"(source directory {tracked.source_root} is missing)")

    parts.append("\n## Key Files:\n")
    for key_file in key_files:
        path = root / key_file
        if not path.is_file():
            continue
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            logger.debug("Skipping unreadable key file %s", path)
            continue
        language = _FENCE_LANGUAGES.get(Path(key_file).suffix.lower(), "")
        parts.append(f"### {key_file}\n```{language}\n{content}\n```\n")

    return "\n".join(parts)
