"""Operator-visible output channel.

An append-only, timestamped line log. The session opens one on
construction and closes it on dispose(); every other component only
appends. Lines are kept in memory, mirrored to ``logging`` and pushed
to an optional host sink (e.g. an editor output panel).
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

OutputSink = Callable[[str], None]


class OutputChannel:
    """Process-scoped append-only log sink with an explicit lifecycle."""

    def __init__(
        self,
        name: str = "Dev Mode",
        sink: OutputSink | None = None,
        max_lines: int = 5000,
    ) -> None:
        self.name = name
        self._sink = sink
        self._max_lines = max_lines
        self._lines: list[str] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    def append_line(self, message: str, level: int = logging.INFO) -> str:
        """Timestamp and record *message*. Returns the formatted line."""
        line = f"[{datetime.now(timezone.utc).isoformat()}] {message}"
        logger.log(level, "[%s] %s", self.name, message)
        if self._closed:
            return line
        self._lines.append(line)
        if len(self._lines) > self._max_lines:
            del self._lines[: len(self._lines) - self._max_lines]
        if self._sink is not None:
            try:
                self._sink(line)
            except Exception:
                # A broken panel must not break the pipeline.
                logger.debug("Output sink for %s raised", self.name, exc_info=True)
        return line

    def warning(self, message: str) -> str:
        return self.append_line(message, logging.WARNING)

    def error(self, message: str) -> str:
        return self.append_line(message, logging.ERROR)

    def close(self) -> None:
        if not self._closed:
            logger.debug("Closing output channel %s (%d lines)", self.name, len(self._lines))
            self._closed = True
            self._sink = None
