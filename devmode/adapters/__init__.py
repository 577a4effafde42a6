"""Adapters package - hosts that embed the dev mode engine.

Currently a terminal host; editor integrations implement the same
HostSurface interface.
"""
from __future__ import annotations

__all__ = [
    "ConsoleHost",
]

from devmode.adapters.console_host import ConsoleHost
