"""Dev mode: safe self-modification pipeline (watch, build, isolate, reload)."""
from .models import (
    BuildOutcome,
    Probe,
    ReloadChoice,
    SessionState,
    Snapshot,
)
from .config import DevModeConfig
from .errors import (
    BuildError,
    DevModeError,
    FileSystemError,
    ReloadError,
    VersionControlError,
)

__all__ = [
    # Session (lazy import)
    "DevModeSession",
    # Models
    "BuildOutcome",
    "Probe",
    "ReloadChoice",
    "SessionState",
    "Snapshot",
    # Config
    "DevModeConfig",
    "load_yaml_config",
    # Host
    "HostSurface",
    # Errors
    "BuildError",
    "DevModeError",
    "FileSystemError",
    "ReloadError",
    "VersionControlError",
]


def __getattr__(name: str):
    if name == "DevModeSession":
        from .session import DevModeSession
        return DevModeSession
    if name == "load_yaml_config":
        from .yaml_config import load_yaml_config
        return load_yaml_config
    if name == "HostSurface":
        from .host import HostSurface
        return HostSurface
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
