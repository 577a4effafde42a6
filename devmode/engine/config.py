"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via DEVMODE_* env vars,
or load a YAML file with yaml_config.load_yaml_config().
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


# Common tool install locations appended to the build PATH. Globs and
# "~" are expanded at build time.
DEFAULT_SEARCH_PATHS: tuple[str, ...] = (
    "/usr/local/bin",
    "/opt/homebrew/bin",  # Homebrew on Apple Silicon
    "/usr/bin",
    "/bin",
    "~/.local/bin",
    "~/.pyenv/shims",
    "~/.cargo/bin",
    "~/.nvm/versions/node/*/bin",
    "~/.npm-global/bin",
    "~/.yarn/bin",
    "/opt/homebrew/opt/node/bin",
)


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class DevModeConfig:
    """Dev mode pipeline configuration."""

    # Project layout. source_dir is relative to project_root and is
    # both what gets snapshotted and what gets staged on auto-commit.
    project_root: str = "."
    source_dir: str = "src"
    extensions: list[str] = field(
        default_factory=lambda: [".py", ".pyi", ".json", ".toml"],
    )
    excluded_dirs: list[str] = field(
        default_factory=lambda: [
            ".git", "__pycache__", "node_modules", ".venv",
            "build", "dist", "out", ".mypy_cache", ".pytest_cache",
        ],
    )
    # Files included in full by source_context(), relative to project_root.
    key_files: list[str] = field(default_factory=lambda: ["pyproject.toml"])

    # Build
    build_command: str = "python -m compileall -q src"
    shell_path_timeout_seconds: float = 2.0
    extra_search_paths: list[str] = field(
        default_factory=lambda: list(DEFAULT_SEARCH_PATHS),
    )

    # Debounce window after the last change before a build fires.
    quiet_period_seconds: float = 1.0

    # Isolation branch + auto-commit
    branch_prefix: str = "dev-mode-canary-"
    commit_message_prefix: str = "Dev Mode auto-commit"

    # When true, restore() also deletes tracked files that did not
    # exist when the snapshot was captured.
    restore_prunes_new_files: bool = False

    # Restart commands used by the console host. Empty means the
    # corresponding restart is unavailable.
    reload_command: str = ""
    full_restart_command: str = ""

    # Logging
    log_level: str = "INFO"

    @property
    def root_path(self) -> Path:
        return Path(self.project_root).expanduser().resolve()

    @classmethod
    def from_env(cls) -> DevModeConfig:
        """Load configuration from DEVMODE_* environment variables."""
        devmode_vars = {
            k: v for k, v in os.environ.items() if k.startswith("DEVMODE_")
        }
        if devmode_vars:
            logger.info(
                "DevModeConfig.from_env: DEVMODE_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(devmode_vars.items())),
            )
        else:
            logger.debug("DevModeConfig.from_env: no DEVMODE_* env vars set, using defaults")

        config = cls(
            project_root=os.getenv("DEVMODE_PROJECT_ROOT", cls.project_root),
            source_dir=os.getenv("DEVMODE_SOURCE_DIR", cls.source_dir),
            build_command=os.getenv("DEVMODE_BUILD_COMMAND", cls.build_command),
            shell_path_timeout_seconds=float(os.getenv(
                "DEVMODE_SHELL_PATH_TIMEOUT",
                str(cls.shell_path_timeout_seconds),
            )),
            quiet_period_seconds=float(os.getenv(
                "DEVMODE_QUIET_PERIOD", str(cls.quiet_period_seconds)
            )),
            branch_prefix=os.getenv("DEVMODE_BRANCH_PREFIX", cls.branch_prefix),
            commit_message_prefix=os.getenv(
                "DEVMODE_COMMIT_PREFIX", cls.commit_message_prefix
            ),
            restore_prunes_new_files=_env_flag(
                "DEVMODE_RESTORE_PRUNES_NEW_FILES",
                cls.restore_prunes_new_files,
            ),
            reload_command=os.getenv("DEVMODE_RELOAD_COMMAND", cls.reload_command),
            full_restart_command=os.getenv(
                "DEVMODE_FULL_RESTART_COMMAND", cls.full_restart_command
            ),
            log_level=os.getenv("DEVMODE_LOG_LEVEL", cls.log_level),
        )
        extensions = os.getenv("DEVMODE_EXTENSIONS")
        if extensions:
            config.extensions = _split_list(extensions)
        excluded = os.getenv("DEVMODE_EXCLUDED_DIRS")
        if excluded:
            config.excluded_dirs = _split_list(excluded)
        key_files = os.getenv("DEVMODE_KEY_FILES")
        if key_files:
            config.key_files = _split_list(key_files)
        extra_paths = os.getenv("DEVMODE_EXTRA_SEARCH_PATHS")
        if extra_paths:
            config.extra_search_paths = [
                p for p in extra_paths.split(os.pathsep) if p
            ]

        logger.info(
            "DevModeConfig.from_env: root=%s source_dir=%s build=%r quiet=%.2fs",
            config.project_root, config.source_dir,
            config.build_command, config.quiet_period_seconds,
        )
        return config
