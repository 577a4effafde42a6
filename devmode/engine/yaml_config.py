"""YAML configuration loader.

Loads a single YAML file with a ``devmode`` section. When no YAML is
provided, DevModeConfig.from_env() works exactly as before.

Example YAML:
    devmode:
      project_root: /path/to/assistant
      source_dir: src
      extensions: [.py, .json]
      excluded_dirs: [__pycache__, node_modules, .git]
      key_files: [pyproject.toml, src/assistant/app.py]
      build_command: python -m compileall -q src
      quiet_period_seconds: 1.0
      shell_path_timeout_seconds: 2.0
      branch_prefix: dev-mode-canary-
      restore_prunes_new_files: false
      reload_command: systemctl --user restart assistant
      full_restart_command: systemctl --user restart assistant-stack
      log_level: INFO

Relative ``project_root`` values are resolved against the YAML file's
directory.
"""
from __future__ import annotations

import logging
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from .config import DevModeConfig

logger = logging.getLogger(__name__)

_LIST_FIELDS = {"extensions", "excluded_dirs", "key_files", "extra_search_paths"}
_FLOAT_FIELDS = {"quiet_period_seconds", "shell_path_timeout_seconds"}
_BOOL_FIELDS = {"restore_prunes_new_files"}


def _coerce(name: str, value: Any) -> Any:
    if name in _LIST_FIELDS:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return [str(item) for item in (value or [])]
    if name in _FLOAT_FIELDS:
        return float(value)
    if name in _BOOL_FIELDS:
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
    return "" if value is None else str(value)


def config_from_dict(raw: dict[str, Any], base_dir: Path | None = None) -> DevModeConfig:
    """Build a DevModeConfig from the ``devmode`` section of a parsed file."""
    known = {f.name for f in fields(DevModeConfig)}
    kwargs: dict[str, Any] = {}
    for key, value in raw.items():
        if key not in known:
            logger.warning("Ignoring unknown devmode config key: %s", key)
            continue
        kwargs[key] = _coerce(key, value)

    config = DevModeConfig(**kwargs)
    if base_dir is not None and not Path(config.project_root).expanduser().is_absolute():
        config.project_root = str((base_dir / config.project_root).resolve())
    return config


def load_yaml_config(path: str | Path) -> DevModeConfig:
    """Load and parse a YAML config file.

    Raises FileNotFoundError / yaml.YAMLError on unreadable input, and
    ValueError when the ``devmode`` section is not a mapping.
    """
    path = Path(path)
    logger.info(
        "load_yaml_config: attempting to load config from %s (exists=%s)",
        path, path.exists(),
    )
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error(
            "load_yaml_config: config file not found at %s (absolute path: %s)",
            path, path.absolute(),
        )
        raise
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise

    if not isinstance(raw, dict):
        raise ValueError(f"{path}: top level must be a mapping")

    section = raw.get("devmode") or {}
    if not isinstance(section, dict):
        raise ValueError(f"{path}: 'devmode' section must be a mapping")

    config = config_from_dict(section, base_dir=path.parent.resolve())
    logger.info(
        "Parsed YAML config %s: root=%s build=%r",
        path.name, config.project_root, config.build_command,
    )
    return config
