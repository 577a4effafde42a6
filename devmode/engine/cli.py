"""CLI entry point for dev mode.

Usage:
    devmode --root /path/to/assistant --build "python -m compileall -q src"
    devmode --config devmode.yaml --rollback-on-exit
    devmode --config devmode.yaml --context > context.md
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import DevModeConfig
from .errors import DevModeError


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devmode",
        description=(
            "Watch a project's source, rebuild on change, and reload "
            "it safely on a canary branch"
        ),
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="YAML config file with a 'devmode' section (default: DEVMODE_* env)",
    )
    parser.add_argument(
        "--root",
        default=None,
        help="Project root (default: from config)",
    )
    parser.add_argument(
        "--source-dir",
        default=None,
        help="Source directory relative to the root (default: src)",
    )
    parser.add_argument(
        "--build",
        default=None,
        help="Build command (default: from config)",
    )
    parser.add_argument(
        "--quiet-period",
        type=float,
        default=None,
        help="Seconds without changes before building (default: 1.0)",
    )
    parser.add_argument(
        "--reload-command",
        default=None,
        help="Shell command that soft-restarts the application",
    )
    parser.add_argument(
        "--full-restart-command",
        default=None,
        help="Shell command used when the soft restart fails",
    )
    parser.add_argument(
        "--rollback-on-exit",
        action="store_true",
        help="Restore the latest snapshot when exiting",
    )
    parser.add_argument(
        "--context",
        action="store_true",
        help="Print the source context digest and exit",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging and echo the output channel",
    )
    return parser


def load_config(args: argparse.Namespace) -> DevModeConfig:
    """Config from YAML or env, with command-line overrides applied."""
    if args.config:
        from .yaml_config import load_yaml_config
        config = load_yaml_config(args.config)
    else:
        config = DevModeConfig.from_env()
    if args.root is not None:
        config.project_root = args.root
    if args.source_dir is not None:
        config.source_dir = args.source_dir
    if args.build is not None:
        config.build_command = args.build
    if args.quiet_period is not None:
        config.quiet_period_seconds = args.quiet_period
    if args.reload_command is not None:
        config.reload_command = args.reload_command
    if args.full_restart_command is not None:
        config.full_restart_command = args.full_restart_command
    return config


async def run(config: DevModeConfig, *, rollback_on_exit: bool, verbose: bool) -> None:
    from devmode.adapters.console_host import ConsoleHost
    from .session import DevModeSession

    host = ConsoleHost(
        config.root_path,
        reload_command=config.reload_command,
        full_restart_command=config.full_restart_command,
        echo_output=verbose,
    )
    session = DevModeSession(config, host)
    await session.activate()
    try:
        # Runs until cancelled (Ctrl-C).
        await asyncio.Event().wait()
    finally:
        try:
            await session.deactivate(rollback=rollback_on_exit)
        finally:
            await session.dispose()


def main() -> None:
    args = _build_parser().parse_args()

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        config = load_config(args)
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}")
        sys.exit(1)
    logging.getLogger().setLevel(logging.DEBUG if args.verbose else config.log_level.upper())

    if args.context:
        from .session import DevModeSession
        from devmode.adapters.console_host import ConsoleHost

        session = DevModeSession(config, ConsoleHost(config.root_path))
        print(session.source_context())
        return

    try:
        asyncio.run(run(
            config,
            rollback_on_exit=args.rollback_on_exit,
            verbose=args.verbose,
        ))
    except KeyboardInterrupt:
        print("\nInterrupted.")
    except DevModeError as exc:
        print(f"Error: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
