"""CLI entry point for codex-bridge."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import uvicorn

from codex_bridge.api.server import create_app
from codex_bridge.app import BridgeApp
from codex_bridge.config import AppConfig, load_config
from codex_bridge.log import get_logger, setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="codex-bridge",
        description="OpenAI-compatible chat completions API for the Codex CLI agent",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    for name, help_text in (("start", "Start the server"), ("config-check", "Validate configuration")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
        sub.add_argument("-e", "--env", default=".env", help="Path to .env file")

    args = parser.parse_args()

    if args.command is None:
        args.command = "start"
        args.config = "config.yaml"
        args.env = ".env"

    if args.command == "config-check":
        _check_config(args.config, args.env)
    elif args.command == "start":
        _run(args.config, args.env)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    try:
        config = load_config(config_path, env_path)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Configuration valid: {config_path}")
    print(f"  Listen   : {config.server.host}:{config.server.port}")
    print(f"  Codex CLI: {config.codex.cli_path} (timeout={config.codex.timeout}s)")
    print(f"  Workdir  : {config.codex.workdir or Path.cwd()}")
    print(f"  Sessions : ttl={config.sessions.ttl_seconds}s sweep={config.sessions.sweep_interval_seconds}s")
    print(f"  Models   : {', '.join(config.models)}")


def _run(config_path: str, env_path: str) -> None:
    """Load config and serve the API."""
    try:
        config = load_config(config_path, env_path)
    except FileNotFoundError:
        config = AppConfig()
        missing = True
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    else:
        missing = False

    setup_logging(config.log_level, config.log_format)
    logger = get_logger(__name__)
    if missing:
        logger.warning("config_file_missing", path=config_path, hint="using defaults")

    app = create_app(BridgeApp(config))
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
