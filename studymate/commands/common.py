"""Shared helpers for CLI commands."""

import asyncio
import sys

from rich.console import Console

from studymate.app import App, build_app
from studymate.config_loader import load_config, validate_config
from studymate.logging_config import setup_logging

console = Console()


def open_app(args, console_logging: bool = False) -> App:
    """Load + validate config, configure logging and build the app."""
    config = load_config(getattr(args, "config", None))
    errors = validate_config(config)
    if errors:
        for err in errors:
            console.print(f"[red]Config error:[/red] {err}")
        sys.exit(1)

    log_cfg = config.get("logging", {})
    setup_logging(
        level="DEBUG" if getattr(args, "verbose", False) else log_cfg.get("level", "INFO"),
        log_dir=log_cfg.get("dir"),
        console=console_logging,
    )
    return build_app(config)


def run_with_app(args, coro_fn, console_logging: bool = False):
    """Build the app, await ``coro_fn(app)`` and always close the app."""
    app = open_app(args, console_logging=console_logging)

    async def _main():
        try:
            return await coro_fn(app)
        finally:
            await app.aclose()

    return asyncio.run(_main())
