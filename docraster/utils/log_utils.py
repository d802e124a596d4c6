"""Logging utilities shared across the docraster package."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from loguru import logger
from rich.console import Console
from rich.logging import RichHandler


_CONFIGURED: bool = False

DEFAULT_CONSOLE_LEVEL = "INFO"
DEFAULT_FILE_LEVEL = "DEBUG"
DEFAULT_FILE_PATH = "docraster_debug.log"
DEFAULT_FILE_ROTATION = "5 MB"
DEFAULT_FILE_RETENTION = 2

_RICH_HANDLER_KWARGS: dict[str, Any] = {
    "markup": False,
    "show_time": False,
}


def _configure_logging(*, force: bool = False, console_level: str | None = None) -> None:
    """Configure the shared logger once per process."""
    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    logger.remove()

    logger.add(
        # stdout is reserved for `convert --json` and `probe` output.
        RichHandler(console=Console(stderr=True), **_RICH_HANDLER_KWARGS),  # type: ignore[arg-type]
        level=console_level or DEFAULT_CONSOLE_LEVEL,
        format="{message}",
    )

    if DEFAULT_FILE_PATH:
        resolved_file_path = Path(DEFAULT_FILE_PATH).expanduser().resolve()
        resolved_file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(resolved_file_path),
            level=DEFAULT_FILE_LEVEL,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name} | {message}",
            rotation=DEFAULT_FILE_ROTATION,
            retention=DEFAULT_FILE_RETENTION,
            enqueue=True,
        )

    _CONFIGURED = True


def set_console_level(level: str) -> None:
    """Reconfigure sinks with a different console level (e.g. from the CLI)."""
    _configure_logging(force=True, console_level=level.upper())


__all__ = ["logger", "set_console_level"]

# Configure logging on import so callers only need to import `logger`.
_configure_logging()
