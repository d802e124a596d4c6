from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from functools import wraps
import json
from pathlib import Path
from typing import Any, ParamSpec, TypeVar

import typer  # type: ignore[import]

from docraster.config import get_settings
from docraster.pipeline import probe_capabilities
from docraster.utils.log_utils import logger, set_console_level

from . import convert


app = typer.Typer(
    help="docraster: convert PDF/DOC/DOCX uploads into a PDF plus page images",
)


_P = ParamSpec("_P")
_T = TypeVar("_T")


def _synchronous(handler: Callable[_P, Coroutine[Any, Any, _T]]) -> Callable[_P, _T]:
    @wraps(handler)
    def wrapper(*args: _P.args, **kwargs: _P.kwargs) -> _T:
        try:
            return asyncio.run(handler(*args, **kwargs))
        except KeyboardInterrupt as err:
            logger.info("Interrupted by user")
            raise typer.Exit(code=130) from err

    return wrapper


@app.callback()
def main(
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="Console log level (defaults to DOCRASTER_LOG_LEVEL or INFO).",
    ),
) -> None:
    level = log_level or get_settings().log_level
    set_console_level(level)


@app.command("convert")
@_synchronous
async def convert_command(
    inputs: list[Path] = typer.Argument(
        ...,
        help="PDF, DOC or DOCX files to convert.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    output_dir: Path | None = typer.Option(
        None,
        "--output-dir",
        help="Root directory for per-job outputs (defaults to DOCRASTER_OUTPUT_DIR).",
        file_okay=False,
        dir_okay=True,
        writable=True,
    ),
    concurrency: int = typer.Option(
        convert.DEFAULT_CONCURRENCY,
        "--concurrency",
        min=1,
        help="Maximum number of jobs converted at the same time.",
        show_default=True,
    ),
    publish: bool = typer.Option(
        False,
        "--publish/--no-publish",
        help="Send results to the configured webhook (N8N_WEBHOOK_URL).",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print one JSON document per input instead of log lines.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Validate inputs and exit without converting.",
    ),
) -> int:
    options = convert.ConvertOptions(
        inputs=inputs,
        output_dir=output_dir,
        concurrency=concurrency,
        publish=publish,
        as_json=as_json,
        dry_run=dry_run,
    )
    result = await convert.run(options)
    if result != 0:
        raise typer.Exit(code=result)
    return result


@app.command("probe")
def probe_command() -> None:
    """Report which external converters and renderers are installed."""
    capabilities = probe_capabilities(get_settings())
    print(json.dumps(capabilities.describe(), indent=2))


if __name__ == "__main__":
    app()
