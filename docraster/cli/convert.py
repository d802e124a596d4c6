from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
import json
from pathlib import Path

from docraster.config import get_settings
from docraster.errors import DocrasterError, http_status_for
from docraster.pipeline import (
    ConversionJob,
    ConversionPipeline,
    ConversionResult,
    LoggingPublisher,
    RasterizerOptions,
    build_publisher,
    job_from_path,
    probe_capabilities,
)
from docraster.utils.concurrency import TqdmProgressReporter, run_in_parallel
from docraster.utils.log_utils import logger


DEFAULT_CONCURRENCY = 2


@dataclass(slots=True)
class ConvertOptions:
    inputs: Sequence[Path]
    output_dir: Path | None
    concurrency: int
    publish: bool
    as_json: bool
    dry_run: bool


def _dedupe(paths: Sequence[Path]) -> list[Path]:
    seen: set[Path] = set()
    ordered: list[Path] = []
    for path in paths:
        resolved = path.resolve()
        if resolved in seen:
            continue
        seen.add(resolved)
        ordered.append(path)
    return ordered


def _summary(path: Path, outcome: ConversionResult | Exception) -> dict[str, object]:
    if isinstance(outcome, ConversionResult):
        return {"input": str(path), "ok": True, **outcome.to_dict()}
    return {
        "input": str(path),
        "ok": False,
        "error": type(outcome).__name__,
        "message": str(outcome),
        "status": http_status_for(outcome),
    }


async def run(options: ConvertOptions) -> int:
    settings = get_settings()
    inputs = _dedupe(options.inputs)
    if not inputs:
        logger.warning("No input files given.")
        return 0

    jobs: list[tuple[Path, ConversionJob]] = []
    failures: list[dict[str, object]] = []
    for path in inputs:
        try:
            jobs.append((path, job_from_path(path, max_bytes=settings.storage.max_upload_bytes)))
        except DocrasterError as exc:
            logger.error(f"Skipping {path}: {exc}")
            failures.append(_summary(path, exc))

    if options.dry_run:
        for path, job in jobs:
            logger.info(f"DRY RUN: {path} -> job {job.job_id}")
        return 0 if not failures else 2

    publisher = build_publisher(settings.publisher) if options.publish else LoggingPublisher()
    pipeline = ConversionPipeline(
        probe_capabilities(settings),
        options.output_dir or settings.storage.output_dir,
        rasterizer_options=RasterizerOptions.from_settings(
            settings.render, timeout_s=settings.tools.render_timeout_s
        ),
        publisher=publisher,
    )

    progress = TqdmProgressReporter("convert") if len(jobs) > 1 else None
    outcomes = await run_in_parallel(
        pipeline.run,
        [job for _, job in jobs],
        max_concurrency=options.concurrency,
        progress=progress,
    )

    summaries = failures + [_summary(path, outcome) for (path, _), outcome in zip(jobs, outcomes)]
    if options.as_json:
        for item in summaries:
            print(json.dumps(item, ensure_ascii=False))
    else:
        for (path, _), outcome in zip(jobs, outcomes):
            if isinstance(outcome, ConversionResult):
                logger.info(
                    f"{path}: {outcome.pdf.path} + {len(outcome.images)} page image(s)"
                )
            else:
                logger.error(f"{path}: {type(outcome).__name__} ({outcome})")

    return 0 if all(item["ok"] for item in summaries) else 2
