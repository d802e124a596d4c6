"""Conversion pipeline orchestrator: Normalizer -> Rasterizer -> publisher."""

from __future__ import annotations

from pathlib import Path
import shutil

from docraster.config import DocrasterSettings, get_settings
from docraster.errors import RasterizationFailed
from docraster.utils.log_utils import logger

from .capabilities import Capabilities, probe_capabilities
from .intake import safe_stem
from .models import ConversionJob, ConversionResult, ImageArtifact, utcnow
from .normalizer import Normalizer
from .publisher import LoggingPublisher, ResultPublisher, build_publisher
from .rasterizer import PAGE_FILENAME, SUPPORTED_IMAGE_EXTENSIONS, Rasterizer, RasterizerOptions


class ConversionPipeline:
    """Runs one job at a time per call; concurrent calls share nothing but ``output_root``.

    Failure policy:
      * Normalizer errors abort the job, remove its output directory and propagate.
      * Rasterizer errors degrade the job to a PDF-only result.
      * Publisher errors are logged and never change the outcome.
    """

    def __init__(
        self,
        capabilities: Capabilities,
        output_root: Path,
        *,
        rasterizer_options: RasterizerOptions | None = None,
        publisher: ResultPublisher | None = None,
    ) -> None:
        self._output_root = output_root
        self._normalizer = Normalizer(capabilities)
        self._rasterizer = Rasterizer(capabilities, rasterizer_options)
        self._publisher = publisher or LoggingPublisher()

    @classmethod
    def from_settings(
        cls,
        settings: DocrasterSettings | None = None,
        *,
        capabilities: Capabilities | None = None,
        publisher: ResultPublisher | None = None,
    ) -> ConversionPipeline:
        settings = settings or get_settings()
        return cls(
            capabilities or probe_capabilities(settings),
            settings.storage.output_dir,
            rasterizer_options=RasterizerOptions.from_settings(
                settings.render, timeout_s=settings.tools.render_timeout_s
            ),
            publisher=publisher or build_publisher(settings.publisher),
        )

    def job_dir(self, job: ConversionJob) -> Path:
        return self._output_root / job.job_id

    async def run(self, job: ConversionJob) -> ConversionResult:
        logger.info(f"Job {job.job_id}: processing {job.original_name} ({job.size_bytes} bytes)")
        job_dir = self.job_dir(job)
        job_dir.mkdir(parents=True, exist_ok=False)

        try:
            pdf = await self._normalizer.normalize(
                job.source_path,
                job.extension,
                job_dir / f"{safe_stem(job.original_name)}.pdf",
            )
        except BaseException:
            shutil.rmtree(job_dir, ignore_errors=True)
            raise

        images: tuple[ImageArtifact, ...] = ()
        strategy: str | None = None
        try:
            report = await self._rasterizer.rasterize(pdf.path, job_dir)
            images, strategy = report.images, report.strategy
        except RasterizationFailed as exc:
            logger.warning(f"Job {job.job_id}: returning PDF only ({exc})")
        except Exception:
            logger.exception(f"Job {job.job_id}: unexpected rasterizer error; returning PDF only")
            self._discard_pages(job_dir, keep=pdf.path)

        result = ConversionResult(
            job=job,
            pdf=pdf,
            images=images,
            processed_at=utcnow(),
            render_strategy=strategy,
        )
        await self._publish(result)
        return result

    async def _publish(self, result: ConversionResult) -> None:
        try:
            delivered = await self._publisher.publish(result)
        except Exception:
            logger.exception(f"Publisher raised for job {result.job.job_id}")
            return
        if not delivered:
            logger.warning(f"Result of job {result.job.job_id} was not delivered")

    @staticmethod
    def _discard_pages(job_dir: Path, *, keep: Path) -> None:
        prefix = PAGE_FILENAME.split("{", 1)[0]
        for path in job_dir.glob(f"{prefix}*"):
            if path == keep or path.suffix.lower() not in SUPPORTED_IMAGE_EXTENSIONS:
                continue
            path.unlink(missing_ok=True)


async def run_conversion(job: ConversionJob, settings: DocrasterSettings | None = None) -> ConversionResult:
    """Convenience wrapper: probe tools, build the pipeline from settings and run ``job``."""
    pipeline = ConversionPipeline.from_settings(settings)
    return await pipeline.run(job)


__all__ = ["ConversionPipeline", "run_conversion"]
