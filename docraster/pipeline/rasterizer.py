"""Rasterizer stage: PDF -> ordered page images with fallback render strategies.

The rasterizer walks an ordered tuple of ``RenderConfig`` objects. Each
attempt renders into its own scratch directory; the first attempt whose
claimed files all pass validation wins and later configurations are never
tried. When every configuration fails, an ImageMagick-compatible binary is
invoked directly (argv list, no shell) and its output directory is scanned.

Validation rule, shared by both paths: a page file must exist and be larger
than ``min_image_bytes``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
import shutil
import tempfile

from docraster.config import RenderSettings
from docraster.config.settings import DEFAULT_MIN_IMAGE_BYTES
from docraster.errors import RasterizationFailed
from docraster.utils.log_utils import logger

from .capabilities import Capabilities
from .models import ImageArtifact
from .renderers import RenderConfig, RendererBackend


SUPPORTED_IMAGE_EXTENSIONS = {
    ".png",
    ".jpg",
    ".jpeg",
    ".tif",
    ".tiff",
    ".bmp",
    ".gif",
}

DEFAULT_RENDER_TIMEOUT_S = 120.0
SYSTEM_FALLBACK = "system-fallback"
RENDER_PREFIX = "render"
PAGE_FILENAME = "page-{page:04d}{ext}"

DEFAULT_RENDER_CONFIGS: tuple[RenderConfig, ...] = (
    RenderConfig(
        name="high-density",
        backend=RendererBackend.PYMUPDF,
        density=300,
        width=2480,
        height=3508,
    ),
    RenderConfig(
        name="low-density",
        backend=RendererBackend.POPPLER,
        density=150,
        width=1240,
        height=1754,
    ),
)


@dataclass(frozen=True, slots=True)
class RasterizationPartialSuccess:
    """Notice that a non-first strategy was needed. Logged, never raised."""

    strategy: str
    failed_attempts: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class RasterizationReport:
    images: tuple[ImageArtifact, ...]
    strategy: str
    attempts: tuple[str, ...] = ()
    notice: RasterizationPartialSuccess | None = None


@dataclass(frozen=True, slots=True)
class RasterizerOptions:
    configs: tuple[RenderConfig, ...] = DEFAULT_RENDER_CONFIGS
    fallback_density: int = 150
    fallback_quality: int = 90
    min_image_bytes: int = DEFAULT_MIN_IMAGE_BYTES
    timeout_s: float = DEFAULT_RENDER_TIMEOUT_S

    @classmethod
    def from_settings(cls, render: RenderSettings, *, timeout_s: float) -> RasterizerOptions:
        configs: list[RenderConfig] = []
        for item in render.configs:
            try:
                backend = RendererBackend(item.backend.lower())
            except ValueError:
                logger.warning(
                    f"Ignoring render configuration '{item.name}' with unknown backend '{item.backend}'."
                )
                continue
            configs.append(
                RenderConfig(
                    name=item.name,
                    backend=backend,
                    density=item.density,
                    width=item.width,
                    height=item.height,
                )
            )
        return cls(
            configs=tuple(configs),
            fallback_density=render.fallback_density,
            fallback_quality=render.fallback_quality,
            min_image_bytes=render.min_image_bytes,
            timeout_s=timeout_s,
        )


def is_valid_page_file(path: Path, *, min_bytes: int = DEFAULT_MIN_IMAGE_BYTES) -> bool:
    try:
        return path.is_file() and path.stat().st_size > min_bytes
    except OSError:
        return False


def _is_image(path: Path) -> bool:
    return path.suffix.lower() in SUPPORTED_IMAGE_EXTENSIONS


def collect_rendered_pages(
    output_dir: Path,
    prefix: str,
    *,
    min_bytes: int = DEFAULT_MIN_IMAGE_BYTES,
    candidates: Iterable[Path] | None = None,
) -> list[Path]:
    """Return the validated page files of one render attempt in page order.

    With ``candidates`` (the files a renderer claims to have written) every
    candidate must pass validation, otherwise the attempt counts as failed and
    an empty list is returned. Without ``candidates`` the directory is scanned
    for image files starting with ``prefix``, falling back to any image file in
    the directory when nothing matches the prefix.
    """
    if candidates is not None:
        claimed = sorted({Path(c) for c in candidates}, key=lambda p: p.name)
        if not claimed:
            return []
        invalid = [p for p in claimed if not is_valid_page_file(p, min_bytes=min_bytes)]
        if invalid:
            logger.debug(f"{len(invalid)} of {len(claimed)} claimed page file(s) missing or too small")
            return []
        return claimed

    if not output_dir.is_dir():
        return []
    images = sorted((p for p in output_dir.iterdir() if p.is_file() and _is_image(p)), key=lambda p: p.name)
    matched = [p for p in images if p.name.startswith(prefix)]
    if not matched:
        if images:
            logger.debug(f"No files with prefix '{prefix}' in {output_dir}; using any image file")
        matched = images
    return [p for p in matched if is_valid_page_file(p, min_bytes=min_bytes)]


class Rasterizer:
    """Turns a normalized PDF into ``ImageArtifact`` objects numbered from 1."""

    def __init__(self, capabilities: Capabilities, options: RasterizerOptions | None = None) -> None:
        self._capabilities = capabilities
        self._options = options or RasterizerOptions()

    @property
    def options(self) -> RasterizerOptions:
        return self._options

    async def rasterize(self, pdf_path: Path, output_dir: Path) -> RasterizationReport:
        """Render ``pdf_path`` into ``output_dir/page-0001.png``...

        Raises:
            RasterizationFailed: No configuration and no fallback produced a
                valid page.
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        failed: list[str] = []

        for config in self._options.configs:
            pages = await self._try_config(config, pdf_path, output_dir)
            if pages is not None:
                return self._report(pages, config.name, failed)
            failed.append(config.name)

        pages = await self._try_system_fallback(pdf_path, output_dir)
        if pages is not None:
            return self._report(pages, SYSTEM_FALLBACK, failed)
        failed.append(SYSTEM_FALLBACK)

        message = f"No render strategy produced a valid page for {pdf_path.name} (tried: {', '.join(failed)})"
        logger.error(message)
        raise RasterizationFailed(message, attempts=tuple(failed))

    def _report(self, pages: list[ImageArtifact], strategy: str, failed: Sequence[str]) -> RasterizationReport:
        notice = None
        if failed:
            notice = RasterizationPartialSuccess(strategy=strategy, failed_attempts=tuple(failed))
            logger.warning(
                f"Rasterization needed fallback strategy '{strategy}' after {', '.join(failed)} failed"
            )
        logger.info(f"Rasterized {len(pages)} page(s) with '{strategy}'")
        return RasterizationReport(
            images=tuple(pages),
            strategy=strategy,
            attempts=(*failed, strategy),
            notice=notice,
        )

    async def _try_config(
        self, config: RenderConfig, pdf_path: Path, output_dir: Path
    ) -> list[ImageArtifact] | None:
        renderer = self._capabilities.renderer_for(config.backend)
        if renderer is None:
            logger.warning(f"Render config '{config.name}' skipped: backend '{config.backend.value}' unavailable")
            return None

        attempt_dir = Path(tempfile.mkdtemp(prefix=f".attempt-{config.name}-", dir=output_dir))
        try:
            try:
                claimed = await renderer.render(
                    pdf_path,
                    attempt_dir,
                    config,
                    prefix=RENDER_PREFIX,
                    timeout=self._options.timeout_s,
                )
            except Exception as exc:  # Continue to next config on failure
                logger.warning(f"Render config '{config.name}' failed: {exc!r}. Trying next strategy.")
                return None

            valid = collect_rendered_pages(
                attempt_dir,
                RENDER_PREFIX,
                min_bytes=self._options.min_image_bytes,
                candidates=claimed,
            )
            if not valid:
                logger.warning(
                    f"Render config '{config.name}' returned {len(claimed)} file(s) but not all are valid pages."
                )
                return None
            return self._publish_pages(valid, output_dir)
        finally:
            shutil.rmtree(attempt_dir, ignore_errors=True)

    async def _try_system_fallback(self, pdf_path: Path, output_dir: Path) -> list[ImageArtifact] | None:
        command = self._capabilities.command_renderer
        if command is None:
            logger.warning("Command fallback unavailable: no ImageMagick-compatible binary was probed.")
            return None

        attempt_dir = Path(tempfile.mkdtemp(prefix=".attempt-fallback-", dir=output_dir))
        try:
            try:
                await command.render(
                    pdf_path,
                    attempt_dir,
                    prefix=RENDER_PREFIX,
                    density=self._options.fallback_density,
                    quality=self._options.fallback_quality,
                    timeout=self._options.timeout_s,
                )
            except Exception as exc:
                # Some binaries exit non-zero after writing usable pages; the scan decides.
                logger.warning(f"Command fallback reported an error: {exc}")

            valid = collect_rendered_pages(
                attempt_dir,
                RENDER_PREFIX,
                min_bytes=self._options.min_image_bytes,
            )
            if not valid:
                return None
            return self._publish_pages(valid, output_dir)
        finally:
            shutil.rmtree(attempt_dir, ignore_errors=True)

    @staticmethod
    def _publish_pages(valid: Sequence[Path], output_dir: Path) -> list[ImageArtifact]:
        images: list[ImageArtifact] = []
        for page_number, source in enumerate(valid, start=1):
            target = output_dir / PAGE_FILENAME.format(page=page_number, ext=source.suffix.lower())
            shutil.move(str(source), target)
            images.append(
                ImageArtifact(path=target, page_number=page_number, size_bytes=target.stat().st_size)
            )
        return images


__all__ = [
    "DEFAULT_RENDER_CONFIGS",
    "RasterizationPartialSuccess",
    "RasterizationReport",
    "Rasterizer",
    "RasterizerOptions",
    "SYSTEM_FALLBACK",
    "collect_rendered_pages",
    "is_valid_page_file",
]
