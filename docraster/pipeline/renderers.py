"""PDF page renderers used by the rasterizer.

Two in-process/library backends render pages for regular render
configurations. ``CommandRenderer`` wraps an ImageMagick/GraphicsMagick
binary and is only used as the last resort after every configuration failed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
import contextlib
from dataclasses import dataclass
from enum import Enum
import os
from pathlib import Path
import threading
from typing import Protocol

import fitz  # PyMuPDF
from pdf2image import convert_from_path

from docraster.utils.log_utils import logger
from docraster.utils.process import run_command


class RendererBackend(str, Enum):
    """Rendering backend identifiers."""

    PYMUPDF = "pymupdf"
    POPPLER = "poppler"


@dataclass(frozen=True, slots=True)
class RenderConfig:
    """A named set of rendering parameters tried in sequence by the rasterizer."""

    name: str
    backend: RendererBackend
    density: int = 150
    # Optional target pixel box for each page.
    width: int | None = None
    height: int | None = None

    def __post_init__(self) -> None:
        if self.density <= 0:
            raise ValueError("density must be a positive integer")
        for value in (self.width, self.height):
            if value is not None and value <= 0:
                raise ValueError("width/height must be positive when set")


class PageRenderer(Protocol):
    async def render(
        self,
        pdf_path: Path,
        out_dir: Path,
        config: RenderConfig,
        *,
        prefix: str,
        timeout: float,
    ) -> list[Path]:
        """Render every page and return the files the backend claims to have written."""
        ...


def _zoom_for(rect: fitz.Rect, density: int, width: int | None, height: int | None) -> float:
    zoom = max(density, 1) / 72.0  # PDF points are 1/72 inch
    limits: list[float] = []
    if width and rect.width > 0:
        limits.append(width / rect.width)
    if height and rect.height > 0:
        limits.append(height / rect.height)
    if limits:
        zoom = min([zoom, *limits])
    return zoom


def _render_with_pymupdf(
    pdf_path: str,
    out_dir: str,
    prefix: str,
    density: int,
    width: int | None,
    height: int | None,
    cancelled: threading.Event | None = None,
) -> list[str]:
    written: list[str] = []
    with fitz.open(pdf_path) as doc:
        for index, page in enumerate(doc):
            if cancelled is not None and cancelled.is_set():
                break
            zoom = _zoom_for(page.rect, density, width, height)
            pix = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)  # type: ignore[attr-defined]
            target = os.path.join(out_dir, f"{prefix}-{index + 1:04d}.png")
            pix.save(target)
            written.append(target)
    return written


class PyMuPdfRenderer:
    """Renders pages with PyMuPDF in a worker thread.

    ``density`` sets the base resolution; ``width``/``height`` only scale
    pages down so they fit inside the box.
    """

    backend = RendererBackend.PYMUPDF

    async def render(
        self,
        pdf_path: Path,
        out_dir: Path,
        config: RenderConfig,
        *,
        prefix: str,
        timeout: float,
    ) -> list[Path]:
        cancelled = threading.Event()
        worker = asyncio.ensure_future(
            asyncio.to_thread(
                _render_with_pymupdf,
                str(pdf_path),
                str(out_dir),
                prefix,
                config.density,
                config.width,
                config.height,
                cancelled,
            )
        )
        try:
            paths = await asyncio.wait_for(asyncio.shield(worker), timeout=timeout)
        except BaseException:
            # The thread cannot be interrupted; stop it at the next page and
            # wait so nothing is written into out_dir after we return.
            cancelled.set()
            with contextlib.suppress(Exception):
                await worker
            raise
        return [Path(p) for p in paths]


class PopplerRenderer:
    """Renders pages with Poppler's ``pdftoppm`` through pdf2image.

    When both ``width`` and ``height`` are set the long edge is scaled to the
    larger of the two (``pdftoppm -scale-to``), preserving aspect ratio.
    """

    backend = RendererBackend.POPPLER

    def __init__(self, poppler_path: str | None = None) -> None:
        self._poppler_path = poppler_path

    @staticmethod
    def _size_for(config: RenderConfig) -> int | tuple[int | None, int | None] | None:
        if config.width and config.height:
            return max(config.width, config.height)
        if config.width or config.height:
            return (config.width, config.height)
        return None

    async def render(
        self,
        pdf_path: Path,
        out_dir: Path,
        config: RenderConfig,
        *,
        prefix: str,
        timeout: float,
    ) -> list[Path]:
        paths = await asyncio.wait_for(
            asyncio.to_thread(
                convert_from_path,
                str(pdf_path),
                dpi=config.density,
                output_folder=str(out_dir),
                fmt="png",
                output_file=f"{prefix}-",
                paths_only=True,
                size=self._size_for(config),
                poppler_path=self._poppler_path,
                timeout=int(max(timeout, 1)),
            ),
            # pdftoppm is killed by pdf2image at `timeout`; leave it a moment to do so.
            timeout=timeout + 5,
        )
        return [Path(p) for p in paths]


class CommandRenderer:
    """Last-resort renderer that calls an ImageMagick-compatible binary directly.

    The binary writes ``<prefix>-0000.png``, ``<prefix>-0001.png``... and the
    caller is expected to scan ``out_dir`` for the results afterwards.
    """

    def __init__(self, command: Sequence[str]) -> None:
        if not command:
            raise ValueError("command must name a binary")
        self._command = tuple(command)

    @property
    def command(self) -> tuple[str, ...]:
        return self._command

    def build_argv(
        self,
        pdf_path: Path,
        out_dir: Path,
        *,
        prefix: str,
        density: int,
        quality: int,
    ) -> list[str]:
        return [
            *self._command,
            "-density",
            str(density),
            str(pdf_path),
            "-quality",
            str(quality),
            "+adjoin",
            str(out_dir / f"{prefix}-%04d.png"),
        ]

    async def render(
        self,
        pdf_path: Path,
        out_dir: Path,
        *,
        prefix: str,
        density: int,
        quality: int,
        timeout: float,
    ) -> None:
        argv = self.build_argv(pdf_path, out_dir, prefix=prefix, density=density, quality=quality)
        completed = await run_command(argv, timeout=timeout, cwd=out_dir)
        if completed.stderr.strip():
            logger.debug(f"{self._command[0]} stderr: {completed.stderr.strip()}")


__all__ = [
    "CommandRenderer",
    "PageRenderer",
    "PopplerRenderer",
    "PyMuPdfRenderer",
    "RenderConfig",
    "RendererBackend",
]
