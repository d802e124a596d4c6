"""Startup probing of the external tools the pipeline depends on.

The probe runs once; its ``Capabilities`` record is handed to the
normalizer and rasterizer instead of having them look tools up lazily.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import shutil
from typing import Any

from docraster.config import DocrasterSettings, get_settings
from docraster.utils.log_utils import logger

from .office import LibreOfficeConverter, OfficeConverter
from .renderers import (
    CommandRenderer,
    PageRenderer,
    PopplerRenderer,
    PyMuPdfRenderer,
    RendererBackend,
)


SOFFICE_CANDIDATES: tuple[str, ...] = ("soffice", "libreoffice")
# ImageMagick 7, ImageMagick 6, GraphicsMagick.
MAGICK_CANDIDATES: tuple[tuple[str, ...], ...] = (("magick",), ("convert",), ("gm", "convert"))


@dataclass(frozen=True)
class Capabilities:
    office_converter: OfficeConverter | None = None
    renderers: Mapping[RendererBackend, PageRenderer] = field(default_factory=dict)
    command_renderer: CommandRenderer | None = None

    @property
    def office_available(self) -> bool:
        return self.office_converter is not None

    def renderer_for(self, backend: RendererBackend) -> PageRenderer | None:
        return self.renderers.get(backend)

    def describe(self) -> dict[str, Any]:
        return {
            "office_converter": self.office_available,
            "renderers": sorted(backend.value for backend in self.renderers),
            "command_renderer": (
                " ".join(self.command_renderer.command) if self.command_renderer else None
            ),
        }


def _which_first(candidates: tuple[str, ...], override: str | None) -> str | None:
    if override:
        return shutil.which(override) or None
    for name in candidates:
        found = shutil.which(name)
        if found:
            return found
    return None


def _find_magick(override: str | None) -> tuple[str, ...] | None:
    if override:
        resolved = shutil.which(override)
        return (resolved,) if resolved else None
    for command in MAGICK_CANDIDATES:
        resolved = shutil.which(command[0])
        if resolved:
            return (resolved, *command[1:])
    return None


def probe_capabilities(settings: DocrasterSettings | None = None) -> Capabilities:
    """Look up every external tool once and record what is available."""
    settings = settings or get_settings()
    tools = settings.tools

    office: OfficeConverter | None = None
    soffice = _which_first(SOFFICE_CANDIDATES, tools.soffice_path)
    if soffice:
        office = LibreOfficeConverter(soffice, timeout=tools.office_timeout_s)
    else:
        logger.warning("LibreOffice not found; DOC/DOCX uploads will be rejected.")

    renderers: dict[RendererBackend, PageRenderer] = {
        RendererBackend.PYMUPDF: PyMuPdfRenderer(),
    }
    if shutil.which("pdftoppm") and shutil.which("pdfinfo"):
        renderers[RendererBackend.POPPLER] = PopplerRenderer()
    else:
        logger.warning("Poppler (pdftoppm/pdfinfo) not found; its render configuration will be skipped.")

    command_renderer: CommandRenderer | None = None
    magick = _find_magick(tools.magick_path)
    if magick:
        command_renderer = CommandRenderer(magick)
    else:
        logger.warning("No ImageMagick/GraphicsMagick binary found; command fallback disabled.")

    capabilities = Capabilities(
        office_converter=office,
        renderers=renderers,
        command_renderer=command_renderer,
    )
    logger.info(f"Probed capabilities: {capabilities.describe()}")
    return capabilities


__all__ = ["Capabilities", "probe_capabilities"]
