"""Normalizer stage: make sure every accepted upload becomes a PDF."""

from __future__ import annotations

import contextlib
import os
from pathlib import Path

import aiofiles

from docraster.errors import ConversionFailed, ConversionUnavailable, DocrasterError
from docraster.utils.log_utils import logger

from .capabilities import Capabilities
from .models import PdfArtifact
from .office import PDF_MAGIC, OfficeConverter


OFFICE_EXTENSIONS: frozenset[str] = frozenset({".doc", ".docx"})


def _normalise_extension(extension: str) -> str:
    ext = extension.strip().lower()
    return ext if ext.startswith(".") else f".{ext}"


def _discard(*paths: Path) -> None:
    for path in paths:
        with contextlib.suppress(FileNotFoundError):
            path.unlink()


class Normalizer:
    """Produces exactly one PDF per job, either copied or converted."""

    def __init__(self, capabilities: Capabilities) -> None:
        self._capabilities = capabilities

    async def normalize(self, source_path: Path, extension: str, destination: Path) -> PdfArtifact:
        """Write a PDF for ``source_path`` to ``destination``.

        Raises:
            ConversionUnavailable: ``extension`` needs the office converter and
                none was probed.
            ConversionFailed: The input could not be turned into a PDF. No file
                is left at ``destination``.
        """
        ext = _normalise_extension(extension)
        if ext != ".pdf" and ext not in OFFICE_EXTENSIONS:
            raise ConversionFailed(f"Unsupported input extension '{ext}'.")

        converter: OfficeConverter | None = None
        if ext in OFFICE_EXTENSIONS:
            converter = self._capabilities.office_converter
            if converter is None:
                raise ConversionUnavailable(
                    f"Cannot convert {ext} to PDF: no office converter is installed."
                )

        partial = destination.with_name(destination.name + ".part")
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with aiofiles.open(source_path, "rb") as f:
                data = await f.read()

            if converter is None:
                if not data.startswith(PDF_MAGIC):
                    raise ConversionFailed(f"{source_path.name} does not look like a PDF file.")
                pdf_bytes = data
            else:
                logger.info(f"Converting {source_path.name} ({ext}) to PDF")
                pdf_bytes = await converter.convert(data, ext, "pdf")
                if not pdf_bytes:
                    raise ConversionFailed("Office converter returned no output.")
                if not pdf_bytes.startswith(PDF_MAGIC):
                    raise ConversionFailed("Office converter output is not a PDF.")

            async with aiofiles.open(partial, "wb") as f:
                await f.write(pdf_bytes)
            os.replace(partial, destination)
        except BaseException as exc:
            # No partial PDFs, including on cancellation.
            _discard(partial, destination)
            if isinstance(exc, Exception) and not isinstance(exc, DocrasterError):
                raise ConversionFailed(f"Normalizing {source_path.name} failed: {exc}") from exc
            raise

        artifact = PdfArtifact(
            path=destination,
            size_bytes=destination.stat().st_size,
            is_converted=ext != ".pdf",
        )
        logger.debug(
            f"Normalized {source_path.name} -> {destination.name} "
            f"({artifact.size_bytes} bytes, converted={artifact.is_converted})"
        )
        return artifact


__all__ = ["Normalizer", "OFFICE_EXTENSIONS"]
