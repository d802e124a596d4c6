"""Office document to PDF conversion through LibreOffice."""

from __future__ import annotations

from pathlib import Path
import tempfile
from typing import Protocol

import aiofiles

from docraster.errors import CommandError, ConversionFailed
from docraster.utils.log_utils import logger
from docraster.utils.process import run_command


PDF_MAGIC = b"%PDF-"


class OfficeConverter(Protocol):
    async def convert(self, data: bytes, source_extension: str, target_format: str = "pdf") -> bytes:
        """Return ``data`` converted to ``target_format``."""
        ...


class LibreOfficeConverter:
    """Runs ``soffice --headless --convert-to`` on bytes in a private temp directory.

    Each call gets its own user profile directory so concurrent conversions do
    not fight over LibreOffice's profile lock.
    """

    def __init__(self, binary: str, *, timeout: float = 120.0) -> None:
        self._binary = binary
        self._timeout = timeout

    @property
    def binary(self) -> str:
        return self._binary

    async def convert(self, data: bytes, source_extension: str, target_format: str = "pdf") -> bytes:
        if not data:
            raise ConversionFailed("Refusing to convert an empty document.")
        ext = source_extension if source_extension.startswith(".") else f".{source_extension}"

        with tempfile.TemporaryDirectory(prefix="docraster-office-") as tmp:
            tmp_dir = Path(tmp)
            input_path = tmp_dir / f"input{ext.lower()}"
            output_path = tmp_dir / f"input.{target_format}"
            async with aiofiles.open(input_path, "wb") as f:
                await f.write(data)

            argv = [
                self._binary,
                f"-env:UserInstallation={(tmp_dir / 'profile').as_uri()}",
                "--headless",
                "--norestore",
                "--convert-to",
                target_format,
                "--outdir",
                str(tmp_dir),
                str(input_path),
            ]
            try:
                await run_command(argv, timeout=self._timeout, cwd=tmp_dir)
            except CommandError as exc:
                raise ConversionFailed(f"LibreOffice conversion failed: {exc}") from exc

            if not output_path.exists():
                raise ConversionFailed(
                    f"LibreOffice finished but produced no {target_format.upper()} output."
                )
            async with aiofiles.open(output_path, "rb") as f:
                converted = await f.read()

        logger.debug(f"LibreOffice converted {len(data)} bytes of {ext} into {len(converted)} bytes")
        return converted


__all__ = ["LibreOfficeConverter", "OfficeConverter", "PDF_MAGIC"]
