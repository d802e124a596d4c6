"""LibreOfficeConverter against small fake ``soffice`` executables."""

from __future__ import annotations

from pathlib import Path
import sys

import pytest

from docraster.errors import ConversionFailed
from docraster.pipeline.office import PDF_MAGIC, LibreOfficeConverter


_FAKE_SOFFICE = """#!{python}
import pathlib
import sys

args = sys.argv[1:]
assert "--headless" in args
outdir = pathlib.Path(args[args.index("--outdir") + 1])
source = pathlib.Path(args[-1])
{body}
"""


def _fake_soffice(tmp_path: Path, body: str) -> str:
    script = tmp_path / "soffice"
    script.write_text(_FAKE_SOFFICE.format(python=sys.executable, body=body), encoding="utf-8")
    script.chmod(0o755)
    return str(script)


pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="uses a shebang script")


@pytest.mark.asyncio
async def test_converter_returns_pdf_bytes(tmp_path: Path) -> None:
    binary = _fake_soffice(
        tmp_path,
        '(outdir / (source.stem + ".pdf")).write_bytes(b"%PDF-1.4 converted " + source.read_bytes())',
    )
    converter = LibreOfficeConverter(binary, timeout=30)

    converted = await converter.convert(b"docx-bytes", ".docx")

    assert converted.startswith(PDF_MAGIC)
    assert converted.endswith(b"docx-bytes")


@pytest.mark.asyncio
async def test_converter_without_output_fails(tmp_path: Path) -> None:
    converter = LibreOfficeConverter(_fake_soffice(tmp_path, "pass"), timeout=30)

    with pytest.raises(ConversionFailed, match="no PDF output"):
        await converter.convert(b"doc-bytes", ".doc")


@pytest.mark.asyncio
async def test_converter_nonzero_exit_fails(tmp_path: Path) -> None:
    converter = LibreOfficeConverter(
        _fake_soffice(tmp_path, "sys.stderr.write('source file could not be loaded')\nsys.exit(1)"),
        timeout=30,
    )

    with pytest.raises(ConversionFailed, match="LibreOffice conversion failed"):
        await converter.convert(b"doc-bytes", "doc")


@pytest.mark.asyncio
async def test_converter_timeout_fails(tmp_path: Path) -> None:
    converter = LibreOfficeConverter(
        _fake_soffice(tmp_path, "import time\ntime.sleep(30)"),
        timeout=0.5,
    )

    with pytest.raises(ConversionFailed):
        await converter.convert(b"doc-bytes", ".doc")


@pytest.mark.asyncio
async def test_converter_rejects_empty_input(tmp_path: Path) -> None:
    converter = LibreOfficeConverter(str(tmp_path / "never-called"), timeout=30)

    with pytest.raises(ConversionFailed):
        await converter.convert(b"", ".docx")
