from __future__ import annotations

from pathlib import Path

import pytest

from docraster.errors import ConversionFailed, ConversionUnavailable
from docraster.pipeline.capabilities import Capabilities
from docraster.pipeline.normalizer import Normalizer

from fakes import MINIMAL_PDF, StubOfficeConverter


def _write(path: Path, data: bytes) -> Path:
    path.write_bytes(data)
    return path


@pytest.mark.asyncio
async def test_pdf_is_copied_unchanged(tmp_path: Path) -> None:
    source = _write(tmp_path / "resume.pdf", MINIMAL_PDF)
    destination = tmp_path / "out" / "resume.pdf"
    converter = StubOfficeConverter()

    artifact = await Normalizer(Capabilities(office_converter=converter)).normalize(
        source, ".PDF", destination
    )

    assert artifact.is_converted is False
    assert artifact.path == destination
    assert destination.read_bytes() == source.read_bytes()
    assert artifact.size_bytes == len(MINIMAL_PDF)
    assert converter.calls == []


@pytest.mark.asyncio
async def test_pdf_passthrough_needs_no_converter(tmp_path: Path) -> None:
    source = _write(tmp_path / "resume.pdf", MINIMAL_PDF)

    artifact = await Normalizer(Capabilities()).normalize(source, "pdf", tmp_path / "copy.pdf")

    assert artifact.is_converted is False


@pytest.mark.asyncio
async def test_docx_is_converted(tmp_path: Path) -> None:
    source = _write(tmp_path / "resume.docx", b"PK\x03\x04 fake docx")
    destination = tmp_path / "resume.pdf"
    converter = StubOfficeConverter()

    artifact = await Normalizer(Capabilities(office_converter=converter)).normalize(
        source, ".docx", destination
    )

    assert artifact.is_converted is True
    assert artifact.size_bytes > 0
    assert destination.read_bytes() == MINIMAL_PDF
    assert converter.calls == [(len(b"PK\x03\x04 fake docx"), ".docx", "pdf")]
    assert not (tmp_path / "resume.pdf.part").exists()


@pytest.mark.asyncio
@pytest.mark.parametrize("extension", [".doc", ".docx"])
async def test_missing_converter_is_unavailable(tmp_path: Path, extension: str) -> None:
    source = _write(tmp_path / f"resume{extension}", b"office bytes")
    destination = tmp_path / "resume.pdf"

    with pytest.raises(ConversionUnavailable):
        await Normalizer(Capabilities()).normalize(source, extension, destination)

    assert not destination.exists()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "converter",
    [
        StubOfficeConverter(output=b""),
        StubOfficeConverter(output=b"not a pdf at all"),
        StubOfficeConverter(error=ConversionFailed("soffice crashed")),
        StubOfficeConverter(error=OSError("disk gone")),
    ],
    ids=["empty", "not-pdf", "converter-error", "unexpected-error"],
)
async def test_failed_conversion_leaves_no_file(
    tmp_path: Path, converter: StubOfficeConverter
) -> None:
    source = _write(tmp_path / "resume.docx", b"office bytes")
    destination = tmp_path / "resume.pdf"

    with pytest.raises(ConversionFailed):
        await Normalizer(Capabilities(office_converter=converter)).normalize(
            source, ".docx", destination
        )

    assert not destination.exists()
    assert not (tmp_path / "resume.pdf.part").exists()


@pytest.mark.asyncio
async def test_pdf_without_header_is_rejected(tmp_path: Path) -> None:
    source = _write(tmp_path / "fake.pdf", b"<html>nope</html>")
    destination = tmp_path / "out.pdf"

    with pytest.raises(ConversionFailed):
        await Normalizer(Capabilities()).normalize(source, ".pdf", destination)

    assert not destination.exists()


@pytest.mark.asyncio
async def test_unknown_extension_is_rejected(tmp_path: Path) -> None:
    source = _write(tmp_path / "notes.txt", b"hello")

    with pytest.raises(ConversionFailed):
        await Normalizer(Capabilities()).normalize(source, ".txt", tmp_path / "notes.pdf")
