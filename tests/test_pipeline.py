"""End-to-end tests for `ConversionPipeline.run`.

Scenario 1 renders a real two-page PDF with PyMuPDF; the other scenarios use
stub converters/renderers so no LibreOffice or Poppler install is needed.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from PIL import Image
import pytest

from docraster.errors import ConversionUnavailable
from docraster.pipeline import (
    Capabilities,
    ConversionPipeline,
    ConversionResult,
    RasterizerOptions,
    RenderConfig,
    RendererBackend,
    job_from_path,
)
from docraster.pipeline.renderers import PyMuPdfRenderer
from docraster.pipeline.rasterizer import SYSTEM_FALLBACK

from fakes import StubCommandRenderer, StubOfficeConverter, StubRenderer, write_pdf


class _RecordingPublisher:
    def __init__(self, *, delivered: bool = True, error: Exception | None = None) -> None:
        self.results: list[ConversionResult] = []
        self._delivered = delivered
        self._error = error

    async def publish(self, result: ConversionResult) -> bool:
        self.results.append(result)
        if self._error is not None:
            raise self._error
        return self._delivered


def _pipeline(
    tmp_path: Path,
    capabilities: Capabilities,
    publisher: _RecordingPublisher,
    configs: tuple[RenderConfig, ...] | None = None,
) -> ConversionPipeline:
    options = RasterizerOptions(
        configs=configs
        or (RenderConfig(name="high-density", backend=RendererBackend.PYMUPDF, density=72),),
        timeout_s=30,
    )
    return ConversionPipeline(
        capabilities,
        tmp_path / "converted",
        rasterizer_options=options,
        publisher=publisher,
    )


@pytest.mark.asyncio
async def test_pdf_upload_produces_numbered_pages(tmp_path: Path) -> None:
    source = write_pdf(tmp_path / "resume.pdf", pages=2)
    publisher = _RecordingPublisher()
    capabilities = Capabilities(renderers={RendererBackend.PYMUPDF: PyMuPdfRenderer()})

    result = await _pipeline(tmp_path, capabilities, publisher).run(job_from_path(source))

    assert result.pdf.is_converted is False
    assert result.pdf.path.read_bytes() == source.read_bytes()
    assert [image.page_number for image in result.images] == [1, 2]
    assert result.render_strategy == "high-density"
    for image in result.images:
        assert image.path.exists()
        assert image.size_bytes > 100
        with Image.open(image.path) as img:
            img.verify()
    assert publisher.results == [result]
    assert source.exists()


@pytest.mark.asyncio
async def test_docx_upload_is_converted(tmp_path: Path) -> None:
    source = tmp_path / "resume.docx"
    source.write_bytes(b"PK\x03\x04 docx body")
    pdf_bytes = write_pdf(tmp_path / "converted-source.pdf", pages=1).read_bytes()
    capabilities = Capabilities(
        office_converter=StubOfficeConverter(output=pdf_bytes),
        renderers={RendererBackend.PYMUPDF: PyMuPdfRenderer()},
    )

    result = await _pipeline(tmp_path, capabilities, _RecordingPublisher()).run(
        job_from_path(source)
    )

    assert result.pdf.is_converted is True
    assert result.pdf.path.suffix == ".pdf"
    assert result.pdf.path.stat().st_size > 0
    assert len(result.images) == 1


@pytest.mark.asyncio
async def test_docx_without_converter_fails_without_result(tmp_path: Path) -> None:
    source = tmp_path / "resume.docx"
    source.write_bytes(b"PK\x03\x04 docx body")
    publisher = _RecordingPublisher()
    pipeline = _pipeline(tmp_path, Capabilities(), publisher)
    job = job_from_path(source)

    with pytest.raises(ConversionUnavailable):
        await pipeline.run(job)

    assert publisher.results == []
    assert not pipeline.job_dir(job).exists()


@pytest.mark.asyncio
async def test_missing_renderers_degrade_to_pdf_only(tmp_path: Path) -> None:
    source = write_pdf(tmp_path / "resume.pdf", pages=2)
    publisher = _RecordingPublisher()
    configs = (
        RenderConfig(name="high-density", backend=RendererBackend.PYMUPDF, density=300),
        RenderConfig(name="low-density", backend=RendererBackend.POPPLER, density=150),
    )
    pipeline = _pipeline(tmp_path, Capabilities(), publisher, configs)
    job = job_from_path(source)

    result = await pipeline.run(job)

    assert result.images == ()
    assert result.degraded is True
    assert result.render_strategy is None
    assert result.pdf.path.exists()
    assert publisher.results == [result]
    assert sorted(p.name for p in pipeline.job_dir(job).iterdir()) == ["resume.pdf"]


@pytest.mark.asyncio
async def test_command_fallback_still_counts_as_success(tmp_path: Path) -> None:
    source = write_pdf(tmp_path / "resume.pdf", pages=2)
    failing = StubRenderer(error=RuntimeError("renderer missing"))
    capabilities = Capabilities(
        renderers={RendererBackend.PYMUPDF: failing},
        command_renderer=StubCommandRenderer(),
    )

    result = await _pipeline(tmp_path, capabilities, _RecordingPublisher()).run(
        job_from_path(source)
    )

    assert result.render_strategy == SYSTEM_FALLBACK
    assert [image.page_number for image in result.images] == [1, 2]


@pytest.mark.asyncio
async def test_publisher_failure_does_not_fail_job(tmp_path: Path) -> None:
    source = write_pdf(tmp_path / "resume.pdf", pages=1)
    capabilities = Capabilities(renderers={RendererBackend.PYMUPDF: StubRenderer(pages=1)})

    raising = _RecordingPublisher(error=RuntimeError("webhook down"))
    result = await _pipeline(tmp_path, capabilities, raising).run(job_from_path(source))
    assert len(result.images) == 1

    undelivered = _RecordingPublisher(delivered=False)
    result = await _pipeline(tmp_path, capabilities, undelivered).run(job_from_path(source))
    assert len(undelivered.results) == 1


@pytest.mark.asyncio
async def test_concurrent_jobs_get_separate_directories(tmp_path: Path) -> None:
    source = write_pdf(tmp_path / "resume.pdf", pages=1)
    capabilities = Capabilities(renderers={RendererBackend.PYMUPDF: StubRenderer(pages=1)})
    pipeline = _pipeline(tmp_path, capabilities, _RecordingPublisher())

    results = await asyncio.gather(*(pipeline.run(job_from_path(source)) for _ in range(3)))

    directories = {result.pdf.path.parent for result in results}
    assert len(directories) == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("upload_name", ["resume.pdf", "page-0001.pdf"])
async def test_unexpected_rasterizer_error_keeps_pdf(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, upload_name: str
) -> None:
    source = write_pdf(tmp_path / upload_name, pages=1)
    publisher = _RecordingPublisher()
    pipeline = _pipeline(tmp_path, Capabilities(), publisher)
    job = job_from_path(source)

    async def broken_rasterize(pdf_path: Path, output_dir: Path) -> None:
        (output_dir / "page-0001.png").write_bytes(b"\x89PNG" + b"\x00" * 200)
        raise RuntimeError("renderer crashed")

    monkeypatch.setattr(pipeline._rasterizer, "rasterize", broken_rasterize)

    result = await pipeline.run(job)

    assert result.images == ()
    assert result.degraded is True
    assert result.pdf.path.exists()
    assert result.pdf.path.read_bytes() == source.read_bytes()
    assert publisher.results == [result]
    assert sorted(p.name for p in pipeline.job_dir(job).iterdir()) == [result.pdf.path.name]
