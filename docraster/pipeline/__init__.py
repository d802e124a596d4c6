"""Upload conversion pipeline.

Stages, run in order for every job:
  1. Intake: validates an upload and creates a ``ConversionJob``.
  2. Normalizer: passes PDFs through, converts DOC/DOCX with LibreOffice.
  3. Rasterizer: renders page images, trying render configurations in order
     and finally an ImageMagick-compatible command.
  4. Publisher: receives the ``ConversionResult``.

Primary public entry point:
    ``ConversionPipeline.run``: Normalizer failures raise; Rasterizer
    failures degrade the result to PDF-only.
"""

from .capabilities import Capabilities, probe_capabilities
from .intake import job_from_path, stage_upload, validate_upload
from .models import ConversionJob, ConversionResult, ImageArtifact, PdfArtifact
from .normalizer import Normalizer
from .publisher import LoggingPublisher, ResultPublisher, WebhookPublisher, build_publisher
from .rasterizer import (
    RasterizationPartialSuccess,
    RasterizationReport,
    Rasterizer,
    RasterizerOptions,
    collect_rendered_pages,
)
from .renderers import RenderConfig, RendererBackend
from .runner import ConversionPipeline, run_conversion


__all__ = [
    "Capabilities",
    "ConversionJob",
    "ConversionPipeline",
    "ConversionResult",
    "ImageArtifact",
    "LoggingPublisher",
    "Normalizer",
    "PdfArtifact",
    "RasterizationPartialSuccess",
    "RasterizationReport",
    "Rasterizer",
    "RasterizerOptions",
    "RenderConfig",
    "RendererBackend",
    "ResultPublisher",
    "WebhookPublisher",
    "build_publisher",
    "collect_rendered_pages",
    "job_from_path",
    "probe_capabilities",
    "run_conversion",
    "stage_upload",
    "validate_upload",
]
