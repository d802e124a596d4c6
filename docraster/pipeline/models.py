"""Records flowing through one conversion job."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class ConversionJob:
    job_id: str
    source_path: Path
    original_name: str
    size_bytes: int
    extension: str  # lower-case, with leading dot
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "source_path": str(self.source_path),
            "original_name": self.original_name,
            "size_bytes": self.size_bytes,
            "extension": self.extension,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class PdfArtifact:
    path: Path
    size_bytes: int
    is_converted: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "size_bytes": self.size_bytes,
            "is_converted": self.is_converted,
        }


@dataclass(frozen=True, slots=True)
class ImageArtifact:
    path: Path
    page_number: int  # 1-indexed
    size_bytes: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "page_number": self.page_number,
            "size_bytes": self.size_bytes,
        }


@dataclass(frozen=True, slots=True)
class ConversionResult:
    """Terminal record handed to the result publisher."""

    job: ConversionJob
    pdf: PdfArtifact
    images: tuple[ImageArtifact, ...]
    processed_at: datetime = field(default_factory=utcnow)
    # Render configuration that produced `images`; None for a PDF-only result.
    render_strategy: str | None = None

    @property
    def degraded(self) -> bool:
        return not self.images

    def to_dict(self) -> dict[str, Any]:
        return {
            "job": self.job.to_dict(),
            "pdf": self.pdf.to_dict(),
            "images": [image.to_dict() for image in self.images],
            "processed_at": self.processed_at.isoformat(),
            "render_strategy": self.render_strategy,
            "degraded": self.degraded,
        }


__all__ = [
    "ConversionJob",
    "ConversionResult",
    "ImageArtifact",
    "PdfArtifact",
    "utcnow",
]
