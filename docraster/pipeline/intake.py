"""Intake rules for uploaded documents.

Uploads are accepted by extension (PDF, DOC, DOCX) up to a size limit and
stored under a collision-free name before a ``ConversionJob`` is created.
"""

from __future__ import annotations

from datetime import datetime
import os
from pathlib import Path
import re
import secrets
import time

import aiofiles

from docraster.config.settings import DEFAULT_MAX_UPLOAD_BYTES, get_settings
from docraster.errors import UnsupportedUpload, UploadTooLarge

from .models import ConversionJob, utcnow


SUPPORTED_UPLOAD_EXTENSIONS: tuple[str, ...] = (".pdf", ".doc", ".docx")

CONTENT_TYPES: dict[str, str] = {
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


def safe_stem(name: str) -> str:
    """Filesystem-safe stem for readability; never empty."""
    stem = Path(name.replace("\\", "/").split("/")[-1]).stem
    stem = re.sub(r"[^\w.-]+", "_", stem, flags=re.UNICODE)
    stem = re.sub(r"_+", "_", stem).strip("._")
    return stem[:80] or "document"


def new_job_id(original_name: str, *, now: datetime | None = None) -> str:
    """Timestamp + random suffix + readable stem, unique across concurrent uploads."""
    millis = int((now.timestamp() if now else time.time()) * 1000)
    return f"{millis}-{secrets.token_hex(4)}-{safe_stem(original_name)}"


def validate_upload(original_name: str, size_bytes: int, *, max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> str:
    """Return the lower-case extension of an acceptable upload.

    Raises:
        UnsupportedUpload: Extension not accepted or file empty.
        UploadTooLarge: ``size_bytes`` exceeds ``max_bytes``.
    """
    extension = os.path.splitext(original_name)[1].lower()
    if extension not in SUPPORTED_UPLOAD_EXTENSIONS:
        raise UnsupportedUpload(
            f"Unsupported file type '{extension or original_name}'. "
            f"Accepted: {', '.join(SUPPORTED_UPLOAD_EXTENSIONS)}."
        )
    if size_bytes <= 0:
        raise UnsupportedUpload(f"{original_name} is empty.")
    if size_bytes > max_bytes:
        raise UploadTooLarge(
            f"{original_name} is {size_bytes} bytes; the limit is {max_bytes} bytes."
        )
    return extension


def job_from_path(
    path: Path,
    *,
    original_name: str | None = None,
    max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
) -> ConversionJob:
    """Build a job for a document that already exists on disk."""
    if not path.is_file():
        raise UnsupportedUpload(f"{path} is not a file.")
    name = original_name or path.name
    size = path.stat().st_size
    extension = validate_upload(name, size, max_bytes=max_bytes)
    created_at = utcnow()
    return ConversionJob(
        job_id=new_job_id(name, now=created_at),
        source_path=path.resolve(),
        original_name=name,
        size_bytes=size,
        extension=extension,
        created_at=created_at,
    )


async def stage_upload(
    data: bytes,
    original_name: str,
    upload_dir: Path | None = None,
    *,
    max_bytes: int | None = None,
) -> ConversionJob:
    """Store raw upload bytes as ``<job_id><ext>`` under ``upload_dir`` and return the job.

    ``upload_dir`` and ``max_bytes`` default to ``DOCRASTER_UPLOAD_DIR`` and
    ``DOCRASTER_MAX_UPLOAD_BYTES``.
    """
    if upload_dir is None or max_bytes is None:
        storage = get_settings().storage
        upload_dir = upload_dir if upload_dir is not None else storage.upload_dir
        max_bytes = max_bytes if max_bytes is not None else storage.max_upload_bytes
    extension = validate_upload(original_name, len(data), max_bytes=max_bytes)
    created_at = utcnow()
    job_id = new_job_id(original_name, now=created_at)

    upload_dir.mkdir(parents=True, exist_ok=True)
    saved = upload_dir / f"{job_id}{extension}"
    async with aiofiles.open(saved, "wb") as f:
        await f.write(data)

    return ConversionJob(
        job_id=job_id,
        source_path=saved.resolve(),
        original_name=original_name,
        size_bytes=len(data),
        extension=extension,
        created_at=created_at,
    )


__all__ = [
    "CONTENT_TYPES",
    "SUPPORTED_UPLOAD_EXTENSIONS",
    "job_from_path",
    "new_job_id",
    "safe_stem",
    "stage_upload",
    "validate_upload",
]
