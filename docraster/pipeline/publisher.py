"""Result publishers: hand a finished ``ConversionResult`` to the outside world."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote

import aiohttp

from docraster.config import PublisherSettings
from docraster.utils.log_utils import logger

from .intake import CONTENT_TYPES
from .models import ConversionResult


USER_AGENT = "docraster/0.1"
SOURCE_HEADER = "docraster-upload-pipeline"


class ResultPublisher(Protocol):
    async def publish(self, result: ConversionResult) -> bool:
        """Deliver ``result``; return False when delivery failed."""
        ...


def download_url(base_url: str, job_id: str, path: Path) -> str:
    return f"{base_url.rstrip('/')}/files/{quote(job_id)}/{quote(path.name)}"


def build_payload(result: ConversionResult, *, base_url: str) -> dict[str, Any]:
    """JSON document describing a finished job, with download links for every artifact."""
    job = result.job
    return {
        "event": "conversion_completed",
        "job": {
            **job.to_dict(),
            "mime_type": CONTENT_TYPES.get(job.extension, "application/octet-stream"),
        },
        "pdf": {
            **result.pdf.to_dict(),
            "download_url": download_url(base_url, job.job_id, result.pdf.path),
        },
        "images": [
            {
                **image.to_dict(),
                "download_url": download_url(base_url, job.job_id, image.path),
            }
            for image in result.images
        ],
        "degraded": result.degraded,
        "render_strategy": result.render_strategy,
        "processed_at": result.processed_at.isoformat(),
    }


class LoggingPublisher:
    """Publisher used when no webhook is configured."""

    async def publish(self, result: ConversionResult) -> bool:
        status = "PDF only" if result.degraded else f"{len(result.images)} page image(s)"
        logger.info(f"Job {result.job.job_id} finished: {result.pdf.path.name}, {status}")
        return True


class WebhookPublisher:
    """POSTs the result document to an HTTP webhook (e.g. an n8n workflow).

    Delivery is attempted once. Failures are logged and reported as False.
    """

    def __init__(self, url: str, *, base_url: str, timeout_s: float = 10.0) -> None:
        self._url = url
        self._base_url = base_url
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)

    async def publish(self, result: ConversionResult) -> bool:
        payload = build_payload(result, base_url=self._base_url)
        headers = {
            "User-Agent": USER_AGENT,
            "X-Source": SOURCE_HEADER,
            "X-Timestamp": str(int(time.time() * 1000)),
        }
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(self._url, json=payload, headers=headers) as response:
                    if response.status >= 400:
                        body = await response.text()
                        logger.error(
                            f"Webhook rejected job {result.job.job_id}: HTTP {response.status} {body[:500]}"
                        )
                        return False
                    logger.info(f"Webhook accepted job {result.job.job_id} (HTTP {response.status})")
                    return True
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error(f"Sending job {result.job.job_id} to webhook failed: {exc!r}")
            return False


def build_publisher(settings: PublisherSettings) -> ResultPublisher:
    if settings.webhook_url:
        return WebhookPublisher(
            settings.webhook_url,
            base_url=settings.public_base_url,
            timeout_s=settings.timeout_s,
        )
    logger.info("No webhook URL configured; results are only logged.")
    return LoggingPublisher()


__all__ = [
    "LoggingPublisher",
    "ResultPublisher",
    "WebhookPublisher",
    "build_payload",
    "build_publisher",
    "download_url",
]
