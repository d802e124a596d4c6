"""Centralised environment configuration for docraster.

This module ensures `.env` loading happens in one place and exposes a
typed snapshot of storage directories, external tool locations, render
configurations and publisher endpoints. Downstream modules call
`get_settings()` instead of touching `os.environ` directly, making it easier
to validate values and override behaviour in tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import os
from pathlib import Path

from dotenv import load_dotenv


_DEFAULT_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024
DEFAULT_MIN_IMAGE_BYTES = 100


def _coerce_int(value: str | None, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _coerce_optional_int(value: str | None) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _coerce_float(value: str | None, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _coerce_path(value: str | None, default: str) -> Path:
    return Path(value or default).expanduser()


@dataclass(frozen=True)
class StorageSettings:
    upload_dir: Path
    output_dir: Path
    max_upload_bytes: int


@dataclass(frozen=True)
class ToolSettings:
    """Explicit tool locations; `None` means look the binary up on PATH."""

    soffice_path: str | None
    magick_path: str | None
    office_timeout_s: float
    render_timeout_s: float


@dataclass(frozen=True)
class RenderConfigSettings:
    name: str
    backend: str
    density: int
    width: int | None
    height: int | None


@dataclass(frozen=True)
class RenderSettings:
    configs: tuple[RenderConfigSettings, ...]
    fallback_density: int
    fallback_quality: int
    min_image_bytes: int


@dataclass(frozen=True)
class PublisherSettings:
    webhook_url: str | None
    public_base_url: str
    timeout_s: float


@dataclass(frozen=True)
class DocrasterSettings:
    """Top-level snapshot of configuration values."""

    env_file: Path
    storage: StorageSettings
    tools: ToolSettings
    render: RenderSettings
    publisher: PublisherSettings
    log_level: str


def _resolve_env_path(env_file: os.PathLike[str] | str | None) -> Path:
    if env_file is None:
        return _DEFAULT_ENV_PATH
    return Path(env_file).resolve()


def _load_render_configs() -> tuple[RenderConfigSettings, ...]:
    primary = RenderConfigSettings(
        name="high-density",
        backend=os.getenv("DOCRASTER_PRIMARY_BACKEND", "pymupdf"),
        density=_coerce_int(os.getenv("DOCRASTER_PRIMARY_DENSITY"), 300),
        width=_coerce_optional_int(os.getenv("DOCRASTER_PRIMARY_WIDTH") or "2480"),
        height=_coerce_optional_int(os.getenv("DOCRASTER_PRIMARY_HEIGHT") or "3508"),
    )
    secondary = RenderConfigSettings(
        name="low-density",
        backend=os.getenv("DOCRASTER_SECONDARY_BACKEND", "poppler"),
        density=_coerce_int(os.getenv("DOCRASTER_SECONDARY_DENSITY"), 150),
        width=_coerce_optional_int(os.getenv("DOCRASTER_SECONDARY_WIDTH") or "1240"),
        height=_coerce_optional_int(os.getenv("DOCRASTER_SECONDARY_HEIGHT") or "1754"),
    )
    return (primary, secondary)


@lru_cache(maxsize=4)
def _load_settings(env_path: Path) -> DocrasterSettings:
    # Load the environment file once per unique path. We avoid override=True so
    # that existing environment variables take precedence over `.env` defaults.
    load_dotenv(dotenv_path=env_path, override=False)

    storage = StorageSettings(
        upload_dir=_coerce_path(os.getenv("DOCRASTER_UPLOAD_DIR"), "uploads"),
        output_dir=_coerce_path(os.getenv("DOCRASTER_OUTPUT_DIR"), "converted"),
        max_upload_bytes=_coerce_int(
            os.getenv("DOCRASTER_MAX_UPLOAD_BYTES"), DEFAULT_MAX_UPLOAD_BYTES
        ),
    )

    tools = ToolSettings(
        soffice_path=os.getenv("DOCRASTER_SOFFICE_PATH") or None,
        magick_path=os.getenv("DOCRASTER_MAGICK_PATH") or None,
        office_timeout_s=_coerce_float(os.getenv("DOCRASTER_OFFICE_TIMEOUT_S"), 120.0),
        render_timeout_s=_coerce_float(os.getenv("DOCRASTER_RENDER_TIMEOUT_S"), 120.0),
    )

    render = RenderSettings(
        configs=_load_render_configs(),
        fallback_density=_coerce_int(os.getenv("DOCRASTER_FALLBACK_DENSITY"), 150),
        fallback_quality=_coerce_int(os.getenv("DOCRASTER_FALLBACK_QUALITY"), 90),
        min_image_bytes=_coerce_int(
            os.getenv("DOCRASTER_MIN_IMAGE_BYTES"), DEFAULT_MIN_IMAGE_BYTES
        ),
    )

    port = os.getenv("PORT") or "10000"
    publisher = PublisherSettings(
        webhook_url=os.getenv("N8N_WEBHOOK_URL") or None,
        public_base_url=(os.getenv("FRONTEND_URL") or f"http://localhost:{port}").rstrip("/"),
        timeout_s=_coerce_float(os.getenv("DOCRASTER_WEBHOOK_TIMEOUT_S"), 10.0),
    )

    return DocrasterSettings(
        env_file=env_path,
        storage=storage,
        tools=tools,
        render=render,
        publisher=publisher,
        log_level=os.getenv("DOCRASTER_LOG_LEVEL", "INFO").upper(),
    )


def get_settings(
    env_file: os.PathLike[str] | str | None = None,
    *,
    reload: bool = False,
) -> DocrasterSettings:
    """Return the cached settings snapshot.

    Args:
        env_file: Optional explicit path to a `.env` file. When omitted the repo
            root `.env` file is used.
        reload: When True the cached snapshot is cleared before loading.
    """
    env_path = _resolve_env_path(env_file)
    if reload:
        _load_settings.cache_clear()
    return _load_settings(env_path)
