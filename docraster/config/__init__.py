"""Configuration helpers for docraster.

Expose `get_settings` as the canonical accessor for environment-driven
configuration. Modules should avoid loading `.env` directly and instead
import from this package to retrieve typed snapshots.
"""

from .settings import (
    DocrasterSettings,
    PublisherSettings,
    RenderConfigSettings,
    RenderSettings,
    StorageSettings,
    ToolSettings,
    get_settings,
)


__all__ = [
    "DocrasterSettings",
    "PublisherSettings",
    "RenderConfigSettings",
    "RenderSettings",
    "StorageSettings",
    "ToolSettings",
    "get_settings",
]
