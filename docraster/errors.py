"""Exception types raised by the conversion pipeline and its helpers."""

from __future__ import annotations


class DocrasterError(RuntimeError):
    """Base class for every error raised by docraster."""

    http_status: int = 500


class UnsupportedUpload(DocrasterError):
    """The upload's extension or size is not accepted at intake."""

    http_status = 400


class UploadTooLarge(UnsupportedUpload):
    http_status = 413


class ConversionUnavailable(DocrasterError):
    """The office converter needed for this input is not installed or was not probed.

    Non-retryable. Hosts should answer with a client error, not a crash.
    """

    http_status = 415


class ConversionFailed(DocrasterError):
    """The converter ran but produced no usable PDF."""

    http_status = 422


class RasterizationFailed(DocrasterError):
    """Every render configuration and the command fallback produced no valid page.

    The pipeline treats this as a soft failure and downgrades the result to PDF-only.
    """

    def __init__(self, message: str, *, attempts: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.attempts = attempts


class CommandError(DocrasterError):
    """Raised when an external process cannot be run to completion."""

    def __init__(self, message: str, *, argv: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.argv = argv


class CommandNotFound(CommandError):
    pass


class CommandTimeout(CommandError):
    pass


class CommandFailed(CommandError):
    def __init__(
        self,
        message: str,
        *,
        argv: tuple[str, ...] = (),
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message, argv=argv)
        self.returncode = returncode
        self.stderr = stderr


def http_status_for(exc: BaseException) -> int:
    """Return the HTTP status a web host should answer with for ``exc``."""
    if isinstance(exc, DocrasterError):
        return exc.http_status
    return 500


__all__ = [
    "CommandError",
    "CommandFailed",
    "CommandNotFound",
    "CommandTimeout",
    "ConversionFailed",
    "ConversionUnavailable",
    "DocrasterError",
    "RasterizationFailed",
    "UnsupportedUpload",
    "UploadTooLarge",
    "http_status_for",
]
