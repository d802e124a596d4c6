"""Async external process invocation with hard timeouts.

Every external tool (office converter, raster renderers) is started through
``run_command`` with an explicit argv list. No shell is involved, so file
names coming from uploads are never interpreted by a shell.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
import os
from pathlib import Path
import time

from docraster.errors import CommandFailed, CommandNotFound, CommandTimeout
from docraster.utils.log_utils import logger


__all__ = ["CompletedCommand", "run_command"]

_STDERR_TAIL_CHARS = 2000


@dataclass(frozen=True, slots=True)
class CompletedCommand:
    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    elapsed_s: float


def _tail(text: str) -> str:
    return text[-_STDERR_TAIL_CHARS:]


async def run_command(
    argv: Sequence[str | os.PathLike[str]],
    *,
    timeout: float,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    check: bool = True,
) -> CompletedCommand:
    """Run ``argv`` and wait for it, killing the process when ``timeout`` elapses.

    Args:
        argv: Program followed by its arguments.
        timeout: Wall-clock limit in seconds.
        cwd: Working directory for the child process.
        env: Extra environment variables merged over ``os.environ``.
        check: Raise ``CommandFailed`` on a non-zero exit status.

    Raises:
        CommandNotFound: The program does not exist or is not executable.
        CommandTimeout: The process did not finish within ``timeout``.
        CommandFailed: Non-zero exit status while ``check`` is set.
    """
    args = tuple(os.fspath(a) for a in argv)
    if not args:
        raise ValueError("argv must not be empty")

    child_env = None
    if env:
        child_env = {**os.environ, **env}

    logger.debug(f"Running command: {' '.join(args)}")
    started = time.monotonic()
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
            env=child_env,
        )
    except (FileNotFoundError, PermissionError) as exc:
        raise CommandNotFound(f"Cannot execute '{args[0]}': {exc}", argv=args) from exc

    try:
        stdout_b, stderr_b = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        with contextlib.suppress(Exception):
            await proc.wait()
        raise CommandTimeout(
            f"'{args[0]}' did not finish within {timeout:.1f}s and was killed.", argv=args
        ) from exc
    except asyncio.CancelledError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        with contextlib.suppress(Exception):
            await proc.wait()
        raise

    elapsed = time.monotonic() - started
    result = CompletedCommand(
        argv=args,
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout_b.decode("utf-8", errors="replace"),
        stderr=stderr_b.decode("utf-8", errors="replace"),
        elapsed_s=elapsed,
    )
    logger.debug(f"'{args[0]}' exited with {result.returncode} after {elapsed:.2f}s")

    if check and result.returncode != 0:
        raise CommandFailed(
            f"'{args[0]}' exited with status {result.returncode}: {_tail(result.stderr).strip()}",
            argv=args,
            returncode=result.returncode,
            stderr=_tail(result.stderr),
        )
    return result
