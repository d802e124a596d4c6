"""Bounded concurrency for running several conversion jobs at once."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol, TypeVar

from tqdm import tqdm

from .log_utils import logger


class ProgressReporter(Protocol):
    """Lightweight progress reporter abstraction."""

    def start(self, total: int) -> None: ...

    def increment(self) -> None: ...

    def close(self) -> None: ...


class TqdmProgressReporter:
    """Progress reporter backed by tqdm."""

    def __init__(self, desc: str) -> None:
        self._desc = desc
        self._pbar: tqdm | None = None

    def start(self, total: int) -> None:
        self._pbar = tqdm(total=total, desc=self._desc, smoothing=0, leave=False)

    def increment(self) -> None:
        if self._pbar is not None:
            self._pbar.update(1)

    def close(self) -> None:
        if self._pbar is not None:
            self._pbar.close()
            self._pbar = None


T = TypeVar("T")
R = TypeVar("R")


async def run_in_parallel(
    fn: Callable[[T], Awaitable[R]],
    items: Sequence[T],
    *,
    max_concurrency: int,
    progress: ProgressReporter | None = None,
) -> list[R | Exception]:
    """Apply ``fn`` to every item with at most ``max_concurrency`` in flight.

    Results keep the input order. A failing item yields its exception in place
    of a result; the other items keep running.
    """
    if max_concurrency < 1:
        raise ValueError("max_concurrency must be >= 1")
    if not items:
        return []

    semaphore = asyncio.Semaphore(max_concurrency)
    results: list[R | Exception | None] = [None] * len(items)

    async def worker(index: int, item: T) -> None:
        async with semaphore:
            try:
                results[index] = await fn(item)
            except Exception as exc:
                logger.debug(f"Parallel job {index} failed: {exc!r}")
                results[index] = exc
        if progress:
            progress.increment()

    if progress:
        progress.start(len(items))
    try:
        async with asyncio.TaskGroup() as tg:
            for index, item in enumerate(items):
                tg.create_task(worker(index, item))
    finally:
        if progress:
            progress.close()

    failures = sum(isinstance(r, Exception) for r in results)
    if failures:
        logger.error(f"{failures} of {len(items)} parallel job(s) failed.")
    return results  # type: ignore[return-value]


__all__ = ["ProgressReporter", "TqdmProgressReporter", "run_in_parallel"]
