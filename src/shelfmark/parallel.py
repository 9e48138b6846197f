"""Bounded worker pool shared by indexing and verification."""

from __future__ import annotations

import logging
import os
from collections import deque
from concurrent.futures import (
    FIRST_COMPLETED,
    Executor,
    Future,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    wait,
)
from typing import Callable, Deque, Iterable, Iterator, Literal, Optional, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

PoolKind = Literal["process", "thread"]


def default_jobs() -> int:
    return os.cpu_count() or 1


class WorkerPool:
    """Fixed-size pool executing independent per-document units.

    The pool is created once and handed to every component that needs it.
    Results are yielded in completion order; the first failure stops further
    scheduling, cancels queued work and propagates to the caller.
    """

    def __init__(self, jobs: Optional[int] = None, *, kind: PoolKind = "process") -> None:
        self.jobs = jobs if jobs else default_jobs()
        self.kind = kind
        self._executor: Optional[Executor] = None

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def executor(self) -> Executor:
        if self._executor is None:
            if self.kind == "thread":
                self._executor = ThreadPoolExecutor(
                    max_workers=self.jobs, thread_name_prefix="shelfmark"
                )
            else:
                self._executor = ProcessPoolExecutor(max_workers=self.jobs)
            LOGGER.debug("Started %s pool with %d workers", self.kind, self.jobs)
        return self._executor

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True, cancel_futures=True)
            self._executor = None

    def map_unordered(self, fn: Callable[[T], R], items: Iterable[T]) -> Iterator[R]:
        """Apply ``fn`` to every item, yielding results as they complete."""
        source = iter(items)
        window = max(1, 2 * self.jobs)
        pending: set[Future] = set()
        done: Deque[Future] = deque()

        def refill() -> None:
            while len(pending) < window:
                try:
                    item = next(source)
                except StopIteration:
                    return
                pending.add(self.executor.submit(fn, item))

        refill()
        try:
            while pending:
                finished, _ = wait(pending, return_when=FIRST_COMPLETED)
                pending.difference_update(finished)
                done.extend(finished)
                while done:
                    # raises the worker's exception on failure
                    yield done.popleft().result()
                refill()
        finally:
            for future in pending:
                future.cancel()
