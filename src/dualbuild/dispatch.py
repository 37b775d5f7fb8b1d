"""Non-blocking task dispatch for watch-triggered compiles.

The development pipeline must not wait for a compile before reading the
next file-system event, yet a failing compile must neither crash the watch
loop nor vanish silently. :class:`TaskDispatcher` sits in between: it
starts each job as an :class:`asyncio.Task`, reports failures through the
error channel, keeps a record of them, and lets callers (mostly tests)
:meth:`~TaskDispatcher.drain` everything still in flight.

At most ``limit`` jobs run at once; further jobs start as soon as a slot
frees up. Jobs for the same file are not serialised, so the last write to
finish wins.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from dualbuild.exceptions import CompileError
from dualbuild.output import error


class TaskDispatcher:
    """Start coroutines without awaiting them, isolating their failures.

    Args:
        limit: Maximum number of jobs running concurrently, or ``None`` for
            no bound.
    """

    def __init__(self, limit: Optional[int] = None) -> None:
        self._limit = limit
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self.failures: list[tuple[str, BaseException]] = []

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def dispatch(self, job: Callable[[], Awaitable[Any]], label: str) -> asyncio.Task[Any]:
        """Schedule *job* and return immediately.

        Must be called from inside a running event loop.

        Args:
            job: Zero-argument callable returning the awaitable to run.
            label: Short description used in error reports.
        """
        task = asyncio.get_running_loop().create_task(self._run(job, label))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait until every dispatched job, including ones started meanwhile, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(self, job: Callable[[], Awaitable[Any]], label: str) -> None:
        if self._limit is not None and self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._limit)
        try:
            if self._semaphore is not None:
                async with self._semaphore:
                    await job()
            else:
                await job()
        except asyncio.CancelledError:
            raise
        except CompileError as exc:
            self.failures.append((label, exc))
            error(f"{label}: {exc}")
            for line in exc.details:
                error(f"  {line}")
        except Exception as exc:
            self.failures.append((label, exc))
            error(f"{label}: unexpected {type(exc).__name__}: {exc}")
