"""File-system watch service for the development pipeline.

:class:`SourceWatcher` wraps a :mod:`watchdog` observer and turns its
thread-side callbacks into an async stream of
:class:`~dualbuild.models.WatchEvent` objects:

* On subscription every existing, non-ignored file is reported as ``add``
  (the initial scan), followed by a single ``ready`` event.
* After that, created files are ``add``, modified files are ``change``,
  deleted files are ``remove``; a move is a ``remove`` of the old path
  plus an ``add`` of the new one.
* Directory events and paths matching an ignore rule are dropped.

The stream never ends on its own. Closing the async generator stops the
observer thread.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import AsyncGenerator, Protocol, Sequence

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from dualbuild.classifier import match_exclusion, walk_tree
from dualbuild.models import ExclusionRule, WatchEvent, WatchEventKind
from dualbuild.output import debug


class Watcher(Protocol):
    """Anything that can stream file-system events for a directory tree."""

    def subscribe(
        self, root: Path, ignore: Sequence[ExclusionRule]
    ) -> AsyncGenerator[WatchEvent, None]: ...


def _is_ignored(root: Path, path: Path, ignore: Sequence[ExclusionRule]) -> bool:
    try:
        relative = path.relative_to(root).as_posix()
    except ValueError:
        return True
    return match_exclusion(relative, ignore) is not None


class _QueueingHandler(FileSystemEventHandler):
    """Forward watchdog callbacks (observer thread) onto an asyncio queue."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        queue: asyncio.Queue[WatchEvent],
        root: Path,
        ignore: Sequence[ExclusionRule],
    ) -> None:
        super().__init__()
        self._loop = loop
        self._queue = queue
        self._root = root
        self._ignore = tuple(ignore)

    def _put(self, kind: WatchEventKind, raw_path: bytes | str) -> None:
        path = Path(os.fsdecode(raw_path))
        if _is_ignored(self._root, path, self._ignore):
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, WatchEvent(kind=kind, path=path))
        except RuntimeError:
            # loop already closed during shutdown
            pass

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._put(WatchEventKind.ADD, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._put(WatchEventKind.CHANGE, event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._put(WatchEventKind.REMOVE, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._put(WatchEventKind.REMOVE, event.src_path)
            self._put(WatchEventKind.ADD, event.dest_path)


class SourceWatcher:
    """watchdog-backed :class:`Watcher`.

    Args:
        initial_scan: Report existing files as ``add`` before ``ready``.
    """

    def __init__(self, initial_scan: bool = True) -> None:
        self._initial_scan = initial_scan

    async def subscribe(
        self, root: Path, ignore: Sequence[ExclusionRule]
    ) -> AsyncGenerator[WatchEvent, None]:
        root = Path(root)
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[WatchEvent] = asyncio.Queue()

        observer = Observer()
        observer.schedule(_QueueingHandler(loop, queue, root, ignore), str(root), recursive=True)
        observer.start()
        debug(f"Watching {root}")
        try:
            if self._initial_scan:
                for path in walk_tree(root):
                    if not _is_ignored(root, path, ignore):
                        yield WatchEvent(kind=WatchEventKind.ADD, path=path)
            yield WatchEvent(kind=WatchEventKind.READY, path=root)
            while True:
                yield await queue.get()
        finally:
            observer.stop()
            observer.join()
