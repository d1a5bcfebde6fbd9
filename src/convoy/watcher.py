"""File system watches used to invalidate packagers and copiers.

Each watch is a background task running ``watchfiles.awatch``. A file is
watched through its parent directory (editors often replace files instead of
writing them in place) and events are filtered down to that file. Directories
are watched recursively.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from typing import Protocol

from watchfiles import Change, awatch

logger = logging.getLogger(__name__)

OnChange = Callable[[str], None]


class WatchHandle(Protocol):
    """Handle returned by a watcher; closing it stops change notifications."""

    def close(self) -> None: ...


Watcher = Callable[[str, OnChange], WatchHandle]


class FileWatcher:
    """Async watcher for one file or directory.

    ``on_change`` is called with the watched path once per batch of
    filesystem changes, and never after ``close()``.

    Attributes:
        path: Absolute path being watched
        on_change: Callback invoked on change
    """

    def __init__(
        self,
        path: str,
        on_change: OnChange,
        *,
        force_polling: bool | None = None,
        debounce_ms: int = 50,
    ) -> None:
        self.path = os.path.abspath(path)
        self.on_change = on_change
        self.force_polling = force_polling
        self.debounce_ms = debounce_ms
        self._is_dir = os.path.isdir(self.path)
        self._real = os.path.realpath(self.path)
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._closed = False

    def start(self) -> FileWatcher:
        """Start watching in a background task on the running loop."""
        if self._task is not None:
            logger.warning(f"FileWatcher already running for {self.path}")
            return self
        self._task = asyncio.get_running_loop().create_task(self._watch())
        logger.debug(f"Watching {self.path}")
        return self

    def close(self) -> None:
        """Stop watching. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._stop_event.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    @property
    def closed(self) -> bool:
        return self._closed

    async def _watch(self) -> None:
        target = self.path if self._is_dir else os.path.dirname(self.path)
        try:
            async for _changes in awatch(
                target,
                stop_event=self._stop_event,
                watch_filter=self._watch_filter,
                recursive=self._is_dir,
                debounce=self.debounce_ms,
                force_polling=self.force_polling,
            ):
                if self._closed:
                    break
                try:
                    self.on_change(self.path)
                except Exception as e:
                    logger.error(f"Error handling change to {self.path}: {e}")
        except asyncio.CancelledError:
            raise
        except FileNotFoundError:
            logger.debug(f"Stopped watching {self.path}: path removed")

    def _watch_filter(self, change: Change, path: str) -> bool:
        if self._is_dir:
            return True
        return os.path.realpath(path) == self._real


def watch_path(path: str, on_change: OnChange) -> FileWatcher:
    """Default watcher: start a FileWatcher for ``path``."""
    return FileWatcher(path, on_change).start()


__all__ = ["FileWatcher", "OnChange", "WatchHandle", "Watcher", "watch_path"]
