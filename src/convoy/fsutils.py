"""Non-blocking file helpers.

Blocking filesystem calls run in the loop's default executor so that
overlapping builds only ever wait on I/O, never on each other.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
import shutil
import threading
from collections.abc import Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

COPY_BUFFER_SIZE = 64 * 1024


async def run_blocking(fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking function in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))


def _read_text(path: str, encoding: str) -> str:
    with open(path, encoding=encoding) as f:
        return f.read()


async def read_text(path: str, encoding: str = "utf-8") -> str:
    return await run_blocking(_read_text, path, encoding)


async def stat(path: str) -> os.stat_result:
    return await run_blocking(os.stat, path)


def _write_text(path: str, body: str, encoding: str) -> None:
    data = body.encode(encoding)
    tmp = f"{path}.{os.getpid()}.{threading.get_ident()}.tmp"
    try:
        with open(tmp, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
    except OSError:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


async def write_text(path: str, body: str, encoding: str = "utf-8") -> None:
    """Write ``body`` to ``path``.

    The body is encoded before anything touches the disk, and the file is
    replaced in one step, so a failed write leaves the old output in place.
    """
    await run_blocking(_write_text, path, body, encoding)


def _copy_file(src: str, dst: str) -> None:
    with open(src, "rb") as fsrc, open(dst, "wb") as fdst:
        shutil.copyfileobj(fsrc, fdst, COPY_BUFFER_SIZE)
    shutil.copystat(src, dst)


async def copy_file(src: str, dst: str) -> None:
    """Stream-copy a single file."""
    await run_blocking(_copy_file, src, dst)


class DirectoryMaker:
    """Creates directories, coalescing concurrent requests for the same path.

    Every concurrent ``ensure(path)`` for one path shares a single filesystem
    operation. An existing directory counts as success; an existing file at
    the path is an error.
    """

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Future[None]] = {}

    async def ensure(self, path: str) -> None:
        path = os.path.normpath(os.path.abspath(path))
        future = self._pending.get(path)
        if future is None:
            future = asyncio.ensure_future(self._make(path))
            self._pending[path] = future
            future.add_done_callback(functools.partial(self._forget, path))
        await asyncio.shield(future)

    def _forget(self, path: str, future: asyncio.Future[None]) -> None:
        if self._pending.get(path) is future:
            del self._pending[path]

    async def _make(self, path: str) -> None:
        if await run_blocking(os.path.isdir, path):
            return
        parent = os.path.dirname(path)
        if parent and parent != path:
            await self.ensure(parent)
        try:
            await run_blocking(os.mkdir, path)
        except FileExistsError:
            if not await run_blocking(os.path.isdir, path):
                raise NotADirectoryError(f"{path} is not a directory") from None

    @property
    def pending_count(self) -> int:
        return len(self._pending)


async def copy_tree(
    src: str,
    dst: str,
    maker: DirectoryMaker | None = None,
    include: Callable[[str], bool] | None = None,
) -> list[str]:
    """Recursively copy ``src`` (file or directory) to ``dst``.

    Files for which ``include(source_path)`` is false are skipped.
    Returns the list of destination files written.
    """
    maker = maker or DirectoryMaker()
    if not await run_blocking(os.path.isdir, src):
        if include is not None and not include(src):
            return []
        await maker.ensure(os.path.dirname(dst))
        await copy_file(src, dst)
        return [dst]

    await maker.ensure(dst)
    names = sorted(await run_blocking(os.listdir, src))
    results = await asyncio.gather(
        *(
            copy_tree(os.path.join(src, name), os.path.join(dst, name), maker, include)
            for name in names
        )
    )
    return [path for written in results for path in written]


__all__ = [
    "DirectoryMaker",
    "copy_file",
    "copy_tree",
    "read_text",
    "run_blocking",
    "stat",
    "write_text",
]
