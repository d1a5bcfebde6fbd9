"""Per-packager memoized compile of source files.

Every path is compiled at most once per cache generation. Concurrent requests
for the same path share one future; a failed compile is forgotten so that
the next request retries it.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
import stat as stat_module
from collections.abc import Callable
from typing import TYPE_CHECKING

from convoy.assets import SourceAsset
from convoy.errors import AssetNotFoundError, CompileError, ConvoyError, NoCompilerError
from convoy.fsutils import run_blocking, stat

if TYPE_CHECKING:
    from convoy.packager import AssetPackager

logger = logging.getLogger(__name__)


class SourceAssetCache:
    """Map absolute path -> compiled and analyzed :class:`SourceAsset`.

    Attributes:
        context: Packager whose config supplies compilers and the analyzer
        on_compiled: Called with each asset that compiled successfully in the
            current generation (used to arm file watches)
    """

    def __init__(
        self,
        context: AssetPackager,
        on_compiled: Callable[[SourceAsset], None] | None = None,
    ) -> None:
        self.context = context
        self.on_compiled = on_compiled
        self._entries: dict[str, asyncio.Future[SourceAsset]] = {}
        self._generation = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and os.path.abspath(path) in self._entries

    async def get(self, path: str) -> SourceAsset:
        """Return the compiled asset for ``path``, compiling it on first use."""
        path = os.path.abspath(path)
        future = self._entries.get(path)
        if future is None:
            future = asyncio.ensure_future(self._compile(path))
            self._entries[path] = future
            future.add_done_callback(functools.partial(self._settled, path, self._generation))
        return await asyncio.shield(future)

    def clear(self) -> None:
        """Forget every compiled asset. In-flight compiles finish but are not kept."""
        self._entries = {}
        self._generation += 1

    def _settled(self, path: str, generation: int, future: asyncio.Future[SourceAsset]) -> None:
        if future.cancelled() or future.exception() is not None:
            if self._entries.get(path) is future:
                del self._entries[path]
            return
        if generation == self._generation and self.on_compiled is not None:
            self.on_compiled(future.result())

    async def _compile(self, path: str) -> SourceAsset:
        context = self.context
        config = context.config

        try:
            st = await stat(path)
        except FileNotFoundError:
            raise AssetNotFoundError(f"{path} not found", path=path) from None
        except OSError as e:
            raise CompileError(f"Cannot read {path}: {e}", path=path) from e
        if stat_module.S_ISDIR(st.st_mode):
            raise AssetNotFoundError(f"{path} is a directory", path=path)

        extension = os.path.splitext(path)[1]
        compiler = config.compilers.get(extension)
        if compiler is None:
            raise NoCompilerError(path, extension)

        module_id = await run_blocking(context.unresolve, path)
        asset = SourceAsset(path=path, id=module_id, mtime=st.st_mtime)

        try:
            await compiler(asset, context)
            for preprocessor in config.preprocessors.get(extension, ()):
                await preprocessor(asset, context)
            if config.analyzer is not None:
                await config.analyzer(asset, context)
        except ConvoyError:
            raise
        except UnicodeDecodeError as e:
            raise CompileError(f"Cannot decode {path}: {e}", path=path) from e
        except FileNotFoundError:
            raise AssetNotFoundError(f"{path} not found", path=path) from None
        except OSError as e:
            raise CompileError(f"Cannot read {path}: {e}", path=path) from e

        logger.debug(f"Compiled {path} ({len(asset.dependencies)} dependencies)")
        return asset


__all__ = ["SourceAssetCache"]
