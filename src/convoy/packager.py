"""Asset packager: builds one merged output from its main modules.

A build runs these steps in order:

1. resolve each ``main`` specifier against ``basedir`` and load it
2. expand the roots into their full dependency list
3. link the list into one body
4. run postprocessors
5. minify, when ``minify`` is set
6. run finalizers

The result is memoized until :meth:`AssetPackager.invalidate`.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from convoy.assets import BuiltAsset, SourceAsset
from convoy.cache import SourceAssetCache
from convoy.errors import ConfigError, PathNotFoundError, WriteError
from convoy.events import LoggedEventEmitter
from convoy.expander import expand
from convoy.fsutils import DirectoryMaker, copy_file, run_blocking, write_text
from convoy.plugins.linkers import newest_mtime
from convoy.resolver import find_nearest_package, read_package, resolve, unresolve

if TYPE_CHECKING:
    from convoy.config import PackagerConfig
    from convoy.pipeline import Pipeline
    from convoy.watcher import WatchHandle

logger = logging.getLogger(__name__)


class AssetPackager(LoggedEventEmitter):
    """Generates a single asset from one or more source modules.

    Attributes:
        config: Immutable packager configuration
        pipeline: Owning pipeline, if any (supplies extra search paths)
        path: Output path this packager generates

    Events:
        invalidate: cached state was dropped
        warn / error / info: log records
    """

    def __init__(self, config: PackagerConfig, pipeline: Pipeline | None = None) -> None:
        super().__init__(logger)
        self.config = config
        self.pipeline = pipeline
        self.path = config.path
        self._cache = SourceAssetCache(self, on_compiled=self._watch_asset)
        self._packages: dict[str, dict[str, Any]] = {}
        self._watching: dict[str, WatchHandle] = {}
        self._build: asyncio.Future[BuiltAsset] | None = None
        self._invalidate_pending = False

    def __repr__(self) -> str:
        return f"AssetPackager({self.path!r})"

    @property
    def basedir(self) -> str:
        return str(self.config.basedir)

    @property
    def minify(self) -> bool | dict[str, Any]:
        """Minify setting; a mapping holds options for the minifier."""
        return self.config.minify

    @property
    def minifier(self) -> Any:
        return self.config.minifier

    @property
    def building(self) -> bool:
        return self._build is not None and not self._build.done()

    @property
    def invalidate_pending(self) -> bool:
        """True while an invalidate waits for the running build to settle."""
        return self._invalidate_pending

    @property
    def watched_paths(self) -> list[str]:
        return list(self._watching)

    # Resolution

    def resolve(self, module_id: str, basedir: str | None = None) -> str:
        """Map a module id to a file path using this packager's extensions."""
        paths = [*(self.pipeline.paths if self.pipeline else ()), *self.config.paths]
        return resolve(
            module_id,
            basedir or self.basedir,
            extensions=self.config.extensions,
            main_key=self.config.main_key,
            paths=paths,
        )

    def unresolve(self, path: str, basedir: str | None = None) -> str:
        """Map a file path back to its module id."""
        path = os.path.abspath(os.path.join(basedir or self.basedir, path))
        pkg = self.get_nearest_package(path)
        return unresolve(path, pkg["path"] if pkg else None)

    def get_nearest_package(self, path: str) -> dict[str, Any] | None:
        """Return the descriptor of the package containing ``path`` (cached)."""
        directory = find_nearest_package(path)
        if directory is None:
            return None
        pkg = self._packages.get(directory)
        if pkg is None:
            pkg = self._packages[directory] = read_package(directory)
        return pkg

    # Source assets

    async def get_source_asset(self, path: str) -> SourceAsset:
        """Return the compiled asset for ``path`` (relative to ``basedir``)."""
        return await self._cache.get(os.path.join(self.basedir, path))

    async def expand(self, assets: Iterable[SourceAsset]) -> list[SourceAsset]:
        """Return ``assets`` plus all their dependencies, dependency-first."""
        return await expand(assets, self.get_source_asset, self.warn)

    # Outputs

    async def exists(self, path: str) -> bool:
        return path == self.path

    async def find_paths(self) -> list[str]:
        return [self.path]

    async def build(self, path: str | None = None) -> BuiltAsset:
        """Build (or return the memoized) merged asset.

        Raises:
            PathNotFoundError: ``path`` is not this packager's output
            ConfigError: main, linker or minifier is missing
        """
        if path is not None and path != self.path:
            raise PathNotFoundError(path)

        future = self._build
        if future is None:
            self._check_config()
            future = asyncio.ensure_future(self._run_build())
            self._build = future
            future.add_done_callback(self._build_settled)
        return await asyncio.shield(future)

    async def write_file(
        self,
        dst: str,
        path: str | None = None,
        maker: DirectoryMaker | None = None,
    ) -> str:
        """Build and write the output to ``dst``. Returns ``dst``."""
        asset = await self.build(path)
        maker = maker or DirectoryMaker()
        await maker.ensure(os.path.dirname(os.path.abspath(dst)))
        if asset.body_path:
            await copy_file(asset.body_path, dst)
        else:
            try:
                await write_text(dst, asset.body or "", self.config.encoding)
            except UnicodeEncodeError as e:
                raise WriteError(
                    f"Cannot encode {self.path} as {self.config.encoding}: {e}", path=self.path
                ) from e
        return dst

    # Invalidation

    def invalidate(self) -> None:
        """Drop the build, compiled assets, package cache and watches.

        While a build is running the reset waits until the build settles.
        """
        if self.building:
            self._invalidate_pending = True
            return
        self._reset()
        self.emit("invalidate")

    def unwatch(self) -> None:
        """Close every file watch."""
        watching, self._watching = self._watching, {}
        for handle in watching.values():
            handle.close()

    def _reset(self) -> None:
        self._build = None
        self._invalidate_pending = False
        self._cache.clear()
        self._packages = {}
        self.unwatch()

    def _watch_asset(self, asset: SourceAsset) -> None:
        if not self.config.watch or asset.path in self._watching:
            return
        self._watching[asset.path] = self.config.watcher(asset.path, self._on_change)

    def _on_change(self, path: str) -> None:
        self.info("changed", path)
        self.invalidate()

    # Build steps

    def _check_config(self) -> None:
        config = self.config
        if not config.main:
            raise ConfigError(f"Main module not specified for {self.path}", path=self.path)
        if config.linker is None:
            raise ConfigError(f"Linker not found for {self.path}", path=self.path)
        if config.minify and config.minifier is None:
            raise ConfigError(f"Minifier not found for {self.path}", path=self.path)

    async def _load_main(self, main: str) -> SourceAsset:
        path = await run_blocking(self.resolve, main, self.basedir)
        return await self.get_source_asset(path)

    async def _run_build(self) -> BuiltAsset:
        config = self.config

        roots = await asyncio.gather(*(self._load_main(main) for main in config.main))
        expanded = await self.expand(roots)

        asset = BuiltAsset(path=self.path, type=config.type, assets=expanded)
        await config.linker(asset, self)
        if asset.mtime is None:
            asset.mtime = newest_mtime(expanded)

        for postprocessor in config.postprocessors:
            await postprocessor(asset, self)
        if config.minify:
            await config.minifier(asset, self)
        for finalizer in config.finalizers:
            await finalizer(asset, self)

        self.info("built", self.path)
        return asset

    def _build_settled(self, future: asyncio.Future[BuiltAsset]) -> None:
        if future.cancelled() or future.exception() is not None:
            if self._build is future:
                self._build = None
            if not future.cancelled():
                self.error(future.exception())
        if self._invalidate_pending:
            self._invalidate_pending = False
            self._reset()
            self.emit("invalidate")


__all__ = ["AssetPackager"]
