"""Pipeline: owns packagers and copy rules by output path.

    >>> pipeline = Pipeline()
    >>> pipeline.add("app.js", {"type": "javascript", "main": "./app/main"})
    >>> pipeline.add("assets", {"type": "copy", "root": "public"})
    >>> result = await pipeline.write_all("build")

Any packager or copier that invalidates (for example because a watched file
changed) makes the pipeline emit a single ``invalidate`` event.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any

from convoy.assets import BuiltAsset
from convoy.config import CopyConfig, TargetConfig, make_target_config
from convoy.copier import AssetCopier
from convoy.errors import BuildResult, ConvoyError, PathNotFoundError
from convoy.events import LoggedEventEmitter
from convoy.fsutils import DirectoryMaker
from convoy.packager import AssetPackager

logger = logging.getLogger(__name__)

Target = AssetPackager | AssetCopier


class Pipeline(LoggedEventEmitter):
    """Routes lookups, builds and writes to the target owning a path.

    Attributes:
        packagers: Output path -> packager
        copiers: Output prefix -> copier
        paths: Extra module search directories shared by every packager
        basedir: Directory relative target settings are resolved from

    Events:
        invalidate: some target dropped its cached state
        warn / error / info: log records from targets, prefixed with their path
    """

    def __init__(
        self,
        targets: Mapping[str, TargetConfig | Mapping[str, Any]] | None = None,
        *,
        paths: Iterable[str] = (),
        basedir: str | Path | None = None,
    ) -> None:
        super().__init__(logger)
        self.packagers: dict[str, AssetPackager] = {}
        self.copiers: dict[str, AssetCopier] = {}
        self.paths = list(paths)
        self.basedir = basedir
        self._invalidating = False
        self._deferred: set[Target] = set()
        self._detach: dict[Target, Callable[[], None]] = {}
        self._maker = DirectoryMaker()
        for path, config in (targets or {}).items():
            self.add(path, config)

    def __repr__(self) -> str:
        return f"Pipeline(packagers={list(self.packagers)}, copiers={list(self.copiers)})"

    @property
    def targets(self) -> list[Target]:
        return [*self.packagers.values(), *self.copiers.values()]

    def add(self, path: str, config: TargetConfig | Mapping[str, Any]) -> Target:
        """Add (or replace) the target generating ``path``.

        Raises:
            ConfigError: Unknown type or invalid settings
        """
        config = make_target_config(path, config, self.basedir)
        self.remove(path)

        target: Target
        if isinstance(config, CopyConfig):
            target = AssetCopier(config, self)
            self.copiers[target.path] = target
        else:
            target = AssetPackager(config, self)
            self.packagers[path] = target

        on_invalidate = functools.partial(self._target_invalidated, target)
        target.on("invalidate", on_invalidate)
        unpipe = self.pipe_logging(target, path)

        def detach() -> None:
            target.off("invalidate", on_invalidate)
            unpipe()

        self._detach[target] = detach
        logger.debug(f"Added {target!r}")
        return target

    def remove(self, path: str) -> None:
        """Remove the target generating ``path``, closing its watches."""
        removed = [self.packagers.pop(path, None), self.copiers.pop(path.strip("/"), None)]
        for target in removed:
            if target is None:
                continue
            detach = self._detach.pop(target, None)
            if detach is not None:
                detach()
            self._deferred.discard(target)
            target.unwatch()

    def find_target(self, path: str) -> Target | None:
        """Return the packager or copier owning ``path``.

        Packagers match exactly, or by prefix followed by ``/``. Copy rules
        are tried afterwards, longest prefix first.
        """
        packager = self.packagers.get(path)
        if packager is not None:
            return packager
        for prefix, packager in self.packagers.items():
            if path.startswith(prefix + "/"):
                return packager

        for prefix in sorted(self.copiers, key=len, reverse=True):
            copier = self.copiers[prefix]
            if copier.relative(path) is not None:
                return copier
        return None

    async def exists(self, path: str) -> bool:
        target = self.find_target(path)
        return target is not None and await target.exists(path)

    async def find_paths(self) -> list[str]:
        """Return every output path the pipeline can generate."""
        results = await asyncio.gather(*(target.find_paths() for target in self.targets))
        return [path for paths in results for path in paths]

    async def build(self, path: str) -> BuiltAsset:
        """Build the asset for ``path``.

        Raises:
            PathNotFoundError: No target owns ``path``
        """
        target = self.find_target(path)
        if target is None:
            err = PathNotFoundError(path)
            self.error(err)
            raise err
        return await target.build(path)

    async def write_file(self, path: str, build_dir: str | Path) -> list[str]:
        """Write the output for ``path`` under ``build_dir``.

        Returns the files written. Nothing is written when the build fails.
        """
        target = self.find_target(path)
        if target is None:
            err = PathNotFoundError(path)
            self.error(err)
            raise err

        dst = os.path.join(os.path.abspath(build_dir), path.strip("/"))
        if isinstance(target, AssetCopier):
            return await target.write_file(dst, path, self._maker)
        return [await target.write_file(dst, path, self._maker)]

    async def write_all(
        self, build_dir: str | Path, paths: Iterable[str] | None = None
    ) -> BuildResult:
        """Write every target (or only ``paths``) under ``build_dir``.

        Failures are collected in the result instead of raised.
        """
        if paths is None:
            paths = [*self.packagers, *self.copiers]
        result = BuildResult()

        async def write_one(path: str) -> None:
            try:
                for written in await self.write_file(path, build_dir):
                    result.add_written(written)
            except ConvoyError as e:
                result.add_error(e)
            except OSError as e:
                result.add_error(ConvoyError(f"Cannot write {path}: {e}", path=path))

        await asyncio.gather(*(write_one(path) for path in paths))
        return result

    def invalidate(self) -> None:
        """Invalidate every target, emitting one ``invalidate`` event."""
        if self._invalidating:
            return
        self._invalidating = True
        try:
            for target in self.targets:
                target.invalidate()
                if isinstance(target, AssetPackager) and target.invalidate_pending:
                    self._deferred.add(target)
            self.emit("invalidate")
        finally:
            self._invalidating = False

    def unwatch(self) -> None:
        """Close every watch held by the pipeline's targets."""
        for target in self.targets:
            target.unwatch()

    def _target_invalidated(self, target: Target) -> None:
        if target in self._deferred:
            # Settling of an invalidate this pipeline already announced
            self._deferred.discard(target)
            return
        if self._invalidating:
            return
        self._invalidating = True
        try:
            self.emit("invalidate")
        finally:
            self._invalidating = False


__all__ = ["Pipeline", "Target"]
