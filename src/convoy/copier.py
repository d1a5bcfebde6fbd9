"""Copy rules: raw files under a root directory exposed under an output prefix.

A copier with ``path="assets"`` and ``root="public"`` generates
``assets/logo.png`` from ``public/logo.png``. When ``include`` patterns are
given only matching files are exposed; ``exclude`` patterns remove files from
that set. Patterns are ``fnmatch`` globs matched against the path relative to
the root, so ``*`` also crosses directory separators.
"""

from __future__ import annotations

import logging
import mimetypes
import os
import posixpath
import stat as stat_module
from fnmatch import fnmatchcase
from typing import TYPE_CHECKING

from convoy.assets import BuiltAsset
from convoy.errors import AssetNotFoundError, PathNotFoundError
from convoy.events import LoggedEventEmitter
from convoy.fsutils import DirectoryMaker, copy_tree, run_blocking, stat

if TYPE_CHECKING:
    from convoy.config import CopyConfig
    from convoy.pipeline import Pipeline
    from convoy.watcher import WatchHandle

logger = logging.getLogger(__name__)

DEFAULT_TYPE = "application/octet-stream"


class AssetCopier(LoggedEventEmitter):
    """Serve and write files found under ``config.root``.

    Attributes:
        config: Immutable copy configuration
        path: Output prefix
        root: Absolute source directory (or a single file)
    """

    def __init__(self, config: CopyConfig, pipeline: Pipeline | None = None) -> None:
        super().__init__(logger)
        self.config = config
        self.pipeline = pipeline
        self.path = config.path.strip("/")
        self.root = str(config.root)
        self._watch: WatchHandle | None = None

    def __repr__(self) -> str:
        return f"AssetCopier({self.path!r} -> {self.root!r})"

    def relative(self, path: str) -> str | None:
        """Return ``path`` relative to the output prefix, or None if outside it."""
        path = path.strip("/")
        if not self.path:
            return path
        if path == self.path:
            return ""
        if path.startswith(self.path + "/"):
            return path[len(self.path) + 1 :]
        return None

    def source_path(self, path: str) -> str | None:
        """Map an output path to the file it is copied from.

        Returns None for paths outside the prefix or escaping the root.
        """
        rel = self.relative(path)
        if rel is None:
            return None
        src = os.path.normpath(os.path.join(self.root, rel))
        if src != self.root and not src.startswith(self.root.rstrip(os.sep) + os.sep):
            return None
        return src

    def included(self, rel: str) -> bool:
        """Apply the include/exclude patterns to a root-relative path."""
        rel = rel.replace(os.sep, "/")
        if self.config.include and not any(fnmatchcase(rel, p) for p in self.config.include):
            return False
        return not any(fnmatchcase(rel, p) for p in self.config.exclude)

    def _include_source(self, src: str) -> bool:
        return src == self.root or self.included(os.path.relpath(src, self.root))

    async def _stat(self, src: str) -> os.stat_result | None:
        try:
            return await stat(src)
        except FileNotFoundError:
            return None

    async def exists(self, path: str) -> bool:
        """True if ``path`` names an exposed file or a directory under the root."""
        src = self.source_path(path)
        if src is None:
            return False
        st = await self._stat(src)
        if st is None:
            return False
        if stat_module.S_ISDIR(st.st_mode):
            return True
        return self._include_source(src)

    def _walk(self) -> list[str]:
        if not os.path.isdir(self.root):
            return [self.path] if os.path.exists(self.root) else []
        output = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames.sort()
            for name in sorted(filenames):
                rel = os.path.relpath(os.path.join(dirpath, name), self.root)
                if self.included(rel):
                    output.append(posixpath.join(self.path, rel.replace(os.sep, "/")))
        return output

    async def find_paths(self) -> list[str]:
        """Return every output path this copier can generate."""
        self._arm_watch()
        return await run_blocking(self._walk)

    async def build(self, path: str | None = None) -> BuiltAsset:
        """Describe the file behind ``path``; its body is streamed from disk."""
        path = self.path if path is None else path
        src = self.source_path(path)
        if src is None:
            raise PathNotFoundError(path)
        st = await self._stat(src)
        if st is None or not self._include_source(src):
            raise AssetNotFoundError(f"{path} not found", path=path)
        if stat_module.S_ISDIR(st.st_mode):
            raise AssetNotFoundError(f"{path} is a directory", path=path)

        self._arm_watch()
        content_type, _ = mimetypes.guess_type(src)
        return BuiltAsset(
            path=path,
            type=content_type or DEFAULT_TYPE,
            body_path=src,
            mtime=st.st_mtime,
        )

    async def write_file(
        self,
        dst: str,
        path: str | None = None,
        maker: DirectoryMaker | None = None,
    ) -> list[str]:
        """Copy the file or directory behind ``path`` to ``dst``.

        Returns the destination files written.
        """
        path = self.path if path is None else path
        if not await self.exists(path):
            raise AssetNotFoundError(f"{path} not found", path=path)
        src = self.source_path(path)
        if src is None:
            raise PathNotFoundError(path)
        maker = maker or DirectoryMaker()
        written = await copy_tree(src, dst, maker, self._include_source)
        self.info("copied", path)
        return written

    def _arm_watch(self) -> None:
        if self.config.watch and self._watch is None and os.path.exists(self.root):
            self._watch = self.config.watcher(self.root, self._on_change)

    def _on_change(self, path: str) -> None:
        self.info("changed", path)
        self.invalidate()

    def unwatch(self) -> None:
        watch, self._watch = self._watch, None
        if watch is not None:
            watch.close()

    def invalidate(self) -> None:
        """Close the directory watch and notify listeners."""
        self.unwatch()
        self.emit("invalidate")


__all__ = ["AssetCopier"]
