"""Plugin protocols.

Every plugin is an async callable taking the asset it works on and the
packager that owns it (the "context"). Plugins communicate only by mutating
the asset they are given.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from convoy.assets import BuiltAsset, SourceAsset
    from convoy.packager import AssetPackager


class Compiler(Protocol):
    """Fills ``asset.body`` from the file at ``asset.path``."""

    async def __call__(self, asset: SourceAsset, context: AssetPackager) -> None: ...


class Analyzer(Protocol):
    """Fills ``asset.dependencies`` with absolute paths; may set ``id`` and ``pkg``."""

    async def __call__(self, asset: SourceAsset, context: AssetPackager) -> None: ...


class Linker(Protocol):
    """Merges ``asset.assets`` into ``asset.body`` (and optionally ``mtime``)."""

    async def __call__(self, asset: BuiltAsset, context: AssetPackager) -> None: ...


class Minifier(Protocol):
    """Rewrites ``asset.body``. Options come from ``context.minify``."""

    async def __call__(self, asset: SourceAsset | BuiltAsset, context: AssetPackager) -> None: ...


class Processor(Protocol):
    """Preprocessor, postprocessor or finalizer; may rewrite ``asset.body``."""

    async def __call__(self, asset: SourceAsset | BuiltAsset, context: AssetPackager) -> None: ...


__all__ = ["Analyzer", "Compiler", "Linker", "Minifier", "Processor"]
