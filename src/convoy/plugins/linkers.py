"""Linkers - merge an expanded asset list into a single output body."""

from __future__ import annotations

import dataclasses
import json
import os
from collections.abc import Iterable
from importlib.resources import files
from typing import TYPE_CHECKING, Any

from convoy.errors import UnresolvedModuleError
from convoy.fsutils import run_blocking
from convoy.resolver import is_path_id, package_main

if TYPE_CHECKING:
    from convoy.assets import BuiltAsset, SourceAsset
    from convoy.packager import AssetPackager

GLOBAL_NAME = "$mod"

# Client-side module registry prepended to every CommonJS bundle
LOADER = (
    "("
    + files("convoy.plugins").joinpath("loader.js").read_text(encoding="utf-8").strip()
    + f")(typeof window !== 'undefined' ? window : this, {json.dumps(GLOBAL_NAME)});\n"
)


def newest_mtime(assets: Iterable[SourceAsset]) -> float:
    """Return the largest mtime across ``assets`` (0 when none is known)."""
    return max((a.mtime or 0 for a in assets), default=0)


async def simple_merge_linker(asset: BuiltAsset, context: AssetPackager) -> None:
    """Concatenate bodies in expanded order, one newline between each."""
    asset.body = "\n".join(a.body or "" for a in asset.assets)
    asset.mtime = newest_mtime(asset.assets)


def wrap(module_id: str | list[str], body: str, options: dict[str, Any] | None = None) -> str:
    """Wrap a module body in a registry ``define`` call."""
    args = [json.dumps(module_id), json.dumps(body)]
    if options:
        args.append(json.dumps(options))
    return f"{GLOBAL_NAME}.define({', '.join(args)});"


def assign_aliases(expanded: list[SourceAsset]) -> None:
    """Give every non-canonical conflicting asset a unique alias id.

    Parents that required the asset get an alias entry so that their
    ``require`` calls reach their own copy.
    """
    for asset in expanded:
        if not asset.conflicts or asset is asset.conflicts[0] or asset.alias_id:
            continue
        idx = next(i for i, other in enumerate(asset.conflicts) if other is asset)
        asset.alias_id = f"/__conflicts_{idx}__/{asset.id}"
        for parent in asset.parents:
            parent.aliases[asset.id] = asset.alias_id


def _package_main_path(pkg: dict[str, Any], context: AssetPackager) -> str | None:
    main = package_main(pkg, context.config.main_key)
    if not main:
        return None
    main_id = main if is_path_id(main) else f"./{main}"
    try:
        return context.resolve(main_id, pkg["path"])
    except UnresolvedModuleError:
        return None


async def _package_mains(
    expanded: list[SourceAsset], context: AssetPackager
) -> dict[str, str | None]:
    """Map each package directory in ``expanded`` to its main module path."""
    mains: dict[str, str | None] = {}
    for asset in expanded:
        if asset.pkg and asset.pkg["path"] not in mains:
            mains[asset.pkg["path"]] = await run_blocking(_package_main_path, asset.pkg, context)
    return mains


def _module_id(asset: SourceAsset, mains: dict[str, str | None]) -> str | list[str]:
    if asset.alias_id:
        return asset.alias_id
    # A package's main module can also be required by the package name
    if asset.pkg and asset.path == mains.get(asset.pkg["path"]):
        return [asset.id, os.path.basename(asset.pkg["path"])]
    return asset.id


async def _minify_module(asset: SourceAsset, body: str, context: AssetPackager) -> str:
    # Minify a copy so the cached asset keeps its compiled body
    proxy = dataclasses.replace(asset, body=body)
    await context.minifier(proxy, context)
    return proxy.body or ""


async def commonjs_linker(asset: BuiltAsset, context: AssetPackager) -> None:
    """Wrap each asset as a CommonJS module behind the client-side loader."""
    expanded = asset.assets
    assign_aliases(expanded)
    mains = await _package_mains(expanded, context)

    minify = bool(context.config.minify and context.minifier)
    modules = []
    for source in expanded:
        body = source.body or ""
        if minify:
            body = await _minify_module(source, body, context)
        body = f"(function(require, exports, module) {{ {body}\n}});\n//@ sourceURL={source.id}\n"
        options = {"aliases": source.aliases} if source.aliases else None
        modules.append(wrap(_module_id(source, mains), body, options))

    asset.body = LOADER + "\n" + "\n".join(modules)
    asset.mtime = newest_mtime(expanded)


__all__ = [
    "GLOBAL_NAME",
    "LOADER",
    "assign_aliases",
    "commonjs_linker",
    "newest_mtime",
    "simple_merge_linker",
    "wrap",
]
