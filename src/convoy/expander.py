"""Dependency expansion: roots -> ordered, deduplicated asset list."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable

from convoy.assets import SourceAsset
from convoy.errors import AssetNotFoundError, DependencyNotFoundError

logger = logging.getLogger(__name__)

GetAsset = Callable[[str], Awaitable[SourceAsset]]
Warn = Callable[[str], None]


async def expand_dependencies(
    roots: Iterable[SourceAsset], get_asset: GetAsset
) -> list[SourceAsset]:
    """Walk the dependency graph depth-first.

    Dependencies come before the assets that require them, in declared order.
    Each asset appears once even when the graph has cycles. ``parents`` and
    ``children`` are rebuilt for every asset reached.

    Raises:
        DependencyNotFoundError: A declared dependency does not exist
    """
    seen: set[SourceAsset] = set()
    touched: set[SourceAsset] = set()
    expanded: list[SourceAsset] = []

    def touch(asset: SourceAsset) -> SourceAsset:
        if asset not in touched:
            touched.add(asset)
            asset.reset_links()
        return asset

    async def visit(asset: SourceAsset) -> None:
        if asset in seen:
            return
        seen.add(asset)

        children = []
        for path in asset.dependencies:
            try:
                child = touch(await get_asset(path))
            except AssetNotFoundError as e:
                raise DependencyNotFoundError(path, asset.path) from e
            if child not in asset.children:
                asset.children.append(child)
            if asset not in child.parents:
                child.parents.append(asset)
            children.append(child)

        for child in children:
            await visit(child)
        expanded.append(asset)

    for root in roots:
        await visit(touch(root))
    return expanded


def _describe(group: list[SourceAsset]) -> str:
    return "conflicting assets:\n  " + "\n  ".join(asset.path for asset in group)


def resolve_conflicts(expanded: list[SourceAsset], warn: Warn | None = None) -> list[SourceAsset]:
    """Drop duplicates and flag conflicts among assets sharing an id.

    The first asset with a given id is canonical. A later asset whose body
    matches a member of its group is a duplicate and is dropped; its parents
    are re-linked to that member. A later asset with a new body joins the
    group's shared ``conflicts`` list and stays in the output. One warning is
    emitted per conflicting group once the whole list has been scanned.
    """
    warn = warn or logger.warning
    groups: dict[str, list[SourceAsset]] = {}
    output: list[SourceAsset] = []

    for asset in expanded:
        group = groups.get(asset.id) if asset.id else None
        if group is None:
            if asset.id:
                groups[asset.id] = [asset]
            output.append(asset)
            continue

        same = next((member for member in group if member.body == asset.body), None)
        if same is not None:
            for parent in asset.parents:
                if parent not in same.parents:
                    same.parents.append(parent)
            continue

        group.append(asset)
        for member in group:
            member.conflicts = group
        output.append(asset)

    for group in groups.values():
        if len(group) > 1:
            warn(_describe(group))
    return output


async def expand(
    roots: Iterable[SourceAsset],
    get_asset: GetAsset,
    warn: Warn | None = None,
) -> list[SourceAsset]:
    """Expand ``roots`` into a dependency-ordered list with conflicts resolved."""
    return resolve_conflicts(await expand_dependencies(roots, get_asset), warn)


__all__ = ["expand", "expand_dependencies", "resolve_conflicts"]
