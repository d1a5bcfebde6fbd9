"""Asset records passed between the cache, expander, linkers and writers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(eq=False)
class SourceAsset:
    """One compiled source file within one packager.

    Assets compare and hash by identity: two instances for the same path are
    distinct assets (one per cache generation).

    Attributes:
        path: Absolute path of the backing file (cache key)
        id: Logical module id, used for deduplication and bundle references
        mtime: Modification time captured when the file was compiled
        body: Compiled source text
        dependencies: Absolute paths required by this asset, in declared order
        parents: Assets that required this one during the current expansion
        children: Resolved assets for ``dependencies`` during the current expansion
        conflicts: Shared list of assets with this id but a different body
        pkg: Nearest package descriptor, filled in by analyzers that need it
        alias_id: Replacement id assigned by a linker to a conflicting asset
        aliases: Module id -> alias id map for requires made by this asset
    """

    path: str
    id: str
    mtime: float | None = None
    body: str | None = None
    dependencies: list[str] = field(default_factory=list)
    parents: list[SourceAsset] = field(default_factory=list, repr=False)
    children: list[SourceAsset] = field(default_factory=list, repr=False)
    conflicts: list[SourceAsset] | None = field(default=None, repr=False)
    pkg: dict[str, Any] | None = field(default=None, repr=False)
    alias_id: str | None = None
    aliases: dict[str, str] = field(default_factory=dict)

    def reset_links(self) -> None:
        """Drop the bookkeeping left by a previous expansion pass."""
        self.parents = []
        self.children = []
        self.conflicts = None
        self.alias_id = None
        self.aliases = {}

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "path": self.path,
            "id": self.id,
            "mtime": self.mtime,
            "dependencies": self.dependencies,
        }
        if self.conflicts:
            result["conflicts"] = [a.path for a in self.conflicts]
        if self.alias_id:
            result["alias_id"] = self.alias_id
        return result


@dataclass(eq=False)
class BuiltAsset:
    """A generated output: a merged bundle or a file exposed by a copy rule.

    Exactly one of ``body`` (inline text) or ``body_path`` (file streamed from
    disk) is set once the asset is complete.
    """

    path: str
    type: str | None = None
    assets: list[SourceAsset] = field(default_factory=list, repr=False)
    body: str | None = field(default=None, repr=False)
    body_path: str | None = None
    mtime: float | None = None
    etag: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "type": self.type,
            "mtime": self.mtime,
            "assets": [a.path for a in self.assets],
            "body_path": self.body_path,
        }


__all__ = ["BuiltAsset", "SourceAsset"]
