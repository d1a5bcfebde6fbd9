"""Analyzers - discover the dependencies declared by a compiled asset."""

from __future__ import annotations

import logging
import os
import re
from typing import TYPE_CHECKING

from tree_sitter import Language, Node, Parser

from convoy.errors import UnresolvedModuleError
from convoy.fsutils import run_blocking
from convoy.resolver import is_core

if TYPE_CHECKING:
    from convoy.assets import SourceAsset
    from convoy.packager import AssetPackager

logger = logging.getLogger(__name__)

# Sprockets-style directives: "//= require foo" and "/*= require foo */"
_DIRECTIVE = re.compile(r"^\s*/(?:/|\*)=\s+require\s+(.+?)\s*(?:\*/)?\s*$", re.MULTILINE)

# Modules skipped as requirements: narwhal builtins plus per-package exceptions
NARWHAL_MODULES = frozenset({"system", "file"})
PACKAGE_EXCEPTIONS: dict[str, frozenset[str]] = {
    "jquery": frozenset({"jsdom", "xmlhttprequest", "location", "navigator"}),
}

_parser: Parser | None = None


def _get_parser() -> Parser:
    """Get or create the tree-sitter JavaScript parser."""
    global _parser
    if _parser is None:
        import tree_sitter_javascript as tsjavascript

        _parser = Parser(Language(tsjavascript.language()))
    return _parser


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _resolve_all(asset: SourceAsset, context: AssetPackager, module_ids: list[str]) -> list[str]:
    basedir = os.path.dirname(asset.path)
    try:
        return _dedupe([context.resolve(module_id, basedir) for module_id in module_ids])
    except UnresolvedModuleError as e:
        raise e.with_context(f"required in {asset.id}") from None


def find_directives(body: str) -> list[str]:
    """Return module ids named by require directives, in order."""
    return [match.group(1) for match in _DIRECTIVE.finditer(body)]


async def generic_analyzer(asset: SourceAsset, context: AssetPackager) -> None:
    """Collect dependencies from sprockets-style require directives."""
    module_ids = [m for m in find_directives(asset.body or "") if not is_core(m)]
    if module_ids:
        asset.dependencies = await run_blocking(_resolve_all, asset, context, module_ids)


def _string_value(node: Node, source: bytes) -> str | None:
    if node.type != "string":
        return None
    text = source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")
    return text[1:-1]


def _required_module(node: Node, source: bytes) -> str | None:
    """Return the module id of a ``require("...")`` call, if ``node`` is one."""
    field = "function" if node.type == "call_expression" else "constructor"
    callee = node.child_by_field_name(field)
    if callee is None or callee.type != "identifier":
        return None
    if source[callee.start_byte:callee.end_byte] != b"require":
        return None
    args = node.child_by_field_name("arguments")
    if args is None or args.named_child_count == 0:
        return None
    return _string_value(args.named_children[0], source)


def find_requires(body: str, file_path: str = "<source>") -> list[str]:
    """Return module ids passed as string literals to ``require()``, in source order."""
    source = body.encode("utf-8")
    tree = _get_parser().parse(source)
    if tree.root_node.has_error:
        logger.warning(f"Parse errors in {file_path}")

    results: list[str] = []
    stack = [tree.root_node]
    while stack:
        node = stack.pop()
        if node.type in ("call_expression", "new_expression"):
            module_id = _required_module(node, source)
            if module_id is not None:
                results.append(module_id)
        stack.extend(reversed(node.children))
    return results


def _is_exception(module_id: str, pkg: dict | None) -> bool:
    if is_core(module_id) or module_id in NARWHAL_MODULES:
        return True
    exceptions = PACKAGE_EXCEPTIONS.get(pkg.get("name", "")) if pkg else None
    return bool(exceptions and module_id in exceptions)


async def commonjs_analyzer(asset: SourceAsset, context: AssetPackager) -> None:
    """Collect dependencies from CommonJS ``require()`` calls."""
    asset.pkg = await run_blocking(context.get_nearest_package, asset.path)
    requires = find_requires(asset.body or "", asset.path)
    module_ids = [m for m in requires if not _is_exception(m, asset.pkg)]
    asset.dependencies = await run_blocking(_resolve_all, asset, context, module_ids)


__all__ = [
    "commonjs_analyzer",
    "find_directives",
    "find_requires",
    "generic_analyzer",
]
