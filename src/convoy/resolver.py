"""Module resolution - maps module ids to files on disk and back.

Follows the CommonJS lookup rules used by Node:

- ids starting with ``./``, ``../`` or ``/`` are loaded relative to the base
  directory, as a file (trying each extension) or as a directory (package
  ``main`` entry, then ``index``)
- any other id is a package name searched for in ``node_modules`` directories
  from the base directory up to the filesystem root
- Node core modules resolve to themselves and are never loaded from disk

Nothing here caches. Callers that resolve many ids (the packager) keep their
own cache of package descriptors.
"""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Callable, Iterator, Sequence
from pathlib import Path
from typing import Any

from convoy.errors import UnresolvedModuleError

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS: tuple[str, ...] = (".js",)
DEFAULT_MAIN_KEY = "main"

# Package section that may override the main entry for bundling
PACKAGE_SECTION = "convoy"

# Node core modules (never expanded as file dependencies)
NODE_CORE_MODULES = frozenset({
    "assert", "buffer", "buffer_ieee754", "child_process", "cluster", "console",
    "constants", "crypto", "_debugger", "dgram", "dns", "events", "freelist",
    "fs", "http", "https", "_linklist", "module", "net", "os", "path",
    "punycode", "querystring", "readline", "repl", "stream", "string_decoder",
    "sys", "timers", "tls", "tty", "url", "util", "vm", "zlib",
})

_PATH_ID = re.compile(r"^(?:\.{1,2}(?:/|$)|/|[A-Za-z]:\\|\\)")


def is_core(module_id: str) -> bool:
    """Return True for Node core module names."""
    return module_id in NODE_CORE_MODULES


def is_path_id(module_id: str) -> bool:
    """Return True when the id names a path rather than a package."""
    return _PATH_ID.match(module_id) is not None


def _is_file(path: str) -> bool:
    return os.path.isfile(path)


def _load_as_file(
    path: str,
    extensions: Sequence[str],
    is_file: Callable[[str], bool],
) -> str | None:
    if is_file(path):
        return path
    for ext in extensions:
        candidate = path + ext
        if is_file(candidate):
            return candidate
    return None


def package_main(pkg: dict[str, Any], main_key: str = DEFAULT_MAIN_KEY) -> str | None:
    """Return the entry module named by a package descriptor, if any."""
    section = pkg.get(PACKAGE_SECTION)
    if isinstance(section, dict) and section.get(main_key):
        return str(section[main_key])
    main = pkg.get(main_key)
    return str(main) if main else None


def _load_as_directory(
    path: str,
    extensions: Sequence[str],
    main_key: str,
    is_file: Callable[[str], bool],
) -> str | None:
    pkg_file = os.path.join(path, "package.json")
    if is_file(pkg_file):
        try:
            with open(pkg_file, encoding="utf-8") as f:
                pkg = json.load(f)
        except (OSError, ValueError) as e:
            # An unreadable package.json falls back to index lookup
            logger.debug(f"Ignoring invalid {pkg_file}: {e}")
            pkg = None
        if isinstance(pkg, dict):
            main = package_main(pkg, main_key)
            if main:
                main_path = os.path.normpath(os.path.join(path, main))
                found = _load_as_file(main_path, extensions, is_file)
                if found:
                    return found

    return _load_as_file(os.path.join(path, "index"), extensions, is_file)


def node_modules_paths(start: str) -> Iterator[str]:
    """Yield candidate node_modules directories from ``start`` upward."""
    current = Path(start)
    for directory in (current, *current.parents):
        if directory.name == "node_modules":
            continue
        yield str(directory / "node_modules")


def resolve(
    module_id: str,
    basedir: str | os.PathLike[str],
    *,
    extensions: Sequence[str] = DEFAULT_EXTENSIONS,
    main_key: str = DEFAULT_MAIN_KEY,
    paths: Sequence[str] = (),
    error_context: str | None = None,
    is_file: Callable[[str], bool] = _is_file,
) -> str:
    """Resolve a module id to an absolute file path.

    Args:
        module_id: Relative path, absolute path or package name
        basedir: Directory the id is relative to
        extensions: Extensions to try, in order, when the literal path is missing
        main_key: package.json key naming a package's entry module
        paths: Extra directories searched before the node_modules chain
        error_context: Appended to the error message (usually the requiring id)
        is_file: File predicate, replaceable for testing

    Returns:
        Absolute path to the module, or the id itself for core modules

    Raises:
        UnresolvedModuleError: If no candidate matches
    """
    if is_core(module_id):
        return module_id

    basedir = os.path.abspath(basedir)

    if is_path_id(module_id):
        target = os.path.normpath(os.path.join(basedir, module_id))
        found = _load_as_file(target, extensions, is_file) or _load_as_directory(
            target, extensions, main_key, is_file
        )
        if found:
            return found

    for directory in (*paths, *node_modules_paths(basedir)):
        target = os.path.join(directory, module_id)
        found = _load_as_file(target, extensions, is_file) or _load_as_directory(
            target, extensions, main_key, is_file
        )
        if found:
            return os.path.abspath(found)

    raise UnresolvedModuleError(module_id, error_context)


def find_nearest_package(path: str | os.PathLike[str]) -> str | None:
    """Return the closest directory at or above ``path`` holding a package.json."""
    current = Path(os.path.abspath(path))
    if not current.is_dir():
        current = current.parent
    for directory in (current, *current.parents):
        if (directory / "package.json").is_file():
            return str(directory)
    return None


def read_package(directory: str) -> dict[str, Any]:
    """Read the package.json in ``directory``.

    The returned descriptor always carries a ``path`` key pointing at the
    package directory.
    """
    pkg_file = os.path.join(directory, "package.json")
    with open(pkg_file, encoding="utf-8") as f:
        try:
            pkg = json.load(f)
        except ValueError as e:
            logger.warning(f"Invalid package.json in {directory}: {e}")
            pkg = {}
    if not isinstance(pkg, dict):
        pkg = {}
    pkg["path"] = directory
    return pkg


def unresolve(path: str, package_dir: str | None) -> str:
    """Map a file path back to a module id.

    The id is the package directory name followed by the file's path inside
    the package, without extension: ``demo/lib/mod1`` for
    ``/src/demo/lib/mod1.js``. Files outside any package keep their path.
    """
    if not package_dir:
        return path
    stem, _ = os.path.splitext(path)
    relative = os.path.relpath(stem, package_dir)
    return Path(os.path.basename(package_dir), relative).as_posix()


__all__ = [
    "DEFAULT_EXTENSIONS",
    "DEFAULT_MAIN_KEY",
    "NODE_CORE_MODULES",
    "find_nearest_package",
    "is_core",
    "is_path_id",
    "node_modules_paths",
    "package_main",
    "read_package",
    "resolve",
    "unresolve",
]
