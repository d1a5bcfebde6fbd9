"""Shared fixtures for convoy tests."""

from __future__ import annotations

import json
from collections import Counter
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from convoy.plugins.compilers import generic_compiler


class FakeWatchHandle:
    """Watch handle that records whether it was closed."""

    def __init__(self, path: str, on_change: Callable[[str], None]) -> None:
        self.path = path
        self.on_change = on_change
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeWatcher:
    """Watcher plugin whose change notifications are fired by the test."""

    def __init__(self) -> None:
        self.handles: list[FakeWatchHandle] = []

    def __call__(self, path: str, on_change: Callable[[str], None]) -> FakeWatchHandle:
        handle = FakeWatchHandle(path, on_change)
        self.handles.append(handle)
        return handle

    @property
    def open_paths(self) -> list[str]:
        return [h.path for h in self.handles if not h.closed]

    def trigger(self, path: str | Path) -> int:
        """Fire on_change for every open handle on ``path``. Returns the count."""
        fired = 0
        for handle in list(self.handles):
            if handle.path == str(path) and not handle.closed:
                handle.on_change(handle.path)
                fired += 1
        return fired


class CountingCompiler:
    """Generic compiler that counts compiles per path."""

    def __init__(self) -> None:
        self.calls: Counter[str] = Counter()

    async def __call__(self, asset: Any, context: Any) -> None:
        self.calls[asset.path] += 1
        await generic_compiler(asset, context)


@pytest.fixture
def write_tree(tmp_path: Path) -> Callable[..., Path]:
    """Write a mapping of relative path -> content under tmp_path.

    Dict values are written as JSON (handy for package.json).
    """

    def write(files: dict[str, Any], root: Path | None = None) -> Path:
        root = root or tmp_path
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, dict):
                content = json.dumps(content)
            path.write_text(content, encoding="utf-8")
        return root

    return write


@pytest.fixture
def fake_watcher() -> FakeWatcher:
    return FakeWatcher()


@pytest.fixture
def counting_compiler() -> CountingCompiler:
    return CountingCompiler()
