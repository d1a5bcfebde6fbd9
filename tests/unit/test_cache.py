"""Tests for the per-packager source asset cache."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from convoy.cache import SourceAssetCache
from convoy.config import packager_config
from convoy.errors import AssetNotFoundError, CompileError, NoCompilerError
from convoy.packager import AssetPackager
from convoy.plugins import generic_analyzer


def make_cache(basedir: Path, compiler, **overrides) -> tuple[SourceAssetCache, list]:
    config = packager_config(
        "app.js", None, basedir=basedir, compilers={".js": compiler}, **overrides
    )
    compiled: list = []
    return SourceAssetCache(AssetPackager(config), on_compiled=compiled.append), compiled


class TestMemoization:
    """Each path compiles once per generation."""

    @pytest.mark.asyncio
    async def test_second_get_returns_same_asset(self, write_tree, counting_compiler) -> None:
        root = write_tree({"a.js": "var a;"})
        cache, _ = make_cache(root, counting_compiler)

        first = await cache.get(str(root / "a.js"))
        second = await cache.get(str(root / "a.js"))

        assert first is second
        assert first.body == "var a;"
        assert counting_compiler.calls[str(root / "a.js")] == 1

    @pytest.mark.asyncio
    async def test_concurrent_gets_share_one_compile(self, write_tree, counting_compiler) -> None:
        root = write_tree({"a.js": "var a;"})
        cache, _ = make_cache(root, counting_compiler)

        results = await asyncio.gather(*(cache.get(str(root / "a.js")) for _ in range(5)))

        assert all(r is results[0] for r in results)
        assert counting_compiler.calls[str(root / "a.js")] == 1

    @pytest.mark.asyncio
    async def test_clear_forces_recompile(self, write_tree, counting_compiler) -> None:
        root = write_tree({"a.js": "var a;"})
        cache, _ = make_cache(root, counting_compiler)

        first = await cache.get(str(root / "a.js"))
        cache.clear()
        second = await cache.get(str(root / "a.js"))

        assert first is not second
        assert counting_compiler.calls[str(root / "a.js")] == 2

    @pytest.mark.asyncio
    async def test_on_compiled_called_once(self, write_tree, counting_compiler) -> None:
        root = write_tree({"a.js": ""})
        cache, compiled = make_cache(root, counting_compiler)

        asset = await cache.get(str(root / "a.js"))
        await cache.get(str(root / "a.js"))

        assert compiled == [asset]

    @pytest.mark.asyncio
    async def test_stale_compile_not_reported(self, write_tree, counting_compiler) -> None:
        root = write_tree({"a.js": ""})
        cache, compiled = make_cache(root, counting_compiler)

        task = asyncio.ensure_future(cache.get(str(root / "a.js")))
        await asyncio.sleep(0)
        cache.clear()
        await task

        assert compiled == []
        assert str(root / "a.js") not in cache


class TestCompile:
    """Compile steps and their failures."""

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: Path, counting_compiler) -> None:
        cache, _ = make_cache(tmp_path, counting_compiler)
        with pytest.raises(AssetNotFoundError):
            await cache.get(str(tmp_path / "missing.js"))

    @pytest.mark.asyncio
    async def test_failure_is_not_memoized(self, tmp_path: Path, counting_compiler) -> None:
        cache, _ = make_cache(tmp_path, counting_compiler)
        path = tmp_path / "late.js"

        with pytest.raises(AssetNotFoundError):
            await cache.get(str(path))
        assert str(path) not in cache

        path.write_text("var late;")
        asset = await cache.get(str(path))
        assert asset.body == "var late;"

    @pytest.mark.asyncio
    async def test_directory_is_not_an_asset(self, write_tree, counting_compiler) -> None:
        root = write_tree({"lib.js/inner.js": ""})
        cache, _ = make_cache(root, counting_compiler)
        with pytest.raises(AssetNotFoundError, match="is a directory"):
            await cache.get(str(root / "lib.js"))

    @pytest.mark.asyncio
    async def test_undecodable_source(self, tmp_path: Path, counting_compiler) -> None:
        path = tmp_path / "bad.js"
        path.write_bytes(b"var a = '\xff\xfe';")
        cache, _ = make_cache(tmp_path, counting_compiler)

        with pytest.raises(CompileError, match="Cannot decode") as exc_info:
            await cache.get(str(path))

        assert exc_info.value.path == str(path)
        assert str(path) not in cache

    @pytest.mark.asyncio
    async def test_no_compiler_for_extension(self, write_tree, counting_compiler) -> None:
        root = write_tree({"notes.txt": "hi"})
        cache, _ = make_cache(root, counting_compiler)
        with pytest.raises(NoCompilerError) as exc_info:
            await cache.get(str(root / "notes.txt"))
        assert exc_info.value.extension == ".txt"

    @pytest.mark.asyncio
    async def test_id_from_nearest_package(self, write_tree, counting_compiler) -> None:
        root = write_tree({"demo/package.json": {"name": "demo"}, "demo/lib/mod1.js": ""})
        cache, _ = make_cache(root, counting_compiler)

        asset = await cache.get(str(root / "demo" / "lib" / "mod1.js"))

        assert asset.id == "demo/lib/mod1"
        assert asset.mtime == (root / "demo" / "lib" / "mod1.js").stat().st_mtime

    @pytest.mark.asyncio
    async def test_preprocessors_run_in_order(self, write_tree, counting_compiler) -> None:
        root = write_tree({"a.js": "x"})

        async def add_a(asset, context):
            asset.body += "a"

        async def add_b(asset, context):
            asset.body += "b"

        cache, _ = make_cache(root, counting_compiler, preprocessors={".js": [add_a, add_b]})
        asset = await cache.get(str(root / "a.js"))
        assert asset.body == "xab"

    @pytest.mark.asyncio
    async def test_analyzer_fills_dependencies(self, write_tree, counting_compiler) -> None:
        root = write_tree({"a.js": "//= require ./b\n", "b.js": ""})
        cache, _ = make_cache(root, counting_compiler, analyzer=generic_analyzer)
        asset = await cache.get(str(root / "a.js"))
        assert asset.dependencies == [str(root / "b.js")]

    @pytest.mark.asyncio
    async def test_without_analyzer_no_dependencies(self, write_tree, counting_compiler) -> None:
        root = write_tree({"a.js": "//= require ./b\n", "b.js": ""})
        cache, _ = make_cache(root, counting_compiler)
        asset = await cache.get(str(root / "a.js"))
        assert asset.dependencies == []
