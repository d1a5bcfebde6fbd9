"""Tests for dependency analyzers."""

from __future__ import annotations

from pathlib import Path

import pytest

from convoy.config import packager_config
from convoy.errors import UnresolvedModuleError
from convoy.packager import AssetPackager
from convoy.plugins.analyzers import find_directives, find_requires


class TestFindDirectives:
    """Sprockets-style require directives."""

    def test_line_comment_directives(self) -> None:
        body = "//= require ./a\n//= require lib/b\nvar x;\n"
        assert find_directives(body) == ["./a", "lib/b"]

    def test_block_comment_directive(self) -> None:
        assert find_directives("/*= require ./base */\nbody {}") == ["./base"]

    def test_indented_directive(self) -> None:
        assert find_directives("  //= require ./a") == ["./a"]

    def test_ignores_plain_comments(self) -> None:
        assert find_directives("// require ./a\n/* require ./b */\n") == []

    def test_directive_must_start_line(self) -> None:
        assert find_directives("var x; //= require ./a") == []


class TestFindRequires:
    """CommonJS require() calls found with tree-sitter."""

    def test_string_literals_in_order(self) -> None:
        body = "var a = require('./a');\nvar b = require(\"b\");\n"
        assert find_requires(body) == ["./a", "b"]

    def test_nested_calls(self) -> None:
        body = "function f() { return require('./inner'); }\nrequire('./outer');"
        assert find_requires(body) == ["./inner", "./outer"]

    def test_dynamic_requires_skipped(self) -> None:
        body = "require(name);\nrequire('./a' + x);\nrequire(`./tpl`);\n"
        assert find_requires(body) == []

    def test_method_named_require_skipped(self) -> None:
        assert find_requires("loader.require('./a');") == []

    def test_comments_and_strings_skipped(self) -> None:
        body = "// require('./a')\nvar s = \"require('./b')\";\n"
        assert find_requires(body) == []

    def test_empty_body(self) -> None:
        assert find_requires("") == []


def commonjs_packager(root: Path) -> AssetPackager:
    return AssetPackager(packager_config("app.js", "javascript", basedir=root))


def legacy_packager(root: Path) -> AssetPackager:
    return AssetPackager(packager_config("app.js", "legacy_javascript", basedir=root))


class TestCommonJSAnalyzer:
    """Resolution of require() calls to dependency paths."""

    @pytest.mark.asyncio
    async def test_resolves_relative_and_package(self, write_tree) -> None:
        root = write_tree({
            "app/main.js": "require('./util'); require('lib'); require('./util');",
            "app/util.js": "",
            "node_modules/lib/index.js": "",
        })
        asset = await commonjs_packager(root).get_source_asset("app/main.js")
        assert asset.dependencies == [
            str(root / "app" / "util.js"),
            str(root / "node_modules" / "lib" / "index.js"),
        ]

    @pytest.mark.asyncio
    async def test_core_and_narwhal_modules_skipped(self, write_tree) -> None:
        root = write_tree({"main.js": "require('fs'); require('system'); require('file');"})
        asset = await commonjs_packager(root).get_source_asset("main.js")
        assert asset.dependencies == []

    @pytest.mark.asyncio
    async def test_package_exceptions(self, write_tree) -> None:
        root = write_tree({
            "node_modules/jquery/package.json": {"name": "jquery", "main": "jquery"},
            "node_modules/jquery/jquery.js": "require('jsdom'); require('navigator');",
        })
        packager = commonjs_packager(root)
        asset = await packager.get_source_asset("node_modules/jquery/jquery.js")
        assert asset.dependencies == []
        assert asset.pkg["name"] == "jquery"

    @pytest.mark.asyncio
    async def test_exceptions_apply_only_to_their_package(self, write_tree) -> None:
        root = write_tree({"main.js": "require('jsdom');"})
        with pytest.raises(UnresolvedModuleError):
            await commonjs_packager(root).get_source_asset("main.js")

    @pytest.mark.asyncio
    async def test_unresolved_names_requiring_module(self, write_tree) -> None:
        root = write_tree({
            "demo/package.json": {"name": "demo"},
            "demo/main.js": "require('./missing');",
        })
        with pytest.raises(UnresolvedModuleError) as exc_info:
            await commonjs_packager(root).get_source_asset("demo/main.js")
        assert exc_info.value.module_id == "./missing"
        assert "required in demo/main" in str(exc_info.value)


class TestGenericAnalyzer:
    """Resolution of require directives."""

    @pytest.mark.asyncio
    async def test_resolves_directives(self, write_tree) -> None:
        root = write_tree({
            "main.js": "//= require ./a\n//= require ./b\n",
            "a.js": "",
            "b.coffee": "",
        })
        asset = await legacy_packager(root).get_source_asset("main.js")
        assert asset.dependencies == [str(root / "a.js"), str(root / "b.coffee")]

    @pytest.mark.asyncio
    async def test_no_directives(self, write_tree) -> None:
        root = write_tree({"main.js": "var x = require('./a');"})
        asset = await legacy_packager(root).get_source_asset("main.js")
        assert asset.dependencies == []
