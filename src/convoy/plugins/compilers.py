"""Compilers - turn a source file into JavaScript or CSS text."""

from __future__ import annotations

import subprocess
from typing import TYPE_CHECKING

from convoy.errors import CompileError
from convoy.fsutils import read_text, run_blocking

if TYPE_CHECKING:
    from convoy.assets import SourceAsset
    from convoy.packager import AssetPackager


async def generic_compiler(asset: SourceAsset, context: AssetPackager) -> None:
    """Load the file as-is. Suitable for JavaScript and CSS."""
    asset.body = await read_text(asset.path, context.config.encoding)


class CoffeeScriptCompiler:
    """Compile CoffeeScript with the external ``coffee`` tool."""

    def __init__(self, executable: str = "coffee", bare: bool = False) -> None:
        self.executable = executable
        self.bare = bare

    async def __call__(self, asset: SourceAsset, context: AssetPackager) -> None:
        source = await read_text(asset.path, context.config.encoding)
        asset.body = await run_blocking(self._compile, source, asset.path)

    def _compile(self, source: str, path: str) -> str:
        args = [self.executable, "--stdio", "--print", "--compile"]
        if self.bare:
            args.append("--bare")
        try:
            result = subprocess.run(
                args,
                input=source,
                capture_output=True,
                text=True,
                check=True,
            )
        except FileNotFoundError:
            raise CompileError(
                f"CoffeeScript compiler not found: {self.executable}", path=path
            ) from None
        except subprocess.CalledProcessError as e:
            raise CompileError(
                f"CoffeeScript compile failed for {path}\n{e.stderr}", path=path
            ) from e
        return result.stdout


coffeescript_compiler = CoffeeScriptCompiler()


__all__ = ["CoffeeScriptCompiler", "coffeescript_compiler", "generic_compiler"]
