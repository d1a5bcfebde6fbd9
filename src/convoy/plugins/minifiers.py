"""Minifiers backed by external command-line tools.

Options given as a mapping in a packager's ``minify`` setting are turned into
command-line flags:

    {"compress": True}                  -> --compress
    {"mangle": {"toplevel": True}}      -> --mangle toplevel=true
    {"max_line_len": 500}               -> --max-line-len 500

``False`` and ``None`` values are omitted.
"""

from __future__ import annotations

import os
import subprocess
import tempfile
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from convoy.errors import MinifyError
from convoy.fsutils import run_blocking

if TYPE_CHECKING:
    from convoy.assets import BuiltAsset, SourceAsset
    from convoy.packager import AssetPackager


def _flag_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def options_to_args(options: Mapping[str, Any]) -> list[str]:
    """Translate a minify options mapping into command-line arguments."""
    args: list[str] = []
    for key, value in options.items():
        if value is None or value is False:
            continue
        flag = "--" + key.replace("_", "-")
        if value is True:
            args.append(flag)
        elif isinstance(value, Mapping):
            args.append(flag)
            if value:
                args.append(",".join(f"{k}={_flag_value(v)}" for k, v in value.items()))
        else:
            args.extend([flag, _flag_value(value)])
    return args


class ExternalMinifier:
    """Run an external minifier on an asset body.

    Attributes:
        executable: Command to run
        default_options: Options used when ``minify`` is not a mapping
        use_stdin: Pipe the body on stdin instead of through a temporary file
    """

    suffix = ".txt"

    def __init__(
        self,
        executable: str,
        default_options: Mapping[str, Any] | None = None,
        use_stdin: bool = True,
    ) -> None:
        self.executable = executable
        self.default_options = dict(default_options or {})
        self.use_stdin = use_stdin

    def options_for(self, context: AssetPackager) -> dict[str, Any]:
        options = dict(self.default_options)
        if isinstance(context.config.minify, Mapping):
            options.update(context.config.minify)
        return options

    async def __call__(self, asset: SourceAsset | BuiltAsset, context: AssetPackager) -> None:
        args = options_to_args(self.options_for(context))
        asset.body = await run_blocking(self._run, asset.body or "", args, asset.path)

    def _run(self, body: str, args: list[str], path: str) -> str:
        if self.use_stdin:
            return self._invoke([self.executable, *args], body, path)

        fd, tmp_path = tempfile.mkstemp(suffix=self.suffix)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(body)
            return self._invoke([self.executable, *args, tmp_path], None, path)
        finally:
            os.unlink(tmp_path)

    def _invoke(self, command: list[str], body: str | None, path: str) -> str:
        try:
            result = subprocess.run(
                command,
                input=body,
                capture_output=True,
                text=True,
                check=True,
            )
        except FileNotFoundError:
            raise MinifyError(f"Minifier not found: {self.executable}", path=path) from None
        except subprocess.CalledProcessError as e:
            raise MinifyError(
                f"{self.executable} failed for {path}\n{e.stderr}", path=path
            ) from e
        return result.stdout


class UglifyMinifier(ExternalMinifier):
    """Minify JavaScript with ``uglifyjs``."""

    suffix = ".js"

    def __init__(self, executable: str = "uglifyjs") -> None:
        super().__init__(executable, {"compress": True, "mangle": True})


class UglifyCSSMinifier(ExternalMinifier):
    """Minify CSS with ``uglifycss``."""

    suffix = ".css"

    def __init__(self, executable: str = "uglifycss") -> None:
        super().__init__(executable, use_stdin=False)


uglify_minifier = UglifyMinifier()
uglify_css_minifier = UglifyCSSMinifier()


__all__ = [
    "ExternalMinifier",
    "UglifyCSSMinifier",
    "UglifyMinifier",
    "options_to_args",
    "uglify_css_minifier",
    "uglify_minifier",
]
