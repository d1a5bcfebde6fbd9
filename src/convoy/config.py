"""Configuration models for convoy.

Targets are declared either in Python:

    >>> from convoy.config import packager_config
    >>> config = packager_config("app.js", type="javascript", main=["./app/main"])

or in ``convoy.toml``:

    [targets."app.js"]
    type = "javascript"
    main = ["./app/main"]
    minify = true

    [targets."assets"]
    type = "copy"
    root = "public"

Plugin overrides in TOML are import strings such as ``"mypkg.plugins:banner"``.
"""

from __future__ import annotations

import importlib
import os
import tomllib
from collections.abc import Callable, Mapping
from functools import reduce
from pathlib import Path
from types import MappingProxyType
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from convoy.errors import ConfigError
from convoy.plugins import (
    coffeescript_compiler,
    commonjs_analyzer,
    commonjs_linker,
    generic_analyzer,
    generic_compiler,
    simple_merge_linker,
    uglify_css_minifier,
    uglify_minifier,
)
from convoy.resolver import DEFAULT_MAIN_KEY
from convoy.watcher import watch_path

CONFIG_FILENAME = "convoy.toml"

Plugin = Callable[..., Any]

# Seconds in a year; "infinity" max-age is capped here
ONE_YEAR = 60 * 60 * 24 * 365

PRESETS: Mapping[str, Mapping[str, Any]] = MappingProxyType(
    {
        "javascript": MappingProxyType(
            {
                "type": "application/javascript",
                "compilers": {".js": generic_compiler, ".coffee": coffeescript_compiler},
                "analyzer": commonjs_analyzer,
                "linker": commonjs_linker,
                "minifier": uglify_minifier,
            }
        ),
        # For JavaScript that doesn't know about CommonJS
        "legacy_javascript": MappingProxyType(
            {
                "type": "application/javascript",
                "compilers": {".js": generic_compiler, ".coffee": coffeescript_compiler},
                "analyzer": generic_analyzer,
                "linker": simple_merge_linker,
                "minifier": uglify_minifier,
            }
        ),
        "css": MappingProxyType(
            {
                "type": "text/css",
                "compilers": {".css": generic_compiler},
                "analyzer": generic_analyzer,
                "linker": simple_merge_linker,
                "minifier": uglify_css_minifier,
            }
        ),
    }
)

COPY_TYPE = "copy"


def import_string(dotted_path: str) -> Any:
    """Import ``"package.module:attribute"`` and return the attribute."""
    module_name, sep, attr_path = dotted_path.partition(":")
    if not sep or not module_name or not attr_path:
        raise ConfigError(f"Invalid import string '{dotted_path}', expected 'module:attribute'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import '{module_name}': {e}", import_string=dotted_path) from e
    try:
        return reduce(getattr, attr_path.split("."), module)
    except AttributeError as e:
        raise ConfigError(
            f"'{module_name}' has no attribute '{attr_path}'", import_string=dotted_path
        ) from e


def _load_plugin(value: Any) -> Any:
    return import_string(value) if isinstance(value, str) else value


class PackagerConfig(BaseModel):
    """Immutable configuration for one merged output."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True, extra="forbid")

    path: str = Field(description="Output path served and written by this packager")
    type: str = Field(default="application/javascript", description="MIME type of the output")
    main: list[str] = Field(default_factory=list, description="Entry module specifiers")
    basedir: Path = Field(default_factory=Path.cwd, description="Directory main is resolved from")

    compilers: dict[str, Plugin] = Field(default_factory=dict, description="Extension -> compiler")
    preprocessors: dict[str, list[Plugin]] = Field(
        default_factory=dict, description="Extension -> preprocessors run after compiling"
    )
    analyzer: Plugin | None = None
    linker: Plugin | None = None
    postprocessors: list[Plugin] = Field(default_factory=list)
    minifier: Plugin | None = None
    finalizers: list[Plugin] = Field(default_factory=list)

    minify: bool | dict[str, Any] = Field(
        default=False, description="Minify the merged output; a mapping is passed as options"
    )
    watch: bool = Field(default=False, description="Invalidate when a source file changes")
    watcher: Plugin = Field(default=watch_path, description="Factory for file watches")
    main_key: str = Field(
        default=DEFAULT_MAIN_KEY, description="package.json key naming the entry module"
    )
    paths: list[str] = Field(default_factory=list, description="Extra module search directories")
    encoding: str = "utf-8"

    @field_validator("main", mode="before")
    @classmethod
    def _main_list(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("basedir", mode="after")
    @classmethod
    def _absolute_basedir(cls, value: Path) -> Path:
        return Path(os.path.abspath(value))

    @field_validator("analyzer", "linker", "minifier", "watcher", mode="before")
    @classmethod
    def _import_plugin(cls, value: Any) -> Any:
        return _load_plugin(value)

    @field_validator("postprocessors", "finalizers", mode="before")
    @classmethod
    def _import_plugin_list(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return [_load_plugin(v) for v in value]
        return value

    @field_validator("compilers", mode="before")
    @classmethod
    def _import_compilers(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {ext: _load_plugin(v) for ext, v in value.items()}
        return value

    @field_validator("preprocessors", mode="before")
    @classmethod
    def _import_preprocessors(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {ext: [_load_plugin(v) for v in plugins] for ext, plugins in value.items()}
        return value

    @property
    def extensions(self) -> list[str]:
        """Extensions tried when resolving module ids, in compiler order."""
        return list(self.compilers)


class CopyConfig(BaseModel):
    """Expose raw files under ``root`` at the output prefix ``path``."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True, extra="forbid")

    path: str
    type: Literal["copy"] = COPY_TYPE
    root: Path
    include: list[str] = Field(default_factory=list, description="Glob patterns to copy")
    exclude: list[str] = Field(default_factory=list, description="Glob patterns to skip")
    watch: bool = False
    watcher: Plugin = watch_path

    @field_validator("root", mode="after")
    @classmethod
    def _absolute_root(cls, value: Path) -> Path:
        return Path(os.path.abspath(value))

    @field_validator("watcher", mode="before")
    @classmethod
    def _import_watcher(cls, value: Any) -> Any:
        return _load_plugin(value)


TargetConfig = PackagerConfig | CopyConfig


def packager_config(path: str, type: str | None = "javascript", **overrides: Any) -> PackagerConfig:
    """Merge a preset with ``overrides`` into a frozen :class:`PackagerConfig`.

    Args:
        path: Output path of the packager
        type: Preset name (see ``PRESETS``), or None to start from no preset
        **overrides: Any PackagerConfig field; replaces the preset value

    Raises:
        ConfigError: Unknown preset or invalid field values
    """
    if type is None:
        preset: Mapping[str, Any] = {}
    elif type in PRESETS:
        preset = PRESETS[type]
    else:
        raise ConfigError(f"Unknown asset type '{type}' for {path}", path=path, type=type)

    values = {**preset, **overrides, "path": path}
    try:
        return PackagerConfig(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration for {path}: {e}", path=path) from e


def make_target_config(
    path: str,
    config: TargetConfig | Mapping[str, Any],
    basedir: Path | str | None = None,
) -> TargetConfig:
    """Build a packager or copy configuration from a mapping.

    Relative ``basedir``/``root`` values are taken relative to ``basedir``.
    """
    if isinstance(config, (PackagerConfig, CopyConfig)):
        return config

    data = dict(config)
    target_type = data.pop("type", "javascript")
    base = Path(basedir) if basedir is not None else Path.cwd()

    if target_type == COPY_TYPE:
        if "root" not in data:
            raise ConfigError(f"Copy target {path} requires a root", path=path)
        data["root"] = base / data["root"]
        try:
            return CopyConfig(path=path, **data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration for {path}: {e}", path=path) from e

    data["basedir"] = base / data.get("basedir", ".")
    return packager_config(path, target_type, **data)


class ServerConfig(BaseModel):
    """Development server configuration."""

    host: str = Field(default="127.0.0.1", description="Interface to bind")
    port: int = Field(default=4020, description="Port to listen on")
    max_age: int | Literal["infinity"] = Field(
        default=0, description="Cache-Control max-age in seconds"
    )
    hidden: bool = Field(default=False, description="Serve dotfiles")
    watch: bool = Field(default=True, description="Watch sources and rebuild on change")

    @property
    def max_age_seconds(self) -> int:
        return ONE_YEAR if self.max_age == "infinity" else self.max_age


class ConvoySettings(BaseSettings):
    """Main convoy configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CONVOY_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    root: Path = Field(default_factory=Path.cwd, description="Directory targets are relative to")
    paths: list[str] = Field(default_factory=list, description="Extra module search directories")
    server: ServerConfig = Field(default_factory=ServerConfig)
    targets: dict[str, dict[str, Any]] = Field(default_factory=dict)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over values read from the config file
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @classmethod
    def load(cls, config_path: Path | None = None) -> ConvoySettings:
        """Load configuration from file and environment.

        Resolution order (highest to lowest priority):
        1. Environment variables
        2. Provided config file path
        3. convoy.toml in current directory
        4. Built-in defaults
        """
        config_data: dict[str, Any] = {}

        if config_path is not None and not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}", path=str(config_path))

        location = config_path or Path.cwd() / CONFIG_FILENAME
        if location.exists():
            try:
                with open(location, "rb") as f:
                    config_data = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigError(f"Invalid TOML in {location}: {e}", path=str(location)) from e
            config_dir = location.resolve().parent
            config_data["root"] = str(config_dir / config_data.get("root", "."))

        try:
            return cls(**config_data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def search_paths(self) -> list[str]:
        return [str(self.root / p) for p in self.paths]

    def target_configs(self, watch: bool | None = None) -> dict[str, TargetConfig]:
        """Build every declared target; ``watch`` overrides each target's setting."""
        configs: dict[str, TargetConfig] = {}
        for path, data in self.targets.items():
            if watch is not None:
                data = {**data, "watch": watch}
            configs[path] = make_target_config(path, data, self.root)
        return configs


__all__ = [
    "CONFIG_FILENAME",
    "ConvoySettings",
    "CopyConfig",
    "PRESETS",
    "PackagerConfig",
    "ServerConfig",
    "TargetConfig",
    "import_string",
    "make_target_config",
    "packager_config",
]
