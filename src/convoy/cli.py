"""convoy CLI - build and serve asset pipelines."""

from __future__ import annotations

import sys
import traceback
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from dotenv import load_dotenv

# Load .env file before any other imports that might use env vars
load_dotenv()

import click  # noqa: E402

from convoy import __version__  # noqa: E402
from convoy.commands.lazy import LazyGroup  # noqa: E402

if TYPE_CHECKING:
    from convoy.config import ConvoySettings
    from convoy.pipeline import Pipeline

VerbosityLevel = Literal["quiet", "normal", "verbose"]


class ConvoyContext:
    """Shared context for CLI commands."""

    def __init__(self) -> None:
        self.config_path: Path | None = None
        self.verbosity: VerbosityLevel = "normal"
        self.debug: bool = False
        self._settings: ConvoySettings | None = None

    @property
    def settings(self) -> ConvoySettings:
        """Configuration, loaded on first use.

        Raises:
            ConfigError: The config file is missing or invalid
        """
        if self._settings is None:
            from convoy.config import ConvoySettings

            self._settings = ConvoySettings.load(self.config_path)
        return self._settings

    def create_pipeline(self, watch: bool | None = None) -> Pipeline:
        """Create a pipeline holding every configured target."""
        from convoy.pipeline import Pipeline

        settings = self.settings
        return Pipeline(
            settings.target_configs(watch=watch),
            paths=settings.search_paths(),
            basedir=settings.root,
        )


pass_context = click.make_pass_decorator(ConvoyContext, ensure=True)


# Define lazy subcommands: name -> (module_path, attribute_name)
LAZY_COMMANDS: dict[str, tuple[str, str]] = {
    "build": ("convoy.commands.build", "build"),
    "ls": ("convoy.commands.ls", "ls"),
    "serve": ("convoy.commands.serve", "serve"),
}


@click.group(cls=LazyGroup, lazy_subcommands=LAZY_COMMANDS)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("-q", "--quiet", is_flag=True, help="Suppress non-error output")
@click.option("--debug", is_flag=True, help="Show full tracebacks on errors")
@click.option(
    "--config",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file (default: ./convoy.toml)",
)
@click.version_option(version=__version__, prog_name="convoy")
@pass_context
def cli(ctx: ConvoyContext, verbose: bool, quiet: bool, debug: bool, config: Path | None) -> None:
    """convoy - dependency-aware asset pipeline.

    \b
    Commands:
      build        Write targets to an output directory
      ls           List every path the pipeline can generate
      serve        Serve targets over HTTP, rebuilding on change

    Targets are declared in convoy.toml. Use 'convoy <command> --help' for
    details.
    """
    from convoy.logging import setup_logging

    ctx.debug = debug
    if quiet:
        ctx.verbosity = "quiet"
    elif verbose:
        ctx.verbosity = "verbose"
    else:
        ctx.verbosity = "normal"

    setup_logging(ctx.verbosity)
    ctx.config_path = config


def main() -> None:
    """Entry point for the convoy CLI."""
    debug_mode = "--debug" in sys.argv

    try:
        cli()
    except click.ClickException:
        raise
    except KeyboardInterrupt:
        sys.exit(130)
    except Exception as e:
        from convoy.errors import ExitCode
        from convoy.logging import print_error, print_info

        print_error(str(e))
        if debug_mode:
            print_info("Full traceback (--debug mode):")
            traceback.print_exc()
        else:
            print_info("Run with --debug for full traceback.")
        sys.exit(ExitCode.FATAL_ERROR)


__all__ = ["ConvoyContext", "LAZY_COMMANDS", "cli", "main", "pass_context"]
