"""Click group that imports subcommand modules on first use."""

from __future__ import annotations

import importlib
from typing import Any

import click


class LazyGroup(click.Group):
    """A Click group whose subcommands are imported only when invoked.

    ``convoy --help`` and ``convoy ls`` never pay for importing the server
    stack (FastAPI, uvicorn).
    """

    def __init__(
        self,
        *args: Any,
        lazy_subcommands: dict[str, tuple[str, str]] | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize lazy group.

        Args:
            lazy_subcommands: Command name -> (module path, attribute name),
                e.g. {'serve': ('convoy.commands.serve', 'serve')}
        """
        super().__init__(*args, **kwargs)
        self.lazy_subcommands = lazy_subcommands or {}

    def list_commands(self, ctx: click.Context) -> list[str]:
        return sorted({*super().list_commands(ctx), *self.lazy_subcommands})

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        if cmd_name in self.commands or cmd_name not in self.lazy_subcommands:
            return super().get_command(ctx, cmd_name)

        module_path, attr_name = self.lazy_subcommands[cmd_name]
        try:
            command: click.Command = getattr(importlib.import_module(module_path), attr_name)
        except (ImportError, AttributeError) as e:
            raise click.ClickException(f"Failed to load command '{cmd_name}': {e}") from None
        # Register so later lookups skip the import
        self.add_command(command, cmd_name)
        return command


__all__ = ["LazyGroup"]
