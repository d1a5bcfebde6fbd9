"""convoy ls - list generatable output paths."""

from __future__ import annotations

import asyncio
import sys

import click

from convoy.cli import ConvoyContext, pass_context


@click.command("ls")
@pass_context
def ls(ctx: ConvoyContext) -> None:
    """List every path the pipeline can generate."""
    from rich.table import Table

    from convoy.copier import AssetCopier
    from convoy.errors import ConvoyError
    from convoy.logging import console, print_error, print_info

    try:
        pipeline = ctx.create_pipeline(watch=False)
    except ConvoyError as e:
        print_error(e.message)
        sys.exit(e.exit_code)

    async def collect() -> list[tuple[str, str, str]]:
        rows = []
        for target in pipeline.targets:
            if isinstance(target, AssetCopier):
                kind, source = "copy", target.root
            else:
                kind, source = target.config.type, ", ".join(target.config.main)
            for path in await target.find_paths():
                rows.append((path, kind, source))
        return rows

    rows = asyncio.run(collect())
    if not rows:
        print_info("No targets configured")
        return

    table = Table(title="Outputs")
    table.add_column("Path", style="cyan", no_wrap=True)
    table.add_column("Type")
    table.add_column("Source", style="dim")
    for row in rows:
        table.add_row(*row)
    console.print(table)


__all__ = ["ls"]
