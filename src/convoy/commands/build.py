"""convoy build - write pipeline outputs to disk."""

from __future__ import annotations

import asyncio
import json
import os
import sys
import traceback
from pathlib import Path

import click

from convoy.cli import ConvoyContext, pass_context


@click.command("build")
@click.argument("outdir", type=click.Path(file_okay=False, path_type=Path))
@click.argument("paths", nargs=-1)
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@pass_context
def build(ctx: ConvoyContext, outdir: Path, paths: tuple[str, ...], as_json: bool) -> None:
    """Build targets into OUTDIR.

    Writes every configured target, or only the given PATHS.

    \b
    Examples:
        convoy build dist                 # Everything
        convoy build dist app.js          # One bundle
        convoy build dist assets/img      # Part of a copy rule
    """
    from convoy.errors import ConvoyError
    from convoy.logging import print_error, print_info, print_success

    try:
        pipeline = ctx.create_pipeline(watch=False)
    except ConvoyError as e:
        print_error(e.message)
        sys.exit(e.exit_code)

    result = asyncio.run(pipeline.write_all(outdir, list(paths) or None))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        if ctx.verbosity == "verbose":
            for written in sorted(result.written):
                print_info(f"  {os.path.relpath(written, outdir)}")
        for error in result.errors:
            print_error(error.message)
            if ctx.debug:
                traceback.print_exception(error)
        if result.success:
            print_success(f"Wrote {len(result.written)} file(s) to {outdir}")
        else:
            print_error(f"{len(result.errors)} target(s) failed")
            if not ctx.debug:
                print_info("Run with --debug for full tracebacks.")

    if not result.success:
        sys.exit(result.exit_code)


__all__ = ["build"]
