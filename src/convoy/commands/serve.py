"""convoy serve - development HTTP server."""

from __future__ import annotations

import sys

import click

from convoy.cli import ConvoyContext, pass_context


@click.command("serve")
@click.option("--host", type=str, default=None, help="Bind address (default: 127.0.0.1)")
@click.option("--port", "-p", type=int, default=None, help="HTTP port (default: 4020)")
@click.option("--watch/--no-watch", default=None, help="Rebuild when source files change")
@click.option(
    "--max-age", type=str, default=None, help="Cache-Control max-age in seconds, or 'infinity'"
)
@click.option("--hidden", is_flag=True, default=None, help="Serve dotfiles")
@pass_context
def serve(
    ctx: ConvoyContext,
    host: str | None,
    port: int | None,
    watch: bool | None,
    max_age: str | None,
    hidden: bool | None,
) -> None:
    """Serve pipeline outputs over HTTP.

    Options override the [server] section of convoy.toml.

    \b
    Examples:
        convoy serve                      # http://127.0.0.1:4020
        convoy serve -p 8000 --no-watch
        convoy serve --max-age infinity
    """
    import uvicorn
    from pydantic import ValidationError

    from convoy.config import ServerConfig
    from convoy.errors import ConvoyError
    from convoy.logging import print_error, print_info
    from convoy.server import create_app

    try:
        settings = ctx.settings
        overrides = {
            "host": host,
            "port": port,
            "watch": watch,
            "max_age": max_age,
            "hidden": hidden,
        }
        server = ServerConfig(
            **{
                **settings.server.model_dump(),
                **{key: value for key, value in overrides.items() if value is not None},
            }
        )
        pipeline = ctx.create_pipeline(watch=server.watch)
    except ValidationError as e:
        raise click.BadParameter(str(e)) from None
    except ConvoyError as e:
        print_error(e.message)
        sys.exit(e.exit_code)

    app = create_app(pipeline, max_age=server.max_age_seconds, hidden=server.hidden)
    print_info(f"Serving {len(pipeline.targets)} target(s) on http://{server.host}:{server.port}")
    uvicorn.run(app, host=server.host, port=server.port, log_level="warning")


__all__ = ["serve"]
