"""
Root Typer application for the omnimap CLI.
"""

from __future__ import annotations

import sys

import typer
from typer import Typer

from omnimap import __version__
from omnimap.cli import components
from omnimap.cli.cache import app as cache_app
from omnimap.cli.serve import serve
from omnimap.core.logging import configure_logging

app = Typer(
    name="omnimap",
    help="omnimap: resolve and cache component hierarchies per tenant.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"omnimap {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging on stderr"),
) -> None:
    """omnimap CLI: load, search and inspect component hierarchies."""
    # stdout is reserved for command output
    configure_logging(
        level="DEBUG" if verbose else "WARNING",
        json_format=False,
        service="omnimap-cli",
        stream=sys.stderr,
        cache_loggers=False,
    )


app.command("load")(components.load)
app.command("search")(components.search)
app.command("show")(components.show)
app.command("hierarchy")(components.hierarchy)
app.command("serve")(serve)
app.add_typer(cache_app, name="cache", help="Cache tier management.")


if __name__ == "__main__":
    app()
