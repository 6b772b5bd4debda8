"""git-dispatch command-line interface."""

from __future__ import annotations

import typer
from typing_extensions import Annotated

from git_dispatch import __version__
from git_dispatch.cli.commands import register_commands
from git_dispatch.cli.helpers import console, setup_logging

app = typer.Typer(
    name="git-dispatch",
    help="Split a source branch into stacked task branches by Task-Id and keep them in sync.",
    no_args_is_help=True,
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"git-dispatch {__version__}")
        raise typer.Exit()


@app.callback()
def callback(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")] = False,
    version: Annotated[
        bool,
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show the version and exit"),
    ] = False,
) -> None:
    """Split a source branch into stacked task branches by Task-Id and keep them in sync."""
    setup_logging(verbose)


register_commands(app)

__all__ = ["app"]
