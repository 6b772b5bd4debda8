"""Command registration for the git-dispatch CLI."""

from __future__ import annotations

import typer

from git_dispatch.cli.commands import hook as hook_module
from git_dispatch.cli.commands.push import push
from git_dispatch.cli.commands.reset import reset
from git_dispatch.cli.commands.resolve import resolve
from git_dispatch.cli.commands.restack import restack
from git_dispatch.cli.commands.split import split
from git_dispatch.cli.commands.status import status
from git_dispatch.cli.commands.sync import sync
from git_dispatch.cli.commands.tree import tree


def register_commands(app: typer.Typer) -> None:
    """Attach all git-dispatch commands to the root Typer app."""
    app.command()(split)
    app.command()(sync)
    app.command()(status)
    app.command()(tree)
    app.command()(resolve)
    app.command()(restack)
    app.command()(push)
    app.command()(reset)
    app.add_typer(hook_module.app, name="hook")


__all__ = ["register_commands"]
