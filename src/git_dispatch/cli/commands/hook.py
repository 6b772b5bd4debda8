"""Hook commands - install the git hooks and run their logic."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from git_dispatch.cli.helpers import console, current_branch, err_console, fail, open_context
from git_dispatch.core.errors import DispatchError
from git_dispatch.core.hooks import check_commit_message, install_hooks, post_merge_reminder

app = typer.Typer(
    name="hook",
    help="Install and run the git-dispatch git hooks",
    no_args_is_help=True,
)


@app.command(name="install")
def install(
    force: Annotated[bool, typer.Option("--force", help="Replace hooks not written by git-dispatch")] = False,
) -> None:
    """Install the commit-msg and post-merge hooks (honours core.hooksPath)."""
    ctx, _ = open_context()
    try:
        result = install_hooks(ctx.vcs, force=force)
    except (DispatchError, OSError) as exc:
        fail(exc)
    for path in result.installed:
        console.print(f"[green]Installed[/green] {path}")
    for path in result.skipped:
        console.print(f"[yellow]Warning:[/yellow] kept existing {path} (use --force to replace)")


@app.command(name="run", hidden=True)
def run(
    name: Annotated[str, typer.Argument(help="Hook name")],
    args: Annotated[Optional[list[str]], typer.Argument(help="Arguments git passed to the hook")] = None,
) -> None:
    """Entry point used by the installed hook scripts."""
    ctx, config = open_context()
    args = args or []

    if name == "commit-msg":
        if not args:
            fail("commit-msg hook needs the message file")
        try:
            outcome = check_commit_message(ctx.vcs, Path(args[0]), config)
        except DispatchError as exc:
            fail(exc)
        if not outcome.accepted:
            err_console.print(f"[red]Error:[/red] {outcome.message}")
            raise typer.Exit(1)
        return

    if name == "post-merge":
        reminder = post_merge_reminder(ctx, current_branch(ctx))
        if reminder:
            err_console.print(f"[yellow]git-dispatch:[/yellow] {reminder}")
        return

    fail(f"Unknown hook '{name}'")


__all__ = ["app"]
