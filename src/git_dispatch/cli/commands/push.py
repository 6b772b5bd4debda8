"""Push command - publish task branches to the remote in stack order."""

from __future__ import annotations

from typing import Optional

import typer
from typing_extensions import Annotated

from git_dispatch.cli.helpers import console, current_branch, fail, open_context
from git_dispatch.core.errors import DispatchError, NotInStack
from git_dispatch.core.stack import detect_source, stack_branches


def push(
    source: Annotated[Optional[str], typer.Argument(help="Source branch (auto-detected when omitted)")] = None,
    branch: Annotated[Optional[str], typer.Option("--branch", help="Push only this task branch")] = None,
    remote: Annotated[Optional[str], typer.Option("--remote", help="Remote to push to")] = None,
    force: Annotated[bool, typer.Option("--force", help="Push with --force-with-lease")] = False,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Print the push commands only")] = False,
) -> None:
    """Push every task branch (or one with --branch) with upstream tracking."""
    ctx, config = open_context()
    remote = remote or config.remote
    try:
        source = detect_source(ctx, source, current_branch(ctx))
        targets = stack_branches(ctx, source)
        if branch is not None:
            if branch not in targets:
                raise NotInStack(branch, source)
            targets = [branch]
    except DispatchError as exc:
        fail(exc)

    if not targets:
        fail(f"No dispatch task branches found for {source}")

    for target in targets:
        command = f"git push -u {remote}{' --force-with-lease' if force else ''} {target}"
        if dry_run:
            console.print(f"[yellow]\\[dry-run][/yellow] {command}", soft_wrap=True)
            continue
        try:
            ctx.vcs.push(target, remote, force=force)
        except DispatchError as exc:
            fail(exc)
        console.print(f"[green]Pushed[/green] {target}")


__all__ = ["push"]
