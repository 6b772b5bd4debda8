"""Sync command - move commits between the source and its task branches."""

from __future__ import annotations

from typing import Optional

import typer
from typing_extensions import Annotated

from git_dispatch.cli.helpers import console, current_branch, fail, open_context
from git_dispatch.core.errors import DispatchError, NotInStack
from git_dispatch.core.stack import detect_source, stack_branches
from git_dispatch.core.sync import SyncResult, sync_one


def _print_result(result: SyncResult) -> None:
    if result.to_task:
        console.print(f"  [green]source -> task:[/green] {result.to_task} commit(s)")
    if result.backfilled:
        console.print(f"  [green]Added Task-Id[/green] to {result.backfilled} commit(s)")
    if result.to_source:
        console.print(f"  [green]task -> source:[/green] {result.to_source} commit(s)")
    for warning in result.warnings:
        console.print(f"  [yellow]Warning:[/yellow] {warning}")
    if result.error is not None:
        console.print(f"  [red]Error:[/red] {result.error}")
    elif result.up_to_date:
        console.print("  up to date")


def sync(
    source: Annotated[Optional[str], typer.Argument(help="Source branch (auto-detected when omitted)")] = None,
    branch: Annotated[Optional[str], typer.Argument(help="Only sync this task branch")] = None,
) -> None:
    """Sync the source with its task branches, in stack order.

    Source commits for a task are replayed onto the task branch, then the
    task branch's own new commits are replayed onto the source (a missing
    Task-Id trailer is added first).
    """
    ctx, _ = open_context()
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

    console.print(f"[cyan]Source:[/cyan] {source}")
    console.print()

    failed = []
    for target in targets:
        console.print(f"[cyan]Syncing:[/cyan] {target}")
        result = sync_one(ctx, source, target)
        _print_result(result)
        if not result.ok:
            failed.append(target)
        console.print()

    if failed:
        console.print(f"[red]Error:[/red] sync failed for {', '.join(failed)}")
        raise typer.Exit(1)


__all__ = ["sync"]
