"""Split command - materialize a source branch into stacked task branches."""

from __future__ import annotations

from typing import Optional

import typer
from typing_extensions import Annotated

from git_dispatch.cli.commands.tree import render_tree
from git_dispatch.cli.helpers import console, fail, open_context
from git_dispatch.core.errors import DispatchError
from git_dispatch.core.stack import materialize_stack, recover_base_and_prefix


def split(
    source: Annotated[str, typer.Argument(help="Source branch to split")],
    name: Annotated[
        Optional[str], typer.Option("--name", "-n", help="Branch name prefix (<name>/<task-id>)")
    ] = None,
    base: Annotated[
        Optional[str], typer.Option("--base", "-b", help="Base branch the stack starts from")
    ] = None,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Show the plan without creating branches")] = False,
) -> None:
    """Split SOURCE into one branch per Task-Id, stacked in task order.

    Running split again on the same source reuses the existing branches and
    only creates branches for new tasks.

    Examples:
        git dispatch split source/feature --name feat --base master

        git dispatch split source/feature --name feat --dry-run
    """
    ctx, config = open_context()

    try:
        existing = recover_base_and_prefix(ctx, source)
        if existing is None:
            if name is None:
                fail("Missing --name (branch prefix) for the first split")
            base = base or config.resolved_base(ctx.vcs.repo_root)
        result = materialize_stack(ctx, source, base=base, prefix=name, dry_run=dry_run)
    except DispatchError as exc:
        fail(exc)

    console.print(f"[cyan]Source:[/cyan] {result.source}")
    console.print(f"[cyan]Base:[/cyan]   {result.base}")
    console.print(f"[cyan]Tasks:[/cyan]  {' '.join(p.task_id for p in result.plan)}")
    console.print()

    for entry in result.plan:
        if dry_run:
            state = "exists" if entry.exists else f"{len(entry.commits)} commits from {entry.parent}"
            console.print(f"  [yellow]\\[dry-run][/yellow] {entry.branch}  ({state})")
        elif entry.branch in result.created:
            console.print(f"  [green]Created[/green] {entry.branch} ({len(entry.commits)} commits)")
        else:
            console.print(f"  [dim]Kept[/dim] {entry.branch}")

    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")
    if result.needs_restack:
        console.print(
            f"[yellow]Warning:[/yellow] {', '.join(result.spliced)} inserted mid-stack; "
            f"run [bold]git dispatch restack {source}[/bold] to move the branches above"
        )

    if not dry_run:
        console.print()
        console.print(render_tree(ctx, result.base))


__all__ = ["split"]
