"""Restack command - rebase the remaining stack onto an updated base."""

from __future__ import annotations

from typing import Optional

import typer
from typing_extensions import Annotated

from git_dispatch.cli.helpers import console, current_branch, fail, open_context
from git_dispatch.core.errors import DispatchError
from git_dispatch.core.restack import restack as restack_stack
from git_dispatch.core.stack import detect_source, recover_base_and_prefix


def restack(
    source: Annotated[Optional[str], typer.Argument(help="Source branch (auto-detected when omitted)")] = None,
    onto: Annotated[
        Optional[str], typer.Option("--onto", help="Updated base (default: the stack's base branch)")
    ] = None,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Show what would be rebased")] = False,
) -> None:
    """Rebase task branches onto the updated base, skipping merged ones.

    Stops at the first conflict; branches rebased before it keep their new
    tips.
    """
    ctx, _ = open_context()
    try:
        source = detect_source(ctx, source, current_branch(ctx))
        if onto is None:
            recovered = recover_base_and_prefix(ctx, source)
            if recovered is None:
                fail(f"No dispatch stack found for {source}")
            onto = recovered[0]
        result = restack_stack(ctx, source, onto, dry_run=dry_run)
    except DispatchError as exc:
        fail(exc)

    prefix = "[yellow]\\[dry-run][/yellow] " if dry_run else ""
    for step in result.steps:
        if step.merged:
            console.print(f"{prefix}[dim]{step.branch}: already in {onto}, skipped[/dim]")
        elif step.branch in result.rebased:
            verb = "would rebase" if dry_run else "rebased"
            console.print(f"{prefix}{step.branch}: {verb} onto {step.onto}")

    if result.stopped_at is not None:
        console.print(f"[red]Error:[/red] {result.error}")
        console.print(f"Restack stopped at {result.stopped_at}; resolve it by hand and re-run restack.")
        raise typer.Exit(1)


__all__ = ["restack"]
