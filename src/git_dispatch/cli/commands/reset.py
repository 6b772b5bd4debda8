"""Reset command - remove a source's dispatch metadata (and optionally its branches)."""

from __future__ import annotations

from typing import Optional

import typer
from typing_extensions import Annotated

from git_dispatch.cli.helpers import console, current_branch, fail, open_context
from git_dispatch.core.errors import DispatchError
from git_dispatch.core.stack import detect_source, teardown


def reset(
    source: Annotated[Optional[str], typer.Argument(help="Source branch (auto-detected when omitted)")] = None,
    branches: Annotated[bool, typer.Option("--branches", help="Also delete the task branches")] = False,
    force: Annotated[bool, typer.Option("--force", "-f", help="Do not ask for confirmation")] = False,
) -> None:
    """Remove all dispatch links of SOURCE's task branches."""
    ctx, _ = open_context()
    current = current_branch(ctx)
    try:
        source = detect_source(ctx, source, current)
    except DispatchError as exc:
        fail(exc)

    linked = ctx.store.task_branches_of(source)
    if not linked:
        fail(f"No dispatch task branches found for {source}")
    if branches and current in linked:
        fail(f"Cannot delete {current} while it is checked out; switch branches first")

    if not force:
        what = "delete" if branches else "unlink"
        if not typer.confirm(f"This will {what} {len(linked)} task branch(es) of {source}. Continue?"):
            console.print("Aborted.")
            raise typer.Exit(1)

    try:
        result = teardown(ctx, source, delete_branches=branches)
    except DispatchError as exc:
        fail(exc)

    for branch in result.unlinked:
        state = "deleted" if branch in result.deleted else "unlinked"
        console.print(f"  {branch}: {state}")
    console.print(f"[green]Reset[/green] dispatch metadata for {source}")


__all__ = ["reset"]
