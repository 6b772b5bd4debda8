"""Resolve command - turn a task branch's merge into a task commit plus re-merge."""

from __future__ import annotations

from typing import Optional

import typer
from typing_extensions import Annotated

from git_dispatch.cli.helpers import console, current_branch, fail, open_context
from git_dispatch.core.errors import DispatchError, NotATaskBranch
from git_dispatch.core.resolve import resolve as resolve_merge


def resolve(
    branch: Annotated[
        Optional[str], typer.Argument(help="Task branch whose tip is a merge (default: current branch)")
    ] = None,
) -> None:
    """Extract the task's changes from a merge into a regular commit.

    The merge at the tip of the task branch is replaced by a commit that
    carries the task's Task-Id and holds the merge's changes to the task's
    files, followed by a conflict-free re-merge.
    """
    ctx, _ = open_context()
    try:
        target = branch or current_branch(ctx)
        if target is None:
            raise NotATaskBranch(None)
        result = resolve_merge(ctx, target)
    except DispatchError as exc:
        fail(exc)

    if result.clean:
        console.print(f"Merge {result.merge[:12]} on {target} does not touch task files; kept as-is")
        return
    console.print(f"[green]Resolved[/green] {target}: {len(result.paths)} file(s) moved into {result.resolution[:12]}")
    for path in result.paths:
        console.print(f"  {path}")
    console.print(f"Re-merged as {result.new_merge[:12]}")


__all__ = ["resolve"]
