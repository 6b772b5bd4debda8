"""Status command - pending commits per task branch."""

from __future__ import annotations

from typing import Optional

import typer
from typing_extensions import Annotated

from git_dispatch.cli.helpers import console, current_branch, fail, open_context
from git_dispatch.core.errors import DispatchError
from git_dispatch.core.stack import detect_source
from git_dispatch.core.sync import TaskStatus, status_all


def _describe(status: TaskStatus) -> str:
    if status.in_sync:
        text = "[green]in sync[/green]"
    else:
        parts = []
        if status.pending_forward:
            parts.append(f"{status.pending_forward} pending source -> task")
        if status.pending_backward:
            parts.append(f"{status.pending_backward} pending task -> source")
        text = "[yellow]" + ", ".join(parts) + "[/yellow]"
    return text


def status(
    source: Annotated[Optional[str], typer.Argument(help="Source branch (auto-detected when omitted)")] = None,
) -> None:
    """Show, per task branch, how many commits each sync direction would move."""
    ctx, _ = open_context()
    try:
        source = detect_source(ctx, source, current_branch(ctx))
        statuses = status_all(ctx, source)
    except DispatchError as exc:
        fail(exc)

    if not statuses:
        fail(f"No dispatch task branches found for {source}")

    console.print(f"[cyan]Source:[/cyan] {source}")
    console.print()
    for item in statuses:
        console.print(f"{item.branch}  {_describe(item)}", soft_wrap=True)
        if item.merge_commits:
            detail = f", {item.unresolved_merges} touching task files" if item.unresolved_merges else ""
            console.print(
                f"  [yellow]Warning:[/yellow] {item.merge_commits} merge commit(s){detail}; "
                "run git dispatch resolve on the branch to turn merge changes into a task commit",
                soft_wrap=True,
            )


__all__ = ["status"]
