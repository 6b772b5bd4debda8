"""Tree command - show the stack links below a branch."""

from __future__ import annotations

from typing import Optional

import typer
from rich.tree import Tree
from typing_extensions import Annotated

from git_dispatch.cli.helpers import console, current_branch, fail, open_context
from git_dispatch.core.stack import DispatchContext, recover_base_and_prefix


def render_tree(ctx: DispatchContext, root: str) -> Tree:
    """Build a rich Tree of the stack links starting at ``root``."""
    tree = Tree(f"[bold]{root}[/bold]")
    nodes = {root: tree}
    for depth, branch in ctx.topology.walk(root):
        if depth == 0:
            continue
        parent = ctx.topology.parent_of(branch)
        label = branch
        source = ctx.store.source_of(branch)
        if source:
            label += f" [dim]({ctx.store.task_id_of(branch)})[/dim]"
        nodes[branch] = nodes.get(parent, tree).add(label)
    return tree


def tree(
    branch: Annotated[
        Optional[str], typer.Argument(help="Branch to start from (default: root of the current stack)")
    ] = None,
) -> None:
    """Show the dispatch stack as a tree."""
    ctx, _ = open_context()
    root = branch
    if root is None:
        current = current_branch(ctx)
        if current is None:
            fail("Detached HEAD; pass the branch to start from")
        recovered = recover_base_and_prefix(ctx, current) if current in ctx.store.all_sources() else None
        root = recovered[0] if recovered else ctx.topology.root_of(current)
    console.print(render_tree(ctx, root))


__all__ = ["render_tree", "tree"]
