"""Collapse a task branch's merge commit into a resolution commit plus a re-merge.

When a task branch merges another line of work (its parent, the base) and
the merge changes files the task owns, that change lives only inside the
merge commit, where patch-identity comparison cannot see it. Resolving turns::

    ... -> A -> M(A, X)

into::

    ... -> A -> R -> M'(R, X)

where ``R`` is an ordinary commit carrying the task's Task-Id and holding
the merge's content for the owned paths, and ``M'`` re-merges ``X`` keeping
``R``'s side on conflict. The merge's second parent is the only one
re-merged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from git_dispatch.core.errors import (
    AlreadyPublished,
    DispatchError,
    NotAMergeCommit,
    NotATaskBranch,
)
from git_dispatch.core.vcs.types import TASK_ID_KEY, Commit, MergePolicy

if TYPE_CHECKING:
    from git_dispatch.core.stack import DispatchContext

logger = logging.getLogger(__name__)


@dataclass
class ResolveResult:
    """Outcome of resolving a task branch's merge.

    Attributes:
        branch: Task branch
        merge: The merge commit that was examined
        clean: True when the merge left the task's paths alone (no rewrite)
        paths: Owned paths whose content the merge changed
        resolution: The new resolution commit, when one was made
        new_merge: The recreated merge, when one was made
    """

    branch: str
    merge: str
    clean: bool = True
    paths: list[str] = field(default_factory=list)
    resolution: str | None = None
    new_merge: str | None = None

    @property
    def tip(self) -> str:
        return self.new_merge or self.merge


def owned_paths(ctx: DispatchContext, branch: str, merge: Commit) -> list[str]:
    """Paths touched by the task's commits between its stack parent and the merge."""
    parent = ctx.topology.parent_of(branch)
    lower = ctx.vcs.resolve_ref(parent) if parent else None
    if lower is None:
        return []
    return ctx.vcs.touched_paths(lower, merge.parents[0])


def merge_changed_paths(ctx: DispatchContext, branch: str, merge: Commit) -> list[str]:
    """Owned paths whose content differs between the merge and its first parent."""
    return ctx.vcs.changed_paths(merge.parents[0], merge.sha, owned_paths(ctx, branch, merge))


def unresolved_merges(ctx: DispatchContext, branch: str) -> list[Commit]:
    """Merges on ``branch`` (above its stack parent) that changed owned paths."""
    parent = ctx.topology.parent_of(branch)
    lower = ctx.vcs.resolve_ref(parent) if parent else None
    if lower is None:
        return []
    return [m for m in ctx.vcs.merges_between(lower, branch) if merge_changed_paths(ctx, branch, m)]


def _resolution_message(task_id: str, merge: Commit) -> str:
    return f"Resolve merge conflicts for task {task_id}\n\nResolves {merge.short} ({merge.subject})\n\n{TASK_ID_KEY}: {task_id}\n"


def resolve(ctx: DispatchContext, branch: str) -> ResolveResult:
    """Rewrite the merge at the tip of ``branch`` into resolution + re-merge.

    Raises:
        NotATaskBranch: ``branch`` has no source link
        NotAMergeCommit: the tip is not a merge
        AlreadyPublished: the tip is reachable from a remote-tracking branch
        ConflictError: the re-merge failed; the branch is back at the
            original merge
    """
    vcs = ctx.vcs
    if not ctx.store.source_of(branch):
        raise NotATaskBranch(branch)
    tip = vcs.require_ref(branch)
    (merge,) = vcs.load_commits([tip])
    if not merge.is_merge:
        raise NotAMergeCommit(branch, tip)
    remotes = vcs.remote_branches_containing(tip)
    if remotes:
        raise AlreadyPublished(branch, tip, remotes)

    result = ResolveResult(branch=branch, merge=tip)
    result.paths = merge_changed_paths(ctx, branch, merge)
    if not result.paths:
        logger.info("Merge %s on %s left the task's files alone", merge.short, branch)
        return result

    task_id = ctx.store.task_id_of(branch)
    first_parent, other = merge.parents[0], merge.parents[1]
    message = vcs.commit_info(tip).message
    present = [p for p in result.paths if vcs.path_exists(tip, p)]
    removed = [p for p in result.paths if p not in present]

    with vcs.on_branch(branch) as cwd:
        try:
            vcs.git("reset", "--quiet", "--hard", first_parent, cwd=cwd)
            if present:
                vcs.git("checkout", tip, "--", *present, cwd=cwd)
            if removed:
                vcs.git("rm", "--quiet", "--ignore-unmatch", "--", *removed, cwd=cwd)
            vcs.git("commit", "--quiet", "--no-verify", "-m", _resolution_message(task_id, merge), cwd=cwd)
            result.resolution = vcs.head(cwd)

            result.new_merge = vcs.merge_here(cwd, branch, other, MergePolicy.KEEP_MINE, message)
        except DispatchError:
            vcs.git("reset", "--quiet", "--hard", tip, cwd=cwd)
            raise

    result.clean = False
    logger.info(
        "Resolved %s on %s: %d path(s) moved into %s",
        merge.short,
        branch,
        len(result.paths),
        result.resolution[:12],
    )
    return result


__all__ = [
    "ResolveResult",
    "merge_changed_paths",
    "owned_paths",
    "resolve",
    "unresolved_merges",
]
