"""Bidirectional sync between a source branch and its task branches.

Both directions compare by patch-identity (``git cherry``), never by hash,
so a change that already travelled one way is not sent back:

- source -> task: source commits with the task's Task-Id that the task
  branch has no equivalent for;
- task -> source: the task branch's own commits (above its stack parent)
  that the source has no equivalent for. Commits missing the Task-Id
  trailer are backfilled on the task branch first so the copy on the
  source carries it.

Each direction is replayed all-or-nothing. A failure stops that task
branch, the other task branches are still attempted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from git_dispatch.core import trailers
from git_dispatch.core.errors import DispatchError
from git_dispatch.core.resolve import unresolved_merges
from git_dispatch.core.stack import DispatchContext, stack_branches
from git_dispatch.core.vcs.types import TASK_ID_KEY, Commit

logger = logging.getLogger(__name__)


# ============================================================================
# Data Classes
# ============================================================================


@dataclass
class SyncResult:
    """Outcome of syncing one task branch.

    Attributes:
        branch: Task branch
        task_id: Task-Id the branch carries
        to_task: Commits replayed from the source onto the task branch
        to_source: Commits replayed from the task branch onto the source
        backfilled: Task branch commits that got a Task-Id trailer
        warnings: Skipped empty replays and foreign Task-Ids
        error: The failure that stopped this branch, if any
    """

    branch: str
    task_id: str
    to_task: int = 0
    to_source: int = 0
    backfilled: int = 0
    warnings: list[str] = field(default_factory=list)
    error: DispatchError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def up_to_date(self) -> bool:
        return self.ok and not (self.to_task or self.to_source or self.backfilled)


@dataclass
class TaskStatus:
    """Pending work for one task branch."""

    branch: str
    task_id: str
    pending_forward: int = 0
    pending_backward: int = 0
    merge_commits: int = 0
    unresolved_merges: int = 0

    @property
    def in_sync(self) -> bool:
        return self.pending_forward == 0 and self.pending_backward == 0


# ============================================================================
# Pending commits
# ============================================================================


def pending_to_task(ctx: DispatchContext, source: str, branch: str) -> list[Commit]:
    """Source commits for ``branch``'s task not yet on ``branch``, oldest first."""
    task_id = ctx.store.task_id_of(branch)
    return [
        entry.commit
        for entry in ctx.vcs.cherry(branch, source)
        if not entry.equivalent and entry.commit.task_id == task_id
    ]


def _merged_in(ctx: DispatchContext, lower: str | None, branch: str) -> list[str]:
    """Second parents of the merges between ``lower`` and ``branch``."""
    if lower is None:
        return []
    return [p for merge in ctx.vcs.merges_between(lower, branch) for p in merge.parents[1:]]


def pending_to_source(ctx: DispatchContext, source: str, branch: str) -> list[Commit]:
    """``branch``'s own commits the source has no equivalent for, oldest first.

    Only commits above the stack parent count, and commits brought in by a
    merge (say, of the base branch) are not the task's own work.
    """
    parent = ctx.topology.parent_of(branch)
    limit = ctx.vcs.resolve_ref(parent) if parent else None
    foreign = _merged_in(ctx, limit, branch)
    pending: list[Commit] = []
    for entry in ctx.vcs.cherry(source, branch, limit):
        if entry.equivalent:
            continue
        if any(ctx.vcs.is_ancestor(entry.commit.sha, f) for f in foreign):
            continue
        pending.append(entry.commit)
    return pending


# ============================================================================
# Sync
# ============================================================================


def _to_task(ctx: DispatchContext, source: str, branch: str, result: SyncResult) -> None:
    commits = pending_to_task(ctx, source, branch)
    if not commits:
        return
    replayed = ctx.vcs.replay([c.sha for c in commits], branch)
    result.to_task = replayed.count
    result.warnings.extend(str(s) for s in replayed.skipped)


def _to_source(ctx: DispatchContext, source: str, branch: str, result: SyncResult) -> None:
    commits = pending_to_source(ctx, source, branch)
    if not commits:
        return

    missing = [c.sha for c in commits if not c.task_id]
    for commit in commits:
        if commit.task_id and commit.task_id != result.task_id:
            message = f"Commit {commit.short} on {branch} carries Task-Id {commit.task_id}, not {result.task_id}"
            logger.warning(message)
            result.warnings.append(message)

    if missing:
        backfill = trailers.backfill(ctx.vcs, branch, missing, TASK_ID_KEY, result.task_id)
        result.backfilled = len(missing)
        # commit identities changed; look the range up again
        if backfill.changed:
            commits = pending_to_source(ctx, source, branch)

    replayed = ctx.vcs.replay([c.sha for c in commits], source)
    result.to_source = replayed.count
    result.warnings.extend(str(s) for s in replayed.skipped)


def sync_one(ctx: DispatchContext, source: str, branch: str) -> SyncResult:
    """Sync ``branch`` with ``source``: source -> task first, then task -> source.

    Failures are recorded in the result rather than raised; the branch that
    failed is back in its pre-attempt state.
    """
    ctx.vcs.require_ref(source)
    ctx.vcs.require_ref(branch)
    result = SyncResult(branch=branch, task_id=ctx.store.task_id_of(branch))
    try:
        _to_task(ctx, source, branch, result)
        _to_source(ctx, source, branch, result)
    except DispatchError as exc:
        logger.error("Sync of %s stopped: %s", branch, exc)
        result.error = exc
    return result


def sync_all(ctx: DispatchContext, source: str) -> list[SyncResult]:
    """Sync every task branch of ``source`` in stack order."""
    return [sync_one(ctx, source, branch) for branch in stack_branches(ctx, source)]


# ============================================================================
# Status
# ============================================================================


def status_one(ctx: DispatchContext, source: str, branch: str) -> TaskStatus:
    """Pending commits per direction plus merge commits above the stack parent.

    ``unresolved_merges`` counts the merges that changed the task's own files;
    those are the ones ``resolve`` would rewrite.
    """
    parent = ctx.topology.parent_of(branch)
    lower = ctx.vcs.resolve_ref(parent) if parent else None
    merges = ctx.vcs.merges_between(lower, branch) if lower else []
    return TaskStatus(
        branch=branch,
        task_id=ctx.store.task_id_of(branch),
        pending_forward=len(pending_to_task(ctx, source, branch)),
        pending_backward=len(pending_to_source(ctx, source, branch)),
        merge_commits=len(merges),
        unresolved_merges=len(unresolved_merges(ctx, branch)),
    )


def status_all(ctx: DispatchContext, source: str) -> list[TaskStatus]:
    return [status_one(ctx, source, branch) for branch in stack_branches(ctx, source)]


__all__ = [
    "SyncResult",
    "TaskStatus",
    "pending_to_source",
    "pending_to_task",
    "status_all",
    "status_one",
    "sync_all",
    "sync_one",
]
