"""Stack materialization (split / re-split), source detection and teardown.

A source branch is split into one branch per Task-Id, named
``<prefix>/<task-id>`` with the id used verbatim, each stacked on the
previous one::

    base -> prefix/3 -> prefix/4 -> prefix/5

Splitting again after new tasks appeared on the source is idempotent for
the existing branches: they are reused untouched (``sync`` moves their
commits), and only the new tasks get branches. A new task whose position
lands in the middle of the chain is spliced in; its descendants then need
a restack.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from git_dispatch.core.errors import (
    BaseOrPrefixMismatch,
    BranchExists,
    ConflictError,
    DispatchError,
    InvalidBranchName,
    NoCommitsError,
    SourceNotFound,
)
from git_dispatch.core.metadata import MetadataStore
from git_dispatch.core.partition import Partition, partition
from git_dispatch.core.topology import StackTopology
from git_dispatch.core.vcs.git import GitVCS

logger = logging.getLogger(__name__)


# ============================================================================
# Context
# ============================================================================


@dataclass
class DispatchContext:
    """Collaborators shared by every engine for one command invocation.

    Attributes:
        vcs: Version-control collaborator
        store: Branch-scoped metadata store
        topology: Stack links, loaded once per invocation
    """

    vcs: GitVCS
    store: MetadataStore
    topology: StackTopology

    @classmethod
    def open(cls, repo_root: Path) -> DispatchContext:
        vcs = GitVCS(repo_root)
        store = MetadataStore(vcs)
        return cls(vcs=vcs, store=store, topology=StackTopology.load(store))


# ============================================================================
# Data Classes
# ============================================================================


@dataclass
class PlannedBranch:
    """One task branch of a split plan."""

    branch: str
    task_id: str
    parent: str
    commits: list[str] = field(default_factory=list)
    order: str | None = None
    exists: bool = False
    before_child: str | None = None
    mid_stack: bool = False


@dataclass
class SplitResult:
    """Outcome of materializing (or re-materializing) a stack.

    ``spliced`` branches were inserted mid-stack; the branches stacked on top
    of them need ``restack`` before they contain the new task's commits.
    """

    source: str
    base: str
    prefix: str
    plan: list[PlannedBranch] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    reused: list[str] = field(default_factory=list)
    spliced: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def branches(self) -> list[str]:
        return [p.branch for p in self.plan]

    @property
    def needs_restack(self) -> bool:
        return bool(self.spliced)


@dataclass
class TeardownResult:
    source: str
    unlinked: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)


# ============================================================================
# Helpers
# ============================================================================


def task_branch_name(prefix: str, task_id: str) -> str:
    return f"{prefix}/{task_id}"


def prefix_of(branch: str, task_id: str) -> str:
    """Recover the name prefix from an existing task branch."""
    suffix = f"/{task_id}"
    if branch.endswith(suffix):
        return branch[: -len(suffix)]
    return branch.rsplit("/", 1)[0] if "/" in branch else branch


def partition_and_order(vcs: GitVCS, base: str, source_tip: str) -> Partition:
    """Partition ``base..source_tip`` by Task-Id, merges excluded.

    Raises:
        NoCommitsError: the range is empty
        MissingTaskId, DuplicateOrder, InvalidTaskOrder: invalid trailers
    """
    commits = vcs.commits_between(base, source_tip, no_merges=True)
    if not commits:
        raise NoCommitsError(base, source_tip)
    return partition(commits)


def stack_branches(ctx: DispatchContext, source: str) -> list[str]:
    """Existing task branches of ``source``, root to tip."""
    linked = ctx.store.task_branches_of(source)
    present = [b for b in linked if ctx.vcs.branch_exists(b)]
    missing = [b for b in linked if b not in present]
    if missing:
        logger.warning("Task branches of %s no longer exist: %s", source, ", ".join(missing))
    return ctx.topology.ordered_descendants(present)


def recover_base_and_prefix(ctx: DispatchContext, source: str) -> tuple[str, str] | None:
    """Base and name prefix of an existing stack, or None when there is none."""
    branches = stack_branches(ctx, source)
    if not branches:
        return None
    root = branches[0]
    base = ctx.topology.parent_of(root)
    if base is None:
        return None
    return base, prefix_of(root, ctx.store.task_id_of(root))


def detect_source(ctx: DispatchContext, explicit: str | None, current_branch: str | None) -> str:
    """Pick the source branch for a command.

    Explicit argument first, then the current branch when it is a source,
    then the current branch's source link.

    Raises:
        SourceNotFound: none of the above applies
    """
    if explicit:
        return explicit
    if current_branch:
        if current_branch in ctx.store.all_sources():
            return current_branch
        linked = ctx.store.source_of(current_branch)
        if linked:
            return linked
    raise SourceNotFound(current_branch)


# ============================================================================
# Materialize
# ============================================================================


def _plan(ctx: DispatchContext, parts: Partition, base: str, prefix: str, existing: list[str]) -> list[PlannedBranch]:
    by_task = {ctx.store.task_id_of(b): b for b in existing}

    plan: list[PlannedBranch] = []
    parent = base
    for task in parts.tasks:
        branch = by_task.get(task.task_id) or task_branch_name(prefix, task.task_id)
        plan.append(
            PlannedBranch(
                branch=branch,
                task_id=task.task_id,
                parent=parent,
                commits=task.shas,
                order=task.order_raw,
                exists=branch in existing,
            )
        )
        parent = branch

    # A new branch directly followed by an existing one takes over that
    # branch's parent link; any new branch with existing ones above it is
    # mid-stack.
    for index, entry in enumerate(plan):
        if entry.exists:
            continue
        following = plan[index + 1 :]
        if following and following[0].exists:
            entry.before_child = following[0].branch
        entry.mid_stack = any(e.exists for e in following)
    return plan


def materialize_stack(
    ctx: DispatchContext,
    source: str,
    *,
    base: str | None = None,
    prefix: str | None = None,
    dry_run: bool = False,
) -> SplitResult:
    """Create (or extend) the task-branch stack for ``source``.

    Raises:
        BaseOrPrefixMismatch: a re-split names a different base or prefix
        BranchExists: a target branch exists but is not part of this stack
        InvalidBranchName: a Task-Id does not make a valid branch name
        ConflictError: a task's commits do not apply on its parent; branches
            created before the failing one are kept and linked, except a
            mid-stack insertion left incomplete, which is removed
    """
    vcs, store, topology = ctx.vcs, ctx.store, ctx.topology
    source_tip = vcs.require_ref(source)

    existing = stack_branches(ctx, source)
    recovered = recover_base_and_prefix(ctx, source)
    if recovered is not None:
        old_base, old_prefix = recovered
        if base is not None and base != old_base:
            raise BaseOrPrefixMismatch("base", old_base, base)
        if prefix is not None and prefix != old_prefix:
            raise BaseOrPrefixMismatch("name", old_prefix, prefix)
        base, prefix = old_base, old_prefix
        logger.info("Re-splitting %s (base %s, prefix %s)", source, base, prefix)
    if base is None or prefix is None:
        raise DispatchError("A base branch and a name prefix are required for the first split")
    vcs.require_ref(base)

    parts = partition_and_order(vcs, base, source_tip)
    result = SplitResult(source=source, base=base, prefix=prefix, dry_run=dry_run)
    result.plan = _plan(ctx, parts, base, prefix, existing)

    for entry in result.plan:
        if entry.exists:
            continue
        if not vcs.is_valid_branch_name(entry.branch):
            raise InvalidBranchName(entry.task_id, entry.branch)
        if vcs.branch_exists(entry.branch):
            raise BranchExists(entry.branch)
        if existing and entry.order is None:
            message = (
                f"New task {entry.task_id} has no Task-Order; "
                f"it is placed after {entry.parent}"
            )
            logger.warning(message)
            result.warnings.append(message)

    if dry_run:
        return result

    def link(entry: PlannedBranch, count: int) -> None:
        topology.splice(entry.branch, entry.parent, entry.before_child)
        if entry.mid_stack:
            result.spliced.append(entry.branch)
            logger.warning("%s was inserted mid-stack; run restack to move the branches above it", entry.branch)
        store.set_source(entry.branch, source)
        store.set_task_id(entry.branch, entry.task_id)
        result.created.append(entry.branch)
        logger.info("Created %s (%d commit(s)) on %s", entry.branch, count, entry.parent)

    # New branches inserted mid-stack are linked only once the whole run up
    # to the next existing branch has replayed.
    pending: list[tuple[PlannedBranch, int]] = []
    for entry in result.plan:
        if entry.exists:
            result.reused.append(entry.branch)
            continue

        vcs.create_branch(entry.branch, vcs.require_ref(entry.parent))
        try:
            replayed = vcs.replay(entry.commits, entry.branch)
        except ConflictError:
            vcs.delete_branch(entry.branch, force=True)
            for created, _ in pending:
                vcs.delete_branch(created.branch, force=True)
            raise
        for skipped in replayed.skipped:
            result.warnings.append(str(skipped))

        if not entry.mid_stack:
            link(entry, replayed.count)
            continue
        pending.append((entry, replayed.count))
        if entry.before_child is not None:
            for created, count in pending:
                link(created, count)
            pending.clear()

    return result


# ============================================================================
# Teardown
# ============================================================================


def teardown(ctx: DispatchContext, source: str, *, delete_branches: bool = False) -> TeardownResult:
    """Remove every stack and source link of ``source``'s task branches.

    With ``delete_branches`` the task branches are force-deleted as well.
    """
    result = TeardownResult(source=source)
    linked = ctx.store.task_branches_of(source)
    for branch in ctx.topology.ordered_descendants(linked):
        parent = ctx.topology.parent_of(branch)
        if parent is not None:
            ctx.topology.remove_child(parent, branch)
        ctx.topology.remove_all_children(branch)
        ctx.store.remove_source(branch)
        ctx.store.remove_task_id(branch)
        result.unlinked.append(branch)

    if delete_branches:
        for branch in result.unlinked:
            if ctx.vcs.branch_exists(branch):
                ctx.vcs.delete_branch(branch, force=True)
                result.deleted.append(branch)

    logger.info("Removed dispatch links for %d branch(es) of %s", len(result.unlinked), source)
    return result


__all__ = [
    "DispatchContext",
    "PlannedBranch",
    "SplitResult",
    "TeardownResult",
    "detect_source",
    "materialize_stack",
    "partition_and_order",
    "prefix_of",
    "recover_base_and_prefix",
    "stack_branches",
    "task_branch_name",
]
