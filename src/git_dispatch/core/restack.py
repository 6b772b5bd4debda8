"""Rebase the remaining stack onto an updated base.

Every branch's tip and its stack parent's tip are captured before anything
moves. Walking root to tip, a branch whose captured tip is already contained
in the new base is merged and left alone; every other branch is rebased onto
a rolling target (the new base, then each freshly rebased branch) with its
parent's captured tip as the old boundary, so only the branch's own commits
travel. The walk stops at the first conflict; branches rebased before it
keep their new tips.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from git_dispatch.core.errors import ConflictError, DispatchError
from git_dispatch.core.stack import DispatchContext, stack_branches

logger = logging.getLogger(__name__)


@dataclass
class RestackStep:
    """What restack did (or would do) to one branch."""

    branch: str
    old_tip: str
    old_base: str
    onto: str  # ref name the branch is (or would be) placed on
    merged: bool = False
    new_tip: str | None = None


@dataclass
class RestackResult:
    """Outcome of a restack walk.

    Attributes:
        source: Source branch whose stack was walked
        onto: The updated base
        merged: Branches already contained in the base, skipped
        rebased: Branches moved, in stack order
        stopped_at: Branch whose rebase conflicted, if any
        error: The conflict that stopped the walk
        steps: Per-branch detail, including the plan of a dry run
    """

    source: str
    onto: str
    merged: list[str] = field(default_factory=list)
    rebased: list[str] = field(default_factory=list)
    stopped_at: str | None = None
    error: DispatchError | None = None
    steps: list[RestackStep] = field(default_factory=list)
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.stopped_at is None


def restack(ctx: DispatchContext, source: str, onto: str, *, dry_run: bool = False) -> RestackResult:
    """Rebase ``source``'s task branches onto ``onto`` in stack order."""
    vcs, topology = ctx.vcs, ctx.topology
    new_base = vcs.require_ref(onto)
    branches = stack_branches(ctx, source)
    result = RestackResult(source=source, onto=onto, dry_run=dry_run)

    # Parent tips change as the walk proceeds; capture them first.
    captured: list[tuple[str, str, str]] = []
    for branch in branches:
        parent = topology.parent_of(branch)
        parent_tip = vcs.resolve_ref(parent) if parent else None
        captured.append((branch, vcs.require_ref(branch), parent_tip or new_base))

    rolling, rolling_name = new_base, onto
    for branch, old_tip, old_base in captured:
        step = RestackStep(branch=branch, old_tip=old_tip, old_base=old_base, onto=rolling_name)
        result.steps.append(step)

        if vcs.is_ancestor(old_tip, new_base):
            step.merged = True
            result.merged.append(branch)
            logger.info("%s is already in %s, skipping", branch, onto)
            continue

        if dry_run:
            result.rebased.append(branch)
            rolling_name = branch
            continue

        try:
            step.new_tip = vcs.rebase(branch, old_base, rolling)
        except ConflictError as exc:
            logger.error("Restack stopped at %s: %s", branch, exc)
            result.stopped_at = branch
            result.error = exc
            break
        result.rebased.append(branch)
        rolling, rolling_name = step.new_tip, branch

    return result


__all__ = ["RestackResult", "RestackStep", "restack"]
