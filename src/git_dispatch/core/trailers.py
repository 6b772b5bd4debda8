"""Read and backfill structured trailers (Task-Id, Task-Order) on commits.

Backfilling rewrites history: the commits that lack the trailer, and every
descendant of them up to the branch tip, are recreated with ``commit-tree``
(same tree, same author, new message or new parents). Commits older than the
first rewritten one keep their identity. The branch ref is moved once, at the
very end, with a compare-and-swap, so a failure anywhere in the sequence
leaves the branch exactly where it was.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from git_dispatch.core.errors import DispatchError, GitCommandError, TrailerRewriteError
from git_dispatch.core.vcs.git import GitVCS
from git_dispatch.core.vcs.types import TASK_ID_KEY, TASK_ORDER_KEY

logger = logging.getLogger(__name__)


@dataclass
class BackfillResult:
    """Outcome of a trailer backfill.

    ``rewritten`` maps every superseded commit to its replacement; callers
    must re-resolve any commit they held from before the call.
    """

    branch: str
    old_tip: str
    new_tip: str
    rewritten: dict[str, str] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return self.old_tip != self.new_tip


def read(vcs: GitVCS, commit: str, key: str) -> str | None:
    """Return the value of trailer ``key`` on ``commit``, or None."""
    return vcs.trailer_value(commit, key)


def parse_trailers(vcs: GitVCS, message: str) -> dict[str, list[str]]:
    """Parse the trailer block of a raw commit message."""
    output = vcs.git("interpret-trailers", "--parse", input_text=message.rstrip("\n") + "\n")
    trailers: dict[str, list[str]] = {}
    for line in output.splitlines():
        key, sep, value = line.partition(":")
        if sep:
            trailers.setdefault(key.strip(), []).append(value.strip())
    return trailers


def _oldest(vcs: GitVCS, targets: Sequence[str]) -> list[str]:
    """Targets that do not descend from another target."""
    return [
        t
        for t in targets
        if not any(s != t and vcs.is_ancestor(s, t) for s in targets)
    ]


def backfill(vcs: GitVCS, branch: str, commits: Sequence[str], key: str, value: str) -> BackfillResult:
    """Make every commit in ``commits`` carry ``key: value`` on ``branch``.

    Commits that already carry ``key`` are left alone. Returns the new tip;
    the branch is only moved if every rewrite succeeded.

    Raises:
        TrailerRewriteError: a commit is not on ``branch`` or could not be
            recreated. The error names the commit and the branch is untouched.
    """
    tip = vcs.require_ref(branch)
    result = BackfillResult(branch=branch, old_tip=tip, new_tip=tip)

    targets = [c for c in dict.fromkeys(commits) if read(vcs, c, key) is None]
    if not targets:
        return result

    for target in targets:
        if not vcs.is_ancestor(target, tip):
            raise TrailerRewriteError(branch, target, "commit is not on the branch")

    excluded: list[str] = []
    for target in _oldest(vcs, targets):
        excluded.extend(vcs.commit_info(target).parents)

    args = ["rev-list", "--reverse", "--topo-order", "--parents", tip]
    if excluded:
        args.extend(["--not", *excluded])
    history = [line.split() for line in vcs.git(*args).splitlines() if line.strip()]

    target_set = set(targets)
    mapping: dict[str, str] = {}
    current = ""
    try:
        for entry in history:
            current, parents = entry[0], entry[1:]
            new_parents = [mapping.get(p, p) for p in parents]
            if current not in target_set and new_parents == parents:
                continue
            info = vcs.commit_info(current)
            message = info.message
            if current in target_set:
                message = vcs.add_trailer(message, key, value)
            mapping[current] = vcs.commit_tree(info.tree, new_parents, message, info)
            logger.debug("Rewrote %s -> %s", current[:12], mapping[current][:12])

        new_tip = mapping.get(tip, tip)
        current = tip
        vcs.update_ref(branch, new_tip, tip, f"add {key} trailer")
    except (GitCommandError, DispatchError) as exc:
        raise TrailerRewriteError(branch, current or tip, str(exc)) from exc

    logger.info("Added %s: %s to %d commit(s) on %s", key, value, len(targets), branch)
    result.new_tip = new_tip
    result.rewritten = dict(mapping)
    return result


__all__ = [
    "BackfillResult",
    "TASK_ID_KEY",
    "TASK_ORDER_KEY",
    "backfill",
    "parse_trailers",
    "read",
]
