"""Git hooks: install them, and the logic they run.

The installed scripts are thin shims that call back into this package
(``python -m git_dispatch hook run <name>``) with the interpreter that
installed them, so the hook keeps working outside the virtualenv's PATH.
"""

from __future__ import annotations

import logging
import os
import stat
import sys
from dataclasses import dataclass, field
from pathlib import Path

from git_dispatch.core.config import DispatchConfig
from git_dispatch.core.errors import DispatchError
from git_dispatch.core.resolve import merge_changed_paths
from git_dispatch.core.stack import DispatchContext
from git_dispatch.core.trailers import parse_trailers
from git_dispatch.core.vcs.git import GitVCS
from git_dispatch.core.vcs.types import TASK_ID_KEY, TASK_ORDER_KEY

logger = logging.getLogger(__name__)

HOOK_NAMES = ("commit-msg", "post-merge")
HOOK_MARKER = "# installed by git-dispatch"

_TEMPLATE = """#!/bin/sh
{marker}
exec "{python}" -m git_dispatch hook run {name} "$@"
"""


# ============================================================================
# Install
# ============================================================================


@dataclass
class InstallResult:
    hooks_dir: Path
    installed: list[Path] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)


def hooks_dir(vcs: GitVCS) -> Path:
    """Directory git runs hooks from: ``core.hooksPath`` or ``<git-dir>/hooks``.

    A relative ``core.hooksPath`` is taken relative to the work-tree root.
    """
    configured = vcs.config_get("core.hooksPath")
    if configured:
        path = Path(configured).expanduser()
        return path if path.is_absolute() else vcs.repo_root / path
    git_dir = Path(vcs.git("rev-parse", "--git-common-dir"))
    if not git_dir.is_absolute():
        git_dir = vcs.repo_root / git_dir
    return git_dir / "hooks"


def render_hook(name: str, python: str | None = None) -> str:
    return _TEMPLATE.format(marker=HOOK_MARKER, python=python or sys.executable, name=name)


def install_hooks(vcs: GitVCS, *, force: bool = False) -> InstallResult:
    """Write the commit-msg and post-merge hooks, executable.

    A hook file that git-dispatch did not write is left alone unless
    ``force`` is set.
    """
    target = hooks_dir(vcs)
    target.mkdir(parents=True, exist_ok=True)
    result = InstallResult(hooks_dir=target)
    for name in HOOK_NAMES:
        path = target / name
        if path.exists() and not force and HOOK_MARKER not in path.read_text(encoding="utf-8", errors="replace"):
            logger.warning("%s exists and was not written by git-dispatch; use --force to replace it", path)
            result.skipped.append(path)
            continue
        path.write_text(render_hook(name), encoding="utf-8")
        mode = path.stat().st_mode
        os.chmod(path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        result.installed.append(path)
        logger.info("Installed %s hook to %s", name, path)
    return result


# ============================================================================
# commit-msg
# ============================================================================


@dataclass
class CommitMsgOutcome:
    """What the commit-msg hook decided.

    ``accepted`` False means the commit must be rejected with ``message``.
    """

    accepted: bool
    carried: dict[str, str] = field(default_factory=dict)
    message: str = ""


def _strip_comments(text: str) -> str:
    return "\n".join(line for line in text.splitlines() if not line.startswith("#"))


def check_commit_message(vcs: GitVCS, message_file: Path, config: DispatchConfig) -> CommitMsgOutcome:
    """Carry Task-Id (and Task-Order) from HEAD, or reject a commit without one.

    An explicit Task-Id in the message is never touched.
    """
    message_file = Path(message_file).resolve()
    text = message_file.read_text(encoding="utf-8")
    present = parse_trailers(vcs, _strip_comments(text))
    if present.get(TASK_ID_KEY):
        return CommitMsgOutcome(accepted=True)

    carried: dict[str, str] = {}
    head = vcs.resolve_ref("HEAD")
    if config.carry_trailers and head is not None:
        task_id = vcs.trailer_value(head, TASK_ID_KEY)
        if task_id:
            carried[TASK_ID_KEY] = task_id
            task_order = vcs.trailer_value(head, TASK_ORDER_KEY)
            if task_order and not present.get(TASK_ORDER_KEY):
                carried[TASK_ORDER_KEY] = task_order

    if carried:
        args = ["interpret-trailers", "--in-place", "--if-exists", "doNothing"]
        for key, value in carried.items():
            args.extend(["--trailer", f"{key}: {value}"])
        vcs.git(*args, str(message_file))
        logger.info("Carried %s from %s", ", ".join(f"{k}: {v}" for k, v in carried.items()), head[:12])
        return CommitMsgOutcome(accepted=True, carried=carried)

    if not config.require_task_id:
        return CommitMsgOutcome(accepted=True)
    return CommitMsgOutcome(
        accepted=False,
        message=f"Commit message has no {TASK_ID_KEY} trailer. Add one, e.g.:\n\n    {TASK_ID_KEY}: 3",
    )


# ============================================================================
# post-merge
# ============================================================================


def post_merge_reminder(ctx: DispatchContext, branch: str | None) -> str | None:
    """Reminder text when HEAD is a merge that changed the task's own files."""
    if not branch or not ctx.store.source_of(branch):
        return None
    head = ctx.vcs.resolve_ref("HEAD")
    if head is None:
        return None
    (commit,) = ctx.vcs.load_commits([head])
    if not commit.is_merge:
        return None
    try:
        paths = merge_changed_paths(ctx, branch, commit)
    except DispatchError as exc:
        logger.warning("Could not inspect merge %s: %s", commit.short, exc)
        return None
    if not paths:
        return None
    return (
        f"Merge {commit.short} changed {len(paths)} file(s) owned by {branch}. "
        "Run `git dispatch resolve` to turn it into a task commit before syncing."
    )


__all__ = [
    "CommitMsgOutcome",
    "HOOK_MARKER",
    "HOOK_NAMES",
    "InstallResult",
    "check_commit_message",
    "hooks_dir",
    "install_hooks",
    "post_merge_reminder",
    "render_hook",
]
