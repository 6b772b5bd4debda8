"""Error taxonomy for stack operations.

Every error raised by the core derives from :class:`DispatchError` and keeps
the values a user needs to fix the problem by hand (branch names, commit
identities, conflicting values) as attributes, so the CLI can render them
without re-deriving anything.
"""

from __future__ import annotations

from typing import Sequence


class DispatchError(Exception):
    """Base error for git-dispatch operations."""


# ============================================================================
# Validation errors (raised before any mutation)
# ============================================================================


class MissingTaskId(DispatchError):
    """A commit entering partitioning has no Task-Id trailer."""

    def __init__(self, commit: str, subject: str = "") -> None:
        self.commit = commit
        self.subject = subject
        detail = f" ({subject})" if subject else ""
        super().__init__(f"Commit {commit}{detail} has no Task-Id trailer")


class DuplicateOrder(DispatchError):
    """Two different tasks share the same Task-Order value."""

    def __init__(self, order: str, first_task: str, second_task: str) -> None:
        self.order = order
        self.first_task = first_task
        self.second_task = second_task
        super().__init__(
            f"Task-Order {order} is used by both task '{first_task}' and task '{second_task}'"
        )


class InvalidTaskOrder(DispatchError):
    """A Task-Order trailer value is not a finite number."""

    def __init__(self, task_id: str, value: str, commit: str = "") -> None:
        self.task_id = task_id
        self.value = value
        self.commit = commit
        where = f" on commit {commit}" if commit else ""
        super().__init__(
            f"Task-Order '{value}' for task '{task_id}'{where} is not a finite number"
        )


class BaseOrPrefixMismatch(DispatchError):
    """A re-split names a base or prefix different from the existing stack."""

    def __init__(self, field: str, recovered: str, supplied: str) -> None:
        self.field = field
        self.recovered = recovered
        self.supplied = supplied
        super().__init__(
            f"Existing stack uses {field} '{recovered}' but '{supplied}' was given. "
            f"Re-run with --{field} {recovered} or reset the stack first."
        )


class NoCommitsError(DispatchError):
    """Nothing to split between base and source."""

    def __init__(self, base: str, tip: str) -> None:
        self.base = base
        self.tip = tip
        super().__init__(f"No commits found between {base} and {tip}")


# ============================================================================
# Ref / stack lookup errors
# ============================================================================


class BranchNotFound(DispatchError):
    """A branch or ref does not resolve to a commit."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Branch '{name}' does not exist")


class BranchExists(DispatchError):
    """A branch that should be created already exists."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Branch '{name}' already exists")


class InvalidBranchName(DispatchError):
    """A task branch name built from a Task-Id is not a valid git branch name."""

    def __init__(self, task_id: str, branch: str) -> None:
        self.task_id = task_id
        self.branch = branch
        super().__init__(f"Task-Id '{task_id}' gives invalid branch name '{branch}'")


class SourceNotFound(DispatchError):
    """No source branch could be detected for the given context."""

    def __init__(self, branch: str | None) -> None:
        self.branch = branch
        label = branch or "(detached HEAD)"
        super().__init__(
            f"Cannot detect source branch from '{label}'. "
            "Run from a source or task branch, or pass the source explicitly."
        )


class NotInStack(DispatchError):
    """A branch was named that is not part of the source's stack."""

    def __init__(self, branch: str, source: str) -> None:
        self.branch = branch
        self.source = source
        super().__init__(f"Branch '{branch}' not found in dispatch stack of '{source}'")


class NotATaskBranch(DispatchError):
    """The branch carries no source link."""

    def __init__(self, branch: str | None) -> None:
        self.branch = branch
        super().__init__(f"Not a dispatch task branch: '{branch or '(detached HEAD)'}'")


# ============================================================================
# Mutation errors
# ============================================================================


class ConflictError(DispatchError):
    """A replay, rebase or merge could not be applied automatically.

    The target branch has already been restored to its pre-call state when
    this is raised.
    """

    def __init__(
        self,
        branch: str,
        commit: str | None = None,
        operation: str = "cherry-pick",
        detail: str = "",
    ) -> None:
        self.branch = branch
        self.commit = commit
        self.operation = operation
        self.detail = detail
        what = f" of {commit[:12]}" if commit else ""
        message = f"{operation.capitalize()}{what} into '{branch}' failed with conflicts; branch restored"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class EmptyReplay(DispatchError):
    """A replayed commit turned out to be a content no-op."""

    def __init__(self, commit: str, branch: str) -> None:
        self.commit = commit
        self.branch = branch
        super().__init__(f"Commit {commit[:12]} is already present in '{branch}' (empty), skipped")


class TrailerRewriteError(DispatchError):
    """Backfilling a trailer failed part-way; the branch was left untouched."""

    def __init__(self, branch: str, commit: str, detail: str = "") -> None:
        self.branch = branch
        self.commit = commit
        self.detail = detail
        message = f"Could not rewrite commit {commit[:12]} on '{branch}'; branch left unchanged"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class NotAMergeCommit(DispatchError):
    """Resolution was requested but the branch tip is not a merge."""

    def __init__(self, branch: str, commit: str) -> None:
        self.branch = branch
        self.commit = commit
        super().__init__(f"HEAD of '{branch}' ({commit[:12]}) is not a merge commit")


class AlreadyPublished(DispatchError):
    """Resolution would rewrite a merge that is already on a remote."""

    def __init__(self, branch: str, commit: str, remotes: Sequence[str]) -> None:
        self.branch = branch
        self.commit = commit
        self.remotes = list(remotes)
        super().__init__(
            f"Merge {commit[:12]} on '{branch}' is already published "
            f"({', '.join(self.remotes)}); refusing to rewrite shared history"
        )


class GitCommandError(DispatchError):
    """A git invocation failed unexpectedly."""

    def __init__(self, cmd: Sequence[str], returncode: int, stderr: str = "") -> None:
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        message = f"'{' '.join(self.cmd)}' exited with {returncode}"
        if stderr:
            message += f": {stderr}"
        super().__init__(message)


__all__ = [
    "AlreadyPublished",
    "BaseOrPrefixMismatch",
    "BranchExists",
    "BranchNotFound",
    "ConflictError",
    "DispatchError",
    "DuplicateOrder",
    "EmptyReplay",
    "GitCommandError",
    "InvalidBranchName",
    "InvalidTaskOrder",
    "MissingTaskId",
    "NoCommitsError",
    "NotAMergeCommit",
    "NotATaskBranch",
    "NotInStack",
    "SourceNotFound",
    "TrailerRewriteError",
]
