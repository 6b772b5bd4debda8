"""Version-control collaborator.

The stack engines only talk to the repository through :class:`VCSProtocol`;
:class:`~git_dispatch.core.vcs.git.GitVCS` implements it on top of the git CLI.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from pathlib import Path
from typing import Protocol, Sequence, runtime_checkable

from git_dispatch.core.vcs.types import (
    CherryEntry,
    Commit,
    CommitInfo,
    MergePolicy,
    ReplayResult,
)


@runtime_checkable
class VCSProtocol(Protocol):
    """Operations the stack engines need from the version-control system."""

    repo_root: Path

    def resolve_ref(self, name: str) -> str | None: ...

    def branch_exists(self, name: str) -> bool: ...

    def is_valid_branch_name(self, name: str) -> bool: ...

    def create_branch(self, name: str, at_commit: str) -> None: ...

    def delete_branch(self, name: str, force: bool = False) -> None: ...

    def commits_between(self, base: str, tip: str, *, no_merges: bool = False) -> list[Commit]: ...

    def trailer_value(self, commit: str, key: str) -> str | None: ...

    def patch_identity(self, commit: str) -> str | None: ...

    def cherry(self, upstream: str, head: str, limit: str | None = None) -> list[CherryEntry]: ...

    def replay(self, commits: Sequence[str], onto_branch: str) -> ReplayResult: ...

    def rebase(self, branch: str, old_base: str, new_base: str) -> str: ...

    def is_ancestor(self, ancestor: str, descendant: str) -> bool: ...

    def merge(
        self,
        branch: str,
        other: str,
        policy: MergePolicy = MergePolicy.DEFAULT,
        message: str | None = None,
    ) -> str: ...

    def worktree_path_of(self, branch: str) -> Path | None: ...

    def on_branch(self, branch: str) -> AbstractContextManager[Path]: ...

    def commit_info(self, commit: str) -> CommitInfo: ...


__all__ = [
    "CherryEntry",
    "Commit",
    "CommitInfo",
    "MergePolicy",
    "ReplayResult",
    "VCSProtocol",
]
