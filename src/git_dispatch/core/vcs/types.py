"""Value types exchanged with the version-control collaborator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from git_dispatch.core.errors import EmptyReplay

TASK_ID_KEY = "Task-Id"
TASK_ORDER_KEY = "Task-Order"


class MergePolicy(str, Enum):
    """Conflict policy for recreated merges."""

    DEFAULT = "default"
    KEEP_MINE = "ours"


@dataclass(frozen=True)
class Commit:
    """An immutable commit with the trailers the stack engine cares about.

    Attributes:
        sha: Full commit hash
        parents: Parent hashes, first parent first
        subject: First line of the message
        task_id: Value of the Task-Id trailer, or None when absent
        task_order: Raw value of the Task-Order trailer, or None when absent
    """

    sha: str
    parents: tuple[str, ...] = ()
    subject: str = ""
    task_id: str | None = None
    task_order: str | None = None

    @property
    def short(self) -> str:
        return self.sha[:12]

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1


@dataclass(frozen=True)
class CommitInfo:
    """Everything needed to recreate a commit with a different message or parents."""

    sha: str
    tree: str
    parents: tuple[str, ...]
    message: str
    author_name: str
    author_email: str
    author_date: str


@dataclass(frozen=True)
class CherryEntry:
    """One line of a patch-identity comparison.

    ``equivalent`` is True when the upstream side already holds a commit with
    the same patch-identity (``-`` in ``git cherry`` output).
    """

    commit: Commit
    equivalent: bool


@dataclass
class ReplayResult:
    """Outcome of replaying commits onto a branch."""

    branch: str
    applied: list[str] = field(default_factory=list)
    skipped: list[EmptyReplay] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.applied)


__all__ = [
    "TASK_ID_KEY",
    "TASK_ORDER_KEY",
    "CherryEntry",
    "Commit",
    "CommitInfo",
    "MergePolicy",
    "ReplayResult",
]
