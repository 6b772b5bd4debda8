"""Group a linear commit range by Task-Id and compute the stack order.

Ordering rules:

- tasks carrying a Task-Order come first, ascending by that number;
- tasks without one follow, in order of their first commit;
- two different tasks sharing a Task-Order value is an error.

With no Task-Order anywhere this is plain first-appearance order, which is
what stacks created before Task-Order existed rely on.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, Union

from git_dispatch.core.errors import DuplicateOrder, InvalidTaskOrder, MissingTaskId
from git_dispatch.core.vcs.types import Commit

logger = logging.getLogger(__name__)

OrderValue = Union[int, float]


@dataclass
class TaskGroup:
    """All commits of one task, in commit order.

    Attributes:
        task_id: Task-Id trailer value, used verbatim
        commits: Commits carrying this Task-Id, oldest first
        order: Numeric Task-Order, or None when the task has none
        first_index: Position of the task's first commit in the range
    """

    task_id: str
    first_index: int
    commits: list[Commit] = field(default_factory=list)
    order: OrderValue | None = None
    order_raw: str | None = None

    @property
    def shas(self) -> list[str]:
        return [c.sha for c in self.commits]


@dataclass
class Partition:
    """Tasks of a commit range in stack order."""

    tasks: list[TaskGroup] = field(default_factory=list)

    @property
    def task_ids(self) -> list[str]:
        return [t.task_id for t in self.tasks]

    def get(self, task_id: str) -> TaskGroup | None:
        for task in self.tasks:
            if task.task_id == task_id:
                return task
        return None


def parse_order(task_id: str, raw: str, commit: str = "") -> OrderValue:
    """Parse a Task-Order value as an int, falling back to a finite float."""
    text = raw.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        value = float(text)
    except ValueError:
        raise InvalidTaskOrder(task_id, raw, commit) from None
    if not math.isfinite(value):
        raise InvalidTaskOrder(task_id, raw, commit)
    return value


def group_by_task(commits: Iterable[Commit]) -> list[TaskGroup]:
    """Group commits by Task-Id in first-appearance order.

    Raises:
        MissingTaskId: a commit has no Task-Id trailer
        InvalidTaskOrder: a Task-Order value is not numeric
    """
    groups: dict[str, TaskGroup] = {}
    for index, commit in enumerate(commits):
        if not commit.task_id:
            raise MissingTaskId(commit.sha, commit.subject)
        group = groups.get(commit.task_id)
        if group is None:
            group = TaskGroup(task_id=commit.task_id, first_index=index)
            groups[commit.task_id] = group
        group.commits.append(commit)

        if commit.task_order is None:
            continue
        value = parse_order(commit.task_id, commit.task_order, commit.sha)
        if group.order is None:
            group.order = value
            group.order_raw = commit.task_order
        elif group.order != value:
            logger.warning(
                "Task %s has Task-Order %s and %s; keeping %s",
                commit.task_id,
                group.order_raw,
                commit.task_order,
                group.order_raw,
            )
    return list(groups.values())


def order_tasks(groups: Iterable[TaskGroup]) -> list[TaskGroup]:
    """Put ordered tasks first (ascending), then unordered ones by first commit.

    Raises:
        DuplicateOrder: two tasks share a Task-Order value
    """
    ordered: list[TaskGroup] = []
    unordered: list[TaskGroup] = []
    seen: dict[OrderValue, TaskGroup] = {}
    for group in groups:
        if group.order is None:
            unordered.append(group)
            continue
        clash = seen.get(group.order)
        if clash is not None:
            raise DuplicateOrder(group.order_raw or str(group.order), clash.task_id, group.task_id)
        seen[group.order] = group
        ordered.append(group)

    ordered.sort(key=lambda g: (g.order, g.first_index))
    unordered.sort(key=lambda g: g.first_index)
    return ordered + unordered


def partition(commits: Iterable[Commit]) -> Partition:
    """Validate and order a commit range (oldest first)."""
    return Partition(tasks=order_tasks(group_by_task(commits)))


__all__ = [
    "OrderValue",
    "Partition",
    "TaskGroup",
    "group_by_task",
    "order_tasks",
    "parse_order",
    "partition",
]
