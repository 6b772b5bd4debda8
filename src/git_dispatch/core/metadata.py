"""Typed accessor over git config for stack and source links.

Keys are scoped per branch:

- ``branch.<parent>.dispatchtasks``  multi-valued, children in insertion order
- ``branch.<task>.dispatchsource``   the task branch's source branch
- ``branch.<task>.dispatchtaskid``   the Task-Id the branch was created for
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

STACK_KEY = "dispatchtasks"
SOURCE_KEY = "dispatchsource"
TASKID_KEY = "dispatchtaskid"


class ConfigBackend(Protocol):
    """The subset of the VCS the metadata store needs."""

    def config_get(self, key: str) -> str | None: ...

    def config_get_all(self, key: str) -> list[str]: ...

    def config_get_regexp(self, pattern: str) -> list[tuple[str, str]]: ...

    def config_set(self, key: str, value: str) -> None: ...

    def config_add(self, key: str, value: str) -> None: ...

    def config_unset_all(self, key: str) -> None: ...


def _key(branch: str, name: str) -> str:
    return f"branch.{branch}.{name}"


def _branch_from_key(key: str, name: str) -> str:
    return key[len("branch.") : -len(name) - 1]


@dataclass
class MetadataStore:
    """Branch-scoped key/value store for dispatch links."""

    backend: ConfigBackend

    # Stack links ---------------------------------------------------------

    def children(self, parent: str) -> list[str]:
        return self.backend.config_get_all(_key(parent, STACK_KEY))

    def append_child(self, parent: str, child: str) -> bool:
        """Append ``child`` under ``parent``; return False when already present."""
        if child in self.children(parent):
            return False
        self.backend.config_add(_key(parent, STACK_KEY), child)
        return True

    def remove_child(self, parent: str, child: str) -> bool:
        """Remove one child link, keeping the order of the others."""
        current = self.children(parent)
        if child not in current:
            return False
        remaining = [c for c in current if c != child]
        key = _key(parent, STACK_KEY)
        self.backend.config_unset_all(key)
        for c in remaining:
            self.backend.config_add(key, c)
        return True

    def remove_children(self, parent: str) -> None:
        self.backend.config_unset_all(_key(parent, STACK_KEY))

    def all_stack_links(self) -> dict[str, list[str]]:
        """Every ``parent -> [children]`` link, read in one pass."""
        links: dict[str, list[str]] = {}
        pattern = rf"^branch\..*\.{STACK_KEY}$"
        for key, value in self.backend.config_get_regexp(pattern):
            parent = _branch_from_key(key, STACK_KEY)
            bucket = links.setdefault(parent, [])
            if value not in bucket:
                bucket.append(value)
        return links

    # Source links --------------------------------------------------------

    def source_of(self, task_branch: str) -> str | None:
        return self.backend.config_get(_key(task_branch, SOURCE_KEY))

    def set_source(self, task_branch: str, source: str) -> None:
        self.backend.config_set(_key(task_branch, SOURCE_KEY), source)

    def remove_source(self, task_branch: str) -> None:
        self.backend.config_unset_all(_key(task_branch, SOURCE_KEY))

    def task_branches_of(self, source: str) -> list[str]:
        """Task branches linked to ``source``, in config order."""
        pattern = rf"^branch\..*\.{SOURCE_KEY}$"
        return [
            _branch_from_key(key, SOURCE_KEY)
            for key, value in self.backend.config_get_regexp(pattern)
            if value == source
        ]

    def all_sources(self) -> set[str]:
        pattern = rf"^branch\..*\.{SOURCE_KEY}$"
        return {value for _, value in self.backend.config_get_regexp(pattern)}

    # Task ids ------------------------------------------------------------

    def task_id_of(self, task_branch: str) -> str:
        """Stored Task-Id, falling back to the last path segment of the name."""
        stored = self.backend.config_get(_key(task_branch, TASKID_KEY))
        if stored:
            return stored
        return task_branch.rsplit("/", 1)[-1]

    def set_task_id(self, task_branch: str, task_id: str) -> None:
        self.backend.config_set(_key(task_branch, TASKID_KEY), task_id)

    def remove_task_id(self, task_branch: str) -> None:
        self.backend.config_unset_all(_key(task_branch, TASKID_KEY))


__all__ = ["ConfigBackend", "MetadataStore", "SOURCE_KEY", "STACK_KEY", "TASKID_KEY"]
