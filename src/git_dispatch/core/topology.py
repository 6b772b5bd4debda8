"""In-memory view of the parent -> children links between stack branches.

The view is read once from the metadata store and written through on every
mutation, so it stays valid for the whole command invocation. It is never
cached across invocations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator

from git_dispatch.core.metadata import MetadataStore

logger = logging.getLogger(__name__)


@dataclass
class StackTopology:
    """Parent -> children links between branches.

    Attributes:
        store: Metadata store the links are persisted in
        links: Children per parent, in insertion order
    """

    store: MetadataStore
    links: dict[str, list[str]] = field(default_factory=dict)
    _parents: dict[str, str] | None = field(default=None, init=False, repr=False)

    @classmethod
    def load(cls, store: MetadataStore) -> StackTopology:
        return cls(store=store, links=store.all_stack_links())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def children(self, branch: str) -> list[str]:
        return list(self.links.get(branch, []))

    def parent_of(self, branch: str) -> str | None:
        """Reverse lookup over every branch's child list."""
        if self._parents is None:
            index: dict[str, str] = {}
            for parent, children in self.links.items():
                for child in children:
                    index.setdefault(child, parent)
            self._parents = index
        return self._parents.get(branch)

    def root_of(self, branch: str) -> str:
        """Walk parent links up to the top of the tree containing ``branch``."""
        seen = {branch}
        current = branch
        while True:
            parent = self.parent_of(current)
            if parent is None or parent in seen:
                return current
            seen.add(parent)
            current = parent

    def walk(self, root: str) -> Iterator[tuple[int, str]]:
        """Depth-first ``(depth, branch)`` pairs starting at ``root``."""
        seen: set[str] = set()
        stack = [(0, root)]
        while stack:
            depth, branch = stack.pop()
            if branch in seen:
                continue
            seen.add(branch)
            yield depth, branch
            for child in reversed(self.children(branch)):
                stack.append((depth + 1, child))

    def ordered_descendants(self, branches: Iterable[str]) -> list[str]:
        """Order a set of stack branches from root to tip.

        The root is the member whose parent is not itself a member; from
        there single child links are followed while the child is a member.
        Members that are not reachable that way (a fork in the stack) are
        appended in the order given.
        """
        members = list(dict.fromkeys(branches))
        if not members:
            return []
        member_set = set(members)

        roots = [b for b in members if self.parent_of(b) not in member_set]
        ordered: list[str] = []
        visited: set[str] = set()
        current: str | None = roots[0] if roots else members[0]
        while current is not None and current not in visited:
            ordered.append(current)
            visited.add(current)
            current = next(
                (c for c in self.children(current) if c in member_set and c not in visited),
                None,
            )

        leftovers = [b for b in members if b not in visited]
        if leftovers:
            logger.warning("Branches not on the main stack chain: %s", ", ".join(leftovers))
            ordered.extend(leftovers)
        return ordered

    # ------------------------------------------------------------------
    # Mutations (written through to the store)
    # ------------------------------------------------------------------

    def add_child(self, parent: str, child: str) -> bool:
        """Link ``child`` under ``parent``; no-op when already linked."""
        bucket = self.links.setdefault(parent, [])
        if child in bucket:
            return False
        self.store.append_child(parent, child)
        bucket.append(child)
        self._parents = None
        return True

    def remove_child(self, parent: str, child: str) -> bool:
        bucket = self.links.get(parent, [])
        if child not in bucket:
            return False
        self.store.remove_child(parent, child)
        bucket.remove(child)
        if not bucket:
            del self.links[parent]
        self._parents = None
        return True

    def remove_all_children(self, parent: str) -> None:
        if parent in self.links:
            self.store.remove_children(parent)
            del self.links[parent]
            self._parents = None

    def splice(self, new_branch: str, after_parent: str, before_child: str | None = None) -> None:
        """Insert ``new_branch`` between ``after_parent`` and ``before_child``.

        ``before_child`` is detached from its current parent and re-attached
        under ``new_branch``. A parent link to ``new_branch`` left over from a
        previous split of the same branch name is cleared first.
        """
        stale_parent = self.parent_of(new_branch)
        if stale_parent is not None and stale_parent != after_parent:
            logger.info("Clearing stale link %s -> %s", stale_parent, new_branch)
            self.remove_child(stale_parent, new_branch)

        if before_child is not None and before_child != new_branch:
            current_parent = self.parent_of(before_child)
            if current_parent is not None:
                self.remove_child(current_parent, before_child)
            self.add_child(new_branch, before_child)

        self.add_child(after_parent, new_branch)


__all__ = ["StackTopology"]
