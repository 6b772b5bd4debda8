"""Git implementation of the version-control collaborator.

All access goes through the git CLI. Operations that need a working tree
(cherry-pick, rebase, merge) run inside :meth:`GitVCS.on_branch`, which uses
the worktree that already has the branch checked out when there is one and
otherwise checks the branch out temporarily, stashing and restoring any
uncommitted changes around the operation.
"""

from __future__ import annotations

import logging
import os
import subprocess
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Mapping, Sequence

from git_dispatch.core.errors import (
    BranchExists,
    BranchNotFound,
    ConflictError,
    EmptyReplay,
    GitCommandError,
)
from git_dispatch.core.git_ops import get_current_branch, run_command
from git_dispatch.core.vcs.types import (
    TASK_ID_KEY,
    TASK_ORDER_KEY,
    CherryEntry,
    Commit,
    CommitInfo,
    MergePolicy,
    ReplayResult,
)

logger = logging.getLogger(__name__)

_FIELD = "\x1f"
_RECORD = "\x1e"

_COMMIT_FORMAT = _FIELD.join(
    [
        "%H",
        "%P",
        "%s",
        f"%(trailers:key={TASK_ID_KEY},valueonly)",
        f"%(trailers:key={TASK_ORDER_KEY},valueonly)",
    ]
) + _RECORD

_INFO_FORMAT = _FIELD.join(["%H", "%T", "%P", "%an", "%ae", "%ad", "%B"])


def _first_value(raw: str) -> str | None:
    """Return the first non-empty line of a ``valueonly`` trailer field."""
    for line in raw.splitlines():
        value = line.strip()
        if value:
            return value
    return None


def _parse_commits(output: str) -> list[Commit]:
    """Parse ``_COMMIT_FORMAT`` records.

    The separators count as whitespace to ``str.strip``, so the output must be
    read unstripped.
    """
    commits: list[Commit] = []
    for record in output.split(_RECORD):
        record = record.strip("\n")
        if not record:
            continue
        sha, parents, subject, task_id, task_order = record.split(_FIELD)
        commits.append(
            Commit(
                sha=sha,
                parents=tuple(parents.split()),
                subject=subject,
                task_id=_first_value(task_id),
                task_order=_first_value(task_order),
            )
        )
    return commits


class GitVCS:
    """Version-control collaborator backed by the git CLI."""

    def __init__(self, repo_root: Path) -> None:
        self.repo_root = Path(repo_root)

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def git(
        self,
        *args: str,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        input_text: str | None = None,
        strip: bool = True,
    ) -> str:
        """Run git and return stdout, raising GitCommandError on failure."""
        cmd = ["git", *args]
        try:
            _, stdout, _ = run_command(
                cmd,
                cwd=cwd or self.repo_root,
                env=env,
                input_text=input_text,
                strip=strip,
            )
        except subprocess.CalledProcessError as exc:
            raise GitCommandError(cmd, exc.returncode, exc.stderr or "") from exc
        return stdout

    def _try(self, *args: str, cwd: Path | None = None) -> tuple[int, str, str]:
        return run_command(["git", *args], check_return=False, cwd=cwd or self.repo_root)

    def head(self, cwd: Path | None = None) -> str:
        return self.git("rev-parse", "HEAD", cwd=cwd)

    # ------------------------------------------------------------------
    # Refs and branches
    # ------------------------------------------------------------------

    def resolve_ref(self, name: str) -> str | None:
        code, stdout, _ = self._try("rev-parse", "--verify", "--quiet", f"{name}^{{commit}}")
        if code != 0 or not stdout:
            return None
        return stdout.strip()

    def require_ref(self, name: str) -> str:
        sha = self.resolve_ref(name)
        if sha is None:
            raise BranchNotFound(name)
        return sha

    def branch_exists(self, name: str) -> bool:
        code, _, _ = self._try("show-ref", "--verify", "--quiet", f"refs/heads/{name}")
        return code == 0

    def list_branches(self) -> list[str]:
        output = self.git("for-each-ref", "--format=%(refname:short)", "refs/heads/")
        return [line.strip() for line in output.splitlines() if line.strip()]

    def is_valid_branch_name(self, name: str) -> bool:
        code, _, _ = self._try("check-ref-format", "--branch", name)
        return code == 0

    def create_branch(self, name: str, at_commit: str) -> None:
        if self.branch_exists(name):
            raise BranchExists(name)
        self.git("branch", name, at_commit)
        logger.info("Created branch %s at %s", name, at_commit[:12])

    def delete_branch(self, name: str, force: bool = False) -> None:
        self.git("branch", "-D" if force else "-d", name)
        logger.info("Deleted branch %s", name)

    def update_ref(self, branch: str, new: str, old: str, reason: str) -> None:
        """Move ``branch`` to ``new`` only if it still points at ``old``."""
        self.git("update-ref", "-m", f"git-dispatch: {reason}", f"refs/heads/{branch}", new, old)

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        code, _, stderr = self._try("merge-base", "--is-ancestor", ancestor, descendant)
        if code in (0, 1):
            return code == 0
        raise GitCommandError(["git", "merge-base", "--is-ancestor", ancestor, descendant], code, stderr)

    def merge_base(self, a: str, b: str) -> str | None:
        code, stdout, _ = self._try("merge-base", a, b)
        return stdout.strip() if code == 0 and stdout else None

    def remote_branches_containing(self, commit: str) -> list[str]:
        output = self.git("branch", "-r", "--contains", commit, "--format=%(refname:short)")
        return [line.strip() for line in output.splitlines() if line.strip()]

    def worktree_path_of(self, branch: str) -> Path | None:
        """Return the worktree that has ``branch`` checked out, if any."""
        output = self.git("worktree", "list", "--porcelain")
        wanted = f"refs/heads/{branch}"
        current: Path | None = None
        for line in output.splitlines():
            if line.startswith("worktree "):
                current = Path(line[len("worktree ") :])
            elif line.startswith("branch ") and line[len("branch ") :] == wanted:
                return current
        return None

    # ------------------------------------------------------------------
    # Commits and trailers
    # ------------------------------------------------------------------

    def commits_between(self, base: str, tip: str, *, no_merges: bool = False) -> list[Commit]:
        """Commits in ``base..tip``, oldest first."""
        args = ["log", "--reverse", f"--format={_COMMIT_FORMAT}"]
        if no_merges:
            args.append("--no-merges")
        args.append(f"{base}..{tip}")
        return _parse_commits(self.git(*args, strip=False))

    def load_commits(self, shas: Sequence[str]) -> list[Commit]:
        """Load commits in the given order."""
        if not shas:
            return []
        output = self.git("log", "--no-walk=unsorted", f"--format={_COMMIT_FORMAT}", *shas, strip=False)
        return _parse_commits(output)

    def merges_between(self, base: str, tip: str) -> list[Commit]:
        output = self.git("log", "--reverse", "--merges", f"--format={_COMMIT_FORMAT}", f"{base}..{tip}", strip=False)
        return _parse_commits(output)

    def trailer_value(self, commit: str, key: str) -> str | None:
        output = self.git("log", "-1", f"--format=%(trailers:key={key},valueonly)", commit)
        return _first_value(output)

    def commit_info(self, commit: str) -> CommitInfo:
        output = self.git("log", "-1", "--date=raw", f"--format={_INFO_FORMAT}", commit)
        sha, tree, parents, name, email, date, message = output.split(_FIELD, 6)
        return CommitInfo(
            sha=sha,
            tree=tree,
            parents=tuple(parents.split()),
            message=message,
            author_name=name,
            author_email=email,
            author_date=date,
        )

    def commit_tree(self, tree: str, parents: Sequence[str], message: str, author: CommitInfo) -> str:
        """Create a commit object without touching any branch or working tree."""
        env = dict(os.environ)
        env.update(
            GIT_AUTHOR_NAME=author.author_name,
            GIT_AUTHOR_EMAIL=author.author_email,
            GIT_AUTHOR_DATE=author.author_date,
        )
        args = ["commit-tree", tree]
        for parent in parents:
            args.extend(["-p", parent])
        args.extend(["-F", "-"])
        return self.git(*args, env=env, input_text=message.rstrip("\n") + "\n").strip()

    def add_trailer(self, message: str, key: str, value: str) -> str:
        """Return ``message`` with ``key: value`` appended unless ``key`` is already present."""
        return self.git(
            "interpret-trailers",
            "--if-exists",
            "doNothing",
            "--trailer",
            f"{key}: {value}",
            input_text=message.rstrip("\n") + "\n",
        )

    def patch_identity(self, commit: str) -> str | None:
        """Stable patch-id of a commit's change, or None for an empty change."""
        diff = self.git("show", "--no-color", "--format=", commit, strip=False)
        if not diff.strip():
            return None
        output = self.git("patch-id", "--stable", input_text=diff)
        return output.split()[0] if output else None

    def cherry(self, upstream: str, head: str, limit: str | None = None) -> list[CherryEntry]:
        """Compare ``head`` against ``upstream`` by patch-identity (oldest first).

        Only commits in ``limit..head`` (``upstream..head`` without a limit)
        are listed; merges are never listed.
        """
        args = ["cherry", upstream, head]
        if limit:
            args.append(limit)
        marks: list[tuple[str, bool]] = []
        for line in self.git(*args).splitlines():
            line = line.strip()
            if not line:
                continue
            sign, sha = line.split(maxsplit=1)
            marks.append((sha.strip(), sign == "-"))
        commits = {commit.sha: commit for commit in self.load_commits([sha for sha, _ in marks])}
        return [CherryEntry(commit=commits[sha], equivalent=equivalent) for sha, equivalent in marks]

    def changed_paths(self, a: str, b: str, paths: Sequence[str] | None = None) -> list[str]:
        args = ["diff", "--name-only", "--no-renames", a, b]
        if paths is not None:
            if not paths:
                return []
            args.extend(["--", *paths])
        return [line for line in self.git(*args).splitlines() if line]

    def touched_paths(self, base: str, tip: str) -> list[str]:
        """Every path touched by a commit in ``base..tip``, first touch first."""
        output = self.git("log", "--reverse", "--no-renames", "--name-only", "--format=", f"{base}..{tip}")
        seen: dict[str, None] = {}
        for line in output.splitlines():
            if line:
                seen.setdefault(line, None)
        return list(seen)

    def path_exists(self, commit: str, path: str) -> bool:
        code, _, _ = self._try("cat-file", "-e", f"{commit}:{path}")
        return code == 0

    # ------------------------------------------------------------------
    # Working-tree operations
    # ------------------------------------------------------------------

    @contextmanager
    def _preserved_changes(self, cwd: Path) -> Iterator[None]:
        """Stash uncommitted work in ``cwd`` for the duration of the block."""
        status = self.git("status", "--porcelain", cwd=cwd)
        stashed = False
        if status.strip():
            self.git("stash", "push", "--include-untracked", "--quiet", "-m", "git-dispatch autostash", cwd=cwd)
            stashed = True
        try:
            yield
        finally:
            if stashed:
                code, _, stderr = self._try("stash", "pop", "--index", "--quiet", cwd=cwd)
                if code != 0:
                    logger.warning(
                        "Could not restore uncommitted changes in %s (kept in `git stash list`): %s",
                        cwd,
                        stderr,
                    )

    @contextmanager
    def on_branch(self, branch: str) -> Iterator[Path]:
        """Yield a working tree with ``branch`` checked out.

        The caller's checkout and uncommitted changes are restored on exit,
        whether the block succeeds or raises.
        """
        if not self.branch_exists(branch):
            raise BranchNotFound(branch)

        worktree = self.worktree_path_of(branch)
        if worktree is not None:
            with self._preserved_changes(worktree):
                yield worktree
            return

        cwd = self.repo_root
        previous_branch = get_current_branch(cwd)
        code, previous_head, _ = self._try("rev-parse", "--verify", "--quiet", "HEAD", cwd=cwd)
        with self._preserved_changes(cwd):
            self.git("checkout", "--quiet", branch, cwd=cwd)
            try:
                yield cwd
            finally:
                if previous_branch:
                    self.git("checkout", "--quiet", previous_branch, cwd=cwd)
                elif code == 0 and previous_head:
                    self.git("checkout", "--quiet", "--detach", previous_head.strip(), cwd=cwd)

    def _has_unmerged_paths(self, cwd: Path) -> bool:
        output = self.git("diff", "--name-only", "--diff-filter=U", cwd=cwd)
        return bool(output.strip())

    def _pick_in_progress(self, cwd: Path) -> bool:
        code, _, _ = self._try("rev-parse", "--verify", "--quiet", "CHERRY_PICK_HEAD", cwd=cwd)
        return code == 0

    def replay(self, commits: Sequence[str], onto_branch: str) -> ReplayResult:
        """Cherry-pick ``commits`` (with ``-x``) onto ``onto_branch`` in order.

        All-or-nothing: on a conflict the pick is aborted, the branch is reset
        to where it was before the call and ConflictError is raised. A commit
        whose change is already present is skipped and recorded as
        EmptyReplay.
        """
        result = ReplayResult(branch=onto_branch)
        if not commits:
            return result

        with self.on_branch(onto_branch) as cwd:
            start = self.head(cwd)
            for sha in commits:
                code, _, stderr = self._try("cherry-pick", "-x", sha, cwd=cwd)
                if code == 0:
                    result.applied.append(self.head(cwd))
                    continue

                in_progress = self._pick_in_progress(cwd)
                conflicted = in_progress and self._has_unmerged_paths(cwd)
                if in_progress:
                    self._try("cherry-pick", "--abort", cwd=cwd)
                if in_progress and not conflicted:
                    skipped = EmptyReplay(sha, onto_branch)
                    logger.warning("%s", skipped)
                    result.skipped.append(skipped)
                    continue

                self.git("reset", "--quiet", "--hard", start, cwd=cwd)
                raise ConflictError(onto_branch, sha, "cherry-pick", stderr)

        logger.info("Replayed %d commit(s) into %s", result.count, onto_branch)
        return result

    def rebase(self, branch: str, old_base: str, new_base: str) -> str:
        """Replay ``old_base..branch`` onto ``new_base``; return the new tip."""
        with self.on_branch(branch) as cwd:
            code, stdout, stderr = self._try("rebase", "--onto", new_base, old_base, cwd=cwd)
            if code != 0:
                self._try("rebase", "--abort", cwd=cwd)
                raise ConflictError(branch, None, "rebase", stderr or stdout)
            tip = self.head(cwd)
        logger.info("Rebased %s onto %s", branch, new_base)
        return tip

    def merge(
        self,
        branch: str,
        other: str,
        policy: MergePolicy = MergePolicy.DEFAULT,
        message: str | None = None,
    ) -> str:
        """Create a merge of ``other`` into ``branch`` and return its hash."""
        with self.on_branch(branch) as cwd:
            start = self.head(cwd)
            try:
                return self.merge_here(cwd, branch, other, policy, message)
            except ConflictError:
                self.git("reset", "--quiet", "--hard", start, cwd=cwd)
                raise

    def merge_here(
        self,
        cwd: Path,
        branch: str,
        other: str,
        policy: MergePolicy = MergePolicy.DEFAULT,
        message: str | None = None,
    ) -> str:
        """Merge ``other`` into the checkout at ``cwd``; abort and raise on conflict."""
        args = ["merge", "--no-ff", "--no-edit", "--no-verify"]
        if policy is MergePolicy.KEEP_MINE:
            args.extend(["-X", policy.value])
        if message:
            args.extend(["-m", message.rstrip("\n")])
        args.append(other)
        code, stdout, stderr = self._try(*args, cwd=cwd)
        if code != 0:
            self._try("merge", "--abort", cwd=cwd)
            raise ConflictError(branch, other, "merge", stderr or stdout)
        return self.head(cwd)

    def push(self, branch: str, remote: str, force: bool = False) -> None:
        args = ["push", "-u", remote]
        if force:
            args.append("--force-with-lease")
        args.append(branch)
        self.git(*args)

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------

    def config_get(self, key: str) -> str | None:
        code, stdout, _ = self._try("config", "--get", key)
        return stdout.strip() if code == 0 else None

    def config_get_all(self, key: str) -> list[str]:
        code, stdout, _ = self._try("config", "--get-all", key)
        if code != 0:
            return []
        return [line.strip() for line in stdout.splitlines() if line.strip()]

    def config_get_regexp(self, pattern: str) -> list[tuple[str, str]]:
        code, stdout, _ = self._try("config", "-z", "--get-regexp", pattern)
        if code != 0:
            return []
        entries: list[tuple[str, str]] = []
        for item in stdout.split("\0"):
            if not item:
                continue
            key, _, value = item.partition("\n")
            entries.append((key, value))
        return entries

    def config_set(self, key: str, value: str) -> None:
        self.git("config", key, value)

    def config_add(self, key: str, value: str) -> None:
        self.git("config", "--add", key, value)

    def config_unset_all(self, key: str) -> None:
        code, _, stderr = self._try("config", "--unset-all", key)
        # 5: key not set
        if code not in (0, 5):
            raise GitCommandError(["git", "config", "--unset-all", key], code, stderr)


__all__ = ["GitVCS"]
