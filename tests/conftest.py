"""Shared fixtures: isolated git identity and throwaway repositories."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from git_dispatch.core.stack import DispatchContext


class GitRepo:
    """Small driver around a temporary repository for test setup and assertions."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def git(self, *args: str, check: bool = True, cwd: Path | None = None) -> str:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd or self.path,
            capture_output=True,
            text=True,
            check=False,
        )
        if check and result.returncode != 0:
            raise AssertionError(f"git {' '.join(args)} failed: {result.stderr}")
        return result.stdout.strip()

    def write(self, filename: str, content: str) -> Path:
        target = self.path / filename
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        return target

    def commit(
        self,
        filename: str,
        content: str,
        subject: str,
        task_id: str | None = None,
        task_order: str | None = None,
        verify: bool = False,
    ) -> str:
        self.write(filename, content)
        self.git("add", filename)
        message = subject
        trailers = []
        if task_id is not None:
            trailers.append(f"Task-Id: {task_id}")
        if task_order is not None:
            trailers.append(f"Task-Order: {task_order}")
        if trailers:
            message += "\n\n" + "\n".join(trailers)
        args = ["commit", "-q", "-m", message]
        if not verify:
            args.append("--no-verify")
        self.git(*args)
        return self.rev("HEAD")

    def checkout(self, branch: str, start: str | None = None) -> None:
        if start is None:
            self.git("checkout", "-q", branch)
        else:
            self.git("checkout", "-q", "-b", branch, start)

    def rev(self, ref: str) -> str:
        return self.git("rev-parse", ref)

    def current_branch(self) -> str:
        return self.git("branch", "--show-current")

    def branch_exists(self, name: str) -> bool:
        result = subprocess.run(
            ["git", "show-ref", "--verify", "--quiet", f"refs/heads/{name}"],
            cwd=self.path,
            check=False,
        )
        return result.returncode == 0

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        result = subprocess.run(
            ["git", "merge-base", "--is-ancestor", ancestor, descendant],
            cwd=self.path,
            check=False,
        )
        return result.returncode == 0

    def trailer(self, ref: str, key: str) -> str:
        return self.git("log", "-1", f"--format=%(trailers:key={key},valueonly)", ref).strip()

    def subjects(self, rev_range: str) -> list[str]:
        output = self.git("log", "--reverse", "--format=%s", rev_range)
        return [line for line in output.splitlines() if line]

    def count(self, rev_range: str) -> int:
        return int(self.git("rev-list", "--count", rev_range))

    def show(self, ref: str, path: str) -> str:
        return self.git("show", f"{ref}:{path}")

    def config_all(self, key: str) -> list[str]:
        output = self.git("config", "--get-all", key, check=False)
        return [line for line in output.splitlines() if line]

    def parents(self, ref: str) -> list[str]:
        return self.git("log", "-1", "--format=%P", ref).split()

    def status(self) -> str:
        return self.git("status", "--porcelain")


@pytest.fixture
def _git_identity(monkeypatch, tmp_path_factory):
    """Deterministic git identity and no user/system config leaking in."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.delenv("GIT_DIR", raising=False)
    monkeypatch.delenv("GIT_WORK_TREE", raising=False)
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Dispatch Tester")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "dispatch@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Dispatch Tester")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "dispatch@example.com")


@pytest.fixture
def repo(tmp_path, _git_identity) -> GitRepo:
    """An empty repository on ``master`` with one initial commit."""
    path = tmp_path / "repo"
    path.mkdir()
    git_repo = GitRepo(path)
    git_repo.git("init", "-q", "--initial-branch=master")
    git_repo.git("commit", "-q", "--allow-empty", "-m", "init")
    return git_repo


@pytest.fixture
def source_repo(repo) -> GitRepo:
    """``source/feature`` with commits tagged 3, 4, 4, 5 on top of ``master``."""
    repo.checkout("source/feature", "master")
    repo.commit("file.txt", "a\n", "Add enum", task_id="3")
    repo.commit("api.txt", "b\n", "Create GET endpoint", task_id="4")
    repo.commit("dto.txt", "c\n", "Add DTOs", task_id="4")
    repo.commit("validate.txt", "d\n", "Implement validation", task_id="5")
    return repo


@pytest.fixture
def open_ctx():
    """Open a fresh DispatchContext (metadata re-read) for a test repository."""

    def _open(git_repo: GitRepo) -> DispatchContext:
        return DispatchContext.open(git_repo.path)

    return _open
