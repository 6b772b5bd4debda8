"""Reading and backfilling Task-Id trailers."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from git_dispatch.core import trailers
from git_dispatch.core.errors import GitCommandError, TrailerRewriteError
from git_dispatch.core.vcs.git import GitVCS
from git_dispatch.core.vcs.types import TASK_ID_KEY, TASK_ORDER_KEY

pytestmark = pytest.mark.git_repo


def test_read_trailer_values(repo):
    sha = repo.commit("a.txt", "a\n", "Add a", task_id="PROJ-1", task_order="2.5")
    vcs = GitVCS(repo.path)

    assert trailers.read(vcs, sha, TASK_ID_KEY) == "PROJ-1"
    assert trailers.read(vcs, sha, TASK_ORDER_KEY) == "2.5"
    assert trailers.read(vcs, "HEAD~1", TASK_ID_KEY) is None


def test_parse_trailers_from_message(repo):
    vcs = GitVCS(repo.path)

    parsed = trailers.parse_trailers(vcs, "Subject\n\nBody text\n\nTask-Id: 7\nSigned-off-by: A <a@b.c>\n")

    assert parsed[TASK_ID_KEY] == ["7"]
    assert "Signed-off-by" in parsed


def test_backfill_adds_trailer_and_rewrites_descendants(repo):
    repo.checkout("task", "master")
    repo.commit("a.txt", "a\n", "tagged", task_id="4")
    untagged = repo.commit("b.txt", "b\n", "untagged")
    repo.commit("c.txt", "c\n", "tagged again", task_id="4")
    vcs = GitVCS(repo.path)
    kept = repo.rev("task~2")

    result = trailers.backfill(vcs, "task", [untagged], TASK_ID_KEY, "4")

    assert result.changed
    assert repo.rev("task") == result.new_tip
    assert repo.rev("task~2") == kept
    assert repo.trailer("task~1", TASK_ID_KEY) == "4"
    assert repo.subjects("master..task") == ["tagged", "untagged", "tagged again"]
    assert set(result.rewritten) == {untagged, result.old_tip}
    assert repo.status() == ""


def test_backfill_keeps_author(repo, monkeypatch):
    repo.checkout("task", "master")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Someone Else")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "else@example.com")
    untagged = repo.commit("b.txt", "b\n", "untagged")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Dispatch Tester")
    vcs = GitVCS(repo.path)
    date_before = repo.git("log", "-1", "--format=%ad", untagged)

    trailers.backfill(vcs, "task", [untagged], TASK_ID_KEY, "9")

    assert repo.git("log", "-1", "--format=%an <%ae>", "task") == "Someone Else <else@example.com>"
    assert repo.git("log", "-1", "--format=%ad", "task") == date_before


def test_backfill_skips_commits_that_already_carry_the_key(repo):
    repo.checkout("task", "master")
    tagged = repo.commit("a.txt", "a\n", "tagged", task_id="4")
    vcs = GitVCS(repo.path)

    result = trailers.backfill(vcs, "task", [tagged], TASK_ID_KEY, "5")

    assert not result.changed
    assert repo.rev("task") == tagged
    assert repo.trailer("task", TASK_ID_KEY) == "4"


def test_backfill_rejects_commit_not_on_branch(repo):
    repo.checkout("elsewhere", "master")
    stray = repo.commit("x.txt", "x\n", "stray")
    repo.checkout("task", "master")
    repo.commit("a.txt", "a\n", "untagged")
    vcs = GitVCS(repo.path)
    before = repo.rev("task")

    with pytest.raises(TrailerRewriteError) as excinfo:
        trailers.backfill(vcs, "task", [stray], TASK_ID_KEY, "4")

    assert stray[:12] in str(excinfo.value)
    assert repo.rev("task") == before


def test_backfill_failure_midway_leaves_branch_untouched(repo):
    repo.checkout("task", "master")
    first = repo.commit("a.txt", "a\n", "first untagged")
    second = repo.commit("b.txt", "b\n", "second untagged")
    vcs = GitVCS(repo.path)
    before = repo.rev("task")
    real_commit_tree = GitVCS.commit_tree
    calls = []

    def flaky_commit_tree(self, *args, **kwargs):
        calls.append(args)
        if len(calls) == 2:
            raise GitCommandError(["git", "commit-tree"], 128, "simulated failure")
        return real_commit_tree(self, *args, **kwargs)

    with patch.object(GitVCS, "commit_tree", flaky_commit_tree):
        with pytest.raises(TrailerRewriteError, match="simulated failure"):
            trailers.backfill(vcs, "task", [first, second], TASK_ID_KEY, "4")

    assert repo.rev("task") == before
    assert repo.trailer("task", TASK_ID_KEY) == ""
