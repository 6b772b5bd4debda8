"""Materializing a source branch into a stack of task branches."""

from __future__ import annotations

import pytest

from git_dispatch.core.errors import (
    BaseOrPrefixMismatch,
    BranchExists,
    ConflictError,
    DuplicateOrder,
    InvalidBranchName,
    MissingTaskId,
    NoCommitsError,
    SourceNotFound,
)
from git_dispatch.core.stack import (
    detect_source,
    materialize_stack,
    prefix_of,
    recover_base_and_prefix,
    stack_branches,
    teardown,
)

pytestmark = pytest.mark.git_repo


def _split(repo, open_ctx, **kwargs):
    kwargs.setdefault("base", "master")
    kwargs.setdefault("prefix", "feat")
    return materialize_stack(open_ctx(repo), "source/feature", **kwargs)


# ============================================================================
# First split
# ============================================================================


def test_split_creates_one_stacked_branch_per_task(source_repo, open_ctx):
    result = _split(source_repo, open_ctx)

    assert result.created == ["feat/3", "feat/4", "feat/5"]
    assert source_repo.count("master..feat/3") == 1
    assert source_repo.count("master..feat/4") == 3
    assert source_repo.count("feat/3..feat/4") == 2
    assert source_repo.count("feat/4..feat/5") == 1
    assert source_repo.subjects("feat/3..feat/4") == ["Create GET endpoint", "Add DTOs"]
    assert source_repo.current_branch() == "source/feature"


def test_split_records_stack_and_source_links(source_repo, open_ctx):
    _split(source_repo, open_ctx)

    assert source_repo.config_all("branch.master.dispatchtasks") == ["feat/3"]
    assert source_repo.config_all("branch.feat/3.dispatchtasks") == ["feat/4"]
    assert source_repo.config_all("branch.feat/4.dispatchtasks") == ["feat/5"]
    assert source_repo.config_all("branch.feat/4.dispatchsource") == ["source/feature"]
    assert source_repo.config_all("branch.feat/4.dispatchtaskid") == ["4"]

    ctx = open_ctx(source_repo)
    assert stack_branches(ctx, "source/feature") == ["feat/3", "feat/4", "feat/5"]
    assert recover_base_and_prefix(ctx, "source/feature") == ("master", "feat")


def test_split_leaves_the_source_untouched(source_repo, open_ctx):
    before = source_repo.rev("source/feature")

    _split(source_repo, open_ctx)

    assert source_repo.rev("source/feature") == before


def test_dry_run_creates_nothing(source_repo, open_ctx):
    result = _split(source_repo, open_ctx, dry_run=True)

    assert result.dry_run
    assert result.branches == ["feat/3", "feat/4", "feat/5"]
    assert [len(p.commits) for p in result.plan] == [1, 2, 1]
    assert [p.parent for p in result.plan] == ["master", "feat/3", "feat/4"]
    assert not source_repo.branch_exists("feat/3")


def test_task_id_that_is_no_valid_branch_name_creates_nothing(repo, open_ctx):
    repo.checkout("source/feature", "master")
    repo.commit("a.txt", "a\n", "A", task_id="3")
    repo.commit("b.txt", "b\n", "B", task_id="fix login")

    with pytest.raises(InvalidBranchName) as excinfo:
        _split(repo, open_ctx)

    assert excinfo.value.task_id == "fix login"
    assert "fix login" in str(excinfo.value)
    assert not repo.branch_exists("feat/3")
    assert repo.config_all("branch.master.dispatchtasks") == []
    assert repo.config_all("branch.master.dispatchtasks") == []


def test_task_order_controls_stack_position(repo, open_ctx):
    repo.checkout("source/feature", "master")
    repo.commit("a.txt", "a\n", "A", task_id="20", task_order="3")
    repo.commit("b.txt", "b\n", "B", task_id="3", task_order="1")
    repo.commit("c.txt", "c\n", "C", task_id="10", task_order="2")

    result = _split(repo, open_ctx)

    assert result.branches == ["feat/3", "feat/10", "feat/20"]
    assert stack_branches(open_ctx(repo), "source/feature") == ["feat/3", "feat/10", "feat/20"]
    assert repo.subjects("master..feat/20") == ["B", "C", "A"]


def test_non_numeric_task_ids_are_used_verbatim(repo, open_ctx):
    repo.checkout("source/feature", "master")
    repo.commit("a.txt", "a\n", "A", task_id="PROJ-12")
    repo.commit("b.txt", "b\n", "B", task_id="fix_login")

    result = _split(repo, open_ctx)

    assert result.created == ["feat/PROJ-12", "feat/fix_login"]
    assert prefix_of("feat/PROJ-12", "PROJ-12") == "feat"


def test_merge_commits_on_source_are_ignored(source_repo, open_ctx):
    source_repo.checkout("side", "master")
    source_repo.commit("side.txt", "s\n", "side work", task_id="5")
    source_repo.checkout("source/feature")
    source_repo.git("merge", "--no-ff", "--no-edit", "side")

    result = _split(source_repo, open_ctx)

    assert result.branches == ["feat/3", "feat/4", "feat/5"]
    assert sorted(source_repo.subjects("feat/4..feat/5")) == ["Implement validation", "side work"]
    assert source_repo.count("master..feat/5") == 5


# ============================================================================
# Failures
# ============================================================================


def test_missing_task_id_creates_nothing(repo, open_ctx):
    repo.checkout("source/feature", "master")
    repo.commit("a.txt", "a\n", "A", task_id="3")
    repo.commit("b.txt", "b\n", "no trailer")

    with pytest.raises(MissingTaskId):
        _split(repo, open_ctx)

    assert not repo.branch_exists("feat/3")


def test_duplicate_order_creates_nothing(repo, open_ctx):
    repo.checkout("source/feature", "master")
    repo.commit("a.txt", "a\n", "A", task_id="3", task_order="1")
    repo.commit("b.txt", "b\n", "B", task_id="4", task_order="1")

    with pytest.raises(DuplicateOrder):
        _split(repo, open_ctx)

    assert not repo.branch_exists("feat/3")


def test_empty_source_is_rejected(repo, open_ctx):
    repo.checkout("source/feature", "master")

    with pytest.raises(NoCommitsError):
        _split(repo, open_ctx)


def test_unrelated_existing_branch_is_not_overwritten(source_repo, open_ctx):
    source_repo.git("branch", "feat/4", "master")

    with pytest.raises(BranchExists):
        _split(source_repo, open_ctx)

    assert source_repo.rev("feat/4") == source_repo.rev("master")
    assert not source_repo.branch_exists("feat/3")


def test_conflicting_task_removes_its_branch(repo, open_ctx):
    repo.checkout("source/feature", "master")
    repo.commit("x.txt", "one\n", "create", task_id="3")
    repo.commit("x.txt", "two\n", "rewrite", task_id="4")
    repo.commit("x.txt", "three\n", "rewrite again", task_id="3")

    with pytest.raises(ConflictError):
        _split(repo, open_ctx)

    assert not repo.branch_exists("feat/3")
    assert repo.config_all("branch.master.dispatchtasks") == []
    assert repo.current_branch() == "source/feature"
    assert repo.status() == ""


# ============================================================================
# Re-split
# ============================================================================


def test_resplit_without_new_tasks_is_a_no_op(source_repo, open_ctx):
    _split(source_repo, open_ctx)
    tips = {b: source_repo.rev(b) for b in ("feat/3", "feat/4", "feat/5")}

    result = materialize_stack(open_ctx(source_repo), "source/feature")

    assert result.created == []
    assert result.reused == ["feat/3", "feat/4", "feat/5"]
    assert {b: source_repo.rev(b) for b in tips} == tips
    assert source_repo.config_all("branch.feat/3.dispatchtasks") == ["feat/4"]


def test_resplit_appends_new_task_at_tip(source_repo, open_ctx):
    _split(source_repo, open_ctx)
    source_repo.commit("docs.txt", "e\n", "Write docs", task_id="6")

    result = materialize_stack(open_ctx(source_repo), "source/feature")

    assert result.created == ["feat/6"]
    assert not result.needs_restack
    assert source_repo.config_all("branch.feat/5.dispatchtasks") == ["feat/6"]
    assert source_repo.subjects("feat/5..feat/6") == ["Write docs"]
    assert any("no Task-Order" in w for w in result.warnings)


def test_resplit_splices_new_task_mid_stack(repo, open_ctx):
    repo.checkout("source/feature", "master")
    repo.commit("a.txt", "a\n", "A", task_id="3", task_order="10")
    repo.commit("b.txt", "b\n", "B", task_id="4", task_order="20")
    _split(repo, open_ctx)
    tip_4 = repo.rev("feat/4")
    repo.commit("c.txt", "c\n", "C", task_id="35", task_order="15")

    result = materialize_stack(open_ctx(repo), "source/feature")

    assert result.created == ["feat/35"]
    assert result.spliced == ["feat/35"]
    assert result.needs_restack
    assert repo.config_all("branch.feat/3.dispatchtasks") == ["feat/35"]
    assert repo.config_all("branch.feat/35.dispatchtasks") == ["feat/4"]
    assert stack_branches(open_ctx(repo), "source/feature") == ["feat/3", "feat/35", "feat/4"]
    assert repo.rev("feat/4") == tip_4
    assert repo.subjects("feat/3..feat/35") == ["C"]


def test_resplit_splices_consecutive_new_tasks(repo, open_ctx):
    repo.checkout("source/feature", "master")
    repo.commit("a.txt", "a\n", "A", task_id="3", task_order="10")
    repo.commit("b.txt", "b\n", "B", task_id="4", task_order="20")
    _split(repo, open_ctx)
    repo.commit("c.txt", "c\n", "C", task_id="35", task_order="15")
    repo.commit("d.txt", "d\n", "D", task_id="36", task_order="16")

    result = materialize_stack(open_ctx(repo), "source/feature")

    assert result.created == ["feat/35", "feat/36"]
    assert result.spliced == ["feat/35", "feat/36"]
    assert repo.config_all("branch.feat/3.dispatchtasks") == ["feat/35"]
    assert repo.config_all("branch.feat/35.dispatchtasks") == ["feat/36"]
    assert repo.config_all("branch.feat/36.dispatchtasks") == ["feat/4"]
    assert stack_branches(open_ctx(repo), "source/feature") == ["feat/3", "feat/35", "feat/36", "feat/4"]


def test_conflict_in_consecutive_insertions_leaves_the_stack_linear(repo, open_ctx):
    repo.checkout("source/feature", "master")
    repo.commit("a.txt", "a\n", "A", task_id="3", task_order="10")
    repo.commit("b.txt", "b\n", "B", task_id="4", task_order="20")
    _split(repo, open_ctx)
    repo.commit("c.txt", "c\n", "C", task_id="35", task_order="15")
    # b.txt only exists from task 4 on, so this cannot apply below feat/4
    repo.commit("b.txt", "b2\n", "Edit B", task_id="36", task_order="16")

    with pytest.raises(ConflictError):
        materialize_stack(open_ctx(repo), "source/feature")

    assert not repo.branch_exists("feat/35")
    assert not repo.branch_exists("feat/36")
    assert repo.config_all("branch.feat/3.dispatchtasks") == ["feat/4"]
    assert stack_branches(open_ctx(repo), "source/feature") == ["feat/3", "feat/4"]
    assert repo.current_branch() == "source/feature"
    assert repo.status() == ""


def test_resplit_with_different_base_is_rejected(source_repo, open_ctx):
    _split(source_repo, open_ctx)
    source_repo.git("branch", "develop", "master")

    with pytest.raises(BaseOrPrefixMismatch) as excinfo:
        materialize_stack(open_ctx(source_repo), "source/feature", base="develop")

    assert "--base master" in str(excinfo.value)


def test_resplit_with_different_prefix_is_rejected(source_repo, open_ctx):
    _split(source_repo, open_ctx)

    with pytest.raises(BaseOrPrefixMismatch) as excinfo:
        materialize_stack(open_ctx(source_repo), "source/feature", prefix="task")

    assert "--name feat" in str(excinfo.value)


# ============================================================================
# Source detection and teardown
# ============================================================================


def test_detect_source(source_repo, open_ctx):
    _split(source_repo, open_ctx)
    ctx = open_ctx(source_repo)

    assert detect_source(ctx, "explicit", "feat/4") == "explicit"
    assert detect_source(ctx, None, "source/feature") == "source/feature"
    assert detect_source(ctx, None, "feat/4") == "source/feature"
    with pytest.raises(SourceNotFound):
        detect_source(ctx, None, "master")


def test_teardown_unlinks_and_deletes(source_repo, open_ctx):
    _split(source_repo, open_ctx)

    result = teardown(open_ctx(source_repo), "source/feature", delete_branches=True)

    assert result.unlinked == ["feat/3", "feat/4", "feat/5"]
    assert result.deleted == ["feat/3", "feat/4", "feat/5"]
    assert not source_repo.branch_exists("feat/4")
    assert source_repo.config_all("branch.master.dispatchtasks") == []
    assert source_repo.config_all("branch.feat/4.dispatchsource") == []


def test_teardown_keeps_branches_by_default(source_repo, open_ctx):
    _split(source_repo, open_ctx)

    teardown(open_ctx(source_repo), "source/feature")

    assert source_repo.branch_exists("feat/4")
    assert open_ctx(source_repo).store.task_branches_of("source/feature") == []
