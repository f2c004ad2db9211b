"""Branch cleanup tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeCommandRunner, failed, ok
from featureflow.errors import ErrorKind
from featureflow.vcs.branch import BranchService, is_protected


@pytest.mark.parametrize("branch", ["main", "master", "develop", " Main "])
def test_protected_branches_are_never_deleted(tmp_path: Path, branch: str) -> None:
    """Protected names are refused before any git command runs."""
    runner = FakeCommandRunner()
    service = BranchService(runner)

    local = service.delete_local(tmp_path, branch, force=True)
    remote = service.delete_remote(tmp_path, branch)

    assert is_protected(branch)
    assert local.error_kind == ErrorKind.PERMISSION_DENIED
    assert remote.error_kind == ErrorKind.PERMISSION_DENIED
    assert runner.calls == []


def test_delete_local_uses_force_flag(tmp_path: Path) -> None:
    runner = FakeCommandRunner()
    service = BranchService(runner)

    assert service.delete_local(tmp_path, "feature/add-auth").success
    assert service.delete_local(tmp_path, "feature/add-auth", force=True).success

    deletes = [cmd for cmd in runner.commands() if cmd[1] == "branch"]
    assert deletes == [
        ["git", "branch", "-d", "feature/add-auth"],
        ["git", "branch", "-D", "feature/add-auth"],
    ]


def test_delete_missing_local_branch_is_success(tmp_path: Path) -> None:
    runner = FakeCommandRunner(lambda _tool, _args: failed("", exit_code=1))
    assert BranchService(runner).delete_local(tmp_path, "feature/gone").success
    assert len(runner.calls) == 1


def test_unmerged_branch_without_force_fails(tmp_path: Path) -> None:
    def handler(_tool: str, args: list[str]):  # noqa: ANN202
        if args[0] == "branch":
            return failed("error: The branch 'feature/x' is not fully merged.")
        return ok()

    result = BranchService(FakeCommandRunner(handler)).delete_local(tmp_path, "feature/x")
    assert not result.success
    assert "not fully merged" in (result.error or "")


def test_delete_remote_tolerates_missing_ref(tmp_path: Path) -> None:
    runner = FakeCommandRunner(
        lambda _tool, _args: failed("error: unable to delete 'feature/x': remote ref does not exist")
    )
    assert BranchService(runner).delete_remote(tmp_path, "feature/x").success
    assert runner.commands() == [["git", "push", "origin", "--delete", "feature/x"]]
