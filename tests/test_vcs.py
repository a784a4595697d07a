from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from uegpm.errors import DivergedError, ExternalToolError, InconsistentStateError, NotFoundError, ToolUnavailableError
from uegpm.process import run_command
from uegpm.vcs import GitRepository


def _completed(args: list[str], returncode: int = 0, stdout: str = "") -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(args, returncode, stdout=stdout, stderr="")


def _repo(tmp_path: Path, runner: MagicMock, **kwargs) -> GitRepository:
    return GitRepository(tmp_path / "origin", tmp_path / "working-copies", runner=runner, **kwargs)


def test_web_url_strips_git_suffix(tmp_path: Path) -> None:
    repo = _repo(tmp_path, MagicMock(), remote_url="https://example.com/org/plugin.git")

    assert repo.web_url == "https://example.com/org/plugin"


def test_resolve_default_branch_parses_remote_head(tmp_path: Path) -> None:
    runner = MagicMock(return_value=_completed([], stdout="* remote origin\n  HEAD branch: main\n"))

    assert _repo(tmp_path, runner).resolve_default_branch() == "main"


@pytest.mark.parametrize("output", ["* remote origin\n  HEAD branch: (unknown)\n", ""])
def test_resolve_default_branch_falls_back_to_dev(tmp_path: Path, output: str) -> None:
    runner = MagicMock(return_value=_completed([], stdout=output))

    assert _repo(tmp_path, runner).resolve_default_branch() == "dev"


def test_resolve_default_branch_falls_back_on_error(tmp_path: Path) -> None:
    runner = MagicMock(side_effect=ExternalToolError(["git"], 128, "", "fatal: not a git repository"))

    assert _repo(tmp_path, runner).resolve_default_branch() == "dev"


def test_fetch_requires_origin(tmp_path: Path) -> None:
    runner = MagicMock()

    with pytest.raises(NotFoundError):
        _repo(tmp_path, runner).fetch_all()
    runner.assert_not_called()


def test_clone_is_skipped_when_origin_exists(tmp_path: Path) -> None:
    (tmp_path / "origin" / ".git").mkdir(parents=True)
    runner = MagicMock()

    _repo(tmp_path, runner).clone_origin()

    runner.assert_not_called()


def test_create_working_copy_refuses_occupied_path(tmp_path: Path) -> None:
    (tmp_path / "origin" / ".git").mkdir(parents=True)
    occupied = tmp_path / "working-copies" / "UE_5.3"
    occupied.mkdir(parents=True)
    (occupied / "file.txt").write_text("x")
    runner = MagicMock()

    with pytest.raises(InconsistentStateError):
        _repo(tmp_path, runner).create_working_copy("5.3")
    runner.assert_not_called()


def test_create_working_copy_prunes_and_branches(tmp_path: Path) -> None:
    (tmp_path / "origin" / ".git").mkdir(parents=True)
    commands: list[list[str]] = []

    def runner(args: list[str], cwd=None, check=True) -> subprocess.CompletedProcess[str]:
        commands.append(args)
        if "add" in args:
            Path(args[-2]).mkdir(parents=True)
        return _completed(args)

    path = _repo(tmp_path, MagicMock(side_effect=runner), branch="release").create_working_copy("5.3")

    origin = str(tmp_path / "origin")
    assert path == tmp_path / "working-copies" / "UE_5.3"
    assert commands == [
        ["git", "-C", origin, "worktree", "prune"],
        ["git", "-C", origin, "branch", "--force", "engine-5.3", "origin/release"],
        ["git", "-C", origin, "worktree", "add", str(path), "engine-5.3"],
    ]


def test_update_info_counts_remote_commits(tmp_path: Path) -> None:
    (tmp_path / "origin" / ".git").mkdir(parents=True)
    (tmp_path / "working-copies" / "UE_5.3").mkdir(parents=True)
    outputs = iter(["aaa111\n", "bbb222\n", "3\n"])
    runner = MagicMock(side_effect=lambda args, **_: _completed(args, stdout=next(outputs)))

    info = _repo(tmp_path, runner, remote_url="https://example.com/plugin").get_update_info("5.3")

    assert info.local_sha == "aaa111"
    assert info.remote_sha == "bbb222"
    assert info.commits_ahead == 3
    assert info.compare_url == "https://example.com/plugin/compare/aaa111...bbb222"
    assert info.latest_commit_url == "https://example.com/plugin/commit/bbb222"


def test_update_info_requires_working_copy(tmp_path: Path) -> None:
    with pytest.raises(NotFoundError):
        _repo(tmp_path, MagicMock()).get_update_info("5.3")


def test_update_working_copy_detects_divergence(tmp_path: Path) -> None:
    (tmp_path / "working-copies" / "UE_5.3").mkdir(parents=True)
    runner = MagicMock(return_value=_completed([], returncode=1))

    with pytest.raises(DivergedError):
        _repo(tmp_path, runner).update_working_copy("5.3")
    assert runner.call_count == 1


def test_remove_working_copy_escalates_to_directory_delete(tmp_path: Path) -> None:
    path = tmp_path / "working-copies" / "UE_5.3"
    path.mkdir(parents=True)
    (path / "Binaries").mkdir()
    runner = MagicMock(side_effect=ExternalToolError(["git"], 128, "", "fatal"))

    _repo(tmp_path, runner).remove_working_copy("5.3")

    assert not path.exists()


def test_run_command_reports_missing_tool() -> None:
    with pytest.raises(ToolUnavailableError):
        run_command(["uegpm-definitely-not-a-real-tool"])


def test_run_command_wraps_failures(tmp_path: Path) -> None:
    with pytest.raises(ExternalToolError) as excinfo:
        run_command(["sh", "-c", "echo broken >&2; exit 3"], cwd=tmp_path)

    assert excinfo.value.returncode == 3
    assert excinfo.value.stderr.strip() == "broken"

    result = run_command(["sh", "-c", "exit 3"], check=False)
    assert result.returncode == 3


def test_real_clone_and_working_copy(tmp_path: Path, remote_repo: Path, commit_to, git_head) -> None:
    repo = GitRepository(tmp_path / "data" / "origin", tmp_path / "data" / "working-copies", remote_url=str(remote_repo))
    assert repo.is_tool_available()
    assert repo.tool_version().startswith("git version")

    repo.clone_origin()
    assert repo.is_origin_cloned()
    assert repo.resolve_default_branch() == "dev"

    path = repo.create_working_copy("5.3")
    assert (path / "GitSourceControl.uplugin").is_file()
    assert repo.head_commit("5.3") == git_head(remote_repo)

    newest = commit_to(remote_repo, "feature.txt")
    repo.fetch_all()
    info = repo.get_update_info("5.3")
    assert info.commits_ahead == 1
    assert info.remote_sha == newest

    repo.update_working_copy("5.3")
    assert repo.head_commit("5.3") == newest
    assert repo.get_update_info("5.3").is_current

    repo.remove_working_copy("5.3")
    assert not repo.working_copy_exists("5.3")

    repo.remove_origin()
    assert not repo.is_origin_cloned()
