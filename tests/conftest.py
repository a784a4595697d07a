from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Callable

import pytest

from uegpm.config import Settings
from uegpm.errors import ExternalToolError
from uegpm.layout import (
    ARTIFACTS_DIR,
    BUILD_BATCH_DIR,
    EDITOR_EXECUTABLE,
    EXPECTED_ARTIFACTS,
    PLUGIN_DESCRIPTOR,
    PLUGINS_DIR,
    STOCK_PLUGIN_MANIFEST,
)
from uegpm.manager import PluginManager
from uegpm.models import Target

GIT_AVAILABLE = shutil.which("git") is not None

RUN_UAT_SCRIPT = """#!/bin/sh
for arg in "$@"; do
  case "$arg" in
    -Package=*) package="${arg#-Package=}" ;;
  esac
done
mkdir -p "$package/Binaries/Win64"
touch "$package/Binaries/Win64/UnrealEditor-GitSourceControl.dll" "$package/Binaries/Win64/UnrealEditor.modules"
"""


class FakeBuilder:
    """Stands in for RunUAT by writing the expected binaries straight into the working copy."""

    def __init__(self) -> None:
        self.calls: list[tuple[Target, Path]] = []
        self.fail_for: set[str] = set()

    def build(self, target: Target, working_copy: Path) -> None:
        self.calls.append((target, working_copy))
        if target.version in self.fail_for:
            raise ExternalToolError(["RunUAT", "BuildPlugin"], 5, "", "compile error")
        binaries = working_copy / ARTIFACTS_DIR
        binaries.mkdir(parents=True, exist_ok=True)
        for name in EXPECTED_ARTIFACTS:
            (binaries / name).write_text("built\n")


def git(*args: str, cwd: Path) -> str:
    result = subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True, text=True)
    return result.stdout.strip()


@pytest.fixture
def fake_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    return home


@pytest.fixture
def git_env(monkeypatch: pytest.MonkeyPatch, fake_home: Path) -> None:
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "uegpm tests")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "tests@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "uegpm tests")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "tests@example.com")


@pytest.fixture
def engine_root(tmp_path: Path) -> Path:
    root = tmp_path / "engines"
    root.mkdir()
    return root


@pytest.fixture
def make_engine(engine_root: Path) -> Callable[..., Path]:
    def _make(
        version: str = "5.3",
        *,
        root: Path | None = None,
        name: str | None = None,
        valid: bool = True,
        stock: bool = True,
        uat: bool = False,
    ) -> Path:
        engine = (root or engine_root) / (name or f"UE_{version}")
        (engine / PLUGINS_DIR).mkdir(parents=True, exist_ok=True)
        if valid:
            editor = engine / EDITOR_EXECUTABLE
            editor.parent.mkdir(parents=True, exist_ok=True)
            editor.write_bytes(b"MZ")
        if stock:
            manifest = engine / STOCK_PLUGIN_MANIFEST
            manifest.parent.mkdir(parents=True, exist_ok=True)
            manifest.write_text('{"FriendlyName": "Git"}\n')
        if uat:
            script = engine / BUILD_BATCH_DIR / "RunUAT.sh"
            script.parent.mkdir(parents=True, exist_ok=True)
            script.write_text(RUN_UAT_SCRIPT)
            script.chmod(0o755)
        return engine

    return _make


@pytest.fixture
def remote_repo(tmp_path: Path, git_env: None) -> Path:
    """A local repository standing in for the plugin's upstream, on branch ``dev``."""

    if not GIT_AVAILABLE:
        pytest.skip("git is not installed")
    repo = tmp_path / "remote"
    repo.mkdir()
    git("init", "-q", cwd=repo)
    git("symbolic-ref", "HEAD", "refs/heads/dev", cwd=repo)
    (repo / PLUGIN_DESCRIPTOR).write_text('{"FriendlyName": "Git LFS 2"}\n')
    git("add", ".", cwd=repo)
    git("commit", "-q", "-m", "Initial plugin", cwd=repo)
    return repo


@pytest.fixture
def commit_to(git_env: None) -> Callable[[Path, str], str]:
    """Commit a new file to ``repo`` and return the new HEAD sha."""

    def _commit(repo: Path, name: str) -> str:
        (repo / name).write_text(f"{name}\n")
        git("add", name, cwd=repo)
        git("commit", "-q", "-m", f"Add {name}", cwd=repo)
        return git("rev-parse", "HEAD", cwd=repo)

    return _commit


@pytest.fixture
def settings(tmp_path: Path, remote_repo: Path, engine_root: Path) -> Settings:
    return Settings(
        data_dir=tmp_path / "data",
        remote_url=str(remote_repo),
        default_root=None,
        custom_roots=(engine_root,),
    )


@pytest.fixture
def builder() -> FakeBuilder:
    return FakeBuilder()


@pytest.fixture
def manager(settings: Settings, builder: FakeBuilder) -> PluginManager:
    return PluginManager(settings, builder=builder)


@pytest.fixture
def git_head(git_env: None) -> Callable[[Path], str]:
    def _head(repo: Path) -> str:
        return git("rev-parse", "HEAD", cwd=repo)

    return _head
