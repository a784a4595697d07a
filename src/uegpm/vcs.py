"""Git adapter owning the shared origin clone and the per-engine working copies."""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

from .errors import DivergedError, ExternalToolError, InconsistentStateError, NotFoundError, UegpmError
from .filesystem import occupied
from .layout import DEFAULT_BRANCH, DEFAULT_REMOTE_URL, engine_branch_name, working_copy_dirname
from .models import UpdateInfo
from .process import Runner, run_command

logger = logging.getLogger(__name__)


class GitRepository:
    """Wraps the single origin clone and the worktrees derived from it.

    Every working copy is a ``git worktree`` of the origin checked out on its
    own ``engine-<version>`` branch, which starts at ``origin/<branch>``.
    """

    def __init__(
        self,
        origin_dir: Path,
        working_copies_dir: Path,
        *,
        remote_url: str = DEFAULT_REMOTE_URL,
        branch: str = DEFAULT_BRANCH,
        runner: Runner = run_command,
    ) -> None:
        self.origin_dir = origin_dir
        self.working_copies_dir = working_copies_dir
        self.remote_url = remote_url
        self.branch = branch
        self._run = runner

    @property
    def web_url(self) -> str:
        url = self.remote_url.rstrip("/")
        return url[: -len(".git")] if url.endswith(".git") else url

    def _git(self, *args: str, cwd: Path | None = None, check: bool = True) -> subprocess.CompletedProcess[str]:
        return self._run(["git", *args], cwd=cwd, check=check)

    def _git_out(self, *args: str, cwd: Path | None = None) -> str:
        return self._git(*args, cwd=cwd).stdout.strip()

    # ------------------------------------------------------------------
    # Tool and origin

    def is_tool_available(self) -> bool:
        return shutil.which("git") is not None

    def tool_version(self) -> str:
        return self._git_out("--version")

    def is_origin_cloned(self) -> bool:
        return (self.origin_dir / ".git").exists()

    def clone_origin(self) -> None:
        if self.is_origin_cloned():
            logger.debug("Origin already cloned at %s", self.origin_dir)
            return
        self.origin_dir.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Cloning %s into %s", self.remote_url, self.origin_dir)
        self._git("clone", self.remote_url, str(self.origin_dir))

    def resolve_default_branch(self) -> str:
        """Return the branch the remote advertises as HEAD, or ``dev``."""

        try:
            output = self._git_out("-C", str(self.origin_dir), "remote", "show", "origin")
        except UegpmError as exc:
            logger.warning("Could not query default branch, falling back to %s: %s", DEFAULT_BRANCH, exc)
            return DEFAULT_BRANCH

        for line in output.splitlines():
            if "HEAD branch:" in line:
                branch = line.split(":", 1)[1].strip()
                if branch and branch != "(unknown)":
                    return branch
        return DEFAULT_BRANCH

    def fetch_all(self) -> None:
        self._require_origin()
        logger.info("Fetching all remotes in %s", self.origin_dir)
        self._git("-C", str(self.origin_dir), "fetch", "--all", "--prune")

    def remove_origin(self) -> None:
        if not occupied(self.origin_dir):
            return
        logger.info("Removing origin clone %s", self.origin_dir)
        shutil.rmtree(self.origin_dir)

    def _require_origin(self) -> None:
        if not self.is_origin_cloned():
            raise NotFoundError(f"Origin repository is not cloned at {self.origin_dir}")

    # ------------------------------------------------------------------
    # Working copies

    def working_copy_path(self, version: str) -> Path:
        return self.working_copies_dir / working_copy_dirname(version)

    def working_copy_exists(self, version: str) -> bool:
        return self.working_copy_path(version).is_dir()

    def create_working_copy(self, version: str) -> Path:
        self._require_origin()
        path = self.working_copy_path(version)
        if path.is_dir() and any(path.iterdir()):
            raise InconsistentStateError(f"Working copy path is already occupied: {path}")
        if occupied(path) and not path.is_dir():
            raise InconsistentStateError(f"Working copy path is occupied by a file: {path}")

        self.working_copies_dir.mkdir(parents=True, exist_ok=True)
        origin = str(self.origin_dir)
        branch = engine_branch_name(version)

        # Registrations of worktrees deleted out-of-band would block both commands below.
        self._git("-C", origin, "worktree", "prune")
        self._git("-C", origin, "branch", "--force", branch, f"origin/{self.branch}")
        logger.info("Creating working copy %s on %s", path, branch)
        self._git("-C", origin, "worktree", "add", str(path), branch)

        if not path.is_dir():
            raise InconsistentStateError(f"Working copy directory was not created: {path}")
        return path

    def head_commit(self, version: str) -> str:
        return self._git_out("-C", str(self.working_copy_path(version)), "rev-parse", "HEAD")

    def get_update_info(self, version: str, branch: str | None = None) -> UpdateInfo:
        """Compare a working copy against ``origin/<branch>``.

        ``commits_ahead`` counts commits reachable from the remote ref but not
        from the working copy. Commits that exist only locally are not counted.
        """
        branch = branch or self.branch
        if not self.working_copy_exists(version):
            raise NotFoundError(f"Working copy does not exist for version {version}")
        self._require_origin()

        origin = str(self.origin_dir)
        local_sha = self.head_commit(version)
        remote_sha = self._git_out("-C", origin, "rev-parse", f"origin/{branch}")
        count = self._git_out("-C", origin, "rev-list", "--count", f"{local_sha}..origin/{branch}")
        try:
            commits_ahead = int(count)
        except ValueError as exc:
            raise InconsistentStateError(f"Unexpected rev-list output: {count!r}") from exc

        return UpdateInfo(
            version=version,
            local_sha=local_sha,
            remote_sha=remote_sha,
            commits_ahead=commits_ahead,
            compare_url=f"{self.web_url}/compare/{local_sha}...{remote_sha}",
            latest_commit_url=f"{self.web_url}/commit/{remote_sha}",
        )

    def update_working_copy(self, version: str, branch: str | None = None) -> None:
        branch = branch or self.branch
        path = self.working_copy_path(version)
        if not self.working_copy_exists(version):
            raise NotFoundError(f"Working copy does not exist for version {version}")

        ancestry = self._git("-C", str(path), "merge-base", "--is-ancestor", "HEAD", f"origin/{branch}", check=False)
        if ancestry.returncode == 1:
            raise DivergedError(
                f"Working copy {path} has diverged from origin/{branch}; refusing to discard local commits"
            )
        if ancestry.returncode != 0:
            raise ExternalToolError(ancestry.args, ancestry.returncode, ancestry.stdout or "", ancestry.stderr or "")

        logger.info("Fast-forwarding %s to origin/%s", path, branch)
        self._git("-C", str(path), "merge", "--ff-only", f"origin/{branch}")

    def remove_working_copy(self, version: str) -> None:
        """Remove a working copy, escalating from git to a plain directory delete."""

        path = self.working_copy_path(version)
        origin = str(self.origin_dir)

        if occupied(path):
            self._remove_worktree(path)

        try:
            self._git("-C", origin, "worktree", "prune")
        except UegpmError as exc:
            logger.debug("Worktree prune failed: %s", exc)

        branch = engine_branch_name(version)
        try:
            self._git("-C", origin, "branch", "-D", branch)
        except UegpmError as exc:
            logger.warning("Failed to remove branch %s: %s", branch, exc)

    def _remove_worktree(self, path: Path) -> None:
        origin = str(self.origin_dir)
        try:
            self._git("-C", origin, "worktree", "remove", str(path))
            logger.info("Removed working copy %s", path)
            return
        except UegpmError as exc:
            logger.warning("Worktree removal failed, trying force removal: %s", exc)

        try:
            self._git("-C", origin, "worktree", "remove", "--force", str(path))
            logger.info("Force removed working copy %s", path)
            return
        except UegpmError as exc:
            logger.warning("Forced worktree removal failed, deleting directory: %s", exc)

        try:
            shutil.rmtree(path)
        except OSError as exc:
            raise InconsistentStateError(f"Failed to remove working copy directory {path}: {exc}") from exc
        if occupied(path):
            raise InconsistentStateError(f"Working copy still exists after removal attempts: {path}")
        logger.info("Manually removed working copy directory %s", path)
