"""High level orchestration for uegpm operations."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator

from .build import BuildDriver, UnrealBuildDriver
from .config import Settings
from .discovery import discover, extract_version, is_valid_engine, sort_targets
from .errors import NotFoundError, StateError, ToolUnavailableError, TransitionError, UegpmError
from .filesystem import path_key, remove_path
from .layout import ARTIFACTS_DIR, working_copy_dirname
from .links import LinkManager
from .manifest import Manifest
from .models import (
    BatchOutcome,
    Broken,
    Complete,
    ComponentState,
    InstallResult,
    ManagedEngine,
    NeverSetUp,
    RebuildResult,
    Remediation,
    RepairResult,
    SetupStatus,
    Target,
    TargetStatus,
    TransitionResult,
    UninstallResult,
    UpdateInfo,
    UpdateResult,
)
from .status import StatusDetector, classify
from .vcs import GitRepository

logger = logging.getLogger(__name__)


class PluginManager:
    """Drives install, update, repair and uninstall for engine targets.

    Status is derived from disk whenever it is needed and never cached. Every
    step of a transition runs in order; the first failure stops the transition
    and is raised as a ``TransitionError`` naming the step and target.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        vcs: GitRepository | None = None,
        links: LinkManager | None = None,
        builder: BuildDriver | None = None,
        manifest: Manifest | None = None,
    ) -> None:
        self.settings = settings
        self.vcs = vcs or GitRepository(
            settings.origin_dir,
            settings.working_copies_dir,
            remote_url=settings.remote_url,
            branch=settings.branch,
        )
        self.links = links or LinkManager()
        self.builder = builder or UnrealBuildDriver()
        self.manifest = manifest if manifest is not None else Manifest.load(settings.manifest_path)
        self.detector = StatusDetector(self.vcs, self.links)

    # ------------------------------------------------------------------
    # Queries

    def targets(self, *, include_invalid: bool = False) -> list[Target]:
        """Discovered engines plus managed engines that live outside the scanned roots."""

        found = discover(self.settings.engine_roots(), include_invalid=include_invalid)
        seen = {path_key(target.path) for target in found}
        for record in self.manifest.entries():
            if path_key(record.engine_path) not in seen and record.engine_path.is_dir():
                found.append(record.target())
        return sort_targets(found)

    def find_target(self, selector: str) -> Target:
        """Return the target whose version or path matches ``selector``."""

        candidates = self.targets()
        by_version = [target for target in candidates if target.version == selector]
        if len(by_version) == 1:
            return by_version[0]
        if len(by_version) > 1:
            paths = ", ".join(str(target.path) for target in by_version)
            raise StateError(f"Several engines have version {selector} ({paths}); select one by path")

        key = path_key(Path(selector).expanduser())
        for target in candidates:
            if path_key(target.path) == key:
                return target

        path = Path(selector).expanduser()
        if path.is_dir() and is_valid_engine(path):
            return Target(path=path.absolute(), version=extract_version(path))
        raise NotFoundError(f"No engine installation matches '{selector}'")

    def status(self, target: Target) -> SetupStatus:
        return self.detector.detect(target)

    def status_all(self) -> list[TargetStatus]:
        return self.detector.detect_all(self.targets())

    def check_updates(self, target: Target) -> UpdateInfo:
        """Fetch the origin and report how far the target's working copy is behind."""

        self._require_tool()
        with self._step("fetch origin", target):
            self.vcs.fetch_all()
        with self._step("check for updates", target):
            return self.vcs.get_update_info(target.version, self.settings.branch)

    def detect_default_branch(self) -> str:
        return self.vcs.resolve_default_branch()

    # ------------------------------------------------------------------
    # Transitions

    def install(self, target: Target) -> InstallResult:
        self._require_tool()
        with self._step("check status", target):
            status = self.status(target)
            if not isinstance(status, NeverSetUp):
                raise StateError(f"{target.label} is already set up ({status.state.value}); use repair or update")

        with self._step("clone origin", target):
            self.vcs.clone_origin()
        with self._step("create working copy", target):
            working_copy = self.vcs.create_working_copy(target.version)
        # The link has to exist before building; the build tooling looks it up.
        with self._step("create link", target):
            link = self.links.create_link(target.path, working_copy)
        disabled = self._disable_competing_if_colliding(target)
        self._build(target, working_copy, disabled_now=disabled)
        with self._step("save manifest", target):
            self._record(target, disabled_now=disabled)

        logger.info("%s setup complete", target.label)
        return InstallResult(
            target=target,
            working_copy=working_copy,
            link=link,
            disabled_competing_component=disabled,
        )

    def update(self, target: Target) -> UpdateResult:
        self._require_tool()
        with self._step("check status", target):
            status = self.status(target)
            if not isinstance(status, Complete):
                raise StateError(f"{target.label} is {status.state.value}; only complete setups can be updated")

        with self._step("fetch origin", target):
            self.vcs.fetch_all()
        with self._step("check for updates", target):
            info = self.vcs.get_update_info(target.version, self.settings.branch)
        if info.is_current:
            logger.info("%s is already up to date at %s", target.label, info.local_sha[:8])
            return UpdateResult(target=target, info=info, commits_applied=0)

        with self._step("fast-forward working copy", target):
            self.vcs.update_working_copy(target.version, self.settings.branch)
        disabled = self._disable_competing_if_colliding(target)
        self._build(target, self.vcs.working_copy_path(target.version), disabled_now=disabled)
        with self._step("save manifest", target):
            self._record(target, disabled_now=disabled)

        logger.info("%s updated (%d commits applied)", target.label, info.commits_ahead)
        return UpdateResult(target=target, info=info, commits_applied=info.commits_ahead)

    def repair(self, target: Target) -> RepairResult:
        """Fix only the conditions that currently fail, in a fixed order."""

        self._require_tool()
        with self._step("check status", target):
            conditions = self.detector.conditions(target)
            status = classify(conditions)
            if isinstance(status, NeverSetUp):
                raise StateError(f"{target.label} has never been set up; install it instead")
        if isinstance(status, Complete):
            return RepairResult(target=target, issues=(), remediations=(), status=status)

        remediations: list[Remediation] = []
        working_copy = self.vcs.working_copy_path(target.version)

        if not conditions.working_copy_exists:
            with self._step("clone origin", target):
                self.vcs.clone_origin()
            with self._step("create working copy", target):
                self.vcs.create_working_copy(target.version)
            remediations.append(Remediation.WORKING_COPY)

        if not (conditions.link_exists and conditions.link_valid):
            with self._step("recreate link", target):
                self.links.remove_link(self.links.link_path(target.path))
                self.links.create_link(target.path, working_copy)
            remediations.append(Remediation.LINK)

        if not conditions.artifacts_exist:
            self._build(target, working_copy, disabled_now=False)
            remediations.append(Remediation.BUILD)

        disabled = False
        if conditions.component_state is ComponentState.ENABLED:
            with self._step("disable competing component", target):
                self.links.disable_competing_component(target.path)
            disabled = True
            remediations.append(Remediation.COMPETING_COMPONENT)

        with self._step("save manifest", target):
            self._record(target, disabled_now=disabled)

        logger.info("%s repaired: %s", target.label, ", ".join(item.value for item in remediations))
        return RepairResult(
            target=target,
            issues=status.issues,
            remediations=tuple(remediations),
            status=self.status(target),
        )

    def rebuild(self, target: Target) -> RebuildResult:
        """Build the plugin again from the target's current working copy.

        Git and the link are left alone. This is the way out after a build
        failed part way through an update.
        """
        with self._step("check status", target):
            conditions = self.detector.conditions(target)
            status = classify(conditions)
            if isinstance(status, NeverSetUp):
                raise StateError(f"{target.label} has never been set up; install it instead")
            if not conditions.working_copy_exists:
                raise StateError(f"{target.label} has no working copy; repair it instead")

        working_copy = self.vcs.working_copy_path(target.version)
        disabled = self._disable_competing_if_colliding(target)
        self._build(target, working_copy, disabled_now=disabled)
        with self._step("save manifest", target):
            self._record(target, disabled_now=disabled)

        logger.info("%s rebuilt", target.label)
        return RebuildResult(target=target, disabled_competing_component=disabled, status=self.status(target))

    def uninstall(self, target: Target) -> UninstallResult:
        record = self.manifest.get(target.path)
        with self._step("check status", target):
            status = self.status(target)
            if isinstance(status, NeverSetUp) and record is None:
                raise StateError(f"{target.label} is not set up")

        with self._step("remove link", target):
            self.links.remove_link(self.links.link_path(target.path))

        reenabled = False
        if record is not None and record.competing_component_disabled_by_tool:
            with self._step("re-enable competing component", target):
                try:
                    self.links.enable_competing_component(target.path)
                    reenabled = True
                except NotFoundError as exc:
                    logger.warning("Nothing to restore for %s: %s", target.label, exc)

        with self._step("remove working copy", target):
            if self._working_copy_shared(target):
                logger.info("Keeping working copy for %s; another managed engine uses it", target.label)
            else:
                self.vcs.remove_working_copy(target.version)

        with self._step("save manifest", target):
            self.manifest.remove(target.path)
            self.manifest.save()

        with self._step("remove origin", target):
            origin_removed = self._remove_origin_if_unused()

        logger.info("%s uninstalled", target.label)
        return UninstallResult(target=target, reenabled_competing_component=reenabled, origin_removed=origin_removed)

    # ------------------------------------------------------------------
    # Batches

    def update_all(self) -> list[BatchOutcome]:
        self._require_tool()
        return [
            self._run_isolated(self.update, entry.target)
            for entry in self.status_all()
            if isinstance(entry.status, Complete)
        ]

    def repair_all(self) -> list[BatchOutcome]:
        self._require_tool()
        return [
            self._run_isolated(self.repair, entry.target)
            for entry in self.status_all()
            if isinstance(entry.status, Broken)
        ]

    # ------------------------------------------------------------------
    # Stock plugin maintenance

    def enable_competing_component(self, target: Target) -> None:
        with self._step("re-enable competing component", target):
            self.links.enable_competing_component(target.path)
            self._set_disabled_flag(target, False)

    def disable_competing_component(self, target: Target) -> None:
        with self._step("disable competing component", target):
            self.links.disable_competing_component(target.path)
            self._set_disabled_flag(target, True)

    # ------------------------------------------------------------------
    # Internal helpers

    @contextmanager
    def _step(self, name: str, target: Target) -> Iterator[None]:
        logger.debug("%s: %s", target.label, name)
        try:
            yield
        except TransitionError:
            raise
        except (UegpmError, OSError) as exc:
            logger.debug("%s: %s failed: %s", target.label, name, exc)
            raise TransitionError(name, target, exc) from exc

    def _require_tool(self) -> None:
        if not self.vcs.is_tool_available():
            raise ToolUnavailableError("git")

    def _run_isolated(self, action: Callable[[Target], TransitionResult], target: Target) -> BatchOutcome:
        try:
            return BatchOutcome(target=target, result=action(target))
        except TransitionError as exc:
            logger.error("%s", exc)
            return BatchOutcome(target=target, error=exc)

    def _disable_competing_if_colliding(self, target: Target) -> bool:
        with self._step("disable competing component", target):
            if not self.links.check_collision(target.path):
                return False
            self.links.disable_competing_component(target.path)
            return True

    def _build(self, target: Target, working_copy: Path, *, disabled_now: bool) -> None:
        """Run the build step.

        On failure the staged binaries are dropped, so the target reads as
        Broken, and a stock plugin disabled earlier in the same transition is
        enabled again.
        """
        try:
            with self._step("build plugin", target):
                self.builder.build(target, working_copy)
        except TransitionError:
            try:
                remove_path(working_copy / ARTIFACTS_DIR)
                if disabled_now:
                    self.links.enable_competing_component(target.path)
            except (UegpmError, OSError) as exc:
                logger.warning("Could not roll back the failed build for %s: %s", target.label, exc)
            raise

    def _record(self, target: Target, *, disabled_now: bool) -> None:
        existing = self.manifest.get(target.path)
        disabled = disabled_now or (existing is not None and existing.competing_component_disabled_by_tool)
        self.manifest.upsert(
            ManagedEngine(
                engine_path=target.path,
                engine_version=target.version,
                working_copy_subdir=working_copy_dirname(target.version),
                link_path=self.links.link_path(target.path),
                branch=self.settings.branch,
                competing_component_disabled_by_tool=disabled,
            )
        )
        self.manifest.save()

    def _set_disabled_flag(self, target: Target, value: bool) -> None:
        record = self.manifest.get(target.path)
        if record is None:
            return
        self.manifest.upsert(
            ManagedEngine(
                engine_path=record.engine_path,
                engine_version=record.engine_version,
                working_copy_subdir=record.working_copy_subdir,
                link_path=record.link_path,
                branch=record.branch,
                competing_component_disabled_by_tool=value,
            )
        )
        self.manifest.save()

    def _working_copy_shared(self, target: Target) -> bool:
        key = path_key(target.path)
        return any(
            record.engine_version == target.version and path_key(record.engine_path) != key
            for record in self.manifest.entries()
        )

    def _remove_origin_if_unused(self) -> bool:
        for record in self.manifest.entries():
            if isinstance(self.status(record.target()), Complete):
                return False

        working_copies = self.settings.working_copies_dir
        if working_copies.is_dir() and any(working_copies.iterdir()):
            logger.warning("Keeping origin clone; working copies remain in %s", working_copies)
            return False

        if not self.vcs.is_origin_cloned():
            return False
        logger.info("No managed engines remain, removing origin clone")
        self.vcs.remove_origin()
        return True
