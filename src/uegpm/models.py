"""Shared models and enums for uegpm."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from .errors import TransitionError


@dataclass(frozen=True, slots=True)
class Target:
    """An engine installation found on disk."""

    path: Path
    version: str
    valid: bool = True

    @property
    def label(self) -> str:
        return f"UE {self.version}"


@dataclass(frozen=True, slots=True)
class ManagedEngine:
    """Persisted record of an engine this tool has acted upon."""

    engine_path: Path
    engine_version: str
    working_copy_subdir: str
    link_path: Path
    branch: str
    competing_component_disabled_by_tool: bool = False

    def target(self) -> Target:
        return Target(path=self.engine_path, version=self.engine_version)


class ComponentState(str, Enum):
    """State of the stock plugin that competes with the managed one."""

    ENABLED = "enabled"
    DISABLED = "disabled"
    NOT_FOUND = "not_found"


class SetupState(str, Enum):
    """Classification reported by ``uegpm status``."""

    NEVER_SET_UP = "never_set_up"
    BROKEN = "broken"
    COMPLETE = "complete"


@dataclass(frozen=True, slots=True)
class Conditions:
    """Live snapshot of everything that decides a target's classification."""

    working_copy_exists: bool
    link_exists: bool
    link_valid: bool
    artifacts_exist: bool
    component_state: ComponentState

    @property
    def satisfied(self) -> bool:
        return (
            self.working_copy_exists
            and self.link_exists
            and self.link_valid
            and self.artifacts_exist
            and self.component_state is not ComponentState.ENABLED
        )


@dataclass(frozen=True, slots=True)
class NeverSetUp:
    conditions: Conditions
    state = SetupState.NEVER_SET_UP

    @property
    def issues(self) -> tuple[str, ...]:
        return ()


@dataclass(frozen=True, slots=True)
class Broken:
    conditions: Conditions
    issues: tuple[str, ...]
    state = SetupState.BROKEN

    def __post_init__(self) -> None:
        if not self.issues:
            raise ValueError("A broken setup must report at least one issue")


@dataclass(frozen=True, slots=True)
class Complete:
    conditions: Conditions
    state = SetupState.COMPLETE

    def __post_init__(self) -> None:
        if not self.conditions.satisfied:
            raise ValueError("A complete setup must satisfy every condition")

    @property
    def issues(self) -> tuple[str, ...]:
        return ()


SetupStatus = Union[NeverSetUp, Broken, Complete]


@dataclass(frozen=True, slots=True)
class TargetStatus:
    """A target paired with its freshly derived status."""

    target: Target
    status: SetupStatus


@dataclass(frozen=True, slots=True)
class UpdateInfo:
    """Drift between a working copy and the origin's remote-tracking ref."""

    version: str
    local_sha: str
    remote_sha: str
    commits_ahead: int
    compare_url: str
    latest_commit_url: str

    @property
    def is_current(self) -> bool:
        return self.commits_ahead == 0


class Remediation(str, Enum):
    """Fixes applied by a repair."""

    WORKING_COPY = "recreated working copy"
    LINK = "recreated link"
    BUILD = "rebuilt plugin"
    COMPETING_COMPONENT = "disabled competing component"


@dataclass(frozen=True, slots=True)
class InstallResult:
    target: Target
    working_copy: Path
    link: Path
    disabled_competing_component: bool


@dataclass(frozen=True, slots=True)
class UpdateResult:
    target: Target
    info: UpdateInfo
    commits_applied: int

    @property
    def already_current(self) -> bool:
        return self.commits_applied == 0


@dataclass(frozen=True, slots=True)
class RepairResult:
    target: Target
    issues: tuple[str, ...]
    remediations: tuple[Remediation, ...]
    status: SetupStatus


@dataclass(frozen=True, slots=True)
class RebuildResult:
    target: Target
    disabled_competing_component: bool
    status: SetupStatus


@dataclass(frozen=True, slots=True)
class UninstallResult:
    target: Target
    reenabled_competing_component: bool
    origin_removed: bool


TransitionResult = Union[InstallResult, UpdateResult, RepairResult, RebuildResult, UninstallResult]


@dataclass(frozen=True, slots=True)
class BatchOutcome:
    """Per-target result of a batch operation."""

    target: Target
    result: TransitionResult | None = None
    error: "TransitionError | None" = None

    @property
    def ok(self) -> bool:
        return self.error is None
