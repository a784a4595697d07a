"""Setup status detection for engine targets."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from .layout import ARTIFACTS_DIR, EXPECTED_ARTIFACTS
from .links import LinkManager
from .models import Broken, Complete, ComponentState, Conditions, NeverSetUp, SetupStatus, Target, TargetStatus
from .vcs import GitRepository

ISSUE_NO_WORKING_COPY = "working copy does not exist"
ISSUE_NO_LINK = "link does not exist"
ISSUE_WRONG_LINK = "link points to incorrect location"
ISSUE_NO_ARTIFACTS = "built artifacts not found"
ISSUE_COMPONENT_ENABLED = "competing component is enabled"


def artifacts_exist(working_copy: Path) -> bool:
    binaries = working_copy / ARTIFACTS_DIR
    return all((binaries / name).is_file() for name in EXPECTED_ARTIFACTS)


def issues_for(conditions: Conditions) -> tuple[str, ...]:
    issues: list[str] = []
    if not conditions.working_copy_exists:
        issues.append(ISSUE_NO_WORKING_COPY)
    if not conditions.link_exists:
        issues.append(ISSUE_NO_LINK)
    elif not conditions.link_valid:
        issues.append(ISSUE_WRONG_LINK)
    if not conditions.artifacts_exist:
        issues.append(ISSUE_NO_ARTIFACTS)
    if conditions.component_state is ComponentState.ENABLED:
        issues.append(ISSUE_COMPONENT_ENABLED)
    return tuple(issues)


def classify(conditions: Conditions) -> SetupStatus:
    """Map a condition snapshot onto never-set-up, broken or complete."""

    if not conditions.working_copy_exists and not conditions.link_exists:
        return NeverSetUp(conditions)
    if not conditions.satisfied:
        return Broken(conditions, issues_for(conditions))
    return Complete(conditions)


class StatusDetector:
    """Derives a target's status from live git and filesystem state.

    Nothing is cached: every call inspects the disk again.
    """

    def __init__(self, vcs: GitRepository, links: LinkManager) -> None:
        self.vcs = vcs
        self.links = links

    def conditions(self, target: Target) -> Conditions:
        working_copy = self.vcs.working_copy_path(target.version)
        working_copy_exists = self.vcs.working_copy_exists(target.version)
        link_exists = self.links.link_exists(self.links.link_path(target.path))
        return Conditions(
            working_copy_exists=working_copy_exists,
            link_exists=link_exists,
            link_valid=link_exists and self.links.verify_link(target.path, working_copy),
            artifacts_exist=working_copy_exists and artifacts_exist(working_copy),
            component_state=self.links.competing_component_state(target.path),
        )

    def detect(self, target: Target) -> SetupStatus:
        return classify(self.conditions(target))

    def detect_all(self, targets: Iterable[Target]) -> list[TargetStatus]:
        return [TargetStatus(target=target, status=self.detect(target)) for target in targets]
