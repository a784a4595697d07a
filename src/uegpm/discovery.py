"""Discovery of engine installations on disk."""

from __future__ import annotations

import json
import logging
import os
from functools import cmp_to_key
from pathlib import Path
from typing import Iterable

from .filesystem import path_key
from .layout import BUILD_VERSION_FILE, EDITOR_EXECUTABLE, ENGINE_DIR_PATTERN, ENGINE_VERSION_PATTERN
from .models import Target

logger = logging.getLogger(__name__)

MAX_SCAN_DEPTH = 2
UNKNOWN_VERSION = "unknown"


def compare_versions(left: str, right: str) -> int:
    """Compare dot-separated version strings component by component.

    Numeric components compare as integers, so ``"5.10"`` sorts after
    ``"5.4"``. A pair of components that is not numeric compares as strings.
    When every shared component is equal the shorter version is lower.

    Returns:
        A negative number, zero or a positive number.
    """
    left_parts = left.split(".")
    right_parts = right.split(".")

    for left_part, right_part in zip(left_parts, right_parts):
        try:
            left_key: int | str = int(left_part)
            right_key: int | str = int(right_part)
        except ValueError:
            left_key, right_key = left_part, right_part
        if left_key != right_key:
            return -1 if left_key < right_key else 1  # type: ignore[operator]

    return (len(left_parts) > len(right_parts)) - (len(left_parts) < len(right_parts))


def is_candidate(path: Path) -> bool:
    return ENGINE_DIR_PATTERN.match(path.name) is not None


def is_valid_engine(path: Path) -> bool:
    return (path / EDITOR_EXECUTABLE).is_file()


def extract_version(path: Path) -> str:
    """Return the engine version from the directory name or ``Build.version``."""

    match = ENGINE_VERSION_PATTERN.search(path.name)
    if match:
        return match.group(1)

    try:
        data = json.loads((path / BUILD_VERSION_FILE).read_text(encoding="utf-8"))
        return f"{int(data['MajorVersion'])}.{int(data['MinorVersion'])}"
    except (OSError, ValueError, KeyError, TypeError):
        return UNKNOWN_VERSION


def discover(roots: Iterable[Path], *, include_invalid: bool = False) -> list[Target]:
    """Scan ``roots`` for engine installations.

    Each root is walked at most ``MAX_SCAN_DEPTH`` levels below its direct
    children. Missing or unreadable directories are skipped. Results are
    deduplicated by absolute path and sorted by version.
    """
    found: dict[str, Target] = {}
    for root in roots:
        root = Path(root)
        if not root.is_dir():
            logger.debug("Skipping missing engine root %s", root)
            continue
        for target in _scan(root, depth=0):
            if target.valid or include_invalid:
                found.setdefault(path_key(target.path), target)

    return sort_targets(found.values())


def sort_targets(targets: Iterable[Target]) -> list[Target]:
    """Order targets by version, then by path."""

    def _order(left: Target, right: Target) -> int:
        return compare_versions(left.version, right.version) or (
            (str(left.path) > str(right.path)) - (str(left.path) < str(right.path))
        )

    return sorted(targets, key=cmp_to_key(_order))


def _scan(directory: Path, *, depth: int) -> list[Target]:
    if depth > MAX_SCAN_DEPTH:
        return []

    try:
        with os.scandir(directory) as iterator:
            children = [Path(entry.path) for entry in iterator if entry.is_dir(follow_symlinks=False)]
    except OSError as exc:
        logger.debug("Cannot read %s: %s", directory, exc)
        return []

    targets: list[Target] = []
    for child in sorted(children):
        if is_candidate(child):
            absolute = Path(os.path.abspath(child))
            targets.append(Target(path=absolute, version=extract_version(absolute), valid=is_valid_engine(absolute)))
        targets.extend(_scan(child, depth=depth + 1))
    return targets
