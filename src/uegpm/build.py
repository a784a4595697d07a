"""Build driver that compiles the plugin against an engine."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Protocol

from .errors import NotFoundError
from .layout import ARTIFACTS_DIR, BUILD_BATCH_DIR, BUILD_OUTPUT_DIR, PLUGIN_DESCRIPTOR
from .models import Target
from .process import Runner, run_command

logger = logging.getLogger(__name__)


class BuildDriver(Protocol):
    def build(self, target: Target, working_copy: Path) -> None:
        """Compile ``working_copy`` for ``target`` and stage binaries into it."""


class UnrealBuildDriver:
    """Runs ``RunUAT BuildPlugin`` and copies the packaged binaries back.

    The packaged output lands in ``<working copy>/_Built`` and its
    ``Binaries/Win64`` directory is copied to ``<working copy>/Binaries/Win64``
    where the engine loads it through the plugin link.
    """

    def __init__(self, *, runner: Runner = run_command, windows: bool | None = None) -> None:
        self._run = runner
        self._windows = os.name == "nt" if windows is None else windows

    def runner_path(self, engine_root: Path) -> Path:
        name = "RunUAT.bat" if self._windows else "RunUAT.sh"
        return engine_root / BUILD_BATCH_DIR / name

    def build(self, target: Target, working_copy: Path) -> None:
        uat = self.runner_path(target.path)
        if not uat.is_file():
            raise NotFoundError(f"RunUAT not found at {uat}")

        descriptor = working_copy / PLUGIN_DESCRIPTOR
        if not descriptor.is_file():
            raise NotFoundError(f"Plugin descriptor not found at {descriptor}")

        package_dir = working_copy / BUILD_OUTPUT_DIR
        if package_dir.exists():
            shutil.rmtree(package_dir)

        logger.info("Building plugin for %s", target.label)
        self._run(
            [
                str(uat),
                "BuildPlugin",
                f"-Plugin={descriptor}",
                f"-Package={package_dir}",
                "-Rocket",
                "-TargetPlatforms=Win64",
            ],
            cwd=target.path,
            capture=False,
        )

        source = package_dir / ARTIFACTS_DIR
        if not source.is_dir():
            raise NotFoundError(f"Build finished but no binaries were produced at {source}")

        destination = working_copy / ARTIFACTS_DIR
        shutil.copytree(source, destination, dirs_exist_ok=True)
        logger.info("Staged binaries from %s into %s", source, destination)
