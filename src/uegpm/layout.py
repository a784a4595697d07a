"""Fixed filesystem layout shared by engine installs and the data directory."""

from __future__ import annotations

import re
from pathlib import Path

ENGINE_PREFIX = "UE"
ENGINE_DIR_PATTERN = re.compile(rf"^{ENGINE_PREFIX}_\d+\.\d+")
ENGINE_VERSION_PATTERN = re.compile(rf"{ENGINE_PREFIX}_(\d+\.\d+)")

EDITOR_EXECUTABLE = Path("Engine", "Binaries", "Win64", "UnrealEditor.exe")
BUILD_VERSION_FILE = Path("Engine", "Build", "Build.version")
BUILD_BATCH_DIR = Path("Engine", "Build", "BatchFiles")

PLUGINS_DIR = Path("Engine", "Plugins")
PLUGIN_LINK_NAME = "UEGitPlugin_PB"

STOCK_PLUGIN_DIR = PLUGINS_DIR / "Developer" / "GitSourceControl"
STOCK_PLUGIN_MANIFEST = STOCK_PLUGIN_DIR / "GitSourceControl.uplugin"
DISABLED_SUFFIX = ".disabled"

PLUGIN_DESCRIPTOR = "GitSourceControl.uplugin"
BUILD_OUTPUT_DIR = "_Built"
ARTIFACTS_DIR = Path("Binaries", "Win64")
EXPECTED_ARTIFACTS = (
    "UnrealEditor-GitSourceControl.dll",
    "UnrealEditor.modules",
)

ORIGIN_DIRNAME = "origin"
WORKING_COPIES_DIRNAME = "working-copies"
MANIFEST_FILENAME = "manifest.toml"

DEFAULT_REMOTE_URL = "https://github.com/ProjectBorealis/UEGitPlugin"
DEFAULT_BRANCH = "dev"


def working_copy_dirname(version: str) -> str:
    return f"{ENGINE_PREFIX}_{version}"


def engine_branch_name(version: str) -> str:
    return f"engine-{version}"


def plugins_dir(engine_root: Path) -> Path:
    return engine_root / PLUGINS_DIR


def stock_manifest_path(engine_root: Path) -> Path:
    return engine_root / STOCK_PLUGIN_MANIFEST


def disabled_manifest_path(engine_root: Path) -> Path:
    manifest = stock_manifest_path(engine_root)
    return manifest.with_name(manifest.name + DISABLED_SUFFIX)
