"""Core package for the UE Git Plugin Manager."""

__version__ = "0.1.0"

from .cli import app, run
from .config import Config, Settings
from .errors import (
    DivergedError,
    ExternalToolError,
    InconsistentStateError,
    ManifestError,
    NotFoundError,
    PermissionDeniedError,
    StateError,
    ToolUnavailableError,
    TransitionError,
    UegpmError,
)
from .manager import PluginManager
from .manifest import Manifest
from .models import (
    BatchOutcome,
    Broken,
    Complete,
    ManagedEngine,
    NeverSetUp,
    SetupState,
    Target,
    UpdateInfo,
)

__all__ = [
    "__version__",
    "Config",
    "Settings",
    "PluginManager",
    "Manifest",
    "UegpmError",
    "ToolUnavailableError",
    "PermissionDeniedError",
    "NotFoundError",
    "DivergedError",
    "ExternalToolError",
    "InconsistentStateError",
    "ManifestError",
    "StateError",
    "TransitionError",
    "BatchOutcome",
    "Broken",
    "Complete",
    "ManagedEngine",
    "NeverSetUp",
    "SetupState",
    "Target",
    "UpdateInfo",
    "app",
    "run",
]
