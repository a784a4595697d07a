"""TOML configuration loading for uegpm."""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Mapping

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .layout import DEFAULT_BRANCH, DEFAULT_REMOTE_URL, MANIFEST_FILENAME, ORIGIN_DIRNAME, WORKING_COPIES_DIRNAME

logger = logging.getLogger(__name__)

APP_DIRNAME = "ue-git-plugin-manager"
DEFAULT_CONFIG_FILENAME = "uegpm.toml"
WINDOWS_ENGINE_ROOT = Path("C:/Program Files/Epic Games")


class ConfigError(RuntimeError):
    """Raised when a configuration file cannot be parsed or validated."""


def _expand_path(raw: str | os.PathLike[str] | Path, *, base_dir: Path) -> Path:
    """Return an absolute ``Path`` by expanding env vars and user segments."""

    text = str(raw)
    expanded = Path(os.path.expandvars(text)).expanduser()
    if expanded.is_absolute():
        return expanded.resolve(strict=False)
    return (base_dir / expanded).resolve(strict=False)


def default_data_dir(environ: Mapping[str, str] | None = None, *, windows: bool | None = None) -> Path:
    """Return the per-user data directory.

    On Windows the build toolchain cannot handle non-ASCII paths, so a user
    profile with such characters falls back to ``ProgramData``.
    """
    environ = os.environ if environ is None else environ
    windows = os.name == "nt" if windows is None else windows

    if windows:
        appdata = environ.get("APPDATA") or str(Path.home() / "AppData" / "Roaming")
        candidate = Path(appdata) / APP_DIRNAME
        if not str(candidate).isascii():
            fallback = Path(environ.get("PROGRAMDATA") or "C:/ProgramData") / APP_DIRNAME
            logger.warning("Data directory %s contains non-ASCII characters, using %s", candidate, fallback)
            return fallback
        return candidate

    xdg = environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path(environ.get("HOME") or Path.home()) / ".config"
    return base / APP_DIRNAME


def default_engine_root(*, windows: bool | None = None) -> Path | None:
    windows = os.name == "nt" if windows is None else windows
    return WINDOWS_ENGINE_ROOT if windows else None


class Settings(BaseModel):
    """Values the core needs: where data lives, what to track and where to look."""

    model_config = ConfigDict(frozen=True)

    data_dir: Path
    branch: str = DEFAULT_BRANCH
    remote_url: str = DEFAULT_REMOTE_URL
    default_root: Path | None = Field(default_factory=default_engine_root)
    custom_roots: tuple[Path, ...] = ()

    @field_validator("branch", "remote_url")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @property
    def origin_dir(self) -> Path:
        return self.data_dir / ORIGIN_DIRNAME

    @property
    def working_copies_dir(self) -> Path:
        return self.data_dir / WORKING_COPIES_DIRNAME

    @property
    def manifest_path(self) -> Path:
        return self.data_dir / MANIFEST_FILENAME

    def engine_roots(self) -> list[Path]:
        roots = [self.default_root] if self.default_root is not None else []
        roots.extend(self.custom_roots)
        return roots

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, base_dir: Path, discovery: Mapping[str, Any]) -> "Settings":
        data_dir = _expand_path(raw.get("data_dir", base_dir), base_dir=base_dir)
        values: dict[str, Any] = {"data_dir": data_dir}
        for key in ("branch", "remote_url"):
            if key in raw:
                values[key] = raw[key]
        if "default_root" in raw:
            values["default_root"] = _expand_path(raw["default_root"], base_dir=base_dir) if raw["default_root"] else None

        roots_raw = discovery.get("custom_roots") or []
        if not isinstance(roots_raw, list):
            raise ConfigError("'discovery.custom_roots' must be a list of paths")
        values["custom_roots"] = tuple(_expand_path(root, base_dir=base_dir) for root in roots_raw)

        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigError(f"Invalid settings: {exc}") from exc


class Config(BaseModel):
    """Fully parsed configuration file."""

    model_config = ConfigDict(frozen=True)

    config_path: Path
    settings: Settings

    def with_settings(self, **changes: Any) -> "Config":
        return self.model_copy(update={"settings": self.settings.model_copy(update=changes)})


def load_config(path: Path | None = None) -> Config:
    """Load and validate a configuration file.

    Args:
        path: Optional path to the TOML file or a directory containing
            ``uegpm.toml``. Defaults to the per-user data directory, where a
            missing file simply means default settings.
    """

    if path is None:
        config_path = default_data_dir() / DEFAULT_CONFIG_FILENAME
        if not config_path.exists():
            return Config(config_path=config_path, settings=Settings(data_dir=config_path.parent))
    else:
        config_path = _resolve_config_path(Path(path))

    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Configuration file '{config_path}' is not valid TOML: {exc}") from exc

    settings = Settings.from_raw(
        data.get("settings") or {},
        base_dir=config_path.parent,
        discovery=data.get("discovery") or {},
    )
    return Config(config_path=config_path, settings=settings)


def save_config(config: Config) -> None:
    settings = config.settings
    payload: dict[str, Any] = {
        "settings": {
            "data_dir": str(settings.data_dir),
            "branch": settings.branch,
            "remote_url": settings.remote_url,
            "default_root": str(settings.default_root) if settings.default_root is not None else "",
        },
        "discovery": {"custom_roots": [str(root) for root in settings.custom_roots]},
    }
    config.config_path.parent.mkdir(parents=True, exist_ok=True)
    with config.config_path.open("wb") as handle:
        tomli_w.dump(payload, handle)


def _resolve_config_path(path: Path) -> Path:
    if not path.exists():
        raise ConfigError(f"Configuration file '{path}' does not exist")
    if path.is_dir():
        candidate = path / DEFAULT_CONFIG_FILENAME
        if not candidate.exists():
            raise ConfigError(f"Expected to find '{DEFAULT_CONFIG_FILENAME}' inside '{path}', but none was located")
        path = candidate

    return path.resolve(strict=False)
