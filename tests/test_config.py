from __future__ import annotations

from pathlib import Path
from textwrap import dedent

import pytest

from uegpm.config import (
    DEFAULT_CONFIG_FILENAME,
    Config,
    ConfigError,
    Settings,
    default_data_dir,
    default_engine_root,
    load_config,
    save_config,
)


def _write_config(tmp_path: Path, body: str) -> Path:
    config_path = tmp_path / DEFAULT_CONFIG_FILENAME
    config_path.write_text(dedent(body))
    return config_path


def test_load_config_happy_path(tmp_path: Path, fake_home: Path) -> None:
    config_path = _write_config(
        tmp_path,
        """
        [settings]
        data_dir = "./data"
        branch = "release"
        remote_url = "https://example.com/plugin.git"
        default_root = "~/Epic Games"

        [discovery]
        custom_roots = ["~/engines", "./more"]
        """,
    )

    config = load_config(config_path)
    settings = config.settings

    assert config.config_path == config_path.resolve(strict=False)
    assert settings.data_dir == (tmp_path / "data").resolve(strict=False)
    assert settings.branch == "release"
    assert settings.remote_url == "https://example.com/plugin.git"
    assert settings.default_root == (fake_home / "Epic Games").resolve(strict=False)
    assert settings.custom_roots == (
        (fake_home / "engines").resolve(strict=False),
        (tmp_path / "more").resolve(strict=False),
    )
    assert settings.engine_roots() == [settings.default_root, *settings.custom_roots]
    assert settings.origin_dir == settings.data_dir / "origin"
    assert settings.working_copies_dir == settings.data_dir / "working-copies"
    assert settings.manifest_path == settings.data_dir / "manifest.toml"


def test_data_dir_defaults_to_config_directory(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, "[settings]\nbranch = \"dev\"\n")

    settings = load_config(config_path).settings

    assert settings.data_dir == tmp_path.resolve(strict=False)
    assert settings.custom_roots == ()


def test_empty_default_root_disables_it(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, '[settings]\ndefault_root = ""\n')

    assert load_config(config_path).settings.engine_roots() == []


def test_blank_branch_rejected(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, '[settings]\nbranch = "  "\n')

    with pytest.raises(ConfigError):
        load_config(config_path)


def test_custom_roots_must_be_a_list(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, '[discovery]\ncustom_roots = "/opt/engines"\n')

    with pytest.raises(ConfigError):
        load_config(config_path)


def test_invalid_toml_rejected(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, "[settings\n")

    with pytest.raises(ConfigError):
        load_config(config_path)


def test_explicit_missing_file_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigError) as excinfo:
        load_config(tmp_path / "missing.toml")

    assert "does not exist" in str(excinfo.value)


def test_directory_argument_resolves_default_file(tmp_path: Path) -> None:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    _write_config(config_dir, "[settings]\n")

    config = load_config(config_dir)

    assert config.config_path == (config_dir / DEFAULT_CONFIG_FILENAME).resolve(strict=False)


def test_missing_default_config_yields_defaults(fake_home: Path) -> None:
    config = load_config()

    expected_dir = fake_home / ".config" / "ue-git-plugin-manager"
    assert config.config_path == expected_dir / DEFAULT_CONFIG_FILENAME
    assert config.settings.data_dir == expected_dir
    assert config.settings.branch == "dev"
    assert config.settings.remote_url == "https://github.com/ProjectBorealis/UEGitPlugin"


def test_save_config_round_trip(tmp_path: Path) -> None:
    tmp_path = tmp_path.resolve()
    settings = Settings(
        data_dir=tmp_path / "data",
        branch="feature",
        default_root=None,
        custom_roots=(tmp_path / "engines",),
    )
    config = Config(config_path=tmp_path / "nested" / DEFAULT_CONFIG_FILENAME, settings=settings)

    save_config(config)
    reloaded = load_config(config.config_path)

    assert reloaded.settings == settings


def test_with_settings_returns_updated_copy(tmp_path: Path) -> None:
    config = Config(config_path=tmp_path / DEFAULT_CONFIG_FILENAME, settings=Settings(data_dir=tmp_path))

    updated = config.with_settings(branch="main")

    assert updated.settings.branch == "main"
    assert config.settings.branch == "dev"


def test_default_data_dir_per_platform() -> None:
    assert default_data_dir({"XDG_CONFIG_HOME": "/xdg"}, windows=False) == Path("/xdg/ue-git-plugin-manager")
    assert default_data_dir({"HOME": "/home/me"}, windows=False) == Path("/home/me/.config/ue-git-plugin-manager")
    assert default_data_dir({"APPDATA": "C:/Users/me/AppData/Roaming"}, windows=True) == Path(
        "C:/Users/me/AppData/Roaming/ue-git-plugin-manager"
    )


def test_default_data_dir_avoids_non_ascii_profiles() -> None:
    environ = {"APPDATA": "C:/Users/J\u00f6rg/AppData/Roaming", "PROGRAMDATA": "D:/ProgramData"}

    assert default_data_dir(environ, windows=True) == Path("D:/ProgramData/ue-git-plugin-manager")


def test_default_engine_root() -> None:
    assert default_engine_root(windows=True) == Path("C:/Program Files/Epic Games")
    assert default_engine_root(windows=False) is None
