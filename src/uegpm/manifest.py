"""Manifest persistence for managed engines."""

from __future__ import annotations

import os
import tempfile
import tomllib
from functools import cmp_to_key
from pathlib import Path
from typing import Iterable

from tomli_w import dump as toml_dump

from .discovery import compare_versions
from .errors import ManifestError
from .filesystem import path_key
from .models import ManagedEngine


class Manifest:
    """Tracks the engines uegpm has installed the plugin into."""

    def __init__(self, path: Path, entries: dict[str, ManagedEngine] | None = None) -> None:
        self.path = path
        self._entries: dict[str, ManagedEngine] = entries or {}

    @classmethod
    def load(cls, path: Path) -> "Manifest":
        if not path.exists():
            return cls(path, {})

        try:
            with path.open("rb") as handle:
                data = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise ManifestError(f"Manifest '{path}' is not valid TOML: {exc}") from exc

        entries: dict[str, ManagedEngine] = {}
        for index, item in enumerate(data.get("engines", [])):
            try:
                record = ManagedEngine(
                    engine_path=Path(item["engine_path"]),
                    engine_version=item["engine_version"],
                    working_copy_subdir=item["working_copy_subdir"],
                    link_path=Path(item["link_path"]),
                    branch=item.get("branch", ""),
                    competing_component_disabled_by_tool=bool(item.get("competing_component_disabled_by_tool", False)),
                )
            except (KeyError, TypeError, AttributeError) as exc:
                raise ManifestError(f"Manifest '{path}' has an invalid engine entry #{index + 1}: {exc!r}") from exc
            entries[path_key(record.engine_path)] = record

        return cls(path, entries)

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "engines": [
                self._entry_to_dict(entry)
                for entry in sorted(self._entries.values(), key=cmp_to_key(_by_version))
            ]
        }
        fd, temp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "wb") as handle:
                toml_dump(payload, handle)
            os.replace(temp_name, self.path)
        except Exception:
            Path(temp_name).unlink(missing_ok=True)
            raise

    def get(self, engine_path: Path) -> ManagedEngine | None:
        return self._entries.get(path_key(engine_path))

    def upsert(self, entry: ManagedEngine) -> None:
        self._entries[path_key(entry.engine_path)] = entry

    def remove(self, engine_path: Path) -> ManagedEngine | None:
        return self._entries.pop(path_key(engine_path), None)

    def entries(self) -> Iterable[ManagedEngine]:
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def _entry_to_dict(entry: ManagedEngine) -> dict[str, object]:
        return {
            "engine_path": str(entry.engine_path),
            "engine_version": entry.engine_version,
            "working_copy_subdir": entry.working_copy_subdir,
            "link_path": str(entry.link_path),
            "branch": entry.branch,
            "competing_component_disabled_by_tool": entry.competing_component_disabled_by_tool,
        }


def _by_version(left: ManagedEngine, right: ManagedEngine) -> int:
    return compare_versions(left.engine_version, right.engine_version) or (
        (str(left.engine_path) > str(right.engine_path)) - (str(left.engine_path) < str(right.engine_path))
    )
