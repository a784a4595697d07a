"""Filesystem helpers for uegpm."""

from __future__ import annotations

import os
import shutil
import stat
import tempfile
from pathlib import Path

VERBATIM_PREFIX = "\\\\?\\"
VERBATIM_UNC_PREFIX = VERBATIM_PREFIX + "UNC\\"


def occupied(path: Path) -> bool:
    """Return ``True`` if anything, including a dangling link, sits at ``path``."""

    return os.path.lexists(path)


def read_link(path: Path) -> Path | None:
    """Return the raw target of a link at ``path`` or ``None`` if it is not readable as one."""

    try:
        target = os.readlink(path)
    except (OSError, ValueError):
        return None
    return Path(strip_verbatim_prefix(target)) if target else None


def strip_verbatim_prefix(target: str) -> str:
    """Turn a Windows ``\\\\?\\`` substitute name back into an ordinary path."""

    if target.startswith(VERBATIM_UNC_PREFIX):
        return "\\\\" + target[len(VERBATIM_UNC_PREFIX):]
    if target.startswith(VERBATIM_PREFIX):
        return target[len(VERBATIM_PREFIX):]
    return target


def is_link(path: Path) -> bool:
    """Return ``True`` if ``path`` is a symlink or junction, even when its destination is gone."""

    try:
        stat_result = path.lstat()
    except OSError:
        return False
    if stat.S_ISLNK(stat_result.st_mode):
        return True
    if os.path.isjunction(path):
        return True
    return read_link(path) is not None


def path_key(path: Path) -> str:
    """Return a comparison key identifying ``path`` regardless of spelling."""

    return os.path.normcase(os.path.abspath(path))


def normalize(path: Path) -> Path:
    return Path(os.path.normcase(path.resolve(strict=False)))


def link_points_to(link: Path, target: Path) -> bool:
    """Return ``True`` if the link at ``link`` resolves to ``target``."""

    current = read_link(link)
    if current is None:
        return False
    current_abs = current if current.is_absolute() else link.parent / current
    return normalize(current_abs) == normalize(target)


def has_write_access(directory: Path) -> bool:
    """Return ``True`` if a file can actually be created inside ``directory``.

    ``os.access`` ignores Windows ACLs, so this writes a throwaway file instead.
    """

    try:
        with tempfile.TemporaryFile(dir=directory):
            pass
    except OSError:
        return False
    return True


def remove_path(path: Path) -> None:
    """Delete ``path`` whether it is a file, directory, or link."""

    if not occupied(path):
        return
    if is_link(path) or path.is_file():
        try:
            path.unlink()
        except IsADirectoryError:
            os.rmdir(path)
        except PermissionError:
            if not path.is_dir():
                raise
            os.rmdir(path)
        return
    shutil.rmtree(path)
