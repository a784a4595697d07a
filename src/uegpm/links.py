"""Plugin link management and stock plugin collision handling."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from .errors import InconsistentStateError, NotFoundError, PermissionDeniedError
from .filesystem import has_write_access, is_link, link_points_to, occupied, read_link, remove_path
from .layout import PLUGIN_LINK_NAME, disabled_manifest_path, plugins_dir, stock_manifest_path
from .models import ComponentState

logger = logging.getLogger(__name__)


class LinkManager:
    """Creates, verifies and removes the link from an engine to its working copy.

    The link is a directory symlink at ``<engine>/Engine/Plugins/UEGitPlugin_PB``.
    Outcomes are always verified by inspecting the filesystem afterwards.
    """

    link_name = PLUGIN_LINK_NAME

    def link_path(self, engine_root: Path) -> Path:
        return plugins_dir(engine_root) / self.link_name

    def link_exists(self, path: Path) -> bool:
        return is_link(path)

    def link_target(self, path: Path) -> Path | None:
        return read_link(path)

    def verify_link(self, engine_root: Path, working_copy: Path) -> bool:
        path = self.link_path(engine_root)
        return self.link_exists(path) and link_points_to(path, working_copy)

    def create_link(self, engine_root: Path, working_copy: Path) -> Path:
        """Point the engine's plugin link at ``working_copy``.

        Returns the link path. Calling this again with the same arguments is a
        no-op.

        Raises:
            PermissionDeniedError: If the plugins directory is not writable.
            NotFoundError: If the plugins directory or the working copy is missing.
            InconsistentStateError: If the link cannot be made to resolve correctly.
        """
        parent = plugins_dir(engine_root)
        destination = parent / self.link_name

        if not parent.is_dir():
            raise NotFoundError(f"Plugins directory does not exist: {parent}")
        if not has_write_access(parent):
            raise PermissionDeniedError(
                f"Insufficient permissions to create a link in '{parent}'. Run with elevated privileges."
            )

        if self.link_exists(destination):
            if link_points_to(destination, working_copy):
                logger.debug("Link %s already points to %s", destination, working_copy)
                return destination
            logger.info("Link %s points to %s, replacing it", destination, read_link(destination))
            self.remove_link(destination)
        elif occupied(destination):
            logger.info("Removing non-link entry at %s", destination)
            remove_path(destination)

        if not working_copy.is_dir():
            raise NotFoundError(f"Working copy path does not exist: {working_copy}")

        error = self._attempt(destination, working_copy)
        if self._created(destination, working_copy):
            return destination

        logger.warning("Link %s did not verify after creation, retrying once", destination)
        if occupied(destination):
            remove_path(destination)
        error = self._attempt(destination, working_copy) or error
        if self._created(destination, working_copy):
            return destination

        if not working_copy.is_dir():
            raise NotFoundError(f"Link target not found: {working_copy}")
        if _privilege_error(error) or not has_write_access(parent):
            raise PermissionDeniedError(
                f"Access denied creating link '{destination}'. Run with elevated privileges."
            ) from error
        detail = f": {error}" if error else ""
        raise InconsistentStateError(
            f"Link '{destination}' does not resolve to '{working_copy}' after creation{detail}"
        ) from error

    def remove_link(self, path: Path) -> None:
        """Remove the link at ``path``. Does nothing if no link is present."""

        if not self.link_exists(path):
            return

        for remover in (os.unlink, os.rmdir, shutil.rmtree):
            try:
                remover(path)
            except OSError as exc:
                logger.debug("%s failed on %s: %s", remover.__name__, path, exc)
                continue
            if not occupied(path):
                logger.info("Removed link %s", path)
                return

        if occupied(path):
            raise InconsistentStateError(f"Link still exists after removal attempts: {path}")

    def _attempt(self, destination: Path, working_copy: Path) -> OSError | None:
        try:
            self._make_link(destination, working_copy)
        except OSError as exc:
            logger.debug("Link creation reported an error: %s", exc)
            return exc
        return None

    def _make_link(self, destination: Path, working_copy: Path) -> None:
        os.symlink(working_copy, destination, target_is_directory=True)

    def _created(self, destination: Path, working_copy: Path) -> bool:
        if not occupied(destination) or not self.link_exists(destination):
            return False
        if read_link(destination) is None:
            return True
        return link_points_to(destination, working_copy)

    # ------------------------------------------------------------------
    # Stock plugin

    def check_collision(self, engine_root: Path) -> bool:
        return stock_manifest_path(engine_root).is_file()

    def competing_component_state(self, engine_root: Path) -> ComponentState:
        if stock_manifest_path(engine_root).is_file():
            return ComponentState.ENABLED
        if disabled_manifest_path(engine_root).is_file():
            return ComponentState.DISABLED
        return ComponentState.NOT_FOUND

    def disable_competing_component(self, engine_root: Path) -> None:
        manifest = stock_manifest_path(engine_root)
        if not manifest.is_file():
            raise NotFoundError(f"Stock plugin manifest not found (already disabled?): {manifest}")
        manifest.replace(disabled_manifest_path(engine_root))
        logger.info("Disabled stock plugin at %s", manifest.parent)

    def enable_competing_component(self, engine_root: Path) -> None:
        disabled = disabled_manifest_path(engine_root)
        if not disabled.is_file():
            raise NotFoundError(f"Disabled stock plugin manifest not found: {disabled}")
        disabled.replace(stock_manifest_path(engine_root))
        logger.info("Re-enabled stock plugin at %s", disabled.parent)


# Windows reports a missing symlink privilege as ERROR_PRIVILEGE_NOT_HELD.
_ERROR_PRIVILEGE_NOT_HELD = 1314


def _privilege_error(error: OSError | None) -> bool:
    if isinstance(error, PermissionError):
        return True
    return error is not None and getattr(error, "winerror", None) == _ERROR_PRIVILEGE_NOT_HELD
