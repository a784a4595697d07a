"""Command-line interface for uegpm."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import ConfigError, DEFAULT_CONFIG_FILENAME, Config, Settings, default_data_dir, load_config, save_config
from .errors import DivergedError, PermissionDeniedError, ToolUnavailableError, TransitionError, UegpmError
from .filesystem import path_key
from .manager import PluginManager
from .models import (
    BatchOutcome,
    Complete,
    NeverSetUp,
    RebuildResult,
    RepairResult,
    SetupState,
    TargetStatus,
    UpdateInfo,
    UpdateResult,
)

app = typer.Typer(help="Install and maintain the UE Git source control plugin across engine installs", no_args_is_help=True)
roots_app = typer.Typer(help="Manage additional directories searched for engine installs", no_args_is_help=True)
app.add_typer(roots_app, name="roots")

console = Console()
error_console = Console(stderr=True)

logger = logging.getLogger("uegpm")

STATE_STYLES = {
    SetupState.COMPLETE: "green",
    SetupState.BROKEN: "red",
    SetupState.NEVER_SET_UP: "yellow",
}


def setup_logging(verbosity: int) -> None:
    """Configure the ``uegpm`` logger.

    Args:
        verbosity: 0=WARNING, 1=INFO, 2+=DEBUG
    """
    if verbosity <= 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logger.setLevel(level)

    if not logger.handlers:
        handler = RichHandler(
            console=error_console,
            show_time=verbosity >= 2,
            show_path=verbosity >= 3,
            rich_tracebacks=True,
        )
        handler.setLevel(level)
        logger.addHandler(handler)
    else:
        for existing in logger.handlers:
            existing.setLevel(level)


def _load_config(config: Path | None) -> Config:
    return load_config(config)


def _load_manager(config: Path | None) -> PluginManager:
    return PluginManager(_load_config(config).settings)


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, ConfigError):
        message = str(exc)
        console.print(f"[red]{escape(message)}[/red]")
        if "does not exist" in message:
            console.print("[yellow]Use 'uegpm init --config <path>' to create a configuration file.[/yellow]")
        elif "Expected to find" in message:
            console.print(
                "[yellow]Make sure you pointed to the directory containing the config file, or to the file itself.[/yellow]"
            )
        raise typer.Exit(code=1)
    if isinstance(exc, UegpmError):
        console.print(f"[red]{escape(str(exc))}[/red]")
        _print_tip(exc.cause if isinstance(exc, TransitionError) else exc)
        raise typer.Exit(code=1)
    if isinstance(exc, PermissionError):
        console.print("[red]Permission denied.[/red] Re-run the command with elevated privileges.")
        raise typer.Exit(code=1)
    raise exc


def _print_tip(exc: BaseException) -> None:
    if isinstance(exc, (PermissionDeniedError, PermissionError)):
        console.print(
            "[yellow]Tip: rerun from an elevated (administrator) shell or grant write access to the engine's "
            "Plugins directory.[/yellow]"
        )
    elif isinstance(exc, ToolUnavailableError):
        console.print("[yellow]Install git and make sure it is on PATH, then try again.[/yellow]")
    elif isinstance(exc, DivergedError):
        console.print(
            "[yellow]The working copy has local commits. Resolve them by hand, or uninstall and install again.[/yellow]"
        )


def _format_status(entries: Iterable[TargetStatus]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Engine")
    table.add_column("Path", overflow="fold")
    table.add_column("Status")
    table.add_column("Issues", overflow="fold")

    for entry in entries:
        style = STATE_STYLES.get(entry.status.state, "white")
        table.add_row(
            entry.target.version,
            str(entry.target.path),
            f"[{style}]{entry.status.state.value}[/{style}]",
            "\n".join(entry.status.issues),
        )

    console.print(table)


def _format_update_info(infos: Iterable[UpdateInfo]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Engine")
    table.add_column("Local")
    table.add_column("Remote")
    table.add_column("Behind")
    table.add_column("Compare", overflow="fold")
    table.add_column("Latest", overflow="fold")

    for info in infos:
        behind = "[green]0[/green]" if info.is_current else f"[yellow]{info.commits_ahead}[/yellow]"
        table.add_row(
            info.version,
            info.local_sha[:8],
            info.remote_sha[:8],
            behind,
            "" if info.is_current else info.compare_url,
            info.latest_commit_url,
        )

    console.print(table)


def _describe(result: object) -> str:
    if isinstance(result, UpdateResult):
        if result.already_current:
            return "already up to date"
        return f"applied {result.commits_applied} commit(s)"
    if isinstance(result, RepairResult):
        return ", ".join(item.value for item in result.remediations) or "nothing to repair"
    return "done"


def _format_batch(outcomes: list[BatchOutcome]) -> bool:
    """Render batch outcomes and return ``True`` when every target succeeded."""

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Engine")
    table.add_column("Result")
    table.add_column("Details", overflow="fold")

    for outcome in outcomes:
        if outcome.ok:
            table.add_row(outcome.target.version, "[green]ok[/green]", _describe(outcome.result))
        else:
            error = outcome.error
            detail = f"{error.step}: {error.cause}" if error is not None else ""
            table.add_row(outcome.target.version, "[red]failed[/red]", escape(detail))

    console.print(table)
    return all(outcome.ok for outcome in outcomes)


def _print_update(result: UpdateResult) -> None:
    label = result.target.label
    if result.already_current:
        console.print(f"[green]{label} is already up to date ({result.info.local_sha[:8]}).[/green]")
        return
    console.print(f"[green]{label} updated: applied {result.commits_applied} commit(s).[/green]")
    console.print(f"Changes: {result.info.compare_url}")
    console.print(f"Latest: {result.info.remote_sha[:8]} {result.info.latest_commit_url}")


def _print_repair(result: RepairResult) -> None:
    label = result.target.label
    if not result.remediations:
        console.print(f"[green]{label} is complete; nothing to repair.[/green]")
        return
    for issue in result.issues:
        console.print(f"  [yellow]-[/yellow] {issue}")
    console.print(f"[green]{label} repaired: {', '.join(item.value for item in result.remediations)}.[/green]")


def _print_rebuild(result: RebuildResult) -> None:
    if result.disabled_competing_component:
        console.print("Disabled the stock Git source control plugin.")
    style = STATE_STYLES[result.status.state]
    console.print(f"[green]{result.target.label} rebuilt.[/green] Status: [{style}]{result.status.state.value}[/{style}]")
    for issue in result.status.issues:
        console.print(f"  [yellow]-[/yellow] {issue}")


ConfigOption = typer.Option(None, "--config", "-c", help="Path to uegpm.toml")


@app.callback()
def callback(
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v info, -vv debug)",
    ),
) -> None:
    """UE Git Plugin Manager."""

    setup_logging(verbose)


@app.command()
def init(
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to write the configuration file (defaults to the per-user data directory)",
        dir_okay=False,
        writable=True,
    ),
    data_dir: Path | None = typer.Option(
        None,
        "--data-dir",
        help="Directory holding the origin clone, working copies and manifest",
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite existing config if present"),
) -> None:
    """Create a starter uegpm configuration file."""

    config_path = config or default_data_dir() / DEFAULT_CONFIG_FILENAME
    if config_path.exists() and not force:
        console.print(f"[red]Configuration '{config_path}' already exists. Use --force to overwrite.[/red]")
        raise typer.Exit(code=1)

    settings = Settings(data_dir=(data_dir or config_path.parent).expanduser().absolute())
    try:
        save_config(Config(config_path=config_path, settings=settings))
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
    console.print(f"[green]Created '{config_path}'.[/green]")


@app.command()
def status(config: Path | None = ConfigOption) -> None:
    """Show every engine install and its plugin setup status."""

    try:
        manager = _load_manager(config)
        entries = manager.status_all()
        if not entries:
            console.print("[yellow]No engine installations found. Add a search root with 'uegpm roots add'.[/yellow]")
            return
        _format_status(entries)
        if any(entry.status.state is SetupState.BROKEN for entry in entries):
            console.print("[yellow]Some setups are broken. Run 'uegpm repair --all' to fix them.[/yellow]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def discover(
    config: Path | None = ConfigOption,
    show_all: bool = typer.Option(False, "--all", help="Include directories without an editor executable"),
) -> None:
    """List engine installations found under the configured roots."""

    try:
        manager = _load_manager(config)
        targets = manager.targets(include_invalid=show_all)
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Engine")
        table.add_column("Path", overflow="fold")
        if show_all:
            table.add_column("Valid")
        for target in targets:
            row = [target.version, str(target.path)]
            if show_all:
                row.append("[green]yes[/green]" if target.valid else "[red]no[/red]")
            table.add_row(*row)
        console.print(table)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def install(
    target: str = typer.Argument(..., help="Engine version (e.g. 5.3) or install path"),
    config: Path | None = ConfigOption,
) -> None:
    """Set up the plugin for an engine that has never been set up."""

    try:
        manager = _load_manager(config)
        selected = manager.find_target(target)
        result = manager.install(selected)
        console.print(f"[green]{selected.label} set up: {result.link} -> {result.working_copy}[/green]")
        if result.disabled_competing_component:
            console.print("Disabled the stock Git source control plugin.")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def update(
    target: str | None = typer.Argument(None, help="Engine version or install path"),
    config: Path | None = ConfigOption,
    update_all: bool = typer.Option(False, "--all", help="Update every complete setup"),
) -> None:
    """Fast-forward a working copy to the tracked branch and rebuild."""

    if (target is None) == (not update_all):
        console.print("[red]Pass either a TARGET or --all.[/red]")
        raise typer.Exit(code=2)

    try:
        manager = _load_manager(config)
        if update_all:
            if not _format_batch(manager.update_all()):
                raise typer.Exit(code=1)
            return
        _print_update(manager.update(manager.find_target(target)))
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command("check-updates")
def check_updates(
    target: str | None = typer.Argument(None, help="Engine version or install path (defaults to all complete setups)"),
    config: Path | None = ConfigOption,
) -> None:
    """Report how far working copies are behind the remote without changing them."""

    try:
        manager = _load_manager(config)
        if target is not None:
            selected = [manager.find_target(target)]
        else:
            selected = [entry.target for entry in manager.status_all() if isinstance(entry.status, Complete)]
        if not selected:
            console.print("[yellow]No complete setups to check.[/yellow]")
            return
        _format_update_info([manager.check_updates(item) for item in selected])
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def repair(
    target: str | None = typer.Argument(None, help="Engine version or install path"),
    config: Path | None = ConfigOption,
    repair_all: bool = typer.Option(False, "--all", help="Repair every broken setup"),
) -> None:
    """Fix only the parts of a setup that are currently broken."""

    if (target is None) == (not repair_all):
        console.print("[red]Pass either a TARGET or --all.[/red]")
        raise typer.Exit(code=2)

    try:
        manager = _load_manager(config)
        if repair_all:
            if not _format_batch(manager.repair_all()):
                raise typer.Exit(code=1)
            return
        _print_repair(manager.repair(manager.find_target(target)))
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def rebuild(
    target: str = typer.Argument(..., help="Engine version or install path"),
    config: Path | None = ConfigOption,
) -> None:
    """Build the plugin again from the current working copy."""

    try:
        manager = _load_manager(config)
        _print_rebuild(manager.rebuild(manager.find_target(target)))
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def uninstall(
    target: str = typer.Argument(..., help="Engine version or install path"),
    config: Path | None = ConfigOption,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Remove the link, working copy and record for an engine."""

    try:
        manager = _load_manager(config)
        selected = manager.find_target(target)
        if not yes:
            typer.confirm(f"Remove the Git plugin setup from {selected.label} ({selected.path})?", abort=True)
        result = manager.uninstall(selected)
        console.print(f"[green]{selected.label} uninstalled.[/green]")
        if result.reenabled_competing_component:
            console.print("Re-enabled the stock Git source control plugin.")
        if result.origin_removed:
            console.print("Removed the shared origin clone.")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command("enable-stock")
def enable_stock(
    target: str = typer.Argument(..., help="Engine version or install path"),
    config: Path | None = ConfigOption,
) -> None:
    """Re-enable the engine's stock Git source control plugin."""

    try:
        manager = _load_manager(config)
        selected = manager.find_target(target)
        manager.enable_competing_component(selected)
        console.print(f"[green]Stock Git plugin enabled for {selected.label}.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command("disable-stock")
def disable_stock(
    target: str = typer.Argument(..., help="Engine version or install path"),
    config: Path | None = ConfigOption,
) -> None:
    """Disable the engine's stock Git source control plugin."""

    try:
        manager = _load_manager(config)
        selected = manager.find_target(target)
        manager.disable_competing_component(selected)
        console.print(f"[green]Stock Git plugin disabled for {selected.label}.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def branch(
    name: str | None = typer.Argument(None, help="Branch to track for new setups and updates"),
    config: Path | None = ConfigOption,
    detect: bool = typer.Option(False, "--detect", help="Use the default branch advertised by the remote"),
) -> None:
    """Show or change the tracked branch."""

    try:
        config_obj = _load_config(config)
        if name is None and not detect:
            console.print(config_obj.settings.branch)
            return
        if detect:
            name = PluginManager(config_obj.settings).detect_default_branch()
        save_config(config_obj.with_settings(branch=name))
        console.print(f"[green]Tracking branch '{name}'.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@roots_app.command("list")
def roots_list(config: Path | None = ConfigOption) -> None:
    """Show the directories searched for engine installs."""

    try:
        settings = _load_config(config).settings
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Root", overflow="fold")
        table.add_column("Kind")
        table.add_column("Exists")
        if settings.default_root is not None:
            table.add_row(str(settings.default_root), "default", _yes_no(settings.default_root.is_dir()))
        for root in settings.custom_roots:
            table.add_row(str(root), "custom", _yes_no(root.is_dir()))
        console.print(table)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@roots_app.command("add")
def roots_add(
    path: Path = typer.Argument(..., help="Directory to search for engine installs"),
    config: Path | None = ConfigOption,
) -> None:
    """Add a custom search root."""

    try:
        config_obj = _load_config(config)
        root = path.expanduser().absolute()
        if not root.is_dir():
            console.print(f"[red]'{root}' is not a directory.[/red]")
            raise typer.Exit(code=1)
        current = config_obj.settings.custom_roots
        if any(path_key(existing) == path_key(root) for existing in current):
            console.print(f"[yellow]'{root}' is already a search root.[/yellow]")
            return
        save_config(config_obj.with_settings(custom_roots=(*current, root)))
        console.print(f"[green]Added search root '{root}'.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@roots_app.command("remove")
def roots_remove(
    path: Path = typer.Argument(..., help="Custom search root to remove"),
    config: Path | None = ConfigOption,
) -> None:
    """Remove a custom search root."""

    try:
        config_obj = _load_config(config)
        key = path_key(path.expanduser().absolute())
        current = config_obj.settings.custom_roots
        remaining = tuple(root for root in current if path_key(root) != key)
        if len(remaining) == len(current):
            console.print(f"[red]'{path}' is not a custom search root.[/red]")
            raise typer.Exit(code=1)
        save_config(config_obj.with_settings(custom_roots=remaining))
        console.print(f"[green]Removed search root '{path}'.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def doctor(config: Path | None = ConfigOption) -> None:
    """Run health checks and exit with non-zero status if issues are found."""

    try:
        manager = _load_manager(config)
        has_issues = False

        if manager.vcs.is_tool_available():
            console.print(f"[green]{escape(manager.vcs.tool_version())}[/green]")
        else:
            console.print("[red]git is not installed or not on PATH.[/red]")
            has_issues = True

        managed = {path_key(record.engine_path) for record in manager.manifest.entries()}
        all_entries = manager.status_all()
        entries = [entry for entry in all_entries if path_key(entry.target.path) in managed]
        for record in manager.manifest.entries():
            if not record.engine_path.is_dir():
                console.print(f"[red]Managed engine {record.engine_version} is missing from {record.engine_path}.[/red]")
                has_issues = True

        if entries:
            _format_status(entries)
        if any(not isinstance(entry.status, Complete) for entry in entries):
            has_issues = True

        leftovers = [
            entry
            for entry in all_entries
            if path_key(entry.target.path) not in managed and not isinstance(entry.status, NeverSetUp)
        ]
        for entry in leftovers:
            console.print(
                f"[yellow]{entry.target.label} at {entry.target.path} has a partial setup that uegpm does not track.[/yellow]"
            )

        if has_issues:
            console.print("[red]Issues detected. Run 'uegpm repair --all' or resolve them by hand.[/red]")
            raise typer.Exit(code=1)

        console.print("[green]All managed engines are healthy.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def version() -> None:
    """Show the uegpm version."""

    console.print(f"uegpm {__version__}")


def _yes_no(value: bool) -> str:
    return "[green]yes[/green]" if value else "[red]no[/red]"


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
