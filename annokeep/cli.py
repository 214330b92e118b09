"""
CLI interface for plugin annotations.

Usage:
    annokeep list
    annokeep set obsidian-git "Sync vault every 10 minutes" --name "Obsidian Git"
    annokeep orphans --live-file installed.txt --prune
    annokeep backup create "before cleanup"
"""

import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .backups import BackupManager
from .config import get_config_dir, load_or_create_config
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode
from .errors import ValidationError
from .reconcile import orphans as find_orphans, prune, reconcile, set_annotation
from .settings_store import SettingsStore
from .storage import FileStorage
from .types import UNKNOWN_NAME, Backup, sort_ids_by_name


# Configure quiet mode by default
# Set ANNOKEEP_VERBOSE=1 to enable debug mode via environment
if os.environ.get("ANNOKEEP_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"annokeep {version('annokeep')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None
_ops_handler = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    if value is not None:
        _store_override = value


def _get_store_override() -> Optional[Path]:
    return _store_override


app = typer.Typer(
    name="annokeep",
    help="Personal annotations about installed plugins.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="ANNOKEEP_STORE_PATH",
        help="Path to the store directory (default: ~/.annokeep/)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Personal annotations about installed plugins."""


StoreOption = Annotated[
    Optional[Path],
    typer.Option(
        "--store", "-s",
        envvar="ANNOKEEP_STORE_PATH",
        help="Path to the store directory (default: ~/.annokeep/)"
    )
]


def _get_store(store: Optional[Path]) -> SettingsStore:
    """Open and load the settings store, handling errors gracefully."""
    import atexit
    global _ops_handler

    actual_store = store if store is not None else _get_store_override()
    path = actual_store if actual_store is not None else get_config_dir()
    try:
        config = load_or_create_config(path)
    except (OSError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    ops_log = os.path.abspath(path / "annokeep-ops.log")
    if _ops_handler is None or _ops_handler.baseFilename != ops_log:
        if _ops_handler is not None:
            logging.getLogger("annokeep").removeHandler(_ops_handler)
            _ops_handler.close()
        _ops_handler = configure_ops_log(path)

    settings_store = SettingsStore(
        FileStorage(config.path),
        config.settings_file,
        debounce_seconds=config.debounce_seconds,
    )
    settings_store.load()
    if settings_store.last_load is None:
        typer.echo(f"Error: could not read {config.path / config.settings_file}", err=True)
        raise typer.Exit(1)
    # Flush debounced saves before interpreter shutdown
    atexit.register(settings_store.close)
    return settings_store


def _finish(settings_store: SettingsStore) -> None:
    """Write pending changes; exit non-zero if the write failed."""
    if not settings_store.flush():
        typer.echo(f"Error: {settings_store.last_save_error}", err=True)
        raise typer.Exit(1)


def _first_line(text: str, width: int = 80) -> str:
    line = text.strip().splitlines()[0] if text.strip() else ""
    return line if len(line) <= width else line[:width - 3] + "..."


# -----------------------------------------------------------------------------
# Annotations
# -----------------------------------------------------------------------------

@app.command()
def status(store: StoreOption = None):
    """Show the settings file format, migrations applied and counts."""
    st = _get_store(store)
    result = st.last_load
    exists = st.storage.exists(st.path)
    info = {
        "settings_file": st.path,
        "exists": exists,
        "detected_format": result.detected.value if exists else None,
        "migrations": list(result.applied),
        "fresh_start": result.fresh_start,
        "compatibility": st.settings.compatibility,
        "annotations": len(st.settings.annotations),
        "backups": len(st.settings.backups),
    }
    if _get_json_output():
        typer.echo(json.dumps(info, indent=2))
        return
    typer.echo(f"Settings file: {st.path}{'' if exists else ' (not yet written)'}")
    if exists:
        typer.echo(f"Format on disk: {info['detected_format']}")
    if result.applied:
        typer.echo(f"Migrations: {', '.join(result.applied)}")
    elif exists and result.fresh_start:
        typer.echo("Format not recognized: using default settings")
    typer.echo(f"Annotations: {info['annotations']}")
    typer.echo(f"Backups: {info['backups']}")


@app.command("list")
def list_cmd(store: StoreOption = None):
    """List annotations, sorted by plugin name."""
    st = _get_store(store)
    annotations = st.settings.annotations
    ids = sort_ids_by_name(annotations)
    if _get_json_output():
        typer.echo(json.dumps(
            {plugin_id: annotations[plugin_id].to_dict() for plugin_id in ids},
            indent=2, ensure_ascii=False,
        ))
        return
    if not ids:
        typer.echo("No annotations.")
        return
    for plugin_id in ids:
        anno = annotations[plugin_id]
        typer.echo(f"{plugin_id}  {anno.name}: {_first_line(anno.desc)}")


@app.command()
def get(
    id: Annotated[str, typer.Argument(help="Plugin id")],
    store: StoreOption = None,
):
    """Print one annotation."""
    st = _get_store(store)
    anno = st.settings.annotations.get(id)
    if anno is None:
        typer.echo(f"Not found: {id}", err=True)
        raise typer.Exit(1)
    if _get_json_output():
        typer.echo(json.dumps({id: anno.to_dict()}, indent=2, ensure_ascii=False))
    else:
        typer.echo(anno.desc)


@app.command("set")
def set_cmd(
    id: Annotated[str, typer.Argument(help="Plugin id")],
    text: Annotated[str, typer.Argument(help="Annotation text (empty removes it)")],
    name: Annotated[Optional[str], typer.Option(
        "--name", "-n", help="Plugin display name"
    )] = None,
    store: StoreOption = None,
):
    """Write (or with empty text, remove) an annotation."""
    st = _get_store(store)
    existing = st.settings.annotations.get(id)
    display_name = name or (existing.name if existing else UNKNOWN_NAME)
    stored = set_annotation(st.settings, id, display_name, text.strip())
    st.schedule_save()
    _finish(st)
    typer.echo(f"Saved {id}" if stored else f"Removed {id}")


@app.command("del")
def del_cmd(
    id: Annotated[list[str], typer.Argument(help="Plugin id(s) to remove")],
    store: StoreOption = None,
):
    """Remove annotation(s)."""
    st = _get_store(store)
    had_errors = False
    for one_id in id:
        if st.settings.annotations.pop(one_id, None) is None:
            typer.echo(f"Not found: {one_id}", err=True)
            had_errors = True
        else:
            typer.echo(f"Deleted {one_id}")
    st.schedule_save()
    _finish(st)
    if had_errors:
        raise typer.Exit(1)


@app.command()
def migrate(store: StoreOption = None):
    """Rewrite the settings file in the current format."""
    st = _get_store(store)
    result = st.last_load
    if not st.save():
        typer.echo(f"Error: {st.last_save_error}", err=True)
        raise typer.Exit(1)
    if result.applied:
        typer.echo(f"Migrated from {result.detected.value}: {', '.join(result.applied)}")
    elif result.fresh_start:
        typer.echo("Wrote default settings")
    else:
        typer.echo("Already current")


@app.command()
def orphans(
    live: Annotated[Optional[list[str]], typer.Option(
        "--live", "-l", help="Installed plugin id (repeatable)"
    )] = None,
    live_file: Annotated[Optional[Path], typer.Option(
        "--live-file", help="File with one installed plugin id per line"
    )] = None,
    do_prune: Annotated[bool, typer.Option(
        "--prune", help="Remove orphans regardless of the automatic_remove setting"
    )] = False,
    store: StoreOption = None,
):
    """List annotations of plugins that are no longer installed."""
    live_ids = set(live or [])
    if live_file is not None:
        try:
            lines = live_file.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)
        live_ids.update(line.strip() for line in lines if line.strip())
    if not live_ids:
        typer.echo("Error: Specify --live or --live-file", err=True)
        raise typer.Exit(1)

    st = _get_store(store)
    if do_prune:
        found = find_orphans(st.settings.annotations, live_ids)
        prune(st.settings.annotations, found)
        if found:
            st.schedule_save()
        removed = True
    else:
        found = reconcile(st, live_ids)
        removed = st.settings.automatic_remove
    _finish(st)

    if _get_json_output():
        typer.echo(json.dumps({
            "orphans": {k: v.to_dict() for k, v in found.items()},
            "removed": removed and bool(found),
        }, indent=2, ensure_ascii=False))
        return
    if not found:
        typer.echo("No orphaned annotations.")
        return
    verb = "Removed" if removed else "Orphaned"
    for plugin_id, anno in found.items():
        typer.echo(f"{verb}: {plugin_id}  {anno.name}: {_first_line(anno.desc)}")


# Scalar settings that `option` may show and change
_OPTIONS = {
    "hide_placeholders": bool,
    "delete_placeholder_string_on_insertion": bool,
    "editable": bool,
    "automatic_remove": bool,
    "label_mobile": str,
    "label_desktop": str,
    "label_placeholder": str,
    "markdown_file_path": str,
}


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "yes", "on", "1"):
        return True
    if lowered in ("false", "no", "off", "0"):
        return False
    raise ValueError(f"Expected true or false, got '{value}'")


@app.command()
def option(
    key: Annotated[Optional[str], typer.Argument(help="Option name")] = None,
    value: Annotated[Optional[str], typer.Argument(help="New value")] = None,
    store: StoreOption = None,
):
    """Show or change display and behavior options."""
    st = _get_store(store)
    settings = st.settings
    if key is None:
        values = {k: getattr(settings, k) for k in _OPTIONS}
        if _get_json_output():
            typer.echo(json.dumps(values, indent=2, ensure_ascii=False))
        else:
            for k, v in values.items():
                typer.echo(f"{k} = {json.dumps(v, ensure_ascii=False)}")
        return

    if key not in _OPTIONS:
        typer.echo(f"Error: Unknown option '{key}'. Options: {', '.join(_OPTIONS)}", err=True)
        raise typer.Exit(1)
    if value is None:
        typer.echo(json.dumps(getattr(settings, key), ensure_ascii=False))
        return

    if _OPTIONS[key] is bool:
        try:
            parsed = _parse_bool(value)
        except ValueError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)
    else:
        parsed = value
    setattr(settings, key, parsed)
    st.schedule_save()
    _finish(st)
    typer.echo(f"{key} = {json.dumps(parsed, ensure_ascii=False)}")


# -----------------------------------------------------------------------------
# Backups
# -----------------------------------------------------------------------------

backup_app = typer.Typer(
    name="backup",
    help="Create, list, restore, delete and rename backups.",
    rich_markup_mode=None,
)
app.add_typer(backup_app)

BackupNumber = Annotated[int, typer.Argument(help="Backup number as shown by 'backup list'")]


def _pick_backup(manager: BackupManager, number: int) -> Backup:
    listing = manager.listing()
    if not 1 <= number <= len(listing):
        typer.echo(f"Error: No backup #{number} ({len(listing)} backups)", err=True)
        raise typer.Exit(1)
    return listing[number - 1]


def _backup_line(number: int, backup: Backup) -> str:
    date = backup.date.astimezone().strftime("%Y-%m-%d %H:%M:%S")
    count = len(backup.settings.annotations)
    return f"{number:>3}  {date}  {backup.name}  ({count} annotations)"


@backup_app.command("create")
def backup_create(
    name: Annotated[str, typer.Argument(help="Backup name")],
    store: StoreOption = None,
):
    """Snapshot the current settings."""
    st = _get_store(store)
    backup = BackupManager(st).create(name)
    _finish(st)
    typer.echo(f"Created backup '{backup.name}'")


@backup_app.command("list")
def backup_list(store: StoreOption = None):
    """List backups, most recent first."""
    st = _get_store(store)
    listing = BackupManager(st).listing()
    if _get_json_output():
        typer.echo(json.dumps([
            {"number": i, "name": b.name, "date": b.to_dict()["date"],
             "annotations": len(b.settings.annotations)}
            for i, b in enumerate(listing, start=1)
        ], indent=2, ensure_ascii=False))
        return
    if not listing:
        typer.echo("No backups.")
        return
    for i, backup in enumerate(listing, start=1):
        typer.echo(_backup_line(i, backup))


@backup_app.command("restore")
def backup_restore(
    number: BackupNumber,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Don't ask for confirmation")] = False,
    store: StoreOption = None,
):
    """Replace the current settings with a backup (the backup list is kept)."""
    st = _get_store(store)
    manager = BackupManager(st)
    backup = _pick_backup(manager, number)
    if not yes and not typer.confirm(
        f"Replace current settings with backup '{backup.name}'?"
    ):
        raise typer.Exit(0)
    manager.restore(backup)
    _finish(st)
    typer.echo(f"Restored backup '{backup.name}'")


@backup_app.command("delete")
def backup_delete(number: BackupNumber, store: StoreOption = None):
    """Delete a backup."""
    st = _get_store(store)
    manager = BackupManager(st)
    backup = _pick_backup(manager, number)
    manager.remove(backup)
    _finish(st)
    typer.echo(f"Deleted backup '{backup.name}'")


@backup_app.command("rename")
def backup_rename(
    number: BackupNumber,
    name: Annotated[str, typer.Argument(help="New name")],
    store: StoreOption = None,
):
    """Rename a backup."""
    st = _get_store(store)
    manager = BackupManager(st)
    backup = _pick_backup(manager, number)
    manager.relabel(backup, name)
    _finish(st)
    typer.echo(f"Renamed backup #{number} to '{name}'")


# -----------------------------------------------------------------------------
# Data Management
# -----------------------------------------------------------------------------

data_app = typer.Typer(
    name="data",
    help="Export and import settings.",
    rich_markup_mode=None,
)
app.add_typer(data_app)


@data_app.command("export")
def data_export(
    output: Annotated[str, typer.Argument(
        help="Output file path (use '-' for stdout)"
    )],
    store: StoreOption = None,
):
    """Export the settings (without backups) to JSON."""
    st = _get_store(store)
    text = st.export_json() + "\n"
    if output == "-":
        sys.stdout.write(text)
        return
    Path(output).write_text(text, encoding="utf-8")
    typer.echo(
        f"Exported {len(st.settings.annotations)} annotations to {output}",
        err=True,
    )


@data_app.command("import")
def data_import(
    file: Annotated[str, typer.Argument(help="JSON settings file to import")],
    with_backups: Annotated[bool, typer.Option(
        "--with-backups", help="Also replace the backup list with the imported one"
    )] = False,
    store: StoreOption = None,
):
    """Import settings from a JSON file written by any version."""
    if file == "-":
        text = sys.stdin.read()
    else:
        path = Path(file)
        if not path.exists():
            typer.echo(f"Error: file not found: {file}", err=True)
            raise typer.Exit(1)
        text = path.read_text(encoding="utf-8")

    st = _get_store(store)
    try:
        settings = st.import_json(text, restore_backups=with_backups)
    except ValidationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    _finish(st)
    typer.echo(
        f"Imported settings with {len(settings.annotations)} annotations",
        err=True,
    )


# -----------------------------------------------------------------------------
# Markdown mirror
# -----------------------------------------------------------------------------

markdown_app = typer.Typer(
    name="markdown",
    help="Export and import the Markdown annotations file.",
    rich_markup_mode=None,
)
app.add_typer(markdown_app)


def _require_markdown_path(st: SettingsStore) -> str:
    path = st.settings.markdown_file_path
    if not path:
        typer.echo(
            "Error: No Markdown file configured. "
            "Set one with: annokeep option markdown_file_path NOTES.md",
            err=True,
        )
        raise typer.Exit(1)
    return path


@markdown_app.command("export")
def markdown_export(store: StoreOption = None):
    """Write the annotations to the configured Markdown file."""
    st = _get_store(store)
    path = _require_markdown_path(st)
    if not st.write_markdown():
        typer.echo(f"Error: could not write {path}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Wrote {len(st.settings.annotations)} annotations to {path}")


@markdown_app.command("import")
def markdown_import(store: StoreOption = None):
    """Replace the annotations with those in the configured Markdown file."""
    st = _get_store(store)
    path = _require_markdown_path(st)
    if not st.read_markdown():
        typer.echo(f"Error: could not read annotations from {path}", err=True)
        raise typer.Exit(1)
    _finish(st)
    typer.echo(f"Read {len(st.settings.annotations)} annotations from {path}")


# -----------------------------------------------------------------------------
# Entry point
# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="annokeep CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
