"""
Settings store.

Owns the canonical Settings for the life of the process:

- load: bytes -> JSON -> detect -> migrate -> merge with defaults
- save: Settings -> JSON bytes, written through the byte storage
- replace: merge an imported or restored settings object onto the current one

Corrupt or foreign files never raise out of load(); the worst outcome is a
reset to defaults, which is logged. Saves are debounced so a burst of edits
collapses into a single write, and all writes are serialized by one lock.
The store is the only component that writes the settings file.
"""

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .errors import (
    MarkdownFormatError,
    SettingsParseError,
    StorageError,
    UnrecognizedFormatError,
    ValidationError,
)
from .markdown_file import parse_markdown, render_markdown
from .migrations import MigrationResult, merge_settings, upgrade
from .schema import SchemaVersion, detect_format
from .storage import ByteStorage
from .types import Settings, default_settings

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "data.json"
DEFAULT_DEBOUNCE_SECONDS = 1.0


def decode_settings(
    raw: bytes,
    *,
    names: Optional[Mapping[str, str]] = None,
    base: Optional[Settings] = None,
) -> MigrationResult:
    """
    Decode persisted bytes into a migrated settings result.

    Raises:
        SettingsParseError: The bytes are not UTF-8 JSON
        UnrecognizedFormatError: The JSON matches no known schema
    """
    try:
        blob = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SettingsParseError(f"Settings are not valid JSON: {e}") from e

    tag = detect_format(blob)
    if tag is SchemaVersion.UNRECOGNIZED:
        raise UnrecognizedFormatError(
            f"Settings match no known format (top-level {type(blob).__name__})"
        )
    return upgrade(tag, blob, names=names, base=base)


@dataclass(frozen=True)
class _Snapshot:
    """Serialized settings (and Markdown mirror) captured for one write."""
    settings: bytes
    markdown_path: str = ""
    markdown: str = ""


class SettingsStore:
    """
    Process-wide owner of the settings.

    Other components get the Settings by reference through ``settings``
    and report mutations with ``schedule_save()``.
    """

    def __init__(
        self,
        storage: ByteStorage,
        path: str = SETTINGS_FILENAME,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        names: Optional[Mapping[str, str]] = None,
    ):
        """
        Args:
            storage: Byte storage the settings file lives in
            path: Settings file path within the storage
            debounce_seconds: Delay before a scheduled save is written;
                0 writes immediately
            names: Optional plugin id -> display name source, used to
                name annotations migrated from formats without names
        """
        self._storage = storage
        self._path = path
        self._debounce_seconds = debounce_seconds
        self._names = dict(names or {})
        self._settings = default_settings()
        self._write_lock = threading.Lock()
        self._timer_lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._pending: Optional[_Snapshot] = None
        self.last_load: Optional[MigrationResult] = None
        self.last_save_error: Optional[StorageError] = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def path(self) -> str:
        return self._path

    @property
    def storage(self) -> ByteStorage:
        return self._storage

    # -------------------------------------------------------------------------
    # Load
    # -------------------------------------------------------------------------

    def load(self) -> Settings:
        """
        Read and migrate the settings file.

        A missing file is a first run (defaults). A read failure is logged
        and leaves the in-memory settings as they were.
        """
        try:
            raw = self._storage.read(self._path)
        except FileNotFoundError:
            logger.info("No settings file at %s, using defaults", self._path)
            raw = None
        except OSError as e:
            logger.error("%s", StorageError(self._path, e))
            return self._settings
        return self.load_bytes(raw)

    def load_bytes(self, raw: Optional[bytes]) -> Settings:
        """Migrate persisted bytes (or None for a first run) into the current settings."""
        if raw is None:
            result = MigrationResult(default_settings(), SchemaVersion.UNRECOGNIZED)
        else:
            try:
                result = decode_settings(raw, names=self._names)
            except (SettingsParseError, UnrecognizedFormatError) as e:
                logger.warning("%s; starting from default settings", e)
                result = MigrationResult(default_settings(), SchemaVersion.UNRECOGNIZED)

        if result.migrated:
            logger.info(
                "Loaded settings from format %s (%s)",
                result.detected.value, ", ".join(result.applied),
            )
        self.last_load = result
        self._settings = result.settings
        return self._settings

    # -------------------------------------------------------------------------
    # Save
    # -------------------------------------------------------------------------

    def serialize(self) -> bytes:
        return json.dumps(
            self._settings.to_dict(), indent=2, ensure_ascii=False
        ).encode("utf-8")

    def _snapshot(self) -> _Snapshot:
        """Capture what a save writes, on the thread that owns the settings."""
        markdown_path = self._settings.markdown_file_path
        return _Snapshot(
            settings=self.serialize(),
            markdown_path=markdown_path,
            markdown=render_markdown(self._settings.annotations) if markdown_path else "",
        )

    def save(self) -> bool:
        """
        Write the settings now, superseding any scheduled save.

        Returns:
            True on success. On failure the error is logged and kept in
            ``last_save_error``; the in-memory settings are unaffected.
        """
        self._cancel_scheduled()
        return self._write(self._snapshot())

    def _write(self, snapshot: _Snapshot) -> bool:
        with self._write_lock:
            try:
                self._storage.write(self._path, snapshot.settings)
            except OSError as e:
                self.last_save_error = StorageError(self._path, e)
                logger.error("Failed to save settings: %s", self.last_save_error)
                return False
            self.last_save_error = None
            if snapshot.markdown_path:
                self._write_markdown_text(snapshot.markdown_path, snapshot.markdown)
            return True

    def schedule_save(self) -> None:
        """
        Request a save; calls within the debounce window coalesce into one write.

        The settings are serialized here, so edits made after this call are
        not seen by the timer thread; they reach disk with the next save.
        """
        snapshot = self._snapshot()
        if self._debounce_seconds <= 0:
            self._write(snapshot)
            return
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
            self._pending = snapshot
            self._timer = threading.Timer(self._debounce_seconds, self._run_scheduled)
            self._timer.daemon = True
            self._timer.start()

    def _run_scheduled(self) -> None:
        with self._timer_lock:
            if self._timer is not threading.current_thread():
                return  # superseded by a later schedule_save()
            self._timer = None
            snapshot, self._pending = self._pending, None
        if snapshot is None:
            return
        try:
            self._write(snapshot)
        except Exception as e:
            logger.exception("Scheduled settings save failed")
            self.last_save_error = StorageError(self._path, e)

    def _cancel_scheduled(self) -> bool:
        with self._timer_lock:
            timer, self._timer = self._timer, None
            self._pending = None
        if timer is None:
            return False
        timer.cancel()
        return True

    @property
    def has_pending_save(self) -> bool:
        return self._timer is not None

    def flush(self) -> bool:
        """Write a pending scheduled save immediately. True if nothing failed."""
        if not self._cancel_scheduled():
            return True
        return self._write(self._snapshot())

    def close(self) -> None:
        self.flush()

    # -------------------------------------------------------------------------
    # Replace / import / export
    # -------------------------------------------------------------------------

    def set_settings(self, settings: Settings) -> Settings:
        """Adopt a complete Settings object (e.g. a restored backup)."""
        self._settings = settings
        self.schedule_save()
        return settings

    def replace(self, data: Any, *, restore_backups: bool = False) -> Settings:
        """
        Merge an externally supplied settings object onto the current one.

        Data in any known format goes through the same detect/migrate/merge
        pipeline as a load, with the current settings filling missing
        fields. A mapping in no known format is treated as a partial update
        of current-format fields. The current backup list is kept unless
        *restore_backups* is set.

        Raises:
            ValidationError: *data* is not a settings object
        """
        if not isinstance(data, (dict, list)):
            raise ValidationError(
                f"Expected a settings object, got {type(data).__name__}"
            )
        current = self._settings
        tag = detect_format(data)
        if tag is SchemaVersion.UNRECOGNIZED:
            logger.info("Imported data has no schema marker; merging known fields")
            merged = merge_settings(data, base=current)
        else:
            merged = upgrade(tag, data, names=self._names, base=current).settings
        if not restore_backups:
            merged.backups = current.backups
        return self.set_settings(merged)

    def import_json(self, text: str, *, restore_backups: bool = False) -> Settings:
        """
        Import settings from JSON text.

        Raises:
            ValidationError: Invalid JSON, or not a settings object
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Import is not valid JSON: {e}") from e
        return self.replace(data, restore_backups=restore_backups)

    def export_data(self) -> dict[str, Any]:
        """Current settings without the backup list."""
        return self._settings.to_dict(include_backups=False)

    def export_json(self) -> str:
        return json.dumps(self.export_data(), indent=2, ensure_ascii=False)

    # -------------------------------------------------------------------------
    # Markdown mirror
    # -------------------------------------------------------------------------

    def write_markdown(self) -> bool:
        """Write annotations to ``markdown_file_path``. False if disabled or failed."""
        path = self._settings.markdown_file_path
        if not path:
            return False
        return self._write_markdown_text(path, render_markdown(self._settings.annotations))

    def _write_markdown_text(self, path: str, content: str) -> bool:
        try:
            self._storage.write(path, content.encode("utf-8"))
        except OSError as e:
            logger.error("Failed to write Markdown annotations: %s", StorageError(path, e))
            return False
        return True

    def read_markdown(self) -> bool:
        """
        Replace the annotations with those in the Markdown file.

        A missing file is created from the current annotations instead.
        Returns True if annotations were read.
        """
        path = self._settings.markdown_file_path
        if not path:
            return False
        try:
            raw = self._storage.read(path)
        except FileNotFoundError:
            self.write_markdown()
            return False
        except OSError as e:
            logger.error("Failed to read Markdown annotations: %s", StorageError(path, e))
            return False

        try:
            annotations = parse_markdown(raw.decode("utf-8"))
        except (UnicodeDecodeError, MarkdownFormatError) as e:
            logger.error("Ignoring malformed Markdown annotations in %s: %s", path, e)
            return False

        self._settings.annotations = annotations
        self.schedule_save()
        return True
