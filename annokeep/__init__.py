"""
Plugin Annotations

Personal notes about installed plugins, kept in a versioned settings file
that is upgraded in place from every format ever written.

Quick Start:
    from annokeep import Annotation, FileStorage, SettingsStore

    store = SettingsStore(FileStorage("/path/to/store"))
    store.load()  # any historical format is migrated to the current one
    store.settings.annotations["obsidian-git"] = Annotation("Obsidian Git", "Sync")
    store.schedule_save()

CLI Usage:
    annokeep list
    annokeep set obsidian-git "Sync vault every 10 minutes"
    annokeep orphans --live-file installed.txt

Environment Variables:
    ANNOKEEP_STORE_PATH  - Override default store location (~/.annokeep)
    ANNOKEEP_VERBOSE     - Set to 1 for debug logging
"""

from .migrations import MigrationResult, migrate
from .schema import SchemaVersion, detect_format
from .settings_store import SettingsStore
from .storage import ByteStorage, FileStorage
from .types import Annotation, Backup, Settings, default_settings

__version__ = "1.6.0"
__all__ = [
    "Annotation",
    "Backup",
    "ByteStorage",
    "FileStorage",
    "MigrationResult",
    "SchemaVersion",
    "Settings",
    "SettingsStore",
    "default_settings",
    "detect_format",
    "migrate",
]
