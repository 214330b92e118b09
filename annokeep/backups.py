"""
Named settings backups.

A backup is a deep copy of the settings taken at capture time, stored in
the settings' own ``backups`` list. The copy never contains backups itself,
and restoring a backup never rolls back the backup list.

The module-level functions operate on plain lists; BackupManager binds them
to a SettingsStore and persists every change.
"""

import logging
from datetime import datetime
from typing import Optional

from .settings_store import SettingsStore
from .types import Backup, Settings, utc_now

logger = logging.getLogger(__name__)


def capture(
    name: str,
    settings: Settings,
    existing: list[Backup],
    *,
    now: Optional[datetime] = None,
) -> Backup:
    """Snapshot *settings* and append the backup to *existing*."""
    backup = Backup(name=name, date=now or utc_now(), settings=settings.snapshot())
    existing.append(backup)
    return backup


def restore(backup: Backup, existing: list[Backup]) -> Settings:
    """Settings equal to the backup's snapshot, carrying the *existing* backup list."""
    restored = backup.settings.snapshot()
    restored.backups = existing
    return restored


def delete(backups: list[Backup], target: Backup) -> bool:
    """Remove *target* by identity. False if it is not in the list."""
    for index, backup in enumerate(backups):
        if backup is target:
            del backups[index]
            return True
    return False


def rename(target: Backup, new_name: str) -> None:
    target.name = new_name


def sorted_backups(backups: list[Backup]) -> list[Backup]:
    """Most recent first; of equal dates the later-captured one comes first."""
    return sorted(reversed(backups), key=lambda b: b.date, reverse=True)


class BackupManager:
    """Backup operations against the settings held by a store."""

    def __init__(self, store: SettingsStore):
        self._store = store

    @property
    def backups(self) -> list[Backup]:
        return self._store.settings.backups

    def listing(self) -> list[Backup]:
        return sorted_backups(self.backups)

    def create(self, name: str) -> Backup:
        settings = self._store.settings
        backup = capture(name, settings, settings.backups)
        logger.info("Created backup %r (%d annotations)", name, len(backup.settings.annotations))
        self._store.schedule_save()
        return backup

    def restore(self, backup: Backup) -> Settings:
        settings = restore(backup, self.backups)
        logger.info("Restored backup %r from %s", backup.name, backup.date.isoformat())
        return self._store.set_settings(settings)

    def remove(self, backup: Backup) -> bool:
        removed = delete(self.backups, backup)
        if removed:
            logger.info("Deleted backup %r", backup.name)
            self._store.schedule_save()
        return removed

    def relabel(self, backup: Backup, new_name: str) -> None:
        rename(backup, new_name)
        self._store.schedule_save()
