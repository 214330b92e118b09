"""Tests for named settings backups."""

import json
from datetime import datetime, timedelta, timezone

from annokeep.backups import BackupManager, capture, delete, rename, restore, sorted_backups
from annokeep.settings_store import SETTINGS_FILENAME
from annokeep.types import Annotation, Backup, default_settings


T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _settings_with(**annotations):
    settings = default_settings()
    for plugin_id, desc in annotations.items():
        settings.annotations[plugin_id] = Annotation(plugin_id.upper(), desc)
    return settings


class TestCapture:

    def test_snapshot_is_isolated(self):
        settings = _settings_with(a="one")
        backup = capture("first", settings, settings.backups, now=T0)
        settings.annotations["a"].desc = "changed"
        settings.annotations["b"] = Annotation("B", "new")
        settings.hide_placeholders = True
        assert backup.settings.annotations == {"a": Annotation("A", "one")}
        assert backup.settings.hide_placeholders is False

    def test_snapshot_has_no_backups(self):
        settings = _settings_with(a="one")
        capture("first", settings, settings.backups, now=T0)
        second = capture("second", settings, settings.backups, now=T0 + timedelta(hours=1))
        assert len(settings.backups) == 2
        assert second.settings.backups == []
        assert all(b.settings.backups == [] for b in settings.backups)

    def test_default_date_is_utc_now(self):
        settings = default_settings()
        backup = capture("now", settings, settings.backups)
        assert backup.date.tzinfo is not None
        assert abs(datetime.now(timezone.utc) - backup.date) < timedelta(minutes=1)

    def test_backup_constructor_strips_nested_backups(self):
        settings = _settings_with(a="one")
        capture("inner", settings, settings.backups, now=T0)
        outer = Backup(name="outer", date=T0, settings=settings)
        assert outer.settings.backups == []
        assert len(settings.backups) == 1


class TestRestore:

    def test_restore_keeps_existing_backup_list(self):
        settings = _settings_with(a="one")
        backup = capture("first", settings, settings.backups, now=T0)
        settings.annotations.clear()
        capture("second", settings, settings.backups, now=T0 + timedelta(hours=1))

        restored = restore(backup, settings.backups)
        assert restored.annotations == {"a": Annotation("A", "one")}
        assert restored.backups is settings.backups
        assert [b.name for b in restored.backups] == ["first", "second"]

    def test_restored_settings_independent_of_backup(self):
        settings = _settings_with(a="one")
        backup = capture("first", settings, settings.backups, now=T0)
        restored = restore(backup, settings.backups)
        restored.annotations["a"].desc = "edited after restore"
        assert backup.settings.annotations["a"].desc == "one"


class TestDeleteRename:

    def test_delete_by_identity(self):
        settings = default_settings()
        first = capture("same", settings, settings.backups, now=T0)
        second = capture("same", settings, settings.backups, now=T0)
        assert first == second
        assert delete(settings.backups, second)
        assert len(settings.backups) == 1
        assert settings.backups[0] is first

    def test_delete_missing(self):
        settings = default_settings()
        capture("a", settings, settings.backups, now=T0)
        stranger = Backup(name="a", date=T0, settings=default_settings())
        assert not delete(settings.backups, stranger)
        assert len(settings.backups) == 1

    def test_rename_only_changes_name(self):
        settings = _settings_with(a="one")
        backup = capture("old", settings, settings.backups, now=T0)
        rename(backup, "new")
        assert backup.name == "new"
        assert backup.date == T0
        assert backup.settings.annotations == {"a": Annotation("A", "one")}


class TestSorting:

    def test_most_recent_first(self):
        settings = default_settings()
        capture("middle", settings, settings.backups, now=T0 + timedelta(days=1))
        capture("oldest", settings, settings.backups, now=T0)
        capture("newest", settings, settings.backups, now=T0 + timedelta(days=2))
        assert [b.name for b in sorted_backups(settings.backups)] == [
            "newest", "middle", "oldest",
        ]
        # Storage order is untouched
        assert [b.name for b in settings.backups] == ["middle", "oldest", "newest"]

    def test_ties_list_later_capture_first(self):
        settings = default_settings()
        capture("earlier", settings, settings.backups, now=T0)
        capture("later", settings, settings.backups, now=T0)
        assert [b.name for b in sorted_backups(settings.backups)] == ["later", "earlier"]


class TestBackupManager:

    def test_create_persists(self, store, memory_storage):
        store.settings.annotations["a"] = Annotation("A", "one")
        manager = BackupManager(store)
        manager.create("first")
        manager.create("second")
        data = json.loads(memory_storage.files[SETTINGS_FILENAME])
        assert [b["name"] for b in data["backups"]] == ["first", "second"]
        for entry in data["backups"]:
            assert "backups" not in entry["settings"]
            assert entry["settings"]["annotations"] == {"a": {"name": "A", "desc": "one"}}
            assert entry["date"].endswith("+00:00")

    def test_restore_into_store(self, store):
        store.settings.annotations["a"] = Annotation("A", "one")
        manager = BackupManager(store)
        backup = manager.create("first")
        store.settings.annotations.clear()
        store.settings.editable = False
        manager.create("empty")

        manager.restore(backup)
        assert store.settings.annotations == {"a": Annotation("A", "one")}
        assert store.settings.editable is True
        assert [b.name for b in store.settings.backups] == ["first", "empty"]

    def test_listing_remove_relabel(self, store, memory_storage):
        manager = BackupManager(store)
        first = manager.create("first")
        manager.create("second")
        assert manager.listing()[-1] is first

        manager.relabel(first, "renamed")
        assert manager.remove(manager.listing()[0])
        assert [b.name for b in manager.backups] == ["renamed"]
        data = json.loads(memory_storage.files[SETTINGS_FILENAME])
        assert [b["name"] for b in data["backups"]] == ["renamed"]

    def test_backups_survive_reload(self, store, memory_storage):
        from annokeep.settings_store import SettingsStore
        store.settings.annotations["a"] = Annotation("A", "one")
        BackupManager(store).create("first")
        other = SettingsStore(memory_storage, debounce_seconds=0)
        other.load()
        assert other.settings.backups == store.settings.backups
