"""
Shared pytest fixtures for annokeep tests.

Provides in-memory byte storage so store tests never touch the filesystem,
and one settings blob per historical format.
"""

import copy
from typing import Any

import pytest

from annokeep.schema import SchemaVersion
from annokeep.settings_store import SettingsStore


class MemoryStorage:
    """
    In-memory ByteStorage.

    Records every write so tests can count how many saves reached storage.
    """

    def __init__(self, files: dict[str, bytes] | None = None):
        self.files: dict[str, bytes] = dict(files or {})
        self.writes: list[str] = []

    def read(self, path: str) -> bytes:
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]

    def write(self, path: str, data: bytes) -> None:
        self.files[path] = data
        self.writes.append(path)

    def exists(self, path: str) -> bool:
        return path in self.files


class FailingStorage(MemoryStorage):
    """MemoryStorage whose reads and/or writes fail with an I/O error."""

    def __init__(self, files=None, *, fail_read: bool = False, fail_write: bool = True):
        super().__init__(files)
        self.fail_read = fail_read
        self.fail_write = fail_write

    def read(self, path: str) -> bytes:
        if self.fail_read:
            raise PermissionError(13, "Permission denied", path)
        return super().read(path)

    def write(self, path: str, data: bytes) -> None:
        if self.fail_write:
            raise OSError(28, "No space left on device", path)
        super().write(path, data)


V1_3_MARKER = "FAA70013-38E9-4FDF-B06A-F899F6487C19"
V1_4_MARKER = "B265C5B2-A6AD-4194-9E4C-C1327DB1EA18"
V1_5_MARKER = "BC56AB7B-A46F-4ACF-9BA1-3A4461F74C79"


_BLOBS: dict[SchemaVersion, Any] = {
    SchemaVersion.V1_0_0: ["First note", "", "Third note"],
    SchemaVersion.V1_3_0: {
        "annotations": {"p1": "hello", "obsidian-git": "Sync every 10 minutes"},
        "plugins_annotations_uuid": V1_3_MARKER,
        "hide_placeholders": True,
        "editable": True,
    },
    SchemaVersion.V1_4_0: {
        "annotations": {
            "p1": {"name": "Plugin One", "anno": "html: <b>bold</b>"},
            "p2": {"name": "Plugin Two", "anno": "markdown: See ${label} docs"},
            "p3": {"name": "Plugin Three", "anno": "plain ${label} text"},
        },
        "plugins_annotations_uuid": V1_4_MARKER,
        "label_desktop": "<b>Note:&nbsp;</b>",
    },
    SchemaVersion.V1_5_0: {
        "annotations": {
            "p1": {"name": "Plugin One", "desc": "note", "type": "text"},
            "p2": {"name": "Plugin Two", "desc": "**bold**", "type": "markdown"},
        },
        "plugins_annotations_uuid": V1_5_MARKER,
        "compatibility": "1.5.0",
        "automatic_remove": True,
    },
    SchemaVersion.V1_6_0: {
        "annotations": {
            "p1": {"name": "Plugin One", "desc": "current note"},
        },
        "plugins_annotations_uuid": V1_5_MARKER,
        "compatibility": "1.6.0",
        "hide_placeholders": False,
        "delete_placeholder_string_on_insertion": True,
        "label_mobile": "<b>Annotation:&nbsp;</b>",
        "label_desktop": "<b>Personal annotation:&nbsp;</b>",
        "label_placeholder": "Comment on ${plugin_name}",
        "editable": True,
        "automatic_remove": False,
        "markdown_file_path": "",
        "backups": [
            {
                "name": "before cleanup",
                "date": "2024-03-01T12:00:00+00:00",
                "settings": {
                    "annotations": {
                        "p1": {"name": "Plugin One", "desc": "older note"},
                        "gone": {"name": "Gone", "desc": "uninstalled"},
                    },
                    "plugins_annotations_uuid": V1_5_MARKER,
                    "compatibility": "1.6.0",
                },
            },
        ],
    },
}


@pytest.fixture
def blobs():
    """One settings blob per historical format, keyed by SchemaVersion."""
    return copy.deepcopy(_BLOBS)


@pytest.fixture
def memory_storage():
    return MemoryStorage()


@pytest.fixture
def store(memory_storage):
    """A loaded store on empty in-memory storage that writes without delay."""
    st = SettingsStore(memory_storage, debounce_seconds=0)
    st.load()
    yield st
    st.close()
