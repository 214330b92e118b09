"""
Data types for plugin annotations.

The in-memory model always has the current (1.6.0) shape. Historical
on-disk shapes live in schema.py and are only ever seen by the migration
chain.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


# Fallback display label when no name source exists for an identifier
UNKNOWN_NAME = "Unknown"

# Substitution token understood by the label templates
PLUGIN_NAME_TOKEN = "${plugin_name}"

CURRENT_COMPATIBILITY = "1.6.0"
CURRENT_SCHEMA_MARKER = "BC56AB7B-A46F-4ACF-9BA1-3A4461F74C79"

DEFAULT_LABEL_MOBILE = "<b>Annotation:&nbsp;</b>"
DEFAULT_LABEL_DESKTOP = "<b>Personal annotation:&nbsp;</b>"
DEFAULT_LABEL_PLACEHOLDER = (
    "<em>Add your personal comment about <strong>${plugin_name}</strong> here...</em>"
)


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_utc_timestamp(ts: str) -> datetime:
    """Parse a stored timestamp string to a timezone-aware UTC datetime.

    Handles naive timestamps (assumed UTC) as well as 'Z' and '+00:00'
    suffixes written by other tools.
    """
    ts = ts.replace("Z", "+00:00")
    dt = datetime.fromisoformat(ts)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(dt: datetime) -> str:
    """Canonical on-disk form of a timestamp (ISO 8601, UTC)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


@dataclass
class Annotation:
    """A user-authored note about one plugin."""
    name: str
    desc: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "desc": self.desc}


@dataclass
class Settings:
    """
    Canonical settings record.

    Attribute names follow the on-disk keys except ``schema_marker``,
    which is stored as ``plugins_annotations_uuid``.
    """
    annotations: dict[str, Annotation] = field(default_factory=dict)
    schema_marker: str = CURRENT_SCHEMA_MARKER
    hide_placeholders: bool = False
    delete_placeholder_string_on_insertion: bool = False
    label_mobile: str = DEFAULT_LABEL_MOBILE
    label_desktop: str = DEFAULT_LABEL_DESKTOP
    label_placeholder: str = DEFAULT_LABEL_PLACEHOLDER
    editable: bool = True
    automatic_remove: bool = False
    markdown_file_path: str = ""
    compatibility: str = CURRENT_COMPATIBILITY
    backups: list["Backup"] = field(default_factory=list)

    def to_dict(self, *, include_backups: bool = True) -> dict[str, Any]:
        """Serialize to the current on-disk JSON shape."""
        data: dict[str, Any] = {
            "annotations": {
                plugin_id: anno.to_dict()
                for plugin_id, anno in self.annotations.items()
            },
            "plugins_annotations_uuid": self.schema_marker,
            "hide_placeholders": self.hide_placeholders,
            "delete_placeholder_string_on_insertion": self.delete_placeholder_string_on_insertion,
            "label_mobile": self.label_mobile,
            "label_desktop": self.label_desktop,
            "label_placeholder": self.label_placeholder,
            "editable": self.editable,
            "automatic_remove": self.automatic_remove,
            "markdown_file_path": self.markdown_file_path,
            "compatibility": self.compatibility,
        }
        if include_backups:
            data["backups"] = [b.to_dict() for b in self.backups]
        return data

    def snapshot(self) -> "Settings":
        """Deep, independent copy with the backup list cleared."""
        clone = copy.deepcopy(self)
        clone.backups = []
        return clone

    def placeholder_for(self, plugin_name: str) -> str:
        return self.label_placeholder.replace(PLUGIN_NAME_TOKEN, plugin_name)

    def label_for(self, plugin_name: str, *, mobile: bool = False) -> str:
        label = self.label_mobile if mobile else self.label_desktop
        return label.replace(PLUGIN_NAME_TOKEN, plugin_name)


@dataclass
class Backup:
    """
    A named point-in-time snapshot of the settings.

    The embedded settings never carry backups of their own, so repeated
    backup/export cycles cannot grow the file recursively.
    """
    name: str
    date: datetime
    settings: Settings

    def __post_init__(self):
        if self.settings.backups:
            self.settings = self.settings.snapshot()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "date": format_timestamp(self.date),
            "settings": self.settings.to_dict(include_backups=False),
        }


def default_settings() -> Settings:
    """A fresh default settings record."""
    return Settings()


def sort_ids_by_name(annotations: dict[str, Annotation]) -> list[str]:
    """Plugin ids ordered by display name (case-insensitive), then id."""
    return sorted(
        annotations,
        key=lambda plugin_id: (annotations[plugin_id].name.casefold(), plugin_id),
    )
