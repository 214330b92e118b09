"""
Historical settings schemas and format detection.

Five on-disk shapes have existed:

- 1.0.0: a bare JSON list of annotation strings, no identifiers
- 1.3.0: ``{"annotations": {id: "text"}, ...}``
- 1.4.0: ``{"annotations": {id: {"name", "anno"}}, ...}``
- 1.5.0: ``{"annotations": {id: {"name", "desc", "type"}}, ...}``
- 1.6.0: ``{"annotations": {id: {"name", "desc"}}, "backups": [...], ...}``

Versions from 1.3.0 on are tagged with a ``plugins_annotations_uuid``
marker. 1.5.0 and 1.6.0 share the uuid and are told apart by their
``compatibility`` field. These tokens are the only evidence of format on
disk and must never change.
"""

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from .types import (
    CURRENT_COMPATIBILITY,
    CURRENT_SCHEMA_MARKER,
    DEFAULT_LABEL_DESKTOP,
    DEFAULT_LABEL_MOBILE,
    DEFAULT_LABEL_PLACEHOLDER,
)


MARKER_KEY = "plugins_annotations_uuid"
COMPATIBILITY_KEY = "compatibility"


class SchemaVersion(Enum):
    V1_0_0 = "1.0.0"
    V1_3_0 = "1.3.0"
    V1_4_0 = "1.4.0"
    V1_5_0 = "1.5.0"
    V1_6_0 = "1.6.0"
    UNRECOGNIZED = "unrecognized"

    @property
    def marker(self) -> Optional["Marker"]:
        return MARKERS.get(self)


CURRENT_VERSION = SchemaVersion.V1_6_0


@dataclass(frozen=True)
class Marker:
    """The on-disk evidence identifying one schema version."""
    uuid: str
    compatibility: Optional[str] = None

    def matches(self, blob: Mapping[str, Any]) -> bool:
        if blob.get(MARKER_KEY) != self.uuid:
            return False
        if self.compatibility is None:
            return True
        return blob.get(COMPATIBILITY_KEY) == self.compatibility

    def stamp(self) -> dict[str, str]:
        """Fields that tag a blob with this marker."""
        fields = {MARKER_KEY: self.uuid}
        if self.compatibility is not None:
            fields[COMPATIBILITY_KEY] = self.compatibility
        return fields


MARKERS: dict[SchemaVersion, Marker] = {
    SchemaVersion.V1_3_0: Marker("FAA70013-38E9-4FDF-B06A-F899F6487C19"),
    SchemaVersion.V1_4_0: Marker("B265C5B2-A6AD-4194-9E4C-C1327DB1EA18"),
    SchemaVersion.V1_5_0: Marker(CURRENT_SCHEMA_MARKER),
    SchemaVersion.V1_6_0: Marker(CURRENT_SCHEMA_MARKER, CURRENT_COMPATIBILITY),
}

# Most specific first: later schemas are structural supersets of earlier ones.
DETECTION_ORDER = (
    SchemaVersion.V1_6_0,
    SchemaVersion.V1_5_0,
    SchemaVersion.V1_4_0,
    SchemaVersion.V1_3_0,
)


# -----------------------------------------------------------------------------
# Default tables, one per versioned schema
# -----------------------------------------------------------------------------

_COMMON_DEFAULTS: dict[str, Any] = {
    "annotations": {},
    "hide_placeholders": False,
    "delete_placeholder_string_on_insertion": False,
    "label_mobile": DEFAULT_LABEL_MOBILE,
    "label_desktop": DEFAULT_LABEL_DESKTOP,
    "label_placeholder": DEFAULT_LABEL_PLACEHOLDER,
    "editable": True,
    "automatic_remove": False,
}

LEGACY_DEFAULTS: dict[SchemaVersion, dict[str, Any]] = {
    SchemaVersion.V1_3_0: {
        **_COMMON_DEFAULTS,
        MARKER_KEY: MARKERS[SchemaVersion.V1_3_0].uuid,
    },
    SchemaVersion.V1_4_0: {
        **_COMMON_DEFAULTS,
        MARKER_KEY: MARKERS[SchemaVersion.V1_4_0].uuid,
    },
    SchemaVersion.V1_5_0: {
        **_COMMON_DEFAULTS,
        MARKER_KEY: CURRENT_SCHEMA_MARKER,
        "markdown_file_path": "",
        "backups": [],
        COMPATIBILITY_KEY: "1.5.0",
    },
    SchemaVersion.V1_6_0: {
        **_COMMON_DEFAULTS,
        MARKER_KEY: CURRENT_SCHEMA_MARKER,
        "markdown_file_path": "",
        "backups": [],
        COMPATIBILITY_KEY: CURRENT_COMPATIBILITY,
    },
}


def defaults_for(version: SchemaVersion) -> dict[str, Any]:
    """A fresh copy of the default record for a versioned schema."""
    return copy.deepcopy(LEGACY_DEFAULTS[version])


# -----------------------------------------------------------------------------
# Detection
# -----------------------------------------------------------------------------

def _is_string_map(value: Any) -> bool:
    return isinstance(value, dict) and all(
        isinstance(v, str) for v in value.values()
    )


def detect_format(blob: Any) -> SchemaVersion:
    """
    Classify a deserialized blob as exactly one schema version.

    Never raises: a missing or mistyped field is a negative signal, and
    anything that matches no rule is UNRECOGNIZED.
    """
    if isinstance(blob, list):
        return SchemaVersion.V1_0_0
    if not isinstance(blob, dict):
        return SchemaVersion.UNRECOGNIZED

    for version in DETECTION_ORDER:
        if MARKERS[version].matches(blob):
            return version

    # Pre-marker 1.3.0 files: plain strings keyed by plugin id
    if _is_string_map(blob.get("annotations")):
        return SchemaVersion.V1_3_0

    return SchemaVersion.UNRECOGNIZED
