"""
Settings migration chain.

Each hop upgrades a raw settings blob from one schema version to the next.
Hops are registered in MIGRATION_CHAIN as ``from_version: (to_version, hop)``
and applied one after another until the blob has the current shape; the
result is then merged field by field against a base record (the defaults,
for a normal load) to produce the canonical Settings.

Hops never mutate their input. The only lossy step is 1.0.0 -> 1.3.0:
version 1.0.0 stored a bare list with no plugin ids, so ids are synthesized
from list positions and will not match real plugins.
"""

import copy
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from .schema import (
    COMPATIBILITY_KEY,
    CURRENT_VERSION,
    MARKER_KEY,
    MARKERS,
    SchemaVersion,
    defaults_for,
    detect_format,
)
from .types import (
    CURRENT_COMPATIBILITY,
    CURRENT_SCHEMA_MARKER,
    UNKNOWN_NAME,
    Annotation,
    Backup,
    Settings,
    default_settings,
    parse_utc_timestamp,
)

logger = logging.getLogger(__name__)

Blob = dict[str, Any]
MigrationHop = Callable[[Any, Mapping[str, str]], Blob]

# Ids assigned to version 1.0.0 entries: unidentified-0, unidentified-1, ...
LEGACY_ID_PREFIX = "unidentified-"

# Type preamble recognized by the 1.4.0 editor: "html:", "markdown:", "text:"
_PREAMBLE_RE = re.compile(r"^\s*(html|markdown|text):\s*", re.IGNORECASE)

# Label placeholder the 1.4.0 renderer dropped from markdown annotations
_LABEL_TOKEN = "${label}"

_BOOL_FIELDS = (
    "hide_placeholders",
    "delete_placeholder_string_on_insertion",
    "editable",
    "automatic_remove",
)
_STR_FIELDS = (
    "label_mobile",
    "label_desktop",
    "label_placeholder",
    "markdown_file_path",
)


@dataclass
class MigrationResult:
    """Outcome of running a blob through detection and the chain."""
    settings: Settings
    detected: SchemaVersion
    applied: list[str] = field(default_factory=list)

    @property
    def fresh_start(self) -> bool:
        """True when nothing was recognized and defaults were used."""
        return self.detected is SchemaVersion.UNRECOGNIZED

    @property
    def migrated(self) -> bool:
        return bool(self.applied)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _annotation_map(value: Any) -> dict[str, Any]:
    """Coerce an annotation container of any shape into an id-keyed dict."""
    if isinstance(value, dict):
        return value
    if isinstance(value, list):
        return {f"{LEGACY_ID_PREFIX}{i}": v for i, v in enumerate(value)}
    return {}


def _carry_over(blob: Any, version: SchemaVersion) -> Blob:
    """
    Start a hop result from the fields of *version* that the blob has.

    Absent fields stay absent so the terminal merge fills them from its
    base record (the current settings on import, defaults on load).
    """
    result: Blob = {}
    if isinstance(blob, dict):
        for key in defaults_for(version):
            if key in (MARKER_KEY, COMPATIBILITY_KEY, "annotations"):
                continue
            if key in blob:
                result[key] = copy.deepcopy(blob[key])
    result.update(MARKERS[version].stamp())
    return result


def _name_for(plugin_id: str, value: Any, names: Mapping[str, str]) -> str:
    name = value.get("name") if isinstance(value, dict) else None
    if isinstance(name, str) and name:
        return name
    return names.get(plugin_id, UNKNOWN_NAME)


def parse_legacy_annotation(text: str) -> tuple[str, str]:
    """
    Split a 1.4.0 annotation into (type, content).

    A leading ``html:``, ``markdown:`` or ``text:`` preamble (any case,
    optionally followed by whitespace) selects the type and the rest,
    trimmed, is the content. Without one the type is markdown and the
    full text is the content. Markdown content also loses any ``${label}``
    tokens.
    """
    match = _PREAMBLE_RE.match(text)
    if match:
        anno_type = match.group(1).lower()
        content = text[match.end():].strip()
    else:
        anno_type = "markdown"
        content = text
    if anno_type == "markdown":
        content = content.replace(_LABEL_TOKEN, "")
    return anno_type, content


# -----------------------------------------------------------------------------
# Hops
# -----------------------------------------------------------------------------

def _migrate_1_0_0_to_1_3_0(blob: Any, names: Mapping[str, str]) -> Blob:
    """Positional list of strings -> id-keyed map with synthesized ids."""
    result = _carry_over(None, SchemaVersion.V1_3_0)
    entries = blob if isinstance(blob, list) else []
    annotations = {}
    for index, text in enumerate(entries):
        if not isinstance(text, str) or not text.strip():
            continue
        annotations[f"{LEGACY_ID_PREFIX}{index}"] = text
    if annotations:
        logger.warning(
            "Settings from version 1.0.0 carry no plugin ids; "
            "assigned %d placeholder ids (%s*)",
            len(annotations), LEGACY_ID_PREFIX,
        )
    result["annotations"] = annotations
    return result


def _migrate_1_3_0_to_1_4_0(blob: Any, names: Mapping[str, str]) -> Blob:
    """Plain strings -> ``{name, anno}`` objects."""
    result = _carry_over(blob, SchemaVersion.V1_4_0)
    annotations = {}
    for plugin_id, value in _annotation_map(blob.get("annotations")).items():
        text = value.get("anno", value.get("desc")) if isinstance(value, dict) else value
        if not isinstance(text, str):
            logger.warning("Dropping annotation %s: not text", plugin_id)
            continue
        annotations[plugin_id] = {
            "name": _name_for(plugin_id, value, names),
            "anno": text,
        }
    result["annotations"] = annotations
    return result


def _migrate_1_4_0_to_1_5_0(blob: Any, names: Mapping[str, str]) -> Blob:
    """``anno`` with a type preamble -> explicit ``type`` + ``desc``."""
    result = _carry_over(blob, SchemaVersion.V1_5_0)
    annotations = {}
    for plugin_id, value in _annotation_map(blob.get("annotations")).items():
        text = value.get("anno", value.get("desc")) if isinstance(value, dict) else value
        if not isinstance(text, str):
            logger.warning("Dropping annotation %s: not text", plugin_id)
            continue
        anno_type, content = parse_legacy_annotation(text)
        annotations[plugin_id] = {
            "name": _name_for(plugin_id, value, names),
            "desc": content,
            "type": anno_type,
        }
    result["annotations"] = annotations
    return result


def _migrate_1_5_0_to_1_6_0(blob: Any, names: Mapping[str, str]) -> Blob:
    """Drop the ``type`` tag. Backups and the markdown file path are filled by the merge."""
    result = _carry_over(blob, SchemaVersion.V1_6_0)
    annotations = {}
    for plugin_id, value in _annotation_map(blob.get("annotations")).items():
        if isinstance(value, str):
            value = {"desc": value}
        if not isinstance(value, dict):
            logger.warning("Dropping annotation %s: not an object", plugin_id)
            continue
        annotations[plugin_id] = {
            "name": _name_for(plugin_id, value, names),
            "desc": value.get("desc"),
        }
    result["annotations"] = annotations
    return result


# Hand-maintained: the markers carry no ordering, so the chain order lives here.
MIGRATION_CHAIN: dict[SchemaVersion, tuple[SchemaVersion, MigrationHop]] = {
    SchemaVersion.V1_0_0: (SchemaVersion.V1_3_0, _migrate_1_0_0_to_1_3_0),
    SchemaVersion.V1_3_0: (SchemaVersion.V1_4_0, _migrate_1_3_0_to_1_4_0),
    SchemaVersion.V1_4_0: (SchemaVersion.V1_5_0, _migrate_1_4_0_to_1_5_0),
    SchemaVersion.V1_5_0: (SchemaVersion.V1_6_0, _migrate_1_5_0_to_1_6_0),
}


# -----------------------------------------------------------------------------
# Terminal merge
# -----------------------------------------------------------------------------

def _valid_annotations(value: Any) -> Optional[dict[str, Annotation]]:
    if not isinstance(value, dict):
        return None
    annotations = {}
    for plugin_id, entry in value.items():
        if not isinstance(entry, dict):
            logger.warning("Dropping annotation %s: not an object", plugin_id)
            continue
        desc = entry.get("desc")
        if not isinstance(desc, str) or not desc.strip():
            logger.info("Dropping empty annotation %s", plugin_id)
            continue
        name = entry.get("name")
        if not isinstance(name, str) or not name:
            name = UNKNOWN_NAME
        annotations[str(plugin_id)] = Annotation(name=name, desc=desc)
    return annotations


def _valid_backups(value: Any) -> Optional[list[Backup]]:
    if not isinstance(value, list):
        return None
    backups = []
    for entry in value:
        if not isinstance(entry, dict):
            logger.warning("Dropping malformed backup entry: %r", entry)
            continue
        name, date, snapshot = entry.get("name"), entry.get("date"), entry.get("settings")
        if not isinstance(name, str) or not isinstance(snapshot, dict):
            logger.warning("Dropping malformed backup entry %r", name)
            continue
        try:
            parsed_date = parse_utc_timestamp(date)
        except (TypeError, ValueError, AttributeError):
            logger.warning("Dropping backup %r: invalid date %r", name, date)
            continue
        snapshot = {k: v for k, v in snapshot.items() if k != "backups"}
        backups.append(Backup(name=name, date=parsed_date, settings=merge_settings(snapshot)))
    return backups


def merge_settings(blob: Mapping[str, Any], base: Optional[Settings] = None) -> Settings:
    """
    Merge a current-shape blob onto *base* (defaults if not given).

    Each field present in the blob with a valid value wins; anything
    missing or mistyped keeps the base value. The result is always stamped
    with the current schema marker.
    """
    merged = copy.deepcopy(base) if base is not None else default_settings()
    for key in _BOOL_FIELDS:
        value = blob.get(key)
        if isinstance(value, bool):
            setattr(merged, key, value)
    for key in _STR_FIELDS:
        value = blob.get(key)
        if isinstance(value, str):
            setattr(merged, key, value)

    annotations = _valid_annotations(blob.get("annotations"))
    if annotations is not None:
        merged.annotations = annotations
    backups = _valid_backups(blob.get("backups"))
    if backups is not None:
        merged.backups = backups

    merged.schema_marker = CURRENT_SCHEMA_MARKER
    merged.compatibility = CURRENT_COMPATIBILITY
    return merged


# -----------------------------------------------------------------------------
# Entry points
# -----------------------------------------------------------------------------

def upgrade(
    tag: SchemaVersion,
    blob: Any,
    *,
    names: Optional[Mapping[str, str]] = None,
    base: Optional[Settings] = None,
) -> MigrationResult:
    """
    Bring a blob classified as *tag* up to the current Settings.

    Unrecognized blobs are not guessed at: the base (or default) settings
    are returned untouched and the result reports a fresh start.

    Args:
        tag: Version reported by detect_format()
        blob: The raw deserialized value (not modified)
        names: Optional plugin id -> display name source for old formats
        base: Record that missing fields fall back to (defaults if None)
    """
    if tag is SchemaVersion.UNRECOGNIZED:
        settings = copy.deepcopy(base) if base is not None else default_settings()
        return MigrationResult(settings=settings, detected=tag)

    names = names or {}
    current = copy.deepcopy(blob)
    version = tag
    applied = []
    while version is not CURRENT_VERSION:
        next_version, hop = MIGRATION_CHAIN[version]
        current = hop(current, names)
        step = f"{version.value}->{next_version.value}"
        logger.debug("Applied settings migration %s", step)
        applied.append(step)
        version = next_version

    if applied:
        logger.info("Migrated settings from %s to %s", tag.value, CURRENT_VERSION.value)
    return MigrationResult(
        settings=merge_settings(current, base),
        detected=tag,
        applied=applied,
    )


def migrate(
    blob: Any,
    *,
    names: Optional[Mapping[str, str]] = None,
    base: Optional[Settings] = None,
) -> MigrationResult:
    """Detect the format of *blob* and upgrade it."""
    return upgrade(detect_format(blob), blob, names=names, base=base)
