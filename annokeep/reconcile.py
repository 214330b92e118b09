"""
Reconciliation of annotations against the installed plugins.

An orphan is an annotation whose plugin id is not in the live set supplied
by the caller (the host's list of installed plugins). With the
``automatic_remove`` setting on, orphans are pruned whenever the live set
is refreshed; otherwise they are kept and reported for manual deletion.
"""

import logging
from collections.abc import Iterable

from .settings_store import SettingsStore
from .types import UNKNOWN_NAME, Annotation, Settings

logger = logging.getLogger(__name__)


def orphans(
    annotations: dict[str, Annotation], live: Iterable[str]
) -> dict[str, Annotation]:
    """Entries whose id is absent from *live*, in annotation order."""
    live_ids = set(live)
    return {
        plugin_id: anno
        for plugin_id, anno in annotations.items()
        if plugin_id not in live_ids
    }


def prune(
    annotations: dict[str, Annotation], to_remove: Iterable[str]
) -> dict[str, Annotation]:
    """Delete the given ids from *annotations* in place; return what was removed."""
    removed = {}
    for plugin_id in list(to_remove):
        if plugin_id in annotations:
            removed[plugin_id] = annotations.pop(plugin_id)
    return removed


def reconcile(store: SettingsStore, live: Iterable[str]) -> dict[str, Annotation]:
    """
    Apply the removal policy after the live plugin set was refreshed.

    Returns the orphans found. They have already been pruned (and a save
    scheduled) when ``automatic_remove`` is on.
    """
    settings = store.settings
    found = orphans(settings.annotations, live)
    if not found:
        return found
    if settings.automatic_remove:
        prune(settings.annotations, found)
        logger.info("Removed %d annotations of uninstalled plugins: %s",
                    len(found), ", ".join(found))
        store.schedule_save()
    else:
        logger.debug("%d annotations of uninstalled plugins kept", len(found))
    return found


def set_annotation(settings: Settings, plugin_id: str, name: str, desc: str) -> bool:
    """
    Store or clear one annotation.

    A blank *desc* deletes the entry: an empty annotation is never stored.
    Returns True if an annotation is stored afterwards.
    """
    if not desc.strip():
        settings.annotations.pop(plugin_id, None)
        return False
    settings.annotations[plugin_id] = Annotation(name=name or UNKNOWN_NAME, desc=desc)
    return True
