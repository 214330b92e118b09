"""
Per-field editing state for one plugin's annotation.

The UI renders an annotation field per installed plugin and forwards its
focus, input and blur events here. The field is in one of three states:

- PLACEHOLDER: no annotation stored; the placeholder text is shown
- EDITING: the user has typed into the field
- SAVED: an annotation is stored and shown

Blur commits the field: text becomes the stored annotation, while an
untouched placeholder or blank text removes it.
"""

import logging
from enum import Enum

from .reconcile import set_annotation
from .settings_store import SettingsStore

logger = logging.getLogger(__name__)


class AnnotationState(Enum):
    PLACEHOLDER = "placeholder"
    EDITING = "editing"
    SAVED = "saved"


class AnnotationEditor:
    """Drives one annotation field. Events are ignored unless ``editable`` is set."""

    def __init__(
        self,
        store: SettingsStore,
        plugin_id: str,
        plugin_name: str,
        *,
        mobile: bool = False,
    ):
        self._store = store
        self.plugin_id = plugin_id
        self.plugin_name = plugin_name
        self.mobile = mobile
        if plugin_id in store.settings.annotations:
            self.state = AnnotationState.SAVED
        else:
            self.state = AnnotationState.PLACEHOLDER

    @property
    def _editable(self) -> bool:
        return self._store.settings.editable

    def placeholder(self) -> str:
        return self._store.settings.placeholder_for(self.plugin_name).strip()

    def label(self) -> str:
        return self._store.settings.label_for(self.plugin_name, mobile=self.mobile)

    def display_text(self) -> str:
        """Text the field shows when not being edited."""
        anno = self._store.settings.annotations.get(self.plugin_id)
        if anno is None:
            return self.placeholder()
        return anno.desc

    def _hiding_placeholder(self) -> bool:
        return (
            self.state is AnnotationState.PLACEHOLDER
            and self._store.settings.hide_placeholders
        )

    def is_hidden(self) -> bool:
        """
        Placeholder fields are hidden outright when ``hide_placeholders`` is
        on and annotations cannot be edited.
        """
        return self._hiding_placeholder() and not self._editable

    def is_collapsed(self) -> bool:
        """
        Editable placeholder fields under ``hide_placeholders`` stay in the
        page, collapsed to the placeholder, so they can still be clicked.
        """
        return self._hiding_placeholder() and self._editable

    def focus(self) -> str:
        """Text to put in the field when it gains focus."""
        if not self._editable:
            return self.display_text()
        if self.state is AnnotationState.PLACEHOLDER:
            if self._store.settings.delete_placeholder_string_on_insertion:
                return ""
            return self.placeholder()
        return self.display_text()

    def input(self) -> None:
        if not self._editable:
            return
        self.state = AnnotationState.EDITING

    def blur(self, text: str) -> AnnotationState:
        """Commit the field's text and schedule a save."""
        if not self._editable:
            return self.state
        content = text.strip()
        if self.state is AnnotationState.PLACEHOLDER or not content:
            set_annotation(self._store.settings, self.plugin_id, self.plugin_name, "")
            self.state = AnnotationState.PLACEHOLDER
        else:
            set_annotation(self._store.settings, self.plugin_id, self.plugin_name, content)
            self.state = AnnotationState.SAVED
        logger.debug("Annotation %s is now %s", self.plugin_id, self.state.value)
        self._store.schedule_save()
        return self.state
