"""Change Detection — dirty-field extraction over MetadataForm state.

Invariants:
    - Only fields the form marks dirty are returned; values come from the current form values
    - Dirty fields missing from values are skipped
"""

from typing import Any

from curriculum_sync.core.boundary_protocols import MetadataForm


def dirty_payload(values: dict[str, Any], dirty_fields: set[str]) -> dict[str, Any]:
    return {key: values[key] for key in dirty_fields if key in values}


def form_changes(form: MetadataForm) -> dict[str, Any]:
    """Dirty subset of a form's current values."""
    return dirty_payload(form.values(), form.dirty_fields())


def has_metadata_changes(basic: MetadataForm, advanced: MetadataForm) -> bool:
    return basic.is_dirty or advanced.is_dirty
