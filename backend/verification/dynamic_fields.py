"""Dynamic (admin-configured) label/value pairs on verification records."""

from __future__ import annotations

from typing import Any, Iterable


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip()


def normalize_dynamic_fields(entries: Any) -> list[dict[str, str]]:
    """Cleans a client-supplied dynamic field list before it is stored.

    Entries that are not objects or carry no label are dropped, labels and
    values are stringified and trimmed, empty labels are dropped. A repeated
    label keeps its first position and takes the last value, so labels stay
    unique within a record.
    """

    if not isinstance(entries, list):
        return []

    by_label: dict[str, str] = {}
    for entry in entries:
        if not isinstance(entry, dict) or entry.get("label") is None:
            continue
        label = _as_text(entry.get("label"))
        if not label:
            continue
        by_label[label] = _as_text(entry.get("value"))

    return [{"label": label, "value": value} for label, value in by_label.items()]


def custom_fields_as_entries(custom_fields: Any) -> list[dict[str, Any]]:
    """Turns a `{key: value}` object (QR form extras) into label/value entries."""

    if not isinstance(custom_fields, dict):
        return []
    return [{"label": key, "value": value} for key, value in custom_fields.items()]


def resolve_dynamic_fields(definitions: Iterable, stored: Any) -> list[dict[str, str]]:
    """Projects a record's stored fields onto the active definitions.

    The result has one entry per definition, in definition order. The value
    comes from the stored entry whose label matches the definition's label or
    field name, then from the definition's default, then is empty. Stored
    entries with no matching definition are not returned.
    """

    existing = stored if isinstance(stored, list) else []

    def stored_value(*labels: str) -> str:
        wanted = {label for label in labels if label}
        for entry in existing:
            if isinstance(entry, dict) and entry.get("label") in wanted:
                return _as_text(entry.get("value"))
        return ""

    resolved: list[dict[str, str]] = []
    for definition in definitions:
        value = stored_value(definition.field_label, definition.field_name) or _as_text(definition.default_value)
        resolved.append({"label": definition.label, "value": value})
    return resolved
