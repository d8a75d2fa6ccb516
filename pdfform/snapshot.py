"""Field snapshots: a tagged, JSON-friendly copy of a form's values.

A snapshot maps each editable field's fully-qualified name to
``{"type": "text" | "checkbox" | "choice", "value": ...}``.  Hosts persist
snapshots however they like; :func:`values_from_snapshot` turns one back into
a mapping accepted by :func:`pdfform.mutator.apply`.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Mapping

from .errors import FieldTypeError
from .fields import CheckboxField, ChoiceField, Field, TextField

_VALUE_TYPES = {
    "text": str,
    "checkbox": bool,
    "choice": str,
}


def snapshot(fields: Iterable[Field]) -> Dict[str, Dict[str, Any]]:
    result: Dict[str, Dict[str, Any]] = {}
    for item in fields:
        if isinstance(item, (TextField, CheckboxField, ChoiceField)):
            result[item.name] = {"type": item.kind.value, "value": item.value}
    return result


def values_from_snapshot(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate *data* and return ``{name: value}``.

    Raises :class:`~pdfform.errors.FieldTypeError` for an entry whose tag is
    unknown or whose value does not match its tag.  Choice entries with no
    selection (``None``) are skipped.
    """

    values: Dict[str, Any] = {}
    for name, entry in data.items():
        if not isinstance(entry, Mapping) or "type" not in entry:
            raise FieldTypeError(name, "snapshot entry must be a mapping with a 'type'")
        expected = _VALUE_TYPES.get(entry["type"])
        if expected is None:
            raise FieldTypeError(name, f"unknown snapshot type {entry['type']!r}")
        value = entry.get("value")
        if value is None and entry["type"] == "choice":
            continue
        if not isinstance(value, expected):
            raise FieldTypeError(name, f"{entry['type']} value must be {expected.__name__}, got {value!r}")
        values[name] = value
    return values


def dumps_snapshot(fields: Iterable[Field]) -> str:
    return json.dumps(snapshot(fields), indent=2, sort_keys=True)


def loads_snapshot(text: str) -> Dict[str, Any]:
    """Parse JSON produced by :func:`dumps_snapshot` into mutator values."""

    data = json.loads(text)
    if not isinstance(data, dict):
        raise FieldTypeError("<snapshot>", "snapshot must be a JSON object")
    return values_from_snapshot(data)
