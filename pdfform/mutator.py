"""Apply field values to a document without touching the original."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import cached_property
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from . import settings
from .appearance import build_text_appearance, default_appearance_of, quadding_of
from .document import Document
from .errors import BrokenReference, FieldTypeError, FieldValueError, InvalidOption, ValueTooLong
from .fields import CheckboxField, ChoiceField, Field, TextField, UnsupportedField, on_state_of
from .primitives import PDFName, PDFReference, PDFStream, PDFString

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class MutationResult:
    """The edited document plus the problems that did not stop the edit."""

    document: Document
    warnings: Tuple[FieldValueError, ...] = ()
    changed: Tuple[str, ...] = ()


class _Staging:
    """Copy-on-write overlay of the objects touched by one :func:`apply` call."""

    def __init__(self, document: Document) -> None:
        self.document = document
        self.changes: Dict[PDFReference, Any] = {}
        self._next_number = document.next_object_number

    def dictionary(self, ref: PDFReference) -> Dict[str, Any]:
        if ref not in self.changes:
            value = self.document.get(ref)
            if not isinstance(value, dict):
                raise FieldTypeError(repr(ref), "object is not a dictionary")
            self.changes[ref] = dict(value)
        return self.changes[ref]

    def current(self, ref: PDFReference) -> Any:
        if ref in self.changes:
            return self.changes[ref]
        return self.document.get(ref)

    def resolve(self, value: Any) -> Any:
        if isinstance(value, PDFReference):
            return self.current(value)
        return value

    def allocate(self) -> PDFReference:
        ref = PDFReference(self._next_number, 0)
        self._next_number += 1
        return ref

    @cached_property
    def users(self) -> Dict[PDFReference, Set[PDFReference]]:
        return _appearance_users(self.document)

    def exclusive(self, ref: PDFReference, owners: Set[PDFReference]) -> bool:
        """True when only annotations in *owners* use the appearance object *ref*."""

        return self.users.get(ref, set()) <= owners

    def release(self, ref: PDFReference, annot_ref: PDFReference) -> None:
        self.users.get(ref, set()).discard(annot_ref)


def _appearance_users(document: Document) -> Dict[PDFReference, Set[PDFReference]]:
    """Map indirect appearance dictionaries and streams to the annotations using them."""

    annots: Dict[PDFReference, Dict[str, Any]] = {}
    for page in document.pages:
        for ref, annot in page.annotations():
            if ref is not None:
                annots[ref] = annot
    for item in document.fields():
        for widget in item.widgets:
            if widget.ref is not None and widget.ref not in annots:
                annot = document.get(widget.ref)
                if isinstance(annot, dict):
                    annots[widget.ref] = annot

    users: Dict[PDFReference, Set[PDFReference]] = {}
    for annot_ref, annot in annots.items():
        try:
            ap_value = annot.get("AP")
            if isinstance(ap_value, PDFReference):
                users.setdefault(ap_value, set()).add(annot_ref)
            appearance = document.resolve(ap_value)
            if not isinstance(appearance, dict):
                continue
            for entry in appearance.values():
                if isinstance(entry, PDFReference):
                    users.setdefault(entry, set()).add(annot_ref)
                states = document.resolve(entry)
                if isinstance(states, dict):
                    for state in states.values():
                        if isinstance(state, PDFReference):
                            users.setdefault(state, set()).add(annot_ref)
        except BrokenReference as exc:
            log.warning("Annotation %r has a dangling appearance: %s", annot_ref, exc)
    return users


def _store_appearance(
    staging: _Staging, widget_ref: PDFReference, stream: PDFStream, owners: Set[PDFReference]
) -> None:
    """Make *stream* the widget's normal appearance.

    The existing stream object is overwritten only when no annotation outside
    *owners* (the widgets of the field being edited) shares it; otherwise the
    widget is pointed at a fresh object.
    """

    widget = staging.dictionary(widget_ref)
    ap_value = widget.get("AP")
    appearance = staging.resolve(ap_value)
    normal = appearance.get("N") if isinstance(appearance, dict) else None
    if (
        isinstance(normal, PDFReference)
        and isinstance(staging.current(normal), PDFStream)
        and staging.exclusive(normal, owners)
    ):
        staging.changes[normal] = stream
        return

    stream_ref = staging.allocate()
    staging.changes[stream_ref] = stream
    staging.users[stream_ref] = {widget_ref}
    if isinstance(normal, PDFReference):
        staging.release(normal, widget_ref)
    if isinstance(ap_value, PDFReference) and isinstance(appearance, dict) and staging.exclusive(ap_value, owners):
        staging.dictionary(ap_value)["N"] = stream_ref
        return
    if isinstance(ap_value, PDFReference):
        staging.release(ap_value, widget_ref)
    updated = dict(appearance) if isinstance(appearance, dict) else {}
    updated["N"] = stream_ref
    updated.pop("D", None)
    widget["AP"] = updated


class _Mutator:
    def __init__(self, document: Document, strict: bool) -> None:
        self.document = document
        self.strict = strict
        self.staging = _Staging(document)
        self.warnings: List[FieldValueError] = []
        self.changed: List[str] = []

    def report(self, error: FieldValueError) -> None:
        if self.strict:
            raise error
        log.warning("%s", error)
        self.warnings.append(error)

    def field_dictionary(self, field: Field) -> Optional[Dict[str, Any]]:
        if field.ref is None:
            self.report(FieldTypeError(field.name, "field is stored inline and cannot be edited"))
            return None
        return self.staging.dictionary(field.ref)

    def apply(self, field: Field, value: Any) -> None:
        if isinstance(field, TextField):
            self.apply_text(field, value)
        elif isinstance(field, CheckboxField):
            self.apply_checkbox(field, value)
        elif isinstance(field, ChoiceField):
            self.apply_choice(field, value)
        elif isinstance(field, UnsupportedField):
            log.debug("Ignoring value for unsupported field %r", field.name)
        else:  # pragma: no cover - closed set of field kinds
            raise TypeError(f"Unknown field kind {type(field)!r}")

    def apply_text(self, field: TextField, value: Any) -> None:
        if not isinstance(value, str):
            self.report(FieldTypeError(field.name, f"text field expects a string, got {type(value).__name__}"))
            return
        if field.max_length is not None and len(value) > field.max_length:
            self.report(ValueTooLong(field.name, field.max_length, len(value)))
        dictionary = self.field_dictionary(field)
        if dictionary is None:
            return
        dictionary["V"] = PDFString.from_text(value)
        self.refresh_appearances(field, value, multiline=field.multiline)
        self.changed.append(field.name)

    def apply_choice(self, field: ChoiceField, value: Any) -> None:
        if not isinstance(value, str):
            self.report(FieldTypeError(field.name, f"choice field expects a string, got {type(value).__name__}"))
            return
        if value not in field.options:
            self.report(InvalidOption(field.name, value, field.options))
            return
        dictionary = self.field_dictionary(field)
        if dictionary is None:
            return
        dictionary["V"] = PDFString.from_text(value)
        if "I" in dictionary:
            dictionary["I"] = [field.options.index(value)]
        self.refresh_appearances(field, field.label_for(value), multiline=False)
        self.changed.append(field.name)

    def apply_checkbox(self, field: CheckboxField, value: Any) -> None:
        if not isinstance(value, bool):
            self.report(FieldTypeError(field.name, f"checkbox expects true or false, got {value!r}"))
            return
        dictionary = self.field_dictionary(field)
        if dictionary is None:
            return
        dictionary["V"] = PDFName(field.on_state if value else "Off")
        for widget in field.widgets:
            if widget.ref is None:
                continue
            annot = self.staging.dictionary(widget.ref)
            on_state = on_state_of(self.document, annot) or field.on_state
            annot["AS"] = PDFName(on_state if value else "Off")
        self.changed.append(field.name)

    def refresh_appearances(self, field: Field, text: str, *, multiline: bool) -> None:
        owners = {widget.ref for widget in field.widgets if widget.ref is not None}
        for widget in field.widgets:
            if widget.ref is None:
                continue
            annot = self.staging.dictionary(widget.ref)
            stream = build_text_appearance(
                self.document,
                annot,
                text,
                default_appearance=default_appearance_of(self.document, annot),
                quadding=quadding_of(self.document, annot),
                multiline=multiline,
            )
            _store_appearance(self.staging, widget.ref, stream, owners)


def apply(document: Document, values: Mapping[str, Any], *, strict: Optional[bool] = None) -> MutationResult:
    """Return a copy of *document* with *values* applied to its form fields.

    Keys that do not name a field, or that name an unsupported field, are
    ignored.  In lenient mode validation problems are collected in
    ``MutationResult.warnings``; with ``strict=True`` the first one is raised
    and no edit is applied.  The input document is never modified.
    """

    strict = settings.resolve_strict(strict)
    catalog = {item.name: item for item in document.fields()}
    mutator = _Mutator(document, strict)
    for name, value in values.items():
        field = catalog.get(name)
        if field is None:
            log.debug("Ignoring unknown field %r", name)
            continue
        mutator.apply(field, value)

    if not mutator.staging.changes:
        return MutationResult(document, tuple(mutator.warnings))
    updated = document.with_overrides(mutator.staging.changes)
    log.debug("Applied %d field values (%d objects changed)", len(mutator.changed), len(mutator.staging.changes))
    return MutationResult(updated, tuple(mutator.warnings), tuple(mutator.changed))
