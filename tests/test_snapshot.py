from __future__ import annotations

import json

import pytest

from pdfform import apply, load
from pdfform.errors import FieldTypeError
from pdfform.snapshot import dumps_snapshot, loads_snapshot, snapshot, values_from_snapshot


def test_snapshot_of_template(template_pdf):
    assert snapshot(load(template_pdf, strict=True).fields()) == {
        "patient_name": {"type": "text", "value": "John Smith"},
        "is_insured": {"type": "checkbox", "value": False},
        "plan_type": {"type": "choice", "value": "HMO"},
    }


def test_snapshot_values_reapply_cleanly(template_pdf):
    document = load(template_pdf, strict=True)
    edited = apply(document, {"patient_name": "Jane Doe", "is_insured": True}).document
    values = values_from_snapshot(snapshot(edited.fields()))
    assert values == {"patient_name": "Jane Doe", "is_insured": True, "plan_type": "HMO"}
    result = apply(document, values, strict=True)
    assert snapshot(result.document.fields()) == snapshot(edited.fields())


@pytest.mark.parametrize(
    "entry",
    [
        {"type": "checkbox", "value": "yes"},
        {"type": "text", "value": 12},
        {"type": "radio", "value": "A"},
        "plain",
    ],
)
def test_mistyped_entries_are_rejected(entry):
    with pytest.raises(FieldTypeError):
        values_from_snapshot({"field": entry})


def test_empty_choice_is_skipped():
    assert values_from_snapshot({"plan": {"type": "choice", "value": None}}) == {}


def test_json_round_trip(template_pdf):
    fields = load(template_pdf, strict=True).fields()
    text = dumps_snapshot(fields)
    assert list(json.loads(text)) == sorted(["patient_name", "is_insured", "plan_type"])
    assert loads_snapshot(text)["is_insured"] is False
    with pytest.raises(FieldTypeError):
        loads_snapshot("[1, 2]")
