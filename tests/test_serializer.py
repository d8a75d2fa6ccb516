from __future__ import annotations

import re

from pdfform import apply, load, save
from pdfform.primitives import PDFName, PDFReference, PDFStream, PDFString
from pdfform.serializer import escape_literal, format_number, serialize
from pdfform.snapshot import snapshot

VALUES = {"patient_name": "Jane Doe", "is_insured": True, "plan_type": "PPO"}


def catalog(document):
    return [
        (f.name, f.kind, getattr(f, "value", None), getattr(f, "options", None))
        for f in document.fields()
    ]


def test_serialize_values():
    assert serialize({"Type": PDFName("Font"), "Kids": [PDFReference(3, 0)], "On": True}) == (
        b"<<\n/Type /Font\n/Kids [3 0 R]\n/On true\n>>"
    )
    assert serialize(PDFString(b"a(b)")) == b"(a\\(b\\))"
    assert serialize(PDFString(b"\x00\xff", hex=True)) == b"<00ff>"
    assert serialize(PDFName("A B")) == b"/A#20B"
    assert serialize(None) == b"null"
    assert format_number(1.5) == "1.5" and format_number(2.0) == "2" and format_number(0.1234567) == "0.123457"
    assert escape_literal(b"\\\r\n") == b"\\\\\\r\\n"


def test_unmodified_round_trip_keeps_catalog(template_pdf, nested_pdf, xref_stream_pdf):
    for data in (template_pdf, nested_pdf, xref_stream_pdf):
        original = load(data, strict=True)
        reloaded = load(save(original), strict=True)
        assert catalog(reloaded) == catalog(original)
        assert len(reloaded.pages) == len(original.pages)


def test_full_rewrite_is_contiguous_and_reproducible(template_pdf):
    document = apply(load(template_pdf, strict=True), VALUES).document
    output = save(document)
    assert output == save(document)
    numbers = sorted(int(n) for n in re.findall(rb"^(\d+) 0 obj", output, re.M))
    assert numbers == list(range(1, len(numbers) + 1))
    assert b"/Prev" not in output
    assert len(load(output, strict=True).trailer["ID"]) == 2


def test_full_rewrite_scenario(template_pdf):
    document = load(template_pdf, strict=True)
    edited = apply(document, VALUES, strict=True).document
    reloaded = load(save(edited), strict=True)
    assert snapshot(reloaded.fields()) == {
        "patient_name": {"type": "text", "value": "Jane Doe"},
        "is_insured": {"type": "checkbox", "value": True},
        "plan_type": {"type": "choice", "value": "PPO"},
    }
    assert len(reloaded.pages) == 2
    assert reloaded.root["Producer"] == PDFString(b"forms-test")


def test_incremental_save_is_superset(template_pdf):
    document = load(template_pdf, strict=True)
    edited = apply(document, VALUES, strict=True).document
    output = save(edited, incremental=True)
    assert output.startswith(template_pdf)
    appended = output[len(template_pdf):]
    assert b"/Prev %d" % document.startxref in appended
    reloaded = load(output, strict=True)
    assert len(reloaded.xref.sections) == 2
    assert reloaded.field("patient_name").value == "Jane Doe"
    assert reloaded.field("is_insured").checked
    assert reloaded.field("plan_type").value == "PPO"


def test_incremental_without_changes_returns_original(template_pdf):
    document = load(template_pdf, strict=True)
    assert save(document, incremental=True) == template_pdf


def test_incremental_on_xref_stream_document(xref_stream_pdf):
    document = load(xref_stream_pdf, strict=True)
    page_ref = PDFReference(3, 0)
    page = dict(document.get(page_ref))
    page["Rotate"] = 0
    edited = document.with_overrides({page_ref: page})
    reloaded = load(save(edited, incremental=True), strict=True)
    assert reloaded.pages[0].rotate == 0


def test_stream_length_matches_payload(template_pdf):
    edited = apply(load(template_pdf, strict=True), VALUES).document
    for output in (save(edited), save(edited, incremental=True)):
        reloaded = load(output, strict=True)
        for ref in reloaded.references():
            value = reloaded.get(ref)
            if isinstance(value, PDFStream):
                assert value.dictionary["Length"] == len(value.data)
