from __future__ import annotations

import pytest

from pdfform import load
from pdfform.errors import CorruptStructure
from pdfform.fields import (
    CheckboxField,
    ChoiceField,
    FieldKind,
    TextField,
    UnsupportedField,
    extract_fields,
)
from pdfform.primitives import PDFReference

from pdfbuild import build_pdf


def test_template_fields(template_pdf):
    document = load(template_pdf, strict=True)
    fields = extract_fields(document)
    assert [(f.name, f.kind) for f in fields] == [
        ("patient_name", FieldKind.TEXT),
        ("is_insured", FieldKind.CHECKBOX),
        ("plan_type", FieldKind.CHOICE),
    ]
    name, insured, plan = fields
    assert isinstance(name, TextField)
    assert name.value == "John Smith" and name.max_length == 40
    assert isinstance(insured, CheckboxField)
    assert insured.checked is False and insured.on_state == "Yes"
    assert isinstance(plan, ChoiceField)
    assert plan.options == ("HMO", "PPO") and plan.value == "HMO" and plan.combo


def test_widgets_carry_page_rect_and_state(template_pdf):
    document = load(template_pdf, strict=True)
    (widget,) = document.field("is_insured").widgets
    assert widget.ref == PDFReference(7, 0)
    assert widget.page_index == 0
    assert widget.rect == (10.0, 35.0, 25.0, 50.0)
    assert widget.appearance_state == "Off"


def test_nested_names_and_shared_widgets(nested_pdf):
    document = load(nested_pdf, strict=True)
    fields = {f.name: f for f in document.fields()}
    assert list(fields) == ["applicant.first", "applicant.last", "initials"]
    assert fields["applicant.first"].value == "Ada"
    assert fields["applicant.last"].multiline
    assert fields["initials"].value == "AL"
    assert len(fields["initials"].widgets) == 2


def test_names_are_unique(nested_pdf, template_pdf):
    for data in (nested_pdf, template_pdf):
        names = [f.name for f in load(data, strict=True).fields()]
        assert len(names) == len(set(names))


def test_duplicate_names_are_corrupt():
    objects = {
        1: b"<< /Type /Catalog /Pages 2 0 R /AcroForm << /Fields [4 0 R 5 0 R] >> >>",
        2: b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        3: b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 100 100] >>",
        4: b"<< /FT /Tx /T (same) /Rect [0 0 10 10] >>",
        5: b"<< /FT /Tx /T (same) /Rect [0 20 10 30] >>",
    }
    with pytest.raises(CorruptStructure):
        load(build_pdf(objects), strict=False)


def test_unsupported_kinds_are_kept_but_not_editable():
    objects = {
        1: b"<< /Type /Catalog /Pages 2 0 R /AcroForm << /Fields [4 0 R 5 0 R 6 0 R] >> >>",
        2: b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        3: b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 100 100] >>",
        4: b"<< /FT /Btn /Ff 32768 /T (radio) /V /A /Rect [0 0 10 10] >>",
        5: b"<< /FT /Sig /T (signature) /Rect [0 20 10 30] >>",
        6: b"<< /FT /Ch /Ff 2097152 /T (multi) /Opt [(A) (B)] /Rect [0 40 10 50] >>",
    }
    fields = load(build_pdf(objects), strict=True).fields()
    assert all(isinstance(f, UnsupportedField) for f in fields)
    assert [f.field_type for f in fields] == ["Btn", "Sig", "Ch"]
    assert not any(f.editable for f in fields)


def test_choice_options_with_labels():
    objects = {
        1: b"<< /Type /Catalog /Pages 2 0 R /AcroForm << /Fields [4 0 R] >> >>",
        2: b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        3: b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 100 100] >>",
        4: b"<< /FT /Ch /T (state) /Opt [[(CA) (California)] [(NY) (New York)]] /V (NY) /Rect [0 0 10 10] >>",
    }
    (field,) = load(build_pdf(objects), strict=True).fields()
    assert field.options == ("CA", "NY")
    assert field.labels == ("California", "New York")
    assert field.label_for("NY") == "New York"
    assert not field.combo


def test_field_tree_cycle_is_corrupt():
    objects = {
        1: b"<< /Type /Catalog /Pages 2 0 R /AcroForm << /Fields [4 0 R] >> >>",
        2: b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        3: b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 100 100] >>",
        4: b"<< /T (loop) /Kids [5 0 R] >>",
        5: b"<< /T (inner) /Kids [4 0 R] >>",
    }
    with pytest.raises(CorruptStructure):
        load(build_pdf(objects), strict=False)
