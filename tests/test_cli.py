from __future__ import annotations

import json

from PIL import Image

from pdfform import load
from pdfform.cli import main


def write(tmp_path, data: bytes, name: str = "form.pdf"):
    path = tmp_path / name
    path.write_bytes(data)
    return path


def test_fields_prints_snapshot(tmp_path, template_pdf, capsys):
    source = write(tmp_path, template_pdf)
    assert main(["fields", str(source)]) == 0
    printed = json.loads(capsys.readouterr().out)
    assert printed["plan_type"] == {"type": "choice", "value": "HMO"}


def test_fill_with_assignments_and_values_file(tmp_path, template_pdf):
    source = write(tmp_path, template_pdf)
    values = tmp_path / "values.json"
    values.write_text(json.dumps({"plan_type": {"type": "choice", "value": "PPO"}}), encoding="utf-8")
    output = tmp_path / "filled.pdf"
    argv = [
        "fill", str(source), str(output),
        "--values", str(values),
        "--set", "patient_name=Jane Doe",
        "--set", "is_insured=true",
    ]
    assert main(argv) == 0
    document = load(output.read_bytes(), strict=True)
    assert document.field("patient_name").value == "Jane Doe"
    assert document.field("is_insured").checked
    assert document.field("plan_type").value == "PPO"


def test_fill_incremental_appends(tmp_path, template_pdf):
    source = write(tmp_path, template_pdf)
    output = tmp_path / "filled.pdf"
    assert main(["fill", str(source), str(output), "--incremental", "--set", "patient_name=X"]) == 0
    assert output.read_bytes().startswith(template_pdf)


def test_strict_fill_reports_bad_option(tmp_path, template_pdf, capsys):
    source = write(tmp_path, template_pdf)
    output = tmp_path / "filled.pdf"
    assert main(["--strict", "fill", str(source), str(output), "--set", "plan_type=POS"]) == 1
    assert "POS" in capsys.readouterr().err
    assert not output.exists()


def test_render_writes_png(tmp_path, template_pdf):
    source = write(tmp_path, template_pdf)
    output = tmp_path / "page.png"
    assert main(["render", str(source), str(output), "--page", "2", "--scale", "2"]) == 0
    with Image.open(output) as image:
        assert image.size == (200, 100)
    assert main(["render", str(source), str(output), "--page", "3"]) == 2


def test_text_command(tmp_path, template_pdf, capsys):
    source = write(tmp_path, template_pdf)
    assert main(["text", str(source), "--json"]) == 0
    assert json.loads(capsys.readouterr().out) == ["Enrollment", "Page two"]
    assert main(["text", str(source), "--page", "2"]) == 0
    assert capsys.readouterr().out.strip() == "Page two"


def test_unreadable_document_exits_with_error(tmp_path, capsys):
    source = write(tmp_path, b"this is not a pdf")
    assert main(["fields", str(source)]) == 1
    assert "could not open document" in capsys.readouterr().err
