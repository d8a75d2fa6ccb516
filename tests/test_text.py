from __future__ import annotations

from pdfform import load
from pdfform.text import extract_text

from pdfbuild import page_with_content

FONT = {5: b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>"}


def text_of(content: bytes) -> str:
    data = page_with_content(content, resources=b"/Font << /F1 5 0 R >>", extra=FONT)
    return extract_text(load(data, strict=True).pages[0])


def test_template_page_text(template_pdf):
    document = load(template_pdf, strict=True)
    assert extract_text(document.pages[0]) == "Enrollment"
    assert extract_text(document.pages[1]) == "Page two"


def test_lines_are_ordered_top_to_bottom():
    content = b"BT /F1 12 Tf 14 TL 10 80 Td [(Hello) -1000 (World)] TJ T* (Second) Tj ET"
    assert text_of(content) == "Hello World\nSecond"


def test_text_without_font_is_ignored():
    assert text_of(b"BT (orphan) Tj ET") == ""


def test_invisible_text_is_skipped():
    assert text_of(b"BT /F1 12 Tf 3 Tr 10 50 Td (hidden) Tj ET") == ""


def test_widget_appearances_are_not_page_text(template_pdf):
    # field values live in annotation appearances, not the page content
    assert "John Smith" not in extract_text(load(template_pdf, strict=True).pages[0])
