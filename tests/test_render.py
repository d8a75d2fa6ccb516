from __future__ import annotations

import io
import zlib

import pytest
from PIL import Image

from pdfform import apply, load, render
from pdfform.errors import RenderLimitExceeded, UnsupportedOperator

from pdfbuild import page_with_content, stream

WHITE = (255, 255, 255, 255)
BLACK = (0, 0, 0, 255)
BLUE = (0, 0, 255, 255)


def test_render_dimensions_scale_with_page(template_pdf):
    page = load(template_pdf, strict=True).pages[0]
    single = render(page, 1.0)
    double = render(page, 2.0)
    assert (single.width, single.height) == (200, 100)
    assert (double.width, double.height) == (400, 200)
    assert len(single.pixels) == 200 * 100 * 4
    assert single.mode == "RGBA"
    assert single.warnings == ()


def test_fractional_scale_rounds_up(template_pdf):
    page = load(template_pdf, strict=True).pages[1]
    rendered = render(page, 0.333)
    assert (rendered.width, rendered.height) == (34, 17)


def test_filled_rectangle_lands_bottom_left(template_pdf):
    page = load(template_pdf, strict=True).pages[0]
    image = render(page, 1.0).to_image()
    assert image.getpixel((10, 95)) == BLUE
    assert image.getpixel((150, 5)) == WHITE
    assert render(page, 2.0).to_image().getpixel((20, 190)) == BLUE


def test_widgets_reflect_live_edits(template_pdf):
    document = load(template_pdf, strict=True)
    before = render(document.pages[0]).to_image()
    checked = apply(document, {"is_insured": True}).document
    after = render(checked.pages[0]).to_image()
    # checkbox rect [10 35 25 50], "on" appearance fills 2..13 of its box
    assert before.getpixel((17, 57)) == WHITE
    assert after.getpixel((17, 57)) == BLACK
    # rendering never edits the document
    assert document.overrides == {}


def test_hidden_widgets_are_skipped():
    objects = {
        5: b"<< /Type /Annot /Subtype /Widget /F 2 /Rect [0 0 100 100] /AP << /N 6 0 R >> >>",
        6: stream(b"/Type /XObject /Subtype /Form /BBox [0 0 10 10]", b"0 g 0 0 10 10 re f"),
    }
    data = page_with_content(b"", page_extra=b" /Annots [5 0 R]", extra=objects)
    page = load(data, strict=True).pages[0]
    assert render(page).to_image().getpixel((50, 50)) == WHITE


def test_unsupported_operator_is_recorded_and_skipped():
    page = load(page_with_content(b"0 g 1 2 3 frobnicate 0 0 100 50 re f"), strict=True).pages[0]
    rendered = render(page)
    assert [w.operator for w in rendered.warnings if isinstance(w, UnsupportedOperator)] == ["frobnicate"]
    image = rendered.to_image()
    assert image.getpixel((50, 75)) == BLACK
    assert image.getpixel((50, 25)) == WHITE


def test_even_odd_fill_leaves_hole():
    content = b"1 0 0 rg 10 10 80 80 re 30 30 40 40 re f*"
    image = render(load(page_with_content(content), strict=True).pages[0]).to_image()
    assert image.getpixel((20, 50)) == (255, 0, 0, 255)
    assert image.getpixel((50, 50)) == WHITE


def test_clip_and_state_stack():
    content = b"q 0 0 50 100 re W n 0 g 0 0 100 100 re f Q 0 0 1 rg 90 90 10 10 re f"
    image = render(load(page_with_content(content), strict=True).pages[0]).to_image()
    assert image.getpixel((25, 50)) == BLACK
    assert image.getpixel((75, 50)) == WHITE
    assert image.getpixel((95, 5)) == BLUE


def test_form_xobject_and_image_xobject():
    pixels = bytes([255, 0, 0] * 4)
    extra = {
        5: stream(b"/Type /XObject /Subtype /Form /BBox [0 0 10 10] /Matrix [1 0 0 1 10 10]", b"0 g 0 0 10 10 re f"),
        6: stream(
            b"/Type /XObject /Subtype /Image /Width 2 /Height 2 /ColorSpace /DeviceRGB /BitsPerComponent 8 /Filter /FlateDecode",
            zlib.compress(pixels),
        ),
    }
    content = b"/Fm1 Do q 20 0 0 20 60 60 cm /Im1 Do Q"
    data = page_with_content(content, resources=b"/XObject << /Fm1 5 0 R /Im1 6 0 R >>", extra=extra)
    image = render(load(data, strict=True).pages[0]).to_image()
    assert image.getpixel((15, 85)) == BLACK
    assert image.getpixel((70, 30))[:3] == (255, 0, 0)


def test_rotated_page_swaps_dimensions(xref_stream_pdf):
    rendered = render(load(xref_stream_pdf, strict=True).pages[0], 1.0)
    assert (rendered.width, rendered.height) == (80, 120)


def test_render_limit(template_pdf):
    page = load(template_pdf, strict=True).pages[0]
    with pytest.raises(RenderLimitExceeded):
        render(page, 10.0, max_pixels=10_000)


def test_png_export(template_pdf):
    rendered = render(load(template_pdf, strict=True).pages[0], 0.5)
    image = Image.open(io.BytesIO(rendered.to_png()))
    assert image.size == (100, 50)
