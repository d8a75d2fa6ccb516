from __future__ import annotations

import base64
import zlib

import pytest

from pdfform import load
from pdfform.errors import DecodeError
from pdfform.filters import decode_stream, stream_filters
from pdfform.primitives import PDFName, PDFReference, PDFStream, PDFString

from pdfbuild import build_pdf, minimal_objects, stream


def make(data: bytes, filters, parms=None) -> PDFStream:
    dictionary = {"Filter": filters}
    if parms is not None:
        dictionary["DecodeParms"] = parms
    return PDFStream(dictionary, data)


def test_flate():
    assert decode_stream(make(zlib.compress(b"hello"), PDFName("FlateDecode"))) == b"hello"


def test_flate_png_up_predictor():
    # two rows of three bytes, second row stored as a difference from the first
    raw = bytes([2, 1, 2, 3, 2, 1, 1, 1])
    stream = make(zlib.compress(raw), PDFName("FlateDecode"), {"Predictor": 12, "Columns": 3})
    assert decode_stream(stream) == bytes([1, 2, 3, 2, 3, 4])


def test_ascii_filters_and_chains():
    assert decode_stream(make(b"48 65 6c6c 6f>", PDFName("ASCIIHexDecode"))) == b"Hello"
    assert decode_stream(make(b"4>", PDFName("AHx"))) == b"@"
    encoded = base64.a85encode(b"form data", adobe=True)
    assert decode_stream(make(encoded, PDFName("ASCII85Decode"))) == b"form data"
    chained = base64.a85encode(zlib.compress(b"chain"), adobe=True)
    assert decode_stream(make(chained, [PDFName("A85"), PDFName("Fl")])) == b"chain"


def test_run_length():
    data = bytes([2]) + b"abc" + bytes([253]) + b"z" + bytes([128])
    assert decode_stream(make(data, PDFName("RunLengthDecode"))) == b"abczzzz"


def test_image_codecs_stay_encoded():
    stream = make(b"\xff\xd8jpeg", PDFName("DCTDecode"))
    assert stream_filters(stream) == ["DCTDecode"]
    assert decode_stream(stream) == b"\xff\xd8jpeg"


def test_unknown_filter_and_bad_data():
    with pytest.raises(DecodeError):
        decode_stream(make(b"data", PDFName("LZWDecode")))
    with pytest.raises(DecodeError):
        decode_stream(make(b"not zlib at all", PDFName("FlateDecode")))
    with pytest.raises(DecodeError):
        decode_stream(make(b"zz>", PDFName("ASCIIHexDecode")))


def test_indirect_decode_parms_and_filter_are_followed():
    # two rows of two bytes, second row stored as a difference from the first
    payload = zlib.compress(bytes([0, 1, 2, 0, 3, 4]))
    objects = minimal_objects()
    objects[4] = stream(b"/Filter /FlateDecode /DecodeParms 5 0 R", payload)
    objects[5] = b"<< /Predictor 12 /Columns 2 >>"
    objects[6] = stream(b"/Filter 7 0 R /DecodeParms [8 0 R]", payload)
    objects[7] = b"[/FlateDecode]"
    objects[8] = b"<< /Predictor 12 /Columns 2 >>"
    document = load(build_pdf(objects), strict=True)
    assert document.stream_data(PDFReference(4, 0)) == b"\x01\x02\x03\x04"
    assert document.stream_data(PDFReference(6, 0)) == b"\x01\x02\x03\x04"

    edited = document.with_overrides({PDFReference(4, 0): document.get(PDFReference(4, 0))})
    assert edited.stream_data(PDFReference(4, 0)) == b"\x01\x02\x03\x04"


def test_external_file_keys_are_not_filters():
    stream_object = PDFStream({"F": PDFString(b"data.bin"), "DP": {"Predictor": 12}}, b"raw bytes")
    assert stream_filters(stream_object) == []
    assert decode_stream(stream_object) == b"raw bytes"
