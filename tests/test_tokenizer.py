from __future__ import annotations

import pytest

from pdfform.errors import MalformedSyntax
from pdfform.parser import parse_content_stream, parse_indirect_object, parse_object_body
from pdfform.primitives import PDFName, PDFReference, PDFStream, PDFString
from pdfform.tokenizer import Tokenizer, TokenStream, tokenize


def test_tokenize_basic_values():
    tokens = tokenize(b"12 -3.5 /Name#20X (lit) <48656c6c6f> [ ] << >> true % comment\nendobj")
    assert tokens == [
        12,
        -3.5,
        PDFName("Name X"),
        PDFString(b"lit"),
        PDFString(b"Hello", hex=True),
        "[",
        "]",
        "<<",
        ">>",
        "true",
        "endobj",
    ]


def test_literal_string_escapes_and_nesting():
    (token,) = tokenize(b"(a\\(b\\) (nested) \\101\\n\\\nend)")
    assert token.raw == b"a(b) (nested) A\nend"


def test_tokenizer_is_restartable_from_any_position():
    data = b"1 0 obj << /A 2 >> endobj"
    tokenizer = Tokenizer(data)
    first = list(tokenizer)
    tokenizer.seek(0)
    assert list(tokenizer) == first
    assert tokenize(data, data.index(b"<<")) == first[3:]


@pytest.mark.parametrize(
    "data",
    [b"(unterminated", b"<4G>", b"a > b", b"stray )"],
)
def test_malformed_syntax_reports_position(data):
    with pytest.raises(MalformedSyntax) as info:
        tokenize(data)
    assert info.value.position is not None


def test_token_stream_lookahead():
    tokens = TokenStream(b"1 0 R /Next")
    assert tokens.peek_n(2) == "R"
    assert tokens.pop() == 1
    assert tokens.position() == 2


def test_parse_object_body_builds_nested_values():
    value = parse_object_body(b"<< /Kids [1 0 R 2 5 R] /Count 2 /Flag false /Empty null /Title (X) >>")
    assert value == {
        "Kids": [PDFReference(1, 0), PDFReference(2, 5)],
        "Count": 2,
        "Flag": False,
        "Empty": None,
        "Title": PDFString(b"X"),
    }


def test_unknown_keys_are_preserved():
    value = parse_object_body(b"<< /Type /Catalog /XProducerData << /Nested [1 2] >> >>")
    assert value["XProducerData"] == {"Nested": [1, 2]}


def test_parse_indirect_stream_object():
    data = b"7 0 obj\n<< /Length 5 >>\nstream\nhello\nendstream\nendobj\n"
    ref, value, end = parse_indirect_object(data, 0)
    assert ref == PDFReference(7, 0)
    assert isinstance(value, PDFStream)
    assert value.data == b"hello"
    assert end == data.index(b"endobj") + len(b"endobj")


def test_wrong_stream_length_is_strict_error_and_lenient_recovery():
    data = b"7 0 obj\n<< /Length 50 >>\nstream\nhello\nendstream\nendobj\n"
    with pytest.raises(MalformedSyntax):
        parse_indirect_object(data, 0, strict=True)
    _, value, _ = parse_indirect_object(data, 0, strict=False)
    assert value.data == b"hello"


def test_content_stream_operations_and_inline_image():
    data = b"q 1 0 0 1 5 5 cm BI /W 1 /H 1 /CS /G /BPC 8 ID \x80 EI Q [(A) -20 (B)] TJ"
    operations = list(parse_content_stream(data))
    operators = [operator for _, operator in operations]
    assert operators == ["q", "cm", "BI", "Q", "TJ"]
    params, payload = operations[2][0]
    assert params["W"] == 1 and payload == b"\x80"
    assert operations[4][0] == [[PDFString(b"A"), -20, PDFString(b"B")]]
