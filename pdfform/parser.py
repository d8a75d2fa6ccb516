"""Object-level PDF parsing built on :mod:`pdfform.tokenizer`."""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from .errors import MalformedSyntax
from .primitives import PDFName, PDFReference, PDFStream, PDFString
from .tokenizer import WHITESPACE, TokenStream

log = logging.getLogger(__name__)

LengthResolver = Callable[[PDFReference], Any]

_OBJECT_RE = re.compile(rb"(?<![0-9])(\d+)\s+(\d+)\s+obj\b")
_ENDSTREAM_RE = re.compile(rb"\r?\n?endstream")
_INLINE_END_RE = re.compile(rb"\sEI(?=\s|$)")


def parse_value(tokens: TokenStream) -> Any:
    start = tokens.position()
    token = tokens.pop()
    if token == "<<":
        result: Dict[str, Any] = {}
        while True:
            nxt = tokens.peek()
            if nxt is None:
                raise MalformedSyntax("Unterminated dictionary", start)
            if nxt == ">>":
                break
            key = tokens.pop()
            if not isinstance(key, PDFName):
                raise MalformedSyntax(f"Expected name as dictionary key, got {key!r}", tokens.last_end)
            result[key.value] = parse_value(tokens)
        tokens.pop()  # consume '>>'
        return result
    if token == "[":
        items = []
        while True:
            nxt = tokens.peek()
            if nxt is None:
                raise MalformedSyntax("Unterminated array", start)
            if nxt == "]":
                break
            items.append(parse_value(tokens))
        tokens.pop()
        return items
    if isinstance(token, (PDFString, PDFName)):
        return token
    if isinstance(token, (int, float)):
        if isinstance(token, int) and isinstance(tokens.peek(), int) and tokens.peek_n(1) == "R":
            generation = tokens.pop()
            tokens.pop()  # consume 'R'
            return PDFReference(token, generation)
        return token
    if token in {"true", "false"}:
        return token == "true"
    if token == "null":
        return None
    if token in {">>", "]"}:
        raise MalformedSyntax(f"Unexpected {token!r}", start)
    return token


def parse_object_body(body: bytes) -> Any:
    return parse_value(TokenStream(body))


def _stream_data_start(data: bytes, pos: int) -> int:
    # 'stream' is followed by CRLF or LF; tolerate a lone CR.
    if data[pos : pos + 2] == b"\r\n":
        return pos + 2
    if data[pos : pos + 1] in (b"\n", b"\r"):
        return pos + 1
    return pos


def parse_indirect_object(
    data: bytes,
    offset: int,
    *,
    length_resolver: Optional[LengthResolver] = None,
    strict: bool = True,
) -> Tuple[PDFReference, Any, int]:
    """Parse ``N G obj ... endobj`` at *offset*.

    Returns the object's reference, its value (a :class:`PDFStream` for stream
    objects) and the offset just past the object.
    """

    tokens = TokenStream(data, offset)
    obj_id, generation, keyword = tokens.pop(), tokens.pop(), tokens.pop()
    if not isinstance(obj_id, int) or not isinstance(generation, int) or keyword != "obj":
        raise MalformedSyntax("Expected indirect object header", offset)
    ref = PDFReference(obj_id, generation)
    value = parse_value(tokens)
    if tokens.peek() == "stream":
        if not isinstance(value, dict):
            raise MalformedSyntax("Stream without dictionary", offset)
        tokens.pop()
        start = _stream_data_start(data, tokens.last_end)
        length = value.get("Length")
        if isinstance(length, PDFReference) and length_resolver is not None:
            length = length_resolver(length)
        end = _delimit_stream(data, start, length, strict=strict, obj_ref=ref)
        stream = PDFStream(value, data[start:end])
        tokens = TokenStream(data, end)
        if tokens.peek() != "endstream":
            raise MalformedSyntax("Missing endstream", end)
        tokens.pop()
        value = stream
    if tokens.peek() == "endobj":
        tokens.pop()
    elif strict:
        raise MalformedSyntax(f"Missing endobj for {ref!r}", tokens.position())
    return ref, value, tokens.last_end


def _delimit_stream(data: bytes, start: int, length: Any, *, strict: bool, obj_ref: PDFReference) -> int:
    if isinstance(length, int) and length >= 0:
        end = start + length
        probe = end
        while probe < len(data) and data[probe] in WHITESPACE:
            probe += 1
        if data[probe : probe + 9] == b"endstream":
            return end
        if strict:
            raise MalformedSyntax(f"Stream length of {obj_ref!r} does not match endstream", end)
        log.warning("Stream %r has a wrong /Length; searching for endstream", obj_ref)
    elif strict:
        raise MalformedSyntax(f"Stream {obj_ref!r} has no usable /Length", start)
    match = _ENDSTREAM_RE.search(data, start)
    if not match:
        raise MalformedSyntax(f"Stream {obj_ref!r} has no endstream", start)
    return match.start()


def scan_objects(data: bytes) -> Iterator[Tuple[int, int, int]]:
    """Yield ``(obj_id, generation, offset)`` for every object header found."""

    for match in _OBJECT_RE.finditer(data):
        yield int(match.group(1)), int(match.group(2)), match.start()


# -- Content streams ---------------------------------------------------------


ContentOperation = Tuple[List[Any], str]


def parse_content_stream(data: bytes) -> Iterator[ContentOperation]:
    """Yield ``(operands, operator)`` pairs from a content stream.

    Inline images (``BI ... ID <bytes> EI``) are yielded as a single ``BI``
    operation whose operand is ``[dictionary, image_bytes]``.
    """

    tokens = TokenStream(data)
    operands: List[Any] = []
    while True:
        token = tokens.peek()
        if token is None:
            break
        if isinstance(token, str) and token not in {"<<", "[", "true", "false", "null"}:
            if token in {">>", "]", "{", "}"}:
                raise MalformedSyntax(f"Unexpected {token!r} in content stream", tokens.position())
            tokens.pop()
            if token == "BI":
                yield _read_inline_image(tokens), "BI"
                tokens = TokenStream(data, tokens.last_end)
            else:
                yield operands, token
            operands = []
            continue
        operands.append(parse_value(tokens))
    if operands:
        log.debug("Dropping %d trailing operands", len(operands))


def _read_inline_image(tokens: TokenStream) -> List[Any]:
    params: Dict[str, Any] = {}
    while True:
        key = tokens.peek()
        if key is None:
            raise MalformedSyntax("Unterminated inline image", len(tokens.data))
        if key == "ID":
            tokens.pop()
            break
        tokens.pop()
        if not isinstance(key, PDFName):
            raise MalformedSyntax("Expected name in inline image dictionary", tokens.last_end)
        params[key.value] = parse_value(tokens)
    data = tokens.data
    start = tokens.last_end + 1
    match = _INLINE_END_RE.search(data, start)
    if not match:
        raise MalformedSyntax("Inline image without EI", start)
    payload = data[start : match.start()]
    tokens.last_end = match.end()
    return [params, payload]
