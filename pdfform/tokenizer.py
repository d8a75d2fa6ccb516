"""PDF tokenizer.

Tokens are produced lazily from a byte buffer and a cursor.  Delimiters and
keywords (``<<``, ``[``, ``obj``, ``R``, ``true`` ...) are plain ``str``;
numbers are ``int``/``float``; names and strings use the wrappers from
:mod:`pdfform.primitives`.
"""

from __future__ import annotations

import re
from typing import Iterator, List, Tuple, Union

from .errors import MalformedSyntax
from .primitives import PDFName, PDFString

WHITESPACE = b"\x00\t\n\r\f "
DELIMITERS = b"()<>[]{}/%"
_HEX_DIGITS = b"0123456789abcdefABCDEF"
_NUMBER_RE = re.compile(rb"^[+-]?(?:\d+\.?\d*|\.\d+)$")

_ESCAPES = {
    ord("n"): b"\n",
    ord("r"): b"\r",
    ord("t"): b"\t",
    ord("b"): b"\b",
    ord("f"): b"\f",
    ord("("): b"(",
    ord(")"): b")",
    ord("\\"): b"\\",
}

Token = Union[str, int, float, PDFName, PDFString]


def _parse_name(data: bytes, index: int) -> tuple[PDFName, int]:
    start = index + 1
    index = start
    length = len(data)
    while index < length and data[index] not in WHITESPACE and data[index] not in DELIMITERS:
        index += 1
    raw = data[start:index]
    if b"#" in raw:
        decoded = bytearray()
        pos = 0
        while pos < len(raw):
            byte = raw[pos]
            chunk = raw[pos + 1 : pos + 3]
            if byte == 0x23 and len(chunk) == 2 and all(c in _HEX_DIGITS for c in chunk):
                decoded.append(int(chunk, 16))
                pos += 3
            else:
                decoded.append(byte)
                pos += 1
        raw = bytes(decoded)
    return PDFName(raw.decode("latin-1")), index


def _parse_number_or_keyword(data: bytes, index: int) -> tuple[Token, int]:
    start = index
    length = len(data)
    while index < length and data[index] not in WHITESPACE and data[index] not in DELIMITERS:
        index += 1
    token = data[start:index]
    if _NUMBER_RE.match(token):
        if b"." in token:
            return float(token), index
        return int(token), index
    return token.decode("latin-1"), index


def _parse_literal_string(data: bytes, index: int) -> tuple[PDFString, int]:
    start = index
    index += 1  # skip opening '('
    depth = 1
    length = len(data)
    result = bytearray()
    while index < length:
        byte = data[index]
        if byte == 0x5C:  # backslash
            index += 1
            if index >= length:
                break
            code = data[index]
            if code in _ESCAPES:
                result += _ESCAPES[code]
                index += 1
            elif 0x30 <= code <= 0x37:
                end = index
                while end < length and end - index < 3 and 0x30 <= data[end] <= 0x37:
                    end += 1
                result.append(int(data[index:end], 8) & 0xFF)
                index = end
            elif code == 0x0D:
                index += 1
                if index < length and data[index] == 0x0A:
                    index += 1
            elif code == 0x0A:
                index += 1
            else:
                result.append(code)
                index += 1
            continue
        if byte == 0x28:
            depth += 1
        elif byte == 0x29:
            depth -= 1
            if depth == 0:
                return PDFString(bytes(result)), index + 1
        elif byte == 0x0D:
            result.append(0x0A)
            index += 1
            if index < length and data[index] == 0x0A:
                index += 1
            continue
        result.append(byte)
        index += 1
    raise MalformedSyntax("Unterminated literal string", start)


def _parse_hex_string(data: bytes, index: int) -> tuple[PDFString, int]:
    end = data.find(b">", index + 1)
    if end == -1:
        raise MalformedSyntax("Unterminated hex string", index)
    hex_data = bytes(b for b in data[index + 1 : end] if b not in WHITESPACE)
    if any(b not in _HEX_DIGITS for b in hex_data):
        raise MalformedSyntax("Invalid character in hex string", index)
    if len(hex_data) % 2:
        hex_data += b"0"
    return PDFString(bytes.fromhex(hex_data.decode("ascii")), hex=True), end + 1


class Tokenizer:
    """Cursor over a byte buffer yielding one token at a time.

    The tokenizer holds no state besides ``pos``; seeking to any earlier
    position restarts tokenization from there.
    """

    def __init__(self, data: bytes, pos: int = 0) -> None:
        self.data = data
        self.pos = pos

    def seek(self, pos: int) -> None:
        self.pos = pos

    def skip_whitespace(self) -> int:
        data = self.data
        index = self.pos
        length = len(data)
        while index < length:
            byte = data[index]
            if byte in WHITESPACE:
                index += 1
            elif byte == 0x25:  # comment
                while index < length and data[index] not in (0x0A, 0x0D):
                    index += 1
            else:
                break
        self.pos = index
        return index

    def next_token(self) -> Tuple[int, Token] | None:
        """Return ``(start, token)`` for the next token, or ``None`` at the end."""

        data = self.data
        index = self.skip_whitespace()
        if index >= len(data):
            return None
        byte = data[index]
        if byte == 0x2F:  # '/'
            token, self.pos = _parse_name(data, index)
        elif byte == 0x28:  # '('
            token, self.pos = _parse_literal_string(data, index)
        elif byte == 0x3C:  # '<'
            if data[index + 1 : index + 2] == b"<":
                token, self.pos = "<<", index + 2
            else:
                token, self.pos = _parse_hex_string(data, index)
        elif byte == 0x3E:  # '>'
            if data[index + 1 : index + 2] != b">":
                raise MalformedSyntax("Unexpected '>'", index)
            token, self.pos = ">>", index + 2
        elif byte in b"[]{}":
            token, self.pos = chr(byte), index + 1
        elif byte == 0x29:
            raise MalformedSyntax("Unbalanced ')'", index)
        else:
            token, self.pos = _parse_number_or_keyword(data, index)
        return index, token

    def __iter__(self) -> Iterator[Token]:
        while True:
            item = self.next_token()
            if item is None:
                return
            yield item[1]


class TokenStream:
    """Lazy token iterator with lookahead, used by the object parser."""

    def __init__(self, data: bytes, pos: int = 0) -> None:
        self._tokenizer = Tokenizer(data, pos)
        self._buffer: List[Tuple[int, Token, int]] = []
        self.last_end = pos

    @property
    def data(self) -> bytes:
        return self._tokenizer.data

    def _fill(self, count: int) -> bool:
        while len(self._buffer) < count:
            item = self._tokenizer.next_token()
            if item is None:
                return False
            start, token = item
            self._buffer.append((start, token, self._tokenizer.pos))
        return True

    def peek(self) -> Token | None:
        return self.peek_n(0)

    def peek_n(self, offset: int) -> Token | None:
        if not self._fill(offset + 1):
            return None
        return self._buffer[offset][1]

    def position(self) -> int:
        """Start offset of the next token (or end of buffer)."""

        if self._fill(1):
            return self._buffer[0][0]
        return len(self.data)

    def pop(self) -> Token:
        if not self._fill(1):
            raise MalformedSyntax("Unexpected end of data", len(self.data))
        _, token, end = self._buffer.pop(0)
        self.last_end = end
        return token

    def __iter__(self) -> Iterator[Token]:
        while self.peek() is not None:
            yield self.pop()


def tokenize(data: bytes, pos: int = 0) -> List[Token]:
    return list(Tokenizer(data, pos))
