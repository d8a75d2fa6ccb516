"""Core PDF primitive data structures used by pdfform.

Values parsed from a document map onto plain Python types where one exists:

* ``null`` -> ``None``, booleans -> ``bool``, numbers -> ``int``/``float``
* arrays -> ``list``
* dictionaries -> ``dict`` keyed by the name *without* its leading slash

The remaining PDF types get the small wrappers defined below.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# PDFDocEncoding differs from Latin-1 in these positions.
_PDFDOC_OVERRIDES = {
    0x18: "˘", 0x19: "ˇ", 0x1A: "ˆ", 0x1B: "˙",
    0x1C: "˝", 0x1D: "˛", 0x1E: "˚", 0x1F: "˜",
    0x80: "•", 0x81: "†", 0x82: "‡", 0x83: "…",
    0x84: "—", 0x85: "–", 0x86: "ƒ", 0x87: "⁄",
    0x88: "‹", 0x89: "›", 0x8A: "−", 0x8B: "‰",
    0x8C: "„", 0x8D: "“", 0x8E: "”", 0x8F: "‘",
    0x90: "’", 0x91: "‚", 0x92: "™", 0x93: "ﬁ",
    0x94: "ﬂ", 0x95: "Ł", 0x96: "Œ", 0x97: "Š",
    0x98: "Ÿ", 0x99: "Ž", 0x9A: "ı", 0x9B: "ł",
    0x9C: "œ", 0x9D: "š", 0x9E: "ž", 0xA0: "€",
}
_PDFDOC_REVERSE = {char: code for code, char in _PDFDOC_OVERRIDES.items()}


@dataclass(frozen=True)
class PDFName:
    """Represents a PDF name object (e.g. ``/Page``).

    The value is stored without the leading slash.  ``str(name)`` reintroduces
    the slash when serialising.
    """

    value: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"/{self.value}"

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"PDFName({self.value!r})"


@dataclass(frozen=True)
class PDFReference:
    """Object reference (``12 0 R``).  Equality is number plus generation."""

    obj_id: int
    generation: int = 0

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"PDFReference({self.obj_id}, {self.generation})"


@dataclass(frozen=True)
class PDFString:
    """A PDF string.  ``raw`` holds the bytes exactly as decoded from syntax.

    ``hex`` remembers whether the source used ``<...>`` notation so
    serialisation can keep the original form.
    """

    raw: bytes
    hex: bool = False

    @classmethod
    def from_text(cls, text: str) -> "PDFString":
        return cls(encode_text(text))

    @property
    def text(self) -> str:
        return decode_text(self.raw)

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.text


@dataclass
class PDFStream:
    """Holds a PDF stream dictionary and the associated (still encoded) bytes."""

    dictionary: dict
    data: bytes


def decode_text(raw: bytes) -> str:
    """Decode a PDF text string (UTF-16BE/UTF-8 with BOM, else PDFDocEncoding)."""

    if raw.startswith(b"\xfe\xff"):
        return raw[2:].decode("utf-16-be", errors="replace")
    if raw.startswith(b"\xef\xbb\xbf"):
        return raw[3:].decode("utf-8", errors="replace")
    return "".join(_PDFDOC_OVERRIDES.get(byte, chr(byte)) for byte in raw)


def encode_text(text: str) -> bytes:
    """Encode *text* with PDFDocEncoding where possible, else UTF-16BE."""

    out = bytearray()
    for char in text:
        code = _PDFDOC_REVERSE.get(char)
        if code is None:
            code = ord(char)
            if code > 0xFF or code in _PDFDOC_OVERRIDES:
                return b"\xfe\xff" + text.encode("utf-16-be")
        out.append(code)
    return bytes(out)


def name_value(value: Any) -> str | None:
    """Return the bare string of a :class:`PDFName`, or ``None``."""

    if isinstance(value, PDFName):
        return value.value
    return None


def text_value(value: Any) -> str | None:
    """Return the text of a string-like PDF value, or ``None``."""

    if isinstance(value, PDFString):
        return value.text
    if isinstance(value, PDFName):
        return value.value
    if isinstance(value, str):
        return value
    return None
