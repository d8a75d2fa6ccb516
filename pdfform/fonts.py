"""Font resources: character codes to text, advance widths and Pillow faces."""

from __future__ import annotations

import io
import logging
import re
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from PIL import ImageFont

from . import settings
from .errors import PDFFormError
from .primitives import PDFName, PDFStream, name_value

if TYPE_CHECKING:  # pragma: no cover
    from .document import Document

log = logging.getLogger(__name__)

# Glyph names outside the single-character ones that producers commonly use
# in /Differences arrays.
_GLYPH_NAMES = {
    "space": " ", "exclam": "!", "quotedbl": '"', "numbersign": "#",
    "dollar": "$", "percent": "%", "ampersand": "&", "quotesingle": "'",
    "parenleft": "(", "parenright": ")", "asterisk": "*", "plus": "+",
    "comma": ",", "hyphen": "-", "period": ".", "slash": "/",
    "zero": "0", "one": "1", "two": "2", "three": "3", "four": "4",
    "five": "5", "six": "6", "seven": "7", "eight": "8", "nine": "9",
    "colon": ":", "semicolon": ";", "less": "<", "equal": "=",
    "greater": ">", "question": "?", "at": "@", "bracketleft": "[",
    "backslash": "\\", "bracketright": "]", "asciicircum": "^",
    "underscore": "_", "grave": "`", "braceleft": "{", "bar": "|",
    "braceright": "}", "asciitilde": "~", "bullet": "•",
    "endash": "–", "emdash": "—", "quoteleft": "‘",
    "quoteright": "’", "quotedblleft": "“", "quotedblright": "”",
    "ellipsis": "…", "fi": "ﬁ", "fl": "ﬂ", "Euro": "€",
    "trademark": "™", "copyright": "©", "registered": "®",
    "degree": "°", "section": "§", "paragraph": "¶",
    "dagger": "†", "daggerdbl": "‡", "minus": "−",
    "nbspace": " ", "sfthyphen": "­",
}
_UNI_RE = re.compile(r"^uni([0-9A-Fa-f]{4})$")
_BASE_ENCODINGS = {
    "WinAnsiEncoding": "cp1252",
    "MacRomanEncoding": "mac_roman",
    "StandardEncoding": "latin-1",
    "PDFDocEncoding": "latin-1",
}
_MONOSPACE_WIDTH = 600.0
_DEFAULT_WIDTH = 500.0
_HEX_RE = re.compile(rb"<([0-9A-Fa-f]+)>")


def glyph_to_unicode(name: str) -> Optional[str]:
    if len(name) == 1:
        return name
    if name in _GLYPH_NAMES:
        return _GLYPH_NAMES[name]
    match = _UNI_RE.match(name)
    if match:
        return chr(int(match.group(1), 16))
    return None


def _hex_int(raw: bytes) -> int:
    return int(raw, 16)


def _utf16(raw: bytes) -> str:
    data = bytes.fromhex(raw.decode("ascii"))
    return data.decode("utf-16-be", errors="replace")


def parse_to_unicode(data: bytes) -> Dict[int, str]:
    """Read the ``bfchar`` and ``bfrange`` sections of a ToUnicode CMap."""

    mapping: Dict[int, str] = {}
    for block in re.findall(rb"beginbfchar(.*?)endbfchar", data, re.S):
        values = _HEX_RE.findall(block)
        for source, target in zip(values[::2], values[1::2]):
            mapping[_hex_int(source)] = _utf16(target)
    for block in re.findall(rb"beginbfrange(.*?)endbfrange", data, re.S):
        for line in re.finditer(rb"<([0-9A-Fa-f]+)>\s*<([0-9A-Fa-f]+)>\s*(\[[^\]]*\]|<[0-9A-Fa-f]+>)", block):
            low, high, target = _hex_int(line.group(1)), _hex_int(line.group(2)), line.group(3)
            if target.startswith(b"["):
                for offset, item in enumerate(_HEX_RE.findall(target)):
                    mapping[low + offset] = _utf16(item)
                continue
            base = bytes.fromhex(target[1:-1].decode("ascii"))
            for offset in range(high - low + 1):
                start = int.from_bytes(base, "big") + offset
                mapping[low + offset] = start.to_bytes(len(base), "big").decode("utf-16-be", errors="replace")
    return mapping


class Font:
    """A font resource as seen by the content interpreter.

    ``decode`` splits a string operand into ``(code, text, width)`` triples
    with widths in glyph space (thousandths of the font size).
    """

    def __init__(self, document: "Document", dictionary: Dict[str, Any]) -> None:
        self.document = document
        self.dictionary = dictionary
        self.subtype = name_value(dictionary.get("Subtype")) or "Type1"
        self.base_font = name_value(dictionary.get("BaseFont")) or ""
        self.composite = self.subtype == "Type0"
        self._faces: Dict[int, Any] = {}
        self._widths: Dict[int, float] = {}
        self._default_width = _MONOSPACE_WIDTH if "Courier" in self.base_font else _DEFAULT_WIDTH
        self._encoding: Dict[int, str] = {}
        self._codec = "cp1252"
        self._to_unicode: Dict[int, str] = {}
        self._descriptor: Dict[str, Any] = {}
        if self.composite:
            self._load_composite()
        else:
            self._load_simple()
        to_unicode = document.stream_data(dictionary.get("ToUnicode"))
        if to_unicode:
            self._to_unicode = parse_to_unicode(to_unicode)

    def _load_simple(self) -> None:
        resolve = self.document.resolve
        first = resolve(self.dictionary.get("FirstChar"))
        widths = resolve(self.dictionary.get("Widths"))
        if isinstance(first, int) and isinstance(widths, list):
            for offset, width in enumerate(widths):
                width = resolve(width)
                if isinstance(width, (int, float)):
                    self._widths[first + offset] = float(width)
        descriptor = resolve(self.dictionary.get("FontDescriptor"))
        if isinstance(descriptor, dict):
            self._descriptor = descriptor
            missing = resolve(descriptor.get("MissingWidth"))
            if isinstance(missing, (int, float)) and missing > 0:
                self._default_width = float(missing)

        encoding = resolve(self.dictionary.get("Encoding"))
        base = name_value(encoding)
        differences: List[Any] = []
        if isinstance(encoding, dict):
            base = name_value(encoding.get("BaseEncoding"))
            found = resolve(encoding.get("Differences"))
            differences = found if isinstance(found, list) else []
        self._codec = _BASE_ENCODINGS.get(base or "", "cp1252")
        code = 0
        for item in differences:
            if isinstance(item, int):
                code = item
            elif isinstance(item, PDFName):
                char = glyph_to_unicode(item.value)
                if char is not None:
                    self._encoding[code] = char
                code += 1

    def _load_composite(self) -> None:
        resolve = self.document.resolve
        descendants = resolve(self.dictionary.get("DescendantFonts"))
        descendant = resolve(descendants[0]) if isinstance(descendants, list) and descendants else None
        if not isinstance(descendant, dict):
            return
        default = resolve(descendant.get("DW"))
        self._default_width = float(default) if isinstance(default, (int, float)) else 1000.0
        descriptor = resolve(descendant.get("FontDescriptor"))
        if isinstance(descriptor, dict):
            self._descriptor = descriptor
        widths = resolve(descendant.get("W"))
        if not isinstance(widths, list):
            return
        items = [resolve(item) for item in widths]
        index = 0
        while index < len(items):
            start = items[index]
            following = items[index + 1] if index + 1 < len(items) else None
            if isinstance(start, int) and isinstance(following, list):
                for offset, width in enumerate(following):
                    width = resolve(width)
                    if isinstance(width, (int, float)):
                        self._widths[start + offset] = float(width)
                index += 2
            elif isinstance(start, int) and isinstance(following, int) and index + 2 < len(items):
                width = items[index + 2]
                if isinstance(width, (int, float)):
                    for code in range(start, following + 1):
                        self._widths[code] = float(width)
                index += 3
            else:
                break

    def char_text(self, code: int) -> str:
        if code in self._to_unicode:
            return self._to_unicode[code]
        if self.composite:
            return chr(code) if code >= 32 else ""
        if code in self._encoding:
            return self._encoding[code]
        return bytes([code]).decode(self._codec, errors="replace")

    def width(self, code: int) -> float:
        return self._widths.get(code, self._default_width)

    def decode(self, raw: bytes) -> List[Tuple[int, str, float]]:
        if self.composite:
            codes = [int.from_bytes(raw[i : i + 2], "big") for i in range(0, len(raw) - 1, 2)]
        else:
            codes = list(raw)
        return [(code, self.char_text(code), self.width(code)) for code in codes]

    def face(self, size: int) -> Any:
        """Pillow font at *size* pixels: embedded TrueType, then fallbacks."""

        size = max(1, int(size))
        try:
            return self._faces[size]
        except KeyError:
            pass
        return self._faces.setdefault(size, self._load_face(size))

    def _load_face(self, size: int) -> Any:
        for key in ("FontFile2", "FontFile3"):
            data = self.document.stream_data(self._descriptor.get(key)) if self._descriptor else None
            if not data:
                continue
            try:
                return ImageFont.truetype(io.BytesIO(data), size)
            except OSError:
                log.debug("Embedded %s of %s is not usable by FreeType", key, self.base_font)
        for candidate in settings.FALLBACK_FONTS:
            try:
                return ImageFont.truetype(candidate, size)
            except OSError:
                continue
        return ImageFont.load_default(size)


def load_font(document: "Document", value: Any, cache: Dict[Any, Font]) -> Optional[Font]:
    """Build (or fetch from *cache*) the :class:`Font` for a resource entry."""

    key = value if not isinstance(value, (dict, list)) else id(value)
    if key in cache:
        return cache[key]
    dictionary = document.resolve(value)
    if isinstance(dictionary, PDFStream) or not isinstance(dictionary, dict):
        return None
    try:
        font = Font(document, dictionary)
    except (PDFFormError, ValueError) as exc:
        log.warning("Unusable font resource %r: %s", value, exc)
        return None
    return cache.setdefault(key, font)
