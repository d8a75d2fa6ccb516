"""Cross-reference table and stream reading.

The most recent section (the one ``startxref`` points at) is authoritative.
Older sections reached through ``/Prev`` only fill in object numbers the newer
sections do not mention.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .errors import CorruptStructure, LoadError, MalformedSyntax, TrailerNotFound
from .filters import decode_stream
from .parser import parse_indirect_object, parse_value, scan_objects
from .primitives import PDFName, PDFReference, PDFStream
from .tokenizer import TokenStream

log = logging.getLogger(__name__)

_STARTXREF_RE = re.compile(rb"startxref\s*(\d+)")
_CATALOG_RE = re.compile(rb"/Type\s*/Catalog\b")


class XRefType(enum.Enum):
    FREE = "free"
    STANDARD = "standard"
    IN_OBJECT_STREAM = "compressed"


@dataclass(frozen=True)
class XRefEntry:
    obj_id: int
    generation: int
    kind: XRefType
    offset: Optional[int] = None
    container: Optional[int] = None
    index: Optional[int] = None

    @property
    def live(self) -> bool:
        return self.kind is not XRefType.FREE


@dataclass
class XRefTable:
    """Merged view over every cross-reference section of a file."""

    entries: Dict[int, XRefEntry] = field(default_factory=dict)
    trailer: Dict[str, Any] = field(default_factory=dict)
    startxref: int = 0
    sections: List[int] = field(default_factory=list)
    uses_xref_stream: bool = False
    reconstructed: bool = False

    def get(self, obj_id: int) -> Optional[XRefEntry]:
        return self.entries.get(obj_id)

    def add_section(self, entries: Dict[int, XRefEntry], trailer: Dict[str, Any]) -> None:
        """Merge an *older* section: only gaps are filled."""

        for obj_id, entry in entries.items():
            self.entries.setdefault(obj_id, entry)
        for key, value in trailer.items():
            self.trailer.setdefault(key, value)

    @property
    def size(self) -> int:
        declared = self.trailer.get("Size")
        highest = max(self.entries, default=0) + 1
        if isinstance(declared, int):
            return max(declared, highest)
        return highest


# -- Section parsers ---------------------------------------------------------


def parse_xref_table(data: bytes, offset: int) -> Tuple[Dict[int, XRefEntry], Dict[str, Any]]:
    """Parse a classic ``xref`` table starting at *offset* and its trailer."""

    tokens = TokenStream(data, offset)
    if tokens.pop() != "xref":
        raise MalformedSyntax("Expected 'xref'", offset)
    entries: Dict[int, XRefEntry] = {}
    while True:
        token = tokens.peek()
        if token == "trailer":
            tokens.pop()
            break
        start, count = tokens.pop(), tokens.pop()
        if not isinstance(start, int) or not isinstance(count, int):
            raise MalformedSyntax("Bad cross-reference subsection header", tokens.last_end)
        for obj_id in range(start, start + count):
            location, generation, marker = tokens.pop(), tokens.pop(), tokens.pop()
            if not isinstance(location, int) or not isinstance(generation, int):
                raise MalformedSyntax("Bad cross-reference entry", tokens.last_end)
            if marker == "n":
                entry = XRefEntry(obj_id, generation, XRefType.STANDARD, offset=location)
            elif marker == "f":
                entry = XRefEntry(obj_id, generation, XRefType.FREE)
            else:
                raise MalformedSyntax(f"Bad cross-reference marker {marker!r}", tokens.last_end)
            entries.setdefault(obj_id, entry)
    trailer = parse_value(tokens)
    if not isinstance(trailer, dict):
        raise MalformedSyntax("Trailer is not a dictionary", tokens.last_end)
    return entries, trailer


def _read_int(buffer: bytes) -> int:
    return int.from_bytes(buffer, "big") if buffer else 0


def iter_xref_stream(stream: PDFStream) -> Iterator[XRefEntry]:
    dictionary = stream.dictionary
    widths = dictionary.get("W")
    if not isinstance(widths, list) or len(widths) != 3 or not all(isinstance(w, int) for w in widths):
        raise CorruptStructure("Cross-reference stream has an invalid /W array")
    index = dictionary.get("Index") or [0, dictionary.get("Size", 0)]
    data = decode_stream(stream)
    pos = 0
    row = sum(widths)
    w0, w1, w2 = widths
    for start, count in zip(index[0::2], index[1::2]):
        for obj_id in range(start, start + count):
            if pos + row > len(data):
                return
            kind = _read_int(data[pos : pos + w0]) if w0 else 1
            field2 = _read_int(data[pos + w0 : pos + w0 + w1])
            field3 = _read_int(data[pos + w0 + w1 : pos + row])
            pos += row
            if kind == 0:
                yield XRefEntry(obj_id, field3, XRefType.FREE)
            elif kind == 1:
                yield XRefEntry(obj_id, field3, XRefType.STANDARD, offset=field2)
            elif kind == 2:
                yield XRefEntry(obj_id, 0, XRefType.IN_OBJECT_STREAM, container=field2, index=field3)


def parse_xref_stream(data: bytes, offset: int, *, strict: bool) -> Tuple[Dict[int, XRefEntry], Dict[str, Any]]:
    _, value, _ = parse_indirect_object(data, offset, strict=strict)
    if not isinstance(value, PDFStream) or value.dictionary.get("Type") != PDFName("XRef"):
        raise MalformedSyntax("Expected a cross-reference stream", offset)
    entries: Dict[int, XRefEntry] = {}
    for entry in iter_xref_stream(value):
        entries.setdefault(entry.obj_id, entry)
    trailer = {key: val for key, val in value.dictionary.items() if key not in _XREF_STREAM_ONLY_KEYS}
    return entries, trailer


_XREF_STREAM_ONLY_KEYS = frozenset(
    {"Type", "W", "Index", "Length", "Filter", "DecodeParms", "DP", "F"}
)


def _read_section(data: bytes, offset: int, *, strict: bool) -> Tuple[Dict[int, XRefEntry], Dict[str, Any], bool]:
    if data.startswith(b"xref", offset):
        entries, trailer = parse_xref_table(data, offset)
        hybrid = trailer.get("XRefStm")
        if isinstance(hybrid, int):
            stream_entries, _ = parse_xref_stream(data, hybrid, strict=strict)
            for obj_id, entry in stream_entries.items():
                current = entries.get(obj_id)
                if current is None or not current.live:
                    entries[obj_id] = entry
        return entries, trailer, False
    entries, trailer = parse_xref_stream(data, offset, strict=strict)
    return entries, trailer, True


# -- Entry points ------------------------------------------------------------


def find_startxref(data: bytes) -> Optional[int]:
    """Return the offset recorded after the *last* ``startxref`` keyword."""

    position = data.rfind(b"startxref")
    if position == -1:
        return None
    match = _STARTXREF_RE.match(data, position)
    if not match:
        return None
    return int(match.group(1))


def read_xref(data: bytes, *, strict: bool = True) -> XRefTable:
    """Read every cross-reference section reachable from the last ``startxref``."""

    startxref = find_startxref(data)
    if startxref is None:
        if data.rfind(b"trailer") == -1:
            raise TrailerNotFound("No startxref or trailer marker in document")
        if strict:
            raise CorruptStructure("Document has a trailer but no startxref")
        return reconstruct_xref(data)

    table = XRefTable(startxref=startxref)
    offset: Optional[int] = startxref
    seen: set[int] = set()
    while offset is not None:
        if offset in seen:
            raise CorruptStructure(f"Cross-reference /Prev chain loops at offset {offset}")
        seen.add(offset)
        try:
            entries, trailer, is_stream = _read_section(data, offset, strict=strict)
        except LoadError as exc:
            if strict:
                raise
            log.warning("Cross-reference section at %d unreadable (%s); reconstructing", offset, exc)
            return reconstruct_xref(data)
        log.debug("Read cross-reference section at %d with %d entries", offset, len(entries))
        if not table.sections:
            table.uses_xref_stream = is_stream
        table.sections.append(offset)
        table.add_section(entries, trailer)
        prev = trailer.get("Prev")
        offset = prev if isinstance(prev, int) else None

    if "Root" not in table.trailer:
        if strict:
            raise CorruptStructure("Trailer has no /Root entry")
        return reconstruct_xref(data)
    return table


def reconstruct_xref(data: bytes) -> XRefTable:
    """Rebuild a cross-reference table by scanning for object headers."""

    table = XRefTable(reconstructed=True)
    for obj_id, generation, offset in scan_objects(data):
        # later definitions replace earlier ones, like incremental updates
        table.entries[obj_id] = XRefEntry(obj_id, generation, XRefType.STANDARD, offset=offset)

    trailer: Dict[str, Any] = {}
    for match in re.finditer(rb"trailer\s*<<", data):
        try:
            value = parse_value(TokenStream(data, match.end() - 2))
        except LoadError:
            continue
        if isinstance(value, dict):
            trailer.update(value)

    for entry in list(table.entries.values()):
        try:
            _, value, _ = parse_indirect_object(data, entry.offset, strict=False)
        except LoadError:
            continue
        if not isinstance(value, PDFStream):
            continue
        kind = value.dictionary.get("Type")
        if kind == PDFName("XRef") and "Root" not in trailer:
            trailer.update({k: v for k, v in value.dictionary.items() if k not in _XREF_STREAM_ONLY_KEYS})
        elif kind == PDFName("ObjStm"):
            for index, obj_id in enumerate(_object_stream_numbers(value)):
                table.entries.setdefault(
                    obj_id,
                    XRefEntry(obj_id, 0, XRefType.IN_OBJECT_STREAM, container=entry.obj_id, index=index),
                )

    if "Root" not in trailer:
        headers = list(scan_objects(data))
        for match in _CATALOG_RE.finditer(data):
            preceding = [(obj_id, gen) for obj_id, gen, offset in headers if offset < match.start()]
            if preceding:
                trailer["Root"] = PDFReference(*preceding[-1])
    if "Root" not in trailer:
        raise TrailerNotFound("No trailer could be reconstructed")
    trailer.pop("Prev", None)
    trailer.pop("XRefStm", None)
    table.trailer = trailer
    log.warning("Reconstructed cross-reference table with %d objects", len(table.entries))
    return table


def _object_stream_numbers(stream: PDFStream) -> List[int]:
    count = stream.dictionary.get("N", 0)
    header = decode_stream(stream)[: stream.dictionary.get("First", 0)]
    numbers = TokenStream(header)
    result = []
    for _ in range(count):
        obj_id, _offset = numbers.pop(), numbers.pop()
        result.append(obj_id)
    return result
