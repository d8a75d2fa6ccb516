"""Helpers for serialising documents back into PDF syntax."""

from __future__ import annotations

import hashlib
import io
import logging
from collections import deque
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Tuple

from .errors import BrokenReference
from .primitives import PDFName, PDFReference, PDFStream, PDFString

if TYPE_CHECKING:  # pragma: no cover
    from .document import Document

log = logging.getLogger(__name__)

_NAME_SAFE = frozenset(range(0x21, 0x7F)) - frozenset(b"()<>[]{}/%#")
_TRAILER_DROP = frozenset({"Prev", "XRefStm", "Size"})
_HEADER_BINARY = b"%\xe2\xe3\xcf\xd3\n"


def format_number(value: float) -> str:
    if isinstance(value, int):
        return str(value)
    if abs(value - round(value)) < 1e-6:
        return str(int(round(value)))
    text = ("%.6f" % value).rstrip("0").rstrip(".")
    return "0" if text in {"-0", ""} else text


def escape_literal(raw: bytes) -> bytes:
    return (
        raw.replace(b"\\", b"\\\\")
        .replace(b"(", b"\\(")
        .replace(b")", b"\\)")
        .replace(b"\r", b"\\r")
        .replace(b"\n", b"\\n")
    )


def _serialize_name(name: str) -> bytes:
    out = bytearray(b"/")
    for byte in name.encode("latin-1", errors="replace"):
        if byte in _NAME_SAFE:
            out.append(byte)
        else:
            out += b"#%02X" % byte
    return bytes(out)


def serialize(value: Any) -> bytes:
    if isinstance(value, PDFName):
        return _serialize_name(value.value)
    if isinstance(value, PDFReference):
        return f"{value.obj_id} {value.generation} R".encode("ascii")
    if isinstance(value, bool):
        return b"true" if value else b"false"
    if value is None:
        return b"null"
    if isinstance(value, (int, float)):
        return format_number(value).encode("ascii")
    if isinstance(value, PDFString):
        if value.hex:
            return b"<" + value.raw.hex().encode("ascii") + b">"
        return b"(" + escape_literal(value.raw) + b")"
    if isinstance(value, str):
        return serialize(PDFString.from_text(value))
    if isinstance(value, bytes):
        return b"<" + value.hex().encode("ascii") + b">"
    if isinstance(value, dict):
        parts = [b"<<"]
        for key, item in value.items():
            if isinstance(key, PDFName):
                key = key.value
            if not isinstance(key, str):  # pragma: no cover - defensive
                raise TypeError(f"Unsupported key type: {type(key)!r}")
            parts.append(_serialize_name(key) + b" " + serialize(item))
        parts.append(b">>")
        return b"\n".join(parts)
    if isinstance(value, (list, tuple)):
        return b"[" + b" ".join(serialize(item) for item in value) + b"]"
    if isinstance(value, PDFStream):
        raise TypeError("Streams can only be written as indirect objects")
    raise TypeError(f"Unsupported value type: {type(value)!r}")


def _write_object(buffer: io.BytesIO, obj_id: int, generation: int, value: Any) -> None:
    buffer.write(f"{obj_id} {generation} obj\n".encode("ascii"))
    if isinstance(value, PDFStream):
        dictionary = dict(value.dictionary)
        dictionary["Length"] = len(value.data)
        buffer.write(serialize(dictionary))
        buffer.write(b"\nstream\n")
        buffer.write(value.data)
        buffer.write(b"\nendstream")
    else:
        buffer.write(serialize(value))
    buffer.write(b"\nendobj\n")


def _write_xref(buffer: io.BytesIO, entries: Iterable[Tuple[int, int, int]]) -> None:
    """Write ``xref`` subsections for ``(obj_id, generation, offset)`` rows."""

    rows = sorted(entries)
    buffer.write(b"xref\n")
    groups: List[List[Tuple[int, int, int]]] = []
    for row in rows:
        if groups and groups[-1][-1][0] + 1 == row[0]:
            groups[-1].append(row)
        else:
            groups.append([row])
    for group in groups:
        buffer.write(f"{group[0][0]} {len(group)}\n".encode("ascii"))
        for obj_id, generation, offset in group:
            if obj_id == 0:
                buffer.write(b"0000000000 65535 f \n")
            else:
                buffer.write(f"{offset:010d} {generation:05d} n \n".encode("ascii"))


def _write_trailer(buffer: io.BytesIO, trailer: Dict[str, Any], xref_offset: int) -> None:
    buffer.write(b"trailer\n")
    buffer.write(serialize(trailer))
    buffer.write(b"\nstartxref\n")
    buffer.write(str(xref_offset).encode("ascii") + b"\n%%EOF\n")


# ---------------------------------------------------------------------------
# Full rewrite
# ---------------------------------------------------------------------------


def _children(value: Any) -> Iterable[Any]:
    if isinstance(value, PDFStream):
        return [item for key, item in value.dictionary.items() if key != "Length"]
    if isinstance(value, dict):
        return value.values()
    if isinstance(value, list):
        return value
    return ()


def _collect(document: "Document", roots: Iterable[Any]) -> Tuple[Dict[PDFReference, int], Dict[PDFReference, Any]]:
    """Breadth-first walk from *roots*; returns new numbers and values."""

    numbers: Dict[PDFReference, int] = {}
    values: Dict[PDFReference, Any] = {}
    queue = deque(roots)
    while queue:
        item = queue.popleft()
        if isinstance(item, PDFReference):
            if item in numbers or item in values:
                continue
            try:
                value = document.get(item)
            except BrokenReference:
                if document.strict:
                    raise
                log.warning("Dropping dangling reference %r", item)
                values[item] = None
                continue
            numbers[item] = len(numbers) + 1
            values[item] = value
            queue.extend(_children(value))
        else:
            queue.extend(_children(item))
    return numbers, values


def _renumber(value: Any, numbers: Dict[PDFReference, int]) -> Any:
    if isinstance(value, PDFReference):
        number = numbers.get(value)
        return PDFReference(number, 0) if number is not None else None
    if isinstance(value, PDFStream):
        dictionary = {
            key: _renumber(item, numbers) for key, item in value.dictionary.items() if key != "Length"
        }
        return PDFStream(dictionary, value.data)
    if isinstance(value, dict):
        return {key: _renumber(item, numbers) for key, item in value.items()}
    if isinstance(value, list):
        return [_renumber(item, numbers) for item in value]
    return value


def write_full(document: "Document") -> bytes:
    """Write every object reachable from the trailer with contiguous numbers."""

    trailer_roots = [document.trailer[key] for key in ("Root", "Info") if key in document.trailer]
    numbers, values = _collect(document, trailer_roots)

    buffer = io.BytesIO()
    buffer.write(f"%PDF-{document.version}\n".encode("ascii") + _HEADER_BINARY)
    rows = [(0, 65535, 0)]
    for ref, number in numbers.items():
        rows.append((number, 0, buffer.tell()))
        _write_object(buffer, number, 0, _renumber(values[ref], numbers))
    xref_offset = buffer.tell()
    _write_xref(buffer, rows)
    trailer: Dict[str, Any] = {"Size": len(numbers) + 1}
    for key in ("Root", "Info"):
        if key in document.trailer:
            trailer[key] = _renumber(document.trailer[key], numbers)
    if "ID" in document.trailer:
        trailer["ID"] = document.trailer["ID"]
    else:
        digest = hashlib.md5(buffer.getvalue()[:xref_offset], usedforsecurity=False).digest()
        trailer["ID"] = [PDFString(digest, hex=True), PDFString(digest, hex=True)]
    _write_trailer(buffer, trailer, xref_offset)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Incremental update
# ---------------------------------------------------------------------------


def write_incremental(document: "Document") -> bytes:
    """Append changed objects and a new xref section to the original bytes."""

    if not document.overrides:
        return document.source
    if document.xref.reconstructed:
        log.warning("Original cross-reference was reconstructed; writing a full rewrite instead")
        return write_full(document)

    buffer = io.BytesIO()
    buffer.write(document.source)
    if not document.source.endswith((b"\n", b"\r")):
        buffer.write(b"\n")
    rows = []
    for ref in sorted(document.overrides, key=lambda item: item.obj_id):
        rows.append((ref.obj_id, ref.generation, buffer.tell()))
        _write_object(buffer, ref.obj_id, ref.generation, document.overrides[ref])
    xref_offset = buffer.tell()
    _write_xref(buffer, rows)
    trailer = {key: value for key, value in document.trailer.items() if key not in _TRAILER_DROP}
    trailer["Size"] = document.next_object_number
    trailer["Prev"] = document.startxref
    _write_trailer(buffer, trailer, xref_offset)
    return buffer.getvalue()


def save(document: "Document", *, incremental: bool = False) -> bytes:
    """Serialise *document*; see :func:`write_full` and :func:`write_incremental`."""

    data = write_incremental(document) if incremental else write_full(document)
    log.debug("Serialised document (%s, %d bytes)", "incremental" if incremental else "full", len(data))
    return data
