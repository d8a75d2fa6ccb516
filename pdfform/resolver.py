"""Indirect object resolution with a per-document cache."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator

from .errors import BrokenReference, CorruptStructure, MalformedSyntax
from .filters import decode_stream
from .parser import parse_indirect_object, parse_value
from .primitives import PDFReference, PDFStream
from .tokenizer import TokenStream
from .xref import XRefTable, XRefType

log = logging.getLogger(__name__)


class ObjectResolver:
    """Resolve references against one document's bytes and xref table.

    Resolved objects are cached per reference.  The cache is only ever filled
    with ``dict.setdefault`` so concurrent readers computing the same entry
    agree on a single stored value; objects are never evicted or replaced.
    """

    def __init__(self, data: bytes, xref: XRefTable, *, strict: bool = True) -> None:
        self.data = data
        self.xref = xref
        self.strict = strict
        self._cache: Dict[PDFReference, Any] = {}
        self._decoded: Dict[PDFReference, bytes] = {}
        self._object_streams: Dict[int, Dict[int, int]] = {}

    def __contains__(self, ref: PDFReference) -> bool:
        entry = self.xref.get(ref.obj_id)
        return entry is not None and entry.live

    def references(self) -> Iterator[PDFReference]:
        for entry in self.xref.entries.values():
            if entry.live:
                yield PDFReference(entry.obj_id, entry.generation)

    def resolve(self, ref: PDFReference) -> Any:
        """Return the value stored under *ref* (exactly one indirection)."""

        try:
            return self._cache[ref]
        except KeyError:
            pass
        entry = self.xref.get(ref.obj_id)
        if entry is None or not entry.live:
            raise BrokenReference(ref)
        if entry.kind is XRefType.STANDARD:
            if entry.generation != ref.generation:
                raise BrokenReference(ref, f"Reference {ref!r} does not match generation {entry.generation}")
            value = self._read_standard(ref, entry.offset)
        else:
            value = self._read_compressed(ref, entry.container)
        log.debug("Resolved %r", ref)
        return self._cache.setdefault(ref, value)

    def decoded(self, ref: PDFReference) -> bytes:
        """Decoded payload of the stream object stored under *ref*."""

        try:
            return self._decoded[ref]
        except KeyError:
            pass
        value = self.resolve(ref)
        if not isinstance(value, PDFStream):
            raise CorruptStructure(f"{ref!r} is not a stream")
        return self._decoded.setdefault(ref, decode_stream(value, self.resolve_value))

    def resolve_value(self, value: Any) -> Any:
        return self.resolve(value) if isinstance(value, PDFReference) else value

    def _length(self, ref: PDFReference) -> Any:
        return self.resolve(ref)

    def _read_standard(self, ref: PDFReference, offset: int | None) -> Any:
        if offset is None or offset >= len(self.data):
            raise BrokenReference(ref, f"Object {ref!r} points outside the file")
        parsed_ref, value, _ = parse_indirect_object(
            self.data, offset, length_resolver=self._length, strict=self.strict
        )
        if parsed_ref.obj_id != ref.obj_id:
            raise MalformedSyntax(f"Expected object {ref.obj_id}, found {parsed_ref.obj_id}", offset)
        return value

    def _read_compressed(self, ref: PDFReference, container: int | None) -> Any:
        container_ref = PDFReference(container or 0, 0)
        stream = self.resolve(container_ref)
        if not isinstance(stream, PDFStream):
            raise CorruptStructure(f"Object stream {container} is not a stream")
        offsets = self._object_streams.get(container_ref.obj_id)
        data = self.decoded(container_ref)
        first = stream.dictionary.get("First", 0)
        if offsets is None:
            header = TokenStream(data[:first])
            offsets = {}
            for _ in range(stream.dictionary.get("N", 0)):
                obj_id, relative = header.pop(), header.pop()
                offsets[obj_id] = relative
            offsets = self._object_streams.setdefault(container_ref.obj_id, offsets)
        if ref.obj_id not in offsets:
            raise BrokenReference(ref, f"Object {ref.obj_id} missing from object stream {container}")
        return parse_value(TokenStream(data, first + offsets[ref.obj_id]))
