"""Document loading and the read-only document model."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from functools import cached_property
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Mapping, Optional, Tuple

from . import settings
from .errors import (
    BrokenReference,
    CorruptStructure,
    EncryptedDocument,
    MalformedSyntax,
    PDFFormError,
)
from .filters import decode_stream
from .primitives import PDFName, PDFReference, PDFStream
from .resolver import ObjectResolver
from .xref import XRefTable, read_xref

if TYPE_CHECKING:  # pragma: no cover
    from .fields import Field

log = logging.getLogger(__name__)

Box = Tuple[float, float, float, float]
DEFAULT_MEDIA_BOX: Box = (0.0, 0.0, 612.0, 792.0)
_INHERITABLE = ("Resources", "MediaBox", "CropBox", "Rotate")


def _as_box(value: Any) -> Optional[Box]:
    if not isinstance(value, list) or len(value) != 4:
        return None
    if not all(isinstance(item, (int, float)) for item in value):
        return None
    x0, y0, x1, y1 = (float(item) for item in value)
    return min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1)


@dataclass(frozen=True, eq=False)
class Page:
    index: int
    ref: Optional[PDFReference]
    dictionary: Dict[str, Any]
    media_box: Box
    crop_box: Optional[Box]
    rotate: int
    resources: Dict[str, Any]
    document: "Document" = field(repr=False, compare=False)

    @property
    def box(self) -> Box:
        return self.crop_box or self.media_box

    @property
    def width(self) -> float:
        x0, _, x1, _ = self.box
        return x1 - x0

    @property
    def height(self) -> float:
        _, y0, _, y1 = self.box
        return y1 - y0

    @property
    def display_size(self) -> Tuple[float, float]:
        """Width and height once ``/Rotate`` is applied."""

        if self.rotate in (90, 270):
            return self.height, self.width
        return self.width, self.height

    def content_streams(self) -> List[bytes]:
        contents = self.document.resolve(self.dictionary.get("Contents"))
        items = contents if isinstance(contents, list) else [self.dictionary.get("Contents")]
        result = []
        for item in items:
            if item is None:
                continue
            data = self.document.stream_data(item)
            if data is not None:
                result.append(data)
        return result

    def contents(self) -> bytes:
        return b"\n".join(self.content_streams())

    def annotations(self) -> List[Tuple[Optional[PDFReference], Dict[str, Any]]]:
        annots = self.document.resolve(self.dictionary.get("Annots"))
        if not isinstance(annots, list):
            return []
        result = []
        for item in annots:
            try:
                value = self.document.resolve(item)
            except BrokenReference as exc:
                if self.document.strict:
                    raise
                log.warning("Page %d: skipping dangling annotation %r", self.index, exc.reference)
                continue
            if isinstance(value, dict):
                result.append((item if isinstance(item, PDFReference) else None, value))
        return result


class Document:
    """Immutable view of a loaded document.

    Edits never change a :class:`Document`; :meth:`with_overrides` returns a
    new instance sharing this one's bytes, cross-reference table and resolver
    cache, with the changed objects layered on top.
    """

    def __init__(
        self,
        source: bytes,
        xref: XRefTable,
        resolver: ObjectResolver,
        *,
        version: str = "1.7",
        strict: bool = True,
        overrides: Optional[Mapping[PDFReference, Any]] = None,
        warnings: Optional[List[PDFFormError]] = None,
    ) -> None:
        self.source = source
        self.xref = xref
        self.resolver = resolver
        self.version = version
        self.strict = strict
        self.overrides: Dict[PDFReference, Any] = dict(overrides or {})
        self.warnings: List[PDFFormError] = list(warnings or [])
        self._override_ids = {ref.obj_id: ref for ref in self.overrides}
        self.pages: List[Page] = []

    # ------------------------------------------------------------------
    # Object access
    # ------------------------------------------------------------------
    @property
    def trailer(self) -> Dict[str, Any]:
        return self.xref.trailer

    @property
    def startxref(self) -> int:
        return self.xref.startxref

    def get(self, ref: PDFReference) -> Any:
        if ref in self.overrides:
            return self.overrides[ref]
        if ref.obj_id in self._override_ids:
            raise BrokenReference(ref)
        return self.resolver.resolve(ref)

    def resolve(self, value: Any) -> Any:
        """Follow *value* one hop if it is a reference."""

        if isinstance(value, PDFReference):
            return self.get(value)
        return value

    def stream_data(self, value: Any) -> Optional[bytes]:
        """Decoded payload of a stream given directly or by reference."""

        if isinstance(value, PDFReference) and value not in self.overrides:
            stream = self.get(value)
            if not isinstance(stream, PDFStream):
                return None
            return self.resolver.decoded(value)
        stream = self.resolve(value)
        if not isinstance(stream, PDFStream):
            return None
        return decode_stream(stream, self.resolve)

    def references(self) -> Iterator[PDFReference]:
        seen = set()
        for ref in self.overrides:
            seen.add(ref.obj_id)
            yield ref
        for ref in self.resolver.references():
            if ref.obj_id not in seen:
                yield ref

    @property
    def next_object_number(self) -> int:
        highest = max((ref.obj_id for ref in self.overrides), default=0)
        return max(self.xref.size, highest + 1)

    @property
    def root(self) -> Dict[str, Any]:
        root = self.resolve(self.trailer.get("Root"))
        if not isinstance(root, dict):
            raise CorruptStructure("Document catalog is missing or not a dictionary")
        return root

    @property
    def acroform(self) -> Optional[Dict[str, Any]]:
        acroform = self.resolve(self.root.get("AcroForm"))
        return acroform if isinstance(acroform, dict) else None

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------
    @cached_property
    def _fields(self) -> List["Field"]:
        from .fields import extract_fields

        return extract_fields(self)

    def fields(self) -> List["Field"]:
        return list(self._fields)

    def field(self, name: str) -> "Field":
        for item in self._fields:
            if item.name == name:
                return item
        raise KeyError(name)

    def page_index_of(self, ref: PDFReference) -> Optional[int]:
        return self._page_indices.get(ref)

    @cached_property
    def _page_indices(self) -> Dict[PDFReference, int]:
        return {page.ref: page.index for page in self.pages if page.ref is not None}

    # ------------------------------------------------------------------
    # Copy-on-mutate
    # ------------------------------------------------------------------
    def with_overrides(self, changes: Mapping[PDFReference, Any]) -> "Document":
        merged = dict(self.overrides)
        merged.update(changes)
        clone = Document(
            self.source,
            self.xref,
            self.resolver,
            version=self.version,
            strict=self.strict,
            overrides=merged,
            warnings=self.warnings,
        )
        clone.pages = [dataclasses.replace(page, document=clone) for page in self.pages]
        if any(page.ref in changes for page in self.pages):
            clone.pages = list(_walk_pages(clone))
        return clone


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _read_version(data: bytes, strict: bool, warnings: List[PDFFormError]) -> str:
    position = data.find(b"%PDF-", 0, 1024)
    if position == -1:
        error = MalformedSyntax("Missing %PDF- header", 0)
        if strict:
            raise error
        warnings.append(error)
        return "1.7"
    raw = data[position + 5 : position + 8]
    return raw.decode("latin-1").strip()


def _walk_pages(document: Document) -> Iterator[Page]:
    pages_ref = document.root.get("Pages")
    if pages_ref is None:
        raise CorruptStructure("Catalog has no /Pages entry")
    index = 0
    stack: List[Tuple[Any, Dict[str, Any], Tuple[Any, ...]]] = [(pages_ref, {}, ())]
    while stack:
        node_ref, inherited, path = stack.pop()
        if isinstance(node_ref, PDFReference) and node_ref in path:
            raise CorruptStructure(f"Page tree cycle through {node_ref!r}")
        node = document.resolve(node_ref)
        if not isinstance(node, dict):
            raise CorruptStructure(f"Page tree node {node_ref!r} is not a dictionary")
        attributes = dict(inherited)
        for key in _INHERITABLE:
            if key in node:
                attributes[key] = node[key]
        node_type = node.get("Type")
        kids = document.resolve(node.get("Kids"))
        if node_type == PDFName("Pages") or (node_type != PDFName("Page") and isinstance(kids, list)):
            if not isinstance(kids, list):
                raise CorruptStructure(f"Pages node {node_ref!r} has no /Kids array")
            child_path = path + (node_ref,) if isinstance(node_ref, PDFReference) else path
            for kid in reversed(kids):
                stack.append((kid, attributes, child_path))
            continue
        yield _make_page(document, index, node_ref, node, attributes)
        index += 1


def _make_page(document: Document, index: int, ref: Any, node: Dict[str, Any], attributes: Dict[str, Any]) -> Page:
    media_box = _as_box(document.resolve(attributes.get("MediaBox")))
    if media_box is None:
        error = CorruptStructure(f"Page {index} has no valid /MediaBox")
        if document.strict:
            raise error
        document.warnings.append(error)
        media_box = DEFAULT_MEDIA_BOX
    crop_box = _as_box(document.resolve(attributes.get("CropBox")))
    rotate = document.resolve(attributes.get("Rotate", 0))
    rotate = int(rotate) % 360 if isinstance(rotate, (int, float)) else 0
    resources = document.resolve(attributes.get("Resources"))
    return Page(
        index=index,
        ref=ref if isinstance(ref, PDFReference) else None,
        dictionary=node,
        media_box=media_box,
        crop_box=crop_box,
        rotate=rotate - rotate % 90,
        resources=resources if isinstance(resources, dict) else {},
        document=document,
    )


def load(data: bytes, *, strict: Optional[bool] = None) -> Document:
    """Parse *data* into a :class:`Document`.

    Any structural problem raises a :class:`~pdfform.errors.LoadError`
    subclass; no partially usable document is ever returned.  With
    ``strict=False`` a damaged cross-reference table is rebuilt by scanning
    the file and recoverable problems are listed in ``Document.warnings``.
    """

    strict = settings.resolve_strict(strict)
    data = bytes(data)
    warnings: List[PDFFormError] = []
    version = _read_version(data, strict, warnings)
    xref = read_xref(data, strict=strict)
    if xref.reconstructed:
        warnings.append(CorruptStructure("Cross-reference table was reconstructed"))
    if "Encrypt" in xref.trailer:
        raise EncryptedDocument("Encrypted documents are not supported")

    resolver = ObjectResolver(data, xref, strict=strict)
    document = Document(data, xref, resolver, version=version, strict=strict, warnings=warnings)
    catalog_version = document.root.get("Version")
    if isinstance(catalog_version, PDFName):
        document.version = catalog_version.value
    document.pages = list(_walk_pages(document))
    document.fields()
    log.debug("Loaded document with %d pages and %d fields", len(document.pages), len(document._fields))
    return document
