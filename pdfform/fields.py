"""Form field catalog.

Fields are a closed set of frozen dataclasses (:class:`TextField`,
:class:`CheckboxField`, :class:`ChoiceField`, :class:`UnsupportedField`);
code that needs to handle every kind matches on the ``kind`` attribute or the
class.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Dict, List, Optional, Tuple, Union

from .errors import CorruptStructure
from .primitives import PDFName, PDFReference, PDFString, name_value, text_value

if TYPE_CHECKING:  # pragma: no cover
    from .document import Document

log = logging.getLogger(__name__)

# Field flags (/Ff), bit positions are 1-based in the PDF reference.
FF_READ_ONLY = 1 << 0
FF_REQUIRED = 1 << 1
FF_MULTILINE = 1 << 12
FF_RADIO = 1 << 15
FF_PUSHBUTTON = 1 << 16
FF_COMBO = 1 << 17
FF_MULTISELECT = 1 << 21

# Annotation flags (/F)
ANNOT_HIDDEN = 1 << 1

_INHERITED_KEYS = ("FT", "Ff", "V", "DV", "DA", "Q", "MaxLen", "Opt")


class FieldKind(enum.Enum):
    TEXT = "text"
    CHECKBOX = "checkbox"
    CHOICE = "choice"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class Widget:
    """On-page representation of a field."""

    ref: Optional[PDFReference]
    field_name: str
    page_index: Optional[int]
    rect: Tuple[float, float, float, float]
    appearance_state: Optional[str] = None
    hidden: bool = False


@dataclass(frozen=True, kw_only=True)
class _FieldBase:
    kind: ClassVar[FieldKind]

    name: str
    ref: Optional[PDFReference]
    widgets: Tuple[Widget, ...] = ()
    flags: int = 0
    alternate_name: Optional[str] = None

    @property
    def read_only(self) -> bool:
        return bool(self.flags & FF_READ_ONLY)

    @property
    def required(self) -> bool:
        return bool(self.flags & FF_REQUIRED)

    @property
    def editable(self) -> bool:
        return self.kind is not FieldKind.UNSUPPORTED


@dataclass(frozen=True, kw_only=True)
class TextField(_FieldBase):
    kind: ClassVar[FieldKind] = FieldKind.TEXT

    value: str = ""
    default_value: Optional[str] = None
    max_length: Optional[int] = None

    @property
    def multiline(self) -> bool:
        return bool(self.flags & FF_MULTILINE)


@dataclass(frozen=True, kw_only=True)
class CheckboxField(_FieldBase):
    kind: ClassVar[FieldKind] = FieldKind.CHECKBOX

    value: bool = False
    on_state: str = "Yes"

    @property
    def checked(self) -> bool:
        return self.value


@dataclass(frozen=True, kw_only=True)
class ChoiceField(_FieldBase):
    kind: ClassVar[FieldKind] = FieldKind.CHOICE

    value: Optional[str] = None
    options: Tuple[str, ...] = ()
    labels: Tuple[str, ...] = ()

    @property
    def combo(self) -> bool:
        return bool(self.flags & FF_COMBO)

    def label_for(self, value: str) -> str:
        try:
            return self.labels[self.options.index(value)]
        except (ValueError, IndexError):
            return value


@dataclass(frozen=True, kw_only=True)
class UnsupportedField(_FieldBase):
    kind: ClassVar[FieldKind] = FieldKind.UNSUPPORTED

    field_type: Optional[str] = None
    value: Any = None


Field = Union[TextField, CheckboxField, ChoiceField, UnsupportedField]


# ---------------------------------------------------------------------------
# Helpers shared with the mutator
# ---------------------------------------------------------------------------


def on_state_of(document: "Document", widget: Dict[str, Any]) -> Optional[str]:
    """Name of the "checked" appearance in a widget's ``/AP /N`` dictionary."""

    appearance = document.resolve(widget.get("AP"))
    if not isinstance(appearance, dict):
        return None
    for key in ("N", "D"):
        states = document.resolve(appearance.get(key))
        if isinstance(states, dict):
            for state in states:
                if state != "Off":
                    return state
    return None


def parse_options(document: "Document", value: Any) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
    """Return ``(export values, display labels)`` from an ``/Opt`` array."""

    options = document.resolve(value)
    exports: List[str] = []
    labels: List[str] = []
    if not isinstance(options, list):
        return (), ()
    for item in options:
        item = document.resolve(item)
        if isinstance(item, list) and len(item) == 2:
            export = text_value(document.resolve(item[0]))
            label = text_value(document.resolve(item[1]))
        else:
            export = label = text_value(item)
        if export is None:
            continue
        exports.append(export)
        labels.append(label if label is not None else export)
    return tuple(exports), tuple(labels)


def _rect(value: Any) -> Tuple[float, float, float, float]:
    if isinstance(value, list) and len(value) == 4 and all(isinstance(v, (int, float)) for v in value):
        x0, y0, x1, y1 = (float(v) for v in value)
        return min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1)
    return 0.0, 0.0, 0.0, 0.0


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class _Extractor:
    def __init__(self, document: "Document") -> None:
        self.document = document
        self.fields: List[Field] = []
        self.names: Dict[str, PDFReference | None] = {}
        self.widget_pages: Dict[PDFReference, int] = {}
        for page in document.pages:
            for ref, annot in page.annotations():
                if ref is not None and annot.get("Subtype") == PDFName("Widget"):
                    self.widget_pages.setdefault(ref, page.index)

    def walk(self, node_ref: Any, parent_name: str, inherited: Dict[str, Any], path: Tuple[PDFReference, ...]) -> None:
        if isinstance(node_ref, PDFReference) and node_ref in path:
            raise CorruptStructure(f"Field tree cycle through {node_ref!r}")
        node = self.document.resolve(node_ref)
        if not isinstance(node, dict):
            raise CorruptStructure(f"Field node {node_ref!r} is not a dictionary")
        partial = text_value(self.document.resolve(node.get("T")))
        if partial is None:
            name = parent_name
        else:
            name = f"{parent_name}.{partial}" if parent_name else partial
        attributes = dict(inherited)
        for key in _INHERITED_KEYS:
            if key in node:
                attributes[key] = self.document.resolve(node[key])

        kids = self.document.resolve(node.get("Kids"))
        child_path = path + (node_ref,) if isinstance(node_ref, PDFReference) else path
        field_kids: List[Any] = []
        widget_kids: List[Any] = []
        if isinstance(kids, list):
            for kid in kids:
                kid_value = self.document.resolve(kid)
                if isinstance(kid_value, dict) and "T" in kid_value:
                    field_kids.append(kid)
                else:
                    widget_kids.append(kid)
        if field_kids:
            if widget_kids:
                log.warning("Field %r mixes named children and widgets; widgets ignored", name)
            for kid in field_kids:
                self.walk(kid, name, attributes, child_path)
            return

        if name in self.names:
            raise CorruptStructure(f"Duplicate field name {name!r}")
        widget_refs = widget_kids or [node_ref]
        for widget_ref in widget_kids:
            if isinstance(widget_ref, PDFReference) and widget_ref in child_path:
                raise CorruptStructure(f"Field tree cycle through {widget_ref!r}")
        field_ref = node_ref if isinstance(node_ref, PDFReference) else None
        self.names[name] = field_ref
        self.fields.append(self.build(name, field_ref, node, attributes, widget_refs))

    def widget(self, name: str, ref: Any) -> Optional[Widget]:
        annot = self.document.resolve(ref)
        if not isinstance(annot, dict):
            return None
        if annot.get("Subtype") != PDFName("Widget") and "Rect" not in annot:
            return None
        widget_ref = ref if isinstance(ref, PDFReference) else None
        page_index = self.widget_pages.get(widget_ref) if widget_ref is not None else None
        if page_index is None and isinstance(annot.get("P"), PDFReference):
            page_index = self.document.page_index_of(annot["P"])
        flags = annot.get("F", 0)
        return Widget(
            ref=widget_ref,
            field_name=name,
            page_index=page_index,
            rect=_rect(self.document.resolve(annot.get("Rect"))),
            appearance_state=name_value(annot.get("AS")),
            hidden=isinstance(flags, int) and bool(flags & ANNOT_HIDDEN),
        )

    def build(
        self,
        name: str,
        ref: Optional[PDFReference],
        node: Dict[str, Any],
        attributes: Dict[str, Any],
        widget_refs: List[Any],
    ) -> Field:
        widgets = tuple(w for w in (self.widget(name, item) for item in widget_refs) if w is not None)
        field_type = name_value(attributes.get("FT"))
        flags = attributes.get("Ff", 0)
        flags = flags if isinstance(flags, int) else 0
        common = dict(
            name=name,
            ref=ref,
            widgets=widgets,
            flags=flags,
            alternate_name=text_value(self.document.resolve(node.get("TU"))),
        )
        value = attributes.get("V")

        if field_type == "Tx":
            max_length = attributes.get("MaxLen")
            default = attributes.get("DV")
            return TextField(
                value=text_value(value) or "",
                default_value=text_value(default) if isinstance(default, PDFString) else None,
                max_length=max_length if isinstance(max_length, int) and max_length > 0 else None,
                **common,
            )
        if field_type == "Btn" and not flags & (FF_RADIO | FF_PUSHBUTTON):
            on_state = None
            for item in widget_refs:
                annot = self.document.resolve(item)
                if isinstance(annot, dict):
                    on_state = on_state_of(self.document, annot)
                if on_state:
                    break
            state = name_value(value)
            if state is None:
                states = [w.appearance_state for w in widgets if w.appearance_state]
                state = states[0] if states else None
            return CheckboxField(
                value=state is not None and state != "Off",
                on_state=on_state or (state if state not in (None, "Off") else "Yes"),
                **common,
            )
        if field_type == "Ch" and not flags & FF_MULTISELECT:
            options, labels = parse_options(self.document, attributes.get("Opt"))
            if isinstance(value, list):
                value = value[0] if value else None
            return ChoiceField(
                value=text_value(self.document.resolve(value)),
                options=options,
                labels=labels,
                **common,
            )
        return UnsupportedField(field_type=field_type, value=value, **common)


def extract_fields(document: "Document") -> List[Field]:
    """Return every terminal field of *document* in field-tree order.

    A document without an ``/AcroForm`` has no fields.  Raises
    :class:`~pdfform.errors.CorruptStructure` for duplicate fully-qualified
    names or cycles in the field tree.
    """

    acroform = document.acroform
    if acroform is None:
        return []
    roots = document.resolve(acroform.get("Fields"))
    if not isinstance(roots, list):
        return []
    extractor = _Extractor(document)
    for root in roots:
        extractor.walk(root, "", {}, ())
    return extractor.fields
