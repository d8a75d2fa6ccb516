"""Appearance stream generation for edited text and choice widgets."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from . import settings
from .errors import PDFFormError
from .parser import parse_content_stream
from .primitives import PDFName, PDFReference, PDFStream, PDFString
from .serializer import escape_literal, format_number

if TYPE_CHECKING:  # pragma: no cover
    from .document import Document

log = logging.getLogger(__name__)

_DEFAULT_FONT = {
    "Type": PDFName("Font"),
    "Subtype": PDFName("Type1"),
    "BaseFont": PDFName("Helvetica"),
    "Encoding": PDFName("WinAnsiEncoding"),
}
# Average glyph width as a fraction of the font size, used for alignment.
_AVERAGE_GLYPH_WIDTH = 0.6
_PADDING = 2.0


def parse_default_appearance(da: Optional[str]) -> Tuple[str, float, List[str]]:
    """Split a ``/DA`` string into font resource name, size and colour ops."""

    font_name, size, colour = "Helv", 0.0, ["0 g"]
    if not da:
        return font_name, size, colour
    try:
        operations = list(parse_content_stream(da.encode("latin-1", "replace")))
    except PDFFormError:
        log.warning("Unparseable /DA %r; using defaults", da)
        return font_name, size, colour
    for operands, operator in operations:
        if operator == "Tf" and len(operands) == 2 and isinstance(operands[0], PDFName):
            font_name = operands[0].value
            size = float(operands[1]) if isinstance(operands[1], (int, float)) else 0.0
        elif operator in {"g", "rg", "k"} and all(isinstance(op, (int, float)) for op in operands):
            colour = [" ".join(format_number(op) for op in operands) + f" {operator}"]
    return font_name, size, colour


def _font_resources(document: "Document", font_name: str) -> Dict[str, Any]:
    acroform = document.acroform or {}
    resources = document.resolve(acroform.get("DR"))
    fonts = document.resolve(resources.get("Font")) if isinstance(resources, dict) else None
    if isinstance(fonts, dict) and font_name in fonts:
        return {"Font": {font_name: fonts[font_name]}}
    return {"Font": {font_name: dict(_DEFAULT_FONT)}}


def _encode(text: str) -> bytes:
    return text.encode("cp1252", errors="replace")


def build_text_appearance(
    document: "Document",
    widget: Dict[str, Any],
    text: str,
    *,
    default_appearance: Optional[str] = None,
    quadding: int = 0,
    multiline: bool = False,
) -> PDFStream:
    """Return a Form XObject showing *text* inside the widget rectangle."""

    rect = document.resolve(widget.get("Rect")) or [0, 0, 0, 0]
    x0, y0, x1, y1 = (float(document.resolve(v)) for v in rect)
    width, height = abs(x1 - x0), abs(y1 - y0)
    font_name, size, colour = parse_default_appearance(default_appearance)
    if size <= 0:
        # auto size: fit the line inside the padded box
        size = settings.DEFAULT_FONT_SIZE
        if height:
            size = min(size, max(4.0, (height - 2 * _PADDING) * 0.75))

    lines = text.splitlines() if multiline else [text.replace("\r", " ").replace("\n", " ")]
    leading = size * 1.15
    if multiline:
        baseline = height - _PADDING - size
    else:
        baseline = max(_PADDING, (height - size) / 2 + size * 0.22)

    body = [
        b"/Tx BMC",
        b"q",
        f"1 1 {format_number(max(width - 2, 0))} {format_number(max(height - 2, 0))} re W n".encode("ascii"),
        b"BT",
        f"/{font_name} {format_number(size)} Tf".encode("latin-1"),
    ]
    body.extend(op.encode("latin-1") for op in colour)
    previous_x = 0.0
    for index, line in enumerate(lines or [""]):
        line_width = len(line) * size * _AVERAGE_GLYPH_WIDTH
        if quadding == 1:
            x = (width - line_width) / 2
        elif quadding == 2:
            x = width - _PADDING - line_width
        else:
            x = _PADDING
        x = max(x, _PADDING)
        if index == 0:
            body.append(f"{format_number(x)} {format_number(baseline)} Td".encode("ascii"))
        else:
            body.append(f"{format_number(x - previous_x)} {format_number(-leading)} Td".encode("ascii"))
        previous_x = x
        body.append(b"(" + escape_literal(_encode(line)) + b") Tj")
    body.extend([b"ET", b"Q", b"EMC"])
    content = b"\n".join(body) + b"\n"

    dictionary = {
        "Type": PDFName("XObject"),
        "Subtype": PDFName("Form"),
        "BBox": [0, 0, width, height],
        "Resources": _font_resources(document, font_name),
        "Length": len(content),
    }
    return PDFStream(dictionary, content)


def inherited_value(document: "Document", node: Dict[str, Any], key: str) -> Any:
    """Look *key* up on *node*, then along its ``/Parent`` chain."""

    seen = set()
    current: Any = node
    while isinstance(current, dict):
        if key in current:
            return document.resolve(current[key])
        parent = current.get("Parent")
        if not isinstance(parent, PDFReference) or parent in seen:
            break
        seen.add(parent)
        current = document.resolve(parent)
    return None


def default_appearance_of(document: "Document", widget: Dict[str, Any]) -> Optional[str]:
    """``/DA`` for a widget: inherited through its field, then the form's."""

    value = inherited_value(document, widget, "DA")
    if value is None:
        value = document.resolve((document.acroform or {}).get("DA"))
    return value.text if isinstance(value, PDFString) else None


def quadding_of(document: "Document", widget: Dict[str, Any]) -> int:
    value = inherited_value(document, widget, "Q")
    if value is None:
        value = document.resolve((document.acroform or {}).get("Q"))
    return value if isinstance(value, int) else 0
