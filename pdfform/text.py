"""Plain text extraction from page content."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List

from .content import IDENTITY, ContentInterpreter, Device, Glyph, GraphicsState

if TYPE_CHECKING:  # pragma: no cover
    from .document import Page

log = logging.getLogger(__name__)

# Fractions of the font size.
_LINE_TOLERANCE = 0.5
_WORD_GAP = 0.2


@dataclass
class _Char:
    x: float
    y: float
    advance: float
    size: float
    text: str


class TextDevice(Device):
    """Collects glyph positions in unrotated page space."""

    def __init__(self) -> None:
        self.chars: List[_Char] = []

    def draw_glyphs(self, glyphs: List[Glyph], state: GraphicsState) -> None:
        for glyph in glyphs:
            a, b, c, d, e, f = glyph.matrix
            size = abs(d) or abs(c) or glyph.size
            self.chars.append(_Char(e, f, glyph.width / 1000.0 * abs(a or b), size, glyph.text))

    def lines(self) -> List[str]:
        rows: List[List[_Char]] = []
        for char in sorted(self.chars, key=lambda item: -item.y):
            if rows and abs(rows[-1][0].y - char.y) <= rows[-1][0].size * _LINE_TOLERANCE:
                rows[-1].append(char)
            else:
                rows.append([char])
        result = []
        for row in rows:
            row.sort(key=lambda item: item.x)
            parts: List[str] = []
            end = None
            for char in row:
                if end is not None and char.x - end > char.size * _WORD_GAP and parts and not parts[-1].endswith(" "):
                    parts.append(" ")
                parts.append(char.text)
                end = char.x + char.advance
            line = "".join(parts).rstrip()
            if line:
                result.append(line)
        return result


def extract_text(page: "Page") -> str:
    """Return the text drawn by *page*'s content stream, one line per baseline.

    Lines are ordered top to bottom and characters left to right; a gap wider
    than a fifth of the font size becomes a space.
    """

    device = TextDevice()
    interpreter = ContentInterpreter(page.document, device)
    interpreter.run(page.contents(), page.resources, IDENTITY)
    for warning in interpreter.warnings:
        log.debug("Text extraction on page %d: %s", page.index, warning)
    return "\n".join(device.lines())
