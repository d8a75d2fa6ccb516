"""Content stream interpreter.

:class:`ContentInterpreter` walks the operators of a content stream, keeps the
graphics state and hands painting work to a :class:`Device`.  Operators are
dispatched to ``do_<name>`` methods; operators without a handler are skipped
and reported as :class:`~pdfform.errors.UnsupportedOperator` warnings.
"""

from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Set, Tuple

from .errors import BrokenReference, DecodeError, PDFFormError, UnsupportedOperator
from .fonts import Font, load_font
from .parser import parse_content_stream
from .primitives import PDFName, PDFReference, PDFStream, PDFString, name_value

if TYPE_CHECKING:  # pragma: no cover
    from .document import Document

log = logging.getLogger(__name__)

Matrix = Tuple[float, float, float, float, float, float]
Point = Tuple[float, float]
Colour = Tuple[float, float, float]

IDENTITY: Matrix = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)
_CURVE_STEPS = 12
_MAX_FORM_DEPTH = 32


def mult_matrix(m1: Matrix, m0: Matrix) -> Matrix:
    """Return ``m1 × m0``: apply *m1* first, then *m0*."""

    a1, b1, c1, d1, e1, f1 = m1
    a0, b0, c0, d0, e0, f0 = m0
    return (
        a0 * a1 + c0 * b1,
        b0 * a1 + d0 * b1,
        a0 * c1 + c0 * d1,
        b0 * c1 + d0 * d1,
        a0 * e1 + c0 * f1 + e0,
        b0 * e1 + d0 * f1 + f0,
    )


def apply_matrix(m: Matrix, point: Point) -> Point:
    a, b, c, d, e, f = m
    x, y = point
    return a * x + c * y + e, b * x + d * y + f


def invert_matrix(m: Matrix) -> Matrix:
    a, b, c, d, e, f = m
    det = a * d - b * c
    if abs(det) < 1e-12:
        raise ValueError("Singular matrix")
    return (d / det, -b / det, -c / det, a / det, (c * f - d * e) / det, (b * e - a * f) / det)


def matrix_scale(m: Matrix) -> float:
    """Geometric mean scale factor of the linear part of *m*."""

    a, b, c, d, _, _ = m
    return math.sqrt(abs(a * d - b * c))


def _gray(value: float) -> Colour:
    return (value, value, value)


def _cmyk(c: float, m: float, y: float, k: float) -> Colour:
    return ((1 - c) * (1 - k), (1 - m) * (1 - k), (1 - y) * (1 - k))


def colour_from_components(components: Sequence[float]) -> Colour:
    values = [min(1.0, max(0.0, float(v))) for v in components]
    if len(values) == 1:
        return _gray(values[0])
    if len(values) == 3:
        return (values[0], values[1], values[2])
    if len(values) == 4:
        return _cmyk(*values)
    return (0.0, 0.0, 0.0)


@dataclass
class GraphicsState:
    ctm: Matrix = IDENTITY
    fill_colour: Colour = (0.0, 0.0, 0.0)
    stroke_colour: Colour = (0.0, 0.0, 0.0)
    fill_alpha: float = 1.0
    stroke_alpha: float = 1.0
    line_width: float = 1.0
    fill_space: int = 1
    stroke_space: int = 1
    clip: Any = None
    font: Optional[Font] = None
    font_size: float = 0.0
    char_spacing: float = 0.0
    word_spacing: float = 0.0
    horizontal_scaling: float = 1.0
    leading: float = 0.0
    rise: float = 0.0
    render_mode: int = 0

    def copy(self) -> "GraphicsState":
        return copy.copy(self)


@dataclass
class Glyph:
    """One painted character in device space."""

    matrix: Matrix
    text: str
    width: float
    size: float


@dataclass
class Path:
    subpaths: List[List[Point]] = field(default_factory=list)
    closed: List[bool] = field(default_factory=list)

    def empty(self) -> bool:
        return not any(len(sub) > 1 for sub in self.subpaths)


def form_matrix(document: "Document", form: PDFStream) -> Matrix:
    """The form XObject's /Matrix, identity when absent or malformed."""

    raw = document.resolve(form.dictionary.get("Matrix"))
    if isinstance(raw, list) and len(raw) == 6 and all(isinstance(v, (int, float)) for v in raw):
        return tuple(float(v) for v in raw)  # type: ignore[return-value]
    return IDENTITY


class Device:
    """Receives painting calls from :class:`ContentInterpreter`.

    The base class ignores everything, so a device only overrides what it
    needs.
    """

    def fill_path(self, path: Path, state: GraphicsState, even_odd: bool) -> None:
        pass

    def stroke_path(self, path: Path, state: GraphicsState) -> None:
        pass

    def clip_path(self, path: Path, state: GraphicsState, even_odd: bool) -> Any:
        return state.clip

    def draw_glyphs(self, glyphs: List[Glyph], state: GraphicsState) -> None:
        pass

    def draw_image(self, document: "Document", image: PDFStream, state: GraphicsState) -> None:
        pass


def _operator_method(operator: str) -> str:
    name = operator.replace("*", "_a").replace('"', "dquote").replace("'", "quote")
    return "do_" + name


class ContentInterpreter:
    """Execute content streams against a :class:`Device`."""

    def __init__(self, document: "Document", device: Device, warnings: Optional[List[PDFFormError]] = None) -> None:
        self.document = document
        self.device = device
        self.warnings: List[PDFFormError] = warnings if warnings is not None else []
        self.fonts: Dict[Any, Font] = {}
        self._reported: Set[str] = set()
        self._forms: Set[PDFReference] = set()

    # ------------------------------------------------------------------
    def warn(self, error: PDFFormError) -> None:
        key = str(error)
        if key in self._reported:
            return
        self._reported.add(key)
        log.warning("%s", error)
        self.warnings.append(error)

    def reset(self, resources: Dict[str, Any], ctm: Matrix, clip: Any = None) -> None:
        self.resources = resources if isinstance(resources, dict) else {}
        self.state = GraphicsState(ctm=ctm, clip=clip)
        self.stack: List[GraphicsState] = []
        self.path = Path()
        self.current: Optional[Point] = None
        self.text_matrix = IDENTITY
        self.line_matrix = IDENTITY
        self.compat = 0
        self.pending_clip: Optional[bool] = None

    def run(self, data: bytes, resources: Dict[str, Any], ctm: Matrix, clip: Any = None) -> None:
        self.reset(resources, ctm, clip)
        try:
            operations = list(parse_content_stream(data))
        except PDFFormError as exc:
            self.warn(UnsupportedOperator("?", f"Content stream could not be parsed: {exc}"))
            return
        for operands, operator in operations:
            self.execute(operator, operands)

    def execute(self, operator: str, operands: List[Any]) -> None:
        method = getattr(self, _operator_method(operator), None)
        if method is None:
            if not self.compat:
                self.warn(UnsupportedOperator(operator))
            return
        try:
            if operator == "BI":
                method(operands)
            else:
                method(*operands)
        except (TypeError, ValueError, IndexError, ZeroDivisionError) as exc:
            self.warn(UnsupportedOperator(operator, f"Operator {operator!r} has invalid operands: {exc}"))
        except (BrokenReference, DecodeError) as exc:
            self.warn(UnsupportedOperator(operator, f"Operator {operator!r} failed: {exc}"))

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------
    def resource(self, category: str, name: Any) -> Any:
        entries = self.document.resolve(self.resources.get(category))
        if not isinstance(entries, dict) or not isinstance(name, PDFName):
            return None
        return entries.get(name.value)

    # ------------------------------------------------------------------
    # Graphics state
    # ------------------------------------------------------------------
    def do_q(self) -> None:
        self.stack.append(self.state.copy())

    def do_Q(self) -> None:
        if self.stack:
            self.state = self.stack.pop()

    def do_cm(self, a: float, b: float, c: float, d: float, e: float, f: float) -> None:
        self.state.ctm = mult_matrix((float(a), float(b), float(c), float(d), float(e), float(f)), self.state.ctm)

    def do_w(self, width: float) -> None:
        self.state.line_width = float(width)

    def do_J(self, style: int) -> None:
        pass

    def do_j(self, style: int) -> None:
        pass

    def do_M(self, limit: float) -> None:
        pass

    def do_d(self, pattern: Any, phase: float) -> None:
        pass

    def do_ri(self, intent: Any) -> None:
        pass

    def do_i(self, flatness: float) -> None:
        pass

    def do_gs(self, name: Any) -> None:
        params = self.document.resolve(self.resource("ExtGState", name))
        if not isinstance(params, dict):
            return
        if isinstance(params.get("LW"), (int, float)):
            self.state.line_width = float(params["LW"])
        if isinstance(params.get("ca"), (int, float)):
            self.state.fill_alpha = float(params["ca"])
        if isinstance(params.get("CA"), (int, float)):
            self.state.stroke_alpha = float(params["CA"])

    # ------------------------------------------------------------------
    # Path construction
    # ------------------------------------------------------------------
    def _point(self, x: float, y: float) -> Point:
        return apply_matrix(self.state.ctm, (float(x), float(y)))

    def do_m(self, x: float, y: float) -> None:
        self.current = (float(x), float(y))
        self.path.subpaths.append([self._point(x, y)])
        self.path.closed.append(False)

    def do_l(self, x: float, y: float) -> None:
        if not self.path.subpaths:
            self.do_m(x, y)
            return
        self.current = (float(x), float(y))
        self.path.subpaths[-1].append(self._point(x, y))

    def _curve(self, p1: Point, p2: Point, p3: Point) -> None:
        if self.current is None:
            self.do_m(*p3)
            return
        p0 = self.current
        for step in range(1, _CURVE_STEPS + 1):
            t = step / _CURVE_STEPS
            u = 1 - t
            x = u ** 3 * p0[0] + 3 * u * u * t * p1[0] + 3 * u * t * t * p2[0] + t ** 3 * p3[0]
            y = u ** 3 * p0[1] + 3 * u * u * t * p1[1] + 3 * u * t * t * p2[1] + t ** 3 * p3[1]
            self.path.subpaths[-1].append(self._point(x, y))
        self.current = p3

    def do_c(self, x1: float, y1: float, x2: float, y2: float, x3: float, y3: float) -> None:
        self._curve((float(x1), float(y1)), (float(x2), float(y2)), (float(x3), float(y3)))

    def do_v(self, x2: float, y2: float, x3: float, y3: float) -> None:
        start = self.current or (float(x2), float(y2))
        self._curve(start, (float(x2), float(y2)), (float(x3), float(y3)))

    def do_y(self, x1: float, y1: float, x3: float, y3: float) -> None:
        self._curve((float(x1), float(y1)), (float(x3), float(y3)), (float(x3), float(y3)))

    def do_h(self) -> None:
        if self.path.closed:
            self.path.closed[-1] = True

    def do_re(self, x: float, y: float, w: float, h: float) -> None:
        x, y, w, h = float(x), float(y), float(w), float(h)
        corners = ((x, y), (x + w, y), (x + w, y + h), (x, y + h))
        self.path.subpaths.append([self._point(px, py) for px, py in corners])
        self.path.closed.append(True)
        self.current = (x, y)

    # ------------------------------------------------------------------
    # Path painting
    # ------------------------------------------------------------------
    def _end_path(self) -> None:
        if self.pending_clip is not None and not self.path.empty():
            self.state.clip = self.device.clip_path(self.path, self.state, self.pending_clip)
        self.pending_clip = None
        self.path = Path()
        self.current = None

    def _paint(self, fill: bool, stroke: bool, even_odd: bool = False, close: bool = False) -> None:
        if close:
            self.do_h()
        if not self.path.empty():
            if fill:
                self.device.fill_path(self.path, self.state, even_odd)
            if stroke:
                self.device.stroke_path(self.path, self.state)
        self._end_path()

    def do_S(self) -> None:
        self._paint(False, True)

    def do_s(self) -> None:
        self._paint(False, True, close=True)

    def do_f(self) -> None:
        self._paint(True, False)

    do_F = do_f

    def do_f_a(self) -> None:
        self._paint(True, False, even_odd=True)

    def do_B(self) -> None:
        self._paint(True, True)

    def do_B_a(self) -> None:
        self._paint(True, True, even_odd=True)

    def do_b(self) -> None:
        self._paint(True, True, close=True)

    def do_b_a(self) -> None:
        self._paint(True, True, even_odd=True, close=True)

    def do_n(self) -> None:
        self._end_path()

    def do_W(self) -> None:
        self.pending_clip = False

    def do_W_a(self) -> None:
        self.pending_clip = True

    # ------------------------------------------------------------------
    # Colour
    # ------------------------------------------------------------------
    def _space_components(self, name: Any) -> int:
        if isinstance(name, PDFName):
            if name.value in ("DeviceGray", "CalGray", "G"):
                return 1
            if name.value in ("DeviceRGB", "CalRGB", "RGB", "Lab"):
                return 3
            if name.value in ("DeviceCMYK", "CMYK"):
                return 4
            if name.value == "Pattern":
                return 0
            name = self.document.resolve(self.resource("ColorSpace", name))
        if isinstance(name, list) and name:
            family = name_value(self.document.resolve(name[0]))
            if family == "ICCBased" and len(name) > 1:
                profile = self.document.resolve(name[1])
                if isinstance(profile, PDFStream) and isinstance(profile.dictionary.get("N"), int):
                    return profile.dictionary["N"]
            if family in ("Separation", "DeviceN", "Indexed"):
                return 1
            if family in ("CalRGB", "Lab"):
                return 3
            if family == "CalGray":
                return 1
        if isinstance(name, PDFName):
            return self._space_components(name)
        return 1

    def do_g(self, gray: float) -> None:
        self.state.fill_colour = _gray(float(gray))

    def do_G(self, gray: float) -> None:
        self.state.stroke_colour = _gray(float(gray))

    def do_rg(self, r: float, g: float, b: float) -> None:
        self.state.fill_colour = colour_from_components((r, g, b))

    def do_RG(self, r: float, g: float, b: float) -> None:
        self.state.stroke_colour = colour_from_components((r, g, b))

    def do_k(self, c: float, m: float, y: float, k: float) -> None:
        self.state.fill_colour = colour_from_components((c, m, y, k))

    def do_K(self, c: float, m: float, y: float, k: float) -> None:
        self.state.stroke_colour = colour_from_components((c, m, y, k))

    def do_cs(self, name: Any) -> None:
        self.state.fill_space = self._space_components(name)
        self.state.fill_colour = (0.0, 0.0, 0.0)

    def do_CS(self, name: Any) -> None:
        self.state.stroke_space = self._space_components(name)
        self.state.stroke_colour = (0.0, 0.0, 0.0)

    def _components(self, operands: Sequence[Any], count: int) -> Optional[Colour]:
        numbers = [value for value in operands if isinstance(value, (int, float))]
        if count == 0 or not numbers:
            return None
        return colour_from_components(numbers[:count] if count in (1, 3, 4) else numbers[:1])

    def do_sc(self, *operands: Any) -> None:
        colour = self._components(operands, self.state.fill_space)
        if colour is not None:
            self.state.fill_colour = colour

    do_scn = do_sc

    def do_SC(self, *operands: Any) -> None:
        colour = self._components(operands, self.state.stroke_space)
        if colour is not None:
            self.state.stroke_colour = colour

    do_SCN = do_SC

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------
    def do_BT(self) -> None:
        self.text_matrix = IDENTITY
        self.line_matrix = IDENTITY

    def do_ET(self) -> None:
        pass

    def do_Tc(self, spacing: float) -> None:
        self.state.char_spacing = float(spacing)

    def do_Tw(self, spacing: float) -> None:
        self.state.word_spacing = float(spacing)

    def do_Tz(self, scale: float) -> None:
        self.state.horizontal_scaling = float(scale) / 100.0

    def do_TL(self, leading: float) -> None:
        self.state.leading = float(leading)

    def do_Ts(self, rise: float) -> None:
        self.state.rise = float(rise)

    def do_Tr(self, mode: int) -> None:
        self.state.render_mode = int(mode)

    def do_Tf(self, name: Any, size: float) -> None:
        self.state.font_size = float(size)
        value = self.resource("Font", name)
        self.state.font = load_font(self.document, value, self.fonts) if value is not None else None
        if self.state.font is None:
            self.warn(UnsupportedOperator("Tf", f"Font resource {name!r} is missing"))

    def do_Td(self, tx: float, ty: float) -> None:
        self.line_matrix = mult_matrix((1, 0, 0, 1, float(tx), float(ty)), self.line_matrix)
        self.text_matrix = self.line_matrix

    def do_TD(self, tx: float, ty: float) -> None:
        self.state.leading = -float(ty)
        self.do_Td(tx, ty)

    def do_Tm(self, a: float, b: float, c: float, d: float, e: float, f: float) -> None:
        self.line_matrix = (float(a), float(b), float(c), float(d), float(e), float(f))
        self.text_matrix = self.line_matrix

    def do_T_a(self) -> None:
        self.do_Td(0, -self.state.leading)

    def do_Tj(self, string: Any) -> None:
        self.show([string])

    def do_TJ(self, array: List[Any]) -> None:
        self.show(array)

    def do_quote(self, string: Any) -> None:
        self.do_T_a()
        self.show([string])

    def do_dquote(self, word_spacing: float, char_spacing: float, string: Any) -> None:
        self.state.word_spacing = float(word_spacing)
        self.state.char_spacing = float(char_spacing)
        self.do_quote(string)

    def show(self, items: Sequence[Any]) -> None:
        state = self.state
        font = state.font
        if font is None:
            return
        glyphs: List[Glyph] = []
        scale = state.horizontal_scaling
        for item in items:
            if isinstance(item, (int, float)):
                shift = -float(item) / 1000.0 * state.font_size * scale
                self.text_matrix = mult_matrix((1, 0, 0, 1, shift, 0), self.text_matrix)
                continue
            if not isinstance(item, PDFString):
                continue
            for code, text, width in font.decode(item.raw):
                trm = mult_matrix(
                    (state.font_size * scale, 0, 0, state.font_size, 0, state.rise),
                    mult_matrix(self.text_matrix, state.ctm),
                )
                advance = width / 1000.0 * state.font_size + state.char_spacing
                if code == 32 and not font.composite:
                    advance += state.word_spacing
                glyphs.append(Glyph(trm, text, width, state.font_size))
                self.text_matrix = mult_matrix((1, 0, 0, 1, advance * scale, 0), self.text_matrix)
        if glyphs and state.render_mode != 3:
            self.device.draw_glyphs(glyphs, state)

    # ------------------------------------------------------------------
    # XObjects and images
    # ------------------------------------------------------------------
    def do_Do(self, name: Any) -> None:
        ref = self.resource("XObject", name)
        xobject = self.document.resolve(ref)
        if not isinstance(xobject, PDFStream):
            self.warn(UnsupportedOperator("Do", f"XObject {name!r} is missing"))
            return
        subtype = name_value(xobject.dictionary.get("Subtype"))
        if subtype == "Image":
            self.device.draw_image(self.document, xobject, self.state)
        elif subtype == "Form":
            self.run_form(xobject, ref if isinstance(ref, PDFReference) else None)

    def run_form(self, form: PDFStream, ref: Optional[PDFReference], matrix: Optional[Matrix] = None) -> None:
        """Execute a Form XObject nested in the current state."""

        if ref is not None and ref in self._forms:
            self.warn(UnsupportedOperator("Do", f"Form XObject {ref!r} draws itself"))
            return
        if len(self._forms) >= _MAX_FORM_DEPTH:
            return
        data = self.document.stream_data(ref) if ref is not None else self.document.stream_data(form)
        if data is None:
            return
        resolve = self.document.resolve
        if matrix is None:
            matrix = form_matrix(self.document, form)
        resources = resolve(form.dictionary.get("Resources"))

        saved = (self.resources, self.state, self.stack, self.path, self.current, self.text_matrix, self.line_matrix)
        state = self.state.copy()
        state.ctm = mult_matrix(matrix, state.ctm)
        bbox = resolve(form.dictionary.get("BBox"))
        if isinstance(bbox, list) and len(bbox) == 4:
            x0, y0, x1, y1 = (float(resolve(v)) for v in bbox)
            box = Path(
                [[apply_matrix(state.ctm, p) for p in ((x0, y0), (x1, y0), (x1, y1), (x0, y1))]],
                [True],
            )
            state.clip = self.device.clip_path(box, state, False)
        if ref is not None:
            self._forms.add(ref)
        try:
            self.resources = resources if isinstance(resources, dict) else saved[0]
            self.state = state
            self.stack = []
            self.path = Path()
            self.current = None
            try:
                operations = list(parse_content_stream(data))
            except PDFFormError as exc:
                self.warn(UnsupportedOperator("Do", f"Form content could not be parsed: {exc}"))
                operations = []
            for operands, operator in operations:
                self.execute(operator, operands)
        finally:
            if ref is not None:
                self._forms.discard(ref)
            (self.resources, self.state, self.stack, self.path, self.current,
             self.text_matrix, self.line_matrix) = saved

    def do_BI(self, operands: List[Any]) -> None:
        params, payload = operands
        expanded = {_INLINE_KEYS.get(key, key): value for key, value in params.items()}
        for key in ("ColorSpace", "Filter"):
            value = expanded.get(key)
            if isinstance(value, PDFName):
                expanded[key] = PDFName(_INLINE_VALUES.get(value.value, value.value))
        colour_space = expanded.get("ColorSpace")
        if isinstance(colour_space, PDFName) and colour_space.value not in _INLINE_VALUES.values():
            named = self.resource("ColorSpace", colour_space)
            if named is not None:
                expanded["ColorSpace"] = named
        expanded["Subtype"] = PDFName("Image")
        self.device.draw_image(self.document, PDFStream(expanded, payload), self.state)

    def do_sh(self, name: Any) -> None:
        self.warn(UnsupportedOperator("sh", "Shading patterns are not painted"))

    # ------------------------------------------------------------------
    # Marked content, compatibility and Type 3 glyph metrics
    # ------------------------------------------------------------------
    def do_BMC(self, tag: Any) -> None:
        pass

    def do_BDC(self, tag: Any, properties: Any) -> None:
        pass

    def do_EMC(self) -> None:
        pass

    def do_MP(self, tag: Any) -> None:
        pass

    def do_DP(self, tag: Any, properties: Any) -> None:
        pass

    def do_BX(self) -> None:
        self.compat += 1

    def do_EX(self) -> None:
        self.compat = max(0, self.compat - 1)

    def do_d0(self, wx: float, wy: float) -> None:
        pass

    def do_d1(self, wx: float, wy: float, llx: float, lly: float, urx: float, ury: float) -> None:
        pass


_INLINE_KEYS = {
    "BPC": "BitsPerComponent",
    "CS": "ColorSpace",
    "D": "Decode",
    "DP": "DecodeParms",
    "F": "Filter",
    "H": "Height",
    "IM": "ImageMask",
    "I": "Interpolate",
    "W": "Width",
}
_INLINE_VALUES = {
    "G": "DeviceGray",
    "RGB": "DeviceRGB",
    "CMYK": "DeviceCMYK",
    "I": "Indexed",
    "AHx": "ASCIIHexDecode",
    "A85": "ASCII85Decode",
    "Fl": "FlateDecode",
    "RL": "RunLengthDecode",
    "DCT": "DCTDecode",
    "DeviceGray": "DeviceGray",
    "DeviceRGB": "DeviceRGB",
    "DeviceCMYK": "DeviceCMYK",
}
