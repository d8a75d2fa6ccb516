"""Page rasterisation with Pillow."""

from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, List, Optional, Tuple

from PIL import Image, ImageChops, ImageDraw, ImageFont

from . import settings
from .content import (
    ContentInterpreter,
    Device,
    Glyph,
    GraphicsState,
    Matrix,
    Path,
    apply_matrix,
    form_matrix,
    invert_matrix,
    matrix_scale,
    mult_matrix,
)
from .errors import BrokenReference, DecodeError, PDFFormError, RenderError, RenderLimitExceeded
from .fields import ANNOT_HIDDEN
from .filters import decode_stream, stream_filters
from .primitives import PDFName, PDFReference, PDFStream, PDFString, name_value

if TYPE_CHECKING:  # pragma: no cover
    from .document import Document, Page

log = logging.getLogger(__name__)

_BACKGROUND = (255, 255, 255, 255)


@dataclass(frozen=True)
class RenderedPage:
    """An RGBA pixel buffer for one page at one scale."""

    width: int
    height: int
    scale: float
    pixels: bytes = field(repr=False)
    mode: str = "RGBA"
    warnings: Tuple[PDFFormError, ...] = ()

    def to_image(self) -> Image.Image:
        return Image.frombytes(self.mode, (self.width, self.height), self.pixels)

    def to_png(self) -> bytes:
        buffer = io.BytesIO()
        self.to_image().save(buffer, format="PNG")
        return buffer.getvalue()


def page_matrix(page: "Page", scale: float) -> Matrix:
    """Map default user space of *page* onto top-left-origin pixels."""

    x0, y0, x1, y1 = page.box
    s = scale
    if page.rotate == 90:
        return (0.0, s, s, 0.0, -x0 * s, -y0 * s)
    if page.rotate == 180:
        return (-s, 0.0, 0.0, s, x1 * s, -y0 * s)
    if page.rotate == 270:
        return (0.0, -s, -s, 0.0, y1 * s, x1 * s)
    return (s, 0.0, 0.0, -s, -x0 * s, y1 * s)


def _rgba(colour: Tuple[float, float, float]) -> Tuple[int, int, int, int]:
    return tuple(int(round(component * 255)) for component in colour) + (255,)  # type: ignore[return-value]


def _image_mode(document: "Document", image: PDFStream) -> Tuple[str, Optional[List[int]]]:
    """Pillow mode and optional palette for an image XObject."""

    resolve = document.resolve
    space = resolve(image.dictionary.get("ColorSpace"))
    bits = resolve(image.dictionary.get("BitsPerComponent", 8))
    if isinstance(space, list) and space:
        family = name_value(resolve(space[0]))
        if family == "ICCBased" and len(space) > 1:
            profile = resolve(space[1])
            components = profile.dictionary.get("N", 3) if isinstance(profile, PDFStream) else 3
            return {1: "L", 3: "RGB", 4: "CMYK"}.get(components, "RGB"), None
        if family == "Indexed" and len(space) == 4:
            lookup = resolve(space[3])
            if isinstance(lookup, PDFStream):
                table = decode_stream(lookup, resolve)
            else:
                table = lookup.raw if isinstance(lookup, PDFString) else b""
            base_mode, _ = _image_mode(document, PDFStream({"ColorSpace": space[1]}, b""))
            if base_mode == "L":
                palette = [v for g in table for v in (g, g, g)]
            else:
                palette = list(table[: 768])
            return "P", palette
        space = space[0]
    name = name_value(space)
    if name in ("DeviceGray", "CalGray", "G"):
        return ("1" if bits == 1 else "L"), None
    if name in ("DeviceCMYK", "CMYK"):
        return "CMYK", None
    return "RGB", None


def decode_image(document: "Document", image: PDFStream) -> Image.Image:
    """Return the image XObject *image* as a Pillow image."""

    data = decode_stream(image, document.resolve)
    filters = stream_filters(image, document.resolve)
    if filters and filters[-1] in ("DCTDecode", "JPXDecode"):
        return Image.open(io.BytesIO(data))
    width = int(document.resolve(image.dictionary.get("Width", 0)))
    height = int(document.resolve(image.dictionary.get("Height", 0)))
    if image.dictionary.get("ImageMask") is True:
        stencil = Image.frombytes("1", (width, height), data)
        return ImageChops.invert(stencil.convert("L"))
    mode, palette = _image_mode(document, image)
    if mode == "P":
        picture = Image.frombytes("P", (width, height), data)
        picture.putpalette(palette or [])
        return picture
    return Image.frombytes(mode, (width, height), data)


class RasterDevice(Device):
    """Paints onto an RGBA Pillow image; every paint goes through an ``L`` mask."""

    def __init__(self, width: int, height: int) -> None:
        self.image = Image.new("RGBA", (width, height), _BACKGROUND)
        self.size = (width, height)

    def _mask(self) -> Image.Image:
        return Image.new("L", self.size, 0)

    def _paint(self, mask: Image.Image, colour: Tuple[float, float, float], alpha: float, clip: Any) -> None:
        if clip is not None:
            mask = ImageChops.multiply(mask, clip)
        if alpha < 1.0:
            mask = mask.point(lambda value: int(value * max(alpha, 0.0)))
        self.image.paste(_rgba(colour), (0, 0, self.size[0], self.size[1]), mask)

    def _path_mask(self, path: Path, even_odd: bool) -> Image.Image:
        combined: Optional[Image.Image] = None
        for subpath in path.subpaths:
            if len(subpath) < 3:
                continue
            layer = self._mask()
            ImageDraw.Draw(layer).polygon(subpath, fill=255)
            if combined is None:
                combined = layer
            elif even_odd:
                combined = ImageChops.difference(combined, layer)
            else:
                combined = ImageChops.lighter(combined, layer)
        return combined if combined is not None else self._mask()

    def fill_path(self, path: Path, state: GraphicsState, even_odd: bool) -> None:
        self._paint(self._path_mask(path, even_odd), state.fill_colour, state.fill_alpha, state.clip)

    def stroke_path(self, path: Path, state: GraphicsState) -> None:
        mask = self._mask()
        draw = ImageDraw.Draw(mask)
        width = max(1, int(round(state.line_width * matrix_scale(state.ctm))))
        for subpath, closed in zip(path.subpaths, path.closed):
            points = list(subpath)
            if closed and len(points) > 2:
                points.append(points[0])
            if len(points) > 1:
                draw.line(points, fill=255, width=width, joint="curve")
        self._paint(mask, state.stroke_colour, state.stroke_alpha, state.clip)

    def clip_path(self, path: Path, state: GraphicsState, even_odd: bool) -> Any:
        mask = self._path_mask(path, even_odd)
        if state.clip is not None:
            mask = ImageChops.darker(mask, state.clip)
        return mask

    def draw_glyphs(self, glyphs: List[Glyph], state: GraphicsState) -> None:
        font = state.font
        if font is None:
            return
        mask = self._mask()
        draw = ImageDraw.Draw(mask)
        drawn = False
        for glyph in glyphs:
            if not glyph.text.strip():
                continue
            a, b, c, d, e, f = glyph.matrix
            pixel_size = math.hypot(c, d)
            if pixel_size < 1:
                continue
            face = font.face(int(round(pixel_size)))
            if isinstance(face, ImageFont.FreeTypeFont):
                draw.text((e, f), glyph.text, font=face, fill=255, anchor="ls")
            else:
                draw.text((e, f - pixel_size), glyph.text, font=face, fill=255)
            drawn = True
        if drawn:
            self._paint(mask, state.fill_colour, state.fill_alpha, state.clip)

    def draw_image(self, document: "Document", image: PDFStream, state: GraphicsState) -> None:
        try:
            picture = decode_image(document, image)
        except (OSError, ValueError, DecodeError) as exc:
            raise DecodeError("image", str(exc)) from exc
        stencil = image.dictionary.get("ImageMask") is True
        picture = picture.convert("L" if stencil else "RGBA")
        width, height = picture.size
        if not width or not height:
            return
        # Image space (0,0)-(w,h) with the first row at the top, onto the unit square.
        to_device = mult_matrix((1.0 / width, 0.0, 0.0, -1.0 / height, 0.0, 1.0), state.ctm)
        try:
            a, b, c, d, e, f = invert_matrix(to_device)
        except ValueError:
            return
        transformed = picture.transform(
            self.size,
            Image.Transform.AFFINE,
            (a, c, e, b, d, f),
            resample=Image.Resampling.BILINEAR,
            fillcolor=0 if stencil else (0, 0, 0, 0),
        )
        if stencil:
            self._paint(transformed, state.fill_colour, state.fill_alpha, state.clip)
            return
        mask = transformed.getchannel("A")
        if state.clip is not None:
            mask = ImageChops.multiply(mask, state.clip)
        if state.fill_alpha < 1.0:
            mask = mask.point(lambda value: int(value * state.fill_alpha))
        self.image.paste(transformed.convert("RGB"), (0, 0), mask)


# ---------------------------------------------------------------------------
# Widget appearances
# ---------------------------------------------------------------------------


def _widget_appearance(document: "Document", annot: dict) -> Tuple[Optional[PDFStream], Optional[PDFReference]]:
    """The normal appearance stream selected by the widget's ``/AS``."""

    appearance = document.resolve(annot.get("AP"))
    if not isinstance(appearance, dict):
        return None, None
    normal_ref = appearance.get("N")
    normal = document.resolve(normal_ref)
    if isinstance(normal, dict):
        state = name_value(annot.get("AS"))
        if state is None:
            return None, None
        normal_ref = normal.get(state)
        normal = document.resolve(normal_ref)
    if not isinstance(normal, PDFStream):
        return None, None
    return normal, normal_ref if isinstance(normal_ref, PDFReference) else None


def appearance_matrix(document: "Document", form: PDFStream, rect: List[float]) -> Matrix:
    """Matrix taking the form's transformed ``/BBox`` onto the annotation rectangle."""

    resolve = document.resolve
    matrix = form_matrix(document, form)
    bbox = resolve(form.dictionary.get("BBox"))
    if not isinstance(bbox, list) or len(bbox) != 4:
        bbox = [0, 0, rect[2] - rect[0], rect[3] - rect[1]]
    bx0, by0, bx1, by1 = (float(resolve(v)) for v in bbox)
    corners = [apply_matrix(matrix, p) for p in ((bx0, by0), (bx1, by0), (bx1, by1), (bx0, by1))]
    tx0 = min(x for x, _ in corners)
    ty0 = min(y for _, y in corners)
    tx1 = max(x for x, _ in corners)
    ty1 = max(y for _, y in corners)
    rx0, rx1 = sorted((rect[0], rect[2]))
    ry0, ry1 = sorted((rect[1], rect[3]))
    sx = (rx1 - rx0) / (tx1 - tx0) if tx1 > tx0 else 1.0
    sy = (ry1 - ry0) / (ty1 - ty0) if ty1 > ty0 else 1.0
    fit = (sx, 0.0, 0.0, sy, rx0 - tx0 * sx, ry0 - ty0 * sy)
    return mult_matrix(matrix, fit)


def _paint_widgets(page: "Page", interpreter: ContentInterpreter, ctm: Matrix) -> None:
    document = page.document
    annots = document.resolve(page.dictionary.get("Annots"))
    if not isinstance(annots, list):
        return
    for item in annots:
        try:
            annot = document.resolve(item)
            if not isinstance(annot, dict) or annot.get("Subtype") != PDFName("Widget"):
                continue
            flags = annot.get("F", 0)
            if isinstance(flags, int) and flags & ANNOT_HIDDEN:
                continue
            rect = document.resolve(annot.get("Rect"))
            if not isinstance(rect, list) or len(rect) != 4:
                continue
            form, form_ref = _widget_appearance(document, annot)
            if form is None:
                continue
            rect = [float(document.resolve(v)) for v in rect]
            matrix = appearance_matrix(document, form, rect)
            interpreter.reset(page.resources, ctm)
            interpreter.run_form(form, form_ref, matrix)
        except BrokenReference as exc:
            interpreter.warn(RenderError(f"Skipping widget {item!r}: {exc}"))


def render(page: "Page", scale: float = 1.0, *, max_pixels: Optional[int] = None) -> RenderedPage:
    """Rasterise *page* at *scale* pixels per point.

    The buffer is ``ceil(width * scale)`` by ``ceil(height * scale)`` pixels of
    the page's crop box (swapped for 90 and 270 degree rotation).  Page
    content is painted first, then every visible widget using its current
    appearance state.  The document is never modified.
    """

    if scale <= 0:
        raise ValueError("scale must be positive")
    limit = settings.MAX_RENDER_PIXELS if max_pixels is None else max_pixels
    display_width, display_height = page.display_size
    width = max(1, math.ceil(display_width * scale - 1e-9))
    height = max(1, math.ceil(display_height * scale - 1e-9))
    if width * height > limit:
        raise RenderLimitExceeded(f"{width}x{height} pixels exceeds the limit of {limit}")

    device = RasterDevice(width, height)
    interpreter = ContentInterpreter(page.document, device)
    ctm = page_matrix(page, scale)
    try:
        data = page.contents()
    except (BrokenReference, DecodeError) as exc:
        interpreter.warn(RenderError(f"Page content could not be decoded: {exc}"))
        data = b""
    interpreter.run(data, page.resources, ctm)
    _paint_widgets(page, interpreter, ctm)
    log.debug(
        "Rendered page %d at %sx: %dx%d, %d warnings", page.index, scale, width, height, len(interpreter.warnings)
    )
    return RenderedPage(
        width=width,
        height=height,
        scale=scale,
        pixels=device.image.tobytes(),
        warnings=tuple(interpreter.warnings),
    )
