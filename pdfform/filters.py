"""Stream filter decoding.

Image codecs (``DCTDecode``, ``JPXDecode`` ...) are left encoded; the renderer
hands those bytes to Pillow directly.
"""

from __future__ import annotations

import base64
import binascii
import zlib
from typing import Any, Callable, Dict, List, Optional

from .errors import DecodeError
from .primitives import PDFName, PDFStream

IMAGE_FILTERS = frozenset({"DCTDecode", "JPXDecode", "CCITTFaxDecode", "JBIG2Decode"})

_ABBREVIATIONS = {
    "Fl": "FlateDecode",
    "AHx": "ASCIIHexDecode",
    "A85": "ASCII85Decode",
    "RL": "RunLengthDecode",
    "DCT": "DCTDecode",
}


def _flate(data: bytes, parms: Dict[str, Any]) -> bytes:
    try:
        raw = zlib.decompress(data)
    except zlib.error:
        # Truncated streams are common; salvage what decompresses.
        try:
            raw = zlib.decompressobj().decompress(data)
        except zlib.error as exc:
            raise DecodeError("FlateDecode", str(exc)) from exc
        if not raw:
            raise DecodeError("FlateDecode", "no data could be decompressed")
    return _apply_predictor(raw, parms)


def _apply_predictor(data: bytes, parms: Dict[str, Any]) -> bytes:
    predictor = parms.get("Predictor", 1) if parms else 1
    if not isinstance(predictor, int) or predictor <= 1:
        return data
    colors = parms.get("Colors", 1)
    bits = parms.get("BitsPerComponent", 8)
    columns = parms.get("Columns", 1)
    bpp = max(1, (colors * bits + 7) // 8)
    row_length = (colors * bits * columns + 7) // 8
    if predictor == 2:
        if bits != 8:
            raise DecodeError("FlateDecode", "TIFF predictor only supported for 8-bit components")
        out = bytearray(data)
        for row_start in range(0, len(out), row_length):
            for i in range(row_start + bpp, min(row_start + row_length, len(out))):
                out[i] = (out[i] + out[i - bpp]) & 0xFF
        return bytes(out)
    if predictor < 10:
        raise DecodeError("FlateDecode", f"unknown predictor {predictor}")

    out = bytearray()
    prev = bytearray(row_length)
    stride = row_length + 1
    for offset in range(0, len(data), stride):
        tag = data[offset]
        row = bytearray(data[offset + 1 : offset + stride])
        if len(row) < row_length:
            row.extend(bytes(row_length - len(row)))
        if tag == 1:
            for i in range(bpp, row_length):
                row[i] = (row[i] + row[i - bpp]) & 0xFF
        elif tag == 2:
            for i in range(row_length):
                row[i] = (row[i] + prev[i]) & 0xFF
        elif tag == 3:
            for i in range(row_length):
                left = row[i - bpp] if i >= bpp else 0
                row[i] = (row[i] + ((left + prev[i]) >> 1)) & 0xFF
        elif tag == 4:
            for i in range(row_length):
                a = row[i - bpp] if i >= bpp else 0
                b = prev[i]
                c = prev[i - bpp] if i >= bpp else 0
                p = a + b - c
                pa, pb, pc = abs(p - a), abs(p - b), abs(p - c)
                if pa <= pb and pa <= pc:
                    pred = a
                elif pb <= pc:
                    pred = b
                else:
                    pred = c
                row[i] = (row[i] + pred) & 0xFF
        elif tag != 0:
            raise DecodeError("FlateDecode", f"invalid PNG row filter {tag}")
        out += row
        prev = row
    return bytes(out)


def _ascii_hex(data: bytes, parms: Dict[str, Any]) -> bytes:
    cleaned = bytes(b for b in data.split(b">", 1)[0] if b not in b"\x00\t\n\r\f ")
    if len(cleaned) % 2:
        cleaned += b"0"
    try:
        return binascii.unhexlify(cleaned)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError("ASCIIHexDecode", str(exc)) from exc


def _ascii85(data: bytes, parms: Dict[str, Any]) -> bytes:
    cleaned = data.strip()
    if cleaned.startswith(b"<~"):
        cleaned = cleaned[2:]
    if not cleaned.endswith(b"~>"):
        cleaned += b"~>"
    try:
        return base64.a85decode(b"<~" + cleaned, adobe=True, ignorechars=b" \t\n\r\v\f\x00")
    except ValueError as exc:
        raise DecodeError("ASCII85Decode", str(exc)) from exc


def _run_length(data: bytes, parms: Dict[str, Any]) -> bytes:
    out = bytearray()
    index = 0
    while index < len(data):
        length = data[index]
        if length == 128:
            break
        if length < 128:
            out += data[index + 1 : index + 2 + length]
            index += length + 2
        else:
            out += data[index + 1 : index + 2] * (257 - length)
            index += 2
    return bytes(out)


_DECODERS: Dict[str, Callable[[bytes, Dict[str, Any]], bytes]] = {
    "FlateDecode": _flate,
    "ASCIIHexDecode": _ascii_hex,
    "ASCII85Decode": _ascii85,
    "RunLengthDecode": _run_length,
}


Resolve = Callable[[Any], Any]


def _direct(value: Any) -> Any:
    return value


def _decode_parms(stream: PDFStream, count: int, resolve: Resolve) -> List[Dict[str, Any]]:
    parms = resolve(stream.dictionary.get("DecodeParms"))
    if isinstance(parms, dict):
        parms = [parms]
    result = []
    if isinstance(parms, list):
        for item in parms:
            item = resolve(item)
            result.append({key: resolve(value) for key, value in item.items()} if isinstance(item, dict) else {})
    return (result + [{}] * count)[:count]


def stream_filters(stream: PDFStream, resolve: Optional[Resolve] = None) -> List[str]:
    """Filter names of *stream* in application order, abbreviations expanded.

    *resolve* follows indirect ``/Filter`` entries; without it they are
    ignored.
    """

    resolve = resolve or _direct
    value = resolve(stream.dictionary.get("Filter"))
    if isinstance(value, PDFName):
        value = [value]
    if not isinstance(value, list):
        return []
    names = [item.value for item in (resolve(entry) for entry in value) if isinstance(item, PDFName)]
    return [_ABBREVIATIONS.get(name, name) for name in names]


def decode_stream(stream: PDFStream, resolve: Optional[Resolve] = None) -> bytes:
    """Return the decoded payload of *stream*.

    The chain halts before an image codec and returns the bytes that codec
    expects.  Pass the owning document's *resolve* so indirect ``/Filter``
    and ``/DecodeParms`` values are honoured.
    """

    resolve = resolve or _direct
    data = stream.data
    filters = stream_filters(stream, resolve)
    for name, parms in zip(filters, _decode_parms(stream, len(filters), resolve)):
        if name in IMAGE_FILTERS:
            return data
        decoder = _DECODERS.get(name)
        if decoder is None:
            raise DecodeError(name, "filter is not supported")
        data = decoder(data, parms)
    return data
