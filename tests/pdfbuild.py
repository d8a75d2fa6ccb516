"""Helpers that assemble small PDF files in memory for the tests."""

from __future__ import annotations

from typing import Dict, Optional

HEADER = b"%PDF-1.7\n%\xe2\xe3\xcf\xd3\n"


def stream(dictionary: bytes, data: bytes) -> bytes:
    return b"<< " + dictionary + b" /Length %d >>\nstream\n" % len(data) + data + b"\nendstream"


def build_pdf(objects: Dict[int, bytes], *, root: int = 1, trailer_extra: bytes = b"", header: bytes = HEADER) -> bytes:
    """Assemble numbered object bodies into a PDF with a correct xref table."""

    out = bytearray(header)
    offsets = {}
    for number in sorted(objects):
        offsets[number] = len(out)
        out += b"%d 0 obj\n" % number + objects[number] + b"\nendobj\n"
    xref_offset = len(out)
    size = max(objects) + 1
    out += b"xref\n0 %d\n" % size
    out += b"0000000000 65535 f \n"
    for number in range(1, size):
        if number in offsets:
            out += b"%010d 00000 n \n" % offsets[number]
        else:
            out += b"0000000000 00001 f \n"
    out += b"trailer\n<< /Size %d /Root %d 0 R%s >>\n" % (size, root, trailer_extra)
    out += b"startxref\n%d\n%%%%EOF\n" % xref_offset
    return bytes(out)


def append_update(original: bytes, objects: Dict[int, bytes], *, size: int, root: int = 1) -> bytes:
    """Append an incremental update section to *original*."""

    prev = int(original[original.rfind(b"startxref") + len(b"startxref") :].split()[0])
    out = bytearray(original)
    offsets = {}
    for number in sorted(objects):
        offsets[number] = len(out)
        out += b"%d 0 obj\n" % number + objects[number] + b"\nendobj\n"
    xref_offset = len(out)
    out += b"xref\n"
    for number in sorted(offsets):
        out += b"%d 1\n%010d 00000 n \n" % (number, offsets[number])
    out += b"trailer\n<< /Size %d /Root %d 0 R /Prev %d >>\n" % (size, root, prev)
    out += b"startxref\n%d\n%%%%EOF\n" % xref_offset
    return bytes(out)


TEMPLATE_OBJECTS: Dict[int, bytes] = {
    1: b"<< /Type /Catalog /Pages 2 0 R /AcroForm 5 0 R /Producer (forms-test) >>",
    2: b"<< /Type /Pages /Kids [3 0 R 4 0 R] /Count 2 /MediaBox [0 0 200 100] >>",
    3: (
        b"<< /Type /Page /Parent 2 0 R /Resources << /Font << /F1 11 0 R >> >>"
        b" /Contents 10 0 R /Annots [6 0 R 7 0 R 8 0 R] /PieceInfo << /Custom (kept) >> >>"
    ),
    4: b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 100 50] /Resources << /Font << /F1 11 0 R >> >> /Contents 12 0 R >>",
    5: b"<< /Fields [6 0 R 7 0 R 8 0 R] /DA (/Helv 0 Tf 0 g) /DR << /Font << /Helv 11 0 R >> >> >>",
    6: (
        b"<< /Type /Annot /Subtype /Widget /FT /Tx /T (patient_name) /MaxLen 40 /V (John Smith)"
        b" /Rect [10 60 190 80] /P 3 0 R /DA (/Helv 10 Tf 0 g) >>"
    ),
    7: (
        b"<< /Type /Annot /Subtype /Widget /FT /Btn /T (is_insured) /V /Off /AS /Off"
        b" /Rect [10 35 25 50] /P 3 0 R /AP << /N << /Yes 13 0 R /Off 14 0 R >> >> >>"
    ),
    8: (
        b"<< /Type /Annot /Subtype /Widget /FT /Ch /Ff 131072 /T (plan_type) /Opt [(HMO) (PPO)]"
        b" /V (HMO) /Rect [10 10 100 30] /P 3 0 R >>"
    ),
    10: stream(b"", b"0 0 1 rg 0 0 50 20 re f\nBT /F1 12 Tf 10 85 Td (Enrollment) Tj ET\n"),
    11: b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica /Encoding /WinAnsiEncoding >>",
    12: stream(b"", b"BT /F1 10 Tf 5 20 Td (Page two) Tj ET\n"),
    13: stream(b"/Type /XObject /Subtype /Form /BBox [0 0 15 15]", b"0 g 2 2 11 11 re f\n"),
    14: stream(b"/Type /XObject /Subtype /Form /BBox [0 0 15 15]", b""),
}


def minimal_objects(extra_catalog: bytes = b"", kids: bytes = b"[3 0 R]") -> Dict[int, bytes]:
    return {
        1: b"<< /Type /Catalog /Pages 2 0 R" + extra_catalog + b" >>",
        2: b"<< /Type /Pages /Kids " + kids + b" /Count 1 >>",
        3: b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 100 100] >>",
    }


def page_with_content(
    content: bytes,
    *,
    resources: bytes = b"",
    media_box: bytes = b"[0 0 100 100]",
    page_extra: bytes = b"",
    extra: Optional[Dict[int, bytes]] = None,
) -> bytes:
    objects = {
        1: b"<< /Type /Catalog /Pages 2 0 R >>",
        2: b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        3: (
            b"<< /Type /Page /Parent 2 0 R /MediaBox " + media_box
            + b" /Resources << " + resources + b" >> /Contents 4 0 R" + page_extra + b" >>"
        ),
        4: stream(b"", content),
    }
    objects.update(extra or {})
    return build_pdf(objects)
