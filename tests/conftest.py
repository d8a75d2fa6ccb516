from __future__ import annotations

import zlib
from typing import Dict

import pytest

from pdfbuild import HEADER, TEMPLATE_OBJECTS, build_pdf, stream


@pytest.fixture
def template_pdf() -> bytes:
    """Two-page form with ``patient_name``, ``is_insured`` and ``plan_type``."""

    return build_pdf(TEMPLATE_OBJECTS)


@pytest.fixture
def nested_pdf() -> bytes:
    """Group field ``applicant`` with ``first`` and ``last`` plus a two-widget field."""

    objects = {
        1: b"<< /Type /Catalog /Pages 2 0 R /AcroForm << /Fields [4 0 R 7 0 R] >> >>",
        2: b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        3: b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 300 300] /Annots [5 0 R 6 0 R 8 0 R 9 0 R] >>",
        4: b"<< /T (applicant) /FT /Tx /Kids [5 0 R 6 0 R] >>",
        5: b"<< /Type /Annot /Subtype /Widget /T (first) /Parent 4 0 R /Rect [0 0 100 20] /V (Ada) >>",
        6: b"<< /Type /Annot /Subtype /Widget /T (last) /Parent 4 0 R /Rect [0 30 100 50] /Ff 4096 >>",
        7: b"<< /T (initials) /FT /Tx /V (AL) /Kids [8 0 R 9 0 R] >>",
        8: b"<< /Type /Annot /Subtype /Widget /Parent 7 0 R /Rect [0 100 50 120] >>",
        9: b"<< /Type /Annot /Subtype /Widget /Parent 7 0 R /Rect [0 200 50 220] >>",
    }
    return build_pdf(objects)


@pytest.fixture
def xref_stream_pdf() -> bytes:
    """PDF 1.5 layout: page dictionary inside an object stream, xref stream trailer."""

    out = bytearray(HEADER)
    offsets: Dict[int, int] = {}

    def add(number: int, body: bytes) -> None:
        offsets[number] = len(out)
        out.extend(b"%d 0 obj\n" % number + body + b"\nendobj\n")

    add(1, b"<< /Type /Catalog /Pages 2 0 R >>")
    add(2, b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>")
    page = b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 120 80] /Rotate 90 >>"
    header = b"3 0 "
    payload = zlib.compress(header + page)
    add(4, stream(b"/Type /ObjStm /N 1 /First %d /Filter /FlateDecode" % len(header), payload))

    xref_offset = len(out)
    rows = [b"\x00\x00\x00\xff"]
    rows.append(b"\x01" + offsets[1].to_bytes(2, "big") + b"\x00")
    rows.append(b"\x01" + offsets[2].to_bytes(2, "big") + b"\x00")
    rows.append(b"\x02" + (4).to_bytes(2, "big") + b"\x00")
    rows.append(b"\x01" + offsets[4].to_bytes(2, "big") + b"\x00")
    rows.append(b"\x01" + xref_offset.to_bytes(2, "big") + b"\x00")
    data = b"".join(rows)
    out.extend(
        b"5 0 obj\n"
        + stream(b"/Type /XRef /Size 6 /W [1 2 1] /Index [0 6] /Root 1 0 R", data)
        + b"\nendobj\n"
    )
    out.extend(b"startxref\n%d\n%%%%EOF\n" % xref_offset)
    return bytes(out)

