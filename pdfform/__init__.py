"""Public interface for the pdfform package."""

import logging

from .document import Document, Page, load
from .errors import (
    BrokenReference,
    CorruptStructure,
    DecodeError,
    EncryptedDocument,
    FieldTypeError,
    FieldValueError,
    InvalidOption,
    LoadError,
    MalformedSyntax,
    PDFFormError,
    RenderError,
    RenderLimitExceeded,
    TrailerNotFound,
    UnsupportedOperator,
    ValueTooLong,
)
from .fields import CheckboxField, ChoiceField, Field, FieldKind, TextField, UnsupportedField, Widget, extract_fields
from .mutator import MutationResult, apply
from .primitives import PDFName, PDFReference, PDFStream, PDFString
from .render import RenderedPage, render
from .serializer import save
from .snapshot import dumps_snapshot, loads_snapshot, snapshot, values_from_snapshot
from .text import extract_text

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "BrokenReference",
    "CheckboxField",
    "ChoiceField",
    "CorruptStructure",
    "DecodeError",
    "Document",
    "EncryptedDocument",
    "Field",
    "FieldKind",
    "FieldTypeError",
    "FieldValueError",
    "InvalidOption",
    "LoadError",
    "MalformedSyntax",
    "MutationResult",
    "PDFFormError",
    "PDFName",
    "PDFReference",
    "PDFStream",
    "PDFString",
    "Page",
    "RenderError",
    "RenderLimitExceeded",
    "RenderedPage",
    "TextField",
    "TrailerNotFound",
    "UnsupportedField",
    "UnsupportedOperator",
    "ValueTooLong",
    "Widget",
    "apply",
    "dumps_snapshot",
    "extract_fields",
    "extract_text",
    "load",
    "loads_snapshot",
    "render",
    "save",
    "snapshot",
    "values_from_snapshot",
]
