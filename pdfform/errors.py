"""Exception types raised (or collected as warnings) by pdfform.

Fatal conditions are raised.  Non-fatal ones are returned as instances of the
same classes in the ``warnings`` list of the relevant result object so that
callers can tell "document could not be opened" (a :class:`LoadError`) apart
from "some values or elements were not applied".
"""

from __future__ import annotations

from typing import Any, Sequence


class PDFFormError(RuntimeError):
    """Base class for every error raised by the package."""


# -- Loading -----------------------------------------------------------------


class LoadError(PDFFormError):
    """The document could not be opened at all."""


class MalformedSyntax(LoadError):
    def __init__(self, message: str, position: int | None = None) -> None:
        if position is not None:
            message = f"{message} (at byte {position})"
        super().__init__(message)
        self.position = position


class BrokenReference(LoadError):
    def __init__(self, reference: Any, message: str | None = None) -> None:
        super().__init__(message or f"Reference {reference!r} has no live cross-reference entry")
        self.reference = reference


class DecodeError(LoadError):
    def __init__(self, filter_name: str, message: str) -> None:
        super().__init__(f"{filter_name}: {message}")
        self.filter_name = filter_name


class TrailerNotFound(LoadError):
    pass


class CorruptStructure(LoadError):
    pass


class EncryptedDocument(LoadError):
    pass


# -- Mutation ----------------------------------------------------------------


class FieldValueError(PDFFormError):
    """A value could not be applied to a form field."""

    def __init__(self, field_name: str, message: str) -> None:
        super().__init__(f"{field_name}: {message}")
        self.field_name = field_name


class ValueTooLong(FieldValueError):
    def __init__(self, field_name: str, limit: int, length: int) -> None:
        super().__init__(field_name, f"value has {length} characters, maximum is {limit}")
        self.limit = limit
        self.length = length


class InvalidOption(FieldValueError):
    def __init__(self, field_name: str, value: str, options: Sequence[str]) -> None:
        super().__init__(field_name, f"{value!r} is not one of {list(options)!r}")
        self.value = value
        self.options = tuple(options)


class FieldTypeError(FieldValueError):
    pass


# -- Rendering ---------------------------------------------------------------


class RenderError(PDFFormError):
    pass


class UnsupportedOperator(RenderError):
    def __init__(self, operator: str, message: str | None = None) -> None:
        super().__init__(message or f"Unsupported content operator {operator!r}")
        self.operator = operator


class RenderLimitExceeded(RenderError):
    pass


__all__ = [
    "BrokenReference",
    "CorruptStructure",
    "DecodeError",
    "EncryptedDocument",
    "FieldTypeError",
    "FieldValueError",
    "InvalidOption",
    "LoadError",
    "MalformedSyntax",
    "PDFFormError",
    "RenderError",
    "RenderLimitExceeded",
    "TrailerNotFound",
    "UnsupportedOperator",
    "ValueTooLong",
]
