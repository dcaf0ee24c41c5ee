"""Errors raised while reading GPX documents."""

from typing import Optional


class GpxParseError(ValueError):
    """A GPX document could not be turned into tracks and waypoints."""


class MalformedNumberError(GpxParseError):
    """A ``lat``, ``lon`` or ``speed`` value is missing or not a number."""

    def __init__(self, message: str, field: str, value: Optional[str]):
        super().__init__(message)
        self.field = field
        self.value = value


class DateTimeFormatError(GpxParseError):
    """A ``time`` value matches neither the zoned nor the local format."""

    def __init__(self, message: str, text: str):
        super().__init__(message)
        self.text = text


class StructuralViolationError(GpxParseError):
    """A point or segment closed without the container it belongs to."""

    def __init__(self, message: str, element: str):
        super().__init__(message)
        self.element = element


class GpxSyntaxError(GpxParseError):
    """The tokenizer rejected the document (not XML, or unsafe XML)."""
