"""
TGPH - Errors

Exception hierarchy for the TGPH series format. Decode failures carry the
byte offset where parsing stopped.
"""

from typing import Optional


class TGPHError(Exception):
    """Base exception for all TGPH failures."""


class TGPHDecodeError(TGPHError, ValueError):
    """Raised when a byte buffer is not a well-formed TGPH stream."""

    def __init__(self, message: str, offset: Optional[int] = None):
        if offset is not None:
            message = f"{message} (at offset {offset})"
        super().__init__(message)
        self.offset = offset


class TruncatedDataError(TGPHDecodeError):
    """Raised when the stream ends before a field is complete."""

    def __init__(self, what: str, offset: int, needed: int, available: int):
        super().__init__(
            f"Unexpected end of data while reading {what}: "
            f"needed {needed} bytes, {available} available",
            offset,
        )
        self.what = what
        self.needed = needed
        self.available = available


class UnknownElementTypeError(TGPHDecodeError):
    """Raised for an element type tag outside the known set."""

    def __init__(self, tag: int, offset: int):
        super().__init__(f"Unknown element type tag {tag}", offset)
        self.tag = tag


class InvalidTextError(TGPHDecodeError):
    """Raised when a string field is not valid UTF-8."""


class TGPHFormatError(TGPHDecodeError):
    """Raised for structural problems such as trailing bytes."""


class TGPHEncodeError(TGPHError, ValueError):
    """Raised when a store holds a value the wire format cannot represent."""


class ContainerTypeError(TGPHError, TypeError):
    """Raised when a value's kind does not match its container's kind.

    This is a caller bug: the same metric name was used for two different
    kinds of value.
    """
