"""
TGPH - Series Format Package

Typed column store with FIFO retention and its binary codec.
"""

from .codec import decode, encode, encode_string
from .elements import ElementType
from .errors import (
    ContainerTypeError,
    InvalidTextError,
    TGPHDecodeError,
    TGPHEncodeError,
    TGPHError,
    TGPHFormatError,
    TruncatedDataError,
    UnknownElementTypeError,
)
from .store import DEFAULT_ENTRY_LIMIT, FORMAT_VERSION, MAGIC, Container, Store

__all__ = [
    "Container",
    "ContainerTypeError",
    "DEFAULT_ENTRY_LIMIT",
    "ElementType",
    "FORMAT_VERSION",
    "InvalidTextError",
    "MAGIC",
    "Store",
    "TGPHDecodeError",
    "TGPHEncodeError",
    "TGPHError",
    "TGPHFormatError",
    "TruncatedDataError",
    "UnknownElementTypeError",
    "decode",
    "encode",
    "encode_string",
]
