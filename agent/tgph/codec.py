"""
TGPH - Binary Codec

Serializes a Store to the TGPH byte layout and back. All integers are
little-endian.

    magic            4 bytes   b"TGPH"
    version          u8
    container_count  u16
    containers       container_count times:
        name         string
        element_type u8        1 = u32, 2 = f32, 3 = string
        count        u32
        elements     count times: 4 raw bytes (u32/f32) or string

Strings are length-prefixed: one length byte for 0..254 bytes of UTF-8,
otherwise the 0xFF escape byte followed by a u16 length.
"""

import struct
import sys
from array import array
from typing import Union

from .elements import FLOAT32_TYPECODE, U32_TYPECODE, ElementType
from .errors import (
    InvalidTextError,
    TGPHEncodeError,
    TGPHFormatError,
    TruncatedDataError,
    UnknownElementTypeError,
)
from .store import DEFAULT_ENTRY_LIMIT, Container, Store

STRING_ESCAPE = 0xFF
MAX_STRING_BYTES = 0xFFFF
MAX_CONTAINERS = 0xFFFF
MAX_ELEMENTS = 0xFFFFFFFF
ELEMENT_WIDTH = 4

_U8 = struct.Struct("<B")
_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")

_NATIVE_IS_LITTLE = sys.byteorder == "little"

Buffer = Union[bytes, bytearray, memoryview]


# =========================================
# Encoding
# =========================================

def encode_string(text: str) -> bytes:
    """Encode one string with its length prefix."""
    raw = text.encode("utf-8")
    length = len(raw)
    if length > MAX_STRING_BYTES:
        raise TGPHEncodeError(
            f"String of {length} bytes exceeds the {MAX_STRING_BYTES} byte limit"
        )
    if length >= STRING_ESCAPE:
        return _U8.pack(STRING_ESCAPE) + _U16.pack(length) + raw
    return _U8.pack(length) + raw


def _array_to_le_bytes(elements: array) -> bytes:
    if _NATIVE_IS_LITTLE:
        return elements.tobytes()
    swapped = array(elements.typecode, elements)
    swapped.byteswap()
    return swapped.tobytes()


def _encode_container(out: bytearray, container: Container) -> None:
    count = len(container.elements)
    if count > MAX_ELEMENTS:
        raise TGPHEncodeError(
            f"Container '{container.name}' has {count} elements, "
            f"more than the format allows"
        )

    out += encode_string(container.name)
    out += _U8.pack(container.element_type.value)
    out += _U32.pack(count)

    kind = container.element_type
    if kind is ElementType.U32 or kind is ElementType.FLOAT32:
        out += _array_to_le_bytes(container.elements)
    elif kind is ElementType.STRING:
        for element in container.elements:
            out += encode_string(element)
    else:
        raise AssertionError(f"unhandled element type {kind!r}")


def encode(store: Store) -> bytes:
    """Serialize ``store`` to TGPH bytes.

    Raises:
        TGPHEncodeError: If the header fields are malformed, or a string,
            container count or element count does not fit its length field.
    """
    if not isinstance(store.magic, (bytes, bytearray)) or len(store.magic) != 4:
        raise TGPHEncodeError(f"Magic must be 4 bytes, got {store.magic!r}")
    if isinstance(store.version, bool) or not isinstance(store.version, int) \
            or not 0 <= store.version <= 0xFF:
        raise TGPHEncodeError(f"Version must fit in one byte, got {store.version!r}")
    count = len(store.containers)
    if count > MAX_CONTAINERS:
        raise TGPHEncodeError(
            f"Store has {count} containers, at most {MAX_CONTAINERS} are allowed"
        )

    out = bytearray(store.magic)
    out += _U8.pack(store.version)
    out += _U16.pack(count)
    for container in store.containers:
        _encode_container(out, container)
    return bytes(out)


# =========================================
# Decoding
# =========================================

class _Reader:
    """Bounds-checked cursor over an immutable buffer."""

    def __init__(self, data: Buffer):
        self._view = memoryview(data).cast("B")
        self.offset = 0

    @property
    def remaining(self) -> int:
        return len(self._view) - self.offset

    def take(self, size: int, what: str) -> memoryview:
        if size > self.remaining:
            raise TruncatedDataError(what, self.offset, size, self.remaining)
        chunk = self._view[self.offset:self.offset + size]
        self.offset += size
        return chunk

    def u8(self, what: str) -> int:
        return self.take(1, what)[0]

    def u16(self, what: str) -> int:
        return _U16.unpack(self.take(2, what))[0]

    def u32(self, what: str) -> int:
        return _U32.unpack(self.take(4, what))[0]

    def string(self, what: str) -> str:
        start = self.offset
        length = self.u8(f"{what} length")
        if length == STRING_ESCAPE:
            length = self.u16(f"{what} extended length")
        raw = self.take(length, what)
        try:
            return str(raw, "utf-8")
        except UnicodeDecodeError as e:
            raise InvalidTextError(f"Invalid UTF-8 in {what}: {e.reason}", start) from e

    def numeric_array(self, typecode: str, count: int, what: str) -> array:
        raw = self.take(count * ELEMENT_WIDTH, what)
        elements = array(typecode)
        elements.frombytes(raw)
        if not _NATIVE_IS_LITTLE:
            elements.byteswap()
        return elements


def _decode_container(reader: _Reader) -> Container:
    name = reader.string("container name")
    tag_offset = reader.offset
    tag = reader.u8(f"element type of '{name}'")
    count = reader.u32(f"element count of '{name}'")

    try:
        kind = ElementType(tag)
    except ValueError:
        raise UnknownElementTypeError(tag, tag_offset) from None

    if kind is ElementType.U32:
        elements = reader.numeric_array(U32_TYPECODE, count, f"u32 elements of '{name}'")
    elif kind is ElementType.FLOAT32:
        elements = reader.numeric_array(FLOAT32_TYPECODE, count, f"f32 elements of '{name}'")
    elif kind is ElementType.STRING:
        elements = [reader.string(f"string element of '{name}'") for _ in range(count)]
    else:
        raise AssertionError(f"unhandled element type {kind!r}")

    return Container(name, kind, elements)


def decode(data: Buffer, entry_limit: int = DEFAULT_ENTRY_LIMIT) -> Store:
    """Rebuild a Store from TGPH bytes.

    The magic and version are taken from the data as-is; callers decide what
    a mismatch means. ``entry_limit`` is applied to the returned store but
    nothing is evicted until the next append.

    Raises:
        TruncatedDataError: If the data ends mid-field.
        UnknownElementTypeError: If a container has an unknown type tag.
        InvalidTextError: If a name or string element is not valid UTF-8.
        TGPHFormatError: If bytes remain after the last container.
    """
    reader = _Reader(data)
    magic = bytes(reader.take(4, "magic"))
    version = reader.u8("version")
    count = reader.u16("container count")

    store = Store(entry_limit=entry_limit, magic=magic, version=version)
    for _ in range(count):
        # Appended directly so files with repeated names still round-trip.
        store.containers.append(_decode_container(reader))

    if reader.remaining:
        raise TGPHFormatError(
            f"{reader.remaining} trailing bytes after the last container",
            reader.offset,
        )
    return store
