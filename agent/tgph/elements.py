"""
TGPH - Element Arrays

The three element kinds a container can hold, and the typed sequences
backing each of them. Numeric kinds live in ``array.array`` so the 32-bit
range and float32 rounding are enforced by the C type itself.
"""

from array import array
from enum import IntEnum
from typing import Any, Iterable, List, Optional, Union

# array("I") is 4 bytes on every mainstream platform; fall back to "L" where
# it is not so the wire width stays 32 bits.
U32_TYPECODE = "I" if array("I").itemsize == 4 else "L"
FLOAT32_TYPECODE = "f"

U32_MAX = 0xFFFFFFFF

ElementSequence = Union[array, List[str]]


class ElementType(IntEnum):
    """Element kind, valued by its wire tag."""
    U32 = 1
    FLOAT32 = 2
    STRING = 3

    @classmethod
    def of(cls, value: Any) -> "ElementType":
        """Return the element kind a Python scalar maps to."""
        # bool is an int subclass; a flag is not a counter.
        if isinstance(value, bool):
            raise TypeError("bool samples are not supported, use an int")
        if isinstance(value, int):
            return cls.U32
        if isinstance(value, float):
            return cls.FLOAT32
        if isinstance(value, str):
            return cls.STRING
        raise TypeError(f"Unsupported sample type: {type(value).__name__}")

    @property
    def typecode(self) -> Optional[str]:
        """``array`` typecode for numeric kinds, None for strings."""
        if self is ElementType.U32:
            return U32_TYPECODE
        if self is ElementType.FLOAT32:
            return FLOAT32_TYPECODE
        return None

    def new_sequence(self, values: Iterable[Any] = ()) -> ElementSequence:
        """Create a fresh backing sequence for this kind holding ``values``."""
        if self is ElementType.U32:
            return array(U32_TYPECODE, (check_u32(v) for v in values))
        elif self is ElementType.FLOAT32:
            return array(FLOAT32_TYPECODE, values)
        elif self is ElementType.STRING:
            strings = list(values)
            for s in strings:
                if not isinstance(s, str):
                    raise TypeError(f"String column got {type(s).__name__} value {s!r}")
            return strings
        raise AssertionError(f"unhandled element type {self!r}")

    def adopt(self, values: Optional[Iterable[Any]]) -> ElementSequence:
        """Use ``values`` as backing storage if it already has this kind's layout.

        Numeric arrays of the right typecode are kept as-is so raw float bits
        survive untouched; anything else is copied through new_sequence().
        """
        if values is None:
            return self.new_sequence()
        if self.typecode is not None and isinstance(values, array) and values.typecode == self.typecode:
            return values
        return self.new_sequence(values)


def check_u32(value: int) -> int:
    """Reject integers the 32-bit unsigned column cannot hold."""
    if not 0 <= value <= U32_MAX:
        raise ValueError(f"Value {value} out of range for a u32 column")
    return value
