"""
TGPH - Column Store

In-memory collection of named, typed sample columns with FIFO retention.

Columns are created lazily on the first append under a new name and keep
first-seen order, which is also their order on disk. Every append trims its
column back to the store's entry limit by dropping the oldest samples;
replace() swaps in a whole sequence and never trims.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

from .elements import ElementSequence, ElementType, check_u32
from .errors import ContainerTypeError

MAGIC = b"TGPH"
FORMAT_VERSION = 1
DEFAULT_ENTRY_LIMIT = 1000


@dataclass
class Container:
    """One named time series of a single element kind."""
    name: str
    element_type: ElementType
    elements: Optional[ElementSequence] = None

    def __post_init__(self):
        self.element_type = ElementType(self.element_type)
        self.elements = self.element_type.adopt(self.elements)

    def __len__(self) -> int:
        return len(self.elements)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Container):
            return NotImplemented
        if (self.name, self.element_type) != (other.name, other.element_type):
            return False
        if self.element_type is ElementType.STRING:
            return self.elements == other.elements
        # Numeric columns compare by bit pattern so NaN samples match
        return self.elements.tobytes() == other.elements.tobytes()

    def values(self) -> List[Any]:
        """Return a plain list copy of the elements, oldest first."""
        return list(self.elements)

    def push(self, value: Any) -> None:
        """Append one sample of this container's kind."""
        self._check_kind(value)
        if self.element_type is ElementType.U32:
            value = check_u32(value)
        self.elements.append(value)

    def evict(self, limit: int) -> None:
        """Drop the oldest samples until at most ``limit`` remain."""
        excess = len(self.elements) - limit
        if excess > 0:
            del self.elements[:excess]

    def assign(self, values: Sequence[Any]) -> None:
        """Overwrite every element with ``values``."""
        for value in values:
            self._check_kind(value)
        self.elements = self.element_type.new_sequence(values)

    def _check_kind(self, value: Any) -> None:
        kind = ElementType.of(value)
        if kind is not self.element_type:
            raise ContainerTypeError(
                f"Container '{self.name}' holds {self.element_type.name} "
                f"elements, got {kind.name} value {value!r}"
            )


class Store:
    """Ordered set of containers plus the format header fields."""

    def __init__(
        self,
        entry_limit: int = DEFAULT_ENTRY_LIMIT,
        magic: bytes = MAGIC,
        version: int = FORMAT_VERSION,
    ):
        self.magic = magic
        self.version = version
        self.containers: List[Container] = []
        self.entry_limit = entry_limit

    @property
    def entry_limit(self) -> int:
        return self._entry_limit

    @entry_limit.setter
    def entry_limit(self, value: int) -> None:
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ValueError(f"entry_limit must be a positive integer, got {value!r}")
        self._entry_limit = value

    # =========================================
    # Writing
    # =========================================

    def append(self, value: Union[int, float, str], name: str) -> None:
        """Append a sample to the named column, creating it if needed.

        The column is trimmed to ``entry_limit`` afterwards, oldest first.
        """
        container = self.get(name)
        if container is None:
            # Only keep the new column once the value has been accepted
            container = Container(name, ElementType.of(value))
            container.push(value)
            self.add_container(container)
        else:
            container.push(value)
        container.evict(self._entry_limit)

    def replace(
        self,
        values: Sequence[Union[int, float, str]],
        name: str,
        element_type: Optional[ElementType] = None,
    ) -> None:
        """Overwrite the named column with ``values``.

        No eviction is applied: the column ends up exactly as long as
        ``values``. ``element_type`` is only needed to create a column from an
        empty sequence.
        """
        values = list(values)
        container = self.get(name)
        if container is None:
            if values:
                element_type = ElementType.of(values[0])
            elif element_type is None:
                raise TypeError(
                    f"Cannot infer element type for new container '{name}' "
                    "from an empty sequence"
                )
            container = Container(name, element_type)
            container.assign(values)
            self.add_container(container)
            return
        if element_type is not None and ElementType(element_type) is not container.element_type:
            raise ContainerTypeError(
                f"Container '{name}' holds {container.element_type.name} "
                f"elements, not {ElementType(element_type).name}"
            )
        container.assign(values)

    def add_container(self, container: Container) -> Container:
        """Add a container after all existing ones."""
        if self.get(container.name) is not None:
            raise ValueError(f"Container '{container.name}' already exists")
        self.containers.append(container)
        return container

    # =========================================
    # Reading
    # =========================================

    def get(self, name: str) -> Optional[Container]:
        """Return the container with exactly this name, or None."""
        for container in self.containers:
            if container.name == name:
                return container
        return None

    def container_count(self) -> int:
        return len(self.containers)

    def sample_count(self) -> int:
        """Number of samples in the first column.

        The sampling loop keeps columns in lockstep, so this is the number of
        snapshots recorded so far.
        """
        if not self.containers:
            return 0
        return len(self.containers[0])

    def names(self) -> List[str]:
        return [c.name for c in self.containers]

    def to_dict(self) -> Dict[str, List[Any]]:
        """Column name to a list copy of its values."""
        return {c.name: c.values() for c in self.containers}

    def to_bytes(self) -> bytes:
        """Serialize this store. See :func:`tgph.codec.encode`."""
        from .codec import encode
        return encode(self)

    @classmethod
    def from_bytes(cls, data: bytes, entry_limit: int = DEFAULT_ENTRY_LIMIT) -> "Store":
        """Rebuild a store. See :func:`tgph.codec.decode`."""
        from .codec import decode
        return decode(data, entry_limit=entry_limit)

    def __len__(self) -> int:
        return len(self.containers)

    def __iter__(self) -> Iterator[Container]:
        return iter(self.containers)

    def __contains__(self, name: object) -> bool:
        return any(c.name == name for c in self.containers)

    def __getitem__(self, key: Union[int, str]) -> Container:
        if isinstance(key, str):
            container = self.get(key)
            if container is None:
                raise KeyError(key)
            return container
        return self.containers[key]

    def __eq__(self, other: object) -> bool:
        # entry_limit is not persisted and takes no part in equality.
        if not isinstance(other, Store):
            return NotImplemented
        return (
            self.magic == other.magic
            and self.version == other.version
            and self.containers == other.containers
        )

    def __repr__(self) -> str:
        return (
            f"Store(magic={self.magic!r}, version={self.version}, "
            f"containers={self.names()!r}, entry_limit={self._entry_limit})"
        )
