"""Register descriptors: named, typed views of device memory.

A descriptor is built once from the static register map and then used as a
long-lived value cell: reads store the raw value into it, writes serialize the
raw value it holds. Three variants exist:

- ``Register``: a single 16-bit holding register.
- ``CompositeRegister``: a contiguous block of holding registers read and
  written as one transfer, aggregating named child registers.
- ``ObjectRegister``: a device object of variable shape read with
  READ_OBJECT and decoded by a strategy function.
"""

import struct
from collections.abc import Callable, Mapping, Sequence
from enum import Enum
from typing import Any

from acn_gateway.core.errors import DataIntegrityError, EncodingError
from acn_gateway.protocol.codec import check_uint16

Formatter = Callable[[int], Any]
Unformatter = Callable[[Any], int]


class RegisterKind(str, Enum):
    SCALAR = "scalar"
    COMPOSITE = "composite"
    OBJECT = "object"


class Register:
    """A single 16-bit holding register.

    Attributes:
        title: Human readable name
        address: Word address on the device
        length: Number of 16-bit words spanned
        value: Current raw value
        units: Optional unit label
        writable: Whether the host may write the register
    """

    kind = RegisterKind.SCALAR

    def __init__(
        self,
        title: str,
        address: int,
        formatter: Formatter | None = None,
        unformatter: Unformatter | None = None,
        units: str | None = None,
        writable: bool = True,
        value: int = 0,
    ):
        self.title = title
        self.address = address
        self.length = 1
        self.value = value
        self.units = units
        self.writable = writable
        self._formatter = formatter
        self._unformatter = unformatter

    def set(self, value: int) -> None:
        """Store a raw value read from the device."""
        self.value = value

    def format(self) -> Any:
        """Host-facing representation of the raw value."""
        if self._formatter is None:
            return self.value
        return self._formatter(self.value)

    def unformat(self, value: Any) -> int:
        """Convert a host value back into the raw value and store it.

        Raises:
            EncodingError: If the host value cannot be represented
        """
        raw = self._unformatter(value) if self._unformatter is not None else value
        self.value = check_uint16(raw)
        return self.value

    @property
    def byte_length(self) -> int:
        return self.length * 2

    def from_buffer(self, buffer: bytes) -> None:
        """Decode the register from its big-endian wire form."""
        if len(buffer) != self.byte_length:
            raise DataIntegrityError(
                f"{self.title}: expected {self.byte_length} bytes, got {len(buffer)}"
            )
        self.set(struct.unpack(">H", buffer)[0])

    def to_buffer(self) -> bytes:
        return struct.pack(">H", self.value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(title={self.title!r}, address=0x{self.address:04X}, length={self.length})"


class CompositeRegister(Register):
    """A block of contiguous holding registers handled as one transfer.

    Children are given as ``(field, register)`` pairs in address order and
    must exactly tile ``[address, address + length)``.
    """

    kind = RegisterKind.COMPOSITE

    def __init__(
        self,
        title: str,
        address: int,
        fields: Sequence[tuple[str, Register]],
        as_list: bool = False,
        writable: bool = True,
    ):
        super().__init__(title, address, writable=writable)
        self.fields = list(fields)
        self.as_list = as_list

        expected = address
        for name, child in self.fields:
            if child.address != expected:
                raise ValueError(f"{title}: field {name} at 0x{child.address:04X}, expected 0x{expected:04X}")
            expected += child.length
        self.length = expected - address

    @property
    def children(self) -> list[Register]:
        return [child for _, child in self.fields]

    @property
    def value(self) -> list[int]:
        return [child.value for child in self.children]

    @value.setter
    def value(self, _value: Any) -> None:
        # Raw values live in the children.
        pass

    def set(self, value: Sequence[int]) -> None:
        if len(value) != len(self.fields):
            raise DataIntegrityError(f"{self.title}: expected {len(self.fields)} values, got {len(value)}")
        for child, raw in zip(self.children, value):
            child.set(raw)

    def from_buffer(self, buffer: bytes) -> None:
        """Decode all children from exactly ``length`` big-endian words."""
        if len(buffer) != self.byte_length:
            raise DataIntegrityError(
                f"{self.title}: expected {self.byte_length} bytes, got {len(buffer)}"
            )
        offset = 0
        for child in self.children:
            child.from_buffer(buffer[offset : offset + child.byte_length])
            offset += child.byte_length

    def to_buffer(self) -> bytes:
        return b"".join(child.to_buffer() for child in self.children)

    def format(self) -> dict[str, Any] | list[Any]:
        if self.as_list:
            return [child.format() for child in self.children]
        return {name: child.format() for name, child in self.fields}

    def unformat(self, value: Any) -> list[int]:
        """Validate the whole structure, then store it into the children.

        Nothing is stored unless every field encodes.
        """
        if self.as_list:
            if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Sequence):
                raise EncodingError(f"{self.title}: expected a list of {len(self.fields)} items")
            if len(value) != len(self.fields):
                raise EncodingError(f"{self.title}: expected {len(self.fields)} items, got {len(value)}")
            items = list(value)
        else:
            if not isinstance(value, Mapping):
                raise EncodingError(f"{self.title}: expected an object")
            missing = [name for name, _ in self.fields if name not in value]
            if missing:
                raise EncodingError(f"{self.title}: missing fields {', '.join(missing)}")
            items = [value[name] for name, _ in self.fields]

        previous = [child.value for child in self.children]
        try:
            for child, item in zip(self.children, items):
                child.unformat(item)
        except EncodingError:
            for child, raw in zip(self.children, previous):
                child.value = raw
            raise
        return self.value


class ObjectRegister(Register):
    """A device object of variable shape, addressed by object id.

    Args:
        decoder: Converts the object's bytes to the host value
        encoder: Converts a host value to bytes (None for read-only objects)
        size: Exact byte length, if fixed
        min_size: Minimum byte length, if variable
    """

    kind = RegisterKind.OBJECT

    def __init__(
        self,
        title: str,
        object_id: int,
        decoder: Callable[[bytes], Any],
        encoder: Callable[[Any], bytes] | None = None,
        size: int | None = None,
        min_size: int = 0,
    ):
        super().__init__(title, object_id, writable=encoder is not None)
        self.object_id = object_id
        self.size = size
        self.min_size = min_size
        self.raw = b""
        self._decoder = decoder
        self._encoder = encoder
        self._decoded: Any = None

    @property
    def value(self) -> Any:
        return self._decoded

    @value.setter
    def value(self, value: Any) -> None:
        self._decoded = value

    def set(self, value: Any) -> None:
        self._decoded = value

    def from_buffer(self, buffer: bytes) -> None:
        if self.size is not None and len(buffer) != self.size:
            raise DataIntegrityError(f"{self.title}: expected {self.size} bytes, got {len(buffer)}")
        if len(buffer) < self.min_size:
            raise DataIntegrityError(f"{self.title}: expected at least {self.min_size} bytes, got {len(buffer)}")
        self._decoded = self._decoder(bytes(buffer))
        self.raw = bytes(buffer)

    def to_buffer(self) -> bytes:
        if self._encoder is None:
            raise EncodingError(f"{self.title} is read-only")
        return self._encoder(self._decoded)

    def format(self) -> Any:
        return self._decoded

    def unformat(self, value: Any) -> Any:
        if self._encoder is None:
            raise EncodingError(f"{self.title} is read-only")
        self._encoder(value)  # validate
        self._decoded = value
        return value

    def __repr__(self) -> str:
        return f"ObjectRegister(title={self.title!r}, object_id={self.object_id})"
