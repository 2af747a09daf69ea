"""Unit tests for register descriptors."""

import struct

import pytest

from acn_gateway.core.errors import DataIntegrityError, EncodingError
from acn_gateway.protocol.codec import hex16_to_value, value_to_hex16
from acn_gateway.protocol.registers import CompositeRegister, ObjectRegister, Register, RegisterKind


def words(*values: int) -> bytes:
    return struct.pack(f">{len(values)}H", *values)


def make_block(as_list: bool = False) -> CompositeRegister:
    """Three contiguous registers starting at 0x0010."""
    return CompositeRegister(
        "Block",
        0x0010,
        [
            ("a", Register("A", 0x0010)),
            ("b", Register("B", 0x0011, formatter=value_to_hex16, unformatter=hex16_to_value)),
            ("c", Register("C", 0x0012)),
        ],
        as_list=as_list,
    )


class TestRegister:
    """Tests for scalar registers."""

    def test_defaults(self):
        """A scalar spans one word and starts at zero."""
        register = Register("Test", 0x0005)

        assert register.kind == RegisterKind.SCALAR
        assert register.length == 1
        assert register.byte_length == 2
        assert register.value == 0
        assert register.writable is True

    def test_from_buffer_big_endian(self):
        """Register words are big-endian."""
        register = Register("Test", 0)
        register.from_buffer(b"\x12\x34")

        assert register.value == 0x1234

    def test_from_buffer_wrong_length(self):
        """A response of the wrong size is a data integrity error."""
        register = Register("Test", 0)

        with pytest.raises(DataIntegrityError):
            register.from_buffer(b"\x12")
        with pytest.raises(DataIntegrityError):
            register.from_buffer(b"\x12\x34\x56\x78")

    def test_to_buffer(self):
        """to_buffer emits the raw value as one big-endian word."""
        register = Register("Test", 0, value=0xBEEF)

        assert register.to_buffer() == b"\xbe\xef"

    def test_format_without_formatter(self):
        """Without a formatter the raw value is returned."""
        register = Register("Test", 0, value=42)

        assert register.format() == 42

    def test_format_and_unformat(self):
        """format/unformat go through the formatter pair."""
        register = Register("Test", 0, formatter=value_to_hex16, unformatter=hex16_to_value)
        register.set(0x00AB)

        assert register.format() == "0x00AB"
        register.unformat("0x1234")
        assert register.value == 0x1234

    def test_unformat_rejects_out_of_range(self):
        """Values that do not fit in 16 bits are rejected."""
        register = Register("Test", 0)

        with pytest.raises(EncodingError):
            register.unformat(0x10000)
        with pytest.raises(EncodingError):
            register.unformat("12")
        assert register.value == 0


class TestCompositeRegister:
    """Tests for composite registers."""

    def test_length_from_children(self):
        """Length is the number of child words."""
        block = make_block()

        assert block.kind == RegisterKind.COMPOSITE
        assert block.length == 3
        assert block.byte_length == 6

    def test_children_must_be_contiguous(self):
        """A gap between children is a layout error."""
        with pytest.raises(ValueError):
            CompositeRegister("Gap", 0, [("a", Register("A", 0)), ("b", Register("B", 2))])

    def test_from_buffer_sets_children(self):
        """One transfer updates every child, in address order."""
        block = make_block()
        block.from_buffer(words(1, 0x00FF, 3))

        assert block.value == [1, 0x00FF, 3]
        assert block.format() == {"a": 1, "b": "0x00FF", "c": 3}

    def test_from_buffer_wrong_length(self):
        """The buffer must hold exactly length words."""
        block = make_block()

        with pytest.raises(DataIntegrityError):
            block.from_buffer(words(1, 2))

    def test_format_as_list(self):
        """List composites format as a list."""
        block = make_block(as_list=True)
        block.from_buffer(words(1, 2, 3))

        assert block.format() == [1, "0x0002", 3]

    def test_round_trip(self):
        """unformat(format()) then to_buffer reproduces the bytes read."""
        block = make_block()
        raw = words(7, 0xABCD, 9)
        block.from_buffer(raw)

        block.unformat(block.format())

        assert block.to_buffer() == raw

    def test_unformat_missing_field(self):
        """Every field must be present."""
        block = make_block()

        with pytest.raises(EncodingError):
            block.unformat({"a": 1, "b": "0x0002"})

    def test_unformat_is_all_or_nothing(self):
        """A bad field leaves all children unchanged."""
        block = make_block()
        block.from_buffer(words(1, 2, 3))

        with pytest.raises(EncodingError):
            block.unformat({"a": 10, "b": "0x0020", "c": 0x10000})

        assert block.value == [1, 2, 3]

    def test_unformat_list_length(self):
        """List composites need one item per child."""
        block = make_block(as_list=True)

        with pytest.raises(EncodingError):
            block.unformat([1, 2])


class TestObjectRegister:
    """Tests for object registers."""

    def test_decodes_with_strategy(self):
        """from_buffer stores the raw bytes and the decoded value."""
        register = ObjectRegister("Obj", 3, decoder=lambda b: {"len": len(b)})
        register.from_buffer(b"\x01\x02\x03")

        assert register.kind == RegisterKind.OBJECT
        assert register.raw == b"\x01\x02\x03"
        assert register.format() == {"len": 3}

    def test_fixed_size(self):
        """A fixed size object rejects other lengths."""
        register = ObjectRegister("Obj", 2, decoder=bytes, size=6)

        with pytest.raises(DataIntegrityError):
            register.from_buffer(bytes(5))

    def test_min_size(self):
        """A variable object rejects buffers below its minimum."""
        register = ObjectRegister("Obj", 5, decoder=bytes, min_size=18)

        with pytest.raises(DataIntegrityError):
            register.from_buffer(bytes(17))
        register.from_buffer(bytes(20))
        assert register.raw == bytes(20)

    def test_read_only_without_encoder(self):
        """Objects without an encoder cannot be written."""
        register = ObjectRegister("Obj", 3, decoder=bytes)

        assert register.writable is False
        with pytest.raises(EncodingError):
            register.to_buffer()
        with pytest.raises(EncodingError):
            register.unformat({})

    def test_writable_with_encoder(self):
        """An encoder makes the object writable."""
        register = ObjectRegister("Obj", 1, decoder=list, encoder=bytes)

        register.unformat([1, 2, 3])

        assert register.writable is True
        assert register.to_buffer() == b"\x01\x02\x03"
