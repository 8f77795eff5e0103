# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Binary Canonical Serialization (BCS) for smove artifacts.

Every artifact smove produces (encoded script arguments, module bundles and script
transactions) uses BCS: integers are fixed-width little-endian, and the length of
every byte string, string and sequence is prefixed as a ULEB128 integer. Composite
records are the plain concatenation of their fields.

Learn more at https://github.com/diem/bcs

Examples:
    Writing a record::

        ser = Serializer()
        ser.to_bytes(b"\x01\x02")
        ser.sequence([1, 2], Serializer.u64)
        data = ser.output()

    Reading it back::

        der = Deserializer(data)
        blob = der.to_bytes()
        values = der.sequence(Deserializer.u64)
"""

from __future__ import annotations

import io
import typing
import unittest
from typing import List

from typing_extensions import Protocol

from .errors import DecodeError, ParseError

MAX_U8 = 2**8 - 1
MAX_U16 = 2**16 - 1
MAX_U32 = 2**32 - 1
MAX_U64 = 2**64 - 1
MAX_U128 = 2**128 - 1
MAX_U256 = 2**256 - 1


class Deserializable(Protocol):
    """Objects that can be read from a BCS byte stream."""

    @classmethod
    def from_bytes(cls, indata: bytes) -> Deserializable:
        """Decode an instance, requiring that the whole input is consumed.

        Raises:
            DecodeError: If the data is truncated, malformed or has trailing bytes.
        """
        der = Deserializer(indata)
        value = der.struct(cls)
        if der.remaining() != 0:
            raise DecodeError(f"{der.remaining()} unexpected trailing bytes")
        return value

    @staticmethod
    def deserialize(deserializer: Deserializer) -> Deserializable:
        ...


class Serializable(Protocol):
    """Objects that can be written to a BCS byte stream."""

    def to_bytes(self) -> bytes:
        ser = Serializer()
        ser.struct(self)
        return ser.output()

    def serialize(self, serializer: Serializer):
        ...


class Deserializer:
    """Reads BCS values from a byte buffer, tracking the current position.

    Attributes:
        _input: Stream over the input data.
        _length: Total length of the input data.
    """

    _input: io.BytesIO
    _length: int

    def __init__(self, data: bytes):
        self._length = len(data)
        self._input = io.BytesIO(data)

    def remaining(self) -> int:
        return self._length - self._input.tell()

    def position(self) -> int:
        return self._input.tell()

    def bool(self) -> bool:
        value = self._read_int(1)
        if value == 0:
            return False
        elif value == 1:
            return True
        raise DecodeError(f"Unexpected boolean value: {value}")

    def to_bytes(self) -> bytes:
        """Read a ULEB128 length-prefixed byte string."""
        return self._read(self.uleb128())

    def fixed_bytes(self, length: int) -> bytes:
        return self._read(length)

    def sequence(
        self,
        value_decoder: typing.Callable[[Deserializer], typing.Any],
    ) -> List[typing.Any]:
        """Read a ULEB128 element count followed by that many elements."""
        length = self.uleb128()
        values: List = []
        while len(values) < length:
            values.append(value_decoder(self))
        return values

    def str(self) -> str:
        try:
            return self.to_bytes().decode()
        except UnicodeDecodeError as e:
            raise DecodeError(f"Invalid UTF-8 string: {e}") from e

    def struct(self, struct: typing.Any) -> typing.Any:
        return struct.deserialize(self)

    def u8(self) -> int:
        return self._read_int(1)

    def u16(self) -> int:
        return self._read_int(2)

    def u32(self) -> int:
        return self._read_int(4)

    def u64(self) -> int:
        return self._read_int(8)

    def u128(self) -> int:
        return self._read_int(16)

    def u256(self) -> int:
        return self._read_int(32)

    def uleb128(self) -> int:
        """Read a ULEB128 integer, which must fit into a u32."""
        value = 0
        shift = 0

        while value <= MAX_U32:
            byte = self._read_int(1)
            value |= (byte & 0x7F) << shift
            if byte & 0x80 == 0:
                break
            shift += 7

        if value > MAX_U32:
            raise DecodeError("Unexpectedly large uleb128 value")

        return value

    def _read(self, length: int) -> bytes:
        value = self._input.read(length)
        if value is None or len(value) < length:
            actual_length = 0 if value is None else len(value)
            raise DecodeError(
                f"Unexpected end of input. Requested: {length}, found: {actual_length}"
            )
        return value

    def _read_int(self, length: int) -> int:
        return int.from_bytes(self._read(length), byteorder="little", signed=False)


class Serializer:
    """Accumulates BCS encoded values in an in-memory buffer.

    Examples:
        Encoding a vector<u8> argument::

            ser = Serializer()
            ser.sequence([1, 2, 3], Serializer.u8)
            ser.output()  # b"\\x03\\x01\\x02\\x03"
    """

    _output: io.BytesIO

    def __init__(self):
        self._output = io.BytesIO()

    def output(self) -> bytes:
        return self._output.getvalue()

    def bool(self, value: bool):
        self._write_int(int(value), 1)

    def to_bytes(self, value: bytes):
        """Write a byte string prefixed with its ULEB128 length."""
        self.uleb128(len(value))
        self._output.write(value)

    def fixed_bytes(self, value: bytes):
        """Write raw bytes without a length prefix."""
        self._output.write(value)

    @staticmethod
    def sequence_serializer(
        value_encoder: typing.Callable[[Serializer, typing.Any], None],
    ):
        return lambda self, values: self.sequence(values, value_encoder)

    def sequence(
        self,
        values: typing.Sequence[typing.Any],
        value_encoder: typing.Callable[[Serializer, typing.Any], None],
    ):
        self.uleb128(len(values))
        for value in values:
            value_encoder(self, value)

    def str(self, value: str):
        try:
            data = value.encode()
        except UnicodeEncodeError as e:
            raise ParseError(f"String is not valid Unicode: {e}") from e
        self.to_bytes(data)

    def struct(self, value: typing.Any):
        value.serialize(self)

    def u8(self, value: int):
        self._write_uint(value, 1, MAX_U8, "u8")

    def u16(self, value: int):
        self._write_uint(value, 2, MAX_U16, "u16")

    def u32(self, value: int):
        self._write_uint(value, 4, MAX_U32, "u32")

    def u64(self, value: int):
        self._write_uint(value, 8, MAX_U64, "u64")

    def u128(self, value: int):
        self._write_uint(value, 16, MAX_U128, "u128")

    def u256(self, value: int):
        self._write_uint(value, 32, MAX_U256, "u256")

    def uleb128(self, value: int):
        """Write a ULEB128 integer: 7 bits per byte, high bit set on all but the last."""
        if value < 0 or value > MAX_U32:
            raise ParseError(f"Cannot encode {value} into uleb128")

        while value >= 0x80:
            # Write 7 (lowest) bits of data and set the 8th bit to 1.
            self._write_int((value & 0x7F) | 0x80, 1)
            value >>= 7

        self._write_int(value & 0x7F, 1)

    def _write_uint(self, value: int, length: int, max_value: int, name: str):
        if value < 0 or value > max_value:
            raise ParseError(f"Cannot encode {value} into {name}")
        self._write_int(value, length)

    def _write_int(self, value: int, length: int):
        self._output.write(value.to_bytes(length, "little", signed=False))


def encoder(
    value: typing.Any, encoder: typing.Callable[[Serializer, typing.Any], typing.Any]
) -> bytes:
    """Encode a single value with `encoder` into a fresh buffer."""
    ser = Serializer()
    encoder(ser, value)
    return ser.output()


class Test(unittest.TestCase):
    def test_uleb128_boundaries(self):
        self.assertEqual(encoder(0, Serializer.uleb128), b"\x00")
        self.assertEqual(encoder(127, Serializer.uleb128), b"\x7f")
        self.assertEqual(encoder(128, Serializer.uleb128), b"\x80\x01")
        self.assertEqual(encoder(16384, Serializer.uleb128), b"\x80\x80\x01")
        self.assertEqual(Deserializer(b"\x80\x80\x01").uleb128(), 16384)

    def test_uleb128_overflow(self):
        with self.assertRaises(ParseError):
            encoder(MAX_U32 + 1, Serializer.uleb128)
        with self.assertRaises(DecodeError):
            Deserializer(b"\xff\xff\xff\xff\xff\x01").uleb128()

    def test_fixed_width_little_endian(self):
        self.assertEqual(encoder(42, Serializer.u64), b"\x2a" + b"\x00" * 7)
        self.assertEqual(encoder(0x0102, Serializer.u16), b"\x02\x01")
        self.assertEqual(len(encoder(MAX_U256, Serializer.u256)), 32)

    def test_integer_range(self):
        with self.assertRaises(ParseError):
            encoder(256, Serializer.u8)
        with self.assertRaises(ParseError):
            encoder(-1, Serializer.u64)

    def test_bytes_are_length_prefixed(self):
        self.assertEqual(encoder(b"abc", Serializer.to_bytes), b"\x03abc")
        self.assertEqual(encoder("hi", Serializer.str), b"\x02hi")

    def test_lone_surrogate_string(self):
        with self.assertRaises(ParseError):
            encoder("\ud800", Serializer.str)
        with self.assertRaises(ParseError):
            encoder("a\udfffb", Serializer.str)

    def test_sequence(self):
        out = encoder([True, False], Serializer.sequence_serializer(Serializer.bool))
        self.assertEqual(out, b"\x02\x01\x00")
        self.assertEqual(Deserializer(out).sequence(Deserializer.bool), [True, False])

    def test_bool_error(self):
        with self.assertRaises(DecodeError):
            Deserializer(b"\x20").bool()

    def test_truncated_input(self):
        der = Deserializer(b"\x05ab")
        with self.assertRaises(DecodeError):
            der.to_bytes()


if __name__ == "__main__":
    unittest.main()
