# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Hex encoded byte strings.

Byte arguments (`hex` and `raw` script arguments), addresses and call hashes are
written by users as hex, with or without a leading ``0x``.
"""

from __future__ import annotations

import binascii
import unittest

from .bcs import Deserializer, Serializer
from .errors import DecodeError


def decode_hex(value: str) -> bytes:
    """Decode a hex string, stripping an optional ``0x`` prefix.

    Raises:
        DecodeError: If the remaining digits have odd length or are not hex.
    """
    digits = value[2:] if value.startswith("0x") else value
    try:
        return binascii.unhexlify(digits)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(
            f"decode hex-encoded string({value!r}) failed, caused by error: {e}"
        ) from e


class HexEncodedBytes:
    """Bytes that are rendered as ``0x``-prefixed hex."""

    value: bytes

    def __init__(self, value: bytes):
        self.value = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HexEncodedBytes):
            return NotImplemented
        return self.value == other.value

    def __str__(self):
        return f"0x{self.value.hex()}"

    def __repr__(self):
        return self.__str__()

    @staticmethod
    def from_str(value: str) -> HexEncodedBytes:
        return HexEncodedBytes(decode_hex(value))

    def inner(self) -> bytes:
        return self.value

    @staticmethod
    def deserialize(deserializer: Deserializer) -> HexEncodedBytes:
        return HexEncodedBytes(deserializer.to_bytes())

    def serialize(self, serializer: Serializer):
        serializer.to_bytes(self.value)


class Test(unittest.TestCase):
    def test_decode_with_and_without_prefix(self):
        self.assertEqual(decode_hex("0xcafe"), b"\xca\xfe")
        self.assertEqual(decode_hex("CAFE"), b"\xca\xfe")
        self.assertEqual(decode_hex("0x"), b"")

    def test_decode_errors(self):
        with self.assertRaises(DecodeError):
            decode_hex("0xabc")
        with self.assertRaises(DecodeError):
            decode_hex("zz")

    def test_display_round_trip(self):
        value = HexEncodedBytes.from_str("0x00ff10")
        self.assertEqual(str(value), "0x00ff10")
        self.assertEqual(HexEncodedBytes.from_str(str(value)), value)


if __name__ == "__main__":
    unittest.main()
