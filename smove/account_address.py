# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Account addresses for Move on Substrate.

An address is a 32-byte value. Users write it in one of two textual forms:

- hex, e.g. ``0x1``, ``0xd43593c7...a27d`` or the bare 64-digit form
  ``d43593c7...a27d``. Prefixed forms may be shortened; they are left-padded with
  zeroes. Bare forms must carry all 64 digits.
- SS58, the checksummed base58 format Substrate uses for account ids, e.g.
  ``5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY``. The 32-byte account id
  carried by an SS58 string is the Move address.

Examples:
    Both forms name the same account::

        alice = parse_address("5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY")
        same = parse_address(
            "0xd43593c715fdd31c61141abd04a99fd6822c8558854ccde39a5684e7a56da27d"
        )
        assert alice == same
"""

from __future__ import annotations

import hashlib
import unittest

import base58

from .bcs import Deserializer, Serializer
from .errors import AddressFormatError

SS58_CHECKSUM_PREFIX = b"SS58PRE"
SS58_CHECKSUM_LENGTH = 2
# Generic Substrate network prefix.
DEFAULT_SS58_PREFIX = 42


class AccountAddress:
    """A 32-byte Move account address.

    Attributes:
        address: The raw address bytes.
        LENGTH: The byte length of every address (32).
    """

    address: bytes
    LENGTH: int = 32

    def __init__(self, address: bytes):
        if len(address) != AccountAddress.LENGTH:
            raise AddressFormatError(
                f"Expected address of length {AccountAddress.LENGTH}, got {len(address)}"
            )
        self.address = address

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AccountAddress):
            return NotImplemented
        return self.address == other.address

    def __lt__(self, other: AccountAddress) -> bool:
        return self.address < other.address

    def __hash__(self) -> int:
        return hash(self.address)

    def __str__(self):
        return f"0x{self.address.hex()}"

    def __repr__(self):
        return self.__str__()

    def short_str(self) -> str:
        """Hex form without leading zeroes, e.g. ``0x1``."""
        return f"0x{self.address.hex().lstrip('0') or '0'}"

    @staticmethod
    def from_hex(address: str) -> AccountAddress:
        """Parse a hex address.

        ``0x``-prefixed input may have 1 to 64 digits and is left-padded. Input
        without the prefix must have exactly 64 digits.

        Raises:
            AddressFormatError: If the string is not a valid hex address.
        """
        if address.startswith("0x"):
            digits = address[2:]
            if len(digits) < 1 or len(digits) > AccountAddress.LENGTH * 2:
                raise AddressFormatError(
                    f"Hex address {address!r} must have 1 to 64 digits after 0x"
                )
            digits = digits.rjust(AccountAddress.LENGTH * 2, "0")
        else:
            digits = address
            if len(digits) != AccountAddress.LENGTH * 2:
                raise AddressFormatError(
                    f"Hex address {address!r} without 0x must have exactly 64 digits"
                )

        try:
            return AccountAddress(bytes.fromhex(digits))
        except ValueError as e:
            raise AddressFormatError(f"Invalid hex address {address!r}: {e}") from e

    @staticmethod
    def from_ss58(address: str) -> AccountAddress:
        """Parse an SS58 encoded account id.

        Raises:
            AddressFormatError: If the string is not valid base58, has the wrong
                length or a bad checksum.
        """
        try:
            data = base58.b58decode(address)
        except ValueError as e:
            raise AddressFormatError(f"Invalid SS58 address {address!r}: {e}") from e

        if len(data) < 1 or data[0] > 127:
            raise AddressFormatError(f"Invalid SS58 prefix in {address!r}")
        # Prefixes 64..16383 use two bytes, flagged by the 0b01 top bits.
        prefix_length = 2 if data[0] & 0b0100_0000 else 1
        expected_length = prefix_length + AccountAddress.LENGTH + SS58_CHECKSUM_LENGTH
        if len(data) != expected_length:
            raise AddressFormatError(
                f"Invalid SS58 address length {len(data)} for {address!r}"
            )

        body, checksum = data[:-SS58_CHECKSUM_LENGTH], data[-SS58_CHECKSUM_LENGTH:]
        if ss58_checksum(body) != checksum:
            raise AddressFormatError(f"Invalid SS58 checksum for {address!r}")
        return AccountAddress(body[prefix_length:])

    def to_ss58(self, prefix: int = DEFAULT_SS58_PREFIX) -> str:
        if prefix < 64:
            ident = bytes([prefix])
        elif prefix < 16384:
            ident = bytes(
                [
                    ((prefix & 0b1111_1100) >> 2) | 0b0100_0000,
                    (prefix >> 8) | ((prefix & 0b0000_0011) << 6),
                ]
            )
        else:
            raise AddressFormatError(f"SS58 prefix {prefix} is out of range")

        body = ident + self.address
        return base58.b58encode(body + ss58_checksum(body)).decode()

    @staticmethod
    def deserialize(deserializer: Deserializer) -> AccountAddress:
        return AccountAddress(deserializer.fixed_bytes(AccountAddress.LENGTH))

    def serialize(self, serializer: Serializer):
        serializer.fixed_bytes(self.address)


def ss58_checksum(body: bytes) -> bytes:
    hasher = hashlib.blake2b(digest_size=64)
    hasher.update(SS58_CHECKSUM_PREFIX)
    hasher.update(body)
    return hasher.digest()[:SS58_CHECKSUM_LENGTH]


def parse_address(address: str) -> AccountAddress:
    """Parse an address given either in SS58 or in hex form.

    SS58 is tried first; hex is the fallback.

    Raises:
        AddressFormatError: If neither form parses. The message carries both
            failures.
    """
    try:
        return AccountAddress.from_ss58(address)
    except AddressFormatError as ss58_error:
        try:
            return AccountAddress.from_hex(address)
        except AddressFormatError as hex_error:
            raise AddressFormatError(
                f"{hex_error} (not an SS58 address either: {ss58_error})"
            ) from hex_error


class Test(unittest.TestCase):
    ALICE_SS58 = "5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY"
    ALICE_HEX = "0xd43593c715fdd31c61141abd04a99fd6822c8558854ccde39a5684e7a56da27d"

    def test_both_forms_are_the_same_account(self):
        self.assertEqual(parse_address(self.ALICE_SS58), parse_address(self.ALICE_HEX))
        self.assertEqual(str(parse_address(self.ALICE_SS58)), self.ALICE_HEX)

    def test_ss58_round_trip(self):
        alice = AccountAddress.from_hex(self.ALICE_HEX)
        self.assertEqual(alice.to_ss58(), self.ALICE_SS58)

    def test_ss58_bad_checksum(self):
        tampered = self.ALICE_SS58[:-1] + ("Z" if self.ALICE_SS58[-1] != "Z" else "Y")
        with self.assertRaises(AddressFormatError):
            AccountAddress.from_ss58(tampered)

    def test_short_hex(self):
        one = parse_address("0x1")
        self.assertEqual(one.address, b"\x00" * 31 + b"\x01")
        self.assertEqual(one.short_str(), "0x1")

    def test_bare_hex_must_be_full_length(self):
        self.assertEqual(
            parse_address(self.ALICE_HEX[2:]), parse_address(self.ALICE_HEX)
        )
        with self.assertRaises(AddressFormatError):
            parse_address("abc")

    def test_error_reports_both_forms(self):
        with self.assertRaises(AddressFormatError) as cm:
            parse_address("0xnothex")
        self.assertIn("SS58", str(cm.exception))

    def test_bcs_is_fixed_width(self):
        ser = Serializer()
        parse_address("0x1").serialize(ser)
        self.assertEqual(len(ser.output()), AccountAddress.LENGTH)


if __name__ == "__main__":
    unittest.main()
