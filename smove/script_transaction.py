# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Script transactions.

A script transaction bundles compiled script bytecode with the encoded call
arguments and type arguments. Its BCS encoding is the content of a ``.mvt`` file
and the payload of the execute-script gas estimate::

    struct ScriptTransaction {
        bytecode: vector<u8>,
        args: vector<vector<u8>>,
        type_args: vector<TypeTag>,
    }
"""

from __future__ import annotations

import hashlib
import unittest
from typing import List

from .bcs import Deserializable, Deserializer, Serializable, Serializer
from .bytecode import Test as BytecodeTest
from .bytecode import verify_script_integrity
from .errors import BytecodeIntegrityError, DecodeError
from .hex_bytes import HexEncodedBytes
from .script_args import ScriptFunctionArguments
from .type_tag import TypeTag


class ScriptTransaction(Deserializable, Serializable):
    """Script bytecode with its positional arguments and type arguments."""

    bytecode: bytes
    args: List[bytes]
    type_args: List[TypeTag]

    def __init__(self, bytecode: bytes, args: List[bytes], type_args: List[TypeTag]):
        self.bytecode = bytecode
        self.args = args
        self.type_args = type_args

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ScriptTransaction):
            return NotImplemented
        return (
            self.bytecode == other.bytecode
            and self.args == other.args
            and self.type_args == other.type_args
        )

    def __str__(self):
        type_args = ", ".join(str(type_arg) for type_arg in self.type_args)
        return (
            f"ScriptTransaction(bytecode: {len(self.bytecode)} bytes, "
            f"args: {len(self.args)}, type_args: [{type_args}])"
        )

    @staticmethod
    def create(
        bytecode: bytes, arguments: ScriptFunctionArguments
    ) -> ScriptTransaction:
        """Build a transaction for a compiled script.

        The bytecode must be a well-formed script binary. Whether the arguments
        fit the script's parameters is checked by the chain when it executes.

        Raises:
            BytecodeIntegrityError: If the bytecode is not a compiled script.
            TypeConversionError: If a type argument has no type tag form.
        """
        verify_script_integrity(bytecode)
        return ScriptTransaction(bytecode, arguments.args(), arguments.type_args())

    def encode(self) -> bytes:
        return self.to_bytes()

    @staticmethod
    def deserialize(deserializer: Deserializer) -> ScriptTransaction:
        bytecode = deserializer.to_bytes()
        args = deserializer.sequence(Deserializer.to_bytes)
        type_args = deserializer.sequence(TypeTag.deserialize)
        return ScriptTransaction(bytecode, args, type_args)

    def serialize(self, serializer: Serializer):
        serializer.to_bytes(self.bytecode)
        serializer.sequence(self.args, Serializer.to_bytes)
        serializer.sequence(self.type_args, Serializer.struct)


def call_hash(script_transaction: bytes) -> HexEncodedBytes:
    """BLAKE2s-256 digest of an encoded script transaction."""
    return HexEncodedBytes(hashlib.blake2s(script_transaction, digest_size=32).digest())


class Test(unittest.TestCase):
    SCRIPT = BytecodeTest.binary([], b"\x00\x00\x01\x02")

    def test_encoding(self):
        tx = ScriptTransaction(
            b"\xaa\xbb", [b"\x2a", b""], [TypeTag(TypeTag.U8), TypeTag(TypeTag.BOOL)]
        )
        self.assertEqual(
            tx.encode(),
            b"\x02\xaa\xbb" + b"\x02\x01\x2a\x00" + b"\x02\x01\x00",
        )
        self.assertEqual(ScriptTransaction.from_bytes(tx.encode()), tx)

    def test_create(self):
        arguments = ScriptFunctionArguments.from_strs(
            ["vector<u8>"], ["u64:42", "bool:[true,false]"]
        )
        tx = ScriptTransaction.create(self.SCRIPT, arguments)
        self.assertEqual(tx.bytecode, self.SCRIPT)
        self.assertEqual(tx.args, [(42).to_bytes(8, "little"), b"\x02\x01\x00"])
        self.assertEqual(tx.type_args, [TypeTag.vector(TypeTag(TypeTag.U8))])

    def test_create_is_deterministic(self):
        arguments = ScriptFunctionArguments.from_strs(["u8"], ["address:0x1"])
        first = ScriptTransaction.create(self.SCRIPT, arguments).encode()
        second = ScriptTransaction.create(self.SCRIPT, arguments).encode()
        self.assertEqual(first, second)

    def test_create_rejects_bad_bytecode(self):
        arguments = ScriptFunctionArguments.from_strs([], [])
        with self.assertRaises(BytecodeIntegrityError):
            ScriptTransaction.create(b"\x00\x01", arguments)

    def test_trailing_bytes(self):
        tx = ScriptTransaction(b"", [], [])
        with self.assertRaises(DecodeError):
            ScriptTransaction.from_bytes(tx.encode() + b"\x00")

    def test_call_hash(self):
        self.assertEqual(
            str(call_hash(b"")),
            "0x69217a3079908094e11121d042354a7c1f55b6482ca1a51e1b250dfd1ed0eef9",
        )


if __name__ == "__main__":
    unittest.main()
