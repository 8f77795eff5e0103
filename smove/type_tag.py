# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
On-chain type tags.

A type tag is the representation of a Move type that the chain accepts as a type
argument: the primitive types and vectors of them. References, unresolved generic
parameters and struct types are not representable; see `smove.move_type` for the
wider type signature model and its conversion into a `TypeTag`.

The BCS encoding is a ULEB128 variant index followed, for vectors, by the element
type tag.

Examples:
    Building and encoding ``vector<u8>``::

        tag = TypeTag.vector(TypeTag(TypeTag.U8))
        str(tag)        # "vector<u8>"
        tag.to_bytes()  # b"\\x06\\x01"
"""

from __future__ import annotations

import unittest
from typing import Optional, Tuple

from .bcs import Deserializable, Deserializer, Serializable, Serializer
from .errors import DecodeError


class TypeTag(Deserializable, Serializable):
    """A Move type tag.

    Attributes:
        variant: The BCS discriminator of the tag, one of the class constants.
        value: The element type for `VECTOR` tags, None otherwise.
    """

    BOOL: int = 0
    U8: int = 1
    U64: int = 2
    U128: int = 3
    ACCOUNT_ADDRESS: int = 4
    SIGNER: int = 5
    VECTOR: int = 6
    STRUCT: int = 7
    U16: int = 8
    U32: int = 9
    U256: int = 10

    NAMES = {
        BOOL: "bool",
        U8: "u8",
        U16: "u16",
        U32: "u32",
        U64: "u64",
        U128: "u128",
        U256: "u256",
        ACCOUNT_ADDRESS: "address",
        SIGNER: "signer",
    }

    variant: int
    value: Optional[TypeTag]

    def __init__(self, variant: int, value: Optional[TypeTag] = None):
        if variant == TypeTag.VECTOR:
            if value is None:
                raise ValueError("vector type tag requires an element type")
        elif variant not in TypeTag.NAMES:
            raise ValueError(f"unsupported type tag variant {variant}")
        self.variant = variant
        self.value = value

    @staticmethod
    def vector(element: TypeTag) -> TypeTag:
        return TypeTag(TypeTag.VECTOR, element)

    def unwrap(self) -> Tuple[int, int]:
        """Return the vector nesting depth and the innermost primitive variant."""
        depth = 0
        tag = self
        while tag.value is not None:
            depth += 1
            tag = tag.value
        return depth, tag.variant

    @staticmethod
    def nested(depth: int, variant: int) -> TypeTag:
        tag = TypeTag(variant)
        for _ in range(depth):
            tag = TypeTag.vector(tag)
        return tag

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TypeTag):
            return NotImplemented
        return self.unwrap() == other.unwrap()

    def __hash__(self) -> int:
        return hash(self.unwrap())

    def __str__(self):
        depth, variant = self.unwrap()
        return "vector<" * depth + TypeTag.NAMES[variant] + ">" * depth

    def __repr__(self):
        return self.__str__()

    @staticmethod
    def deserialize(deserializer: Deserializer) -> TypeTag:
        depth = 0
        variant = deserializer.uleb128()
        while variant == TypeTag.VECTOR:
            depth += 1
            variant = deserializer.uleb128()
        if variant == TypeTag.STRUCT:
            raise DecodeError("Struct type tags are not supported")
        elif variant not in TypeTag.NAMES:
            raise DecodeError(f"Unknown type tag variant {variant}")
        return TypeTag.nested(depth, variant)

    def serialize(self, serializer: Serializer):
        depth, variant = self.unwrap()
        for _ in range(depth):
            serializer.uleb128(TypeTag.VECTOR)
        serializer.uleb128(variant)


class Test(unittest.TestCase):
    def test_nested_vector(self):
        tag = TypeTag.vector(TypeTag.vector(TypeTag(TypeTag.U64)))
        self.assertEqual(str(tag), "vector<vector<u64>>")
        self.assertEqual(tag.to_bytes(), b"\x06\x06\x02")
        self.assertEqual(TypeTag.from_bytes(tag.to_bytes()), tag)

    def test_variant_indices(self):
        self.assertEqual(TypeTag(TypeTag.U256).to_bytes(), b"\x0a")
        self.assertEqual(TypeTag(TypeTag.SIGNER).to_bytes(), b"\x05")

    def test_struct_is_rejected(self):
        with self.assertRaises(DecodeError):
            TypeTag.from_bytes(b"\x07")
        with self.assertRaises(ValueError):
            TypeTag(TypeTag.STRUCT)

    def test_deep_nesting(self):
        tag = TypeTag.nested(5000, TypeTag.BOOL)
        self.assertEqual(tag.unwrap(), (5000, TypeTag.BOOL))
        self.assertEqual(str(tag), "vector<" * 5000 + "bool" + ">" * 5000)
        data = tag.to_bytes()
        self.assertEqual(data, b"\x06" * 5000 + b"\x00")
        self.assertEqual(TypeTag.from_bytes(data), tag)
        self.assertEqual(hash(TypeTag.from_bytes(data)), hash(tag))
        self.assertNotEqual(tag, TypeTag.nested(4999, TypeTag.BOOL))


if __name__ == "__main__":
    unittest.main()
