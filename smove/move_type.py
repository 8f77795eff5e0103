# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Move type signatures.

`MoveType` models every type that can appear in a function signature rendered
from an ABI: primitives, vectors, references, and a catch-all for what the type
tag grammar cannot express (generic parameters, structs). Parsing never fails;
text that is not understood becomes an ``unparsable`` leaf carrying the raw
input, so a single odd parameter does not prevent rendering the rest of a
signature.

Only the reference-free, fully parsed subset converts to an on-chain `TypeTag`.

Examples:
    Parsing::

        MoveType.from_str("vector<u8>")     # vector<u8>
        MoveType.from_str("&mut signer")    # &mut signer
        MoveType.from_str("Coin<T>")        # unparsable<Coin<T>>

    Converting to a type argument::

        MoveType.from_str("vector<u64>").to_type_tag()
"""

from __future__ import annotations

import re
import unittest
from typing import Iterator, List, Optional, Tuple

from .errors import TypeConversionError
from .type_tag import TypeTag

_TOKEN = re.compile(r"\s*(?:([A-Za-z_][A-Za-z0-9_]*)|([<>])|(\S))")

_PRIMITIVES = {name: variant for variant, name in TypeTag.NAMES.items()}


class MoveType:
    """A node of a type signature tree.

    Attributes:
        kind: One of the class constants.
        items: Element type of a vector, or the referenced type of a reference.
        mutable: Whether a reference is ``&mut``.
        raw: Original text of an unparsable type.
    """

    BOOL = "bool"
    U8 = "u8"
    U16 = "u16"
    U32 = "u32"
    U64 = "u64"
    U128 = "u128"
    U256 = "u256"
    ADDRESS = "address"
    SIGNER = "signer"
    VECTOR = "vector"
    REFERENCE = "reference"
    UNPARSABLE = "unparsable"

    kind: str
    items: Optional[MoveType]
    mutable: bool
    raw: Optional[str]

    def __init__(
        self,
        kind: str,
        items: Optional[MoveType] = None,
        mutable: bool = False,
        raw: Optional[str] = None,
    ):
        self.kind = kind
        self.items = items
        self.mutable = mutable
        self.raw = raw

    @staticmethod
    def vector(items: MoveType) -> MoveType:
        return MoveType(MoveType.VECTOR, items=items)

    @staticmethod
    def reference(to: MoveType, mutable: bool) -> MoveType:
        return MoveType(MoveType.REFERENCE, items=to, mutable=mutable)

    @staticmethod
    def unparsable(raw: str) -> MoveType:
        return MoveType(MoveType.UNPARSABLE, raw=raw)

    def layers(self) -> Tuple[List[MoveType], MoveType]:
        """Split off the vector and reference wrappers, outermost first."""
        wrappers = []
        node = self
        while node.kind in (MoveType.VECTOR, MoveType.REFERENCE):
            assert node.items is not None
            wrappers.append(node)
            node = node.items
        return wrappers, node

    def _key(self):
        wrappers, leaf = self.layers()
        return (
            tuple((node.kind, node.mutable) for node in wrappers),
            leaf.kind,
            leaf.mutable,
            leaf.raw,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MoveType):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        wrappers, leaf = self.layers()
        if leaf.kind == MoveType.UNPARSABLE:
            text = f"unparsable<{leaf.raw}>"
        else:
            text = leaf.kind
        for node in reversed(wrappers):
            if node.kind == MoveType.VECTOR:
                text = f"vector<{text}>"
            else:
                text = f"&mut {text}" if node.mutable else f"&{text}"
        return text

    def __repr__(self):
        return f"MoveType({self})"

    @staticmethod
    def from_str(value: str) -> MoveType:
        """Parse a type expression. Never raises."""
        is_ref = False
        is_mut = False

        if value.startswith("&"):
            value = value[1:]
            is_ref = True
        if is_ref and value.startswith("mut "):
            value = value[4:]
            is_mut = True

        tag = parse_type_tag(value)
        inner = (
            MoveType.unparsable(value) if tag is None else MoveType.from_type_tag(tag)
        )
        if is_ref:
            return MoveType.reference(inner, is_mut)
        return inner

    @staticmethod
    def from_type_tag(tag: TypeTag) -> MoveType:
        depth, variant = tag.unwrap()
        result = MoveType(TypeTag.NAMES[variant])
        for _ in range(depth):
            result = MoveType.vector(result)
        return result

    def to_type_tag(self) -> TypeTag:
        """Convert into an on-chain type tag.

        Raises:
            TypeConversionError: For references and unparsable types, including
                vectors that contain one.
        """
        wrappers, leaf = self.layers()
        if leaf.kind not in _PRIMITIVES or any(
            node.kind != MoveType.VECTOR for node in wrappers
        ):
            raise TypeConversionError(
                f"Invalid move type for converting into `TypeTag`: {self}"
            )
        return TypeTag.nested(len(wrappers), _PRIMITIVES[leaf.kind])


def _tokens(value: str) -> Iterator[str]:
    position = 0
    for match in _TOKEN.finditer(value):
        position = match.end()
        yield match.group(match.lastindex or 0)
    if value[position:].strip():
        yield value[position:]


def parse_type_tag(value: str) -> Optional[TypeTag]:
    """Parse primitives and arbitrarily nested vectors.

    Returns None when the text is anything else, such as a struct or a generic
    type parameter.
    """
    tokens = list(_tokens(value))
    index = 0
    while (
        index + 1 < len(tokens)
        and tokens[index] == "vector"
        and tokens[index + 1] == "<"
    ):
        index += 2
    depth = index // 2
    rest = tokens[index:]
    if not rest or rest[0] not in _PRIMITIVES or rest[1:] != [">"] * depth:
        return None
    return TypeTag.nested(depth, _PRIMITIVES[rest[0]])


class Test(unittest.TestCase):
    def test_primitives_and_vectors(self):
        self.assertEqual(
            MoveType.from_str("vector<u8>"), MoveType.vector(MoveType(MoveType.U8))
        )
        self.assertEqual(
            str(MoveType.from_str("vector<vector<address>>")), "vector<vector<address>>"
        )
        self.assertEqual(str(MoveType.from_str("vector < u16 >")), "vector<u16>")

    def test_references(self):
        self.assertEqual(
            MoveType.from_str("&mut signer"),
            MoveType.reference(MoveType(MoveType.SIGNER), True),
        )
        self.assertEqual(str(MoveType.from_str("&u64")), "&u64")
        self.assertEqual(str(MoveType.from_str("&mut vector<u8>")), "&mut vector<u8>")

    def test_unparsable(self):
        self.assertEqual(
            MoveType.from_str("SomeGeneric<T>"), MoveType.unparsable("SomeGeneric<T>")
        )
        self.assertEqual(
            MoveType.from_str("&T"), MoveType.reference(MoveType.unparsable("T"), False)
        )
        self.assertEqual(str(MoveType.from_str("vector<T>")), "unparsable<vector<T>>")

    def test_never_raises(self):
        for text in [
            "",
            "&",
            "&mut ",
            "vector<",
            "vector<u8>>",
            "u8 u8",
            "<>",
            "$%^",
            "0x1::coin::Coin<0x2::token::TOKEN>",
        ]:
            self.assertIsInstance(MoveType.from_str(text), MoveType)
        self.assertEqual(MoveType.from_str("vector<u8>>").kind, MoveType.UNPARSABLE)

        deep = "vector<" * 1200 + "u8" + ">" * 1200
        parsed = MoveType.from_str(deep)
        self.assertEqual(str(parsed), deep)
        self.assertEqual(parsed, MoveType.from_str(deep))
        self.assertEqual(hash(parsed), hash(MoveType.from_str(deep)))
        self.assertEqual(len(parsed.layers()[0]), 1200)
        self.assertEqual(parsed.to_type_tag().unwrap(), (1200, TypeTag.U8))
        self.assertEqual(str(MoveType.from_str("&mut " + deep)), "&mut " + deep)
        with self.assertRaises(TypeConversionError):
            MoveType.from_str("&" + deep).to_type_tag()

        unbalanced = "vector<" * 1200 + "u8" + ">" * 1199
        self.assertEqual(MoveType.from_str(unbalanced), MoveType.unparsable(unbalanced))
        self.assertEqual(
            MoveType.from_str("vector<" * 100000).kind, MoveType.UNPARSABLE
        )

    def test_to_type_tag(self):
        self.assertEqual(
            MoveType.from_str("vector<u128>").to_type_tag(),
            TypeTag.vector(TypeTag(TypeTag.U128)),
        )
        self.assertEqual(
            MoveType.from_str("signer").to_type_tag(), TypeTag(TypeTag.SIGNER)
        )
        with self.assertRaises(TypeConversionError):
            MoveType.from_str("&u8").to_type_tag()
        with self.assertRaises(TypeConversionError):
            MoveType.from_str("T").to_type_tag()


if __name__ == "__main__":
    unittest.main()
