# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Script arguments given on the command line.

Arguments are written as ``<type>:<value>`` pairs. The value is a JSON literal:
a scalar, or an array (possibly nested) of scalars for vector arguments. Each
argument is turned into the BCS bytes the Move VM expects for that parameter.

Supported types: address, bool, hex, string, u8, u16, u32, u64, u128, u256, raw
and signer. ``hex`` is a ``vector<u8>`` given in hex, ``raw`` is hex that is
passed through without any length prefix.

For the textual types (address, signer, hex, string, raw) a value that is not an
array is quoted automatically, so ``address:0x1`` needs no JSON quoting. String
values can therefore not contain a ``"``.

Examples:
    Command line arguments::

        --args address:0x1 bool:true u8:0 u256:1234 "bool:[true, false]" \\
            'address:[["0xace", "0xbee"], []]'

    Programmatic use::

        parse_arg_with_type("u64:42").arg          # b"*\\x00\\x00\\x00\\x00\\x00\\x00\\x00"
        parse_arg_with_type("u8:[[1,2],[3]]").vector_depth   # 2
"""

from __future__ import annotations

import json
import re
import typing
import unittest
from dataclasses import dataclass
from enum import Enum
from typing import List

from .account_address import parse_address
from .bcs import MAX_U8, MAX_U16, MAX_U32, MAX_U64, MAX_U128, MAX_U256, Serializer
from .errors import DepthMismatchError, ParseError, UnsupportedLiteralError
from .hex_bytes import decode_hex
from .move_type import MoveType
from .type_tag import TypeTag

_UNSIGNED = re.compile(r"\+?[0-9]+")


@dataclass
class EncodedArg:
    """BCS bytes of one argument together with its vector nesting depth."""

    arg: bytes
    vector_depth: int = 0


class FunctionArgType(Enum):
    SIGNER = "signer"
    ADDRESS = "address"
    BOOL = "bool"
    HEX = "hex"
    STRING = "string"
    U8 = "u8"
    U16 = "u16"
    U32 = "u32"
    U64 = "u64"
    U128 = "u128"
    U256 = "u256"
    RAW = "raw"

    def __str__(self):
        return self.value

    @staticmethod
    def from_str(value: str) -> FunctionArgType:
        try:
            return FunctionArgType(value.lower())
        except ValueError:
            names = ",".join(f"'{ty}'" for ty in FunctionArgType)
            raise ParseError(
                f"Invalid arg type '{value.lower()}'.  Must be one of: [{names}]"
            ) from None

    def is_textual(self) -> bool:
        return self in _TEXTUAL_TYPES

    def parse_arg_str(self, arg: str) -> bytes:
        """Encode a standalone (non-vector) argument."""
        ser = Serializer()
        if self in (FunctionArgType.SIGNER, FunctionArgType.ADDRESS):
            ser.struct(parse_address(arg))
        elif self == FunctionArgType.BOOL:
            ser.bool(parse_bool(arg))
        elif self == FunctionArgType.HEX:
            ser.to_bytes(decode_hex(arg))
        elif self == FunctionArgType.STRING:
            ser.str(arg)
        elif self == FunctionArgType.RAW:
            ser.fixed_bytes(decode_hex(arg))
        else:
            max_value, write = _INTEGERS[self]
            write(ser, parse_unsigned(arg, max_value, self.value))
        return ser.output()

    def parse_arg_json(self, arg: typing.Any) -> EncodedArg:
        """Encode a decoded JSON literal, walking nested arrays with a stack.

        Raises:
            DepthMismatchError: If the elements of an array are nested to
                different depths.
            UnsupportedLiteralError: For null and object literals.
        """
        if not isinstance(arg, list):
            return EncodedArg(self.parse_literal(arg))

        stack = [_ArrayFrame(arg)]
        while True:
            frame = stack[-1]
            if frame.index < len(frame.items):
                sub_arg = frame.items[frame.index]
                frame.index += 1
                if isinstance(sub_arg, list):
                    stack.append(_ArrayFrame(sub_arg))
                    continue
                encoded = EncodedArg(self.parse_literal(sub_arg))
            else:
                stack.pop()
                encoded = EncodedArg(frame.ser.output(), (frame.depth or 0) + 1)
                if not stack:
                    return encoded
                frame = stack[-1]
            if frame.depth is not None and frame.depth != encoded.vector_depth:
                raise DepthMismatchError("Variable vector depth")
            frame.depth = encoded.vector_depth
            frame.ser.fixed_bytes(encoded.arg)

    def parse_literal(self, arg: typing.Any) -> bytes:
        """Encode a JSON scalar."""
        if isinstance(arg, bool):
            return self.parse_arg_str("true" if arg else "false")
        if isinstance(arg, (int, float)):
            return self.parse_arg_str(str(arg))
        if isinstance(arg, str):
            return self.parse_arg_str(arg)
        if arg is None:
            raise UnsupportedLiteralError("Null argument")
        raise UnsupportedLiteralError("JSON object argument")


class _ArrayFrame:
    """An array whose elements are being encoded."""

    def __init__(self, items: List[typing.Any]):
        self.items = items
        self.index = 0
        self.depth: typing.Optional[int] = None
        self.ser = Serializer()
        self.ser.uleb128(len(items))


_TEXTUAL_TYPES = (
    FunctionArgType.ADDRESS,
    FunctionArgType.SIGNER,
    FunctionArgType.HEX,
    FunctionArgType.STRING,
    FunctionArgType.RAW,
)

_INTEGERS = {
    FunctionArgType.U8: (MAX_U8, Serializer.u8),
    FunctionArgType.U16: (MAX_U16, Serializer.u16),
    FunctionArgType.U32: (MAX_U32, Serializer.u32),
    FunctionArgType.U64: (MAX_U64, Serializer.u64),
    FunctionArgType.U128: (MAX_U128, Serializer.u128),
    FunctionArgType.U256: (MAX_U256, Serializer.u256),
}


def parse_bool(value: str) -> bool:
    if value == "true":
        return True
    if value == "false":
        return False
    raise ParseError(f"provided string was not `true` or `false`: {value!r}")


def parse_unsigned(value: str, max_value: int, name: str) -> int:
    if not _UNSIGNED.fullmatch(value):
        raise ParseError(f"invalid digit found in {name} literal {value!r}")
    digits = value.lstrip("+").lstrip("0") or "0"
    if len(digits) > len(str(max_value)):
        raise ParseError(f"number too large to fit in target type {name}: {value}")
    number = int(digits)
    if number > max_value:
        raise ParseError(f"number too large to fit in target type {name}: {value}")
    return number


def parse_arg_with_type(value: str) -> EncodedArg:
    """Parse and encode a ``<type>:<value>`` command line argument."""
    # Only the first colon separates the type, values may contain colons.
    parts = value.split(":", 1)
    if len(parts) != 2:
        raise ParseError("Arguments must be pairs of <type>:<arg> e.g. bool:true")

    ty = FunctionArgType.from_str(parts[0])
    arg = parts[1]
    if not arg.startswith("[") and ty.is_textual():
        arg = f'"{arg}"'

    try:
        literal = json.loads(arg)
    except RecursionError as e:
        raise ParseError("Invalid JSON argument: arrays are nested too deeply") from e
    except ValueError as e:
        raise ParseError(f"Invalid JSON argument {parts[1]!r}: {e}") from e
    return ty.parse_arg_json(literal)


class ScriptFunctionArguments:
    """Type arguments and arguments for a script call."""

    type_arg_vec: List[MoveType]
    arg_vec: List[EncodedArg]

    def __init__(self, type_arg_vec: List[MoveType], arg_vec: List[EncodedArg]):
        self.type_arg_vec = type_arg_vec
        self.arg_vec = arg_vec

    @staticmethod
    def from_strs(
        type_args: typing.Sequence[str], args: typing.Sequence[str]
    ) -> ScriptFunctionArguments:
        return ScriptFunctionArguments(
            [MoveType.from_str(type_arg) for type_arg in type_args],
            [parse_arg_with_type(arg) for arg in args],
        )

    def type_args(self) -> List[TypeTag]:
        return [type_arg.to_type_tag() for type_arg in self.type_arg_vec]

    def args(self) -> List[bytes]:
        return [arg_with_type.arg for arg_with_type in self.arg_vec]


class Test(unittest.TestCase):
    def test_u64_scalar(self):
        encoded = parse_arg_with_type("u64:42")
        self.assertEqual(encoded.arg, (42).to_bytes(8, "little"))
        self.assertEqual(encoded.vector_depth, 0)

    def test_bool_vector(self):
        encoded = parse_arg_with_type("bool:[true, false]")
        self.assertEqual(encoded.arg, b"\x02\x01\x00")
        self.assertEqual(encoded.vector_depth, 1)

    def test_nested_vectors(self):
        encoded = parse_arg_with_type("u8:[[1,2],[3]]")
        self.assertEqual(encoded.arg, b"\x02\x02\x01\x02\x01\x03")
        self.assertEqual(encoded.vector_depth, 2)

    def test_mixed_depth_is_rejected(self):
        with self.assertRaises(DepthMismatchError):
            parse_arg_with_type("u8:[1,[2]]")

    def test_empty_vectors(self):
        self.assertEqual(parse_arg_with_type("u8:[]"), EncodedArg(b"\x00", 1))
        encoded = parse_arg_with_type('address:[["0xace", "0xbee"], []]')
        self.assertEqual(encoded.vector_depth, 2)
        self.assertEqual(encoded.arg[:2], b"\x02\x02")
        self.assertEqual(encoded.arg[-1:], b"\x00")

    def test_textual_values_are_quoted(self):
        self.assertEqual(
            parse_arg_with_type("address:0x1").arg, b"\x00" * 31 + b"\x01"
        )
        self.assertEqual(parse_arg_with_type("string:hello").arg, b"\x05hello")
        self.assertEqual(parse_arg_with_type("hex:0xcafe").arg, b"\x02\xca\xfe")
        self.assertEqual(parse_arg_with_type("raw:0xcafe").arg, b"\xca\xfe")
        self.assertEqual(parse_arg_with_type("string:a:b").arg, b"\x03a:b")

    def test_large_integers(self):
        max_u128 = str(MAX_U128)
        self.assertEqual(
            parse_arg_with_type(f"u128:{max_u128}").arg, b"\xff" * 16
        )
        self.assertEqual(
            parse_arg_with_type(f'u256:"{MAX_U256}"').arg, b"\xff" * 32
        )

    def test_malformed_numbers(self):
        for value in ["u8:256", "u8:-1", "u64:1.5", 'u16:"12a"', "u32:true"]:
            with self.assertRaises(ParseError, msg=value):
                parse_arg_with_type(value)

    def test_oversized_literals(self):
        many_digits = "1" * 5000
        for value in [
            f"u8:{many_digits}",
            f'u8:"{many_digits}"',
            f"u256:[{many_digits}]",
            "u64:" + "[" * 100000 + "]" * 100000,
        ]:
            with self.assertRaises(ParseError, msg=value[:20]):
                parse_arg_with_type(value)
        self.assertEqual(parse_arg_with_type('u8:"+' + "0" * 5000 + '7"').arg, b"\x07")

    def test_deeply_nested_vector(self):
        encoded = parse_arg_with_type("u8:" + "[" * 500 + "7" + "]" * 500)
        self.assertEqual(encoded.vector_depth, 500)
        self.assertEqual(encoded.arg, b"\x01" * 500 + b"\x07")
        with self.assertRaises(DepthMismatchError):
            parse_arg_with_type("u8:" + "[" * 500 + "7" + "]" * 499 + ",7]")

    def test_lone_surrogate_string(self):
        with self.assertRaises(ParseError):
            parse_arg_with_type('string:["\\ud800"]')
        with self.assertRaises(ParseError):
            parse_arg_with_type("string:\\udfff")

    def test_bad_hex(self):
        from .errors import DecodeError

        with self.assertRaises(DecodeError):
            parse_arg_with_type("hex:0xabc")

    def test_unsupported_literals(self):
        with self.assertRaises(UnsupportedLiteralError):
            parse_arg_with_type("u8:null")
        with self.assertRaises(UnsupportedLiteralError):
            parse_arg_with_type('u8:{"a": 1}')

    def test_bad_type_and_format(self):
        with self.assertRaises(ParseError):
            parse_arg_with_type("u7:1")
        with self.assertRaises(ParseError):
            parse_arg_with_type("true")
        self.assertEqual(parse_arg_with_type("BOOL:true").arg, b"\x01")

    def test_script_function_arguments(self):
        arguments = ScriptFunctionArguments.from_strs(
            ["u8", "vector<u64>"], ["u8:7", "bool:false"]
        )
        self.assertEqual(
            arguments.type_args(),
            [TypeTag(TypeTag.U8), TypeTag.vector(TypeTag(TypeTag.U64))],
        )
        self.assertEqual(arguments.args(), [b"\x07", b"\x00"])


if __name__ == "__main__":
    unittest.main()
