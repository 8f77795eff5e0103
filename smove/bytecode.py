# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Reading compiled Move binaries.

Only the parts of the Move binary format that smove needs are decoded: the
header, the table directory, and for modules the module handle, identifier and
address tables that determine a module's own id and the modules it links
against. Full bytecode verification is left to the chain.

Binary layout::

    magic (4 bytes, A1 1C EB 0B) | version (u32 LE) | table count (ULEB128)
    table headers: kind (u8) | offset (ULEB128) | byte length (ULEB128)
    table contents, contiguous, offsets relative to the end of the headers
    module: self module handle index (ULEB128, version 5 and later)
    script: type parameters | parameter signature index | code
"""

from __future__ import annotations

import unittest
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .account_address import AccountAddress
from .bcs import Deserializer, Serializer
from .errors import BytecodeIntegrityError, DecodeError

MOVE_MAGIC = b"\xa1\x1c\xeb\x0b"
VERSION_MIN = 1
VERSION_MAX = 7
# From this version on modules store their own handle index after the tables.
VERSION_SELF_HANDLE_INDEX = 5


class TableType:
    MODULE_HANDLES = 0x1
    STRUCT_HANDLES = 0x2
    FUNCTION_HANDLES = 0x3
    FUNCTION_INST = 0x4
    SIGNATURES = 0x5
    CONSTANT_POOL = 0x6
    IDENTIFIERS = 0x7
    ADDRESS_IDENTIFIERS = 0x8
    STRUCT_DEFS = 0xA
    STRUCT_DEF_INST = 0xB
    FUNCTION_DEFS = 0xC
    FIELD_HANDLE = 0xD
    FIELD_INST = 0xE
    FRIEND_DECLS = 0xF
    METADATA = 0x10

    ALL = (
        MODULE_HANDLES,
        STRUCT_HANDLES,
        FUNCTION_HANDLES,
        FUNCTION_INST,
        SIGNATURES,
        CONSTANT_POOL,
        IDENTIFIERS,
        ADDRESS_IDENTIFIERS,
        STRUCT_DEFS,
        STRUCT_DEF_INST,
        FUNCTION_DEFS,
        FIELD_HANDLE,
        FIELD_INST,
        FRIEND_DECLS,
        METADATA,
    )

    # Definitions only modules may carry.
    MODULE_ONLY = (
        STRUCT_DEFS,
        STRUCT_DEF_INST,
        FUNCTION_DEFS,
        FIELD_HANDLE,
        FIELD_INST,
        FRIEND_DECLS,
    )


class ModuleId:
    """The ``address::name`` identity of a module."""

    address: AccountAddress
    name: str

    def __init__(self, address: AccountAddress, name: str):
        self.address = address
        self.name = name

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ModuleId):
            return NotImplemented
        return self.address == other.address and self.name == other.name

    def __lt__(self, other: ModuleId) -> bool:
        return (self.address.address, self.name) < (other.address.address, other.name)

    def __hash__(self) -> int:
        return hash((self.address, self.name))

    def __str__(self) -> str:
        return f"{self.address.short_str()}::{self.name}"

    def __repr__(self):
        return self.__str__()


@dataclass
class BinaryHeader:
    version: int
    tables: Dict[int, Tuple[int, int]]
    content_start: int
    content_end: int

    def table(self, binary: bytes, kind: int) -> bytes:
        if kind not in self.tables:
            return b""
        offset, length = self.tables[kind]
        start = self.content_start + offset
        return binary[start : start + length]


def read_header(binary: bytes) -> BinaryHeader:
    """Validate the magic, the version and the table directory.

    Raises:
        BytecodeIntegrityError: If the binary is not a well-formed Move binary.
    """
    der = Deserializer(binary)
    try:
        if der.fixed_bytes(len(MOVE_MAGIC)) != MOVE_MAGIC:
            raise BytecodeIntegrityError("Bad binary header: missing Move magic")
        # Newer toolchains may tag the upper byte with a flavor.
        version = der.u32() & 0x00FFFFFF
        if version < VERSION_MIN or version > VERSION_MAX:
            raise BytecodeIntegrityError(f"Unsupported bytecode version {version}")

        table_count = der.uleb128()
        tables: Dict[int, Tuple[int, int]] = {}
        for _ in range(table_count):
            kind = der.u8()
            offset = der.uleb128()
            length = der.uleb128()
            if kind not in TableType.ALL:
                raise BytecodeIntegrityError(f"Unknown table kind {kind:#x}")
            if kind in tables:
                raise BytecodeIntegrityError(f"Duplicate table kind {kind:#x}")
            if length == 0:
                raise BytecodeIntegrityError(f"Empty table kind {kind:#x}")
            tables[kind] = (offset, length)
    except DecodeError as e:
        raise BytecodeIntegrityError(f"Malformed binary header: {e}") from e

    # Tables must be laid out back to back, starting at offset zero.
    content_length = 0
    for offset, length in sorted(tables.values()):
        if offset != content_length:
            raise BytecodeIntegrityError("Bad table offsets in binary header")
        content_length += length

    content_start = der.position()
    content_end = content_start + content_length
    if content_end > len(binary):
        raise BytecodeIntegrityError("Table contents exceed binary length")
    return BinaryHeader(version, tables, content_start, content_end)


class CompiledModule:
    """The linkage information of a compiled module."""

    version: int
    address_identifiers: List[AccountAddress]
    identifiers: List[str]
    module_handles: List[Tuple[int, int]]
    self_module_handle_idx: int

    def __init__(
        self,
        version: int,
        address_identifiers: List[AccountAddress],
        identifiers: List[str],
        module_handles: List[Tuple[int, int]],
        self_module_handle_idx: int,
    ):
        self.version = version
        self.address_identifiers = address_identifiers
        self.identifiers = identifiers
        self.module_handles = module_handles
        self.self_module_handle_idx = self_module_handle_idx

    @staticmethod
    def deserialize(binary: bytes) -> CompiledModule:
        """Decode a module binary.

        Raises:
            BytecodeIntegrityError: If the binary is malformed or its handles
                reference missing identifiers or addresses.
        """
        header = read_header(binary)
        try:
            address_identifiers = _read_addresses(
                header.table(binary, TableType.ADDRESS_IDENTIFIERS)
            )
            identifiers = _read_identifiers(header.table(binary, TableType.IDENTIFIERS))
            module_handles = _read_module_handles(
                header.table(binary, TableType.MODULE_HANDLES)
            )
            if header.version >= VERSION_SELF_HANDLE_INDEX:
                self_idx = Deserializer(binary[header.content_end :]).uleb128()
            else:
                self_idx = 0
        except DecodeError as e:
            raise BytecodeIntegrityError(f"Malformed module tables: {e}") from e

        for address_idx, name_idx in module_handles:
            if address_idx >= len(address_identifiers) or name_idx >= len(identifiers):
                raise BytecodeIntegrityError("Module handle index out of bounds")
        if self_idx >= len(module_handles):
            raise BytecodeIntegrityError("Self module handle index out of bounds")

        return CompiledModule(
            header.version, address_identifiers, identifiers, module_handles, self_idx
        )

    def module_id_for_handle(self, idx: int) -> ModuleId:
        address_idx, name_idx = self.module_handles[idx]
        return ModuleId(
            self.address_identifiers[address_idx], self.identifiers[name_idx]
        )

    def self_id(self) -> ModuleId:
        return self.module_id_for_handle(self.self_module_handle_idx)

    def immediate_dependencies(self) -> List[ModuleId]:
        return [
            self.module_id_for_handle(idx)
            for idx in range(len(self.module_handles))
            if idx != self.self_module_handle_idx
        ]


def _read_addresses(table: bytes) -> List[AccountAddress]:
    if len(table) % AccountAddress.LENGTH != 0:
        raise DecodeError("Address table length is not a multiple of the address size")
    return [
        AccountAddress(table[start : start + AccountAddress.LENGTH])
        for start in range(0, len(table), AccountAddress.LENGTH)
    ]


def _read_identifiers(table: bytes) -> List[str]:
    der = Deserializer(table)
    identifiers = []
    while der.remaining() > 0:
        identifiers.append(der.str())
    return identifiers


def _read_module_handles(table: bytes) -> List[Tuple[int, int]]:
    der = Deserializer(table)
    handles = []
    while der.remaining() > 0:
        handles.append((der.uleb128(), der.uleb128()))
    return handles


def verify_script_integrity(binary: bytes) -> BinaryHeader:
    """Check that `binary` is structurally a compiled script.

    The ordering of signer parameters is validated by the chain when the
    transaction executes and is not checked here.

    Raises:
        BytecodeIntegrityError: If the binary is malformed, carries module
            definitions, or has no script body.
    """
    header = read_header(binary)
    for kind in header.tables:
        if kind in TableType.MODULE_ONLY:
            raise BytecodeIntegrityError("Bad table in Script")

    der = Deserializer(binary[header.content_end :])
    try:
        # type parameters, one ability set each, then the parameter signature index
        for _ in range(der.uleb128()):
            der.u8()
        der.uleb128()
    except DecodeError as e:
        raise BytecodeIntegrityError(f"Malformed script body: {e}") from e
    if der.remaining() == 0:
        raise BytecodeIntegrityError("Script has no code")
    return header


class Test(unittest.TestCase):
    @staticmethod
    def binary(
        tables: List[Tuple[int, bytes]], trailer: bytes, version: int = 6
    ) -> bytes:
        ser = Serializer()
        ser.fixed_bytes(MOVE_MAGIC)
        ser.u32(version)
        ser.uleb128(len(tables))
        offset = 0
        for kind, content in tables:
            ser.u8(kind)
            ser.uleb128(offset)
            ser.uleb128(len(content))
            offset += len(content)
        for _, content in tables:
            ser.fixed_bytes(content)
        ser.fixed_bytes(trailer)
        return ser.output()

    @staticmethod
    def module_binary(module: ModuleId, dependencies: List[ModuleId]) -> bytes:
        """A module binary with only the linkage tables filled in."""
        addresses: List[AccountAddress] = []
        names: List[str] = []
        handles = Serializer()
        for module_id in [*dependencies, module]:
            if module_id.address not in addresses:
                addresses.append(module_id.address)
            if module_id.name not in names:
                names.append(module_id.name)
            handles.uleb128(addresses.index(module_id.address))
            handles.uleb128(names.index(module_id.name))

        identifiers = Serializer()
        for name in names:
            identifiers.str(name)
        address_table = b"".join(address.address for address in addresses)

        self_idx = Serializer()
        self_idx.uleb128(len(dependencies))
        return Test.binary(
            [
                (TableType.MODULE_HANDLES, handles.output()),
                (TableType.IDENTIFIERS, identifiers.output()),
                (TableType.ADDRESS_IDENTIFIERS, address_table),
            ],
            self_idx.output(),
        )

    def test_module_linkage(self):
        one = AccountAddress.from_hex("0x1")
        two = AccountAddress.from_hex("0x2")
        module = ModuleId(two, "market")
        deps = [ModuleId(one, "vector"), ModuleId(two, "token")]

        compiled = CompiledModule.deserialize(Test.module_binary(module, deps))
        self.assertEqual(compiled.self_id(), module)
        self.assertEqual(compiled.immediate_dependencies(), deps)
        self.assertEqual(str(compiled.self_id()), "0x2::market")

    def test_bad_magic(self):
        with self.assertRaises(BytecodeIntegrityError):
            read_header(b"\x00\x01\x02\x03\x06\x00\x00\x00\x00")

    def test_truncated_tables(self):
        binary = Test.binary([(TableType.IDENTIFIERS, b"\x01a")], b"")
        with self.assertRaises(BytecodeIntegrityError):
            read_header(binary[:-1])

    def test_gap_between_tables(self):
        ser = Serializer()
        ser.fixed_bytes(MOVE_MAGIC)
        ser.u32(6)
        ser.uleb128(1)
        ser.u8(TableType.IDENTIFIERS)
        ser.uleb128(1)
        ser.uleb128(1)
        ser.fixed_bytes(b"\x00\x00")
        with self.assertRaises(BytecodeIntegrityError):
            read_header(ser.output())

    def test_script_integrity(self):
        script = Test.binary([(TableType.SIGNATURES, b"\x00")], b"\x00\x00\x01\x02")
        self.assertEqual(verify_script_integrity(script).version, 6)

        with_defs = Test.binary(
            [(TableType.FUNCTION_DEFS, b"\x00")], b"\x00\x00\x01\x02"
        )
        with self.assertRaises(BytecodeIntegrityError):
            verify_script_integrity(with_defs)

        no_code = Test.binary([(TableType.SIGNATURES, b"\x00")], b"\x00\x00")
        with self.assertRaises(BytecodeIntegrityError):
            verify_script_integrity(no_code)


if __name__ == "__main__":
    unittest.main()
