# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Module bundles.

A bundle publishes all modules of a package in one transaction, so the modules
must be ordered such that every module comes after the modules of the same
bundle it links against. Dependencies outside the bundle are expected to be
published already and do not affect the order.

The order is deterministic: modules are visited by ascending ``address::name``
and each module's in-bundle dependencies are emitted depth first before it.

Examples:
    Bundling compiled modules::

        descriptors = [ModuleDescriptor.from_bytecode(code) for code in modules]
        bundle = ModuleBundle.from_descriptors(sort_modules(descriptors))
        with open("package.mvb", "wb") as f:
            f.write(bundle.encode())
"""

from __future__ import annotations

import logging
import unittest
from typing import Dict, FrozenSet, Iterable, Iterator, List, Set

from .account_address import AccountAddress
from .bcs import Deserializable, Deserializer, Serializable, Serializer
from .bytecode import CompiledModule, ModuleId
from .bytecode import Test as BytecodeTest
from .errors import CyclicDependencyError


class ModuleDescriptor:
    """A compiled module with its identity and the modules it depends on.

    Two descriptors with the same id describe the same module.
    """

    id: ModuleId
    dependencies: FrozenSet[ModuleId]
    bytecode: bytes

    def __init__(
        self, id: ModuleId, dependencies: Iterable[ModuleId], bytecode: bytes = b""
    ):
        self.id = id
        self.dependencies = frozenset(dependencies)
        self.bytecode = bytecode

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ModuleDescriptor):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self):
        return f"ModuleDescriptor({self.id})"

    @staticmethod
    def from_bytecode(bytecode: bytes) -> ModuleDescriptor:
        module = CompiledModule.deserialize(bytecode)
        return ModuleDescriptor(
            module.self_id(), module.immediate_dependencies(), bytecode
        )


def sort_modules(modules: Iterable[ModuleDescriptor]) -> List[ModuleDescriptor]:
    """Order modules so that in-bundle dependencies come first.

    Raises:
        CyclicDependencyError: If modules of the bundle depend on each other in
            a cycle. The error names the modules along the cycle.
    """
    by_id: Dict[ModuleId, ModuleDescriptor] = {}
    for module in modules:
        if module.id in by_id:
            logging.warning(f"Module {module.id} given twice, keeping the last copy")
        by_id[module.id] = module

    order: List[ModuleDescriptor] = []
    emitted: Set[ModuleId] = set()
    visiting: List[ModuleId] = []
    pending: List[Iterator[ModuleId]] = []

    def enter(module_id: ModuleId):
        if module_id in visiting:
            cycle = visiting[visiting.index(module_id) :] + [module_id]
            raise CyclicDependencyError([str(member) for member in cycle])
        visiting.append(module_id)
        # Modules from other packages are published on their own.
        dependencies = sorted(
            dependency
            for dependency in by_id[module_id].dependencies
            if dependency in by_id
        )
        pending.append(iter(dependencies))

    for root in sorted(by_id):
        if root in emitted:
            continue
        enter(root)
        while visiting:
            dependency = next(pending[-1], None)
            if dependency is None:
                pending.pop()
                module_id = visiting.pop()
                emitted.add(module_id)
                order.append(by_id[module_id])
            elif dependency not in emitted:
                enter(dependency)

    logging.info(f"Bundle order: {', '.join(str(module.id) for module in order)}")
    return order


class ModuleBundle(Deserializable, Serializable):
    """An ordered list of module binaries, encoded as a BCS sequence of bytes."""

    modules: List[bytes]

    def __init__(self, modules: List[bytes]):
        self.modules = modules

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ModuleBundle):
            return NotImplemented
        return self.modules == other.modules

    @staticmethod
    def from_descriptors(modules: List[ModuleDescriptor]) -> ModuleBundle:
        return ModuleBundle([module.bytecode for module in modules])

    def encode(self) -> bytes:
        return self.to_bytes()

    @staticmethod
    def deserialize(deserializer: Deserializer) -> ModuleBundle:
        return ModuleBundle(deserializer.sequence(Deserializer.to_bytes))

    def serialize(self, serializer: Serializer):
        serializer.sequence(self.modules, Serializer.to_bytes)


class Test(unittest.TestCase):
    def setUp(self):
        self.address = AccountAddress.from_hex("0x2")
        self.a = ModuleId(self.address, "a")
        self.b = ModuleId(self.address, "b")
        self.c = ModuleId(self.address, "c")

    def ids(self, modules: List[ModuleDescriptor]) -> List[ModuleId]:
        return [module.id for module in modules]

    def test_chain(self):
        modules = [
            ModuleDescriptor(self.a, [self.b]),
            ModuleDescriptor(self.b, [self.c]),
            ModuleDescriptor(self.c, []),
        ]
        self.assertEqual(self.ids(sort_modules(modules)), [self.c, self.b, self.a])

    def test_missing_dependency_is_ignored(self):
        modules = [
            ModuleDescriptor(self.a, [self.b]),
            ModuleDescriptor(self.b, [self.c]),
        ]
        self.assertEqual(self.ids(sort_modules(modules)), [self.b, self.a])

    def test_order_is_deterministic(self):
        z = ModuleId(AccountAddress.from_hex("0x1"), "z")
        modules = [
            ModuleDescriptor(self.c, []),
            ModuleDescriptor(self.a, [self.c]),
            ModuleDescriptor(z, []),
            ModuleDescriptor(self.b, []),
        ]
        expected = [z, self.c, self.a, self.b]
        self.assertEqual(self.ids(sort_modules(modules)), expected)
        self.assertEqual(self.ids(sort_modules(reversed(modules))), expected)

    def test_cycle_is_reported(self):
        modules = [
            ModuleDescriptor(self.a, [self.b]),
            ModuleDescriptor(self.b, [self.c]),
            ModuleDescriptor(self.c, [self.a]),
        ]
        with self.assertRaises(CyclicDependencyError) as cm:
            sort_modules(modules)
        self.assertEqual(cm.exception.cycle, ["0x2::a", "0x2::b", "0x2::c", "0x2::a"])

    def test_long_chain(self):
        chain = [ModuleId(self.address, f"m{i:04}") for i in range(1500)]
        modules = [
            ModuleDescriptor(module_id, [dependency])
            for module_id, dependency in zip(chain, chain[1:])
        ]
        modules.append(ModuleDescriptor(chain[-1], []))
        self.assertEqual(self.ids(sort_modules(modules)), chain[::-1])

        modules[-1] = ModuleDescriptor(chain[-1], [chain[0]])
        with self.assertRaises(CyclicDependencyError) as cm:
            sort_modules(modules)
        self.assertEqual(len(cm.exception.cycle), 1501)

    def test_from_bytecode(self):
        one = ModuleId(AccountAddress.from_hex("0x1"), "signer")
        code_a = BytecodeTest.module_binary(self.a, [one, self.b])
        code_b = BytecodeTest.module_binary(self.b, [one])
        modules = [ModuleDescriptor.from_bytecode(code) for code in [code_a, code_b]]

        bundle = ModuleBundle.from_descriptors(sort_modules(modules))
        self.assertEqual(bundle.modules, [code_b, code_a])
        self.assertEqual(ModuleBundle.from_bytes(bundle.encode()), bundle)

    def test_bundle_encoding(self):
        self.assertEqual(
            ModuleBundle([b"\xab\xcd", b"\x01"]).encode(), b"\x02\x02\xab\xcd\x01\x01"
        )


if __name__ == "__main__":
    unittest.main()
