# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Command-line interface of smove.

Commands:
    bundle: Build the package and bundle its modules in dependency order
    create-transaction: Encode a script transaction for a compiled script
    call-hash: Hash a script transaction file
    node rpc ...: Gas estimation, gas to weight conversion and module ABI lookup

Examples:
    Bundle the package in the current directory::

        smove bundle --modules_exclude test_helpers

    Create a script transaction::

        smove create-transaction \\
            --compiled-script-path build/pkg/bytecode_scripts/transfer.mv \\
            --type-args u8 --args address:0xcafe u64:100

    Estimate its cost::

        smove node --url http://localhost:9944/ rpc estimate-gas-execute-script \\
            --script-transaction-path build/pkg/script_transactions/transfer.mvt
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import inspect
import io
import json
import logging
import os
import sys
import tempfile
import unittest
from typing import Any, Callable, Dict, List, Optional
from unittest import mock

import httpx

from .account_address import AccountAddress
from .bcs import MAX_U64, MAX_U128
from .bundle import ModuleBundle, ModuleDescriptor, sort_modules
from .bytecode import ModuleId
from .bytecode import Test as BytecodeTest
from .common import NODE_URL
from .errors import AddressFormatError, IoError, SmoveError
from .hex_bytes import HexEncodedBytes
from .move_cli_wrapper import MoveCLIWrapper
from .package import (
    MANIFEST_NAME,
    MODULE_EXTENSION,
    RunContext,
    read_bytes,
    write_output,
)
from .rpc_client import ClientConfig, RpcClient
from .script_args import ScriptFunctionArguments
from .script_transaction import ScriptTransaction, call_hash


def bundle(args: argparse.Namespace):
    ctx = RunContext(args.path)
    if args.no_build:
        logging.info("Skipping the package build")
    else:
        MoveCLIWrapper.build(args.path)

    excluded = {module_file_name(name) for name in args.modules_exclude}
    module_paths = []
    for path in ctx.get_bytecode_modules():
        if os.path.basename(path).lower() in excluded:
            logging.info(f"Excluding {path}")
            continue
        module_paths.append(path)
    if not module_paths:
        raise IoError(f"No compiled modules found under {os.path.abspath(args.path)}")

    modules = [ModuleDescriptor.from_bytecode(read_bytes(p)) for p in module_paths]
    module_bundle = ModuleBundle.from_descriptors(sort_modules(modules))

    output_path = ctx.bundle_output_path(args.name or ctx.package_name())
    write_output(output_path, module_bundle.encode())
    print(f"Modules are bundled under: {os.path.realpath(output_path)}")


def module_file_name(name: str) -> str:
    """Normalize a module name given on the command line to its file name."""
    name = name.lower()
    if not name.endswith(MODULE_EXTENSION):
        name += MODULE_EXTENSION
    return name


def create_transaction(args: argparse.Namespace):
    ctx = RunContext(args.path)
    bytecode = read_bytes(args.compiled_script_path)
    arguments = ScriptFunctionArguments.from_strs(args.type_args, args.args)
    transaction = ScriptTransaction.create(bytecode, arguments)
    logging.info(f"Created {transaction}")

    output_path = ctx.script_tx_output_path(args.compiled_script_path)
    write_output(output_path, transaction.encode())
    print(f"Script transaction is created at:\n{os.path.realpath(output_path)}")


def print_call_hash(args: argparse.Namespace):
    script_transaction = read_bytes(args.script_transaction_path)
    print(f"Call hash: {call_hash(script_transaction)}")


async def estimate_gas_publish_module(client: RpcClient, args: argparse.Namespace):
    module = read_bytes(args.module_path)
    estimate = await client.estimate_gas_publish_module(args.account_id, module)
    print(f"Estimated gas: {estimate}")


async def estimate_gas_publish_bundle(client: RpcClient, args: argparse.Namespace):
    module_bundle = read_bytes(args.bundle_path)
    estimate = await client.estimate_gas_publish_bundle(args.account_id, module_bundle)
    print(f"Estimated gas: {estimate}")


async def estimate_gas_execute_script(client: RpcClient, args: argparse.Namespace):
    script_transaction = read_bytes(args.script_transaction_path)
    estimate = await client.estimate_gas_execute_script(
        script_transaction, args.account_id, args.cheque_limit
    )
    print(f"Estimated gas: {estimate}")


async def gas_to_weight(client: RpcClient, args: argparse.Namespace):
    weight = await client.gas_to_weight(args.gas)
    print(f"Value of {args.gas} gas converted to weight has a value of {weight}")


async def get_module_abi(client: RpcClient, args: argparse.Namespace):
    abi = await client.get_module_abi(args.address, args.name)
    print(f"Module ABI: {HexEncodedBytes(abi) if abi is not None else None}")


async def rpc(args: argparse.Namespace):
    client = RpcClient(args.url)
    try:
        await args.rpc_handler(client, args)
    finally:
        await client.close()


def unsigned(max_value: int, name: str) -> Callable[[str], int]:
    def parse(value: str) -> int:
        number = int(value)
        if number < 0 or number > max_value:
            raise ValueError(f"{value} is not a valid {name}")
        return number

    parse.__name__ = name
    return parse


def account_id(value: str) -> str:
    """SS58 account ids are passed to the node as given, after validation."""
    try:
        AccountAddress.from_ss58(value)
    except AddressFormatError as e:
        raise argparse.ArgumentTypeError(str(e)) from e
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smove", description="Move package tooling for Substrate nodes"
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log progress; repeat for debug output",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    bundle_parser = commands.add_parser("bundle", help="Create a package bundle")
    bundle_parser.add_argument(
        "-p", "--path", default=".", help="Package directory (default: current)"
    )
    bundle_parser.add_argument(
        "-n",
        "--name",
        help="Bundle name. By default it is the same as the name of the package.",
    )
    bundle_parser.add_argument(
        "--modules_exclude",
        nargs="*",
        default=[],
        metavar="MODULE",
        help="Names of modules to exclude from the bundling process "
        "(case-insensitive, with or without the .mv extension).",
    )
    bundle_parser.add_argument(
        "--no-build",
        action="store_true",
        help="Bundle the existing build artifacts without building the package",
    )
    bundle_parser.set_defaults(handler=bundle)

    transaction_parser = commands.add_parser(
        "create-transaction", help="Create a script transaction"
    )
    transaction_parser.add_argument(
        "-c",
        "--compiled-script-path",
        required=True,
        help="Path for the compiled Move script.",
    )
    transaction_parser.add_argument(
        "-p", "--path", default=".", help="Package directory (default: current)"
    )
    transaction_parser.add_argument(
        "--type-args",
        nargs="*",
        default=[],
        metavar="TYPE",
        help="Type arguments, e.g. u8 or vector<address>",
    )
    transaction_parser.add_argument(
        "--args",
        nargs="*",
        default=[],
        metavar="TYPE:VALUE",
        help="Arguments as <type>:<value> pairs, e.g. bool:true u8:[1,2]",
    )
    transaction_parser.set_defaults(handler=create_transaction)

    hash_parser = commands.add_parser(
        "call-hash", help="Generate call hash for script transaction"
    )
    hash_parser.add_argument(
        "-s",
        "--script-transaction-path",
        required=True,
        help="Path to script transaction file (*.mvt) for a script execution.",
    )
    hash_parser.set_defaults(handler=print_call_hash)

    node_parser = commands.add_parser("node", help="Access the node")
    node_parser.add_argument(
        "--url", default=NODE_URL, help=f"Node RPC endpoint (default: {NODE_URL})"
    )
    node_commands = node_parser.add_subparsers(dest="node_command", required=True)
    rpc_parser = node_commands.add_parser("rpc", help="Access node's RPC requests")
    rpc_parser.set_defaults(handler=rpc)
    rpc_commands = rpc_parser.add_subparsers(dest="rpc_command", required=True)

    publish_module = rpc_commands.add_parser(
        "estimate-gas-publish-module", help="Estimate gas for publishing modules"
    )
    publish_module.add_argument(
        "-a", "--account-id", required=True, type=account_id, help="SS58 account id"
    )
    publish_module.add_argument(
        "-m", "--module-path", required=True, help="Path to the compiled module"
    )
    publish_module.set_defaults(rpc_handler=estimate_gas_publish_module)

    publish_bundle = rpc_commands.add_parser(
        "estimate-gas-publish-bundle", help="Estimate gas for publishing a bundle"
    )
    publish_bundle.add_argument(
        "-a", "--account-id", required=True, type=account_id, help="SS58 account id"
    )
    publish_bundle.add_argument(
        "-b", "--bundle-path", required=True, help="Path to the bundle"
    )
    publish_bundle.set_defaults(rpc_handler=estimate_gas_publish_bundle)

    execute_script = rpc_commands.add_parser(
        "estimate-gas-execute-script", help="Estimate gas for executing script"
    )
    execute_script.add_argument(
        "-s",
        "--script-transaction-path",
        required=True,
        help="Path to the script transaction (created by create-transaction)",
    )
    execute_script.add_argument(
        "-a", "--account-id", type=account_id, help="SS58 account id"
    )
    execute_script.add_argument(
        "-c",
        "--cheque-limit",
        type=unsigned(MAX_U128, "u128"),
        help="Amount the account is willing to spend, required with --account-id",
    )
    execute_script.set_defaults(rpc_handler=estimate_gas_execute_script)

    weight = rpc_commands.add_parser("gas-to-weight", help="Convert gas to weight")
    weight.add_argument(
        "-g", "--gas", required=True, type=unsigned(MAX_U64, "u64"), help="Gas (u64)"
    )
    weight.set_defaults(rpc_handler=gas_to_weight)

    abi = rpc_commands.add_parser("get-module-abi", help="Get a move module's ABI")
    abi.add_argument("-a", "--address", required=True, help="Address of the module")
    abi.add_argument("-n", "--name", required=True, help="Name of the module")
    abi.set_defaults(rpc_handler=get_module_abi)

    return parser


async def main(args: List[str]) -> int:
    parser = build_parser()
    parsed = parser.parse_args(args)
    if (parsed.command, getattr(parsed, "rpc_command", None)) == (
        "node",
        "estimate-gas-execute-script",
    ) and (parsed.account_id is None) != (parsed.cheque_limit is None):
        parser.error("--account-id and --cheque-limit must be given together")

    logging.basicConfig(
        level=[logging.WARNING, logging.INFO, logging.DEBUG][min(parsed.verbose, 2)],
        format="%(levelname)s: %(message)s",
    )

    try:
        if inspect.iscoroutinefunction(parsed.handler):
            await parsed.handler(parsed)
        else:
            parsed.handler(parsed)
    except SmoveError as e:
        logging.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def run():
    sys.exit(asyncio.run(main(sys.argv[1:])))


class Test(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = self.tmp.name

    def tearDown(self):
        self.tmp.cleanup()

    def write(self, relative: str, data: bytes) -> str:
        path = os.path.join(self.root, relative)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
        return path

    async def run_cli(self, *args: str) -> Dict[str, Any]:
        stdout, stderr = io.StringIO(), io.StringIO()
        with contextlib.redirect_stdout(stdout), contextlib.redirect_stderr(stderr):
            status = await main(list(args))
        return {"status": status, "out": stdout.getvalue(), "err": stderr.getvalue()}

    def node(self, result: Any):
        """Serve every RPC request with `result`, recording the payloads."""
        self.requests: List[Dict[str, Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            payload = json.loads(request.content)
            self.requests.append(payload)
            body = {"jsonrpc": "2.0", "id": payload["id"], "result": result}
            return httpx.Response(200, json=body)

        real_client = RpcClient

        def client(url: str, client_config: Optional[ClientConfig] = None):
            return real_client(
                url, ClientConfig(http2=False), httpx.MockTransport(handler)
            )

        return mock.patch(f"{__name__}.RpcClient", side_effect=client)

    async def test_create_transaction(self):
        script = self.write("transfer.mv", BytecodeTest.binary([], b"\x00\x00\x01\x02"))
        result = await self.run_cli(
            "create-transaction",
            "--path",
            self.root,
            "--compiled-script-path",
            script,
            "--type-args",
            "u8",
            "--args",
            "u64:42",
            "bool:[true,false]",
        )
        self.assertEqual(result["status"], 0, result["err"])
        output_path = os.path.join(self.root, "transfer.mvt")
        self.assertIn(os.path.realpath(output_path), result["out"])

        transaction = ScriptTransaction.from_bytes(read_bytes(output_path))
        self.assertEqual(transaction.args[1], b"\x02\x01\x00")
        self.assertEqual([str(t) for t in transaction.type_args], ["u8"])

    async def test_create_transaction_in_package(self):
        self.write(MANIFEST_NAME, b'[package]\nname = "pkg"\n')
        script = self.write(
            "build/pkg/bytecode_scripts/main.mv",
            BytecodeTest.binary([], b"\x00\x00\x01"),
        )
        result = await self.run_cli(
            "create-transaction", "-p", self.root, "-c", script
        )
        self.assertEqual(result["status"], 0, result["err"])
        self.assertTrue(
            os.path.isfile(
                os.path.join(self.root, "build/pkg/script_transactions/main.mvt")
            )
        )

    async def test_create_transaction_errors(self):
        script = self.write("transfer.mv", BytecodeTest.binary([], b"\x00\x00\x01"))
        result = await self.run_cli(
            "create-transaction", "-p", self.root, "-c", script, "--args", "u8:[1,[2]]"
        )
        self.assertEqual(result["status"], 1)
        self.assertEqual(result["err"], "Error: Variable vector depth\n")

        result = await self.run_cli(
            "create-transaction", "-p", self.root, "-c", script + ".missing"
        )
        self.assertEqual(result["status"], 1)
        self.assertIn("Failure to read filename", result["err"])

    async def test_bundle(self):
        self.write(MANIFEST_NAME, b'[package]\nname = "pkg"\n')
        address = AccountAddress.from_hex("0xcafe")
        a, b, c = (ModuleId(address, name) for name in ["a", "b", "c"])
        std = ModuleId(AccountAddress.from_hex("0x1"), "vector")
        modules_dir = "build/pkg/bytecode_modules"
        code_a = BytecodeTest.module_binary(a, [b, std])
        code_b = BytecodeTest.module_binary(b, [c])
        self.write(f"{modules_dir}/a.mv", code_a)
        self.write(f"{modules_dir}/b.mv", code_b)
        self.write(f"{modules_dir}/C.mv", BytecodeTest.module_binary(c, []))
        self.write(f"{modules_dir}/dependencies/std/vector.mv", b"not a module")

        result = await self.run_cli(
            "bundle", "-p", self.root, "--no-build", "--modules_exclude", "c"
        )
        self.assertEqual(result["status"], 0, result["err"])
        output_path = os.path.join(self.root, "build/pkg/bundles/pkg.mvb")
        self.assertEqual(
            result["out"],
            f"Modules are bundled under: {os.path.realpath(output_path)}\n",
        )
        self.assertEqual(
            ModuleBundle.from_bytes(read_bytes(output_path)).modules, [code_b, code_a]
        )

        result = await self.run_cli(
            "bundle", "-p", self.root, "--no-build", "-n", "all"
        )
        self.assertEqual(result["status"], 0, result["err"])
        bundle = ModuleBundle.from_bytes(
            read_bytes(os.path.join(self.root, "build/pkg/bundles/all.mvb"))
        )
        self.assertEqual(len(bundle.modules), 3)

    async def test_bundle_without_manifest(self):
        result = await self.run_cli("bundle", "-p", self.root, "--no-build")
        self.assertEqual(result["status"], 1)
        self.assertTrue(result["err"].startswith("Error: "))

    async def test_call_hash(self):
        path = self.write("empty.mvt", b"")
        result = await self.run_cli("call-hash", "-s", path)
        self.assertEqual(
            result["out"],
            "Call hash: "
            "0x69217a3079908094e11121d042354a7c1f55b6482ca1a51e1b250dfd1ed0eef9\n",
        )

    async def test_estimate_gas_execute_script(self):
        path = self.write("main.mvt", b"\x01\x02")
        with self.node({"gas_used": 500, "vm_status_code": 4016}):
            result = await self.run_cli(
                "node",
                "--url",
                "http://node.test/",
                "rpc",
                "estimate-gas-execute-script",
                "-s",
                path,
            )
        self.assertEqual(result["status"], 0, result["err"])
        self.assertEqual(
            result["out"],
            "Estimated gas: Estimate (gas_used: 0, vm_status_code: ABORTED)\n",
        )
        self.assertEqual(self.requests[0]["method"], "mvm_estimateGasExecuteScript")
        self.assertEqual(self.requests[0]["params"], [[1, 2]])

    async def test_estimate_gas_publish_module(self):
        path = self.write("a.mv", b"\xff")
        alice = "5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY"
        with self.node({"gas_used": 77, "vm_status_code": 4001}):
            result = await self.run_cli(
                "node", "rpc", "estimate-gas-publish-module", "-a", alice, "-m", path
            )
        self.assertEqual(
            result["out"],
            "Estimated gas: Estimate (gas_used: 77, vm_status_code: EXECUTED)\n",
        )
        self.assertEqual(self.requests[0]["params"], [alice, [255]])

    async def test_gas_to_weight(self):
        with self.node({"ref_time": 2000, "proof_size": 0}):
            result = await self.run_cli("node", "rpc", "gas-to-weight", "--gas", "1")
        self.assertEqual(
            result["out"],
            "Value of 1 gas converted to weight has a value of "
            "Weight (ref_time: 2000, proof_size: 0)\n",
        )

    async def test_get_module_abi(self):
        with self.node(None):
            result = await self.run_cli(
                "node", "rpc", "get-module-abi", "--address", "0x1", "--name", "nope"
            )
        self.assertEqual(result["out"], "Module ABI: None\n")

    async def test_invalid_rpc_timeout(self):
        with mock.patch.dict(os.environ, {"SMOVE_RPC_TIMEOUT": "soon"}):
            result = await self.run_cli(
                "node", "--url", "http://node.test/", "rpc", "gas-to-weight", "-g", "1"
            )
        self.assertEqual(result["status"], 1)
        self.assertEqual(
            result["err"],
            "Error: Invalid SMOVE_RPC_TIMEOUT 'soon': expected a positive number\n",
        )

    async def test_rpc_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        real_client = RpcClient
        with mock.patch(
            f"{__name__}.RpcClient",
            side_effect=lambda url: real_client(
                url, ClientConfig(http2=False), httpx.MockTransport(handler)
            ),
        ):
            result = await self.run_cli("node", "rpc", "gas-to-weight", "--gas", "1")
        self.assertEqual(result["status"], 1)
        self.assertTrue(result["err"].startswith("Error: RPC result failure: "))

    def test_module_file_name(self):
        self.assertEqual(module_file_name("Coin"), "coin.mv")
        self.assertEqual(module_file_name("coin.MV"), "coin.mv")


if __name__ == "__main__":
    run()
