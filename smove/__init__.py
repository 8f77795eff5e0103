# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
smove - Move package tooling for Substrate nodes running the MoveVM pallet.

smove prepares compiled Move code for the chain and talks to the node about it:

- **Bundles**: Order the compiled modules of a package by their dependencies
  and pack them into one ``.mvb`` bundle that can be published at once
- **Script transactions**: Encode ``<type>:<value>`` command line arguments and
  type arguments in BCS and combine them with a compiled script into a ``.mvt``
  transaction
- **Node RPC**: Gas estimation for publishing and execution, gas to weight
  conversion and module ABI lookup

Modules:
    account_address: 32-byte account addresses in hex and SS58 form
    bcs: Binary Canonical Serialization
    bundle: Module ordering and bundles
    bytecode: Move binary format reader
    cli: Command-line interface
    move_type: Type signature parser
    rpc_client: JSON-RPC client
    script_args: Command line argument encoding
    script_transaction: Script transactions
"""
