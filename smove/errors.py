# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Error types raised by smove.

Every failure in the argument encoders, the bytecode reader, the bundler and the
RPC client is reported through one of these exceptions. They all share the
`SmoveError` base so the command line layer can render a single-line diagnostic
and exit with a non-zero status without catching unrelated exceptions.
"""

from __future__ import annotations

from typing import List, Optional


class SmoveError(Exception):
    """Base class for all smove errors."""


class ParseError(SmoveError):
    """A literal or command line token could not be parsed."""


class DecodeError(SmoveError):
    """Hex or BCS data could not be decoded."""


class AddressFormatError(SmoveError):
    """Neither the SS58 nor the hex form of an address could be parsed."""


class DepthMismatchError(SmoveError):
    """Elements of a vector literal do not share the same nesting depth."""


class UnsupportedLiteralError(SmoveError):
    """A JSON literal (null or object) has no argument encoding."""


class TypeConversionError(SmoveError):
    """A type signature has no on-chain type tag representation."""


class BytecodeIntegrityError(SmoveError):
    """A compiled module or script is not a well-formed Move binary."""


class CyclicDependencyError(SmoveError):
    """Modules in a bundle depend on each other in a cycle."""

    cycle: List[str]

    def __init__(self, cycle: List[str]):
        super().__init__(f"Cyclic module dependency: {' -> '.join(cycle)}")
        self.cycle = cycle


class RpcError(SmoveError):
    """The node could not be reached or answered with an error."""

    status_code: Optional[int]
    code: Optional[int]

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[int] = None,
    ):
        super().__init__(f"RPC result failure: {message}")
        self.status_code = status_code
        self.code = code


class IoError(SmoveError):
    """Reading or writing an artifact failed."""


class ManifestError(SmoveError):
    """The Move.toml manifest is missing or malformed."""


class MoveCliError(SmoveError):
    """The external Move CLI is missing or its build failed."""
