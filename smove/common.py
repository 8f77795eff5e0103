# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Configuration defaults, each overridable through the environment.

Environment Variables:
    SMOVE_NODE_URL: JSON-RPC endpoint of the node (``node --url`` takes precedence)
    MOVE_CLI_PATH: Move CLI executable used to build packages
    SMOVE_RPC_TIMEOUT: Timeout in seconds for a single RPC request, read when a
        client is created
"""

import math
import os
import unittest
from unittest import mock

from .errors import ParseError

NODE_URL = os.getenv("SMOVE_NODE_URL", "http://localhost:9944/")

MOVE_CLI_PATH = os.getenv("MOVE_CLI_PATH", "move")

DEFAULT_RPC_TIMEOUT = 60.0


def rpc_timeout() -> float:
    """Read ``SMOVE_RPC_TIMEOUT``.

    Raises:
        ParseError: If the value is not a positive number of seconds.
    """
    value = os.getenv("SMOVE_RPC_TIMEOUT")
    if value is None:
        return DEFAULT_RPC_TIMEOUT
    try:
        timeout = float(value)
    except ValueError:
        timeout = math.nan
    if not math.isfinite(timeout) or timeout <= 0:
        raise ParseError(
            f"Invalid SMOVE_RPC_TIMEOUT {value!r}: expected a positive number"
        )
    return timeout


class Test(unittest.TestCase):
    def test_rpc_timeout(self):
        with mock.patch.dict(os.environ):
            os.environ.pop("SMOVE_RPC_TIMEOUT", None)
            self.assertEqual(rpc_timeout(), DEFAULT_RPC_TIMEOUT)
            os.environ["SMOVE_RPC_TIMEOUT"] = "2.5"
            self.assertEqual(rpc_timeout(), 2.5)
            for value in ["soon", "", "0", "-1", "nan", "inf"]:
                os.environ["SMOVE_RPC_TIMEOUT"] = value
                with self.assertRaises(ParseError, msg=value):
                    rpc_timeout()


if __name__ == "__main__":
    unittest.main()
