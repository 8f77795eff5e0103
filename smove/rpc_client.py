# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Asynchronous JSON-RPC client for the MoveVM pallet of a Substrate node.

The node exposes gas estimation for publishing modules and bundles and for
executing script transactions, gas to weight conversion and module ABI lookup.
Binary payloads are sent as JSON arrays of byte values; account ids are SS58
strings.

Examples:
    Estimating the cost of a script transaction::

        client = RpcClient("http://localhost:9944/")
        try:
            estimate = await client.estimate_gas_execute_script(script_tx)
            print(f"Estimated gas: {estimate}")
        finally:
            await client.close()

Errors:
    Every failure (transport errors, non-2xx responses, JSON-RPC error objects
    and malformed results) raises `RpcError`. Requests are not retried.
"""

from __future__ import annotations

import json
import logging
import unittest
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import httpx

from .common import rpc_timeout
from .errors import RpcError
from .metadata import Metadata


class StatusCode(Enum):
    """MoveVM status codes the node reports for an estimation."""

    EXECUTED = 4001
    OUT_OF_GAS = 4002
    RESOURCE_DOES_NOT_EXIST = 4003
    RESOURCE_ALREADY_EXISTS = 4004
    ABORTED = 4016
    ARITHMETIC_ERROR = 4017
    UNKNOWN_STATUS = 2**64 - 1

    @staticmethod
    def parse(value: Any) -> Union[StatusCode, int]:
        """Accept a status code by number or by name; unknown numbers are kept."""
        if isinstance(value, str):
            try:
                return StatusCode[value]
            except KeyError:
                raise RpcError(f"Unknown VM status code {value!r}") from None
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return StatusCode(value)
            except ValueError:
                return value
        raise RpcError(f"Invalid VM status code {value!r}")


def status_code_name(status: Union[StatusCode, int]) -> str:
    if isinstance(status, StatusCode):
        return status.name
    return f"STATUS_CODE({status})"


@dataclass
class Estimation:
    """Gas estimation result.

    The gas figure is only meaningful for executed calls, so any other status
    renders as zero gas used.
    """

    gas_used: int
    vm_status_code: Union[StatusCode, int]

    def __str__(self):
        gas_used = self.gas_used if self.vm_status_code == StatusCode.EXECUTED else 0
        return (
            f"Estimate (gas_used: {gas_used}, "
            f"vm_status_code: {status_code_name(self.vm_status_code)})"
        )

    @staticmethod
    def from_json(data: Any) -> Estimation:
        try:
            return Estimation(
                _unsigned(data["gas_used"]), StatusCode.parse(data["vm_status_code"])
            )
        except (KeyError, TypeError) as e:
            raise RpcError(f"Invalid estimation in response: {data!r}") from e


@dataclass
class Weight:
    """Substrate weight: reference execution time and proof size."""

    ref_time: int
    proof_size: int

    def __str__(self):
        return f"Weight (ref_time: {self.ref_time}, proof_size: {self.proof_size})"

    @staticmethod
    def from_json(data: Any) -> Weight:
        try:
            return Weight(_unsigned(data["ref_time"]), _unsigned(data["proof_size"]))
        except (KeyError, TypeError) as e:
            raise RpcError(f"Invalid weight in response: {data!r}") from e


def _unsigned(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise RpcError(f"Expected an unsigned integer, got {value!r}")
    return value


def _byte_list(value: Any) -> bytes:
    if not isinstance(value, list):
        raise RpcError(f"Expected a byte array, got {value!r}")
    try:
        return bytes(value)
    except (TypeError, ValueError) as e:
        raise RpcError(f"Invalid byte array in response: {e}") from e


@dataclass
class ClientConfig:
    """HTTP parameters of the RPC client."""

    timeout: float = field(default_factory=rpc_timeout)
    http2: bool = True


class RpcClient:
    """Client for the ``mvm_*`` RPC methods of a node.

    Attributes:
        client: Underlying HTTP client.
        base_url: URL of the node's JSON-RPC endpoint.
    """

    client: httpx.AsyncClient
    client_config: ClientConfig
    base_url: str
    _request_id: int

    def __init__(
        self,
        base_url: str,
        client_config: Optional[ClientConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        client_config = client_config or ClientConfig()
        # No pool timeout, a single request is in flight at a time.
        timeout = httpx.Timeout(client_config.timeout, pool=None)
        headers = {Metadata.CLIENT_HEADER: Metadata.get_client_header_val()}
        self.client = httpx.AsyncClient(
            http2=client_config.http2,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )
        self.client_config = client_config
        self._request_id = 0

    async def close(self):
        await self.client.aclose()

    async def estimate_gas_publish_module(
        self, account_id: str, module: bytes
    ) -> Estimation:
        result = await self._request(
            "mvm_estimateGasPublishModule", [account_id, list(module)]
        )
        return Estimation.from_json(result)

    async def estimate_gas_publish_bundle(
        self, account_id: str, bundle: bytes
    ) -> Estimation:
        result = await self._request(
            "mvm_estimateGasPublishBundle", [account_id, list(bundle)]
        )
        return Estimation.from_json(result)

    async def estimate_gas_execute_script(
        self,
        script_transaction: bytes,
        account_id: Optional[str] = None,
        cheque_limit: Optional[int] = None,
    ) -> Estimation:
        """Estimate gas for executing an encoded script transaction.

        Nodes that estimate on behalf of an account also take the account id and
        the cheque limit the account is willing to spend; both or neither must
        be given.
        """
        params: List[Any] = [list(script_transaction)]
        if account_id is not None or cheque_limit is not None:
            if account_id is None or cheque_limit is None:
                raise ValueError("account_id and cheque_limit must be given together")
            params = [account_id, list(script_transaction), cheque_limit]
        result = await self._request("mvm_estimateGasExecuteScript", params)
        return Estimation.from_json(result)

    async def gas_to_weight(self, gas: int) -> Weight:
        result = await self._request("mvm_gasToWeight", [gas])
        return Weight.from_json(result)

    async def get_module_abi(self, address: str, name: str) -> Optional[bytes]:
        """Fetch the ABI of module `address::name`, None if there is no such module."""
        result = await self._request("mvm_getModuleABI", [address, name])
        if result is None:
            return None
        return _byte_list(result)

    async def _request(self, method: str, params: List[Any]) -> Any:
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }
        logging.info(f"Calling {method} on {self.base_url}")

        try:
            response = await self.client.post(self.base_url, json=payload)
        except httpx.HTTPError as e:
            raise RpcError(f"{type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            raise RpcError(
                f"{response.status_code} {response.text}", response.status_code
            )
        try:
            body = response.json()
        except ValueError as e:
            raise RpcError(
                f"Invalid JSON in response: {e}", response.status_code
            ) from e

        if not isinstance(body, dict):
            raise RpcError(f"Unexpected response: {body!r}", response.status_code)
        error = body.get("error")
        if error is not None:
            if isinstance(error, dict):
                code = error.get("code")
                raise RpcError(
                    f"{error.get('message')} (code: {code})",
                    response.status_code,
                    code if isinstance(code, int) else None,
                )
            raise RpcError(str(error), response.status_code)
        if "result" not in body:
            raise RpcError("Response has no result", response.status_code)

        logging.debug(f"{method} returned {body['result']!r}")
        return body["result"]


class Test(unittest.IsolatedAsyncioTestCase):
    URL = "http://node.test/"

    def node(self, responses: Dict[str, Any], status_code: int = 200) -> RpcClient:
        """A client whose requests are answered from `responses` by method name."""
        self.requests: List[Dict[str, Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            payload = json.loads(request.content)
            self.requests.append(payload)
            body = {"jsonrpc": "2.0", "id": payload["id"]}
            body.update(responses[payload["method"]])
            return httpx.Response(status_code, json=body)

        client = RpcClient(
            self.URL, ClientConfig(http2=False), httpx.MockTransport(handler)
        )
        self.addAsyncCleanup(client.close)
        return client

    async def test_estimate_publish_module(self):
        client = self.node(
            {
                "mvm_estimateGasPublishModule": {
                    "result": {"gas_used": 1234, "vm_status_code": 4001}
                }
            }
        )
        estimate = await client.estimate_gas_publish_module("5Grw", b"\x01\x02")
        self.assertEqual(estimate, Estimation(1234, StatusCode.EXECUTED))
        self.assertEqual(
            str(estimate), "Estimate (gas_used: 1234, vm_status_code: EXECUTED)"
        )
        self.assertEqual(self.requests[0]["params"], ["5Grw", [1, 2]])
        self.assertEqual(self.requests[0]["jsonrpc"], "2.0")

    async def test_failed_estimation_shows_no_gas(self):
        client = self.node(
            {
                "mvm_estimateGasPublishBundle": {
                    "result": {"gas_used": 500, "vm_status_code": "OUT_OF_GAS"}
                }
            }
        )
        estimate = await client.estimate_gas_publish_bundle("5Grw", b"")
        self.assertEqual(estimate.gas_used, 500)
        self.assertEqual(
            str(estimate), "Estimate (gas_used: 0, vm_status_code: OUT_OF_GAS)"
        )

    async def test_unknown_status_code(self):
        self.assertEqual(
            str(Estimation(500, StatusCode.parse(1234))),
            "Estimate (gas_used: 0, vm_status_code: STATUS_CODE(1234))",
        )

    async def test_execute_script_params(self):
        result = {"result": {"gas_used": 7, "vm_status_code": 4001}}
        client = self.node({"mvm_estimateGasExecuteScript": result})
        await client.estimate_gas_execute_script(b"\x05")
        await client.estimate_gas_execute_script(b"\x05", "5Grw", 1000)
        self.assertEqual(self.requests[0]["params"], [[5]])
        self.assertEqual(self.requests[1]["params"], ["5Grw", [5], 1000])
        with self.assertRaises(ValueError):
            await client.estimate_gas_execute_script(b"", account_id="5Grw")

    async def test_gas_to_weight(self):
        client = self.node(
            {"mvm_gasToWeight": {"result": {"ref_time": 10, "proof_size": 0}}}
        )
        weight = await client.gas_to_weight(42)
        self.assertEqual(str(weight), "Weight (ref_time: 10, proof_size: 0)")
        self.assertEqual(self.requests[0]["params"], [42])

    async def test_get_module_abi(self):
        client = self.node({"mvm_getModuleABI": {"result": [0xAB, 0xCD]}})
        self.assertEqual(await client.get_module_abi("0x1", "vector"), b"\xab\xcd")

        client = self.node({"mvm_getModuleABI": {"result": None}})
        self.assertIsNone(await client.get_module_abi("0x1", "missing"))

    async def test_json_rpc_error(self):
        client = self.node(
            {
                "mvm_gasToWeight": {
                    "error": {"code": -32602, "message": "Invalid params"}
                }
            }
        )
        with self.assertRaises(RpcError) as cm:
            await client.gas_to_weight(1)
        self.assertEqual(cm.exception.code, -32602)
        self.assertTrue(str(cm.exception).startswith("RPC result failure: "))

    async def test_http_error(self):
        client = self.node({"mvm_gasToWeight": {}}, status_code=503)
        with self.assertRaises(RpcError) as cm:
            await client.gas_to_weight(1)
        self.assertEqual(cm.exception.status_code, 503)

    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        client = RpcClient(
            self.URL, ClientConfig(http2=False), httpx.MockTransport(handler)
        )
        self.addAsyncCleanup(client.close)
        with self.assertRaises(RpcError) as cm:
            await client.gas_to_weight(1)
        self.assertIn("Connection refused", str(cm.exception))

    async def test_malformed_result(self):
        client = self.node({"mvm_gasToWeight": {"result": {"ref_time": -1}}})
        with self.assertRaises(RpcError):
            await client.gas_to_weight(1)


if __name__ == "__main__":
    unittest.main()
