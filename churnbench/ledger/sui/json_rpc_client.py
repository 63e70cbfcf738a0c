import asyncio
import base64
from typing import Any, Sequence

import aiohttp
import orjson

from churnbench.errors import LedgerRpcError, SubmissionFailure
from churnbench.ledger.ledger_client import LedgerClient
from churnbench.models import (
    CreateN,
    FeeHandle,
    Operation,
    ResourceChange,
    SubmitResult,
    TrackedResource,
    UpdateBatch,
    WorkerIdentity,
)

EXECUTE_OPTIONS = {
    "showEffects": True,
    "showObjectChanges": True,
}

REQUEST_TYPE = "WaitForEffectsCert"


class MoveFunctions:
    __slots__ = ("create", "update")

    def __init__(self, large_payload: bool = False) -> None:
        if large_payload:
            self.create = "create_blob_batch"
            self.update = "update_blob"

        else:
            self.create = "create_batch"
            self.update = "increment_simple"


class SuiJsonRpcClient(LedgerClient):
    """
    Ledger client speaking Sui JSON-RPC over aiohttp.

    Transactions are assembled by the node through ``unsafe_batchTransaction``
    and signed locally, so no BCS encoding lives in this process.
    """

    def __init__(
        self,
        rpc_url: str,
        package_id: str,
        module: str = "io_churn",
        gas_budget: int = 500_000_000,
        large_payload: bool = False,
        request_timeout: float = 30.0,
    ) -> None:
        self._rpc_url = rpc_url
        self._package_id = package_id
        self._module = module
        self._gas_budget = gas_budget
        self._functions = MoveFunctions(large_payload=large_payload)
        self._timeout = aiohttp.ClientTimeout(total=request_timeout)
        self._session: aiohttp.ClientSession | None = None
        self._request_id = 0

    @property
    def rpc_url(self) -> str:
        return self._rpc_url

    async def connect(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                json_serialize=lambda data: orjson.dumps(data).decode(),
            )

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

        self._session = None

    async def _call(self, method: str, params: list[Any]) -> Any:
        if self._session is None or self._session.closed:
            await self.connect()

        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }

        try:
            async with self._session.post(self._rpc_url, json=payload) as response:
                response.raise_for_status()
                body = await response.json(loads=orjson.loads, content_type=None)

        except (aiohttp.ClientError, asyncio.TimeoutError) as err:
            raise LedgerRpcError(method, None, str(err) or type(err).__name__) from err

        if not isinstance(body, dict):
            raise LedgerRpcError(method, None, "Malformed JSON-RPC response")

        error = body.get("error")
        if error:
            raise LedgerRpcError(
                method,
                error.get("code"),
                error.get("message", "unknown error"),
            )

        return body.get("result")

    async def get_reference_gas_price(self) -> int:
        return int(await self._call("suix_getReferenceGasPrice", []))

    async def get_fee_handle(self, address: str) -> FeeHandle | None:
        coins = await self._call("suix_getCoins", [address, None, None, None])
        data = (coins or {}).get("data") or []
        if len(data) < 1:
            return None

        coin = max(data, key=lambda entry: int(entry.get("balance", 0)))
        return FeeHandle(
            handle=coin["coinObjectId"],
            version=int(coin["version"]),
            fingerprint=coin["digest"],
        )

    async def submit_batch(
        self,
        identity: WorkerIdentity,
        fee_handle: FeeHandle,
        operation: Operation,
    ) -> SubmitResult:
        transaction = await self._call(
            "unsafe_batchTransaction",
            [
                identity.address,
                self._build_calls(operation),
                fee_handle.handle,
                str(self._gas_budget),
                None,
            ],
        )

        tx_bytes = transaction["txBytes"]
        signature = identity.sign_transaction(base64.b64decode(tx_bytes))

        response = await self._call(
            "sui_executeTransactionBlock",
            [
                tx_bytes,
                [signature],
                EXECUTE_OPTIONS,
                REQUEST_TYPE,
            ],
        )

        return self._parse_response(response)

    def _build_calls(self, operation: Operation) -> list[dict[str, Any]]:
        if isinstance(operation, CreateN):
            return [
                self._move_call(
                    self._functions.create,
                    [str(operation.count)],
                )
            ]

        elif isinstance(operation, UpdateBatch):
            if operation.count < 1:
                raise SubmissionFailure("Update batch has no resources")

            return [
                self._move_call(
                    self._functions.update,
                    [resource.handle],
                )
                for resource in operation.resources
            ]

        raise TypeError(f"Unsupported operation: {operation!r}")

    def _move_call(self, function: str, arguments: list[str]) -> dict[str, Any]:
        return {
            "moveCallRequestParams": {
                "packageObjectId": self._package_id,
                "module": self._module,
                "function": function,
                "typeArguments": [],
                "arguments": arguments,
            }
        }

    def _parse_response(self, response: dict[str, Any] | None) -> SubmitResult:
        effects = (response or {}).get("effects")
        if effects is None:
            raise SubmissionFailure("Transaction response carried no effects")

        status = effects.get("status", {})
        if status.get("status") != "success":
            raise SubmissionFailure(
                f"Transaction failed: {status.get('error', 'unknown error')}"
            )

        gas_reference = effects["gasObject"]["reference"]
        new_fee_handle = FeeHandle(
            handle=gas_reference["objectId"],
            version=int(gas_reference["version"]),
            fingerprint=gas_reference["digest"],
        )

        changes: list[ResourceChange] = []
        for change in response.get("objectChanges") or []:
            kind = change.get("type")
            if kind not in ("created", "mutated"):
                continue

            if change["objectId"] == new_fee_handle.handle:
                continue

            changes.append(
                ResourceChange(
                    kind=kind,
                    handle=change["objectId"],
                    version=int(change["version"]),
                    fingerprint=change["digest"],
                )
            )

        return SubmitResult(
            new_fee_handle=new_fee_handle,
            effects=changes,
        )

    async def query_resources(
        self,
        handles: Sequence[str],
    ) -> list[TrackedResource | None]:
        if len(handles) < 1:
            return []

        responses = await self._call(
            "sui_multiGetObjects",
            [list(handles), {"showOwner": True}],
        )

        resources: list[TrackedResource | None] = []
        for response in responses or []:
            data = response.get("data")
            if data is None:
                resources.append(None)
                continue

            resources.append(
                TrackedResource(
                    handle=data["objectId"],
                    version=int(data["version"]),
                    fingerprint=data["digest"],
                )
            )

        return resources
