import asyncio

import aiohttp
import orjson

from churnbench.errors import NoFundsAvailable
from churnbench.logging import Logger
from churnbench.logging.churnbench_logging_models import (
    LedgerDebug,
    LedgerInfo,
    LedgerWarning,
)
from churnbench.models import FeeHandle, WorkerIdentity
from churnbench.reliability import FEE_HANDLE_POLL_POLICY, BackoffPolicy

from .ledger_client import LedgerClient


class FaucetClient:
    """
    Funds worker identities and waits for a spendable fee handle.

    Funding is best effort: after the request attempts run out the client
    still polls the ledger, since the address may already hold coins.
    """

    def __init__(
        self,
        faucet_url: str,
        ledger_client: LedgerClient,
        request_attempts: int = 3,
        request_spacing: float = 0.5,
        settle_delay: float = 2.0,
        poll_attempts: int = 5,
        poll_policy: BackoffPolicy | None = None,
        request_timeout: float = 30.0,
        logger: Logger | None = None,
    ) -> None:
        self._faucet_url = faucet_url
        self._ledger_client = ledger_client
        self._request_attempts = request_attempts
        self._request_spacing = request_spacing
        self._settle_delay = settle_delay
        self._poll_attempts = poll_attempts
        self._poll_policy = poll_policy or FEE_HANDLE_POLL_POLICY
        self._timeout = aiohttp.ClientTimeout(total=request_timeout)
        self._logger = logger or Logger()

    async def fund(self, identity: WorkerIdentity) -> FeeHandle:
        address = identity.address

        async with self._logger.context(name="faucet") as ctx:
            funded = await self._request_funds(address, ctx)
            if not funded:
                await ctx.log(
                    LedgerWarning(
                        message=f"All faucet attempts failed for {address}, checking existing coins",
                        address=address,
                    )
                )

            if self._settle_delay > 0:
                await asyncio.sleep(self._settle_delay)

            for attempt in range(1, self._poll_attempts + 1):
                fee_handle = await self._ledger_client.get_fee_handle(address)
                if fee_handle is not None:
                    await ctx.log(
                        LedgerInfo(
                            message=f"Got gas coin for {address}: {fee_handle.handle}",
                            address=address,
                        )
                    )
                    return fee_handle

                if attempt < self._poll_attempts:
                    delay = self._poll_policy.delay_for(attempt)
                    await ctx.log(
                        LedgerDebug(
                            message=f"No coins found for {address} (attempt {attempt}), retrying in {delay:.1f}s",
                            address=address,
                        )
                    )
                    await asyncio.sleep(delay)

        raise NoFundsAvailable(
            f"No gas coins found for address {address} after {self._poll_attempts} attempts"
        )

    async def _request_funds(self, address: str, ctx) -> bool:
        payload = {
            "FixedAmountRequest": {
                "recipient": address,
            }
        }

        async with aiohttp.ClientSession(
            timeout=self._timeout,
            json_serialize=lambda data: orjson.dumps(data).decode(),
        ) as session:
            for attempt in range(1, self._request_attempts + 1):
                try:
                    async with session.post(self._faucet_url, json=payload) as response:
                        if 200 <= response.status < 300:
                            await ctx.log(
                                LedgerDebug(
                                    message=f"Faucet request succeeded for {address} (attempt {attempt})",
                                    address=address,
                                )
                            )
                            return True

                        await ctx.log(
                            LedgerWarning(
                                message=f"Faucet returned status {response.status} for {address} (attempt {attempt})",
                                address=address,
                            )
                        )

                except (aiohttp.ClientError, asyncio.TimeoutError) as err:
                    await ctx.log(
                        LedgerWarning(
                            message=f"Faucet request error for {address} (attempt {attempt}): {err}",
                            address=address,
                        )
                    )

                if attempt < self._request_attempts:
                    await asyncio.sleep(self._request_spacing)

        return False
