"""EVM JSON-RPC client with fallback support and local signing."""
from __future__ import annotations

import asyncio
import logging
import ssl
from decimal import Decimal, InvalidOperation
from typing import Any, Sequence

import aiohttp
import certifi
from eth_account import Account
from eth_utils import to_checksum_address

from ...config import AccountConfig, ChainConfig
from ...interfaces.chain import ChainReadError
from ...models import TxOutcome
from . import abi

logger = logging.getLogger(__name__)


class RpcError(RuntimeError):
    """The node answered with a JSON-RPC error object."""


class EvmClient:
    """EVM RPC client with automatic endpoint fallback.

    Transactions are signed locally with the configured key and this client
    waits for each receipt before returning, so callers can rely on the
    state change being mined when ``send`` resolves successfully.
    """

    def __init__(
        self,
        config: ChainConfig,
        account: AccountConfig,
        token_decimals: dict[str, int],
    ) -> None:
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.current_rpc_index = 0
        self.receipt_timeout = config.receipt_timeout
        self.receipt_poll_interval = config.receipt_poll_interval
        self.gas_limit_multiplier = config.gas_limit_multiplier
        self._chain_id = config.chain_id
        self._token_decimals = dict(token_decimals)
        self._signer = Account.from_key(account.private_key)

    @property
    def address(self) -> str:
        return self._signer.address

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def rpc_call(self, method: str, params: list[Any]) -> Any:
        """Make RPC call with fallback to alternative endpoints."""
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}

        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.post(
                        rpc_url,
                        json=payload,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        result = await response.json()
            except Exception as e:
                last_error = e
                logger.warning("RPC endpoint #%d failed: %s", rpc_index, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

            if rpc_index != self.current_rpc_index:
                logger.info("Switched to RPC endpoint #%d", rpc_index)
                self.current_rpc_index = rpc_index

            # A node-level error is the chain's answer, not a transport fault.
            if "error" in result:
                raise RpcError(f"RPC Error: {result['error']}")
            return result.get("result")

        raise RuntimeError(f"All RPC endpoints failed. Last error: {last_error}")

    # ------------------------------------------------------------------
    # Gateway operations
    # ------------------------------------------------------------------

    async def call(
        self,
        address: str,
        method: str,
        args: Sequence[Any] = (),
        returns: Sequence[str] = ("uint256",),
    ) -> Any:
        """Read-only contract call; single return values are unwrapped."""
        try:
            data = abi.encode_call(method, args)
            raw = await self.rpc_call("eth_call", [{"to": address, "data": data}, "latest"])
            values = abi.decode_result(returns, raw or "0x")
        except Exception as e:
            raise ChainReadError(f"{method} on {address} failed: {e}") from e

        if len(values) == 1:
            return values[0]
        return values

    async def send(
        self,
        address: str,
        method: str,
        args: Sequence[Any],
        from_address: str,
    ) -> TxOutcome:
        """Sign, submit and wait for a state-changing call.

        Never raises for transaction failures; they come back as a failed
        TxOutcome.
        """
        if from_address.lower() != self._signer.address.lower():
            return TxOutcome.failure(
                f"Sender {from_address} is not the configured signer"
            )

        tx_hash: str | None = None
        try:
            address = to_checksum_address(address)
            data = abi.encode_call(method, args)
            tx = {"from": self._signer.address, "to": address, "data": data}

            gas_estimate = abi.hex_to_int(await self.rpc_call("eth_estimateGas", [tx]))
            nonce = abi.hex_to_int(
                await self.rpc_call(
                    "eth_getTransactionCount", [self._signer.address, "pending"]
                )
            )
            gas_price = abi.hex_to_int(await self.rpc_call("eth_gasPrice", []))
            chain_id = await self._get_chain_id()

            unsigned_tx = {
                "to": address,
                "data": data,
                "value": 0,
                "gas": int(gas_estimate * self.gas_limit_multiplier),
                "gasPrice": gas_price,
                "nonce": nonce,
                "chainId": chain_id,
            }
            tx_hash = await self.rpc_call(
                "eth_sendRawTransaction", [self._sign(unsigned_tx)]
            )
            logger.info("Submitted %s to %s: %s", method, address, tx_hash)

            receipt = await self._wait_for_receipt(tx_hash)
        except Exception as e:
            logger.error("%s on %s failed: %s", method, address, e)
            return TxOutcome.failure(str(e), tx_hash=tx_hash)

        block_number = abi.hex_to_int(receipt.get("blockNumber", "0x0"))
        if abi.hex_to_int(receipt.get("status", "0x0")) != 1:
            logger.error("%s reverted in block %d: %s", method, block_number, tx_hash)
            return TxOutcome.failure("transaction reverted", tx_hash=tx_hash)

        return TxOutcome.success(tx_hash, block_number=block_number)

    def to_base_units(self, amount: Decimal | str | int, symbol: str) -> int:
        """Convert a decimal token amount into integer base units."""
        if symbol not in self._token_decimals:
            raise ValueError(f"Unknown token symbol: {symbol}")
        try:
            value = Decimal(str(amount)) * (Decimal(10) ** self._token_decimals[symbol])
        except InvalidOperation as e:
            raise ValueError(f"Invalid amount: {amount!r}") from e

        if not value.is_finite() or value < 0:
            raise ValueError(f"Amount must be a non-negative number: {amount!r}")
        if value != value.to_integral_value():
            raise ValueError(f"{amount} {symbol} is finer than the token's precision")
        return int(value)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = abi.hex_to_int(await self.rpc_call("eth_chainId", []))
        return self._chain_id

    def _sign(self, unsigned_tx: dict[str, Any]) -> str:
        signed = self._signer.sign_transaction(unsigned_tx)
        return "0x" + bytes(signed.raw_transaction).hex()

    async def _wait_for_receipt(self, tx_hash: str) -> dict[str, Any]:
        """Poll until the transaction is mined or the receipt timeout elapses."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.receipt_timeout

        while True:
            try:
                receipt = await self.rpc_call("eth_getTransactionReceipt", [tx_hash])
            except RpcError:
                raise
            except Exception as e:
                # Already submitted; a dropped poll says nothing about the tx.
                logger.warning("Receipt poll for %s failed: %s", tx_hash, e)
                receipt = None
            if receipt:
                return receipt
            if loop.time() >= deadline:
                raise TimeoutError(
                    f"No receipt for {tx_hash} after {self.receipt_timeout}s"
                )
            await asyncio.sleep(self.receipt_poll_interval)
