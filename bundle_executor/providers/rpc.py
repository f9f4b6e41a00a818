"""
JSON-RPC chain client.

Implements the ChainClient protocol (chain id, gas estimation) plus the
receipt lookups a signer needs to wait for confirmations.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from .base import Provider
from ..config import settings
from ..services.address import parse_quantity


logger = logging.getLogger(__name__)


class RpcError(Exception):
    """JSON-RPC provider error."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.code = code
        self.data = data


class JsonRpcProvider(Provider):
    name = "json_rpc"

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        timeout_s: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.rpc_url = rpc_url or settings.rpc_url
        self.timeout_s = timeout_s or settings.request_timeout_seconds
        self._client = client
        self._request_id = 0

    async def ready(self) -> bool:
        return bool(self.rpc_url)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "disabled", "reason": "RPC URL not configured"}

        try:
            chain_id = await self.get_chain_id()
            return {"status": "healthy", "chainId": chain_id}
        except Exception as exc:
            return {"status": "error", "reason": str(exc)}

    async def get_chain_id(self) -> int:
        return parse_quantity(await self._rpc_call("eth_chainId", []))

    async def block_number(self) -> int:
        return parse_quantity(await self._rpc_call("eth_blockNumber", []))

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        call = {k: v for k, v in tx.items() if k in ("from", "to", "data", "value") and v is not None}
        if "value" in call:
            call["value"] = hex(parse_quantity(call["value"]))
        result = await self._rpc_call("eth_estimateGas", [call])
        return parse_quantity(result)

    async def send_raw_transaction(self, raw_tx: str) -> "PendingTransaction":
        tx_hash = await self._rpc_call("eth_sendRawTransaction", [raw_tx])
        if not isinstance(tx_hash, str):
            raise RpcError("Invalid response for eth_sendRawTransaction")
        return PendingTransaction(tx_hash, self)

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        receipt = await self._rpc_call("eth_getTransactionReceipt", [tx_hash])
        if not receipt:
            return None
        return {
            "transactionHash": receipt.get("transactionHash") or tx_hash,
            "status": parse_quantity(receipt.get("status"), default=0),
            "blockNumber": parse_quantity(receipt.get("blockNumber")) if receipt.get("blockNumber") else None,
            "gasUsed": parse_quantity(receipt.get("gasUsed")) if receipt.get("gasUsed") else None,
        }

    async def wait_for_receipt(
        self,
        tx_hash: str,
        confirmations: int = 1,
        poll_interval: float = 2.0,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Poll until ``tx_hash`` is mined with ``confirmations`` blocks on top.

        Waits indefinitely unless ``timeout`` is given.

        Raises:
            asyncio.TimeoutError: If ``timeout`` elapses first
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None

        while True:
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt and receipt.get("blockNumber") is not None:
                if confirmations <= 1:
                    return receipt
                head = await self.block_number()
                if head - receipt["blockNumber"] + 1 >= confirmations:
                    return receipt

            if deadline is not None and loop.time() >= deadline:
                raise asyncio.TimeoutError(f"Transaction {tx_hash} not confirmed after {timeout}s")
            await asyncio.sleep(poll_interval)

    async def aclose(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        if not self._client or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)

        self._request_id += 1
        response = await self._client.post(
            self.rpc_url,
            json={"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params},
        )
        response.raise_for_status()
        payload = response.json()
        if "error" in payload:
            error = payload["error"] or {}
            message = error.get("message") if isinstance(error, dict) else str(error)
            logger.debug(f"RPC {method} failed: {error}")
            raise RpcError(
                f"RPC error: {message}",
                code=error.get("code") if isinstance(error, dict) else None,
                data=error.get("data") if isinstance(error, dict) else None,
            )
        return payload.get("result")


class PendingTransaction:
    """SentTransaction handle backed by receipt polling."""

    def __init__(self, tx_hash: str, provider: JsonRpcProvider):
        self.hash = tx_hash
        self._provider = provider

    async def wait(self, confirmations: int = 1) -> Dict[str, Any]:
        return await self._provider.wait_for_receipt(self.hash, confirmations)
