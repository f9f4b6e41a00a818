"""
Safe Transaction Service provider.

Implements the SafeAdapter protocol over the service's REST API:
- Owner -> Safes discovery and next-nonce lookups
- Building the Safe transaction for a bundle (MultiSendCallsOnly when >1 call)
- Posting a signed proposal so it shows up in the Safe UI queue

Computing and signing the Safe transaction hash is delegated to an injected
SafeTxSigner; without one, ``execute`` reports failure and the operator falls
back to uploading the bundle through the Safe app.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

import httpx

from .base import Provider
from ..config import Settings, settings as default_settings
from ..core.execution.errors import CollaboratorError
from ..core.execution.models import SubmissionRequest
from ..core.execution.multisend import build_multisend_call_data
from ..core.multisig.models import safe_queue_url
from ..services.address import checksum_address, parse_quantity


logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
_HASH_MISMATCH_RE = re.compile(r"Contract-transaction-hash=(0x[0-9a-fA-F]+)")


class SafeServiceError(CollaboratorError):
    """Safe Transaction Service error."""

    def __init__(self, message: str):
        super().__init__(message, collaborator="safe_transaction_service")


class SafeTxSigner(Protocol):
    """Computes the EIP-712 Safe transaction hash and signs it for the proposer."""

    async def sign(
        self,
        safe_address: str,
        safe_tx: Mapping[str, Any],
        signer_address: str,
        password: Optional[str],
    ) -> Tuple[str, str]:
        """Return ``(safe_tx_hash, signature)``."""
        ...

    async def sign_hash(self, safe_tx_hash: str, signer_address: str, password: Optional[str]) -> str:
        ...


def format_safe_transactions(bundle: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Calls of a bundle as Safe meta-transactions (CALL operation)."""
    bundle_data = bundle.get("bundleData")
    if isinstance(bundle_data, Mapping) and isinstance(bundle_data.get("transactions"), list):
        entries = bundle_data["transactions"]
    elif isinstance(bundle_data, list):
        entries = bundle_data
    elif isinstance(bundle.get("transactions"), list):
        entries = bundle["transactions"]
    else:
        raise SafeServiceError("Unsupported bundle format for Safe transaction")

    return [
        {
            "to": tx.get("to"),
            "value": str(parse_quantity(tx.get("value"))),
            "data": tx.get("data") or "0x",
            "operation": 0,
        }
        for tx in entries
        if isinstance(tx, Mapping)
    ]


class SafeTransactionService(Provider):
    name = "safe_transaction_service"

    def __init__(
        self,
        tx_signer: Optional[SafeTxSigner] = None,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings or default_settings
        self.service_url = self.settings.safe_service_url.rstrip("/")
        self.timeout_s = self.settings.request_timeout_seconds
        self.tx_signer = tx_signer
        self._client = client

    async def ready(self) -> bool:
        return bool(self.service_url)

    async def health_check(self) -> Dict[str, Any]:
        try:
            about = await self._request("GET", "/v1/about/")
            return {"status": "healthy", "version": about.get("version") if isinstance(about, dict) else None}
        except Exception as exc:
            return {"status": "error", "reason": str(exc)}

    def transaction_url(self, safe_address: str) -> str:
        return safe_queue_url(checksum_address(safe_address), self.settings)

    async def get_safes_by_owner(self, owner_address: str) -> Dict[str, Any]:
        try:
            data = await self._request("GET", f"/v1/owners/{owner_address}/safes/")
        except Exception as exc:
            logger.warning(f"Safe owner lookup failed for {owner_address}: {exc}")
            return {"success": False, "safes": [], "message": f"Error in Safe Service: {exc}"}

        safes = data.get("safes") if isinstance(data, dict) else None
        if safes:
            return {"success": True, "safes": list(safes), "message": f"Found {len(safes)} Safe(s) for this owner"}
        return {"success": True, "safes": [], "message": "No Safes found for this owner"}

    async def get_next_nonce(self, safe_address: str) -> Dict[str, Any]:
        try:
            data = await self._request("GET", f"/v1/safes/{safe_address}/")
        except Exception as exc:
            return {"success": False, "message": f"Failed to get next nonce: {exc}"}

        if isinstance(data, dict) and data.get("nonce") is not None:
            nonce = parse_quantity(data["nonce"])
            return {"success": True, "nonce": nonce, "message": f"Nonce retrieved: {nonce}"}
        return {"success": False, "message": "Unexpected response format from Safe service"}

    def build_safe_transaction(self, calls: List[Dict[str, Any]], nonce: int) -> Dict[str, Any]:
        """One Safe transaction for ``calls``; several calls go through MultiSendCallsOnly."""
        if not calls:
            raise SafeServiceError("No transactions in bundle")

        if len(calls) == 1:
            to, value, data = calls[0]["to"], calls[0]["value"], calls[0]["data"]
        else:
            requests = [
                SubmissionRequest(to=c["to"], data=c["data"], value=parse_quantity(c["value"]))
                for c in calls
            ]
            to = self.settings.multisend_calls_only_address
            value = "0"
            data = build_multisend_call_data(requests)
            logger.info(f"Bundling {len(calls)} transactions using MultiSendCallsOnly {to}")

        return {
            "to": checksum_address(to),
            "value": value,
            "data": data,
            "operation": 0,
            "safeTxGas": 0,
            "baseGas": 0,
            "gasPrice": 0,
            "gasToken": ZERO_ADDRESS,
            "refundReceiver": ZERO_ADDRESS,
            "nonce": nonce,
        }

    async def propose_transaction(
        self,
        safe_address: str,
        safe_tx: Mapping[str, Any],
        safe_tx_hash: str,
        signature: str,
        sender_address: str,
    ) -> Any:
        payload = {
            **safe_tx,
            "safeAddress": checksum_address(safe_address),
            "to": checksum_address(safe_tx["to"]),
            "gasToken": checksum_address(safe_tx["gasToken"]),
            "refundReceiver": checksum_address(safe_tx["refundReceiver"]),
            "safeTxHash": safe_tx_hash,
            "contractTransactionHash": safe_tx_hash,
            "sender": checksum_address(sender_address),
            "signature": signature,
            "origin": "bundle-executor",
        }
        return await self._request("POST", f"/v1/safes/{safe_address}/multisig-transactions/", json=payload)

    async def execute(self, proposal: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Propose a bundle to a Safe.

        Args:
            proposal: ``{safeAddress, bundle, signerAddress, password}``

        Returns:
            ``{success, safeTxHash, transactionUrl, message}``
        """
        safe_address = proposal.get("safeAddress")
        signer_address = proposal.get("signerAddress")
        password = proposal.get("password")

        if self.tx_signer is None:
            return {"success": False, "message": "No Safe transaction signer configured"}

        try:
            calls = format_safe_transactions(proposal.get("bundle") or {})
            nonce_result = await self.get_next_nonce(safe_address)
            if not nonce_result["success"]:
                raise SafeServiceError(f"Failed to get nonce: {nonce_result['message']}")
            safe_tx = self.build_safe_transaction(calls, nonce_result["nonce"])

            safe_tx_hash, signature = await self.tx_signer.sign(safe_address, safe_tx, signer_address, password)
            try:
                await self.propose_transaction(safe_address, safe_tx, safe_tx_hash, signature, signer_address)
            except SafeServiceError as exc:
                match = _HASH_MISMATCH_RE.search(str(exc))
                if not match:
                    raise
                safe_tx_hash = match.group(1)
                logger.info(f"Using transaction hash reported by the Safe service: {safe_tx_hash}")
                signature = await self.tx_signer.sign_hash(safe_tx_hash, signer_address, password)
                await self.propose_transaction(safe_address, safe_tx, safe_tx_hash, signature, signer_address)
        except Exception as exc:
            logger.error(f"Error proposing transaction: {exc}")
            return {"success": False, "message": str(exc) or exc.__class__.__name__}

        return {
            "success": True,
            "safeTxHash": safe_tx_hash,
            "transactionUrl": self.transaction_url(safe_address),
            "message": "Transaction successfully proposed to Safe Transaction Service",
        }

    async def aclose(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        if not self._client or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)

        response = await self._client.request(method, f"{self.service_url}{path}", json=json)
        if response.status_code >= 400:
            raise SafeServiceError(f"Safe service returned {response.status_code}: {response.text}")
        if not response.content:
            return None
        return response.json()
