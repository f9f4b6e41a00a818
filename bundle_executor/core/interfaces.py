"""Collaborator interfaces consumed by the execution engine.

The engine never constructs signers, prompts, RPC clients or multisig
proposals itself; callers pass objects satisfying these protocols into each
component's constructor.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence


class SentTransaction(Protocol):
    """Handle for a submitted transaction."""

    hash: str

    async def wait(self, confirmations: int = 1) -> Mapping[str, Any]:
        """Block until mined; returns a receipt with status/blockNumber/gasUsed/transactionHash."""
        ...


class Signer(Protocol):
    async def get_address(self) -> str:
        ...

    async def send_transaction(self, tx: Dict[str, Any]) -> SentTransaction:
        ...


class SignerResult(Protocol):
    success: bool
    signer: Optional[Signer]
    message: Optional[str]


class ChainClient(Protocol):
    async def get_chain_id(self) -> int:
        ...

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        ...


class GasEstimator(Protocol):
    """Upstream estimation capability (the claim bundler)."""

    async def estimate_gas_for_payloads(
        self,
        payloads: List[Dict[str, Any]],
        from_address: str,
    ) -> List[Dict[str, Any]]:
        ...


class WalletService(Protocol):
    def get_wallets(self) -> Dict[str, str]:
        ...

    async def has_private_key(self, name: str) -> bool:
        ...

    async def create_signer(self, name: str, password: str) -> SignerResult:
        ...

    def is_valid_address(self, address: str) -> bool:
        ...


class UIHandler(Protocol):
    async def get_user_input(
        self,
        prompt: str,
        validator: Callable[[str], bool],
        error_message: str,
    ) -> str:
        ...

    async def confirm(self, prompt: str) -> bool:
        ...

    async def get_selection(self, options: Sequence[Mapping[str, str]]) -> str:
        ...


class SafeAdapter(Protocol):
    async def get_safes_by_owner(self, owner_address: str) -> Mapping[str, Any]:
        """Returns ``{"success", "safes", "message"}``."""
        ...

    async def execute(self, proposal: Mapping[str, Any]) -> Mapping[str, Any]:
        """Returns ``{"success", "safeTxHash", "transactionUrl", "message"}``."""
        ...


__all__ = [
    "SentTransaction",
    "Signer",
    "SignerResult",
    "ChainClient",
    "GasEstimator",
    "WalletService",
    "UIHandler",
    "SafeAdapter",
]
