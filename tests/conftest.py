"""Shared fakes for engine tests."""

import asyncio
from typing import Any, Dict, Iterable, List, Mapping, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from bundle_executor.config import Settings


SIGNER_ADDRESS = "0x" + "b" * 40
SAFE_ADDRESS = "0x" + "c" * 40
TARGET = "0x" + "a" * 40


class FakeSentTransaction:
    def __init__(self, tx_hash: str, receipt: Optional[Mapping[str, Any]] = None, hang: bool = False):
        self.hash = tx_hash
        self._receipt = receipt
        self._hang = hang
        self.confirmations: Optional[int] = None

    async def wait(self, confirmations: int = 1) -> Mapping[str, Any]:
        self.confirmations = confirmations
        if self._hang:
            await asyncio.sleep(3600)
        return self._receipt


class FakeSigner:
    """Signer that confirms every transaction unless told otherwise (1-based send numbers)."""

    def __init__(
        self,
        address: str = SIGNER_ADDRESS,
        failures: Optional[Dict[int, Exception]] = None,
        reverts: Iterable[int] = (),
        hang: Iterable[int] = (),
    ):
        self.address = address
        self.failures = failures or {}
        self.reverts = set(reverts)
        self.hang = set(hang)
        self.sent: List[Dict[str, Any]] = []

    async def get_address(self) -> str:
        return self.address

    async def send_transaction(self, tx: Dict[str, Any]) -> FakeSentTransaction:
        self.sent.append(tx)
        number = len(self.sent)
        if number in self.failures:
            raise self.failures[number]
        tx_hash = f"0x{number:064x}"
        receipt = {
            "status": 0 if number in self.reverts else 1,
            "blockNumber": 1000 + number,
            "gasUsed": 21000,
            "transactionHash": tx_hash,
        }
        return FakeSentTransaction(tx_hash, receipt, hang=number in self.hang)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        inter_transaction_delay_seconds=2.0,
        confirmation_timeout_seconds=None,
        allow_atomic_batching=False,
        revert_fallback="ask",
    )


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def make_signer():
    return FakeSigner


@pytest.fixture
def chain_client() -> AsyncMock:
    client = AsyncMock()
    client.estimate_gas.return_value = 21000
    client.get_chain_id.return_value = 80094
    return client


@pytest.fixture
def ui() -> AsyncMock:
    handler = AsyncMock()
    handler.confirm.return_value = True
    return handler


@pytest.fixture
def wallet_service() -> MagicMock:
    from bundle_executor.services.address import is_valid_address

    service = MagicMock()
    service.is_valid_address.side_effect = is_valid_address
    service.get_wallets.return_value = {"main": SIGNER_ADDRESS}
    service.has_private_key = AsyncMock(return_value=True)
    service.create_signer = AsyncMock()
    return service


def tx(to: Optional[str] = TARGET, data: Optional[str] = "0x1234", value: Any = "0x0") -> Dict[str, Any]:
    entry: Dict[str, Any] = {}
    if to is not None:
        entry["to"] = to
    if data is not None:
        entry["data"] = data
    if value is not None:
        entry["value"] = value
    return entry


@pytest.fixture
def make_tx():
    return tx
