"""
Transaction execution models and types.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from bundle_executor.services.address import parse_quantity, to_hex_quantity


class TransactionKind(str, Enum):
    """Pricing model of a bundle transaction."""
    LEGACY = "legacy"            # single gasPrice
    FEE_MARKET = "fee_market"    # EIP-1559, type 2


def _optional_quantity(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return parse_quantity(value)
    except ValueError:
        return None


def _is_fee_market(raw: Mapping[str, Any]) -> bool:
    tx_type = raw.get("type")
    if tx_type is not None:
        return str(tx_type).lower() in {"2", "0x2", "0x02"}
    if raw.get("maxFeePerGas") is not None:
        return True
    return raw.get("gasPrice") is None


@dataclass
class Transaction:
    """One intended on-chain call as found in a bundle.

    ``to`` and ``data`` stay ``None`` when absent so that validation can
    exclude the transaction instead of defaulting it. ``value`` keeps its raw
    form until validation normalizes it.
    """
    to: Optional[str]
    data: Optional[str]
    value: Any = 0
    gas_limit: Optional[int] = None
    kind: TransactionKind = TransactionKind.FEE_MARKET
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    gas_price: Optional[int] = None
    from_address: Optional[str] = None
    chain_id: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Transaction":
        return cls(
            to=raw.get("to") or None,
            data=raw.get("data") or None,
            value=raw.get("value", 0),
            gas_limit=_optional_quantity(raw.get("gasLimit", raw.get("gas"))),
            kind=TransactionKind.FEE_MARKET if _is_fee_market(raw) else TransactionKind.LEGACY,
            max_fee_per_gas=_optional_quantity(raw.get("maxFeePerGas")),
            max_priority_fee_per_gas=_optional_quantity(raw.get("maxPriorityFeePerGas")),
            gas_price=_optional_quantity(raw.get("gasPrice")),
            from_address=raw.get("from"),
            chain_id=_optional_quantity(raw.get("chainId")),
            raw=dict(raw),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return the bundle-file representation this transaction came from."""
        if self.raw:
            return dict(self.raw)
        tx: Dict[str, Any] = {"to": self.to, "data": self.data, "value": self.value}
        if self.gas_limit is not None:
            tx["gasLimit"] = hex(self.gas_limit)
        if self.from_address:
            tx["from"] = self.from_address
        return tx


class TransactionStatus(str, Enum):
    """Per-transaction lifecycle status."""
    PENDING = "pending"          # Not yet submitted
    SUBMITTED = "submitted"      # Broadcast, awaiting receipt
    CONFIRMED = "confirmed"      # Receipt status 1
    REVERTED = "reverted"        # Receipt status 0
    FAILED = "failed"            # Submission or confirmation raised
    TIMEOUT = "timeout"          # Confirmation wait exceeded the configured bound


class ExecutionMode(str, Enum):
    SEQUENTIAL = "sequential"
    ATOMIC_BATCH = "atomic_batch"


@dataclass
class SubmissionRequest:
    """A transaction ready to hand to the signer. Always sent as EIP-1559 (type 2)."""
    to: str
    data: str
    value: int = 0
    index: Optional[int] = None              # Position in the source bundle
    gas_limit: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    chain_id: Optional[int] = None

    def to_call(self) -> Dict[str, Any]:
        """Fields used for gas estimation (no limit, no fees)."""
        call = {"to": self.to, "data": self.data}
        if self.value:
            call["value"] = hex(self.value)
        return call

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the signer's submission shape (hex quantities)."""
        tx: Dict[str, Any] = {
            "to": self.to,
            "data": self.data,
            "value": to_hex_quantity(self.value),
        }
        if self.gas_limit is not None:
            tx["gasLimit"] = to_hex_quantity(self.gas_limit)
        if self.chain_id is not None:
            tx["chainId"] = self.chain_id
        tx["type"] = 2
        tx["maxFeePerGas"] = to_hex_quantity(self.max_fee_per_gas or 0)
        tx["maxPriorityFeePerGas"] = to_hex_quantity(self.max_priority_fee_per_gas or 0)
        return tx


@dataclass
class TransactionOutcome:
    """Result of attempting one transaction."""
    index: int
    to: str
    status: TransactionStatus = TransactionStatus.PENDING
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    gas_limit: Optional[int] = None
    error: Optional[str] = None
    suggested_action: Optional[str] = None
    submitted_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None

    @property
    def is_success(self) -> bool:
        return self.status == TransactionStatus.CONFIRMED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "to": self.to,
            "status": self.status.value,
            "txHash": self.tx_hash,
            "blockNumber": self.block_number,
            "gasUsed": self.gas_used,
            "gasLimit": self.gas_limit,
            "error": self.error,
            "suggestedAction": self.suggested_action,
        }


@dataclass
class SkippedTransaction:
    """A transaction excluded by validation before submission."""
    index: int
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "reason": self.reason}


@dataclass
class ExecutionResult:
    """Run-level outcome of a direct-send execution."""
    attempted: int = 0
    succeeded: int = 0
    outcomes: List[TransactionOutcome] = field(default_factory=list)
    skipped: List[SkippedTransaction] = field(default_factory=list)
    mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def success(self) -> bool:
        return self.succeeded > 0

    @property
    def failed(self) -> int:
        return self.attempted - self.succeeded

    def summary(self) -> str:
        text = f"{self.succeeded}/{self.attempted} succeeded"
        if self.skipped:
            text += f", {len(self.skipped)} skipped"
        return text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "success": self.success,
            "mode": self.mode.value,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "skipped": [s.to_dict() for s in self.skipped],
            "completedAt": self.completed_at.isoformat(),
        }
