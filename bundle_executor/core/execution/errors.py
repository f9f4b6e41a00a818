"""
Execution Errors

Exception hierarchy for the bundle engine plus a classifier that turns raw
submission failures into an operator-facing category and recovery action.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple


class ExecutionError(Exception):
    """Base exception for execution errors."""
    pass


class NormalizationFailure(str, Enum):
    UNSUPPORTED_FORMAT = "unsupported_format"
    MISSING_TRANSACTIONS = "missing_transactions"


class NormalizationError(ExecutionError):
    """A bundle could not be reduced to a transaction list."""

    def __init__(
        self,
        kind: NormalizationFailure,
        message: str,
        observed_keys: Iterable[str] = (),
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.observed_keys: Tuple[str, ...] = tuple(observed_keys)

    def __str__(self) -> str:
        if self.observed_keys:
            return f"{self.message} (keys: {', '.join(self.observed_keys)})"
        return self.message


class TransactionValidationError(ExecutionError):
    """A single transaction is missing required fields."""

    def __init__(self, message: str, index: int, field_name: Optional[str] = None):
        super().__init__(message)
        self.index = index
        self.field_name = field_name


class GasEstimationError(ExecutionError):
    """Gas estimation failed."""
    pass


class TransactionSubmitError(ExecutionError):
    """Transaction submission failed."""
    pass


class ConfirmationError(ExecutionError):
    """Waiting for a receipt failed or timed out."""
    pass


class TransactionRevertError(ExecutionError):
    """Transaction reverted on-chain."""

    def __init__(self, message: str, tx_hash: Optional[str] = None, revert_reason: Optional[str] = None):
        super().__init__(message)
        self.tx_hash = tx_hash
        self.revert_reason = revert_reason


class CollaboratorError(ExecutionError):
    """An external collaborator (Safe service, wallet service) failed."""

    def __init__(self, message: str, collaborator: str):
        super().__init__(message)
        self.collaborator = collaborator


class SignerUnavailableError(ExecutionError):
    """No usable signer or signer address; the run cannot proceed."""
    pass


class InvalidTransitionError(ExecutionError):
    """Illegal state machine transition."""

    def __init__(self, from_state: Any, to_state: Any, message: str):
        super().__init__(message)
        self.from_state = from_state
        self.to_state = to_state


class FailureCategory(str, Enum):
    INSUFFICIENT_FUNDS = "insufficient_funds"
    NONCE = "nonce"
    REVERTED = "reverted"
    OUT_OF_GAS = "out_of_gas"
    NETWORK = "network"
    TIMEOUT = "timeout"
    REJECTED = "rejected"
    UNKNOWN = "unknown"


@dataclass
class FailureHint:
    """Human-readable explanation of a failure."""

    category: FailureCategory = FailureCategory.UNKNOWN
    suggested_action: str = "Check the transaction on the block explorer and retry"
    details: Optional[Dict[str, Any]] = None


_PATTERNS = [
    (
        FailureCategory.INSUFFICIENT_FUNDS,
        ("insufficient funds", "insufficient balance", "exceeds balance", "not enough"),
        "Top up the signer's native balance to cover gas and value",
    ),
    (
        FailureCategory.NONCE,
        ("nonce too low", "nonce has already been used", "replacement transaction underpriced", "already known"),
        "Wait for pending transactions from this signer to settle, then retry",
    ),
    (
        FailureCategory.OUT_OF_GAS,
        ("out of gas", "intrinsic gas too low", "gas required exceeds"),
        "Retry with a higher gas limit",
    ),
    (
        FailureCategory.REVERTED,
        ("revert", "call exception", "transaction failed"),
        "Check allowances and whether the rewards were already claimed",
    ),
    (
        FailureCategory.TIMEOUT,
        ("timeout", "timed out", "deadline"),
        "Check the hash on the block explorer before resending",
    ),
    (
        FailureCategory.NETWORK,
        ("connection", "network", "unreachable", "refused", "dns", "socket", "ssl", "429", "rate limit"),
        "Check RPC connectivity and retry",
    ),
    (
        FailureCategory.REJECTED,
        ("user rejected", "user denied", "rejected"),
        "The signer declined the request",
    ),
]


def classify_failure(error: BaseException) -> FailureHint:
    """
    Classify an exception raised while sending a transaction.

    Matches on the exception type first and falls back to message patterns
    for errors surfaced by RPC nodes and signer libraries.
    """
    if isinstance(error, TransactionSubmitError) and error.__cause__ is not None:
        return classify_failure(error.__cause__)

    if isinstance(error, TransactionRevertError):
        return FailureHint(
            category=FailureCategory.REVERTED,
            suggested_action="Check allowances and whether the rewards were already claimed",
            details={"tx_hash": error.tx_hash, "revert_reason": error.revert_reason},
        )

    message = str(error).lower()
    for category, patterns, action in _PATTERNS:
        if any(p in message for p in patterns):
            return FailureHint(category=category, suggested_action=action)

    if isinstance(error, ConfirmationError):
        return FailureHint(
            category=FailureCategory.TIMEOUT,
            suggested_action="Check the hash on the block explorer before resending",
        )

    return FailureHint()
