"""
Transaction Execution Layer

Sends normalized bundle transactions from the operator's account:
- TransactionBatcher: Validates transactions and picks sequential or atomic sending
- SequentialExecutor: Sends one transaction at a time with gas buffering
- aggregate: Reduces per-transaction outcomes into an ExecutionResult

Usage:
    from bundle_executor.core.execution import (
        SequentialExecutor,
        TransactionBatcher,
    )

    executor = SequentialExecutor(chain_client)
    batcher = TransactionBatcher(executor, ui)
    result = await batcher.batch(normalized.transactions, signer)
    print(result.summary())
"""

from .models import (
    TransactionKind,
    Transaction,
    TransactionStatus,
    ExecutionMode,
    SubmissionRequest,
    TransactionOutcome,
    SkippedTransaction,
    ExecutionResult,
)

from .errors import (
    ExecutionError,
    NormalizationFailure,
    NormalizationError,
    TransactionValidationError,
    GasEstimationError,
    TransactionSubmitError,
    ConfirmationError,
    TransactionRevertError,
    CollaboratorError,
    SignerUnavailableError,
    InvalidTransitionError,
    FailureCategory,
    FailureHint,
    classify_failure,
)

from .policy import (
    GasPolicy,
    RetryPolicy,
    RevertAction,
    BatchingPolicy,
)

from .aggregator import aggregate
from .multisend import build_multisend_call_data
from .executor import SequentialExecutor
from .batcher import TransactionBatcher

__all__ = [
    # Models
    "TransactionKind",
    "Transaction",
    "TransactionStatus",
    "ExecutionMode",
    "SubmissionRequest",
    "TransactionOutcome",
    "SkippedTransaction",
    "ExecutionResult",
    # Errors
    "ExecutionError",
    "NormalizationFailure",
    "NormalizationError",
    "TransactionValidationError",
    "GasEstimationError",
    "TransactionSubmitError",
    "ConfirmationError",
    "TransactionRevertError",
    "CollaboratorError",
    "SignerUnavailableError",
    "InvalidTransitionError",
    "FailureCategory",
    "FailureHint",
    "classify_failure",
    # Policies
    "GasPolicy",
    "RetryPolicy",
    "RevertAction",
    "BatchingPolicy",
    # Execution
    "aggregate",
    "build_multisend_call_data",
    "SequentialExecutor",
    "TransactionBatcher",
]
