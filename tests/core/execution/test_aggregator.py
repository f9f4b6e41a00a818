"""Tests for result aggregation and failure classification."""

import pytest

from bundle_executor.core.execution import (
    ConfirmationError,
    ExecutionMode,
    FailureCategory,
    NormalizationError,
    NormalizationFailure,
    SkippedTransaction,
    TransactionOutcome,
    TransactionRevertError,
    TransactionStatus,
    aggregate,
    classify_failure,
)


def outcome(index, status):
    return TransactionOutcome(index=index, to="0x" + "a" * 40, status=status)


# =============================================================================
# Aggregation
# =============================================================================

class TestAggregate:
    """Reduction of per-transaction outcomes."""

    @pytest.mark.parametrize(
        "statuses",
        [
            [],
            [TransactionStatus.CONFIRMED],
            [TransactionStatus.FAILED, TransactionStatus.REVERTED],
            [TransactionStatus.CONFIRMED, TransactionStatus.FAILED, TransactionStatus.TIMEOUT],
        ],
    )
    def test_counts_and_success_flag(self, statuses):
        result = aggregate([outcome(i, s) for i, s in enumerate(statuses)])

        confirmed = statuses.count(TransactionStatus.CONFIRMED)
        assert result.attempted == len(statuses)
        assert result.succeeded == confirmed
        assert 0 <= result.succeeded <= result.attempted
        assert result.success is (confirmed > 0)
        assert result.failed == len(statuses) - confirmed

    def test_skipped_not_counted_as_attempted(self):
        result = aggregate(
            [outcome(0, TransactionStatus.CONFIRMED)],
            skipped=[SkippedTransaction(index=1, reason="missing 'data' field")],
        )

        assert result.attempted == 1
        assert len(result.skipped) == 1
        assert result.summary() == "1/1 succeeded, 1 skipped"

    def test_preserves_order_and_mode(self):
        outcomes = [outcome(2, TransactionStatus.CONFIRMED), outcome(0, TransactionStatus.FAILED)]

        result = aggregate(outcomes, mode=ExecutionMode.ATOMIC_BATCH)

        assert [o.index for o in result.outcomes] == [2, 0]
        assert result.mode == ExecutionMode.ATOMIC_BATCH

    def test_to_dict(self):
        data = aggregate([outcome(0, TransactionStatus.CONFIRMED)]).to_dict()

        assert data["attempted"] == 1
        assert data["success"] is True
        assert data["outcomes"][0]["status"] == "confirmed"


# =============================================================================
# Failure classification
# =============================================================================

class TestClassifyFailure:
    """Raw submission errors mapped to operator hints."""

    @pytest.mark.parametrize(
        "message,category",
        [
            ("insufficient funds for gas * price + value", FailureCategory.INSUFFICIENT_FUNDS),
            ("nonce too low", FailureCategory.NONCE),
            ("execution reverted: already claimed", FailureCategory.REVERTED),
            ("intrinsic gas too low", FailureCategory.OUT_OF_GAS),
            ("request timed out", FailureCategory.TIMEOUT),
            ("Connection refused", FailureCategory.NETWORK),
            ("something odd", FailureCategory.UNKNOWN),
        ],
    )
    def test_message_patterns(self, message, category):
        hint = classify_failure(RuntimeError(message))

        assert hint.category == category
        assert hint.suggested_action

    def test_revert_error_type(self):
        hint = classify_failure(TransactionRevertError("reverted", tx_hash="0x1", revert_reason="claimed"))

        assert hint.category == FailureCategory.REVERTED
        assert hint.details == {"tx_hash": "0x1", "revert_reason": "claimed"}

    def test_confirmation_error_is_timeout(self):
        assert classify_failure(ConfirmationError("no receipt")).category == FailureCategory.TIMEOUT


def test_normalization_error_lists_keys():
    error = NormalizationError(
        NormalizationFailure.UNSUPPORTED_FORMAT,
        "Unsupported bundle format",
        observed_keys=("foo", "bar"),
    )

    assert "foo, bar" in str(error)
    assert error.kind == NormalizationFailure.UNSUPPORTED_FORMAT
