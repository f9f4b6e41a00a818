"""
Tests for the TransactionBatcher.

Validation, the single-transaction shortcut, and the opt-in atomic
MultiSendCallsOnly path with its revert fallback policy.
"""

from unittest.mock import AsyncMock

import pytest
from eth_utils import to_checksum_address

from bundle_executor.core.execution import (
    BatchingPolicy,
    ExecutionMode,
    RetryPolicy,
    RevertAction,
    SequentialExecutor,
    SignerUnavailableError,
    Transaction,
    TransactionBatcher,
    TransactionStatus,
)
from bundle_executor.core.execution import batcher as batcher_module
from bundle_executor.core.execution.multisend import MULTISEND_SELECTOR


TARGET = "0x" + "a" * 40
OTHER = "0x" + "d" * 40


def transactions(*entries):
    return [Transaction.from_dict(e) for e in entries]


@pytest.fixture
def executor(chain_client, test_settings):
    return SequentialExecutor(chain_client, settings=test_settings, sleep=AsyncMock())


def atomic_batcher(executor, ui, settings, on_revert=RevertAction.ASK_OPERATOR):
    policy = BatchingPolicy(allow_atomic=True, retry=RetryPolicy(on_revert=on_revert))
    return TransactionBatcher(executor, ui, policy=policy, settings=settings)


# =============================================================================
# Validation
# =============================================================================

class TestValidation:
    """Per-transaction checks before anything is sent."""

    def test_missing_data_is_skipped(self, executor, ui, test_settings, make_tx):
        batcher = TransactionBatcher(executor, ui, settings=test_settings)

        valid, skipped = batcher.validate(
            transactions(make_tx(), make_tx(data=None), make_tx())
        )

        assert len(valid) == 2
        assert [s.index for s in skipped] == [1]
        assert "data" in skipped[0].reason

    def test_missing_to_is_skipped(self, executor, test_settings, make_tx):
        batcher = TransactionBatcher(executor, settings=test_settings)

        valid, skipped = batcher.validate(transactions(make_tx(to=None)))

        assert valid == []
        assert "'to'" in skipped[0].reason

    def test_destination_checksummed(self, executor, test_settings, make_tx):
        batcher = TransactionBatcher(executor, settings=test_settings)

        valid, _ = batcher.validate(transactions(make_tx(to=OTHER)))

        assert valid[0].to == to_checksum_address(OTHER)

    def test_bad_checksum_is_skipped(self, executor, test_settings, make_tx):
        batcher = TransactionBatcher(executor, settings=test_settings)
        bad = "0x" + "aA" * 20

        valid, skipped = batcher.validate(transactions(make_tx(to=bad)))

        assert valid == []
        assert "invalid destination" in skipped[0].reason

    @pytest.mark.parametrize("value,expected", [("0x0", 0), ("0x10", 16), ("5", 5), (None, 0), (7, 7)])
    def test_value_normalized(self, executor, test_settings, make_tx, value, expected):
        batcher = TransactionBatcher(executor, settings=test_settings)

        valid, _ = batcher.validate(transactions(make_tx(value=value)))

        assert valid[0].value == expected

    @pytest.mark.parametrize("value", ["-1", "0xzz", "lots"])
    def test_invalid_value_is_skipped(self, executor, test_settings, make_tx, value):
        batcher = TransactionBatcher(executor, settings=test_settings)

        valid, skipped = batcher.validate(transactions(make_tx(value=value)))

        assert valid == []
        assert len(skipped) == 1

    def test_requests_carry_configured_fees(self, executor, test_settings, make_tx):
        batcher = TransactionBatcher(executor, settings=test_settings)

        valid, _ = batcher.validate(transactions(make_tx()))

        assert valid[0].max_fee_per_gas == test_settings.max_fee_per_gas
        assert valid[0].max_priority_fee_per_gas == test_settings.max_priority_fee_per_gas

    @pytest.mark.parametrize("data", ["0x123", "1234", "0xzz", "0x12 34"])
    def test_malformed_call_data_is_skipped(self, executor, test_settings, make_tx, data):
        batcher = TransactionBatcher(executor, settings=test_settings)

        valid, skipped = batcher.validate(transactions(make_tx(), make_tx(data=data)))

        assert len(valid) == 1
        assert [s.index for s in skipped] == [1]
        assert "invalid call data" in skipped[0].reason

    def test_empty_call_data_accepted(self, executor, test_settings, make_tx):
        batcher = TransactionBatcher(executor, settings=test_settings)

        valid, skipped = batcher.validate(transactions(make_tx(data="0x")))

        assert len(valid) == 1
        assert skipped == []

    def test_bundle_gas_limit_carried(self, executor, test_settings, make_tx):
        batcher = TransactionBatcher(executor, settings=test_settings)

        valid, _ = batcher.validate(
            transactions({**make_tx(), "gasLimit": "0x30d40"}, make_tx())
        )

        assert valid[0].gas_limit == 200_000
        assert valid[1].gas_limit is None

    def test_legacy_transaction_sent_as_fee_market(self, executor, test_settings, make_tx):
        batcher = TransactionBatcher(executor, settings=test_settings)

        valid, _ = batcher.validate(transactions({**make_tx(), "gasPrice": "0x1"}))

        sent = valid[0].to_dict()
        assert sent["type"] == 2
        assert sent["maxFeePerGas"] == hex(test_settings.max_fee_per_gas)
        assert "gasPrice" not in sent


# =============================================================================
# Sequential (default) path
# =============================================================================

class TestSequentialDefault:
    """Without atomic batching enabled, everything goes one by one."""

    @pytest.mark.asyncio
    async def test_skipped_transaction_does_not_fail_run(self, executor, ui, signer, test_settings, make_tx):
        batcher = TransactionBatcher(executor, ui, settings=test_settings)

        result = await batcher.batch(
            transactions(make_tx(), make_tx(data=None), make_tx()),
            signer,
        )

        assert len(signer.sent) == 2
        assert result.attempted == 2
        assert result.succeeded == 2
        assert result.success is True
        assert [s.index for s in result.skipped] == [1]

    @pytest.mark.asyncio
    async def test_no_prompt_by_default(self, executor, ui, signer, test_settings, make_tx):
        batcher = TransactionBatcher(executor, ui, settings=test_settings)

        await batcher.batch(transactions(make_tx(), make_tx()), signer)

        ui.confirm.assert_not_awaited()
        assert len(signer.sent) == 2

    @pytest.mark.asyncio
    async def test_single_transaction_never_prompts(self, executor, ui, signer, test_settings, make_tx):
        batcher = atomic_batcher(executor, ui, test_settings)

        result = await batcher.batch(transactions(make_tx()), signer)

        ui.confirm.assert_not_awaited()
        assert result.attempted == 1
        assert result.succeeded == 1

    @pytest.mark.asyncio
    async def test_nothing_valid(self, executor, ui, signer, test_settings, make_tx):
        batcher = TransactionBatcher(executor, ui, settings=test_settings)

        result = await batcher.batch(transactions(make_tx(data=None)), signer)

        assert result.attempted == 0
        assert result.success is False
        assert len(result.skipped) == 1
        assert signer.sent == []


# =============================================================================
# Atomic path
# =============================================================================

class TestAtomicBatching:
    """Opt-in MultiSendCallsOnly submission."""

    @pytest.mark.asyncio
    async def test_confirmed_batch_sends_one_multisend(self, executor, ui, signer, test_settings, make_tx):
        batcher = atomic_batcher(executor, ui, test_settings)

        result = await batcher.batch(transactions(make_tx(), make_tx(to=OTHER)), signer)

        assert len(signer.sent) == 1
        sent = signer.sent[0]
        assert sent["to"] == to_checksum_address(test_settings.multisend_calls_only_address)
        assert sent["data"].startswith(MULTISEND_SELECTOR)
        assert result.mode == ExecutionMode.ATOMIC_BATCH
        assert result.attempted == 2
        assert result.succeeded == 2
        assert {o.tx_hash for o in result.outcomes} == {f"0x{1:064x}"}

    @pytest.mark.asyncio
    async def test_declined_batch_goes_sequential(self, executor, ui, signer, test_settings, make_tx):
        ui.confirm.return_value = False
        batcher = atomic_batcher(executor, ui, test_settings)

        result = await batcher.batch(transactions(make_tx(), make_tx()), signer)

        ui.confirm.assert_awaited_once()
        assert len(signer.sent) == 2
        assert all(s["to"] == to_checksum_address(TARGET) for s in signer.sent)
        assert result.mode == ExecutionMode.SEQUENTIAL

    @pytest.mark.asyncio
    async def test_no_ui_means_sequential(self, executor, signer, test_settings, make_tx):
        policy = BatchingPolicy(allow_atomic=True)
        batcher = TransactionBatcher(executor, None, policy=policy, settings=test_settings)

        result = await batcher.batch(transactions(make_tx(), make_tx()), signer)

        assert result.mode == ExecutionMode.SEQUENTIAL
        assert len(signer.sent) == 2

    @pytest.mark.asyncio
    async def test_revert_asks_then_falls_back(self, executor, ui, make_signer, test_settings, make_tx):
        signer = make_signer(reverts={1})
        batcher = atomic_batcher(executor, ui, test_settings)

        result = await batcher.batch(transactions(make_tx(), make_tx()), signer)

        assert ui.confirm.await_count == 2
        assert len(signer.sent) == 3
        assert result.mode == ExecutionMode.SEQUENTIAL
        assert result.succeeded == 2
        # fallback path uses the 1.3x buffer
        assert [o.gas_limit for o in result.outcomes] == [27300, 27300]

    @pytest.mark.asyncio
    async def test_revert_declined_fallback(self, executor, ui, make_signer, test_settings, make_tx):
        ui.confirm.side_effect = [True, False]
        signer = make_signer(reverts={1})
        batcher = atomic_batcher(executor, ui, test_settings)

        result = await batcher.batch(transactions(make_tx(), make_tx()), signer)

        assert len(signer.sent) == 1
        assert result.success is False
        assert all(o.status == TransactionStatus.REVERTED for o in result.outcomes)

    @pytest.mark.asyncio
    async def test_revert_always_fallback_skips_prompt(self, executor, ui, make_signer, test_settings, make_tx):
        signer = make_signer(reverts={1})
        batcher = atomic_batcher(executor, ui, test_settings, on_revert=RevertAction.ALWAYS_FALLBACK)

        result = await batcher.batch(transactions(make_tx(), make_tx()), signer)

        ui.confirm.assert_awaited_once()
        assert len(signer.sent) == 3
        assert result.succeeded == 2

    @pytest.mark.asyncio
    async def test_revert_never_fallback(self, executor, ui, make_signer, test_settings, make_tx):
        signer = make_signer(reverts={1})
        batcher = atomic_batcher(executor, ui, test_settings, on_revert=RevertAction.NEVER_FALLBACK)

        result = await batcher.batch(transactions(make_tx(), make_tx()), signer)

        ui.confirm.assert_awaited_once()
        assert len(signer.sent) == 1
        assert result.attempted == 2
        assert result.succeeded == 0

    @pytest.mark.asyncio
    async def test_raised_revert_error_triggers_policy(self, executor, ui, make_signer, test_settings, make_tx):
        signer = make_signer(failures={1: RuntimeError("execution reverted: already claimed")})
        batcher = atomic_batcher(executor, ui, test_settings, on_revert=RevertAction.ALWAYS_FALLBACK)

        result = await batcher.batch(transactions(make_tx(), make_tx()), signer)

        assert len(signer.sent) == 3
        assert result.succeeded == 2

    @pytest.mark.asyncio
    async def test_non_revert_failure_does_not_fall_back(self, executor, ui, make_signer, test_settings, make_tx):
        signer = make_signer(failures={1: RuntimeError("insufficient funds for gas")})
        batcher = atomic_batcher(executor, ui, test_settings, on_revert=RevertAction.ALWAYS_FALLBACK)

        result = await batcher.batch(transactions(make_tx(), make_tx()), signer)

        assert len(signer.sent) == 1
        assert result.success is False
        assert all(o.status == TransactionStatus.FAILED for o in result.outcomes)

    @pytest.mark.asyncio
    async def test_bundle_gas_limit_survives_failed_estimation(self, chain_client, ui, signer, test_settings, make_tx):
        chain_client.estimate_gas.side_effect = RuntimeError("execution reverted")
        executor = SequentialExecutor(chain_client, settings=test_settings, sleep=AsyncMock())
        batcher = TransactionBatcher(executor, ui, settings=test_settings)

        await batcher.batch(transactions({**make_tx(), "gasLimit": "0x30d40"}), signer)

        assert signer.sent[0]["gasLimit"] == "0x30d40"

    @pytest.mark.asyncio
    async def test_malformed_call_data_never_reaches_multisend(self, executor, ui, signer, test_settings, make_tx):
        batcher = atomic_batcher(executor, ui, test_settings)

        result = await batcher.batch(
            transactions(make_tx(data="0x123"), make_tx(data="0xabcd"), make_tx()),
            signer,
        )

        assert result.mode == ExecutionMode.ATOMIC_BATCH
        assert result.succeeded == 2
        assert [s.index for s in result.skipped] == [0]
        assert signer.sent[0]["data"].startswith(MULTISEND_SELECTOR)

    @pytest.mark.asyncio
    async def test_encoding_failure_is_failed_result(self, executor, ui, signer, test_settings, make_tx, monkeypatch):
        def broken(requests):
            raise ValueError("Call data must have an even-length hex string")

        monkeypatch.setattr(batcher_module, "build_multisend_call_data", broken)
        batcher = atomic_batcher(executor, ui, test_settings)

        result = await batcher.batch(transactions(make_tx(), make_tx()), signer)

        assert result.success is False
        assert result.attempted == 2
        assert all(o.status == TransactionStatus.FAILED for o in result.outcomes)
        assert "Batch encoding failed" in result.outcomes[0].error
        assert signer.sent == []

    @pytest.mark.asyncio
    async def test_signer_failure_is_structural_on_atomic_path(self, executor, ui, signer, test_settings, make_tx):
        signer.get_address = AsyncMock(side_effect=RuntimeError("locked"))
        batcher = atomic_batcher(executor, ui, test_settings)

        with pytest.raises(SignerUnavailableError):
            await batcher.batch(transactions(make_tx(), make_tx()), signer)

        assert signer.sent == []
