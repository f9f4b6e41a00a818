"""
Transaction batching decisions.

Validates bundle transactions and decides how they reach the chain. Sending
is sequential unless atomic batching is enabled by policy AND confirmed by
the operator for this run, because inside a MultiSendCallsOnly batch the
contract becomes ``msg.sender`` of every inner call.
"""

import logging
import re
from typing import List, Optional, Sequence, Tuple

from bundle_executor.config import Settings, settings as default_settings
from bundle_executor.core.interfaces import Signer, UIHandler
from bundle_executor.services.address import checksum_address, parse_quantity

from .aggregator import aggregate
from .errors import FailureCategory, TransactionValidationError, classify_failure
from .executor import SequentialExecutor
from .models import (
    ExecutionMode,
    ExecutionResult,
    SkippedTransaction,
    SubmissionRequest,
    Transaction,
    TransactionKind,
    TransactionOutcome,
    TransactionStatus,
)
from .multisend import build_multisend_call_data, total_value
from .policy import BatchingPolicy, GasPolicy, RevertAction


logger = logging.getLogger(__name__)

ATOMIC_BATCH_PROMPT = (
    "Batching {count} transactions through MultiSendCallsOnly makes the batch "
    "contract the caller of every claim, so claims checked against your address "
    "may revert. Send them as one atomic batch anyway?"
)
REVERT_FALLBACK_PROMPT = (
    "The atomic batch reverted. Send the {count} transactions individually instead?"
)

_CALL_DATA_RE = re.compile(r"^0x(?:[0-9a-fA-F]{2})*$")


class TransactionBatcher:
    """
    Validates transactions and sends them sequentially or as one atomic batch.

    Example:
        batcher = TransactionBatcher(SequentialExecutor(chain_client), ui)
        result = await batcher.batch(normalized.transactions, signer)
    """

    def __init__(
        self,
        executor: SequentialExecutor,
        ui: Optional[UIHandler] = None,
        policy: Optional[BatchingPolicy] = None,
        settings: Optional[Settings] = None,
    ):
        self.executor = executor
        self.ui = ui
        self.settings = settings or default_settings
        self.policy = policy or BatchingPolicy.from_settings(self.settings)

    def validate(
        self,
        transactions: Sequence[Transaction],
    ) -> Tuple[List[SubmissionRequest], List[SkippedTransaction]]:
        """Split transactions into submission requests and skipped entries."""
        requests: List[SubmissionRequest] = []
        skipped: List[SkippedTransaction] = []

        for index, tx in enumerate(transactions):
            try:
                requests.append(self._to_request(index, tx))
            except TransactionValidationError as e:
                logger.warning(f"Skipping transaction {index + 1}: {e}")
                skipped.append(SkippedTransaction(index=index, reason=str(e)))

        return requests, skipped

    def _to_request(self, index: int, tx: Transaction) -> SubmissionRequest:
        """
        Build the submission request for one bundle transaction.

        Raises:
            TransactionValidationError: If the transaction cannot be sent as-is
        """
        if not tx.to or not tx.data:
            missing = "to" if not tx.to else "data"
            raise TransactionValidationError(f"missing '{missing}' field", index, missing)

        try:
            to = checksum_address(tx.to)
        except ValueError as e:
            raise TransactionValidationError(f"invalid destination address {tx.to}", index, "to") from e

        if not isinstance(tx.data, str) or not _CALL_DATA_RE.match(tx.data):
            raise TransactionValidationError(
                f"invalid call data {tx.data!r} (expected even-length 0x hex)",
                index,
                "data",
            )

        try:
            value = parse_quantity(tx.value if tx.value is not None else 0)
        except ValueError as e:
            raise TransactionValidationError(f"invalid value {tx.value!r}", index, "value") from e

        # Direct sends are always EIP-1559 (type 2) with the configured fees
        if tx.kind == TransactionKind.LEGACY:
            logger.info(f"Transaction {index + 1} carries a legacy gasPrice; sending as type 2 instead")

        return SubmissionRequest(
            to=to,
            data=tx.data,
            value=value,
            index=index,
            gas_limit=tx.gas_limit or None,
            max_fee_per_gas=self.settings.max_fee_per_gas,
            max_priority_fee_per_gas=self.settings.max_priority_fee_per_gas,
            chain_id=tx.chain_id,
        )

    async def batch(self, transactions: Sequence[Transaction], signer: Signer) -> ExecutionResult:
        """
        Validate and send.

        Raises:
            SignerUnavailableError: If the signer address cannot be obtained
        """
        requests, skipped = self.validate(transactions)

        if not requests:
            logger.error("No valid transactions to send")
            return aggregate([], skipped)

        signer_address = await self.executor.get_signer_address(signer)

        if len(requests) == 1:
            logger.info("Single transaction, sending directly")
            result = await self.executor.run(requests, signer, signer_address=signer_address)
            return self._with_skipped(result, skipped)

        if self.policy.allow_atomic and await self._confirm(
            ATOMIC_BATCH_PROMPT.format(count=len(requests))
        ):
            return await self._send_atomic(requests, skipped, signer, signer_address)

        logger.info(f"Sending {len(requests)} transactions individually to preserve msg.sender")
        result = await self.executor.run(requests, signer, signer_address=signer_address)
        return self._with_skipped(result, skipped)

    async def _send_atomic(
        self,
        requests: List[SubmissionRequest],
        skipped: List[SkippedTransaction],
        signer: Signer,
        signer_address: str,
    ) -> ExecutionResult:
        try:
            call_data = build_multisend_call_data(requests)
        except ValueError as e:
            logger.error(f"Could not encode MultiSendCallsOnly batch: {e}")
            failed = [
                TransactionOutcome(
                    index=r.index if r.index is not None else 0,
                    to=r.to,
                    status=TransactionStatus.FAILED,
                    error=f"Batch encoding failed: {e}",
                    suggested_action="Send the transactions individually",
                )
                for r in requests
            ]
            return aggregate(failed, skipped, mode=ExecutionMode.ATOMIC_BATCH)

        batch_request = SubmissionRequest(
            to=checksum_address(self.settings.multisend_calls_only_address),
            data=call_data,
            value=total_value(requests),
            max_fee_per_gas=self.settings.max_fee_per_gas,
            max_priority_fee_per_gas=self.settings.max_priority_fee_per_gas,
        )
        logger.info(f"Sending {len(requests)} transactions as one MultiSendCallsOnly batch")
        batch_outcome = await self.executor.submit(
            batch_request,
            signer,
            signer_address=signer_address,
            gas_policy=GasPolicy.primary(self.settings),
        )

        if batch_outcome.is_success:
            logger.info(f"Atomic batch confirmed: {batch_outcome.tx_hash}")
            return aggregate(
                [self._inner_outcome(r, batch_outcome) for r in requests],
                skipped,
                mode=ExecutionMode.ATOMIC_BATCH,
            )

        if not self._is_revert(batch_outcome):
            logger.error(f"Atomic batch failed: {batch_outcome.error}")
            return aggregate(
                [self._inner_outcome(r, batch_outcome) for r in requests],
                skipped,
                mode=ExecutionMode.ATOMIC_BATCH,
            )

        logger.error(f"Atomic batch reverted: {batch_outcome.error}")
        if await self._should_fall_back(len(requests)):
            logger.info("Falling back to sequential execution")
            result = await self.executor.run(
                requests,
                signer,
                gas_policy=GasPolicy.fallback(self.settings),
                signer_address=signer_address,
            )
            return self._with_skipped(result, skipped)

        return aggregate(
            [self._inner_outcome(r, batch_outcome) for r in requests],
            skipped,
            mode=ExecutionMode.ATOMIC_BATCH,
        )

    async def _should_fall_back(self, count: int) -> bool:
        action = self.policy.retry.on_revert
        if action == RevertAction.ALWAYS_FALLBACK:
            return True
        if action == RevertAction.NEVER_FALLBACK:
            return False
        return await self._confirm(REVERT_FALLBACK_PROMPT.format(count=count))

    async def _confirm(self, prompt: str) -> bool:
        if self.ui is None:
            return False
        return bool(await self.ui.confirm(prompt))

    @staticmethod
    def _is_revert(outcome: TransactionOutcome) -> bool:
        if outcome.status == TransactionStatus.REVERTED:
            return True
        if outcome.status == TransactionStatus.FAILED and outcome.error:
            return classify_failure(Exception(outcome.error)).category == FailureCategory.REVERTED
        return False

    @staticmethod
    def _inner_outcome(request: SubmissionRequest, batch: TransactionOutcome) -> TransactionOutcome:
        # Inner calls share the batch's receipt
        return TransactionOutcome(
            index=request.index if request.index is not None else 0,
            to=request.to,
            status=batch.status,
            tx_hash=batch.tx_hash,
            block_number=batch.block_number,
            error=batch.error,
            suggested_action=batch.suggested_action,
            submitted_at=batch.submitted_at,
            confirmed_at=batch.confirmed_at,
        )

    @staticmethod
    def _with_skipped(result: ExecutionResult, skipped: List[SkippedTransaction]) -> ExecutionResult:
        result.skipped.extend(skipped)
        return result
