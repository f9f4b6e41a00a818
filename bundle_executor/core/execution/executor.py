"""
Sequential transaction executor.

Sends transactions one at a time from the operator's own account so that the
operator stays ``msg.sender`` for every call:
- Gas estimation with a safety buffer, falling back to a fixed limit
- Submission and single-confirmation wait
- Per-transaction failure isolation
- A fixed pause between submissions from the same signer
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence

from bundle_executor.config import Settings, settings as default_settings
from bundle_executor.core.interfaces import ChainClient, SentTransaction, Signer
from bundle_executor.services.address import parse_quantity

from .aggregator import aggregate
from .errors import (
    ConfirmationError,
    GasEstimationError,
    SignerUnavailableError,
    TransactionSubmitError,
    classify_failure,
)
from .models import (
    ExecutionResult,
    SubmissionRequest,
    TransactionOutcome,
    TransactionStatus,
)
from .policy import GasPolicy


logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


def _receipt_int(receipt: Mapping[str, Any], key: str) -> Optional[int]:
    value = receipt.get(key)
    if value is None:
        return None
    try:
        return parse_quantity(value)
    except ValueError:
        return None


class SequentialExecutor:
    """
    Executes validated transactions in input order, one in flight at a time.

    Never raises for an individual transaction failure; the only exception
    that escapes ``run`` is SignerUnavailableError.
    """

    def __init__(
        self,
        chain_client: Optional[ChainClient] = None,
        settings: Optional[Settings] = None,
        gas_policy: Optional[GasPolicy] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.chain_client = chain_client
        self.settings = settings or default_settings
        self.gas_policy = gas_policy or GasPolicy.primary(self.settings)
        self._sleep = sleep

    async def run(
        self,
        requests: Sequence[SubmissionRequest],
        signer: Signer,
        gas_policy: Optional[GasPolicy] = None,
        signer_address: Optional[str] = None,
    ) -> ExecutionResult:
        """
        Send each request individually.

        Args:
            requests: Validated submission requests
            signer: Signer that submits and pays for every transaction
            gas_policy: Override for the executor's gas policy (fallback path)
            signer_address: Address already resolved by the caller

        Returns:
            ExecutionResult; success iff at least one transaction confirmed
        """
        if signer_address is None:
            signer_address = await self.get_signer_address(signer)
        policy = gas_policy or self.gas_policy
        delay = self.settings.inter_transaction_delay_seconds

        outcomes = []
        for position, request in enumerate(requests):
            logger.info(f"Sending transaction {position + 1}/{len(requests)} to {request.to}")
            outcome = await self.submit(
                request,
                signer,
                signer_address=signer_address,
                gas_policy=policy,
                position=position,
            )
            outcomes.append(outcome)

            if position < len(requests) - 1 and delay > 0:
                logger.debug(f"Waiting {delay}s before next transaction")
                await self._sleep(delay)

        result = aggregate(outcomes)
        logger.info(f"Transaction summary: {result.summary()}")
        return result

    async def get_signer_address(self, signer: Signer) -> str:
        try:
            address = await signer.get_address()
        except Exception as e:
            raise SignerUnavailableError(f"Could not obtain signer address: {e}") from e
        if not address:
            raise SignerUnavailableError("Signer returned an empty address")
        return address

    async def submit(
        self,
        request: SubmissionRequest,
        signer: Signer,
        signer_address: Optional[str] = None,
        gas_policy: Optional[GasPolicy] = None,
        position: int = 0,
    ) -> TransactionOutcome:
        """Estimate, send and confirm one transaction. Failures are recorded, not raised."""
        policy = gas_policy or self.gas_policy
        outcome = TransactionOutcome(
            index=request.index if request.index is not None else position,
            to=request.to,
        )

        request = replace(
            request,
            max_fee_per_gas=(
                request.max_fee_per_gas
                if request.max_fee_per_gas is not None
                else self.settings.max_fee_per_gas
            ),
            max_priority_fee_per_gas=(
                request.max_priority_fee_per_gas
                if request.max_priority_fee_per_gas is not None
                else self.settings.max_priority_fee_per_gas
            ),
        )

        try:
            if signer_address is None:
                signer_address = await self.get_signer_address(signer)
            request.gas_limit = await self.resolve_gas_limit(request, signer_address, policy)
            outcome.gas_limit = request.gas_limit

            try:
                sent = await signer.send_transaction(request.to_dict())
            except Exception as e:
                raise TransactionSubmitError(str(e) or e.__class__.__name__) from e
            outcome.tx_hash = sent.hash
            outcome.status = TransactionStatus.SUBMITTED
            outcome.submitted_at = datetime.now(timezone.utc)
            logger.info(f"Transaction sent: {sent.hash}")

            receipt = await self._wait_for_receipt(sent)
            outcome.block_number = _receipt_int(receipt, "blockNumber")
            outcome.gas_used = _receipt_int(receipt, "gasUsed")
            outcome.tx_hash = receipt.get("transactionHash") or sent.hash

            if _receipt_int(receipt, "status") == 1:
                outcome.status = TransactionStatus.CONFIRMED
                outcome.confirmed_at = datetime.now(timezone.utc)
                logger.info(
                    f"Transaction {outcome.index + 1} succeeded: block {outcome.block_number}, "
                    f"gas used {outcome.gas_used}, {self.settings.explorer_tx_url(outcome.tx_hash)}"
                )
            else:
                outcome.status = TransactionStatus.REVERTED
                outcome.error = "Transaction reverted"
                outcome.suggested_action = "Check allowances and whether the rewards were already claimed"
                logger.error(f"Transaction {outcome.index + 1} reverted: {outcome.tx_hash}")

        except Exception as e:
            hint = classify_failure(e)
            if isinstance(e, ConfirmationError):
                outcome.status = TransactionStatus.TIMEOUT
            else:
                outcome.status = TransactionStatus.FAILED
            outcome.error = str(e) or e.__class__.__name__
            outcome.suggested_action = hint.suggested_action
            logger.error(f"Error sending transaction {outcome.index + 1}: {outcome.error}")

        return outcome

    async def resolve_gas_limit(
        self,
        request: SubmissionRequest,
        from_address: str,
        gas_policy: Optional[GasPolicy] = None,
    ) -> int:
        """
        Gas limit for ``request``.

        A limit the transaction already carries is used as-is. Otherwise the
        estimate is buffered by the policy multiplier, and the policy's default
        limit is used if estimation fails.
        """
        policy = gas_policy or self.gas_policy
        if request.gas_limit:
            logger.info(f"Using gas limit from bundle: {request.gas_limit}")
            return request.gas_limit

        if self.chain_client is None:
            logger.info(f"No chain client configured; using default gas limit {policy.default_limit}")
            return policy.default_limit

        try:
            estimate = await self.estimate_gas(request, from_address)
        except GasEstimationError as e:
            logger.warning(f"{e}; using default gas limit {policy.default_limit}")
            return policy.default_limit

        limit = policy.buffered(estimate)
        logger.info(f"Estimated gas: {estimate}, with buffer: {limit}")
        return limit

    async def estimate_gas(self, request: SubmissionRequest, from_address: str) -> int:
        """
        Raw gas estimate from the chain client.

        Raises:
            GasEstimationError: If the client fails or returns a non-positive estimate
        """
        call = request.to_call()
        call["from"] = from_address
        try:
            estimate = int(await self.chain_client.estimate_gas(call))
        except Exception as e:
            raise GasEstimationError(f"Gas estimation failed: {e}") from e
        if estimate <= 0:
            raise GasEstimationError(f"Gas estimation failed: non-positive estimate {estimate}")
        return estimate

    async def _wait_for_receipt(self, sent: SentTransaction) -> Mapping[str, Any]:
        confirmations = self.settings.required_confirmations
        timeout = self.settings.confirmation_timeout_seconds
        if not self.settings.has_confirmation_timeout:
            return await sent.wait(confirmations)
        try:
            return await asyncio.wait_for(sent.wait(confirmations), timeout)
        except asyncio.TimeoutError as e:
            raise ConfirmationError(f"No confirmation for {sent.hash} after {timeout}s") from e
