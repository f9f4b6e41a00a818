"""
Execution Router

Chooses between a multisig proposal and direct sending for a bundle. The
decision reads only the bundle's declared format, never its transaction
content, so a bundle that misstates its format is misrouted; the operator's
confirmation gates are the check against that.
"""

import logging
from typing import Any, Mapping, Optional

from bundle_executor.core.bundles import MULTISIG_FORMATS, BundleNormalizer, declared_format
from bundle_executor.core.execution import (
    NormalizationError,
    SignerUnavailableError,
    TransactionBatcher,
)
from bundle_executor.core.interfaces import Signer
from bundle_executor.core.multisig import MultisigProposalFlow
from bundle_executor.core.outcome import ExecutionOutcome, ExecutionRoute
from bundle_executor.logging_config import bind_run_context


logger = logging.getLogger(__name__)

REGENERATE_BUNDLE_HINT = "Try generating a new bundle using the 'Claim Rewards' option."
SIGNER_HINT = "Check the wallet password and that the wallet has a stored private key."


class ExecutionRouter:
    """
    Routes bundles to MultisigProposalFlow or to TransactionBatcher.

    Example:
        router = ExecutionRouter(normalizer, batcher, multisig_flow)
        outcome = await router.route(bundle, signer, password)
    """

    def __init__(
        self,
        normalizer: BundleNormalizer,
        batcher: TransactionBatcher,
        multisig_flow: Optional[MultisigProposalFlow] = None,
    ):
        self.normalizer = normalizer
        self.batcher = batcher
        self.multisig_flow = multisig_flow

    @staticmethod
    def classify(bundle: Any, prefer_direct: bool = False) -> ExecutionRoute:
        """Route for ``bundle`` based on its declared format."""
        if not prefer_direct and declared_format(bundle) in MULTISIG_FORMATS:
            return ExecutionRoute.MULTISIG
        return ExecutionRoute.DIRECT

    async def route(
        self,
        bundle: Mapping[str, Any],
        signer: Signer,
        password: Optional[str] = None,
        prefer_direct: bool = False,
    ) -> ExecutionOutcome:
        """
        Execute or propose a bundle.

        Args:
            bundle: Raw bundle
            signer: Operator's signer
            password: Wallet password, forwarded to the Safe adapter for proposal signing
            prefer_direct: Send a Safe-format bundle from the signer's own account

        Returns:
            ExecutionOutcome; structural failures are reported, not raised
        """
        route = self.classify(bundle, prefer_direct)
        bind_run_context(bundle_file=bundle.get("filepath"), route=route.value)
        logger.info(f"Routing bundle ({declared_format(bundle) or 'unspecified'} format) to {route.value}")

        if route == ExecutionRoute.MULTISIG:
            if self.multisig_flow is None:
                return ExecutionOutcome(
                    route=route,
                    success=False,
                    message="Bundle is in Safe format but no multisig flow is configured",
                )
            return await self.multisig_flow.run(bundle, signer, password)

        return await self._send_direct(bundle, signer)

    async def _send_direct(self, bundle: Mapping[str, Any], signer: Signer) -> ExecutionOutcome:
        route = ExecutionRoute.DIRECT
        try:
            sender = await self.batcher.executor.get_signer_address(signer)
            normalized = await self.normalizer.normalize(bundle, sender_address=sender)
            result = await self.batcher.batch(normalized.transactions, signer)
        except NormalizationError as e:
            logger.error(f"Could not normalize bundle: {e}")
            return ExecutionOutcome(
                route=route,
                success=False,
                message=str(e),
                recovery_hint=REGENERATE_BUNDLE_HINT,
            )
        except SignerUnavailableError as e:
            logger.error(f"Signer unavailable: {e}")
            return ExecutionOutcome(
                route=route,
                success=False,
                message=str(e),
                recovery_hint=SIGNER_HINT,
            )

        if not result.success:
            logger.error(f"Transaction sending was not completed successfully: {result.summary()}")
        return ExecutionOutcome(
            route=route,
            success=result.success,
            message=result.summary(),
            result=result,
        )
