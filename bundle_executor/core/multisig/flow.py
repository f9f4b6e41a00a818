"""
Multisig Proposal Flow

Walks an operator from a signer to a proposed Safe transaction:
discover the Safes the signer owns, let the operator pick one (or type an
address), confirm, then hand the proposal to the Safe adapter. The engine
never waits for multisig approval; the flow ends once the coordination
service accepts or rejects the proposal.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set

from bundle_executor.config import Settings, settings as default_settings
from bundle_executor.core.execution.errors import InvalidTransitionError
from bundle_executor.core.interfaces import SafeAdapter, Signer, UIHandler, WalletService
from bundle_executor.core.outcome import ExecutionOutcome, ExecutionRoute
from bundle_executor.services.address import shorten_address

from .models import (
    TERMINAL_STATES,
    MultisigProposal,
    ProposalState,
    StateTransition,
    manual_upload_instructions,
    safe_queue_url,
)


logger = logging.getLogger(__name__)

CUSTOM_SAFE_OPTION = "custom"
CANCEL_CHOICES = {"back", "quit"}

SAFE_ADDRESS_PROMPT = "Enter the Safe multisig address that will execute these transactions:"
INVALID_ADDRESS_MESSAGE = "Invalid Ethereum address format"
PROPOSAL_PROMPT = (
    "This transaction will be proposed to the Safe Transaction Service "
    "and will appear in the Safe UI for all owners to review and confirm. Continue?"
)


@dataclass
class ProposalRun:
    """Mutable state of one flow run."""

    state: ProposalState = ProposalState.AWAITING_SIGNER
    signer_address: Optional[str] = None
    safes: List[str] = field(default_factory=list)
    manual_entry_required: bool = False
    safe_address: Optional[str] = None
    history: List[StateTransition] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


class MultisigProposalFlow:
    """
    Proposes a bundle to a Safe multisig.

    Transitions are validated against TRANSITIONS; every transition is
    recorded on the run and returned with the outcome.
    """

    TRANSITIONS: Dict[ProposalState, Set[ProposalState]] = {
        ProposalState.AWAITING_SIGNER: {
            ProposalState.DISCOVERING_WALLETS,
            ProposalState.FAILED,
        },
        ProposalState.DISCOVERING_WALLETS: {
            ProposalState.SELECTING_WALLET,  # Also on discovery failure
            ProposalState.FAILED,
        },
        ProposalState.SELECTING_WALLET: {
            ProposalState.CONFIRMING_PROPOSAL,
            ProposalState.CANCELLED,
            ProposalState.FAILED,
        },
        ProposalState.CONFIRMING_PROPOSAL: {
            ProposalState.PROPOSED,
            ProposalState.CANCELLED,
            ProposalState.FAILED,
        },
        ProposalState.PROPOSED: set(),
        ProposalState.CANCELLED: set(),
        ProposalState.FAILED: set(),
    }

    def __init__(
        self,
        wallet_service: WalletService,
        ui: UIHandler,
        safe_adapter: SafeAdapter,
        settings: Optional[Settings] = None,
    ):
        self.wallet_service = wallet_service
        self.ui = ui
        self.safe_adapter = safe_adapter
        self.settings = settings or default_settings

    def transition(
        self,
        run: ProposalRun,
        to_state: ProposalState,
        reason: Optional[str] = None,
    ) -> StateTransition:
        """
        Move ``run`` to ``to_state``.

        Raises:
            InvalidTransitionError: If the transition is not allowed
        """
        from_state = run.state
        allowed = self.TRANSITIONS.get(from_state, set())
        if to_state not in allowed:
            raise InvalidTransitionError(
                from_state=from_state,
                to_state=to_state,
                message=f"Invalid transition from {from_state.value} to {to_state.value}. "
                        f"Allowed: {sorted(s.value for s in allowed)}",
            )

        transition = StateTransition(from_state=from_state, to_state=to_state, reason=reason)
        run.state = to_state
        run.history.append(transition)
        logger.info(
            f"Multisig proposal: {from_state.value} -> {to_state.value}"
            f"{f' ({reason})' if reason else ''}"
        )
        return transition

    async def run(
        self,
        bundle: Mapping[str, Any],
        signer: Signer,
        password: Optional[str] = None,
    ) -> ExecutionOutcome:
        """
        Propose ``bundle`` to a Safe chosen by the operator.

        Returns:
            ExecutionOutcome with success=True only when the proposal was accepted
        """
        run = ProposalRun()

        try:
            run.signer_address = await signer.get_address()
        except Exception as e:
            logger.error(f"Could not obtain signer address: {e}")
            self.transition(run, ProposalState.FAILED, reason="signer unavailable")
            return self._outcome(run, False, f"Could not obtain signer address: {e}")
        logger.info(f"Signer address: {run.signer_address}")

        self.transition(run, ProposalState.DISCOVERING_WALLETS)
        await self._discover(run)

        self.transition(
            run,
            ProposalState.SELECTING_WALLET,
            reason="manual entry required" if run.manual_entry_required else f"{len(run.safes)} Safe(s) found",
        )
        run.safe_address = await self._select(run)
        if run.safe_address is None:
            self.transition(run, ProposalState.CANCELLED, reason="operator left wallet selection")
            return self._outcome(run, False, "Operation cancelled.", cancelled=True)
        if not self.wallet_service.is_valid_address(run.safe_address):
            self.transition(run, ProposalState.FAILED, reason="invalid Safe address")
            return self._outcome(run, False, f"Invalid Safe address: {run.safe_address}")

        logger.info(f"Target Safe address: {run.safe_address}, proposer: {run.signer_address}")
        self.transition(run, ProposalState.CONFIRMING_PROPOSAL)
        if not await self.ui.confirm(PROPOSAL_PROMPT):
            self.transition(run, ProposalState.CANCELLED, reason="operator declined proposal")
            return self._outcome(run, False, "Operation cancelled.", cancelled=True)

        return await self._propose(run, bundle, password)

    async def _discover(self, run: ProposalRun) -> None:
        try:
            result = await self.safe_adapter.get_safes_by_owner(run.signer_address)
        except Exception as e:
            logger.warning(f"Safe discovery failed: {e}; falling back to manual entry")
            run.manual_entry_required = True
            return

        if not result.get("success"):
            logger.warning(
                f"Safe API error: {result.get('message') or 'Unknown error'}; falling back to manual entry"
            )
            run.manual_entry_required = True
            return

        run.safes = list(result.get("safes") or [])
        if not run.safes:
            logger.info(result.get("message") or "No Safes found for this address")
            run.manual_entry_required = True
        else:
            logger.info(f"Found {len(run.safes)} Safe(s) associated with this address")

    async def _select(self, run: ProposalRun) -> Optional[str]:
        """Return the chosen Safe address, or None if the operator backed out."""
        if run.manual_entry_required:
            return await self._prompt_for_address()

        options = [
            {
                "key": str(i + 1),
                "label": f"Safe #{i + 1}: {shorten_address(safe)}",
                "value": safe,
            }
            for i, safe in enumerate(run.safes)
        ]
        options.append(
            {
                "key": str(len(options) + 1),
                "label": "Enter a different Safe address",
                "value": CUSTOM_SAFE_OPTION,
            }
        )
        options.append({"key": "b", "label": "Back", "value": "back"})
        options.append({"key": "q", "label": "Quit", "value": "quit"})

        choice = await self.ui.get_selection(options)
        if choice in CANCEL_CHOICES:
            return None
        if choice == CUSTOM_SAFE_OPTION:
            return await self._prompt_for_address()
        return choice

    async def _prompt_for_address(self) -> str:
        address = await self.ui.get_user_input(
            SAFE_ADDRESS_PROMPT,
            self.wallet_service.is_valid_address,
            INVALID_ADDRESS_MESSAGE,
        )
        return address.strip() if address else address

    async def _propose(
        self,
        run: ProposalRun,
        bundle: Mapping[str, Any],
        password: Optional[str],
    ) -> ExecutionOutcome:
        proposal_request = {
            "safeAddress": run.safe_address,
            "bundle": bundle,
            "signerAddress": run.signer_address,
            "password": password,
        }
        try:
            result = await self.safe_adapter.execute(proposal_request)
        except Exception as e:
            result = {"success": False, "message": str(e) or e.__class__.__name__}

        if result.get("success"):
            proposal = MultisigProposal(
                safe_address=run.safe_address,
                proposer_address=run.signer_address,
                safe_tx_hash=result.get("safeTxHash"),
                review_url=result.get("transactionUrl") or safe_queue_url(run.safe_address, self.settings),
            )
            self.transition(run, ProposalState.PROPOSED, reason=proposal.safe_tx_hash)
            logger.info(f"Transaction successfully proposed to Safe: {proposal.safe_tx_hash}")
            outcome = self._outcome(run, True, "Transaction successfully proposed to Safe")
            outcome.proposal = proposal
            return outcome

        message = result.get("message") or "Unknown error"
        logger.error(f"Failed to propose Safe transaction: {message}")
        self.transition(run, ProposalState.FAILED, reason=message)
        outcome = self._outcome(run, False, f"Failed to propose Safe transaction: {message}")
        outcome.recovery_hint = manual_upload_instructions(
            run.safe_address,
            bundle.get("filepath"),
            self.settings,
        )
        return outcome

    @staticmethod
    def _outcome(run: ProposalRun, success: bool, message: str, cancelled: bool = False) -> ExecutionOutcome:
        return ExecutionOutcome(
            route=ExecutionRoute.MULTISIG,
            success=success,
            message=message,
            cancelled=cancelled,
            transitions=list(run.history),
        )
