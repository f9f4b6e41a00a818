"""
Multisig proposal flow.

Usage:
    from bundle_executor.core.multisig import MultisigProposalFlow

    flow = MultisigProposalFlow(wallet_service, ui, safe_adapter)
    outcome = await flow.run(bundle, signer, password)
"""

from .models import (
    MultisigProposal,
    ProposalState,
    StateTransition,
    manual_upload_instructions,
    safe_home_url,
    safe_queue_url,
)
from .flow import MultisigProposalFlow, ProposalRun

__all__ = [
    "MultisigProposal",
    "ProposalState",
    "StateTransition",
    "manual_upload_instructions",
    "safe_home_url",
    "safe_queue_url",
    "MultisigProposalFlow",
    "ProposalRun",
]
