"""
Multisig proposal models.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from bundle_executor.config import Settings, settings as default_settings


class ProposalState(str, Enum):
    """Multisig proposal lifecycle states."""

    AWAITING_SIGNER = "awaiting_signer"          # Resolving the proposer address
    DISCOVERING_WALLETS = "discovering_wallets"  # Asking the service which Safes the signer owns
    SELECTING_WALLET = "selecting_wallet"        # Operator picks or types a Safe address
    CONFIRMING_PROPOSAL = "confirming_proposal"  # Final yes/no gate
    PROPOSED = "proposed"                        # Accepted by the coordination service
    CANCELLED = "cancelled"                      # Operator declined
    FAILED = "failed"                            # Proposal could not be made


TERMINAL_STATES = frozenset({ProposalState.PROPOSED, ProposalState.CANCELLED, ProposalState.FAILED})


@dataclass
class StateTransition:
    """Record of a proposal state transition."""

    from_state: ProposalState
    to_state: ProposalState
    reason: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fromState": self.from_state.value,
            "toState": self.to_state.value,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class MultisigProposal:
    """A bundle proposed to a Safe. Approval and execution happen outside the engine."""

    safe_address: str
    proposer_address: str
    safe_tx_hash: Optional[str] = None
    review_url: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "safeAddress": self.safe_address,
            "proposerAddress": self.proposer_address,
            "safeTxHash": self.safe_tx_hash,
            "reviewUrl": self.review_url,
            "createdAt": self.created_at.isoformat(),
        }


def safe_queue_url(safe_address: str, settings: Settings = default_settings) -> str:
    """Safe app page listing queued transactions for review."""
    app_url = settings.safe_app_url.rstrip("/")
    return f"{app_url}/transactions/queue?safe={settings.safe_chain_prefix}:{safe_address.lower()}"


def safe_home_url(safe_address: str, settings: Settings = default_settings) -> str:
    app_url = settings.safe_app_url.rstrip("/")
    return f"{app_url}/home?safe={settings.safe_chain_prefix}:{safe_address}"


def manual_upload_instructions(
    safe_address: str,
    filepath: Optional[str] = None,
    settings: Settings = default_settings,
) -> str:
    """Steps for uploading the bundle file through the Safe app's Transaction Builder."""
    return "\n".join(
        [
            "Upload the transaction file manually:",
            f"- Go to {safe_home_url(safe_address, settings)}",
            "- Click 'New Transaction' > 'Transaction Builder'",
            f"- Import the transaction file from: {filepath or 'output directory'}",
        ]
    )
