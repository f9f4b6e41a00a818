"""Run-level outcome returned by the router and the multisig flow."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from bundle_executor.core.execution.models import ExecutionResult

if TYPE_CHECKING:
    from bundle_executor.core.multisig.models import MultisigProposal, StateTransition


class ExecutionRoute(str, Enum):
    MULTISIG = "multisig"
    DIRECT = "direct"


@dataclass
class ExecutionOutcome:
    """What happened to one bundle."""

    route: ExecutionRoute
    success: bool
    message: str = ""
    result: Optional[ExecutionResult] = None
    proposal: Optional[MultisigProposal] = None
    cancelled: bool = False
    recovery_hint: Optional[str] = None
    transitions: List[StateTransition] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "route": self.route.value,
            "success": self.success,
            "message": self.message,
            "result": self.result.to_dict() if self.result else None,
            "proposal": self.proposal.to_dict() if self.proposal else None,
            "cancelled": self.cancelled,
            "recoveryHint": self.recovery_hint,
            "transitions": [t.to_dict() for t in self.transitions],
        }
