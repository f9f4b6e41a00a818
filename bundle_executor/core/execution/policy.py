"""
Execution policies.

Batching multiple calls through a MultiSendCallsOnly contract makes the
contract, not the operator, the ``msg.sender`` of every inner call. Claims and
allowance checks key on the caller, so atomic batching is opt-in and always
operator-confirmed; sequential sending is the default.
"""

import math
from decimal import Decimal
from dataclasses import dataclass, field
from enum import Enum

from bundle_executor.config import Settings, settings as default_settings

MIN_GAS_MULTIPLIER = 1.3


class RevertAction(str, Enum):
    """What to do when an atomic batch reverts."""

    ASK_OPERATOR = "ask"
    ALWAYS_FALLBACK = "always"
    NEVER_FALLBACK = "never"


@dataclass(frozen=True)
class GasPolicy:
    """Buffer applied to gas estimates and the limit used when estimation fails."""

    multiplier: float = 1.5
    default_limit: int = 5_000_000

    def __post_init__(self) -> None:
        if self.multiplier < MIN_GAS_MULTIPLIER:
            raise ValueError(f"Gas multiplier must be at least {MIN_GAS_MULTIPLIER}")
        if self.default_limit <= 0:
            raise ValueError("Default gas limit must be positive")

    def buffered(self, estimate: int) -> int:
        return math.ceil(Decimal(estimate) * Decimal(str(self.multiplier)))

    @classmethod
    def primary(cls, settings: Settings = default_settings) -> "GasPolicy":
        return cls(multiplier=settings.gas_multiplier, default_limit=settings.default_gas_limit)

    @classmethod
    def fallback(cls, settings: Settings = default_settings) -> "GasPolicy":
        return cls(
            multiplier=settings.fallback_gas_multiplier,
            default_limit=settings.fallback_gas_limit,
        )


@dataclass(frozen=True)
class RetryPolicy:
    on_revert: RevertAction = RevertAction.ASK_OPERATOR

    @classmethod
    def from_settings(cls, settings: Settings = default_settings) -> "RetryPolicy":
        return cls(on_revert=RevertAction(settings.revert_fallback))


@dataclass(frozen=True)
class BatchingPolicy:
    """
    Atomicity vs. caller identity.

    ``allow_atomic`` only makes the batch path available; the operator still
    has to confirm it for every run.
    """

    allow_atomic: bool = False
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    @classmethod
    def from_settings(cls, settings: Settings = default_settings) -> "BatchingPolicy":
        return cls(
            allow_atomic=settings.allow_atomic_batching,
            retry=RetryPolicy.from_settings(settings),
        )
