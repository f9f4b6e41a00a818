"""
Bundle and transaction models.

Upstream tooling has written bundles in several shapes over time. They are
classified into tagged variants here; the normalizer maps each variant to a
single ordered list of :class:`Transaction`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from bundle_executor.core.execution.errors import NormalizationFailure
from bundle_executor.core.execution.models import Transaction


class BundleFormat(str, Enum):
    EOA = "eoa"
    SAFE_UI = "safe_ui"
    SAFE_CLI = "safe_cli"


MULTISIG_FORMATS = frozenset({BundleFormat.SAFE_UI.value, BundleFormat.SAFE_CLI.value})


@dataclass
class BundleSummary:
    vault_count: int = 0
    reward_summary: str = ""
    total_transactions: int = 0
    format: Optional[str] = None
    has_bgt_staker: bool = False
    redelegation_count: int = 0

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> "BundleSummary":
        raw = raw or {}
        return cls(
            vault_count=int(raw.get("vaultCount") or 0),
            reward_summary=str(raw.get("rewardSummary") or ""),
            total_transactions=int(raw.get("totalTransactions") or 0),
            format=raw.get("format"),
            has_bgt_staker=bool(raw.get("hasBGTStaker")),
            redelegation_count=int(raw.get("redelegationCount") or 0),
        )

    def describe(self) -> str:
        text = f"{self.vault_count} vaults"
        if self.has_bgt_staker:
            text += " + BGT Staker"
        if self.redelegation_count > 0:
            text += f" + {self.redelegation_count} redelegation transactions"
        return text


def declared_format(bundle: Any) -> Optional[str]:
    """Format from ``summary.format``, falling back to top-level ``format``.

    Non-string values are treated as undeclared.
    """
    if not isinstance(bundle, Mapping):
        return None
    summary = bundle.get("summary")
    if isinstance(summary, Mapping) and isinstance(summary.get("format"), str) and summary["format"]:
        return summary["format"]
    fmt = bundle.get("format")
    return fmt if isinstance(fmt, str) else None


# ---------------------------------------------------------------------------
# Tagged variants
# ---------------------------------------------------------------------------

@dataclass
class CanonicalBundle:
    transactions: List[Any]
    meta: Dict[str, Any] = field(default_factory=dict)
    format: Optional[str] = None


@dataclass
class LegacyEoaBundle:
    transactions: List[Any]
    from_address: Optional[str] = None


@dataclass
class RawArrayBundle:
    transactions: List[Any]
    source_key: Optional[str] = None


@dataclass
class ConvertibleBundle:
    transactions: List[Any]
    format: str


@dataclass
class UnknownBundle:
    observed_keys: Tuple[str, ...] = ()
    failure: NormalizationFailure = NormalizationFailure.UNSUPPORTED_FORMAT


BundleVariant = Union[CanonicalBundle, LegacyEoaBundle, RawArrayBundle, ConvertibleBundle, UnknownBundle]


@dataclass
class NormalizedBundle:
    """Canonical view of a bundle: one ordered transaction list."""

    transactions: List[Transaction]
    variant: str
    format: Optional[str] = None
    from_address: Optional[str] = None
    dropped: int = 0
    converted: bool = False

    @property
    def bundle_data(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"transactions": [tx.to_dict() for tx in self.transactions]}
        if self.from_address:
            data["meta"] = {"from": self.from_address}
        return data

    def __len__(self) -> int:
        return len(self.transactions)
