"""
Bundle Normalizer

Maps every bundle shape upstream tooling has produced to one ordered list of
transactions:

  - canonical:   {"bundleData": {"transactions": [...]}, "summary": {...}}
  - legacy EOA:  {"format": "eoa", "transactions": [...], "fromAddress": "0x..."}
  - raw array:   {"transactions": [...]}, a bare list, or any list of calls
  - convertible: canonical container declared as safe_ui / safe_cli; gas is
                 estimated per call and fee-market fields are attached

Idempotent: normalizing an already-canonical bundle returns its transactions
unchanged. The input bundle is never mutated.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from bundle_executor.config import Settings, settings as default_settings
from bundle_executor.core.execution.errors import NormalizationError, NormalizationFailure
from bundle_executor.core.execution.models import Transaction
from bundle_executor.core.interfaces import ChainClient, GasEstimator

from .models import (
    MULTISIG_FORMATS,
    BundleFormat,
    BundleVariant,
    CanonicalBundle,
    ConvertibleBundle,
    LegacyEoaBundle,
    NormalizedBundle,
    RawArrayBundle,
    UnknownBundle,
    declared_format,
)

logger = logging.getLogger(__name__)


def _looks_like_call_list(value: Any) -> bool:
    return (
        isinstance(value, list)
        and len(value) > 0
        and isinstance(value[0], Mapping)
        and bool(value[0].get("to"))
    )


def classify_bundle(bundle: Any) -> BundleVariant:
    """Classify a raw bundle into one of the tagged variants. Total: never raises."""
    if isinstance(bundle, list):
        return RawArrayBundle(transactions=bundle, source_key=None)
    if not isinstance(bundle, Mapping):
        return UnknownBundle(observed_keys=(), failure=NormalizationFailure.UNSUPPORTED_FORMAT)

    keys = tuple(str(k) for k in bundle.keys())
    fmt = declared_format(bundle)
    bundle_data = bundle.get("bundleData")

    if isinstance(bundle_data, Mapping) and "transactions" in bundle_data:
        transactions = bundle_data["transactions"]
        if not isinstance(transactions, list):
            return UnknownBundle(observed_keys=keys, failure=NormalizationFailure.MISSING_TRANSACTIONS)
        if fmt in MULTISIG_FORMATS:
            return ConvertibleBundle(transactions=transactions, format=fmt)
        return CanonicalBundle(
            transactions=transactions,
            meta=dict(bundle_data.get("meta") or {}),
            format=fmt,
        )

    top_level = bundle.get("transactions")
    if bundle.get("format") == BundleFormat.EOA.value and isinstance(top_level, list):
        return LegacyEoaBundle(transactions=top_level, from_address=bundle.get("fromAddress"))
    if isinstance(top_level, list):
        return RawArrayBundle(transactions=top_level, source_key="transactions")
    if isinstance(bundle_data, list):
        return RawArrayBundle(transactions=bundle_data, source_key="bundleData")

    for key, value in bundle.items():
        if _looks_like_call_list(value):
            return RawArrayBundle(transactions=value, source_key=str(key))

    if isinstance(bundle_data, Mapping):
        return UnknownBundle(observed_keys=keys, failure=NormalizationFailure.MISSING_TRANSACTIONS)
    return UnknownBundle(observed_keys=keys, failure=NormalizationFailure.UNSUPPORTED_FORMAT)


def _to_transactions(entries: List[Any]) -> tuple[List[Transaction], int]:
    """Build transactions, dropping entries that are not mappings."""
    transactions = [Transaction.from_dict(e) for e in entries if isinstance(e, Mapping)]
    return transactions, len(entries) - len(transactions)


class BundleNormalizer:
    """
    Reduces bundles to a canonical transaction list.

    Conversion of Safe-format bundles needs the upstream gas estimator and a
    sender address; the chain client supplies the chain ID (settings are used
    when no client is given).
    """

    def __init__(
        self,
        gas_estimator: Optional[GasEstimator] = None,
        chain_client: Optional[ChainClient] = None,
        settings: Optional[Settings] = None,
    ):
        self.gas_estimator = gas_estimator
        self.chain_client = chain_client
        self.settings = settings or default_settings

    async def normalize(
        self,
        bundle: Any,
        sender_address: Optional[str] = None,
    ) -> NormalizedBundle:
        """
        Normalize a bundle.

        Args:
            bundle: Raw bundle (decoded JSON)
            sender_address: Signer address, required to convert Safe-format bundles

        Returns:
            NormalizedBundle with transactions in their original order

        Raises:
            NormalizationError: If the shape is unrecognized or conversion fails
        """
        variant = classify_bundle(bundle)

        if isinstance(variant, CanonicalBundle):
            transactions, dropped = _to_transactions(variant.transactions)
            logger.info(f"Detected standardized bundle with {len(transactions)} transactions")
            return NormalizedBundle(
                transactions=transactions,
                variant="canonical",
                format=variant.format,
                from_address=variant.meta.get("from"),
                dropped=dropped,
            )

        if isinstance(variant, LegacyEoaBundle):
            transactions, dropped = _to_transactions(variant.transactions)
            logger.info(
                f"Detected legacy EOA bundle with {len(transactions)} transactions; "
                f"wrapping into standardized format"
            )
            return NormalizedBundle(
                transactions=transactions,
                variant="legacy_eoa",
                format=BundleFormat.EOA.value,
                from_address=variant.from_address,
                dropped=dropped,
            )

        if isinstance(variant, RawArrayBundle):
            transactions, dropped = _to_transactions(variant.transactions)
            logger.info(
                f"Using {len(transactions)} transactions from "
                f"{variant.source_key or 'bare list'}"
            )
            return NormalizedBundle(
                transactions=transactions,
                variant="raw_array",
                format=declared_format(bundle),
                from_address=bundle.get("fromAddress") if isinstance(bundle, Mapping) else None,
                dropped=dropped,
            )

        if isinstance(variant, ConvertibleBundle):
            return await self._convert(variant, sender_address)

        raise NormalizationError(
            variant.failure,
            "Unsupported bundle format: no transactions array found",
            observed_keys=variant.observed_keys,
        )

    async def _convert(
        self,
        variant: ConvertibleBundle,
        sender_address: Optional[str],
    ) -> NormalizedBundle:
        """Re-materialize Safe-format calls as signer-ready fee-market transactions."""
        if self.gas_estimator is None:
            raise NormalizationError(
                NormalizationFailure.UNSUPPORTED_FORMAT,
                f"Bundle format '{variant.format}' needs conversion but no gas estimator is configured",
            )
        if not sender_address:
            raise NormalizationError(
                NormalizationFailure.UNSUPPORTED_FORMAT,
                f"Bundle format '{variant.format}' needs a sender address for conversion",
            )

        calls = [e for e in variant.transactions if isinstance(e, Mapping)]
        dropped = len(variant.transactions) - len(calls)
        payloads: List[Dict[str, Any]] = [
            {"to": c.get("to"), "data": c.get("data"), "value": c.get("value") or "0x0"}
            for c in calls
        ]

        logger.info(f"Converting {len(payloads)} {variant.format} transactions to EOA format")
        try:
            estimated = await self.gas_estimator.estimate_gas_for_payloads(payloads, sender_address)
            chain_id = (
                await self.chain_client.get_chain_id()
                if self.chain_client is not None
                else self.settings.chain_id
            )
        except Exception as e:
            raise NormalizationError(
                NormalizationFailure.UNSUPPORTED_FORMAT,
                f"Failed to convert {variant.format} bundle: {e}",
            ) from e

        if len(estimated) != len(payloads):
            raise NormalizationError(
                NormalizationFailure.MISSING_TRANSACTIONS,
                f"Gas estimator returned {len(estimated)} payloads for {len(payloads)} transactions",
            )

        transactions = [
            Transaction.from_dict({
                "to": payload.get("to"),
                "from": sender_address,
                "data": payload.get("data"),
                "value": payload.get("value") or "0x0",
                "gasLimit": payload.get("gasLimit"),
                "maxFeePerGas": hex(self.settings.max_fee_per_gas),
                "maxPriorityFeePerGas": hex(self.settings.max_priority_fee_per_gas),
                "type": "0x2",
                "chainId": hex(chain_id),
            })
            for payload in estimated
        ]
        logger.info(f"Successfully converted {len(transactions)} transactions to EOA format")

        return NormalizedBundle(
            transactions=transactions,
            variant="convertible",
            format=variant.format,
            from_address=sender_address,
            dropped=dropped,
            converted=True,
        )
