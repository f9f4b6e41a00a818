"""
Bundle normalization.

Usage:
    from bundle_executor.core.bundles import BundleNormalizer, load_bundle

    bundle = load_bundle("output/claim_bundle.json")
    normalized = await BundleNormalizer().normalize(bundle)
"""

from .loader import load_bundle
from .models import (
    MULTISIG_FORMATS,
    BundleFormat,
    BundleSummary,
    BundleVariant,
    CanonicalBundle,
    ConvertibleBundle,
    LegacyEoaBundle,
    NormalizedBundle,
    RawArrayBundle,
    UnknownBundle,
    declared_format,
)
from .normalizer import BundleNormalizer, classify_bundle

__all__ = [
    "MULTISIG_FORMATS",
    "BundleFormat",
    "BundleSummary",
    "BundleVariant",
    "CanonicalBundle",
    "ConvertibleBundle",
    "LegacyEoaBundle",
    "NormalizedBundle",
    "RawArrayBundle",
    "UnknownBundle",
    "declared_format",
    "BundleNormalizer",
    "classify_bundle",
    "load_bundle",
]
