#!/usr/bin/env python3
"""Command line tools for inspecting bundle files"""

import argparse
import asyncio
import json
import sys

from bundle_executor.core.bundles import BundleNormalizer, BundleSummary, classify_bundle, load_bundle
from bundle_executor.core.execution import NormalizationError, SequentialExecutor, TransactionBatcher
from bundle_executor.core.router import ExecutionRouter
from bundle_executor.logging_config import setup_logging


async def cli_inspect(path: str) -> int:
    """Print structure, detected variant and validation results for a bundle file"""
    print(f"🔍 Loading bundle from: {path}")
    try:
        bundle = load_bundle(path)
    except NormalizationError as e:
        print(f"❌ Error: {e}")
        return 1

    print("\n=== Bundle Structure ===")
    print(f"Keys at root level: {', '.join(k for k in bundle.keys() if k != 'filepath')}")

    variant = classify_bundle(bundle)
    print(f"Detected shape: {type(variant).__name__}")

    if isinstance(bundle.get("summary"), dict):
        summary = BundleSummary.from_dict(bundle["summary"])
        print("\n=== Summary ===")
        print(f"- Total: {summary.describe()}")
        print(f"- Rewards: {summary.reward_summary}")
        print(f"- Total transactions: {summary.total_transactions}")
        print(f"- Format: {summary.format or 'unspecified'}")

    try:
        normalized = await BundleNormalizer().normalize(bundle)
    except NormalizationError as e:
        print(f"\n❌ {e}")
        return 1

    print("\n=== Transactions ===")
    print(f"Count: {len(normalized)}")
    if normalized.dropped:
        print(f"Dropped malformed entries: {normalized.dropped}")

    batcher = TransactionBatcher(SequentialExecutor())
    requests, skipped = batcher.validate(normalized.transactions)
    print(f"Valid for sending: {len(requests)}")
    for skip in skipped:
        print(f"⚠️  Transaction {skip.index + 1} skipped: {skip.reason}")

    if requests:
        first = requests[0]
        print("\nFirst transaction:")
        print(f"- to: {first.to}")
        print(f"- value: {first.value}")
        print(f"- data: {first.data[:50]}{'...' if len(first.data) > 50 else ''}")
    return 0


def cli_route(path: str, as_json: bool = False) -> int:
    """Print the route the engine would take for a bundle file"""
    try:
        bundle = load_bundle(path)
    except NormalizationError as e:
        print(f"❌ Error: {e}")
        return 1

    route = ExecutionRouter.classify(bundle)
    if as_json:
        print(json.dumps({"file": path, "route": route.value}))
    else:
        print(f"{path}: {route.value}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Bundle executor CLI")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command")

    inspect_parser = subparsers.add_parser("inspect", help="Show bundle structure and validation results")
    inspect_parser.add_argument("path", help="Bundle JSON file")

    route_parser = subparsers.add_parser("route", help="Show whether a bundle would be proposed or sent")
    route_parser.add_argument("path", help="Bundle JSON file")
    route_parser.add_argument("--json", action="store_true", help="Machine-readable output")

    return parser


async def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    if not args.command:
        parser.print_help()
        return 0

    if args.command == "inspect":
        return await cli_inspect(args.path)

    if args.command == "route":
        return cli_route(args.path, args.json)

    print(f"❌ Unknown command: {args.command}")
    parser.print_help()
    return 2


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
