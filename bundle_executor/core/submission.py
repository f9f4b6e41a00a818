"""
Sign-and-send flow.

Operator-facing entry point: pick a wallet that has a stored key, unlock it,
review the bundle summary, then hand the bundle to the router.
"""

import logging
from typing import Any, List, Mapping, Optional, Tuple

from bundle_executor.core.bundles import BundleSummary, declared_format
from bundle_executor.core.interfaces import UIHandler, WalletService
from bundle_executor.core.outcome import ExecutionOutcome, ExecutionRoute
from bundle_executor.core.router import ExecutionRouter


logger = logging.getLogger(__name__)

SEND_PROMPT = "Do you want to send these transactions?"

SEND_DIRECT = "direct"
SEND_MULTISIG = "multisig"


def summarize_bundle(bundle: Mapping[str, Any]) -> str:
    """Operator-facing summary lines for a bundle."""
    summary = BundleSummary.from_dict(bundle.get("summary"))
    lines = [
        "Bundle summary:",
        f"- Total: {summary.describe()}",
        f"- Rewards: {summary.reward_summary}",
        f"- Total transactions: {summary.total_transactions}",
    ]
    fmt = declared_format(bundle)
    if fmt:
        lines.append(f"- Format: {fmt}")
    return "\n".join(lines)


class SignAndSendFlow:
    """Acquires a signer from the wallet service and routes a bundle."""

    def __init__(
        self,
        wallet_service: WalletService,
        ui: UIHandler,
        router: ExecutionRouter,
    ):
        self.wallet_service = wallet_service
        self.ui = ui
        self.router = router

    async def wallets_with_keys(self) -> List[Tuple[str, str]]:
        wallets = []
        for name, address in self.wallet_service.get_wallets().items():
            if await self.wallet_service.has_private_key(name):
                wallets.append((name, address))
        return wallets

    async def run(self, bundle: Mapping[str, Any]) -> ExecutionOutcome:
        route = ExecutionRouter.classify(bundle)

        if declared_format(bundle) == "unknown":
            return ExecutionOutcome(
                route=route,
                success=False,
                message="Could not determine bundle format.",
                recovery_hint="Try generating a new bundle using the 'Claim Rewards' option.",
            )

        wallets = await self.wallets_with_keys()
        if not wallets:
            return ExecutionOutcome(
                route=route,
                success=False,
                message="No wallets with private keys found. Please add a private key first.",
            )

        name, address = await self._select_wallet(wallets)
        password = await self.ui.get_user_input(
            "Enter password to decrypt the private key:",
            lambda value: value.strip() != "",
            "Password cannot be empty",
        )

        logger.info(f"Decrypting private key and creating signer for {name}")
        signer_result = await self.wallet_service.create_signer(name, password)
        if not signer_result.success or signer_result.signer is None:
            message = signer_result.message or "Could not create signer"
            logger.error(f"Signer creation failed for {name}: {message}")
            return ExecutionOutcome(route=route, success=False, message=message)
        logger.info(f"Successfully created signer for {name} ({address})")

        prefer_direct = False
        if route == ExecutionRoute.MULTISIG:
            method = await self._select_send_method()
            if method is None:
                return ExecutionOutcome(route=route, success=False, message="Operation cancelled.", cancelled=True)
            prefer_direct = method == SEND_DIRECT

        if not await self.ui.confirm(f"{summarize_bundle(bundle)}\n{SEND_PROMPT}"):
            return ExecutionOutcome(route=route, success=False, message="Operation cancelled.", cancelled=True)

        return await self.router.route(
            bundle,
            signer_result.signer,
            password=password,
            prefer_direct=prefer_direct,
        )

    async def _select_wallet(self, wallets: List[Tuple[str, str]]) -> Tuple[str, str]:
        if len(wallets) == 1:
            return wallets[0]

        def valid_number(value: str) -> bool:
            return value.strip().isdigit() and 1 <= int(value) <= len(wallets)

        prompt = "\n".join(
            ["Select wallet to sign transactions:"]
            + [f"{i + 1}. {name} ({address})" for i, (name, address) in enumerate(wallets)]
            + ["Enter wallet number:"]
        )
        number = await self.ui.get_user_input(prompt, valid_number, "Invalid wallet number")
        return wallets[int(number) - 1]

    async def _select_send_method(self) -> Optional[str]:
        choice = await self.ui.get_selection(
            [
                {"key": "1", "label": "Propose to Safe multisig", "value": SEND_MULTISIG},
                {"key": "2", "label": "Send as EOA transaction (with Private Key)", "value": SEND_DIRECT},
                {"key": "b", "label": "Back", "value": "back"},
            ]
        )
        if choice not in (SEND_MULTISIG, SEND_DIRECT):
            return None
        return choice
