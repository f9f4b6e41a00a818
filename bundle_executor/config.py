from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]

ONE_GWEI = 1_000_000_000


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    log_level: str = Field(default="INFO", description="Logging level")

    # Chain
    rpc_url: str = Field(
        default="https://rpc.berachain.com",
        description="JSON-RPC endpoint used for estimation and receipts",
    )
    chain_id: int = Field(default=80094, description="Expected chain ID")
    block_explorer_url: str = Field(default="https://berascan.com", description="Block explorer base URL")
    request_timeout_seconds: int = Field(default=30, description="HTTP request timeout")

    # Fee-market parameters (wei)
    max_fee_per_gas: int = Field(default=ONE_GWEI, ge=0, description="maxFeePerGas for type-2 transactions")
    max_priority_fee_per_gas: int = Field(
        default=ONE_GWEI,
        ge=0,
        description="maxPriorityFeePerGas for type-2 transactions",
    )

    # Gas limits
    gas_multiplier: float = Field(default=1.5, ge=1.3, description="Estimation buffer on the primary send path")
    fallback_gas_multiplier: float = Field(
        default=1.3,
        ge=1.3,
        description="Estimation buffer when falling back after a batch revert",
    )
    default_gas_limit: int = Field(default=5_000_000, gt=0, description="Gas limit used when estimation fails")
    fallback_gas_limit: int = Field(
        default=3_000_000,
        gt=0,
        description="Gas limit used when estimation fails on the fallback path",
    )

    # Sending
    inter_transaction_delay_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Pause between sequential submissions from the same signer",
    )
    required_confirmations: int = Field(default=1, ge=1, description="Confirmations to wait for")
    confirmation_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Upper bound on a confirmation wait; unset waits indefinitely",
    )

    # Batching
    allow_atomic_batching: bool = Field(
        default=False,
        description="Offer a MultiSendCallsOnly batch (changes msg.sender) before sending individually",
    )
    revert_fallback: Literal["ask", "always", "never"] = Field(
        default="ask",
        description="What to do when an atomic batch reverts",
    )
    multisend_calls_only_address: str = Field(
        default="0x40A2aCCbd92BCA938b02010E17A5b8929b49130D",
        description="Safe MultiSendCallsOnly contract",
    )

    # Safe Transaction Service
    safe_service_url: str = Field(
        default="https://safe-transaction-berachain.safe.global/api",
        description="Safe Transaction Service base URL (without /v1)",
    )
    safe_app_url: str = Field(default="https://app.safe.global", description="Safe web app URL")
    safe_chain_prefix: str = Field(default="ber", description="EIP-3770 short name used in Safe app links")

    @property
    def has_confirmation_timeout(self) -> bool:
        return self.confirmation_timeout_seconds is not None

    def explorer_tx_url(self, tx_hash: str) -> str:
        return f"{self.block_explorer_url.rstrip('/')}/tx/{tx_hash}"


# Global settings instance
settings = Settings()
