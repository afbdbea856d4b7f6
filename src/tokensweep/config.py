"""Application configuration using pydantic-settings.

All knobs of the sweep pipeline (batch size, sweep split, reserve floor,
submission retries) live here so operators can tune them per ledger.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")
    dry_run: bool = Field(default=True, description="Use the in-memory ledger (no real transactions)")

    # ======================
    # Solana RPC
    # ======================
    sol_rpc_url: str = Field(
        default="https://api.mainnet-beta.solana.com", description="Solana RPC URL"
    )
    helius_api_key: str = Field(default="", description="Helius API key (enables fast balance index)")
    jupiter_api_url: str = Field(
        default="https://lite-api.jup.ag/price/v2", description="Jupiter price API URL"
    )
    rpc_timeout: float = Field(default=30.0, description="HTTP timeout for RPC calls (seconds)")
    rpc_max_retries: int = Field(
        default=4, description="Attempts per RPC call on rate limits and transient errors"
    )
    rpc_retry_backoff: float = Field(
        default=1.0, description="Base delay between RPC retries (seconds)"
    )

    # ======================
    # Wallets
    # ======================
    keypair_path: Optional[str] = Field(
        default=None, description="Path to solana-keygen JSON keypair of the source wallet"
    )
    keypair_secret: Optional[str] = Field(
        default=None, description="Base58 encoded 64-byte secret of the source wallet"
    )
    destination_wallet: str = Field(default="", description="Destination wallet address")

    # ======================
    # Batching / sweep policy
    # ======================
    max_batch_size: int = Field(
        default=5, description="Maximum token transfers per transaction"
    )
    final_batch_sweep_pct: int = Field(
        default=70,
        description="Share of usable SOL attached to the last token batch; the rest trails",
    )
    rent_exempt_reserve_lamports: int = Field(
        default=2_000_000, description="SOL floor left in the source wallet (lamports)"
    )

    # ======================
    # Submission
    # ======================
    commitment: str = Field(default="confirmed", description="Finality tier to wait for")
    submit_max_retries: int = Field(default=3, description="RPC-level resend attempts")
    confirmation_poll_interval: float = Field(
        default=0.5, description="Seconds between signature status polls"
    )
    refresh_settle_delay: float = Field(
        default=2.0, description="Seconds to wait before re-scanning after a run"
    )

    @field_validator("max_batch_size")
    @classmethod
    def _check_batch_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_batch_size must be at least 1")
        return value

    @field_validator("final_batch_sweep_pct")
    @classmethod
    def _check_sweep_pct(cls, value: int) -> int:
        if not 1 <= value <= 100:
            raise ValueError("final_batch_sweep_pct must be between 1 and 100")
        return value

    @field_validator("commitment")
    @classmethod
    def _check_commitment(cls, value: str) -> str:
        value = value.lower()
        if value not in ("processed", "confirmed", "finalized"):
            raise ValueError(f"Unknown commitment: {value}")
        return value

    @property
    def trailing_sweep_pct(self) -> int:
        """Share of usable SOL swept by the trailing zero-token batch."""
        return 100 - self.final_batch_sweep_pct

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def has_keypair(self) -> bool:
        """Check if a source keypair is configured."""
        return bool(self.keypair_path or self.keypair_secret)

    def get_rpc_url(self) -> str:
        """RPC URL, preferring Helius when an API key is configured."""
        if self.helius_api_key:
            return f"https://mainnet.helius-rpc.com/?api-key={self.helius_api_key}"
        return self.sol_rpc_url

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "dry_run": self.dry_run,
            "rpc": self.sol_rpc_url,
            "helius_api_key": "***" if self.helius_api_key else "(not set)",
            "keypair": "***" if self.has_keypair else "(not set)",
            "destination_wallet": self.destination_wallet or "(not set)",
            "sweep": {
                "max_batch_size": self.max_batch_size,
                "final_batch_sweep_pct": self.final_batch_sweep_pct,
                "trailing_sweep_pct": self.trailing_sweep_pct,
                "rent_exempt_reserve_lamports": self.rent_exempt_reserve_lamports,
            },
            "submission": {
                "commitment": self.commitment,
                "max_retries": self.submit_max_retries,
            },
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
