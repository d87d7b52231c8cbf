"""Pydantic settings for the basket vault engine."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from web3 import Web3

from basketvault.core.constants import MAX_COLLATERAL_BUFFER_UNIT_CAP, ZERO_ADDRESS


class Settings(BaseSettings):
    """Protocol-level settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Withdrawal gate
    cooldown_period: int = Field(default=86400, ge=0, le=14 * 86400, description="Seconds between deposit and withdrawal")

    # Share issuance floors
    min_initial_portfolio_amount: int = Field(default=10**16, ge=1, description="Lowest allowed initial share amount")
    min_portfolio_token_holding_amount: int = Field(
        default=10**16, ge=1, description="Protocol floor for a vault's minimum share holding"
    )

    # Buffer units
    max_collateral_buffer_unit: int = Field(default=175, ge=0, description="Cap on collateral buffer (1/100000)")
    max_flashloan_buffer_unit: int = Field(default=500, ge=0, le=10_000, description="Cap on flash-loan buffer (1/10000)")

    # Protocol fee
    protocol_streaming_fee_bps: int = Field(default=0, ge=0, le=1000, description="Protocol streaming fee in bps")
    protocol_treasury: str = Field(default=ZERO_ADDRESS, description="Receiver of protocol fee shares")

    # Fee maxima
    max_management_fee_bps: int = Field(default=1000, ge=0, le=10_000)
    max_performance_fee_bps: int = Field(default=5000, ge=0, le=10_000)
    max_entry_exit_fee_bps: int = Field(default=500, ge=0, le=10_000)

    # Basket
    max_asset_limit: int = Field(default=15, ge=1, le=100, description="Maximum number of basket tokens")

    # Persistence
    storage_dir: Path = Field(default=Path(".cache/basketvault"), description="Snapshot directory path")

    @field_validator("protocol_treasury", mode="before")
    @classmethod
    def parse_protocol_treasury(cls, v):
        """Checksum the treasury address."""
        if not isinstance(v, str) or not Web3.is_address(v):
            raise ValueError(f"Invalid protocol treasury address: {v!r}")
        return Web3.to_checksum_address(v)

    @field_validator("max_collateral_buffer_unit")
    @classmethod
    def check_collateral_buffer_cap(cls, v):
        """Collateral buffer may never exceed 3%."""
        if v > MAX_COLLATERAL_BUFFER_UNIT_CAP:
            raise ValueError(f"max_collateral_buffer_unit {v} exceeds cap {MAX_COLLATERAL_BUFFER_UNIT_CAP}")
        return v

    @field_validator("storage_dir", mode="before")
    @classmethod
    def parse_storage_dir(cls, v):
        """Convert string to Path."""
        if isinstance(v, str):
            return Path(v)
        return v

    def ensure_storage_dir(self) -> Path:
        """Ensure storage directory exists and return it."""
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        return self.storage_dir


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
