"""
Configuration settings for the regen pool.

Uses Pydantic Settings to load environment variables (or a local `.env`) for
ledger locations, protocol fee, provider selection, lock timing and logging.
Paths left unset are derived from `data_dir`.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Dict, Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ProviderMode = Literal["disabled", "simulated", "live"]
CreditMixPolicyName = Literal["off", "balanced"]

DEFAULT_SUBSCRIPTION_TIERS: Dict[str, int] = {
    "seedling": 300,
    "grove": 700,
    "canopy": 1500,
}


class Settings(BaseSettings):
    # Storage
    data_dir: Path = Field(Path("data"), alias="REGEN_DATA_DIR")
    contributions_path: Optional[Path] = Field(None, alias="REGEN_POOL_CONTRIBUTIONS_PATH")
    executions_path: Optional[Path] = Field(None, alias="REGEN_BATCH_EXECUTIONS_PATH")
    reconciliation_runs_path: Optional[Path] = Field(None, alias="REGEN_RECONCILIATION_RUNS_PATH")
    locks_dir: Optional[Path] = Field(None, alias="REGEN_RUN_LOCKS_DIR")
    sell_orders_path: Optional[Path] = Field(None, alias="REGEN_SELL_ORDERS_PATH")

    # Batch economics
    protocol_fee_bps: int = Field(1000, alias="REGEN_PROTOCOL_FEE_BPS")
    default_jurisdiction: str = Field("US", alias="REGEN_DEFAULT_JURISDICTION")
    payment_denom: str = Field("USDC", alias="REGEN_PAYMENT_DENOM")
    credit_mix_policy: CreditMixPolicyName = Field("balanced", alias="REGEN_CREDIT_MIX_POLICY")
    subscription_tiers: Dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_SUBSCRIPTION_TIERS),
        alias="REGEN_SUBSCRIPTION_TIERS",
    )

    # Protocol fee conversion
    acquisition_provider: ProviderMode = Field("disabled", alias="REGEN_ACQUISITION_PROVIDER")
    acquisition_rate: int = Field(2_000_000, gt=0, alias="REGEN_ACQUISITION_RATE")
    acquisition_slippage_bps: int = Field(100, ge=0, le=10_000, alias="REGEN_ACQUISITION_SLIPPAGE_BPS")
    acquisition_msg_type_url: str = Field(
        "/osmosis.poolmanager.v1beta1.MsgSwapExactAmountIn",
        alias="REGEN_ACQUISITION_MSG_TYPE_URL",
    )
    burn_provider: ProviderMode = Field("disabled", alias="REGEN_BURN_PROVIDER")
    burn_address: Optional[str] = Field(None, alias="REGEN_BURN_ADDRESS")

    # Locking
    run_lock_ttl_seconds: float = Field(1800.0, gt=0, alias="REGEN_RUN_LOCK_TTL_SECONDS")
    run_lock_wait_seconds: float = Field(0.0, ge=0, alias="REGEN_RUN_LOCK_WAIT_SECONDS")
    store_lock_wait_seconds: float = Field(10.0, gt=0, alias="REGEN_STORE_LOCK_WAIT_SECONDS")
    store_lock_retry_seconds: float = Field(0.025, gt=0, alias="REGEN_STORE_LOCK_RETRY_SECONDS")
    store_lock_stale_seconds: float = Field(60.0, gt=0, alias="REGEN_STORE_LOCK_STALE_SECONDS")

    # Confirmation polling
    confirmation_attempts: int = Field(10, ge=1, alias="REGEN_CONFIRMATION_ATTEMPTS")
    confirmation_interval_seconds: float = Field(2.0, ge=0, alias="REGEN_CONFIRMATION_INTERVAL_SECONDS")

    # Application
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def _check_burn_address(self) -> "Settings":
        if self.burn_provider == "live" and not (self.burn_address or "").strip():
            raise ValueError("REGEN_BURN_ADDRESS is required when REGEN_BURN_PROVIDER=live")
        return self

    @property
    def resolved_contributions_path(self) -> Path:
        return self.contributions_path or self.data_dir / "pool-contributions.json"

    @property
    def resolved_executions_path(self) -> Path:
        return self.executions_path or self.data_dir / "monthly-batch-executions.json"

    @property
    def resolved_reconciliation_runs_path(self) -> Path:
        return self.reconciliation_runs_path or self.data_dir / "reconciliation-runs.json"

    @property
    def resolved_locks_dir(self) -> Path:
        return self.locks_dir or self.data_dir / "run-locks"

    @property
    def resolved_sell_orders_path(self) -> Path:
        return self.sell_orders_path or self.data_dir / "sell-orders.json"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings", "ProviderMode", "CreditMixPolicyName"]
