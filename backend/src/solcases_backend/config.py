from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_ORIGINS = ["https://solcases.fun", "null", "file://"]


class ServerConfig(BaseSettings):
    """Process settings, read from the environment and an optional ``.env`` file."""

    port: int = 3001
    allowed_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: list(DEFAULT_ORIGINS))
    log_level: str = "INFO"

    privy_app_id: str | None = None
    privy_app_secret: str | None = None
    privy_api_base: str = "https://api.privy.io/v1"
    solana_rpc_url: str = "https://api.mainnet-beta.solana.com"
    dev_wallet_balance_lamports: int = 0

    sessions_file: Path | None = None
    session_cookie_name: str = "privy-session"
    session_header_name: str = "x-session-id"
    session_cookie_max_age: int = 90 * 24 * 60 * 60

    payout_share: float = Field(default=0.85, gt=0, le=1)
    house_fee_share: float = Field(default=0.08, ge=0, le=1)

    stale_transaction_seconds: float = 300.0
    force_complete_min_age_seconds: float = 120.0
    sweep_interval_seconds: float = 60.0

    chat_blocked_words: Annotated[list[str], NoDecode] = Field(default_factory=list)

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("allowed_origins", "chat_blocked_words", mode="before")
    @classmethod
    def _split_comma_list(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @property
    def uses_privy(self) -> bool:
        return bool(self.privy_app_id and self.privy_app_secret)

    @classmethod
    def from_env(cls, env_file: str | None = None) -> ServerConfig:
        return cls(_env_file=env_file or ".env")
