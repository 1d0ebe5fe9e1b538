"""Application configuration management."""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


class Settings(BaseSettings):
    """Runtime configuration loaded from environment or `.env`."""

    model_config = SettingsConfigDict(
        env_file=(".env",),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    rpc_url: str = Field(..., alias="RPC_URL")
    contract_address: str = Field(..., alias="CONTRACT_ADDRESS")
    user_address: str = Field(..., alias="USER_ADDRESS")
    explorer_url: Optional[str] = Field(default=None, alias="EXPLORER_URL")
    currency_symbol: str = Field(default="ETH", alias="CURRENCY_SYMBOL")

    backfill_from_block: int = Field(default=0, alias="BACKFILL_FROM_BLOCK", ge=0)
    snapshot_reads_enabled: bool = Field(default=True, alias="SNAPSHOT_READS_ENABLED")

    poll_interval_seconds: float = Field(
        default=5.0, alias="POLL_INTERVAL_SECONDS", gt=0, le=300
    )
    watch_interval_seconds: float = Field(
        default=2.0, alias="WATCH_INTERVAL_SECONDS", gt=0, le=60
    )
    confirm_settle_seconds: float = Field(
        default=2.0, alias="CONFIRM_SETTLE_SECONDS", ge=0, le=60
    )
    balance_override_seconds: float = Field(
        default=5.0, alias="BALANCE_OVERRIDE_SECONDS", ge=0, le=120
    )
    confirmation_timeout_seconds: float = Field(
        default=120.0, alias="CONFIRMATION_TIMEOUT_SECONDS", gt=0
    )

    # 0.01 of the native currency
    deposit_wei: int = Field(default=10**16, alias="DEPOSIT_WEI", ge=0)

    ai_model: str = Field(default="gpt-4o-search-preview", alias="AI_MODEL")
    max_history_messages: int = Field(
        default=20, alias="MAX_HISTORY_MESSAGES", ge=0, le=200
    )
    max_history_content_chars: int = Field(
        default=2000, alias="MAX_HISTORY_CONTENT_CHARS", ge=1
    )
    max_orphan_responses: int = Field(
        default=256, alias="MAX_ORPHAN_RESPONSES", ge=1
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[Path] = Field(default=None, alias="LOG_FILE")
    debug_buffer_size: int = Field(
        default=200, alias="DEBUG_BUFFER_SIZE", ge=0, le=10000
    )

    @field_validator("contract_address", "user_address")
    @classmethod
    def _check_address(cls, value: str) -> str:
        value = value.strip()
        if not ADDRESS_PATTERN.match(value):
            raise ValueError(f"not a 20-byte hex address: {value!r}")
        return value

    @field_validator("explorer_url", mode="before")
    @classmethod
    def _blank_explorer(cls, value: Optional[str]) -> Optional[str]:
        if value in (None, ""):
            return None
        return str(value).rstrip("/")


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Return cached Settings instance, raising a helpful message on failure."""
    try:
        return Settings()
    except (
        ValidationError
    ) as exc:  # pragma: no cover - configuration failure visible on boot
        raise RuntimeError(f"Invalid configuration: {exc}") from exc


__all__ = ["Settings", "load_settings"]
