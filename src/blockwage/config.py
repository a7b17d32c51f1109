"""Configuration management for the settlement service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv


def _split_list(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment."""

    database_url: str
    asset: str
    currency: str
    settlement_mode: str
    authorized_depositors: tuple[str, ...]
    proof_hmac_secret: str | None
    enable_facilitator_simulator: bool
    host: str
    port: int
    debug: bool
    log_level: str

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        load_dotenv()

        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./blockwage.db"),
            asset=os.getenv("ASSET", "USDC"),
            currency=os.getenv("CURRENCY", "USDC"),
            settlement_mode=os.getenv("SETTLEMENT_MODE", "release"),
            authorized_depositors=_split_list(os.getenv("AUTHORIZED_DEPOSITORS", "")),
            proof_hmac_secret=os.getenv("PROOF_HMAC_SECRET") or None,
            enable_facilitator_simulator=(
                os.getenv("ENABLE_FACILITATOR_SIMULATOR", "false").lower() == "true"
            ),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()
