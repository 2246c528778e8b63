"""Client settings using environment variables."""
from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven configuration for the mood ledger client."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Chains served by the local development node (hardhat default is 31337)
    MOCK_CHAIN_IDS: List[int] = Field(default_factory=lambda: [31337])

    RELAYER_URL: str = "http://localhost:3000"
    RELAYER_TIMEOUT_SECONDS: int = 60
    RELAYER_MAX_RETRIES: int = 3
    RELAYER_RETRY_BACKOFF_SECONDS: float = 1.0

    DECRYPTION_SIGNATURE_DURATION_DAYS: int = Field(1, ge=1)
    MOOD_HISTORY_DAYS: int = Field(30, ge=1)

    LOCAL_STORAGE_PATH: str = "moodledger-storage.json"
    LOCAL_STORAGE_KEY: str = "moodTracker_history"

    LOG_LEVEL: str = "INFO"

    def is_mock_chain(self, chain_id: int) -> bool:
        return chain_id in self.MOCK_CHAIN_IDS


@lru_cache()
def get_settings() -> Settings:
    """Return a cached Settings instance to avoid re-parsing env."""
    return Settings()


settings = get_settings()
