"""Runtime configuration: env-driven.

Centralized config using pydantic-settings.  Reads from a .env file and
DIDSLOT_* environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DidSlotConfig(BaseSettings):
    """Runtime configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export DIDSLOT_LOG_LEVEL=DEBUG
        export DIDSLOT_APP_ID=1001
        export DIDSLOT_NETWORK_DB_PATH=/data/localnet.db

    Or via .env file::

        DIDSLOT_NETWORK_NAME=testnet
        DIDSLOT_KEY_PATH=/secure/uploader.key
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DIDSLOT_",
        env_file_encoding="utf-8",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Network
    network_name: str = "localnet"
    network_db_path: Path = Path(".didslot/localnet.db")
    app_id: int = 0
    wait_rounds: int = 3

    # Local state
    journal_path: Path = Path(".didslot/journal.db")
    key_path: Path = Path(".didslot/uploader.key")

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level {value!r}")
        return level

    @field_validator("wait_rounds")
    @classmethod
    def _positive_rounds(cls, value: int) -> int:
        if value < 1:
            raise ValueError("wait_rounds must be >= 1")
        return value

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"
