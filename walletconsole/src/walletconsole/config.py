"""
Configuration management using pydantic-settings.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from psbtcore.network import ChainType


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    chain: ChainType = ChainType.BITCOIN_MAINNET

    indexer_url: str = "https://sdk.txspam.lol"
    indexer_secret_token: str = ""
    request_timeout: float = Field(default=30.0, gt=0)
    status_batch_size: int = Field(default=10, ge=1)

    # Per-address UTXO fetch limit
    rate_limit_max_calls: int = Field(default=5, ge=1)
    rate_limit_window_seconds: float = Field(default=60.0, gt=0)
    rate_limit_max_keys: int = Field(default=1024, ge=1)

    default_fee_rate: float = Field(default=1.0, ge=0)  # sat/vB
    min_fee_rate: float = Field(default=0.01, ge=0)

    log_level: str = "INFO"


def get_settings() -> Settings:
    return Settings()
