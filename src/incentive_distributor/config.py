"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
distribution jobs, loading and validating environment variables at startup.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from web3 import Web3

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


@dataclass(frozen=True)
class NetworkValues:
    """Static per-network contract addresses and endpoints."""

    chain_id: int
    batch_sender_address: str
    incentives_token_address: str
    rpc_url: str
    subgraph_url: str
    incentives_api_url: str


NETWORKS: dict[str, NetworkValues] = {
    "arbitrum": NetworkValues(
        chain_id=42161,
        batch_sender_address="0x5384E6cAd96B2877B5B3337A277577053BD1941D",
        incentives_token_address="0x912CE59144191C1204E64559FE8253a0e49E6548",  # ARB
        rpc_url="https://arb1.arbitrum.io/rpc",
        subgraph_url="https://subgraph.satsuma-prod.com/3b2ced13c8d9/gmx/synthetics-arbitrum-stats/api",
        incentives_api_url="https://arbitrum-api.gmxinfra.io",
    ),
}


def get_network_values(network: str) -> NetworkValues:
    try:
        return NETWORKS[network]
    except KeyError:
        raise ValueError(f"unsupported network {network}") from None


class NetworkSettings(BaseSettings):
    """Chain and data-source endpoints."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    name: str = Field(
        default="arbitrum",
        alias="NETWORK",
        description="Network to distribute on",
    )
    rpc_url: str | None = Field(
        default=None,
        alias="RPC_URL",
        description="Primary RPC endpoint (defaults to the network's public RPC)",
    )
    fallback_rpc_url: str | None = Field(
        default=None,
        alias="FALLBACK_RPC_URL",
        description="Fallback RPC endpoint for reads",
    )
    subgraph_url: str | None = Field(
        default=None,
        alias="SUBGRAPH_URL",
        description="Stats subgraph GraphQL endpoint",
    )
    incentives_api_url: str | None = Field(
        default=None,
        alias="INCENTIVES_API_URL",
        description="Incentives allocation API base URL",
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if v not in NETWORKS:
            raise ValueError(f"unsupported network {v}")
        return v

    @field_validator("rpc_url", "fallback_rpc_url", "subgraph_url", "incentives_api_url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate endpoint URL format."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("endpoint URL must be an HTTP(S) URL")
        return v.rstrip("/")

    @property
    def defaults(self) -> NetworkValues:
        return get_network_values(self.name)

    @property
    def resolved_rpc_url(self) -> str:
        return self.rpc_url or self.defaults.rpc_url

    @property
    def resolved_subgraph_url(self) -> str:
        return self.subgraph_url or self.defaults.subgraph_url

    @property
    def resolved_incentives_api_url(self) -> str:
        return self.incentives_api_url or self.defaults.incentives_api_url


class BatchSendSettings(BaseSettings):
    """Mode switches and limits for sending distributions."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    write: bool = Field(
        default=False,
        alias="WRITE",
        description="Send transactions; read-only when false",
    )
    sender_key: SecretStr | None = Field(
        default=None,
        alias="BATCH_SENDER_KEY",
        description="Private key of the sending account (required when WRITE=true)",
    )
    skip_migration_validation: bool = Field(
        default=False,
        alias="SKIP_MIGRATION_VALIDATION",
        description="Send even if the ledger marks the distribution as sent",
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Simulate batches with static calls instead of sending them",
    )
    batch_size: int = Field(
        default=150,
        alias="BATCH_SIZE",
        ge=1,
        le=1000,
        description="Maximum recipients per sendAndEmit transaction",
    )
    migrations_path: Path = Field(
        default=Path(".migrations.json"),
        alias="MIGRATIONS_PATH",
        description="Idempotency ledger file",
    )
    tx_timeout_seconds: int = Field(
        default=300,
        alias="TX_TIMEOUT_SECONDS",
        ge=10,
        le=3600,
        description="How long to wait for each transaction receipt",
    )


class AllocationSettings(BaseSettings):
    """Reward computation settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    min_reward_threshold: Decimal = Field(
        default=Decimal("0.1"),
        alias="MIN_REWARD_THRESHOLD",
        description="Minimum total reward per account, in whole tokens",
    )
    reconciliation_tolerance_wei: int = Field(
        default=10**18,
        alias="RECONCILIATION_TOLERANCE_WEI",
        ge=0,
        description="Allowed |sum(balances) - supply| per market, in wei",
    )
    distributions_dir: Path = Field(
        default=Path("distributions/out"),
        alias="DISTRIBUTIONS_DIR",
        description="Directory for generated distribution files",
    )
    receiver_overrides: dict[str, str] = Field(
        default_factory=dict,
        alias="RECEIVER_OVERRIDES",
        description="JSON object mapping account -> replacement receiver",
    )

    @field_validator("min_reward_threshold")
    @classmethod
    def validate_min_reward_threshold(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("MIN_REWARD_THRESHOLD must be >= 0")
        return v

    @field_validator("receiver_overrides")
    @classmethod
    def validate_receiver_overrides(cls, v: dict[str, str]) -> dict[str, str]:
        result: dict[str, str] = {}
        for account, receiver in v.items():
            if not Web3.is_address(account) or not Web3.is_address(receiver):
                raise ValueError(f"RECEIVER_OVERRIDES has an invalid address: {account} -> {receiver}")
            result[Web3.to_checksum_address(account)] = Web3.to_checksum_address(receiver)
        return result


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from incentive_distributor.config import get_settings

        settings = get_settings()
        print(settings.chain.resolved_rpc_url)
        print(settings.batch_send.write)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    chain: NetworkSettings = Field(
        default_factory=lambda: NetworkSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    batch_send: BatchSendSettings = Field(
        default_factory=lambda: BatchSendSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    allocation: AllocationSettings = Field(
        default_factory=lambda: AllocationSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted."""
        return {
            "network": {
                "name": self.chain.name,
                "rpc_url": self.chain.resolved_rpc_url,
                "fallback_rpc_url": self.chain.fallback_rpc_url or "(not set)",
                "subgraph_url": self.chain.resolved_subgraph_url,
                "incentives_api_url": self.chain.resolved_incentives_api_url,
            },
            "batch_send": {
                "write": str(self.batch_send.write),
                "sender_key": "(set)" if self.batch_send.sender_key else "(not set)",
                "skip_migration_validation": str(self.batch_send.skip_migration_validation),
                "dry_run": str(self.batch_send.dry_run),
                "batch_size": str(self.batch_send.batch_size),
                "migrations_path": str(self.batch_send.migrations_path),
            },
            "allocation": {
                "min_reward_threshold": str(self.allocation.min_reward_threshold),
                "distributions_dir": str(self.allocation.distributions_dir),
                "receiver_overrides": str(len(self.allocation.receiver_overrides)),
            },
            "log_level": self.log_level,
        }

    def validate_requirements(self, *, command: Literal["lp-incentives", "batch-send", "calldata"]) -> None:
        """Validate command-specific requirements.

        If a capability is required for a command and not configured, the
        application must refuse to run.
        """
        if command == "batch-send" and self.batch_send.write and not self.batch_send.sender_key:
            raise ValueError("BATCH_SENDER_KEY is required")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
