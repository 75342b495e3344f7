"""Pytest configuration and fixtures."""

import json
from pathlib import Path

import pytest

from incentive_distributor.config import clear_settings_cache

_ENV_VARS = (
    "NETWORK",
    "RPC_URL",
    "FALLBACK_RPC_URL",
    "SUBGRAPH_URL",
    "INCENTIVES_API_URL",
    "WRITE",
    "BATCH_SENDER_KEY",
    "SKIP_MIGRATION_VALIDATION",
    "DRY_RUN",
    "BATCH_SIZE",
    "MIGRATIONS_PATH",
    "TX_TIMEOUT_SECONDS",
    "MIN_REWARD_THRESHOLD",
    "RECONCILIATION_TOLERANCE_WEI",
    "DISTRIBUTIONS_DIR",
    "RECEIVER_OVERRIDES",
    "LOG_LEVEL",
)

ARB_TOKEN = "0x912CE59144191C1204E64559FE8253a0e49E6548"
# Hardhat account #0, never holds funds on mainnet.
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"


def make_address(i: int) -> str:
    """Deterministic lowercase address for tests."""
    return f"0x{i:040x}"


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Run every test without ambient configuration or a stray `.env`."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def distribution_payload() -> dict:
    """A valid three-recipient LP distribution."""
    return {
        "token": ARB_TOKEN,
        "amounts": {
            make_address(1): "1000000000000000000",
            make_address(2): "2500000000000000000",
            make_address(3): "100000000000000000",
        },
        "chainId": 42161,
        "distributionTypeId": 1001,
        "id": 17254080001001,
    }


@pytest.fixture
def distribution_path(tmp_path: Path, distribution_payload: dict) -> Path:
    path = tmp_path / "stipLpIncentives_2024-09-04.json"
    path.write_text(json.dumps(distribution_payload, indent=4), encoding="utf-8")
    return path
