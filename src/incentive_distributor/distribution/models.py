"""Data models for reward allocation and distribution files."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from web3 import Web3

from incentive_distributor.distribution.errors import InputValidationError

STIP_LP_DISTRIBUTION_TYPE_ID = 1001
STIP_MIGRATION_DISTRIBUTION_TYPE_ID = 1002
STIP_TRADING_INCENTIVES_DISTRIBUTION_TYPE_ID = 1003

DISTRIBUTION_TYPE_NAMES: dict[int, str] = {
    STIP_LP_DISTRIBUTION_TYPE_ID: "STIP LP incentives",
    STIP_MIGRATION_DISTRIBUTION_TYPE_ID: "STIP migration incentives",
    STIP_TRADING_INCENTIVES_DISTRIBUTION_TYPE_ID: "STIP trading incentives",
}


def get_distribution_type_name(distribution_type_id: int) -> str | None:
    """Return the human-readable name of a distribution type, if known."""
    return DISTRIBUTION_TYPE_NAMES.get(distribution_type_id)


def normalize_address(value: object, *, field_name: str = "address") -> str:
    """Validate an address and return its EIP-55 checksum form."""
    if not isinstance(value, str) or not Web3.is_address(value):
        raise InputValidationError(f"Invalid {field_name}: {value!r}")
    return Web3.to_checksum_address(value)


@dataclass(frozen=True)
class AllocationRecord:
    """Weighted-average balance of one account in one market."""

    account: str
    market_address: str
    weighted_balance: int


@dataclass(frozen=True)
class MarketAllocation:
    """Rewards allocated to a single market for the period."""

    market_address: str
    total_rewards: int


@dataclass(frozen=True)
class LpAllocation:
    """LP incentive allocation for one period."""

    is_active: bool
    total_rewards: int
    rewards_per_market: dict[str, int]
    period: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LpAllocation":
        """Create an LpAllocation from an allocation API ``lp`` object."""
        rewards_per_market = {
            Web3.to_checksum_address(market): int(str(amount))
            for market, amount in (data.get("rewardsPerMarket") or {}).items()
        }
        period = data.get("period")
        return cls(
            is_active=bool(data.get("isActive", False)),
            total_rewards=int(str(data.get("totalRewards", "0"))),
            rewards_per_market=rewards_per_market,
            period=int(period) if period is not None else None,
        )

    @property
    def markets(self) -> tuple[MarketAllocation, ...]:
        return tuple(
            MarketAllocation(market_address=market, total_rewards=amount)
            for market, amount in self.rewards_per_market.items()
        )


@dataclass
class MarketBalances:
    """Per-account balances and the reference token supply of one market."""

    market_address: str
    supply: int
    user_balances: dict[str, int] = field(default_factory=dict)

    @property
    def balances_sum(self) -> int:
        return sum(self.user_balances.values())


@dataclass(frozen=True)
class UserReward:
    """Total reward of one account across all markets."""

    account: str
    amount: int


@dataclass(frozen=True)
class AllocationResult:
    """Outcome of a reward computation run.

    ``amounts`` holds only accounts at or above the minimum threshold.
    ``below_threshold`` is informational; those rewards are not paid.
    """

    amounts: dict[str, int]
    below_threshold: dict[str, int]
    total_rewards_computed: int
    total_allocated: int

    @property
    def total_included(self) -> int:
        return sum(self.amounts.values())

    @property
    def rewards(self) -> tuple[UserReward, ...]:
        return tuple(UserReward(account=a, amount=v) for a, v in self.amounts.items())


class _JsonPairs(list[tuple[str, Any]]):
    """JSON object kept as ordered key/value pairs (duplicate keys preserved)."""


def _pairs_hook(pairs: list[tuple[str, Any]]) -> _JsonPairs:
    return _JsonPairs(pairs)


def _parse_amount(recipient: str, value: object) -> int:
    if not isinstance(value, str) or not (value.isascii() and value.isdigit()):
        raise InputValidationError(
            f"Invalid amount for recipient {recipient}: {value!r} (expected a non-negative integer string)"
        )
    return int(value)


def _parse_int_field(data: dict[str, Any], name: str) -> int:
    value = data.get(name)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InputValidationError(f"Invalid file format. It should contain `{name}` positive integer")
    return value


@dataclass(frozen=True)
class DistributionFile:
    """A distribution run's payout list, as read from or written to disk.

    ``amounts`` preserves the file's entry order and any repeated recipients,
    so that the submitter can detect duplicates instead of silently merging
    them.
    """

    id: int
    token: str
    amounts: tuple[tuple[str, int], ...]
    distribution_type_id: int
    chain_id: int | None = None

    @property
    def distribution_type_name(self) -> str:
        return get_distribution_type_name(self.distribution_type_id) or "unknown"

    @property
    def recipients(self) -> list[str]:
        return [recipient for recipient, _ in self.amounts]

    @property
    def total_amount(self) -> int:
        return sum(amount for _, amount in self.amounts)

    @classmethod
    def from_json(cls, raw: str) -> "DistributionFile":
        """Parse and validate a distribution file.

        Raises:
            InputValidationError: If the content is not valid JSON or any
                required field is missing or malformed.
        """
        try:
            parsed = json.loads(raw, object_pairs_hook=_pairs_hook)
        except json.JSONDecodeError as e:
            raise InputValidationError(f"Invalid file format. Not valid JSON: {e}") from e

        if not isinstance(parsed, _JsonPairs):
            raise InputValidationError("Invalid file format. It should be a JSON object")
        data = dict(parsed)

        if not data.get("token"):
            raise InputValidationError("Invalid file format. It should contain `token` string")
        token = normalize_address(data["token"], field_name="token address")

        raw_amounts = data.get("amounts")
        if not isinstance(raw_amounts, _JsonPairs):
            raise InputValidationError("Invalid file format. It should contain `amounts` object")
        amounts = tuple(
            (
                normalize_address(recipient, field_name="recipient"),
                _parse_amount(recipient, value),
            )
            for recipient, value in raw_amounts
        )

        distribution_type_id = _parse_int_field(data, "distributionTypeId")
        if get_distribution_type_name(distribution_type_id) is None:
            raise InputValidationError(f"Unknown distribution type id {distribution_type_id}")

        distribution_id = _parse_int_field(data, "id")

        chain_id = data.get("chainId")
        if chain_id is not None and (isinstance(chain_id, bool) or not isinstance(chain_id, int)):
            raise InputValidationError("Invalid file format. `chainId` should be an integer")

        return cls(
            id=distribution_id,
            token=token,
            amounts=amounts,
            distribution_type_id=distribution_type_id,
            chain_id=chain_id,
        )

    @classmethod
    def from_path(cls, path: Path) -> "DistributionFile":
        """Read and validate a distribution file from disk."""
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise InputValidationError(f"Distribution file not found: {path}") from e
        return cls.from_json(raw)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "token": self.token,
            "amounts": {recipient: str(amount) for recipient, amount in self.amounts},
        }
        if self.chain_id is not None:
            data["chainId"] = self.chain_id
        data["distributionTypeId"] = self.distribution_type_id
        data["id"] = self.id
        return data
