"""Tests for distribution file parsing and validation."""

import json
from pathlib import Path

import pytest
from web3 import Web3

from incentive_distributor.distribution.errors import InputValidationError
from incentive_distributor.distribution.models import DistributionFile, LpAllocation


def _raw(payload: dict) -> str:
    return json.dumps(payload)


class TestDistributionFile:
    def test_valid_file(self, distribution_payload: dict) -> None:
        dist = DistributionFile.from_json(_raw(distribution_payload))

        assert dist.id == 17254080001001
        assert dist.distribution_type_id == 1001
        assert dist.distribution_type_name == "STIP LP incentives"
        assert dist.chain_id == 42161
        assert dist.recipients == [Web3.to_checksum_address(f"0x{i:040x}") for i in (1, 2, 3)]
        assert dist.total_amount == 3_600_000_000_000_000_000

    def test_from_path(self, distribution_path: Path) -> None:
        dist = DistributionFile.from_path(distribution_path)
        assert len(dist.amounts) == 3

    def test_missing_path(self, tmp_path: Path) -> None:
        with pytest.raises(InputValidationError, match="not found"):
            DistributionFile.from_path(tmp_path / "missing.json")

    def test_duplicate_keys_are_preserved(self) -> None:
        raw = (
            '{"token": "0x912CE59144191C1204E64559FE8253a0e49E6548",'
            ' "amounts": {"0x0000000000000000000000000000000000000001": "1",'
            ' "0x0000000000000000000000000000000000000001": "2"},'
            ' "distributionTypeId": 1001, "id": 1}'
        )
        dist = DistributionFile.from_json(raw)
        assert [amount for _, amount in dist.amounts] == [1, 2]

    def test_entry_order_is_preserved(self, distribution_payload: dict) -> None:
        distribution_payload["amounts"] = {f"0x{i:040x}": "1" for i in (9, 3, 7)}
        dist = DistributionFile.from_json(_raw(distribution_payload))
        assert [int(r, 16) for r in dist.recipients] == [9, 3, 7]

    def test_not_json(self) -> None:
        with pytest.raises(InputValidationError, match="Not valid JSON"):
            DistributionFile.from_json("{")

    def test_not_an_object(self) -> None:
        with pytest.raises(InputValidationError, match="JSON object"):
            DistributionFile.from_json("[]")

    @pytest.mark.parametrize("field", ["token", "amounts", "distributionTypeId", "id"])
    def test_missing_required_field(self, distribution_payload: dict, field: str) -> None:
        del distribution_payload[field]
        with pytest.raises(InputValidationError, match=field):
            DistributionFile.from_json(_raw(distribution_payload))

    def test_invalid_token(self, distribution_payload: dict) -> None:
        distribution_payload["token"] = "0x1234"
        with pytest.raises(InputValidationError, match="token address"):
            DistributionFile.from_json(_raw(distribution_payload))

    def test_invalid_recipient(self, distribution_payload: dict) -> None:
        distribution_payload["amounts"] = {"not-an-address": "1"}
        with pytest.raises(InputValidationError, match="recipient"):
            DistributionFile.from_json(_raw(distribution_payload))

    @pytest.mark.parametrize("amount", ["1.5", "-1", "1e18", "", 100])
    def test_invalid_amount(self, distribution_payload: dict, amount: object) -> None:
        distribution_payload["amounts"] = {f"0x{1:040x}": amount}
        with pytest.raises(InputValidationError, match="Invalid amount"):
            DistributionFile.from_json(_raw(distribution_payload))

    def test_unknown_distribution_type(self, distribution_payload: dict) -> None:
        distribution_payload["distributionTypeId"] = 999
        with pytest.raises(InputValidationError, match="Unknown distribution type"):
            DistributionFile.from_json(_raw(distribution_payload))

    def test_boolean_id_rejected(self, distribution_payload: dict) -> None:
        distribution_payload["id"] = True
        with pytest.raises(InputValidationError, match="`id`"):
            DistributionFile.from_json(_raw(distribution_payload))

    def test_chain_id_must_be_int(self, distribution_payload: dict) -> None:
        distribution_payload["chainId"] = "42161"
        with pytest.raises(InputValidationError, match="chainId"):
            DistributionFile.from_json(_raw(distribution_payload))

    def test_to_dict_writes_amounts_as_strings(self, distribution_payload: dict) -> None:
        data = DistributionFile.from_json(_raw(distribution_payload)).to_dict()

        assert data["id"] == distribution_payload["id"]
        assert data["chainId"] == 42161
        assert all(isinstance(v, str) for v in data["amounts"].values())


class TestLpAllocation:
    def test_from_dict(self) -> None:
        market = "0x70d95587d40a2caf56bd97485ab3eec10bee6336"
        allocation = LpAllocation.from_dict(
            {
                "isActive": True,
                "totalRewards": "1000000000000000000000",
                "period": 604800,
                "rewardsPerMarket": {market: "1000000000000000000000"},
            }
        )

        assert allocation.is_active
        assert allocation.total_rewards == 10**21
        assert allocation.period == 604800
        assert allocation.rewards_per_market == {Web3.to_checksum_address(market): 10**21}
        assert allocation.markets[0].market_address == Web3.to_checksum_address(market)

    def test_inactive_defaults(self) -> None:
        allocation = LpAllocation.from_dict({"isActive": False})
        assert not allocation.is_active
        assert allocation.total_rewards == 0
        assert allocation.rewards_per_market == {}
