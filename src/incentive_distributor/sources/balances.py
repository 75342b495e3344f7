"""LP balance and supply data for a reward period.

Weighted-average balances come from the period's incentive stats. Accounts
without a stat (for example, positions opened after the stats snapshot) fall
back to their balance at the end-of-period block.
"""

from __future__ import annotations

import logging
from typing import Any

from web3 import Web3

from incentive_distributor.distribution.models import MarketBalances
from incentive_distributor.sources.subgraph import SubgraphClient, SubgraphError

logger = logging.getLogger(__name__)

PAGE_SIZE = 10_000
MARKETS_PAGE_SIZE = 1_000
STATS_PERIOD = "1w"


def build_balances_query(from_timestamp: int, to_block_number: int) -> str:
    return f"""{{
    liquidityProviderIncentivesStats(
      first: {PAGE_SIZE}
      where: {{
        timestamp: {from_timestamp}
        period: "{STATS_PERIOD}"
      }}
    ) {{
      account
      marketAddress
      weightedAverageMarketTokensBalance
    }}
    marketIncentivesStats(
      first: {MARKETS_PAGE_SIZE}
      where: {{
        timestamp: {from_timestamp}
        period: "{STATS_PERIOD}"
      }}
    ) {{
      marketAddress
      weightedAverageMarketTokensSupply
    }}
    userMarketInfos(
      first: {PAGE_SIZE}
      block: {{
        number: {to_block_number}
      }}
    ) {{
      account
      marketAddress
      marketTokensBalance
    }}
    marketInfos(
      first: {MARKETS_PAGE_SIZE}
      block: {{
        number: {to_block_number}
      }}
    ) {{
      marketToken
      marketTokensSupply
    }}
  }}"""


def _rows(data: dict[str, Any], name: str) -> list[dict[str, Any]]:
    rows = data.get(name)
    if not isinstance(rows, list):
        raise SubgraphError(f"Subgraph response is missing `{name}`")
    return rows


def merge_market_balances(data: dict[str, Any]) -> dict[str, MarketBalances]:
    """Combine the four query result sets into per-market balances.

    Raises:
        SubgraphError: If a result set is missing, hit the page limit or
            holds a malformed row.
    """
    lp_stats = _rows(data, "liquidityProviderIncentivesStats")
    market_stats = _rows(data, "marketIncentivesStats")
    user_infos = _rows(data, "userMarketInfos")
    market_infos = _rows(data, "marketInfos")

    if len(lp_stats) >= PAGE_SIZE:
        raise SubgraphError("should paginate liquidityProviderIncentivesStats")
    if len(user_infos) >= PAGE_SIZE:
        raise SubgraphError("should paginate userMarketInfos")

    try:
        return _merge_rows(lp_stats, market_stats, user_infos, market_infos)
    except (KeyError, TypeError, ValueError) as e:
        raise SubgraphError(f"Malformed subgraph row: {type(e).__name__}: {e}") from e


def _merge_rows(
    lp_stats: list[dict[str, Any]],
    market_stats: list[dict[str, Any]],
    user_infos: list[dict[str, Any]],
    market_infos: list[dict[str, Any]],
) -> dict[str, MarketBalances]:
    weighted_supply = {
        str(stat["marketAddress"]).lower(): int(stat["weightedAverageMarketTokensSupply"])
        for stat in market_stats
    }

    result: dict[str, MarketBalances] = {}
    for info in market_infos:
        market_key = str(info["marketToken"]).lower()
        user_balances: dict[str, int] = {}

        for stat in lp_stats:
            if str(stat["marketAddress"]).lower() == market_key:
                account = Web3.to_checksum_address(stat["account"])
                user_balances[account] = int(stat["weightedAverageMarketTokensBalance"])

        for user_info in user_infos:
            if str(user_info["marketAddress"]).lower() != market_key:
                continue
            account = Web3.to_checksum_address(user_info["account"])
            if account in user_balances:
                continue
            balance = int(user_info["marketTokensBalance"])
            if balance == 0:
                continue
            user_balances[account] = balance

        supply = weighted_supply.get(market_key)
        if supply is None:
            supply = int(info["marketTokensSupply"])

        market_address = Web3.to_checksum_address(info["marketToken"])
        result[market_address] = MarketBalances(
            market_address=market_address,
            supply=supply,
            user_balances=user_balances,
        )

    return result


async def fetch_market_balances(
    subgraph: SubgraphClient,
    *,
    from_timestamp: int,
    to_block_number: int,
) -> dict[str, MarketBalances]:
    """Query and merge balances for the period starting at ``from_timestamp``."""
    data = await subgraph.query(build_balances_query(from_timestamp, to_block_number))
    balances = merge_market_balances(data)
    logger.info(
        "fetched balances for %d markets (%d accounts)",
        len(balances),
        sum(len(m.user_balances) for m in balances.values()),
    )
    return balances
