"""Weekly LP incentives computation job.

This module implements the `lp-incentives --from-date YYYY-MM-DD` command:
- Resolve the one-week period and its end block
- Fetch LP balances and the period's allocation
- Compute per-account rewards and write the distribution file
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from pathlib import Path

import httpx

from incentive_distributor.amounts import format_amount, to_units
from incentive_distributor.chain.client import BlockRef, ChainClient
from incentive_distributor.config import Settings
from incentive_distributor.distribution.allocation import AllocationComputer, apply_receiver_overrides
from incentive_distributor.distribution.errors import InputValidationError
from incentive_distributor.distribution.files import save_distribution
from incentive_distributor.distribution.models import (
    STIP_LP_DISTRIBUTION_TYPE_ID,
    AllocationResult,
    DistributionFile,
)
from incentive_distributor.sources.allocation_api import AllocationApiClient
from incentive_distributor.sources.balances import fetch_market_balances
from incentive_distributor.sources.subgraph import SubgraphClient

logger = logging.getLogger(__name__)

DISTRIBUTION_NAME = "stipLpIncentives"
PERIOD_LENGTH = timedelta(weeks=1)
PERIOD_START_WEEKDAY = 2  # Wednesday


@dataclass(frozen=True)
class Period:
    from_date: datetime
    to_date: datetime

    @property
    def from_timestamp(self) -> int:
        return int(self.from_date.timestamp())

    @property
    def to_timestamp(self) -> int:
        return int(self.to_date.timestamp())


@dataclass(frozen=True)
class LpIncentivesResult:
    period: Period
    to_block: BlockRef
    allocation: AllocationResult
    output_path: Path
    distribution: DistributionFile


def resolve_period(from_date: date | str, *, now: datetime | None = None) -> Period:
    """Build the one-week reward period starting at ``from_date``.

    Raises:
        InputValidationError: If the date is malformed, not a Wednesday, or
            the period has not ended yet.
    """
    if isinstance(from_date, str):
        try:
            from_date = date.fromisoformat(from_date)
        except ValueError as e:
            raise InputValidationError(f"Invalid from date {from_date!r}, expected YYYY-MM-DD") from e

    start = datetime(from_date.year, from_date.month, from_date.day, tzinfo=UTC)
    if start.weekday() != PERIOD_START_WEEKDAY:
        raise InputValidationError(f"Start date {from_date.isoformat()} should be a Wednesday")

    end = start + PERIOD_LENGTH
    now = now or datetime.now(UTC)
    if end > now:
        raise InputValidationError(
            f"Period {start.date().isoformat()} - {end.date().isoformat()} has not finished yet"
        )
    return Period(from_date=start, to_date=end)


async def compute_lp_incentives(
    *,
    settings: Settings,
    period: Period,
    chain: ChainClient,
    subgraph: SubgraphClient,
    allocation_api: AllocationApiClient,
) -> LpIncentivesResult:
    """Compute and save the LP distribution for ``period``."""
    to_block = await chain.get_block_at_or_before(period.to_date)
    logger.info(
        "found toBlock %s %s for timestamp %s",
        to_block.number,
        to_block.timestamp,
        period.to_timestamp,
    )
    logger.info("From: %s (timestamp %s)", period.from_date.isoformat(), period.from_timestamp)
    logger.info("To: %s (timestamp %s)", period.to_date.isoformat(), period.to_timestamp)

    balances, lp_allocation = await asyncio.gather(
        fetch_market_balances(
            subgraph,
            from_timestamp=period.from_timestamp,
            to_block_number=to_block.number,
        ),
        allocation_api.get_lp_allocation(period.from_timestamp),
    )

    computer = AllocationComputer(
        min_reward_threshold=to_units(settings.allocation.min_reward_threshold),
        reconciliation_tolerance=settings.allocation.reconciliation_tolerance_wei,
    )
    result = computer.compute(balances, lp_allocation)
    amounts = apply_receiver_overrides(result.amounts, settings.allocation.receiver_overrides)

    logger.info(
        "Liquidity incentives for period from %s to %s",
        period.from_date.date().isoformat(),
        period.to_date.date().isoformat(),
    )
    for market in lp_allocation.markets:
        logger.info("market %s allocation: %s", market.market_address, format_amount(market.total_rewards))
    logger.info("allocated rewards: %s", format_amount(lp_allocation.total_rewards))

    network = settings.chain.defaults
    path, distribution = save_distribution(
        directory=settings.allocation.distributions_dir,
        name=DISTRIBUTION_NAME,
        from_date=period.from_date,
        token=network.incentives_token_address,
        amounts=amounts,
        distribution_type_id=STIP_LP_DISTRIBUTION_TYPE_ID,
        chain_id=network.chain_id,
    )
    return LpIncentivesResult(
        period=period,
        to_block=to_block,
        allocation=result,
        output_path=path,
        distribution=distribution,
    )


async def run_lp_incentives(
    *,
    settings: Settings,
    from_date: date | str,
    now: datetime | None = None,
) -> LpIncentivesResult:
    settings.validate_requirements(command="lp-incentives")
    period = resolve_period(from_date, now=now)

    chain = ChainClient(
        settings.chain.resolved_rpc_url,
        fallback_rpc_url=settings.chain.fallback_rpc_url,
    )
    try:
        async with httpx.AsyncClient() as http:
            return await compute_lp_incentives(
                settings=settings,
                period=period,
                chain=chain,
                subgraph=SubgraphClient(settings.chain.resolved_subgraph_url, http_client=http),
                allocation_api=AllocationApiClient(
                    settings.chain.resolved_incentives_api_url, http_client=http
                ),
            )
    finally:
        await chain.aclose()
