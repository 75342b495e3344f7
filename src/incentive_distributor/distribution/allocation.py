"""Proportional LP reward allocation.

This module provides the AllocationComputer class that turns per-market
weighted-average balances into per-account reward amounts.
"""

import logging
from collections.abc import Mapping

from incentive_distributor.amounts import expand_decimals, format_amount, format_share_bps
from incentive_distributor.distribution.errors import (
    InactiveAllocationError,
    OverAllocationError,
    ReconciliationError,
)
from incentive_distributor.distribution.models import AllocationResult, LpAllocation, MarketBalances

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_MIN_REWARD_THRESHOLD = expand_decimals(1, 17)  # 0.1 token
DEFAULT_RECONCILIATION_TOLERANCE = expand_decimals(1, 18)  # 1 token


class AllocationComputer:
    """Computes per-account rewards from market balances and an allocation.

    For every market in the allocation, each account receives
    ``balance * market_rewards // market_supply``. Rewards are summed across
    markets and accounts below ``min_reward_threshold`` are dropped.

    The computation is all-or-nothing: a supply mismatch or an
    over-allocation raises before any result is returned.

    Example:
        ```python
        computer = AllocationComputer(min_reward_threshold=10**17)
        result = computer.compute(balances_by_market, lp_allocation)
        save(result.amounts)
        ```
    """

    def __init__(
        self,
        *,
        min_reward_threshold: int = DEFAULT_MIN_REWARD_THRESHOLD,
        reconciliation_tolerance: int = DEFAULT_RECONCILIATION_TOLERANCE,
    ) -> None:
        """Initialize the allocation computer.

        Args:
            min_reward_threshold: Minimum total reward (wei) for an account
                to be included in the output.
            reconciliation_tolerance: Maximum absolute difference (wei)
                between the sum of balances and the market supply.
        """
        if min_reward_threshold < 0:
            raise ValueError("min_reward_threshold must be >= 0")
        if reconciliation_tolerance < 0:
            raise ValueError("reconciliation_tolerance must be >= 0")
        self._min_reward_threshold = min_reward_threshold
        self._tolerance = reconciliation_tolerance

    @property
    def min_reward_threshold(self) -> int:
        return self._min_reward_threshold

    def reconcile(self, market: MarketBalances) -> int:
        """Check that a market's balances add up to its supply.

        Returns:
            The sum of per-account balances.

        Raises:
            ReconciliationError: If the difference exceeds the tolerance.
        """
        balances_sum = market.balances_sum
        if abs(balances_sum - market.supply) > self._tolerance:
            raise ReconciliationError(
                "Sum of user balances and market tokens supply don't match. "
                f"market {market.market_address} {market.supply} vs {balances_sum}"
            )
        return balances_sum

    def compute_market_rewards(self, market: MarketBalances, market_rewards: int) -> dict[str, int]:
        """Split one market's rewards proportionally to account balances."""
        if market.supply <= 0:
            if market_rewards > 0 and market.balances_sum > 0:
                raise ReconciliationError(
                    f"Market {market.market_address} has rewards but no token supply"
                )
            return {account: 0 for account in market.user_balances}

        rewards: dict[str, int] = {}
        for account, balance in market.user_balances.items():
            user_rewards = balance * market_rewards // market.supply
            logger.debug(
                "market %s user %s rewards %s avg balance %s (%s%%)",
                market.market_address,
                account,
                format_amount(user_rewards).rjust(8),
                format_amount(balance).rjust(12),
                format_share_bps(balance, market.supply),
            )
            rewards[account] = user_rewards
        return rewards

    def compute(
        self,
        balances_by_market: Mapping[str, MarketBalances],
        allocation: LpAllocation,
    ) -> AllocationResult:
        """Compute the reward of every account for the period.

        Args:
            balances_by_market: Balances keyed by checksummed market address.
            allocation: The period's LP allocation.

        Returns:
            AllocationResult with included and below-threshold amounts.

        Raises:
            InactiveAllocationError: If the allocation is not active.
            ReconciliationError: If market data is missing or inconsistent.
            OverAllocationError: If computed rewards exceed a market's
                rewards or the period's total allocation.
        """
        if not allocation.is_active:
            raise InactiveAllocationError("There are no incentives allocated for this period")

        totals: dict[str, int] = {}
        for market_address, market_rewards in allocation.rewards_per_market.items():
            market = balances_by_market.get(market_address)
            if market is None:
                raise ReconciliationError(f"No balances data for market {market_address}")

            balances_sum = self.reconcile(market)
            logger.info(
                "market %s allocation %s balances sum: %s supply: %s",
                market_address,
                format_amount(market_rewards),
                format_amount(balances_sum),
                format_amount(market.supply),
            )

            market_user_rewards = self.compute_market_rewards(market, market_rewards)
            market_total = sum(market_user_rewards.values())
            if market_total > market_rewards:
                raise OverAllocationError(
                    f"Sum of user rewards exceeds rewards of market {market_address}. "
                    f"{market_total} > {market_rewards}"
                )
            for account, user_rewards in market_user_rewards.items():
                totals[account] = totals.get(account, 0) + user_rewards

        amounts: dict[str, int] = {}
        below_threshold: dict[str, int] = {}
        total_computed = 0
        # Sorted for log readability only.
        for account, user_rewards in sorted(totals.items(), key=lambda item: item[1]):
            total_computed += user_rewards
            if user_rewards < self._min_reward_threshold:
                logger.info("user %s rewards: %s below threshold", account, format_amount(user_rewards))
                below_threshold[account] = user_rewards
                continue
            logger.info(
                "user %s rewards: %s (%s%%)",
                account,
                format_amount(user_rewards),
                format_share_bps(user_rewards, allocation.total_rewards),
            )
            amounts[account] = user_rewards

        if total_computed > allocation.total_rewards:
            raise OverAllocationError(
                "Sum of user rewards exceeds total allocated rewards. "
                f"{total_computed} > {allocation.total_rewards}"
            )

        logger.info("min reward threshold: %s", format_amount(self._min_reward_threshold))
        logger.info("total users: %d", len(amounts) + len(below_threshold))
        logger.info("eligible users: %d", len(amounts))
        logger.info("users below threshold: %d", len(below_threshold))
        # Floor division leaves the computed sum slightly under the allocation.
        logger.info(
            "sum of user rewards: %s of allocated %s",
            format_amount(total_computed),
            format_amount(allocation.total_rewards),
        )

        return AllocationResult(
            amounts=amounts,
            below_threshold=below_threshold,
            total_rewards_computed=total_computed,
            total_allocated=allocation.total_rewards,
        )


def apply_receiver_overrides(amounts: dict[str, int], overrides: Mapping[str, str]) -> dict[str, int]:
    """Redirect rewards of overridden accounts to their replacement receivers.

    The original account's amount is moved to the replacement, adding to
    any amount the replacement already has.
    """
    if not overrides:
        return dict(amounts)
    normalized = {k.lower(): v for k, v in overrides.items()}
    result: dict[str, int] = {}
    for account, amount in amounts.items():
        receiver = normalized.get(account.lower())
        if receiver is None:
            result[account] = result.get(account, 0) + amount
            continue
        logger.info("override receiver %s -> %s amount %s", account, receiver, format_amount(amount))
        result[receiver] = result.get(receiver, 0) + amount
    return result
