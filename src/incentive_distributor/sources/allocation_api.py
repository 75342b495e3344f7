"""Client for the incentives allocation API."""

import logging
from typing import Any

import httpx

from incentive_distributor.distribution.models import LpAllocation
from incentive_distributor.sources.retry import RetryError, send_with_retry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class AllocationApiError(Exception):
    """Raised when allocation data cannot be fetched or parsed."""


class AllocationApiClient:
    """Fetches per-period incentive allocations.

    The API answers ``GET /incentives/stip?timestamp=<period start>`` with an
    object keyed by program (``lp``, ``migration``, ``trading``).
    """

    def __init__(
        self,
        base_url: str,
        *,
        http_client: httpx.AsyncClient,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http_client
        self._timeout = timeout_seconds

    async def get_allocation_data(self, from_timestamp: int) -> dict[str, Any]:
        try:
            response = await send_with_retry(
                lambda: self._http.get(
                    f"{self._base_url}/incentives/stip",
                    params={"timestamp": from_timestamp},
                    timeout=self._timeout,
                ),
                description="allocation request",
            )
        except RetryError as e:
            raise AllocationApiError(f"Allocation request failed: {e.last_exception}") from e
        if response.status_code != 200:
            raise AllocationApiError(f"Allocation API returned HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError as e:
            raise AllocationApiError("Allocation API returned a non-JSON response") from e
        if not isinstance(data, dict):
            raise AllocationApiError("Allocation API response should be an object")
        return data

    async def get_lp_allocation(self, from_timestamp: int) -> LpAllocation:
        """Return the LP allocation for the period starting at ``from_timestamp``."""
        data = await self.get_allocation_data(from_timestamp)
        lp = data.get("lp")
        if not isinstance(lp, dict):
            raise AllocationApiError("Allocation API response has no `lp` section")
        try:
            allocation = LpAllocation.from_dict(lp)
        except (TypeError, ValueError) as e:
            raise AllocationApiError(f"Malformed LP allocation: {e}") from e
        logger.info(
            "lp allocation: active=%s total=%s markets=%d",
            allocation.is_active,
            allocation.total_rewards,
            len(allocation.rewards_per_market),
        )
        return allocation
