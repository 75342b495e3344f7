"""GraphQL client for the exchange stats subgraph."""

import logging
from typing import Any

import httpx

from incentive_distributor.sources.retry import RetryError, send_with_retry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0


class SubgraphError(Exception):
    """Raised when a subgraph query fails or returns errors."""


class SubgraphClient:
    """Minimal GraphQL-over-HTTP client.

    Example:
        ```python
        async with httpx.AsyncClient() as http:
            subgraph = SubgraphClient(url, http_client=http)
            data = await subgraph.query("{ marketInfos(first: 10) { marketToken } }")
        ```
    """

    def __init__(
        self,
        url: str,
        *,
        http_client: httpx.AsyncClient,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._url = url
        self._http = http_client
        self._timeout = timeout_seconds

    async def query(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Run a query and return its ``data`` object.

        Raises:
            SubgraphError: On HTTP failure, GraphQL errors, or a response
                without ``data``.
        """
        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        try:
            response = await send_with_retry(
                lambda: self._http.post(self._url, json=payload, timeout=self._timeout),
                description="subgraph query",
            )
        except RetryError as e:
            raise SubgraphError(f"Subgraph request failed: {e.last_exception}") from e

        if response.status_code != 200:
            raise SubgraphError(f"Subgraph returned HTTP {response.status_code}: {response.text[:200]}")

        try:
            body = response.json()
        except ValueError as e:
            raise SubgraphError("Subgraph returned a non-JSON response") from e

        if body.get("errors"):
            raise SubgraphError(f"Subgraph query errors: {body['errors']}")
        data = body.get("data")
        if not isinstance(data, dict):
            raise SubgraphError("Subgraph response has no data")
        return data
