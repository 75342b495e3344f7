"""EVM chain client for block lookups and batch token transfers.

This module provides a chain client with:
- Retry logic with exponential backoff for read calls
- Rate limiting to respect provider limits
- Failover to a secondary RPC URL for reads
- Local transaction signing for approve / sendAndEmit writes

Writes are never retried: a failed or reverted transaction is reported to
the caller, which decides what to do next.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception
from web3.providers import AsyncHTTPProvider

from incentive_distributor.chain.abi import BATCH_SENDER_ABI, ERC20_ABI
from incentive_distributor.distribution.errors import SubmissionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default configuration
DEFAULT_MAX_REQUESTS_PER_SECOND = 25
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0
DEFAULT_TX_TIMEOUT_SECONDS = 300
DEFAULT_TX_POLL_SECONDS = 1.0


class ChainClientError(Exception):
    """Base exception for chain client errors."""


class RPCError(ChainClientError):
    """Raised when an RPC call fails."""


class SignerNotConfiguredError(ChainClientError):
    """Raised when a write is attempted without a signing key."""


class RequestThrottle:
    """Spaces RPC reads at least ``1 / max_requests_per_second`` apart."""

    def __init__(
        self,
        max_requests_per_second: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_requests_per_second <= 0:
            raise ValueError("max_requests_per_second must be > 0")
        self.interval = 1.0 / max_requests_per_second
        self._clock = clock
        self._sleep = sleep
        self._next_slot = 0.0
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        async with self._lock:
            now = self._clock()
            if now < self._next_slot:
                await self._sleep(self._next_slot - now)
                now = self._next_slot
            self._next_slot = now + self.interval


@dataclass(frozen=True)
class BlockRef:
    number: int
    timestamp: int


class ChainClient:
    """Chain client used by the distribution jobs.

    Implements the batch send backend (allowance, approve, sendAndEmit and
    its static-call simulation) on top of an async web3 connection.

    Example:
        ```python
        client = ChainClient(
            "https://arb1.arbitrum.io/rpc",
            batch_sender_address="0x5384E6cAd96B2877B5B3337A277577053BD1941D",
            private_key=key,
        )
        block = await client.get_block_at_or_before(to_date)
        allowance = await client.get_allowance(token, await client.get_signer_address())
        ```
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        batch_sender_address: str | None = None,
        fallback_rpc_url: str | None = None,
        private_key: str | None = None,
        max_requests_per_second: float = DEFAULT_MAX_REQUESTS_PER_SECOND,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        tx_timeout_seconds: float = DEFAULT_TX_TIMEOUT_SECONDS,
        tx_poll_seconds: float = DEFAULT_TX_POLL_SECONDS,
    ) -> None:
        """Initialize the chain client.

        Args:
            rpc_url: Primary RPC endpoint URL.
            batch_sender_address: Batch sender contract address.
            fallback_rpc_url: Optional fallback RPC URL for read failover.
            private_key: Optional signing key; required for writes.
            max_requests_per_second: Rate limit for RPC calls.
            max_retries: Maximum attempts per endpoint for reads.
            retry_delay_seconds: Initial delay between retries.
            tx_timeout_seconds: How long to wait for a transaction receipt.
            tx_poll_seconds: Receipt polling interval.
        """
        self._rpc_url = rpc_url
        self._max_retries = max_retries
        self._retry_delay = retry_delay_seconds
        self._tx_timeout = tx_timeout_seconds
        self._tx_poll = tx_poll_seconds

        self._w3: AsyncWeb3[AsyncHTTPProvider] = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._w3_fallback: AsyncWeb3[AsyncHTTPProvider] | None = None
        if fallback_rpc_url:
            self._w3_fallback = AsyncWeb3(AsyncHTTPProvider(fallback_rpc_url))

        self._throttle = RequestThrottle(max_requests_per_second)
        self._account: LocalAccount | None = Account.from_key(private_key) if private_key else None
        self._batch_sender_address = (
            AsyncWeb3.to_checksum_address(batch_sender_address) if batch_sender_address else None
        )

    @property
    def batch_sender_address(self) -> str:
        if self._batch_sender_address is None:
            raise ChainClientError("batch sender address is not configured")
        return self._batch_sender_address

    async def _execute_with_retry(
        self,
        description: str,
        call: Callable[[AsyncWeb3[AsyncHTTPProvider]], Awaitable[T]],
    ) -> T:
        """Run a read call with retry, backoff and failover.

        Raises:
            RPCError: If all retries on every endpoint fail.
        """
        await self._throttle.wait()

        endpoints = [("Primary", self._w3)]
        if self._w3_fallback is not None:
            endpoints.append(("Fallback", self._w3_fallback))

        last_error: Exception | None = None
        for name, w3 in endpoints:
            delay = self._retry_delay
            for attempt in range(self._max_retries):
                try:
                    return await call(w3)
                except Web3Exception as e:
                    last_error = e
                    logger.warning(
                        "%s RPC %s failed (attempt %d/%d): %s",
                        name,
                        description,
                        attempt + 1,
                        self._max_retries,
                        e,
                    )
                    if attempt < self._max_retries - 1:
                        await asyncio.sleep(delay)
                        delay *= 2  # Exponential backoff

        raise RPCError(f"RPC call {description} failed after all retries: {last_error}")

    async def get_block(self, block_identifier: int | str) -> BlockRef:
        block = await self._execute_with_retry(
            f"get_block({block_identifier})",
            lambda w3: w3.eth.get_block(block_identifier),
        )
        return BlockRef(number=int(block["number"]), timestamp=int(block["timestamp"]))

    async def get_block_at_or_before(self, ts: datetime) -> BlockRef:
        """Resolve a timestamp to the latest block at-or-before it."""
        if ts.tzinfo is None:
            raise ValueError("timestamp must be timezone-aware")

        target = int(ts.timestamp())

        genesis = await self.get_block(0)
        if target <= genesis.timestamp:
            return genesis

        latest = await self.get_block("latest")
        if target >= latest.timestamp:
            return latest

        lo = 0
        hi = latest.number
        while lo + 1 < hi:
            mid = (lo + hi) // 2
            mid_block = await self.get_block(mid)
            if mid_block.timestamp <= target:
                lo = mid
            else:
                hi = mid

        resolved = await self.get_block(lo)
        if resolved.timestamp > target:
            raise RPCError("Block search invariant violated (resolved block after target)")
        return resolved

    async def get_signer_address(self) -> str:
        return self._require_account().address

    def _require_account(self) -> LocalAccount:
        if self._account is None:
            raise SignerNotConfiguredError("BATCH_SENDER_KEY is required to send transactions")
        return self._account

    async def get_allowance(self, token: str, owner: str) -> int:
        spender = self.batch_sender_address

        async def call(w3: AsyncWeb3[AsyncHTTPProvider]) -> int:
            contract = w3.eth.contract(address=AsyncWeb3.to_checksum_address(token), abi=ERC20_ABI)
            return int(
                await contract.functions.allowance(AsyncWeb3.to_checksum_address(owner), spender).call()
            )

        return await self._execute_with_retry(f"allowance({owner}, {spender})", call)

    async def approve(self, token: str, amount: int) -> str:
        contract = self._w3.eth.contract(address=AsyncWeb3.to_checksum_address(token), abi=ERC20_ABI)
        return await self._transact(
            contract.functions.approve(self.batch_sender_address, amount),
            description=f"approve {token} amount {amount}",
        )

    async def send_batch(
        self,
        token: str,
        recipients: Sequence[str],
        amounts: Sequence[int],
        distribution_type_id: int,
    ) -> str:
        function = self._batch_sender().functions.sendAndEmit(
            AsyncWeb3.to_checksum_address(token),
            [AsyncWeb3.to_checksum_address(r) for r in recipients],
            list(amounts),
            distribution_type_id,
        )
        return await self._transact(function, description=f"sendAndEmit ({len(recipients)} recipients)")

    async def simulate_batch(
        self,
        token: str,
        recipients: Sequence[str],
        amounts: Sequence[int],
        distribution_type_id: int,
    ) -> Any:
        """Static-call ``sendAndEmit``; nothing is broadcast."""
        sender = self._require_account().address
        function = self._batch_sender().functions.sendAndEmit(
            AsyncWeb3.to_checksum_address(token),
            [AsyncWeb3.to_checksum_address(r) for r in recipients],
            list(amounts),
            distribution_type_id,
        )
        try:
            return await function.call({"from": sender})
        except ContractLogicError as e:
            raise SubmissionError(f"sendAndEmit simulation reverted: {e}") from e
        except Web3Exception as e:
            raise SubmissionError(f"sendAndEmit simulation failed: {e}") from e

    def _batch_sender(self) -> Any:
        return self._w3.eth.contract(address=self.batch_sender_address, abi=BATCH_SENDER_ABI)

    async def _transact(self, function: Any, *, description: str) -> str:
        """Sign, broadcast and wait for a contract call.

        Raises:
            SubmissionError: If the transaction cannot be built, is rejected,
                does not confirm in time, or reverts.
        """
        account = self._require_account()
        tx_hash_hex: str | None = None
        try:
            nonce = await self._w3.eth.get_transaction_count(account.address, "pending")
            tx = await function.build_transaction({"from": account.address, "nonce": nonce})
            signed = account.sign_transaction(tx)
            tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
            tx_hash_hex = self._w3.to_hex(tx_hash)
            logger.info("sent %s txn %s, waiting...", description, tx_hash_hex)
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=self._tx_timeout,
                poll_latency=self._tx_poll,
            )
        except TimeExhausted as e:
            raise SubmissionError(
                f"{description} txn {tx_hash_hex} not confirmed after {self._tx_timeout}s", tx_hash_hex
            ) from e
        except Web3Exception as e:
            raise SubmissionError(f"{description} failed: {e}", tx_hash_hex) from e

        if int(receipt["status"]) != 1:
            raise SubmissionError(f"{description} txn {tx_hash_hex} reverted", tx_hash_hex)
        return tx_hash_hex

    async def aclose(self) -> None:
        """Close async HTTP provider sessions."""
        providers = [self._w3.provider]
        if self._w3_fallback is not None:
            providers.append(self._w3_fallback.provider)

        for provider in providers:
            disconnect = getattr(provider, "disconnect", None)
            if not callable(disconnect):
                continue
            try:
                result = disconnect()
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning("Failed to close RPC provider session: %s", e)
