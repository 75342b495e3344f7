"""Chunked, sequential submission of a distribution through a batch sender.

This module provides the BatchSubmitter class, which splits a payout list
into fixed-size batches and sends each one as a single ``sendAndEmit``
transaction, waiting for confirmation before moving to the next.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from incentive_distributor.amounts import format_amount
from incentive_distributor.distribution.errors import (
    AlreadySentError,
    DuplicateRecipientError,
    SubmissionError,
)
from incentive_distributor.distribution.ledger import IdempotencyLedger

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 150


class SendMode(str, Enum):
    """How batches are handed to the chain."""

    READ_ONLY = "read_only"
    DRY_RUN = "dry_run"
    LIVE = "live"


class BatchSendBackend(Protocol):
    """On-chain operations needed to send batches.

    Implementations wait for transaction confirmation before returning and
    raise SubmissionError on revert or confirmation failure.
    """

    async def get_signer_address(self) -> str: ...

    async def get_allowance(self, token: str, owner: str) -> int: ...

    async def approve(self, token: str, amount: int) -> str: ...

    async def send_batch(
        self,
        token: str,
        recipients: Sequence[str],
        amounts: Sequence[int],
        distribution_type_id: int,
    ) -> str: ...

    async def simulate_batch(
        self,
        token: str,
        recipients: Sequence[str],
        amounts: Sequence[int],
        distribution_type_id: int,
    ) -> Any: ...


@dataclass(frozen=True)
class Batch:
    """A contiguous slice ``[start, end)`` of the payout list."""

    start: int
    end: int
    recipients: tuple[str, ...]
    amounts: tuple[int, ...]

    @property
    def total(self) -> int:
        return sum(self.amounts)

    @property
    def label(self) -> str:
        return f"{self.start}-{self.end}"


@dataclass(frozen=True)
class BatchResult:
    batch: Batch
    tx_hash: str | None = None
    simulation_result: Any = None


@dataclass(frozen=True)
class SubmissionReport:
    distribution_id: int
    mode: SendMode
    batches: tuple[BatchResult, ...]
    approval_tx_hashes: tuple[str, ...]
    completed_at: int | None

    @property
    def total_sent(self) -> int:
        return sum(r.batch.total for r in self.batches)


def plan_batches(entries: Sequence[tuple[str, int]], batch_size: int = DEFAULT_BATCH_SIZE) -> list[Batch]:
    """Partition entries into contiguous batches of at most ``batch_size``.

    Input order is preserved; the last batch holds the remainder.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be > 0")
    batches: list[Batch] = []
    for start in range(0, len(entries), batch_size):
        end = min(start + batch_size, len(entries))
        chunk = entries[start:end]
        batches.append(
            Batch(
                start=start,
                end=end,
                recipients=tuple(recipient for recipient, _ in chunk),
                amounts=tuple(amount for _, amount in chunk),
            )
        )
    return batches


def validate_batch(batch: Batch) -> None:
    """Raise DuplicateRecipientError if a recipient repeats within the batch.

    Addresses are compared case-insensitively.
    """
    seen: set[str] = set()
    for recipient in batch.recipients:
        key = recipient.lower()
        if key in seen:
            raise DuplicateRecipientError(recipient, batch.start, batch.end)
        seen.add(key)


class BatchSubmitter:
    """Sends a distribution in sequential batches.

    The submitter checks the idempotency ledger, validates every batch for
    duplicate recipients, then sends batches one at a time. Before each
    batch the signer's allowance to the batch sender is topped up to the
    remaining total if it falls short. The ledger is only marked after every
    batch has been confirmed.

    A failed batch aborts the run. Batches confirmed before the failure are
    not rolled back and the ledger stays unmarked, so a retry re-sends them;
    reconcile on-chain transfers before retrying.

    Example:
        ```python
        submitter = BatchSubmitter(backend, ledger, mode=SendMode.LIVE)
        report = await submitter.submit(
            distribution_id=dist.id,
            token=dist.token,
            entries=dist.amounts,
            distribution_type_id=dist.distribution_type_id,
        )
        ```
    """

    def __init__(
        self,
        backend: BatchSendBackend | None,
        ledger: IdempotencyLedger,
        *,
        mode: SendMode = SendMode.READ_ONLY,
        batch_size: int = DEFAULT_BATCH_SIZE,
        skip_ledger_check: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the submitter.

        Args:
            backend: Chain backend. May be None only in read-only mode.
            ledger: Idempotency ledger consulted before and updated after
                a live run.
            mode: Read-only, dry run (static calls) or live.
            batch_size: Maximum recipients per transaction.
            skip_ledger_check: Send even if the ledger says the
                distribution was already sent.
            clock: Source of the completion timestamp.
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        if backend is None and mode is not SendMode.READ_ONLY:
            raise ValueError("a backend is required unless running read-only")
        self._backend = backend
        self._ledger = ledger
        self._mode = mode
        self._batch_size = batch_size
        self._skip_ledger_check = skip_ledger_check
        self._clock = clock

    def check_ledger(self, distribution_id: int) -> None:
        if not self._ledger.has_completed(distribution_id):
            return
        if self._skip_ledger_check:
            logger.warning(
                "Distribution %s was already sent, ledger check skipped", distribution_id
            )
            return
        raise AlreadySentError(distribution_id, self._ledger.completed_at(distribution_id))

    def prepare(self, entries: Sequence[tuple[str, int]]) -> list[Batch]:
        """Plan and validate all batches without touching the chain."""
        batches = plan_batches(entries, self._batch_size)
        for batch in batches:
            validate_batch(batch)
        return batches

    async def submit(
        self,
        *,
        distribution_id: int,
        token: str,
        entries: Sequence[tuple[str, int]],
        distribution_type_id: int,
    ) -> SubmissionReport:
        """Run the distribution.

        Raises:
            AlreadySentError: If the ledger already has the distribution.
            DuplicateRecipientError: If any batch repeats a recipient.
            SubmissionError: If any transaction fails.
        """
        self.check_ledger(distribution_id)
        batches = self.prepare(entries)
        total = sum(batch.total for batch in batches)
        logger.info(
            "distribution %s: %d recipients in %d batches, total %s (%s)",
            distribution_id,
            len(entries),
            len(batches),
            format_amount(total),
            total,
        )

        if self._mode is SendMode.READ_ONLY:
            logger.warning("read-only mode, skip sending transactions")
            return SubmissionReport(
                distribution_id=distribution_id,
                mode=self._mode,
                batches=tuple(BatchResult(batch=b) for b in batches),
                approval_tx_hashes=(),
                completed_at=None,
            )

        backend = self._backend
        if backend is None:
            raise ValueError("a backend is required unless running read-only")
        logger.warning("sending transactions (%s)", self._mode.value)
        signer = await backend.get_signer_address()
        logger.info("signer address: %s", signer)

        results: list[BatchResult] = []
        approvals: list[str] = []
        remaining = total
        index = 0
        for batch in batches:
            approval = await self._ensure_allowance(backend, token, signer, remaining)
            if approval is not None:
                approvals.append(approval)

            logger.info(
                "sending batch %s token %s typeId %s",
                batch.label,
                token,
                distribution_type_id,
            )
            for recipient, amount in zip(batch.recipients, batch.amounts, strict=True):
                logger.debug("%d recipient %s amount %s (%s)", index, recipient, format_amount(amount), amount)
                index += 1

            results.append(await self._send(backend, batch, token, distribution_type_id))
            remaining -= batch.total

        completed_at: int | None = None
        if self._mode is SendMode.LIVE:
            completed_at = int(self._clock())
            self._ledger.mark_completed(distribution_id, completed_at)

        return SubmissionReport(
            distribution_id=distribution_id,
            mode=self._mode,
            batches=tuple(results),
            approval_tx_hashes=tuple(approvals),
            completed_at=completed_at,
        )

    async def _ensure_allowance(
        self, backend: BatchSendBackend, token: str, signer: str, required: int
    ) -> str | None:
        allowance = await backend.get_allowance(token, signer)
        logger.info("amount remaining to send: %s, current allowance: %s", required, allowance)
        if allowance >= required:
            return None
        logger.info("approving token %s amount %s", token, required)
        tx_hash = await backend.approve(token, required)
        logger.info("approve txn %s confirmed", tx_hash)
        return tx_hash

    async def _send(
        self, backend: BatchSendBackend, batch: Batch, token: str, distribution_type_id: int
    ) -> BatchResult:
        try:
            if self._mode is SendMode.DRY_RUN:
                result = await backend.simulate_batch(
                    token, batch.recipients, batch.amounts, distribution_type_id
                )
                logger.info("batch %s simulation result %s", batch.label, result)
                return BatchResult(batch=batch, simulation_result=result)

            tx_hash = await backend.send_batch(
                token, batch.recipients, batch.amounts, distribution_type_id
            )
        except SubmissionError:
            logger.error("batch %s failed, aborting distribution", batch.label)
            raise
        logger.info("batch %s txn %s confirmed", batch.label, tx_hash)
        return BatchResult(batch=batch, tx_hash=tx_hash)
