"""Distribution file sending job.

This module implements the `batch-send --file PATH` command. Mode switches
come from the environment:
- WRITE=true sends transactions (otherwise read-only)
- DRY_RUN=1 replaces sends with static calls
- SKIP_MIGRATION_VALIDATION=1 bypasses the idempotency ledger check
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

from incentive_distributor.amounts import format_amount
from incentive_distributor.chain.client import ChainClient
from incentive_distributor.config import Settings
from incentive_distributor.distribution.batch_sender import (
    BatchSendBackend,
    BatchSubmitter,
    SendMode,
    SubmissionReport,
)
from incentive_distributor.distribution.errors import InputValidationError
from incentive_distributor.distribution.ledger import IdempotencyLedger, JsonFileLedgerStorage
from incentive_distributor.distribution.models import DistributionFile

logger = logging.getLogger(__name__)


def resolve_send_mode(settings: Settings) -> SendMode:
    if not settings.batch_send.write:
        return SendMode.READ_ONLY
    if settings.batch_send.dry_run:
        return SendMode.DRY_RUN
    return SendMode.LIVE


def load_distribution(settings: Settings, path: Path) -> DistributionFile:
    """Read a distribution file and check it targets the configured network."""
    logger.info("reading file %s", path)
    distribution = DistributionFile.from_path(path)
    expected_chain_id = settings.chain.defaults.chain_id
    if distribution.chain_id is not None and distribution.chain_id != expected_chain_id:
        raise InputValidationError(
            f"Distribution chainId {distribution.chain_id} does not match network "
            f"{settings.chain.name} ({expected_chain_id})"
        )

    logger.info("token %s", distribution.token)
    logger.info(
        "total amount %s (%s)",
        format_amount(distribution.total_amount),
        distribution.total_amount,
    )
    logger.info("recipients %s", len(distribution.amounts))
    logger.info(
        "distribution type %s %s",
        distribution.distribution_type_id,
        distribution.distribution_type_name,
    )
    return distribution


async def run_batch_send(
    *,
    settings: Settings,
    path: Path,
    backend: BatchSendBackend | None = None,
    ledger: IdempotencyLedger | None = None,
    clock: Callable[[], float] = time.time,
) -> SubmissionReport:
    """Send (or validate) the distribution stored at ``path``.

    Raises:
        ValueError: If the settings lack what the mode requires.
        DistributionError: For any validation or submission failure.
    """
    settings.validate_requirements(command="batch-send")
    distribution = load_distribution(settings, path)

    if ledger is None:
        ledger = IdempotencyLedger(JsonFileLedgerStorage(settings.batch_send.migrations_path))

    mode = resolve_send_mode(settings)
    owned_client: ChainClient | None = None
    if backend is None and mode is not SendMode.READ_ONLY:
        key = settings.batch_send.sender_key
        owned_client = ChainClient(
            settings.chain.resolved_rpc_url,
            fallback_rpc_url=settings.chain.fallback_rpc_url,
            batch_sender_address=settings.chain.defaults.batch_sender_address,
            private_key=key.get_secret_value() if key else None,
            tx_timeout_seconds=settings.batch_send.tx_timeout_seconds,
        )
        backend = owned_client

    submitter = BatchSubmitter(
        backend,
        ledger,
        mode=mode,
        batch_size=settings.batch_send.batch_size,
        skip_ledger_check=settings.batch_send.skip_migration_validation,
        clock=clock,
    )
    try:
        return await submitter.submit(
            distribution_id=distribution.id,
            token=distribution.token,
            entries=distribution.amounts,
            distribution_type_id=distribution.distribution_type_id,
        )
    finally:
        if owned_client is not None:
            await owned_client.aclose()
