"""Writing distribution files."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

from incentive_distributor.amounts import format_amount
from incentive_distributor.distribution.errors import InputValidationError
from incentive_distributor.distribution.models import DistributionFile

logger = logging.getLogger(__name__)


def make_distribution_id(from_timestamp: int, distribution_type_id: int) -> int:
    """Derive a distribution id unique per (period start, distribution type)."""
    return from_timestamp * 10_000 + distribution_type_id


def distribution_file_path(directory: Path, name: str, from_date: datetime) -> Path:
    return directory / f"{name}_{from_date.strftime('%Y-%m-%d')}.json"


def save_distribution(
    *,
    directory: Path,
    name: str,
    from_date: datetime,
    token: str,
    amounts: dict[str, int],
    distribution_type_id: int,
    chain_id: int | None = None,
) -> tuple[Path, DistributionFile]:
    """Write a new distribution file.

    Files are immutable once written: an existing file is never replaced.

    Returns:
        The written path and the distribution it contains.

    Raises:
        InputValidationError: If the file already exists.
    """
    distribution = DistributionFile(
        id=make_distribution_id(int(from_date.timestamp()), distribution_type_id),
        token=token,
        amounts=tuple(amounts.items()),
        distribution_type_id=distribution_type_id,
        chain_id=chain_id,
    )
    path = distribution_file_path(directory, name, from_date)
    directory.mkdir(parents=True, exist_ok=True)
    try:
        with path.open("x", encoding="utf-8") as fh:
            json.dump(distribution.to_dict(), fh, indent=4)
            fh.write("\n")
    except FileExistsError as e:
        raise InputValidationError(f"Distribution file {path} already exists") from e

    logger.info(
        "distribution %s saved to %s: %d recipients, total %s",
        distribution.id,
        path,
        len(distribution.amounts),
        format_amount(distribution.total_amount),
    )
    return path, distribution
