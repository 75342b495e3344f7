"""Command line entry point.

Usage:
    python -m incentive_distributor lp-incentives --from-date 2024-09-04
    python -m incentive_distributor batch-send --file distributions/out/stipLpIncentives_2024-09-04.json
    python -m incentive_distributor calldata --file distributions/out/stipLpIncentives_2024-09-04.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from pydantic import ValidationError

from incentive_distributor.chain.client import ChainClientError
from incentive_distributor.config import Settings, get_settings
from incentive_distributor.distribution.calldata import get_batch_sender_calldata
from incentive_distributor.distribution.errors import DistributionError
from incentive_distributor.distribution.ledger import LedgerError
from incentive_distributor.jobs.batch_send import load_distribution, run_batch_send
from incentive_distributor.jobs.lp_incentives import run_lp_incentives
from incentive_distributor.sources.allocation_api import AllocationApiError
from incentive_distributor.sources.subgraph import SubgraphError

logger = logging.getLogger("incentive_distributor")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2

_RUN_ERRORS = (
    DistributionError,
    LedgerError,
    ChainClientError,
    SubgraphError,
    AllocationApiError,
)


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be > 0, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="incentive-distributor",
        description="Compute and send token incentive distributions.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    lp = sub.add_parser("lp-incentives", help="Compute weekly LP incentives and write a distribution file")
    lp.add_argument("--from-date", required=True, help="Period start (a Wednesday), YYYY-MM-DD")

    send = sub.add_parser("batch-send", help="Send a distribution file through the batch sender")
    send.add_argument("--file", required=True, type=Path, help="Distribution JSON file")

    calldata = sub.add_parser("calldata", help="Print sendAndEmit calldata per batch")
    calldata.add_argument("--file", required=True, type=Path, help="Distribution JSON file")
    calldata.add_argument("--batch-size", type=_positive_int, default=None, help="Override BATCH_SIZE")
    calldata.add_argument("--output", type=Path, default=None, help="Write JSON here instead of stdout")
    return parser


def _export_calldata(settings: Settings, args: argparse.Namespace) -> None:
    distribution = load_distribution(settings, args.file)
    calldata = get_batch_sender_calldata(
        distribution.token,
        distribution.recipients,
        [amount for _, amount in distribution.amounts],
        distribution.distribution_type_id,
        batch_size=settings.batch_send.batch_size if args.batch_size is None else args.batch_size,
    )
    text = json.dumps(calldata, indent=4)
    if args.output is None:
        print(text)
        return
    args.output.write_text(text + "\n", encoding="utf-8")
    logger.info("calldata for %d batches written to %s", len(calldata), args.output)


async def _run(settings: Settings, args: argparse.Namespace) -> None:
    if args.command == "lp-incentives":
        result = await run_lp_incentives(settings=settings, from_date=args.from_date)
        logger.info("distribution written to %s", result.output_path)
    elif args.command == "batch-send":
        report = await run_batch_send(settings=settings, path=args.file)
        logger.info(
            "distribution %s done (%s), %d batches",
            report.distribution_id,
            report.mode.value,
            len(report.batches),
        )
    else:
        _export_calldata(settings, args)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
    except ValidationError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error("Invalid configuration: %s", e)
        return EXIT_CONFIG_ERROR

    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.debug("settings: %s", settings.redacted_summary())

    try:
        settings.validate_requirements(command=args.command)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return EXIT_CONFIG_ERROR

    try:
        asyncio.run(_run(settings, args))
    except _RUN_ERRORS as e:
        logger.error("%s: %s", type(e).__name__, e)
        return EXIT_FAILURE
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
