"""Batch sender calldata export for multisig execution."""

from __future__ import annotations

from collections.abc import Sequence

from web3 import Web3

from incentive_distributor.chain.abi import BATCH_SENDER_ABI
from incentive_distributor.distribution.batch_sender import DEFAULT_BATCH_SIZE, plan_batches

_batch_sender = Web3().eth.contract(abi=BATCH_SENDER_ABI)


def encode_send_and_emit(
    token: str,
    recipients: Sequence[str],
    amounts: Sequence[int],
    distribution_type_id: int,
) -> str:
    """ABI-encode a ``sendAndEmit`` call."""
    return _batch_sender.encode_abi(
        "sendAndEmit",
        args=[
            Web3.to_checksum_address(token),
            [Web3.to_checksum_address(r) for r in recipients],
            list(amounts),
            distribution_type_id,
        ],
    )


def get_batch_sender_calldata(
    token: str,
    recipients: Sequence[str],
    amounts: Sequence[int],
    distribution_type_id: int,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> dict[str, str]:
    """Build ``sendAndEmit`` calldata for every batch.

    Keys are ``"<first index>-<last index>"`` (both inclusive).
    """
    if len(recipients) != len(amounts):
        raise ValueError("recipients and amounts must have the same length")
    calldata: dict[str, str] = {}
    for batch in plan_batches(list(zip(recipients, amounts, strict=True)), batch_size):
        calldata[f"{batch.start}-{batch.end - 1}"] = encode_send_and_emit(
            token, batch.recipients, batch.amounts, distribution_type_id
        )
    return calldata
