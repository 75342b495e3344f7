"""Chain access layer - RPC reads and batch sender transactions."""

from incentive_distributor.chain.client import (
    BlockRef,
    ChainClient,
    ChainClientError,
    RPCError,
    SignerNotConfiguredError,
)

__all__ = [
    "BlockRef",
    "ChainClient",
    "ChainClientError",
    "RPCError",
    "SignerNotConfiguredError",
]
