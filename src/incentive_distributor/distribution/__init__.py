"""Distribution layer - Reward allocation, idempotency ledger and batch submission."""

from incentive_distributor.distribution.allocation import AllocationComputer, apply_receiver_overrides
from incentive_distributor.distribution.batch_sender import (
    Batch,
    BatchSendBackend,
    BatchSubmitter,
    SendMode,
    SubmissionReport,
    plan_batches,
)
from incentive_distributor.distribution.errors import (
    AlreadySentError,
    DistributionError,
    DuplicateRecipientError,
    InactiveAllocationError,
    InputValidationError,
    OverAllocationError,
    ReconciliationError,
    SubmissionError,
)
from incentive_distributor.distribution.ledger import (
    IdempotencyLedger,
    InMemoryLedgerStorage,
    JsonFileLedgerStorage,
    LedgerError,
    LedgerStorage,
)
from incentive_distributor.distribution.models import (
    AllocationResult,
    DistributionFile,
    LpAllocation,
    MarketBalances,
)

__all__ = [
    "AllocationComputer",
    "AllocationResult",
    "AlreadySentError",
    "Batch",
    "BatchSendBackend",
    "BatchSubmitter",
    "DistributionError",
    "DistributionFile",
    "DuplicateRecipientError",
    "IdempotencyLedger",
    "InMemoryLedgerStorage",
    "InactiveAllocationError",
    "InputValidationError",
    "JsonFileLedgerStorage",
    "LedgerError",
    "LedgerStorage",
    "LpAllocation",
    "MarketBalances",
    "OverAllocationError",
    "ReconciliationError",
    "SendMode",
    "SubmissionError",
    "SubmissionReport",
    "apply_receiver_overrides",
    "plan_batches",
]
