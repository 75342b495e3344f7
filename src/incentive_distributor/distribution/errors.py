"""Exceptions raised by the distribution pipeline.

Every error here is fatal for the current run: callers are expected to let
them propagate to the command line, which reports them and exits non-zero.
"""


class DistributionError(Exception):
    """Base exception for distribution errors."""


class InputValidationError(DistributionError):
    """Raised when a distribution file or job argument is malformed."""


class ReconciliationError(DistributionError):
    """Raised when per-account balances do not add up to the market supply."""


class InactiveAllocationError(DistributionError):
    """Raised when no incentives are allocated for the requested period."""


class OverAllocationError(DistributionError):
    """Raised when computed rewards exceed the allocated total."""


class AlreadySentError(DistributionError):
    """Raised when a distribution id is already recorded in the ledger."""

    def __init__(self, distribution_id: int, completed_at: int | None = None) -> None:
        super().__init__(
            f"Distribution {distribution_id} was already sent"
            + (f" at {completed_at}" if completed_at is not None else "")
            + ". Run with SKIP_MIGRATION_VALIDATION=1 if this is expected"
        )
        self.distribution_id = distribution_id
        self.completed_at = completed_at


class DuplicateRecipientError(DistributionError):
    """Raised when the same recipient appears twice within one batch."""

    def __init__(self, recipient: str, batch_start: int, batch_end: int) -> None:
        super().__init__(f"Duplicated recipient {recipient} batch {batch_start}-{batch_end}")
        self.recipient = recipient
        self.batch_start = batch_start
        self.batch_end = batch_end


class SubmissionError(DistributionError):
    """Raised when a transaction reverts or fails to confirm."""

    def __init__(self, message: str, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash
