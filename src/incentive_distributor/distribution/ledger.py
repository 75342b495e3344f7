"""Idempotency ledger for completed distributions.

The ledger maps a distribution id to the unix timestamp at which it was
fully sent. It is loaded once when created and written back in full on every
update. Only one process may use a given ledger file at a time; there is no
locking.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_FILENAME = ".migrations.json"


class LedgerError(Exception):
    """Raised when the ledger file cannot be read or written."""


class LedgerStorage(Protocol):
    """Persistence backend for the ledger mapping."""

    def load(self) -> dict[str, int]: ...

    def save(self, entries: dict[str, int]) -> None: ...


class JsonFileLedgerStorage:
    """Stores the ledger as a single JSON object on disk.

    A missing file reads as an empty ledger. Writes go to a temporary file
    in the same directory which then replaces the target, so a crash never
    leaves a half-written ledger behind.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, int]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise LedgerError(f"Ledger file {self._path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise LedgerError(f"Ledger file {self._path} should contain a JSON object")
        try:
            return {str(key): int(value) for key, value in data.items()}
        except (TypeError, ValueError) as e:
            raise LedgerError(f"Ledger file {self._path} has a non-integer timestamp: {e}") from e

    def save(self, entries: dict[str, int]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".ledger-", suffix=".tmp", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(entries, fh, indent=4)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_name)
            raise


class InMemoryLedgerStorage:
    """Ledger storage kept in memory. Used for tests and dry runs."""

    def __init__(self, entries: dict[str, int] | None = None) -> None:
        self.entries: dict[str, int] = dict(entries or {})
        self.save_count = 0

    def load(self) -> dict[str, int]:
        return dict(self.entries)

    def save(self, entries: dict[str, int]) -> None:
        self.entries = dict(entries)
        self.save_count += 1


class IdempotencyLedger:
    """Tracks which distributions have been completely sent.

    Example:
        ```python
        ledger = IdempotencyLedger(JsonFileLedgerStorage(Path(".migrations.json")))
        if not ledger.has_completed(dist.id):
            ...
            ledger.mark_completed(dist.id, int(time.time()))
        ```
    """

    def __init__(self, storage: LedgerStorage) -> None:
        self._storage = storage
        self._entries = storage.load()

    def has_completed(self, distribution_id: int) -> bool:
        return str(distribution_id) in self._entries

    def completed_at(self, distribution_id: int) -> int | None:
        return self._entries.get(str(distribution_id))

    def mark_completed(self, distribution_id: int, timestamp: int) -> None:
        """Record a distribution as complete and persist the whole ledger."""
        self._entries[str(distribution_id)] = int(timestamp)
        logger.info("Recording distribution %s as completed at %d", distribution_id, timestamp)
        self._storage.save(dict(self._entries))

    def entries(self) -> dict[str, int]:
        return dict(self._entries)
