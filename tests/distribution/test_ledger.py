"""Tests for the idempotency ledger."""

import json
from pathlib import Path

import pytest

from incentive_distributor.distribution.ledger import (
    IdempotencyLedger,
    InMemoryLedgerStorage,
    JsonFileLedgerStorage,
    LedgerError,
)


class TestJsonFileLedgerStorage:
    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        storage = JsonFileLedgerStorage(tmp_path / ".migrations.json")
        assert storage.load() == {}

    def test_invalid_json_raises(self, tmp_path: Path) -> None:
        path = tmp_path / ".migrations.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(LedgerError, match="not valid JSON"):
            JsonFileLedgerStorage(path).load()

    def test_non_object_raises(self, tmp_path: Path) -> None:
        path = tmp_path / ".migrations.json"
        path.write_text("[1, 2]", encoding="utf-8")

        with pytest.raises(LedgerError, match="JSON object"):
            JsonFileLedgerStorage(path).load()

    def test_save_writes_whole_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "state" / ".migrations.json"
        storage = JsonFileLedgerStorage(path)
        storage.save({"1": 100, "2": 200})

        assert json.loads(path.read_text(encoding="utf-8")) == {"1": 100, "2": 200}
        # No temporary files left behind.
        assert [p.name for p in path.parent.iterdir()] == [".migrations.json"]


class TestIdempotencyLedger:
    def test_mark_completed_persists(self, tmp_path: Path) -> None:
        path = tmp_path / ".migrations.json"
        ledger = IdempotencyLedger(JsonFileLedgerStorage(path))
        assert not ledger.has_completed(17254080001001)

        ledger.mark_completed(17254080001001, 1725984000)

        reloaded = IdempotencyLedger(JsonFileLedgerStorage(path))
        assert reloaded.has_completed(17254080001001)
        assert reloaded.completed_at(17254080001001) == 1725984000
        assert json.loads(path.read_text(encoding="utf-8")) == {"17254080001001": 1725984000}

    def test_existing_entries_kept(self) -> None:
        storage = InMemoryLedgerStorage({"1": 10})
        ledger = IdempotencyLedger(storage)

        ledger.mark_completed(2, 20)

        assert storage.entries == {"1": 10, "2": 20}
        assert storage.save_count == 1
        assert ledger.entries() == {"1": 10, "2": 20}

    def test_completed_at_unknown_is_none(self) -> None:
        ledger = IdempotencyLedger(InMemoryLedgerStorage())
        assert ledger.completed_at(5) is None
