"""Tests for the batch send job."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from incentive_distributor.config import Settings
from incentive_distributor.distribution.batch_sender import SendMode
from incentive_distributor.distribution.errors import AlreadySentError, InputValidationError
from incentive_distributor.distribution.ledger import IdempotencyLedger, InMemoryLedgerStorage
from incentive_distributor.jobs.batch_send import resolve_send_mode, run_batch_send

KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
SIGNER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


def _backend() -> MagicMock:
    backend = MagicMock()
    backend.get_signer_address = AsyncMock(return_value=SIGNER)
    backend.get_allowance = AsyncMock(return_value=0)
    backend.approve = AsyncMock(return_value="0xapprove")
    backend.send_batch = AsyncMock(return_value="0xsent")
    backend.simulate_batch = AsyncMock(return_value=[])
    return backend


class TestResolveSendMode:
    def test_read_only_by_default(self) -> None:
        assert resolve_send_mode(Settings()) is SendMode.READ_ONLY

    def test_dry_run(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WRITE", "true")
        monkeypatch.setenv("DRY_RUN", "1")
        assert resolve_send_mode(Settings()) is SendMode.DRY_RUN

    def test_dry_run_without_write_is_read_only(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DRY_RUN", "1")
        assert resolve_send_mode(Settings()) is SendMode.READ_ONLY

    def test_live(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WRITE", "true")
        assert resolve_send_mode(Settings()) is SendMode.LIVE


class TestRunBatchSend:
    @pytest.mark.asyncio
    async def test_live_send_records_ledger(self, monkeypatch: pytest.MonkeyPatch, distribution_path: Path) -> None:
        monkeypatch.setenv("WRITE", "true")
        monkeypatch.setenv("BATCH_SENDER_KEY", KEY)
        backend = _backend()
        storage = InMemoryLedgerStorage()

        report = await run_batch_send(
            settings=Settings(),
            path=distribution_path,
            backend=backend,
            ledger=IdempotencyLedger(storage),
            clock=lambda: 1726000000.0,
        )

        assert report.mode is SendMode.LIVE
        backend.approve.assert_awaited_once_with(
            "0x912CE59144191C1204E64559FE8253a0e49E6548", 3_600_000_000_000_000_000
        )
        backend.send_batch.assert_awaited_once()
        assert backend.send_batch.await_args.args[3] == 1001
        assert storage.entries == {"17254080001001": 1726000000}

    @pytest.mark.asyncio
    async def test_read_only_uses_ledger_file(
        self, monkeypatch: pytest.MonkeyPatch, distribution_path: Path, tmp_path: Path
    ) -> None:
        ledger_path = tmp_path / "ledger.json"
        ledger_path.write_text(json.dumps({"1": 1}), encoding="utf-8")
        monkeypatch.setenv("MIGRATIONS_PATH", str(ledger_path))

        report = await run_batch_send(settings=Settings(), path=distribution_path)

        assert report.mode is SendMode.READ_ONLY
        assert report.completed_at is None
        assert json.loads(ledger_path.read_text(encoding="utf-8")) == {"1": 1}

    @pytest.mark.asyncio
    async def test_already_sent_from_ledger_file(
        self, monkeypatch: pytest.MonkeyPatch, distribution_path: Path, tmp_path: Path
    ) -> None:
        ledger_path = tmp_path / "ledger.json"
        ledger_path.write_text(json.dumps({"17254080001001": 1726000000}), encoding="utf-8")
        monkeypatch.setenv("MIGRATIONS_PATH", str(ledger_path))

        with pytest.raises(AlreadySentError):
            await run_batch_send(settings=Settings(), path=distribution_path)

    @pytest.mark.asyncio
    async def test_chain_id_mismatch(
        self, distribution_payload: dict, tmp_path: Path
    ) -> None:
        distribution_payload["chainId"] = 43114
        path = tmp_path / "avalanche.json"
        path.write_text(json.dumps(distribution_payload), encoding="utf-8")

        with pytest.raises(InputValidationError, match="chainId"):
            await run_batch_send(settings=Settings(), path=path, ledger=IdempotencyLedger(InMemoryLedgerStorage()))

    @pytest.mark.asyncio
    async def test_write_without_key_refused(self, monkeypatch: pytest.MonkeyPatch, distribution_path: Path) -> None:
        monkeypatch.setenv("WRITE", "true")
        backend = _backend()

        with pytest.raises(ValueError, match="BATCH_SENDER_KEY"):
            await run_batch_send(settings=Settings(), path=distribution_path, backend=backend)

        backend.get_signer_address.assert_not_awaited()
