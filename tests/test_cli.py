"""Tests for the command line entry point."""

import json
from pathlib import Path

import pytest

from incentive_distributor.__main__ import EXIT_CONFIG_ERROR, EXIT_FAILURE, EXIT_OK, main


def test_missing_command_exits_with_usage() -> None:
    with pytest.raises(SystemExit) as exc_info:
        main([])
    assert exc_info.value.code == 2


def test_batch_send_read_only(monkeypatch: pytest.MonkeyPatch, distribution_path: Path, tmp_path: Path) -> None:
    monkeypatch.setenv("MIGRATIONS_PATH", str(tmp_path / "ledger.json"))

    assert main(["batch-send", "--file", str(distribution_path)]) == EXIT_OK
    assert not (tmp_path / "ledger.json").exists()


def test_batch_send_missing_file(tmp_path: Path) -> None:
    assert main(["batch-send", "--file", str(tmp_path / "missing.json")]) == EXIT_FAILURE


def test_batch_send_already_sent(monkeypatch: pytest.MonkeyPatch, distribution_path: Path, tmp_path: Path) -> None:
    ledger_path = tmp_path / "ledger.json"
    ledger_path.write_text(json.dumps({"17254080001001": 1}), encoding="utf-8")
    monkeypatch.setenv("MIGRATIONS_PATH", str(ledger_path))

    assert main(["batch-send", "--file", str(distribution_path)]) == EXIT_FAILURE


def test_batch_send_write_without_key(monkeypatch: pytest.MonkeyPatch, distribution_path: Path) -> None:
    monkeypatch.setenv("WRITE", "true")

    assert main(["batch-send", "--file", str(distribution_path)]) == EXIT_CONFIG_ERROR


def test_invalid_configuration(monkeypatch: pytest.MonkeyPatch, distribution_path: Path) -> None:
    monkeypatch.setenv("NETWORK", "avalanche")

    assert main(["batch-send", "--file", str(distribution_path)]) == EXIT_CONFIG_ERROR


def test_lp_incentives_rejects_non_wednesday() -> None:
    assert main(["lp-incentives", "--from-date", "2024-09-05"]) == EXIT_FAILURE


def test_calldata_prints_batches(distribution_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["calldata", "--file", str(distribution_path), "--batch-size", "2"]) == EXIT_OK

    calldata = json.loads(capsys.readouterr().out)
    assert list(calldata) == ["0-1", "2-2"]


def test_calldata_writes_output_file(distribution_path: Path, tmp_path: Path) -> None:
    output = tmp_path / "calldata.json"

    assert main(["calldata", "--file", str(distribution_path), "--output", str(output)]) == EXIT_OK

    assert list(json.loads(output.read_text(encoding="utf-8"))) == ["0-2"]


@pytest.mark.parametrize("value", ["0", "-3", "two"])
def test_calldata_rejects_non_positive_batch_size(distribution_path: Path, value: str) -> None:
    with pytest.raises(SystemExit) as exc_info:
        main(["calldata", "--file", str(distribution_path), "--batch-size", value])
    assert exc_info.value.code == 2


def test_unexpected_value_error_is_not_reported_as_configuration(
    monkeypatch: pytest.MonkeyPatch, distribution_path: Path
) -> None:
    async def broken_run(**kwargs: object) -> None:
        raise ValueError("invalid literal for int()")

    monkeypatch.setattr("incentive_distributor.__main__.run_batch_send", broken_run)

    with pytest.raises(ValueError, match="invalid literal"):
        main(["batch-send", "--file", str(distribution_path)])
