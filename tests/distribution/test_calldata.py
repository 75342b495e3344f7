"""Tests for batch sender calldata export."""

import pytest
from web3 import Web3

from incentive_distributor.chain.abi import BATCH_SENDER_ABI
from incentive_distributor.distribution.calldata import encode_send_and_emit, get_batch_sender_calldata

TOKEN = "0x912CE59144191C1204E64559FE8253a0e49E6548"
SELECTOR = Web3.to_hex(Web3.keccak(text="sendAndEmit(address,address[],uint256[],uint256)")[:4])


def _recipients(count: int) -> list[str]:
    return [f"0x{i:040x}" for i in range(1, count + 1)]


class TestCalldata:
    def test_encode_send_and_emit(self) -> None:
        recipients = _recipients(2)
        data = encode_send_and_emit(TOKEN, recipients, [5, 7], 1001)

        assert data.startswith(SELECTOR)
        function, params = Web3().eth.contract(abi=BATCH_SENDER_ABI).decode_function_input(data)
        assert function.fn_name == "sendAndEmit"
        assert params["token"] == TOKEN
        assert [a.lower() for a in params["accounts"]] == recipients
        assert list(params["amounts"]) == [5, 7]
        assert params["typeId"] == 1001

    def test_keys_per_batch(self) -> None:
        recipients = _recipients(5)
        calldata = get_batch_sender_calldata(TOKEN, recipients, [1] * 5, 1001, batch_size=2)

        assert list(calldata) == ["0-1", "2-3", "4-4"]
        assert all(value.startswith(SELECTOR) for value in calldata.values())

    def test_length_mismatch(self) -> None:
        with pytest.raises(ValueError):
            get_batch_sender_calldata(TOKEN, _recipients(2), [1], 1001)
