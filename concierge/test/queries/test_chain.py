from unittest.mock import Mock

import pytest
from web3.exceptions import Web3Exception

from concierge.errors import ChainReadError
from concierge.queries import ChainStateReader
from concierge.queries.chain import IS_LEAF_USED
from concierge.test.fakes import DISTRIBUTOR
from concierge.utils import hex_to_bytes

USED = "0x" + "11" * 32
UNUSED = "0x" + "22" * 32


class MockCall:
    def __init__(self, target, function, returns):
        self.target = target
        self.function = function
        self.returns = returns


def mock_multicall(monkeypatch, used: set[bytes], results=None, error=None) -> list:
    """Replaces the multicall with one that answers from `used`, returns the list of batches sent"""
    batches = []

    class MockMulticall:
        def __init__(self, calls, _w3=None, block_id=None):
            self.calls = calls
            self.block_id = block_id
            batches.append(self)

        def __call__(self):
            if error:
                raise error
            if results is not None:
                return results
            return {c.returns[0][0]: c.function[1] in used for c in self.calls}

    monkeypatch.setattr("concierge.queries.chain.Call", MockCall)
    monkeypatch.setattr("concierge.queries.chain.Multicall", MockMulticall)
    return batches


@pytest.fixture
def reader() -> ChainStateReader:
    return ChainStateReader(Mock(), DISTRIBUTOR)


def test_is_used_one_multicall_in_input_order(monkeypatch, reader: ChainStateReader):
    batches = mock_multicall(monkeypatch, used={hex_to_bytes(USED)})

    assert reader.is_used([UNUSED, USED, UNUSED, USED]) == [False, True, False, True]
    assert len(batches) == 1

    calls = batches[0].calls
    assert len(calls) == 4
    assert all(c.target == reader.address for c in calls)
    assert all(c.function[0] == IS_LEAF_USED for c in calls)


def test_is_used_empty_input_makes_no_call(monkeypatch, reader: ChainStateReader):
    batches = mock_multicall(monkeypatch, used=set())

    assert reader.is_used([]) == []
    assert batches == []


def test_is_used_pins_block(monkeypatch):
    batches = mock_multicall(monkeypatch, used=set())
    reader = ChainStateReader(Mock(), DISTRIBUTOR, block_id=19000000)

    reader.is_used([USED])
    assert batches[0].block_id == 19000000
    assert reader.block_identifier == 19000000


def test_is_used_failure_fails_the_whole_batch(monkeypatch, reader: ChainStateReader):
    mock_multicall(monkeypatch, used=set(), error=Web3Exception("execution reverted"))

    with pytest.raises(ChainReadError, match="multicall failed for 2 leaves"):
        reader.is_used([USED, UNUSED])


def test_is_used_missing_result(monkeypatch, reader: ChainStateReader):
    mock_multicall(monkeypatch, used=set(), results={0: True})

    with pytest.raises(ChainReadError, match="no result for 1 leaves"):
        reader.is_used([USED, UNUSED])


def test_get_window(reader: ChainStateReader):
    reader.contract.functions.getTime.return_value.call.return_value = (100, 200)

    window = reader.get_window()
    assert (window.start_time, window.end_time) == (100, 200)
    reader.contract.functions.getTime.return_value.call.assert_called_once_with(
        block_identifier="latest"
    )


def test_decode_leaf_data(reader: ChainStateReader):
    fn = reader.contract.functions.decodeMOCALeafData
    fn.return_value.call.return_value = ((1, 1716000000, 10**19), 1747536000, 7)

    leaf_data = reader.decode_leaf_data("0x0a")
    assert leaf_data.claimable_amount == 10**19
    fn.assert_called_once_with(b"\x0a")


def test_rpc_error_is_a_chain_read_error(reader: ChainStateReader):
    reader.contract.functions.paused.return_value.call.side_effect = ValueError("rpc down")

    with pytest.raises(ChainReadError, match="rpc down"):
        reader.paused()


def test_gas_price(reader: ChainStateReader):
    reader.w3.eth.gas_price = 5_000_000_000
    assert reader.gas_price() == 5_000_000_000
