import pytest
from hexbytes import HexBytes
from web3.datastructures import AttributeDict

from launchpad_indexer.sources.curve_pipeline.config.settings import ZERO_ADDRESS
from launchpad_indexer.sources.curve_pipeline.evm.utils.blocks import BlockTimestampCache, walk_block_ranges
from launchpad_indexer.sources.curve_pipeline.evm.utils.decoders import decode_swap, decode_sync, decode_transfer
from launchpad_indexer.utils.log_utils import group_logs_by_tx, sanitize_log

TOKEN = "0x" + "c" * 40
USER = "0x" + "1" * 40


def test_walk_block_ranges_is_inclusive_and_gapless():
    assert list(walk_block_ranges(100, 250, 50)) == [(100, 149), (150, 199), (200, 249), (250, 250)]
    assert list(walk_block_ranges(5, 5, 10)) == [(5, 5)]
    assert list(walk_block_ranges(6, 5, 10)) == []
    with pytest.raises(ValueError):
        list(walk_block_ranges(0, 10, 0))


def test_block_timestamp_cache_evicts_oldest():
    fetched = []

    def fetch(n):
        fetched.append(n)
        return 1000 + n

    cache = BlockTimestampCache(fetch, maxsize=2)
    assert cache.get(1) == 1001
    assert cache.get(1) == 1001
    cache.get(2)
    cache.get(3)
    assert len(cache) == 2
    assert cache.peek(1) is None
    assert fetched == [1, 2, 3]


def test_decoders(logs):
    t = decode_transfer(logs.transfer(TOKEN, ZERO_ADDRESS, USER, 42, 7, 3, "0x01"))
    assert (t.from_address, t.to_address, t.amount, t.block_number, t.log_index) == (ZERO_ADDRESS, USER, 42, 7, 3)

    s = decode_swap(logs.swap(TOKEN, USER, USER, 1, 2, 3, 4, 7, 4, "0x01"))
    assert (s.amount0_in, s.amount1_in, s.amount0_out, s.amount1_out) == (1, 2, 3, 4)

    r = decode_sync(logs.sync(TOKEN, 5, 6, 7, 5, "0x01"))
    assert (r.reserve0, r.reserve1) == (5, 6)


def test_decoder_rejects_wrong_event(logs):
    with pytest.raises(ValueError):
        decode_transfer(logs.sync(TOKEN, 5, 6, 7, 5, "0x01"))


def test_sanitize_log_keeps_hex_prefix():
    raw = AttributeDict({
        "transactionHash": HexBytes("0x" + "ab" * 32),
        "topics": [HexBytes("0x" + "00" * 32)],
        "logIndex": 2,
    })
    clean = sanitize_log(raw)
    assert clean["transactionHash"] == "0x" + "ab" * 32
    assert clean["topics"] == ["0x" + "00" * 32]
    assert clean["logIndex"] == 2


def test_group_logs_by_tx_orders_by_block_then_index():
    logs = [
        {"transactionHash": "0xb", "blockNumber": 2, "logIndex": 0},
        {"transactionHash": "0xa", "blockNumber": 1, "logIndex": 1},
        {"transactionHash": "0xa", "blockNumber": 1, "logIndex": 0},
    ]
    grouped = group_logs_by_tx(logs)
    assert list(grouped) == ["0xa", "0xb"]
    assert [lg["logIndex"] for lg in grouped["0xa"]] == [0, 1]
