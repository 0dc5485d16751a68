from datetime import date, datetime, timezone

from launchpad_indexer.sources.curve_pipeline.config.settings import ZERO_ADDRESS
from launchpad_indexer.sources.curve_pipeline.utils.aggregator.daily_aggregator import (
    DailyAggregator,
    build_daily_rollup,
    daily_rows,
)
from launchpad_indexer.utils.types import TokenRow

CONTRACT = "0x" + "c" * 40
POOL = "0x" + "9" * 40
A = "0x" + "a" * 40
B = "0x" + "b" * 40
E18 = 10**18

TOKEN = TokenRow(1, 6342, CONTRACT, 100, 250, False, None)


def _at(day, hour):
    return datetime(2024, 1, day, hour, tzinfo=timezone.utc)


def _row(when, from_, to, amount, eth, side, block, log_index=0):
    return {
        "token_id": 1,
        "chain_id": 6342,
        "tx_hash": f"0x{block:064x}",
        "log_index": log_index,
        "block_number": block,
        "block_time": when,
        "from_address": from_,
        "to_address": to,
        "amount_wei": amount,
        "eth_amount_wei": eth,
        "side": side,
        "price_eth_per_token": None,
        "source": "BC",
    }


def _first_day():
    return [
        _row(_at(1, 1), ZERO_ADDRESS, A, 1000 * E18, 10**17, "BUY", 10),
        _row(_at(1, 5), A, ZERO_ADDRESS, 200 * E18, 10**16, "SELL", 20),
        _row(_at(1, 23), CONTRACT, POOL, 800 * E18, 5 * E18, "GRADUATION", 30),
    ]


def test_rollup_counts_and_volumes():
    rollup = build_daily_rollup(_first_day(), date(2024, 1, 1), date(2024, 1, 2))
    rows = daily_rows(rollup, 1, 6342, holders=2)

    first, quiet = rows
    assert first["day"] == date(2024, 1, 1)
    assert first["transfers"] == 3
    assert first["unique_senders"] == 3
    assert first["unique_receivers"] == 3
    # the buyer and the seller are the same wallet
    assert first["unique_traders"] == 1
    # graduation liquidity is not trading volume
    assert first["volume_token_wei"] == 1200 * E18
    assert first["volume_eth_wei"] == 11 * 10**16
    assert first["holders_count"] == 2

    assert quiet["day"] == date(2024, 1, 2)
    assert (quiet["transfers"], quiet["unique_traders"], quiet["volume_eth_wei"]) == (0, 0, 0)


def test_rollup_keeps_wei_exact():
    eth = 2**60 + 1
    rows = daily_rows(
        build_daily_rollup(
            [_row(_at(3, 9), ZERO_ADDRESS, B, 10**24 + 7, eth, "BUY", 40)],
            date(2024, 1, 1), date(2024, 1, 3),
        ),
        1, 6342, holders=None,
    )
    assert [r["transfers"] for r in rows] == [0, 0, 1]
    assert rows[-1]["volume_eth_wei"] == eth
    assert rows[-1]["volume_token_wei"] == 10**24 + 7


def test_empty_ledger_writes_nothing(store):
    assert DailyAggregator(store).run(TOKEN, holders=0, now=_at(3, 12)) == 0
    assert store.daily == {}


def test_run_starts_at_first_ledger_day_and_resumes(store):
    store.insert_transfers(_first_day())
    store.commit()

    assert DailyAggregator(store).run(TOKEN, holders=2, now=_at(3, 12)) == 3
    assert sorted(day for (_, day) in store.daily) == [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]

    store.insert_transfers([_row(_at(3, 18), ZERO_ADDRESS, B, 50 * E18, 10**16, "BUY", 50)])
    store.commit()

    # only the last stored day is rewritten; earlier days keep their holder count
    assert DailyAggregator(store).run(TOKEN, holders=3, now=_at(3, 20)) == 1
    assert store.daily[(1, date(2024, 1, 1))]["holders_count"] == 2
    third = store.daily[(1, date(2024, 1, 3))]
    assert (third["transfers"], third["unique_traders"], third["holders_count"]) == (1, 1, 3)
