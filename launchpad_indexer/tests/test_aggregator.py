from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from launchpad_indexer.sources.curve_pipeline.utils.aggregator.chart_aggregator import (
    ChartAggregator,
    build_candles,
    candles_to_rows,
)
from launchpad_indexer.sources.curve_pipeline.utils.aggregator.market_stats import (
    compute_market_stats,
    pool_liquidity_eth,
    resolve_current_price,
)
from launchpad_indexer.utils.types import PoolRow, TokenRow

START = datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)
END = datetime(2024, 1, 1, 13, 0, tzinfo=timezone.utc)

CONTRACT = "0x" + "c" * 40
POOL = "0x" + "9" * 40
WETH = "0x" + "4" * 40
A = "0x" + "a" * 40
E18 = 10**18

TOKEN = TokenRow(1, 6342, CONTRACT, 100, 250, False, None)


def _trade(hour, price, block, eth_wei=E18, usd=None):
    return {
        "block_time": START + timedelta(hours=hour),
        "block_number": block,
        "log_index": 0,
        "price": Decimal(str(price)),
        "eth_amount_wei": eth_wei,
        "eth_price_usd": usd,
    }


def test_gap_buckets_repeat_previous_close():
    trades = [_trade(1, 1.0, 10, usd=Decimal("2000")), _trade(2, 2.0, 11), _trade(9, 3.0, 20)]
    candles = build_candles(trades, START, END, seed_price=None, fallback_usd_rate=1000)

    assert list(candles.index.hour) == [0, 4, 8, 12]
    first, gap, third, tail = (candles.iloc[i] for i in range(4))

    assert (first.open_eth, first.high_eth, first.low_eth, first.close_eth) == (1.0, 2.0, 1.0, 2.0)
    assert first.trades_count == 2
    assert first.volume_eth == 2.0
    # first trade at its own rate, second at the run fallback
    assert first.open_usd == 2000.0
    assert first.close_usd == 2000.0

    assert (gap.open_eth, gap.high_eth, gap.low_eth, gap.close_eth) == (2.0, 2.0, 2.0, 2.0)
    assert gap.trades_count == 0
    assert gap.volume_eth == 0.0

    assert third.open_eth == third.close_eth == 3.0
    assert tail.close_eth == 3.0 and tail.trades_count == 0


def test_buckets_before_first_price_are_dropped():
    candles = build_candles([_trade(9, 3.0, 20)], START, END)
    assert list(candles.index.hour) == [8, 12]


def test_seed_price_fills_leading_buckets():
    candles = build_candles([_trade(9, 3.0, 20)], START, END, seed_price=0.5)
    assert list(candles.index.hour) == [0, 4, 8, 12]
    assert candles.iloc[0].open_eth == 0.5
    assert candles.iloc[0].close_eth == 0.5


def test_no_trades_no_seed_writes_nothing():
    assert candles_to_rows(build_candles([], START, END), 1, "4h") == []


def test_rows_are_decimal_and_keyed_by_bucket():
    candles = build_candles([_trade(1, 1.5, 10)], START, END)
    rows = candles_to_rows(candles, 1, "4h")
    assert rows[0]["ts"] == START
    assert rows[0]["interval_type"] == "4h"
    assert rows[0]["close_eth"] == Decimal("1.5")
    assert rows[0]["close_usd"] is None
    assert rows[-1]["trades_count"] == 0


def test_market_stats():
    balances = {A: 600 * E18, POOL: 300 * E18, CONTRACT: 100 * E18}
    stats = compute_market_stats(balances, {POOL, CONTRACT}, Decimal("0.001"), Decimal("2000"))
    assert stats.total_supply == Decimal(1000)
    assert stats.circulating_supply == Decimal(600)
    assert stats.price_usd == Decimal("2")
    assert stats.market_cap_usd == Decimal(1200)
    assert stats.fdv_usd == Decimal(2000)

    no_rate = compute_market_stats(balances, set(), Decimal("0.001"), None)
    assert no_rate.market_cap_usd is None


@pytest.fixture
def pool():
    return PoolRow(1, 6342, POOL, WETH, CONTRACT, WETH, 18, 18, 250, 250, 180)


def test_current_price_before_and_after_graduation(chain, store, pool):
    chain.set_view(CONTRACT, "getCurrentPrice", 3 * 10**14)
    assert resolve_current_price(chain, store, TOKEN, None) == Decimal("0.0003")

    store.upsert_pair_snapshots([{
        "chain_id": 6342, "pair_address": POOL, "block_number": 200, "block_time": START,
        "reserve0_wei": 10 * E18, "reserve1_wei": 50_000 * E18, "price_eth_per_token": Decimal("0.0002"),
    }])
    store.commit()
    assert resolve_current_price(chain, store, TOKEN, pool) == Decimal("0.0002")
    assert pool_liquidity_eth(store, pool) == Decimal(20)


def test_chart_aggregator_run(chain, store):
    now = datetime(2024, 1, 2, 1, 0, tzinfo=timezone.utc)
    store.insert_transfers([{
        "token_id": 1, "chain_id": 6342, "tx_hash": "0x01", "log_index": 0, "block_number": 150,
        "block_time": now - timedelta(minutes=30), "from_address": "0x" + "0" * 40, "to_address": A,
        "amount_wei": 1000 * E18, "eth_amount_wei": 10**17, "price_eth_per_token": Decimal("0.0001"),
        "side": "BUY", "source": "BC", "eth_price_usd": None,
    }])
    store.balances[1] = {A: 1000 * E18}
    store.commit()

    written = ChartAggregator(chain, store, Decimal("2000"), window_days=1).run(TOKEN, None, now=now)

    # buckets from 00:00 on the 1st through 00:00 on the 2nd; only the last has a price
    assert written == 1
    (row,) = store.chart.values()
    assert row["close_eth"] == Decimal("0.0001")
    assert float(row["close_usd"]) == pytest.approx(0.2)

    stats = store.token_stats[1]
    assert stats["current_price_eth"] == Decimal("0.0001")
    assert stats["volume_24h_eth"] == Decimal("0.1")
    assert stats["market_cap_usd"] == Decimal("200.0000")
    assert stats["liquidity_eth"] is None
