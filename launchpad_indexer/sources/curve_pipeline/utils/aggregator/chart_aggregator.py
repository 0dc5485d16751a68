import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

import pandas as pd

from launchpad_indexer.sources.curve_pipeline.config.settings import AGG_INTERVAL, AGG_WINDOW_DAYS
from launchpad_indexer.sources.curve_pipeline.utils.aggregator.market_stats import compute_token_stats
from launchpad_indexer.utils.types import PoolRow, TokenRow

log = logging.getLogger(__name__)

PRICE_COLUMNS = ["open_eth", "high_eth", "low_eth", "close_eth"]
USD_COLUMNS = ["open_usd", "high_usd", "low_usd", "close_usd"]
CANDLE_COLUMNS = PRICE_COLUMNS + USD_COLUMNS + ["volume_eth", "volume_usd", "trades_count"]

WEI = 10 ** 18


def _utc(ts) -> pd.Timestamp:
    ts = pd.Timestamp(ts)
    return ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")


def bucket_range(start: datetime, end: datetime, interval: str = "4h") -> pd.DatetimeIndex:
    """Every bucket start from floor(start) to floor(end); 4h buckets align on 00:00 UTC."""
    return pd.date_range(
        _utc(start).floor(interval), _utc(end).floor(interval), freq=interval
    ).as_unit("ns")


def _aggregate_trades(trades: List[dict], buckets: pd.DatetimeIndex, interval: str,
                      fallback_usd_rate: Optional[float]) -> pd.DataFrame:
    df = pd.DataFrame(trades)
    df["block_time"] = pd.to_datetime(df["block_time"], utc=True)
    upper = buckets[-1] + pd.Timedelta(interval)
    df = df[(df["block_time"] >= buckets[0]) & (df["block_time"] < upper)]
    if df.empty:
        return pd.DataFrame(columns=CANDLE_COLUMNS)

    df = df.sort_values(["block_number", "log_index"])
    df["price"] = df["price"].map(float)
    rate = df["eth_price_usd"].map(lambda v: float(v) if v is not None else float("nan"))
    if fallback_usd_rate is not None:
        rate = rate.fillna(float(fallback_usd_rate))
    df["price_usd"] = df["price"] * rate
    df["volume_eth"] = df["eth_amount_wei"].map(float) / WEI
    df["volume_usd"] = df["volume_eth"] * rate
    df["bucket"] = df["block_time"].dt.floor(interval).dt.as_unit("ns")

    g = df.groupby("bucket")
    return pd.DataFrame({
        "open_eth": g["price"].first(),
        "high_eth": g["price"].max(),
        "low_eth": g["price"].min(),
        "close_eth": g["price"].last(),
        "open_usd": g["price_usd"].first(),
        "high_usd": g["price_usd"].max(),
        "low_usd": g["price_usd"].min(),
        "close_usd": g["price_usd"].last(),
        "volume_eth": g["volume_eth"].sum(),
        "volume_usd": g["volume_usd"].sum(min_count=1),
        "trades_count": g.size(),
    })


def build_candles(
    trades: List[dict],
    start: datetime,
    end: datetime,
    interval: str = "4h",
    seed_price: Optional[float] = None,
    fallback_usd_rate: Optional[float] = None,
) -> pd.DataFrame:
    """
    Gap-free OHLC over [start, end].

    Trades are dicts with block_time, block_number, log_index, price (ETH per
    token), eth_amount_wei and eth_price_usd. Empty buckets repeat the last
    known close as a flat candle; buckets before any known price (no trade and
    no `seed_price`) are dropped rather than written as zero.
    """
    buckets = bucket_range(start, end, interval)
    if len(buckets) == 0:
        return pd.DataFrame(columns=CANDLE_COLUMNS)

    if trades:
        agg = _aggregate_trades(trades, buckets, interval, fallback_usd_rate)
    else:
        agg = pd.DataFrame(columns=CANDLE_COLUMNS)

    out = agg.reindex(buckets)
    out.index.name = "ts"
    empty = out["trades_count"].isna()

    last_close = out["close_eth"].astype(float).ffill()
    last_close_usd = out["close_usd"].astype(float).ffill()
    if seed_price is not None:
        last_close = last_close.fillna(float(seed_price))
        if fallback_usd_rate is not None:
            last_close_usd = last_close_usd.fillna(float(seed_price) * float(fallback_usd_rate))

    for col in PRICE_COLUMNS:
        out[col] = out[col].astype(float)
        out.loc[empty, col] = last_close[empty]
    for col in USD_COLUMNS:
        out[col] = out[col].astype(float)
        out.loc[empty, col] = last_close_usd[empty]

    out["volume_eth"] = out["volume_eth"].astype(float).fillna(0.0)
    out["volume_usd"] = out["volume_usd"].astype(float)
    out.loc[empty, "volume_usd"] = 0.0
    out["trades_count"] = out["trades_count"].fillna(0).astype(int)

    return out[out["close_eth"].notna()]


def _num(v) -> Optional[Decimal]:
    if v is None or pd.isna(v):
        return None
    return Decimal(str(v))


def candles_to_rows(candles: pd.DataFrame, token_id: int, interval: str) -> List[dict]:
    rows = []
    for ts, c in candles.iterrows():
        row = {
            "token_id": token_id,
            "interval_type": interval,
            "ts": ts.to_pydatetime(),
            "trades_count": int(c["trades_count"]),
        }
        for col in PRICE_COLUMNS + USD_COLUMNS + ["volume_eth", "volume_usd"]:
            row[col] = _num(c[col])
        rows.append(row)
    return rows


class ChartAggregator:
    """Chart candles plus the token row's market stats, one token at a time."""

    def __init__(
        self,
        client,
        store,
        eth_price_usd: Optional[Decimal] = None,
        window_days: int = AGG_WINDOW_DAYS,
        interval: str = AGG_INTERVAL,
    ):
        self.client = client
        self.store = store
        self.eth_price_usd = eth_price_usd
        self.window_days = window_days
        self.interval = interval

    def run(self, token: TokenRow, pool: Optional[PoolRow] = None, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        start = now - timedelta(days=self.window_days)
        rate = float(self.eth_price_usd) if self.eth_price_usd is not None else None

        try:
            trades = self.store.load_trades(token.id, token.chain_id, start)
            seed = self.store.last_trade_price(token.id, token.chain_id, before=start)
            candles = build_candles(
                trades, start, now, self.interval,
                seed_price=float(seed) if seed is not None else None,
                fallback_usd_rate=rate,
            )
            rows = candles_to_rows(candles, token.id, self.interval)
            self.store.upsert_chart_rows(rows)

            stats = compute_token_stats(self.client, self.store, token, pool, self.eth_price_usd, now)
            self.store.update_token_stats(token.id, stats)
            self.store.commit()
        except Exception:
            self.store.rollback()
            raise

        log.info(
            f"✅ [token {token.id}] {len(rows)} {self.interval} candles from {len(trades)} trades, "
            f"price {stats['current_price_eth']} ETH"
        )
        return len(rows)
