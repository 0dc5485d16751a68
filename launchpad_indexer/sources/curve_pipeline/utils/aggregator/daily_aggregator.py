import logging
from datetime import date, datetime, timezone
from typing import List, Optional

import pandas as pd

from launchpad_indexer.storage.ledger_store import TRADE_SIDES
from launchpad_indexer.utils.types import TokenRow

log = logging.getLogger(__name__)

COUNT_COLUMNS = ["transfers", "unique_senders", "unique_receivers", "unique_traders"]
WEI_COLUMNS = ["volume_token_wei", "volume_eth_wei"]


def _wei_sum(values: pd.Series) -> int:
    # object column of python ints; floats would lose wei precision
    return sum(int(v) for v in values)


def _wei(v) -> int:
    return 0 if pd.isna(v) else int(v)


def build_daily_rollup(rows: List[dict], start_day: date, end_day: date) -> pd.DataFrame:
    """
    Per-UTC-day activity from ledger rows, one row per day in [start_day, end_day].

    Every ledger row counts as a transfer. Trades are BUY / SELL / BUY&LOCK,
    the trader being the buyer on buys and the seller on sells. Days without
    activity come out as zeros.
    """
    days = pd.date_range(start_day, end_day, freq="D").as_unit("ns")
    if len(days) == 0:
        return pd.DataFrame(columns=COUNT_COLUMNS + WEI_COLUMNS)

    if rows:
        df = pd.DataFrame(rows)
        df["day"] = (
            pd.to_datetime(df["block_time"], utc=True).dt.tz_localize(None).dt.normalize().dt.as_unit("ns")
        )
        df = df[(df["day"] >= days[0]) & (df["day"] <= days[-1])]
    else:
        df = pd.DataFrame(columns=["day", "from_address", "to_address", "amount_wei", "eth_amount_wei", "side"])

    xg = df.groupby("day")
    xfers = pd.DataFrame({
        "transfers": xg.size(),
        "unique_senders": xg["from_address"].nunique(),
        "unique_receivers": xg["to_address"].nunique(),
    })

    trades = df[df["side"].isin(TRADE_SIDES)].copy()
    trades["trader"] = trades["to_address"].where(trades["side"] != "SELL", trades["from_address"])
    tg = trades.groupby("day")
    traded = pd.DataFrame({
        "unique_traders": tg["trader"].nunique(),
        "volume_token_wei": tg["amount_wei"].agg(_wei_sum),
        "volume_eth_wei": tg["eth_amount_wei"].agg(_wei_sum),
    }).astype({c: object for c in WEI_COLUMNS})

    out = pd.concat([xfers.reindex(days), traded.reindex(days)], axis=1)
    out.index.name = "day"
    for col in COUNT_COLUMNS:
        out[col] = out[col].fillna(0).astype(int)
    for col in WEI_COLUMNS:
        out[col] = out[col].map(_wei).astype(object)
    return out


def daily_rows(rollup: pd.DataFrame, token_id: int, chain_id: int, holders: Optional[int]) -> List[dict]:
    rows = []
    for day, r in rollup.iterrows():
        row = {"token_id": token_id, "chain_id": chain_id, "day": day.date(), "holders_count": holders}
        for col in COUNT_COLUMNS:
            row[col] = int(r[col])
        for col in WEI_COLUMNS:
            row[col] = int(r[col])
        rows.append(row)
    return rows


class DailyAggregator:
    """
    Keeps token_daily_agg current for one token.

    Picks up at the last stored day (rewritten, it may have been partial)
    or at the token's first ledger day, through today. Rewritten days carry
    the holder count as of this run.
    """

    def __init__(self, store):
        self.store = store

    def run(self, token: TokenRow, holders: Optional[int] = None, now: Optional[datetime] = None) -> int:
        today = (now or datetime.now(timezone.utc)).astimezone(timezone.utc).date()
        last = self.store.last_daily_day(token.id)
        since = datetime(last.year, last.month, last.day, tzinfo=timezone.utc) if last else None

        ledger = self.store.load_ledger_rows(token.id, token.chain_id, since)
        if last is None:
            if not ledger:
                log.debug(f"[token {token.id}] no ledger rows yet, skipping daily rollup")
                return 0
            start = pd.to_datetime([r["block_time"] for r in ledger], utc=True).min().date()
        else:
            start = last

        rows = daily_rows(build_daily_rollup(ledger, start, today), token.id, token.chain_id, holders)
        try:
            self.store.upsert_daily_rows(rows)
            self.store.commit()
        except Exception:
            self.store.rollback()
            raise

        log.info(f"✅ [token {token.id}] daily rollup {start} → {today}: {len(rows)} days")
        return len(rows)
