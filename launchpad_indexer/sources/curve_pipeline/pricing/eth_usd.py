import logging
import os
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import backoff
import httpx
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from launchpad_indexer.storage.models.eth_price_cache import EthPriceCache

log = logging.getLogger(__name__)

COINGECKO_URL = os.getenv("ETH_USD_PRICE_URL", "https://api.coingecko.com/api/v3/simple/price")
CACHE_ROW_ID = 1


@backoff.on_exception(backoff.expo, (httpx.RequestError, httpx.HTTPStatusError), max_tries=3, jitter=None)
def fetch_eth_usd(client: httpx.Client) -> Decimal:
    resp = client.get(COINGECKO_URL, params={"ids": "ethereum", "vs_currencies": "usd"}, timeout=10)
    resp.raise_for_status()
    return Decimal(str(resp.json()["ethereum"]["usd"]))


class EthUsdOracle:
    """One ETH/USD rate per run: live quote when reachable, else the last cached one."""

    def __init__(self, session: Session, client: Optional[httpx.Client] = None):
        self.session = session
        self.client = client

    def _fetch(self) -> Decimal:
        if self.client is not None:
            return fetch_eth_usd(self.client)
        with httpx.Client() as client:
            return fetch_eth_usd(client)

    def _store(self, price: Decimal) -> None:
        stmt = pg_insert(EthPriceCache.__table__).values(
            id=CACHE_ROW_ID, price_usd=price, fetched_at=datetime.now(timezone.utc)
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={"price_usd": stmt.excluded.price_usd, "fetched_at": stmt.excluded.fetched_at},
        )
        self.session.execute(stmt)
        self.session.commit()

    def cached_rate(self) -> Optional[Decimal]:
        row = self.session.get(EthPriceCache, CACHE_ROW_ID)
        return Decimal(row.price_usd) if row is not None else None

    def get_rate(self) -> Optional[Decimal]:
        try:
            price = self._fetch()
        except (httpx.HTTPError, KeyError, ValueError) as e:
            log.warning(f"ETH/USD fetch failed ({e}), falling back to cache")
            rate = self.cached_rate()
            if rate is None:
                log.error("❌ No cached ETH/USD rate, USD fields will be empty this run")
            return rate

        try:
            self._store(price)
        except SQLAlchemyError:
            self.session.rollback()
            log.error("Could not cache ETH/USD rate", exc_info=True)
        log.info(f"ETH/USD = {price}")
        return price
