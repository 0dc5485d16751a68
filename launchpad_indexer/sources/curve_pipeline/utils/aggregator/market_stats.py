import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, NamedTuple, Optional, Set

from launchpad_indexer.sources.curve_pipeline.config.settings import CURVE_ABI, ZERO_ADDRESS
from launchpad_indexer.sources.curve_pipeline.processing.ledger_rows import SOURCE_BONDING_CURVE
from launchpad_indexer.utils.types import PoolRow, TokenRow

log = logging.getLogger(__name__)


class MarketStats(NamedTuple):
    total_supply: Decimal
    circulating_supply: Decimal
    price_eth: Optional[Decimal]
    price_usd: Optional[Decimal]
    market_cap_usd: Optional[Decimal]
    fdv_usd: Optional[Decimal]


def _scale(decimals: int) -> Decimal:
    return Decimal(10) ** decimals


def compute_market_stats(
    balances: Dict[str, int],
    excluded: Set[str],
    price_eth: Optional[Decimal],
    eth_usd: Optional[Decimal],
    decimals: int = 18,
) -> MarketStats:
    """
    Supply figures straight from the rebuilt balances.

    circulating = total minus whatever the pool, the curve contract and the
    zero address hold. Cap and FDV need both a token price and an ETH/USD rate.
    """
    excluded = {a.lower() for a in excluded} | {ZERO_ADDRESS}
    total_wei = sum(balances.values())
    circulating_wei = sum(v for holder, v in balances.items() if holder.lower() not in excluded)

    total = Decimal(total_wei) / _scale(decimals)
    circulating = Decimal(circulating_wei) / _scale(decimals)

    price_usd = None
    if price_eth is not None and eth_usd is not None:
        price_usd = Decimal(price_eth) * Decimal(eth_usd)

    return MarketStats(
        total_supply=total,
        circulating_supply=circulating,
        price_eth=Decimal(price_eth) if price_eth is not None else None,
        price_usd=price_usd,
        market_cap_usd=circulating * price_usd if price_usd is not None else None,
        fdv_usd=total * price_usd if price_usd is not None else None,
    )


def resolve_current_price(client, store, token: TokenRow, pool: Optional[PoolRow]) -> Optional[Decimal]:
    """Latest ETH-per-token price on whichever side of graduation the token is."""
    if pool is not None:
        snap = store.latest_snapshot(pool.chain_id, pool.pair_address)
        if snap and snap["price"] is not None:
            return Decimal(snap["price"])
        return store.last_trade_price(token.id, token.chain_id)

    raw = client.probe_view(token.contract_address, CURVE_ABI, "getCurrentPrice")
    if raw:
        return Decimal(raw) / _scale(18)
    log.debug(f"[token {token.id}] getCurrentPrice unavailable, using last curve trade")
    return store.last_trade_price(token.id, token.chain_id, source=SOURCE_BONDING_CURVE)


def pool_liquidity_eth(store, pool: Optional[PoolRow]) -> Optional[Decimal]:
    if pool is None:
        return None
    snap = store.latest_snapshot(pool.chain_id, pool.pair_address)
    if not snap:
        return None
    quote_reserve = snap["reserve0_wei"] if pool.token0 == pool.quote_token else snap["reserve1_wei"]
    return 2 * Decimal(quote_reserve) / _scale(pool.quote_decimals)


def compute_token_stats(
    client,
    store,
    token: TokenRow,
    pool: Optional[PoolRow],
    eth_usd: Optional[Decimal],
    now: Optional[datetime] = None,
) -> dict:
    """Column values for the token row's derived stats."""
    now = now or datetime.now(timezone.utc)
    decimals = pool.token_decimals if pool else 18

    excluded = store.pool_addresses(token.chain_id) | {token.contract_address}
    price = resolve_current_price(client, store, token, pool)
    stats = compute_market_stats(store.load_balances(token.id), excluded, price, eth_usd, decimals)
    volume_wei = store.volume_since(token.id, token.chain_id, now - timedelta(hours=24))

    return {
        "current_price_eth": stats.price_eth,
        "current_price_usd": stats.price_usd,
        "market_cap_usd": stats.market_cap_usd,
        "fdv_usd": stats.fdv_usd,
        "total_supply": stats.total_supply,
        "circulating_supply": stats.circulating_supply,
        "volume_24h_eth": Decimal(volume_wei) / _scale(18),
        "liquidity_eth": pool_liquidity_eth(store, pool),
        "stats_updated_at": now,
    }
