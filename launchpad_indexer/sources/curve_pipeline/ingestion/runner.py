# runner.py
# --------------------------------------------------------------
# One pipeline run: chains in order, tokens in order, and per token
# scan → dex → balances → chart / daily aggregates, each pass committing on its own.
# --------------------------------------------------------------
import logging
import time
from decimal import Decimal
from typing import Optional

from launchpad_indexer.sources.curve_pipeline.config.settings import (
    HEALTH_CHECK_TIMEOUT_MS,
    SKIP_HEALTH_CHECK,
    TokenFilter,
    load_chain_profiles,
)
from launchpad_indexer.sources.curve_pipeline.errors import ChainNotConfiguredError, PipelineError
from launchpad_indexer.sources.curve_pipeline.evm.utils.client import ChainClient, ProviderRegistry
from launchpad_indexer.sources.curve_pipeline.pricing.eth_usd import EthUsdOracle
from launchpad_indexer.sources.curve_pipeline.processing.balances import BalanceReconstructor
from launchpad_indexer.sources.curve_pipeline.processing.dex_processor import DexProcessor
from launchpad_indexer.sources.curve_pipeline.processing.scanner import LogScanner
from launchpad_indexer.sources.curve_pipeline.utils.aggregator.chart_aggregator import ChartAggregator
from launchpad_indexer.sources.curve_pipeline.utils.aggregator.daily_aggregator import DailyAggregator
from launchpad_indexer.storage.db import check_db_connection, session_scope, worker_engine
from launchpad_indexer.storage.ledger_store import LedgerStore
from launchpad_indexer.storage.run_lock import RunLock
from launchpad_indexer.utils.types import TokenRow

log = logging.getLogger(__name__)


def process_token(client: ChainClient, store: LedgerStore, token: TokenRow,
                  eth_price_usd: Optional[Decimal] = None) -> dict:
    """Every pass for one token against one head block."""
    head = client.block_number()

    scan = LogScanner(client, store, eth_price_usd).scan_token(token, head)

    # looked up after the scan so a graduation found in this run is indexed right away
    pool = store.get_dex_pool(token.id, token.chain_id)
    dex = None
    if pool is not None:
        dex = DexProcessor(client, store, eth_price_usd).process_pool(token, pool, head)

    balances = BalanceReconstructor(store).rebuild(token)
    candles = ChartAggregator(client, store, eth_price_usd).run(token, pool)
    days = DailyAggregator(store).run(token, balances.holders)

    return {
        "token_id": token.id,
        "head": head,
        "cursor": scan.cursor,
        "rows": scan.rows_written,
        "scan_failed": scan.failed,
        "dex_failed": bool(dex and (dex.swap_failed or dex.sync_failed)),
        "holders": balances.holders,
        "candles": candles,
        "days": days,
    }


def _chain_client(registry: ProviderRegistry, chain_id: int) -> Optional[ChainClient]:
    """Client for a chain worth indexing this run, or None to skip it."""
    try:
        if not SKIP_HEALTH_CHECK and not registry.check_health(chain_id, HEALTH_CHECK_TIMEOUT_MS):
            log.warning(f"Skipping chain {chain_id}: provider unhealthy")
            return None
        return registry.for_chain(chain_id)
    except ChainNotConfiguredError as e:
        log.warning(f"Skipping chain {chain_id}: {e}")
    except ConnectionError as e:
        log.warning(f"❌ Skipping chain {chain_id}: {e}")
    return None


def _process_isolated(client: ChainClient, token: TokenRow, eth_price_usd: Optional[Decimal]) -> bool:
    with session_scope() as session:
        store = LedgerStore(session)
        try:
            summary = process_token(client, store, token, eth_price_usd)
        except Exception:
            session.rollback()
            log.error(f"❌ [token {token.id}] aborted, moving on to the next token", exc_info=True)
            return False
    log.info(f"✅ [token {token.id}] {summary}")
    return not (summary["scan_failed"] or summary["dex_failed"])


def _run_locked(token_filter: TokenFilter) -> dict:
    registry = ProviderRegistry(load_chain_profiles())
    with session_scope() as session:
        eth_price_usd = EthUsdOracle(session).get_rate()
        chain_ids = LedgerStore(session).list_chain_ids(token_filter)

    result = {"chains": 0, "skipped_chains": [], "tokens": 0, "failed": 0}
    for chain_id in chain_ids:
        client = _chain_client(registry, chain_id)
        if client is None:
            result["skipped_chains"].append(chain_id)
            continue
        result["chains"] += 1

        with session_scope() as session:
            tokens = LedgerStore(session).select_tokens(token_filter, chain_id)
        log.info(f"🚀 [{client.profile.name}] {len(tokens)} tokens")

        for token in tokens:
            result["tokens"] += 1
            if not _process_isolated(client, token, eth_price_usd):
                result["failed"] += 1
    return result


def run_pipeline(token_filter: Optional[TokenFilter] = None) -> dict:
    token_filter = token_filter or TokenFilter.from_env()
    check_db_connection(worker_engine)

    with RunLock(worker_engine) as acquired:
        if not acquired:
            return {"status": "locked"}

        t0 = time.time()
        log.info(f"🚀 Pipeline run starting ({token_filter.describe()})")
        result = _run_locked(token_filter)
        result["status"] = "ok"
        result["duration_seconds"] = round(time.time() - t0, 2)
        log.info(f"✅ Pipeline run finished: {result}")
        return result


def sync_token(token_id: int) -> dict:
    """Single-token pass, shares the run lock with scheduled runs."""
    check_db_connection(worker_engine)

    with RunLock(worker_engine) as acquired:
        if not acquired:
            return {"status": "locked", "token_id": token_id}

        registry = ProviderRegistry(load_chain_profiles())
        with session_scope() as session:
            store = LedgerStore(session)
            token = store.get_token(token_id)
            if token is None:
                raise PipelineError(f"Token {token_id} not found or has no contract address")
            eth_price_usd = EthUsdOracle(session).get_rate()
            client = registry.for_chain(token.chain_id)
            summary = process_token(client, store, token, eth_price_usd)

        summary["status"] = "ok"
        return summary


def rebuild_balances(token_id: int) -> int:
    with session_scope() as session:
        store = LedgerStore(session)
        token = store.get_token(token_id)
        if token is None:
            raise PipelineError(f"Token {token_id} not found or has no contract address")
        return BalanceReconstructor(store).rebuild(token).holders
