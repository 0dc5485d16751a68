# dex_processor.py
# --------------------------------------------------------------
# Post-graduation V2 pair indexing: Swap → ledger trades,
# Sync → reserve snapshots. Two cursors, advanced independently.
# --------------------------------------------------------------
import logging
import time
from decimal import Decimal
from typing import Callable, Dict, List, NamedTuple, Optional, Tuple

from launchpad_indexer.sources.curve_pipeline.config.settings import SWAP_TOPIC, SYNC_TOPIC
from launchpad_indexer.sources.curve_pipeline.evm.utils.blocks import walk_block_ranges
from launchpad_indexer.sources.curve_pipeline.evm.utils.decoders import (
    SwapAmounts,
    SyncReserves,
    decode_swap,
    decode_sync,
)
from launchpad_indexer.sources.curve_pipeline.evm.utils.token_meta import get_pair_tokens
from launchpad_indexer.sources.curve_pipeline.processing.classifier import TransferKind, scaled_price
from launchpad_indexer.sources.curve_pipeline.processing.ledger_rows import (
    SOURCE_DEX,
    LedgerEntry,
    build_ledger_row,
    to_block_time,
)
from launchpad_indexer.utils.types import PoolRow, TokenRow

log = logging.getLogger(__name__)

SWAP_CURSOR = "last_processed_block"
SYNC_CURSOR = "last_processed_sync_block"


class SwapTrade(NamedTuple):
    side: str
    token_amount: int
    quote_amount: int


class DexResult(NamedTuple):
    swap_cursor: int
    sync_cursor: int
    swap_failed: bool
    sync_failed: bool


def interpret_swap(swap: SwapAmounts, quote_is_token0: bool) -> Optional[SwapTrade]:
    """
    Map raw Swap amounts onto the launch token.

    BUY  = the pool paid out more of the token than it took in
    SELL = the reverse. Anything with an empty side is dropped.
    """
    if quote_is_token0:
        quote_in, quote_out = swap.amount0_in, swap.amount0_out
        token_in, token_out = swap.amount1_in, swap.amount1_out
    else:
        quote_in, quote_out = swap.amount1_in, swap.amount1_out
        token_in, token_out = swap.amount0_in, swap.amount0_out

    net_token_out = token_out - token_in
    if net_token_out > 0:
        trade = SwapTrade(TransferKind.BUY.value, net_token_out, quote_in - quote_out)
    elif net_token_out < 0:
        trade = SwapTrade(TransferKind.SELL.value, -net_token_out, quote_out - quote_in)
    else:
        return None

    if trade.token_amount <= 0 or trade.quote_amount <= 0:
        return None
    return trade


def interpret_sync(
    sync: SyncReserves,
    quote_is_token0: bool,
    token_decimals: int = 18,
    quote_decimals: int = 18,
) -> Tuple[int, int, Optional[Decimal]]:
    """(token_reserve, quote_reserve, quote-per-token price)."""
    if quote_is_token0:
        quote_reserve, token_reserve = sync.reserve0, sync.reserve1
    else:
        quote_reserve, token_reserve = sync.reserve1, sync.reserve0
    price = scaled_price(quote_reserve, token_reserve, quote_decimals, token_decimals)
    return token_reserve, quote_reserve, price


class DexProcessor:
    def __init__(self, client, store, eth_price_usd: Optional[Decimal] = None):
        self.client = client
        self.store = store
        self.eth_price_usd = eth_price_usd

    def process_pool(self, token: TokenRow, pool: PoolRow, head: Optional[int] = None) -> DexResult:
        if head is None:
            head = self.client.block_number()

        # ordering comes from the live pair, not from what was stored at graduation
        token0, _ = get_pair_tokens(self.client, pool.pair_address)
        quote_is_token0 = token0 == pool.quote_token.lower()

        swap_cursor, swap_failed = self._run_cursor(
            token, pool, "swap", SWAP_TOPIC, SWAP_CURSOR, head,
            lambda logs: self._handle_swaps(token, pool, logs, quote_is_token0),
        )
        sync_cursor, sync_failed = self._run_cursor(
            token, pool, "sync", SYNC_TOPIC, SYNC_CURSOR, head,
            lambda logs: self._handle_syncs(pool, logs, quote_is_token0),
        )
        return DexResult(swap_cursor, sync_cursor, swap_failed, sync_failed)

    def _run_cursor(
        self,
        token: TokenRow,
        pool: PoolRow,
        name: str,
        topic: str,
        column: str,
        head: int,
        handler: Callable[[List[dict]], int],
    ) -> Tuple[int, bool]:
        cursor = pool.cursor(column)
        start = cursor + 1
        if start > head:
            return cursor, False

        for from_block, to_block in walk_block_ranges(start, head, self.client.profile.dex_window_size):
            t0 = time.time()
            try:
                logs = self.client.get_logs(pool.pair_address, [topic], from_block, to_block)
                n_rows = handler(logs)
                self.store.advance_pool_cursor(pool.chain_id, pool.pair_address, column, to_block)
                self.store.log_metrics(
                    token.id, pool.chain_id, name,
                    f"{from_block}-{to_block}", len(logs), time.time() - t0,
                )
                self.store.commit()
            except Exception:
                self.store.rollback()
                log.error(
                    f"❌ [token {token.id}] {name} window {from_block}-{to_block} on {pool.pair_address} failed, "
                    f"cursor held at {cursor}",
                    exc_info=True,
                )
                return cursor, True

            cursor = to_block
            if n_rows:
                log.info(f"[token {token.id}] {name} {from_block}-{to_block}: {n_rows} rows")
        return cursor, False

    # ── Swap ─────────────────────────────────────────────────────────────
    def _handle_swaps(self, token: TokenRow, pool: PoolRow, logs: List[dict], quote_is_token0: bool) -> int:
        senders: Dict[str, str] = {}
        entries: List[LedgerEntry] = []

        for lg in logs:
            swap = decode_swap(lg)
            trade = interpret_swap(swap, quote_is_token0)
            if trade is None:
                log.debug(f"[token {token.id}] dropping empty swap {swap.tx_hash}:{swap.log_index}")
                continue

            if trade.side == TransferKind.BUY.value:
                from_address, to_address = pool.pair_address, swap.to
            else:
                if swap.tx_hash not in senders:
                    senders[swap.tx_hash] = self.client.get_transaction(swap.tx_hash)["from"].lower()
                from_address, to_address = senders[swap.tx_hash], pool.pair_address

            entries.append(LedgerEntry(
                tx_hash=swap.tx_hash,
                log_index=swap.log_index,
                block_number=swap.block_number,
                from_address=from_address,
                to_address=to_address,
                amount=trade.token_amount,
                eth_amount=trade.quote_amount,
                price=scaled_price(
                    trade.quote_amount, trade.token_amount, pool.quote_decimals, pool.token_decimals
                ),
                side=trade.side,
                source=SOURCE_DEX,
            ))

        rows = [
            build_ledger_row(
                e,
                token_id=token.id,
                chain_id=pool.chain_id,
                contract_address=token.contract_address,
                block_time=to_block_time(self.client.block_timestamp(e.block_number)),
                eth_price_usd=self.eth_price_usd,
            )
            for e in entries
        ]
        self.store.insert_transfers(rows)
        return len(rows)

    # ── Sync ─────────────────────────────────────────────────────────────
    def _handle_syncs(self, pool: PoolRow, logs: List[dict], quote_is_token0: bool) -> int:
        # one snapshot per block: the last Sync wins
        latest: Dict[int, SyncReserves] = {}
        for lg in sorted(logs, key=lambda l: (l["blockNumber"], l["logIndex"])):
            sync = decode_sync(lg)
            latest[sync.block_number] = sync

        rows = []
        for block_number, sync in sorted(latest.items()):
            _, _, price = interpret_sync(sync, quote_is_token0, pool.token_decimals, pool.quote_decimals)
            rows.append({
                "chain_id": pool.chain_id,
                "pair_address": pool.pair_address,
                "block_number": block_number,
                "block_time": to_block_time(self.client.block_timestamp(block_number)),
                "reserve0_wei": sync.reserve0,
                "reserve1_wei": sync.reserve1,
                "price_eth_per_token": price,
            })
        self.store.upsert_pair_snapshots(rows)
        return len(rows)
