# scanner.py
# --------------------------------------------------------------
# Per-token Transfer log scanner: cursor → cursor′ over bounded windows.
# --------------------------------------------------------------
import logging
import time
from decimal import Decimal
from typing import List, NamedTuple, Optional, Tuple

from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from launchpad_indexer.sources.curve_pipeline.config.settings import (
    CURVE_ABI,
    TRANSFER_TOPIC,
)
from launchpad_indexer.sources.curve_pipeline.errors import GraduationError
from launchpad_indexer.sources.curve_pipeline.evm.utils.blocks import walk_block_ranges
from launchpad_indexer.sources.curve_pipeline.evm.utils.decoders import (
    DecodedTransfer,
    decode_transfer,
)
from launchpad_indexer.sources.curve_pipeline.evm.utils.token_meta import inspect_pair
from launchpad_indexer.sources.curve_pipeline.processing.classifier import (
    LEDGER_KINDS,
    TransferKind,
    TxContext,
    classify_transfer,
    price_transfer,
)
from launchpad_indexer.sources.curve_pipeline.processing.graduation import (
    ConsolidatedGraduation,
    build_pool_row,
    consolidate_graduation,
    detect_graduation,
    is_graduation_candidate,
    is_graduation_window,
    resolve_pool_address,
    split_graduation_logs,
)
from launchpad_indexer.sources.curve_pipeline.processing.ledger_rows import (
    SOURCE_BONDING_CURVE,
    LedgerEntry,
    build_ledger_row,
    to_block_time,
)
from launchpad_indexer.utils.log_utils import group_logs_by_tx
from launchpad_indexer.utils.types import PoolRow, TokenRow

log = logging.getLogger(__name__)


class ScanResult(NamedTuple):
    token_id: int
    cursor: int
    windows: int
    rows_written: int
    failed: bool


class LogScanner:
    """
    Walks [cursor+1, head] in `profile.window_size` windows for one token.

    Each window is one transaction: ledger rows, any new pool row and the
    cursor move commit together. The first failing window is rolled back
    and ends the token's scan for this run, leaving the cursor at the end
    of the last committed window.
    """

    def __init__(self, client, store, eth_price_usd: Optional[Decimal] = None):
        self.client = client
        self.store = store
        self.eth_price_usd = eth_price_usd

    def scan_token(self, token: TokenRow, head: Optional[int] = None) -> ScanResult:
        if head is None:
            head = self.client.block_number()

        cursor = token.cursor
        start = cursor + 1
        if start > head:
            log.info(f"[token {token.id}] transfers up to date at block {cursor}")
            return ScanResult(token.id, cursor, 0, 0, False)

        pool = self.store.get_dex_pool(token.id, token.chain_id)
        windows = written = 0
        failed = False

        log.info(f"🚀 [token {token.id}] scanning transfers {start} → {head}")
        for from_block, to_block in walk_block_ranges(start, head, self.client.profile.window_size):
            t0 = time.time()
            try:
                n_rows, n_logs, pool = self._process_window(token, pool, from_block, to_block)
                self.store.advance_token_cursor(token.id, token.chain_id, to_block)
                self.store.log_metrics(
                    token.id, token.chain_id, "transfer",
                    f"{from_block}-{to_block}", n_logs, time.time() - t0,
                )
                self.store.commit()
            except Exception:
                self.store.rollback()
                log.error(
                    f"❌ [token {token.id}] window {from_block}-{to_block} failed, cursor held at {cursor}",
                    exc_info=True,
                )
                failed = True
                break

            cursor = to_block
            windows += 1
            written += n_rows
            log.info(f"[token {token.id}] {from_block}-{to_block}: {n_logs} logs, {n_rows} rows")

        return ScanResult(token.id, cursor, windows, written, failed)

    # ── one window ───────────────────────────────────────────────────────
    def _process_window(
        self,
        token: TokenRow,
        pool: Optional[PoolRow],
        from_block: int,
        to_block: int,
    ) -> Tuple[int, int, Optional[PoolRow]]:
        contract = token.contract_address
        logs = self.client.get_logs(contract, [TRANSFER_TOPIC], from_block, to_block)

        groups = {}
        for tx_hash, tx_logs in group_logs_by_tx(logs).items():
            transfers = [t for t in (decode_transfer(lg) for lg in tx_logs) if t.amount > 0]
            if transfers:
                groups[tx_hash] = transfers

        graduation_window = is_graduation_window(
            from_block, pool.graduation_block if pool else None, groups
        )

        entries: List[LedgerEntry] = []
        for tx_hash, transfers in groups.items():
            tx = TxContext.from_tx(self.client.get_transaction(tx_hash))

            if graduation_window and is_graduation_candidate(transfers, contract):
                receipt_logs = self.client.get_transaction_receipt(tx_hash).get("logs") or []
                if detect_graduation(transfers, receipt_logs, contract):
                    try:
                        consolidated, pool = self._consolidate(token, tx, transfers, receipt_logs)
                    except GraduationError as e:
                        log.error(f"❌ [token {token.id}] skipping graduation tx wholesale: {e}")
                        continue
                    entries.extend([consolidated.buy, consolidated.graduation])
                    continue

            for transfer in transfers:
                entry = self._classify(token, transfer, tx)
                if entry is not None:
                    entries.append(entry)

        rows = [
            build_ledger_row(
                e,
                token_id=token.id,
                chain_id=token.chain_id,
                contract_address=contract,
                block_time=to_block_time(self.client.block_timestamp(e.block_number)),
                eth_price_usd=self.eth_price_usd,
            )
            for e in entries
        ]
        self.store.insert_transfers(rows)
        return len(rows), len(logs), pool

    def _classify(self, token: TokenRow, transfer: DecodedTransfer, tx: TxContext) -> Optional[LedgerEntry]:
        kind = classify_transfer(transfer, tx, token.contract_address, token.creator_wallet)
        if kind not in LEDGER_KINDS:
            return None

        sell_quote = None
        if kind == TransferKind.SELL:
            # the curve state at N already reflects this sell; quote it at N-1
            sell_quote = self.client.probe_view(
                token.contract_address, CURVE_ABI, "getSellPrice",
                [transfer.amount], block=transfer.block_number - 1,
            )
            if sell_quote is None:
                log.warning(
                    f"[token {token.id}] getSellPrice unavailable for {tx.hash}, recording SELL without proceeds"
                )

        eth, price = price_transfer(kind, transfer, tx, sell_quote)
        return LedgerEntry(
            tx_hash=tx.hash,
            log_index=transfer.log_index,
            block_number=transfer.block_number,
            from_address=transfer.from_address,
            to_address=transfer.to_address,
            amount=transfer.amount,
            eth_amount=eth,
            price=price,
            side=kind.value,
            source=SOURCE_BONDING_CURVE,
        )

    def _consolidate(
        self,
        token: TokenRow,
        tx: TxContext,
        transfers: List[DecodedTransfer],
        receipt_logs: List[dict],
    ) -> Tuple[ConsolidatedGraduation, PoolRow]:
        existing = self.store.graduation_tx(token.id, token.chain_id)
        if existing and existing != tx.hash:
            raise GraduationError(tx.hash, f"token {token.id} already graduated in {existing}")

        contract = token.contract_address
        parts = split_graduation_logs(transfers, contract, tx.hash)
        pool_address = resolve_pool_address(parts, receipt_logs)
        if not pool_address:
            raise GraduationError(tx.hash, "neither an LP transfer nor a pair Mint locates the pool")

        try:
            pair = inspect_pair(self.client, pool_address)
        except (BadFunctionCallOutput, ContractLogicError) as e:
            raise GraduationError(tx.hash, f"{pool_address} is not a readable pair: {e}") from e
        pool_row = build_pool_row(token.id, token.chain_id, contract, pair, tx.block_number, tx.hash)
        consolidated = consolidate_graduation(
            parts, tx, receipt_logs, contract, pool_address, pair.token0,
            token_decimals=pool_row["token_decimals"],
            quote_decimals=pool_row["quote_decimals"],
        )

        self.store.create_dex_pool(pool_row)
        self.store.mark_graduated(token.id)
        log.info(
            f"🎓 [token {token.id}] graduated in {tx.hash} at block {tx.block_number}, pool {pool_address}"
        )
        return consolidated, PoolRow(**pool_row)
