"""
Persistence for the indexing pipeline.

Every write is a narrow upsert keyed on the table's natural key, so any
window can be replayed without duplicating rows. Callers own the
transaction boundary (commit / rollback once per window or pass).
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Set, Tuple

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session

from launchpad_indexer.sources.curve_pipeline.config.settings import TokenFilter
from launchpad_indexer.storage.models.chart_agg import TokenChartAgg
from launchpad_indexer.storage.models.daily_agg import TokenDailyAgg
from launchpad_indexer.storage.models.dex_pool import DexPool
from launchpad_indexer.storage.models.pair_snapshot import PairSnapshot
from launchpad_indexer.storage.models.scan_metrics import scan_metrics_table
from launchpad_indexer.storage.models.token import Token
from launchpad_indexer.storage.models.token_balance import TokenBalance
from launchpad_indexer.storage.models.token_transfer import TokenTransfer
from launchpad_indexer.utils.types import PoolRow, TokenRow


TRADE_SIDES = ("BUY", "SELL", "BUY&LOCK")
POOL_CURSORS = ("last_processed_block", "last_processed_sync_block")


def _token_row(t: Token) -> TokenRow:
    return TokenRow(
        id=t.id,
        chain_id=t.chain_id,
        contract_address=t.contract_address.lower(),
        deployment_block=t.deployment_block,
        last_processed_block=t.last_processed_block,
        is_graduated=bool(t.is_graduated),
        creator_wallet=t.creator_wallet.lower() if t.creator_wallet else None,
    )


def _pool_row(p: DexPool) -> PoolRow:
    return PoolRow(
        token_id=p.token_id,
        chain_id=p.chain_id,
        pair_address=p.pair_address.lower(),
        token0=p.token0.lower(),
        token1=p.token1.lower(),
        quote_token=p.quote_token.lower(),
        token_decimals=p.token_decimals,
        quote_decimals=p.quote_decimals,
        last_processed_block=p.last_processed_block,
        last_processed_sync_block=p.last_processed_sync_block,
        graduation_block=p.graduation_block,
    )


class LedgerStore:
    def __init__(self, session: Session):
        self.session = session

    # ── transaction boundary ─────────────────────────────────────────────
    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    # ── tokens ───────────────────────────────────────────────────────────
    def _token_query(self, token_filter: TokenFilter):
        q = self.session.query(Token).filter(Token.contract_address.isnot(None))
        if token_filter.token_id is not None:
            q = q.filter(Token.id == token_filter.token_id)
        if token_filter.token_id_from is not None:
            q = q.filter(Token.id >= token_filter.token_id_from)
        if token_filter.token_id_to is not None:
            q = q.filter(Token.id <= token_filter.token_id_to)
        if token_filter.chain_id is not None:
            q = q.filter(Token.chain_id == token_filter.chain_id)
        if token_filter.graduated_only:
            q = q.filter(Token.is_graduated.is_(True))
        if token_filter.ungraduated_only:
            q = q.filter(Token.is_graduated.isnot(True))
        return q

    def list_chain_ids(self, token_filter: TokenFilter) -> List[int]:
        rows = self._token_query(token_filter).with_entities(Token.chain_id).distinct().all()
        return sorted(r[0] for r in rows)

    def select_tokens(self, token_filter: TokenFilter, chain_id: Optional[int] = None) -> List[TokenRow]:
        q = self._token_query(token_filter)
        if chain_id is not None:
            q = q.filter(Token.chain_id == chain_id)
        return [_token_row(t) for t in q.order_by(Token.id).all()]

    def get_token(self, token_id: int) -> Optional[TokenRow]:
        t = self.session.get(Token, token_id)
        if t is None or not t.contract_address:
            return None
        return _token_row(t)

    def advance_token_cursor(self, token_id: int, chain_id: int, block: int) -> None:
        """Upsert so a missing base row never blocks progress; never moves backwards."""
        table = Token.__table__
        stmt = pg_insert(table).values(id=token_id, chain_id=chain_id, last_processed_block=block)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={
                "last_processed_block": sa.func.greatest(
                    sa.func.coalesce(table.c.last_processed_block, -1),
                    stmt.excluded.last_processed_block,
                )
            },
        )
        self.session.execute(stmt)

    def mark_graduated(self, token_id: int) -> None:
        self.session.execute(
            sa.update(Token).where(Token.id == token_id).values(is_graduated=True)
        )

    def update_token_stats(self, token_id: int, stats: dict) -> None:
        if not stats:
            return
        self.session.execute(sa.update(Token).where(Token.id == token_id).values(**stats))

    # ── pools ────────────────────────────────────────────────────────────
    def get_dex_pool(self, token_id: int, chain_id: int) -> Optional[PoolRow]:
        p = (
            self.session.query(DexPool)
            .filter(DexPool.token_id == token_id, DexPool.chain_id == chain_id)
            .order_by(DexPool.graduation_block)
            .first()
        )
        return _pool_row(p) if p else None

    def pool_addresses(self, chain_id: int) -> Set[str]:
        rows = self.session.query(DexPool.pair_address).filter(DexPool.chain_id == chain_id).all()
        return {r[0].lower() for r in rows}

    def create_dex_pool(self, row: dict) -> None:
        stmt = (
            pg_insert(DexPool.__table__)
            .values(row)
            .on_conflict_do_nothing(index_elements=["chain_id", "pair_address"])
        )
        self.session.execute(stmt)

    def advance_pool_cursor(self, chain_id: int, pair_address: str, column: str, block: int) -> None:
        if column not in POOL_CURSORS:
            raise ValueError(f"Unknown pool cursor: {column}")
        col = DexPool.__table__.c[column]
        self.session.execute(
            sa.update(DexPool)
            .where(DexPool.chain_id == chain_id, DexPool.pair_address == pair_address.lower())
            .values({column: sa.func.greatest(sa.func.coalesce(col, -1), block)})
        )

    # ── ledger ───────────────────────────────────────────────────────────
    def insert_transfers(self, rows: List[dict]) -> int:
        """Insert ledger rows; anything already present under (chain, tx, log_index) is ignored."""
        if not rows:
            return 0
        stmt = (
            pg_insert(TokenTransfer.__table__)
            .values(rows)
            .on_conflict_do_nothing(index_elements=["chain_id", "tx_hash", "log_index"])
        )
        result = self.session.execute(stmt)
        return result.rowcount or 0

    def graduation_tx(self, token_id: int, chain_id: int) -> Optional[str]:
        row = (
            self.session.query(TokenTransfer.tx_hash)
            .filter(
                TokenTransfer.token_id == token_id,
                TokenTransfer.chain_id == chain_id,
                TokenTransfer.side == "GRADUATION",
            )
            .first()
        )
        return row[0] if row else None

    def load_ledger(self, token_id: int, chain_id: int) -> List[Tuple[str, str, int]]:
        rows = (
            self.session.query(
                TokenTransfer.from_address, TokenTransfer.to_address, TokenTransfer.amount_wei
            )
            .filter(TokenTransfer.token_id == token_id, TokenTransfer.chain_id == chain_id)
            .order_by(TokenTransfer.block_number, TokenTransfer.log_index)
            .all()
        )
        return [(r[0], r[1], int(r[2])) for r in rows]

    def load_ledger_rows(self, token_id: int, chain_id: int, since: Optional[datetime] = None) -> List[dict]:
        """Ledger rows with addresses, amounts and side, for activity rollups."""
        q = self.session.query(
            TokenTransfer.block_time,
            TokenTransfer.from_address,
            TokenTransfer.to_address,
            TokenTransfer.amount_wei,
            TokenTransfer.eth_amount_wei,
            TokenTransfer.side,
        ).filter(TokenTransfer.token_id == token_id, TokenTransfer.chain_id == chain_id)
        if since is not None:
            q = q.filter(TokenTransfer.block_time >= since)
        rows = q.order_by(TokenTransfer.block_number, TokenTransfer.log_index).all()
        return [
            {
                "block_time": r.block_time,
                "from_address": r.from_address,
                "to_address": r.to_address,
                "amount_wei": int(r.amount_wei),
                "eth_amount_wei": int(r.eth_amount_wei or 0),
                "side": r.side,
            }
            for r in rows
        ]

    def load_trades(self, token_id: int, chain_id: int, since: datetime) -> List[dict]:
        rows = (
            self.session.query(
                TokenTransfer.block_time,
                TokenTransfer.block_number,
                TokenTransfer.log_index,
                TokenTransfer.price_eth_per_token,
                TokenTransfer.eth_amount_wei,
                TokenTransfer.eth_price_usd,
            )
            .filter(
                TokenTransfer.token_id == token_id,
                TokenTransfer.chain_id == chain_id,
                TokenTransfer.side.in_(TRADE_SIDES),
                TokenTransfer.price_eth_per_token.isnot(None),
                TokenTransfer.block_time >= since,
            )
            .order_by(TokenTransfer.block_number, TokenTransfer.log_index)
            .all()
        )
        return [
            {
                "block_time": r.block_time,
                "block_number": r.block_number,
                "log_index": r.log_index,
                "price": r.price_eth_per_token,
                "eth_amount_wei": r.eth_amount_wei,
                "eth_price_usd": r.eth_price_usd,
            }
            for r in rows
        ]

    def last_trade_price(
        self,
        token_id: int,
        chain_id: int,
        before: Optional[datetime] = None,
        source: Optional[str] = None,
    ) -> Optional[Decimal]:
        q = self.session.query(TokenTransfer.price_eth_per_token).filter(
            TokenTransfer.token_id == token_id,
            TokenTransfer.chain_id == chain_id,
            TokenTransfer.side.in_(TRADE_SIDES),
            TokenTransfer.price_eth_per_token.isnot(None),
        )
        if before is not None:
            q = q.filter(TokenTransfer.block_time < before)
        if source is not None:
            q = q.filter(TokenTransfer.source == source)
        row = q.order_by(TokenTransfer.block_number.desc(), TokenTransfer.log_index.desc()).first()
        return row[0] if row else None

    def volume_since(self, token_id: int, chain_id: int, since: datetime) -> int:
        total = (
            self.session.query(sa.func.coalesce(sa.func.sum(TokenTransfer.eth_amount_wei), 0))
            .filter(
                TokenTransfer.token_id == token_id,
                TokenTransfer.chain_id == chain_id,
                TokenTransfer.side.in_(TRADE_SIDES),
                TokenTransfer.block_time >= since,
            )
            .scalar()
        )
        return int(total or 0)

    # ── pair snapshots ───────────────────────────────────────────────────
    def upsert_pair_snapshots(self, rows: List[dict]) -> None:
        if not rows:
            return
        stmt = pg_insert(PairSnapshot.__table__).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["chain_id", "pair_address", "block_number"],
            set_={
                "reserve0_wei": stmt.excluded.reserve0_wei,
                "reserve1_wei": stmt.excluded.reserve1_wei,
                "price_eth_per_token": stmt.excluded.price_eth_per_token,
                "block_time": stmt.excluded.block_time,
            },
        )
        self.session.execute(stmt)

    def latest_snapshot(self, chain_id: int, pair_address: str) -> Optional[dict]:
        s = (
            self.session.query(PairSnapshot)
            .filter(
                PairSnapshot.chain_id == chain_id,
                PairSnapshot.pair_address == pair_address.lower(),
            )
            .order_by(PairSnapshot.block_number.desc())
            .first()
        )
        if s is None:
            return None
        return {
            "block_number": s.block_number,
            "reserve0_wei": int(s.reserve0_wei),
            "reserve1_wei": int(s.reserve1_wei),
            "price": s.price_eth_per_token,
        }

    # ── balances ─────────────────────────────────────────────────────────
    def replace_balances(self, token_id: int, chain_id: int, balances: Dict[str, int]) -> None:
        self.session.execute(sa.delete(TokenBalance).where(TokenBalance.token_id == token_id))
        rows = [
            {"token_id": token_id, "chain_id": chain_id, "holder": holder, "balance_wei": amount}
            for holder, amount in sorted(balances.items())
        ]
        if rows:
            self.session.execute(pg_insert(TokenBalance.__table__).values(rows))

    def load_balances(self, token_id: int) -> Dict[str, int]:
        rows = (
            self.session.query(TokenBalance.holder, TokenBalance.balance_wei)
            .filter(TokenBalance.token_id == token_id)
            .all()
        )
        return {r[0]: int(r[1]) for r in rows}

    # ── aggregates ───────────────────────────────────────────────────────
    def upsert_chart_rows(self, rows: List[dict]) -> None:
        if not rows:
            return
        stmt = pg_insert(TokenChartAgg.__table__).values(rows)
        updatable = [c for c in rows[0] if c not in ("token_id", "interval_type", "ts")]
        stmt = stmt.on_conflict_do_update(
            index_elements=["token_id", "interval_type", "ts"],
            set_={c: stmt.excluded[c] for c in updatable},
        )
        self.session.execute(stmt)

    def last_daily_day(self, token_id: int) -> Optional[date]:
        return (
            self.session.query(sa.func.max(TokenDailyAgg.day))
            .filter(TokenDailyAgg.token_id == token_id)
            .scalar()
        )

    def upsert_daily_rows(self, rows: List[dict]) -> None:
        if not rows:
            return
        stmt = pg_insert(TokenDailyAgg.__table__).values(rows)
        updatable = [c for c in rows[0] if c not in ("token_id", "day")]
        stmt = stmt.on_conflict_do_update(
            index_elements=["token_id", "day"],
            set_={c: stmt.excluded[c] for c in updatable},
        )
        self.session.execute(stmt)

    # ── metrics ──────────────────────────────────────────────────────────
    def log_metrics(
        self,
        token_id: int,
        chain_id: int,
        pipeline: str,
        block_range: str,
        log_count: int,
        duration_seconds: float,
    ) -> None:
        self.session.execute(
            pg_insert(scan_metrics_table).values(
                token_id=token_id,
                chain_id=chain_id,
                pipeline=pipeline,
                block_range=block_range,
                log_count=log_count,
                duration_seconds=round(duration_seconds, 2),
            )
        )

