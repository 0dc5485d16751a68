from sqlalchemy import (
    BigInteger, Column, Integer, Numeric, String, Text,
    TIMESTAMP, UniqueConstraint, Index,
)
from sqlalchemy.dialects.postgresql import JSONB
from launchpad_indexer.storage.base import Base

SIDES = ("BUY", "SELL", "BUY&LOCK", "CLAIM", "UNLOCK", "GRADUATION")
SOURCES = ("BC", "DEX")


class TokenTransfer(Base):
    """Ledger fact. Written once, never updated."""
    __tablename__ = "token_transfers"

    id                  = Column(BigInteger, primary_key=True, autoincrement=True)
    token_id            = Column(Integer, nullable=False)
    chain_id            = Column(Integer, nullable=False)
    contract_address    = Column(String(42), nullable=False)
    # ─── on-chain identity ────────────────────────────────────────────
    block_number        = Column(BigInteger, nullable=False)
    block_time          = Column(TIMESTAMP(timezone=True), nullable=True)
    tx_hash             = Column(Text, nullable=False)
    log_index           = Column(Integer, nullable=False)
    # ─── flow ─────────────────────────────────────────────────────────
    from_address        = Column(String(42), nullable=False)
    to_address          = Column(String(42), nullable=False)
    amount_wei          = Column(Numeric(78, 0), nullable=False)
    eth_amount_wei      = Column(Numeric(78, 0), nullable=False, default=0)
    price_eth_per_token = Column(Numeric, nullable=True)
    side                = Column(String(16), nullable=False)
    source              = Column(String(8), nullable=False)
    graduation_metadata = Column(JSONB(none_as_null=True), nullable=True)
    eth_price_usd       = Column(Numeric(18, 8), nullable=True)

    __table_args__ = (
        UniqueConstraint("chain_id", "tx_hash", "log_index"),
        Index("ix_token_transfers_token_block", "token_id", "block_number"),
    )

    def __repr__(self) -> str:
        return f"<TokenTransfer {self.side} {self.tx_hash}:{self.log_index}>"
