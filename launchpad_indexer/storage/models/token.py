from sqlalchemy import BigInteger, Boolean, Column, Integer, Numeric, String, TIMESTAMP, Index
from launchpad_indexer.storage.base import Base


class Token(Base):
    __tablename__ = "tokens"

    id                   = Column(Integer, primary_key=True)
    chain_id             = Column(Integer, nullable=False)
    # nullable so the cursor upsert can land before the launch row exists
    contract_address     = Column(String(42), nullable=True)
    creator_wallet       = Column(String(42), nullable=True)
    deployment_block     = Column(BigInteger, nullable=True)
    last_processed_block = Column(BigInteger, nullable=True)
    is_graduated         = Column(Boolean, nullable=False, default=False, server_default="false")

    # ─── derived stats (aggregator) ────────────────────────────────────
    current_price_eth    = Column(Numeric, nullable=True)
    current_price_usd    = Column(Numeric, nullable=True)
    market_cap_usd       = Column(Numeric, nullable=True)
    fdv_usd              = Column(Numeric, nullable=True)
    total_supply         = Column(Numeric, nullable=True)
    circulating_supply   = Column(Numeric, nullable=True)
    holder_count         = Column(Integer, nullable=True)
    volume_24h_eth       = Column(Numeric, nullable=True)
    liquidity_eth        = Column(Numeric, nullable=True)
    stats_updated_at     = Column(TIMESTAMP(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_tokens_chain", "chain_id"),
    )

    def __repr__(self) -> str:
        return f"<Token {self.id} chain={self.chain_id} {self.contract_address}>"
