from sqlalchemy import BigInteger, Column, Integer, String, TIMESTAMP, UniqueConstraint, func
from launchpad_indexer.storage.base import Base


class DexPool(Base):
    __tablename__ = "dex_pools"

    id                        = Column(Integer, primary_key=True)
    token_id                  = Column(Integer, nullable=False, index=True)
    chain_id                  = Column(Integer, nullable=False)
    pair_address              = Column(String(42), nullable=False)
    token0                    = Column(String(42), nullable=False)
    token1                    = Column(String(42), nullable=False)
    quote_token               = Column(String(42), nullable=False)
    token_decimals            = Column(Integer, nullable=False, default=18)
    quote_decimals            = Column(Integer, nullable=False, default=18)
    # independent cursors: Swap / Sync
    last_processed_block      = Column(BigInteger, nullable=True)
    last_processed_sync_block = Column(BigInteger, nullable=True)
    graduation_block          = Column(BigInteger, nullable=False)
    created_at                = Column(TIMESTAMP(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("chain_id", "pair_address"),)

    def __repr__(self) -> str:
        return f"<DexPool token={self.token_id} {self.pair_address} @ {self.graduation_block}>"
