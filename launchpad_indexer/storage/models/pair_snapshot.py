from sqlalchemy import BigInteger, Column, Integer, Numeric, String, TIMESTAMP, UniqueConstraint
from launchpad_indexer.storage.base import Base


class PairSnapshot(Base):
    __tablename__ = "pair_snapshots"

    id                  = Column(BigInteger, primary_key=True, autoincrement=True)
    chain_id            = Column(Integer, nullable=False)
    pair_address        = Column(String(42), nullable=False)
    block_number        = Column(BigInteger, nullable=False)
    block_time          = Column(TIMESTAMP(timezone=True), nullable=True)
    reserve0_wei        = Column(Numeric(78, 0), nullable=False)
    reserve1_wei        = Column(Numeric(78, 0), nullable=False)
    price_eth_per_token = Column(Numeric, nullable=True)

    __table_args__ = (UniqueConstraint("chain_id", "pair_address", "block_number"),)
