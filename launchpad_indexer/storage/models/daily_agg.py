from sqlalchemy import Column, Date, Integer, Numeric
from launchpad_indexer.storage.base import Base


class TokenDailyAgg(Base):
    """One row per token per UTC day, zero-filled on quiet days."""
    __tablename__ = "token_daily_agg"

    token_id         = Column(Integer, primary_key=True)
    day              = Column(Date, primary_key=True)
    chain_id         = Column(Integer, nullable=False)

    transfers        = Column(Integer, nullable=False, default=0)
    unique_senders   = Column(Integer, nullable=False, default=0)
    unique_receivers = Column(Integer, nullable=False, default=0)
    unique_traders   = Column(Integer, nullable=False, default=0)
    volume_token_wei = Column(Numeric(78, 0), nullable=False, default=0)
    volume_eth_wei   = Column(Numeric(78, 0), nullable=False, default=0)
    holders_count    = Column(Integer, nullable=True)       # holder_count when the day was last rolled up
