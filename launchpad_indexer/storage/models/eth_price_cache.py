from sqlalchemy import Column, Integer, Numeric, TIMESTAMP
from launchpad_indexer.storage.base import Base


class EthPriceCache(Base):
    __tablename__ = "eth_price_cache"

    id         = Column(Integer, primary_key=True)     # always 1
    price_usd  = Column(Numeric(18, 8), nullable=False)
    fetched_at = Column(TIMESTAMP(timezone=True), nullable=False)
