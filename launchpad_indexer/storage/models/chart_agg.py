from sqlalchemy import Column, Integer, Numeric, String, TIMESTAMP
from launchpad_indexer.storage.base import Base


class TokenChartAgg(Base):
    __tablename__ = "token_chart_agg"

    token_id      = Column(Integer, primary_key=True)
    interval_type = Column(String(8), primary_key=True)     # "4h"
    ts            = Column(TIMESTAMP(timezone=True), primary_key=True)

    open_eth      = Column(Numeric, nullable=False)
    high_eth      = Column(Numeric, nullable=False)
    low_eth       = Column(Numeric, nullable=False)
    close_eth     = Column(Numeric, nullable=False)
    open_usd      = Column(Numeric, nullable=True)
    high_usd      = Column(Numeric, nullable=True)
    low_usd       = Column(Numeric, nullable=True)
    close_usd     = Column(Numeric, nullable=True)
    volume_eth    = Column(Numeric, nullable=False, default=0)
    volume_usd    = Column(Numeric, nullable=True)
    trades_count  = Column(Integer, nullable=False, default=0)
