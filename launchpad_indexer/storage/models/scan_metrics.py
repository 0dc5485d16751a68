from sqlalchemy import Table, Column, Integer, Numeric, String, Text, TIMESTAMP, func
from launchpad_indexer.storage.base import Base

scan_metrics_table = Table(
    "scan_metrics",
    Base.metadata,
    Column("id", Integer, primary_key=True),
    Column("timestamp", TIMESTAMP(timezone=True), server_default=func.now()),
    Column("token_id", Integer, nullable=False),
    Column("chain_id", Integer, nullable=False),
    Column("pipeline", String(16), nullable=False),     # transfer / swap / sync
    Column("block_range", Text),
    Column("log_count", Integer, nullable=False),
    Column("duration_seconds", Numeric(10, 2))
)
