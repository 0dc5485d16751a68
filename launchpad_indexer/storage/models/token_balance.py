from sqlalchemy import Column, Integer, Numeric, String
from launchpad_indexer.storage.base import Base


class TokenBalance(Base):
    """Materialized from the ledger; rebuilt wholesale per token."""
    __tablename__ = "token_balances"

    token_id    = Column(Integer, primary_key=True)
    holder      = Column(String(42), primary_key=True)
    chain_id    = Column(Integer, nullable=False)
    balance_wei = Column(Numeric(78, 0), nullable=False)
