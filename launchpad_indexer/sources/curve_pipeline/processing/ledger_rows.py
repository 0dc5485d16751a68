from datetime import datetime, timezone
from decimal import Decimal
from typing import NamedTuple, Optional

SOURCE_BONDING_CURVE = "BC"
SOURCE_DEX = "DEX"


class LedgerEntry(NamedTuple):
    """A ledger fact before it is bound to a token / block context."""
    tx_hash: str
    log_index: int
    block_number: int
    from_address: str
    to_address: str
    amount: int
    eth_amount: int
    price: Optional[Decimal]
    side: str
    source: str
    metadata: Optional[dict] = None


def to_block_time(timestamp: Optional[int]) -> Optional[datetime]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc)


def build_ledger_row(
    entry: LedgerEntry,
    *,
    token_id: int,
    chain_id: int,
    contract_address: str,
    block_time: Optional[datetime],
    eth_price_usd: Optional[Decimal],
) -> dict:
    return {
        "token_id": token_id,
        "chain_id": chain_id,
        "contract_address": contract_address.lower(),
        "block_number": entry.block_number,
        "block_time": block_time,
        "tx_hash": entry.tx_hash,
        "log_index": entry.log_index,
        "from_address": entry.from_address.lower(),
        "to_address": entry.to_address.lower(),
        "amount_wei": entry.amount,
        "eth_amount_wei": entry.eth_amount,
        "price_eth_per_token": entry.price,
        "side": entry.side,
        "source": entry.source,
        "graduation_metadata": entry.metadata,
        "eth_price_usd": eth_price_usd,
    }
