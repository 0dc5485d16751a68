# classifier.py
# --------------------------------------------------------------
# Transfer log + its transaction → semantic kind. No I/O here.
# --------------------------------------------------------------
from decimal import Decimal
from enum import Enum
from typing import NamedTuple, Optional, Tuple

from launchpad_indexer.sources.curve_pipeline.config.settings import (
    SELECTOR_CLAIM_AIRDROP,
    SELECTOR_CREATOR_BUY,
    SELECTOR_UNLOCK,
    ZERO_ADDRESS,
)
from launchpad_indexer.sources.curve_pipeline.evm.utils.decoders import DecodedTransfer


class TransferKind(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    BUY_LOCK = "BUY&LOCK"
    CLAIM = "CLAIM"
    UNLOCK = "UNLOCK"
    GRADUATION = "GRADUATION"
    GRADUATION_CANDIDATE = "GRADUATION_CANDIDATE"
    TRANSFER = "TRANSFER"


# kinds written straight to the ledger by the scanner
LEDGER_KINDS = frozenset({
    TransferKind.BUY,
    TransferKind.SELL,
    TransferKind.BUY_LOCK,
    TransferKind.CLAIM,
    TransferKind.UNLOCK,
})

SELECTOR_KINDS = {
    SELECTOR_CREATOR_BUY: TransferKind.BUY_LOCK,
    SELECTOR_CLAIM_AIRDROP: TransferKind.CLAIM,
    SELECTOR_UNLOCK: TransferKind.UNLOCK,
}


class TxContext(NamedTuple):
    hash: str
    sender: str
    value: int
    input: str
    block_number: int

    @classmethod
    def from_tx(cls, tx: dict) -> "TxContext":
        value = tx.get("value") or 0
        if isinstance(value, str):
            value = int(value, 16) if value.startswith("0x") else int(value)
        return cls(
            hash=tx["hash"],
            sender=(tx.get("from") or ZERO_ADDRESS).lower(),
            value=int(value),
            input=(tx.get("input") or "0x").lower(),
            block_number=int(tx["blockNumber"]),
        )

    @property
    def selector(self) -> str:
        return self.input[:10] if len(self.input) >= 10 else ""


def classify_transfer(
    transfer: DecodedTransfer,
    tx: TxContext,
    contract: str,
    creator: Optional[str] = None,
) -> TransferKind:
    """
    Priority order:
      1. explicit call-data selector (creatorBuy / claimAirdrop / unlock)
      2. mint + value + sender is creator  → BUY&LOCK
      3. mint + value                      → BUY
      4. mint, no value, to the contract   → graduation candidate
      5. burn                              → SELL
      6. anything else                     → plain TRANSFER (not recorded)
    """
    by_selector = SELECTOR_KINDS.get(tx.selector)
    if by_selector is not None:
        return by_selector

    contract = contract.lower()
    is_mint = transfer.from_address == ZERO_ADDRESS

    if is_mint and tx.value > 0:
        if creator and tx.sender == creator.lower():
            return TransferKind.BUY_LOCK
        return TransferKind.BUY
    if is_mint and tx.value == 0 and transfer.to_address == contract:
        return TransferKind.GRADUATION_CANDIDATE
    if transfer.to_address == ZERO_ADDRESS:
        return TransferKind.SELL
    return TransferKind.TRANSFER


def scaled_price(
    quote_amount: int,
    token_amount: int,
    quote_decimals: int = 18,
    token_decimals: int = 18,
) -> Optional[Decimal]:
    """(quote / 10^qd) / (token / 10^td); None when either side is empty."""
    if token_amount <= 0 or quote_amount <= 0:
        return None
    quote = Decimal(quote_amount) / (Decimal(10) ** quote_decimals)
    token = Decimal(token_amount) / (Decimal(10) ** token_decimals)
    return quote / token


def price_per_token(eth_wei: int, amount_wei: int) -> Optional[Decimal]:
    """ETH per token for 18-decimal launch tokens."""
    return scaled_price(eth_wei, amount_wei)


def price_transfer(
    kind: TransferKind,
    transfer: DecodedTransfer,
    tx: TxContext,
    sell_quote_wei: Optional[int] = None,
) -> Tuple[int, Optional[Decimal]]:
    """
    (eth_wei, price) for a ledger-worthy transfer.

    SELL proceeds are not in the logs; the caller passes the curve's
    sell quote evaluated at the block before the trade.
    """
    if kind in (TransferKind.BUY, TransferKind.BUY_LOCK):
        eth = tx.value
    elif kind == TransferKind.SELL:
        eth = int(sell_quote_wei or 0)
    else:
        eth = 0
    return eth, price_per_token(eth, transfer.amount)
