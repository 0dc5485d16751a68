# graduation.py
# --------------------------------------------------------------
# Detect the bonding-curve → DEX graduation transaction and rewrite
# its Transfer logs into two canonical ledger entries.
#
# Pure functions over decoded transfers and sanitized receipt logs.
# --------------------------------------------------------------
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from launchpad_indexer.sources.curve_pipeline.config.settings import (
    GRADUATED_TOPIC,
    PAIR_MINT_TOPIC,
    ZERO_ADDRESS,
)
from launchpad_indexer.sources.curve_pipeline.errors import GraduationError
from launchpad_indexer.sources.curve_pipeline.evm.utils.decoders import (
    DecodedTransfer,
    decode_pair_mint,
)
from launchpad_indexer.sources.curve_pipeline.evm.utils.token_meta import PairInfo
from launchpad_indexer.sources.curve_pipeline.processing.classifier import (
    TransferKind,
    TxContext,
    price_per_token,
    scaled_price,
)
from launchpad_indexer.sources.curve_pipeline.processing.ledger_rows import (
    SOURCE_BONDING_CURVE,
    LedgerEntry,
)

MIN_GRADUATION_LOGS = 3


class GraduationParts(NamedTuple):
    user_buy: DecodedTransfer
    graduation: DecodedTransfer
    lp_transfer: Optional[DecodedTransfer]


class ConsolidatedGraduation(NamedTuple):
    buy: LedgerEntry
    graduation: LedgerEntry
    pool_address: str


# ── window / transaction heuristics ──────────────────────────────────────

def has_graduation_shaped_tx(groups: Dict[str, List[DecodedTransfer]]) -> bool:
    """Fallback window test: any tx with ≥3 Transfer logs for the contract."""
    return any(len(transfers) >= MIN_GRADUATION_LOGS for transfers in groups.values())


def is_graduation_window(
    window_start: int,
    graduation_block: Optional[int],
    groups: Dict[str, List[DecodedTransfer]],
) -> bool:
    if graduation_block is not None and window_start >= graduation_block:
        return True
    return has_graduation_shaped_tx(groups)


def is_graduation_candidate(transfers: Iterable[DecodedTransfer], contract: str) -> bool:
    contract = contract.lower()
    return any(t.from_address == ZERO_ADDRESS and t.to_address == contract for t in transfers)


def matches_graduation_pattern(transfers: Sequence[DecodedTransfer], contract: str) -> bool:
    """{mint→user, mint→contract, contract→external} among ≥3 same-contract transfers."""
    if len(transfers) < MIN_GRADUATION_LOGS:
        return False
    contract = contract.lower()
    mint_to_user = any(
        t.from_address == ZERO_ADDRESS and t.to_address not in (contract, ZERO_ADDRESS)
        for t in transfers
    )
    mint_to_contract = any(
        t.from_address == ZERO_ADDRESS and t.to_address == contract for t in transfers
    )
    contract_out = any(
        t.from_address == contract and t.to_address not in (contract, ZERO_ADDRESS)
        for t in transfers
    )
    return mint_to_user and mint_to_contract and contract_out


def has_graduated_event(receipt_logs: Iterable[dict], contract: str) -> bool:
    contract = contract.lower()
    for lg in receipt_logs:
        topics = lg.get("topics") or []
        if topics and topics[0].lower() == GRADUATED_TOPIC and lg.get("address", "").lower() == contract:
            return True
    return False


def detect_graduation(
    transfers: Sequence[DecodedTransfer],
    receipt_logs: Iterable[dict],
    contract: str,
) -> bool:
    return has_graduated_event(receipt_logs, contract) or matches_graduation_pattern(transfers, contract)


# ── consolidation ────────────────────────────────────────────────────────

def split_graduation_logs(
    transfers: Sequence[DecodedTransfer],
    contract: str,
    tx_hash: str,
) -> GraduationParts:
    contract = contract.lower()
    user_buy = graduation = lp_transfer = None
    for t in transfers:
        if t.from_address == ZERO_ADDRESS:
            if t.to_address == contract:
                graduation = graduation or t
            elif t.to_address != ZERO_ADDRESS:
                user_buy = user_buy or t
        elif t.from_address == contract and t.to_address not in (ZERO_ADDRESS, contract):
            lp_transfer = lp_transfer or t

    if user_buy is None:
        raise GraduationError(tx_hash, "no mint to the buyer")
    if graduation is None:
        raise GraduationError(tx_hash, "no mint to the curve contract")
    return GraduationParts(user_buy, graduation, lp_transfer)


def find_pair_mint(receipt_logs: Iterable[dict], pool_address: Optional[str] = None) -> Optional[Tuple[str, int, int]]:
    """(pair, amount0, amount1) of the first V2 Mint in the receipt, optionally for one pair."""
    for lg in receipt_logs:
        topics = lg.get("topics") or []
        if not topics or topics[0].lower() != PAIR_MINT_TOPIC:
            continue
        address = lg["address"].lower()
        if pool_address and address != pool_address.lower():
            continue
        amount0, amount1 = decode_pair_mint(lg)
        return address, amount0, amount1
    return None


def resolve_pool_address(parts: GraduationParts, receipt_logs: Sequence[dict]) -> Optional[str]:
    """The pair that minted LP in this tx; the LP transfer recipient only when no Mint was emitted."""
    mint = find_pair_mint(receipt_logs)
    if mint is not None:
        return mint[0]
    if parts.lp_transfer is not None:
        return parts.lp_transfer.to_address
    return None


def consolidate_graduation(
    parts: GraduationParts,
    tx: TxContext,
    receipt_logs: Sequence[dict],
    contract: str,
    pool_address: str,
    pair_token0: Optional[str],
    token_decimals: int = 18,
    quote_decimals: int = 18,
) -> ConsolidatedGraduation:
    """
    Exactly two entries come out of a graduation tx:

      BUY         mint → user, amount A, eth = tx.value
      GRADUATION  contract → pool, liquidity amounts from the pair's Mint
                  (token side / quote side), else the LP transfer and tx.value

    Original log indices are kept so either row traces back to its log.
    """
    contract = contract.lower()
    pool_address = pool_address.lower()

    user_tokens = parts.user_buy.amount
    user_eth = tx.value

    mint = find_pair_mint(receipt_logs, pool_address)
    if mint is not None and pair_token0:
        _, amount0, amount1 = mint
        if pair_token0.lower() == contract:
            liquidity_tokens, liquidity_eth = amount0, amount1
        else:
            liquidity_tokens, liquidity_eth = amount1, amount0
        liquidity_source = "pair_mint"
    else:
        liquidity_tokens = parts.lp_transfer.amount if parts.lp_transfer else parts.graduation.amount
        liquidity_eth = tx.value
        liquidity_source = "tx_value"

    graduation_price = scaled_price(liquidity_eth, liquidity_tokens, quote_decimals, token_decimals)

    buy = LedgerEntry(
        tx_hash=tx.hash,
        log_index=parts.user_buy.log_index,
        block_number=parts.user_buy.block_number,
        from_address=ZERO_ADDRESS,
        to_address=parts.user_buy.to_address,
        amount=user_tokens,
        eth_amount=user_eth,
        price=price_per_token(user_eth, user_tokens),
        side=TransferKind.BUY.value,
        source=SOURCE_BONDING_CURVE,
    )
    graduation = LedgerEntry(
        tx_hash=tx.hash,
        log_index=parts.graduation.log_index,
        block_number=parts.graduation.block_number,
        from_address=contract,
        to_address=pool_address,
        amount=liquidity_tokens,
        eth_amount=liquidity_eth,
        price=graduation_price,
        side=TransferKind.GRADUATION.value,
        source=SOURCE_BONDING_CURVE,
        metadata={
            "type": "graduation",
            "user_tokens": str(user_tokens),
            "user_eth": str(user_eth),
            "minted_to_contract": str(parts.graduation.amount),
            "liquidity_tokens": str(liquidity_tokens),
            "liquidity_eth": str(liquidity_eth),
            "liquidity_source": liquidity_source,
            "trigger": tx.sender,
            "pool_address": pool_address,
            "price": str(graduation_price) if graduation_price is not None else None,
        },
    )
    return ConsolidatedGraduation(buy=buy, graduation=graduation, pool_address=pool_address)


# ── pool registration ────────────────────────────────────────────────────

def build_pool_row(
    token_id: int,
    chain_id: int,
    contract: str,
    pair: PairInfo,
    graduation_block: int,
    tx_hash: str,
) -> dict:
    """DexPool row for a freshly graduated token; both cursors start right before graduation."""
    contract = contract.lower()
    if pair.token0 == contract:
        quote, token_dec, quote_dec = pair.token1, pair.decimals0, pair.decimals1
    elif pair.token1 == contract:
        quote, token_dec, quote_dec = pair.token0, pair.decimals1, pair.decimals0
    else:
        raise GraduationError(tx_hash, f"pair {pair.address} does not hold token {contract}")

    return {
        "token_id": token_id,
        "chain_id": chain_id,
        "pair_address": pair.address,
        "token0": pair.token0,
        "token1": pair.token1,
        "quote_token": quote,
        "token_decimals": token_dec,
        "quote_decimals": quote_dec,
        "last_processed_block": graduation_block - 1,
        "last_processed_sync_block": graduation_block - 1,
        "graduation_block": graduation_block,
    }
