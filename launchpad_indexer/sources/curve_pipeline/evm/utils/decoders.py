# decoders.py
# --------------------------------------------------------------
# Raw log → typed tuples for ERC-20 Transfer and V2 pair events.
# Logs are expected in sanitized form (0x-hex strings).
# --------------------------------------------------------------
from typing import NamedTuple, Tuple

from eth_abi import abi

from launchpad_indexer.sources.curve_pipeline.config.settings import (
    PAIR_MINT_TOPIC,
    SWAP_TOPIC,
    SYNC_TOPIC,
    TRANSFER_TOPIC,
)


class DecodedTransfer(NamedTuple):
    tx_hash: str
    log_index: int
    block_number: int
    address: str
    from_address: str
    to_address: str
    amount: int


class SwapAmounts(NamedTuple):
    tx_hash: str
    log_index: int
    block_number: int
    sender: str
    to: str
    amount0_in: int
    amount1_in: int
    amount0_out: int
    amount1_out: int


class SyncReserves(NamedTuple):
    tx_hash: str
    log_index: int
    block_number: int
    reserve0: int
    reserve1: int


def topic_to_address(topic: str) -> str:
    return "0x" + topic[-40:].lower()


def _data_bytes(log: dict) -> bytes:
    data = log["data"]
    if isinstance(data, str):
        return bytes.fromhex(data[2:] if data.startswith("0x") else data)
    return bytes(data)


def _expect(log: dict, topic: str, n_topics: int, name: str) -> list:
    topics = log.get("topics") or []
    if len(topics) < n_topics or topics[0].lower() != topic:
        raise ValueError(
            f"malformed {name} log tx={log.get('transactionHash')} idx={log.get('logIndex')}"
        )
    return topics


def decode_transfer(log: dict) -> DecodedTransfer:
    topics = _expect(log, TRANSFER_TOPIC, 3, "Transfer")
    (amount,) = abi.decode(["uint256"], _data_bytes(log))
    return DecodedTransfer(
        tx_hash=log["transactionHash"],
        log_index=int(log["logIndex"]),
        block_number=int(log["blockNumber"]),
        address=log["address"].lower(),
        from_address=topic_to_address(topics[1]),
        to_address=topic_to_address(topics[2]),
        amount=amount,
    )


def decode_swap(log: dict) -> SwapAmounts:
    topics = _expect(log, SWAP_TOPIC, 3, "Swap")
    a0_in, a1_in, a0_out, a1_out = abi.decode(["uint256"] * 4, _data_bytes(log))
    return SwapAmounts(
        tx_hash=log["transactionHash"],
        log_index=int(log["logIndex"]),
        block_number=int(log["blockNumber"]),
        sender=topic_to_address(topics[1]),
        to=topic_to_address(topics[2]),
        amount0_in=a0_in,
        amount1_in=a1_in,
        amount0_out=a0_out,
        amount1_out=a1_out,
    )


def decode_sync(log: dict) -> SyncReserves:
    _expect(log, SYNC_TOPIC, 1, "Sync")
    reserve0, reserve1 = abi.decode(["uint112", "uint112"], _data_bytes(log))
    return SyncReserves(
        tx_hash=log["transactionHash"],
        log_index=int(log["logIndex"]),
        block_number=int(log["blockNumber"]),
        reserve0=reserve0,
        reserve1=reserve1,
    )


def decode_pair_mint(log: dict) -> Tuple[int, int]:
    """Mint(address indexed sender, uint amount0, uint amount1) → (amount0, amount1)."""
    _expect(log, PAIR_MINT_TOPIC, 2, "Mint")
    amount0, amount1 = abi.decode(["uint256", "uint256"], _data_bytes(log))
    return amount0, amount1
