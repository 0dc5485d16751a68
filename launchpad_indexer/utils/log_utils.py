# app/utils/log_utils.py
from collections import OrderedDict
from typing import Dict, Iterable, List

from hexbytes import HexBytes
from web3 import Web3
from web3.datastructures import AttributeDict


def _to_plain(v):
    if isinstance(v, (bytes, bytearray, HexBytes)):
        return Web3.to_hex(v)
    if isinstance(v, AttributeDict):
        return {k: _to_plain(x) for k, x in dict(v).items()}
    if isinstance(v, (list, tuple)):
        return [_to_plain(x) for x in v]
    return v


def sanitize_log(log) -> dict:
    """Convert a Web3 log / tx / receipt to a JSON-safe dict with 0x-hex strings."""
    return {k: _to_plain(v) for k, v in dict(log).items()}


def group_logs_by_tx(logs: Iterable[dict]) -> Dict[str, List[dict]]:
    """Group logs by transaction hash, keeping first-seen tx order and log order."""
    grouped: "OrderedDict[str, List[dict]]" = OrderedDict()
    for log in sorted(logs, key=lambda l: (l["blockNumber"], l["logIndex"])):
        grouped.setdefault(log["transactionHash"], []).append(log)
    return grouped
