import logging
from typing import NamedTuple

from launchpad_indexer.sources.curve_pipeline.config.settings import (
    ERC20_DEC_ABI,
    PAIR_ABI,
    TOKEN_DECIMALS,
)

log = logging.getLogger(__name__)


class PairInfo(NamedTuple):
    address: str
    token0: str
    token1: str
    decimals0: int
    decimals1: int


def get_token_decimals(client, token_addr: str) -> int:
    decimals = client.probe_view(token_addr, ERC20_DEC_ABI, "decimals")
    if decimals is None:
        log.info(f"decimals() unavailable on {token_addr}, assuming {TOKEN_DECIMALS}")
        return TOKEN_DECIMALS
    return int(decimals)


def get_pair_tokens(client, pair_addr: str) -> tuple:
    token0 = client.call_view(pair_addr, PAIR_ABI, "token0")
    token1 = client.call_view(pair_addr, PAIR_ABI, "token1")
    return token0.lower(), token1.lower()


def inspect_pair(client, pair_addr: str) -> PairInfo:
    token0, token1 = get_pair_tokens(client, pair_addr)
    info = PairInfo(
        address=pair_addr.lower(),
        token0=token0,
        token1=token1,
        decimals0=get_token_decimals(client, token0),
        decimals1=get_token_decimals(client, token1),
    )
    log.info(
        f"Pair {info.address}: token0={token0} ({info.decimals0}) token1={token1} ({info.decimals1})"
    )
    return info
