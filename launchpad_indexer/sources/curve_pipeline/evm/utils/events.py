from typing import List, Sequence, Union

from web3 import Web3

from launchpad_indexer.sources.curve_pipeline.evm.utils.rate_limit import RateLimiter
from launchpad_indexer.utils.log_utils import sanitize_log

Topic = Union[str, Sequence[str], None]


def fetch_logs(
    w3: Web3,
    limiter: RateLimiter,
    address: str,
    from_block: int,
    to_block: int,
    topics: List[Topic],
) -> List[dict]:
    """Generic log fetcher for a given address and topics over a block range."""
    logs = limiter.call(
        w3.eth.get_logs,
        {
            "fromBlock": from_block,
            "toBlock": to_block,
            "address": Web3.to_checksum_address(address),
            "topics": topics,
        },
    )
    return [sanitize_log(log) for log in logs]
