import logging
from typing import Any, Dict, List, Optional, Sequence

import backoff
from web3 import HTTPProvider, Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from launchpad_indexer.sources.curve_pipeline.config.settings import (
    BLOCK_TS_CACHE_SIZE,
    ChainProfile,
)
from launchpad_indexer.sources.curve_pipeline.errors import ChainNotConfiguredError
from launchpad_indexer.sources.curve_pipeline.evm.utils.blocks import BlockTimestampCache
from launchpad_indexer.sources.curve_pipeline.evm.utils.events import Topic, fetch_logs
from launchpad_indexer.sources.curve_pipeline.evm.utils.rate_limit import RateLimiter
from launchpad_indexer.utils.log_utils import sanitize_log

logger = logging.getLogger(__name__)


@backoff.on_exception(backoff.expo, Exception, max_tries=5, jitter=None)
def _create_web3_client(rpc_url: str, timeout: float = 10) -> Web3:
    logger.info(f"Connecting to RPC: {rpc_url}")
    w3 = Web3(HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))

    if not w3.is_connected():
        raise ConnectionError(f"Failed to connect to RPC: {rpc_url}")

    logger.info(f"Connected to {rpc_url} ✅")
    return w3


class ChainClient:
    """
    Provider primitives for one chain. Every network call goes through the
    chain's RateLimiter; nothing here retries on its own.
    """

    def __init__(self, w3: Web3, profile: ChainProfile, limiter: Optional[RateLimiter] = None):
        self.w3 = w3
        self.profile = profile
        self.chain_id = profile.chain_id
        self.limiter = limiter or RateLimiter(profile)
        self._timestamps = BlockTimestampCache(self._fetch_timestamp, maxsize=BLOCK_TS_CACHE_SIZE)
        self._contracts: Dict[tuple, Any] = {}

    def block_number(self) -> int:
        return int(self.limiter.call(self.w3.eth.get_block_number))

    def get_logs(self, address: str, topics: List[Topic], from_block: int, to_block: int) -> List[dict]:
        return fetch_logs(self.w3, self.limiter, address, from_block, to_block, topics)

    def get_block(self, block_identifier) -> dict:
        return sanitize_log(self.limiter.call(self.w3.eth.get_block, block_identifier))

    def _fetch_timestamp(self, block_number: int) -> int:
        return self.get_block(block_number)["timestamp"]

    def block_timestamp(self, block_number: int) -> int:
        return self._timestamps.get(block_number)

    def get_transaction(self, tx_hash: str) -> dict:
        return sanitize_log(self.limiter.call(self.w3.eth.get_transaction, tx_hash))

    def get_transaction_receipt(self, tx_hash: str) -> dict:
        return sanitize_log(self.limiter.call(self.w3.eth.get_transaction_receipt, tx_hash))

    def _contract(self, address: str, abi: list):
        key = (address.lower(), id(abi))
        if key not in self._contracts:
            self._contracts[key] = self.w3.eth.contract(
                address=Web3.to_checksum_address(address), abi=abi
            )
        return self._contracts[key]

    def call_view(
        self,
        address: str,
        abi: list,
        fn_name: str,
        args: Sequence[Any] = (),
        block: Optional[int] = None,
    ) -> Any:
        fn = getattr(self._contract(address, abi).functions, fn_name)(*args)
        return self.limiter.call(fn.call, block_identifier=block if block is not None else "latest")

    def probe_view(
        self,
        address: str,
        abi: list,
        fn_name: str,
        args: Sequence[Any] = (),
        block: Optional[int] = None,
    ) -> Optional[Any]:
        """Like call_view, but None when the contract reverts or lacks the function."""
        try:
            return self.call_view(address, abi, fn_name, args, block)
        except (ContractLogicError, BadFunctionCallOutput) as e:
            logger.debug(f"[{self.profile.name}] {fn_name}{tuple(args)} unavailable on {address}: {e}")
            return None


class ProviderRegistry:
    """Per-run lookup of chain clients; built once and passed to every component."""

    def __init__(self, profiles: Dict[int, ChainProfile]):
        self._profiles = dict(profiles)
        self._clients: Dict[int, ChainClient] = {}

    @property
    def chain_ids(self) -> List[int]:
        return sorted(self._profiles)

    def profile(self, chain_id: int) -> ChainProfile:
        if chain_id not in self._profiles:
            raise ChainNotConfiguredError(f"No profile for chain {chain_id}")
        return self._profiles[chain_id]

    def for_chain(self, chain_id: int) -> ChainClient:
        if chain_id not in self._clients:
            profile = self.profile(chain_id)
            if not profile.rpc_url:
                raise ChainNotConfiguredError(f"No RPC URL for chain {chain_id} ({profile.name})")
            self._clients[chain_id] = ChainClient(_create_web3_client(profile.rpc_url), profile)
        return self._clients[chain_id]

    def check_health(self, chain_id: int, timeout_ms: int) -> bool:
        profile = self.profile(chain_id)
        if not profile.rpc_url:
            logger.warning(f"[{profile.name}] no RPC URL configured")
            return False

        w3 = Web3(HTTPProvider(profile.rpc_url, request_kwargs={"timeout": timeout_ms / 1000}))
        try:
            head = w3.eth.get_block_number()
            w3.eth.get_block("latest")
        except Exception as e:
            logger.warning(f"❌ [{profile.name}] health check failed: {e}")
            return False

        logger.info(f"✅ [{profile.name}] healthy, head={head}")
        return True
