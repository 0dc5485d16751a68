import os
from dataclasses import dataclass
from typing import Dict, Optional

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes")


# ── RPC endpoints ──────────────────────────────────────────────────────
MEGAETH_TESTNET_CHAIN_ID = 6342
MEGAETH_MAINNET_CHAIN_ID = 9999
SEPOLIA_CHAIN_ID = 11155111

RPC_URLS = {
    MEGAETH_TESTNET_CHAIN_ID: os.getenv("MEGAETH_RPC_URL", "https://carrot.megaeth.com/rpc"),
    MEGAETH_MAINNET_CHAIN_ID: os.getenv("MEGAETH_MAINNET_RPC", "https://mainnet.megaeth.com/rpc"),
    SEPOLIA_CHAIN_ID: os.getenv("SEPOLIA_RPC_URL"),
}

# ── pipeline knobs ─────────────────────────────────────────────────────
MAX_RETRY_ATTEMPTS = _env_int("MAX_RETRY_ATTEMPTS", 10)
SKIP_HEALTH_CHECK = _env_flag("SKIP_HEALTH_CHECK")
HEALTH_CHECK_TIMEOUT_MS = _env_int("HEALTH_CHECK_TIMEOUT_MS", 10000)
AGG_WINDOW_DAYS = _env_int("AGG_WINDOW_DAYS", 30)
AGG_INTERVAL = os.getenv("AGG_INTERVAL", "4h")
BLOCK_TS_CACHE_SIZE = 2000

# ── event topics / selectors ───────────────────────────────────────────
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
# Swap(address,uint256,uint256,uint256,uint256,address)
SWAP_TOPIC = "0xd78ad95fa46c994b6551d0da85fc275fe613ce37657fb8d5e3d130840159d822"
# Sync(uint112,uint112)
SYNC_TOPIC = "0x1c411e9a96e071241c2f21f7726b17ae89e3cab4c78be50e062b03a9fffbbad1"
# Mint(address,uint256,uint256) on the V2 pair
PAIR_MINT_TOPIC = "0x4c209b5fc8ad50758f13e2e1088ba56a560dff690a1c6fef26394f4c03821c4f"
GRADUATED_TOPIC = "0x1c858049e704460ab9455025be4078f9e746e3fd426a56040d06389edb8197db"

SELECTOR_CREATOR_BUY = "0xb34ffc5f"      # creatorBuy(uint256)
SELECTOR_CLAIM_AIRDROP = "0x5b88349d"    # claimAirdrop()
SELECTOR_UNLOCK = "0xb4105e06"           # unlockCreatorTokens()

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
TOKEN_DECIMALS = 18

# ── ABIs ───────────────────────────────────────────────────────────────
PAIR_ABI = [
    { "name": "token0", "outputs": [ { "type": "address" } ],
      "inputs": [], "stateMutability": "view", "type": "function"},
    { "name": "token1", "outputs": [ { "type": "address" } ],
      "inputs": [], "stateMutability": "view", "type": "function"},
]

ERC20_DEC_ABI = [
    { "name": "decimals", "outputs": [ { "type": "uint8" } ],
      "inputs": [], "stateMutability": "view", "type": "function"},
]

CURVE_ABI = [
    { "name": "getSellPrice", "outputs": [ { "type": "uint256" } ],
      "inputs": [ { "name": "amount", "type": "uint256" } ], "stateMutability": "view", "type": "function"},
    { "name": "getCurrentPrice", "outputs": [ { "type": "uint256" } ],
      "inputs": [], "stateMutability": "view", "type": "function"},
]


@dataclass(frozen=True)
class ChainProfile:
    """Per-chain tunables, resolved once at startup."""
    chain_id: int
    name: str
    rpc_url: Optional[str]
    window_size: int
    dex_window_size: int
    min_call_delay: float   # seconds slept after every successful call
    backoff_step: float     # seconds added per rate-limited attempt
    backoff_cap: float
    max_attempts: int = 10


# prefix, name, window, dex window, sleep ms, backoff step s, backoff cap s
_PROFILE_DEFAULTS = {
    MEGAETH_TESTNET_CHAIN_ID: ("MEGAETH", "megaeth-testnet", 500, 1000, 1000, 2.0, 10.0),
    MEGAETH_MAINNET_CHAIN_ID: ("MEGAETH_MAINNET", "megaeth", 2000, 1000, 500, 2.0, 10.0),
    SEPOLIA_CHAIN_ID: ("SEPOLIA", "sepolia", 5000, 1000, 500, 1.0, 5.0),
}
_FALLBACK_DEFAULTS = ("DEFAULT", "evm", 10000, 500, 200, 2.0, 10.0)


def build_chain_profile(chain_id: int, rpc_url: Optional[str] = None) -> ChainProfile:
    prefix, name, window, dex_window, sleep_ms, step, cap = _PROFILE_DEFAULTS.get(
        chain_id, _FALLBACK_DEFAULTS
    )
    return ChainProfile(
        chain_id=chain_id,
        name=name,
        rpc_url=rpc_url if rpc_url is not None else RPC_URLS.get(chain_id),
        window_size=_env_int(f"{prefix}_WINDOW_SIZE", window),
        dex_window_size=_env_int(f"{prefix}_DEX_WINDOW_SIZE", dex_window),
        min_call_delay=_env_int(f"{prefix}_SLEEP_MS", sleep_ms) / 1000,
        backoff_step=step,
        backoff_cap=cap,
        max_attempts=MAX_RETRY_ATTEMPTS,
    )


def load_chain_profiles() -> Dict[int, ChainProfile]:
    return {chain_id: build_chain_profile(chain_id) for chain_id in RPC_URLS}


@dataclass(frozen=True)
class TokenFilter:
    """Operational filters for backfills and testing."""
    token_id: Optional[int] = None
    token_id_from: Optional[int] = None
    token_id_to: Optional[int] = None
    chain_id: Optional[int] = None
    graduated_only: bool = False
    ungraduated_only: bool = False

    @classmethod
    def from_env(cls) -> "TokenFilter":
        return cls(
            token_id=_env_int("TOKEN_ID", None),
            token_id_from=_env_int("TOKEN_ID_FROM", None),
            token_id_to=_env_int("TOKEN_ID_TO", None),
            chain_id=_env_int("CHAIN_ID_FILTER", None),
            graduated_only=_env_flag("GRADUATED_ONLY"),
            ungraduated_only=_env_flag("UNGRADUATED_ONLY"),
        )

    def describe(self) -> str:
        parts = []
        if self.token_id is not None:
            parts.append(f"token={self.token_id}")
        if self.token_id_from is not None or self.token_id_to is not None:
            parts.append(f"ids={self.token_id_from}..{self.token_id_to}")
        if self.chain_id is not None:
            parts.append(f"chain={self.chain_id}")
        if self.graduated_only:
            parts.append("graduated")
        if self.ungraduated_only:
            parts.append("ungraduated")
        return ", ".join(parts) or "all tokens"
