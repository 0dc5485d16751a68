from typing import NamedTuple, Optional


class TokenRow(NamedTuple):
    id: int
    chain_id: int
    contract_address: str
    deployment_block: Optional[int]
    last_processed_block: Optional[int]
    is_graduated: bool
    creator_wallet: Optional[str]

    @property
    def cursor(self) -> int:
        """Last fully processed block; one before deployment when never scanned."""
        if self.last_processed_block is not None:
            return int(self.last_processed_block)
        return int(self.deployment_block or 0) - 1


class PoolRow(NamedTuple):
    token_id: int
    chain_id: int
    pair_address: str
    token0: str
    token1: str
    quote_token: str
    token_decimals: int
    quote_decimals: int
    last_processed_block: Optional[int]
    last_processed_sync_block: Optional[int]
    graduation_block: int

    def cursor(self, column: str) -> int:
        value = getattr(self, column)
        return int(value) if value is not None else int(self.graduation_block) - 1
