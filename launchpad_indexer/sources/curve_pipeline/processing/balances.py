import logging
from collections import defaultdict
from typing import Dict, Iterable, NamedTuple, Set, Tuple

from launchpad_indexer.sources.curve_pipeline.config.settings import ZERO_ADDRESS
from launchpad_indexer.utils.types import TokenRow

log = logging.getLogger(__name__)


class BalanceSummary(NamedTuple):
    holders: int
    balances: Dict[str, int]


def replay_balances(ledger: Iterable[Tuple[str, str, int]]) -> Dict[str, int]:
    """
    Signed sum of every ledger row per address: minus on `from`, plus on `to`.
    The zero address is never credited or debited. Only positive results are kept.
    """
    totals: Dict[str, int] = defaultdict(int)
    for from_address, to_address, amount in ledger:
        amount = int(amount)
        from_address = from_address.lower()
        to_address = to_address.lower()
        if from_address != ZERO_ADDRESS:
            totals[from_address] -= amount
        if to_address != ZERO_ADDRESS:
            totals[to_address] += amount
    return {holder: bal for holder, bal in totals.items() if bal > 0}


def count_holders(balances: Dict[str, int], excluded: Set[str]) -> int:
    excluded = {a.lower() for a in excluded} | {ZERO_ADDRESS}
    return sum(1 for holder, bal in balances.items() if bal > 0 and holder not in excluded)


class BalanceReconstructor:
    """Rebuilds token_balances for one token from the full ledger, every time."""

    def __init__(self, store):
        self.store = store

    def excluded_holders(self, token: TokenRow) -> Set[str]:
        return self.store.pool_addresses(token.chain_id) | {token.contract_address.lower()}

    def rebuild(self, token: TokenRow) -> BalanceSummary:
        ledger = self.store.load_ledger(token.id, token.chain_id)
        balances = replay_balances(ledger)
        try:
            self.store.replace_balances(token.id, token.chain_id, balances)
            holders = count_holders(balances, self.excluded_holders(token))
            self.store.update_token_stats(token.id, {"holder_count": holders})
            self.store.commit()
        except Exception:
            self.store.rollback()
            raise

        log.info(f"✅ [token {token.id}] balances rebuilt from {len(ledger)} ledger rows: {holders} holders")
        return BalanceSummary(holders=holders, balances=balances)
