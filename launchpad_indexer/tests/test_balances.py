import random

import pytest

from launchpad_indexer.sources.curve_pipeline.config.settings import ZERO_ADDRESS
from launchpad_indexer.sources.curve_pipeline.processing.balances import (
    BalanceReconstructor,
    count_holders,
    replay_balances,
)
from launchpad_indexer.utils.types import TokenRow

CONTRACT = "0x" + "c" * 40
POOL = "0x" + "9" * 40
A = "0x" + "a" * 40
B = "0x" + "b" * 40

LEDGER = [
    (ZERO_ADDRESS, A, 1000),
    (ZERO_ADDRESS, B, 300),
    (A, B, 200),
    (B, ZERO_ADDRESS, 500),
    (A, POOL, 100),
]


def test_replay_is_signed_sum():
    assert replay_balances(LEDGER) == {A: 700, POOL: 100}


def test_replay_ignores_order():
    shuffled = list(LEDGER)
    random.Random(7).shuffle(shuffled)
    assert replay_balances(shuffled) == replay_balances(LEDGER)


def test_replay_drops_non_positive_and_lowercases():
    ledger = [(ZERO_ADDRESS, A.upper().replace("0X", "0x"), 5), (A, ZERO_ADDRESS, 5)]
    assert replay_balances(ledger) == {}


def test_holder_count_excludes_pool_contract_and_zero():
    balances = {A: 1, B: 2, POOL: 3, CONTRACT: 4}
    assert count_holders(balances, {POOL, CONTRACT}) == 2


def test_rebuild_replaces_previous_balances(store):
    token = TokenRow(1, 6342, CONTRACT, 100, 250, False, None)
    store.balances[1] = {"0x" + "d" * 40: 999}
    store.insert_transfers([
        {"token_id": 1, "chain_id": 6342, "tx_hash": "0x01", "log_index": 0, "block_number": 150,
         "from_address": ZERO_ADDRESS, "to_address": A, "amount_wei": 1000, "side": "BUY"},
    ])
    store.commit()

    summary = BalanceReconstructor(store).rebuild(token)
    assert store.balances[1] == {A: 1000}
    assert summary.holders == 1


def test_rebuild_rolls_back_on_failure(store, monkeypatch):
    token = TokenRow(1, 6342, CONTRACT, 100, 250, False, None)

    def boom(*args):
        raise RuntimeError("db gone")

    monkeypatch.setattr(store, "update_token_stats", boom)
    with pytest.raises(RuntimeError):
        BalanceReconstructor(store).rebuild(token)
    assert store.rollbacks == 1
    assert 1 not in store.balances
