from collections import defaultdict
from decimal import Decimal
import pathlib

import pytest
from dotenv import load_dotenv
from eth_abi import abi

from launchpad_indexer.sources.curve_pipeline.config.settings import (
    ChainProfile,
    GRADUATED_TOPIC,
    PAIR_MINT_TOPIC,
    SWAP_TOPIC,
    SYNC_TOPIC,
    TRANSFER_TOPIC,
)
from launchpad_indexer.storage.ledger_store import TRADE_SIDES
from launchpad_indexer.utils.types import PoolRow

# Automatically load .env from project root
load_dotenv(dotenv_path=pathlib.Path(__file__).parent.parent / ".env")

BASE_TIMESTAMP = 1_700_000_000


def tx_hash(n: int) -> str:
    return "0x" + f"{n:064x}"


def _topic_address(address: str) -> str:
    return "0x" + "0" * 24 + address.lower()[2:]


def _log(address, topics, data: bytes, block, log_index, tx) -> dict:
    return {
        "address": address,
        "topics": topics,
        "data": "0x" + data.hex(),
        "blockNumber": block,
        "logIndex": log_index,
        "transactionHash": tx,
    }


class LogFactory:
    """Sanitized-shape event logs, ABI-encoded the way a node returns them."""

    def transfer(self, token, from_, to, amount, block, log_index, tx):
        return _log(
            token, [TRANSFER_TOPIC, _topic_address(from_), _topic_address(to)],
            abi.encode(["uint256"], [amount]), block, log_index, tx,
        )

    def swap(self, pair, sender, to, a0_in, a1_in, a0_out, a1_out, block, log_index, tx):
        return _log(
            pair, [SWAP_TOPIC, _topic_address(sender), _topic_address(to)],
            abi.encode(["uint256"] * 4, [a0_in, a1_in, a0_out, a1_out]), block, log_index, tx,
        )

    def sync(self, pair, reserve0, reserve1, block, log_index, tx):
        return _log(
            pair, [SYNC_TOPIC], abi.encode(["uint112", "uint112"], [reserve0, reserve1]),
            block, log_index, tx,
        )

    def pair_mint(self, pair, sender, amount0, amount1, block, log_index, tx):
        return _log(
            pair, [PAIR_MINT_TOPIC, _topic_address(sender)],
            abi.encode(["uint256", "uint256"], [amount0, amount1]), block, log_index, tx,
        )

    def graduated(self, contract, block, log_index, tx):
        return _log(contract, [GRADUATED_TOPIC], b"", block, log_index, tx)


class FakeChainClient:
    """In-memory stand-in for ChainClient."""

    def __init__(self, head: int = 0, window_size: int = 50, dex_window_size: int = 50):
        self.profile = ChainProfile(
            chain_id=6342, name="testnet", rpc_url=None,
            window_size=window_size, dex_window_size=dex_window_size,
            min_call_delay=0, backoff_step=0, backoff_cap=0, max_attempts=1,
        )
        self.chain_id = self.profile.chain_id
        self.head = head
        self.logs = []
        self.txs = {}
        self.receipts = {}
        self.views = {}
        self.fail_windows = set()
        # empty means every topic fails in a failing window
        self.fail_topics = set()
        self.get_logs_calls = []

    # ── fixtures ──
    def add_tx(self, tx, sender, block, value=0, input="0x"):
        self.txs[tx] = {"hash": tx, "from": sender, "value": value, "input": input, "blockNumber": block}

    def add_receipt(self, tx, logs):
        self.receipts[tx] = {"transactionHash": tx, "logs": logs}

    def set_view(self, address, fn_name, value):
        self.views[(address.lower(), fn_name)] = value

    # ── ChainClient surface ──
    def block_number(self):
        return self.head

    def get_logs(self, address, topics, from_block, to_block):
        self.get_logs_calls.append((address.lower(), topics[0], from_block, to_block))
        if from_block in self.fail_windows and (not self.fail_topics or topics[0] in self.fail_topics):
            raise RuntimeError(f"injected failure at {from_block}")
        return [
            lg for lg in self.logs
            if lg["address"].lower() == address.lower()
            and lg["topics"][0] == topics[0]
            and from_block <= lg["blockNumber"] <= to_block
        ]

    def block_timestamp(self, block_number):
        return BASE_TIMESTAMP + block_number * 2

    def get_transaction(self, tx):
        return self.txs[tx]

    def get_transaction_receipt(self, tx):
        return self.receipts.get(tx, {"transactionHash": tx, "logs": []})

    def call_view(self, address, abi_, fn_name, args=(), block=None):
        value = self.views[(address.lower(), fn_name)]
        return value(list(args), block) if callable(value) else value

    def probe_view(self, address, abi_, fn_name, args=(), block=None):
        if (address.lower(), fn_name) not in self.views:
            return None
        return self.call_view(address, abi_, fn_name, args, block)


class FakeStore:
    """
    In-memory LedgerStore. Writes are staged and only land on commit(),
    so rollback() behaves like the real session.
    """

    def __init__(self):
        self.cursors = {}
        self.graduated = set()
        self.token_stats = defaultdict(dict)
        self.pools = {}
        self.transfers = {}
        self.snapshots = {}
        self.balances = {}
        self.chart = {}
        self.daily = {}
        self.metrics = []
        self.commits = 0
        self.rollbacks = 0
        self._pending = []

    def _stage(self, fn):
        self._pending.append(fn)

    def commit(self):
        for fn in self._pending:
            fn()
        self._pending.clear()
        self.commits += 1

    def rollback(self):
        self._pending.clear()
        self.rollbacks += 1

    # ── tokens ──
    def advance_token_cursor(self, token_id, chain_id, block):
        def apply():
            self.cursors[token_id] = max(self.cursors.get(token_id, -1), block)
        self._stage(apply)

    def mark_graduated(self, token_id):
        self._stage(lambda: self.graduated.add(token_id))

    def update_token_stats(self, token_id, stats):
        self._stage(lambda: self.token_stats[token_id].update(stats))

    # ── pools ──
    def get_dex_pool(self, token_id, chain_id):
        for p in self.pools.values():
            if p["token_id"] == token_id and p["chain_id"] == chain_id:
                return PoolRow(**p)
        return None

    def pool_addresses(self, chain_id):
        return {pair for (chain, pair) in self.pools if chain == chain_id}

    def create_dex_pool(self, row):
        self._stage(lambda: self.pools.setdefault((row["chain_id"], row["pair_address"]), dict(row)))

    def advance_pool_cursor(self, chain_id, pair_address, column, block):
        def apply():
            pool = self.pools[(chain_id, pair_address.lower())]
            current = pool[column] if pool[column] is not None else -1
            pool[column] = max(current, block)
        self._stage(apply)

    # ── ledger ──
    def insert_transfers(self, rows):
        def apply():
            for r in rows:
                self.transfers.setdefault((r["chain_id"], r["tx_hash"], r["log_index"]), dict(r))
        self._stage(apply)
        return len(rows)

    def ledger(self, token_id):
        rows = [r for r in self.transfers.values() if r["token_id"] == token_id]
        return sorted(rows, key=lambda r: (r["block_number"], r["log_index"]))

    def graduation_tx(self, token_id, chain_id):
        for r in self.ledger(token_id):
            if r["side"] == "GRADUATION" and r["chain_id"] == chain_id:
                return r["tx_hash"]
        return None

    def load_ledger(self, token_id, chain_id):
        return [(r["from_address"], r["to_address"], int(r["amount_wei"])) for r in self.ledger(token_id)]

    def load_ledger_rows(self, token_id, chain_id, since=None):
        return [
            {
                "block_time": r["block_time"],
                "from_address": r["from_address"],
                "to_address": r["to_address"],
                "amount_wei": int(r["amount_wei"]),
                "eth_amount_wei": int(r["eth_amount_wei"] or 0),
                "side": r["side"],
            }
            for r in self.ledger(token_id) if since is None or r["block_time"] >= since
        ]

    def _trades(self, token_id):
        return [
            r for r in self.ledger(token_id)
            if r["side"] in TRADE_SIDES and r["price_eth_per_token"] is not None
        ]

    def load_trades(self, token_id, chain_id, since):
        return [
            {
                "block_time": r["block_time"],
                "block_number": r["block_number"],
                "log_index": r["log_index"],
                "price": r["price_eth_per_token"],
                "eth_amount_wei": r["eth_amount_wei"],
                "eth_price_usd": r["eth_price_usd"],
            }
            for r in self._trades(token_id) if r["block_time"] >= since
        ]

    def last_trade_price(self, token_id, chain_id, before=None, source=None):
        trades = [
            r for r in self._trades(token_id)
            if (before is None or r["block_time"] < before) and (source is None or r["source"] == source)
        ]
        return trades[-1]["price_eth_per_token"] if trades else None

    def volume_since(self, token_id, chain_id, since):
        return sum(
            int(r["eth_amount_wei"]) for r in self.ledger(token_id)
            if r["side"] in TRADE_SIDES and r["block_time"] >= since
        )

    # ── snapshots ──
    def upsert_pair_snapshots(self, rows):
        def apply():
            for r in rows:
                self.snapshots[(r["chain_id"], r["pair_address"], r["block_number"])] = dict(r)
        self._stage(apply)

    def latest_snapshot(self, chain_id, pair_address):
        rows = [
            r for (chain, pair, _), r in self.snapshots.items()
            if chain == chain_id and pair == pair_address.lower()
        ]
        if not rows:
            return None
        s = max(rows, key=lambda r: r["block_number"])
        return {
            "block_number": s["block_number"],
            "reserve0_wei": s["reserve0_wei"],
            "reserve1_wei": s["reserve1_wei"],
            "price": s["price_eth_per_token"],
        }

    # ── balances / aggregates ──
    def replace_balances(self, token_id, chain_id, balances):
        self._stage(lambda: self.balances.__setitem__(token_id, dict(balances)))

    def load_balances(self, token_id):
        return dict(self.balances.get(token_id, {}))

    def upsert_chart_rows(self, rows):
        def apply():
            for r in rows:
                self.chart[(r["token_id"], r["interval_type"], r["ts"])] = dict(r)
        self._stage(apply)

    def upsert_daily_rows(self, rows):
        def apply():
            for r in rows:
                self.daily[(r["token_id"], r["day"])] = dict(r)
        self._stage(apply)

    def last_daily_day(self, token_id):
        days = [day for (tid, day) in self.daily if tid == token_id]
        return max(days) if days else None

    def log_metrics(self, token_id, chain_id, pipeline, block_range, log_count, duration_seconds):
        self._stage(lambda: self.metrics.append((token_id, pipeline, block_range, log_count)))


@pytest.fixture
def logs():
    return LogFactory()


@pytest.fixture
def chain():
    return FakeChainClient(head=250)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def eth_usd():
    return Decimal("2000")
