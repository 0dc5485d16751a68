import time

import pytest

from launchpad_indexer.sources.curve_pipeline.config.settings import ChainProfile
from launchpad_indexer.sources.curve_pipeline.evm.utils.rate_limit import (
    RateLimiter,
    is_rate_limit_error,
    linear_capped,
)


class RpcError(Exception):
    def __init__(self, code, message="rpc error"):
        super().__init__(message)
        self.code = code


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []
    monkeypatch.setattr(time, "sleep", lambda s: recorded.append(s))
    return recorded


def _profile(max_attempts=4, delay=0.5):
    return ChainProfile(
        chain_id=6342, name="testnet", rpc_url=None, window_size=500, dex_window_size=1000,
        min_call_delay=delay, backoff_step=2.0, backoff_cap=5.0, max_attempts=max_attempts,
    )


def _flaky(errors, result="ok"):
    calls = {"n": 0}

    def fn():
        calls["n"] += 1
        if errors:
            raise errors.pop(0)
        return result

    return fn, calls


def test_rate_limit_classification():
    assert is_rate_limit_error(RpcError(-32016))
    assert is_rate_limit_error(RpcError(429))
    assert is_rate_limit_error(ValueError({"code": -32005, "message": "limit exceeded"}))
    assert is_rate_limit_error(Exception("Too Many Requests"))
    assert not is_rate_limit_error(RpcError(-32000, "execution reverted"))
    assert not is_rate_limit_error(KeyError("logs"))


def test_linear_capped_waits():
    gen = linear_capped(2.0, 5.0)
    assert next(gen) is None
    assert [next(gen) for _ in range(4)] == [2.0, 4.0, 5.0, 5.0]


def test_retries_rate_limits_then_throttles(sleeps):
    fn, calls = _flaky([RpcError(-32016), RpcError(429)])
    limiter = RateLimiter(_profile())

    assert limiter.call(fn) == "ok"
    assert calls["n"] == 3
    # two backoff waits, then the post-call delay
    assert sleeps == [2.0, 4.0, 0.5]


def test_other_errors_propagate_immediately(sleeps):
    fn, calls = _flaky([RpcError(-32000, "execution reverted")])
    with pytest.raises(RpcError):
        RateLimiter(_profile()).call(fn)
    assert calls["n"] == 1
    assert sleeps == []


def test_gives_up_after_max_attempts(sleeps):
    fn, calls = _flaky([RpcError(-32822) for _ in range(5)])
    with pytest.raises(RpcError):
        RateLimiter(_profile(max_attempts=3)).call(fn)
    assert calls["n"] == 3
