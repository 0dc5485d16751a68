# rate_limit.py
# --------------------------------------------------------------
# Throttle + retry wrapper for every provider call on a chain.
# --------------------------------------------------------------
import logging
import time
from typing import Any, Callable, Set

import backoff

from launchpad_indexer.sources.curve_pipeline.config.settings import ChainProfile

log = logging.getLogger(__name__)

RATE_LIMIT_CODES = {-32016, -32822, -32005, 429}
RATE_LIMIT_MARKERS = ("rate limit", "too many requests", "over compute unit limit")


def _error_codes(exc: BaseException) -> Set[int]:
    codes = set()

    code = getattr(exc, "code", None)
    if isinstance(code, int):
        codes.add(code)

    # web3 >= 7 keeps the raw JSON-RPC reply on the exception
    rpc_response = getattr(exc, "rpc_response", None)
    if isinstance(rpc_response, dict) and isinstance(rpc_response.get("error"), dict):
        err_code = rpc_response["error"].get("code")
        if isinstance(err_code, int):
            codes.add(err_code)

    # older web3 raises ValueError({"code": ..., "message": ...})
    for arg in getattr(exc, "args", ()):
        if isinstance(arg, dict) and isinstance(arg.get("code"), int):
            codes.add(arg["code"])

    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int):
        codes.add(status)

    return codes


def is_rate_limit_error(exc: BaseException) -> bool:
    if _error_codes(exc) & RATE_LIMIT_CODES:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


def linear_capped(step: float, cap: float):
    """backoff wait generator: step, 2*step, ... never above cap."""
    yield  # primed by backoff before the first retry
    attempt = 1
    while True:
        yield min(step * attempt, cap)
        attempt += 1


class RateLimiter:
    """
    Wraps provider calls for one chain.

    • rate-limit errors are retried with the chain's linear, capped backoff
    • everything else propagates on the first failure
    • every successful call is followed by the chain's minimum delay
    """

    def __init__(self, profile: ChainProfile):
        self.profile = profile
        self._retrying = backoff.on_exception(
            linear_capped,
            Exception,
            max_tries=max(1, profile.max_attempts),
            jitter=None,
            giveup=lambda e: not is_rate_limit_error(e),
            on_backoff=self._log_backoff,
            on_giveup=self._log_giveup,
            logger=None,
            step=profile.backoff_step,
            cap=profile.backoff_cap,
        )(self._invoke)

    @staticmethod
    def _invoke(fn: Callable[..., Any], *args, **kwargs) -> Any:
        return fn(*args, **kwargs)

    def _log_backoff(self, details: dict) -> None:
        log.warning(
            f"⏳ [{self.profile.name}] rate limited, retry {details['tries']}/{self.profile.max_attempts} "
            f"in {details['wait']:.1f}s"
        )

    def _log_giveup(self, details: dict) -> None:
        exc = details.get("exception")
        if exc is not None and is_rate_limit_error(exc):
            log.error(f"❌ [{self.profile.name}] still rate limited after {details['tries']} attempts")

    def call(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        result = self._retrying(fn, *args, **kwargs)
        if self.profile.min_call_delay > 0:
            time.sleep(self.profile.min_call_delay)
        return result

