"""Caller-side retry for broker reads.

Only reads go through here, and only results whose error kind is retryable
(rate limit, transport failure, timeout). Place/modify/cancel are returned
after one attempt: a broker may already have accepted a write whose answer
never arrived.
"""
from __future__ import annotations
from typing import Callable

from loguru import logger
from tenacity import RetryCallState, Retrying, retry_if_result, stop_after_attempt, wait_exponential

from brokerbridge.models import NormalizedResult
from brokerbridge.services.brokers.base import WRITE_CAPABILITIES, Capability


def _should_retry(result: NormalizedResult) -> bool:
    return not result.success and result.error is not None and result.error.retryable


def _last_result(state: RetryCallState) -> NormalizedResult:
    return state.outcome.result()


def _log_retry(state: RetryCallState) -> None:
    result = state.outcome.result()
    logger.warning("Retrying broker read after {} (attempt {})", result.error.kind.value, state.attempt_number)


def with_read_retry(capability: Capability, call: Callable[[], NormalizedResult], attempts: int = 3,
                    base_delay: float = 1.0) -> NormalizedResult:
    if capability in WRITE_CAPABILITIES or attempts <= 1:
        return call()
    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=base_delay, max=base_delay * 8),
        retry=retry_if_result(_should_retry),
        before_sleep=_log_retry,
        retry_error_callback=_last_result,
    )
    return retrying(call)
