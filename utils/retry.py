"""Bounded retry with exponential backoff around async operations."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and base delay; wait before attempt n+1 is base_delay * 2**(n-1)."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 300.0

    def delay_for(self, attempt: int) -> float:
        return min(self.max_delay, self.base_delay * (2 ** (max(1, int(attempt)) - 1)))


def _log_before_sleep(label: str, policy: RetryPolicy) -> Callable[[RetryCallState], None]:
    def _log(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        delay = state.next_action.sleep if state.next_action else 0.0
        logger.warning(
            "[Retry] %s attempt %d/%d failed: %s; retrying in %.1fs",
            label or "operation",
            state.attempt_number,
            policy.max_attempts,
            error,
            delay,
        )

    return _log


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: Optional[RetryPolicy] = None,
    label: str = "",
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Invoke ``operation`` until it succeeds or the attempt budget is spent.

    The last failure is re-raised unchanged. No state survives between calls,
    so the same policy object can be shared by every call site.
    """
    policy = policy or RetryPolicy()
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(1, int(policy.max_attempts))),
        wait=wait_exponential(multiplier=policy.base_delay, exp_base=2, min=0, max=policy.max_delay),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_before_sleep(label, policy),
        sleep=sleep,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await operation()
    raise RuntimeError("retry loop exited without result")  # pragma: no cover
