"""Retry policy shared by every call site that retries.

One policy object describes attempts and backoff; `run()` applies it to an
async callable through tenacity. Lock writes use linear backoff (delay grows
by `base_delay` each attempt); LLM calls use exponential backoff.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.5  # seconds
    multiplier: float = 2.0
    backoff: Literal["linear", "exponential"] = "exponential"

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        if self.backoff == "linear":
            return self.base_delay * attempt
        return self.base_delay * (self.multiplier ** (attempt - 1))

    def _wait(self, state: RetryCallState) -> float:
        return self.delay_for(state.attempt_number)

    async def run(
        self,
        fn: Callable[[], Awaitable[T]],
        retry_on: tuple[type[BaseException], ...] = (Exception,),
    ) -> T:
        """Await `fn()` until it succeeds or attempts run out; re-raises the last error."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type(retry_on),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                return await fn()
        raise AssertionError("unreachable")


LOCK_WRITE_POLICY = RetryPolicy(max_attempts=3, base_delay=0.5, backoff="linear")
LLM_POLICY = RetryPolicy(max_attempts=3, base_delay=1.0, multiplier=2.0)
