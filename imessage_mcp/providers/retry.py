"""Bounded exponential-backoff retry around a single provider's send attempt.

States: attempt 0..max_retries, then either a success or the last failure. Before
every retry the controller sleeps `initial_delay * 2**(attempt-1)` seconds and runs
the injected `before_retry` hook (the AppleScript provider launches Messages.app
there). Permission failures end the loop immediately.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .base import SendRequest, SendResult, failed
from .errors import is_permission_failure
from imessage_mcp.logging import log_send_attempt, log_send_retry, log_send_outcome

SendAttempt = Callable[[SendRequest], Awaitable[SendResult]]
Sleep = Callable[[float], Awaitable[None]]
BeforeRetry = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 2
    initial_delay: float = 2.0

    @property
    def total_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        return self.initial_delay * (2 ** (attempt - 1))


async def send_with_retry(
    attempt_send: SendAttempt,
    request: SendRequest,
    *,
    policy: RetryPolicy = RetryPolicy(),
    provider_name: str = "unknown",
    sleep: Sleep = asyncio.sleep,
    before_retry: Optional[BeforeRetry] = None,
) -> SendResult:
    last = failed("No send attempt was made")
    for attempt in range(policy.total_attempts):
        if attempt > 0:
            delay = policy.delay_for(attempt)
            log_send_retry(provider_name, attempt + 1, delay)
            await sleep(delay)
            if before_retry is not None:
                await before_retry()

        log_send_attempt(provider_name, attempt + 1)
        last = await attempt_send(request)
        log_send_outcome(provider_name, last.success, error=last.error, error_code=last.error_code, attempt=attempt + 1)
        if last.success:
            return last
        if is_permission_failure(last):
            # retrying cannot grant Automation rights
            return last
    return last


__all__ = ['RetryPolicy', 'send_with_retry']
