"""
Retry & Degradation Policy
Wraps adapter calls with capped, jittered exponential backoff and, in
development mode, a mock fallback on terminal failure.
"""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional

from tenacity import AsyncRetrying, retry_if_result, stop_after_attempt
from tenacity.stop import stop_base
from tenacity.wait import wait_base

from core import ErrorKind, ProviderResult, RetryBudget, SystemClock


logger = logging.getLogger(__name__)

JITTER = 0.2


class wait_capped_jitter(wait_base):
    """``min(base * multiplier**(n-1) * U(1-j, 1+j), ceiling)`` after attempt n."""

    def __init__(self, budget: RetryBudget, rng: Optional[random.Random] = None, jitter: float = JITTER):
        self.budget = budget
        self.rng = rng or random.Random()
        self.jitter = jitter

    def __call__(self, retry_state) -> float:
        nominal = self.budget.capped_delay(retry_state.attempt_number)
        factor = self.rng.uniform(1.0 - self.jitter, 1.0 + self.jitter)
        return max(0.0, min(nominal * factor, self.budget.max_delay))


class stop_before_deadline(stop_base):
    """Stop when the upcoming backoff would end past an absolute monotonic deadline."""

    def __init__(self, deadline: Optional[float], clock=None):
        self.deadline = deadline
        self.clock = clock or SystemClock()

    def __call__(self, retry_state) -> bool:
        if self.deadline is None:
            return False
        return self.clock.monotonic() + float(retry_state.upcoming_sleep or 0.0) >= self.deadline


def _last_result(retry_state) -> ProviderResult:
    return retry_state.outcome.result()


class RetryPolicy:
    """
    Executes one logical provider call under a retry budget.

    Only retriable ``Err`` results are retried. Once the budget is spent the
    degradation mode decides between surfacing the error and substituting a
    mock (development mode, endpoint has a mock, credential not mandatory).
    """

    def __init__(
        self,
        budget: Optional[RetryBudget] = None,
        *,
        development: bool = False,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        rng: Optional[random.Random] = None,
        clock=None,
    ):
        self.budget = budget or RetryBudget()
        self.development = development
        self.sleep = sleep or asyncio.sleep
        self.rng = rng or random.Random()
        self.clock = clock or SystemClock()

    @classmethod
    def from_settings(cls, workflow_settings, **kwargs) -> "RetryPolicy":
        budget = RetryBudget(
            max_attempts=workflow_settings.retry_max_attempts,
            base_delay=workflow_settings.retry_base_delay,
            multiplier=workflow_settings.retry_multiplier,
            max_delay=workflow_settings.retry_max_delay,
        )
        return cls(budget, development=workflow_settings.development, **kwargs)

    def _retrying(self, endpoint: str, deadline: Optional[float]) -> AsyncRetrying:
        def _log_retry(retry_state) -> None:
            result = retry_state.outcome.result()
            logger.info(
                "retry_scheduled endpoint=%s attempt=%s delay=%.2f kind=%s",
                endpoint,
                retry_state.attempt_number,
                float(retry_state.upcoming_sleep or 0.0),
                result.kind.value if result.kind else "",
            )

        return AsyncRetrying(
            retry=retry_if_result(lambda result: result.retriable),
            stop=stop_after_attempt(self.budget.max_attempts) | stop_before_deadline(deadline, self.clock),
            wait=wait_capped_jitter(self.budget, self.rng),
            sleep=self.sleep,
            before_sleep=_log_retry,
            retry_error_callback=_last_result,
        )

    async def call(
        self,
        endpoint: str,
        attempt: Callable[[], Awaitable[ProviderResult]],
        *,
        deadline: Optional[float] = None,
        mock: Optional[Callable[[Any], Any]] = None,
        request: Any = None,
        credential_required: bool = False,
    ) -> ProviderResult:
        """
        Run ``attempt`` until it succeeds, fails non-retriably, or the budget ends.

        Args:
            endpoint: logical endpoint name (for logs and metadata)
            attempt: zero-argument coroutine factory performing one adapter call
            deadline: absolute monotonic stage deadline
            mock: optional mock generator taking ``request``
            request: the request struct handed to ``mock``
            credential_required: never degrade ``auth_missing`` for this endpoint

        Returns:
            ProviderResult, tagged with ``attempts`` and, for mocks, ``mock: True``
        """
        attempts = 0

        async def _counted() -> ProviderResult:
            nonlocal attempts
            attempts += 1
            return await attempt()

        result: ProviderResult = await self._retrying(endpoint, deadline)(_counted)
        result = result.with_metadata(attempts=attempts)
        if result.ok:
            return result

        if credential_required and result.kind == ErrorKind.AUTH_MISSING:
            logger.warning("credential_missing endpoint=%s detail=%s", endpoint, result.detail)
            return result
        if self.development and mock is not None:
            logger.warning("mock_fallback endpoint=%s reason=%s", endpoint, result.kind.value)
            return ProviderResult.success(
                mock(request),
                provider="mock",
                endpoint=endpoint,
                mock=True,
                fallback_reason=result.kind.value,
                attempts=attempts,
            )
        logger.warning(
            "provider_call_failed endpoint=%s kind=%s attempts=%s detail=%s",
            endpoint,
            result.kind.value,
            attempts,
            result.detail[:200],
        )
        return result
