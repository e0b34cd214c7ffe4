"""
Reusable retry policy for calls to the generation service.

Wraps tenacity so call sites state *what* is retryable and how long to wait,
instead of hand-rolling counters and sleeps.
"""

import logging
from typing import Any, Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from llm import is_model_output_error

logger = logging.getLogger(__name__)


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning(
        "Attempt %d failed (%s: %s); retrying in %.1fs",
        state.attempt_number,
        type(exc).__name__,
        exc,
        state.next_action.sleep if state.next_action else 0.0,
    )


class RetryPolicy:
    """Max attempts, linear backoff (``backoff_seconds * attempt``) and a retryable-error predicate."""

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        retryable: Callable[[BaseException], bool] = is_model_output_error,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.retryable = retryable

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.backoff_seconds, increment=self.backoff_seconds),
            retry=retry_if_exception(self.retryable),
            before_sleep=_log_retry,
            reraise=True,
        )

    async def call(self, fn: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """Await ``fn(*args, **kwargs)`` under this policy; the last error propagates as-is."""
        return await self._retrying()(fn, *args, **kwargs)


# Strategy generation: three tries, 1s then 2s, only when the model output is unparsable.
DEFAULT_POLICY = RetryPolicy()
