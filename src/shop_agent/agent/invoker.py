"""Model invocation with exponential backoff on rate limiting."""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from typing import Any

from langchain_core.messages import BaseMessage

from shop_agent.config import RetryPolicy
from shop_agent.errors import ErrorCategory, MaxRetriesExceeded, ModelInvocationError
from shop_agent.obs.logging import get_logger

logger = get_logger(__name__)

_STATUS_CATEGORIES: dict[int, ErrorCategory] = {
    429: ErrorCategory.RATE_LIMIT,
    503: ErrorCategory.OVERLOADED,
    401: ErrorCategory.AUTH,
    403: ErrorCategory.AUTH,
}


def provider_status(exc: BaseException) -> int | None:
    """Best-effort HTTP status extraction across provider SDK exceptions."""

    for attr in ("status_code", "status", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.isdigit():
            return int(value)
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def classify_provider_error(exc: BaseException) -> tuple[ErrorCategory, int | None]:
    if isinstance(exc, ModelInvocationError):
        return exc.category, exc.status
    status = provider_status(exc)
    if status is None:
        return ErrorCategory.UNKNOWN, None
    return _STATUS_CATEGORIES.get(status, ErrorCategory.UNKNOWN), status


class ResilientModelInvoker:
    """Invokes a chat model, retrying only on rate-limit failures.

    The delay after failed attempt `k` (0-indexed) is
    `min(base_delay_ms * 2**k, max_delay_ms)`, so the default policy sleeps
    1s then 2s and gives up after the third attempt. Any other failure is
    classified and raised at once.
    """

    def __init__(
        self,
        model: Any,
        *,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.model = model
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    def invoke(self, messages: Sequence[BaseMessage]) -> Any:
        attempts = self.policy.max_attempts
        for attempt in range(attempts):
            try:
                return self.model.invoke(list(messages))
            except Exception as exc:
                category, status = classify_provider_error(exc)
                if category is not ErrorCategory.RATE_LIMIT:
                    logger.error(
                        "model_invocation_failed",
                        attempt=attempt + 1,
                        category=category.value,
                        status=status,
                        error=str(exc),
                    )
                    if isinstance(exc, ModelInvocationError):
                        raise
                    raise ModelInvocationError(
                        str(exc), category=category, status=status
                    ) from exc

                if attempt + 1 >= attempts:
                    logger.error("model_retries_exhausted", attempts=attempts)
                    raise MaxRetriesExceeded(attempts) from exc

                delay_ms = self.policy.delay_ms(attempt)
                logger.warning(
                    "model_rate_limited",
                    attempt=attempt + 1,
                    max_attempts=attempts,
                    delay_ms=delay_ms,
                )
                self._sleep(delay_ms / 1000.0)

        raise MaxRetriesExceeded(attempts)
