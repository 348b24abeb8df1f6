"""Error taxonomy for the conversation engine."""

from __future__ import annotations

from enum import Enum


class ErrorCategory(str, Enum):
    RATE_LIMIT = "rate_limit"
    OVERLOADED = "overloaded"
    AUTH = "auth"
    UNKNOWN = "unknown"


USER_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.RATE_LIMIT: (
        "Service temporarily unavailable due to rate limits. Please try again in a minute."
    ),
    ErrorCategory.OVERLOADED: (
        "The language model is currently overloaded. Please try again in a few moments."
    ),
    ErrorCategory.AUTH: "Authentication failed. Please check your API configuration.",
    ErrorCategory.UNKNOWN: "The assistant could not complete your request. Please try again.",
}


class ShopAgentError(Exception):
    """Base class for engine errors."""


class ModelInvocationError(ShopAgentError):
    """A classified failure from the model provider."""

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.status = status


class MaxRetriesExceeded(ModelInvocationError):
    def __init__(self, attempts: int) -> None:
        super().__init__(
            f"Model still rate limited after {attempts} attempts",
            category=ErrorCategory.RATE_LIMIT,
            status=429,
        )
        self.attempts = attempts


class RecursionLimitExceeded(ShopAgentError):
    def __init__(self, limit: int) -> None:
        super().__init__(f"No final answer within {limit} decide/execute cycles")
        self.limit = limit


class InvalidTransition(ShopAgentError):
    """Raised by the workflow transition function for an impossible move."""


class StorageError(ShopAgentError):
    """The conversation store failed to read or write."""


class ThreadNotFound(ShopAgentError):
    def __init__(self, thread_id: str) -> None:
        super().__init__(f"Thread not found: {thread_id}")
        self.thread_id = thread_id


class ConversationError(ShopAgentError):
    """The single error type returned to callers of a conversation turn."""

    def __init__(self, category: ErrorCategory) -> None:
        self.category = category
        self.user_message = USER_MESSAGES[category]
        super().__init__(self.user_message)
