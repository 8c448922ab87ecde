"""
Error taxonomy and retry policy for outbound calls.

Transient failures (HTTP 429, 5xx, timeouts) are retried locally with a
bounded backoff and stay isolated to the failing query. Client errors are
never retried.
"""

import asyncio
from typing import Any, Optional

import httpx
from tenacity import RetryCallState
from tenacity.wait import wait_base

from lifecycle_research.utils.logger import get_logger

logger = get_logger(__name__)

# =============================================================================
# Custom Exceptions
# =============================================================================

class LifecycleResearchError(Exception):
    """Base application exception."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(LifecycleResearchError):
    """Raised when a required provider or setting is missing."""


class SearchError(LifecycleResearchError):
    """Base exception for web search failures."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code


class RateLimitError(SearchError):
    """HTTP 429 from the search provider."""


class ServerError(SearchError):
    """HTTP 5xx from the search provider."""


class ClientError(SearchError):
    """HTTP 4xx (other than 429) from the search provider. Not retried."""


class SearchTimeoutError(SearchError):
    """Search request timed out or the connection failed."""


class FetchError(LifecycleResearchError):
    """Page retrieval failed: status, redirect target, size or content type."""

    def __init__(self, message: str, url: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, details)
        self.url = url


TRANSIENT_SEARCH_ERRORS = (RateLimitError, ServerError, SearchTimeoutError)


def error_for_status(response: httpx.Response, provider: str) -> SearchError:
    """Map a failed HTTP response onto the search error taxonomy."""
    status = response.status_code
    message = f"{provider} HTTP {status}: {response.text[:200]}"
    if status == 429:
        return RateLimitError(message, status_code=status)
    if status >= 500:
        return ServerError(message, status_code=status)
    return ClientError(message, status_code=status)


# =============================================================================
# Backoff Strategy
# =============================================================================

class wait_search_backoff(wait_base):
    """
    Tenacity wait strategy that distinguishes rate limiting from other
    transient failures.

    429 responses back off exponentially (``base * 2 ** attempt``, capped);
    server errors and timeouts back off linearly (``step * attempt``).
    """

    def __init__(
        self,
        rate_limit_base: float = 5.0,
        rate_limit_max: float = 120.0,
        server_error_step: float = 2.0,
    ):
        self.rate_limit_base = rate_limit_base
        self.rate_limit_max = rate_limit_max
        self.server_error_step = server_error_step

    def __call__(self, retry_state: RetryCallState) -> float:
        attempt = retry_state.attempt_number
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(error, RateLimitError):
            return min(self.rate_limit_base * (2 ** attempt), self.rate_limit_max)
        return self.server_error_step * attempt


def log_retry_attempt(retry_state: RetryCallState) -> None:
    """before_sleep hook that logs the upcoming retry."""
    error = retry_state.outcome.exception() if retry_state.outcome else None
    next_sleep = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(
        "Retrying search request",
        attempt=retry_state.attempt_number,
        error_type=type(error).__name__,
        error=str(error),
        wait_seconds=round(next_sleep, 2),
    )


# =============================================================================
# Error Handler
# =============================================================================

class ErrorHandler:
    """Centralized error categorization."""

    @staticmethod
    def categorize_error(error: BaseException) -> str:
        """Categorize errors for appropriate handling."""
        if isinstance(error, RateLimitError):
            return "RATE_LIMIT_ERROR"
        if isinstance(error, ServerError):
            return "SERVER_ERROR"
        if isinstance(error, (SearchTimeoutError, asyncio.TimeoutError, httpx.TimeoutException)):
            return "TIMEOUT_ERROR"
        if isinstance(error, ClientError):
            return "CLIENT_ERROR"
        if isinstance(error, ConfigurationError):
            return "CONFIGURATION_ERROR"
        if isinstance(error, (httpx.TransportError, ConnectionError)):
            return "NETWORK_ERROR"
        if isinstance(error, FetchError):
            return "FETCH_ERROR"
        return "UNKNOWN_ERROR"

    @staticmethod
    def is_transient(error: BaseException) -> bool:
        """Whether the error is worth retrying."""
        return ErrorHandler.categorize_error(error) in {
            "RATE_LIMIT_ERROR",
            "SERVER_ERROR",
            "TIMEOUT_ERROR",
            "NETWORK_ERROR",
        }
