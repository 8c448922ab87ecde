"""Utils module for the lifecycle research pipeline."""

from lifecycle_research.utils.logger import LogContext, get_logger, setup_logging
from lifecycle_research.utils.retry import (
    ClientError,
    ConfigurationError,
    ErrorHandler,
    FetchError,
    LifecycleResearchError,
    RateLimitError,
    SearchError,
    SearchTimeoutError,
    ServerError,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "LogContext",
    "ErrorHandler",
    "LifecycleResearchError",
    "ConfigurationError",
    "SearchError",
    "RateLimitError",
    "ServerError",
    "ClientError",
    "SearchTimeoutError",
    "FetchError",
]
