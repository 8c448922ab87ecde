"""
Web search service for lifecycle research.

This module provides one interface over the web search APIs used to find
end-of-life bulletins: Google Custom Search (primary) and SerpAPI (Google
engine, fallback).

Features:
    - Abstract SearchProvider base class for extensibility
    - Provider selection from configured API keys
    - HTTP 429 distinguished from other failures, with separate backoff
    - Client errors abort the query without retrying
    - Structured logging

Example:
    >>> async with SearchService() as service:
    ...     results = await service.search('"WS-C3850-48P" "End-of-Sale"', num=3)
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from lifecycle_research.config.settings import Settings, get_settings
from lifecycle_research.utils.logger import get_logger
from lifecycle_research.utils.retry import (
    TRANSIENT_SEARCH_ERRORS,
    ConfigurationError,
    SearchError,
    SearchTimeoutError,
    error_for_status,
    log_retry_attempt,
    wait_search_backoff,
)

logger = get_logger(__name__)


# =============================================================================
# Data Models for Search Results
# =============================================================================

class ProviderStatus(str, Enum):
    """Provider health status."""
    AVAILABLE = "available"
    RATE_LIMITED = "rate_limited"
    ERROR = "error"


class SearchResultItem(BaseModel):
    """Individual search result item."""
    url: str
    title: str = ""
    snippet: str = ""

    @property
    def text(self) -> str:
        """Title and snippet as one block of text."""
        return f"{self.title}\n{self.snippet}".strip()


class SearchResults(BaseModel):
    """Results for one query."""
    query: str
    provider: str
    items: list[SearchResultItem] = Field(default_factory=list)
    search_duration_ms: int = 0


# =============================================================================
# Abstract Search Provider
# =============================================================================

class SearchProvider(ABC):
    """
    Abstract base class for search providers.

    Subclasses build request parameters and parse the response; retry,
    status mapping and bookkeeping live here.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self._client: Optional[httpx.AsyncClient] = client
        self._owns_client = client is None
        self._status = ProviderStatus.AVAILABLE
        self._last_error: Optional[str] = None
        self._request_count = 0
        self._error_count = 0

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name identifier."""
        pass

    @property
    @abstractmethod
    def base_url(self) -> str:
        pass

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Check if provider is properly configured with API keys."""
        pass

    @abstractmethod
    def _build_params(self, query: str, num: int) -> dict[str, Any]:
        """Query-string parameters for one search request."""
        pass

    @abstractmethod
    def _parse_items(self, data: dict[str, Any]) -> list[SearchResultItem]:
        """Convert a provider response body into result items."""
        pass

    @property
    def status(self) -> ProviderStatus:
        """Current provider status."""
        return self._status

    async def connect(self) -> None:
        """Initialize HTTP client."""
        if self._client is None:
            timeout = self.settings.search_timeout_seconds
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    connect=min(5.0, timeout),
                    read=timeout,
                    write=5.0,
                    pool=5.0,
                ),
                limits=httpx.Limits(
                    max_keepalive_connections=5,
                    max_connections=10,
                ),
            )
            self._owns_client = True

    async def disconnect(self) -> None:
        """Close HTTP client."""
        if self._client and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "SearchProvider":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

    def _update_status(self, success: bool, error: Optional[SearchError] = None) -> None:
        """Update provider status based on request result."""
        self._request_count += 1
        if success:
            self._error_count = 0
            self._status = ProviderStatus.AVAILABLE
            return
        self._error_count += 1
        self._last_error = str(error) if error else None
        if error is not None and error.status_code == 429:
            self._status = ProviderStatus.RATE_LIMITED
        elif self._error_count >= 3:
            self._status = ProviderStatus.ERROR

    async def _request(self, query: str, num: int) -> list[SearchResultItem]:
        """Single HTTP attempt, mapped onto the search error taxonomy."""
        if not self._client:
            await self.connect()
        try:
            response = await self._client.get(self.base_url, params=self._build_params(query, num))
        except (httpx.TimeoutException, httpx.TransportError) as e:
            error = SearchTimeoutError(f"{self.name} request failed: {e}")
            self._update_status(False, error)
            raise error from e

        if response.status_code >= 400:
            error = error_for_status(response, self.name)
            self._update_status(False, error)
            raise error

        self._update_status(True)
        return self._parse_items(response.json())

    async def search(self, query: str, num: int = 3) -> SearchResults:
        """
        Run one web search with retry.

        429 responses retry with exponential backoff; 5xx and timeouts with
        linear backoff; other 4xx raise ClientError immediately.

        Args:
            query: Search query text
            num: Maximum number of results

        Returns:
            SearchResults for the query

        Raises:
            SearchError: When the query fails for good
        """
        if not self.is_configured:
            raise ConfigurationError(f"{self.name} provider is not configured")

        start_time = time.time()
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TRANSIENT_SEARCH_ERRORS),
            stop=stop_after_attempt(self.settings.search_max_attempts),
            wait=wait_search_backoff(
                rate_limit_base=self.settings.rate_limit_backoff_base_seconds,
                rate_limit_max=self.settings.rate_limit_backoff_max_seconds,
                server_error_step=self.settings.server_error_backoff_step_seconds,
            ),
            before_sleep=log_retry_attempt,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                items = await self._request(query, num)

        result = SearchResults(
            query=query,
            provider=self.name,
            items=items[:num],
            search_duration_ms=int((time.time() - start_time) * 1000),
        )
        logger.info(
            "Search completed",
            provider=self.name,
            query=query,
            results_count=len(result.items),
            duration_ms=result.search_duration_ms,
        )
        return result

    def get_stats(self) -> dict[str, Any]:
        """Get provider statistics."""
        return {
            "name": self.name,
            "status": self._status.value,
            "configured": self.is_configured,
            "request_count": self._request_count,
            "error_count": self._error_count,
            "last_error": self._last_error,
        }


# =============================================================================
# Google Custom Search Provider (Primary)
# =============================================================================

class GoogleSearchProvider(SearchProvider):
    """Google Custom Search JSON API."""

    BASE_URL = "https://www.googleapis.com/customsearch/v1"
    MAX_NUM = 10

    @property
    def name(self) -> str:
        return "google"

    @property
    def base_url(self) -> str:
        return self.BASE_URL

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.google_api_key and self.settings.google_search_engine_id)

    def _build_params(self, query: str, num: int) -> dict[str, Any]:
        return {
            "key": self.settings.google_api_key.get_secret_value(),
            "cx": self.settings.google_search_engine_id,
            "q": query,
            "num": max(1, min(num, self.MAX_NUM)),
        }

    def _parse_items(self, data: dict[str, Any]) -> list[SearchResultItem]:
        return [
            SearchResultItem(
                url=item.get("link", ""),
                title=item.get("title", ""),
                snippet=item.get("snippet", ""),
            )
            for item in data.get("items", []) or []
            if item.get("link")
        ]


# =============================================================================
# SerpAPI Provider (Fallback)
# =============================================================================

class SerpAPIProvider(SearchProvider):
    """SerpAPI with the Google engine."""

    BASE_URL = "https://serpapi.com/search"

    @property
    def name(self) -> str:
        return "serpapi"

    @property
    def base_url(self) -> str:
        return self.BASE_URL

    @property
    def is_configured(self) -> bool:
        return self.settings.serpapi_api_key is not None

    def _build_params(self, query: str, num: int) -> dict[str, Any]:
        return {
            "engine": "google",
            "q": query,
            "num": max(1, num),
            "api_key": self.settings.serpapi_api_key.get_secret_value(),
        }

    def _parse_items(self, data: dict[str, Any]) -> list[SearchResultItem]:
        return [
            SearchResultItem(
                url=item.get("link", ""),
                title=item.get("title", ""),
                snippet=item.get("snippet", ""),
            )
            for item in data.get("organic_results", []) or []
            if item.get("link")
        ]


PROVIDERS: dict[str, type[SearchProvider]] = {
    "google": GoogleSearchProvider,
    "serpapi": SerpAPIProvider,
}


# =============================================================================
# Search Service
# =============================================================================

class SearchService:
    """
    Web search capability used by the Search Orchestrator.

    Uses the provider picked by ``Settings.get_search_provider()`` unless one
    is passed in explicitly.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        provider: Optional[SearchProvider] = None,
    ):
        self.settings = settings or get_settings()
        self._provider = provider

    def _resolve_provider(self) -> SearchProvider:
        if self._provider is None:
            name = self.settings.get_search_provider()
            provider_cls = PROVIDERS.get(name)
            if provider_cls is None:
                raise ConfigurationError(
                    "No search provider configured. Set GOOGLE_API_KEY and "
                    "GOOGLE_SEARCH_ENGINE_ID, or SERPAPI_API_KEY"
                )
            self._provider = provider_cls(settings=self.settings)
            logger.info("Search provider initialized", provider=name)
        return self._provider

    @property
    def provider(self) -> SearchProvider:
        return self._resolve_provider()

    async def __aenter__(self) -> "SearchService":
        await self._resolve_provider().connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the provider connection."""
        if self._provider is not None:
            await self._provider.disconnect()

    async def search(self, query: str, num: Optional[int] = None) -> SearchResults:
        """Run one query through the configured provider."""
        return await self._resolve_provider().search(query, num or self.settings.results_per_query)


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    "SearchService",
    "SearchProvider",
    "GoogleSearchProvider",
    "SerpAPIProvider",
    "SearchResults",
    "SearchResultItem",
    "ProviderStatus",
    "PROVIDERS",
]
