"""
Page retrieval for authorized vendor domains.

Only URLs on a vendor family's authorized domain list are ever fetched.
Redirects are followed by hand and only while they stay on those domains.
Bodies are capped in size, HTML is reduced to visible text with
BeautifulSoup, and text is cached per URL for the page-cache TTL. Every
failure is logged and reported as None.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

import httpx
from bs4 import BeautifulSoup

from lifecycle_research.config.settings import Settings, get_settings
from lifecycle_research.services.vendors import VendorCatalog
from lifecycle_research.utils.logger import get_logger
from lifecycle_research.utils.retry import ErrorHandler, FetchError

logger = get_logger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; LifecycleResearchBot/1.0)"
MAX_REDIRECTS = 5

_TEXT_CONTENT_TYPES = ("text/html", "application/xhtml+xml", "text/plain", "application/xml", "text/xml")
_STRIP_TAGS = ["script", "style", "noscript", "template", "svg"]


# =============================================================================
# Page Cache
# =============================================================================

@dataclass
class CacheEntry:
    """Cache entry with TTL tracking."""
    data: str
    created_at: datetime
    ttl_seconds: int
    hits: int = 0

    def is_expired(self) -> bool:
        """Check if cache entry has expired."""
        return datetime.now() - self.created_at > timedelta(seconds=self.ttl_seconds)

    def get(self) -> str:
        """Get cached data and increment hit counter."""
        self.hits += 1
        return self.data


class PageCache:
    """In-process page text cache keyed by URL."""

    def __init__(self, max_size: int = 500, default_ttl: int = 24 * 3600):
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._cache: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, url: str) -> Optional[str]:
        """Get cached text if present and not expired."""
        async with self._lock:
            entry = self._cache.get(url)
            if entry is None:
                return None
            if entry.is_expired():
                del self._cache[url]
                return None
            return entry.get()

    async def set(self, url: str, text: str) -> None:
        """Store page text, evicting the oldest quarter when full."""
        async with self._lock:
            if url not in self._cache and len(self._cache) >= self.max_size:
                evict_count = max(1, len(self._cache) // 4)
                oldest = sorted(self._cache.items(), key=lambda x: x[1].created_at)[:evict_count]
                for key, _ in oldest:
                    del self._cache[key]
            self._cache[url] = CacheEntry(
                data=text,
                created_at=datetime.now(),
                ttl_seconds=self.default_ttl,
            )

    def __len__(self) -> int:
        return len(self._cache)

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        return {
            "size": len(self._cache),
            "max_size": self.max_size,
            "total_hits": sum(e.hits for e in self._cache.values()),
        }


def html_to_text(html: str) -> str:
    """Visible text of an HTML document, one block per line."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_STRIP_TAGS):
        tag.decompose()
    lines = (" ".join(line.split()) for line in soup.get_text(separator="\n").splitlines())
    return "\n".join(line for line in lines if line)


# =============================================================================
# Page Fetcher
# =============================================================================

class PageFetcher:
    """
    Fetch page text from authorized vendor domains.

    Example:
        >>> async with PageFetcher() as fetcher:
        ...     text = await fetcher.fetch("https://www.cisco.com/c/en/us/products/...")
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        vendor_catalog: Optional[VendorCatalog] = None,
        client: Optional[httpx.AsyncClient] = None,
        cache: Optional[PageCache] = None,
    ):
        self.settings = settings or get_settings()
        self.vendor_catalog = vendor_catalog or VendorCatalog()
        self.max_bytes = self.settings.page_max_bytes
        self.cache = cache or PageCache(
            max_size=self.settings.page_cache_max_size,
            default_ttl=self.settings.page_cache_ttl_seconds,
        )
        self._client = client
        self._owns_client = client is None
        self.fetch_count = 0

    async def connect(self) -> None:
        """Initialize HTTP client."""
        if self._client is None:
            timeout = self.settings.page_fetch_timeout_seconds
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(timeout),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                follow_redirects=False,
                headers={"User-Agent": USER_AGENT},
            )
            self._owns_client = True

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "PageFetcher":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def is_authorized(self, url: str) -> bool:
        return self.vendor_catalog.is_authorized(url)

    async def _read_body(self, url: str, response: httpx.Response) -> str:
        if response.status_code < 200 or response.status_code >= 300:
            raise FetchError(f"HTTP {response.status_code}", url=url, details={"status_code": response.status_code})

        content_type = response.headers.get("content-type", "text/html").lower()
        if not content_type.startswith(_TEXT_CONTENT_TYPES):
            raise FetchError("Non-text content", url=url, details={"content_type": content_type})

        declared = response.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_bytes:
            raise FetchError("Page too large", url=url, details={"size": int(declared), "limit": self.max_bytes})

        body = bytearray()
        async for chunk in response.aiter_bytes():
            body.extend(chunk)
            if len(body) > self.max_bytes:
                raise FetchError("Page too large", url=url, details={"limit": self.max_bytes})

        raw = bytes(body).decode(response.encoding or "utf-8", errors="replace")
        if content_type.startswith("text/plain"):
            return raw
        return html_to_text(raw)

    async def _download(self, url: str) -> str:
        """GET a page, following redirects only while they stay on authorized domains."""
        if not self._client:
            await self.connect()
        current = url
        for _ in range(MAX_REDIRECTS + 1):
            async with self._client.stream("GET", current, follow_redirects=False) as response:
                if not response.is_redirect:
                    return await self._read_body(current, response)
                target = str(response.url.join(response.headers["location"]))
            if not self.is_authorized(target):
                raise FetchError("Redirect off authorized domains", url=url, details={"location": target})
            current = target
        raise FetchError("Too many redirects", url=url, details={"limit": MAX_REDIRECTS})

    async def fetch(self, url: str) -> Optional[str]:
        """
        Get visible text for a URL.

        Args:
            url: Candidate page URL from a search result.

        Returns:
            Page text, or None when the URL is not authorized or the fetch fails.
        """
        if not self.is_authorized(url):
            logger.debug("URL not on an authorized domain", url=url)
            return None

        cached = await self.cache.get(url)
        if cached is not None:
            return cached

        try:
            text = await self._download(url)
        except FetchError as e:
            logger.warning(
                "Page fetch failed",
                url=url,
                error_type=ErrorHandler.categorize_error(e),
                error=str(e),
                **e.details,
            )
            return None
        except httpx.TimeoutException:
            logger.warning("Page fetch timed out", url=url)
            return None
        except httpx.HTTPError as e:
            logger.warning("Page fetch error", url=url, error=str(e))
            return None

        self.fetch_count += 1
        await self.cache.set(url, text)
        logger.debug("Page fetched", url=url, chars=len(text))
        return text
