"""
Services package for the lifecycle research pipeline.

Services:
    - SearchService: Web search over Google Custom Search or SerpAPI
    - PageFetcher: Authorized vendor page retrieval
    - ResearchCache: Persistent per-product research cache
    - VendorCatalog: Vendor families, domains and site queries
"""

from lifecycle_research.services.page_fetcher import PageCache, PageFetcher, html_to_text
from lifecycle_research.services.research_cache import ResearchCache, ResearchCacheRecord, cache_key
from lifecycle_research.services.search_service import (
    GoogleSearchProvider,
    SearchProvider,
    SearchResultItem,
    SearchResults,
    SearchService,
    SerpAPIProvider,
)
from lifecycle_research.services.vendors import DEFAULT_VENDORS, VendorCatalog, VendorProfile

__all__ = [
    "SearchService",
    "SearchProvider",
    "GoogleSearchProvider",
    "SerpAPIProvider",
    "SearchResults",
    "SearchResultItem",
    "PageFetcher",
    "PageCache",
    "html_to_text",
    "ResearchCache",
    "ResearchCacheRecord",
    "cache_key",
    "VendorCatalog",
    "VendorProfile",
    "DEFAULT_VENDORS",
]
