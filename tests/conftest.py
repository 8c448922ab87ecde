import pytest
from datetime import date
from unittest.mock import AsyncMock, MagicMock

from lifecycle_research.config.settings import Settings
from lifecycle_research.models.schemas import Product
from lifecycle_research.services.research_cache import ResearchCache
from lifecycle_research.services.search_service import SearchResultItem, SearchResults
from lifecycle_research.services.vendors import VendorCatalog

CISCO_BULLETIN = (
    "Cisco announces the end-of-sale and end-of-life dates for the WS-C3850-48P.\n"
    "End-of-Sale Date: 31-Oct-2019\n"
    "End of SW Maintenance Releases Date: 30-Oct-2020\n"
    "End of Vulnerability/Security Support: 30-Oct-2022\n"
    "Last Date of Support: 31-Oct-2025\n"
)


@pytest.fixture
def settings():
    """Real settings with zero backoff and an in-memory cache."""
    return Settings(
        _env_file=None,
        GOOGLE_API_KEY=None,
        GOOGLE_SEARCH_ENGINE_ID=None,
        SERPAPI_API_KEY="serpapi-test-key",
        DATABASE_URL="sqlite:///:memory:",
        MIN_BATCH_INTERVAL_SECONDS=0,
        RATE_LIMIT_BACKOFF_BASE_SECONDS=0,
        RATE_LIMIT_BACKOFF_MAX_SECONDS=0,
        SERVER_ERROR_BACKOFF_STEP_SECONDS=0,
        QUERY_TIMEOUT_SECONDS=5,
        VENDOR_INTERVALS_FILE=None,
    )


@pytest.fixture
def research_cache():
    cache = ResearchCache("sqlite:///:memory:")
    yield cache
    cache.close()


@pytest.fixture
def cisco_product():
    return Product(manufacturer="Cisco", identifier="WS-C3850-48P")


@pytest.fixture
def cisco_bulletin():
    return CISCO_BULLETIN


@pytest.fixture
def today():
    return lambda: date(2026, 1, 1)


@pytest.fixture
def make_results():
    """Build SearchResults from (url, title, snippet) tuples."""
    def _make(query, *items):
        return SearchResults(
            query=query,
            provider="serpapi",
            items=[SearchResultItem(url=u, title=t, snippet=s) for u, t, s in items],
        )
    return _make


@pytest.fixture
def mock_search_service():
    service = MagicMock()
    service.search = AsyncMock()
    service.close = AsyncMock()
    return service


@pytest.fixture
def mock_page_fetcher():
    catalog = VendorCatalog()
    fetcher = MagicMock()
    fetcher.is_authorized.side_effect = catalog.is_authorized
    fetcher.fetch = AsyncMock(return_value=None)
    fetcher.connect = AsyncMock()
    fetcher.close = AsyncMock()
    return fetcher
