"""
Integration tests for the LangGraph enrichment pipeline.

Search and page retrieval are mocked; the query builder, extraction,
verification, scoring, estimation and the SQLite Research Cache are real.
"""

from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from lifecycle_research import get_pipeline
from lifecycle_research.models.schemas import DateField, LifecycleDates, Product
from lifecycle_research.pipeline.orchestrator import LifecycleEnrichmentPipeline, enrich_product
from lifecycle_research.services.research_cache import ResearchCache
from lifecycle_research.services.search_service import SearchService
from lifecycle_research.utils.retry import ServerError

VENDOR_URL = "https://www.cisco.com/c/en/us/products/collateral/switches/eol.html"


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def pipeline(settings, research_cache, mock_search_service, mock_page_fetcher):
    return LifecycleEnrichmentPipeline(
        settings=settings,
        cache=research_cache,
        search_service=mock_search_service,
        page_fetcher=mock_page_fetcher,
    )


@pytest.fixture
def vendor_page(mock_search_service, mock_page_fetcher, make_results):
    """Every query returns the vendor EOL page; the test sets its text."""
    async def search(query, num=None):
        return make_results(query, (VENDOR_URL, "EOL notice", ""))
    mock_search_service.search.side_effect = search
    return mock_page_fetcher


@pytest.mark.asyncio
async def test_research_then_cache_hit(pipeline, vendor_page, mock_search_service, research_cache, cisco_product, cisco_bulletin):
    vendor_page.fetch.return_value = cisco_bulletin

    first = await pipeline.enrich(cisco_product)

    assert first.from_cache is False
    assert first.dates.end_of_sale == date(2019, 10, 31)
    assert first.dates.last_day_of_support == date(2025, 10, 31)
    assert (first.confidence.overall, first.confidence.lifecycle) == (90, 95)
    assert first.estimation is None
    assert first.data_quality_issues == []
    assert first.research.stats.early_exit is True

    entry = research_cache.lookup("Cisco", "WS-C3850-48P")
    assert entry.research_source == VENDOR_URL
    assert entry.data_sources["urls"] == [VENDOR_URL]
    assert entry.data_sources["source_counts"] == {"vendor_site": 1, "third_party": 0}

    searches = mock_search_service.search.await_count
    second = await pipeline.enrich(Product(manufacturer="cisco", identifier="ws-c3850-48p"))

    assert mock_search_service.search.await_count == searches
    assert second.from_cache is True
    assert second.dates == first.dates
    assert second.confidence.overall == 92


@pytest.mark.asyncio
async def test_bypassing_cache_neither_reads_nor_writes(pipeline, vendor_page, research_cache, cisco_product, cisco_bulletin):
    research_cache.upsert("Cisco", "WS-C3850-48P", LifecycleDates(end_of_sale=date(2001, 1, 1)), 60)
    vendor_page.fetch.return_value = cisco_bulletin

    enriched = await pipeline.enrich(cisco_product, use_cache=False)

    assert enriched.from_cache is False
    assert enriched.dates.end_of_sale == date(2019, 10, 31)
    assert research_cache.lookup("Cisco", "WS-C3850-48P").dates.end_of_sale == date(2001, 1, 1)


@pytest.mark.asyncio
async def test_partial_research_is_estimated(pipeline, vendor_page, research_cache, cisco_product):
    vendor_page.fetch.return_value = "WS-C3850-48P End-of-Sale Date: 31-Oct-2019"

    enriched = await pipeline.enrich(cisco_product)

    assert enriched.dates.end_of_sale == date(2019, 10, 31)
    assert enriched.dates.end_of_sw_maintenance == date(2020, 10, 31)
    assert enriched.dates.end_of_sw_vulnerability_support == date(2022, 10, 31)
    assert enriched.dates.last_day_of_support == date(2024, 10, 31)
    assert enriched.estimation.basis_field == DateField.END_OF_SALE
    assert enriched.estimation.vendor == "cisco"
    assert (enriched.confidence.overall, enriched.confidence.lifecycle) == (80, 85)
    assert enriched.research.dates.last_day_of_support is None

    entry = research_cache.lookup("Cisco", "WS-C3850-48P")
    assert entry.dates == LifecycleDates(end_of_sale=date(2019, 10, 31))
    assert entry.estimation_metadata["basis_field"] == "end_of_sale"


@pytest.mark.asyncio
async def test_no_evidence_is_current_product_and_not_cached(
    pipeline, mock_search_service, make_results, research_cache, cisco_product
):
    async def search(query, num=None):
        return make_results(query)
    mock_search_service.search.side_effect = search

    enriched = await pipeline.enrich(cisco_product)

    assert enriched.is_current_product is True
    assert enriched.confidence.overall == 100
    assert enriched.estimation is None
    assert research_cache.lookup("Cisco", "WS-C3850-48P") is None


@pytest.mark.asyncio
async def test_total_search_failure_degrades_without_caching(
    pipeline, mock_search_service, research_cache, cisco_product
):
    mock_search_service.search.side_effect = ServerError("HTTP 503", status_code=503)

    enriched = await pipeline.enrich(cisco_product)

    assert enriched.research.is_degraded is True
    assert enriched.is_current_product is False
    assert (enriched.confidence.overall, enriched.confidence.lifecycle) == (0, 0)
    assert research_cache.lookup("Cisco", "WS-C3850-48P") is None


@pytest.mark.asyncio
async def test_failed_research_falls_back_to_expired_entry(
    settings, mock_search_service, mock_page_fetcher, cisco_product
):
    clock = FakeClock(datetime(2020, 1, 1))
    cache = ResearchCache("sqlite:///:memory:", clock=clock)
    cache.upsert("Cisco", "WS-C3850-48P", LifecycleDates(end_of_sale=date(2019, 10, 31)), 75)
    clock.now = clock.now + timedelta(days=500)
    mock_search_service.search.side_effect = ServerError("HTTP 503", status_code=503)

    pipeline = LifecycleEnrichmentPipeline(
        settings=settings,
        cache=cache,
        search_service=mock_search_service,
        page_fetcher=mock_page_fetcher,
    )
    enriched = await pipeline.enrich(cisco_product)

    assert mock_search_service.search.await_count > 0
    assert enriched.research.is_expired is True
    assert enriched.from_cache is False
    assert enriched.dates.end_of_sale == date(2019, 10, 31)
    assert enriched.confidence.overall == 75
    assert cache.lookup("Cisco", "WS-C3850-48P").research_timestamp == datetime(2020, 1, 1)
    cache.close()


@pytest.mark.asyncio
async def test_expired_entry_is_refreshed_by_new_research(
    settings, vendor_page, mock_search_service, cisco_product, cisco_bulletin
):
    clock = FakeClock(datetime(2020, 1, 1))
    cache = ResearchCache("sqlite:///:memory:", clock=clock)
    cache.upsert("Cisco", "WS-C3850-48P", LifecycleDates(end_of_sale=date(2001, 1, 1)), 60)
    clock.now = clock.now + timedelta(days=500)
    vendor_page.fetch.return_value = cisco_bulletin

    pipeline = LifecycleEnrichmentPipeline(
        settings=settings,
        cache=cache,
        search_service=mock_search_service,
        page_fetcher=vendor_page,
    )
    enriched = await pipeline.enrich(cisco_product)

    assert enriched.dates.end_of_sale == date(2019, 10, 31)
    entry = cache.lookup("Cisco", "WS-C3850-48P")
    assert entry.is_expired is False
    assert entry.dates.end_of_sale == date(2019, 10, 31)
    cache.close()


@pytest.mark.asyncio
async def test_ordering_violations_are_reported_not_fixed(pipeline, vendor_page, cisco_product):
    vendor_page.fetch.return_value = (
        "WS-C3850-48P End-of-Sale Date: 31-Oct-2025\n"
        "WS-C3850-48P Last Date of Support: 31-Oct-2019"
    )

    enriched = await pipeline.enrich(cisco_product)

    assert enriched.dates.end_of_sale == date(2025, 10, 31)
    assert enriched.dates.last_day_of_support == date(2019, 10, 31)
    assert any("End of Sale date (2025-10-31)" in issue for issue in enriched.data_quality_issues)


@pytest.mark.asyncio
async def test_unexpected_failure_degrades_single_product(
    settings, research_cache, mock_search_service, mock_page_fetcher, make_results, cisco_product
):
    async def search(query, num=None):
        return make_results(query)
    mock_search_service.search.side_effect = search
    estimator = MagicMock()
    estimator.estimate.side_effect = RuntimeError("estimator exploded")

    pipeline = LifecycleEnrichmentPipeline(
        settings=settings,
        cache=research_cache,
        search_service=mock_search_service,
        page_fetcher=mock_page_fetcher,
        estimation_engine=estimator,
    )
    enriched = await pipeline.enrich(cisco_product)

    assert enriched.research.is_degraded is True
    assert "estimator exploded" in enriched.research.error
    assert enriched.confidence.overall == 0


@pytest.mark.asyncio
async def test_enrich_batch_reports_progress_in_order(
    settings, research_cache, mock_search_service, vendor_page, cisco_bulletin
):
    vendor_page.fetch.return_value = cisco_bulletin
    progress = []
    pipeline = LifecycleEnrichmentPipeline(
        settings=settings,
        cache=research_cache,
        search_service=mock_search_service,
        page_fetcher=vendor_page,
        progress_callback=lambda done, total, enriched: progress.append((done, total, enriched.product.identifier)),
    )
    products = [
        Product(manufacturer="Cisco", identifier="WS-C3850-48P"),
        Product(manufacturer="Acme", identifier="XR-500"),
    ]

    results = await pipeline.enrich_batch(products)

    assert [r.product.identifier for r in results] == ["WS-C3850-48P", "XR-500"]
    assert progress == [(1, 2, "WS-C3850-48P"), (2, 2, "XR-500")]
    assert results[0].dates.end_of_sale == date(2019, 10, 31)
    assert results[1].is_current_product is True


@pytest.mark.asyncio
async def test_context_manager_closes_clients(pipeline, mock_search_service, mock_page_fetcher):
    async with pipeline:
        mock_page_fetcher.connect.assert_awaited_once()
    mock_search_service.close.assert_awaited_once()
    mock_page_fetcher.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_enrich_product_builds_its_own_pipeline(settings):
    failing_search = AsyncMock(side_effect=ServerError("HTTP 503", status_code=503))
    with patch.object(SearchService, "search", failing_search):
        enriched = await enrich_product("Cisco", "WS-C3850-48P", settings=settings)

    assert enriched.product.identifier == "WS-C3850-48P"
    assert enriched.research.error == "All search queries failed"
    assert failing_search.await_count > 0


def test_get_pipeline_returns_pipeline_class():
    assert get_pipeline() is LifecycleEnrichmentPipeline
