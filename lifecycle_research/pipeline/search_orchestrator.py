"""
Search orchestration for one product.

Runs the query plan in fixed-size concurrent batches with a minimum delay
between batches, turns each search result into verified Evidence, merges it
with vendor-over-third-party priority, and stops early once enough
authoritative evidence is in hand.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from lifecycle_research.analyzers.confidence import ConfidenceScorer, merge_evidence
from lifecycle_research.config.settings import Settings, get_settings
from lifecycle_research.extractors.date_extractor import DateExtractor
from lifecycle_research.extractors.product_verifier import ProductVerifier, identifier_variants
from lifecycle_research.models.schemas import (
    MILESTONE_FIELDS,
    DateField,
    Evidence,
    LifecycleDates,
    Product,
    ResearchResult,
    ResearchStats,
    SourceClass,
    SourceCounts,
)
from lifecycle_research.services.page_fetcher import PageFetcher
from lifecycle_research.services.search_service import SearchResultItem, SearchService
from lifecycle_research.services.vendors import VendorCatalog, VendorProfile
from lifecycle_research.utils.logger import get_logger
from lifecycle_research.utils.retry import ErrorHandler

logger = get_logger(__name__)

EARLY_EXIT_MIN_MILESTONES = 2


@dataclass
class QueryOutcome:
    """What one query contributed."""
    query: str
    evidence: list[Evidence] = field(default_factory=list)
    sources: list[SourceClass] = field(default_factory=list)
    pages_fetched: int = 0
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class SearchOrchestrator:
    """
    Execute a product's query plan and merge what it finds.

    Example:
        >>> orchestrator = SearchOrchestrator(search_service, page_fetcher)
        >>> result = await orchestrator.run(queries, product)
    """

    def __init__(
        self,
        search_service: SearchService,
        page_fetcher: PageFetcher,
        extractor: Optional[DateExtractor] = None,
        verifier: Optional[ProductVerifier] = None,
        scorer: Optional[ConfidenceScorer] = None,
        vendor_catalog: Optional[VendorCatalog] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self.search_service = search_service
        self.page_fetcher = page_fetcher
        self.extractor = extractor or DateExtractor()
        self.verifier = verifier or ProductVerifier()
        self.scorer = scorer or ConfidenceScorer()
        self.vendor_catalog = vendor_catalog or VendorCatalog()
        self.batch_size = self.settings.search_batch_size
        self.min_batch_interval = self.settings.min_batch_interval_seconds
        self.query_timeout = self.settings.query_timeout_seconds
        self.results_per_query = self.settings.results_per_query
        self._sleep = sleep

    # =========================================================================
    # Per-result processing
    # =========================================================================

    def _extract_verified(
        self,
        text: str,
        product: Product,
        source_url: str,
        source_class: SourceClass,
    ) -> list[Evidence]:
        """Extract with the literal identifier, then its variants; keep only verified evidence."""
        evidence: list[Evidence] = []
        for spelling in [product.identifier] + identifier_variants(product.identifier)[1:]:
            evidence = self.extractor.extract(
                text, spelling, source_url=source_url, source_class=source_class
            )
            if evidence:
                break
        if not evidence:
            return []
        if not self.verifier.verify(text, product.identifier, [e.date_value for e in evidence]):
            logger.debug("Evidence discarded by verifier", source_url=source_url)
            return []
        return evidence

    async def _process_item(
        self,
        item: SearchResultItem,
        product: Product,
        vendor: Optional[VendorProfile],
        seen_urls: set[str],
        outcome: QueryOutcome,
    ) -> None:
        url = item.url
        if url in seen_urls:
            return
        seen_urls.add(url)

        source_class = self.vendor_catalog.classify_source(url, vendor)
        evidence: list[Evidence] = []
        text: Optional[str] = None
        if self.page_fetcher.is_authorized(url):
            text = await self.page_fetcher.fetch(url)
        else:
            source_class = SourceClass.THIRD_PARTY

        if text:
            # The page itself decides; its snippet cannot overrule the verifier
            outcome.pages_fetched += 1
            evidence = self._extract_verified(text, product, url, source_class)
        elif item.text:
            evidence = self._extract_verified(item.text, product, url, source_class)

        if evidence:
            outcome.evidence.extend(evidence)
            outcome.sources.append(source_class)

    async def _run_query(
        self,
        query: str,
        product: Product,
        vendor: Optional[VendorProfile],
        seen_urls: set[str],
    ) -> QueryOutcome:
        outcome = QueryOutcome(query=query)

        async def execute() -> None:
            results = await self.search_service.search(query, self.results_per_query)
            for item in results.items:
                await self._process_item(item, product, vendor, seen_urls, outcome)

        try:
            await asyncio.wait_for(execute(), timeout=self.query_timeout)
        except Exception as e:
            outcome.error = f"{ErrorHandler.categorize_error(e)}: {e}"
            logger.warning(
                "Query failed",
                query=query,
                error_type=ErrorHandler.categorize_error(e),
                error=str(e),
            )
        return outcome

    # =========================================================================
    # Batching
    # =========================================================================

    @staticmethod
    def _should_exit_early(held: dict[DateField, Evidence]) -> bool:
        milestones = [e for f, e in held.items() if f in MILESTONE_FIELDS]
        return len(milestones) >= EARLY_EXIT_MIN_MILESTONES and any(e.is_vendor for e in milestones)

    async def _wait_for_batch_slot(self, last_batch_started: Optional[float]) -> None:
        if last_batch_started is None:
            return
        remaining = self.min_batch_interval - (time.monotonic() - last_batch_started)
        if remaining > 0:
            await self._sleep(remaining)

    async def run(self, queries: list[str], product: Product) -> ResearchResult:
        """
        Execute queries in batches and build the research result.

        Args:
            queries: Priority-ordered query plan.
            product: Product being researched.

        Returns:
            ResearchResult with merged dates, all verified evidence, source
            counts and confidence. A run in which every query failed yields
            a degraded zero-confidence result.
        """
        vendor = self.vendor_catalog.identify(product.manufacturer, product.identifier)
        stats = ResearchStats(queries_planned=len(queries))
        held: dict[DateField, Evidence] = {}
        all_evidence: list[Evidence] = []
        source_counts = SourceCounts()
        seen_urls: set[str] = set()
        last_batch_started: Optional[float] = None

        batches = [queries[i:i + self.batch_size] for i in range(0, len(queries), self.batch_size)]
        for index, batch in enumerate(batches):
            await self._wait_for_batch_slot(last_batch_started)
            last_batch_started = time.monotonic()

            outcomes = await asyncio.gather(
                *(self._run_query(q, product, vendor, seen_urls) for q in batch)
            )
            stats.batches_run += 1
            stats.queries_executed += len(batch)

            for outcome in outcomes:
                stats.pages_fetched += outcome.pages_fetched
                if outcome.failed:
                    stats.queries_failed += 1
                    continue
                for source_class in outcome.sources:
                    source_counts.add(source_class)
                for item in outcome.evidence:
                    all_evidence.append(item)
                    merge_evidence(held, item)

            logger.info(
                "Search batch completed",
                batch=index + 1,
                batches=len(batches),
                fields_found=sorted(f.value for f in held),
            )

            if index + 1 < len(batches) and self._should_exit_early(held):
                stats.early_exit = True
                stats.queries_skipped = len(queries) - stats.queries_executed
                logger.info(
                    "Early exit: authoritative evidence found",
                    identifier=product.identifier,
                    skipped=stats.queries_skipped,
                )
                break

        if stats.queries_executed > 0 and stats.queries_failed == stats.queries_executed:
            return ResearchResult.degraded("All search queries failed", stats=stats)

        dates = LifecycleDates()
        for field_name, item in held.items():
            dates = dates.with_field(field_name, item.date_value)

        result = ResearchResult(
            dates=dates,
            evidence=all_evidence,
            source_counts=source_counts,
            stats=stats,
        )
        result.is_current_product = self.scorer.is_current_product(result)
        result.confidence = self.scorer.score(result)
        return result
