"""
Enrichment pipeline using LangGraph.

Coordinates cache lookup, web research, estimation and cache update for one
product at a time. A product whose research fails outright degrades to a
zero-confidence result; nothing raised while enriching one product stops the
rest of a batch.

Graph structure:
    check_cache --(fresh hit)--> estimate -> store_cache -> END
         |
         +--(miss / stale / bypass)--> research -> estimate -> store_cache -> END
"""

import operator
import time
from functools import wraps
from typing import Annotated, Any, Callable, Literal, Optional, Sequence, TypedDict

from langgraph.graph import END, StateGraph

from lifecycle_research.analyzers.confidence import ConfidenceScorer
from lifecycle_research.analyzers.estimation import EstimationEngine, load_interval_overrides
from lifecycle_research.config.settings import Settings, get_settings
from lifecycle_research.extractors.query_builder import QueryBuilder
from lifecycle_research.models.schemas import (
    CacheEntry,
    Confidence,
    EnrichedProduct,
    EstimationMetadata,
    LifecycleDates,
    Product,
    ResearchResult,
    SourceCounts,
)
from lifecycle_research.pipeline.search_orchestrator import SearchOrchestrator
from lifecycle_research.services.page_fetcher import PageFetcher
from lifecycle_research.services.research_cache import ResearchCache
from lifecycle_research.services.search_service import SearchService
from lifecycle_research.services.vendors import VendorCatalog
from lifecycle_research.utils.logger import LogContext, get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int, EnrichedProduct], None]

ROUTE_RESEARCH = "research"
ROUTE_CACHED = "cached"


# =============================================================================
# Pipeline State Definition (TypedDict for LangGraph)
# =============================================================================

class EnrichmentStateDict(TypedDict, total=False):
    """State passed between graph nodes for one product."""
    product: Product
    use_cache: bool
    route: str
    cache_entry: Optional[CacheEntry]
    research: Optional[ResearchResult]
    dates: Optional[LifecycleDates]
    estimation: Optional[EstimationMetadata]
    confidence: Optional[Confidence]
    data_quality_issues: list[str]
    errors: Annotated[list[str], operator.add]
    step_timings: dict


def track_timing(func: Callable):
    """Record node duration in the state and log node start/finish."""
    @wraps(func)
    async def wrapper(self, state: EnrichmentStateDict) -> dict[str, Any]:
        start_time = time.time()
        node_name = func.__name__.removeprefix("_").removesuffix("_node")
        product = state.get("product")
        identifier = product.identifier if product else None

        result = await func(self, state)
        duration_ms = int((time.time() - start_time) * 1000)

        step_timings = dict(state.get("step_timings", {}))
        step_timings[node_name] = duration_ms
        result["step_timings"] = step_timings

        logger.debug("Node completed", node=node_name, identifier=identifier, duration_ms=duration_ms)
        return result

    return wrapper


def cached_research(entry: CacheEntry) -> ResearchResult:
    """Research result rebuilt from a cache entry."""
    counts = entry.data_sources.get("source_counts") or {}
    result = ResearchResult(
        dates=entry.dates,
        confidence=Confidence(overall=entry.confidence_score, lifecycle=entry.confidence_score),
        source_counts=SourceCounts(**counts),
        from_cache=entry.from_cache,
        is_expired=entry.is_expired,
    )
    result.is_current_product = not entry.dates.has_milestone()
    return result


# =============================================================================
# Main Pipeline Class
# =============================================================================

class LifecycleEnrichmentPipeline:
    """
    LangGraph-based lifecycle enrichment pipeline.

    Example:
        >>> async with LifecycleEnrichmentPipeline() as pipeline:
        ...     enriched = await pipeline.enrich(Product(manufacturer="Cisco", identifier="WS-C3850-48P"))
        ...     print(enriched.dates.last_day_of_support)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        cache: Optional[ResearchCache] = None,
        search_service: Optional[SearchService] = None,
        page_fetcher: Optional[PageFetcher] = None,
        query_builder: Optional[QueryBuilder] = None,
        search_orchestrator: Optional[SearchOrchestrator] = None,
        estimation_engine: Optional[EstimationEngine] = None,
        scorer: Optional[ConfidenceScorer] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            settings: Application settings (uses defaults if not provided)
            cache: Research Cache (built from DATABASE_URL if not provided)
            search_service: Web search capability
            page_fetcher: Fetcher for authorized vendor pages
            query_builder: Query planner
            search_orchestrator: Pre-configured orchestrator (built from the services otherwise)
            estimation_engine: Date backfill engine
            scorer: Confidence scorer
            progress_callback: Called as (done, total, enriched) during enrich_batch
        """
        self.settings = settings or get_settings()
        self.vendor_catalog = VendorCatalog()
        self._cache = cache
        self.search_service = search_service or SearchService(self.settings)
        self.page_fetcher = page_fetcher or PageFetcher(self.settings, vendor_catalog=self.vendor_catalog)
        self.query_builder = query_builder or QueryBuilder(
            self.vendor_catalog, max_queries=self.settings.max_queries_per_product
        )
        self.scorer = scorer or ConfidenceScorer()
        self.search_orchestrator = search_orchestrator or SearchOrchestrator(
            self.search_service,
            self.page_fetcher,
            scorer=self.scorer,
            vendor_catalog=self.vendor_catalog,
            settings=self.settings,
        )
        self.estimation_engine = estimation_engine or self._default_estimation_engine()
        self.progress_callback = progress_callback
        self._graph = self._build_graph()

    def _default_estimation_engine(self) -> EstimationEngine:
        overrides = None
        if self.settings.vendor_intervals_file:
            overrides = load_interval_overrides(self.settings.vendor_intervals_file)
            logger.info("Vendor interval overrides loaded", path=str(self.settings.vendor_intervals_file))
        return EstimationEngine(vendor_overrides=overrides, vendor_catalog=self.vendor_catalog)

    @property
    def cache(self) -> ResearchCache:
        if self._cache is None:
            self._cache = ResearchCache.from_settings(self.settings)
        return self._cache

    async def __aenter__(self) -> "LifecycleEnrichmentPipeline":
        await self.page_fetcher.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _build_graph(self):
        graph = StateGraph(EnrichmentStateDict)

        graph.add_node("check_cache", self._check_cache_node)
        graph.add_node("research", self._research_node)
        graph.add_node("estimate", self._estimate_node)
        graph.add_node("store_cache", self._store_cache_node)

        graph.set_entry_point("check_cache")
        graph.add_conditional_edges(
            "check_cache",
            self._route_after_cache,
            {
                ROUTE_RESEARCH: "research",
                ROUTE_CACHED: "estimate",
            },
        )
        graph.add_edge("research", "estimate")
        graph.add_edge("estimate", "store_cache")
        graph.add_edge("store_cache", END)

        return graph.compile()

    def _route_after_cache(self, state: EnrichmentStateDict) -> Literal["research", "cached"]:
        return ROUTE_CACHED if state.get("route") == ROUTE_CACHED else ROUTE_RESEARCH

    # =========================================================================
    # Node Implementations
    # =========================================================================

    @track_timing
    async def _check_cache_node(self, state: EnrichmentStateDict) -> dict[str, Any]:
        """Consult the Research Cache before any network activity."""
        product = state["product"]
        if not state.get("use_cache", True):
            return {"route": ROUTE_RESEARCH, "cache_entry": None}

        try:
            entry = self.cache.lookup(product.manufacturer, product.identifier)
        except Exception as e:
            logger.error("Cache lookup failed", error=str(e))
            return {
                "route": ROUTE_RESEARCH,
                "cache_entry": None,
                "errors": [f"Cache lookup failed: {e}"],
            }

        if entry is not None and not entry.is_expired:
            return {
                "route": ROUTE_CACHED,
                "cache_entry": entry,
                "research": cached_research(entry),
            }
        return {"route": ROUTE_RESEARCH, "cache_entry": entry}

    @track_timing
    async def _research_node(self, state: EnrichmentStateDict) -> dict[str, Any]:
        """Plan queries and run the search orchestrator."""
        product = state["product"]
        errors: list[str] = []
        try:
            queries = self.query_builder.build(product)
            research = await self.search_orchestrator.run(queries, product)
        except Exception as e:
            logger.error("Research failed", error_type=type(e).__name__, error=str(e))
            research = ResearchResult.degraded(f"Research failed: {e}")

        if research.is_degraded:
            errors.append(research.error or "Research failed")
            stale = state.get("cache_entry")
            if stale is not None:
                logger.warning("Falling back to expired cache entry", age_days=stale.cache_age_days)
                research = cached_research(stale)

        return {"research": research, "errors": errors}

    @track_timing
    async def _estimate_node(self, state: EnrichmentStateDict) -> dict[str, Any]:
        """Backfill missing dates and compute final confidence."""
        product = state["product"]
        research: ResearchResult = state["research"]

        filled, metadata = self.estimation_engine.estimate(
            research.dates, product.manufacturer, product.identifier
        )
        issues = self.estimation_engine.validate(filled)
        if issues:
            logger.warning("Lifecycle dates out of order", issues=issues)

        if research.from_cache or research.is_expired or research.is_degraded:
            confidence = research.confidence
        else:
            confidence = self.scorer.score(research, metadata.estimated_fields)

        return {
            "dates": filled,
            "estimation": metadata if metadata.engaged else None,
            "confidence": confidence,
            "data_quality_issues": issues,
        }

    @track_timing
    async def _store_cache_node(self, state: EnrichmentStateDict) -> dict[str, Any]:
        """Upsert fresh research into the Research Cache."""
        product = state["product"]
        research: ResearchResult = state["research"]
        if (
            not state.get("use_cache", True)
            or state.get("route") == ROUTE_CACHED
            or research.is_degraded
            or research.from_cache
            or research.is_expired
        ):
            return {}
        if not research.dates.present_fields() and state.get("cache_entry") is None:
            return {}

        estimation: Optional[EstimationMetadata] = state.get("estimation")
        vendor_urls = [e.source_url for e in research.evidence if e.is_vendor and e.source_url]
        try:
            self.cache.upsert(
                product.manufacturer,
                product.identifier,
                research.dates,
                research.confidence.overall,
                research_source=vendor_urls[0] if vendor_urls else "Web Research",
                data_sources={
                    "source_counts": research.source_counts.model_dump(),
                    "urls": research.source_urls(),
                    "stats": research.stats.model_dump(),
                },
                estimation_metadata=estimation.model_dump(mode="json") if estimation else None,
            )
        except Exception as e:
            logger.error("Cache update failed", error=str(e))
            return {"errors": [f"Cache update failed: {e}"]}
        return {}

    # =========================================================================
    # Public API
    # =========================================================================

    async def enrich(self, product: Product, use_cache: bool = True) -> EnrichedProduct:
        """
        Enrich one product with lifecycle dates.

        Args:
            product: Product to research
            use_cache: When False the Research Cache is neither read nor written

        Returns:
            EnrichedProduct; a zero-confidence result if enrichment failed
        """
        initial_state: EnrichmentStateDict = {
            "product": product,
            "use_cache": use_cache,
            "route": ROUTE_RESEARCH,
            "cache_entry": None,
            "research": None,
            "errors": [],
            "step_timings": {},
        }

        with LogContext(manufacturer=product.manufacturer, identifier=product.identifier):
            logger.info("Enrichment started", use_cache=use_cache)
            try:
                final_state = await self._graph.ainvoke(initial_state)
            except Exception as e:
                logger.error("Enrichment failed", error_type=type(e).__name__, error=str(e))
                research = ResearchResult.degraded(f"Enrichment failed: {e}")
                return EnrichedProduct(product=product, research=research, confidence=Confidence())

            research: ResearchResult = final_state["research"]
            enriched = EnrichedProduct(
                product=product,
                research=research,
                dates=final_state.get("dates") or research.dates,
                confidence=final_state.get("confidence") or research.confidence,
                estimation=final_state.get("estimation"),
                data_quality_issues=final_state.get("data_quality_issues", []),
            )
            logger.info(
                "Enrichment completed",
                from_cache=research.from_cache,
                is_current=research.is_current_product,
                confidence=enriched.confidence.overall,
                duration_ms=sum(final_state.get("step_timings", {}).values()),
            )
            return enriched

    async def enrich_batch(
        self,
        products: Sequence[Product],
        use_cache: bool = True,
    ) -> list[EnrichedProduct]:
        """
        Enrich products one after another.

        Args:
            products: Products to enrich
            use_cache: When False the Research Cache is bypassed for reads and writes

        Returns:
            One EnrichedProduct per input, in input order
        """
        total = len(products)
        if use_cache and total:
            try:
                status = self.cache.bulk_lookup(products)
                fresh = sum(1 for s in status.values() if s.fresh)
                logger.info("Batch cache pre-flight", products=total, fresh_cached=fresh)
            except Exception as e:
                logger.warning("Batch cache pre-flight failed", error=str(e))

        results: list[EnrichedProduct] = []
        for done, product in enumerate(products, start=1):
            enriched = await self.enrich(product, use_cache=use_cache)
            results.append(enriched)
            if self.progress_callback:
                try:
                    self.progress_callback(done, total, enriched)
                except Exception as cb_err:
                    logger.warning("Progress callback failed", error=str(cb_err))
        return results

    # =========================================================================
    # Cleanup
    # =========================================================================

    async def close(self) -> None:
        """Close network clients."""
        await self.search_service.close()
        await self.page_fetcher.close()


# =============================================================================
# Convenience Functions
# =============================================================================

async def enrich_product(
    manufacturer: str,
    identifier: str,
    settings: Optional[Settings] = None,
    use_cache: bool = True,
) -> EnrichedProduct:
    """
    Convenience function to enrich a single product.

    Example:
        >>> enriched = await enrich_product("Cisco", "WS-C3850-48P")
        >>> print(enriched.dates.end_of_sale)
    """
    async with LifecycleEnrichmentPipeline(settings=settings) as pipeline:
        return await pipeline.enrich(
            Product(manufacturer=manufacturer, identifier=identifier),
            use_cache=use_cache,
        )
