"""Pipeline module for the lifecycle research pipeline."""

from lifecycle_research.pipeline.orchestrator import (
    EnrichmentStateDict,
    LifecycleEnrichmentPipeline,
    enrich_product,
)
from lifecycle_research.pipeline.search_orchestrator import QueryOutcome, SearchOrchestrator

__all__ = [
    "LifecycleEnrichmentPipeline",
    "EnrichmentStateDict",
    "enrich_product",
    "SearchOrchestrator",
    "QueryOutcome",
]
