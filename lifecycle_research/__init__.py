"""
Product Lifecycle Research Pipeline.

Researches, verifies, caches and estimates the lifecycle milestone dates
(introduction, end of sale, end of software maintenance, end of
vulnerability support, last day of support) of hardware and software
products using web search, LangGraph and a relational Research Cache.
"""

__version__ = "1.0.0"
__author__ = "Product Lifecycle Research Team"

# Lazy imports to avoid circular dependencies
def get_pipeline():
    """Get the LifecycleEnrichmentPipeline class (lazy import)."""
    from lifecycle_research.pipeline.orchestrator import LifecycleEnrichmentPipeline
    return LifecycleEnrichmentPipeline

__all__ = ["get_pipeline", "__version__"]
