"""Data models module for the lifecycle research pipeline."""

from lifecycle_research.models.schemas import (
    # Base Models
    BaseModel,

    # Enums and field metadata
    DateField,
    SourceClass,
    DATE_FIELD_ORDER,
    MILESTONE_FIELDS,
    FIELD_LABELS,

    # Input / Research Models
    Product,
    LifecycleDates,
    Evidence,
    Confidence,
    SourceCounts,
    ResearchStats,
    ResearchResult,

    # Cache Models
    CacheEntry,
    BulkCacheStatus,

    # Output Models
    EstimationMetadata,
    EnrichedProduct,
)

__all__ = [
    "BaseModel",
    "DateField",
    "SourceClass",
    "DATE_FIELD_ORDER",
    "MILESTONE_FIELDS",
    "FIELD_LABELS",
    "Product",
    "LifecycleDates",
    "Evidence",
    "Confidence",
    "SourceCounts",
    "ResearchStats",
    "ResearchResult",
    "CacheEntry",
    "BulkCacheStatus",
    "EstimationMetadata",
    "EnrichedProduct",
]
