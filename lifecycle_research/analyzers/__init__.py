"""Analyzers module: confidence scoring and date estimation."""

from lifecycle_research.analyzers.confidence import (
    ConfidenceScorer,
    merge_all,
    merge_evidence,
)
from lifecycle_research.analyzers.estimation import (
    DEFAULT_OFFSETS,
    DEFAULT_VENDOR_OVERRIDES,
    EstimationEngine,
    load_interval_overrides,
)

__all__ = [
    "ConfidenceScorer",
    "merge_evidence",
    "merge_all",
    "EstimationEngine",
    "DEFAULT_OFFSETS",
    "DEFAULT_VENDOR_OVERRIDES",
    "load_interval_overrides",
]
