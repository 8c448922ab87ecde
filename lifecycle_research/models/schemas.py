"""
Pydantic models and schemas for the lifecycle research pipeline.

This module defines all data structures passed between pipeline stages,
ensuring type safety, validation, and serialization consistency.

Models:
    - Product: Identity input for one enrichment call
    - LifecycleDates: The five lifecycle milestone dates
    - Evidence: One extracted (field, date, source) triple
    - ResearchResult: Output of the research stage
    - CacheEntry: Research Cache row as seen by callers
    - EstimationMetadata: What the Estimation Engine filled in
    - EnrichedProduct: Final pipeline output
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel as PydanticBaseModel,
    ConfigDict,
    Field,
    field_validator,
)


# =============================================================================
# Base Configuration
# =============================================================================

class BaseModel(PydanticBaseModel):
    """Base model with common configuration for all schemas."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=False,
        populate_by_name=True,
    )

    def to_json(self, **kwargs) -> str:
        """Serialize model to JSON string."""
        return self.model_dump_json(indent=2, **kwargs)


# =============================================================================
# Enums
# =============================================================================

class DateField(str, Enum):
    """Lifecycle date fields, in chronological order."""
    INTRODUCED = "introduced"
    END_OF_SALE = "end_of_sale"
    END_OF_SW_MAINTENANCE = "end_of_sw_maintenance"
    END_OF_SW_VULNERABILITY_SUPPORT = "end_of_sw_vulnerability_support"
    LAST_DAY_OF_SUPPORT = "last_day_of_support"


# Chronological order used by the ordering invariant
DATE_FIELD_ORDER: tuple[DateField, ...] = tuple(DateField)

# Milestone fields: everything except the introduction date
MILESTONE_FIELDS: tuple[DateField, ...] = DATE_FIELD_ORDER[1:]

FIELD_LABELS: dict[DateField, str] = {
    DateField.INTRODUCED: "Introduced",
    DateField.END_OF_SALE: "End of Sale",
    DateField.END_OF_SW_MAINTENANCE: "End of SW Maintenance",
    DateField.END_OF_SW_VULNERABILITY_SUPPORT: "End of SW Vulnerability Support",
    DateField.LAST_DAY_OF_SUPPORT: "Last Day of Support",
}


class SourceClass(str, Enum):
    """Provenance of a piece of evidence."""
    VENDOR_SITE = "vendor_site"
    THIRD_PARTY = "third_party"


# =============================================================================
# Input Models
# =============================================================================

class Product(BaseModel):
    """
    Identity input for one enrichment call.

    The identifier (vendor part/model number) is the primary correlation key.
    """

    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        frozen=True,
    )

    manufacturer: str = Field(
        default="",
        description="Manufacturer free text, may be empty",
        examples=["Cisco"],
    )
    identifier: str = Field(
        ...,
        min_length=1,
        description="Vendor part or model number",
        examples=["WS-C3850-48P"],
    )
    description: Optional[str] = Field(default=None)
    category: Optional[str] = Field(default=None)

    @property
    def label(self) -> str:
        return f"{self.manufacturer} {self.identifier}".strip()


# =============================================================================
# Lifecycle Dates
# =============================================================================

class LifecycleDates(BaseModel):
    """
    Five optional lifecycle milestone dates.

    Invariant when present:
    introduced <= end_of_sale <= end_of_sw_maintenance
    <= end_of_sw_vulnerability_support <= last_day_of_support
    """

    introduced: Optional[date] = None
    end_of_sale: Optional[date] = None
    end_of_sw_maintenance: Optional[date] = None
    end_of_sw_vulnerability_support: Optional[date] = None
    last_day_of_support: Optional[date] = None

    def get(self, field: DateField | str) -> Optional[date]:
        return getattr(self, DateField(field).value)

    def with_field(self, field: DateField | str, value: Optional[date]) -> "LifecycleDates":
        """Return a copy with one field replaced."""
        return self.model_copy(update={DateField(field).value: value})

    def present_fields(self) -> list[DateField]:
        return [f for f in DATE_FIELD_ORDER if self.get(f) is not None]

    def milestone_count(self) -> int:
        return sum(1 for f in MILESTONE_FIELDS if self.get(f) is not None)

    def has_milestone(self) -> bool:
        return self.milestone_count() > 0

    def ordering_issues(self) -> list[str]:
        """Describe every pair of present fields that violates chronological order."""
        issues = []
        present = [(f, self.get(f)) for f in DATE_FIELD_ORDER if self.get(f) is not None]
        for i, (earlier, earlier_date) in enumerate(present):
            for later, later_date in present[i + 1:]:
                if earlier_date > later_date:
                    issues.append(
                        f"{FIELD_LABELS[earlier]} date ({earlier_date.isoformat()}) "
                        f"should not be after {FIELD_LABELS[later]} date ({later_date.isoformat()})"
                    )
        return issues


# =============================================================================
# Research Models
# =============================================================================

class Evidence(BaseModel):
    """One extracted date for one field, with its provenance."""

    field: DateField
    date_value: date
    source_url: str = ""
    source_class: SourceClass = SourceClass.THIRD_PARTY
    context: Optional[str] = Field(
        default=None,
        description="Text surrounding the date, for debugging",
    )
    position: Optional[int] = Field(
        default=None,
        description="Character offset of the date within the source text",
    )

    @property
    def is_vendor(self) -> bool:
        return self.source_class == SourceClass.VENDOR_SITE


class Confidence(BaseModel):
    """Confidence on a 0-100 scale."""

    overall: int = Field(default=0, ge=0, le=100)
    lifecycle: int = Field(default=0, ge=0, le=100)


class SourceCounts(BaseModel):
    """Number of verified sources that contributed evidence, by class."""

    vendor_site: int = Field(default=0, ge=0)
    third_party: int = Field(default=0, ge=0)

    def add(self, source_class: SourceClass | str) -> None:
        if SourceClass(source_class) == SourceClass.VENDOR_SITE:
            self.vendor_site += 1
        else:
            self.third_party += 1


class ResearchStats(BaseModel):
    """Bookkeeping for one orchestrated research run."""

    queries_planned: int = 0
    queries_executed: int = 0
    queries_failed: int = 0
    queries_skipped: int = 0
    batches_run: int = 0
    pages_fetched: int = 0
    early_exit: bool = False


class ResearchResult(BaseModel):
    """Dates, evidence and confidence produced by the research stage."""

    dates: LifecycleDates = Field(default_factory=LifecycleDates)
    evidence: list[Evidence] = Field(default_factory=list)
    confidence: Confidence = Field(default_factory=Confidence)
    is_current_product: bool = False
    source_counts: SourceCounts = Field(default_factory=SourceCounts)
    stats: ResearchStats = Field(default_factory=ResearchStats)
    from_cache: bool = False
    is_expired: bool = False
    error: Optional[str] = None

    @property
    def is_degraded(self) -> bool:
        return self.error is not None

    @classmethod
    def degraded(cls, error: str, stats: Optional[ResearchStats] = None) -> "ResearchResult":
        """Zero-confidence result for a product whose research failed outright."""
        return cls(error=error, stats=stats or ResearchStats())

    def source_urls(self) -> list[str]:
        seen: list[str] = []
        for item in self.evidence:
            if item.source_url and item.source_url not in seen:
                seen.append(item.source_url)
        return seen


# =============================================================================
# Cache Models
# =============================================================================

class CacheEntry(BaseModel):
    """A Research Cache row as returned by lookup."""

    manufacturer: str
    identifier: str
    dates: LifecycleDates = Field(default_factory=LifecycleDates)
    research_timestamp: datetime
    confidence_score: int = Field(default=90, ge=0, le=100)
    research_source: Optional[str] = None
    data_sources: dict[str, Any] = Field(default_factory=dict)
    estimation_metadata: Optional[dict[str, Any]] = None
    is_expired: bool = False
    from_cache: bool = False
    cache_age_days: int = 0


class BulkCacheStatus(BaseModel):
    """Pre-flight cache status for one product."""

    cached: bool = False
    fresh: bool = False
    research_timestamp: Optional[datetime] = None
    confidence: Optional[int] = None


# =============================================================================
# Estimation / Output Models
# =============================================================================

class EstimationMetadata(BaseModel):
    """Which fields the Estimation Engine supplied, and from what."""

    estimated_fields: set[DateField] = Field(default_factory=set)
    basis_field: Optional[DateField] = None
    estimation_confidence: int = Field(default=0, ge=0, le=100)
    vendor_specific: bool = False
    vendor: Optional[str] = None
    original_dates_count: int = 0

    @field_validator("estimated_fields", mode="before")
    @classmethod
    def coerce_fields(cls, v: Any) -> Any:
        if v is None:
            return set()
        return v

    @property
    def engaged(self) -> bool:
        return bool(self.estimated_fields)


class EnrichedProduct(BaseModel):
    """Research result plus estimation, the final pipeline output."""

    product: Product
    research: ResearchResult
    dates: LifecycleDates = Field(default_factory=LifecycleDates)
    confidence: Confidence = Field(default_factory=Confidence)
    estimation: Optional[EstimationMetadata] = None
    data_quality_issues: list[str] = Field(default_factory=list)
    enriched_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_current_product(self) -> bool:
        return self.research.is_current_product

    @property
    def from_cache(self) -> bool:
        return self.research.from_cache


__all__ = [
    "BaseModel",
    "DateField",
    "DATE_FIELD_ORDER",
    "MILESTONE_FIELDS",
    "FIELD_LABELS",
    "SourceClass",
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
