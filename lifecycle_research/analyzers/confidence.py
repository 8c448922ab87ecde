"""
Evidence merging and confidence scoring.

Merge policy is first-found-wins with vendor-source priority. Scores are on
a 0-100 scale and are monotonic in provenance: a third-party-only result
never outscores a vendor-site result with the same field coverage.

A result with no milestone evidence at all is scored 100 and flagged as a
current product. This optimistic default is a business policy carried over
from the existing system: absence of published end-of-life dates is taken
to mean the product is still sold and supported, which will be wrong for
poorly documented products that are in fact end-of-life.
"""

from __future__ import annotations

from typing import Iterable, MutableMapping

from lifecycle_research.models.schemas import (
    MILESTONE_FIELDS,
    Confidence,
    DateField,
    Evidence,
    ResearchResult,
    SourceClass,
)

# Base score by strongest source class
VENDOR_BASE = 60
THIRD_PARTY_BASE = 30

# Increments per directly found / estimated milestone field
FOUND_LIFECYCLE_INCREMENT = 10
FOUND_OVERALL_INCREMENT = 8
ESTIMATED_LIFECYCLE_INCREMENT = 5
ESTIMATED_OVERALL_INCREMENT = 4

# (lifecycle, overall) caps by strongest source class
VENDOR_CAPS = (95, 90)
THIRD_PARTY_CAPS = (80, 75)

# Floors once anything was found
MIN_LIFECYCLE = 50
MIN_OVERALL = 45

CURRENT_PRODUCT_SCORE = 100


def merge_evidence(held: MutableMapping[DateField, Evidence], incoming: Evidence) -> bool:
    """
    Merge one Evidence into the per-field winners.

    An empty field accepts the first Evidence offered. Vendor-site Evidence
    replaces held third-party Evidence. Nothing else replaces a held value.

    Returns:
        True when ``held`` changed.
    """
    field = DateField(incoming.field)
    current = held.get(field)
    if current is None:
        held[field] = incoming
        return True
    if incoming.is_vendor and not current.is_vendor:
        held[field] = incoming
        return True
    return False


def merge_all(held: MutableMapping[DateField, Evidence], items: Iterable[Evidence]) -> int:
    """Merge a sequence of Evidence, returning how many changed ``held``."""
    return sum(1 for item in items if merge_evidence(held, item))


class ConfidenceScorer:
    """Derive overall and lifecycle confidence for a research result."""

    def score(
        self,
        result: ResearchResult,
        estimated_fields: Iterable[DateField | str] = (),
    ) -> Confidence:
        """
        Score a research result.

        Args:
            result: Merged research output; its dates and evidence decide coverage.
            estimated_fields: Fields supplied by estimation rather than research.

        Returns:
            Confidence with overall and lifecycle scores.
        """
        if result.is_degraded:
            return Confidence(overall=0, lifecycle=0)
        if self.is_current_product(result):
            return Confidence(overall=CURRENT_PRODUCT_SCORE, lifecycle=CURRENT_PRODUCT_SCORE)

        estimated = {DateField(f) for f in estimated_fields}
        found = [
            f for f in MILESTONE_FIELDS
            if result.dates.get(f) is not None and f not in estimated
        ]
        estimated_count = sum(1 for f in estimated if f in MILESTONE_FIELDS)

        has_vendor = self._has_vendor_evidence(result)
        base = VENDOR_BASE if has_vendor else THIRD_PARTY_BASE
        lifecycle_cap, overall_cap = VENDOR_CAPS if has_vendor else THIRD_PARTY_CAPS

        lifecycle = (
            base
            + FOUND_LIFECYCLE_INCREMENT * len(found)
            + ESTIMATED_LIFECYCLE_INCREMENT * estimated_count
        )
        overall = (
            base
            + FOUND_OVERALL_INCREMENT * len(found)
            + ESTIMATED_OVERALL_INCREMENT * estimated_count
        )
        lifecycle = max(MIN_LIFECYCLE, min(lifecycle, lifecycle_cap))
        overall = max(MIN_OVERALL, min(overall, overall_cap))
        return Confidence(overall=overall, lifecycle=lifecycle)

    @staticmethod
    def is_current_product(result: ResearchResult) -> bool:
        """No milestone evidence at all, from research or cache."""
        if result.is_degraded:
            return False
        has_milestone_evidence = any(
            DateField(e.field) in MILESTONE_FIELDS for e in result.evidence
        )
        return not has_milestone_evidence and not result.dates.has_milestone()

    @staticmethod
    def _has_vendor_evidence(result: ResearchResult) -> bool:
        if any(e.source_class == SourceClass.VENDOR_SITE for e in result.evidence):
            return True
        return result.source_counts.vendor_site > 0
