"""
Lifecycle date estimation.

Backfills missing milestone dates from one known anchor date using year
offsets measured from end-of-sale. Vendor override values are empirical
tuning constants, so they are plain configuration data: pass a different
table to ``EstimationEngine`` or point ``VENDOR_INTERVALS_FILE`` at a JSON
file to replace them.
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Any, Mapping, Optional

from lifecycle_research.models.schemas import (
    FIELD_LABELS,
    MILESTONE_FIELDS,
    DateField,
    EstimationMetadata,
    LifecycleDates,
)
from lifecycle_research.services.vendors import VendorCatalog, contains_keyword
from lifecycle_research.utils.logger import get_logger

logger = get_logger(__name__)

# Years after end-of-sale at which each later milestone falls
DEFAULT_OFFSETS: dict[DateField, int] = {
    DateField.END_OF_SALE: 0,
    DateField.END_OF_SW_MAINTENANCE: 3,
    DateField.END_OF_SW_VULNERABILITY_SUPPORT: 4,
    DateField.LAST_DAY_OF_SUPPORT: 5,
}

# Vendor key -> offsets that differ from the defaults
DEFAULT_VENDOR_OVERRIDES: dict[str, dict[DateField, int]] = {
    "cisco": {
        DateField.END_OF_SW_MAINTENANCE: 1,
        DateField.END_OF_SW_VULNERABILITY_SUPPORT: 3,
        DateField.LAST_DAY_OF_SUPPORT: 5,
    },
    "microsoft": {
        DateField.END_OF_SW_MAINTENANCE: 5,
        DateField.END_OF_SW_VULNERABILITY_SUPPORT: 8,
        DateField.LAST_DAY_OF_SUPPORT: 10,
    },
    "hpe": {
        DateField.END_OF_SW_MAINTENANCE: 3,
        DateField.END_OF_SW_VULNERABILITY_SUPPORT: 4,
        DateField.LAST_DAY_OF_SUPPORT: 5,
    },
    "dell": {
        DateField.END_OF_SW_MAINTENANCE: 3,
        DateField.END_OF_SW_VULNERABILITY_SUPPORT: 4,
        DateField.LAST_DAY_OF_SUPPORT: 5,
    },
}

ANCHOR_PRIORITY: tuple[DateField, ...] = (
    DateField.END_OF_SALE,
    DateField.LAST_DAY_OF_SUPPORT,
    DateField.END_OF_SW_MAINTENANCE,
    DateField.END_OF_SW_VULNERABILITY_SUPPORT,
)

CONFIDENCE_MULTIPLE_ORIGINALS = 85
CONFIDENCE_SINGLE_ORIGINAL = 80


def shift_years(value: date, years: int) -> date:
    """Add whole years; Feb 29 lands on Feb 28 in non-leap years."""
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        return value.replace(year=value.year + years, day=28)


def load_interval_overrides(path: Path | str) -> dict[str, dict[DateField, int]]:
    """
    Load vendor overrides from JSON.

    Expected shape::

        {"cisco": {"end_of_sw_maintenance": 1, "last_day_of_support": 5}}
    """
    raw: dict[str, Any] = json.loads(Path(path).read_text(encoding="utf-8"))
    overrides: dict[str, dict[DateField, int]] = {}
    for vendor, offsets in raw.items():
        overrides[vendor.lower()] = {DateField(k): int(v) for k, v in offsets.items()}
    return overrides


class EstimationEngine:
    """Fill missing milestone dates from an anchor date."""

    def __init__(
        self,
        vendor_overrides: Optional[Mapping[str, Mapping[DateField, int]]] = None,
        base_offsets: Optional[Mapping[DateField, int]] = None,
        vendor_catalog: Optional[VendorCatalog] = None,
    ):
        self.base_offsets = dict(base_offsets or DEFAULT_OFFSETS)
        self.vendor_overrides = {
            k.lower(): dict(v)
            for k, v in (vendor_overrides if vendor_overrides is not None else DEFAULT_VENDOR_OVERRIDES).items()
        }
        self.vendor_catalog = vendor_catalog or VendorCatalog()

    def _resolve_vendor(self, manufacturer: str, identifier: str) -> Optional[str]:
        profile = self.vendor_catalog.identify(manufacturer, identifier)
        if profile is not None and profile.key in self.vendor_overrides:
            return profile.key
        for key in self.vendor_overrides:
            if key and contains_keyword(manufacturer, key):
                return key
        return None

    def offsets_for(self, vendor: Optional[str]) -> dict[DateField, int]:
        offsets = dict(self.base_offsets)
        if vendor:
            offsets.update(self.vendor_overrides.get(vendor, {}))
        return offsets

    def estimate(
        self,
        partial_dates: LifecycleDates,
        manufacturer: str = "",
        identifier: str = "",
    ) -> tuple[LifecycleDates, EstimationMetadata]:
        """
        Backfill missing milestone dates.

        Args:
            partial_dates: Dates found by research.
            manufacturer: Used to pick vendor overrides.
            identifier: Used to pick vendor overrides when the manufacturer is blank.

        Returns:
            (filled dates, metadata). Fields already present are never changed.
        """
        original_count = partial_dates.milestone_count()
        anchor = next((f for f in ANCHOR_PRIORITY if partial_dates.get(f) is not None), None)
        if anchor is None:
            return partial_dates, EstimationMetadata(original_dates_count=0)

        vendor = self._resolve_vendor(manufacturer, identifier)
        offsets = self.offsets_for(vendor)
        anchor_date = partial_dates.get(anchor)
        anchor_offset = offsets[anchor]

        filled = partial_dates
        estimated: set[DateField] = set()
        for target in MILESTONE_FIELDS:
            if filled.get(target) is not None:
                continue
            filled = filled.with_field(target, shift_years(anchor_date, offsets[target] - anchor_offset))
            estimated.add(target)

        metadata = EstimationMetadata(
            estimated_fields=estimated,
            basis_field=anchor,
            estimation_confidence=(
                CONFIDENCE_MULTIPLE_ORIGINALS if original_count >= 2 else CONFIDENCE_SINGLE_ORIGINAL
            ),
            vendor_specific=vendor is not None,
            vendor=vendor,
            original_dates_count=original_count,
        )
        if estimated:
            logger.debug(
                "Dates estimated",
                basis=anchor.value,
                vendor=vendor,
                estimated=sorted(f.value for f in estimated),
            )
        return filled, metadata

    @staticmethod
    def validate(dates: LifecycleDates) -> list[str]:
        """Ordering-invariant violations, reported but never corrected."""
        return dates.ordering_issues()

    def report(self, filled: LifecycleDates, metadata: EstimationMetadata) -> dict[str, Any]:
        """Summary of what was found versus estimated."""
        estimated = {DateField(f) for f in metadata.estimated_fields}
        return {
            "original_fields": [
                FIELD_LABELS[f] for f in filled.present_fields() if f not in estimated
            ],
            "estimated_fields": [FIELD_LABELS[f] for f in MILESTONE_FIELDS if f in estimated],
            "basis": FIELD_LABELS[DateField(metadata.basis_field)] if metadata.basis_field else None,
            "estimation_confidence": metadata.estimation_confidence,
            "vendor": metadata.vendor,
            "vendor_specific": metadata.vendor_specific,
            "ordering_issues": self.validate(filled),
        }
