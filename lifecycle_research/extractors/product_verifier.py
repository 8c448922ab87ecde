"""
Product identity verification.

A page that mentions dates is only useful if it is about the queried
product. Vendor bulletins often list models without their ordering prefix
or with spaces instead of hyphens, and sometimes name a product only to
exclude it.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Optional, Sequence

from lifecycle_research.utils.logger import get_logger

logger = get_logger(__name__)

EXCLUSION_PHRASES: tuple[str, ...] = (
    "not applicable to",
    "excludes",
    "except for",
    "does not apply to",
    "not affected",
)

# Phrases that exclude the product when they follow the identifier
TRAILING_EXCLUSION_PHRASES: tuple[str, ...] = (
    "is not affected",
    "are not affected",
    "is excluded",
    "are excluded",
)

MIN_VARIANT_LENGTH = 4
MAX_EXCLUSION_DISTANCE = 200


def identifier_variants(identifier: str) -> list[str]:
    """
    Lowercased spellings under which a product may appear.

    For ``PREFIX-CORE-SUFFIX`` this yields the full identifier, the full
    identifier with spaces for hyphens, the identifier without its prefix
    segment, and that core part with spaces for hyphens.
    """
    full = identifier.strip().lower()
    if not full:
        return []
    candidates = [full, full.replace("-", " ")]
    segments = full.split("-")
    if len(segments) >= 2:
        core = "-".join(segments[1:])
        candidates.extend([core, core.replace("-", " ")])

    variants: list[str] = []
    for candidate in candidates:
        if len(candidate) >= MIN_VARIANT_LENGTH and candidate not in variants:
            variants.append(candidate)
    return variants


def _variant_regex(variant: str) -> str:
    return rf"(?<![a-z0-9]){re.escape(variant)}(?![a-z0-9])"


class ProductVerifier:
    """Confirm that page text concerns the queried product."""

    def __init__(
        self,
        exclusion_phrases: Sequence[str] = EXCLUSION_PHRASES,
        trailing_exclusion_phrases: Sequence[str] = TRAILING_EXCLUSION_PHRASES,
    ):
        self.exclusion_phrases = tuple(p.lower() for p in exclusion_phrases)
        self.trailing_exclusion_phrases = tuple(p.lower() for p in trailing_exclusion_phrases)

    def find_variant(self, page_text: str, product_identifier: str) -> Optional[str]:
        """First identifier variant present in the text, or None."""
        text = page_text.lower()
        for variant in identifier_variants(product_identifier):
            if re.search(_variant_regex(variant), text):
                return variant
        return None

    def is_excluded(self, page_text: str, product_identifier: str) -> bool:
        """Whether the text explicitly excludes the product."""
        text = page_text.lower()
        for variant in identifier_variants(product_identifier):
            target = _variant_regex(variant)
            for phrase in self.exclusion_phrases:
                pattern = rf"{re.escape(phrase)}[^.]{{0,{MAX_EXCLUSION_DISTANCE}}}?{target}"
                if re.search(pattern, text):
                    return True
            for phrase in self.trailing_exclusion_phrases:
                pattern = rf"{target}[^.]{{0,{MAX_EXCLUSION_DISTANCE}}}?{re.escape(phrase)}"
                if re.search(pattern, text):
                    return True
        return False

    def verify(
        self,
        page_text: str,
        product_identifier: str,
        candidate_dates: Optional[Sequence[date]] = None,
    ) -> bool:
        """
        Check that page text is evidence about this product.

        Args:
            page_text: Visible text of the page or search snippet.
            product_identifier: The queried identifier.
            candidate_dates: Dates extracted from the text. An explicitly
                empty sequence fails verification.

        Returns:
            True when a variant of the identifier is present and the text
            does not exclude it.
        """
        if not page_text or not product_identifier.strip():
            return False
        if candidate_dates is not None and len(candidate_dates) == 0:
            return False

        variant = self.find_variant(page_text, product_identifier)
        if variant is None:
            logger.debug("Product not found on page", identifier=product_identifier)
            return False

        if self.is_excluded(page_text, product_identifier):
            logger.info("Page explicitly excludes product", identifier=product_identifier)
            return False

        return True
