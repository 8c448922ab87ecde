"""
Search query planning.

Builds a small, priority-ordered list of web search queries for a product:
vendor-domain-restricted queries first, then generic milestone-keyword
queries, then gap-filling queries for the fields that are hardest to find.
"""

from __future__ import annotations

import re
from typing import Optional

from lifecycle_research.config.settings import MAX_QUERIES_CEILING
from lifecycle_research.models.schemas import Product
from lifecycle_research.services.vendors import VendorCatalog, VendorProfile
from lifecycle_research.utils.logger import get_logger

logger = get_logger(__name__)

# Ordering/licensing suffixes that vendors drop in EOL bulletins
_PACKAGING_SUFFIX = re.compile(r"-(K9|L|S|E|P|X|HW|SW|RF|WS)$", re.IGNORECASE)

GENERIC_TEMPLATES: tuple[str, ...] = (
    '"{identifier}" "End-of-Sale" "End-of-Life"',
    '"{identifier}" "Last Date of Support"',
    '"{identifier}" EOL EOS dates {manufacturer}',
    '"{identifier}" "End-of-Life" announcement',
)

GAP_FILLING_TEMPLATES: tuple[str, ...] = (
    '"{identifier}" "security updates" "end date"',
    '"{identifier}" "vulnerability support" end',
    '"{identifier}" "End of SW Maintenance"',
    '"{identifier}" "Product Bulletin" EOL',
)


def base_identifier(identifier: str) -> Optional[str]:
    """Identifier with a trailing packaging suffix removed, if it has one."""
    stripped = _PACKAGING_SUFFIX.sub("", identifier.strip())
    if stripped and stripped.upper() != identifier.strip().upper():
        return stripped
    return None


class QueryBuilder:
    """Produce prioritized search queries for one product."""

    def __init__(
        self,
        vendor_catalog: Optional[VendorCatalog] = None,
        max_queries: int = MAX_QUERIES_CEILING,
    ):
        self.vendor_catalog = vendor_catalog or VendorCatalog()
        self.max_queries = max(1, min(max_queries, MAX_QUERIES_CEILING))

    def _vendor_queries(self, vendor: VendorProfile, identifier: str) -> list[str]:
        queries = [t.format(identifier=identifier) for t in vendor.site_queries]
        queries.append(f'"{identifier}" site:{vendor.primary_domain} "End-of-Sale" "End-of-Life"')
        base = base_identifier(identifier)
        if base:
            queries.append(f'"{base}" site:{vendor.primary_domain} "End-of-Sale"')
        return queries

    def build(self, product: Product) -> list[str]:
        """
        Build the query plan for a product.

        Returns:
            At most ``max_queries`` distinct queries, highest priority first.
        """
        identifier = product.identifier.strip()
        manufacturer = product.manufacturer.strip()
        vendor = self.vendor_catalog.identify(manufacturer, identifier)

        planned: list[str] = []
        if vendor is not None:
            planned.extend(self._vendor_queries(vendor, identifier))
        planned.extend(
            " ".join(t.format(identifier=identifier, manufacturer=manufacturer).split())
            for t in GENERIC_TEMPLATES
        )
        planned.extend(t.format(identifier=identifier) for t in GAP_FILLING_TEMPLATES)

        queries: list[str] = []
        for query in planned:
            if query not in queries:
                queries.append(query)
        queries = queries[: self.max_queries]

        logger.debug(
            "Query plan built",
            identifier=identifier,
            vendor=vendor.key if vendor else None,
            query_count=len(queries),
        )
        return queries
