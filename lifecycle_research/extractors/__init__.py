"""
Extractors module for the lifecycle research pipeline.

Components:
    - DateNormalizer: Date string recognition and normalization
    - DateExtractor: Keyword-attributed lifecycle date extraction
    - ProductVerifier: Confirms a page is about the product
    - QueryBuilder: Priority-ordered search query plans
"""

from lifecycle_research.extractors.date_normalizer import DateMatch, DateNormalizer, normalize_date
from lifecycle_research.extractors.date_extractor import DateExtractor
from lifecycle_research.extractors.product_verifier import ProductVerifier, identifier_variants
from lifecycle_research.extractors.query_builder import QueryBuilder, base_identifier

__all__ = [
    "DateMatch",
    "DateNormalizer",
    "normalize_date",
    "DateExtractor",
    "ProductVerifier",
    "identifier_variants",
    "QueryBuilder",
    "base_identifier",
]
