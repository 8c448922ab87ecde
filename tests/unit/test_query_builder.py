from lifecycle_research.extractors.query_builder import (
    GAP_FILLING_TEMPLATES,
    QueryBuilder,
    base_identifier,
)
from lifecycle_research.models.schemas import Product


def test_base_identifier_strips_packaging_suffix():
    assert base_identifier("WS-C3850-48P-L") == "WS-C3850-48P"
    assert base_identifier("ASA5506-K9") == "ASA5506"


def test_base_identifier_without_suffix():
    assert base_identifier("WS-C3850-48P") is None


def test_vendor_queries_come_first(cisco_product):
    queries = QueryBuilder().build(cisco_product)
    assert queries[0] == '"WS-C3850-48P" site:cisco.com/c/en/us/products/eos-eol-notice-listing.html'
    assert all("site:cisco.com" in q or "inurl:" in q for q in queries[:3])
    assert len(queries) == len(set(queries))
    assert len(queries) == 11


def test_base_identifier_query_is_added_for_suffixed_parts():
    queries = QueryBuilder().build(Product(manufacturer="Cisco", identifier="WS-C3850-48P-L"))
    assert '"WS-C3850-48P" site:cisco.com "End-of-Sale"' in queries
    assert len(queries) == 12


def test_unknown_vendor_gets_generic_then_gap_filling():
    queries = QueryBuilder().build(Product(manufacturer="Acme", identifier="XR-500"))
    assert queries[0] == '"XR-500" "End-of-Sale" "End-of-Life"'
    assert '"XR-500" EOL EOS dates Acme' in queries
    assert queries[-4:] == [t.format(identifier="XR-500") for t in GAP_FILLING_TEMPLATES]
    assert not any("site:" in q for q in queries)


def test_blank_manufacturer_leaves_no_stray_whitespace():
    queries = QueryBuilder().build(Product(identifier="XR-500"))
    assert '"XR-500" EOL EOS dates' in queries


def test_vendor_recognized_from_identifier_prefix():
    queries = QueryBuilder().build(Product(identifier="WS-C2960X-24TS-L"))
    assert "site:cisco.com" in queries[0]


def test_max_queries_is_honored():
    builder = QueryBuilder(max_queries=3)
    assert len(builder.build(Product(manufacturer="Cisco", identifier="WS-C3850-48P"))) == 3


def test_max_queries_cannot_exceed_ceiling():
    assert QueryBuilder(max_queries=50).max_queries == 12
