import pytest

from lifecycle_research.models.schemas import SourceClass
from lifecycle_research.services.vendors import VendorCatalog, contains_keyword


@pytest.fixture
def catalog():
    return VendorCatalog()


@pytest.mark.parametrize("manufacturer,identifier,key", [
    ("Cisco Systems", "", "cisco"),
    ("Cisco Meraki", "MR46", "cisco"),
    ("Hewlett Packard Enterprise", "", "hpe"),
    ("", "WS-C3850-48P", "cisco"),
    ("", "JL256A", "hpe"),
    ("", "EX4300-48T", "juniper"),
    ("", "PA-3220", "paloalto"),
    ("Microsoft", "Windows Server 2012 R2", "microsoft"),
])
def test_identify(catalog, manufacturer, identifier, key):
    assert catalog.identify(manufacturer, identifier).key == key


def test_manufacturer_wins_over_identifier(catalog):
    assert catalog.identify("Juniper", "WS-C3850-48P").key == "juniper"


def test_unknown_vendor(catalog):
    assert catalog.identify("Acme", "XR-500") is None


def test_keyword_requires_word_boundary(catalog):
    assert catalog.identify("Ciscoware Inc", "") is None


@pytest.mark.parametrize("text,keyword,expected", [
    ("HP Inc", "hp", True),
    ("Hewlett-Packard (HP)", "hp", True),
    ("Shopify", "hp", False),
    ("CISCO SYSTEMS", "cisco", True),
])
def test_contains_keyword(text, keyword, expected):
    assert contains_keyword(text, keyword) is expected


def test_classify_source_for_known_vendor(catalog):
    cisco = catalog.get("cisco")
    assert catalog.classify_source("https://www.cisco.com/eol", cisco) == SourceClass.VENDOR_SITE
    assert catalog.classify_source("https://www.juniper.net/eol", cisco) == SourceClass.THIRD_PARTY
    assert catalog.classify_source("https://blog.example.com/eol", cisco) == SourceClass.THIRD_PARTY


def test_classify_source_for_unknown_vendor(catalog):
    assert catalog.classify_source("https://www.juniper.net/eol", None) == SourceClass.VENDOR_SITE
    assert catalog.classify_source("https://blog.example.com/eol", None) == SourceClass.THIRD_PARTY


def test_authorized_domains_include_subdomains(catalog):
    assert catalog.is_authorized("https://learn.microsoft.com/lifecycle/products/x")
    assert not catalog.is_authorized("not a url")
    assert "cisco.com" in catalog.authorized_domains
