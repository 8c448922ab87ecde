"""
Static vendor catalog.

Vendor recognition is a hand-maintained table: manufacturer keywords are
checked first, then identifier prefix patterns. Each vendor family also
carries the set of domains whose pages may be fetched and count as
vendor-site evidence.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional
from urllib.parse import urlparse

from lifecycle_research.models.schemas import SourceClass


def contains_keyword(text: str, keyword: str) -> bool:
    """Whole-word, case-insensitive keyword match."""
    return re.search(rf"(?<![a-z0-9]){re.escape(keyword.lower())}(?![a-z0-9])", text.lower()) is not None


@dataclass(frozen=True)
class VendorProfile:
    """One vendor family."""
    key: str
    display_name: str
    keywords: tuple[str, ...]
    identifier_patterns: tuple[re.Pattern, ...]
    domains: tuple[str, ...]
    site_queries: tuple[str, ...] = field(default_factory=tuple)

    @property
    def primary_domain(self) -> str:
        return self.domains[0]

    def matches_manufacturer(self, manufacturer: str) -> bool:
        return any(contains_keyword(manufacturer, k) for k in self.keywords)

    def matches_identifier(self, identifier: str) -> bool:
        ident = identifier.strip().upper()
        return any(p.match(ident) for p in self.identifier_patterns)

    def owns_host(self, host: str) -> bool:
        return any(_host_in_domain(host, d) for d in self.domains)


def _host_in_domain(host: str, domain: str) -> bool:
    host = host.lower().rstrip(".")
    return host == domain or host.endswith("." + domain)


def _patterns(*expressions: str) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(e, re.IGNORECASE) for e in expressions)


# Order matters: the first matching profile wins.
DEFAULT_VENDORS: tuple[VendorProfile, ...] = (
    VendorProfile(
        key="cisco",
        display_name="Cisco",
        keywords=("cisco", "meraki"),
        identifier_patterns=_patterns(
            r"^WS-", r"^C9\d{2,3}", r"^AIR-", r"^N\d+K-", r"^ISR\d*", r"^ASR\d*",
            r"^(MR|MS|MX|MV|MT|MG)\d+", r"^CISCO\d+",
        ),
        domains=("cisco.com", "meraki.com", "documentation.meraki.com"),
        site_queries=(
            '"{identifier}" site:cisco.com/c/en/us/products/eos-eol-notice-listing.html',
            '"{identifier}" site:cisco.com "End-of-Sale" "End-of-Life"',
            '"{identifier}" inurl:eos-eol-notice site:cisco.com',
        ),
    ),
    VendorProfile(
        key="hpe",
        display_name="HPE",
        keywords=("hpe", "hp", "hewlett packard", "hewlett-packard", "aruba"),
        identifier_patterns=_patterns(r"^(J|JL|JH|JG|JW)\d{3,}"),
        domains=("hpe.com", "hp.com", "arubanetworks.com"),
        site_queries=(
            '"{identifier}" site:hpe.com "end of life"',
            '"{identifier}" site:arubanetworks.com "end of sale"',
        ),
    ),
    VendorProfile(
        key="dell",
        display_name="Dell",
        keywords=("dell", "dell emc", "emc"),
        identifier_patterns=_patterns(r"^POWEREDGE", r"^S\d{4}-ON", r"^N\d{4}"),
        domains=("dell.com", "delltechnologies.com"),
        site_queries=('"{identifier}" site:dell.com "end of life"',),
    ),
    VendorProfile(
        key="juniper",
        display_name="Juniper",
        keywords=("juniper",),
        identifier_patterns=_patterns(r"^(SRX|EX|QFX|ACX|PTX)\d+"),
        domains=("juniper.net",),
        site_queries=('"{identifier}" site:juniper.net "End of Life"',),
    ),
    VendorProfile(
        key="fortinet",
        display_name="Fortinet",
        keywords=("fortinet", "fortigate"),
        identifier_patterns=_patterns(r"^(FG|FWF|FAP|FS)-"),
        domains=("fortinet.com",),
        site_queries=('"{identifier}" site:fortinet.com "End of Order"',),
    ),
    VendorProfile(
        key="paloalto",
        display_name="Palo Alto Networks",
        keywords=("palo alto", "paloalto"),
        identifier_patterns=_patterns(r"^PA-\d+"),
        domains=("paloaltonetworks.com",),
        site_queries=('"{identifier}" site:paloaltonetworks.com "end-of-life"',),
    ),
    VendorProfile(
        key="arista",
        display_name="Arista",
        keywords=("arista",),
        identifier_patterns=_patterns(r"^DCS-\d+"),
        domains=("arista.com",),
        site_queries=('"{identifier}" site:arista.com "End of Sale"',),
    ),
    VendorProfile(
        key="microsoft",
        display_name="Microsoft",
        keywords=("microsoft",),
        identifier_patterns=(),
        domains=("microsoft.com", "docs.microsoft.com", "learn.microsoft.com"),
        site_queries=('"{identifier}" site:learn.microsoft.com lifecycle',),
    ),
    VendorProfile(
        key="vmware",
        display_name="VMware",
        keywords=("vmware",),
        identifier_patterns=(),
        domains=("vmware.com", "docs.vmware.com"),
        site_queries=('"{identifier}" site:vmware.com "end of general support"',),
    ),
)


class VendorCatalog:
    """Lookup over an ordered sequence of vendor profiles."""

    def __init__(self, vendors: Optional[Iterable[VendorProfile]] = None):
        self.vendors: tuple[VendorProfile, ...] = tuple(vendors) if vendors is not None else DEFAULT_VENDORS

    def identify(self, manufacturer: str = "", identifier: str = "") -> Optional[VendorProfile]:
        """Recognize the vendor from manufacturer text, then identifier prefix."""
        if manufacturer:
            for vendor in self.vendors:
                if vendor.matches_manufacturer(manufacturer):
                    return vendor
        if identifier:
            for vendor in self.vendors:
                if vendor.matches_identifier(identifier):
                    return vendor
        return None

    def get(self, key: str) -> Optional[VendorProfile]:
        for vendor in self.vendors:
            if vendor.key == key:
                return vendor
        return None

    @property
    def authorized_domains(self) -> tuple[str, ...]:
        return tuple(d for vendor in self.vendors for d in vendor.domains)

    @staticmethod
    def host_of(url: str) -> str:
        try:
            return (urlparse(url).hostname or "").lower()
        except ValueError:
            return ""

    def is_authorized(self, url: str) -> bool:
        """Whether a URL sits on any vendor's authorized domain."""
        if not url.lower().startswith(("http://", "https://")):
            return False
        host = self.host_of(url)
        return bool(host) and any(v.owns_host(host) for v in self.vendors)

    def classify_source(self, url: str, vendor: Optional[VendorProfile]) -> SourceClass:
        """
        Vendor-site when the URL belongs to the product's vendor family, or to
        any authorized vendor domain when the vendor is unknown.
        """
        host = self.host_of(url)
        if not host:
            return SourceClass.THIRD_PARTY
        if vendor is not None:
            return SourceClass.VENDOR_SITE if vendor.owns_host(host) else SourceClass.THIRD_PARTY
        return SourceClass.VENDOR_SITE if self.is_authorized(url) else SourceClass.THIRD_PARTY
