from datetime import date

import pytest

from lifecycle_research.extractors.date_extractor import DateExtractor
from lifecycle_research.models.schemas import DateField, SourceClass
from lifecycle_research.services.page_fetcher import html_to_text


@pytest.fixture
def extractor(today):
    return DateExtractor(today=today)


def test_extracts_all_bulletin_milestones(extractor, cisco_bulletin):
    evidence = extractor.extract(
        cisco_bulletin,
        "WS-C3850-48P",
        source_url="https://www.cisco.com/c/en/us/products/collateral/eol.html",
        source_class=SourceClass.VENDOR_SITE,
    )
    found = {e.field: e.date_value for e in evidence}
    assert found == {
        DateField.END_OF_SALE: date(2019, 10, 31),
        DateField.END_OF_SW_MAINTENANCE: date(2020, 10, 30),
        DateField.END_OF_SW_VULNERABILITY_SUPPORT: date(2022, 10, 30),
        DateField.LAST_DAY_OF_SUPPORT: date(2025, 10, 31),
    }
    assert [e.field for e in evidence] == [
        DateField.END_OF_SALE,
        DateField.END_OF_SW_MAINTENANCE,
        DateField.END_OF_SW_VULNERABILITY_SUPPORT,
        DateField.LAST_DAY_OF_SUPPORT,
    ]
    assert all(e.is_vendor for e in evidence)
    assert all(e.source_url.startswith("https://www.cisco.com") for e in evidence)


def test_identifier_must_be_present(extractor, cisco_bulletin):
    assert extractor.extract(cisco_bulletin, "WS-C3650-24T") == []


def test_dates_without_keywords_are_ignored(extractor):
    text = "The WS-C3850-48P was mentioned in a blog post on 12-Mar-2018."
    assert extractor.extract(text, "WS-C3850-48P") == []


def test_distractor_milestones_consume_their_dates(extractor):
    text = (
        "WS-C3850-48P End-of-Life Announcement Date: 31-Oct-2018. "
        "End-of-Sale Date: 31-Oct-2019."
    )
    evidence = extractor.extract(text, "WS-C3850-48P")
    assert [(e.field, e.date_value) for e in evidence] == [
        (DateField.END_OF_SALE, date(2019, 10, 31)),
    ]


def test_implausible_years_are_dropped(extractor):
    text = "WS-C3850-48P End-of-Sale Date: 31-Oct-1995"
    assert extractor.extract(text, "WS-C3850-48P") == []


def test_far_future_dates_are_dropped(extractor):
    text = "WS-C3850-48P Last Date of Support: 31-Oct-2099"
    assert extractor.extract(text, "WS-C3850-48P") == []


def test_first_date_wins_per_field(extractor):
    text = (
        "WS-C3850-48P End-of-Sale Date: 31-Oct-2019. "
        "Revised End-of-Sale Date: 30-Nov-2019."
    )
    evidence = extractor.extract(text, "WS-C3850-48P")
    assert len(evidence) == 1
    assert evidence[0].date_value == date(2019, 10, 31)


def test_dates_outside_identifier_window_are_ignored(extractor):
    text = "WS-C3850-48P " + "x " * 600 + "End-of-Sale Date: 31-Oct-2019"
    assert extractor.extract(text, "WS-C3850-48P") == []


def test_keyword_after_date_is_used_when_none_precedes(extractor):
    text = "WS-C3850-48P: 31-Oct-2019 is the last day to order."
    evidence = extractor.extract(text, "WS-C3850-48P")
    assert [(e.field, e.date_value) for e in evidence] == [
        (DateField.END_OF_SALE, date(2019, 10, 31)),
    ]


def test_identifier_match_is_case_insensitive(extractor):
    text = "ws-c3850-48p end-of-sale date: 31-Oct-2019"
    evidence = extractor.extract(text, "WS-C3850-48P")
    assert evidence[0].field == DateField.END_OF_SALE
    assert evidence[0].context


EOL_TABLE = """
<table>
  <tr><th>Product</th><th>End-of-Sale Date</th><th>Last Date of Support</th></tr>
  <tr><td>WS-C3850-48P</td><td>31-Oct-2019</td><td>31-Oct-2025</td></tr>
</table>
"""


def test_table_dates_follow_column_headers(extractor):
    evidence = extractor.extract(html_to_text(EOL_TABLE), "WS-C3850-48P")
    assert {e.field: e.date_value for e in evidence} == {
        DateField.END_OF_SALE: date(2019, 10, 31),
        DateField.LAST_DAY_OF_SUPPORT: date(2025, 10, 31),
    }


def test_table_row_of_another_product_is_skipped(extractor):
    html = """
    <table>
      <tr><th>Product</th><th>End-of-Sale Date</th><th>Last Date of Support</th></tr>
      <tr><td>WS-C3650-24T</td><td>30-Apr-2018</td><td>30-Apr-2023</td></tr>
      <tr><td>WS-C3850-48P</td><td>31-Oct-2019</td><td>31-Oct-2025</td></tr>
    </table>
    """
    evidence = extractor.extract(html_to_text(html), "WS-C3850-48P")
    assert {e.field: e.date_value for e in evidence} == {
        DateField.END_OF_SALE: date(2019, 10, 31),
        DateField.LAST_DAY_OF_SUPPORT: date(2025, 10, 31),
    }


def test_pipe_separated_table(extractor):
    text = (
        "Product | End-of-Sale Date | Last Date of Support\n"
        "WS-C3850-48P | 31-Oct-2019 | 31-Oct-2025"
    )
    evidence = extractor.extract(text, "WS-C3850-48P")
    assert [(e.field, e.date_value) for e in evidence] == [
        (DateField.END_OF_SALE, date(2019, 10, 31)),
        (DateField.LAST_DAY_OF_SUPPORT, date(2025, 10, 31)),
    ]


def test_title_keyword_does_not_make_a_table(extractor):
    text = "Cisco EOL Bulletin\nCatalyst End-of-Sale Date: 31-Oct-2019 for WS-C3850-48P"
    evidence = extractor.extract(text, "WS-C3850-48P")
    assert [(e.field, e.date_value) for e in evidence] == [
        (DateField.END_OF_SALE, date(2019, 10, 31)),
    ]
