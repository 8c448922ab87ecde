"""
Date text normalization.

Turns the date notations found in vendor bulletins and support pages into
``datetime.date`` values. Patterns are tried in a fixed priority order; the
vendor abbreviated form (``31-Jan-2015``) goes first so that generic
numeric patterns never misread it.

Fiscal quarters are mapped with a fixed calendar-aligned rule: quarter N of
a year ends on the last day of month 3N of that year (Q1 -> Mar 31,
Q2 -> Jun 30, Q3 -> Sep 30, Q4 -> Dec 31). Month-only dates resolve to the
last day of the month.
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from lifecycle_research.utils.logger import get_logger

logger = get_logger(__name__)

MONTHS: dict[str, int] = {
    "jan": 1, "january": 1,
    "feb": 2, "february": 2,
    "mar": 3, "march": 3,
    "apr": 4, "april": 4,
    "may": 5,
    "jun": 6, "june": 6,
    "jul": 7, "july": 7,
    "aug": 8, "august": 8,
    "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10,
    "nov": 11, "november": 11,
    "dec": 12, "december": 12,
}

_MONTH_ALT = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?"
    r"|aug(?:ust)?|sept?(?:ember)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
)


@dataclass(frozen=True)
class DateMatch:
    """A date found in free text."""
    value: date
    start: int
    end: int
    text: str
    pattern: str


def _expand_year(raw: str) -> int:
    year = int(raw)
    if len(raw) == 2:
        return 1900 + year if year > 50 else 2000 + year
    return year


def _month_number(raw: str) -> Optional[int]:
    return MONTHS.get(raw.lower().rstrip("."))


def _last_day(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def _build_day_month_abbrev(m: re.Match) -> Optional[date]:
    month = _month_number(m.group("month"))
    if month is None:
        return None
    return date(_expand_year(m.group("year")), month, int(m.group("day")))


def _build_iso(m: re.Match) -> date:
    return date(int(m.group("year")), int(m.group("month")), int(m.group("day")))


def _build_slash(m: re.Match) -> date:
    return date(_expand_year(m.group("year")), int(m.group("month")), int(m.group("day")))


def _build_dotted(m: re.Match) -> date:
    return date(_expand_year(m.group("year")), int(m.group("month")), int(m.group("day")))


def _build_written(m: re.Match) -> Optional[date]:
    month = _month_number(m.group("month"))
    if month is None:
        return None
    return date(int(m.group("year")), month, int(m.group("day")))


def _build_quarter(m: re.Match) -> date:
    quarter = int(m.group("quarter"))
    return _last_day(_expand_year(m.group("year")), quarter * 3)


def _build_month_year(m: re.Match) -> Optional[date]:
    month = _month_number(m.group("month"))
    if month is None:
        return None
    return _last_day(int(m.group("year")), month)


# (name, compiled pattern, builder) in priority order
_PATTERNS: list[tuple[str, re.Pattern, Callable[[re.Match], Optional[date]]]] = [
    (
        "day_month_abbrev",
        re.compile(
            rf"(?<!\d)(?P<day>\d{{1,2}})[-\s](?P<month>{_MONTH_ALT})\.?[-\s,]+(?P<year>\d{{4}}|\d{{2}})(?!\d)",
            re.IGNORECASE,
        ),
        _build_day_month_abbrev,
    ),
    (
        "iso",
        re.compile(r"(?<!\d)(?P<year>\d{4})-(?P<month>\d{1,2})-(?P<day>\d{1,2})(?!\d)"),
        _build_iso,
    ),
    (
        "slash",
        re.compile(r"(?<!\d)(?P<month>\d{1,2})/(?P<day>\d{1,2})/(?P<year>\d{4})(?!\d)"),
        _build_slash,
    ),
    (
        "dotted",
        re.compile(r"(?<!\d)(?P<day>\d{1,2})\.(?P<month>\d{1,2})\.(?P<year>\d{4})(?!\d)"),
        _build_dotted,
    ),
    (
        "written",
        re.compile(
            rf"\b(?P<month>{_MONTH_ALT})\.?\s+(?P<day>\d{{1,2}})(?:st|nd|rd|th)?,?\s+(?P<year>\d{{4}})(?!\d)",
            re.IGNORECASE,
        ),
        _build_written,
    ),
    (
        "fiscal_quarter",
        re.compile(
            r"\bQ(?P<quarter>[1-4])\s*(?:FY\s*)?'?(?P<year>\d{4}|\d{2})(?!\d)",
            re.IGNORECASE,
        ),
        _build_quarter,
    ),
    (
        "month_year",
        re.compile(
            rf"\b(?P<month>{_MONTH_ALT})\.?,?\s+(?P<year>\d{{4}})(?!\d)",
            re.IGNORECASE,
        ),
        _build_month_year,
    ),
]


class DateNormalizer:
    """
    Parse heterogeneous date text into calendar dates.

    ``normalize`` parses a string that is entirely a date; ``find_dates``
    scans free text for every date occurrence.
    """

    def __init__(self) -> None:
        self.parse_failures = 0

    @staticmethod
    def _build(builder: Callable[[re.Match], Optional[date]], match: re.Match) -> Optional[date]:
        try:
            return builder(match)
        except ValueError:
            return None

    def normalize(self, text: Optional[str]) -> Optional[date]:
        """
        Parse a date string.

        Args:
            text: Date text such as "31-Jan-2015", "Q3FY15" or "October 2021".

        Returns:
            The parsed date, or None when the text is not a recognizable date.
        """
        if not text or not isinstance(text, str):
            return None
        candidate = text.strip().rstrip(".,;")
        for _name, pattern, builder in _PATTERNS:
            match = pattern.fullmatch(candidate)
            if match is None:
                continue
            value = self._build(builder, match)
            if value is not None:
                return value
        self.parse_failures += 1
        logger.debug("Unparseable date text", text=candidate[:50])
        return None

    def find_dates(self, text: str) -> list[DateMatch]:
        """
        Find every date in free text.

        Overlapping matches are resolved by pattern priority; results are
        returned in position order.
        """
        if not text:
            return []
        claimed: list[tuple[int, int]] = []
        found: list[DateMatch] = []
        for name, pattern, builder in _PATTERNS:
            for match in pattern.finditer(text):
                start, end = match.span()
                if any(start < c_end and end > c_start for c_start, c_end in claimed):
                    continue
                value = self._build(builder, match)
                if value is None:
                    self.parse_failures += 1
                    continue
                claimed.append((start, end))
                found.append(DateMatch(value=value, start=start, end=end, text=match.group(0), pattern=name))
        found.sort(key=lambda m: m.start)
        return found


_default_normalizer = DateNormalizer()


def normalize_date(text: Optional[str]) -> Optional[date]:
    """Module-level shortcut for ``DateNormalizer().normalize``."""
    return _default_normalizer.normalize(text)
