"""
Milestone date extraction from page text.

Dates are only taken from a bounded window around mentions of the product
identifier, and a date is only attributed to a lifecycle field when a
milestone keyword for that field sits close to it. When several dates
qualify for the same field, the first one in the text wins. Under a row of
table column headers, dates are matched to the headers by position.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from lifecycle_research.extractors.date_normalizer import DateMatch, DateNormalizer
from lifecycle_research.models.schemas import DateField, Evidence, SourceClass
from lifecycle_research.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONTEXT_RADIUS = 750
DEFAULT_KEYWORD_RADIUS = 100
MAX_HEADER_GAP = 40
# Column headers are separated by a cell break, without digits or sentence punctuation
_CELL_BREAK = re.compile(r"[\n\t|]")
_NOT_HEADER_TEXT = re.compile(r"[0-9.:;]")
MIN_PLAUSIBLE_YEAR = 2000
MAX_YEARS_AHEAD = 20

MILESTONE_KEYWORDS: dict[DateField, tuple[str, ...]] = {
    DateField.INTRODUCED: (
        "date introduced",
        "introduction date",
        "first customer ship",
        "general availability date",
        "release date",
    ),
    DateField.END_OF_SALE: (
        "end-of-sale",
        "end of sale",
        "eos date",
        "last date to order",
        "last day to order",
        "end of order",
        "end of orderability",
        "eos",
    ),
    DateField.END_OF_SW_MAINTENANCE: (
        "end of software maintenance",
        "end of sw maintenance",
        "end-of-sw-maintenance",
        "software maintenance releases",
        "end of software support",
        "bug fixes",
    ),
    DateField.END_OF_SW_VULNERABILITY_SUPPORT: (
        "end of vulnerability/security support",
        "end of security/vulnerability support",
        "end of security vulnerability support",
        "end of vulnerability support",
        "end of security support",
        "security updates",
        "vulnerability support",
    ),
    DateField.LAST_DAY_OF_SUPPORT: (
        "last date of support",
        "last day of support",
        "end-of-support",
        "end of support",
        "end-of-service life",
        "end of service life",
        "end-of-life",
        "end of life",
        "eol date",
        "ldos",
        "eol",
        "last date to receive service",
    ),
}

# Milestones we do not capture; a date nearest to one of these is consumed
# without being attributed.
DISTRACTOR_KEYWORDS: tuple[str, ...] = (
    "announcement date",
    "end-of-life announcement",
    "end-of-sale announcement",
    "end of routine failure analysis",
    "end of new service attachment",
    "end of service contract renewal",
    "last date to renew",
)


@dataclass(frozen=True)
class _KeywordHit:
    field: Optional[DateField]
    start: int
    end: int


def _keyword_regex(keyword: str) -> re.Pattern:
    parts = [re.escape(p) for p in re.split(r"[\s\-]+", keyword)]
    return re.compile(r"(?<![a-z0-9])" + r"[\s\-]+".join(parts) + r"(?![a-z0-9])", re.IGNORECASE)


class DateExtractor:
    """
    Extract milestone Evidence from page text.

    Example:
        >>> extractor = DateExtractor()
        >>> extractor.extract("WS-C3850-48P End-of-Sale Date: 31-Oct-2019", "WS-C3850-48P")
    """

    def __init__(
        self,
        normalizer: Optional[DateNormalizer] = None,
        context_radius: int = DEFAULT_CONTEXT_RADIUS,
        keyword_radius: int = DEFAULT_KEYWORD_RADIUS,
        today: Optional[Callable[[], date]] = None,
    ):
        self.normalizer = normalizer or DateNormalizer()
        self.context_radius = context_radius
        self.keyword_radius = keyword_radius
        self._today = today or date.today
        self._keyword_patterns: list[tuple[Optional[DateField], re.Pattern]] = [
            (field, _keyword_regex(keyword))
            for field, keywords in MILESTONE_KEYWORDS.items()
            for keyword in keywords
        ] + [(None, _keyword_regex(keyword)) for keyword in DISTRACTOR_KEYWORDS]

    # =========================================================================
    # Helpers
    # =========================================================================

    def _windows(self, text: str, identifier: str) -> list[tuple[int, int]]:
        """Merged context windows around every identifier occurrence."""
        windows: list[tuple[int, int]] = []
        for match in re.finditer(re.escape(identifier), text, re.IGNORECASE):
            start = max(0, match.start() - self.context_radius)
            end = min(len(text), match.end() + self.context_radius)
            if windows and start <= windows[-1][1]:
                windows[-1] = (windows[-1][0], max(windows[-1][1], end))
            else:
                windows.append((start, end))
        return windows

    def _keyword_hits(self, window: str) -> list[_KeywordHit]:
        hits: list[_KeywordHit] = []
        for field, pattern in self._keyword_patterns:
            for match in pattern.finditer(window):
                hits.append(_KeywordHit(field=field, start=match.start(), end=match.end()))
        # Longer keywords shadow shorter ones they contain
        hits.sort(key=lambda h: (h.start, -(h.end - h.start)))
        kept: list[_KeywordHit] = []
        for hit in hits:
            if any(hit.start >= k.start and hit.end <= k.end for k in kept):
                continue
            kept.append(hit)
        return kept

    def _attribute(self, found: DateMatch, hits: list[_KeywordHit]) -> Optional[_KeywordHit]:
        """Nearest keyword within radius, preferring ones that precede the date."""
        before = [
            (found.start - h.end, h) for h in hits
            if h.end <= found.start and found.start - h.end <= self.keyword_radius
        ]
        if before:
            return min(before, key=lambda pair: pair[0])[1]
        after = [
            (h.start - found.end, h) for h in hits
            if h.start >= found.end and h.start - found.end <= self.keyword_radius
        ]
        if after:
            return min(after, key=lambda pair: pair[0])[1]
        return None

    def _header_runs(self, window: str, hits: list[_KeywordHit]) -> list[list[_KeywordHit]]:
        """Runs of two or more keywords laid out as table column headers."""
        if not hits:
            return []
        runs: list[list[_KeywordHit]] = [[hits[0]]]
        for prev, hit in zip(hits, hits[1:]):
            gap = window[prev.end:hit.start]
            is_header_gap = (
                len(gap) <= MAX_HEADER_GAP
                and _CELL_BREAK.search(gap) is not None
                and _NOT_HEADER_TEXT.search(gap) is None
            )
            if is_header_gap:
                runs[-1].append(hit)
            else:
                runs.append([hit])
        return [run for run in runs if len(run) >= 2]

    def _table_cells(
        self,
        window: str,
        identifier: str,
        hits: list[_KeywordHit],
        dates: list[DateMatch],
    ) -> dict[int, Optional[_KeywordHit]]:
        """
        Column header for each date that sits under a header run.

        Dates are matched to headers by position, counting from the
        identifier's row when the identifier follows the headers. Dates in
        other rows, or beyond the last column, map to None.
        """
        cells: dict[int, Optional[_KeywordHit]] = {}
        for run in self._header_runs(window, hits):
            run_end = run[-1].end
            next_hit = min((h.start for h in hits if h.start >= run_end), default=len(window))
            limit = min(next_hit, run_end + self.keyword_radius * len(run))
            under = [(i, d) for i, d in enumerate(dates) if run_end <= d.start < limit]
            # "Header: value" is a label, not a table row
            if not under or ":" in window[run_end:under[0][1].start]:
                continue
            row = re.search(re.escape(identifier), window[run_end:limit], re.IGNORECASE)
            row_start = run_end + row.end() if row else run_end

            column = 0
            for index, found in under:
                if found.start < row_start or column >= len(run):
                    cells[index] = None
                    continue
                cells[index] = run[column]
                column += 1
        return cells

    def _is_plausible(self, value: date) -> bool:
        return MIN_PLAUSIBLE_YEAR <= value.year <= self._today().year + MAX_YEARS_AHEAD

    # =========================================================================
    # Public API
    # =========================================================================

    def extract(
        self,
        page_text: str,
        product_identifier: str,
        *,
        source_url: str = "",
        source_class: SourceClass = SourceClass.THIRD_PARTY,
    ) -> list[Evidence]:
        """
        Extract milestone dates mentioned near the product identifier.

        Args:
            page_text: Visible page text.
            product_identifier: Identifier that must literally occur in the text.
            source_url: URL recorded on each Evidence.
            source_class: Provenance recorded on each Evidence.

        Returns:
            At most one Evidence per field, in field order.
        """
        identifier = product_identifier.strip()
        if not page_text or not identifier:
            return []
        if identifier.lower() not in page_text.lower():
            return []

        chosen: dict[DateField, Evidence] = {}
        for win_start, win_end in self._windows(page_text, identifier):
            window = page_text[win_start:win_end]
            hits = self._keyword_hits(window)
            if not hits:
                continue
            dates = self.normalizer.find_dates(window)
            cells = self._table_cells(window, identifier, hits, dates)
            for index, found in enumerate(dates):
                if not self._is_plausible(found.value):
                    continue
                hit = cells[index] if index in cells else self._attribute(found, hits)
                if hit is None or hit.field is None or hit.field in chosen:
                    continue
                context_start = max(0, min(hit.start, found.start) - 20)
                context_end = min(len(window), max(hit.end, found.end) + 20)
                chosen[hit.field] = Evidence(
                    field=hit.field,
                    date_value=found.value,
                    source_url=source_url,
                    source_class=source_class,
                    context=" ".join(window[context_start:context_end].split()),
                    position=win_start + found.start,
                )

        evidence = [chosen[f] for f in DateField if f in chosen]
        if evidence:
            logger.debug(
                "Dates extracted",
                identifier=identifier,
                source_url=source_url,
                fields=[e.field.value for e in evidence],
            )
        return evidence
