"""
Classify free-text coach guidance into structured flags.
Scheduling and guardrails consume GuidanceSignals only; nothing downstream re-parses the text.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, timedelta

INJURY_PATTERN = re.compile(r"\b(injury|injured|pain|splint|achilles|knee|calf|hamstring)\b", re.IGNORECASE)
BEGINNER_PATTERN = re.compile(r"\b(beginner|novice|couch(?:[\s-]to[\s-]\w+)?)\b", re.IGNORECASE)
TRAVEL_PATTERN = re.compile(r"\b(travel|travelling|traveling|trip|away|vacation|holiday)\b", re.IGNORECASE)

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}
_MONTH = r"(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?"
# "Mar 3-8", "March 3 - 8", "Mar 28 - Apr 2", "Mar 28 to Apr 2", or a single "Mar 3"
DATE_RANGE_PATTERN = re.compile(
    rf"\b{_MONTH}\s+(\d{{1,2}})(?:st|nd|rd|th)?"
    rf"(?:\s*(?:-|–|to|through|until)\s*(?:{_MONTH}\s+)?(\d{{1,2}})(?:st|nd|rd|th)?)?\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class TravelWindow:
    start: date
    end: date

    def overlaps(self, first_day: date, last_day: date) -> bool:
        return self.start <= last_day and self.end >= first_day


@dataclass(frozen=True)
class GuidanceSignals:
    has_injury_signal: bool = False
    has_beginner_signal: bool = False
    has_travel_signal: bool = False
    travel_windows: tuple[TravelWindow, ...] = field(default_factory=tuple)

    def travel_overlaps(self, first_day: date, last_day: date) -> bool:
        return any(w.overlaps(first_day, last_day) for w in self.travel_windows)


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date_windows(text: str, reference: date | None) -> list[TravelWindow]:
    """
    Parse month/day ranges. Years come from `reference` (plan start); a window that ends
    before the reference date rolls over to the next year. Without a reference no window is returned.
    """
    if not text or reference is None:
        return []
    windows: list[TravelWindow] = []
    for match in DATE_RANGE_PATTERN.finditer(text):
        start_month = MONTHS[match.group(1).lower()[:3]]
        start_day = int(match.group(2))
        end_month = MONTHS[match.group(3).lower()[:3]] if match.group(3) else start_month
        end_day = int(match.group(4)) if match.group(4) else start_day

        year = reference.year
        start = _safe_date(year, start_month, start_day)
        end = _safe_date(year if end_month >= start_month else year + 1, end_month, end_day)
        if start is None or end is None or end < start:
            continue
        if end < reference:
            start = _safe_date(start.year + 1, start.month, start.day)
            end = _safe_date(end.year + 1, end.month, end.day)
            if start is None or end is None:
                continue
        windows.append(TravelWindow(start=start, end=end))
    return windows


def extract_guidance_signals(text: str | None, plan_start: date | None = None) -> GuidanceSignals:
    """Pure text classification of coach guidance."""
    body = (text or "").strip()
    if not body:
        return GuidanceSignals()
    has_travel = bool(TRAVEL_PATTERN.search(body))
    # Date ranges only count as travel when the text talks about travel
    windows = tuple(parse_date_windows(body, plan_start)) if has_travel else ()
    return GuidanceSignals(
        has_injury_signal=bool(INJURY_PATTERN.search(body)),
        has_beginner_signal=bool(BEGINNER_PATTERN.search(body)),
        has_travel_signal=has_travel,
        travel_windows=windows,
    )


def week_bounds(plan_start: date, week_index: int) -> tuple[date, date]:
    first = plan_start + timedelta(days=7 * week_index)
    return first, first + timedelta(days=6)
