"""Tests for coach guidance classification and travel window parsing."""

from datetime import date

import pytest

from plan_builder.services.guidance_signals import TravelWindow, extract_guidance_signals, parse_date_windows

PLAN_START = date(2026, 3, 2)


@pytest.mark.parametrize("text,injury,beginner,travel", [
    ("Mild knee pain after long runs", True, False, False),
    ("Shin splint history", True, False, False),
    ("Total beginner, couch to 5k", False, True, False),
    ("Novice swimmer", False, True, False),
    ("Away on a work trip", False, False, True),
    ("Ready to build, no issues", False, False, False),
    ("", False, False, False),
    (None, False, False, False),
])
def test_signal_flags(text, injury, beginner, travel):
    signals = extract_guidance_signals(text, PLAN_START)
    assert signals.has_injury_signal is injury
    assert signals.has_beginner_signal is beginner
    assert signals.has_travel_signal is travel


def test_travel_window_same_month():
    signals = extract_guidance_signals("Travel Mar 10-14 for work", PLAN_START)
    assert signals.travel_windows == (TravelWindow(date(2026, 3, 10), date(2026, 3, 14)),)
    assert signals.travel_overlaps(date(2026, 3, 9), date(2026, 3, 15))
    assert not signals.travel_overlaps(date(2026, 3, 2), date(2026, 3, 8))


def test_travel_window_across_months():
    signals = extract_guidance_signals("Away Mar 28 - Apr 2, limited gym access", PLAN_START)
    assert signals.travel_windows == (TravelWindow(date(2026, 3, 28), date(2026, 4, 2)),)


def test_single_day_window():
    signals = extract_guidance_signals("Holiday April 6th", PLAN_START)
    assert signals.travel_windows == (TravelWindow(date(2026, 4, 6), date(2026, 4, 6)),)


def test_dates_without_travel_keyword_are_ignored():
    signals = extract_guidance_signals("Race Mar 21, keep legs fresh", PLAN_START)
    assert signals.travel_windows == ()


def test_window_before_plan_start_rolls_to_next_year():
    windows = parse_date_windows("vacation Jan 5-10", date(2026, 11, 2))
    assert windows == [TravelWindow(date(2027, 1, 5), date(2027, 1, 10))]


def test_no_windows_without_plan_start():
    signals = extract_guidance_signals("Travel Mar 10-14", None)
    assert signals.has_travel_signal
    assert signals.travel_windows == ()


def test_invalid_calendar_dates_skipped():
    assert parse_date_windows("trip Feb 30-31", PLAN_START) == []
