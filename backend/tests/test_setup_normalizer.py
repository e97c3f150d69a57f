"""Tests for setup normalization: week count derivation, weekday/int clamping, weight normalization."""

from datetime import date

import pytest

from plan_builder.core.errors import SetupValidationError
from plan_builder.schemas.setup import PlanSetup
from plan_builder.services.setup_normalizer import normalize_setup, start_of_week, weeks_between


def test_weeks_from_dates_monday_start():
    """Mon 2 Mar through Sun 26 Apr 2026 spans 8 monday-start weeks."""
    setup = normalize_setup({"startDate": "2026-03-02", "completionDate": "2026-04-26", "weeklyAvailabilityDays": [1]})
    assert setup.weeks_to_event == 8
    assert setup.start_date == date(2026, 3, 2)


def test_weeks_from_dates_sunday_start():
    """Same dates under a sunday week start cover 9 calendar weeks."""
    setup = normalize_setup({"weekStart": "sunday", "startDate": "2026-03-02", "completionDate": "2026-04-26"})
    assert setup.weeks_to_event == 9


def test_override_wins_over_dates():
    setup = normalize_setup({"startDate": "2026-03-02", "completionDate": "2026-04-26", "weeksToEventOverride": 5})
    assert setup.weeks_to_event == 5


def test_start_of_week():
    assert start_of_week(date(2026, 3, 4), "monday") == date(2026, 3, 2)
    assert start_of_week(date(2026, 3, 4), "sunday") == date(2026, 3, 1)
    assert start_of_week(date(2026, 3, 1), "monday") == date(2026, 2, 23)
    assert weeks_between(date(2026, 3, 2), date(2026, 3, 8), "monday") == 1


def test_missing_week_count_rejected():
    with pytest.raises(SetupValidationError) as exc_info:
        normalize_setup({"startDate": "2026-03-02", "weeklyAvailabilityDays": [1, 3]})
    assert exc_info.value.code == "INVALID_SETUP"
    assert exc_info.value.details["missing"] == ["weeksToEvent"]


def test_completion_before_start_rejected():
    with pytest.raises(SetupValidationError):
        normalize_setup({"startDate": "2026-05-01", "completionDate": "2026-04-01"})


@pytest.mark.parametrize("raw", [
    {"weeksToEvent": "abc"},
    {"weeksToEvent": 8, "weeklyAvailabilityDays": [1, 7]},
    {"weeksToEvent": 8, "weeklyAvailabilityDays": "mon"},
    {"weeksToEvent": 8, "weekStart": "tuesday"},
    {"weeksToEvent": 8, "startDate": "03/02/2026", "completionDate": "2026-04-26"},
    {"weeksToEvent": 8, "riskTolerance": "extreme"},
    {"weeksToEvent": 8, "disciplineSplitTargets": {"rowing": 1}},
    {"weeksToEvent": 8, "longSessionDay": 9},
    "not an object",
])
def test_malformed_setup_rejected(raw):
    """Malformed input is rejected, never silently coerced."""
    with pytest.raises(SetupValidationError):
        normalize_setup(raw)


def test_weekdays_deduped_and_sorted():
    setup = normalize_setup({"weeksToEvent": 4, "weeklyAvailabilityDays": [6, 1, 1, 3, 6]})
    assert setup.weekly_availability_days == [1, 3, 6]


def test_integers_clamped_into_bounds():
    setup = normalize_setup({
        "weeksToEvent": 80,
        "maxIntensityDaysPerWeek": 9,
        "maxDoublesPerWeek": -2,
        "recoveryEveryNWeeks": 1,
        "sessionsPerWeekOverride": 2.6,
        "recoveryWeekMultiplier": 0.2,
    })
    assert setup.weeks_to_event == 52
    assert setup.max_intensity_days_per_week == 3
    assert setup.max_doubles_per_week == 0
    assert setup.recovery_every_n_weeks == 2
    assert setup.sessions_per_week_override == 3
    assert setup.recovery_week_multiplier == 0.5


def test_weights_normalized_and_zero_weights_dropped():
    setup = normalize_setup({
        "weeksToEvent": 8,
        "disciplineSplitTargets": {"swim": 1, "bike": 2, "run": 1, "strength": 0},
        "sessionTypeDistribution": {"endurance": 0, "tempo": 0},
    })
    assert setup.discipline_split_targets == {"swim": 0.25, "bike": 0.5, "run": 0.25}
    assert setup.session_type_distribution is None


def test_snake_case_and_legacy_keys_accepted():
    setup = normalize_setup({
        "weeks_to_event": 6,
        "weekly_availability_days": [2, 4],
        "weekly_availability_minutes": {"2": 60, 4: 90},
        "risk_tolerance": " HIGH ",
        "eventDate": "2026-06-01",
    })
    assert setup.weeks_to_event == 6
    assert setup.risk_tolerance == "high"
    assert setup.weekly_availability_minutes == {"2": 60, "4": 90}
    assert setup.total_weekly_minutes == 150
    assert setup.completion_date == date(2026, 6, 1)


def test_weekly_minutes_by_week_truncated_to_plan_length():
    setup = normalize_setup({"weeksToEvent": 3, "weeklyMinutesByWeek": [100, 200, 300, 400, 500]})
    assert setup.weekly_minutes_by_week == [100, 200, 300]


def test_plan_setup_passes_through():
    setup = normalize_setup({"weeksToEvent": 4})
    assert isinstance(setup, PlanSetup)
    assert normalize_setup(setup) is setup
