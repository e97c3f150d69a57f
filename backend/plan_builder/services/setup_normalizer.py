"""
Validate and normalize a raw setup object into PlanSetup.
Pure: derives the week count from dates, dedupes weekday lists, clamps integers into their
documented bounds and normalizes distribution weights. Malformed input raises SetupValidationError.
"""
from __future__ import annotations

import math
from datetime import date, timedelta
from typing import Any, Mapping

from pydantic import ValidationError

from plan_builder.core.errors import SetupValidationError
from plan_builder.schemas.setup import PlanSetup

# Documented integer bounds: field -> (min, max)
INT_BOUNDS: dict[str, tuple[int, int]] = {
    "weeksToEvent": (1, 52),
    "maxIntensityDaysPerWeek": (1, 3),
    "maxDoublesPerWeek": (0, 3),
    "recoveryEveryNWeeks": (2, 8),
    "sessionsPerWeekOverride": (3, 10),
}
FLOAT_BOUNDS: dict[str, tuple[float, float]] = {
    "recoveryWeekMultiplier": (0.5, 0.95),
}
MAX_DAY_MINUTES = 1440
MAX_WEEK_MINUTES = 10_000

DISCIPLINE_KEYS = ("swim", "bike", "run", "strength")
SESSION_TYPE_KEYS = ("technique", "endurance", "tempo", "threshold", "recovery")

# Accept snake_case and a few legacy names from older setup payloads
_KEY_ALIASES = {
    "week_start": "weekStart",
    "start_date": "startDate",
    "completion_date": "completionDate",
    "eventDate": "completionDate",
    "event_date": "completionDate",
    "weeks_to_event": "weeksToEvent",
    "weeks_to_event_override": "weeksToEventOverride",
    "weekly_availability_days": "weeklyAvailabilityDays",
    "weekly_availability_minutes": "weeklyAvailabilityMinutes",
    "discipline_emphasis": "disciplineEmphasis",
    "risk_tolerance": "riskTolerance",
    "max_intensity_days_per_week": "maxIntensityDaysPerWeek",
    "max_doubles_per_week": "maxDoublesPerWeek",
    "long_session_day": "longSessionDay",
    "coach_guidance_text": "coachGuidanceText",
    "program_policy": "programPolicy",
    "policy_profile_id": "policyProfileId",
    "weekly_minutes_by_week": "weeklyMinutesByWeek",
    "discipline_split_targets": "disciplineSplitTargets",
    "session_type_distribution": "sessionTypeDistribution",
    "recovery_every_n_weeks": "recoveryEveryNWeeks",
    "recovery_week_multiplier": "recoveryWeekMultiplier",
    "sessions_per_week_override": "sessionsPerWeekOverride",
}


def _invalid(message: str, **details: Any) -> SetupValidationError:
    return SetupValidationError(message, details=details)


def _as_int(field: str, value: Any) -> int:
    if isinstance(value, bool) or value is None:
        raise _invalid(f"{field} must be a number.", field=field, value=value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise _invalid(f"{field} must be a number.", field=field, value=value) from None
    if number != number or number in (float("inf"), float("-inf")):
        raise _invalid(f"{field} must be finite.", field=field, value=value)
    return math.floor(number + 0.5)


def clamp_int(value: float, lo: int, hi: int) -> int:
    """Round half up, then clamp into [lo, hi]."""
    rounded = math.floor(value + 0.5)
    return max(lo, min(hi, rounded))


def _parse_date(field: str, value: Any) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise _invalid(f"{field} must be an ISO date (YYYY-MM-DD).", field=field, value=value) from None


def start_of_week(day: date, week_start: str) -> date:
    """First day of the week containing `day` under the monday/sunday convention."""
    offset = day.weekday() if week_start == "monday" else (day.weekday() + 1) % 7
    return day - timedelta(days=offset)


def weeks_between(start: date, completion: date, week_start: str) -> int:
    """Number of calendar weeks spanned from the start week through the completion week, inclusive."""
    first = start_of_week(start, week_start)
    last = start_of_week(completion, week_start)
    return (last - first).days // 7 + 1


def normalize_weekdays(field: str, value: Any) -> list[int]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple, set)):
        raise _invalid(f"{field} must be a list of weekday indices.", field=field, value=value)
    days: set[int] = set()
    for raw in value:
        day = _as_int(field, raw)
        if day < 0 or day > 6:
            raise _invalid(f"{field} entries must be within 0-6 (Sunday=0).", field=field, value=raw)
        days.add(day)
    return sorted(days)


def normalize_weights(field: str, value: Any, allowed: tuple[str, ...]) -> dict[str, float] | None:
    """Drop non-positive weights and rescale the rest to sum 1.0. None when nothing positive remains."""
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise _invalid(f"{field} must be an object of weights.", field=field)
    weights: dict[str, float] = {}
    for key, raw in value.items():
        if key not in allowed:
            raise _invalid(f"{field} has unknown key {key!r}.", field=field, key=key)
        try:
            weight = float(raw)
        except (TypeError, ValueError):
            raise _invalid(f"{field}.{key} must be a number.", field=field, key=key) from None
        if weight > 0:
            weights[key] = weight
    total = sum(weights.values())
    if total <= 0:
        return None
    return {k: round(weights[k] / total, 6) for k in allowed if k in weights}


def _normalize_minutes(value: Any) -> int | dict[str, int]:
    if isinstance(value, Mapping):
        per_day: dict[str, int] = {}
        for key, raw in value.items():
            day = _as_int("weeklyAvailabilityMinutes", key)
            if day < 0 or day > 6:
                raise _invalid("weeklyAvailabilityMinutes keys must be weekdays 0-6.", field="weeklyAvailabilityMinutes", value=key)
            per_day[str(day)] = max(0, min(MAX_DAY_MINUTES, _as_int("weeklyAvailabilityMinutes", raw)))
        return dict(sorted(per_day.items()))
    if value is None:
        return 0
    return max(0, min(MAX_WEEK_MINUTES, _as_int("weeklyAvailabilityMinutes", value)))


def _canonical_keys(raw: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in raw.items():
        out[_KEY_ALIASES.get(key, key)] = value
    return out


def resolve_week_count(data: Mapping[str, Any], week_start: str) -> int:
    """Explicit override, else the week span between start and completion dates, else weeksToEvent."""
    override = data.get("weeksToEventOverride")
    if override not in (None, ""):
        return clamp_int(_as_int("weeksToEventOverride", override), 1, 52)

    start = _parse_date("startDate", data.get("startDate"))
    completion = _parse_date("completionDate", data.get("completionDate"))
    if start is not None and completion is not None:
        if completion < start:
            raise _invalid("completionDate must not be before startDate.", startDate=str(start), completionDate=str(completion))
        return clamp_int(weeks_between(start, completion, week_start), 1, 52)

    weeks = data.get("weeksToEvent")
    if weeks not in (None, ""):
        return clamp_int(_as_int("weeksToEvent", weeks), 1, 52)

    raise _invalid(
        "Setup needs weeksToEvent or both startDate and completionDate.",
        missing=["weeksToEvent"] if start or completion else ["weeksToEvent", "startDate", "completionDate"],
    )


def normalize_setup(raw: Mapping[str, Any] | PlanSetup) -> PlanSetup:
    """Validate, clamp and derive setup fields. Raises SetupValidationError on malformed input."""
    if isinstance(raw, PlanSetup):
        return raw
    if not isinstance(raw, Mapping):
        raise _invalid("Setup must be a JSON object.")
    data = _canonical_keys(raw)

    week_start = str(data.get("weekStart") or "monday").strip().lower()
    if week_start not in ("monday", "sunday"):
        raise _invalid("weekStart must be 'monday' or 'sunday'.", field="weekStart", value=data.get("weekStart"))

    out: dict[str, Any] = {
        "weekStart": week_start,
        "startDate": _parse_date("startDate", data.get("startDate")),
        "completionDate": _parse_date("completionDate", data.get("completionDate")),
        "weeksToEvent": resolve_week_count(data, week_start),
        "weeklyAvailabilityDays": normalize_weekdays("weeklyAvailabilityDays", data.get("weeklyAvailabilityDays")),
        "weeklyAvailabilityMinutes": _normalize_minutes(data.get("weeklyAvailabilityMinutes")),
    }

    for key in ("disciplineEmphasis", "riskTolerance", "programPolicy", "policyProfileId", "coachGuidanceText"):
        value = data.get(key)
        if isinstance(value, str):
            value = value.strip()
            if key in ("disciplineEmphasis", "riskTolerance"):
                value = value.lower()
        if value not in (None, ""):
            out[key] = value

    for key, (lo, hi) in INT_BOUNDS.items():
        if key == "weeksToEvent":
            continue
        value = data.get(key)
        if value not in (None, ""):
            out[key] = clamp_int(_as_int(key, value), lo, hi)

    for key, (lo, hi) in FLOAT_BOUNDS.items():
        value = data.get(key)
        if value not in (None, ""):
            try:
                out[key] = max(lo, min(hi, float(value)))
            except (TypeError, ValueError):
                raise _invalid(f"{key} must be a number.", field=key, value=value) from None

    long_day = data.get("longSessionDay")
    if long_day not in (None, ""):
        day = _as_int("longSessionDay", long_day)
        if day < 0 or day > 6:
            raise _invalid("longSessionDay must be within 0-6 (Sunday=0).", field="longSessionDay", value=long_day)
        out["longSessionDay"] = day

    by_week = data.get("weeklyMinutesByWeek")
    if by_week is not None:
        if not isinstance(by_week, (list, tuple)):
            raise _invalid("weeklyMinutesByWeek must be a list of minutes.", field="weeklyMinutesByWeek")
        out["weeklyMinutesByWeek"] = [
            max(0, min(MAX_WEEK_MINUTES, _as_int("weeklyMinutesByWeek", v))) for v in by_week[: out["weeksToEvent"]]
        ]

    out["disciplineSplitTargets"] = normalize_weights(
        "disciplineSplitTargets", data.get("disciplineSplitTargets"), DISCIPLINE_KEYS
    )
    out["sessionTypeDistribution"] = normalize_weights(
        "sessionTypeDistribution", data.get("sessionTypeDistribution"), SESSION_TYPE_KEYS
    )

    try:
        return PlanSetup.model_validate(out)
    except ValidationError as exc:
        raise _invalid(
            "Setup failed validation.",
            errors=[{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()],
        ) from exc
