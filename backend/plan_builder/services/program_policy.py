"""
Program archetypes and policy profiles.
An archetype overrides emphasis, risk, caps, distributions and recovery cadence, and writes a
per-week minutes curve (build ramp, recovery dips, taper) into weekly_minutes_by_week.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from plan_builder.schemas.setup import PlanSetup

logger = logging.getLogger(__name__)

# Final-week volume multipliers by risk; index 0 is the last week before the event
TAPER_MULTIPLIERS: dict[str, tuple[float, ...]] = {
    "low": (0.75, 0.85, 0.92),
    "med": (0.7, 0.8, 0.9),
    "high": (0.6, 0.75, 0.88),
}
DEFAULT_RECOVERY_MULTIPLIER = 0.8
MIN_WEEK_MINUTES = 60


def taper_weeks(weeks_to_event: int) -> int:
    """0 taper weeks under 4 weeks, 1 under 8, 2 under 16, otherwise 3."""
    if weeks_to_event < 4:
        return 0
    if weeks_to_event < 8:
        return 1
    if weeks_to_event < 16:
        return 2
    return 3


def taper_multiplier(week_index: int, weeks_to_event: int, risk_tolerance: str) -> float:
    remaining = weeks_to_event - 1 - week_index
    if remaining < 0 or remaining >= taper_weeks(weeks_to_event):
        return 1.0
    return TAPER_MULTIPLIERS.get(risk_tolerance, TAPER_MULTIPLIERS["med"])[remaining]


def is_recovery_week(week_index: int, weeks_to_event: int, every_n: int | None) -> bool:
    """Every Nth build week is a recovery week; taper weeks never are."""
    if not every_n or every_n < 2:
        return False
    if week_index >= weeks_to_event - taper_weeks(weeks_to_event):
        return False
    return (week_index + 1) % every_n == 0


@dataclass(frozen=True)
class PolicyProfile:
    profile_id: str
    max_intensity_days: int
    max_doubles: int
    recovery_every_n_weeks: int
    recovery_week_multiplier: float


POLICY_PROFILES: dict[str, PolicyProfile] = {
    "coachkit-conservative-v1": PolicyProfile("coachkit-conservative-v1", 1, 0, 3, 0.8),
    "coachkit-safe-v1": PolicyProfile("coachkit-safe-v1", 2, 1, 4, 0.84),
    "coachkit-performance-v1": PolicyProfile("coachkit-performance-v1", 3, 2, 4, 0.86),
}


def resolve_policy_profile(risk_tolerance: str) -> PolicyProfile:
    """Default profile for a risk level."""
    if risk_tolerance == "low":
        return POLICY_PROFILES["coachkit-conservative-v1"]
    if risk_tolerance == "high":
        return POLICY_PROFILES["coachkit-performance-v1"]
    return POLICY_PROFILES["coachkit-safe-v1"]


def apply_policy_profile(setup: PlanSetup) -> PlanSetup:
    """Cap intensity/doubles by the explicitly selected profile and fill in its recovery cadence."""
    if setup.policy_profile_id is None:
        return setup
    profile = POLICY_PROFILES[setup.policy_profile_id]
    return setup.model_copy(
        update={
            "max_intensity_days_per_week": min(setup.max_intensity_days_per_week, profile.max_intensity_days),
            "max_doubles_per_week": min(setup.max_doubles_per_week, profile.max_doubles),
            "recovery_every_n_weeks": setup.recovery_every_n_weeks or profile.recovery_every_n_weeks,
            "recovery_week_multiplier": setup.recovery_week_multiplier or profile.recovery_week_multiplier,
        }
    )


@dataclass(frozen=True)
class ProgramArchetype:
    name: str
    discipline_emphasis: str
    risk_tolerance: str
    intensity_cap: Callable[[int], int]
    doubles_cap: Callable[[int], int]
    discipline_split: dict[str, float]
    type_distribution: dict[str, float]
    recovery_every_n_weeks: int
    recovery_week_multiplier: float
    start_ratio: float
    end_ratio: float
    beginner: bool = False


PROGRAM_ARCHETYPES: dict[str, ProgramArchetype] = {
    "COUCH_TO_5K": ProgramArchetype(
        name="COUCH_TO_5K",
        discipline_emphasis="run",
        risk_tolerance="low",
        intensity_cap=lambda _: 1,
        doubles_cap=lambda _: 0,
        discipline_split={"run": 1.0},
        type_distribution={"endurance": 0.6, "recovery": 0.25, "tempo": 0.15},
        recovery_every_n_weeks=3,
        recovery_week_multiplier=0.85,
        start_ratio=0.5,
        end_ratio=1.0,
        beginner=True,
    ),
    "SPRINT_TO_FULL_DISTANCE": ProgramArchetype(
        name="SPRINT_TO_FULL_DISTANCE",
        discipline_emphasis="balanced",
        risk_tolerance="med",
        intensity_cap=lambda x: min(2, max(1, x)),
        doubles_cap=lambda x: min(3, max(1, x)),
        discipline_split={"swim": 0.2, "bike": 0.45, "run": 0.35},
        type_distribution={"endurance": 0.6, "technique": 0.1, "tempo": 0.15, "threshold": 0.1, "recovery": 0.05},
        recovery_every_n_weeks=4,
        recovery_week_multiplier=0.8,
        start_ratio=0.65,
        end_ratio=1.0,
    ),
    "COUCH_TO_IRONMAN_26": ProgramArchetype(
        name="COUCH_TO_IRONMAN_26",
        discipline_emphasis="balanced",
        risk_tolerance="med",
        intensity_cap=lambda x: min(2, max(1, x)),
        doubles_cap=lambda x: min(3, max(1, x)),
        discipline_split={"swim": 0.25, "bike": 0.45, "run": 0.3},
        type_distribution={"endurance": 0.6, "technique": 0.15, "tempo": 0.15, "threshold": 0.05, "recovery": 0.05},
        recovery_every_n_weeks=4,
        recovery_week_multiplier=0.8,
        start_ratio=0.5,
        end_ratio=1.0,
        beginner=True,
    ),
    "HALF_TO_FULL_MARATHON": ProgramArchetype(
        name="HALF_TO_FULL_MARATHON",
        discipline_emphasis="run",
        risk_tolerance="med",
        intensity_cap=lambda x: min(2, max(1, x)),
        doubles_cap=lambda x: min(1, x),
        discipline_split={"run": 0.85, "strength": 0.15},
        type_distribution={"endurance": 0.65, "tempo": 0.15, "threshold": 0.1, "recovery": 0.1},
        recovery_every_n_weeks=4,
        recovery_week_multiplier=0.82,
        start_ratio=0.7,
        end_ratio=1.0,
    ),
}


def archetype_for(setup: PlanSetup) -> ProgramArchetype | None:
    if setup.program_policy is None:
        return None
    return PROGRAM_ARCHETYPES.get(setup.program_policy)


def build_minutes_curve(
    total_minutes: int,
    weeks_to_event: int,
    start_ratio: float,
    end_ratio: float,
    risk_tolerance: str,
    recovery_every_n_weeks: int | None,
    recovery_week_multiplier: float,
) -> list[int]:
    """Linear ramp start->end over the build weeks, recovery dips every Nth week, then taper."""
    start = total_minutes * start_ratio
    end = total_minutes * end_ratio
    build_weeks = max(1, weeks_to_event - taper_weeks(weeks_to_event))
    curve: list[int] = []
    for w in range(weeks_to_event):
        if w < build_weeks:
            progress = w / (build_weeks - 1) if build_weeks > 1 else 1.0
            minutes = start + (end - start) * progress
            if is_recovery_week(w, weeks_to_event, recovery_every_n_weeks):
                minutes *= recovery_week_multiplier
        else:
            minutes = end * taper_multiplier(w, weeks_to_event, risk_tolerance)
        curve.append(max(MIN_WEEK_MINUTES, int(minutes + 0.5)))
    return curve


def apply_program_policy(setup: PlanSetup) -> PlanSetup:
    """Apply the named archetype (if any), then the explicit policy profile (if any)."""
    archetype = archetype_for(setup)
    if archetype is None:
        return apply_policy_profile(setup)

    recovery_every = archetype.recovery_every_n_weeks
    recovery_mult = archetype.recovery_week_multiplier
    curve = build_minutes_curve(
        total_minutes=setup.total_weekly_minutes,
        weeks_to_event=setup.weeks_to_event,
        start_ratio=archetype.start_ratio,
        end_ratio=archetype.end_ratio,
        risk_tolerance=archetype.risk_tolerance,
        recovery_every_n_weeks=recovery_every,
        recovery_week_multiplier=recovery_mult,
    )
    # Explicit per-week minutes from the coach win over the curve
    for w, minutes in enumerate(setup.weekly_minutes_by_week or []):
        if w < len(curve):
            curve[w] = minutes

    logger.debug("Applied program %s over %d weeks", archetype.name, setup.weeks_to_event)
    applied = setup.model_copy(
        update={
            "discipline_emphasis": archetype.discipline_emphasis,
            "risk_tolerance": archetype.risk_tolerance,
            "max_intensity_days_per_week": archetype.intensity_cap(setup.max_intensity_days_per_week),
            "max_doubles_per_week": archetype.doubles_cap(setup.max_doubles_per_week),
            "discipline_split_targets": dict(archetype.discipline_split),
            "session_type_distribution": dict(archetype.type_distribution),
            "recovery_every_n_weeks": recovery_every,
            "recovery_week_multiplier": recovery_mult,
            "weekly_minutes_by_week": curve,
        }
    )
    return apply_policy_profile(applied)
