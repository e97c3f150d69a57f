"""Normalized plan setup: the only setup shape the scheduler accepts."""

from datetime import date
from typing import Literal

from pydantic import ConfigDict, Field

from plan_builder.schemas.common import CamelModel

DisciplineEmphasis = Literal["balanced", "swim", "bike", "run"]
RiskTolerance = Literal["low", "med", "high"]
WeekStart = Literal["monday", "sunday"]
ProgramPolicy = Literal[
    "COUCH_TO_5K",
    "SPRINT_TO_FULL_DISTANCE",
    "COUCH_TO_IRONMAN_26",
    "HALF_TO_FULL_MARATHON",
]
PolicyProfileId = Literal[
    "coachkit-conservative-v1",
    "coachkit-safe-v1",
    "coachkit-performance-v1",
]


class PlanSetup(CamelModel):
    """Validated, clamped setup. Produced by setup_normalizer.normalize_setup."""

    model_config = ConfigDict(frozen=True)

    week_start: WeekStart = "monday"
    start_date: date | None = None
    completion_date: date | None = None
    weeks_to_event: int = Field(..., ge=1, le=52)
    weekly_availability_days: list[int] = Field(default_factory=list)
    weekly_availability_minutes: int | dict[str, int] = 0
    discipline_emphasis: DisciplineEmphasis = "balanced"
    risk_tolerance: RiskTolerance = "med"
    max_intensity_days_per_week: int = Field(1, ge=1, le=3)
    max_doubles_per_week: int = Field(0, ge=0, le=3)
    long_session_day: int | None = Field(None, ge=0, le=6)
    coach_guidance_text: str | None = Field(None, max_length=4000)
    program_policy: ProgramPolicy | None = None
    policy_profile_id: PolicyProfileId | None = None
    weekly_minutes_by_week: list[int] | None = None
    # Weights normalized to sum 1.0; absent when no positive weight was given
    discipline_split_targets: dict[str, float] | None = None
    session_type_distribution: dict[str, float] | None = None
    recovery_every_n_weeks: int | None = Field(None, ge=2, le=8)
    recovery_week_multiplier: float | None = Field(None, ge=0.5, le=0.95)
    sessions_per_week_override: int | None = Field(None, ge=3, le=10)

    @property
    def total_weekly_minutes(self) -> int:
        if isinstance(self.weekly_availability_minutes, dict):
            return sum(max(0, int(v)) for v in self.weekly_availability_minutes.values())
        return max(0, int(self.weekly_availability_minutes))
