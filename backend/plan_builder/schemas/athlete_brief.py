"""Read-only athlete brief consumed by session detail synthesis."""

from typing import Literal

from pydantic import Field

from plan_builder.schemas.common import CamelModel


class BriefSnapshot(CamelModel):
    primary_goal: str | None = Field(None, max_length=240)
    disciplines: list[str] = Field(default_factory=list)
    experience_level: str | None = Field(None, max_length=120)
    tags: list[str] = Field(default_factory=list)


class CoachingPreferences(CamelModel):
    tone: str | None = Field(None, max_length=120)
    feedback_style: str | None = Field(None, max_length=120)
    checkin_cadence: str | None = Field(None, max_length=120)


class ConstraintsAndSafety(CamelModel):
    injury_status: str | None = Field(None, max_length=240)
    pain_history: list[str] = Field(default_factory=list)
    availability_notes: str | None = Field(None, max_length=400)


class AthleteBrief(CamelModel):
    """Derived snapshot of goals, constraints and coaching preferences. Never written by the scheduler."""

    version: Literal["v1.1"] = "v1.1"
    snapshot: BriefSnapshot = Field(default_factory=BriefSnapshot)
    coaching_preferences: CoachingPreferences = Field(default_factory=CoachingPreferences)
    constraints_and_safety: ConstraintsAndSafety = Field(default_factory=ConstraintsAndSafety)
    plan_guidance: str | None = Field(None, max_length=400)
    risk_flags: list[str] = Field(default_factory=list)
