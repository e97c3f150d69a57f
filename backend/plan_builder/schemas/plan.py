"""DraftPlanV1 document: setup plus week-by-week sessions."""

from typing import Literal

from pydantic import ConfigDict, Field

from plan_builder.schemas.common import CamelModel
from plan_builder.schemas.session_detail import SessionDetailV1
from plan_builder.schemas.setup import PlanSetup

Discipline = Literal["swim", "bike", "run", "strength"]
SessionType = Literal["technique", "endurance", "tempo", "threshold", "recovery", "strength"]
DetailMode = Literal["deterministic", "llm", "coach"]

INTENSITY_TYPES = frozenset({"tempo", "threshold"})
MIN_SESSION_MINUTES = 20
MAX_SESSION_MINUTES = 240


def session_key(week_index: int, ordinal: int) -> str:
    return f"{week_index}:{ordinal}"


class DraftSession(CamelModel):
    """Single planned session. Locked sessions keep duration, discipline and type."""

    model_config = ConfigDict(frozen=True)

    week_index: int = Field(..., ge=0)
    ordinal: int = Field(..., ge=0)
    day_of_week: int = Field(..., ge=0, le=6)
    discipline: Discipline
    type: SessionType
    duration_minutes: int = Field(..., ge=MIN_SESSION_MINUTES, le=MAX_SESSION_MINUTES)
    notes: str | None = Field(None, max_length=10_000)
    locked: bool = False
    detail: SessionDetailV1 | None = None
    detail_input_hash: str | None = None
    detail_mode: DetailMode | None = None

    @property
    def session_id(self) -> str:
        return session_key(self.week_index, self.ordinal)

    @property
    def is_intensity(self) -> bool:
        return self.type in INTENSITY_TYPES


class DraftWeek(CamelModel):
    model_config = ConfigDict(frozen=True)

    week_index: int = Field(..., ge=0)
    locked: bool = False
    sessions: list[DraftSession] = Field(default_factory=list)

    @property
    def total_minutes(self) -> int:
        return sum(s.duration_minutes for s in self.sessions)


class DraftPlanV1(CamelModel):
    """Immutable plan value; every transformation returns a new instance."""

    model_config = ConfigDict(frozen=True)

    version: Literal["v1"] = "v1"
    setup: PlanSetup
    weeks: list[DraftWeek] = Field(default_factory=list)

    def iter_sessions(self):
        for week in self.weeks:
            yield from week.sessions

    def find_session(self, session_id: str) -> DraftSession | None:
        for session in self.iter_sessions():
            if session.session_id == session_id:
                return session
        return None

    def week(self, week_index: int) -> DraftWeek | None:
        for week in self.weeks:
            if week.week_index == week_index:
                return week
        return None


class WeekTotals(CamelModel):
    week_index: int
    sessions_count: int
    total_minutes: int


def compute_week_totals(plan: DraftPlanV1) -> list[WeekTotals]:
    return [
        WeekTotals(week_index=w.week_index, sessions_count=len(w.sessions), total_minutes=w.total_minutes)
        for w in plan.weeks
    ]
