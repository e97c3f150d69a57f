"""Adaptation diff operations and the draft snapshot they are computed against."""

from typing import Literal, Union

from pydantic import ConfigDict, Field

from plan_builder.schemas.common import CamelModel
from plan_builder.schemas.plan import SessionType

TriggerType = Literal["SORENESS", "TOO_HARD", "MISSED_KEY", "LOW_COMPLIANCE", "HIGH_COMPLIANCE"]


class _Op(CamelModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class SessionPatch(_Op):
    type: SessionType | None = None
    duration_minutes: int | None = Field(None, ge=20, le=240)
    notes: str | None = Field(None, max_length=10_000)


class UpdateSessionOp(_Op):
    op: Literal["UPDATE_SESSION"] = "UPDATE_SESSION"
    draft_session_id: str = Field(..., min_length=1)
    patch: SessionPatch


class SwapSessionTypeOp(_Op):
    op: Literal["SWAP_SESSION_TYPE"] = "SWAP_SESSION_TYPE"
    draft_session_id: str = Field(..., min_length=1)
    new_type: SessionType


class AdjustWeekVolumeOp(_Op):
    op: Literal["ADJUST_WEEK_VOLUME"] = "ADJUST_WEEK_VOLUME"
    week_index: int = Field(..., ge=0, le=52)
    pct_delta: float = Field(..., ge=-0.9, le=1)


class AddSessionNoteOp(_Op):
    op: Literal["ADD_NOTE"] = "ADD_NOTE"
    target: Literal["session"] = "session"
    draft_session_id: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1, max_length=10_000)


class AddWeekNoteOp(_Op):
    op: Literal["ADD_NOTE"] = "ADD_NOTE"
    target: Literal["week"] = "week"
    week_index: int = Field(..., ge=0, le=52)
    text: str = Field(..., min_length=1, max_length=10_000)


PlanDiffOp = Union[UpdateSessionOp, SwapSessionTypeOp, AdjustWeekVolumeOp, AddSessionNoteOp, AddWeekNoteOp]


def op_week_index(op: PlanDiffOp) -> int | None:
    """Week targeted by a week-level op, else None."""
    if isinstance(op, (AdjustWeekVolumeOp, AddWeekNoteOp)):
        return op.week_index
    return None


def op_session_id(op: PlanDiffOp) -> str | None:
    """Session targeted by a session-level op, else None."""
    if isinstance(op, (UpdateSessionOp, SwapSessionTypeOp, AddSessionNoteOp)):
        return op.draft_session_id
    return None


class SnapshotWeek(CamelModel):
    week_index: int
    locked: bool = False


class SnapshotSession(CamelModel):
    id: str
    week_index: int
    ordinal: int
    day_of_week: int
    discipline: str | None = None
    type: str
    duration_minutes: int
    notes: str | None = None
    locked: bool = False


class DraftPlanSnapshot(CamelModel):
    weeks: list[SnapshotWeek] = Field(default_factory=list)
    sessions: list[SnapshotSession] = Field(default_factory=list)


class ProposalDiffResult(CamelModel):
    """LLM output for suggestProposalDiffs must match this structure."""

    model_config = ConfigDict(extra="forbid")

    diff: list[PlanDiffOp] = Field(default_factory=list, max_length=50)
    rationale_text: str = Field("", max_length=4000)
    respects_locks: bool = True
