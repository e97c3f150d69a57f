"""Inputs and outputs of the routed AI capabilities."""

from pydantic import ConfigDict, Field

from plan_builder.schemas.athlete_brief import AthleteBrief
from plan_builder.schemas.common import CamelModel
from plan_builder.schemas.diff import DraftPlanSnapshot, TriggerType
from plan_builder.schemas.plan import Discipline, DraftPlanV1, SessionType
from plan_builder.schemas.session_detail import SessionDetailV1
from plan_builder.schemas.setup import PlanSetup


class SuggestDraftPlanInput(CamelModel):
    setup: PlanSetup


class SuggestDraftPlanResult(CamelModel):
    model_config = ConfigDict(extra="forbid")

    plan_json: DraftPlanV1


class SuggestProposalDiffsInput(CamelModel):
    trigger_types: list[TriggerType] = Field(default_factory=list)
    draft: DraftPlanSnapshot
    current_week_index: int = Field(0, ge=0, le=52)


class SessionDetailRequest(CamelModel):
    discipline: Discipline
    type: SessionType
    duration_minutes: int = Field(..., ge=20, le=240)
    week_index: int | None = None
    day_of_week: int | None = None
    ordinal: int | None = None


class GenerateSessionDetailInput(CamelModel):
    session: SessionDetailRequest
    athlete_brief: AthleteBrief | None = None


class GenerateSessionDetailResult(CamelModel):
    model_config = ConfigDict(extra="forbid")

    detail: SessionDetailV1
