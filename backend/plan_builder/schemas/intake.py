"""Intake evidence and the summarizeIntake result."""

from typing import Any, Literal

from pydantic import ConfigDict, Field

from plan_builder.schemas.common import CamelModel

IntakeFlag = Literal["injury", "pain", "marathon", "triathlon"]


class IntakeEvidenceItem(CamelModel):
    question_key: str = Field(..., min_length=1, max_length=120)
    answer_json: Any = None


class SummarizeIntakeInput(CamelModel):
    evidence: list[IntakeEvidenceItem] = Field(default_factory=list)


class SummarizeIntakeResult(CamelModel):
    model_config = ConfigDict(extra="forbid")

    profile_json: dict[str, Any] = Field(default_factory=dict)
    summary_text: str = ""
    flags: list[IntakeFlag] = Field(default_factory=list)
