"""
Capability registry: spec version, system prompt, input/output schemas, the deterministic
implementation and the post-check applied to LLM output.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Literal

from pydantic import BaseModel

from plan_builder.core.errors import LlmError
from plan_builder.schemas.capabilities import (
    GenerateSessionDetailInput,
    GenerateSessionDetailResult,
    SuggestDraftPlanInput,
    SuggestDraftPlanResult,
    SuggestProposalDiffsInput,
)
from plan_builder.schemas.diff import ProposalDiffResult
from plan_builder.schemas.intake import SummarizeIntakeInput, SummarizeIntakeResult
from plan_builder.services.ai import deterministic
from plan_builder.services.constraint_validator import evaluate_draft_plan
from plan_builder.services.program_policy import apply_program_policy
from plan_builder.services.proposal_diff import finalize_proposal
from plan_builder.services.session_detail import reflow_detail_to_total

CapabilityName = Literal["summarizeIntake", "suggestDraftPlan", "suggestProposalDiffs", "generateSessionDetail"]

# Suffix used for per-capability settings fields and env keys
CAPABILITY_SUFFIXES: dict[str, str] = {
    "summarizeIntake": "summarize_intake",
    "suggestDraftPlan": "suggest_draft_plan",
    "suggestProposalDiffs": "suggest_proposal_diffs",
    "generateSessionDetail": "generate_session_detail",
}


@dataclass(frozen=True)
class CapabilitySpec:
    name: str
    system_prompt: str
    input_model: type[BaseModel]
    output_model: type[BaseModel]
    deterministic: Callable[[Any], BaseModel]
    post_check: Callable[[Any, Any], BaseModel] | None = None

    @property
    def spec_version(self) -> str:
        return f"apb.{self.name}@v1"


def _check_draft_plan(data: SuggestDraftPlanInput, output: SuggestDraftPlanResult) -> SuggestDraftPlanResult:
    """Pin the plan to the requested setup and run the quality gate."""
    plan = output.plan_json.model_copy(update={"setup": apply_program_policy(data.setup)})
    if len(plan.weeks) != plan.setup.weeks_to_event:
        raise LlmError("SCHEMA_VALIDATION_FAILED", "LLM plan week count does not match the setup.")
    report = evaluate_draft_plan(plan)
    if not report.ok:
        codes = sorted({v.code for v in report.violations})
        raise LlmError("SCHEMA_VALIDATION_FAILED", f"LLM plan failed the quality gate: {', '.join(codes)}")
    return SuggestDraftPlanResult(plan_json=plan)


def _check_proposal(data: SuggestProposalDiffsInput, output: ProposalDiffResult) -> ProposalDiffResult:
    return finalize_proposal(list(output.diff), output.rationale_text, data.draft)


def _check_session_detail(data: GenerateSessionDetailInput, output: GenerateSessionDetailResult) -> GenerateSessionDetailResult:
    detail = reflow_detail_to_total(output.detail, data.session.duration_minutes)
    return GenerateSessionDetailResult(detail=detail)


CAPABILITIES: dict[str, CapabilitySpec] = {
    "summarizeIntake": CapabilitySpec(
        name="summarizeIntake",
        system_prompt="You are a deterministic assistant. Produce a concise intake summary and flags. Output JSON only.",
        input_model=SummarizeIntakeInput,
        output_model=SummarizeIntakeResult,
        deterministic=deterministic.summarize_intake,
    ),
    "suggestDraftPlan": CapabilitySpec(
        name="suggestDraftPlan",
        system_prompt=(
            "Generate a training plan JSON. Keep it practical and consistent. "
            "Sessions only on available days, 20-240 minutes each. Output JSON only matching the required shape."
        ),
        input_model=SuggestDraftPlanInput,
        output_model=SuggestDraftPlanResult,
        deterministic=deterministic.suggest_draft_plan,
        post_check=_check_draft_plan,
    ),
    "suggestProposalDiffs": CapabilitySpec(
        name="suggestProposalDiffs",
        system_prompt=(
            "Propose safe plan diffs based on triggers and locks. Never touch locked weeks or sessions. "
            "Output JSON only with diff ops and rationale text."
        ),
        input_model=SuggestProposalDiffsInput,
        output_model=ProposalDiffResult,
        deterministic=deterministic.suggest_plan_diffs,
        post_check=_check_proposal,
    ),
    "generateSessionDetail": CapabilitySpec(
        name="generateSessionDetail",
        system_prompt=(
            "You are a coaching assistant. Output JSON only matching the schema. Do NOT change schedule, dates, "
            "or minutes. Only fill in objective, structure blocks, and targets."
        ),
        input_model=GenerateSessionDetailInput,
        output_model=GenerateSessionDetailResult,
        deterministic=deterministic.generate_session_detail,
        post_check=_check_session_detail,
    ),
}


def get_capability(name: str) -> CapabilitySpec:
    try:
        return CAPABILITIES[name]
    except KeyError:
        raise ValueError(f"Unknown capability: {name}") from None
