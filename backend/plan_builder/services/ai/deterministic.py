"""
Deterministic implementations of every routed capability. No I/O, so the router's fallback
path through here always succeeds.
"""
from __future__ import annotations

import json
import re

from plan_builder.schemas.capabilities import (
    GenerateSessionDetailInput,
    GenerateSessionDetailResult,
    SuggestDraftPlanInput,
    SuggestDraftPlanResult,
    SuggestProposalDiffsInput,
)
from plan_builder.schemas.diff import ProposalDiffResult
from plan_builder.schemas.intake import SummarizeIntakeInput, SummarizeIntakeResult
from plan_builder.services.draft_generator import generate_draft_plan
from plan_builder.services.proposal_diff import suggest_proposal_diffs
from plan_builder.services.session_detail import build_session_detail

INTAKE_FLAG_PATTERNS = {
    "injury": re.compile(r"\binjur", re.IGNORECASE),
    "pain": re.compile(r"\bpain", re.IGNORECASE),
    "marathon": re.compile(r"marathon", re.IGNORECASE),
    "triathlon": re.compile(r"triathlon|ironman|70\.3", re.IGNORECASE),
}
MAX_SUMMARY_LINES = 12


def _answer_text(answer) -> str:
    if answer is None:
        return ""
    if isinstance(answer, str):
        return answer.strip()
    if isinstance(answer, list):
        return ", ".join(_answer_text(a) for a in answer if _answer_text(a))
    return json.dumps(answer, sort_keys=True, ensure_ascii=False)


def summarize_intake(data: SummarizeIntakeInput) -> SummarizeIntakeResult:
    profile: dict = {}
    for item in data.evidence:
        profile[item.question_key] = item.answer_json

    lines = []
    for key in sorted(profile):
        text = _answer_text(profile[key])
        if text:
            lines.append(f"{key}: {text}")
    all_text = " ".join(_answer_text(v) for v in profile.values())
    flags = [flag for flag, pattern in INTAKE_FLAG_PATTERNS.items() if pattern.search(all_text)]
    return SummarizeIntakeResult(
        profile_json=profile,
        summary_text="\n".join(lines[:MAX_SUMMARY_LINES]),
        flags=flags,
    )


def suggest_draft_plan(data: SuggestDraftPlanInput) -> SuggestDraftPlanResult:
    return SuggestDraftPlanResult(plan_json=generate_draft_plan(data.setup))


def suggest_plan_diffs(data: SuggestProposalDiffsInput) -> ProposalDiffResult:
    return suggest_proposal_diffs(data.trigger_types, data.draft, data.current_week_index)


def generate_session_detail(data: GenerateSessionDetailInput) -> GenerateSessionDetailResult:
    s = data.session
    detail = build_session_detail(
        s.discipline,
        s.type,
        s.duration_minutes,
        data.athlete_brief,
        week_index=s.week_index,
        day_of_week=s.day_of_week,
        ordinal=s.ordinal,
    )
    return GenerateSessionDetailResult(detail=detail)
