"""
Draft plan generation entry point: normalize setup, route suggestDraftPlan, gate the result.
Hard violations raise PlanConstraintError so the draft is never persisted.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from plan_builder.core.errors import PlanConstraintError
from plan_builder.schemas.audit import AiInvocationAudit
from plan_builder.schemas.capabilities import SuggestDraftPlanInput
from plan_builder.schemas.plan import DraftPlanV1
from plan_builder.schemas.quality import PlanIssue
from plan_builder.schemas.setup import PlanSetup
from plan_builder.services.ai.router import AiCapabilityRouter
from plan_builder.services.constraint_validator import evaluate_draft_plan
from plan_builder.services.draft_generator import generate_draft_plan_with_diagnostics
from plan_builder.services.setup_normalizer import normalize_setup

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DraftBuildResult:
    plan: DraftPlanV1
    audit: AiInvocationAudit
    warnings: list[PlanIssue] = field(default_factory=list)


async def generate_draft(raw_setup: PlanSetup | Mapping[str, Any], router: AiCapabilityRouter) -> DraftBuildResult:
    setup = normalize_setup(raw_setup)
    routed = await router.invoke("suggestDraftPlan", SuggestDraftPlanInput(setup=setup))
    plan = routed.value.plan_json

    diagnostics = None
    if routed.audit.effective_mode == "deterministic" or routed.audit.fallback_used:
        # same pure computation the deterministic path ran; only the diagnostics are new here
        _, diagnostics = generate_draft_plan_with_diagnostics(setup)
    report = evaluate_draft_plan(plan, diagnostics)

    if not report.ok:
        codes = ", ".join(sorted({v.code for v in report.violations}))
        logger.warning("Draft plan rejected by quality gate: %s", codes)
        raise PlanConstraintError(
            f"Draft plan violates hard constraints: {codes}",
            violations=report.violations,
            warnings=report.warnings,
        )
    for w in report.warnings:
        logger.warning("Draft plan warning %s (week=%s): %s", w.code, w.week_index, w.message)
    return DraftBuildResult(plan=plan, audit=routed.audit, warnings=report.warnings)
