"""Tests for the draft plan entry point: routing, quality gate and error propagation."""

import pytest

from plan_builder.core.errors import PlanConstraintError, SetupValidationError
from plan_builder.services.draft_plan import generate_draft

from conftest import BASE_SETUP

UNSATISFIABLE_SETUP = {
    "weeksToEvent": 4,
    "weeklyAvailabilityDays": [6],
    "weeklyAvailabilityMinutes": 300,
    "disciplineSplitTargets": {"swim": 0.25, "bike": 0.25, "run": 0.25, "strength": 0.25},
}


@pytest.mark.asyncio
async def test_generate_draft_deterministic(deterministic_router, audit_trail):
    result = await generate_draft(BASE_SETUP, deterministic_router)
    assert len(result.plan.weeks) == 8
    assert result.audit.effective_mode == "deterministic"
    assert result.audit.capability == "suggestDraftPlan"
    residual_weeks = [w.week_index for w in result.warnings if w.code == "DURATION_ROUNDING_RESIDUAL"]
    assert residual_weeks == [1, 3, 5, 7]
    assert all(w.severity == "soft" for w in result.warnings)
    assert audit_trail.records == (result.audit,)


@pytest.mark.asyncio
async def test_generate_draft_llm_path(llm_router, mock_transport):
    result = await generate_draft(BASE_SETUP, llm_router)
    assert result.audit.effective_mode == "llm"
    assert result.audit.fallback_used is False
    assert not any(w.code == "DURATION_ROUNDING_RESIDUAL" for w in result.warnings)
    assert [c["capability"] for c in mock_transport.calls] == ["suggestDraftPlan"]


@pytest.mark.asyncio
async def test_hard_violation_raises_constraint_error(deterministic_router):
    with pytest.raises(PlanConstraintError) as exc_info:
        await generate_draft(UNSATISFIABLE_SETUP, deterministic_router)
    err = exc_info.value
    assert err.code == "PLAN_CONSTRAINT_VIOLATION"
    assert [v.code for v in err.violations] == ["DISTRIBUTION_UNSATISFIABLE"]
    assert err.to_dict()["details"]["violations"][0]["code"] == "DISTRIBUTION_UNSATISFIABLE"


@pytest.mark.asyncio
async def test_invalid_setup_raises_before_routing(deterministic_router, audit_trail):
    with pytest.raises(SetupValidationError):
        await generate_draft({"weeklyAvailabilityDays": [1, 3]}, deterministic_router)
    assert audit_trail.records == ()
