"""Tests for the AI capability router: modes, retries, fallback, post-checks, audit and config."""

import asyncio
from dataclasses import replace

import pytest
from pydantic import ValidationError

from plan_builder.config import Settings
from plan_builder.core.errors import LlmError
from plan_builder.schemas.capabilities import GenerateSessionDetailInput, SessionDetailRequest, SuggestProposalDiffsInput
from plan_builder.schemas.intake import SummarizeIntakeInput
from plan_builder.services.ai.audit import AuditTrail
from plan_builder.services.ai.router import AiCapabilityRouter, build_router, build_router_config
from plan_builder.services.draft_generator import generate_draft_plan
from plan_builder.services.proposal_diff import snapshot_from_plan
from plan_builder.services.session_detail import build_deterministic_session_detail
from plan_builder.services.stable_hash import stable_hash

from conftest import BASE_SETUP, lock_sessions, make_settings

INTAKE = {"evidence": [{"questionKey": "goal", "answerJson": "First marathon, knee pain last year"}]}
LLM_INTAKE = {"profileJson": {"goal": "marathon"}, "summaryText": "from llm", "flags": ["marathon"]}


def _llm_router(transport, audit_trail=None, **overrides):
    values = {"ai_mode": "llm", "llm_retry_count": 1, "llm_model": "mock-model"}
    values.update(overrides)
    return AiCapabilityRouter(build_router_config(make_settings(**values)), transport=transport, audit_trail=audit_trail)


@pytest.mark.asyncio
async def test_deterministic_mode_audit(deterministic_router, audit_trail):
    routed = await deterministic_router.invoke("summarizeIntake", INTAKE)
    assert routed.value.flags == ["pain", "marathon"]
    assert routed.value.summary_text == "goal: First marathon, knee pain last year"
    audit = routed.audit
    assert (audit.effective_mode, audit.provider, audit.model) == ("deterministic", "deterministic", None)
    assert audit.spec_version == "apb.summarizeIntake@v1"
    assert audit.input_hash == stable_hash(SummarizeIntakeInput.model_validate(INTAKE))
    assert audit.output_hash == stable_hash(routed.value)
    assert audit_trail.records == (audit,)


@pytest.mark.asyncio
async def test_llm_success(llm_router, mock_transport):
    mock_transport.script("summarizeIntake", LLM_INTAKE)
    routed = await llm_router.invoke("summarizeIntake", INTAKE)
    assert routed.value.summary_text == "from llm"
    audit = routed.audit
    assert (audit.effective_mode, audit.provider, audit.model) == ("llm", "mock", "mock-model")
    assert (audit.retry_count, audit.fallback_used, audit.error_code) == (0, False, None)
    assert audit.max_output_tokens == 1200
    assert mock_transport.calls[0]["model"] == "mock-model"


@pytest.mark.asyncio
async def test_retryable_errors_exhaust_then_fall_back(llm_router, mock_transport, deterministic_router):
    mock_transport.script("summarizeIntake", LlmError("TIMEOUT", "slow"), LlmError("TIMEOUT", "slow"))
    routed = await llm_router.invoke("summarizeIntake", INTAKE)
    assert len(mock_transport.calls) == 2
    assert (routed.audit.retry_count, routed.audit.fallback_used, routed.audit.error_code) == (1, True, "TIMEOUT")
    expected = (await deterministic_router.invoke("summarizeIntake", INTAKE)).value
    assert routed.value == expected


@pytest.mark.asyncio
async def test_retry_then_success(llm_router, mock_transport):
    mock_transport.script("summarizeIntake", LlmError("INVALID_JSON", "bad json"), LLM_INTAKE)
    routed = await llm_router.invoke("summarizeIntake", INTAKE)
    assert routed.value.summary_text == "from llm"
    assert (routed.audit.retry_count, routed.audit.fallback_used) == (1, False)


@pytest.mark.asyncio
async def test_terminal_error_is_not_retried(llm_router, mock_transport):
    mock_transport.script("summarizeIntake", LlmError("PROVIDER_ERROR", "400", retryable=False), LLM_INTAKE)
    routed = await llm_router.invoke("summarizeIntake", INTAKE)
    assert len(mock_transport.calls) == 1
    assert (routed.audit.retry_count, routed.audit.fallback_used, routed.audit.error_code) == (0, True, "PROVIDER_ERROR")


@pytest.mark.asyncio
async def test_retry_count_zero_makes_one_attempt(mock_transport):
    router = _llm_router(mock_transport, llm_retry_count=0)
    mock_transport.script("summarizeIntake", LlmError("NETWORK", "down"))
    routed = await router.invoke("summarizeIntake", INTAKE)
    assert len(mock_transport.calls) == 1
    assert routed.audit.fallback_used


@pytest.mark.asyncio
async def test_unexpected_exception_is_retryable_provider_error(llm_router, mock_transport):
    mock_transport.script("summarizeIntake", RuntimeError("boom"), RuntimeError("boom"))
    routed = await llm_router.invoke("summarizeIntake", INTAKE)
    assert len(mock_transport.calls) == 2
    assert (routed.audit.error_code, routed.audit.retry_count) == ("PROVIDER_ERROR", 1)


@pytest.mark.asyncio
async def test_builtin_timeout_error_maps_to_timeout(llm_router, mock_transport):
    mock_transport.script("summarizeIntake", TimeoutError("read timed out"), TimeoutError("read timed out"))
    routed = await llm_router.invoke("summarizeIntake", INTAKE)
    assert (routed.audit.error_code, routed.audit.fallback_used) == ("TIMEOUT", True)


class HangingTransport:
    provider = "mock"

    def __init__(self):
        self.calls = 0

    async def generate_structured_json(self, **kwargs):
        self.calls += 1
        await asyncio.sleep(30)


@pytest.mark.asyncio
async def test_router_enforces_timeout_budget(audit_trail):
    config = build_router_config(make_settings(ai_mode="llm", llm_retry_count=1))
    transport = HangingTransport()
    router = AiCapabilityRouter(replace(config, timeout_ms=50), transport=transport, audit_trail=audit_trail)
    routed = await asyncio.wait_for(router.invoke("summarizeIntake", INTAKE), timeout=5)
    assert transport.calls == 2
    assert (routed.audit.error_code, routed.audit.fallback_used, routed.audit.retry_count) == ("TIMEOUT", True, 1)
    assert routed.value.summary_text


@pytest.mark.asyncio
async def test_missing_credentials_fall_back_with_config_missing(audit_trail):
    settings = make_settings(ai_mode="llm", llm_provider="openai", app_env="development")
    router = AiCapabilityRouter(build_router_config(settings), audit_trail=audit_trail)
    routed = await router.invoke("summarizeIntake", INTAKE)
    assert (routed.audit.error_code, routed.audit.fallback_used, routed.audit.retry_count) == ("CONFIG_MISSING", True, 0)
    assert routed.audit.provider == "openai"


@pytest.mark.asyncio
async def test_test_env_forces_mock_transport():
    router = AiCapabilityRouter(build_router_config(make_settings(ai_mode="llm", llm_provider="gemini")))
    routed = await router.invoke("summarizeIntake", INTAKE)
    assert routed.audit.provider == "mock"
    assert routed.audit.fallback_used is False


@pytest.mark.asyncio
async def test_rate_limited_hook_skips_transport(mock_transport):
    seen = []

    async def limiter(capability):
        seen.append(capability)
        raise LlmError("RATE_LIMITED", "hourly limit reached")

    config = build_router_config(make_settings(ai_mode="llm"))
    router = AiCapabilityRouter(config, transport=mock_transport, before_llm_call=limiter)
    routed = await router.invoke("summarizeIntake", INTAKE)
    assert seen == ["summarizeIntake"]
    assert mock_transport.calls == []
    assert (routed.audit.error_code, routed.audit.fallback_used, routed.audit.retry_count) == ("RATE_LIMITED", True, 0)


@pytest.mark.asyncio
async def test_deterministic_mode_never_calls_hook(deterministic_router):
    async def limiter(capability):
        raise AssertionError("hook must not run in deterministic mode")

    router = AiCapabilityRouter(deterministic_router.config, before_llm_call=limiter)
    routed = await router.invoke("summarizeIntake", INTAKE)
    assert routed.audit.effective_mode == "deterministic"


def _off_day_plan_payload():
    dump = generate_draft_plan(BASE_SETUP).to_json_dict()
    dump["weeks"][0]["sessions"][0]["dayOfWeek"] = 0
    return {"planJson": dump}


@pytest.mark.asyncio
async def test_draft_plan_failing_quality_gate_is_retried(llm_router, mock_transport):
    """First answer schedules on an unavailable day; the retry gets the mock's default plan."""
    mock_transport.script("suggestDraftPlan", _off_day_plan_payload())
    routed = await llm_router.invoke("suggestDraftPlan", {"setup": BASE_SETUP})
    assert len(mock_transport.calls) == 2
    assert (routed.audit.retry_count, routed.audit.fallback_used) == (1, False)
    assert routed.value.plan_json.weeks[0].sessions[0].day_of_week == 1


@pytest.mark.asyncio
async def test_draft_plan_gate_failure_falls_back(llm_router, mock_transport):
    mock_transport.script("suggestDraftPlan", _off_day_plan_payload(), _off_day_plan_payload())
    routed = await llm_router.invoke("suggestDraftPlan", {"setup": BASE_SETUP})
    assert (routed.audit.error_code, routed.audit.fallback_used) == ("SCHEMA_VALIDATION_FAILED", True)
    assert routed.value.plan_json == generate_draft_plan(BASE_SETUP)


def _collapsed_index_plan_payload():
    dump = generate_draft_plan(BASE_SETUP).to_json_dict()
    for week in dump["weeks"]:
        week["weekIndex"] = 0
        for session in week["sessions"]:
            session["weekIndex"] = 0
            session["ordinal"] = 0
    return {"planJson": dump}


@pytest.mark.asyncio
async def test_draft_plan_with_colliding_ids_falls_back(llm_router, mock_transport):
    mock_transport.script("suggestDraftPlan", _collapsed_index_plan_payload(), _collapsed_index_plan_payload())
    routed = await llm_router.invoke("suggestDraftPlan", {"setup": BASE_SETUP})
    assert (routed.audit.error_code, routed.audit.fallback_used) == ("SCHEMA_VALIDATION_FAILED", True)
    plan = routed.value.plan_json
    ids = [s.session_id for s in plan.iter_sessions()]
    assert len(ids) == len(set(ids)) == 32
    assert [w.week_index for w in plan.weeks] == list(range(8))


@pytest.mark.asyncio
async def test_proposal_post_check_drops_locked_ops(llm_router, mock_transport, base_plan):
    snapshot = snapshot_from_plan(lock_sessions(base_plan, "0:1"))
    mock_transport.script("suggestProposalDiffs", {
        "diff": [
            {"op": "SWAP_SESSION_TYPE", "draftSessionId": "0:1", "newType": "recovery"},
            {"op": "ADD_NOTE", "target": "session", "draftSessionId": "0:2", "text": "Keep it easy"},
        ],
        "rationaleText": "llm rationale",
        "respectsLocks": True,
    })
    result = await llm_router.suggest_proposal_diffs(SuggestProposalDiffsInput(trigger_types=["SORENESS"], draft=snapshot))
    assert [(op.op, op.draft_session_id) for op in result.diff] == [("ADD_NOTE", "0:2")]
    assert result.rationale_text == "llm rationale"
    assert result.respects_locks


@pytest.mark.asyncio
async def test_session_detail_post_check_reflows_minutes(llm_router, mock_transport):
    sixty = build_deterministic_session_detail("run", "endurance", 60)
    mock_transport.script("generateSessionDetail", {"detail": sixty.to_json_dict()})
    data = GenerateSessionDetailInput(session=SessionDetailRequest(discipline="run", type="endurance", duration_minutes=90))
    result = await llm_router.generate_session_detail(data)
    assert result.detail.total_minutes == 90


@pytest.mark.asyncio
async def test_invalid_input_raises_before_any_attempt(llm_router, mock_transport, audit_trail):
    with pytest.raises(ValidationError):
        await llm_router.invoke("suggestProposalDiffs", {"triggerTypes": ["BAD"], "draft": {}})
    with pytest.raises(ValueError):
        await llm_router.invoke("planEverything", {})
    assert mock_transport.calls == []
    assert audit_trail.records == ()


@pytest.mark.asyncio
async def test_llm_input_is_redacted_but_hash_is_not(llm_router, mock_transport):
    intake = {"evidence": [{"questionKey": "contact", "answerJson": "jane.doe@example.com or (555) 123-4567"}]}
    routed = await llm_router.invoke("summarizeIntake", intake)
    sent = mock_transport.calls[0]["input_text"]
    assert "jane.doe@example.com" not in sent
    assert "[REDACTED_EMAIL]" in sent and "[REDACTED_PHONE]" in sent
    assert routed.audit.input_hash == stable_hash(SummarizeIntakeInput.model_validate(intake))


@pytest.mark.asyncio
async def test_failing_audit_sink_does_not_fail_the_call(deterministic_router):
    forwarded = []

    async def broken_sink(audit):
        raise RuntimeError("sink down")

    async def good_sink(audit):
        forwarded.append(audit)

    trail = AuditTrail(sinks=[broken_sink, good_sink])
    router = AiCapabilityRouter(deterministic_router.config, audit_trail=trail)
    routed = await router.invoke("summarizeIntake", INTAKE)
    assert trail.records == (routed.audit,)
    assert forwarded == [routed.audit]


def test_build_router_config_overrides_and_clamps():
    config = build_router_config(make_settings(
        ai_cap_suggest_draft_plan="llm",
        ai_cap_summarize_intake="sometimes",
        llm_model="base-model",
        llm_model_generate_session_detail="detail-model",
        llm_max_output_tokens=50,
        llm_max_output_tokens_suggest_draft_plan=20000,
        llm_rate_limit_per_hour_summarize_intake=0,
        llm_retry_count=7,
        llm_timeout_ms=10,
    ))
    assert config.for_capability("suggestDraftPlan").mode == "llm"
    assert config.for_capability("summarizeIntake").mode == "deterministic"
    assert config.for_capability("generateSessionDetail").model == "detail-model"
    assert config.for_capability("summarizeIntake").model == "base-model"
    assert config.for_capability("summarizeIntake").max_output_tokens == 128
    assert config.for_capability("suggestDraftPlan").max_output_tokens == 8000
    assert config.for_capability("summarizeIntake").rate_limit_per_hour == 0
    assert config.for_capability("suggestProposalDiffs").rate_limit_per_hour == 20
    assert config.retry_count == 2
    assert config.timeout_ms == 1000
    assert config.effective_provider == "mock"
    with pytest.raises(TypeError):
        config.capabilities["summarizeIntake"] = None


def test_settings_read_from_env(monkeypatch):
    monkeypatch.setenv("AI_PLAN_BUILDER_AI_MODE", "LLM")
    monkeypatch.setenv("AI_PLAN_BUILDER_LLM_PROVIDER", " OpenAI ")
    monkeypatch.setenv("AI_PLAN_BUILDER_AI_CAP_GENERATE_SESSION_DETAIL", "deterministic")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("APP_ENV", "production")
    s = Settings()
    assert s.ai_mode == "llm"
    assert s.llm_provider == "openai"
    assert s.openai_api_key == "sk-test"
    assert not s.force_mock_transport
    config = build_router_config(s)
    assert config.for_capability("generateSessionDetail").mode == "deterministic"
    assert config.for_capability("suggestDraftPlan").mode == "llm"
    assert "sk-test" not in repr(config)


def test_build_router_wires_rate_limiter():
    from plan_builder.core.rate_limit import CapabilityRateLimiter

    router = build_router(make_settings())
    assert isinstance(router._before_llm_call, CapabilityRateLimiter)
    assert build_router(make_settings(), rate_limit=False)._before_llm_call is None
