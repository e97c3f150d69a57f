"""Pytest configuration and shared fixtures for plan builder tests."""

import os

import pytest

# Set env before plan_builder imports so settings never point at a real provider
os.environ["APP_ENV"] = "test"
os.environ.setdefault("AI_PLAN_BUILDER_AI_MODE", "deterministic")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

from plan_builder.config import Settings
from plan_builder.schemas.draft_update import DraftUpdate, SessionEdit
from plan_builder.services.ai.audit import AuditTrail
from plan_builder.services.ai.mock_transport import MockTransport
from plan_builder.services.ai.router import AiCapabilityRouter, build_router_config
from plan_builder.services.draft_generator import generate_draft_plan
from plan_builder.services.draft_update import update_draft_plan
from plan_builder.services.setup_normalizer import normalize_setup

pytest_plugins = ["pytest_asyncio"]

# 8 weeks, Mon/Wed/Fri/Sat, 300 min/week, long day Saturday
BASE_SETUP = {
    "weeksToEvent": 8,
    "weeklyAvailabilityDays": [1, 3, 5, 6],
    "weeklyAvailabilityMinutes": 300,
    "disciplineEmphasis": "balanced",
    "riskTolerance": "med",
    "maxIntensityDaysPerWeek": 2,
    "maxDoublesPerWeek": 0,
    "longSessionDay": 6,
}


@pytest.fixture
def base_setup_raw():
    return dict(BASE_SETUP)


@pytest.fixture
def base_setup():
    return normalize_setup(BASE_SETUP)


@pytest.fixture
def base_plan(base_setup):
    return generate_draft_plan(base_setup)


def make_settings(**overrides) -> Settings:
    """Settings with provider credentials pinned empty so the host env never leaks in."""
    values = {
        "app_env": "test",
        "google_gemini_api_key": "",
        "openai_api_key": "",
        "llm_provider": "mock",
        "ai_mode": "deterministic",
    }
    values.update(overrides)
    return Settings(**values)


def lock_sessions(plan, *session_ids):
    update = DraftUpdate(session_edits=[SessionEdit(session_id=sid, locked=True) for sid in session_ids])
    return update_draft_plan(plan, update).plan


def lock_weeks(plan, *week_indices):
    update = DraftUpdate.model_validate({"weekLocks": [{"weekIndex": w, "locked": True} for w in week_indices]})
    return update_draft_plan(plan, update).plan


@pytest.fixture
def audit_trail():
    return AuditTrail()


@pytest.fixture
def deterministic_router(audit_trail):
    return AiCapabilityRouter(build_router_config(make_settings()), audit_trail=audit_trail)


@pytest.fixture
def mock_transport():
    return MockTransport()


@pytest.fixture
def llm_router(audit_trail, mock_transport):
    """LLM mode on every capability over the scripted mock transport, one retry."""
    config = build_router_config(make_settings(ai_mode="llm", llm_retry_count=1, llm_model="mock-model"))
    return AiCapabilityRouter(config, transport=mock_transport, audit_trail=audit_trail)
