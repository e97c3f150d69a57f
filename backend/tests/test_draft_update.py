"""Tests for coach draft updates: lock enforcement, detail resync and the commit timeout."""

import asyncio

import pytest

from plan_builder.core.errors import DraftEditError
from plan_builder.schemas.draft_update import DetailBlockEdit, DraftUpdate, SessionEdit, WeekLockChange
from plan_builder.services.draft_update import commit_draft_update, update_draft_plan

from conftest import lock_sessions, lock_weeks


def _edit(plan, *edits, week_locks=()):
    return update_draft_plan(plan, DraftUpdate(week_locks=list(week_locks), session_edits=list(edits)))


def _minutes(session):
    return [b.duration_minutes for b in session.detail.structure]


def test_duration_edit_builds_then_reflows_detail(base_plan):
    first = _edit(base_plan, SessionEdit(session_id="0:2", duration_minutes=60))
    session = first.plan.find_session("0:2")
    assert _minutes(session) == [9, 45, 6]
    assert session.detail_mode == "deterministic"

    second = _edit(first.plan, SessionEdit(session_id="0:2", duration_minutes=90))
    session = second.plan.find_session("0:2")
    assert session.duration_minutes == 90
    assert _minutes(session) == [15, 65, 10]
    assert second.week_totals[0].total_minutes == 330
    assert second.touched_session_ids == ["0:2"]


def test_discipline_change_rebuilds_detail(base_plan):
    result = _edit(base_plan, SessionEdit(session_id="0:2", discipline="bike", type="tempo"))
    session = result.plan.find_session("0:2")
    assert (session.discipline, session.type) == ("bike", "tempo")
    assert session.detail.objective == "Tempo bike session"


def test_notes_can_be_cleared(base_plan):
    result = _edit(base_plan, SessionEdit(session_id="0:0", notes=None))
    assert result.plan.find_session("0:0").notes is None
    assert base_plan.find_session("0:0").notes == "Technique focus"


def test_locked_session_rejects_content_edit(base_plan):
    plan = lock_sessions(base_plan, "0:2")
    with pytest.raises(DraftEditError) as exc_info:
        _edit(plan, SessionEdit(session_id="0:2", duration_minutes=90))
    assert exc_info.value.code == "SESSION_LOCKED"
    assert exc_info.value.details == {"sessionId": "0:2"}


def test_locked_session_can_be_unlocked(base_plan):
    plan = lock_sessions(base_plan, "0:2")
    result = _edit(plan, SessionEdit(session_id="0:2", locked=False))
    assert result.plan.find_session("0:2").locked is False
    assert result.touched_session_ids == []


def test_locked_week_rejects_edits(base_plan):
    plan = lock_weeks(base_plan, 0)
    with pytest.raises(DraftEditError) as exc_info:
        _edit(plan, SessionEdit(session_id="0:2", duration_minutes=90))
    assert exc_info.value.code == "WEEK_LOCKED"


def test_week_unlock_in_same_update_allows_edit(base_plan):
    plan = lock_weeks(base_plan, 0)
    result = _edit(
        plan,
        SessionEdit(session_id="0:2", duration_minutes=90),
        week_locks=[WeekLockChange(week_index=0, locked=False)],
    )
    assert result.plan.week(0).locked is False
    assert result.plan.find_session("0:2").duration_minutes == 90


def test_week_lock_in_same_update_applies_first(base_plan):
    with pytest.raises(DraftEditError) as exc_info:
        _edit(
            base_plan,
            SessionEdit(session_id="0:2", duration_minutes=90),
            week_locks=[WeekLockChange(week_index=0, locked=True)],
        )
    assert exc_info.value.code == "WEEK_LOCKED"


def test_rejected_batch_changes_nothing(base_plan):
    plan = lock_sessions(base_plan, "0:3")
    with pytest.raises(DraftEditError):
        _edit(
            plan,
            SessionEdit(session_id="0:2", duration_minutes=90),
            SessionEdit(session_id="0:3", duration_minutes=100),
        )
    assert plan.find_session("0:2").duration_minutes == 60


def test_duplicate_session_edit_rejected(base_plan):
    with pytest.raises(DraftEditError) as exc_info:
        _edit(base_plan, SessionEdit(session_id="0:2", notes="a"), SessionEdit(session_id="0:2", notes="b"))
    assert exc_info.value.code == "INVALID_EDIT"


@pytest.mark.parametrize("update", [
    DraftUpdate(session_edits=[SessionEdit(session_id="9:0", notes="x")]),
    DraftUpdate(week_locks=[WeekLockChange(week_index=12, locked=True)]),
])
def test_missing_targets_not_found(base_plan, update):
    with pytest.raises(DraftEditError) as exc_info:
        update_draft_plan(base_plan, update)
    assert exc_info.value.code == "NOT_FOUND"


def test_coach_block_edit_switches_to_coach_mode(base_plan):
    result = _edit(
        base_plan,
        SessionEdit(
            session_id="0:2",
            detail_block_edits={0: DetailBlockEdit(duration_minutes=15)},
            objective_override="Progressive long intervals",
        ),
    )
    session = result.plan.find_session("0:2")
    assert session.detail_mode == "coach"
    assert _minutes(session) == [15, 39, 6]
    assert session.detail.objective == "Progressive long intervals"
    assert result.touched_session_ids == ["0:2"]


def test_update_from_camel_case_payload(base_plan):
    update = DraftUpdate.model_validate({
        "weekLocks": [{"weekIndex": 3, "locked": True}],
        "sessionEdits": [{"sessionId": "0:2", "durationMinutes": 50, "notes": "Keep it conversational"}],
    })
    result = update_draft_plan(base_plan, update)
    assert result.plan.week(3).locked
    assert result.plan.find_session("0:2").notes == "Keep it conversational"


@pytest.mark.asyncio
async def test_commit_receives_result(base_plan):
    committed = []

    async def commit(result):
        committed.append(result)

    result = await commit_draft_update(
        base_plan, DraftUpdate(session_edits=[SessionEdit(session_id="0:2", duration_minutes=70)]), commit
    )
    assert committed == [result]
    assert result.plan.find_session("0:2").duration_minutes == 70


@pytest.mark.asyncio
async def test_commit_timeout_raises_update_timeout(base_plan):
    async def slow_commit(result):
        await asyncio.sleep(1)

    with pytest.raises(DraftEditError) as exc_info:
        await commit_draft_update(base_plan, DraftUpdate(), slow_commit, timeout_seconds=0.01)
    assert exc_info.value.code == "UPDATE_TIMEOUT"


@pytest.mark.asyncio
async def test_commit_never_called_on_lock_violation(base_plan):
    plan = lock_sessions(base_plan, "0:2")
    calls = []

    async def commit(result):
        calls.append(result)

    with pytest.raises(DraftEditError):
        await commit_draft_update(plan, DraftUpdate(session_edits=[SessionEdit(session_id="0:2", type="tempo")]), commit)
    assert calls == []
