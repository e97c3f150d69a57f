"""
Coach draft updates: week lock toggles plus session edits, validated as one batch.
The whole batch is checked against lock state before anything is applied, so a rejected
update never leaves a partially edited plan behind.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from plan_builder.core.errors import DraftEditError
from plan_builder.schemas.athlete_brief import AthleteBrief
from plan_builder.schemas.draft_update import DraftUpdate, SessionEdit
from plan_builder.schemas.plan import DraftPlanV1, DraftSession, WeekTotals, compute_week_totals
from plan_builder.services.session_detail import apply_coach_edits, resync_session_detail

logger = logging.getLogger(__name__)

CONTENT_FIELDS = ("discipline", "type", "duration_minutes", "notes")


@dataclass(frozen=True)
class DraftUpdateResult:
    plan: DraftPlanV1
    week_totals: list[WeekTotals]
    touched_session_ids: list[str] = field(default_factory=list)


def _validate(plan: DraftPlanV1, update: DraftUpdate) -> dict[int, bool]:
    """Resolve post-toggle week lock state and reject the batch on the first lock violation."""
    week_locked = {w.week_index: w.locked for w in plan.weeks}
    for change in update.week_locks:
        if change.week_index not in week_locked:
            raise DraftEditError(f"Week {change.week_index} not found.", code="NOT_FOUND", details={"weekIndex": change.week_index})
        week_locked[change.week_index] = change.locked

    seen: set[str] = set()
    for edit in update.session_edits:
        if edit.session_id in seen:
            raise DraftEditError(f"Session {edit.session_id} edited twice.", code="INVALID_EDIT")
        seen.add(edit.session_id)
        session = plan.find_session(edit.session_id)
        if session is None:
            raise DraftEditError(f"Session {edit.session_id} not found.", code="NOT_FOUND", details={"sessionId": edit.session_id})
        if week_locked.get(session.week_index):
            raise DraftEditError(
                "Week is locked and sessions cannot be modified.",
                code="WEEK_LOCKED",
                details={"weekIndex": session.week_index},
            )
        # a locked session may only have its lock toggled
        if session.locked and edit.wants_content_change:
            raise DraftEditError(
                "Session is locked and cannot be edited.",
                code="SESSION_LOCKED",
                details={"sessionId": edit.session_id},
            )
    return week_locked


def _apply_edit(session: DraftSession, edit: SessionEdit, brief: AthleteBrief | None) -> DraftSession:
    changes = {name: getattr(edit, name) for name in CONTENT_FIELDS if name in edit.model_fields_set}
    if edit.locked is not None:
        changes["locked"] = edit.locked
    updated = DraftSession.model_validate({**session.model_dump(), **changes})
    if any(name in changes for name in ("discipline", "type", "duration_minutes")):
        updated = resync_session_detail(session, updated, brief)

    if edit.wants_detail_change:
        if updated.detail is None:
            updated = resync_session_detail(session, updated, brief)
        detail = apply_coach_edits(
            updated.detail,
            updated.duration_minutes,
            block_edits=edit.detail_block_edits,
            objective_override=edit.objective_override,
            notes_override=edit.detail_notes_override,
        )
        updated = updated.model_copy(update={"detail": detail, "detail_mode": "coach"})
    return updated


def update_draft_plan(plan: DraftPlanV1, update: DraftUpdate, brief: AthleteBrief | None = None) -> DraftUpdateResult:
    """Pure update: returns a new plan plus recomputed week totals and the ids of edited sessions."""
    week_locked = _validate(plan, update)
    edits = {e.session_id: e for e in update.session_edits}

    touched: list[str] = []
    weeks = []
    for week in plan.weeks:
        sessions = []
        for session in week.sessions:
            edit = edits.get(session.session_id)
            if edit is None:
                sessions.append(session)
                continue
            sessions.append(_apply_edit(session, edit, brief))
            if edit.wants_content_change:
                touched.append(session.session_id)
        weeks.append(week.model_copy(update={"locked": week_locked[week.week_index], "sessions": sessions}))

    new_plan = plan.model_copy(update={"weeks": weeks})
    return DraftUpdateResult(plan=new_plan, week_totals=compute_week_totals(new_plan), touched_session_ids=touched)


async def commit_draft_update(
    plan: DraftPlanV1,
    update: DraftUpdate,
    commit: Callable[[DraftUpdateResult], Awaitable[None]],
    *,
    brief: AthleteBrief | None = None,
    timeout_seconds: float = 15.0,
) -> DraftUpdateResult:
    """
    Validate and apply the update, then hand the result to the caller's commit coroutine, all
    within timeout_seconds. Lock violations are raised before commit is ever called.
    """

    async def _run() -> DraftUpdateResult:
        result = update_draft_plan(plan, update, brief)
        await commit(result)
        return result

    try:
        return await asyncio.wait_for(_run(), timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        logger.warning("Draft update timed out after %ss", timeout_seconds)
        raise DraftEditError("Draft update timed out.", code="UPDATE_TIMEOUT") from e
