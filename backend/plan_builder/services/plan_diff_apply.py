"""Apply adaptation diff ops to a draft plan. Pure and all-or-nothing."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable

from plan_builder.core.errors import DraftEditError
from plan_builder.schemas.athlete_brief import AthleteBrief
from plan_builder.schemas.diff import (
    AddSessionNoteOp,
    AddWeekNoteOp,
    AdjustWeekVolumeOp,
    PlanDiffOp,
    SwapSessionTypeOp,
    UpdateSessionOp,
)
from plan_builder.schemas.plan import MAX_SESSION_MINUTES, MIN_SESSION_MINUTES, DraftPlanV1, DraftSession
from plan_builder.services.session_detail import resync_session_detail


@dataclass(frozen=True)
class DiffApplication:
    plan: DraftPlanV1
    touched_session_ids: list[str] = field(default_factory=list)


def _append_note(notes: str | None, text: str) -> str:
    return f"{notes}\n{text}" if notes else text


def _scale_duration(minutes: int, pct_delta: float) -> int:
    scaled = int(math.floor(minutes * (1 + pct_delta) + 0.5))
    return max(MIN_SESSION_MINUTES, min(MAX_SESSION_MINUTES, scaled))


def apply_plan_diff(
    plan: DraftPlanV1,
    ops: Iterable[PlanDiffOp],
    brief: AthleteBrief | None = None,
) -> DiffApplication:
    """
    Apply ops in order. Any op aimed at a locked week or session, or at a missing target,
    raises DraftEditError and nothing is applied. Week-level ops skip locked sessions.
    """
    week_locked = {w.week_index: w.locked for w in plan.weeks}
    sessions: dict[str, DraftSession] = {s.session_id: s for s in plan.iter_sessions()}
    touched: list[str] = []

    def editable_session(session_id: str) -> DraftSession:
        session = sessions.get(session_id)
        if session is None:
            raise DraftEditError(f"Session {session_id} not found.", code="NOT_FOUND")
        if week_locked.get(session.week_index):
            raise DraftEditError(f"Week {session.week_index} is locked.", code="WEEK_LOCKED")
        if session.locked:
            raise DraftEditError(f"Session {session_id} is locked.", code="SESSION_LOCKED")
        return session

    def editable_week(week_index: int) -> list[DraftSession]:
        if week_index not in week_locked:
            raise DraftEditError(f"Week {week_index} not found.", code="NOT_FOUND")
        if week_locked[week_index]:
            raise DraftEditError(f"Week {week_index} is locked.", code="WEEK_LOCKED")
        return [s for s in sessions.values() if s.week_index == week_index and not s.locked]

    def put(session: DraftSession, **changes) -> None:
        sessions[session.session_id] = session.model_copy(update=changes)
        if session.session_id not in touched:
            touched.append(session.session_id)

    for op in ops:
        if isinstance(op, UpdateSessionOp):
            session = editable_session(op.draft_session_id)
            put(session, **op.patch.model_dump(exclude_none=True))
        elif isinstance(op, SwapSessionTypeOp):
            session = editable_session(op.draft_session_id)
            put(session, type=op.new_type)
        elif isinstance(op, AddSessionNoteOp):
            session = editable_session(op.draft_session_id)
            put(session, notes=_append_note(session.notes, op.text))
        elif isinstance(op, AdjustWeekVolumeOp):
            for session in editable_week(op.week_index):
                put(session, duration_minutes=_scale_duration(session.duration_minutes, op.pct_delta))
        elif isinstance(op, AddWeekNoteOp):
            for session in editable_week(op.week_index):
                put(session, notes=_append_note(session.notes, op.text))
        else:
            raise DraftEditError(f"Unsupported diff op {op!r}.", code="INVALID_EDIT")

    originals = {s.session_id: s for s in plan.iter_sessions()}
    for session_id in touched:
        updated = DraftSession.model_validate(sessions[session_id].model_dump())
        sessions[session_id] = resync_session_detail(originals[session_id], updated, brief, automated=True)

    weeks = [
        week.model_copy(update={"sessions": [sessions[s.session_id] for s in week.sessions]}) for week in plan.weeks
    ]
    return DiffApplication(plan=plan.model_copy(update={"weeks": weeks}), touched_session_ids=touched)
