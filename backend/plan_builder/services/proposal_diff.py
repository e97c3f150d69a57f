"""
Deterministic adaptation proposals: trigger types + draft snapshot -> ordered diff ops.
Ops that would touch a locked week or session are never emitted; respects_locks is re-checked
against the snapshot after the ops are built.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from plan_builder.schemas.diff import (
    AddSessionNoteOp,
    AddWeekNoteOp,
    AdjustWeekVolumeOp,
    DraftPlanSnapshot,
    PlanDiffOp,
    ProposalDiffResult,
    SessionPatch,
    SnapshotSession,
    SnapshotWeek,
    SwapSessionTypeOp,
    TriggerType,
    UpdateSessionOp,
    op_session_id,
    op_week_index,
)
from plan_builder.schemas.plan import INTENSITY_TYPES, MAX_SESSION_MINUTES, DraftPlanV1

logger = logging.getLogger(__name__)

TRIGGER_ORDER: tuple[TriggerType, ...] = ("SORENESS", "TOO_HARD", "MISSED_KEY", "LOW_COMPLIANCE", "HIGH_COMPLIANCE")
PROGRESSION_MINUTES = 10


@dataclass(frozen=True)
class _SessionView:
    session: SnapshotSession
    week_locked: bool

    @property
    def blocked(self) -> bool:
        return self.session.locked or self.week_locked


def snapshot_from_plan(plan: DraftPlanV1) -> DraftPlanSnapshot:
    return DraftPlanSnapshot(
        weeks=[SnapshotWeek(week_index=w.week_index, locked=w.locked) for w in plan.weeks],
        sessions=[
            SnapshotSession(
                id=s.session_id,
                week_index=s.week_index,
                ordinal=s.ordinal,
                day_of_week=s.day_of_week,
                discipline=s.discipline,
                type=s.type,
                duration_minutes=s.duration_minutes,
                notes=s.notes,
                locked=s.locked,
            )
            for s in plan.iter_sessions()
        ],
    )


def ordered_triggers(trigger_types) -> list[TriggerType]:
    """De-duplicate and sort triggers into their canonical processing order."""
    present = set(trigger_types)
    return [t for t in TRIGGER_ORDER if t in present]


def downgrade_intensity_type(session_type: str) -> str:
    return "tempo" if session_type == "threshold" else "endurance"


def _pct_text(pct_delta: float) -> str:
    pct = round(pct_delta * 100)
    return f"+{pct}%" if pct > 0 else f"{pct}%"


def op_violates_locks(op: PlanDiffOp, snapshot: DraftPlanSnapshot) -> bool:
    week_locked = {w.week_index: w.locked for w in snapshot.weeks}
    week_index = op_week_index(op)
    if week_index is not None:
        return week_locked.get(week_index, False)
    session_id = op_session_id(op)
    session = next((s for s in snapshot.sessions if s.id == session_id), None)
    if session is None:
        return False
    return session.locked or week_locked.get(session.week_index, False)


def suggest_proposal_diffs(
    trigger_types,
    draft: DraftPlanSnapshot,
    current_week_index: int = 0,
) -> ProposalDiffResult:
    week_locked = {w.week_index: w.locked for w in draft.weeks}
    views = sorted(
        (_SessionView(s, week_locked.get(s.week_index, False)) for s in draft.sessions),
        key=lambda v: (v.session.week_index, v.session.ordinal, v.session.day_of_week),
    )
    upcoming = [v for v in views if v.session.week_index >= current_week_index]
    next_week = current_week_index + 1
    next_week_locked = week_locked.get(next_week, False)

    ops: list[PlanDiffOp] = []
    rationale: list[str] = []

    def blocked(reason: str) -> None:
        rationale.append(f"Blocked by lock: {reason}")

    def first_unlocked(candidates: list[_SessionView]) -> SnapshotSession | None:
        for view in candidates:
            if not view.blocked:
                return view.session
        return None

    def adjust_next_week(pct_delta: float, because: str) -> None:
        if next_week_locked:
            blocked(f"weekIndex={next_week} is locked (cannot adjust week volume).")
            return
        ops.append(AdjustWeekVolumeOp(week_index=next_week, pct_delta=pct_delta))
        ops.append(AddWeekNoteOp(week_index=next_week, text=f"Volume adjustment {_pct_text(pct_delta)} ({because})."))
        rationale.append(f"{because}: adjust next week volume {_pct_text(pct_delta)}.")

    def swap(session: SnapshotSession, new_type: str, note: str) -> None:
        ops.append(SwapSessionTypeOp(draft_session_id=session.id, new_type=new_type))
        ops.append(AddSessionNoteOp(draft_session_id=session.id, text=note))

    intensity = [v for v in upcoming if v.session.type in INTENSITY_TYPES]
    next_intensity = first_unlocked(intensity)

    for trigger in ordered_triggers(trigger_types):
        if trigger == "SORENESS":
            rationale.append("Trigger SORENESS: soreness reported recently.")
            if next_intensity is None:
                blocked("no unlocked intensity session found to convert for SORENESS.")
            else:
                swap(next_intensity, "recovery", "SORENESS: converted to recovery.")
            adjust_next_week(-0.1, "SORENESS")

        elif trigger == "TOO_HARD":
            rationale.append("Trigger TOO_HARD: multiple sessions felt too hard.")
            if next_intensity is None:
                blocked("no unlocked intensity session found to downgrade for TOO_HARD.")
            else:
                new_type = downgrade_intensity_type(next_intensity.type)
                swap(next_intensity, new_type, f"TOO_HARD: downgraded intensity ({next_intensity.type} -> {new_type}).")

        elif trigger == "MISSED_KEY":
            rationale.append("Trigger MISSED_KEY: multiple key sessions were skipped.")
            adjust_next_week(-0.15, "MISSED_KEY")
            if next_week_locked:
                blocked(f"weekIndex={next_week} is locked (cannot replace intensity session).")
            else:
                target = first_unlocked([v for v in intensity if v.session.week_index == next_week])
                if target is None:
                    blocked("no unlocked intensity session found in next week to replace for MISSED_KEY.")
                else:
                    swap(target, "endurance", "MISSED_KEY: replaced an intensity session with endurance.")

        elif trigger == "LOW_COMPLIANCE":
            rationale.append("Trigger LOW_COMPLIANCE: fewer sessions completed than planned.")
            adjust_next_week(-0.1, "LOW_COMPLIANCE")

        elif trigger == "HIGH_COMPLIANCE":
            rationale.append("Trigger HIGH_COMPLIANCE: strong completion with no negative flags.")
            if next_week_locked:
                blocked(f"weekIndex={next_week} is locked (cannot apply progression).")
                continue
            candidates = sorted(
                (v for v in views if v.session.week_index == next_week),
                key=lambda v: (-v.session.duration_minutes, v.session.ordinal),
            )
            target = first_unlocked(
                [v for v in candidates if v.session.duration_minutes + PROGRESSION_MINUTES <= MAX_SESSION_MINUTES]
            )
            if target is None:
                adjust_next_week(0.05, "HIGH_COMPLIANCE")
            else:
                ops.append(
                    UpdateSessionOp(
                        draft_session_id=target.id,
                        patch=SessionPatch(duration_minutes=target.duration_minutes + PROGRESSION_MINUTES),
                    )
                )
                ops.append(AddSessionNoteOp(draft_session_id=target.id, text="HIGH_COMPLIANCE: small progression (+10 minutes)."))
                rationale.append("HIGH_COMPLIANCE: +10 minutes to the longest session next week.")

    return finalize_proposal(ops, "\n".join(rationale), draft)


def finalize_proposal(ops: list[PlanDiffOp], rationale_text: str, draft: DraftPlanSnapshot) -> ProposalDiffResult:
    """Drop any op that touches a locked target, then re-check what is left."""
    kept = []
    for op in ops:
        if op_violates_locks(op, draft):
            logger.warning("Dropping diff op %s: target is locked", op.op)
            continue
        kept.append(op)
    respects_locks = not any(op_violates_locks(op, draft) for op in kept)
    return ProposalDiffResult(diff=kept, rationale_text=rationale_text, respects_locks=respects_locks)
