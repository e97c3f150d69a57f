"""
Generate session details for a whole draft through the bounded concurrent map.
Each session is its own unit of work: it calls the router and persists its own result.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from plan_builder.schemas.athlete_brief import AthleteBrief
from plan_builder.schemas.capabilities import GenerateSessionDetailInput, SessionDetailRequest
from plan_builder.schemas.plan import DraftPlanV1, DraftSession
from plan_builder.schemas.session_detail import SessionDetailV1
from plan_builder.services.ai.router import AiCapabilityRouter
from plan_builder.services.concurrency import MapOutcome, bounded_map
from plan_builder.services.session_detail import detail_input_hash

logger = logging.getLogger(__name__)

# persist(session_id, detail, detail_mode, detail_input_hash)
PersistDetail = Callable[[str, SessionDetailV1, str, str], Awaitable[None]]


@dataclass(frozen=True)
class DetailJobResult:
    session_id: str
    detail: SessionDetailV1
    mode: str
    input_hash: str
    fallback_used: bool


def sessions_needing_detail(plan: DraftPlanV1, brief: AthleteBrief | None = None) -> list[DraftSession]:
    """Unlocked sessions in unlocked weeks, minus coach-authored and already up-to-date details."""
    out = []
    for week in plan.weeks:
        if week.locked:
            continue
        for s in week.sessions:
            if s.locked or s.detail_mode == "coach":
                continue
            if s.detail is not None and s.detail_input_hash == detail_input_hash(s.discipline, s.type, s.duration_minutes, brief):
                continue
            out.append(s)
    return out


async def generate_session_details(
    plan: DraftPlanV1,
    router: AiCapabilityRouter,
    persist: PersistDetail,
    brief: AthleteBrief | None = None,
    concurrency: int = 4,
) -> list[MapOutcome[DraftSession, DetailJobResult]]:
    sessions = sessions_needing_detail(plan, brief)

    async def _one(session: DraftSession) -> DetailJobResult:
        routed = await router.invoke(
            "generateSessionDetail",
            GenerateSessionDetailInput(
                session=SessionDetailRequest(
                    discipline=session.discipline,
                    type=session.type,
                    duration_minutes=session.duration_minutes,
                    week_index=session.week_index,
                    day_of_week=session.day_of_week,
                    ordinal=session.ordinal,
                ),
                athlete_brief=brief,
            ),
        )
        mode = "llm" if routed.audit.effective_mode == "llm" and not routed.audit.fallback_used else "deterministic"
        input_hash = detail_input_hash(session.discipline, session.type, session.duration_minutes, brief)
        detail = routed.value.detail
        await persist(session.session_id, detail, mode, input_hash)
        return DetailJobResult(
            session_id=session.session_id,
            detail=detail,
            mode=mode,
            input_hash=input_hash,
            fallback_used=routed.audit.fallback_used,
        )

    outcomes = await bounded_map(sessions, _one, concurrency=concurrency)
    for o in outcomes:
        if not o.ok:
            logger.warning("Session detail for %s failed: %s", o.item.session_id, o.error)
    return outcomes
