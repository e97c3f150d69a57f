"""
Deterministic draft plan generation:
setup -> program policy -> per week (scheduler -> guardrails -> duration humanizer) -> DraftPlanV1.
Identical setups always produce byte-identical plan JSON.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import partial
from datetime import date, timedelta
from typing import Any, Mapping

from plan_builder.schemas.plan import DraftPlanV1, DraftSession, DraftWeek
from plan_builder.schemas.setup import PlanSetup
from plan_builder.services.duration_rounding import humanize_week_durations
from plan_builder.services.guardrails import apply_guardrails, build_guardrail_context, slot_ceiling
from plan_builder.services.guidance_signals import GuidanceSignals, extract_guidance_signals
from plan_builder.services.program_policy import apply_program_policy
from plan_builder.services.setup_normalizer import normalize_setup, start_of_week
from plan_builder.services.weekly_scheduler import PlannedSlot, WeeklyScheduler, day_sort_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WeekDiagnostics:
    week_index: int
    target_minutes: int
    traveling: bool
    max_intensity_days: int
    capacity: dict[int, int]
    rounding_residual: int


@dataclass(frozen=True)
class GenerationDiagnostics:
    setup: PlanSetup
    signals: GuidanceSignals
    beginner: bool
    weeks: list[WeekDiagnostics] = field(default_factory=list)

    def week(self, week_index: int) -> WeekDiagnostics | None:
        for w in self.weeks:
            if w.week_index == week_index:
                return w
        return None


def resolve_plan_start(setup: PlanSetup) -> date | None:
    """First day of week 0: the start date's week, else counted back from the completion week."""
    if setup.start_date is not None:
        return start_of_week(setup.start_date, setup.week_start)
    if setup.completion_date is not None:
        last_week = start_of_week(setup.completion_date, setup.week_start)
        return last_week - timedelta(days=7 * (setup.weeks_to_event - 1))
    return None


def _finalize_week(week_index: int, slots: list[PlannedSlot], week_start: str) -> tuple[list[DraftSession], int]:
    ordered = sorted(enumerate(slots), key=lambda item: (day_sort_key(item[1].day_of_week, week_start), item[0]))
    ordered_slots = [slot for _, slot in ordered]
    humanized = humanize_week_durations(
        [s.duration_minutes for s in ordered_slots],
        [s.on_long_day or s.kind in ("long", "brick") for s in ordered_slots],
        [s.ceiling for s in ordered_slots],
    )
    sessions = [
        DraftSession(
            week_index=week_index,
            ordinal=ordinal,
            day_of_week=slot.day_of_week,
            discipline=slot.discipline,
            type=slot.type,
            duration_minutes=minutes,
            notes=slot.notes,
            locked=False,
        )
        for ordinal, (slot, minutes) in enumerate(zip(ordered_slots, humanized.durations))
    ]
    return sessions, humanized.residual


def generate_draft_plan_with_diagnostics(setup: PlanSetup) -> tuple[DraftPlanV1, GenerationDiagnostics]:
    applied = apply_program_policy(setup)
    plan_start = resolve_plan_start(applied)
    signals = extract_guidance_signals(applied.coach_guidance_text, plan_start)
    guard_context = build_guardrail_context(applied, signals)
    scheduler = WeeklyScheduler(applied, signals, plan_start, slot_ceiling=partial(slot_ceiling, guard_context))

    weeks: list[DraftWeek] = []
    week_diagnostics: list[WeekDiagnostics] = []
    for week_index in range(applied.weeks_to_event):
        schedule = scheduler.schedule_week(week_index)
        guarded = apply_guardrails(schedule.slots, week_index, guard_context)
        sessions, residual = _finalize_week(week_index, guarded, applied.week_start)
        if residual:
            logger.debug("Week %d rounding left %d min unresolved", week_index, residual)
        weeks.append(DraftWeek(week_index=week_index, locked=False, sessions=sessions))
        week_diagnostics.append(
            WeekDiagnostics(
                week_index=week_index,
                target_minutes=schedule.target_minutes,
                traveling=schedule.traveling,
                max_intensity_days=schedule.max_intensity_days,
                capacity=dict(schedule.capacity),
                rounding_residual=residual,
            )
        )

    plan = DraftPlanV1(version="v1", setup=applied, weeks=weeks)
    diagnostics = GenerationDiagnostics(
        setup=applied, signals=signals, beginner=guard_context.beginner, weeks=week_diagnostics
    )
    return plan, diagnostics


def generate_draft_plan(setup: PlanSetup | Mapping[str, Any]) -> DraftPlanV1:
    """Deterministic generator. Accepts a raw setup mapping or an already normalized PlanSetup."""
    plan, _ = generate_draft_plan_with_diagnostics(normalize_setup(setup))
    return plan


def plan_to_json(plan: DraftPlanV1) -> str:
    return plan.model_dump_json(by_alias=True, exclude_none=True)
