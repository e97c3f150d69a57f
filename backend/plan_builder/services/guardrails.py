"""
Safety guardrails applied to each scheduled session, in order:
beginner progression caps, then injury dampening. Durations only ever go down.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, replace

from plan_builder.schemas.setup import PlanSetup
from plan_builder.services.guidance_signals import GuidanceSignals
from plan_builder.services.program_policy import archetype_for
from plan_builder.services.weekly_scheduler import INTENSITY_SESSION_TYPES, PlannedSlot

BRICK_PATTERN = re.compile(r"\bbrick\b", re.IGNORECASE)
BEGINNER_BRICK_WEEKS = 4
BRICK_DEMOTION_FACTOR = 0.7
INJURY_RUN_CAP = 45


@dataclass(frozen=True)
class GuardrailContext:
    beginner: bool
    injury: bool


def is_beginner_profile(setup: PlanSetup, signals: GuidanceSignals) -> bool:
    """Beginner when the program implies it, risk tolerance is low, or guidance says so."""
    archetype = archetype_for(setup)
    if archetype is not None and archetype.beginner:
        return True
    return setup.risk_tolerance == "low" or signals.has_beginner_signal


def build_guardrail_context(setup: PlanSetup, signals: GuidanceSignals) -> GuardrailContext:
    return GuardrailContext(beginner=is_beginner_profile(setup, signals), injury=signals.has_injury_signal)


def is_brick(notes: str | None) -> bool:
    return bool(notes and BRICK_PATTERN.search(notes))


def beginner_ceiling(discipline: str, session_type: str, week_index: int) -> int:
    """Run 45/55/70 by week bucket 0-1/2-3/4+, swim technique 45/55, everything else 70/90."""
    early = week_index < 2
    if discipline == "run":
        if early:
            return 45
        return 55 if week_index < 4 else 70
    if discipline == "swim" and session_type == "technique":
        return 45 if early else 55
    return 70 if early else 90


def slot_ceiling(context: GuardrailContext, discipline: str, session_type: str, week_index: int) -> int | None:
    """Tightest cap the guardrails below will put on a slot, or None when they leave it alone."""
    limits = []
    if context.beginner:
        limits.append(beginner_ceiling(discipline, session_type, week_index))
    if context.injury and discipline == "run" and session_type in INTENSITY_SESSION_TYPES:
        limits.append(INJURY_RUN_CAP)
    return min(limits) if limits else None


def apply_beginner_guardrail(slot: PlannedSlot, week_index: int) -> PlannedSlot:
    if week_index < BEGINNER_BRICK_WEEKS and is_brick(slot.notes):
        demoted = max(20, int(math.floor(slot.duration_minutes * BRICK_DEMOTION_FACTOR + 0.5)))
        slot = replace(
            slot,
            type="endurance",
            notes="Steady endurance ride",
            kind="fill",
            duration_minutes=min(slot.duration_minutes, demoted),
        )
    return slot.capped(beginner_ceiling(slot.discipline, slot.type, week_index))


def apply_injury_guardrail(slot: PlannedSlot) -> PlannedSlot:
    if slot.discipline != "run" or slot.type not in INTENSITY_SESSION_TYPES:
        return slot
    slot = replace(slot, type="endurance", notes="Easy aerobic run (injury caution)")
    return slot.capped(INJURY_RUN_CAP)


def apply_guardrails(slots: list[PlannedSlot], week_index: int, context: GuardrailContext) -> list[PlannedSlot]:
    out = []
    for slot in slots:
        guarded = slot
        if context.beginner:
            guarded = apply_beginner_guardrail(guarded, week_index)
        if context.injury:
            guarded = apply_injury_guardrail(guarded)
        out.append(guarded)
    return out
