"""
Session detail synthesis: deterministic block skeletons, duration reflow, athlete-brief merge
and coach edits. Every function returns a new SessionDetailV1; inputs are never mutated.
"""
from __future__ import annotations

import math
import re
from typing import Mapping

from plan_builder.core.errors import DraftEditError
from plan_builder.schemas.athlete_brief import AthleteBrief
from plan_builder.schemas.draft_update import DetailBlockEdit
from plan_builder.schemas.session_detail import (
    BlockIntensity,
    SessionDetailBlock,
    SessionDetailTargets,
    SessionDetailV1,
    SessionExplainability,
    SessionVariant,
)
from plan_builder.services.stable_hash import stable_hash

STEP = 5
WARMUP_RANGE = (5, 20)
COOLDOWN_RANGE = (5, 15)
MIN_MAIN_MINUTES = 10
SHORT_SESSION_MINUTES = 30

MAX_CUES = 3
MAX_TARGET_NOTES = 500
MAX_SAFETY_NOTES = 800

DURATION_IN_OBJECTIVE = re.compile(r"\(\s*\d+\s*min\s*\)\.?", re.IGNORECASE)

INTENSITY_BY_TYPE = {
    "recovery": ("Z1", 2, "Very easy / absorb load"),
    "technique": ("Z2", 4, "Technical quality"),
    "endurance": ("Z2", 4, "Steady aerobic"),
    "tempo": ("Z3", 6, "Controlled hard"),
    "threshold": ("Z4", 7, "Sustainably hard"),
    "strength": ("Z2", 5, "Controlled strength work"),
}

STIMULUS_BY_TYPE = {
    "threshold": "raise sustainable race-adjacent output",
    "tempo": "build durable sub-threshold speed",
    "technique": "improve movement economy and technical quality",
    "recovery": "promote adaptation while reducing fatigue",
    "strength": "build resilient movement patterns and force control",
}
DEFAULT_STIMULUS = "build aerobic durability with controlled stress"

WARMUP_STEPS = {
    "swim": (
        "200m easy + 4 x 50m drill/swim by 25m",
        "300m relaxed swim with every 4th length backstroke",
        "8 min easy swim + 6 x 25m form drill",
    ),
    "bike": (
        "8-12 min easy spin, include 3 x 30s high cadence",
        "10 min progressive spin (Z1->Z2)",
        "5 min easy + 3 x 1 min spin-up / 1 min easy",
    ),
    "run": (
        "8-10 min easy jog + mobility + 4 strides",
        "10 min easy run + drills (A-skips/high knees)",
        "12 min easy jog with cadence focus",
    ),
    "strength": (
        "5-8 min mobility flow + activation bands",
        "10 min dynamic warm-up: hips, ankles, t-spine",
        "5 min easy cardio + movement prep",
    ),
}

COOLDOWN_STEPS = {
    "swim": (
        "Easy 100-200m choice stroke + 2 min mobility",
        "5-8 min easy swim, long strokes",
        "4 min easy swim + shoulder mobility",
    ),
    "bike": (
        "Easy spin, cadence down each minute; finish with hip flexor stretch",
        "5-10 min very easy spin + light mobility",
        "Spin easy and keep breathing controlled to baseline",
    ),
    "run": (
        "Easy jog/walk to finish + calf/hamstring mobility",
        "5-10 min easy jog, then leg swings and calf work",
        "Walk 3 min then light posterior-chain stretch",
    ),
    "strength": (
        "Gentle mobility and breathing reset",
        "Light stretch: calves, hip flexors, glutes",
        "Easy cooldown circuit + controlled breathing",
    ),
}

DRILL_STEPS = "Dedicated drill set: catch-up, fingertip drag, and 6-1-6 balance drill. Keep precision high."


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, value))


def split_duration(total: int) -> tuple[int, int, int]:
    """15% warmup, 10% cooldown, remainder main; always sums back to total."""
    total = max(0, int(total))
    if total == 0:
        return 0, 0, 0
    warmup = _clamp(_round_half_up(total * 0.15), 0, total)
    cooldown = _clamp(_round_half_up(total * 0.1), 0, total - warmup)
    return warmup, total - warmup - cooldown, cooldown


def _main_steps(discipline: str, session_type: str, main: int, pick) -> str:
    work = max(10, main)
    if discipline == "swim" and session_type == "technique":
        reps = _clamp(work // 5, 4, 12)
        return pick(
            (
                f"{reps} x 50m as 25m drill + 25m swim, 20s rest. Keep stroke length and relaxed exhale.",
                f"4 x {max(100, _round_half_up(reps * 50 / 4 / 25) * 25)}m pull buoy, 30s rest, focus on body position.",
                "3 rounds: 200m steady + 4 x 25m build. Rest 30s between rounds.",
            )
        )
    if discipline == "bike" and session_type == "endurance":
        intervals = _clamp(_round_half_up(work / 15), 2, 5)
        on = max(8, _round_half_up(work / intervals) - 2)
        return pick(
            (
                f"{intervals} x {on} min steady Z2, 2 min easy between. Hold smooth cadence.",
                f"{max(20, work - 10)} min continuous aerobic with cadence changes every 5 min.",
                f"{max(3, intervals)} x {max(6, on - 2)} min seated aerobic climbing effort, 2 min easy spin.",
            )
        )
    if discipline == "bike" and session_type in ("tempo", "threshold"):
        on = 8 if session_type == "threshold" else 10
        reps = _clamp(work // (on + 4), 2, 5)
        rest = 4 if session_type == "threshold" else 3
        label = "Z4 / RPE 7" if session_type == "threshold" else "Z3 / RPE 6"
        return pick(
            (
                f"{reps} x {on} min @ {label}, {rest} min easy between. Keep power/effort even.",
                f"{max(2, reps - 1)} x {on + 2} min controlled hard, {rest} min easy.",
                f"Pyramid: 6-8-10-{max(8, on)} min at {label}, 3 min easy between steps.",
            )
        )
    if discipline == "run" and session_type == "endurance":
        return pick(
            (
                f"{max(25, work - 5)} min conversational run. Last 5 min can progress slightly if legs are fresh.",
                f"{max(20, work - 10)} min easy run + 6 x 20s strides (walk back).",
                f"{max(3, _round_half_up(work / 12))} x 8 min steady / 2 min easy jog.",
            )
        )
    if discipline == "run" and session_type in ("tempo", "threshold"):
        on = 6 if session_type == "threshold" else 8
        reps = _clamp(work // (on + 3), 3, 7)
        effort = "10k effort (RPE 7)" if session_type == "threshold" else "half-marathon effort (RPE 6)"
        return pick(
            (
                f"{reps} x {on} min @ {effort}, 2-3 min easy jog between.",
                f"{max(12, work - 12)} min sustained tempo after building for 8 min.",
                f"Ladder: 4-6-8-6-4 min @ {effort}, equal jog recoveries.",
            )
        )
    if discipline == "strength" or session_type == "strength":
        rounds = _clamp(_round_half_up(work / 10), 2, 5)
        return pick(
            (
                f"{rounds} rounds: split squat 8/leg, single-leg RDL 8/leg, plank 45s, calf raise 12/leg.",
                f"{rounds} rounds: goblet squat 10, step-up 8/leg, dead bug 10/side, side plank 30s/side.",
                f"{rounds} rounds: hinge pattern + pull + anti-rotation core. Keep load controlled; stop with 2 reps in reserve.",
            )
        )
    if session_type == "recovery":
        return pick(
            (
                f"{max(15, work - 5)} min very easy aerobic work. Keep breathing nasal/relaxed.",
                f"Cadence and form reset: {max(3, _round_half_up(work / 8))} x 4 min smooth + 2 min easy.",
                f"{max(20, work - 10)} min easy movement with no hard surges.",
            )
        )
    return f"{session_type.capitalize()} work at steady effort. Keep form smooth."


def build_deterministic_session_detail(
    discipline: str,
    session_type: str,
    duration_minutes: int,
    *,
    week_index: int | None = None,
    day_of_week: int | None = None,
    ordinal: int | None = None,
) -> SessionDetailV1:
    """Warmup/main/cooldown skeleton sized to the session. Position fields only vary the wording."""
    discipline = (discipline or "").strip().lower()
    session_type = (session_type or "").strip().lower()
    total = max(0, int(duration_minutes))
    seed = abs(((week_index or 0) + 1) * 31 + ((day_of_week or 0) + 1) * 17 + ((ordinal or 0) + 1) * 11 + total)

    def pick(options):
        return options[seed % len(options)]

    zone, rpe, intensity_note = INTENSITY_BY_TYPE.get(session_type, INTENSITY_BY_TYPE["endurance"])
    intensity = BlockIntensity(zone=zone, rpe=rpe, notes=intensity_note)
    easy = BlockIntensity(zone="Z1", rpe=2, notes="Easy")
    warmup, main, cooldown = split_duration(total)
    main_steps = _main_steps(discipline, session_type, main, pick)

    structure: list[SessionDetailBlock] = []
    if warmup > 0:
        steps = pick(WARMUP_STEPS[discipline]) if discipline in WARMUP_STEPS else f"Easy {discipline or 'movement'} + dynamic warm-up."
        structure.append(SessionDetailBlock(block_type="warmup", duration_minutes=warmup, intensity=easy, steps=steps))

    if discipline == "swim" and session_type == "technique" and main >= 20:
        drill = _clamp(_round_half_up(main * 0.3), 8, max(8, main - 10))
        structure.append(
            SessionDetailBlock(
                block_type="drill",
                duration_minutes=drill,
                intensity=BlockIntensity(zone="Z2", rpe=4, notes="Form first"),
                steps=DRILL_STEPS,
            )
        )
        structure.append(SessionDetailBlock(block_type="main", duration_minutes=main - drill, intensity=intensity, steps=main_steps))
    else:
        primary = "strength" if discipline == "strength" else "main"
        structure.append(
            SessionDetailBlock(block_type=primary, duration_minutes=main if total else None, intensity=intensity, steps=main_steps)
        )

    if cooldown > 0:
        steps = pick(COOLDOWN_STEPS[discipline]) if discipline in COOLDOWN_STEPS else f"Easy {discipline or 'movement'} to finish, then light stretching."
        structure.append(SessionDetailBlock(block_type="cooldown", duration_minutes=cooldown, intensity=easy, steps=steps))

    standard = max(20, total)
    variants = [
        SessionVariant(
            label="short-on-time",
            when_to_use="Use when schedule is compressed but you still want the key stimulus.",
            duration_minutes=max(20, min(standard - 10, 45)),
            adjustments=["Keep warmup and cooldown", "Trim main set volume first", "Maintain quality not quantity"],
        ),
        SessionVariant(
            label="standard",
            when_to_use="Default execution for today.",
            duration_minutes=standard,
            adjustments=["Execute as written", "Keep effort controlled", "Stop early if pain escalates"],
        ),
        SessionVariant(
            label="longer-window",
            when_to_use="Use when you have extra time and feel fresh.",
            duration_minutes=max(standard + 15, min(standard + 25, 120)),
            adjustments=["Add easy aerobic volume after core set", "Do not add extra high-intensity reps"],
        ),
    ]

    stimulus = STIMULUS_BY_TYPE.get(session_type, DEFAULT_STIMULUS)
    hard = session_type in ("tempo", "threshold")
    return SessionDetailV1(
        objective=f"{(session_type or 'session').capitalize()} {discipline or 'workout'} session",
        purpose=f"Primary purpose: {stimulus}.",
        structure=structure,
        targets=SessionDetailTargets(
            primary_metric="RPE",
            notes=(
                "Hold effort at prescribed RPE/zone with repeatable pacing; stop if form or control drops."
                if hard
                else "Stay controlled; keep quality high and adjust down if fatigue, pain, or heat rises."
            ),
        ),
        cues=["Smooth form under fatigue", "Fuel/hydrate early for sessions > 60 min", "Stop if sharp pain"],
        safety_notes="Avoid maximal efforts if you feel pain, dizziness, or unusual fatigue.",
        explainability=SessionExplainability(
            why_this=f"This session is designed to {stimulus}.",
            why_today="It is placed to build adaptation now while protecting tomorrow's training quality and recovery budget.",
            if_missed="Skip catch-up intensity. Resume the plan at the next session and protect consistency for the week.",
            if_cooked="Drop one intensity level, reduce reps, or switch to steady aerobic work while keeping technique clean.",
        ),
        variants=variants,
    )


def _block_minutes(block: SessionDetailBlock) -> int:
    return max(0, int(block.duration_minutes or 0))


def _first_index(blocks: list[SessionDetailBlock], block_type: str) -> int:
    for i, b in enumerate(blocks):
        if b.block_type == block_type:
            return i
    return -1


def _main_index(blocks: list[SessionDetailBlock]) -> int:
    for block_type in ("main", "strength"):
        idx = _first_index(blocks, block_type)
        if idx >= 0:
            return idx
    for i, b in enumerate(blocks):
        if b.block_type not in ("warmup", "cooldown"):
            return i
    return 0


def _normalize_objective(objective: str) -> str:
    stripped = re.sub(r"\s{2,}", " ", DURATION_IN_OBJECTIVE.sub("", objective or "")).strip()
    return stripped or "Session"


def normalize_detail_to_total(detail: SessionDetailV1, total_minutes: int) -> SessionDetailV1:
    """
    Round block minutes to 5-minute steps inside warmup/cooldown/main bounds and make them sum
    exactly to total_minutes. Main absorbs changes first and any non-multiple-of-5 remainder.
    """
    total = max(0, int(total_minutes))
    minutes = [_block_minutes(b) for b in detail.structure]
    warmup_idx = _first_index(detail.structure, "warmup")
    cooldown_idx = max((i for i, b in enumerate(detail.structure) if b.block_type == "cooldown"), default=-1)
    main_idx = _main_index(detail.structure)

    if 0 < total < SHORT_SESSION_MINUTES:
        fixed = 0
        for idx in (warmup_idx, cooldown_idx):
            if idx >= 0:
                minutes[idx] = 5
                fixed += 5
        for i in range(len(minutes)):
            if i not in (warmup_idx, cooldown_idx, main_idx):
                minutes[i] = 0
        minutes[main_idx] = max(0, total - fixed)
        return _with_minutes(detail, minutes)

    for i, current in enumerate(minutes):
        if current <= 0:
            continue
        value = max(STEP, _round_half_up(current / STEP) * STEP)
        if i == warmup_idx:
            value = _clamp(value, *WARMUP_RANGE)
        elif i == cooldown_idx:
            value = _clamp(value, *COOLDOWN_RANGE)
        elif i == main_idx:
            value = max(MIN_MAIN_MINUTES, value)
        minutes[i] = value

    if warmup_idx >= 0 and minutes[warmup_idx] <= 0:
        minutes[warmup_idx] = 10
    if cooldown_idx >= 0 and minutes[cooldown_idx] <= 0:
        minutes[cooldown_idx] = 5
    if minutes[main_idx] <= 0:
        minutes[main_idx] = max(MIN_MAIN_MINUTES, total - 15)

    def can_add(i: int) -> bool:
        if i < 0:
            return False
        if i == warmup_idx:
            return minutes[i] < WARMUP_RANGE[1]
        if i == cooldown_idx:
            return minutes[i] < COOLDOWN_RANGE[1]
        return True

    def can_sub(i: int) -> bool:
        if i < 0:
            return False
        if i == warmup_idx:
            return minutes[i] > WARMUP_RANGE[0]
        if i == cooldown_idx:
            return minutes[i] > COOLDOWN_RANGE[0]
        if i == main_idx:
            return minutes[i] > MIN_MAIN_MINUTES
        return minutes[i] > STEP

    delta = total - sum(minutes)
    while delta >= STEP:
        pick = next((i for i in (main_idx, warmup_idx, cooldown_idx) if can_add(i)), -1)
        if pick < 0:
            break
        minutes[pick] += STEP
        delta -= STEP
    while delta <= -STEP:
        pick = next((i for i in (main_idx, warmup_idx, cooldown_idx) if can_sub(i)), -1)
        if pick < 0:
            pick = next(
                (i for i in range(len(minutes)) if i not in (main_idx, warmup_idx, cooldown_idx) and can_sub(i)), -1
            )
        if pick < 0:
            break
        minutes[pick] -= STEP
        delta += STEP
    if delta:
        minutes[main_idx] = max(0, minutes[main_idx] + delta)
    return _with_minutes(detail, minutes)


def _with_minutes(detail: SessionDetailV1, minutes: list[int]) -> SessionDetailV1:
    blocks = [
        b.model_copy(update={"duration_minutes": m if m > 0 else None}) for b, m in zip(detail.structure, minutes)
    ]
    return detail.model_copy(update={"structure": blocks, "objective": _normalize_objective(detail.objective)})


def reflow_detail_to_total(detail: SessionDetailV1, new_total_minutes: int) -> SessionDetailV1:
    """
    Scale existing block minutes proportionally to the new total, keeping the block text,
    then normalize so the blocks sum exactly to new_total_minutes.
    """
    new_total = max(0, int(new_total_minutes))
    current = detail.total_minutes
    if current <= 0 or current == new_total:
        return normalize_detail_to_total(detail, new_total)
    ratio = new_total / current
    scaled = [_round_half_up(_block_minutes(b) * ratio) for b in detail.structure]
    return normalize_detail_to_total(_with_minutes(detail, scaled), new_total)


def merge_brief_into_detail(detail: SessionDetailV1, brief: AthleteBrief | None) -> SessionDetailV1:
    """Append brief focus, tone cues and safety lines; existing content is kept."""
    if brief is None:
        return detail
    update: dict = {}

    focus = [line for line in (brief.plan_guidance, *brief.risk_flags) if line]
    if focus:
        notes = f"{detail.targets.notes} Focus: {' '.join(focus[:2])}"[:MAX_TARGET_NOTES]
        update["targets"] = detail.targets.model_copy(update={"notes": notes})

    prefs = brief.coaching_preferences
    cue_additions = [c for c in (prefs.tone, prefs.feedback_style, prefs.checkin_cadence) if c][:2]
    if cue_additions:
        merged: list[str] = []
        for cue in [*detail.cues, *cue_additions]:
            if cue not in merged:
                merged.append(cue)
        update["cues"] = merged[:MAX_CUES]

    safety = brief.constraints_and_safety
    safety_lines = [line for line in (safety.injury_status, *safety.pain_history, *brief.risk_flags) if line][:3]
    if safety_lines:
        update["safety_notes"] = f"{detail.safety_notes or ''} {' '.join(safety_lines)}".strip()[:MAX_SAFETY_NOTES]

    return detail.model_copy(update=update) if update else detail


def build_session_detail(
    discipline: str,
    session_type: str,
    duration_minutes: int,
    brief: AthleteBrief | None = None,
    **position,
) -> SessionDetailV1:
    detail = build_deterministic_session_detail(discipline, session_type, duration_minutes, **position)
    return merge_brief_into_detail(detail, brief)


def apply_coach_edits(
    detail: SessionDetailV1,
    total_minutes: int,
    *,
    block_edits: Mapping[int, DetailBlockEdit] | None = None,
    objective_override: str | None = None,
    notes_override: str | None = None,
) -> SessionDetailV1:
    """
    Apply coach block edits by index plus objective/notes overrides. Blocks the coach did not set
    minutes on absorb the difference so the structure still sums to total_minutes.
    """
    blocks = list(detail.structure)
    pinned: set[int] = set()
    for index, edit in sorted((block_edits or {}).items()):
        if index < 0 or index >= len(blocks):
            raise DraftEditError(f"Detail block {index} does not exist.", code="INVALID_EDIT")
        changes = edit.model_dump(exclude_none=True)
        if "duration_minutes" in changes:
            pinned.add(index)
        blocks[index] = blocks[index].model_copy(update=changes)

    if pinned:
        minutes = [_block_minutes(b) for b in blocks]
        delta = int(total_minutes) - sum(minutes)
        free = [i for i in range(len(blocks)) if i not in pinned]
        main_idx = _main_index(blocks)
        order = ([main_idx] if main_idx in free else []) + [i for i in free if i != main_idx]
        for i in order:
            if delta == 0:
                break
            adjusted = max(0, minutes[i] + delta)
            delta -= adjusted - minutes[i]
            minutes[i] = adjusted
        if delta != 0:
            raise DraftEditError("Detail block minutes must sum to the session duration.", code="INVALID_EDIT")
        blocks = [b.model_copy(update={"duration_minutes": m if m > 0 else None}) for b, m in zip(blocks, minutes)]

    update: dict = {"structure": blocks}
    if objective_override is not None:
        update["objective"] = objective_override
    if notes_override is not None:
        update["targets"] = detail.targets.model_copy(update={"notes": notes_override})
    return SessionDetailV1.model_validate(detail.model_copy(update=update).model_dump())


def detail_input_hash(discipline: str, session_type: str, duration_minutes: int, brief: AthleteBrief | None = None) -> str:
    """Fingerprint of everything the deterministic detail depends on."""
    return stable_hash(
        {
            "discipline": discipline,
            "type": session_type,
            "durationMinutes": int(duration_minutes),
            "athleteBrief": brief,
        }
    )


def resync_session_detail(before, after, brief: AthleteBrief | None = None, *, automated: bool = False):
    """
    Bring an edited DraftSession's detail back in line with its discipline, type and duration.
    A discipline/type change rebuilds the skeleton; a duration change reflows the existing blocks.
    Automated changes never rebuild coach-authored detail, they only reflow its minutes.
    """
    rebuild = before.discipline != after.discipline or before.type != after.type or after.detail is None
    if after.detail_mode == "coach" and automated and after.detail is not None:
        rebuild = False
    if rebuild:
        detail = build_session_detail(
            after.discipline,
            after.type,
            after.duration_minutes,
            brief,
            week_index=after.week_index,
            day_of_week=after.day_of_week,
            ordinal=after.ordinal,
        )
        return after.model_copy(
            update={
                "detail": detail,
                "detail_mode": "deterministic",
                "detail_input_hash": detail_input_hash(after.discipline, after.type, after.duration_minutes, brief),
            }
        )
    if after.detail.total_minutes != after.duration_minutes:
        update = {"detail": reflow_detail_to_total(after.detail, after.duration_minutes)}
        if after.detail_mode != "coach":
            update["detail_input_hash"] = detail_input_hash(after.discipline, after.type, after.duration_minutes, brief)
        return after.model_copy(update=update)
    return after
