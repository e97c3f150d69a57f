"""
Quality gate for draft plans. Hard violations block persistence; soft warnings travel with the draft.
"""
from __future__ import annotations

from collections import Counter

from plan_builder.schemas.plan import DraftPlanV1
from plan_builder.schemas.quality import PlanIssue, QualityGateReport
from plan_builder.services.draft_generator import GenerationDiagnostics, resolve_plan_start
from plan_builder.services.guardrails import BEGINNER_BRICK_WEEKS, beginner_ceiling, is_beginner_profile, is_brick
from plan_builder.services.guidance_signals import extract_guidance_signals
from plan_builder.services.weekly_scheduler import WeeklyScheduler, day_sort_key

SPLIT_DRIFT_TOLERANCE = 0.15
# (min, max) ratio of scheduled minutes to the week target
NORMAL_BAND = (0.5, 1.15)
BEGINNER_EARLY_BAND = (0.45, 1.2)
CAUTION_BAND = (0.4, 1.2)


def _hard(code: str, message: str, **kwargs) -> PlanIssue:
    return PlanIssue(code=code, message=message, severity="hard", **kwargs)


def _soft(code: str, message: str, **kwargs) -> PlanIssue:
    return PlanIssue(code=code, message=message, severity="soft", **kwargs)


def structure_violations(plan: DraftPlanV1) -> list[PlanIssue]:
    """Week indexes match positions, session ids are unique, ordinals follow week-start day order."""
    violations: list[PlanIssue] = []
    seen_ids: set[str] = set()
    week_start = plan.setup.week_start
    for position, week in enumerate(plan.weeks):
        if week.week_index != position:
            violations.append(
                _hard("WEEK_INDEX_MISMATCH", f"Week at position {position} has weekIndex {week.week_index}.", week_index=week.week_index)
            )
        for s in week.sessions:
            if s.week_index != week.week_index:
                violations.append(
                    _hard(
                        "WEEK_INDEX_MISMATCH",
                        f"Session has weekIndex {s.week_index} inside week {week.week_index}.",
                        week_index=week.week_index,
                        session_id=s.session_id,
                    )
                )
            if s.session_id in seen_ids:
                violations.append(
                    _hard("DUPLICATE_SESSION_ID", f"Session id {s.session_id} is used more than once.", week_index=week.week_index, session_id=s.session_id)
                )
            seen_ids.add(s.session_id)

        ordinals = [s.ordinal for s in week.sessions]
        day_keys = [day_sort_key(s.day_of_week, week_start) for s in week.sessions]
        if ordinals != list(range(len(ordinals))) or day_keys != sorted(day_keys):
            violations.append(
                _hard("ORDINAL_ORDER", "Sessions are not numbered 0..n-1 in week-start day order.", week_index=week.week_index)
            )
    return violations


def evaluate_draft_plan(plan: DraftPlanV1, diagnostics: GenerationDiagnostics | None = None) -> QualityGateReport:
    setup = plan.setup
    plan_start = resolve_plan_start(setup)
    signals = diagnostics.signals if diagnostics else extract_guidance_signals(setup.coach_guidance_text, plan_start)
    beginner = diagnostics.beginner if diagnostics else is_beginner_profile(setup, signals)
    scheduler = WeeklyScheduler(setup, signals, plan_start)
    available = set(setup.weekly_availability_days)

    violations: list[PlanIssue] = structure_violations(plan)
    warnings: list[PlanIssue] = []

    full_capacity = len(available) + setup.max_doubles_per_week if available else 0
    split = setup.discipline_split_targets or {}
    required = sorted(d for d, w in split.items() if w > 0)
    if available and len(required) > full_capacity:
        violations.append(
            _hard(
                "DISTRIBUTION_UNSATISFIABLE",
                f"Discipline split needs {len(required)} disciplines ({', '.join(required)}) "
                f"but availability allows only {full_capacity} sessions per week.",
            )
        )

    for week in plan.weeks:
        w = week.week_index
        traveling = scheduler.is_travel_week(w)
        max_intensity = scheduler.max_intensity_days(traveling)
        max_doubles = 0 if traveling else setup.max_doubles_per_week

        per_day = Counter(s.day_of_week for s in week.sessions)
        intensity_days = sorted({s.day_of_week for s in week.sessions if s.is_intensity})

        for s in week.sessions:
            if s.day_of_week not in available:
                violations.append(
                    _hard("OFF_DAY_SESSION", f"Session on unavailable day {s.day_of_week}.", week_index=w, session_id=s.session_id)
                )
            if not 20 <= s.duration_minutes <= 240:
                violations.append(
                    _hard("DURATION_OUT_OF_RANGE", "Session duration outside 20-240 min.", week_index=w, session_id=s.session_id)
                )
            if beginner and s.discipline == "run" and s.duration_minutes > beginner_ceiling("run", s.type, w):
                violations.append(
                    _hard(
                        "BEGINNER_RUN_CAP_EXCEEDED",
                        f"Beginner run of {s.duration_minutes} min exceeds the week {w} cap.",
                        week_index=w,
                        session_id=s.session_id,
                    )
                )
            if beginner and w < BEGINNER_BRICK_WEEKS and is_brick(s.notes):
                violations.append(
                    _hard("BEGINNER_BRICK_TOO_EARLY", "Brick session before week 4 for a beginner.", week_index=w, session_id=s.session_id)
                )

        capacity = scheduler.day_capacity(traveling)
        for day, count in sorted(per_day.items()):
            if day in available and count > capacity.get(day, 0):
                violations.append(
                    _hard(
                        "DAY_CAPACITY_EXCEEDED",
                        f"{count} sessions on day {day} exceed its capacity of {capacity.get(day, 0)}.",
                        week_index=w,
                    )
                )

        doubles = sum(1 for count in per_day.values() if count > 1)
        if doubles > max_doubles:
            violations.append(
                _hard("MAX_DOUBLES_EXCEEDED", f"{doubles} double days exceed the limit of {max_doubles}.", week_index=w)
            )
        if len(intensity_days) > max_intensity:
            violations.append(
                _hard(
                    "MAX_INTENSITY_DAYS_EXCEEDED",
                    f"{len(intensity_days)} intensity days exceed the limit of {max_intensity}.",
                    week_index=w,
                )
            )
        for a, b in zip(intensity_days, intensity_days[1:]):
            if b - a <= 1:
                violations.append(_hard("INTENSITY_DAYS_ADJACENT", f"Intensity days {a} and {b} are adjacent.", week_index=w))

        if week.sessions:
            target = diagnostics.week(w).target_minutes if diagnostics and diagnostics.week(w) else scheduler.week_target_minutes(w, traveling)
            if signals.has_injury_signal or traveling:
                lo, hi = CAUTION_BAND
            elif beginner and w < BEGINNER_BRICK_WEEKS:
                lo, hi = BEGINNER_EARLY_BAND
            else:
                lo, hi = NORMAL_BAND
            ratio = week.total_minutes / target if target else 1.0
            if ratio < lo or ratio > hi:
                warnings.append(
                    _soft(
                        "WEEKLY_MINUTES_OUT_OF_BOUNDS",
                        f"Week total {week.total_minutes} min is {ratio:.2f}x the {target} min target.",
                        week_index=w,
                    )
                )

        if diagnostics is not None:
            week_diag = diagnostics.week(w)
            if week_diag is not None and week_diag.rounding_residual:
                warnings.append(
                    _soft(
                        "DURATION_ROUNDING_RESIDUAL",
                        f"Rounding left {week_diag.rounding_residual:+d} min unresolved.",
                        week_index=w,
                    )
                )

    if split:
        minutes_by_discipline: Counter = Counter()
        for session in plan.iter_sessions():
            minutes_by_discipline[session.discipline] += session.duration_minutes
        total = sum(minutes_by_discipline.values())
        if total > 0:
            for discipline, target_share in sorted(split.items()):
                actual = minutes_by_discipline.get(discipline, 0) / total
                if abs(actual - target_share) > SPLIT_DRIFT_TOLERANCE:
                    warnings.append(
                        _soft(
                            "DISCIPLINE_SPLIT_DRIFT",
                            f"{discipline} is {actual:.0%} of minutes against a {target_share:.0%} target.",
                        )
                    )

    return QualityGateReport(violations=violations, warnings=warnings)
