"""
Weekly session scheduler: assigns sessions to days under per-day capacity, intensity-day
spacing and long/brick-day rules. Synchronous and pure; one WeeklyScheduler per plan.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Callable, Sequence

from plan_builder.schemas.setup import PlanSetup
from plan_builder.services.guidance_signals import GuidanceSignals, week_bounds
from plan_builder.services.program_policy import (
    DEFAULT_RECOVERY_MULTIPLIER,
    MIN_WEEK_MINUTES,
    is_recovery_week,
    taper_multiplier,
)

TRAVEL_VOLUME_MULTIPLIER = 0.75
LONG_SESSION_MIN_PLAN_WEEKS = 6
SATURDAY = 6
SUNDAY = 0

# (discipline, session type, week index) -> duration cap the guardrails will apply, or None
SlotCeiling = Callable[[str, str, int], "int | None"]

# Relative duration weights and [min, max] minutes per slot kind
SLOT_WEIGHTS = {"swim_technique": 0.8, "long": 2.2, "brick": 1.3, "fill": 1.0}
SLOT_BOUNDS = {"swim_technique": (20, 60), "long": (60, 180), "brick": (40, 120), "fill": (20, 120)}

BASE_SESSIONS = {"low": 5, "med": 6, "high": 8}
MIN_BASE_SESSIONS = {"low": 4, "med": 5, "high": 6}

# Discipline rotation used when no split targets are given, biased toward the emphasis
EMPHASIS_ROTATION = {
    "balanced": ("run", "bike", "swim"),
    "run": ("run", "run", "bike"),
    "bike": ("bike", "bike", "run"),
    "swim": ("swim", "swim", "bike"),
}
INTENSITY_SESSION_TYPES = ("tempo", "threshold")
EASY_SESSION_TYPES = ("technique", "endurance", "recovery")
TYPE_QUEUE_LENGTH = 6


@dataclass(frozen=True)
class PlannedSlot:
    """Working representation of a session before sorting and numbering."""

    day_of_week: int
    discipline: str
    type: str
    duration_minutes: int
    notes: str | None
    kind: str
    on_long_day: bool = False
    ceiling: int | None = None

    def capped(self, ceiling: int) -> "PlannedSlot":
        """Cap duration and remember the ceiling so later rounding never exceeds it."""
        limit = ceiling if self.ceiling is None else min(self.ceiling, ceiling)
        return replace(self, duration_minutes=min(self.duration_minutes, limit), ceiling=limit)


@dataclass(frozen=True)
class WeekSchedule:
    week_index: int
    target_minutes: int
    traveling: bool
    capacity: dict[int, int]
    intensity_days: tuple[int, ...]
    max_intensity_days: int
    slots: list[PlannedSlot] = field(default_factory=list)


def day_sort_key(day: int, week_start: str) -> int:
    """Position of a weekday (Sunday=0) within a week starting on monday or sunday."""
    return (day + 6) % 7 if week_start == "monday" else day


def order_days(days: list[int], week_start: str) -> list[int]:
    return sorted(set(days), key=lambda d: day_sort_key(d, week_start))


def resolve_long_day(setup: PlanSetup, ordered_days: list[int]) -> int | None:
    """Preferred long day if available, else Saturday, else Sunday, else the last available day."""
    if not ordered_days:
        return None
    if setup.long_session_day is not None and setup.long_session_day in ordered_days:
        return setup.long_session_day
    if SATURDAY in ordered_days:
        return SATURDAY
    if SUNDAY in ordered_days:
        return SUNDAY
    return ordered_days[-1]


def requested_sessions_per_week(setup: PlanSetup, available_days: int) -> int:
    max_by_days = available_days + setup.max_doubles_per_week
    if setup.sessions_per_week_override is not None:
        return max(3, min(max(3, max_by_days), setup.sessions_per_week_override))
    base = BASE_SESSIONS[setup.risk_tolerance]
    min_base = MIN_BASE_SESSIONS[setup.risk_tolerance]
    return max(min_base, min(max(min_base, max_by_days), min(base, max_by_days)))


def build_weighted_sequence(weights: dict[str, float], count: int) -> list[str]:
    """
    Largest-remainder allocation of `count` slots across weighted keys, emitted round-robin
    (keys ordered by allocated count desc, then name) so equal keys interleave.
    """
    positive = {k: w for k, w in weights.items() if w > 0}
    total = sum(positive.values())
    if count <= 0 or total <= 0:
        return []
    exact = {k: count * w / total for k, w in positive.items()}
    counts = {k: int(math.floor(v)) for k, v in exact.items()}
    leftover = count - sum(counts.values())
    for key in sorted(exact, key=lambda k: (-(exact[k] - counts[k]), k))[:leftover]:
        counts[key] += 1

    order = sorted(counts, key=lambda k: (-counts[k], k))
    remaining = dict(counts)
    sequence: list[str] = []
    while len(sequence) < count:
        for key in order:
            if remaining[key] > 0:
                sequence.append(key)
                remaining[key] -= 1
    return sequence


def select_intensity_days(ordered_days: list[int], long_day: int | None, max_days: int) -> tuple[int, ...]:
    """Greedy pick in week order of days not adjacent (|a-b| <= 1) to any picked day, skipping the long day."""
    picked: list[int] = []
    for day in ordered_days:
        if len(picked) >= max_days:
            break
        if day == long_day:
            continue
        if any(abs(day - other) <= 1 for other in picked):
            continue
        picked.append(day)
    return tuple(picked)


def allocate_durations(
    kinds: list[str], target_minutes: int, ceilings: Sequence[int | None] | None = None
) -> list[int]:
    """
    Split the week's target across slots by kind weight, clamped per kind.
    A slot whose share exceeds its ceiling is pinned there and the excess is re-split over the
    remaining slots, so guardrail caps move minutes instead of dropping them.
    """
    if sum(SLOT_WEIGHTS[k] for k in kinds) <= 0:
        return []
    limits = list(ceilings) if ceilings is not None else [None] * len(kinds)
    pinned: dict[int, int] = {}
    while True:
        free = [i for i in range(len(kinds)) if i not in pinned]
        weight = sum(SLOT_WEIGHTS[kinds[i]] for i in free)
        remaining = target_minutes - sum(pinned.values())
        shares = {i: remaining * SLOT_WEIGHTS[kinds[i]] / weight for i in free} if weight > 0 else {}
        over = [i for i in free if limits[i] is not None and shares[i] > limits[i]]
        if not over:
            break
        for i in over:
            pinned[i] = limits[i]

    out = []
    for i, kind in enumerate(kinds):
        if i in pinned:
            out.append(pinned[i])
            continue
        lo, hi = SLOT_BOUNDS[kind]
        minutes = max(lo, min(hi, int(math.floor(shares[i] + 0.5))))
        out.append(minutes if limits[i] is None else min(minutes, limits[i]))
    return out


class WeeklyScheduler:
    """Per-plan scheduling state derived once from the normalized setup and guidance signals."""

    def __init__(
        self,
        setup: PlanSetup,
        signals: GuidanceSignals,
        plan_start: date | None = None,
        slot_ceiling: SlotCeiling | None = None,
    ):
        self.setup = setup
        self.slot_ceiling = slot_ceiling
        self.signals = signals
        self.plan_start = plan_start
        self.ordered_days = order_days(setup.weekly_availability_days, setup.week_start)
        self.long_day = resolve_long_day(setup, self.ordered_days)
        self.split = setup.discipline_split_targets
        self.type_distribution = setup.session_type_distribution

    # ---- scope -------------------------------------------------------------

    def discipline_in_scope(self, discipline: str) -> bool:
        if self.split is not None:
            return self.split.get(discipline, 0) > 0
        return discipline in EMPHASIS_ROTATION[self.setup.discipline_emphasis]

    @property
    def swim_in_scope(self) -> bool:
        return self.setup.discipline_emphasis in ("balanced", "swim") and self.discipline_in_scope("swim")

    @property
    def brick_in_scope(self) -> bool:
        if self.setup.risk_tolerance not in ("med", "high"):
            return False
        if self.split is not None:
            return self.split.get("bike", 0) > 0 and self.split.get("run", 0) > 0
        return self.setup.discipline_emphasis == "balanced"

    def long_discipline(self, week_index: int) -> str:
        """Bike on even weeks, run on odd weeks, limited to what is in scope."""
        options = [d for d in ("bike", "run") if self.discipline_in_scope(d)]
        if self.split is None and self.setup.discipline_emphasis in ("run", "bike"):
            options = [self.setup.discipline_emphasis]
        if not options:
            return max(self.split, key=lambda k: (self.split[k], k)) if self.split else "run"
        if len(options) == 1:
            return options[0]
        return "bike" if week_index % 2 == 0 else "run"

    # ---- per-week quantities ----------------------------------------------

    def is_travel_week(self, week_index: int) -> bool:
        if self.plan_start is None or not self.signals.travel_windows:
            return False
        first, last = week_bounds(self.plan_start, week_index)
        return self.signals.travel_overlaps(first, last)

    def week_target_minutes(self, week_index: int, traveling: bool) -> int:
        setup = self.setup
        by_week = setup.weekly_minutes_by_week or []
        if week_index < len(by_week):
            # Explicit and program-curve minutes already carry taper and recovery
            minutes = float(by_week[week_index])
        else:
            minutes = setup.total_weekly_minutes * taper_multiplier(
                week_index, setup.weeks_to_event, setup.risk_tolerance
            )
            if is_recovery_week(week_index, setup.weeks_to_event, setup.recovery_every_n_weeks):
                minutes *= setup.recovery_week_multiplier or DEFAULT_RECOVERY_MULTIPLIER
        if traveling:
            minutes *= TRAVEL_VOLUME_MULTIPLIER
        return max(MIN_WEEK_MINUTES, int(math.floor(minutes + 0.5)))

    def day_capacity(self, traveling: bool) -> dict[int, int]:
        """One slot per available day, plus doubles round-robin from the start of the week."""
        capacity = {day: 1 for day in self.ordered_days}
        extra = 0 if traveling else self.setup.max_doubles_per_week
        for i in range(extra if self.ordered_days else 0):
            capacity[self.ordered_days[i % len(self.ordered_days)]] += 1
        return capacity

    def max_intensity_days(self, traveling: bool) -> int:
        if self.signals.has_injury_signal or traveling:
            return 1
        return self.setup.max_intensity_days_per_week

    # ---- scheduling --------------------------------------------------------

    def _slot_sequence(self, capacity: dict[int, int]) -> list[int]:
        sequence = list(self.ordered_days)
        for day in self.ordered_days:
            sequence.extend([day] * (capacity[day] - 1))
        return sequence

    def _place(self, preferred: int | None, capacity: dict[int, int], load: dict[int, int]) -> int | None:
        if preferred is not None and load.get(preferred, 0) < capacity.get(preferred, 0):
            return preferred
        open_days = [d for d in self.ordered_days if load[d] < capacity[d]]
        if not open_days:
            return None
        # min() keeps the first of equal loads, i.e. week order breaks ties
        return min(open_days, key=lambda d: load[d])

    def _discipline_queue(self, target_count: int, seeded: list[str]) -> list[str]:
        if self.split is not None:
            queue = build_weighted_sequence(self.split, max(target_count, 1))
            for discipline in seeded:
                if discipline in queue:
                    queue.remove(discipline)
            return queue or build_weighted_sequence(self.split, max(target_count, 1))
        rotation = EMPHASIS_ROTATION[self.setup.discipline_emphasis]
        return [d if d != "swim" or self.swim_in_scope else "run" for d in rotation]

    def _type_queue(self, types: tuple[str, ...]) -> list[str] | None:
        if self.type_distribution is None:
            return None
        weights = {t: self.type_distribution.get(t, 0.0) for t in types}
        return build_weighted_sequence(weights, TYPE_QUEUE_LENGTH)

    def _fill_type(self, discipline: str, week_index: int, intensity_day: bool, counters: dict[str, int]) -> str:
        if discipline == "swim":
            return "technique"
        if discipline == "strength":
            return "strength"
        if intensity_day:
            queue = self._type_queue(INTENSITY_SESSION_TYPES)
            if queue is None:
                return "threshold" if self.setup.risk_tolerance == "high" else "tempo"
            if queue:
                choice = queue[(week_index + counters["intensity"]) % len(queue)]
                counters["intensity"] += 1
                return choice
            # Distribution without intensity weights: keep the day easy
        queue = self._type_queue(EASY_SESSION_TYPES)
        if not queue:
            return "endurance"
        choice = queue[(week_index + counters["easy"]) % len(queue)]
        counters["easy"] += 1
        return "endurance" if choice == "technique" else choice

    def schedule_week(self, week_index: int) -> WeekSchedule:
        setup = self.setup
        traveling = self.is_travel_week(week_index)
        target_minutes = self.week_target_minutes(week_index, traveling)
        capacity = self.day_capacity(traveling)
        total_capacity = sum(capacity.values())
        target_count = min(requested_sessions_per_week(setup, len(self.ordered_days)), total_capacity)
        max_intensity = self.max_intensity_days(traveling)
        intensity_days = select_intensity_days(self.ordered_days, self.long_day, max_intensity)

        schedule = WeekSchedule(
            week_index=week_index,
            target_minutes=target_minutes,
            traveling=traveling,
            capacity=capacity,
            intensity_days=intensity_days,
            max_intensity_days=max_intensity,
        )
        if target_count <= 0:
            return schedule

        load = {day: 0 for day in self.ordered_days}
        # (day, discipline, type, notes, kind)
        placed: list[tuple[int, str, str, str | None, str]] = []

        def put(preferred: int | None, discipline: str, session_type: str, notes: str | None, kind: str) -> bool:
            day = self._place(preferred, capacity, load)
            if day is None:
                return False
            load[day] += 1
            placed.append((day, discipline, session_type, notes, kind))
            return True

        # Fixed seeds, in priority order
        if self.swim_in_scope and len(placed) < target_count:
            put(self.ordered_days[0], "swim", "technique", "Technique focus", "swim_technique")
        if setup.weeks_to_event >= LONG_SESSION_MIN_PLAN_WEEKS and len(placed) < target_count:
            discipline = self.long_discipline(week_index)
            put(self.long_day, discipline, "endurance", "Long ride" if discipline == "bike" else "Long run", "long")
        if self.brick_in_scope and week_index % 2 == 1 and len(placed) < target_count:
            put(self.long_day, "bike", "endurance", "Brick (add short run off bike)", "brick")

        queue = self._discipline_queue(target_count, [p[1] for p in placed])
        slot_sequence = self._slot_sequence(capacity)
        used_intensity: set[int] = set()
        counters = {"intensity": 0, "easy": 0}
        fill_index = 0
        while len(placed) < target_count:
            preferred = slot_sequence[len(placed) % len(slot_sequence)]
            day = self._place(preferred, capacity, load)
            if day is None:
                break
            discipline = queue[fill_index % len(queue)]
            fill_index += 1
            intensity_day = day in intensity_days and day not in used_intensity
            session_type = self._fill_type(discipline, week_index, intensity_day, counters)
            if session_type in INTENSITY_SESSION_TYPES:
                used_intensity.add(day)
            load[day] += 1
            placed.append((day, discipline, session_type, "Key session" if session_type in INTENSITY_SESSION_TYPES else None, "fill"))

        ceilings = None
        if self.slot_ceiling is not None:
            ceilings = [self.slot_ceiling(discipline, session_type, week_index) for _, discipline, session_type, _, _ in placed]
        durations = allocate_durations([p[4] for p in placed], target_minutes, ceilings)
        slots = [
            PlannedSlot(
                day_of_week=day,
                discipline=discipline,
                type=session_type,
                duration_minutes=minutes,
                notes=notes,
                kind=kind,
                on_long_day=day == self.long_day,
            )
            for (day, discipline, session_type, notes, kind), minutes in zip(placed, durations)
        ]
        return replace(schedule, slots=slots)
