"""
Round session durations to human-friendly steps while conserving the week's total.
Long-day sessions and sessions of 90+ minutes use 10-minute steps, everything else 5.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from plan_builder.schemas.plan import MAX_SESSION_MINUTES, MIN_SESSION_MINUTES

MAX_ADJUST_ITERATIONS = 500


@dataclass(frozen=True)
class HumanizedWeek:
    durations: list[int]
    # requested total minus rounded total; non-zero only when no session could absorb it
    residual: int
    iterations: int


def rounding_step(duration: int, on_long_day: bool) -> int:
    return 10 if on_long_day or duration >= 90 else 5


def _round_to_step(value: float, step: int) -> int:
    return int(math.floor(value / step + 0.5)) * step


def humanize_week_durations(
    durations: Sequence[int],
    on_long_day: Sequence[bool],
    ceilings: Sequence[int | None] | None = None,
) -> HumanizedWeek:
    """
    Round each duration to its step, then nudge sessions one step at a time until the rounded
    total matches the requested total. Non-long-day sessions move before long-day ones and
    smaller steps before larger; going down takes from the largest session first, going up
    adds to the smallest. A nudge is only made when it brings the total closer, so the loop
    ends with |residual| below one step unless every candidate is pinned at a bound.
    """
    n = len(durations)
    if n == 0:
        return HumanizedWeek(durations=[], residual=0, iterations=0)

    target = sum(int(d) for d in durations)
    steps = [rounding_step(int(d), bool(on_long_day[i])) for i, d in enumerate(durations)]
    uppers = [
        min(MAX_SESSION_MINUTES, ceilings[i]) if ceilings is not None and ceilings[i] is not None else MAX_SESSION_MINUTES
        for i in range(n)
    ]
    rounded = [
        max(MIN_SESSION_MINUTES, min(uppers[i], _round_to_step(durations[i], steps[i]))) for i in range(n)
    ]

    diff = target - sum(rounded)
    iterations = 0
    while diff != 0 and iterations < MAX_ADJUST_ITERATIONS:
        going_up = diff > 0
        candidates = []
        for i in range(n):
            step = steps[i]
            if step >= 2 * abs(diff):
                continue
            if going_up and rounded[i] + step > uppers[i]:
                continue
            if not going_up and rounded[i] - step < MIN_SESSION_MINUTES:
                continue
            candidates.append(i)
        if not candidates:
            break

        def sort_key(i: int):
            size = rounded[i] if going_up else -rounded[i]
            return (bool(on_long_day[i]), steps[i], size, i)

        pick = min(candidates, key=sort_key)
        rounded[pick] += steps[pick] if going_up else -steps[pick]
        diff = target - sum(rounded)
        iterations += 1

    return HumanizedWeek(durations=rounded, residual=diff, iterations=iterations)
