"""
Bounded concurrent map: run an async worker over many items with at most N in flight.
Each item gets its own outcome; one failure never cancels its siblings.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class MapOutcome(Generic[T, R]):
    item: T
    value: R | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def bounded_map(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int = 4,
) -> list[MapOutcome[T, R]]:
    """Outcomes are returned in input order."""
    semaphore = asyncio.Semaphore(max(1, int(concurrency)))

    async def _run(item: T) -> MapOutcome[T, R]:
        async with semaphore:
            try:
                return MapOutcome(item=item, value=await worker(item))
            except Exception as e:
                return MapOutcome(item=item, error=e)

    if not items:
        return []
    return list(await asyncio.gather(*(_run(item) for item in items)))


def failed(outcomes: Sequence[MapOutcome[Any, Any]]) -> list[MapOutcome[Any, Any]]:
    return [o for o in outcomes if not o.ok]
