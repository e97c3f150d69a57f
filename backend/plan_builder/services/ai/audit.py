"""Append-only audit trail of capability invocations."""
from __future__ import annotations

import logging
from typing import Awaitable, Callable, Iterable

from plan_builder.schemas.audit import AiInvocationAudit

logger = logging.getLogger(__name__)

AuditSink = Callable[[AiInvocationAudit], Awaitable[None]]


class AuditTrail:
    """Keeps every record in memory and forwards each one to the optional async sinks."""

    def __init__(self, sinks: Iterable[AuditSink] = ()):
        self._records: list[AiInvocationAudit] = []
        self._sinks = list(sinks)

    @property
    def records(self) -> tuple[AiInvocationAudit, ...]:
        return tuple(self._records)

    def add_sink(self, sink: AuditSink) -> None:
        self._sinks.append(sink)

    async def record(self, audit: AiInvocationAudit) -> None:
        self._records.append(audit)
        logger.info(
            "AI call capability=%s mode=%s provider=%s fallback=%s error=%s retries=%d duration_ms=%d",
            audit.capability,
            audit.effective_mode,
            audit.provider,
            audit.fallback_used,
            audit.error_code,
            audit.retry_count,
            audit.duration_ms,
        )
        for sink in self._sinks:
            try:
                await sink(audit)
            except Exception as e:
                # The in-memory record stands; a failing sink never fails the capability call
                logger.warning("Audit sink %r failed for %s: %s", sink, audit.capability, e)
