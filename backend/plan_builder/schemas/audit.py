"""Audit record emitted once per capability invocation."""

from typing import Literal

from pydantic import ConfigDict

from plan_builder.schemas.common import CamelModel


class AiInvocationAudit(CamelModel):
    """Hashes only, never raw payloads."""

    model_config = ConfigDict(frozen=True)

    capability: str
    spec_version: str
    effective_mode: Literal["deterministic", "llm"]
    provider: str
    model: str | None = None
    input_hash: str
    output_hash: str
    duration_ms: int
    max_output_tokens: int | None = None
    timeout_ms: int | None = None
    retry_count: int = 0
    fallback_used: bool = False
    error_code: str | None = None
