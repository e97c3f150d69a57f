"""
AI capability router.

Per call: resolve the capability's effective mode, then either run the deterministic
implementation or attempt the LLM (ATTEMPT -> SUCCESS | RETRYABLE -> ATTEMPT | TERMINAL -> FALLBACK).
Every call records exactly one AiInvocationAudit and returns a valid result; nothing raises
to the caller once the input itself has validated.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Literal, Mapping

from pydantic import BaseModel

from plan_builder.config import Settings
from plan_builder.core.errors import LlmError
from plan_builder.schemas.audit import AiInvocationAudit
from plan_builder.schemas.capabilities import (
    GenerateSessionDetailInput,
    GenerateSessionDetailResult,
    SuggestDraftPlanInput,
    SuggestDraftPlanResult,
    SuggestProposalDiffsInput,
)
from plan_builder.schemas.diff import ProposalDiffResult
from plan_builder.schemas.intake import SummarizeIntakeInput, SummarizeIntakeResult
from plan_builder.services.ai.audit import AuditTrail
from plan_builder.services.ai.capabilities import CAPABILITY_SUFFIXES, CapabilitySpec, get_capability
from plan_builder.services.ai.results import AttemptResult, RetryableFailure, Success, TerminalFailure, failure_from_error
from plan_builder.services.ai.transport import LlmTransport, build_transport
from plan_builder.services.redaction import redact_json
from plan_builder.services.stable_hash import canonical_json, stable_hash

logger = logging.getLogger(__name__)

Mode = Literal["deterministic", "llm"]
BeforeLlmCall = Callable[[str], Awaitable[None]]

MIN_OUTPUT_TOKENS = 128
MAX_OUTPUT_TOKENS = 8000


@dataclass(frozen=True)
class CapabilityConfig:
    mode: Mode
    model: str
    max_output_tokens: int
    rate_limit_per_hour: int


@dataclass(frozen=True)
class AiRouterConfig:
    """Immutable, fully resolved router configuration. Built once from Settings."""

    provider: str
    retry_count: int
    timeout_ms: int
    capabilities: Mapping[str, CapabilityConfig]
    force_mock: bool = False
    gemini_api_key: str = field(default="", repr=False)
    openai_api_key: str = field(default="", repr=False)
    openai_base_url: str = "https://api.openai.com/v1"

    @property
    def effective_provider(self) -> str:
        return "mock" if self.force_mock else self.provider

    def for_capability(self, name: str) -> CapabilityConfig:
        return self.capabilities[name]


def _clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, int(value)))


def build_router_config(s: Settings) -> AiRouterConfig:
    """Validate settings into the per-capability table the router runs on."""
    capabilities = {}
    for name, suffix in CAPABILITY_SUFFIXES.items():
        override = s.capability_value("ai_cap", suffix)
        mode = override if override in ("deterministic", "llm") else s.ai_mode
        model = (s.capability_value("llm_model", suffix) or "").strip() or s.llm_model.strip() or "mock"
        tokens = s.capability_value("llm_max_output_tokens", suffix)
        tokens = tokens if tokens and tokens > 0 else s.llm_max_output_tokens
        rate = s.capability_value("llm_rate_limit_per_hour", suffix)
        rate = rate if rate is not None and rate >= 0 else s.llm_rate_limit_per_hour
        capabilities[name] = CapabilityConfig(
            mode=mode,
            model=model,
            max_output_tokens=_clamp(tokens, MIN_OUTPUT_TOKENS, MAX_OUTPUT_TOKENS),
            rate_limit_per_hour=max(0, int(rate)),
        )
    return AiRouterConfig(
        provider=s.llm_provider,
        retry_count=_clamp(s.llm_retry_count, 0, 2),
        timeout_ms=max(1000, int(s.llm_timeout_ms)),
        capabilities=MappingProxyType(capabilities),
        force_mock=s.force_mock_transport,
        gemini_api_key=s.google_gemini_api_key,
        openai_api_key=s.openai_api_key,
        openai_base_url=s.openai_base_url,
    )


@dataclass(frozen=True)
class RoutedResult:
    value: Any
    audit: AiInvocationAudit


class AiCapabilityRouter:
    def __init__(
        self,
        config: AiRouterConfig,
        *,
        transport: LlmTransport | None = None,
        audit_trail: AuditTrail | None = None,
        before_llm_call: BeforeLlmCall | None = None,
    ):
        self.config = config
        self.audit_trail = audit_trail or AuditTrail()
        self._transport = transport
        self._before_llm_call = before_llm_call

    def effective_mode(self, capability: str) -> Mode:
        return self.config.for_capability(capability).mode

    def _resolve_transport(self) -> LlmTransport:
        if self._transport is None:
            self._transport = build_transport(self.config)
        return self._transport

    async def invoke(self, capability: str, payload: BaseModel | Mapping[str, Any]) -> RoutedResult:
        """Run one capability call. Invalid input raises pydantic ValidationError before any attempt."""
        spec = get_capability(capability)
        data = payload if isinstance(payload, spec.input_model) else spec.input_model.model_validate(payload)
        cap_cfg = self.config.for_capability(capability)
        started = time.monotonic()
        input_hash = stable_hash(data)

        if cap_cfg.mode == "deterministic":
            output = spec.deterministic(data)
            audit = AiInvocationAudit(
                capability=capability,
                spec_version=spec.spec_version,
                effective_mode="deterministic",
                provider="deterministic",
                model=None,
                input_hash=input_hash,
                output_hash=stable_hash(output),
                duration_ms=self._elapsed_ms(started),
            )
            await self.audit_trail.record(audit)
            return RoutedResult(value=output, audit=audit)

        outcome, retries = await self._run_llm(spec, cap_cfg, data)
        if isinstance(outcome, Success):
            output, fallback_used, error_code = outcome.value, False, None
        else:
            logger.warning(
                "LLM %s failed with %s after %d retries, using deterministic fallback: %s",
                capability,
                outcome.code,
                retries,
                outcome.message,
            )
            output, fallback_used, error_code = spec.deterministic(data), True, outcome.code

        audit = AiInvocationAudit(
            capability=capability,
            spec_version=spec.spec_version,
            effective_mode="llm",
            provider=getattr(self._transport, "provider", None) or self.config.effective_provider,
            model=cap_cfg.model,
            input_hash=input_hash,
            output_hash=stable_hash(output),
            duration_ms=self._elapsed_ms(started),
            max_output_tokens=cap_cfg.max_output_tokens,
            timeout_ms=self.config.timeout_ms,
            retry_count=retries,
            fallback_used=fallback_used,
            error_code=error_code,
        )
        await self.audit_trail.record(audit)
        return RoutedResult(value=output, audit=audit)

    async def _run_llm(self, spec: CapabilitySpec, cap_cfg: CapabilityConfig, data: BaseModel) -> tuple[AttemptResult, int]:
        if self._before_llm_call is not None:
            try:
                await self._before_llm_call(spec.name)
            except LlmError as e:
                return failure_from_error(e), 0
        try:
            transport = self._resolve_transport()
        except LlmError as e:
            return failure_from_error(e), 0

        input_text = canonical_json(redact_json(data.model_dump(mode="json", by_alias=True, exclude_none=True)))
        retries = 0
        result: AttemptResult = TerminalFailure(code="PROVIDER_ERROR")
        for attempt in range(1 + self.config.retry_count):
            result = await self._attempt(transport, spec, cap_cfg, data, input_text)
            if not isinstance(result, RetryableFailure) or attempt == self.config.retry_count:
                break
            retries += 1
            logger.warning("LLM %s attempt %d failed with %s, retrying", spec.name, attempt + 1, result.code)
        return result, retries

    async def _attempt(
        self,
        transport: LlmTransport,
        spec: CapabilitySpec,
        cap_cfg: CapabilityConfig,
        data: BaseModel,
        input_text: str,
    ) -> AttemptResult:
        timeout_seconds = self.config.timeout_ms / 1000.0
        try:
            # The budget holds even for transports that ignore timeout_seconds
            output = await asyncio.wait_for(
                transport.generate_structured_json(
                    capability=spec.name,
                    system=spec.system_prompt,
                    input_text=input_text,
                    schema=spec.output_model,
                    model=cap_cfg.model,
                    max_output_tokens=cap_cfg.max_output_tokens,
                    timeout_seconds=timeout_seconds,
                ),
                timeout=timeout_seconds,
            )
            if spec.post_check is not None:
                output = spec.post_check(data, output)
            return Success(value=output)
        except LlmError as e:
            return failure_from_error(e)
        except (asyncio.TimeoutError, TimeoutError):
            logger.warning("LLM %s attempt exceeded %ss", spec.name, timeout_seconds)
            return RetryableFailure(code="TIMEOUT", message=f"LLM call exceeded {timeout_seconds}s.")
        except Exception as e:
            logger.warning("LLM %s transport raised unexpected %s: %s", spec.name, type(e).__name__, e)
            return RetryableFailure(code="PROVIDER_ERROR", message=str(e))

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return max(0, int((time.monotonic() - started) * 1000))

    async def summarize_intake(self, data: SummarizeIntakeInput | Mapping[str, Any]) -> SummarizeIntakeResult:
        return (await self.invoke("summarizeIntake", data)).value

    async def suggest_draft_plan(self, data: SuggestDraftPlanInput | Mapping[str, Any]) -> SuggestDraftPlanResult:
        return (await self.invoke("suggestDraftPlan", data)).value

    async def suggest_proposal_diffs(self, data: SuggestProposalDiffsInput | Mapping[str, Any]) -> ProposalDiffResult:
        return (await self.invoke("suggestProposalDiffs", data)).value

    async def generate_session_detail(
        self, data: GenerateSessionDetailInput | Mapping[str, Any]
    ) -> GenerateSessionDetailResult:
        return (await self.invoke("generateSessionDetail", data)).value


def build_router(
    s: Settings | None = None,
    *,
    transport: LlmTransport | None = None,
    audit_trail: AuditTrail | None = None,
    rate_limit: bool = True,
) -> AiCapabilityRouter:
    """Router wired from settings, with the Redis hourly limiter as its before_llm_call hook."""
    from plan_builder.config import settings as default_settings
    from plan_builder.core.rate_limit import CapabilityRateLimiter

    config = build_router_config(s or default_settings)
    hook = None
    if rate_limit:
        hook = CapabilityRateLimiter({name: c.rate_limit_per_hour for name, c in config.capabilities.items()})
    return AiCapabilityRouter(config, transport=transport, audit_trail=audit_trail, before_llm_call=hook)
