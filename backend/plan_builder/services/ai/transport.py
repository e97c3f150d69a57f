"""
LLM transport interface: generate structured JSON matching a schema.
Concrete providers (Gemini, OpenAI, mock) live in sibling modules and are picked by build_transport.
"""
from __future__ import annotations

import json
from typing import TYPE_CHECKING, Protocol

from pydantic import BaseModel, ValidationError

from plan_builder.core.errors import LlmError

if TYPE_CHECKING:
    from plan_builder.services.ai.router import AiRouterConfig

CAPABILITY_TAG = "APB_CAPABILITY"
JSON_ONLY_SUFFIX = "Return ONLY a single JSON object (no markdown, no code fences)."


class LlmTransport(Protocol):
    provider: str

    async def generate_structured_json(
        self,
        *,
        capability: str,
        system: str,
        input_text: str,
        schema: type[BaseModel],
        model: str,
        max_output_tokens: int,
        timeout_seconds: float,
    ) -> BaseModel: ...


def tagged_system_text(capability: str, system: str) -> str:
    return f"{CAPABILITY_TAG}={capability}\n{system}"


def parse_json_text(text: str | None):
    """Parse model text as JSON, tolerating a surrounding code fence."""
    if not text or not text.strip():
        raise LlmError("PROVIDER_ERROR", "LLM returned no text output.")
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1].rsplit("```", 1)[0].strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise LlmError("INVALID_JSON", "LLM returned invalid JSON.") from e


def validate_output(schema: type[BaseModel], data) -> BaseModel:
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise LlmError("SCHEMA_VALIDATION_FAILED", f"LLM JSON failed schema validation ({e.error_count()} errors).") from e


def build_transport(config: "AiRouterConfig") -> LlmTransport:
    """Provider transport for the resolved config. Raises CONFIG_MISSING when credentials are absent."""
    if config.force_mock or config.provider == "mock":
        from plan_builder.services.ai.mock_transport import MockTransport

        return MockTransport()
    if config.provider == "gemini":
        if not config.gemini_api_key:
            raise LlmError("CONFIG_MISSING", "GOOGLE_GEMINI_API_KEY is not set.")
        from plan_builder.services.ai.gemini_transport import GeminiTransport

        return GeminiTransport(api_key=config.gemini_api_key)
    if config.provider == "openai":
        if not config.openai_api_key:
            raise LlmError("CONFIG_MISSING", "OPENAI_API_KEY is not set.")
        from plan_builder.services.ai.openai_transport import OpenAiTransport

        return OpenAiTransport(api_key=config.openai_api_key, base_url=config.openai_base_url)
    raise LlmError("CONFIG_MISSING", f"Unknown LLM provider: {config.provider or '(empty)'}")
