"""
OpenAI transport over the Responses API using httpx.AsyncClient.
Uses the shared client when one has been initialized, else a short-lived client per call.
"""
from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel

from plan_builder.core.errors import LlmError
from plan_builder.services import http_client
from plan_builder.services.ai.transport import JSON_ONLY_SUFFIX, parse_json_text, tagged_system_text, validate_output

logger = logging.getLogger(__name__)


def extract_output_text(payload: dict) -> str:
    """Responses API text: output_text when present, else the first text content part."""
    text = payload.get("output_text")
    if isinstance(text, str) and text.strip():
        return text
    for item in payload.get("output") or []:
        for part in (item or {}).get("content") or []:
            value = (part or {}).get("text")
            if isinstance(value, str) and value.strip():
                return value
    return ""


class OpenAiTransport:
    provider = "openai"

    def __init__(self, api_key: str, base_url: str = "https://api.openai.com/v1", client: httpx.AsyncClient | None = None):
        self._api_key = api_key
        self._url = base_url.rstrip("/") + "/responses"
        self._client = client

    async def _post(self, body: dict, timeout_seconds: float) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}
        client = self._client or http_client.get_http_client_or_none()
        if client is not None:
            return await client.post(self._url, json=body, headers=headers, timeout=timeout_seconds)
        async with httpx.AsyncClient(timeout=timeout_seconds) as own:
            return await own.post(self._url, json=body, headers=headers)

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
    ) -> BaseModel:
        body = {
            "model": model,
            "input": tagged_system_text(capability, system) + "\n\n" + input_text + "\n\n" + JSON_ONLY_SUFFIX,
            "max_output_tokens": max_output_tokens,
        }
        try:
            r = await self._post(body, timeout_seconds)
        except httpx.TimeoutException as e:
            logger.warning("OpenAI request for %s timed out after %ss", capability, timeout_seconds)
            raise LlmError("TIMEOUT", "LLM request timed out.") from e
        except httpx.HTTPError as e:
            logger.warning("OpenAI request for %s failed: %s", capability, e)
            raise LlmError("NETWORK", "LLM request failed.") from e

        if r.status_code == 429 or r.status_code >= 500:
            raise LlmError("PROVIDER_ERROR", f"OpenAI returned {r.status_code}.")
        if r.status_code >= 400:
            raise LlmError("PROVIDER_ERROR", f"OpenAI returned {r.status_code}: {r.text[:200]}", retryable=False)

        try:
            payload = r.json()
        except ValueError as e:
            raise LlmError("PROVIDER_ERROR", "OpenAI response body is not JSON.") from e
        return validate_output(schema, parse_json_text(extract_output_text(payload)))
