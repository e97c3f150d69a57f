"""
Gemini transport: run blocking generate_content in a threadpool to avoid blocking the event loop.
One attempt per call; retries belong to the capability router.
"""
from __future__ import annotations

import asyncio
import logging
import re

import google.generativeai as genai
from google.generativeai.types import HarmBlockThreshold, HarmCategory
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from plan_builder.core.errors import LlmError
from plan_builder.services.ai.transport import JSON_ONLY_SUFFIX, parse_json_text, tagged_system_text, validate_output

logger = logging.getLogger(__name__)

# 429 and 5xx look transient; anything else from the provider is not worth retrying
RETRYABLE_STATUS_PATTERN = re.compile(r"\b(429|5\d{2})\b")

SAFETY_SETTINGS = {
    HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_NONE,
    HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_NONE,
    HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_NONE,
    HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_NONE,
}


def _is_retryable_error(exc: BaseException) -> bool:
    """True if the exception looks like 429 or 5xx."""
    msg = (getattr(exc, "message", None) or str(exc)) if exc else ""
    return bool(RETRYABLE_STATUS_PATTERN.search(msg))


class GeminiTransport:
    provider = "gemini"

    def __init__(self, api_key: str, temperature: float = 0.2):
        genai.configure(api_key=api_key)
        self._temperature = temperature

    def _model(self, model: str, max_output_tokens: int):
        return genai.GenerativeModel(
            model,
            generation_config={
                "temperature": self._temperature,
                "max_output_tokens": max_output_tokens,
                "response_mime_type": "application/json",
            },
            safety_settings=SAFETY_SETTINGS,
        )

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
        gm = self._model(model, max_output_tokens)
        contents = [tagged_system_text(capability, system), "\n\nInput:\n" + input_text + "\n\n" + JSON_ONLY_SUFFIX]

        def _call():
            return gm.generate_content(contents)

        try:
            response = await asyncio.wait_for(run_in_threadpool(_call), timeout=float(timeout_seconds))
        except asyncio.TimeoutError as e:
            logger.warning("Gemini request for %s timed out after %ss", capability, timeout_seconds)
            raise LlmError("TIMEOUT", "LLM request timed out.") from e
        except Exception as e:
            retryable = _is_retryable_error(e)
            logger.warning("Gemini request for %s failed (retryable=%s): %s", capability, retryable, e)
            raise LlmError("PROVIDER_ERROR", f"Gemini request failed: {e}", retryable=retryable) from e

        try:
            text = response.text if response else None
        except ValueError as e:
            # .text raises when the candidate was blocked or has no parts
            raise LlmError("PROVIDER_ERROR", "Gemini returned no usable candidate.") from e
        return validate_output(schema, parse_json_text(text))
