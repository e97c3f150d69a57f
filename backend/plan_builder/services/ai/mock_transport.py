"""
Test transport. Serves scripted payloads or errors per capability, else the deterministic
output for the tagged capability. Never makes network calls.
"""
from __future__ import annotations

import json
import re
from collections import defaultdict, deque
from typing import Any, Iterable, Mapping

from pydantic import BaseModel

from plan_builder.core.errors import LlmError
from plan_builder.services.ai.transport import CAPABILITY_TAG, validate_output

CAPABILITY_PATTERN = re.compile(rf"\b{CAPABILITY_TAG}\s*=\s*(\w+)\b")


class MockTransport:
    provider = "mock"

    def __init__(self, scripted: Mapping[str, Iterable[Any]] | None = None):
        """scripted maps capability -> queue of payload dicts or exceptions, consumed one per call."""
        self._scripted: dict[str, deque] = defaultdict(deque)
        for capability, items in (scripted or {}).items():
            self._scripted[capability].extend(items)
        self.calls: list[dict] = []

    def script(self, capability: str, *items: Any) -> None:
        self._scripted[capability].extend(items)

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
        m = CAPABILITY_PATTERN.search(system or "")
        tagged = m.group(1) if m else capability
        self.calls.append(
            {"capability": tagged, "model": model, "max_output_tokens": max_output_tokens, "input_text": input_text}
        )

        queue = self._scripted.get(tagged)
        if queue:
            item = queue.popleft()
            if isinstance(item, BaseException):
                raise item
            return validate_output(schema, item)

        from plan_builder.services.ai.capabilities import CAPABILITIES

        spec = CAPABILITIES.get(tagged)
        if spec is None:
            raise LlmError("PROVIDER_ERROR", "Mock transport missing or invalid capability tag.", retryable=False)
        try:
            parsed_input = spec.input_model.model_validate(json.loads(input_text))
        except (ValueError, TypeError) as e:
            raise LlmError("INVALID_JSON", "Mock transport received invalid JSON input.", retryable=False) from e
        payload = spec.deterministic(parsed_input).model_dump(mode="json", by_alias=True, exclude_none=True)
        return validate_output(schema, payload)
