"""Tagged outcome of one LLM attempt. The router branches on the tag, never on exceptions."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from plan_builder.core.errors import LlmError


@dataclass(frozen=True)
class Success:
    value: Any


@dataclass(frozen=True)
class RetryableFailure:
    code: str
    message: str = ""


@dataclass(frozen=True)
class TerminalFailure:
    code: str
    message: str = ""


AttemptResult = Union[Success, RetryableFailure, TerminalFailure]


def failure_from_error(exc: LlmError) -> RetryableFailure | TerminalFailure:
    if exc.retryable:
        return RetryableFailure(code=exc.code, message=exc.message)
    return TerminalFailure(code=exc.code, message=exc.message)
