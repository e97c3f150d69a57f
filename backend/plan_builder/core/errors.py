"""
Error types raised across the plan builder.
Planning and edit errors propagate to the caller; LLM errors never leave the capability router.
"""
from __future__ import annotations

from typing import Any


class PlanBuilderError(Exception):
    """Base error with a stable machine-readable code and optional diagnostics."""

    code = "PLAN_BUILDER_ERROR"

    def __init__(self, message: str, *, code: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class SetupValidationError(PlanBuilderError):
    """Malformed setup input; rejected before any planning happens."""

    code = "INVALID_SETUP"


class DraftEditError(PlanBuilderError):
    """Rejected draft update or diff application (WEEK_LOCKED, SESSION_LOCKED, NOT_FOUND, INVALID_EDIT, UPDATE_TIMEOUT)."""

    code = "INVALID_EDIT"


class PlanConstraintError(PlanBuilderError):
    """Hard planning-constraint violations; the draft must not be persisted."""

    code = "PLAN_CONSTRAINT_VIOLATION"

    def __init__(self, message: str, *, violations: list, warnings: list):
        super().__init__(
            message,
            details={
                "violations": [v.model_dump(by_alias=True) for v in violations],
                "warnings": [w.model_dump(by_alias=True) for w in warnings],
            },
        )
        self.violations = violations
        self.warnings = warnings


# LLM error codes and whether the router may retry them
LLM_ERROR_RETRYABLE: dict[str, bool] = {
    "CONFIG_MISSING": False,
    "RATE_LIMITED": False,
    "TIMEOUT": True,
    "NETWORK": True,
    "INVALID_JSON": True,
    "SCHEMA_VALIDATION_FAILED": True,
    "PROVIDER_ERROR": True,
}


class LlmError(Exception):
    """Transport or configuration failure for a single LLM attempt."""

    def __init__(self, code: str, message: str, *, retryable: bool | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.retryable = LLM_ERROR_RETRYABLE.get(code, False) if retryable is None else retryable

    def __repr__(self) -> str:
        return f"LlmError(code={self.code!r}, retryable={self.retryable}, message={self.message!r})"
