"""Quality gate output: hard violations and soft warnings."""

from typing import Literal

from pydantic import Field

from plan_builder.schemas.common import CamelModel


class PlanIssue(CamelModel):
    code: str
    message: str
    severity: Literal["hard", "soft"] = "hard"
    week_index: int | None = None
    session_id: str | None = None


class QualityGateReport(CamelModel):
    violations: list[PlanIssue] = Field(default_factory=list)
    warnings: list[PlanIssue] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations
