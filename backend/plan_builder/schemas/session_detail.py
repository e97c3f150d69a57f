"""Block-level workout detail attached to a draft session (SessionDetailV1)."""

from typing import Literal

from pydantic import ConfigDict, Field, model_validator

from plan_builder.schemas.common import CamelModel

BlockType = Literal["warmup", "main", "cooldown", "drill", "strength"]
Zone = Literal["Z1", "Z2", "Z3", "Z4", "Z5"]
VariantLabel = Literal["short-on-time", "standard", "longer-window"]


class BlockIntensity(CamelModel):
    model_config = ConfigDict(extra="forbid")

    rpe: float | None = Field(None, ge=1, le=10)
    zone: Zone | None = None
    notes: str | None = Field(None, min_length=1, max_length=200)


class SessionDetailBlock(CamelModel):
    """One warmup/main/cooldown/drill/strength block."""

    model_config = ConfigDict(extra="forbid")

    block_type: BlockType
    duration_minutes: int | None = Field(None, ge=0, le=10_000)
    intensity: BlockIntensity | None = None
    steps: str = Field(..., min_length=1, max_length=1000)


class SessionDetailTargets(CamelModel):
    model_config = ConfigDict(extra="forbid")

    primary_metric: Literal["RPE", "ZONE"]
    notes: str = Field(..., min_length=1, max_length=500)


class SessionExplainability(CamelModel):
    model_config = ConfigDict(extra="forbid")

    why_this: str = Field(..., min_length=1, max_length=400)
    why_today: str = Field(..., min_length=1, max_length=400)
    if_missed: str = Field(..., min_length=1, max_length=400)
    if_cooked: str = Field(..., min_length=1, max_length=400)


class SessionVariant(CamelModel):
    model_config = ConfigDict(extra="forbid")

    label: VariantLabel
    when_to_use: str = Field(..., min_length=1, max_length=260)
    duration_minutes: int = Field(..., ge=5, le=10_000)
    adjustments: list[str] = Field(..., min_length=1, max_length=5)


class SessionDetailV1(CamelModel):
    """LLM output for generateSessionDetail must match this structure exactly."""

    model_config = ConfigDict(extra="forbid")

    objective: str = Field(..., min_length=1, max_length=240)
    purpose: str | None = Field(None, min_length=1, max_length=240)
    structure: list[SessionDetailBlock] = Field(..., min_length=1, max_length=20)
    targets: SessionDetailTargets
    cues: list[str] = Field(default_factory=list, max_length=3)
    safety_notes: str | None = Field(None, min_length=1, max_length=800)
    explainability: SessionExplainability | None = None
    variants: list[SessionVariant] = Field(default_factory=list, max_length=8)

    @model_validator(mode="after")
    def _check_structure_order(self):
        blocks = [b.block_type for b in self.structure]
        if blocks.count("warmup") > 1:
            raise ValueError("Only one warmup block is allowed.")
        if blocks.count("cooldown") > 1:
            raise ValueError("Only one cooldown block is allowed.")
        main_like = [i for i, t in enumerate(blocks) if t in ("main", "strength")]
        if not main_like:
            raise ValueError("Session structure must include at least one main or strength block.")
        first_main = main_like[0]
        if "warmup" in blocks and blocks.index("warmup") > first_main:
            raise ValueError("Warmup must appear before main work.")
        if "cooldown" in blocks:
            cooldown_idx = blocks.index("cooldown")
            if cooldown_idx < first_main:
                raise ValueError("Cooldown must appear after main work.")
            if cooldown_idx != len(blocks) - 1:
                raise ValueError("No work blocks are allowed after cooldown.")
        if self.targets.primary_metric == "RPE" and not any(
            b.intensity is not None and b.intensity.rpe is not None for b in self.structure
        ):
            raise ValueError("RPE primary metric requires at least one block with RPE.")
        if self.targets.primary_metric == "ZONE" and not any(
            b.intensity is not None and b.intensity.zone is not None for b in self.structure
        ):
            raise ValueError("ZONE primary metric requires at least one block with zone.")
        return self

    @property
    def total_minutes(self) -> int:
        return sum(b.duration_minutes or 0 for b in self.structure)
