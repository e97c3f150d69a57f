"""Coach-initiated draft update: week lock toggles plus session edits."""

from pydantic import Field

from plan_builder.schemas.common import CamelModel
from plan_builder.schemas.plan import Discipline, SessionType


class WeekLockChange(CamelModel):
    week_index: int = Field(..., ge=0)
    locked: bool


class DetailBlockEdit(CamelModel):
    steps: str | None = Field(None, min_length=1, max_length=1000)
    duration_minutes: int | None = Field(None, ge=0, le=240)


class SessionEdit(CamelModel):
    """Fields left unset are untouched; notes=None explicitly clears notes."""

    session_id: str = Field(..., min_length=1)
    discipline: Discipline | None = None
    type: SessionType | None = None
    duration_minutes: int | None = Field(None, ge=20, le=240)
    notes: str | None = Field(None, max_length=10_000)
    locked: bool | None = None
    detail_block_edits: dict[int, DetailBlockEdit] | None = None
    objective_override: str | None = Field(None, min_length=1, max_length=240)
    detail_notes_override: str | None = Field(None, min_length=1, max_length=500)

    @property
    def wants_content_change(self) -> bool:
        content_fields = {"discipline", "type", "duration_minutes", "notes"}
        return bool(content_fields & self.model_fields_set) or self.wants_detail_change

    @property
    def wants_detail_change(self) -> bool:
        return bool(self.detail_block_edits) or self.objective_override is not None or self.detail_notes_override is not None


class DraftUpdate(CamelModel):
    week_locks: list[WeekLockChange] = Field(default_factory=list)
    session_edits: list[SessionEdit] = Field(default_factory=list)
