"""Pydantic schemas for the completion import pipeline."""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..db.schemas import CompletionType


class ImportStatus(str, Enum):
    """Lifecycle status of an import session."""

    ACTIVE = "active"
    PAUSED = "paused"
    CANCELED = "canceled"
    COMPLETE = "complete"

    @property
    def is_open(self) -> bool:
        return self in (ImportStatus.ACTIVE, ImportStatus.PAUSED)


class ItemStatus(str, Enum):
    """Resolution status of one export row."""

    PENDING = "pending"
    SKIPPED = "skipped"
    IMPORTED = "imported"
    UPDATED = "updated"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self != ItemStatus.PENDING


OPEN_STATUSES = (ImportStatus.ACTIVE, ImportStatus.PAUSED)

ALLOWED_TRANSITIONS: dict[ImportStatus, set[ImportStatus]] = {
    ImportStatus.ACTIVE: {ImportStatus.PAUSED, ImportStatus.CANCELED, ImportStatus.COMPLETE},
    ImportStatus.PAUSED: {ImportStatus.ACTIVE, ImportStatus.CANCELED},
    ImportStatus.CANCELED: set(),
    ImportStatus.COMPLETE: set(),
}


# ============================================================================
# Export Rows
# ============================================================================


class ExportRow(BaseModel):
    """One normalized row of an export file."""

    row_index: int = Field(..., ge=0)
    game_title: str = Field(..., min_length=1, max_length=500)
    platform_name: Optional[str] = None
    region_name: Optional[str] = None
    source_type: Optional[str] = None
    time_text: Optional[str] = None
    completed_at: Optional[date] = None
    completion_type: Optional[CompletionType] = None
    playtime_hours: Optional[float] = Field(None, ge=0)

    @field_validator("game_title", mode="before")
    @classmethod
    def strip_title(cls, v: Optional[str]) -> Optional[str]:
        if isinstance(v, str):
            return v.strip()
        return v


# ============================================================================
# Session / Item Schemas
# ============================================================================


class ImportItemResponse(BaseModel):
    """Schema for import item response."""

    item_id: int
    import_id: int
    row_index: int
    game_title: str
    platform_name: Optional[str]
    region_name: Optional[str]
    completed_at: Optional[date]
    completion_type: Optional[CompletionType]
    playtime_hours: Optional[float]
    status: ItemStatus
    catalog_game_id: Optional[int]
    completion_record_id: Optional[int]
    error_text: Optional[str]

    model_config = {"from_attributes": True}


class ImportItemUpdate(BaseModel):
    """Fields the review controller may set on an item. Only set fields are applied."""

    status: Optional[ItemStatus] = None
    catalog_game_id: Optional[int] = None
    completion_record_id: Optional[int] = None
    error_text: Optional[str] = None


# ============================================================================
# Progress
# ============================================================================


class ItemError(BaseModel):
    """An errored row, for status summaries."""

    row_index: int
    game_title: str
    error_text: Optional[str]


class ImportProgress(BaseModel):
    """Read-only progress summary for one import session."""

    import_id: int
    user_id: str
    status: ImportStatus
    source_filename: Optional[str] = None
    total_count: int
    counts: dict[ItemStatus, int]
    current_index: int = 0
    awaiting_row_index: Optional[int] = None
    errors: list[ItemError] = Field(default_factory=list)

    @property
    def pending(self) -> int:
        return self.counts.get(ItemStatus.PENDING, 0)

    @property
    def processed(self) -> int:
        return sum(n for s, n in self.counts.items() if s != ItemStatus.PENDING)

    @property
    def percent_complete(self) -> float:
        if self.total_count == 0:
            return 100.0
        return round(self.processed / self.total_count * 100, 1)

    @property
    def is_consistent(self) -> bool:
        """Terminal plus pending rows account for every row of the session."""
        return self.processed + self.pending == self.total_count
