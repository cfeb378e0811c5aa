"""Pydantic schemas for data validation.

These schemas define the catalog and completion-record structures shared
by the import pipeline and the CLI.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class CompletionType(str, Enum):
    """How much of a game was finished."""

    MAIN_STORY = "Main Story"
    MAIN_STORY_SIDE = "Main Story + Side Content"
    COMPLETIONIST = "Completionist"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["CompletionType"]:
        """Parse a display value or enum name, case-insensitively."""
        if not value:
            return None
        lowered = value.strip().lower()
        for member in cls:
            if lowered in (member.value.lower(), member.name.lower()):
                return member
        return None


class CompanyRole(str, Enum):
    """Role of a company on a game."""

    DEVELOPER = "Developer"
    PUBLISHER = "Publisher"


# ============================================================================
# Catalog Schemas
# ============================================================================


class GameCreate(BaseModel):
    """Schema for creating a catalog game."""

    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    igdb_id: Optional[int] = None
    slug: Optional[str] = Field(None, max_length=255)
    total_rating: Optional[float] = Field(None, ge=0, le=100)
    igdb_url: Optional[str] = None
    cover_url: Optional[str] = None
    cover_base64: Optional[str] = None
    initial_release_date: Optional[date] = None

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v: Optional[str]) -> Optional[str]:
        """Trim surrounding whitespace from titles."""
        if isinstance(v, str):
            return v.strip()
        return v


class GameResponse(BaseModel):
    """Schema for game response."""

    id: int
    title: str
    description: Optional[str]
    igdb_id: Optional[int]
    initial_release_date: Optional[date]
    created_at: datetime

    model_config = {"from_attributes": True}

    @property
    def release_year(self) -> Optional[int]:
        return self.initial_release_date.year if self.initial_release_date else None


# ============================================================================
# Completion Schemas
# ============================================================================


class CompletionCreate(BaseModel):
    """Schema for recording a finished game."""

    user_id: str = Field(..., min_length=1)
    game_id: int
    completion_type: CompletionType = CompletionType.MAIN_STORY
    platform_id: Optional[int] = None
    completed_at: Optional[date] = None
    final_playtime_hours: Optional[float] = Field(None, ge=0)
    note: Optional[str] = None


class CompletionUpdate(BaseModel):
    """Schema for updating a completion record. Only set fields are applied."""

    completion_type: Optional[CompletionType] = None
    platform_id: Optional[int] = None
    completed_at: Optional[date] = None
    final_playtime_hours: Optional[float] = Field(None, ge=0)
    note: Optional[str] = None


class CompletionResponse(BaseModel):
    """Schema for completion response."""

    id: int
    user_id: str
    game_id: int
    completion_type: CompletionType
    platform_id: Optional[int]
    completed_at: Optional[date]
    final_playtime_hours: Optional[float]
    note: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
