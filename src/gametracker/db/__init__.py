"""Database module for local SQLite storage."""

from .models import Completion, Game, Platform
from .schemas import (
    CompletionCreate,
    CompletionResponse,
    CompletionType,
    CompletionUpdate,
    GameCreate,
    GameResponse,
)
from .sqlite import Database, get_db, reset_db

__all__ = [
    "Completion",
    "Game",
    "Platform",
    "CompletionCreate",
    "CompletionResponse",
    "CompletionType",
    "CompletionUpdate",
    "GameCreate",
    "GameResponse",
    "Database",
    "get_db",
    "reset_db",
]
