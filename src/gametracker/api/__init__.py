"""API module for external game metadata services.

Provides the IGDB client used to find and import catalog games.
"""

from .igdb import (
    GameDetails,
    GameResult,
    IGDBAuthError,
    IGDBClient,
    IGDBError,
    IGDBRateLimitError,
)

__all__ = [
    "IGDBClient",
    "IGDBError",
    "IGDBAuthError",
    "IGDBRateLimitError",
    "GameResult",
    "GameDetails",
]
