"""Configuration management for gametracker.

Loads configuration from environment variables and provides defaults.
"""

import getpass
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

NO_MATCH_POLICIES = ("error", "prompt")
MAX_PAGE_SIZE = 25


def _default_user_id() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "local"


@dataclass
class Config:
    """Application configuration."""

    # Database
    db_path: Path

    # Invoking user for CLI commands
    user_id: str

    # IGDB
    igdb_client_id: Optional[str]
    igdb_client_secret: Optional[str]
    request_timeout: int  # seconds

    # Review
    prompt_timeout: float  # seconds
    page_size: int
    no_match_policy: str
    context_ttl: int  # seconds

    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get(
            "GAMETRACKER_DB_PATH",
            str(Path.home() / ".gametracker" / "games.db"),
        )
        db_path = Path(db_path_str).expanduser()

        return cls(
            db_path=db_path,
            user_id=os.environ.get("GAMETRACKER_USER_ID") or _default_user_id(),
            igdb_client_id=os.environ.get("IGDB_CLIENT_ID"),
            igdb_client_secret=os.environ.get("IGDB_CLIENT_SECRET"),
            request_timeout=int(os.environ.get("GAMETRACKER_REQUEST_TIMEOUT", "10")),
            prompt_timeout=float(os.environ.get("GAMETRACKER_PROMPT_TIMEOUT", "300")),
            page_size=int(os.environ.get("GAMETRACKER_PAGE_SIZE", "23")),
            no_match_policy=os.environ.get("GAMETRACKER_NO_MATCH_POLICY", "error").lower(),
            context_ttl=int(os.environ.get("GAMETRACKER_CONTEXT_TTL", "86400")),
            log_level=os.environ.get("GAMETRACKER_LOG_LEVEL", "WARNING").upper(),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        # Check database directory is writable
        if not self.db_path.parent.exists():
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create database directory: {self.db_path.parent}")

        if self.no_match_policy not in NO_MATCH_POLICIES:
            errors.append(
                f"Unknown no-match policy '{self.no_match_policy}' "
                f"(expected one of: {', '.join(NO_MATCH_POLICIES)})"
            )

        if not 1 <= self.page_size <= MAX_PAGE_SIZE:
            errors.append(f"Page size must be between 1 and {MAX_PAGE_SIZE}")

        if self.prompt_timeout <= 0:
            errors.append("Prompt timeout must be positive")

        return errors

    def has_igdb_config(self) -> bool:
        """Check if IGDB credentials are present."""
        return bool(self.igdb_client_id and self.igdb_client_secret)


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
