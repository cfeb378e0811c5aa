"""Pytest configuration and shared fixtures.

This module provides fixtures for testing gametracker, including a
temporary database, a mocked IGDB client and a scripted prompt channel.
"""

import os
import tempfile
from datetime import date
from pathlib import Path
from typing import Callable, Generator, Optional, Union
from unittest.mock import MagicMock

import pytest

from gametracker.api.igdb import GameDetails, GameResult, IGDBClient, NamedRef
from gametracker.config import reset_config
from gametracker.db.schemas import GameCreate
from gametracker.db.sqlite import Database, reset_db
from gametracker.imports.catalog import CatalogImportAdapter
from gametracker.imports.commands import ImportCommands
from gametracker.imports.manager import ImportStore
from gametracker.imports.registry import PromptRegistry
from gametracker.imports.resolver import MatchResolver
from gametracker.imports.review import (
    ConfirmationPrompt,
    PromptChannel,
    PromptResponse,
    ReviewController,
    RowOutcome,
    SelectionPrompt,
)

EXPORT_HEADER = "Name,Platform,Region,Type,Time,Date"


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    # Cleanup
    if db_path.exists():
        db_path.unlink()


@pytest.fixture(scope="function")
def db(temp_db_path: Path) -> Generator[Database, None, None]:
    """Create a test database instance."""
    # Reset any global state
    reset_db()
    reset_config()

    os.environ["GAMETRACKER_DB_PATH"] = str(temp_db_path)

    database = Database(str(temp_db_path))
    database.create_tables()
    yield database

    # Cleanup
    database.engine.dispose()
    reset_db()
    reset_config()
    if "GAMETRACKER_DB_PATH" in os.environ:
        del os.environ["GAMETRACKER_DB_PATH"]


@pytest.fixture
def store(db: Database) -> ImportStore:
    """Import store on the test database."""
    return ImportStore(db)


@pytest.fixture
def registry(db: Database) -> PromptRegistry:
    """Review context registry on the test database."""
    return PromptRegistry(db)


# ============================================================================
# Sample Data Fixtures
# ============================================================================


def make_export(*rows: str, header: str = EXPORT_HEADER) -> bytes:
    """Build export file bytes from CSV lines."""
    return ("\n".join([header, *rows]) + "\n").encode("utf-8")


@pytest.fixture
def three_row_export() -> bytes:
    """Export with a duplicate title."""
    return make_export(
        "Game A,PC,North America,Core Game,10h:30m:00s,1/15/2023",
        "Game B,Switch,North America,Completionated,40h:00m:00s,2/20/2023",
        "Game A,PC,North America,Core Game (+ A Few Extras),12h:00m:00s,3/5/2023",
    )


@pytest.fixture
def local_game(db: Database):
    """A catalog game titled 'Game A'."""
    return db.create_game(
        GameCreate(
            title="Game A",
            igdb_id=1001,
            description="The first game.",
            initial_release_date=date(2020, 5, 1),
        )
    )


def make_details(
    igdb_id: int = 2002,
    title: str = "Game B",
    genres: Optional[list[NamedRef]] = None,
    platforms: Optional[list[NamedRef]] = None,
) -> GameDetails:
    """Build IGDB details for a game."""
    return GameDetails(
        igdb_id=igdb_id,
        title=title,
        summary=f"About {title}.",
        first_release_date=1577836800,  # 2020-01-01
        total_rating=85.0,
        url=f"https://www.igdb.com/games/{igdb_id}",
        slug=title.lower().replace(" ", "-"),
        genres=genres or [],
        platforms=platforms or [],
    )


@pytest.fixture
def mock_igdb() -> MagicMock:
    """IGDB client that finds nothing unless configured by the test."""
    client = MagicMock(spec=IGDBClient)
    client.search_games.return_value = []
    client.get_game_details.return_value = None
    client.download_cover.return_value = None
    return client


def igdb_results(*titles: str, start_id: int = 5000) -> list[GameResult]:
    """Build IGDB search results for titles."""
    return [
        GameResult(igdb_id=start_id + i, title=title, first_release_date=1577836800)
        for i, title in enumerate(titles)
    ]


# ============================================================================
# Prompt Channel
# ============================================================================

Scripted = Union[PromptResponse, None, Callable[[object], Optional[PromptResponse]]]


class ScriptedChannel(PromptChannel):
    """Prompt channel answering from a script.

    Each script entry is a PromptResponse, None (no answer in time), or a
    callable receiving the prompt and returning one of those.
    """

    def __init__(self, script: Optional[list[Scripted]] = None):
        self.script = list(script or [])
        self.selections: list[SelectionPrompt] = []
        self.confirmations: list[ConfirmationPrompt] = []
        self.reports: list[RowOutcome] = []
        self.notices: list[str] = []

    def _next(self, prompt) -> Optional[PromptResponse]:
        if not self.script:
            return None
        entry = self.script.pop(0)
        if callable(entry):
            return entry(prompt)
        return entry

    def ask_selection(self, prompt: SelectionPrompt, timeout: float) -> Optional[PromptResponse]:
        self.selections.append(prompt)
        return self._next(prompt)

    def ask_confirmation(
        self, prompt: ConfirmationPrompt, timeout: float
    ) -> Optional[PromptResponse]:
        self.confirmations.append(prompt)
        return self._next(prompt)

    def report_row(self, outcome: RowOutcome) -> None:
        self.reports.append(outcome)

    def notify(self, message: str) -> None:
        self.notices.append(message)

    @property
    def prompt_count(self) -> int:
        return len(self.selections) + len(self.confirmations)


@pytest.fixture
def channel() -> ScriptedChannel:
    """Scripted channel with an empty script."""
    return ScriptedChannel()


@pytest.fixture
def make_controller(db: Database, store: ImportStore, registry: PromptRegistry, mock_igdb):
    """Factory building a ReviewController on the test database."""

    def _make(
        channel: PromptChannel,
        igdb=mock_igdb,
        no_match_policy: str = "error",
        page_size: int = 23,
    ) -> ReviewController:
        return ReviewController(
            store=store,
            resolver=MatchResolver(db, igdb, page_size=page_size),
            adapter=CatalogImportAdapter(db, igdb),
            db=db,
            channel=channel,
            registry=registry,
            prompt_timeout=5,
            no_match_policy=no_match_policy,
        )

    return _make


@pytest.fixture
def make_commands(store: ImportStore, registry: PromptRegistry, make_controller):
    """Factory building ImportCommands around a channel."""

    def _make(channel: PromptChannel, **kwargs) -> ImportCommands:
        return ImportCommands(store, make_controller(channel, **kwargs), registry)

    return _make


# ============================================================================
# Builder Fixtures
# ============================================================================


@pytest.fixture
def export_factory() -> Callable[..., bytes]:
    """Build export bytes from CSV lines."""
    return make_export


@pytest.fixture
def details_factory() -> Callable[..., GameDetails]:
    """Build IGDB game details."""
    return make_details


@pytest.fixture
def results_factory() -> Callable[..., list[GameResult]]:
    """Build IGDB search results."""
    return igdb_results


@pytest.fixture
def channel_factory() -> Callable[..., ScriptedChannel]:
    """Build a ScriptedChannel from a list of answers."""
    return ScriptedChannel
