"""Catalog import from IGDB.

Creates a local catalog game from an IGDB id. The check-then-insert is
keyed on the IGDB id, so importing the same game twice returns the entry
created the first time. Genres, companies, platforms and release rows are
attached best-effort: a failure there is recorded on the result and the
game itself is kept.
"""

import base64
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.exc import IntegrityError

from ..api.igdb import GameDetails, IGDBClient, IGDBError
from ..db.sqlite import Database
from .errors import ExternalProviderError

logger = logging.getLogger(__name__)


@dataclass
class CatalogImportResult:
    """Outcome of materializing a catalog game."""

    game_id: int
    title: str
    created: bool
    secondary_errors: list[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        """The game exists but some metadata could not be attached."""
        return bool(self.secondary_errors)


class CatalogImportAdapter:
    """Imports IGDB games into the local catalog."""

    def __init__(self, db: Database, igdb: Optional[IGDBClient] = None):
        self.db = db
        self.igdb = igdb

    def import_game(self, igdb_id: int) -> CatalogImportResult:
        """Get or create the catalog game for an IGDB id.

        Args:
            igdb_id: IGDB game id

        Returns:
            CatalogImportResult with the local game id and title

        Raises:
            ExternalProviderError: IGDB could not provide the game
        """
        existing = self.db.get_game_by_igdb_id(igdb_id)
        if existing:
            return CatalogImportResult(existing.id, existing.title, created=False)

        if self.igdb is None:
            raise ExternalProviderError("IGDB credentials are not configured")

        try:
            details = self.igdb.get_game_details(igdb_id)
        except IGDBError as e:
            raise ExternalProviderError(f"Could not load IGDB game {igdb_id}: {e}") from e
        if details is None:
            raise ExternalProviderError(f"IGDB has no game with id {igdb_id}")

        secondary_errors: list[str] = []
        cover_base64 = self._fetch_cover(details, secondary_errors)

        try:
            game = self.db.create_game(details.to_game_create(cover_base64=cover_base64))
        except IntegrityError:
            # Another import created it first
            game = self.db.get_game_by_igdb_id(igdb_id)
            if game is None:
                matches = self.db.find_games_by_title(details.title, limit=1)
                if not matches:
                    raise
                game = matches[0]
            logger.info("Game %r was imported concurrently, reusing #%d", game.title, game.id)
            return CatalogImportResult(game.id, game.title, created=False)

        logger.info("Imported %r from IGDB as game #%d", game.title, game.id)
        self._attach_metadata(game.id, details, secondary_errors)
        return CatalogImportResult(game.id, game.title, True, secondary_errors)

    def _fetch_cover(self, details: GameDetails, errors: list[str]) -> Optional[str]:
        if not details.cover_url:
            return None
        try:
            data = self.igdb.download_cover(details.cover_url)
        except IGDBError as e:
            data = None
            logger.warning("Cover download failed for %r: %s", details.title, e)
        if not data:
            errors.append("cover: download failed")
            return None
        return base64.b64encode(data).decode("ascii")

    def _attach_metadata(self, game_id: int, details: GameDetails, errors: list[str]) -> None:
        """Attach secondary metadata, recording failures instead of raising."""
        steps = []
        for genre in details.genres:
            steps.append(
                (f"genre {genre.name}", self.db.attach_genre, (game_id, genre.igdb_id, genre.name))
            )
        for company in details.companies:
            steps.append(
                (
                    f"company {company.name}",
                    self.db.attach_company,
                    (game_id, company.igdb_id, company.name, company.role),
                )
            )
        for platform in details.platforms:
            steps.append(
                (
                    f"platform {platform.name}",
                    self.db.attach_platform,
                    (game_id, platform.igdb_id, platform.name),
                )
            )
        for release in details.release_dates:
            released = release.release_date
            steps.append(
                (
                    f"release {release.platform.name}",
                    self.db.add_release,
                    (
                        game_id,
                        release.platform.igdb_id,
                        release.platform.name,
                        release.region,
                        released.isoformat() if released else None,
                        release.category,
                    ),
                )
            )

        for label, func, args in steps:
            try:
                func(*args)
            except Exception as e:
                logger.warning("Could not attach %s to game #%d: %s", label, game_id, e)
                errors.append(f"{label}: {e}")
