"""SQLite database operations.

Handles database connection, session management, and the catalog and
completion CRUD used by the import pipeline.
"""

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, func, or_, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import (
    Base,
    Company,
    Completion,
    Game,
    GameCompany,
    GameGenre,
    GamePlatform,
    GameRelease,
    Genre,
    Platform,
    utc_now,
)
from .schemas import CompanyRole, CompletionCreate, CompletionUpdate, GameCreate


class Database:
    """Database connection and operations manager."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses
                     GAMETRACKER_DB_PATH env var or default location.
        """
        if db_path is None:
            db_path = os.environ.get(
                "GAMETRACKER_DB_PATH",
                str(Path.home() / ".gametracker" / "games.db"),
            )

        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"

        if not self._is_memory:
            self._ensure_directory()

        # For in-memory databases, use StaticPool to reuse the same connection
        # This ensures all sessions share the same in-memory database
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables."""
        # Import pipeline models register themselves with Base
        from ..imports.models import ImportItem, ImportSession, ReviewContext  # noqa: F401

        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========================================================================
    # Game Operations
    # ========================================================================

    def create_game(self, game: GameCreate, session: Optional[Session] = None) -> Game:
        """Create a new catalog game."""

        def _create(s: Session) -> Game:
            db_game = Game(
                title=game.title,
                description=game.description,
                igdb_id=game.igdb_id,
                slug=game.slug,
                total_rating=game.total_rating,
                igdb_url=game.igdb_url,
                cover_url=game.cover_url,
                cover_base64=game.cover_base64,
                initial_release_date=(
                    game.initial_release_date.isoformat() if game.initial_release_date else None
                ),
            )
            s.add(db_game)
            s.flush()
            return db_game

        if session:
            return _create(session)
        else:
            with self.get_session() as s:
                db_game = _create(s)
                s.expunge(db_game)
                return db_game

    def get_game(self, game_id: int, session: Optional[Session] = None) -> Optional[Game]:
        """Get a game by ID."""

        def _get(s: Session) -> Optional[Game]:
            return s.get(Game, game_id)

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                game = _get(s)
                if game:
                    s.expunge(game)
                return game

    def get_game_by_igdb_id(
        self, igdb_id: int, session: Optional[Session] = None
    ) -> Optional[Game]:
        """Get a game by its IGDB id."""

        def _get(s: Session) -> Optional[Game]:
            stmt = select(Game).where(Game.igdb_id == igdb_id)
            return s.execute(stmt).scalar_one_or_none()

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                game = _get(s)
                if game:
                    s.expunge(game)
                return game

    def find_games_by_title(
        self, title: str, limit: int = 50, session: Optional[Session] = None
    ) -> list[Game]:
        """Find games whose title equals ``title``, ignoring case."""

        def _find(s: Session) -> list[Game]:
            stmt = (
                select(Game)
                .where(func.lower(Game.title) == title.strip().lower())
                .order_by(Game.id)
                .limit(limit)
            )
            return list(s.execute(stmt).scalars().all())

        if session:
            return _find(session)
        else:
            with self.get_session() as s:
                games = _find(s)
                for game in games:
                    s.expunge(game)
                return games

    # ========================================================================
    # Secondary Metadata
    # ========================================================================

    def _get_or_create(self, s: Session, model, igdb_field: str, igdb_id: int, name: str):
        """Fetch a metadata row by its IGDB id, inserting it when missing."""
        column = getattr(model, igdb_field)
        existing = s.execute(select(model).where(column == igdb_id)).scalar_one_or_none()
        if existing:
            return existing
        row = model(name=name, **{igdb_field: igdb_id})
        s.add(row)
        s.flush()
        return row

    def attach_genre(self, game_id: int, igdb_genre_id: int, name: str) -> None:
        """Link a genre to a game, creating the genre if needed."""
        with self.get_session() as s:
            genre = self._get_or_create(s, Genre, "igdb_genre_id", igdb_genre_id, name)
            if not s.get(GameGenre, (game_id, genre.id)):
                s.add(GameGenre(game_id=game_id, genre_id=genre.id))

    def attach_company(
        self,
        game_id: int,
        igdb_company_id: int,
        name: str,
        role: Optional[CompanyRole] = None,
    ) -> None:
        """Link a developer/publisher to a game."""
        with self.get_session() as s:
            company = self._get_or_create(s, Company, "igdb_company_id", igdb_company_id, name)
            link = s.get(GameCompany, (game_id, company.id))
            if link:
                link.role = link.role or (role.value if role else None)
            else:
                s.add(
                    GameCompany(
                        game_id=game_id,
                        company_id=company.id,
                        role=role.value if role else None,
                    )
                )

    def attach_platform(self, game_id: int, igdb_platform_id: int, name: str) -> int:
        """Link a platform to a game. Returns the local platform id."""
        with self.get_session() as s:
            platform = self._get_or_create(
                s, Platform, "igdb_platform_id", igdb_platform_id, name
            )
            if not s.get(GamePlatform, (game_id, platform.id)):
                s.add(GamePlatform(game_id=game_id, platform_id=platform.id))
            return platform.id

    def add_release(
        self,
        game_id: int,
        igdb_platform_id: int,
        platform_name: str,
        region: Optional[str] = None,
        release_date: Optional[str] = None,
        category: Optional[int] = None,
    ) -> None:
        """Record a platform/region release row for a game."""
        with self.get_session() as s:
            platform = self._get_or_create(
                s, Platform, "igdb_platform_id", igdb_platform_id, platform_name
            )
            stmt = select(GameRelease).where(
                GameRelease.game_id == game_id,
                GameRelease.platform_id == platform.id,
                GameRelease.region == region,
            )
            if s.execute(stmt).scalar_one_or_none():
                return
            s.add(
                GameRelease(
                    game_id=game_id,
                    platform_id=platform.id,
                    region=region,
                    release_date=release_date,
                    category=category,
                )
            )

    def get_platforms_for_game(self, game_id: int) -> list[Platform]:
        """Get platforms linked to a game, by link or by release row."""
        with self.get_session() as s:
            linked = select(GamePlatform.platform_id).where(GamePlatform.game_id == game_id)
            released = select(GameRelease.platform_id).where(GameRelease.game_id == game_id)
            stmt = (
                select(Platform)
                .where(or_(Platform.id.in_(linked), Platform.id.in_(released)))
                .order_by(Platform.name)
            )
            platforms = list(s.execute(stmt).scalars().all())
            for platform in platforms:
                s.expunge(platform)
            return platforms

    def get_genre_names(self, game_id: int) -> list[str]:
        """Get genre names linked to a game."""
        with self.get_session() as s:
            stmt = (
                select(Genre.name)
                .join(GameGenre, GameGenre.genre_id == Genre.id)
                .where(GameGenre.game_id == game_id)
                .order_by(Genre.name)
            )
            return list(s.execute(stmt).scalars().all())

    # ========================================================================
    # Completion Operations
    # ========================================================================

    def create_completion(
        self, completion: CompletionCreate, session: Optional[Session] = None
    ) -> Completion:
        """Create a completion record."""

        def _create(s: Session) -> Completion:
            record = Completion(
                user_id=completion.user_id,
                game_id=completion.game_id,
                completion_type=completion.completion_type.value,
                platform_id=completion.platform_id,
                completed_at=(
                    completion.completed_at.isoformat() if completion.completed_at else None
                ),
                final_playtime_hours=completion.final_playtime_hours,
                note=completion.note,
            )
            s.add(record)
            s.flush()
            return record

        if session:
            return _create(session)
        else:
            with self.get_session() as s:
                record = _create(s)
                s.expunge(record)
                return record

    def get_completion(
        self, completion_id: int, session: Optional[Session] = None
    ) -> Optional[Completion]:
        """Get a completion record by ID."""

        def _get(s: Session) -> Optional[Completion]:
            return s.get(Completion, completion_id)

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                record = _get(s)
                if record:
                    s.expunge(record)
                return record

    def get_completion_for_game(
        self, user_id: str, game_id: int, session: Optional[Session] = None
    ) -> Optional[Completion]:
        """Get the user's most recent completion record for a game."""

        def _get(s: Session) -> Optional[Completion]:
            stmt = (
                select(Completion)
                .where(Completion.user_id == user_id, Completion.game_id == game_id)
                .order_by(Completion.id.desc())
                .limit(1)
            )
            return s.execute(stmt).scalar_one_or_none()

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                record = _get(s)
                if record:
                    s.expunge(record)
                return record

    def get_completions(self, user_id: str) -> list[Completion]:
        """Get all completion records for a user, oldest first."""
        with self.get_session() as s:
            stmt = (
                select(Completion)
                .where(Completion.user_id == user_id)
                .order_by(Completion.id)
            )
            records = list(s.execute(stmt).scalars().all())
            for record in records:
                s.expunge(record)
            return records

    def update_completion(
        self, completion_id: int, updates: CompletionUpdate
    ) -> Optional[Completion]:
        """Apply the set fields of ``updates`` to a completion record."""
        with self.get_session() as s:
            record = s.get(Completion, completion_id)
            if not record:
                return None

            for field, value in updates.model_dump(exclude_unset=True).items():
                if field == "completion_type" and value is not None:
                    value = value.value if hasattr(value, "value") else value
                elif field == "completed_at" and value is not None:
                    value = value.isoformat()
                setattr(record, field, value)

            record.updated_at = utc_now()
            s.flush()
            s.expunge(record)
            return record


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    _db = None
