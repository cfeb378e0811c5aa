"""SQLAlchemy ORM models for the local SQLite database.

Tables:
- games: Catalog entries, optionally linked to an IGDB id
- genres, companies, platforms: Secondary metadata keyed by IGDB id
- game_genres, game_companies, game_platforms: Catalog links
- game_releases: Per-platform/region release rows
- completions: A user's finished-game records
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from .schemas import CompletionType


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> str:
    """Current UTC time as an ISO string."""
    return datetime.now(timezone.utc).isoformat()


class Game(Base):
    """Catalog entry for a single game."""

    __tablename__ = "games"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)

    # IGDB linkage
    igdb_id: Mapped[Optional[int]] = mapped_column(Integer, unique=True, index=True)
    slug: Mapped[Optional[str]] = mapped_column(String(255))
    total_rating: Mapped[Optional[float]] = mapped_column(Float)
    igdb_url: Mapped[Optional[str]] = mapped_column(Text)

    # Cover art
    cover_url: Mapped[Optional[str]] = mapped_column(Text)
    cover_base64: Mapped[Optional[str]] = mapped_column(Text)

    initial_release_date: Mapped[Optional[str]] = mapped_column(String(10))  # ISO date

    created_at: Mapped[str] = mapped_column(String(32), default=utc_now)
    updated_at: Mapped[str] = mapped_column(String(32), default=utc_now, onupdate=utc_now)

    completions: Mapped[list["Completion"]] = relationship(
        "Completion", back_populates="game", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Game(id={self.id}, title='{self.title}', igdb_id={self.igdb_id})>"

    @property
    def release_year(self) -> Optional[int]:
        if self.initial_release_date:
            return int(self.initial_release_date[:4])
        return None


class Genre(Base):
    """Genre metadata."""

    __tablename__ = "genres"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    igdb_genre_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)


class Company(Base):
    """Developer/publisher metadata."""

    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    igdb_company_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)


class Platform(Base):
    """Gaming platform metadata."""

    __tablename__ = "platforms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    igdb_platform_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)


class GameGenre(Base):
    """Link between a game and a genre."""

    __tablename__ = "game_genres"

    game_id: Mapped[int] = mapped_column(ForeignKey("games.id"), primary_key=True)
    genre_id: Mapped[int] = mapped_column(ForeignKey("genres.id"), primary_key=True)


class GameCompany(Base):
    """Link between a game and a company."""

    __tablename__ = "game_companies"

    game_id: Mapped[int] = mapped_column(ForeignKey("games.id"), primary_key=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id"), primary_key=True)
    role: Mapped[Optional[str]] = mapped_column(String(20))


class GamePlatform(Base):
    """Link between a game and a platform it shipped on."""

    __tablename__ = "game_platforms"

    game_id: Mapped[int] = mapped_column(ForeignKey("games.id"), primary_key=True)
    platform_id: Mapped[int] = mapped_column(ForeignKey("platforms.id"), primary_key=True)


class GameRelease(Base):
    """A dated release of a game on one platform in one region."""

    __tablename__ = "game_releases"
    __table_args__ = (
        UniqueConstraint("game_id", "platform_id", "region", name="uq_game_release"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    game_id: Mapped[int] = mapped_column(ForeignKey("games.id"), nullable=False, index=True)
    platform_id: Mapped[int] = mapped_column(ForeignKey("platforms.id"), nullable=False)
    region: Mapped[Optional[str]] = mapped_column(String(50))
    release_date: Mapped[Optional[str]] = mapped_column(String(10))  # ISO date
    category: Mapped[Optional[int]] = mapped_column(Integer)


class Completion(Base):
    """A user's finished-game entry."""

    __tablename__ = "completions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    game_id: Mapped[int] = mapped_column(ForeignKey("games.id"), nullable=False, index=True)

    completion_type: Mapped[str] = mapped_column(
        String(50), default=CompletionType.MAIN_STORY.value
    )
    platform_id: Mapped[Optional[int]] = mapped_column(ForeignKey("platforms.id"))
    completed_at: Mapped[Optional[str]] = mapped_column(String(10))  # ISO date
    final_playtime_hours: Mapped[Optional[float]] = mapped_column(Float)
    note: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[str] = mapped_column(String(32), default=utc_now)
    updated_at: Mapped[str] = mapped_column(String(32), default=utc_now, onupdate=utc_now)

    game: Mapped["Game"] = relationship("Game", back_populates="completions")

    def __repr__(self) -> str:
        return (
            f"<Completion(id={self.id}, user_id='{self.user_id}', "
            f"game_id={self.game_id}, type='{self.completion_type}')>"
        )
