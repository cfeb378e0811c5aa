"""SQLAlchemy models for import sessions, their rows and review contexts."""

from typing import Optional

from sqlalchemy import (
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db.models import Base, utc_now
from .schemas import ImportStatus, ItemStatus


class ImportSession(Base):
    """One attempt to import a user's export file."""

    __tablename__ = "import_sessions"
    __table_args__ = (
        # At most one open session per user
        Index(
            "uq_import_sessions_open_user",
            "user_id",
            unique=True,
            sqlite_where=text("status IN ('active', 'paused')"),
            postgresql_where=text("status IN ('active', 'paused')"),
        ),
    )

    import_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default=ImportStatus.ACTIVE.value)
    current_index: Mapped[int] = mapped_column(Integer, default=0)
    total_count: Mapped[int] = mapped_column(Integer, default=0)
    source_filename: Mapped[Optional[str]] = mapped_column(String(500))

    created_at: Mapped[str] = mapped_column(String(32), default=utc_now)
    updated_at: Mapped[str] = mapped_column(String(32), default=utc_now, onupdate=utc_now)

    items: Mapped[list["ImportItem"]] = relationship(
        "ImportItem", back_populates="session", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<ImportSession(import_id={self.import_id}, user_id='{self.user_id}', "
            f"status='{self.status}')>"
        )


class ImportItem(Base):
    """One row of an export file and its resolution."""

    __tablename__ = "import_items"
    __table_args__ = (
        UniqueConstraint("import_id", "row_index", name="uq_import_item_row"),
        Index("ix_import_items_pending", "import_id", "status", "row_index"),
    )

    item_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    import_id: Mapped[int] = mapped_column(
        ForeignKey("import_sessions.import_id"), nullable=False
    )
    row_index: Mapped[int] = mapped_column(Integer, nullable=False)

    # Raw export fields
    game_title: Mapped[str] = mapped_column(String(500), nullable=False)
    platform_name: Mapped[Optional[str]] = mapped_column(String(200))
    region_name: Mapped[Optional[str]] = mapped_column(String(100))
    source_type: Mapped[Optional[str]] = mapped_column(String(100))
    time_text: Mapped[Optional[str]] = mapped_column(String(50))
    completed_at: Mapped[Optional[str]] = mapped_column(String(10))  # ISO date
    completion_type: Mapped[Optional[str]] = mapped_column(String(50))
    playtime_hours: Mapped[Optional[float]] = mapped_column(Float)

    # Resolution
    status: Mapped[str] = mapped_column(String(20), default=ItemStatus.PENDING.value)
    catalog_game_id: Mapped[Optional[int]] = mapped_column(ForeignKey("games.id"))
    completion_record_id: Mapped[Optional[int]] = mapped_column(ForeignKey("completions.id"))
    error_text: Mapped[Optional[str]] = mapped_column(Text)

    session: Mapped["ImportSession"] = relationship("ImportSession", back_populates="items")

    def __repr__(self) -> str:
        return (
            f"<ImportItem(item_id={self.item_id}, row_index={self.row_index}, "
            f"title='{self.game_title}', status='{self.status}')>"
        )


class ReviewContext(Base):
    """Interactive review context for an import, with its outstanding prompt."""

    __tablename__ = "import_review_contexts"

    import_id: Mapped[int] = mapped_column(
        ForeignKey("import_sessions.import_id"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)

    prompt_token: Mapped[Optional[str]] = mapped_column(String(64))
    prompt_item_id: Mapped[Optional[int]] = mapped_column(Integer)
    prompt_kind: Mapped[Optional[str]] = mapped_column(String(20))
    prompt_expires_at: Mapped[Optional[str]] = mapped_column(String(32))

    created_at: Mapped[str] = mapped_column(String(32), default=utc_now)
    expires_at: Mapped[str] = mapped_column(String(32), nullable=False)
