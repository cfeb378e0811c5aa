"""Persistence for import sessions and their rows.

Every mutation here is a single short transaction. Nothing spans a whole
import, so an interrupted run loses at most the row it was working on.
"""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from ..db.sqlite import Database, get_db
from .errors import ConflictError, InvalidTransitionError
from .models import ImportItem, ImportSession
from .schemas import (
    ALLOWED_TRANSITIONS,
    OPEN_STATUSES,
    ExportRow,
    ImportItemUpdate,
    ImportStatus,
    ItemStatus,
)

logger = logging.getLogger(__name__)


class ImportStore:
    """Manages import session headers and import items."""

    def __init__(self, db: Optional[Database] = None):
        """Initialize import store.

        Args:
            db: Database instance
        """
        self.db = db or get_db()

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def create_session(
        self,
        user_id: str,
        total_count: int,
        source_filename: Optional[str] = None,
    ) -> ImportSession:
        """Create an ACTIVE session for a user.

        Args:
            user_id: Owner of the import
            total_count: Number of rows that will be inserted
            source_filename: Name of the uploaded export

        Returns:
            Created session

        Raises:
            ConflictError: The user already has an open session
        """
        existing = self.get_active_session(user_id)
        if existing:
            raise ConflictError(user_id, existing.import_id)

        try:
            with self.db.get_session() as session:
                import_session = ImportSession(
                    user_id=user_id,
                    status=ImportStatus.ACTIVE.value,
                    current_index=0,
                    total_count=total_count,
                    source_filename=source_filename,
                )
                session.add(import_session)
                session.flush()
                session.refresh(import_session)
                session.expunge(import_session)
        except IntegrityError:
            # Lost a race with a concurrent start for the same user
            winner = self.get_active_session(user_id)
            raise ConflictError(user_id, winner.import_id if winner else None)

        logger.info(
            "Created import #%d for %s (%d rows)",
            import_session.import_id,
            user_id,
            total_count,
        )
        return import_session

    def get_session(self, import_id: int) -> Optional[ImportSession]:
        """Get a session by ID."""
        with self.db.get_session() as session:
            import_session = session.get(ImportSession, import_id)
            if import_session:
                session.expunge(import_session)
            return import_session

    def get_active_session(self, user_id: str) -> Optional[ImportSession]:
        """Get the user's ACTIVE or PAUSED session, newest first.

        Args:
            user_id: Owner of the import

        Returns:
            Session or None
        """
        with self.db.get_session() as session:
            stmt = (
                select(ImportSession)
                .where(
                    ImportSession.user_id == user_id,
                    ImportSession.status.in_([s.value for s in OPEN_STATUSES]),
                )
                .order_by(ImportSession.created_at.desc(), ImportSession.import_id.desc())
                .limit(1)
            )
            import_session = session.execute(stmt).scalar_one_or_none()
            if import_session:
                session.expunge(import_session)
            return import_session

    def list_sessions(self, user_id: str) -> list[ImportSession]:
        """List all of a user's sessions, newest first."""
        with self.db.get_session() as session:
            stmt = (
                select(ImportSession)
                .where(ImportSession.user_id == user_id)
                .order_by(ImportSession.import_id.desc())
            )
            sessions = list(session.execute(stmt).scalars().all())
            for s in sessions:
                session.expunge(s)
            return sessions

    def set_status(self, import_id: int, status: ImportStatus) -> ImportSession:
        """Move a session to a new status.

        Setting the current status again is a no-op.

        Raises:
            KeyError: Unknown import id
            InvalidTransitionError: The change is not allowed
        """
        with self.db.get_session() as session:
            import_session = session.get(ImportSession, import_id)
            if import_session is None:
                raise KeyError(f"Import session not found: {import_id}")

            current = ImportStatus(import_session.status)
            if current != status:
                if status not in ALLOWED_TRANSITIONS[current]:
                    raise InvalidTransitionError(import_id, current.value, status.value)
                import_session.status = status.value
                session.flush()
                logger.info("Import #%d: %s -> %s", import_id, current.value, status.value)

            session.refresh(import_session)
            session.expunge(import_session)
            return import_session

    def update_current_index(self, import_id: int, index: int) -> None:
        """Move the advisory cursor."""
        with self.db.get_session() as session:
            import_session = session.get(ImportSession, import_id)
            if import_session:
                import_session.current_index = index

    # -------------------------------------------------------------------------
    # Items
    # -------------------------------------------------------------------------

    def bulk_insert_items(self, import_id: int, rows: list[ExportRow]) -> int:
        """Insert every parsed row as a PENDING item.

        Items are inserted once per session; a second call for a session that
        already has items inserts nothing.

        Returns:
            Number of items inserted
        """
        with self.db.get_session() as session:
            existing = session.execute(
                select(func.count())
                .select_from(ImportItem)
                .where(ImportItem.import_id == import_id)
            ).scalar_one()
            if existing:
                logger.warning(
                    "Import #%d already has %d items, not inserting again",
                    import_id,
                    existing,
                )
                return 0

            for row in rows:
                session.add(
                    ImportItem(
                        import_id=import_id,
                        row_index=row.row_index,
                        game_title=row.game_title,
                        platform_name=row.platform_name,
                        region_name=row.region_name,
                        source_type=row.source_type,
                        time_text=row.time_text,
                        completed_at=row.completed_at.isoformat() if row.completed_at else None,
                        completion_type=(
                            row.completion_type.value if row.completion_type else None
                        ),
                        playtime_hours=row.playtime_hours,
                        status=ItemStatus.PENDING.value,
                    )
                )
            return len(rows)

    def next_pending_item(self, import_id: int) -> Optional[ImportItem]:
        """Get the PENDING item with the lowest row index."""
        with self.db.get_session() as session:
            stmt = (
                select(ImportItem)
                .where(
                    ImportItem.import_id == import_id,
                    ImportItem.status == ItemStatus.PENDING.value,
                )
                .order_by(ImportItem.row_index.asc())
                .limit(1)
            )
            item = session.execute(stmt).scalar_one_or_none()
            if item:
                session.expunge(item)
            return item

    def get_item(self, item_id: int) -> Optional[ImportItem]:
        """Get an item by ID."""
        with self.db.get_session() as session:
            item = session.get(ImportItem, item_id)
            if item:
                session.expunge(item)
            return item

    def list_items(
        self,
        import_id: int,
        status: Optional[ItemStatus] = None,
        limit: Optional[int] = None,
    ) -> list[ImportItem]:
        """List a session's items in row order.

        Args:
            import_id: Session ID
            status: Only items with this status
            limit: Maximum number of items

        Returns:
            List of items
        """
        with self.db.get_session() as session:
            stmt = (
                select(ImportItem)
                .where(ImportItem.import_id == import_id)
                .order_by(ImportItem.row_index)
            )
            if status:
                stmt = stmt.where(ImportItem.status == status.value)
            if limit:
                stmt = stmt.limit(limit)

            items = list(session.execute(stmt).scalars().all())
            for item in items:
                session.expunge(item)
            return items

    def update_item(self, item_id: int, updates: ImportItemUpdate) -> Optional[ImportItem]:
        """Apply the set fields of ``updates`` to an item."""
        with self.db.get_session() as session:
            item = session.get(ImportItem, item_id)
            if not item:
                return None

            for field, value in updates.model_dump(exclude_unset=True).items():
                if field == "status" and value is not None:
                    value = ItemStatus(value).value
                setattr(item, field, value)

            session.flush()
            session.expunge(item)
            return item

    def count_by_status(self, import_id: int) -> dict[ItemStatus, int]:
        """Count a session's items per status. Every status is present."""
        counts = {status: 0 for status in ItemStatus}
        with self.db.get_session() as session:
            stmt = (
                select(ImportItem.status, func.count(ImportItem.item_id))
                .where(ImportItem.import_id == import_id)
                .group_by(ImportItem.status)
            )
            for status, count in session.execute(stmt).all():
                counts[ItemStatus(status)] = count
        return counts
