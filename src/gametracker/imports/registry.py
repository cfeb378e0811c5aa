"""Review context registry.

Tracks which imports have an interactive review open and which prompt, if
any, is outstanding for each. Contexts live in the database so they are
shared between processes and survive restarts. Each prompt gets a fresh
token; a response is only applied while its token is still the current
one for the import.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, select

from ..db.sqlite import Database, get_db
from .models import ReviewContext

logger = logging.getLogger(__name__)

DEFAULT_TTL = 86400


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _expired(stamp: Optional[str], now: datetime) -> bool:
    if not stamp:
        return False
    return datetime.fromisoformat(stamp) <= now


class PromptRegistry:
    """Database-backed registry of review contexts."""

    def __init__(self, db: Optional[Database] = None, ttl_seconds: int = DEFAULT_TTL):
        """Initialize registry.

        Args:
            db: Database instance
            ttl_seconds: Lifetime of a context after it is opened
        """
        self.db = db or get_db()
        self.ttl_seconds = ttl_seconds

    def purge_expired(self) -> int:
        """Delete contexts past their TTL. Returns the number removed."""
        now = _now().isoformat()
        with self.db.get_session() as session:
            result = session.execute(
                delete(ReviewContext).where(ReviewContext.expires_at <= now)
            )
            removed = result.rowcount or 0
        if removed:
            logger.info("Purged %d expired review contexts", removed)
        return removed

    def open(self, import_id: int, user_id: str) -> ReviewContext:
        """Open (or refresh) the review context for an import."""
        self.purge_expired()
        expires_at = (_now() + timedelta(seconds=self.ttl_seconds)).isoformat()
        with self.db.get_session() as session:
            context = session.get(ReviewContext, import_id)
            if context is None:
                context = ReviewContext(
                    import_id=import_id, user_id=user_id, expires_at=expires_at
                )
                session.add(context)
            else:
                context.expires_at = expires_at
                context.prompt_token = None
                context.prompt_item_id = None
                context.prompt_kind = None
                context.prompt_expires_at = None
            session.flush()
            session.refresh(context)
            session.expunge(context)
            return context

    def get(self, import_id: int) -> Optional[ReviewContext]:
        """Get the live context for an import, if any.

        Expired contexts are filtered out but left in place; they are
        deleted the next time a context is opened.
        """
        stmt = select(ReviewContext).where(
            ReviewContext.import_id == import_id,
            ReviewContext.expires_at > _now().isoformat(),
        )
        with self.db.get_session() as session:
            context = session.execute(stmt).scalar_one_or_none()
            if context:
                session.expunge(context)
            return context

    def begin_prompt(
        self,
        import_id: int,
        item_id: int,
        kind: str,
        timeout: Optional[float] = None,
    ) -> str:
        """Record a new outstanding prompt and return its token.

        Any earlier prompt for the import is superseded.

        Raises:
            KeyError: No context is open for the import
        """
        token = uuid.uuid4().hex
        with self.db.get_session() as session:
            context = session.get(ReviewContext, import_id)
            if context is None or _expired(context.expires_at, _now()):
                raise KeyError(f"No open review context for import {import_id}")
            context.prompt_token = token
            context.prompt_item_id = item_id
            context.prompt_kind = kind
            context.prompt_expires_at = (
                (_now() + timedelta(seconds=timeout)).isoformat() if timeout else None
            )
        logger.debug("Import #%d: %s prompt for item %d", import_id, kind, item_id)
        return token

    def is_current(self, import_id: int, token: str) -> bool:
        """Check that ``token`` belongs to the prompt still outstanding."""
        context = self.get(import_id)
        if context is None or context.prompt_token != token:
            return False
        return not _expired(context.prompt_expires_at, _now())

    def awaiting_item_id(self, import_id: int) -> Optional[int]:
        """Item ID of the prompt outstanding or left unanswered, if any."""
        context = self.get(import_id)
        if context is None:
            return None
        return context.prompt_item_id

    def clear_prompt(self, import_id: int, answered: bool = True) -> None:
        """Invalidate the outstanding prompt, keeping the context open.

        An unanswered prompt keeps its item ID so status can report the row
        waiting for the user.
        """
        with self.db.get_session() as session:
            context = session.get(ReviewContext, import_id)
            if context:
                if answered:
                    context.prompt_item_id = None
                context.prompt_token = None
                context.prompt_kind = None
                context.prompt_expires_at = None

    def close(self, import_id: int) -> None:
        """Remove the context for an import."""
        with self.db.get_session() as session:
            session.execute(delete(ReviewContext).where(ReviewContext.import_id == import_id))
        logger.debug("Closed review context for import #%d", import_id)
