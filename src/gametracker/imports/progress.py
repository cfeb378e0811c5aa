"""Progress summaries for import sessions. Read-only."""

from typing import Optional

from .errors import NoActiveSessionError
from .manager import ImportStore
from .registry import PromptRegistry
from .schemas import ImportProgress, ImportStatus, ItemError, ItemStatus

MAX_ERRORS_SHOWN = 10


class ProgressAggregator:
    """Builds ImportProgress summaries without mutating anything."""

    def __init__(self, store: ImportStore, registry: Optional[PromptRegistry] = None):
        self.store = store
        self.registry = registry

    def summarize(self, import_id: int) -> ImportProgress:
        """Summarize one session.

        Raises:
            KeyError: Unknown import id
        """
        session = self.store.get_session(import_id)
        if session is None:
            raise KeyError(f"Import session not found: {import_id}")

        counts = self.store.count_by_status(import_id)
        errors = [
            ItemError(
                row_index=item.row_index,
                game_title=item.game_title,
                error_text=item.error_text,
            )
            for item in self.store.list_items(
                import_id, status=ItemStatus.ERROR, limit=MAX_ERRORS_SHOWN
            )
        ]

        awaiting_row_index = None
        if self.registry is not None:
            item_id = self.registry.awaiting_item_id(import_id)
            item = self.store.get_item(item_id) if item_id else None
            if item and item.status == ItemStatus.PENDING.value:
                awaiting_row_index = item.row_index

        return ImportProgress(
            import_id=session.import_id,
            user_id=session.user_id,
            status=ImportStatus(session.status),
            source_filename=session.source_filename,
            total_count=session.total_count,
            counts=counts,
            current_index=session.current_index,
            awaiting_row_index=awaiting_row_index,
            errors=errors,
        )

    def summarize_for_user(self, user_id: str) -> ImportProgress:
        """Summarize the user's open session.

        Raises:
            NoActiveSessionError: The user has no active or paused import
        """
        session = self.store.get_active_session(user_id)
        if session is None:
            raise NoActiveSessionError(user_id)
        return self.summarize(session.import_id)
