"""Import command handlers.

Maps each Action of the import command surface to a handler through an
explicit dispatch table. Handlers return a CommandResult and never touch
the terminal; rendering is left to the caller.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..api.igdb import IGDBClient
from ..config import Config
from ..db.sqlite import Database
from .catalog import CatalogImportAdapter
from .errors import NoActiveSessionError
from .manager import ImportStore
from .models import ImportSession
from .parser import parse_export
from .progress import ProgressAggregator
from .registry import PromptRegistry
from .resolver import MatchResolver
from .review import PromptChannel, ReviewController, ReviewRunResult, RunOutcome
from .schemas import ImportProgress, ImportStatus

logger = logging.getLogger(__name__)


class Action(str, Enum):
    """Import commands a user can issue."""

    START = "start"
    STATUS = "status"
    PAUSE = "pause"
    RESUME = "resume"
    CANCEL = "cancel"


@dataclass
class CommandResult:
    """Outcome of an import command."""

    action: Action
    message: str
    session: Optional[ImportSession] = None
    progress: Optional[ImportProgress] = None
    review: Optional[ReviewRunResult] = None


RUN_MESSAGES = {
    RunOutcome.DRAINED: "Import #{id} finished.",
    RunOutcome.SUSPENDED: "Import #{id} is waiting for you. Run resume to continue.",
    RunOutcome.PAUSED: "Import #{id} paused.",
    RunOutcome.CANCELED: "Import #{id} was canceled.",
}


class ImportCommands:
    """Handlers for the import command surface."""

    def __init__(
        self,
        store: ImportStore,
        controller: ReviewController,
        registry: PromptRegistry,
        aggregator: Optional[ProgressAggregator] = None,
    ):
        self.store = store
        self.controller = controller
        self.registry = registry
        self.aggregator = aggregator or ProgressAggregator(store, registry)
        self._handlers: dict[Action, Callable[..., CommandResult]] = {
            Action.START: self.start,
            Action.STATUS: self.status,
            Action.PAUSE: self.pause,
            Action.RESUME: self.resume,
            Action.CANCEL: self.cancel,
        }

    def dispatch(self, action: Action, user_id: str, **kwargs) -> CommandResult:
        """Run the handler registered for ``action``."""
        handler = self._handlers[Action(action)]
        logger.debug("Dispatching %s for %s", action, user_id)
        return handler(user_id, **kwargs)

    def _require_open(self, user_id: str) -> ImportSession:
        session = self.store.get_active_session(user_id)
        if session is None:
            raise NoActiveSessionError(user_id)
        return session

    def _run(self, action: Action, session: ImportSession, prefix: str = "") -> CommandResult:
        review = self.controller.run(session.import_id)
        message = prefix + RUN_MESSAGES[review.outcome].format(id=session.import_id)
        return CommandResult(
            action,
            message,
            session=self.store.get_session(session.import_id),
            progress=self.aggregator.summarize(session.import_id),
            review=review,
        )

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    def start(
        self,
        user_id: str,
        data: bytes,
        filename: Optional[str] = None,
        review: bool = True,
    ) -> CommandResult:
        """Parse an export, create the session and its rows, then review.

        Raises:
            ParseError: The export has no usable rows (no session is created)
            ConflictError: The user already has an open import
        """
        rows = parse_export(data, filename)
        session = self.store.create_session(user_id, len(rows), filename)
        try:
            self.store.bulk_insert_items(session.import_id, rows)
        except Exception:
            self.store.set_status(session.import_id, ImportStatus.CANCELED)
            raise

        prefix = f"Started import #{session.import_id} with {len(rows)} rows. "
        if not review:
            return CommandResult(
                Action.START,
                prefix.strip(),
                session=session,
                progress=self.aggregator.summarize(session.import_id),
            )
        return self._run(Action.START, session, prefix)

    def status(self, user_id: str) -> CommandResult:
        """Summarize the user's open import."""
        progress = self.aggregator.summarize_for_user(user_id)
        session = self.store.get_session(progress.import_id)
        message = (
            f"Import #{progress.import_id} is {progress.status.value}: "
            f"{progress.processed}/{progress.total_count} rows processed."
        )
        return CommandResult(Action.STATUS, message, session=session, progress=progress)

    def pause(self, user_id: str) -> CommandResult:
        """Pause the user's import before its next row."""
        session = self._require_open(user_id)
        if session.status == ImportStatus.PAUSED.value:
            return CommandResult(
                Action.PAUSE, f"Import #{session.import_id} is already paused.", session=session
            )
        session = self.store.set_status(session.import_id, ImportStatus.PAUSED)
        return CommandResult(
            Action.PAUSE,
            f"Import #{session.import_id} paused.",
            session=session,
            progress=self.aggregator.summarize(session.import_id),
        )

    def resume(self, user_id: str) -> CommandResult:
        """Reactivate the user's import and continue at its first pending row."""
        session = self._require_open(user_id)
        session = self.store.set_status(session.import_id, ImportStatus.ACTIVE)
        return self._run(Action.RESUME, session, f"Resuming import #{session.import_id}. ")

    def cancel(self, user_id: str) -> CommandResult:
        """Cancel the user's import. Pending rows stay pending."""
        session = self._require_open(user_id)
        session = self.store.set_status(session.import_id, ImportStatus.CANCELED)
        self.registry.close(session.import_id)
        return CommandResult(
            Action.CANCEL,
            f"Import #{session.import_id} canceled.",
            session=session,
            progress=self.aggregator.summarize(session.import_id),
        )


def build_import_commands(
    config: Config,
    db: Database,
    channel: PromptChannel,
    igdb: Optional[IGDBClient] = None,
) -> ImportCommands:
    """Wire the pipeline components for one invoking channel."""
    if igdb is None and config.has_igdb_config():
        igdb = IGDBClient(
            config.igdb_client_id, config.igdb_client_secret, timeout=config.request_timeout
        )

    store = ImportStore(db)
    registry = PromptRegistry(db, ttl_seconds=config.context_ttl)
    controller = ReviewController(
        store=store,
        resolver=MatchResolver(db, igdb, page_size=config.page_size),
        adapter=CatalogImportAdapter(db, igdb),
        db=db,
        channel=channel,
        registry=registry,
        prompt_timeout=config.prompt_timeout,
        no_match_policy=config.no_match_policy,
    )
    return ImportCommands(store, controller, registry)
