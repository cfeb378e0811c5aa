"""Interactive review of a completion import.

The ReviewController drives one import session row by row:

    LOADING_NEXT -> AUTO_RESOLVED -> APPLYING -> ADVANCING -> LOADING_NEXT
    LOADING_NEXT -> AWAITING_SELECTION -> AWAITING_CONFIRMATION -> APPLYING
    LOADING_NEXT -> DRAINED (no pending rows left; session COMPLETE)

Rows are always taken in ascending row order. When a prompt goes
unanswered the row stays PENDING and the run is suspended until the import
is resumed. The controller talks to the user only through a PromptChannel,
so it runs the same under the terminal UI and in tests.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, Optional, Union

from ..db.schemas import CompletionCreate, CompletionType, CompletionUpdate
from ..db.sqlite import Database
from .catalog import CatalogImportAdapter
from .errors import ExternalProviderError, NoMatchError
from .manager import ImportStore
from .models import ImportItem, ImportSession
from .registry import PromptRegistry
from .resolver import Candidate, MatchKind, MatchResolver
from .schemas import ImportItemResponse, ImportItemUpdate, ImportStatus, ItemStatus

logger = logging.getLogger(__name__)

DEFAULT_PROMPT_TIMEOUT = 300.0

PLAYTIME_TOLERANCE = 1.0  # hours


class ReviewState(str, Enum):
    """States of the review state machine."""

    LOADING_NEXT = "loading_next"
    AUTO_RESOLVED = "auto_resolved"
    AWAITING_SELECTION = "awaiting_selection"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    APPLYING = "applying"
    ADVANCING = "advancing"
    DRAINED = "drained"


class RunOutcome(str, Enum):
    """Why a review run returned."""

    DRAINED = "drained"  # every row is terminal, session COMPLETE
    SUSPENDED = "suspended"  # a prompt went unanswered
    PAUSED = "paused"
    CANCELED = "canceled"


# ============================================================================
# Prompts and Responses
# ============================================================================


class ResponseKind(str, Enum):
    """What the user answered."""

    PICK = "pick"
    CONFIRM = "confirm"
    SKIP = "skip"
    SEARCH = "search"
    PAUSE = "pause"


@dataclass
class PromptResponse:
    """A user's answer to a selection or confirmation prompt."""

    kind: ResponseKind
    index: Optional[int] = None  # 1-based position for PICK
    query: Optional[str] = None  # for SEARCH
    completion_type: Optional[CompletionType] = None
    completed_at: Optional[date] = None
    playtime_hours: Optional[float] = None
    token: Optional[str] = None  # prompt this answers, when known

    @classmethod
    def pick(cls, index: int, token: Optional[str] = None) -> "PromptResponse":
        return cls(ResponseKind.PICK, index=index, token=token)

    @classmethod
    def confirm(
        cls,
        completion_type: Optional[CompletionType] = None,
        completed_at: Optional[date] = None,
        playtime_hours: Optional[float] = None,
        token: Optional[str] = None,
    ) -> "PromptResponse":
        return cls(
            ResponseKind.CONFIRM,
            completion_type=completion_type,
            completed_at=completed_at,
            playtime_hours=playtime_hours,
            token=token,
        )

    @classmethod
    def skip(cls, token: Optional[str] = None) -> "PromptResponse":
        return cls(ResponseKind.SKIP, token=token)

    @classmethod
    def search(cls, query: str, token: Optional[str] = None) -> "PromptResponse":
        return cls(ResponseKind.SEARCH, query=query, token=token)

    @classmethod
    def pause(cls, token: Optional[str] = None) -> "PromptResponse":
        return cls(ResponseKind.PAUSE, token=token)


@dataclass
class SelectionPrompt:
    """Ask the user to pick one candidate, search again or skip."""

    import_id: int
    item: ImportItemResponse
    candidates: list[Candidate]
    query: str
    message: Optional[str] = None
    token: Optional[str] = None


@dataclass
class ConfirmationPrompt:
    """Ask the user to confirm the completion details for a chosen game."""

    import_id: int
    item: ImportItemResponse
    candidate: Candidate
    completion_type: CompletionType
    completed_at: Optional[date]
    playtime_hours: Optional[float]
    token: Optional[str] = None


@dataclass
class RowOutcome:
    """Terminal result of one row, reported back to the user."""

    row_index: int
    game_title: str
    status: ItemStatus
    catalog_title: Optional[str] = None
    message: Optional[str] = None


class PromptChannel(ABC):
    """Conversation with the user who owns an import."""

    @abstractmethod
    def ask_selection(
        self, prompt: SelectionPrompt, timeout: float
    ) -> Optional[PromptResponse]:
        """Present candidates. Returns None when no answer arrives in time."""

    @abstractmethod
    def ask_confirmation(
        self, prompt: ConfirmationPrompt, timeout: float
    ) -> Optional[PromptResponse]:
        """Present completion details. Returns None when no answer arrives in time."""

    @abstractmethod
    def report_row(self, outcome: RowOutcome) -> None:
        """Tell the user how a row ended."""

    @abstractmethod
    def notify(self, message: str) -> None:
        """Show an informational message."""


@dataclass
class ReviewRunResult:
    """Summary of one controller run."""

    import_id: int
    outcome: RunOutcome
    rows: list[RowOutcome] = field(default_factory=list)

    def count(self, status: ItemStatus) -> int:
        return sum(1 for row in self.rows if row.status == status)


# ============================================================================
# Completion Comparison
# ============================================================================


def build_completion_update(
    existing,
    completion_type: CompletionType,
    completed_at: Optional[date],
    playtime_hours: Optional[float],
) -> Optional[CompletionUpdate]:
    """Compare a row with the user's existing record for the same game.

    Returns:
        The fields that differ, or None when the record already matches
    """
    changes = {}
    if existing.completion_type != completion_type.value:
        changes["completion_type"] = completion_type

    if playtime_hours is not None and (
        existing.final_playtime_hours is None
        or abs(existing.final_playtime_hours - playtime_hours) >= PLAYTIME_TOLERANCE
    ):
        changes["final_playtime_hours"] = playtime_hours

    if completed_at is not None and existing.completed_at != completed_at.isoformat():
        changes["completed_at"] = completed_at

    if not changes:
        return None
    return CompletionUpdate(**changes)


# ============================================================================
# Controller
# ============================================================================


class ReviewController:
    """Drives an import session through resolution and review."""

    def __init__(
        self,
        store: ImportStore,
        resolver: MatchResolver,
        adapter: CatalogImportAdapter,
        db: Database,
        channel: PromptChannel,
        registry: PromptRegistry,
        prompt_timeout: float = DEFAULT_PROMPT_TIMEOUT,
        no_match_policy: str = "error",
    ):
        self.store = store
        self.resolver = resolver
        self.adapter = adapter
        self.db = db
        self.channel = channel
        self.registry = registry
        self.prompt_timeout = prompt_timeout
        self.no_match_policy = no_match_policy
        self.state = ReviewState.LOADING_NEXT

    def _enter(self, state: ReviewState, import_id: int) -> None:
        logger.debug("Import #%d: %s -> %s", import_id, self.state.value, state.value)
        self.state = state

    def run(self, import_id: int) -> ReviewRunResult:
        """Review pending rows until none are left or the run has to stop.

        Args:
            import_id: Session to drive; it must be ACTIVE

        Returns:
            ReviewRunResult with the outcome and the rows finished in this run

        Raises:
            KeyError: Unknown import id
        """
        session = self.store.get_session(import_id)
        if session is None:
            raise KeyError(f"Import session not found: {import_id}")

        result = ReviewRunResult(import_id, self._stopped_outcome(session))
        if session.status != ImportStatus.ACTIVE.value:
            return result

        self.registry.open(import_id, session.user_id)
        self.state = ReviewState.LOADING_NEXT

        while True:
            # Pause and cancel take effect before the next row is loaded
            session = self.store.get_session(import_id)
            if session.status != ImportStatus.ACTIVE.value:
                result.outcome = self._stopped_outcome(session)
                if result.outcome == RunOutcome.CANCELED:
                    self.registry.close(import_id)
                return result

            item = self.store.next_pending_item(import_id)
            if item is None:
                self._enter(ReviewState.DRAINED, import_id)
                self.store.set_status(import_id, ImportStatus.COMPLETE)
                self.registry.close(import_id)
                self.channel.notify(f"Import #{import_id} is complete.")
                result.outcome = RunOutcome.DRAINED
                return result

            step = self._review_item(session, item)
            if isinstance(step, RunOutcome):
                result.outcome = step
                if step == RunOutcome.CANCELED:
                    self.registry.close(import_id)
                return result

            result.rows.append(step)
            self.channel.report_row(step)

            self._enter(ReviewState.ADVANCING, import_id)
            self.store.update_current_index(import_id, item.row_index + 1)
            self._enter(ReviewState.LOADING_NEXT, import_id)

    def _stopped_outcome(self, session: Optional[ImportSession]) -> RunOutcome:
        if session is None or session.status == ImportStatus.CANCELED.value:
            return RunOutcome.CANCELED
        if session.status == ImportStatus.PAUSED.value:
            return RunOutcome.PAUSED
        if session.status == ImportStatus.COMPLETE.value:
            return RunOutcome.DRAINED
        return RunOutcome.SUSPENDED

    # -------------------------------------------------------------------------
    # One Row
    # -------------------------------------------------------------------------

    def _review_item(
        self, session: ImportSession, item: ImportItem
    ) -> Union[RowOutcome, RunOutcome]:
        """Take one row to a terminal status, or stop the run."""
        try:
            return self._resolve_and_review(session, item)
        except Exception as e:
            logger.exception(
                "Import #%d row %d (%s) could not be reviewed",
                session.import_id,
                item.row_index,
                item.game_title,
            )
            self.registry.clear_prompt(session.import_id)
            return self._fail(item, str(e) or e.__class__.__name__)

    def _resolve_and_review(
        self, session: ImportSession, item: ImportItem
    ) -> Union[RowOutcome, RunOutcome]:
        import_id = session.import_id
        row = ImportItemResponse.model_validate(item)

        try:
            match = self.resolver.resolve(item.game_title)
        except ExternalProviderError as e:
            return self._fail(item, str(e))

        if match.kind == MatchKind.AUTO:
            self._enter(ReviewState.AUTO_RESOLVED, import_id)
            return self._applying(session, item, match.candidates[0])

        if match.kind == MatchKind.NONE and self.no_match_policy != "prompt":
            return self._fail(item, str(NoMatchError(item.game_title)))

        candidates = match.candidates
        query = match.query
        candidate = candidates[0] if match.kind == MatchKind.SINGLE_EXTERNAL else None
        message = "No match found. Search by another title or skip." if not candidates else None

        while True:
            if candidate is None:
                self._enter(ReviewState.AWAITING_SELECTION, import_id)
                prompt = SelectionPrompt(import_id, row, candidates, query, message)
                response = self._ask(
                    session, item, "selection", self.channel.ask_selection, prompt
                )
                if isinstance(response, RunOutcome):
                    return response
                if response.kind == ResponseKind.SKIP:
                    return self._skip(item, "Skipped by user")
                candidate, candidates, query, message = self._handle_selection(
                    response, candidates, query
                )
                continue

            self._enter(ReviewState.AWAITING_CONFIRMATION, import_id)
            prompt = ConfirmationPrompt(
                import_id,
                row,
                candidate,
                completion_type=row.completion_type or CompletionType.MAIN_STORY,
                completed_at=row.completed_at,
                playtime_hours=row.playtime_hours,
            )
            response = self._ask(
                session, item, "confirmation", self.channel.ask_confirmation, prompt
            )
            if isinstance(response, RunOutcome):
                return response
            if response.kind == ResponseKind.SKIP:
                return self._skip(item, "Skipped by user")
            if response.kind == ResponseKind.CONFIRM:
                return self._applying(session, item, candidate, response)

            # Anything else goes back to choosing a game
            candidate, candidates, query, message = self._handle_selection(
                response, candidates, query
            )

    def _handle_selection(
        self, response: PromptResponse, candidates: list[Candidate], query: str
    ) -> tuple[Optional[Candidate], list[Candidate], str, Optional[str]]:
        """Apply a pick or search answer. Returns (candidate, candidates, query, message)."""
        if response.kind == ResponseKind.SEARCH:
            new_query = (response.query or "").strip() or query
            try:
                found = self.resolver.search_local(new_query) or self.resolver.search_external(
                    new_query
                )
            except ExternalProviderError as e:
                return None, candidates, query, str(e)
            message = None if found else f'No results for "{new_query}".'
            return None, found, new_query, message

        if response.kind == ResponseKind.PICK:
            index = response.index or 0
            if index == 0:
                # Back to the list
                return None, candidates, query, None
            if 1 <= index <= len(candidates):
                return candidates[index - 1], candidates, query, None
            return None, candidates, query, f"Choose a number between 1 and {len(candidates)}."

        return None, candidates, query, "Pick a game first."

    def _ask(
        self,
        session: ImportSession,
        item: ImportItem,
        kind: str,
        ask: Callable,
        prompt,
    ) -> Union[PromptResponse, RunOutcome]:
        """Issue a prompt and validate the answer against the live session."""
        import_id = session.import_id
        token = self.registry.begin_prompt(import_id, item.item_id, kind, self.prompt_timeout)
        prompt.token = token

        response = ask(prompt, self.prompt_timeout)

        if response is None:
            self.registry.clear_prompt(import_id, answered=False)
            logger.info("Import #%d row %d: no answer, left pending", import_id, item.row_index)
            self.channel.notify(
                f'No answer for "{item.game_title}". The row stays pending; '
                "resume the import to continue."
            )
            return RunOutcome.SUSPENDED

        current = self.store.get_session(import_id)
        stale = (
            current is None
            or current.status != ImportStatus.ACTIVE.value
            or (response.token is not None and response.token != token)
            or not self.registry.is_current(import_id, token)
        )
        if stale:
            logger.info(
                "Import #%d row %d: ignoring response to a stale %s prompt",
                import_id,
                item.row_index,
                kind,
            )
            return self._stopped_outcome(current)

        self.registry.clear_prompt(import_id)

        if response.kind == ResponseKind.PAUSE:
            self.store.set_status(import_id, ImportStatus.PAUSED)
            self.channel.notify(f"Import #{import_id} paused.")
            return RunOutcome.PAUSED

        return response

    # -------------------------------------------------------------------------
    # Committing
    # -------------------------------------------------------------------------

    def _applying(
        self,
        session: ImportSession,
        item: ImportItem,
        candidate: Candidate,
        overrides: Optional[PromptResponse] = None,
    ) -> RowOutcome:
        self._enter(ReviewState.APPLYING, session.import_id)
        try:
            return self._apply(session, item, candidate, overrides)
        except Exception as e:
            logger.exception(
                "Import #%d row %d (%s) failed", session.import_id, item.row_index, item.game_title
            )
            return self._fail(item, str(e) or e.__class__.__name__)

    def _apply(
        self,
        session: ImportSession,
        item: ImportItem,
        candidate: Candidate,
        overrides: Optional[PromptResponse],
    ) -> RowOutcome:
        if candidate.is_new:
            imported = self.adapter.import_game(candidate.igdb_id)
            game_id, catalog_title = imported.game_id, imported.title
            if imported.partial:
                logger.warning(
                    "Game #%d imported without some metadata: %s",
                    game_id,
                    "; ".join(imported.secondary_errors),
                )
        else:
            game_id, catalog_title = candidate.game_id, candidate.title

        row = ImportItemResponse.model_validate(item)
        completion_type = row.completion_type or CompletionType.MAIN_STORY
        completed_at = row.completed_at
        playtime = row.playtime_hours
        if overrides:
            completion_type = overrides.completion_type or completion_type
            completed_at = overrides.completed_at or completed_at
            if overrides.playtime_hours is not None:
                playtime = overrides.playtime_hours

        existing = self.db.get_completion_for_game(session.user_id, game_id)
        if existing:
            updates = build_completion_update(existing, completion_type, completed_at, playtime)
            if updates is None:
                self.store.update_item(
                    item.item_id,
                    ImportItemUpdate(
                        status=ItemStatus.SKIPPED,
                        catalog_game_id=game_id,
                        completion_record_id=existing.id,
                    ),
                )
                return RowOutcome(
                    item.row_index,
                    item.game_title,
                    ItemStatus.SKIPPED,
                    catalog_title,
                    "Already recorded",
                )
            self.db.update_completion(existing.id, updates)
            status, record_id = ItemStatus.UPDATED, existing.id
        else:
            record = self.db.create_completion(
                CompletionCreate(
                    user_id=session.user_id,
                    game_id=game_id,
                    completion_type=completion_type,
                    platform_id=self._resolve_platform(game_id, item.platform_name),
                    completed_at=completed_at,
                    final_playtime_hours=playtime,
                )
            )
            status, record_id = ItemStatus.IMPORTED, record.id

        self.store.update_item(
            item.item_id,
            ImportItemUpdate(
                status=status,
                catalog_game_id=game_id,
                completion_record_id=record_id,
            ),
        )
        return RowOutcome(item.row_index, item.game_title, status, catalog_title)

    def _resolve_platform(self, game_id: int, platform_name: Optional[str]) -> Optional[int]:
        """Match the export's platform name against the game's platforms."""
        if not platform_name:
            return None
        wanted = platform_name.strip().lower()
        for platform in self.db.get_platforms_for_game(game_id):
            if platform.name.lower() == wanted:
                return platform.id
        logger.debug("Platform %r not known for game #%d", platform_name, game_id)
        return None

    def _skip(self, item: ImportItem, message: str) -> RowOutcome:
        self.store.update_item(item.item_id, ImportItemUpdate(status=ItemStatus.SKIPPED))
        return RowOutcome(item.row_index, item.game_title, ItemStatus.SKIPPED, message=message)

    def _fail(self, item: ImportItem, message: str) -> RowOutcome:
        self.store.update_item(
            item.item_id, ImportItemUpdate(status=ItemStatus.ERROR, error_text=message)
        )
        logger.warning("Row %d (%s) failed: %s", item.row_index, item.game_title, message)
        return RowOutcome(item.row_index, item.game_title, ItemStatus.ERROR, message=message)
