"""Tests for import session and item persistence."""

from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from gametracker.db.schemas import CompletionType
from gametracker.imports.errors import ConflictError, InvalidTransitionError
from gametracker.imports.manager import ImportStore
from gametracker.imports.models import ImportSession
from gametracker.imports.parser import parse_export
from gametracker.imports.schemas import ExportRow, ImportItemUpdate, ImportStatus, ItemStatus


@pytest.fixture
def rows(three_row_export: bytes) -> list[ExportRow]:
    return parse_export(three_row_export, "export.csv")


@pytest.fixture
def loaded(store: ImportStore, rows: list[ExportRow]) -> ImportSession:
    """A session with the three-row export inserted."""
    session = store.create_session("alice", len(rows), "export.csv")
    store.bulk_insert_items(session.import_id, rows)
    return session


class TestSessions:
    """Tests for session headers."""

    def test_create_session(self, store: ImportStore):
        """Test a new session starts ACTIVE at index 0."""
        session = store.create_session("alice", 3, "export.csv")

        assert session.import_id is not None
        assert session.user_id == "alice"
        assert session.status == ImportStatus.ACTIVE.value
        assert session.current_index == 0
        assert session.total_count == 3
        assert session.source_filename == "export.csv"

    def test_second_open_session_conflicts(self, store: ImportStore):
        """Test a user cannot open two sessions."""
        first = store.create_session("alice", 3)

        with pytest.raises(ConflictError) as exc_info:
            store.create_session("alice", 5)

        assert exc_info.value.existing_import_id == first.import_id
        assert len(store.list_sessions("alice")) == 1

    def test_paused_session_also_conflicts(self, store: ImportStore):
        """Test a paused session still blocks a new one."""
        first = store.create_session("alice", 3)
        store.set_status(first.import_id, ImportStatus.PAUSED)

        with pytest.raises(ConflictError):
            store.create_session("alice", 1)

    def test_other_users_are_independent(self, store: ImportStore):
        """Test the open-session limit is per user."""
        store.create_session("alice", 3)
        other = store.create_session("bob", 2)

        assert other.user_id == "bob"

    def test_new_session_after_terminal(self, store: ImportStore):
        """Test a finished session does not block a new one."""
        first = store.create_session("alice", 3)
        store.set_status(first.import_id, ImportStatus.CANCELED)

        second = store.create_session("alice", 2)

        assert second.import_id != first.import_id
        assert store.get_active_session("alice").import_id == second.import_id

    def test_unique_index_backs_the_check(self, store: ImportStore, db):
        """Test the database rejects a second open session written directly."""
        store.create_session("alice", 3)

        with pytest.raises(IntegrityError):
            with db.get_session() as session:
                session.add(ImportSession(user_id="alice", status="paused", total_count=1))

    def test_race_surfaces_as_conflict(self, store: ImportStore, monkeypatch):
        """Test losing the check-then-insert race raises ConflictError."""
        store.create_session("alice", 3)
        real_lookup = store.get_active_session
        calls = []

        def stale_lookup(user_id):
            calls.append(user_id)
            # The first lookup misses the concurrent session
            return None if len(calls) == 1 else real_lookup(user_id)

        monkeypatch.setattr(store, "get_active_session", stale_lookup)

        with pytest.raises(ConflictError):
            store.create_session("alice", 1)

    def test_get_active_session_none(self, store: ImportStore):
        """Test no open session."""
        assert store.get_active_session("nobody") is None

    def test_get_session_missing(self, store: ImportStore):
        """Test unknown id."""
        assert store.get_session(999) is None


class TestStatusTransitions:
    """Tests for set_status."""

    def test_pause_and_resume(self, store: ImportStore):
        """Test ACTIVE -> PAUSED -> ACTIVE."""
        session = store.create_session("alice", 1)

        paused = store.set_status(session.import_id, ImportStatus.PAUSED)
        resumed = store.set_status(session.import_id, ImportStatus.ACTIVE)

        assert paused.status == ImportStatus.PAUSED.value
        assert resumed.status == ImportStatus.ACTIVE.value

    def test_same_status_is_noop(self, store: ImportStore):
        """Test setting the current status again."""
        session = store.create_session("alice", 1)

        result = store.set_status(session.import_id, ImportStatus.ACTIVE)

        assert result.status == ImportStatus.ACTIVE.value

    @pytest.mark.parametrize(
        "terminal,target",
        [
            (ImportStatus.CANCELED, ImportStatus.ACTIVE),
            (ImportStatus.COMPLETE, ImportStatus.PAUSED),
            (ImportStatus.CANCELED, ImportStatus.COMPLETE),
        ],
    )
    def test_terminal_sessions_stay_terminal(self, store: ImportStore, terminal, target):
        """Test no transition leaves CANCELED or COMPLETE."""
        session = store.create_session("alice", 1)
        store.set_status(session.import_id, terminal)

        with pytest.raises(InvalidTransitionError):
            store.set_status(session.import_id, target)

        assert store.get_session(session.import_id).status == terminal.value

    def test_paused_cannot_complete(self, store: ImportStore):
        """Test only an active session completes."""
        session = store.create_session("alice", 1)
        store.set_status(session.import_id, ImportStatus.PAUSED)

        with pytest.raises(InvalidTransitionError):
            store.set_status(session.import_id, ImportStatus.COMPLETE)

    def test_unknown_session(self, store: ImportStore):
        """Test set_status on a missing session."""
        with pytest.raises(KeyError):
            store.set_status(404, ImportStatus.PAUSED)

    def test_update_current_index(self, store: ImportStore):
        """Test moving the advisory cursor."""
        session = store.create_session("alice", 3)

        store.update_current_index(session.import_id, 2)

        assert store.get_session(session.import_id).current_index == 2


class TestItems:
    """Tests for item rows."""

    def test_bulk_insert_creates_pending_items(self, store: ImportStore, loaded: ImportSession):
        """Test every row becomes a PENDING item in order."""
        items = store.list_items(loaded.import_id)

        assert [i.row_index for i in items] == [0, 1, 2]
        assert [i.game_title for i in items] == ["Game A", "Game B", "Game A"]
        assert all(i.status == ItemStatus.PENDING.value for i in items)
        assert loaded.total_count == 3

    def test_item_raw_fields(self, store: ImportStore, loaded: ImportSession):
        """Test raw fields are stored."""
        item = store.list_items(loaded.import_id)[1]

        assert item.platform_name == "Switch"
        assert item.source_type == "Completionated"
        assert item.time_text == "40h:00m:00s"
        assert item.completed_at == date(2023, 2, 20).isoformat()
        assert item.completion_type == CompletionType.COMPLETIONIST.value
        assert item.playtime_hours == 40.0

    def test_bulk_insert_is_not_repeated(
        self, store: ImportStore, loaded: ImportSession, rows: list[ExportRow]
    ):
        """Test inserting again for the same session adds nothing."""
        inserted = store.bulk_insert_items(loaded.import_id, rows)

        assert inserted == 0
        assert len(store.list_items(loaded.import_id)) == 3

    def test_next_pending_is_lowest_row(self, store: ImportStore, loaded: ImportSession):
        """Test the next item is the lowest PENDING row index."""
        items = store.list_items(loaded.import_id)
        store.update_item(items[0].item_id, ImportItemUpdate(status=ItemStatus.IMPORTED))

        next_item = store.next_pending_item(loaded.import_id)

        assert next_item.row_index == 1

    def test_next_pending_ignores_cursor(self, store: ImportStore, loaded: ImportSession):
        """Test a PENDING row behind the cursor is still returned first."""
        items = store.list_items(loaded.import_id)
        store.update_item(items[1].item_id, ImportItemUpdate(status=ItemStatus.SKIPPED))
        store.update_current_index(loaded.import_id, 2)

        assert store.next_pending_item(loaded.import_id).row_index == 0

    def test_next_pending_none_when_drained(self, store: ImportStore, loaded: ImportSession):
        """Test no pending rows."""
        for item in store.list_items(loaded.import_id):
            store.update_item(item.item_id, ImportItemUpdate(status=ItemStatus.SKIPPED))

        assert store.next_pending_item(loaded.import_id) is None

    def test_update_item_only_set_fields(self, store: ImportStore, loaded: ImportSession):
        """Test partial updates."""
        item = store.list_items(loaded.import_id)[0]
        store.update_item(
            item.item_id, ImportItemUpdate(status=ItemStatus.ERROR, error_text="boom")
        )
        store.update_item(item.item_id, ImportItemUpdate(catalog_game_id=None))

        updated = store.get_item(item.item_id)
        assert updated.status == ItemStatus.ERROR.value
        assert updated.error_text == "boom"
        assert updated.catalog_game_id is None

    def test_update_missing_item(self, store: ImportStore):
        """Test updating an unknown item."""
        assert store.update_item(999, ImportItemUpdate(status=ItemStatus.SKIPPED)) is None

    def test_list_items_by_status(self, store: ImportStore, loaded: ImportSession):
        """Test filtering items by status."""
        item = store.list_items(loaded.import_id)[2]
        store.update_item(item.item_id, ImportItemUpdate(status=ItemStatus.ERROR))

        errors = store.list_items(loaded.import_id, status=ItemStatus.ERROR)

        assert [i.row_index for i in errors] == [2]

    def test_count_by_status(self, store: ImportStore, loaded: ImportSession):
        """Test counts include every status."""
        items = store.list_items(loaded.import_id)
        store.update_item(items[0].item_id, ImportItemUpdate(status=ItemStatus.IMPORTED))
        store.update_item(items[1].item_id, ImportItemUpdate(status=ItemStatus.ERROR))

        counts = store.count_by_status(loaded.import_id)

        assert counts == {
            ItemStatus.PENDING: 1,
            ItemStatus.SKIPPED: 0,
            ItemStatus.IMPORTED: 1,
            ItemStatus.UPDATED: 0,
            ItemStatus.ERROR: 1,
        }
        assert sum(counts.values()) == loaded.total_count
