"""Tests for the terminal prompt channel."""

import io
import threading
from datetime import date

import pytest
from rich.console import Console

from gametracker.db.schemas import CompletionType
from gametracker.imports.interactive import (
    ConsolePromptChannel,
    format_progress_panel,
    parse_confirmation_answer,
    parse_selection_answer,
)
from gametracker.imports.resolver import Candidate, CandidateSource
from gametracker.imports.review import (
    ConfirmationPrompt,
    ResponseKind,
    RowOutcome,
    SelectionPrompt,
)
from gametracker.imports.schemas import ImportItemResponse, ImportProgress, ImportStatus, ItemStatus


def scripted_input(*lines):
    """Input function returning lines, then EOF."""
    remaining = iter(lines)

    def _read():
        try:
            return next(remaining)
        except StopIteration:
            raise EOFError

    return _read


@pytest.fixture
def output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def console(output: io.StringIO) -> Console:
    return Console(file=output, force_terminal=False, width=120)


@pytest.fixture
def item() -> ImportItemResponse:
    return ImportItemResponse(
        item_id=1,
        import_id=1,
        row_index=0,
        game_title="Game B",
        platform_name="Switch",
        region_name=None,
        completed_at=date(2023, 2, 20),
        completion_type=CompletionType.COMPLETIONIST,
        playtime_hours=40.0,
        status=ItemStatus.PENDING,
        catalog_game_id=None,
        completion_record_id=None,
        error_text=None,
    )


@pytest.fixture
def candidates() -> list[Candidate]:
    return [
        Candidate(CandidateSource.EXTERNAL, "Game B", igdb_id=5000, release_year=2020),
        Candidate(CandidateSource.LOCAL, "Game B 2", game_id=3, release_year=2022),
    ]


class TestParseSelectionAnswer:
    """Tests for selection answers."""

    @pytest.mark.parametrize(
        "text,kind",
        [
            ("2", ResponseKind.PICK),
            ("s", ResponseKind.SKIP),
            ("Skip", ResponseKind.SKIP),
            ("p", ResponseKind.PAUSE),
            ("/Game Bee", ResponseKind.SEARCH),
            ("search Game Bee", ResponseKind.SEARCH),
        ],
    )
    def test_recognized(self, text, kind):
        """Test accepted answers."""
        assert parse_selection_answer(text).kind == kind

    def test_pick_index(self):
        """Test the number is kept."""
        assert parse_selection_answer(" 3 ").index == 3

    def test_search_query(self):
        """Test the query text is kept."""
        assert parse_selection_answer("/ Hollow Knight").query == "Hollow Knight"

    @pytest.mark.parametrize("text", ["", "maybe", "/", "-1"])
    def test_not_understood(self, text):
        """Test unrecognized answers."""
        assert parse_selection_answer(text) is None


class TestParseConfirmationAnswer:
    """Tests for confirmation answers."""

    @pytest.mark.parametrize("text", ["", "y", "YES"])
    def test_confirm(self, text):
        """Test plain confirmation."""
        response = parse_confirmation_answer(text)

        assert response.kind == ResponseKind.CONFIRM
        assert response.completion_type is None

    def test_back(self):
        """Test going back to the candidate list."""
        response = parse_confirmation_answer("b")

        assert response.kind == ResponseKind.PICK
        assert response.index == 0

    def test_overrides(self):
        """Test changing type, date and hours."""
        response = parse_confirmation_answer("type=completionist date=2024-01-31 hours=12.5")

        assert response.kind == ResponseKind.CONFIRM
        assert response.completion_type == CompletionType.COMPLETIONIST
        assert response.completed_at == date(2024, 1, 31)
        assert response.playtime_hours == 12.5

    def test_quoted_type(self):
        """Test a quoted completion type with spaces."""
        response = parse_confirmation_answer('type="Main Story"')

        assert response.completion_type == CompletionType.MAIN_STORY

    @pytest.mark.parametrize("text", ["type=speedrun", "date=someday", "hours=-2", "hmm"])
    def test_invalid(self, text):
        """Test invalid overrides are rejected."""
        assert parse_confirmation_answer(text) is None


class TestConsolePromptChannel:
    """Tests for ConsolePromptChannel."""

    def test_selection(self, console, output, item, candidates):
        """Test candidates are shown and the answer carries the prompt token."""
        channel = ConsolePromptChannel(console, scripted_input("2"))
        prompt = SelectionPrompt(1, item, candidates, "Game B", token="abc")

        response = channel.ask_selection(prompt, timeout=5)

        assert response.kind == ResponseKind.PICK
        assert response.index == 2
        assert response.token == "abc"
        text = output.getvalue()
        assert "Game B 2" in text
        assert "IGDB" in text

    def test_unclear_answer_asks_again(self, console, output, item, candidates):
        """Test the channel re-asks until it understands."""
        channel = ConsolePromptChannel(console, scripted_input("what", "s"))
        prompt = SelectionPrompt(1, item, candidates, "Game B")

        response = channel.ask_selection(prompt, timeout=5)

        assert response.kind == ResponseKind.SKIP
        assert "not understood" in output.getvalue()

    def test_confirmation(self, console, output, item, candidates):
        """Test the confirmation panel and answer."""
        channel = ConsolePromptChannel(console, scripted_input("hours=41"))
        prompt = ConfirmationPrompt(
            1, item, candidates[0], CompletionType.COMPLETIONIST, date(2023, 2, 20), 40.0, "tok"
        )

        response = channel.ask_confirmation(prompt, timeout=5)

        assert response.playtime_hours == 41.0
        assert response.token == "tok"
        text = output.getvalue()
        assert "Game B (2020)" in text
        assert "added to the catalog" in text

    def test_timeout(self, console, item, candidates):
        """Test no answer within the window returns None."""
        release = threading.Event()

        def blocked_input():
            release.wait()
            return "1"

        channel = ConsolePromptChannel(console, blocked_input)
        prompt = SelectionPrompt(1, item, candidates, "Game B")
        try:
            assert channel.ask_selection(prompt, timeout=0.1) is None
        finally:
            release.set()

    def test_eof_returns_none(self, console, item, candidates):
        """Test closed input ends every prompt."""
        channel = ConsolePromptChannel(console, scripted_input())
        prompt = SelectionPrompt(1, item, candidates, "Game B")

        assert channel.ask_selection(prompt, timeout=5) is None
        assert channel.ask_selection(prompt, timeout=5) is None

    def test_report_row(self, console, output):
        """Test row outcomes are printed."""
        channel = ConsolePromptChannel(console, scripted_input())

        channel.report_row(
            RowOutcome(2, "Game A", ItemStatus.SKIPPED, "Game A", "Already recorded")
        )

        assert "SKIPPED row 3: Game A -> Game A (Already recorded)" in output.getvalue()


class TestFormatProgressPanel:
    """Tests for the progress panel."""

    def test_panel_contents(self, console, output):
        """Test counts, waiting row and errors are shown."""
        progress = ImportProgress(
            import_id=7,
            user_id="alice",
            status=ImportStatus.ACTIVE,
            total_count=3,
            counts={
                ItemStatus.PENDING: 1,
                ItemStatus.SKIPPED: 0,
                ItemStatus.IMPORTED: 1,
                ItemStatus.UPDATED: 0,
                ItemStatus.ERROR: 1,
            },
            awaiting_row_index=2,
            errors=[{"row_index": 1, "game_title": "Game B", "error_text": "boom"}],
        )

        console.print(format_progress_panel(progress))

        text = output.getvalue()
        assert "Import #7" in text
        assert "2/3" in text
        assert "Waiting on row: 3" in text
        assert "Row 2 (Game B): boom" in text
