"""Terminal prompt channel for import review.

Renders candidates and completion details with Rich and reads answers from
the terminal. Answers are read by a daemon thread feeding a queue so each
prompt can give up after the configured wait window.
"""

import queue
import re
import threading
import time
from datetime import date
from typing import Callable, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..db.schemas import CompletionType
from .parser import parse_completed_date
from .resolver import Candidate
from .review import (
    ConfirmationPrompt,
    PromptChannel,
    PromptResponse,
    RowOutcome,
    SelectionPrompt,
)
from .schemas import ImportProgress, ItemStatus

STATUS_STYLES = {
    ItemStatus.PENDING: "dim",
    ItemStatus.IMPORTED: "green",
    ItemStatus.UPDATED: "cyan",
    ItemStatus.SKIPPED: "yellow",
    ItemStatus.ERROR: "red",
}

OVERRIDE_PATTERN = re.compile(r"(type|date|hours)\s*=\s*(\"[^\"]*\"|\S+)", re.IGNORECASE)


# ============================================================================
# Answer Parsing
# ============================================================================


def parse_selection_answer(text: str) -> Optional[PromptResponse]:
    """Parse an answer to a selection prompt.

    Accepted: a candidate number, ``s``/``skip``, ``p``/``pause``,
    ``/title`` or ``search title``.
    """
    answer = text.strip()
    lowered = answer.lower()
    if not answer:
        return None
    if lowered in ("s", "skip"):
        return PromptResponse.skip()
    if lowered in ("p", "pause"):
        return PromptResponse.pause()
    if answer.startswith("/"):
        return PromptResponse.search(answer[1:].strip()) if answer[1:].strip() else None
    if lowered.startswith("search "):
        return PromptResponse.search(answer[7:].strip())
    if answer.isdigit():
        return PromptResponse.pick(int(answer))
    return None


def parse_confirmation_answer(text: str) -> Optional[PromptResponse]:
    """Parse an answer to a confirmation prompt.

    Accepted: empty or ``y`` to confirm, ``s``/``skip``/``n``, ``p``/``pause``,
    ``b``/``back`` to choose another game, a search, or overrides such as
    ``type=completionist date=2024-01-31 hours=12.5``.
    """
    answer = text.strip()
    lowered = answer.lower()
    if lowered in ("", "y", "yes"):
        return PromptResponse.confirm()
    if lowered in ("n", "no", "s", "skip"):
        return PromptResponse.skip()
    if lowered in ("p", "pause"):
        return PromptResponse.pause()
    if lowered in ("b", "back"):
        return PromptResponse.pick(0)
    if answer.startswith("/") or lowered.startswith("search "):
        return parse_selection_answer(answer)

    overrides = OVERRIDE_PATTERN.findall(answer)
    if not overrides:
        return None

    completion_type: Optional[CompletionType] = None
    completed_at: Optional[date] = None
    playtime: Optional[float] = None
    for key, value in overrides:
        value = value.strip('"')
        key = key.lower()
        if key == "type":
            completion_type = CompletionType.parse(value)
            if completion_type is None:
                return None
        elif key == "date":
            completed_at = parse_completed_date(value)
            if completed_at is None:
                return None
        else:
            try:
                playtime = float(value)
            except ValueError:
                return None
            if playtime < 0:
                return None
    return PromptResponse.confirm(completion_type, completed_at, playtime)


# ============================================================================
# Rendering
# ============================================================================


def format_candidate_table(candidates: list[Candidate], title: str = "Candidates") -> Table:
    """Create a rich table listing candidates."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Title", style="cyan", no_wrap=False, max_width=40)
    table.add_column("Year", justify="center")
    table.add_column("Source", style="yellow")
    table.add_column("Summary", style="dim", max_width=50)

    for i, candidate in enumerate(candidates, 1):
        source = "catalog" if not candidate.is_new else "IGDB"
        table.add_row(
            str(i),
            candidate.title,
            str(candidate.release_year) if candidate.release_year else "-",
            source,
            candidate.short_summary or "",
        )
    return table


def format_progress_panel(progress: ImportProgress) -> Panel:
    """Create a rich panel summarizing an import."""
    lines = [
        f"[bold]Status:[/bold] {progress.status.value}",
        f"[bold]File:[/bold] {progress.source_filename or '-'}",
        f"[bold]Progress:[/bold] {progress.processed}/{progress.total_count} "
        f"({progress.percent_complete}%)",
    ]
    for status in ItemStatus:
        style = STATUS_STYLES[status]
        lines.append(f"  [{style}]{status.value.title()}: {progress.counts.get(status, 0)}[/{style}]")
    if progress.awaiting_row_index is not None:
        lines.append(f"[bold]Waiting on row:[/bold] {progress.awaiting_row_index + 1}")
    if not progress.is_consistent:
        lines.append("[red]Row counts do not add up to the session total.[/red]")
    if progress.errors:
        lines.append("")
        lines.append("[bold red]Errors:[/bold red]")
        for error in progress.errors:
            lines.append(f"  Row {error.row_index + 1} ({error.game_title}): {error.error_text}")
    return Panel("\n".join(lines), title=f"Import #{progress.import_id}")


class ConsolePromptChannel(PromptChannel):
    """Prompt channel backed by the terminal."""

    def __init__(
        self,
        console: Optional[Console] = None,
        input_func: Optional[Callable[[], str]] = None,
    ):
        """Initialize channel.

        Args:
            console: Rich console used for output
            input_func: Reads one line of input; defaults to ``input``
        """
        self.console = console or Console()
        self._input = input_func or input
        self._answers: queue.Queue = queue.Queue()
        self._reader: Optional[threading.Thread] = None
        self._closed = False

    def _read_forever(self) -> None:
        while True:
            try:
                line = self._input()
            except EOFError:
                self._answers.put(None)
                return
            self._answers.put(line)

    def _read_line(self, deadline: float) -> Optional[str]:
        """Wait for one line of input until ``deadline``. None on timeout or EOF."""
        if self._closed:
            return None
        if self._reader is None:
            self._reader = threading.Thread(target=self._read_forever, daemon=True)
            self._reader.start()
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return None
        try:
            line = self._answers.get(timeout=remaining)
        except queue.Empty:
            return None
        if line is None:
            self._closed = True
        return line

    def _ask(
        self, question: str, parse: Callable[[str], Optional[PromptResponse]], timeout: float
    ) -> Optional[PromptResponse]:
        deadline = time.monotonic() + timeout
        while True:
            self.console.print(f"[bold]{question}[/bold] ", end="")
            line = self._read_line(deadline)
            if line is None:
                self.console.print()
                return None
            response = parse(line)
            if response is not None:
                return response
            self.console.print("[yellow]Sorry, that answer was not understood.[/yellow]")

    def ask_selection(self, prompt: SelectionPrompt, timeout: float) -> Optional[PromptResponse]:
        item = prompt.item
        self.console.print(
            Panel(
                f"[bold]{item.game_title}[/bold]\n"
                f"Platform: {item.platform_name or '-'}  "
                f"Completed: {item.completed_at or '-'}",
                title=f"Row {item.row_index + 1}",
                style="magenta",
            )
        )
        if prompt.message:
            self.console.print(f"[yellow]{prompt.message}[/yellow]")
        if prompt.candidates:
            self.console.print(
                format_candidate_table(prompt.candidates, title=f'Matches for "{prompt.query}"')
            )
        response = self._ask(
            "Number to select, /title to search, s to skip, p to pause:",
            parse_selection_answer,
            timeout,
        )
        if response is not None:
            response.token = prompt.token
        return response

    def ask_confirmation(
        self, prompt: ConfirmationPrompt, timeout: float
    ) -> Optional[PromptResponse]:
        playtime = f"{prompt.playtime_hours:g} h" if prompt.playtime_hours is not None else "-"
        lines = [
            f"[bold]Game:[/bold] {prompt.candidate.label}",
            f"[bold]Type:[/bold] {prompt.completion_type.value}",
            f"[bold]Completed:[/bold] {prompt.completed_at or '-'}",
            f"[bold]Playtime:[/bold] {playtime}",
        ]
        if prompt.candidate.is_new:
            lines.append("[dim]This game will be added to the catalog from IGDB.[/dim]")
        self.console.print(
            Panel("\n".join(lines), title=f"Confirm row {prompt.item.row_index + 1}")
        )
        response = self._ask(
            "Enter to confirm, type=/date=/hours= to change, b back, s skip, p pause:",
            parse_confirmation_answer,
            timeout,
        )
        if response is not None:
            response.token = prompt.token
        return response

    def report_row(self, outcome: RowOutcome) -> None:
        style = STATUS_STYLES[outcome.status]
        target = f" -> {outcome.catalog_title}" if outcome.catalog_title else ""
        note = f" ({outcome.message})" if outcome.message else ""
        self.console.print(
            f"[{style}]{outcome.status.value.upper()}[/{style}] "
            f"row {outcome.row_index + 1}: {outcome.game_title}{target}{note}"
        )

    def notify(self, message: str) -> None:
        self.console.print(f"[dim]{message}[/dim]")
