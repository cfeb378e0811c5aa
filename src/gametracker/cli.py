"""Command-line interface for gametracker.

Built with Typer for commands and Rich for output.
"""

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import get_config
from .db import get_db
from .imports.commands import Action, CommandResult, ImportCommands, build_import_commands
from .imports.errors import ImportPipelineError
from .imports.interactive import ConsolePromptChannel, format_progress_panel
from .imports.parser import load_export
from .imports.schemas import ItemStatus
from .logging_config import configure_logging

# Create the main app
app = typer.Typer(
    name="gametracker",
    help="Track finished games and import your completion history.",
    no_args_is_help=True,
)

# Create sub-apps for command groups
import_app = typer.Typer(help="Import completion history from an export file.")
app.add_typer(import_app, name="import")

# Rich console for pretty output
console = Console()


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def format_run_table(result: CommandResult) -> Optional[Table]:
    """Create a rich table counting the rows finished in a review run."""
    if result.review is None or not result.review.rows:
        return None
    table = Table(title="This Run", show_header=False)
    table.add_column("Status", style="bold")
    table.add_column("Rows", justify="right")
    for status in (ItemStatus.IMPORTED, ItemStatus.UPDATED, ItemStatus.SKIPPED, ItemStatus.ERROR):
        table.add_row(status.value.title(), str(result.review.count(status)))
    return table


def _get_commands() -> ImportCommands:
    config = get_config()
    errors = config.validate()
    if errors:
        for error in errors:
            print_error(error)
        raise typer.Exit(1)

    db = get_db(str(config.db_path))
    return build_import_commands(config, db, ConsolePromptChannel(console))


def _execute(action: Action, user: Optional[str], **kwargs) -> CommandResult:
    commands = _get_commands()
    user_id = user or get_config().user_id
    try:
        return commands.dispatch(action, user_id, **kwargs)
    except ImportPipelineError as e:
        print_error(str(e))
        raise typer.Exit(1)


def _render(result: CommandResult) -> None:
    table = format_run_table(result)
    if table is not None:
        console.print(table)
    if result.action == Action.STATUS:
        console.print(format_progress_panel(result.progress))
        return
    print_success(result.message)
    if result.progress is not None and result.action != Action.START:
        console.print(format_progress_panel(result.progress))


# ============================================================================
# Global Options
# ============================================================================


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Track finished games and import your completion history."""
    configure_logging("DEBUG" if verbose else get_config().log_level)


@app.command("init-db")
def init_db() -> None:
    """Create the database and its tables."""
    config = get_config()
    get_db(str(config.db_path))
    print_success(f"Database ready at {config.db_path}")


# ============================================================================
# Import Commands
# ============================================================================

UserOption = typer.Option(None, "--user", "-u", help="User the import belongs to")


@import_app.command("start")
def import_start(
    source: str = typer.Argument(..., help="Path or URL of the export file"),
    user: Optional[str] = UserOption,
    no_review: bool = typer.Option(
        False, "--no-review", help="Only load the rows; review them later with resume"
    ),
) -> None:
    """Start importing an export file and review its rows."""
    try:
        data, filename = load_export(source, timeout=get_config().request_timeout)
    except ImportPipelineError as e:
        print_error(str(e))
        raise typer.Exit(1)

    result = _execute(Action.START, user, data=data, filename=filename, review=not no_review)
    _render(result)


@import_app.command("status")
def import_status(user: Optional[str] = UserOption) -> None:
    """Show progress of your open import."""
    _render(_execute(Action.STATUS, user))


@import_app.command("pause")
def import_pause(user: Optional[str] = UserOption) -> None:
    """Pause your open import."""
    _render(_execute(Action.PAUSE, user))


@import_app.command("resume")
def import_resume(user: Optional[str] = UserOption) -> None:
    """Resume your open import at its first pending row."""
    _render(_execute(Action.RESUME, user))


@import_app.command("cancel")
def import_cancel(user: Optional[str] = UserOption) -> None:
    """Cancel your open import."""
    _render(_execute(Action.CANCEL, user))


if __name__ == "__main__":
    app()
