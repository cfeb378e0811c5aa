"""Resumable import of completion history from export files."""

from .catalog import CatalogImportAdapter, CatalogImportResult
from .commands import Action, CommandResult, ImportCommands, build_import_commands
from .errors import (
    AmbiguousMatchError,
    ConflictError,
    ExternalProviderError,
    ImportPipelineError,
    InvalidTransitionError,
    NoActiveSessionError,
    NoMatchError,
    ParseError,
)
from .manager import ImportStore
from .models import ImportItem, ImportSession, ReviewContext
from .parser import load_export, parse_export
from .progress import ProgressAggregator
from .registry import PromptRegistry
from .resolver import Candidate, MatchKind, MatchResolver, MatchResult
from .review import (
    PromptChannel,
    PromptResponse,
    ReviewController,
    ReviewRunResult,
    ReviewState,
    RunOutcome,
)
from .schemas import ExportRow, ImportProgress, ImportStatus, ItemStatus

__all__ = [
    "Action",
    "AmbiguousMatchError",
    "Candidate",
    "CatalogImportAdapter",
    "CatalogImportResult",
    "CommandResult",
    "ConflictError",
    "ExportRow",
    "ExternalProviderError",
    "ImportCommands",
    "ImportItem",
    "ImportPipelineError",
    "ImportProgress",
    "ImportSession",
    "ImportStatus",
    "ImportStore",
    "InvalidTransitionError",
    "ItemStatus",
    "MatchKind",
    "MatchResolver",
    "MatchResult",
    "NoActiveSessionError",
    "NoMatchError",
    "ParseError",
    "ProgressAggregator",
    "PromptChannel",
    "PromptRegistry",
    "PromptResponse",
    "ReviewContext",
    "ReviewController",
    "ReviewRunResult",
    "ReviewState",
    "RunOutcome",
    "build_import_commands",
    "load_export",
    "parse_export",
]
