"""Match resolution for export rows.

Finds the catalog game (or IGDB game) an export row refers to:
1. Exact, case-insensitive title lookup in the local catalog, then title
   variants ("Prefix: The Suffix", with/without a leading "The", ...)
2. IGDB search when the catalog has nothing

Candidates are ranked by fuzzy title similarity. The resolver only reads;
creating catalog entries is the catalog adapter's job.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from thefuzz import fuzz

from ..api.igdb import GameResult, IGDBClient, IGDBError
from ..db.models import Game
from ..db.sqlite import Database
from .errors import AmbiguousMatchError, ExternalProviderError, NoMatchError
from .parser import strip_year_suffix

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 23
SUMMARY_LENGTH = 200


class CandidateSource(str, Enum):
    """Where a candidate came from."""

    LOCAL = "local"
    EXTERNAL = "external"


class MatchKind(str, Enum):
    """Outcome of resolving one title."""

    AUTO = "auto"  # exactly one catalog hit
    SINGLE_EXTERNAL = "single_external"  # exactly one IGDB hit
    MULTIPLE = "multiple"
    NONE = "none"


@dataclass
class Candidate:
    """A game proposed as the match for an export row."""

    source: CandidateSource
    title: str
    game_id: Optional[int] = None  # local catalog id, when already in the catalog
    igdb_id: Optional[int] = None
    release_year: Optional[int] = None
    summary: Optional[str] = None
    score: int = 0

    @property
    def is_new(self) -> bool:
        """The catalog entry has to be created before it can be used."""
        return self.game_id is None

    @property
    def short_summary(self) -> Optional[str]:
        if not self.summary or len(self.summary) <= SUMMARY_LENGTH:
            return self.summary
        return self.summary[: SUMMARY_LENGTH - 3].rstrip() + "..."

    @property
    def label(self) -> str:
        if self.release_year:
            return f"{self.title} ({self.release_year})"
        return self.title

    @classmethod
    def from_game(cls, game: Game) -> "Candidate":
        return cls(
            source=CandidateSource.LOCAL,
            title=game.title,
            game_id=game.id,
            igdb_id=game.igdb_id,
            release_year=game.release_year,
            summary=game.description,
        )

    @classmethod
    def from_igdb(cls, result: GameResult, game_id: Optional[int] = None) -> "Candidate":
        return cls(
            source=CandidateSource.EXTERNAL,
            title=result.title,
            game_id=game_id,
            igdb_id=result.igdb_id,
            release_year=result.release_year,
            summary=result.summary,
        )


@dataclass
class MatchResult:
    """Candidates found for a title."""

    title: str
    query: str
    kind: MatchKind
    candidates: list[Candidate] = field(default_factory=list)

    def require_single(self) -> Candidate:
        """Return the only candidate.

        Raises:
            NoMatchError: Nothing matched
            AmbiguousMatchError: Several candidates matched
        """
        if not self.candidates:
            raise NoMatchError(self.title)
        if len(self.candidates) > 1:
            raise AmbiguousMatchError(self.title, self.candidates)
        return self.candidates[0]


# ============================================================================
# Title Variants
# ============================================================================


def normalize_title(title: str) -> str:
    """Lowercase, drop articles and punctuation, collapse whitespace."""
    s = title.lower()
    s = re.sub(r"[-–—:]", " ", s)
    s = re.sub(r"^(the|a|an)\s+", "", s)
    s = re.sub(r"\s+(the|a|an)\s+", " ", s)
    s = re.sub(r"[^\w'-]+", " ", s)
    return " ".join(s.split())


def title_variants(title: str) -> list[str]:
    """Alternative spellings to try when the exact title has no hits."""
    trimmed = title.strip()
    variants = []

    if ":" in trimmed:
        prefix, suffix = (part.strip() for part in trimmed.split(":", 1))
        if suffix.lower().startswith("the "):
            variants.append(f"{prefix}: {suffix[4:].strip()}")
        else:
            variants.append(f"{prefix}: The {suffix}")
        variants.append(f"{prefix} {suffix}")
    elif trimmed.lower().startswith("the "):
        variants.append(trimmed[4:].strip())
    else:
        variants.append(f"The {trimmed}")
    variants.append(normalize_title(trimmed))

    seen = {trimmed.lower()}
    unique = []
    for variant in variants:
        if variant and variant.lower() not in seen:
            seen.add(variant.lower())
            unique.append(variant)
    return unique


# ============================================================================
# Resolver
# ============================================================================


class MatchResolver:
    """Resolves export row titles to catalog or IGDB candidates."""

    def __init__(
        self,
        db: Database,
        igdb: Optional[IGDBClient] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        """Initialize resolver.

        Args:
            db: Database holding the catalog
            igdb: IGDB client; None when credentials are not configured
            page_size: Maximum number of candidates presented at once
        """
        self.db = db
        self.igdb = igdb
        self.page_size = page_size

    def resolve(self, title: str) -> MatchResult:
        """Find candidates for an export row title.

        Raises:
            ExternalProviderError: IGDB had to be queried and failed
        """
        query = strip_year_suffix(title) or title.strip()

        local = self.search_local(title, query)
        if len(local) == 1:
            return MatchResult(title, query, MatchKind.AUTO, local)
        if local:
            return MatchResult(title, query, MatchKind.MULTIPLE, self._rank(query, local))

        external = self.search_external(query)
        if not external:
            return MatchResult(title, query, MatchKind.NONE)
        if len(external) == 1:
            return MatchResult(title, query, MatchKind.SINGLE_EXTERNAL, external)
        return MatchResult(title, query, MatchKind.MULTIPLE, external)

    def search_local(self, title: str, query: Optional[str] = None) -> list[Candidate]:
        """Exact-insensitive catalog lookup, falling back to title variants."""
        attempts = [title.strip()]
        if query and query.lower() != title.strip().lower():
            attempts.append(query)
        attempts.extend(title_variants(query or title))

        for attempt in attempts:
            games = self.db.find_games_by_title(attempt)
            if games:
                if attempt != attempts[0]:
                    logger.debug("Catalog matched %r as %r", title, attempt)
                return [Candidate.from_game(game) for game in games]
        return []

    def search_external(self, query: str) -> list[Candidate]:
        """Search IGDB and return ranked candidates, capped at the page size.

        Raises:
            ExternalProviderError: IGDB is not configured or the request failed
        """
        if self.igdb is None:
            raise ExternalProviderError("IGDB credentials are not configured")

        try:
            results = self.igdb.search_games(query, limit=self.page_size)
        except IGDBError as e:
            raise ExternalProviderError(f"IGDB search failed: {e}") from e

        candidates = []
        for result in results:
            existing = self.db.get_game_by_igdb_id(result.igdb_id)
            candidates.append(
                Candidate.from_igdb(result, game_id=existing.id if existing else None)
            )
        return self._rank(query, candidates)

    def _rank(self, query: str, candidates: list[Candidate]) -> list[Candidate]:
        target = query.lower()
        for candidate in candidates:
            candidate.score = fuzz.token_sort_ratio(target, candidate.title.lower())
        ranked = sorted(candidates, key=lambda c: c.score, reverse=True)
        return ranked[: self.page_size]
