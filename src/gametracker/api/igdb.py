"""IGDB API client for game metadata lookup.

IGDB (igdb.com) provides game metadata including:
- Search by title
- Full game details (summary, cover, genres, companies, platforms)
- Per-platform, per-region release dates

Requests are authenticated with a Twitch client-credentials token.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional

import requests

from ..db.schemas import CompanyRole, GameCreate

logger = logging.getLogger(__name__)

REGIONS = {
    1: "Europe",
    2: "North America",
    3: "Australia",
    4: "New Zealand",
    5: "Japan",
    6: "China",
    7: "Asia",
    8: "Worldwide",
    9: "Korea",
    10: "Brazil",
}


class IGDBError(Exception):
    """Base exception for IGDB API errors."""

    pass


class IGDBAuthError(IGDBError):
    """Raised when credentials are missing or rejected."""

    pass


class IGDBRateLimitError(IGDBError):
    """Raised when rate limited by IGDB."""

    pass


def _timestamp_to_date(value: Optional[int]) -> Optional[date]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).date()


@dataclass
class NamedRef:
    """An IGDB entity reference (genre, platform, ...)."""

    igdb_id: int
    name: str


@dataclass
class InvolvedCompany:
    """A company credited on a game."""

    igdb_id: int
    name: str
    developer: bool = False
    publisher: bool = False

    @property
    def role(self) -> Optional[CompanyRole]:
        if self.developer:
            return CompanyRole.DEVELOPER
        if self.publisher:
            return CompanyRole.PUBLISHER
        return None


@dataclass
class ReleaseDate:
    """A release of a game on one platform in one region."""

    platform: NamedRef
    region_code: Optional[int] = None
    timestamp: Optional[int] = None
    category: Optional[int] = None

    @property
    def region(self) -> Optional[str]:
        if self.region_code is None:
            return None
        return REGIONS.get(self.region_code, f"Region {self.region_code}")

    @property
    def release_date(self) -> Optional[date]:
        return _timestamp_to_date(self.timestamp)


@dataclass
class GameResult:
    """A game result from IGDB search."""

    igdb_id: int
    title: str
    summary: Optional[str] = None
    cover_image_id: Optional[str] = None
    first_release_date: Optional[int] = None  # Unix timestamp
    total_rating: Optional[float] = None
    url: Optional[str] = None

    @property
    def release_year(self) -> Optional[int]:
        released = _timestamp_to_date(self.first_release_date)
        return released.year if released else None

    @property
    def cover_url(self) -> Optional[str]:
        if not self.cover_image_id:
            return None
        return IGDBClient.get_cover_url(self.cover_image_id)


@dataclass
class GameDetails(GameResult):
    """Full IGDB details for a single game."""

    slug: Optional[str] = None
    genres: list[NamedRef] = field(default_factory=list)
    companies: list[InvolvedCompany] = field(default_factory=list)
    platforms: list[NamedRef] = field(default_factory=list)
    release_dates: list[ReleaseDate] = field(default_factory=list)

    def to_game_create(self, cover_base64: Optional[str] = None) -> GameCreate:
        """Convert to GameCreate schema."""
        return GameCreate(
            title=self.title,
            description=self.summary,
            igdb_id=self.igdb_id,
            slug=self.slug,
            total_rating=self.total_rating,
            igdb_url=self.url,
            cover_url=self.cover_url,
            cover_base64=cover_base64,
            initial_release_date=_timestamp_to_date(self.first_release_date),
        )


class IGDBClient:
    """Client for the IGDB v4 API."""

    BASE_URL = "https://api.igdb.com/v4"
    TOKEN_URL = "https://id.twitch.tv/oauth2/token"
    IMAGES_URL = "https://images.igdb.com/igdb/image/upload"

    SEARCH_FIELDS = "name, cover.image_id, summary, first_release_date, total_rating, url"
    DETAIL_FIELDS = ", ".join([
        "name",
        "slug",
        "summary",
        "first_release_date",
        "cover.image_id",
        "genres.name",
        "platforms.name",
        "release_dates.platform.name",
        "release_dates.region",
        "release_dates.date",
        "release_dates.category",
        "involved_companies.company.name",
        "involved_companies.developer",
        "involved_companies.publisher",
        "total_rating",
        "url",
    ])

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        timeout: int = 10,
    ):
        """Initialize client.

        Args:
            client_id: Twitch application client id
            client_secret: Twitch application client secret
            timeout: Request timeout in seconds
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": "GameTracker/1.0"})
        self._access_token: Optional[str] = None
        self._token_expiry = 0.0
        self._last_request_time = 0.0
        self._min_request_interval = 0.25  # IGDB allows 4 requests/second

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _rate_limit(self) -> None:
        """Enforce rate limiting between requests."""
        elapsed = time.time() - self._last_request_time
        if elapsed < self._min_request_interval:
            time.sleep(self._min_request_interval - elapsed)
        self._last_request_time = time.time()

    def _get_access_token(self) -> str:
        """Return a cached token, fetching a new one when expired."""
        if self._access_token and time.time() < self._token_expiry:
            return self._access_token

        if not self.configured:
            raise IGDBAuthError("IGDB credentials are not configured")

        try:
            response = self._session.post(
                self.TOKEN_URL,
                params={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "grant_type": "client_credentials",
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise IGDBAuthError(f"Could not authenticate with Twitch: {e}")

        self._access_token = data["access_token"]
        # Refresh a minute early
        self._token_expiry = time.time() + int(data.get("expires_in", 0)) - 60
        logger.info("Fetched new IGDB access token")
        return self._access_token

    def _post(self, endpoint: str, body: str) -> list:
        """Make an APIcalypse POST request with error handling."""
        token = self._get_access_token()
        self._rate_limit()
        try:
            response = self._session.post(
                f"{self.BASE_URL}/{endpoint}",
                data=body,
                headers={
                    "Client-ID": self.client_id,
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "text/plain",
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout:
            raise IGDBError("Request timed out")
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code
            if status == 429:
                raise IGDBRateLimitError("Rate limited by IGDB")
            if status in (401, 403):
                self._access_token = None
                raise IGDBAuthError(f"IGDB rejected credentials (HTTP {status})")
            raise IGDBError(f"HTTP error: {status}")
        except requests.exceptions.RequestException as e:
            raise IGDBError(f"Request failed: {e}")

        if not isinstance(data, list):
            raise IGDBError(f"Unexpected response from /{endpoint}")
        return data

    # ========================================================================
    # Search Operations
    # ========================================================================

    def search_games(self, query: str, limit: int = 10) -> list[GameResult]:
        """Search IGDB for games by title.

        Args:
            query: Title to search for
            limit: Maximum results to return

        Returns:
            List of GameResult objects
        """
        sanitized = query.replace('"', '\\"')
        body = f'fields {self.SEARCH_FIELDS}; search "{sanitized}"; limit {limit};'
        data = self._post("games", body)

        results = []
        for doc in data:
            result = self._doc_to_result(doc)
            if result:
                results.append(result)
        return results

    def _doc_to_result(self, doc: dict) -> Optional[GameResult]:
        """Convert a search document to GameResult."""
        title = doc.get("name")
        if not title or "id" not in doc:
            return None

        return GameResult(
            igdb_id=doc["id"],
            title=title,
            summary=doc.get("summary"),
            cover_image_id=(doc.get("cover") or {}).get("image_id"),
            first_release_date=doc.get("first_release_date"),
            total_rating=doc.get("total_rating"),
            url=doc.get("url"),
        )

    # ========================================================================
    # Game Details
    # ========================================================================

    def get_game_details(self, igdb_id: int) -> Optional[GameDetails]:
        """Get full details for one game.

        Args:
            igdb_id: IGDB game id

        Returns:
            GameDetails, or None if IGDB has no such game
        """
        body = f"fields {self.DETAIL_FIELDS}; where id = {int(igdb_id)};"
        data = self._post("games", body)
        if not data:
            return None

        doc = data[0]
        base = self._doc_to_result(doc)
        if base is None:
            return None

        genres = [
            NamedRef(igdb_id=g["id"], name=g["name"])
            for g in doc.get("genres", [])
            if "id" in g and g.get("name")
        ]
        platforms = [
            NamedRef(igdb_id=p["id"], name=p["name"])
            for p in doc.get("platforms", [])
            if "id" in p and p.get("name")
        ]

        companies = []
        for ic in doc.get("involved_companies", []):
            company = ic.get("company") or {}
            if "id" not in company or not company.get("name"):
                continue
            companies.append(
                InvolvedCompany(
                    igdb_id=company["id"],
                    name=company["name"],
                    developer=bool(ic.get("developer")),
                    publisher=bool(ic.get("publisher")),
                )
            )

        release_dates = []
        for rd in doc.get("release_dates", []):
            platform = rd.get("platform")
            if not isinstance(platform, dict) or "id" not in platform:
                continue
            release_dates.append(
                ReleaseDate(
                    platform=NamedRef(
                        igdb_id=platform["id"],
                        name=platform.get("name") or f"Platform {platform['id']}",
                    ),
                    region_code=rd.get("region"),
                    timestamp=rd.get("date"),
                    category=rd.get("category"),
                )
            )

        return GameDetails(
            igdb_id=base.igdb_id,
            title=base.title,
            summary=base.summary,
            cover_image_id=base.cover_image_id,
            first_release_date=base.first_release_date,
            total_rating=base.total_rating,
            url=base.url,
            slug=doc.get("slug"),
            genres=genres,
            companies=companies,
            platforms=platforms,
            release_dates=release_dates,
        )

    # ========================================================================
    # Cover Images
    # ========================================================================

    @classmethod
    def get_cover_url(cls, image_id: str, size: str = "cover_big") -> str:
        """Build a cover image URL from an IGDB image id."""
        return f"{cls.IMAGES_URL}/t_{size}/{image_id}.jpg"

    def download_cover(self, url: str) -> Optional[bytes]:
        """Download cover image.

        Args:
            url: Cover image URL

        Returns:
            Image bytes or None
        """
        self._rate_limit()
        try:
            response = self._session.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.content or None
        except requests.exceptions.RequestException:
            return None
