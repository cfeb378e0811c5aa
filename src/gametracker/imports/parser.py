"""Export file parsing.

Turns the bytes of a delimited completion export (Completionator's CSV
export, or any file with a recognizable header) into ordered ExportRow
records. Parsing has no side effects; nothing is written until a session
is created from the returned rows.
"""

import csv
import io
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import requests
from pydantic import ValidationError

from ..db.schemas import CompletionType
from .errors import ParseError
from .schemas import ExportRow

logger = logging.getLogger(__name__)

DELIMITERS = ",;\t|"

DATE_FORMATS = ("%m/%d/%Y", "%Y-%m-%d", "%Y/%m/%d", "%d.%m.%Y", "%m/%d/%y")

TIME_PATTERN = re.compile(r"(\d+)h:(\d+)m:(\d+)s", re.IGNORECASE)
YEAR_SUFFIX_PATTERN = re.compile(r"\s*\([^)]*\)\s*$")

SOURCE_TYPE_MAPPING = {
    "core game": CompletionType.MAIN_STORY,
    "core game (+ a few extras)": CompletionType.MAIN_STORY_SIDE,
    "core game (+ lots of extras)": CompletionType.MAIN_STORY_SIDE,
    "completionated": CompletionType.COMPLETIONIST,
}


@dataclass
class ColumnMapping:
    """Positions of the known fields within an export header."""

    game_title: Optional[int] = None
    platform_name: Optional[int] = None
    region_name: Optional[int] = None
    source_type: Optional[int] = None
    time_text: Optional[int] = None
    completed_at: Optional[int] = None
    completion_type: Optional[int] = None
    playtime_hours: Optional[int] = None
    row_status: Optional[int] = None  # accepted, never used

    @classmethod
    def auto_detect(cls, columns: list[str]) -> "ColumnMapping":
        """Auto-detect field positions from header names.

        Args:
            columns: Header cells in file order

        Returns:
            ColumnMapping with detected positions
        """
        mapping = cls()
        positions: dict[str, int] = {}
        for idx, column in enumerate(columns):
            positions.setdefault(column.strip().lower(), idx)

        field_variations = {
            "game_title": ["name", "title", "game", "game title", "game name"],
            "platform_name": ["platform", "system", "console"],
            "region_name": ["region"],
            "source_type": ["type", "source type"],
            "time_text": ["time", "time spent", "time played"],
            "completed_at": [
                "date", "completed", "completed at", "completion date", "date completed",
            ],
            "completion_type": ["completion type", "completion"],
            "playtime_hours": ["playtime hours", "playtime", "hours"],
            "row_status": ["status", "row status"],
        }

        for field_name, variations in field_variations.items():
            for variation in variations:
                if variation in positions:
                    setattr(mapping, field_name, positions[variation])
                    break

        return mapping

    def cell(self, row: list[str], field_name: str) -> Optional[str]:
        """Return the stripped cell for a field, or None when absent or empty."""
        idx = getattr(self, field_name)
        if idx is None or idx >= len(row):
            return None
        value = row[idx].strip()
        return value or None


# ============================================================================
# Field Helpers
# ============================================================================


def map_completion_type(value: Optional[str]) -> Optional[CompletionType]:
    """Map a Completionator type (or a completion type name) to CompletionType."""
    if not value:
        return None
    lowered = value.strip().lower()
    if lowered in SOURCE_TYPE_MAPPING:
        return SOURCE_TYPE_MAPPING[lowered]
    return CompletionType.parse(value)


def parse_time_text(value: Optional[str]) -> Optional[float]:
    """Convert '12h:30m:00s' to hours, rounded to two decimals."""
    if not value:
        return None
    match = TIME_PATTERN.search(value.strip())
    if not match:
        return None
    hours = int(match.group(1))
    minutes = int(match.group(2))
    return round(hours + minutes / 60, 2)


def parse_completed_date(value: Optional[str]) -> Optional[date]:
    """Parse a completion date, M/D/YYYY first."""
    if not value:
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt).date()
        except ValueError:
            continue
    return None


def parse_hours(value: Optional[str]) -> Optional[float]:
    """Parse a plain number of hours."""
    if not value:
        return None
    try:
        hours = float(value.replace(",", "."))
    except ValueError:
        return None
    return round(hours, 2) if hours >= 0 else None


def strip_year_suffix(title: str) -> str:
    """Remove a trailing parenthesized suffix such as '(2016)'."""
    return YEAR_SUFFIX_PATTERN.sub("", title.strip()).strip()


# ============================================================================
# Parsing
# ============================================================================


def _decode(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def _sniff_delimiter(header_line: str) -> str:
    try:
        return csv.Sniffer().sniff(header_line, delimiters=DELIMITERS).delimiter
    except csv.Error:
        return ","


def parse_export(data: bytes, filename: Optional[str] = None) -> list[ExportRow]:
    """Parse an export file into ordered rows.

    Rows with a blank title are dropped with a warning. Blank lines are
    ignored and do not consume a row index.

    Args:
        data: Raw file contents
        filename: Declared file name, used in messages only

    Returns:
        Rows in file order, row_index starting at 0

    Raises:
        ParseError: No header, no title column, or no usable rows
    """
    label = filename or "export"
    text = _decode(data)
    first_line = next((line for line in text.splitlines() if line.strip()), None)
    if first_line is None:
        raise ParseError(f"{label} is empty: no header row found")

    delimiter = _sniff_delimiter(first_line)
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
    records = (r for r in reader if any(c.strip() for c in r))
    header = next(records, None)
    if header is None:
        raise ParseError(f"{label} is empty: no header row found")
    mapping = ColumnMapping.auto_detect(header)
    if mapping.game_title is None:
        raise ParseError(f"{label} has no title column (header: {', '.join(header)})")

    rows: list[ExportRow] = []
    data_rows = 0
    for row_index, row in enumerate(records):
        data_rows += 1
        title = mapping.cell(row, "game_title")
        if not title:
            logger.warning("%s row %d has no title, skipping", label, row_index)
            continue

        source_type = mapping.cell(row, "source_type")
        time_text = mapping.cell(row, "time_text")
        completion_type = map_completion_type(
            mapping.cell(row, "completion_type")
        ) or map_completion_type(source_type)
        playtime = parse_hours(mapping.cell(row, "playtime_hours"))
        if playtime is None:
            playtime = parse_time_text(time_text)

        date_text = mapping.cell(row, "completed_at")
        completed_at = parse_completed_date(date_text)
        if date_text and completed_at is None:
            logger.warning("%s row %d has unreadable date %r", label, row_index, date_text)

        try:
            rows.append(
                ExportRow(
                    row_index=row_index,
                    game_title=title,
                    platform_name=mapping.cell(row, "platform_name"),
                    region_name=mapping.cell(row, "region_name"),
                    source_type=source_type,
                    time_text=time_text,
                    completed_at=completed_at,
                    completion_type=completion_type,
                    playtime_hours=playtime,
                )
            )
        except ValidationError as e:
            logger.warning("%s row %d is invalid, skipping: %s", label, row_index, e)

    if data_rows == 0:
        raise ParseError(f"{label} has a header but no data rows")
    if not rows:
        raise ParseError(f"{label} has no rows with a game title")

    logger.debug("Parsed %d of %d rows from %s", len(rows), data_rows, label)
    return rows


# ============================================================================
# Loading
# ============================================================================


def fetch_export(url: str, timeout: int = 10) -> bytes:
    """Download an export file.

    Raises:
        ParseError: The download failed
    """
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise ParseError(f"Could not download export: {e}")
    return response.content


def load_export(source: str, timeout: int = 10) -> tuple[bytes, str]:
    """Read an export from a local path or an http(s) URL.

    Returns:
        Tuple of (contents, file name)
    """
    parsed = urlparse(source)
    if parsed.scheme in ("http", "https"):
        filename = unquote(Path(parsed.path).name) or "export.csv"
        return fetch_export(source, timeout=timeout), filename

    path = Path(source).expanduser()
    if not path.is_file():
        raise ParseError(f"File not found: {path}")
    return path.read_bytes(), path.name
