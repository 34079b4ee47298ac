"""
Shared helpers for the hubsync package.

JSON file I/O (atomic writes), slug generation, timestamp coercion for the
store's date formats, and the sort keys used wherever the catalog is
ordered for display.
"""

import json
import logging
import os
import re
import tempfile
import unicodedata
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# JSON I/O (atomic writes)
# ---------------------------------------------------------------------------

def safe_read_json(path, default=None):
    """Read a JSON file, returning *default* if the file is missing or corrupt.

    Parameters
    ----------
    path : str or pathlib.Path
        Absolute path to the JSON file.
    default
        Value returned when the file cannot be read (default ``None``).
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except (FileNotFoundError, json.JSONDecodeError, OSError):
        return default


def safe_write_json(path, data, *, indent=2):
    """Atomically write *data* as JSON to *path*.

    Writes to a temporary file in the same directory and then
    ``os.replace()``-s it over the target so readers never see a partial
    file.  Parent directories are created if needed.
    """
    path = str(path)
    parent = os.path.dirname(path) or "."
    os.makedirs(parent, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=indent, ensure_ascii=False, default=str)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def slugify(text: str) -> str:
    """Convert a human-readable name to a lowercase hyphenated slug.

    Examples:
        "Shelter"          -> "shelter"
        "Water & Sanitation" -> "water-sanitation"
        "Énergie Solaire"  -> "energie-solaire"
    """
    text = unicodedata.normalize("NFKD", text)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.lower()
    text = re.sub(r"[^a-z0-9]+", "-", text)
    return re.sub(r"-+", "-", text).strip("-")


def title_sort_key(title: str) -> tuple[str, str]:
    """Collation key that approximates a locale-aware comparison.

    Accents and case are ignored at the primary level; the raw title breaks
    ties so the ordering stays total and deterministic.
    """
    decomposed = unicodedata.normalize("NFKD", title or "")
    primary = "".join(c for c in decomposed if not unicodedata.combining(c))
    return (primary.casefold(), title or "")


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------

def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """Return the current UTC time as an ISO 8601 string."""
    return now_utc().isoformat()


def parse_timestamp(value) -> datetime | None:
    """Coerce the store's date representations into an aware datetime.

    Accepts ``datetime`` objects, ISO 8601 strings (date-only strings such
    as ``"2024-01-01"`` included, trailing ``Z`` allowed) and Parse ``Date``
    objects (``{"__type": "Date", "iso": "..."}``).  Naive values are
    assumed to be UTC.  Returns ``None`` for empty input.

    Raises
    ------
    ValueError
        If *value* is present but cannot be interpreted as a timestamp.
    """
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        value = value.get("iso")
        if not value:
            return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Unsupported timestamp value: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
