"""
Testimony record construction, country filtering and ordering.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

DEFAULT_NO = "Non"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def normalize_country(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return re.sub(r"\s+", " ", value).strip().lower()


def matches_country(testimony: dict, country: Optional[str]) -> bool:
    """Case-insensitive, whitespace-trimmed exact match on countryVisited."""
    wanted = normalize_country(country)
    if not wanted:
        return True
    return normalize_country(testimony.get("countryVisited")) == wanted


def build_testimony(fields: dict, uid: str, created_at: datetime) -> dict:
    """
    Apply defaults to the optional fields and stamp the author and creation
    time. ``fields`` is the validated request payload without ``uid``.
    """
    record = dict(fields)
    record.pop("uid", None)
    if not record.get("anonyme"):
        record["anonyme"] = DEFAULT_NO
    if not record.get("observedDiscrimination"):
        record["observedDiscrimination"] = DEFAULT_NO
    record["profil"] = list(record.get("profil") or [])
    record["frequence"] = list(record.get("frequence") or [])
    record["uid"] = uid
    record["createdAt"] = created_at
    return record


def created_at_sort_key(value: Any) -> datetime:
    """
    Map a stored createdAt to an aware datetime.

    Older documents carry ISO-8601 strings, epoch numbers or serialized
    Firestore timestamps instead of native timestamps; unreadable or missing
    values sort last.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, bool):
        return _EPOCH
    if isinstance(value, (int, float)):
        # Milliseconds, as produced by JavaScript's Date.now().
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return _EPOCH
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return created_at_sort_key(datetime.fromisoformat(text))
        except ValueError:
            return _EPOCH
    if isinstance(value, dict):
        seconds = value.get("_seconds", value.get("seconds"))
        if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
            nanos = value.get("_nanoseconds", value.get("nanoseconds")) or 0
            try:
                return datetime.fromtimestamp(seconds + nanos / 1e9, tz=timezone.utc)
            except (OverflowError, OSError, ValueError, TypeError):
                return _EPOCH
    return _EPOCH


def select_testimonies(
    docs: Iterable[tuple[str, dict]], country: Optional[str] = None
) -> list[dict]:
    """Filter by country and order newest first."""
    items = [
        {**data, "id": doc_id}
        for doc_id, data in docs
        if matches_country(data, country)
    ]
    items.sort(key=lambda t: created_at_sort_key(t.get("createdAt")), reverse=True)
    return items
