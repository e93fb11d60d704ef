"""Small helpers shared by the list queries of both stores."""

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from whisperlog.exceptions import ValidationError

LIKE_ESCAPE = "\\"


def like_pattern(term: str) -> str:
    """Case-insensitive substring pattern with LIKE wildcards escaped."""
    escaped = (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", f"{LIKE_ESCAPE}%")
        .replace("_", f"{LIKE_ESCAPE}_")
    )
    return f"%{escaped}%"


def page_offset(page: int, limit: int) -> int:
    return (page - 1) * limit


def parse_date_bound(value: Optional[str], field: str, *, end: bool = False) -> Optional[Tuple[datetime, bool]]:
    """
    Parse an ISO 8601 date or datetime filter into a UTC datetime.

    Returns (bound, inclusive). A bare date used as an upper bound becomes
    midnight of the following day with an exclusive comparison, so the
    whole day is covered.

    Raises:
        ValidationError: the value is not ISO 8601.
    """
    if not value:
        return None
    raw = value.strip()
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(
            message=f"Invalid date '{value}'. Use ISO 8601, e.g. 2026-10-17 or 2026-10-17T09:30:00Z.",
            field=field,
        )
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    else:
        parsed = parsed.astimezone(timezone.utc)

    is_bare_date = len(raw) == 10
    if end and is_bare_date:
        return parsed + timedelta(days=1), False
    return parsed, True
