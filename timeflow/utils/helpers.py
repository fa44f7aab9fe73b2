"""Shared request-parsing helpers for blueprints.

parse_datetime:   ISO date/datetime strings → aware datetime (None on bad input)
parse_int_list:   JSON list of ids → list[int] (ValueError on bad input)
"""
import logging
from datetime import date, datetime, timezone

logger = logging.getLogger(__name__)


def parse_datetime(value):
    """Parse an ISO date or datetime string to a timezone-aware datetime.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (midnight UTC)
    - YYYY-MM-DDTHH:MM:SS[+HH:MM] (naive values are taken as UTC)
    - DD.MM.YYYY (European format)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except (ValueError, TypeError):
        try:
            parsed = datetime.strptime(text, "%d.%m.%Y")
        except (ValueError, TypeError):
            logger.debug("Unparseable datetime input: %r", value)
            return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_int_list(value, field="user_ids"):
    """Coerce a JSON array of ids into a list of ints, preserving order.

    Raises ValueError naming ``field`` when the input is not a list of
    integers (booleans are rejected even though they subclass int).
    """
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{field} must be a list of integers")
    out = []
    for item in value:
        if isinstance(item, bool):
            raise ValueError(f"{field} must be a list of integers")
        try:
            out.append(int(item))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{field} must be a list of integers") from exc
    return out
