"""
Date handling utilities for mailbox ingestion.

Parses message Date headers (RFC 2822, ISO 8601 and common variants) into
timezone-aware UTC datetimes. Used when a provider payload carries no
internalDate.
"""

from datetime import datetime, timezone
import email.utils
import logging
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

UTC = timezone.utc


def parse_email_date(date_str: Optional[str]) -> Tuple[datetime, bool]:
    """
    Parse an email date string.

    Args:
        date_str: Date header value

    Returns:
        Tuple containing:
        - Parsed datetime in UTC (current time when parsing failed)
        - Boolean indicating parsing success
    """
    if not date_str:
        return datetime.now(UTC), False

    email_tuple = email.utils.parsedate_tz(date_str)
    if email_tuple:
        timestamp = email.utils.mktime_tz(email_tuple)
        return datetime.fromtimestamp(timestamp, UTC), True

    try:
        parsed_date = datetime.fromisoformat(date_str.replace('Z', '+00:00'))
        if not parsed_date.tzinfo:
            parsed_date = parsed_date.replace(tzinfo=UTC)
        return parsed_date.astimezone(UTC), True
    except ValueError:
        pass

    for fmt in [
        "%Y-%m-%d %H:%M:%S %z",
        "%Y-%m-%d %H:%M:%S",
        "%d %b %Y %H:%M:%S %z",
    ]:
        try:
            parsed = datetime.strptime(date_str, fmt)
            if not parsed.tzinfo:
                parsed = parsed.replace(tzinfo=UTC)
            return parsed.astimezone(UTC), True
        except ValueError:
            continue

    logger.warning(f"Unable to parse date string '{date_str}'")
    return datetime.now(UTC), False


def format_iso_date(dt: datetime) -> str:
    """Format a datetime as ISO 8601, assuming UTC for naive values."""
    if not dt.tzinfo:
        dt = dt.replace(tzinfo=UTC)
    return dt.isoformat()
