"""
Mailbox payload normalisation and message filtering.

Converts Gmail-style message resources (as returned with format=metadata)
into Message objects and provides the search and feature filters used by
the message list.

Design Considerations:
- Header lookup is case-insensitive
- internalDate (epoch milliseconds) is preferred over the Date header
- Reply state is only ever derived from a later SENT message in the thread
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from src.config.analyzer_config import ANALYZER_CONFIG
from src.email_processing.handlers.content import clean_html, subject_fallback
from src.email_processing.models import Channel, Message, MessageCategory, ResponseCost
from src.utils.date_utils import parse_email_date

logger = logging.getLogger(__name__)

_ANGLE_ADDRESS = re.compile(r"<(.+)>")


def get_header_value(headers: Iterable[Dict[str, Any]], name: str) -> str:
    for header in headers or []:
        if isinstance(header, dict) and str(header.get("name", "")).lower() == name.lower():
            return str(header.get("value") or "")
    return ""


def parse_from_header(from_header: str) -> Tuple[str, str]:
    """
    Split a From header into display name and address.

    "Jane Doe <jane@example.com>" gives ("Jane Doe", "jane@example.com");
    a bare address becomes the handle.
    """
    from_header = from_header or ""
    sender_name = from_header.split("<")[0].strip().strip('"')
    match = _ANGLE_ADDRESS.search(from_header)
    sender_handle = match.group(1).strip() if match else from_header.strip()
    return sender_name, sender_handle


def parse_internal_date(value: Any) -> Optional[int]:
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return None


def clamp_max_results(value: Any) -> int:
    """Clamp a requested page size into the supported range."""
    config = ANALYZER_CONFIG["ingestion"]
    try:
        requested = int(value)
    except (TypeError, ValueError):
        return config["default_max_results"]
    return max(1, min(config["max_results_limit"], requested))


def latest_sent_ms(thread: Dict[str, Any]) -> Optional[int]:
    """Latest internalDate among SENT messages of a thread resource."""
    latest = None
    for message in thread.get("messages", []) if isinstance(thread, dict) else []:
        labels = message.get("labelIds") or []
        if "SENT" not in labels:
            continue
        sent_ms = parse_internal_date(message.get("internalDate"))
        if sent_ms is not None and (latest is None or sent_ms > latest):
            latest = sent_ms
    return latest


def normalize_provider_message(raw: Dict[str, Any], thread_latest_sent_ms: Optional[int] = None) -> Message:
    """
    Build a Message from a Gmail-style message resource.

    Args:
        raw: Message resource with id, threadId, internalDate, labelIds,
            snippet and payload.headers
        thread_latest_sent_ms: Latest SENT internalDate in the thread, if known

    Returns:
        Unclassified Message

    Raises:
        ValueError: If the resource has no id
    """
    message_id = raw.get("id")
    if not message_id:
        raise ValueError("Provider message has no id")

    headers = (raw.get("payload") or {}).get("headers") or []
    sender_name, sender_handle = parse_from_header(get_header_value(headers, "From"))
    labels = raw.get("labelIds") or []

    internal_ms = parse_internal_date(raw.get("internalDate"))
    if internal_ms is not None:
        timestamp = datetime.fromtimestamp(internal_ms / 1000, tz=timezone.utc)
    else:
        timestamp, ok = parse_email_date(get_header_value(headers, "Date"))
        if not ok:
            logger.warning(f"No usable date for message {message_id}, using current time")

    body = clean_html(raw.get("snippet") or "")
    is_replied = (
        thread_latest_sent_ms is not None
        and internal_ms is not None
        and thread_latest_sent_ms > internal_ms
    )

    return Message(
        id=str(message_id),
        thread_id=raw.get("threadId"),
        channel=Channel.EMAIL,
        sender_name=sender_name,
        sender_handle=sender_handle,
        subject=subject_fallback(get_header_value(headers, "Subject"), body),
        body=body,
        timestamp=timestamp,
        is_read="UNREAD" not in labels,
        is_replied=is_replied,
    )


def filter_by_search(messages: Sequence[Message], query: Optional[str]) -> List[Message]:
    """Case-insensitive substring search over sender name, body and subject."""
    if not query:
        return list(messages)
    needle = query.lower()
    return [
        m for m in messages
        if needle in (m.sender_name or "").lower()
        or needle in (m.body or "").lower()
        or needle in (m.subject or "").lower()
    ]


def filter_by_feature(messages: Sequence[Message],
                      categories: Optional[Iterable[MessageCategory]] = None,
                      urgencies: Optional[Iterable[ResponseCost]] = None) -> List[Message]:
    """Keep messages in any of the categories and any of the urgencies; empty filters match all."""
    category_set = set(categories or [])
    urgency_set = set(urgencies or [])
    return [
        m for m in messages
        if (not category_set or m.category in category_set)
        and (not urgency_set or m.predicted_cost in urgency_set)
    ]
