"""
Message and Policy Repository Implementation

Provides database operations for customer messages and business policies
with transaction management and user scoping.

Design Considerations:
- Repository pattern for data access abstraction
- Every query is scoped by user_id
- Methods return domain objects rather than ORM objects, so nothing is
  accessed after its session closes
- Values outside the closed enumerations are coerced on read
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Set

from sqlalchemy import or_

from src.email_processing.models import (
    AnalysisResult,
    BusinessPolicy,
    Channel,
    Message,
    MessageCategory,
    ResponseCost,
    Sentiment,
)
from src.storage.database import get_db_session
from src.storage.models import MessageRecord, PolicyRecord

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def record_to_message(record: MessageRecord) -> Message:
    """Convert a row to a Message, coercing unknown enum values to defaults."""
    return Message(
        id=record.id,
        thread_id=record.thread_id,
        channel=Channel.coerce(record.channel),
        sender_name=record.sender_name or "",
        sender_handle=record.sender_handle or "",
        subject=record.subject,
        body=record.body or "",
        timestamp=_as_utc(record.received_at),
        is_read=bool(record.is_read),
        is_replied=bool(record.is_replied),
        category=MessageCategory.coerce(record.category),
        sentiment=Sentiment.coerce(record.sentiment),
        predicted_cost=ResponseCost.coerce(record.predicted_cost),
        tags=[t for t in (record.tags or []) if isinstance(t, str)],
        suggested_reply=record.ai_draft_response,
    )


def record_to_policy(record: PolicyRecord) -> BusinessPolicy:
    return BusinessPolicy(
        id=record.id,
        title=record.title,
        content=record.content,
        category=record.category,
    )


def _apply_message(record: MessageRecord, message: Message) -> None:
    record.thread_id = message.thread_id
    record.channel = message.channel.value
    record.sender_name = message.sender_name
    record.sender_handle = message.sender_handle
    record.subject = message.subject
    record.body = message.body
    record.received_at = message.timestamp
    record.is_read = message.is_read
    record.is_replied = message.is_replied
    record.category = message.category.value
    record.sentiment = message.sentiment.value
    record.predicted_cost = message.predicted_cost.value
    record.tags = list(message.tags)
    if message.suggested_reply is not None:
        record.ai_draft_response = message.suggested_reply


class MessageRepository:
    """
    Repository for customer message database operations.
    """

    @staticmethod
    async def upsert_messages(user_id: str, messages: Sequence[Message], batch_size: int = 50) -> int:
        """
        Insert new messages and overwrite existing ones, one transaction per batch.

        A stored draft is kept when the incoming message carries none.

        Args:
            user_id: Owner of the messages
            messages: Messages to write
            batch_size: Messages per transaction

        Returns:
            Number of messages written
        """
        written = 0
        batch_size = max(1, batch_size)
        for start in range(0, len(messages), batch_size):
            batch = messages[start:start + batch_size]
            with get_db_session() as session:
                ids = [m.id for m in batch]
                existing = {
                    record.id: record
                    for record in session.query(MessageRecord).filter(
                        MessageRecord.user_id == user_id,
                        MessageRecord.id.in_(ids)
                    ).all()
                }
                for message in batch:
                    record = existing.get(message.id)
                    if record is None:
                        record = MessageRecord(id=message.id, user_id=user_id)
                        session.add(record)
                        existing[message.id] = record
                    _apply_message(record, message)
                    written += 1
        logger.debug(f"Upserted {written} messages for user {user_id}")
        return written

    @staticmethod
    async def list_messages(user_id: str) -> List[Message]:
        """All messages of a user, newest first."""
        with get_db_session() as session:
            records = session.query(MessageRecord).filter(
                MessageRecord.user_id == user_id
            ).order_by(MessageRecord.received_at.desc()).all()
            return [record_to_message(r) for r in records]

    @staticmethod
    async def get_message(user_id: str, message_id: str) -> Optional[Message]:
        with get_db_session() as session:
            record = session.query(MessageRecord).filter(
                MessageRecord.user_id == user_id,
                MessageRecord.id == message_id
            ).first()
            return record_to_message(record) if record else None

    @staticmethod
    async def existing_ids(user_id: str, message_ids: Iterable[str]) -> Set[str]:
        ids = list(message_ids)
        if not ids:
            return set()
        with get_db_session() as session:
            rows = session.query(MessageRecord.id).filter(
                MessageRecord.user_id == user_id,
                MessageRecord.id.in_(ids)
            ).all()
            return {row[0] for row in rows}

    @staticmethod
    async def list_unclassified(user_id: str) -> List[Message]:
        """Messages whose category is missing or General, newest first."""
        with get_db_session() as session:
            records = session.query(MessageRecord).filter(
                MessageRecord.user_id == user_id,
                or_(
                    MessageRecord.category.is_(None),
                    MessageRecord.category == MessageCategory.GENERAL.value
                )
            ).order_by(MessageRecord.received_at.desc()).all()
            return [record_to_message(r) for r in records]

    @staticmethod
    async def update_classification(user_id: str, message_id: str, analysis: AnalysisResult) -> bool:
        """
        Persist a classification result.

        Returns:
            True if the message exists and was updated
        """
        with get_db_session() as session:
            record = session.query(MessageRecord).filter(
                MessageRecord.user_id == user_id,
                MessageRecord.id == message_id
            ).first()
            if not record:
                logger.warning(f"Cannot store classification, message {message_id} not found")
                return False
            record.category = analysis.category.value
            record.sentiment = analysis.sentiment.value
            record.predicted_cost = analysis.predicted_cost.value
            record.tags = list(analysis.tags)
            return True

    @staticmethod
    async def update_flags(user_id: str, message_id: str, is_read: bool, is_replied: bool) -> bool:
        """Refresh read and reply state of a known message."""
        with get_db_session() as session:
            record = session.query(MessageRecord).filter(
                MessageRecord.user_id == user_id,
                MessageRecord.id == message_id
            ).first()
            if not record:
                return False
            record.is_read = is_read
            # Reply state never moves back from replied
            record.is_replied = bool(record.is_replied) or is_replied
            return True

    @staticmethod
    async def save_draft(user_id: str, message_id: str, draft: Optional[str]) -> bool:
        with get_db_session() as session:
            record = session.query(MessageRecord).filter(
                MessageRecord.user_id == user_id,
                MessageRecord.id == message_id
            ).first()
            if not record:
                return False
            record.ai_draft_response = draft
            return True

    @staticmethod
    async def mark_replied(user_id: str, message_ids: Iterable[str]) -> int:
        """Mark messages replied and clear their drafts. Returns rows updated."""
        ids = list(message_ids)
        if not ids:
            return 0
        with get_db_session() as session:
            records = session.query(MessageRecord).filter(
                MessageRecord.user_id == user_id,
                MessageRecord.id.in_(ids)
            ).all()
            for record in records:
                record.is_replied = True
                record.is_read = True
                record.ai_draft_response = None
            return len(records)

    @staticmethod
    async def delete_messages(user_id: str, message_ids: Iterable[str]) -> int:
        ids = list(message_ids)
        if not ids:
            return 0
        with get_db_session() as session:
            deleted = session.query(MessageRecord).filter(
                MessageRecord.user_id == user_id,
                MessageRecord.id.in_(ids)
            ).delete(synchronize_session=False)
            return deleted


class PolicyRepository:
    """
    Repository for business policy database operations.
    """

    @staticmethod
    async def list_policies(user_id: str) -> List[BusinessPolicy]:
        with get_db_session() as session:
            records = session.query(PolicyRecord).filter(
                PolicyRecord.user_id == user_id
            ).order_by(PolicyRecord.created_at.asc()).all()
            return [record_to_policy(r) for r in records]

    @staticmethod
    async def get_policy(user_id: str, policy_id: str) -> Optional[BusinessPolicy]:
        with get_db_session() as session:
            record = session.query(PolicyRecord).filter(
                PolicyRecord.user_id == user_id,
                PolicyRecord.id == policy_id
            ).first()
            return record_to_policy(record) if record else None

    @staticmethod
    async def create_policy(user_id: str, title: str, content: str,
                            category: Optional[str] = None,
                            policy_id: Optional[str] = None) -> BusinessPolicy:
        """
        Create a policy.

        Raises:
            ValueError: If title or content is empty
        """
        if not title or not title.strip():
            raise ValueError("Policy title is required")
        if not content or not content.strip():
            raise ValueError("Policy content is required")
        with get_db_session() as session:
            record = PolicyRecord(
                id=policy_id or str(uuid.uuid4()),
                user_id=user_id,
                title=title.strip(),
                content=content.strip(),
                category=category,
            )
            session.add(record)
            session.flush()
            return record_to_policy(record)

    @staticmethod
    async def update_policy(user_id: str, policy_id: str,
                            title: Optional[str] = None,
                            content: Optional[str] = None,
                            category: Optional[str] = None) -> Optional[BusinessPolicy]:
        """Update the given fields; returns None when the policy does not exist."""
        with get_db_session() as session:
            record = session.query(PolicyRecord).filter(
                PolicyRecord.user_id == user_id,
                PolicyRecord.id == policy_id
            ).first()
            if not record:
                return None
            if title is not None:
                if not title.strip():
                    raise ValueError("Policy title is required")
                record.title = title.strip()
            if content is not None:
                if not content.strip():
                    raise ValueError("Policy content is required")
                record.content = content.strip()
            if category is not None:
                record.category = category or None
            session.flush()
            return record_to_policy(record)

    @staticmethod
    async def delete_policy(user_id: str, policy_id: str) -> bool:
        with get_db_session() as session:
            deleted = session.query(PolicyRecord).filter(
                PolicyRecord.user_id == user_id,
                PolicyRecord.id == policy_id
            ).delete(synchronize_session=False)
            return deleted > 0
