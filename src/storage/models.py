"""
Database Models for Inbox Storage

Defines the row models for customer messages and business policies.
Both tables are scoped by user_id; a message id is unique within one
user's mailbox.

Design Considerations:
- Enum values are stored as plain strings and coerced on read
- Tags are stored as a JSON list
- Indexes on the columns the message list filters by
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, JSON, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRecord(Base):
    """
    Stored customer message with its classification and reply state.
    """
    __tablename__ = "messages"

    id = Column(String(255), primary_key=True)
    user_id = Column(String(255), primary_key=True, index=True)
    thread_id = Column(String(255), nullable=True)

    channel = Column(String(32), nullable=False, default="Email")
    sender_name = Column(String(255), nullable=False, default="")
    sender_handle = Column(String(255), nullable=False, default="")
    subject = Column(String(500), nullable=True)
    body = Column(Text, nullable=False, default="")
    received_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    is_read = Column(Boolean, nullable=False, default=False)
    is_replied = Column(Boolean, nullable=False, default=False)

    # Classification
    category = Column(String(32), nullable=True)
    sentiment = Column(String(32), nullable=True)
    predicted_cost = Column(String(32), nullable=True)
    tags = Column(JSON, nullable=False, default=list)

    ai_draft_response = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_messages_user_category", "user_id", "category"),
        Index("ix_messages_user_received", "user_id", "received_at"),
    )


class PolicyRecord(Base):
    """
    Free-text business policy owned by one user.
    """
    __tablename__ = "policies"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    category = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
