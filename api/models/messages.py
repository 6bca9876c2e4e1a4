"""
Message Data Models

Request and response models for the inbox message and policy endpoints.

Design Considerations:
- Enum-valued fields are exposed by their display values ("Shipping", "High")
- Responses are built from domain dataclasses, never from ORM rows
- Request validation rejects empty reply text and unknown send modes early
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from src.email_processing.models import BusinessPolicy, Message, ResponseMode


class MessageSummary(BaseModel):
    """
    One inbox message with its classification.
    """
    id: str = Field(..., description="Provider message identifier")
    thread_id: Optional[str] = Field(default=None, description="Provider thread identifier")
    channel: str = Field(..., description="Source channel")
    sender_name: str = Field(..., description="Display name of the sender")
    sender_handle: str = Field(..., description="Email address or social handle")
    subject: Optional[str] = Field(default=None, description="Subject line, if the channel has one")
    body: str = Field(..., description="Plain-text message body")
    timestamp: Optional[datetime] = Field(default=None, description="Receive time (UTC)")
    is_read: bool = Field(default=False)
    is_replied: bool = Field(default=False)
    category: str = Field(..., description="Message category")
    sentiment: str = Field(..., description="Sender sentiment")
    predicted_cost: str = Field(..., description="Predicted response effort (urgency)")
    tags: List[str] = Field(default_factory=list)
    suggested_reply: Optional[str] = Field(default=None, description="Stored draft reply")

    @classmethod
    def from_message(cls, message: Message) -> "MessageSummary":
        return cls(
            id=message.id,
            thread_id=message.thread_id,
            channel=message.channel.value,
            sender_name=message.sender_name,
            sender_handle=message.sender_handle,
            subject=message.subject,
            body=message.body,
            timestamp=message.timestamp,
            is_read=message.is_read,
            is_replied=message.is_replied,
            category=message.category.value,
            sentiment=message.sentiment.value,
            predicted_cost=message.predicted_cost.value,
            tags=list(message.tags),
            suggested_reply=message.suggested_reply,
        )


class MessageListResponse(BaseModel):
    """Filtered message listing."""
    messages: List[MessageSummary] = Field(default_factory=list)
    total: int = Field(..., ge=0, description="Number of messages returned")


class IngestRequest(BaseModel):
    """
    Raw mailbox payload to ingest.

    Messages are Gmail-style resources (id, threadId, internalDate,
    labelIds, snippet, payload.headers). Threads are keyed by thread id and
    are used to decide whether an inbound message was already answered.
    """
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    threads: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    purge_irrelevant: bool = Field(default=True, description="Delete stored copies of irrelevant messages")


class IngestResponse(BaseModel):
    synced: int = Field(..., ge=0)
    updated: int = Field(..., ge=0)
    skipped: int = Field(..., ge=0)
    purged: int = Field(..., ge=0)
    ids: List[str] = Field(default_factory=list)
    message: str = Field(..., description="Human-readable summary")


class ClassificationResponse(BaseModel):
    message_id: str
    classified: bool = Field(..., description="False when the message was already being classified")
    category: Optional[str] = None
    sentiment: Optional[str] = None
    predicted_cost: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class BackfillResponse(BaseModel):
    classified: int = Field(..., ge=0, description="Messages classified in this run")


class SimilarMessage(BaseModel):
    message: MessageSummary
    score: float = Field(..., description="Similarity score in [0, 1]")


class SimilarMessagesResponse(BaseModel):
    """Similar messages for one target, best match first."""
    message_id: str
    method: str = Field(..., description="Tier that produced the matches: exact, embedding, llm or none")
    similar: List[SimilarMessage] = Field(default_factory=list)


class DraftRequest(BaseModel):
    business_name: Optional[str] = Field(default=None, description="Overrides the configured business name")
    signature: Optional[str] = Field(default=None, description="Overrides the configured signature")


class DraftResponse(BaseModel):
    message_id: str
    draft: str


class BulkReplyRequest(BaseModel):
    """
    One reply sent to a target and the messages similar to it.

    When selected_ids is omitted the unreplied similar messages are used.
    """
    draft: str = Field(..., description="Reply text; the greeting name is personalised per recipient")
    selected_ids: Optional[List[str]] = Field(default=None)
    mode: ResponseMode = Field(default=ResponseMode.DRAFT)

    @field_validator("draft")
    @classmethod
    def validate_draft(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Reply text must not be empty")
        return value


class BulkReplyResponse(BaseModel):
    mode: str
    drafted: List[str] = Field(default_factory=list)
    sent: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)


class PolicyModel(BaseModel):
    id: str
    title: str
    content: str
    category: Optional[str] = None

    @classmethod
    def from_policy(cls, policy: BusinessPolicy) -> "PolicyModel":
        return cls(id=policy.id, title=policy.title, content=policy.content, category=policy.category)


class PolicyCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    category: Optional[str] = None


class PolicyUpdateRequest(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    category: Optional[str] = None
