"""
Shared data models for inbox processing.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


class _CoercibleEnum(str, Enum):
    """String enum that maps unknown values to a default member."""

    @classmethod
    def coerce(cls, value, default=None):
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            candidate = value.strip()
            for member in cls:
                if member.value.lower() == candidate.lower():
                    return member
        return default if default is not None else cls.default()

    @classmethod
    def default(cls):
        raise NotImplementedError


class Channel(_CoercibleEnum):
    """Channels a customer message can arrive through."""
    EMAIL = "Email"
    INSTAGRAM = "Instagram"
    ETSY = "Etsy"
    SHOPIFY = "Shopify"

    @classmethod
    def default(cls):
        return cls.EMAIL


class MessageCategory(_CoercibleEnum):
    """Closed set of categories a message can be classified into."""
    SHIPPING = "Shipping"
    RETURNS = "Returns"
    PRODUCT = "Product"
    CUSTOM = "Custom"
    GENERAL = "General"
    COMPLAINT = "Complaint"
    OTHER = "Other"

    @classmethod
    def default(cls):
        return cls.GENERAL


class Sentiment(_CoercibleEnum):
    POSITIVE = "Positive"
    NEUTRAL = "Neutral"
    NEGATIVE = "Negative"

    @classmethod
    def default(cls):
        return cls.NEUTRAL


class ResponseCost(_CoercibleEnum):
    """How costly it is for the business to leave a message unanswered."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    @classmethod
    def default(cls):
        return cls.LOW


class ResponseMode(_CoercibleEnum):
    """Bulk reply behaviour: store drafts or send immediately."""
    DRAFT = "Draft"
    AUTO_SEND = "AutoSend"

    @classmethod
    def default(cls):
        return cls.DRAFT


@dataclass
class Message:
    """A single inbound customer message."""
    id: str
    sender_name: str
    sender_handle: str
    body: str
    channel: Channel = Channel.EMAIL
    subject: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    is_read: bool = False
    is_replied: bool = False
    category: MessageCategory = MessageCategory.GENERAL
    sentiment: Sentiment = Sentiment.NEUTRAL
    predicted_cost: ResponseCost = ResponseCost.LOW
    tags: List[str] = field(default_factory=list)
    suggested_reply: Optional[str] = None
    thread_id: Optional[str] = None

    def apply_analysis(self, analysis: "AnalysisResult") -> None:
        """Copy a classification result onto this message."""
        self.category = analysis.category
        self.sentiment = analysis.sentiment
        self.predicted_cost = analysis.predicted_cost
        self.tags = list(analysis.tags)


@dataclass
class BusinessPolicy:
    """Free-text business policy used as context for drafted replies."""
    id: str
    title: str
    content: str
    category: Optional[str] = None


@dataclass
class AnalysisResult:
    """Classification of one message. Derived, never stored on its own."""
    category: MessageCategory
    sentiment: Sentiment
    predicted_cost: ResponseCost
    tags: List[str] = field(default_factory=list)

    @classmethod
    def default(cls) -> "AnalysisResult":
        return cls(
            category=MessageCategory.GENERAL,
            sentiment=Sentiment.NEUTRAL,
            predicted_cost=ResponseCost.LOW,
            tags=[],
        )


class SimilarityMethod(str, Enum):
    """Tier of the similarity pipeline that produced a result."""
    EXACT = "exact"
    EMBEDDING = "embedding"
    LLM = "llm"
    NONE = "none"


@dataclass
class SimilarityMatch:
    message_id: str
    score: float
    method: SimilarityMethod


@dataclass
class SimilarityResult:
    """Ordered matches for one target plus the tier that produced them."""
    matches: List[SimilarityMatch] = field(default_factory=list)
    method: SimilarityMethod = SimilarityMethod.NONE

    @property
    def ids(self) -> List[str]:
        return [match.message_id for match in self.matches]


@dataclass
class ReplyPlan:
    """Personalised reply for one bulk-reply recipient."""
    message_id: str
    recipient_name: str
    recipient_handle: str
    reply_text: str
