import logging
from typing import Iterable, Optional, Sequence

from src.config.analyzer_config import ANALYZER_CONFIG
from src.email_processing.base import BaseLLMProvider, RelevanceVerdict
from src.email_processing.handlers.content import normalize_for_keyword_match, truncate

logger = logging.getLogger(__name__)

BUSINESS_KEYWORDS = [
    "order", "purchase", "invoice", "receipt", "billing", "charge", "payment",
    "tracking", "shipment", "shipping", "delivery", "delivered", "eta",
    "return", "refund", "exchange", "replacement", "cancel", "cancellation",
    "address", "support", "help", "issue", "problem", "broken", "damaged",
    "missing", "late", "delay", "complaint", "warranty", "subscription",
]


def has_excluded_labels(labels: Optional[Iterable[str]]) -> bool:
    excluded = set(ANALYZER_CONFIG["relevance"]["excluded_labels"])
    return any(isinstance(label, str) and label in excluded for label in (labels or ()))


def matches_business_keywords(subject: Optional[str], body: Optional[str]) -> bool:
    """Substring match of any business keyword against subject and body."""
    text = normalize_for_keyword_match(f"{subject or ''}\n{body or ''}")
    if not text:
        return False
    return any(keyword in text for keyword in BUSINESS_KEYWORDS)


class RelevanceFilter:
    """
    Decides whether an inbound message is a customer message worth keeping.

    Mailbox labels for spam, trash and promotional tabs reject outright and
    a business keyword accepts without a model call. Everything else goes
    to the providers; when none of them answers the message is kept, since
    dropping a real customer is worse than keeping a newsletter.
    """

    def __init__(self, providers: Sequence[BaseLLMProvider] = ()):
        self.providers = list(providers)
        self.max_input_chars = ANALYZER_CONFIG["relevance"]["max_input_chars"]

    async def is_relevant(self, subject: Optional[str], body: Optional[str],
                          labels: Optional[Iterable[str]] = None) -> RelevanceVerdict:
        if has_excluded_labels(labels):
            return RelevanceVerdict(relevant=False, reason="excluded mailbox label", source="labels")

        if matches_business_keywords(subject, body):
            return RelevanceVerdict(relevant=True, reason="business keyword", source="keywords")

        if not (subject or "").strip() and not (body or "").strip():
            return RelevanceVerdict(relevant=False, reason="empty message", source="keywords")

        for provider in self.providers:
            try:
                verdict = await provider.check_relevance(subject or "", truncate(body or "", self.max_input_chars))
                logger.info(f"Relevance decided by {provider.name}: {verdict.relevant}")
                return verdict
            except Exception as e:
                logger.warning(f"Relevance check with {provider.name} failed: {e}")

        return RelevanceVerdict(relevant=True, reason="relevance check unavailable", source="fail-open")
