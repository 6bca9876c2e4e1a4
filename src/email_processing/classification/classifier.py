import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple

from src.config.analyzer_config import ANALYZER_CONFIG
from src.email_processing.base import BaseLLMProvider
from src.email_processing.handlers.content import (
    decode_html_entities,
    normalize_for_keyword_match,
    truncate,
)
from src.email_processing.models import (
    AnalysisResult,
    MessageCategory,
    ResponseCost,
    Sentiment,
)

logger = logging.getLogger(__name__)


class MessageClassifier:
    """
    Classifies customer messages by category, sentiment and response cost.
    Uses AI-first approach with keyword-pattern fallback and never raises.
    """

    def __init__(self, providers: Sequence[BaseLLMProvider] = ()):
        """Initialize classifier with ordered providers and keyword fallbacks."""
        self.providers = list(providers)
        self.max_input_chars = ANALYZER_CONFIG["classification"]["max_input_chars"]
        self.max_tags = ANALYZER_CONFIG["classification"]["max_tags"]

        # Bucket order breaks ties between equally matched categories
        self.category_patterns: List[Tuple[MessageCategory, str, List[str]]] = [
            (MessageCategory.COMPLAINT, "complaint", [
                "unacceptable", "terrible", "worst", "disappointed", "complaint",
                "never again", "scam", "furious", "ridiculous", "rude", "chargeback"
            ]),
            (MessageCategory.SHIPPING, "shipping", [
                "shipping", "shipped", "ship", "tracking", "track", "delivery",
                "delivered", "arrive", "arrived", "package", "parcel", "courier",
                "in transit", "where is my order", "eta", "postage"
            ]),
            (MessageCategory.RETURNS, "returns", [
                "return", "refund", "exchange", "money back", "send it back",
                "replacement", "wrong size", "cancel my order", "cancellation"
            ]),
            (MessageCategory.CUSTOM, "custom", [
                "custom", "personalize", "personalise", "personalized", "engrave",
                "engraving", "bespoke", "commission", "made to order", "bulk order"
            ]),
            (MessageCategory.PRODUCT, "product", [
                "size", "color", "colour", "material", "in stock", "restock",
                "available", "dimensions", "product", "item", "broken", "damaged",
                "defective", "quality"
            ]),
        ]

        self.negative_patterns = [
            "angry", "upset", "disappointed", "unacceptable", "terrible", "awful",
            "worst", "broken", "damaged", "never arrived", "still waiting", "frustrated",
            "ridiculous", "not happy", "scam", "complaint", "late"
        ]
        self.positive_patterns = [
            "thank", "thanks", "love", "great", "amazing", "awesome", "wonderful",
            "happy", "perfect", "beautiful", "excellent", "appreciate"
        ]

    async def classify(self, text: Optional[str]) -> AnalysisResult:
        """
        Classify one message body.

        Args:
            text: Raw message body, entities allowed

        Returns:
            AnalysisResult; the default (General, Neutral, Low, no tags) for
            empty bodies or when nothing else produced a result
        """
        if not isinstance(text, str) or not text.strip():
            return AnalysisResult.default()

        content = truncate(decode_html_entities(text).strip(), self.max_input_chars)

        for provider in self.providers:
            try:
                result = await provider.classify(content)
                logger.info(
                    f"Classified by {provider.name}: {result.category.value}/"
                    f"{result.sentiment.value}/{result.predicted_cost.value}"
                )
                return result
            except Exception as e:
                logger.warning(f"Classification with {provider.name} failed: {e}, trying next")

        heuristic = self.classify_by_keywords(content)
        if heuristic is not None:
            logger.info(f"Classified by keyword heuristic: {heuristic.category.value}")
            return heuristic

        logger.info("No classification signal found, using default")
        return AnalysisResult.default()

    def _count_matches(self, text: str, patterns: List[str]) -> List[str]:
        """Patterns that occur in text on word boundaries."""
        return [p for p in patterns if re.search(rf"\b{re.escape(p)}\b", text)]

    def classify_by_keywords(self, text: str) -> Optional[AnalysisResult]:
        """
        Fallback keyword classification.

        Returns None when no category bucket matches.
        """
        normalized = normalize_for_keyword_match(text)
        scores: Dict[MessageCategory, int] = {}
        labels: List[str] = []
        for category, label, patterns in self.category_patterns:
            hits = self._count_matches(normalized, patterns)
            if hits:
                scores[category] = len(hits)
                labels.append(label)

        if not scores:
            return None

        best = max(scores.values())
        category = next(c for c, _, _ in self.category_patterns if scores.get(c) == best)
        sentiment = self._sentiment(normalized)

        if category == MessageCategory.COMPLAINT or sentiment == Sentiment.NEGATIVE:
            cost = ResponseCost.HIGH
        elif category in (MessageCategory.RETURNS, MessageCategory.CUSTOM):
            cost = ResponseCost.MEDIUM
        else:
            cost = ResponseCost.LOW

        return AnalysisResult(
            category=category,
            sentiment=sentiment,
            predicted_cost=cost,
            tags=labels[:self.max_tags]
        )

    def _sentiment(self, normalized: str) -> Sentiment:
        negative = len(self._count_matches(normalized, self.negative_patterns))
        positive = len(self._count_matches(normalized, self.positive_patterns))
        if negative > positive:
            return Sentiment.NEGATIVE
        if positive > negative:
            return Sentiment.POSITIVE
        return Sentiment.NEUTRAL
