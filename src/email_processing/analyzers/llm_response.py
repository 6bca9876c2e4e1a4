"""
Parsing and validation of structured language-model output.

Models are asked for a single JSON object but frequently wrap it in prose
or code fences. extract_json_object recovers the first decodable object;
the pydantic schemas below then validate it so that nothing outside the
closed enumerations leaks into the rest of the pipeline.

Design Considerations:
- A missing or unknown category makes the whole payload malformed, the
  caller moves on to the next provider
- Sentiment and predicted cost degrade to Neutral and Low instead
- Similarity ids are filtered to strings here and to submitted ids by
  the caller
"""

import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from src.email_processing.errors import MalformedResponseError
from src.email_processing.models import (
    AnalysisResult,
    MessageCategory,
    ResponseCost,
    Sentiment,
)

logger = logging.getLogger(__name__)

MAX_TAGS = 3


def extract_json_object(text: Optional[str], provider: str = "llm") -> Dict[str, Any]:
    """
    Pull the first JSON object out of a model reply.

    Args:
        text: Raw completion text
        provider: Provider name used in the raised error

    Returns:
        Decoded JSON object

    Raises:
        MalformedResponseError: If no JSON object can be decoded
    """
    if not isinstance(text, str) or not text.strip():
        raise MalformedResponseError(provider, "empty response")

    stripped = text.strip()
    try:
        parsed = json.loads(stripped)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    decoder = json.JSONDecoder()
    start = stripped.find("{")
    while start != -1:
        try:
            parsed, _ = decoder.raw_decode(stripped, start)
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass
        start = stripped.find("{", start + 1)

    raise MalformedResponseError(provider, f"no JSON object in response: {stripped[:120]!r}")


class ClassificationPayload(BaseModel):
    category: MessageCategory
    sentiment: Sentiment = Sentiment.NEUTRAL
    predicted_cost: ResponseCost = ResponseCost.LOW
    tags: List[str] = Field(default_factory=list)
    reason: Optional[str] = None

    model_config = {"extra": "ignore", "populate_by_name": True}

    @field_validator("category", mode="before")
    @classmethod
    def validate_category(cls, value):
        category = MessageCategory.coerce(value, default=False)
        if category is False:
            raise ValueError(f"unknown category: {value!r}")
        return category

    @field_validator("sentiment", mode="before")
    @classmethod
    def coerce_sentiment(cls, value):
        return Sentiment.coerce(value)

    @field_validator("predicted_cost", mode="before")
    @classmethod
    def coerce_cost(cls, value):
        return ResponseCost.coerce(value)

    @field_validator("tags", mode="before")
    @classmethod
    def clean_tags(cls, value):
        if not isinstance(value, list):
            return []
        return [str(tag).strip() for tag in value if isinstance(tag, str) and tag.strip()]

    def to_analysis(self) -> AnalysisResult:
        tags = self.tags[:MAX_TAGS] or [self.category.value]
        return AnalysisResult(
            category=self.category,
            sentiment=self.sentiment,
            predicted_cost=self.predicted_cost,
            tags=tags,
        )


class SimilarityPayload(BaseModel):
    similar_ids: List[str] = Field(default_factory=list, alias="similarIds")

    model_config = {"extra": "ignore", "populate_by_name": True}

    @field_validator("similar_ids", mode="before")
    @classmethod
    def keep_strings(cls, value):
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, str)]


class RelevancePayload(BaseModel):
    relevant: bool
    reason: Optional[str] = None

    model_config = {"extra": "ignore"}


def parse_classification(text: str, provider: str) -> AnalysisResult:
    """Validate a classification reply, raising MalformedResponseError on failure."""
    data = extract_json_object(text, provider)
    if "predicted_cost" not in data and "predictedCost" in data:
        data["predicted_cost"] = data["predictedCost"]
    try:
        return ClassificationPayload.model_validate(data).to_analysis()
    except ValidationError as e:
        raise MalformedResponseError(provider, f"invalid classification payload: {e.errors()[0]['msg']}")


def parse_similarity(text: str, provider: str) -> List[str]:
    data = extract_json_object(text, provider)
    try:
        return SimilarityPayload.model_validate(data).similar_ids
    except ValidationError as e:
        raise MalformedResponseError(provider, f"invalid similarity payload: {e.errors()[0]['msg']}")


def parse_relevance(text: str, provider: str) -> RelevancePayload:
    data = extract_json_object(text, provider)
    try:
        return RelevancePayload.model_validate(data)
    except ValidationError as e:
        raise MalformedResponseError(provider, f"invalid relevance payload: {e.errors()[0]['msg']}")
