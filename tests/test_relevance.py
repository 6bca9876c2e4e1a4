"""
Tests for the inbound relevance gate.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.email_processing.base import RelevanceVerdict
from src.email_processing.errors import ProviderError
from src.email_processing.handlers.relevance import (
    RelevanceFilter,
    has_excluded_labels,
    matches_business_keywords,
)

NEWSLETTER_SUBJECT = "Weekly newsletter"
NEWSLETTER_BODY = "Ten new recipes to try this weekend."


def make_judge(name, verdict=None, error=None):
    provider = MagicMock()
    provider.name = name
    provider.check_relevance = AsyncMock(return_value=verdict, side_effect=error)
    return provider


class TestHelpers:
    def test_excluded_labels(self):
        assert has_excluded_labels(["INBOX", "CATEGORY_PROMOTIONS"])
        assert not has_excluded_labels(["INBOX", "UNREAD"])
        assert not has_excluded_labels(None)

    def test_keywords_are_substrings(self):
        assert matches_business_keywords("Reordering", "")
        assert matches_business_keywords(None, "My parcel is LATE")
        assert not matches_business_keywords(NEWSLETTER_SUBJECT, NEWSLETTER_BODY)


class TestRelevanceFilter:
    @pytest.mark.asyncio
    async def test_spam_label_rejects_before_keywords(self):
        judge = make_judge("groq")
        verdict = await RelevanceFilter([judge]).is_relevant("Your order", "refund now", ["SPAM"])
        assert verdict.relevant is False
        assert verdict.source == "labels"
        judge.check_relevance.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_keyword_accepts_without_model(self):
        judge = make_judge("groq")
        verdict = await RelevanceFilter([judge]).is_relevant("Reordering question", "", ["INBOX"])
        assert verdict.relevant is True
        assert verdict.source == "keywords"
        judge.check_relevance.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_message_is_irrelevant(self):
        verdict = await RelevanceFilter().is_relevant("  ", None)
        assert verdict.relevant is False

    @pytest.mark.asyncio
    async def test_provider_verdict(self):
        judge = make_judge("groq", verdict=RelevanceVerdict(False, "newsletter", "groq"))
        verdict = await RelevanceFilter([judge]).is_relevant(NEWSLETTER_SUBJECT, NEWSLETTER_BODY)
        assert verdict.relevant is False
        assert verdict.source == "groq"
        judge.check_relevance.assert_awaited_once_with(NEWSLETTER_SUBJECT, NEWSLETTER_BODY)

    @pytest.mark.asyncio
    async def test_next_provider_after_failure(self):
        failing = make_judge("groq", error=ProviderError("groq", "down"))
        working = make_judge("ollama", verdict=RelevanceVerdict(True, "question", "ollama"))
        verdict = await RelevanceFilter([failing, working]).is_relevant(NEWSLETTER_SUBJECT, NEWSLETTER_BODY)
        assert verdict.relevant is True
        assert verdict.source == "ollama"

    @pytest.mark.asyncio
    async def test_fails_open(self):
        failing = make_judge("groq", error=ProviderError("groq", "down"))
        verdict = await RelevanceFilter([failing]).is_relevant(NEWSLETTER_SUBJECT, NEWSLETTER_BODY)
        assert verdict.relevant is True
        assert verdict.source == "fail-open"
