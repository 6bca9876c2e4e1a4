"""
Tests for MessageClassifier and ClassificationGuard.

The classifier is tested with mocked providers for the model path and
with real message text for the keyword fallback.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.email_processing.classification.classifier import MessageClassifier
from src.email_processing.classification.guard import ClassificationGuard
from src.email_processing.errors import MalformedResponseError, ProviderError
from src.email_processing.models import AnalysisResult, MessageCategory, ResponseCost, Sentiment


def make_provider(name, result=None, error=None):
    provider = MagicMock()
    provider.name = name
    provider.classify = AsyncMock(return_value=result, side_effect=error)
    return provider


class TestMessageClassifier:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", ["", "   \n\t", None])
    async def test_empty_body_gets_default(self, body):
        provider = make_provider("groq", result=AnalysisResult(
            MessageCategory.SHIPPING, Sentiment.NEGATIVE, ResponseCost.HIGH, ["late"]
        ))
        result = await MessageClassifier([provider]).classify(body)

        assert result == AnalysisResult(MessageCategory.GENERAL, Sentiment.NEUTRAL, ResponseCost.LOW, [])
        provider.classify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_first_valid_provider_wins(self):
        expected = AnalysisResult(MessageCategory.RETURNS, Sentiment.NEGATIVE, ResponseCost.MEDIUM, ["refund"])
        failing = make_provider("groq", error=ProviderError("groq", "rate limited"))
        malformed = make_provider("other", error=MalformedResponseError("other", "no JSON"))
        working = make_provider("ollama", result=expected)

        result = await MessageClassifier([failing, malformed, working]).classify("I want a refund")

        assert result == expected
        failing.classify.assert_awaited_once()
        malformed.classify.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_provider_receives_decoded_text(self):
        provider = make_provider("groq", result=AnalysisResult.default())
        await MessageClassifier([provider]).classify("  it&#39;s broken  ")
        provider.classify.assert_awaited_once_with("it's broken")

    @pytest.mark.asyncio
    async def test_input_is_truncated(self):
        provider = make_provider("groq", result=AnalysisResult.default())
        await MessageClassifier([provider]).classify("a" * 10000)
        assert len(provider.classify.await_args.args[0]) == 4000

    @pytest.mark.asyncio
    async def test_keyword_fallback_shipping(self):
        failing = make_provider("groq", error=ProviderError("groq", "down"))
        result = await MessageClassifier([failing]).classify(
            "Where is my package? The tracking number doesn't work."
        )
        assert result.category == MessageCategory.SHIPPING
        assert result.sentiment == Sentiment.NEUTRAL
        assert result.predicted_cost == ResponseCost.LOW
        assert result.tags == ["shipping"]

    @pytest.mark.asyncio
    async def test_keyword_fallback_complaint_is_high_cost(self):
        result = await MessageClassifier().classify(
            "This is unacceptable, the worst service ever. I want a refund."
        )
        assert result.category == MessageCategory.COMPLAINT
        assert result.sentiment == Sentiment.NEGATIVE
        assert result.predicted_cost == ResponseCost.HIGH
        assert "complaint" in result.tags

    @pytest.mark.asyncio
    async def test_keyword_fallback_custom_is_medium_cost(self):
        result = await MessageClassifier().classify("Could you engrave initials, as a custom gift?")
        assert result.category == MessageCategory.CUSTOM
        assert result.predicted_cost == ResponseCost.MEDIUM

    @pytest.mark.asyncio
    async def test_no_signal_gives_default(self):
        result = await MessageClassifier().classify("Hello, hope you are well!")
        assert result == AnalysisResult.default()

    def test_keywords_match_whole_words_only(self):
        classifier = MessageClassifier()
        assert classifier.classify_by_keywords("I love your shipment of ideas") is None
        assert classifier.classify_by_keywords("when will it ship") is not None


class TestClassificationGuard:
    def test_acquire_and_release(self):
        guard = ClassificationGuard()
        assert guard.try_acquire("u1", "m1")
        assert not guard.try_acquire("u1", "m1")
        assert guard.is_active("u1", "m1")
        guard.release("u1", "m1")
        assert not guard.is_active("u1", "m1")
        assert guard.try_acquire("u1", "m1")

    @pytest.mark.asyncio
    async def test_hold_releases_on_error(self):
        guard = ClassificationGuard()
        with pytest.raises(RuntimeError):
            async with guard.hold("u1", "m1") as acquired:
                assert acquired
                raise RuntimeError("boom")
        assert guard.active_ids == set()

    @pytest.mark.asyncio
    async def test_concurrent_hold_only_one_acquires(self):
        guard = ClassificationGuard()
        started = asyncio.Event()
        results = []

        async def worker():
            async with guard.hold("u1", "m1") as acquired:
                results.append(acquired)
                started.set()
                await asyncio.sleep(0.01)

        async def second():
            await started.wait()
            async with guard.hold("u1", "m1") as acquired:
                results.append(acquired)

        await asyncio.gather(worker(), second())
        assert results == [True, False]
        assert not guard.is_active("u1", "m1")

    @pytest.mark.asyncio
    async def test_second_hold_does_not_release_first(self):
        guard = ClassificationGuard()
        async with guard.hold("u1", "m1"):
            async with guard.hold("u1", "m1") as acquired:
                assert not acquired
            assert guard.is_active("u1", "m1")

    def test_same_message_id_in_different_mailboxes(self):
        guard = ClassificationGuard()
        assert guard.try_acquire("u1", "gm-1")
        assert guard.try_acquire("u2", "gm-1")
        guard.release("u1", "gm-1")
        assert not guard.is_active("u1", "gm-1")
        assert guard.is_active("u2", "gm-1")
