"""
Tests for the Groq and Ollama providers and the provider factory.

Network clients are mocked: Groq through a MagicMock standing in for
EnhancedGroqClient, Ollama by patching the client's JSON helpers.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import groq
import httpx
import pytest

from src.email_processing.analyzers.groq_provider import GroqProvider
from src.email_processing.analyzers.ollama_provider import OllamaProvider
from src.email_processing.base import BaseLLMProvider, DraftRequest
from src.email_processing.errors import MalformedResponseError, ProviderError
from src.email_processing.models import MessageCategory, ResponseCost, Sentiment
from src.integrations.groq.client import EnhancedGroqClient
from src.integrations.groq.model_manager import ModelManager
from src.integrations.ollama.client import ModelResolutionCache, OllamaClient
from src.integrations.provider_factory import ProviderFactory


def completion(content):
    """Shape of a Groq chat completion response."""
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def groq_client():
    client = MagicMock()
    client.process_with_retry = AsyncMock()
    return client


class TestGroqProvider:
    @pytest.mark.asyncio
    async def test_classify(self, groq_client):
        groq_client.process_with_retry.return_value = completion(json.dumps({
            "category": "Shipping",
            "sentiment": "Negative",
            "predicted_cost": "High",
            "tags": ["late", "tracking"]
        }))
        provider = GroqProvider(client=groq_client, model_manager=ModelManager())

        result = await provider.classify("Where is my package?")

        assert result.category == MessageCategory.SHIPPING
        assert result.sentiment == Sentiment.NEGATIVE
        assert result.predicted_cost == ResponseCost.HIGH
        assert result.tags == ["late", "tracking"]

        kwargs = groq_client.process_with_retry.await_args.kwargs
        assert kwargs["model"] == "openai/gpt-oss-120b"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["temperature"] == 0.0
        assert kwargs["max_completion_tokens"] == 300
        assert "Where is my package?" in kwargs["messages"][-1]["content"]

    @pytest.mark.asyncio
    async def test_draft_is_plain_text(self, groq_client):
        groq_client.process_with_retry.return_value = completion("  Hi {NAME}, it ships Monday.  ")
        provider = GroqProvider(client=groq_client, model_manager=ModelManager())

        draft = await provider.draft_reply(DraftRequest(message_text="When will it ship?", business_name="Clay Studio"))

        assert draft == "Hi {NAME}, it ships Monday."
        kwargs = groq_client.process_with_retry.await_args.kwargs
        assert "response_format" not in kwargs
        assert "Clay Studio" in kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_malformed_reply(self, groq_client):
        groq_client.process_with_retry.return_value = completion("I think it's about shipping.")
        provider = GroqProvider(client=groq_client, model_manager=ModelManager())
        with pytest.raises(MalformedResponseError):
            await provider.classify("Where is my package?")

    @pytest.mark.asyncio
    async def test_empty_reply(self, groq_client):
        groq_client.process_with_retry.return_value = completion("")
        provider = GroqProvider(client=groq_client, model_manager=ModelManager())
        with pytest.raises(ProviderError):
            await provider.judge_similarity("target", [{"id": "a", "body": "x"}])

    @pytest.mark.asyncio
    async def test_repeated_failures_switch_to_fallback_model(self, groq_client):
        groq_client.process_with_retry.side_effect = ProviderError("groq", "rate limited")
        manager = ModelManager()
        provider = GroqProvider(client=groq_client, model_manager=manager)

        for _ in range(3):
            with pytest.raises(ProviderError):
                await provider.classify("hello")

        assert manager.get_model_config("message_classification")["name"] == "llama-3.1-8b-instant"
        assert manager.get_model_config("reply_drafting")["name"] == "openai/gpt-oss-120b"

    def test_forced_model(self):
        manager = ModelManager(force_model="custom-model")
        assert manager.get_model_config("relevance_check")["name"] == "custom-model"

    def test_unknown_task(self):
        with pytest.raises(ValueError):
            ModelManager().get_model_config("translation")


class TestModelManager:
    def test_failures_in_one_tier_do_not_move_another(self):
        manager = ModelManager()
        for _ in range(3):
            manager.record_performance("openai/gpt-oss-120b", "message_classification", success=False)

        assert manager.get_model_config("relevance_check")["name"] == "llama-3.1-8b-instant"
        assert manager.get_model_config("reply_drafting")["name"] == "openai/gpt-oss-120b"

    def test_success_resets_failure_streak(self):
        manager = ModelManager()
        for success in (False, False, True, False, False):
            manager.record_performance("openai/gpt-oss-120b", "reply_drafting", success=success)

        assert manager.get_model_config("reply_drafting")["name"] == "openai/gpt-oss-120b"

    def test_history_is_bounded(self):
        manager = ModelManager(history_size=5)
        for i in range(12):
            manager.record_performance("openai/gpt-oss-120b", "reply_drafting", success=i >= 10)

        assert len(manager.performance_metrics['models']["openai/gpt-oss-120b"]) == 5
        assert manager.success_rate("openai/gpt-oss-120b") == pytest.approx(0.4)
        assert manager.success_rate("unused-model") is None

    def test_history_persists_to_metrics_file(self, tmp_path):
        metrics_file = tmp_path / "groq_models.json"
        manager = ModelManager(metrics_file=str(metrics_file), history_size=3)
        for _ in range(4):
            manager.record_performance("llama-3.1-8b-instant", "relevance_check", success=True, duration=0.2)

        stored = json.loads(metrics_file.read_text())
        assert len(stored["models"]["llama-3.1-8b-instant"]) == 3

        reloaded = ModelManager(metrics_file=str(metrics_file), history_size=3)
        assert reloaded.success_rate("llama-3.1-8b-instant") == 1.0


class TestEnhancedGroqClient:
    @pytest.fixture
    def client(self):
        with patch('src.integrations.groq.client.load_dotenv'):
            client = EnhancedGroqClient(api_key="test-key", backoff_seconds=0)
        client.client = MagicMock()
        return client

    @pytest.mark.asyncio
    async def test_retries_transient_errors(self, client):
        client.client.chat.completions.create.side_effect = [RuntimeError("503"), completion("ok")]

        with patch('src.integrations.groq.client.asyncio.sleep', new=AsyncMock()) as sleep:
            response = await client.process_with_retry(
                [{"role": "user", "content": "hi"}], max_retries=3, model="m", temperature=0.0
            )

        assert response.choices[0].message.content == "ok"
        sleep.assert_awaited_once()
        kwargs = client.client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "m"
        assert kwargs["temperature"] == 0.0
        metrics = client.get_performance_metrics()
        assert metrics["total_requests"] == 1
        assert metrics["total_errors"] == 1
        assert metrics["success_rate"] == 50.0

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, client):
        client.client.chat.completions.create.side_effect = RuntimeError("timeout")

        with patch('src.integrations.groq.client.asyncio.sleep', new=AsyncMock()):
            with pytest.raises(ProviderError, match="failed after 2 attempts"):
                await client.process_with_retry([{"role": "user", "content": "hi"}], max_retries=2)

        assert client.client.chat.completions.create.call_count == 2

    @pytest.mark.asyncio
    async def test_rejected_request_is_not_retried(self, client):
        response = httpx.Response(401, request=httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions"))
        client.client.chat.completions.create.side_effect = groq.AuthenticationError(
            "invalid api key", response=response, body=None
        )

        with pytest.raises(ProviderError, match="rejected"):
            await client.process_with_retry([{"role": "user", "content": "hi"}], max_retries=3)

        assert client.client.chat.completions.create.call_count == 1

    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("GROQ_API_KEY", raising=False)
        with patch('src.integrations.groq.client.load_dotenv'):
            with pytest.raises(ValueError):
                EnhancedGroqClient()


class TestOllamaProvider:
    @pytest.fixture
    def client(self):
        return OllamaClient(base_url="http://ollama.test")

    @pytest.mark.asyncio
    async def test_check_relevance(self, client):
        post = AsyncMock(return_value=(200, {"message": {"content": '{"relevant": false, "reason": "newsletter"}'}}))
        provider = OllamaProvider(client=client, model="llama3")
        with patch.object(client, "_post_json", post):
            verdict = await provider.check_relevance("Weekly digest", "Top stories this week")

        assert verdict.relevant is False
        assert verdict.reason == "newsletter"
        assert verdict.source == "ollama"

        path, payload = post.await_args.args
        assert path == "/api/chat"
        assert payload["model"] == "llama3"
        assert payload["stream"] is False
        assert payload["format"] == "json"
        assert payload["options"]["num_predict"] == 150

    @pytest.mark.asyncio
    async def test_chat_error_status(self, client):
        with patch.object(client, "_post_json", AsyncMock(return_value=(500, {"error": "overloaded"}))):
            with pytest.raises(ProviderError):
                await client.chat([{"role": "user", "content": "hi"}], model="llama3")

    @pytest.mark.asyncio
    async def test_chat_without_content(self, client):
        with patch.object(client, "_post_json", AsyncMock(return_value=(200, {"message": {}}))):
            with pytest.raises(ProviderError):
                await client.chat([{"role": "user", "content": "hi"}], model="llama3")

    @pytest.mark.asyncio
    async def test_resolves_first_installed_model_once(self, client):
        cache = ModelResolutionCache()
        get = AsyncMock(return_value=(200, {"models": [{"name": "mistral:7b"}, {"name": "llama3"}]}))
        with patch.object(client, "_get_json", get):
            first = await client.resolve_chat_model(cache, preferred="gpt-oss:120b-cloud")
            second = await client.resolve_chat_model(cache, preferred="gpt-oss:120b-cloud")

        assert first == second == "mistral:7b"
        assert get.await_count == 1

    @pytest.mark.asyncio
    async def test_preferred_model_when_installed(self, client):
        cache = ModelResolutionCache()
        get = AsyncMock(return_value=(200, {"models": [{"name": "mistral:7b"}, {"name": "llama3"}]}))
        with patch.object(client, "_get_json", get):
            assert await client.resolve_chat_model(cache, preferred="llama3") == "llama3"

    @pytest.mark.asyncio
    async def test_configured_model_skips_discovery(self, client):
        get = AsyncMock()
        with patch.object(client, "_get_json", get):
            assert await client.resolve_chat_model(ModelResolutionCache(), configured="phi3") == "phi3"
        get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_listing_failure_uses_preferred(self, client):
        cache = ModelResolutionCache()
        with patch.object(client, "_get_json", AsyncMock(return_value=(503, None))):
            assert await client.resolve_chat_model(cache, preferred="llama3") == "llama3"
        assert cache.model is None


class _EchoProvider(BaseLLMProvider):
    name = "echo"


class TestProviderFactory:
    @pytest.fixture(autouse=True)
    def isolated_factory(self, monkeypatch):
        monkeypatch.delenv("LLM_PROVIDER_ORDER", raising=False)
        monkeypatch.delenv("LLM_PROVIDER", raising=False)
        monkeypatch.delenv("GROQ_API_KEY", raising=False)
        monkeypatch.delenv("OLLAMA_CHAT_MODEL", raising=False)
        ProviderFactory.reset()
        with patch("src.integrations.provider_factory.load_dotenv"), \
                patch("src.integrations.groq.client.load_dotenv"):
            yield
        ProviderFactory._registry.pop("echo", None)
        ProviderFactory.reset()

    def test_default_order(self):
        assert ProviderFactory.configured_order() == ["groq", "ollama"]

    @pytest.mark.parametrize("value,expected", [
        ("groq", ["groq", "ollama"]),
        ("ollama", ["ollama"]),
        ("none", []),
    ])
    def test_order_from_llm_provider(self, monkeypatch, value, expected):
        monkeypatch.setenv("LLM_PROVIDER", value)
        assert ProviderFactory.configured_order() == expected

    def test_explicit_order_wins(self, monkeypatch):
        monkeypatch.setenv("LLM_PROVIDER", "none")
        monkeypatch.setenv("LLM_PROVIDER_ORDER", "ollama")
        assert ProviderFactory.configured_order() == ["ollama"]
        assert ProviderFactory.configured_order(" Groq, ollama ,") == ["groq", "ollama"]

    def test_groq_without_api_key(self):
        with pytest.raises(ValueError):
            ProviderFactory.get_provider("groq")

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            ProviderFactory.get_provider("gemini")

    def test_chain_skips_unavailable_providers(self):
        chain = ProviderFactory.build_chain("groq,ollama")
        assert [p.name for p in chain] == ["ollama"]

    def test_instances_are_cached(self):
        assert ProviderFactory.get_provider("ollama") is ProviderFactory.get_provider("ollama")

    def test_register_provider(self):
        ProviderFactory.register_provider("echo", _EchoProvider)
        assert isinstance(ProviderFactory.get_provider("echo"), _EchoProvider)
        with pytest.raises(ValueError):
            ProviderFactory.register_provider("echo", _EchoProvider)
