"""
Ollama HTTP Client

Async client for a self-hosted Ollama server covering the three calls the
inbox assistant needs: chat completions, installed-model discovery and
embeddings.

Design Considerations:
- aiohttp session per call, no long-lived connection state
- Discovery results (chat model, embedding endpoint) live in explicit
  cache objects owned by the caller, so tests and processes can reset them
- Every failure surfaces as ProviderError or EmbeddingError
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
from dotenv import load_dotenv

from src.config.analyzer_config import ANALYZER_CONFIG
from src.email_processing.errors import EmbeddingError, ProviderError

logger = logging.getLogger(__name__)

EMBED_ENDPOINT = "/api/embed"
LEGACY_EMBED_ENDPOINT = "/api/embeddings"
NO_ENDPOINT = "none"


@dataclass
class ModelResolutionCache:
    """Remembers which chat model the server offered."""
    model: Optional[str] = None

    def reset(self) -> None:
        self.model = None


@dataclass
class EmbeddingEndpointCache:
    """
    Remembers which embedding endpoint worked.

    endpoint is None until the first attempt, then one of EMBED_ENDPOINT,
    LEGACY_EMBED_ENDPOINT or NO_ENDPOINT when the server cannot embed.
    """
    endpoint: Optional[str] = None

    @property
    def unavailable(self) -> bool:
        return self.endpoint == NO_ENDPOINT

    def reset(self) -> None:
        self.endpoint = None


def parse_embedding_response(data: Any) -> Optional[List[List[float]]]:
    """
    Read vectors out of any of the accepted response shapes.

    Accepts {"embeddings": [[...]]}, {"data": [{"embedding": [...]}]} and
    {"embedding": [...]}. Returns None for anything else.
    """
    if not isinstance(data, dict):
        return None
    if isinstance(data.get("embeddings"), list):
        return [[float(v) for v in row] if isinstance(row, list) else [] for row in data["embeddings"]]
    if isinstance(data.get("data"), list):
        return [
            [float(v) for v in item["embedding"]]
            if isinstance(item, dict) and isinstance(item.get("embedding"), list) else []
            for item in data["data"]
        ]
    if isinstance(data.get("embedding"), list):
        return [[float(v) for v in data["embedding"]]]
    return None


class OllamaClient:
    """Thin async wrapper over the Ollama REST API."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        load_dotenv(override=True)
        config = ANALYZER_CONFIG["ollama"]
        self.base_url = (base_url or os.getenv("OLLAMA_BASE_URL") or config["base_url"]).rstrip("/")
        self.timeout = timeout or config["timeout"]

    async def _post_json(self, path: str, payload: Dict[str, Any]) -> Tuple[int, Any]:
        """
        POST a JSON payload and return (status, decoded body).

        The body is None when the response is not valid JSON.
        """
        url = f"{self.base_url}{path}"
        logger.debug(f"POST {url}")
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
            async with session.post(url, json=payload) as response:
                try:
                    data = await response.json(content_type=None)
                except (aiohttp.ContentTypeError, ValueError):
                    data = None
                return response.status, data

    async def _get_json(self, path: str) -> Tuple[int, Any]:
        url = f"{self.base_url}{path}"
        logger.debug(f"GET {url}")
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
            async with session.get(url) as response:
                try:
                    data = await response.json(content_type=None)
                except (aiohttp.ContentTypeError, ValueError):
                    data = None
                return response.status, data

    async def list_models(self) -> List[str]:
        """Names of the models installed on the server."""
        try:
            status, data = await self._get_json("/api/tags")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderError("ollama", f"model listing failed: {e}")
        if status != 200 or not isinstance(data, dict):
            raise ProviderError("ollama", f"model listing returned status {status}")
        return [m["name"] for m in data.get("models", []) if isinstance(m, dict) and m.get("name")]

    async def resolve_chat_model(self, cache: ModelResolutionCache,
                                 configured: Optional[str] = None,
                                 preferred: Optional[str] = None) -> str:
        """
        Pick the chat model to use.

        An explicitly configured model always wins. Otherwise the installed
        models are listed once: the preferred default is used if installed,
        else the first installed model, else the preferred name as-is.
        """
        if configured:
            return configured
        preferred = preferred or ANALYZER_CONFIG["ollama"]["chat_model"]
        if cache.model:
            return cache.model
        try:
            installed = await self.list_models()
        except ProviderError as e:
            logger.warning(f"Could not list Ollama models, using {preferred}: {e}")
            return preferred
        if preferred in installed:
            cache.model = preferred
        elif installed:
            cache.model = installed[0]
            logger.info(f"Preferred model {preferred} not installed, using {cache.model}")
        else:
            cache.model = preferred
        return cache.model

    async def chat(self, messages: List[Dict[str, str]], model: str,
                   temperature: float = 0.0, max_tokens: Optional[int] = None,
                   json_mode: bool = False) -> str:
        """
        Non-streaming chat completion.

        Returns:
            Assistant message content

        Raises:
            ProviderError: On transport failure, non-OK status or empty content
        """
        options: Dict[str, Any] = {"temperature": temperature}
        if max_tokens:
            options["num_predict"] = max_tokens
        payload: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": False,
            "options": options,
        }
        if json_mode:
            payload["format"] = "json"
        try:
            status, data = await self._post_json("/api/chat", payload)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderError("ollama", f"chat request failed: {e}")
        if status != 200:
            raise ProviderError("ollama", f"chat returned status {status}")
        content = None
        if isinstance(data, dict):
            message = data.get("message")
            if isinstance(message, dict):
                content = message.get("content")
        if not isinstance(content, str) or not content.strip():
            raise ProviderError("ollama", "chat returned no content")
        return content

    async def embed(self, texts: List[str], model: str, cache: EmbeddingEndpointCache) -> List[List[float]]:
        """
        Embed texts, discovering the working endpoint on first use.

        /api/embed is tried first, then the legacy /api/embeddings. A 404 or
        a connection error moves on to the next endpoint; any other error
        status or an unreadable body marks embeddings unavailable for the
        lifetime of the cache.

        Raises:
            EmbeddingError: When no endpoint produced vectors
        """
        if cache.unavailable:
            raise EmbeddingError("Ollama embeddings unavailable")
        if not texts:
            return []

        endpoints = [cache.endpoint] if cache.endpoint else [EMBED_ENDPOINT, LEGACY_EMBED_ENDPOINT]
        for endpoint in endpoints:
            try:
                if endpoint == EMBED_ENDPOINT:
                    status, vectors = await self._embed_batch(texts, model)
                else:
                    status, vectors = await self._embed_each(texts, model)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning(f"Ollama embed request to {endpoint} failed: {e}")
                continue

            if status == 404:
                logger.debug(f"{endpoint} not found, trying next endpoint")
                continue
            if status != 200 or vectors is None:
                cache.endpoint = NO_ENDPOINT
                raise EmbeddingError(f"Ollama {endpoint} returned status {status} without usable vectors")

            cache.endpoint = endpoint
            return vectors

        cache.endpoint = NO_ENDPOINT
        raise EmbeddingError("No Ollama embedding endpoint available")

    async def _embed_batch(self, texts: List[str], model: str) -> Tuple[int, Optional[List[List[float]]]]:
        status, data = await self._post_json(EMBED_ENDPOINT, {"model": model, "input": texts})
        return status, parse_embedding_response(data) if status == 200 else None

    async def _embed_each(self, texts: List[str], model: str) -> Tuple[int, Optional[List[List[float]]]]:
        vectors: List[List[float]] = []
        for text in texts:
            status, data = await self._post_json(LEGACY_EMBED_ENDPOINT, {"model": model, "prompt": text})
            if status != 200:
                return status, None
            parsed = parse_embedding_response(data)
            if not parsed:
                return status, None
            vectors.append(parsed[0])
        return 200, vectors
