"""
Embedding providers and vector similarity.

Three backends produce vectors for a batch of texts: a self-hosted Ollama
server, a remote HTTP embedding function and a local TF-IDF model. The
FallbackEmbeddingProvider wraps any primary backend with TF-IDF so that
the embedding tier of the similarity pipeline always gets vectors.

Design Considerations:
- Target and candidates are embedded in one batch; TF-IDF vectors only
  share a vocabulary within a batch
- TF-IDF is deterministic: same batch, same vectors
- Endpoint discovery state is an explicit cache object, never a global
"""

import asyncio
import logging
import math
import os
from collections import Counter
from typing import List, Optional, Sequence

import aiohttp
from dotenv import load_dotenv

from src.config.analyzer_config import ANALYZER_CONFIG
from src.email_processing.errors import EmbeddingError
from src.email_processing.handlers.content import tokenize
from src.integrations.ollama.client import (
    EmbeddingEndpointCache,
    OllamaClient,
    parse_embedding_response,
)

logger = logging.getLogger(__name__)


class EmbeddingProvider:
    """Contract for anything that turns a batch of texts into vectors."""

    name: str = "embedding"

    async def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Embed a batch of texts.

        Args:
            texts: Texts to embed

        Returns:
            One vector per input text, in input order

        Raises:
            EmbeddingError: When the backend cannot produce vectors
        """
        raise NotImplementedError("Must implement embed")


class TfidfEmbeddingProvider(EmbeddingProvider):
    """
    Bag-of-words TF-IDF over the batch passed in a single call.

    Vocabulary is the sorted union of batch terms, idf(t) = ln(1 + N / (1 + df(t)))
    and each vector is L2-normalised. Documents without terms embed to zero vectors.
    """

    name = "tfidf"

    async def embed(self, texts: List[str]) -> List[List[float]]:
        return self.compute(texts)

    @staticmethod
    def compute(texts: Sequence[str]) -> List[List[float]]:
        token_lists = [tokenize(text) for text in texts]
        document_frequency: Counter = Counter()
        for tokens in token_lists:
            document_frequency.update(set(tokens))

        vocabulary = sorted(document_frequency)
        total_docs = len(texts)
        idf = {
            term: math.log(1 + total_docs / (1 + document_frequency[term]))
            for term in vocabulary
        }

        vectors = []
        for tokens in token_lists:
            term_frequency = Counter(tokens)
            vector = [term_frequency.get(term, 0) * idf[term] for term in vocabulary]
            norm = math.sqrt(sum(v * v for v in vector)) or 1.0
            vectors.append([v / norm for v in vector])
        return vectors


class OllamaEmbeddingProvider(EmbeddingProvider):
    """Embeddings from a local Ollama server (nomic-embed-text by default)."""

    name = "ollama"

    def __init__(self, client: Optional[OllamaClient] = None,
                 model: Optional[str] = None,
                 endpoint_cache: Optional[EmbeddingEndpointCache] = None):
        self.client = client or OllamaClient()
        self.model = model or os.getenv("OLLAMA_EMBED_MODEL") or ANALYZER_CONFIG["ollama"]["embed_model"]
        self.endpoint_cache = endpoint_cache or EmbeddingEndpointCache()

    async def embed(self, texts: List[str]) -> List[List[float]]:
        return await self.client.embed(texts, self.model, self.endpoint_cache)


class HttpEmbeddingProvider(EmbeddingProvider):
    """Embeddings from a remote HTTP function taking {"texts": [...]}."""

    name = "http"

    def __init__(self, url: str, timeout: Optional[float] = None):
        if not url:
            raise ValueError("An embedding function URL is required")
        self.url = url
        self.timeout = timeout or ANALYZER_CONFIG["embeddings"]["timeout"]

    async def _post_texts(self, texts: List[str]):
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
            async with session.post(self.url, json={"texts": texts}) as response:
                try:
                    data = await response.json(content_type=None)
                except (aiohttp.ContentTypeError, ValueError):
                    data = None
                return response.status, data

    async def embed(self, texts: List[str]) -> List[List[float]]:
        try:
            status, data = await self._post_texts(texts)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise EmbeddingError(f"Embedding function unreachable: {e}")
        if status != 200:
            raise EmbeddingError(f"Embedding function returned status {status}")
        vectors = parse_embedding_response(data)
        if vectors is None:
            raise EmbeddingError("Embedding function returned no vectors")
        return vectors


class FallbackEmbeddingProvider(EmbeddingProvider):
    """
    Primary backend with a TF-IDF safety net.

    The primary's vectors are used only when it returns one non-empty
    vector per text; any error or shape mismatch falls back to TF-IDF
    over the same batch.
    """

    def __init__(self, primary: Optional[EmbeddingProvider] = None,
                 fallback: Optional[EmbeddingProvider] = None):
        self.primary = primary
        self.fallback = fallback or TfidfEmbeddingProvider()
        self.name = primary.name if primary else self.fallback.name
        self.last_used = None

    async def embed(self, texts: List[str]) -> List[List[float]]:
        if self.primary is not None:
            try:
                vectors = await self.primary.embed(texts)
                if len(vectors) == len(texts) and all(vectors):
                    self.last_used = self.primary.name
                    return vectors
                logger.warning(
                    f"{self.primary.name} returned {len(vectors)} vectors for {len(texts)} texts, "
                    f"falling back to {self.fallback.name}"
                )
            except Exception as e:
                logger.warning(f"{self.primary.name} embeddings unavailable, falling back to {self.fallback.name}: {e}")
        self.last_used = self.fallback.name
        return await self.fallback.embed(texts)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine of the angle between two vectors.

    Vectors of different length are zero-padded; a zero vector on either
    side gives 0.0.
    """
    length = max(len(a), len(b))
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for i in range(length):
        x = a[i] if i < len(a) else 0.0
        y = b[i] if i < len(b) else 0.0
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


def build_embedding_provider(provider: Optional[str] = None,
                             endpoint_cache: Optional[EmbeddingEndpointCache] = None) -> FallbackEmbeddingProvider:
    """
    Build the configured embedding backend wrapped with the TF-IDF fallback.

    EMBEDDING_PROVIDER selects "ollama", "http" or "tfidf". When unset,
    Ollama is used if LLM_PROVIDER is "ollama", the HTTP function if
    EMBEDDING_FUNCTION_URL is set, and TF-IDF otherwise.
    """
    load_dotenv(override=True)
    function_url = os.getenv("EMBEDDING_FUNCTION_URL") or ANALYZER_CONFIG["embeddings"]["function_url"]
    choice = (provider or os.getenv("EMBEDDING_PROVIDER") or "").strip().lower()
    if not choice:
        if os.getenv("LLM_PROVIDER", "").strip().lower() == "ollama":
            choice = "ollama"
        elif function_url:
            choice = "http"
        else:
            choice = "tfidf"

    primary: Optional[EmbeddingProvider] = None
    if choice == "ollama":
        primary = OllamaEmbeddingProvider(endpoint_cache=endpoint_cache)
    elif choice == "http":
        if function_url:
            primary = HttpEmbeddingProvider(function_url)
        else:
            logger.warning("EMBEDDING_PROVIDER=http but EMBEDDING_FUNCTION_URL is not set, using TF-IDF")
    elif choice != "tfidf":
        logger.warning(f"Unknown embedding provider {choice!r}, using TF-IDF")

    logger.info(f"Embedding provider: {primary.name if primary else 'tfidf'} (TF-IDF fallback)")
    return FallbackEmbeddingProvider(primary)
