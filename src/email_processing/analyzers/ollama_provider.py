import logging
import os
from typing import Dict, List, Optional

from dotenv import load_dotenv

from src.email_processing.analyzers.chat_provider import ChatLLMProvider
from src.integrations.ollama.client import ModelResolutionCache, OllamaClient

logger = logging.getLogger(__name__)


class OllamaProvider(ChatLLMProvider):
    """
    Local language-model provider backed by a self-hosted Ollama server.

    The chat model comes from OLLAMA_CHAT_MODEL when set; otherwise it is
    resolved once against the server's installed models and remembered in
    the ModelResolutionCache.
    """

    name = "ollama"

    def __init__(self, client: Optional[OllamaClient] = None,
                 model: Optional[str] = None,
                 model_cache: Optional[ModelResolutionCache] = None):
        load_dotenv(override=True)
        self.client = client or OllamaClient()
        self.configured_model = model or os.getenv("OLLAMA_CHAT_MODEL")
        self.model_cache = model_cache or ModelResolutionCache()

    async def _complete(self, messages: List[Dict[str, str]], task_type: str,
                        temperature: float, max_tokens: int, json_mode: bool) -> str:
        model = await self.client.resolve_chat_model(self.model_cache, configured=self.configured_model)
        logger.debug(f"Ollama {task_type} using model {model}")
        return await self.client.chat(
            messages,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=json_mode
        )
