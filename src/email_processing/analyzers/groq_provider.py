import logging
import os
import time
from typing import Dict, List, Optional

from dotenv import load_dotenv

from src.config.analyzer_config import ANALYZER_CONFIG
from src.email_processing.analyzers.chat_provider import ChatLLMProvider
from src.email_processing.errors import ProviderError
from src.integrations.groq.client import EnhancedGroqClient
from src.integrations.groq.model_manager import ModelManager

logger = logging.getLogger(__name__)


class GroqProvider(ChatLLMProvider):
    """
    Hosted language-model provider backed by the Groq chat API.

    Model selection goes through ModelManager, which switches a task to
    its fallback model after repeated failures of the primary. Retries
    and backoff are handled by EnhancedGroqClient.
    """

    name = "groq"

    def __init__(self, client: Optional[EnhancedGroqClient] = None,
                 model_manager: Optional[ModelManager] = None,
                 max_retries: Optional[int] = None):
        load_dotenv(override=True)
        self.client = client or EnhancedGroqClient()
        self.model_manager = model_manager or ModelManager(force_model=os.getenv("GROQ_MODEL"))
        self.max_retries = max_retries or ANALYZER_CONFIG["groq"]["retry_count"]

    async def _complete(self, messages: List[Dict[str, str]], task_type: str,
                        temperature: float, max_tokens: int, json_mode: bool) -> str:
        model_config = self.model_manager.get_model_config(task_type)
        params = {
            'model': model_config['name'],
            'temperature': temperature,
            'max_completion_tokens': min(max_tokens, model_config.get('max_tokens', max_tokens))
        }
        if json_mode:
            params['response_format'] = {"type": "json_object"}

        start_time = time.time()
        try:
            response = await self.client.process_with_retry(
                messages=messages,
                max_retries=self.max_retries,
                **params
            )
        except ProviderError:
            self.model_manager.record_performance(model_config['name'], task_type, success=False)
            logger.warning(
                f"Groq {task_type} failed on {model_config['name']} "
                f"(recent success rate {self.model_manager.success_rate(model_config['name']):.0%})"
            )
            raise

        duration = time.time() - start_time
        self.model_manager.record_performance(model_config['name'], task_type, success=True, duration=duration)
        logger.info(f"Groq {task_type} completed with {model_config['name']} in {duration:.2f}s")

        try:
            return response.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise ProviderError(self.name, f"unexpected completion shape: {e}")
