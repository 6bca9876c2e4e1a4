import asyncio
import logging
import os
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

import groq
from dotenv import load_dotenv
from groq import Groq

from src.config.analyzer_config import ANALYZER_CONFIG
from src.email_processing.errors import ProviderError

logger = logging.getLogger(__name__)

# Errors that will fail the same way on every attempt
NON_RETRYABLE_ERRORS = (
    groq.AuthenticationError,
    groq.PermissionDeniedError,
    groq.BadRequestError,
    groq.NotFoundError,
)


class RequestMetrics:
    """In-memory request history for one client, bounded to the latest calls."""

    def __init__(self, history_size: int = 200):
        self.requests: Deque[Dict[str, Any]] = deque(maxlen=history_size)
        self.errors: Deque[Dict[str, Any]] = deque(maxlen=history_size)
        self.total_requests = 0
        self.total_errors = 0
        self.avg_response_time = 0.0

    def record_success(self, model: str, duration: float):
        self.total_requests += 1
        self.avg_response_time += (duration - self.avg_response_time) / self.total_requests
        self.requests.append({
            'timestamp': datetime.now().isoformat(),
            'model': model,
            'duration': duration
        })

    def record_error(self, model: str, error_message: str):
        self.total_errors += 1
        self.errors.append({
            'timestamp': datetime.now().isoformat(),
            'model': model,
            'error': error_message
        })

    def summary(self) -> Dict[str, float]:
        attempts = self.total_requests + self.total_errors
        return {
            'avg_response_time': self.avg_response_time,
            'total_requests': self.total_requests,
            'total_errors': self.total_errors,
            'success_rate': (self.total_requests / attempts * 100) if attempts else 100.0
        }


class EnhancedGroqClient:
    """Groq chat client with retry logic, error handling and request metrics."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 backoff_seconds: Optional[float] = None):
        """
        Initialize the client with an API key from the environment or parameter.

        Args:
            api_key: Groq API key, defaults to GROQ_API_KEY
            base_url: Optional API base URL override (GROQ_BASE_URL)
            backoff_seconds: Base delay for exponential backoff between attempts
        """
        load_dotenv(override=True)
        self.api_key = api_key or os.getenv('GROQ_API_KEY')
        if not self.api_key:
            raise ValueError("GROQ_API_KEY must be provided either through initialization or environment")

        base_url = base_url or os.getenv('GROQ_BASE_URL')
        self.client = Groq(api_key=self.api_key, base_url=base_url) if base_url else Groq(api_key=self.api_key)
        self.backoff_seconds = (
            ANALYZER_CONFIG["groq"]["backoff_seconds"] if backoff_seconds is None else backoff_seconds
        )
        self.metrics = RequestMetrics()

    async def process_with_retry(self,
                                 messages: List[Dict],
                                 max_retries: int = 3,
                                 **kwargs):
        """Send a chat completion request, retrying transient failures.

        Args:
            messages: Chat messages for the conversation
            max_retries: Maximum number of attempts
            **kwargs: Completion parameters (model, temperature,
                max_completion_tokens, response_format)

        Returns:
            Chat completion response

        Raises:
            ProviderError: When the request is rejected or every attempt failed
        """
        params = {
            'model': ANALYZER_CONFIG["groq"]["model"],
            'temperature': 0.7,
            'max_completion_tokens': 4096,
            **kwargs,
            'messages': messages
        }
        model = params['model']
        max_retries = max(1, max_retries)

        for attempt in range(1, max_retries + 1):
            start_time = datetime.now()
            try:
                response = await asyncio.to_thread(self.client.chat.completions.create, **params)
            except NON_RETRYABLE_ERRORS as e:
                self.metrics.record_error(model, str(e))
                logger.error(f"Groq rejected request for {model}: {e}")
                raise ProviderError("groq", f"request rejected: {e}")
            except Exception as e:
                self.metrics.record_error(model, str(e))
                if attempt == max_retries:
                    logger.error(f"Groq request failed after {max_retries} attempts: {e}")
                    raise ProviderError("groq", f"failed after {max_retries} attempts: {e}")

                wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                logger.warning(f"Attempt {attempt} failed for {model}. Waiting {wait_time} seconds before retry...")
                await asyncio.sleep(wait_time)
                continue

            self.metrics.record_success(model, (datetime.now() - start_time).total_seconds())
            return response

    def get_performance_metrics(self) -> Dict:
        """Get aggregate request metrics."""
        return self.metrics.summary()
