"""
Chat-backed LLM provider

Implements every provider capability on top of a single chat completion
call, leaving only transport to the concrete Groq and Ollama providers.
Prompts come from prompts.py and replies are validated by llm_response.py.
"""

import json
import logging
from typing import Dict, List

from src.email_processing.analyzers import llm_response
from src.email_processing.analyzers.prompts import (
    TASK_SETTINGS,
    classification_messages,
    draft_messages,
    relevance_messages,
    similarity_messages,
)
from src.email_processing.base import BaseLLMProvider, DraftRequest, RelevanceVerdict
from src.email_processing.models import AnalysisResult

logger = logging.getLogger(__name__)


class ChatLLMProvider(BaseLLMProvider):
    """Provider whose capabilities are all prompts to one chat endpoint."""

    async def _complete(self, messages: List[Dict[str, str]], task_type: str,
                        temperature: float, max_tokens: int, json_mode: bool) -> str:
        """Run one chat completion and return the raw assistant text."""
        raise NotImplementedError("Must implement _complete")

    async def _run_task(self, task_type: str, messages: List[Dict[str, str]]) -> str:
        settings = TASK_SETTINGS[task_type]
        logger.debug(f"{self.name} {task_type} prompt: {json.dumps(messages)[:500]}")
        content = await self._complete(
            messages,
            task_type,
            temperature=settings['temperature'],
            max_tokens=settings['max_tokens'],
            json_mode=settings['json_mode']
        )
        return self._require_text(content)

    async def classify(self, text: str) -> AnalysisResult:
        content = await self._run_task('message_classification', classification_messages(text))
        return llm_response.parse_classification(content, self.name)

    async def judge_similarity(self, target_text: str, candidates: List[Dict[str, str]]) -> List[str]:
        content = await self._run_task('similarity_judgment', similarity_messages(target_text, candidates))
        return llm_response.parse_similarity(content, self.name)

    async def draft_reply(self, request: DraftRequest) -> str:
        return await self._run_task('reply_drafting', draft_messages(request))

    async def check_relevance(self, subject: str, body: str) -> RelevanceVerdict:
        content = await self._run_task('relevance_check', relevance_messages(subject, body))
        payload = llm_response.parse_relevance(content, self.name)
        return RelevanceVerdict(relevant=payload.relevant, reason=payload.reason or "", source=self.name)
