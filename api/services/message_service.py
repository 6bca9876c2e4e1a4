"""
Message Service Implementation

Connects the API routes to the inbox pipeline: the processor, the
message and policy repositories and the demo seed data.

Design Considerations:
- Routes never touch repositories or providers directly
- The pipeline is assembled once per process from environment config
- Missing messages and policies raise LookupError for the 404 handler
"""

import logging
from typing import List, Optional, Sequence, Tuple

from fastapi import Header

from api.config import APISettings, get_settings
from src.email_processing.classification.classifier import MessageClassifier
from src.email_processing.handlers.ingestion import filter_by_feature, filter_by_search
from src.email_processing.handlers.relevance import RelevanceFilter
from src.email_processing.handlers.writer import DraftWriter
from src.email_processing.models import (
    AnalysisResult,
    BusinessPolicy,
    Message,
    MessageCategory,
    ResponseCost,
    ResponseMode,
    SimilarityResult,
)
from src.email_processing.processor import BulkReplyReport, IngestReport, InboxProcessor
from src.email_processing.seed import demo_messages, demo_policies
from src.email_processing.similarity.embeddings import build_embedding_provider
from src.email_processing.similarity.finder import SimilarMessageFinder
from src.integrations.provider_factory import ProviderFactory
from src.storage.message_repository import MessageRepository, PolicyRepository

logger = logging.getLogger(__name__)


def build_processor(settings: Optional[APISettings] = None) -> InboxProcessor:
    """
    Assemble the inbox pipeline from the configured providers.

    Args:
        settings: API settings; LLM_PROVIDER_ORDER overrides the environment

    Returns:
        InboxProcessor sharing one provider chain across all stages
    """
    settings = settings or get_settings()
    chain = ProviderFactory.build_chain(settings.LLM_PROVIDER_ORDER)
    return InboxProcessor(
        classifier=MessageClassifier(chain),
        finder=SimilarMessageFinder(embedder=build_embedding_provider(), judges=chain),
        writer=DraftWriter(chain),
        relevance=RelevanceFilter(chain),
    )


class MessageService:
    """
    Service for message and policy operations.

    Args:
        processor: Inbox pipeline; built from configuration when omitted
        settings: API settings
    """

    def __init__(self, processor: Optional[InboxProcessor] = None,
                 settings: Optional[APISettings] = None):
        self.settings = settings or get_settings()
        self.processor = processor or build_processor(self.settings)
        logger.info("Message service initialized")

    async def list_messages(self, user_id: str, search: Optional[str] = None,
                            categories: Sequence[str] = (),
                            urgencies: Sequence[str] = ()) -> List[Message]:
        """
        Stored messages, newest first, filtered by search text and features.

        Unknown category or urgency names are ignored rather than rejected.
        """
        messages = await MessageRepository.list_messages(user_id)
        messages = filter_by_search(messages, search)
        category_filter = [c for c in (MessageCategory.coerce(v, default=False) for v in categories) if c]
        urgency_filter = [u for u in (ResponseCost.coerce(v, default=False) for v in urgencies) if u]
        return filter_by_feature(messages, category_filter, urgency_filter)

    async def get_message(self, user_id: str, message_id: str) -> Message:
        message = await MessageRepository.get_message(user_id, message_id)
        if message is None:
            raise LookupError(f"Message {message_id} not found")
        return message

    async def ingest(self, user_id: str, raw_messages, threads=None,
                     purge_irrelevant: bool = True) -> IngestReport:
        return await self.processor.ingest(
            user_id, raw_messages, threads=threads, purge_irrelevant=purge_irrelevant
        )

    async def classify(self, user_id: str, message_id: str) -> Optional[AnalysisResult]:
        """
        Re-classify one stored message.

        Returns:
            The new AnalysisResult, or None if a classification for this
            message is already running
        """
        message = await self.get_message(user_id, message_id)
        return await self.processor.classify_and_persist(user_id, message)

    async def backfill(self, user_id: str) -> int:
        return await self.processor.backfill_classifications(user_id)

    async def similar(self, user_id: str, message_id: str) -> Tuple[SimilarityResult, List[Message]]:
        return await self.processor.similarity_for(user_id, message_id)

    async def draft(self, user_id: str, message_id: str,
                    business_name: Optional[str] = None,
                    signature: Optional[str] = None) -> str:
        policies = await PolicyRepository.list_policies(user_id)
        return await self.processor.draft_for(
            user_id,
            message_id,
            policies,
            business_name or self.settings.BUSINESS_NAME,
            signature if signature is not None else self.settings.SIGNATURE,
        )

    async def bulk_reply(self, user_id: str, target_id: str, draft: str,
                         selected_ids: Optional[List[str]] = None,
                         mode: ResponseMode = ResponseMode.DRAFT) -> BulkReplyReport:
        return await self.processor.bulk_reply(user_id, target_id, draft, selected_ids, mode)

    async def list_policies(self, user_id: str) -> List[BusinessPolicy]:
        return await PolicyRepository.list_policies(user_id)

    async def create_policy(self, user_id: str, title: str, content: str,
                            category: Optional[str] = None) -> BusinessPolicy:
        return await PolicyRepository.create_policy(user_id, title, content, category)

    async def update_policy(self, user_id: str, policy_id: str, title: Optional[str] = None,
                            content: Optional[str] = None,
                            category: Optional[str] = None) -> BusinessPolicy:
        policy = await PolicyRepository.update_policy(user_id, policy_id, title, content, category)
        if policy is None:
            raise LookupError(f"Policy {policy_id} not found")
        return policy

    async def delete_policy(self, user_id: str, policy_id: str) -> None:
        if not await PolicyRepository.delete_policy(user_id, policy_id):
            raise LookupError(f"Policy {policy_id} not found")

    async def seed_demo_data(self, user_id: str) -> Tuple[int, int]:
        """
        Load demo policies and messages for a user with an empty workspace.

        Returns:
            Tuple of (policies created, messages written)
        """
        created_policies = 0
        if not await PolicyRepository.list_policies(user_id):
            for policy in demo_policies():
                await PolicyRepository.create_policy(
                    user_id, policy.title, policy.content, policy.category
                )
                created_policies += 1

        messages = demo_messages()
        known = await MessageRepository.existing_ids(user_id, [m.id for m in messages])
        fresh = [m for m in messages if m.id not in known]
        written = await MessageRepository.upsert_messages(user_id, fresh) if fresh else 0
        logger.info(f"Seeded {created_policies} policies and {written} messages for {user_id}")
        return created_policies, written


_message_service: Optional[MessageService] = None


def get_message_service() -> MessageService:
    """Provide the process-wide message service for dependency injection."""
    global _message_service
    if _message_service is None:
        _message_service = MessageService()
    return _message_service


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """User scope from the X-User-Id header, or the configured default user."""
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()
    return get_settings().DEFAULT_USER_ID
