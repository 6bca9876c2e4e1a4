"""
Inbox Processing Implementation

Coordinates the inbox pipeline for one user: ingesting mailbox payloads,
classifying messages, finding similar messages, drafting and sending bulk
replies, and re-syncing with the upstream mailbox under a deadline.

Design Considerations:
- Every stage degrades instead of failing; only resync raises, with a
  single user-visible SyncError
- Classification of one message is never run twice concurrently
- Storage is reached only through the repositories
"""

import asyncio
import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Set

from src.config.analyzer_config import ANALYZER_CONFIG
from src.email_processing.classification.classifier import MessageClassifier
from src.email_processing.classification.guard import ClassificationGuard
from src.email_processing.errors import SyncError
from src.email_processing.handlers.ingestion import (
    clamp_max_results,
    latest_sent_ms,
    normalize_provider_message,
)
from src.email_processing.handlers.relevance import RelevanceFilter
from src.email_processing.handlers.writer import DraftWriter
from src.email_processing.models import (
    AnalysisResult,
    Message,
    ReplyPlan,
    ResponseMode,
    SimilarityResult,
)
from src.email_processing.similarity.finder import SimilarMessageFinder
from src.storage.message_repository import MessageRepository

logger = logging.getLogger(__name__)

# Fetches raw mailbox payloads as {"messages": [...], "threads": {thread_id: ...}}
MailboxSource = Callable[[], Awaitable[Dict[str, Any]]]


class ReplySender:
    """Delivers one personalised reply through the message's channel."""

    async def send(self, message: Message, reply_text: str) -> None:
        raise NotImplementedError("Must implement send")


@dataclass
class IngestReport:
    synced: int = 0
    updated: int = 0
    skipped: int = 0
    purged: int = 0
    ids: List[str] = field(default_factory=list)

    @property
    def summary(self) -> str:
        return f"Synced {self.synced} emails. Skipped {self.skipped}. Purged {self.purged}."


@dataclass
class BulkReplyReport:
    mode: ResponseMode
    drafted: List[str] = field(default_factory=list)
    sent: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


@dataclass
class SyncStatus:
    """Outcome of a resync: completed with a report, or still running in the background."""
    completed: bool
    report: Optional[IngestReport] = None

    @property
    def status(self) -> str:
        return "completed" if self.completed else "pending"


class InboxProcessor:
    """
    Orchestrates ingestion, classification, similarity and replies.

    Args:
        classifier: Message classifier
        finder: Similar-message finder
        writer: Draft writer
        relevance: Relevance gate for ingested mail
        guard: Shared in-flight classification registry
        sender: Reply delivery used in AutoSend mode
        repository: Message repository (class or instance)
    """

    def __init__(self,
                 classifier: MessageClassifier,
                 finder: SimilarMessageFinder,
                 writer: DraftWriter,
                 relevance: Optional[RelevanceFilter] = None,
                 guard: Optional[ClassificationGuard] = None,
                 sender: Optional[ReplySender] = None,
                 repository=MessageRepository):
        self.classifier = classifier
        self.finder = finder
        self.writer = writer
        self.relevance = relevance or RelevanceFilter()
        self.guard = guard or ClassificationGuard()
        self.sender = sender
        self.repository = repository
        self.ingestion_config = ANALYZER_CONFIG["ingestion"]
        self._background_tasks: Set[asyncio.Task] = set()

    async def ingest(self, user_id: str, raw_messages: Sequence[Dict[str, Any]],
                     threads: Optional[Dict[str, Dict[str, Any]]] = None,
                     purge_irrelevant: bool = True) -> IngestReport:
        """
        Normalise, filter, classify and store mailbox payloads.

        Known messages only have their read and reply state refreshed;
        their classification is kept. Irrelevant messages are skipped and,
        when purge_irrelevant is set, removed from storage if present.

        Args:
            user_id: Mailbox owner
            raw_messages: Gmail-style message resources
            threads: Thread resources keyed by thread id, used for reply state
            purge_irrelevant: Delete stored copies of irrelevant messages

        Returns:
            IngestReport with counts and the ids written
        """
        report = IngestReport()
        threads = threads or {}
        relevant: List[Message] = []
        irrelevant_ids: List[str] = []

        for raw in raw_messages:
            try:
                sent_ms = latest_sent_ms(threads.get(raw.get("threadId"), {})) if raw.get("threadId") else None
                message = normalize_provider_message(raw, thread_latest_sent_ms=sent_ms)
            except ValueError as e:
                logger.warning(f"Skipping malformed provider message: {e}")
                report.skipped += 1
                continue

            verdict = await self.relevance.is_relevant(message.subject, message.body, raw.get("labelIds"))
            if not verdict.relevant:
                logger.debug(f"Message {message.id} not relevant ({verdict.source}: {verdict.reason})")
                irrelevant_ids.append(message.id)
                continue
            relevant.append(message)

        report.skipped += len(irrelevant_ids)

        if purge_irrelevant and irrelevant_ids:
            try:
                report.purged = await self.repository.delete_messages(user_id, irrelevant_ids)
            except Exception as e:
                logger.warning(f"Failed to purge irrelevant messages: {e}")

        known = await self.repository.existing_ids(user_id, [m.id for m in relevant])
        new_messages = []
        for message in relevant:
            if message.id in known:
                await self.repository.update_flags(user_id, message.id, message.is_read, message.is_replied)
                report.updated += 1
            else:
                new_messages.append(message)

        # Held until stored so an overlapping ingest cannot classify the same message
        async with AsyncExitStack() as holds:
            to_store: List[Message] = []
            for message in new_messages:
                if not await holds.enter_async_context(self.guard.hold(user_id, message.id)):
                    logger.debug(f"Message {message.id} is already being ingested, skipping")
                    report.skipped += 1
                    continue
                message.apply_analysis(await self.classifier.classify(message.body))
                to_store.append(message)

            if to_store:
                await self.repository.upsert_messages(
                    user_id, to_store, batch_size=self.ingestion_config["upsert_batch_size"]
                )
        report.synced = len(to_store)
        report.ids = [m.id for m in to_store]
        logger.info(f"Ingest for {user_id}: {report.summary}")
        return report

    async def classify_and_persist(self, user_id: str, message: Message) -> Optional[AnalysisResult]:
        """
        Classify one message and store the result.

        Returns:
            The stored AnalysisResult, or None when the message is already
            being classified or storing failed
        """
        async with self.guard.hold(user_id, message.id) as acquired:
            if not acquired:
                return None
            try:
                analysis = await self.classifier.classify(message.body)
                await self.repository.update_classification(user_id, message.id, analysis)
                message.apply_analysis(analysis)
                return analysis
            except Exception as e:
                logger.error(f"Failed to classify message {message.id}: {e}")
                return None

    async def backfill_classifications(self, user_id: str, batch_size: Optional[int] = None) -> int:
        """
        Classify stored messages that are unclassified or General.

        Messages are processed batch_size at a time, skipping any that are
        already in flight.

        Returns:
            Number of messages classified
        """
        batch_size = batch_size or ANALYZER_CONFIG["classification"]["backfill_batch_size"]
        pending = [
            m for m in await self.repository.list_unclassified(user_id)
            if not self.guard.is_active(user_id, m.id)
        ]
        classified = 0
        for start in range(0, len(pending), batch_size):
            batch = pending[start:start + batch_size]
            results = await asyncio.gather(*(self.classify_and_persist(user_id, m) for m in batch))
            classified += sum(1 for r in results if r is not None)
        logger.info(f"Backfilled {classified} of {len(pending)} messages for {user_id}")
        return classified

    async def find_similar_for(self, user_id: str, message_id: str,
                               fallback_pool: Optional[Sequence[Message]] = None) -> List[Message]:
        """
        Similar messages for a stored message.

        The candidate pool is the user's stored messages; when storage
        cannot be read, fallback_pool is used instead.

        Raises:
            LookupError: If the target message cannot be found
        """
        result, pool = await self.similarity_for(user_id, message_id, fallback_pool)
        by_id = {m.id: m for m in pool}
        return [by_id[i] for i in result.ids if i in by_id]

    async def similarity_for(self, user_id: str, message_id: str,
                             fallback_pool: Optional[Sequence[Message]] = None):
        """
        Run the similarity pipeline for a stored message.

        Returns:
            Tuple of (SimilarityResult, candidate pool used)

        Raises:
            LookupError: If the target message cannot be found
        """
        try:
            pool = await self.repository.list_messages(user_id)
        except Exception as e:
            if fallback_pool is None:
                raise
            logger.warning(f"Could not load candidate pool, using in-memory messages: {e}")
            pool = list(fallback_pool)

        target = next((m for m in pool if m.id == message_id), None)
        if target is None:
            raise LookupError(f"Message {message_id} not found")
        result: SimilarityResult = await self.finder.find_similar_detailed(target, pool)
        return result, pool

    async def draft_for(self, user_id: str, message_id: str, policies, business_name: Optional[str] = None,
                        signature: Optional[str] = None) -> str:
        """
        Draft and store a reply for a stored message.

        Raises:
            LookupError: If the message does not exist
        """
        message = await self.repository.get_message(user_id, message_id)
        if message is None:
            raise LookupError(f"Message {message_id} not found")
        draft = await self.writer.generate_draft(
            message.body, message.sender_name, policies, business_name, signature
        )
        await self.repository.save_draft(user_id, message_id, draft)
        return draft

    async def bulk_reply(self, user_id: str, target_id: str, draft: str,
                         selected_ids: Optional[Iterable[str]] = None,
                         mode: ResponseMode = ResponseMode.DRAFT) -> BulkReplyReport:
        """
        Answer the target and the selected similar messages with one draft.

        Draft mode stores a personalised draft on every recipient. AutoSend
        mode delivers through the ReplySender and marks each delivered
        message replied; delivery failures are reported, not raised.

        Raises:
            LookupError: If the target message does not exist
            ValueError: If the draft is empty or AutoSend has no sender
        """
        if not draft or not draft.strip():
            raise ValueError("Reply text is empty")
        if mode == ResponseMode.AUTO_SEND and self.sender is None:
            raise ValueError("No reply sender configured for AutoSend")

        messages = await self.repository.list_messages(user_id)
        by_id = {m.id: m for m in messages}
        target = by_id.get(target_id)
        if target is None:
            raise LookupError(f"Message {target_id} not found")

        if selected_ids is None:
            matches = await self.finder.find_similar(target, messages)
            candidates = [by_id[i] for i in matches if i in by_id]
        else:
            selected_ids = list(selected_ids)
            candidates = [by_id[i] for i in selected_ids if i in by_id]
        plans: List[ReplyPlan] = self.writer.plan_bulk_reply(target, draft, candidates, selected_ids)

        report = BulkReplyReport(mode=mode)
        for plan in plans:
            if mode == ResponseMode.DRAFT:
                await self.repository.save_draft(user_id, plan.message_id, plan.reply_text)
                report.drafted.append(plan.message_id)
                continue
            try:
                await self.sender.send(by_id[plan.message_id], plan.reply_text)
                report.sent.append(plan.message_id)
            except Exception as e:
                logger.error(f"Failed to send reply to {plan.message_id}: {e}")
                report.failed.append(plan.message_id)

        if report.sent:
            await self.repository.mark_replied(user_id, report.sent)
        logger.info(
            f"Bulk reply ({mode.value}) for {target_id}: drafted={len(report.drafted)} "
            f"sent={len(report.sent)} failed={len(report.failed)}"
        )
        return report

    async def resync(self, user_id: str, source: MailboxSource,
                     timeout: Optional[float] = None,
                     purge_irrelevant: bool = True,
                     max_results: Optional[int] = None) -> SyncStatus:
        """
        Fetch from the upstream mailbox and ingest, racing a deadline.

        If the sync has not finished by the deadline it keeps running in
        the background and SyncStatus(completed=False) is returned; its
        result is stored when it resolves.

        Args:
            user_id: Mailbox owner
            source: Coroutine factory returning {"messages": [...], "threads": {...}}
            timeout: Seconds to wait before returning pending
            purge_irrelevant: Delete stored copies of irrelevant messages
            max_results: Most recent messages to take from the source,
                clamped to the supported page size

        Raises:
            SyncError: If the sync failed before the deadline
        """
        timeout = self.ingestion_config["sync_timeout"] if timeout is None else timeout
        limit = clamp_max_results(max_results)

        async def run_sync() -> IngestReport:
            payload = await source()
            return await self.ingest(
                user_id,
                payload.get("messages", [])[:limit],
                threads=payload.get("threads"),
                purge_irrelevant=purge_irrelevant
            )

        task = asyncio.ensure_future(run_sync())
        try:
            report = await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
            return SyncStatus(completed=True, report=report)
        except asyncio.TimeoutError:
            logger.info(f"Sync for {user_id} still running after {timeout}s, continuing in background")
            self._background_tasks.add(task)
            task.add_done_callback(self._finish_background_sync)
            return SyncStatus(completed=False)
        except Exception as e:
            logger.error(f"Sync for {user_id} failed: {e}")
            raise SyncError(str(e))

    def _finish_background_sync(self, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            logger.warning("Background sync cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background sync failed: {error}")
        else:
            logger.info(f"Background sync finished: {task.result().summary}")

    async def wait_for_background(self) -> None:
        """Wait for background syncs started by resync to finish."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)
