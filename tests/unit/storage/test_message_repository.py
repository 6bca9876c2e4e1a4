"""
Unit tests for the message and policy repositories.

These tests run against an in-memory SQLite database and validate
upserts, user scoping, flag updates and policy CRUD.
"""

from datetime import datetime, timezone

import pytest

from src.email_processing.models import (
    AnalysisResult,
    Channel,
    MessageCategory,
    ResponseCost,
    Sentiment,
)
from src.storage.database import get_db_session
from src.storage.message_repository import MessageRepository, PolicyRepository
from src.storage.models import MessageRecord

USER = "owner@example.com"
OTHER = "someone@example.com"


@pytest.mark.asyncio
class TestMessageRepository:
    """Test suite for MessageRepository."""

    async def test_upsert_and_read_back(self, memory_db, make_message):
        message = make_message(
            "m1", body="Where is my order?", category=MessageCategory.SHIPPING,
            channel=Channel.INSTAGRAM, tags=["tracking"], subject="Order"
        )
        written = await MessageRepository.upsert_messages(USER, [message])

        assert written == 1
        stored = await MessageRepository.get_message(USER, "m1")
        assert stored.body == "Where is my order?"
        assert stored.channel == Channel.INSTAGRAM
        assert stored.category == MessageCategory.SHIPPING
        assert stored.tags == ["tracking"]
        assert stored.timestamp == message.timestamp
        assert stored.timestamp.tzinfo is not None

    async def test_upsert_overwrites_but_keeps_draft(self, memory_db, make_message):
        await MessageRepository.upsert_messages(USER, [make_message("m1", body="first")])
        await MessageRepository.save_draft(USER, "m1", "Hi {NAME}")

        await MessageRepository.upsert_messages(USER, [make_message("m1", body="second")])

        stored = await MessageRepository.get_message(USER, "m1")
        assert stored.body == "second"
        assert stored.suggested_reply == "Hi {NAME}"

    async def test_batches(self, memory_db, make_message):
        messages = [make_message(f"m{i}") for i in range(5)]
        assert await MessageRepository.upsert_messages(USER, messages, batch_size=2) == 5
        assert len(await MessageRepository.list_messages(USER)) == 5

    async def test_list_is_newest_first_and_user_scoped(self, memory_db, make_message):
        older = make_message("a", timestamp=datetime(2025, 10, 1, tzinfo=timezone.utc))
        newer = make_message("b", timestamp=datetime(2025, 10, 2, tzinfo=timezone.utc))
        await MessageRepository.upsert_messages(USER, [older, newer])
        await MessageRepository.upsert_messages(OTHER, [make_message("a", body="other user's copy")])

        assert [m.id for m in await MessageRepository.list_messages(USER)] == ["b", "a"]
        assert (await MessageRepository.get_message(OTHER, "a")).body == "other user's copy"
        assert await MessageRepository.get_message(OTHER, "b") is None

    async def test_existing_ids(self, memory_db, make_message):
        await MessageRepository.upsert_messages(USER, [make_message("a")])
        assert await MessageRepository.existing_ids(USER, ["a", "b"]) == {"a"}
        assert await MessageRepository.existing_ids(OTHER, ["a"]) == set()
        assert await MessageRepository.existing_ids(USER, []) == set()

    async def test_unknown_stored_values_are_coerced(self, memory_db):
        with get_db_session() as session:
            session.add(MessageRecord(
                id="legacy", user_id=USER, channel="Fax", body="hello",
                received_at=datetime(2025, 1, 1), category="Billing",
                sentiment="Angry", predicted_cost="Critical", tags=["ok", 3]
            ))

        stored = await MessageRepository.get_message(USER, "legacy")
        assert stored.channel == Channel.EMAIL
        assert stored.category == MessageCategory.GENERAL
        assert stored.sentiment == Sentiment.NEUTRAL
        assert stored.predicted_cost == ResponseCost.LOW
        assert stored.tags == ["ok"]
        assert stored.timestamp.tzinfo is not None

    async def test_list_unclassified(self, memory_db, make_message):
        await MessageRepository.upsert_messages(USER, [
            make_message("general"),
            make_message("shipping", category=MessageCategory.SHIPPING),
        ])
        with get_db_session() as session:
            session.add(MessageRecord(id="raw", user_id=USER, body="x", category=None))

        ids = {m.id for m in await MessageRepository.list_unclassified(USER)}
        assert ids == {"general", "raw"}

    async def test_update_classification(self, memory_db, make_message):
        await MessageRepository.upsert_messages(USER, [make_message("m1")])
        analysis = AnalysisResult(MessageCategory.RETURNS, Sentiment.NEGATIVE, ResponseCost.MEDIUM, ["refund"])

        assert await MessageRepository.update_classification(USER, "m1", analysis)
        assert not await MessageRepository.update_classification(USER, "missing", analysis)

        stored = await MessageRepository.get_message(USER, "m1")
        assert stored.category == MessageCategory.RETURNS
        assert stored.tags == ["refund"]

    async def test_update_flags_never_unreplies(self, memory_db, make_message):
        await MessageRepository.upsert_messages(USER, [make_message("m1", is_replied=True)])

        assert await MessageRepository.update_flags(USER, "m1", is_read=True, is_replied=False)

        stored = await MessageRepository.get_message(USER, "m1")
        assert stored.is_read is True
        assert stored.is_replied is True
        assert not await MessageRepository.update_flags(USER, "missing", True, True)

    async def test_mark_replied_clears_draft(self, memory_db, make_message):
        await MessageRepository.upsert_messages(USER, [make_message("m1"), make_message("m2")])
        await MessageRepository.save_draft(USER, "m1", "Hi {NAME}")

        assert await MessageRepository.mark_replied(USER, ["m1", "missing"]) == 1

        stored = await MessageRepository.get_message(USER, "m1")
        assert stored.is_replied is True
        assert stored.is_read is True
        assert stored.suggested_reply is None
        assert (await MessageRepository.get_message(USER, "m2")).is_replied is False

    async def test_delete_messages_is_user_scoped(self, memory_db, make_message):
        await MessageRepository.upsert_messages(USER, [make_message("a"), make_message("b")])
        await MessageRepository.upsert_messages(OTHER, [make_message("a")])

        assert await MessageRepository.delete_messages(USER, ["a"]) == 1
        assert await MessageRepository.get_message(USER, "a") is None
        assert await MessageRepository.get_message(OTHER, "a") is not None
        assert await MessageRepository.delete_messages(USER, []) == 0


@pytest.mark.asyncio
class TestPolicyRepository:
    """Test suite for PolicyRepository."""

    async def test_create_and_list(self, memory_db):
        created = await PolicyRepository.create_policy(USER, " Shipping Policy ", "Ships in 2 days.", "Shipping")

        assert created.id
        assert created.title == "Shipping Policy"
        assert [p.id for p in await PolicyRepository.list_policies(USER)] == [created.id]
        assert await PolicyRepository.list_policies(OTHER) == []

    async def test_create_requires_title_and_content(self, memory_db):
        with pytest.raises(ValueError):
            await PolicyRepository.create_policy(USER, "", "content")
        with pytest.raises(ValueError):
            await PolicyRepository.create_policy(USER, "Title", "   ")

    async def test_update(self, memory_db):
        created = await PolicyRepository.create_policy(USER, "Returns", "30 days.")

        updated = await PolicyRepository.update_policy(USER, created.id, content="60 days.")

        assert updated.title == "Returns"
        assert updated.content == "60 days."
        assert (await PolicyRepository.get_policy(USER, created.id)).content == "60 days."

    async def test_update_missing_or_other_user(self, memory_db):
        created = await PolicyRepository.create_policy(USER, "Returns", "30 days.")
        assert await PolicyRepository.update_policy(USER, "missing", title="x") is None
        assert await PolicyRepository.update_policy(OTHER, created.id, title="x") is None

    async def test_update_rejects_blank_title(self, memory_db):
        created = await PolicyRepository.create_policy(USER, "Returns", "30 days.")
        with pytest.raises(ValueError):
            await PolicyRepository.update_policy(USER, created.id, title="  ")
        assert (await PolicyRepository.get_policy(USER, created.id)).title == "Returns"

    async def test_delete(self, memory_db):
        created = await PolicyRepository.create_policy(USER, "Returns", "30 days.")
        assert not await PolicyRepository.delete_policy(OTHER, created.id)
        assert await PolicyRepository.delete_policy(USER, created.id)
        assert await PolicyRepository.get_policy(USER, created.id) is None
        assert not await PolicyRepository.delete_policy(USER, created.id)
