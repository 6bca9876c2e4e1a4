"""
Tests for reply drafting, name personalisation and bulk-reply planning.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.email_processing.errors import ProviderError
from src.email_processing.handlers.writer import (
    NAME_PLACEHOLDER,
    DraftWriter,
    build_policy_context,
    normalize_draft_name,
    personalize,
    template_draft,
)
from src.email_processing.models import BusinessPolicy


def make_drafter(name, draft=None, error=None):
    provider = MagicMock()
    provider.name = name
    provider.draft_reply = AsyncMock(return_value=draft, side_effect=error)
    return provider


@pytest.fixture
def policies():
    return [
        BusinessPolicy("1", "Shipping Policy", "Orders ship within 3 business days."),
        BusinessPolicy("2", "Returns & Refunds", "Returns accepted within 30 days."),
    ]


class TestTemplateDraft:
    def test_named_sender_gets_placeholder(self):
        draft = template_draft("Sarah Jenkins", "Clay Studio")
        assert draft.startswith("Hi {NAME},")
        assert "Clay Studio" in draft

    def test_anonymous_sender(self):
        draft = template_draft("", None)
        assert draft.startswith("Hi there,")
        assert "reaching out to us" in draft

    def test_signature_appended(self):
        assert template_draft("Sarah", "Clay Studio", "- Jo").endswith("\n- Jo")


class TestNamePlaceholders:
    def test_normalize_replaces_first_name(self):
        assert normalize_draft_name("Hi Sarah, thanks Sarah!", "Sarah Jenkins") == "Hi {NAME}, thanks {NAME}!"

    def test_normalize_keeps_existing_placeholder(self):
        assert normalize_draft_name("Hi {NAME}, Sarah here", "Sarah") == "Hi {NAME}, Sarah here"

    def test_normalize_matches_whole_words(self):
        assert normalize_draft_name("Hi Ann, our Annual sale", "Ann Lee") == "Hi {NAME}, our Annual sale"

    def test_personalize(self):
        assert personalize("Hi {NAME}! Bye {NAME}.", "David Chen") == "Hi David! Bye David."
        assert personalize("Hi {NAME},", "") == "Hi there,"


class TestPolicyContext:
    def test_title_and_content_blocks(self, policies):
        context = build_policy_context(policies)
        assert context == (
            "Shipping Policy: Orders ship within 3 business days.\n\n"
            "Returns & Refunds: Returns accepted within 30 days."
        )

    def test_truncated(self, policies):
        assert len(build_policy_context(policies, limit=20)) == 20

    def test_empty(self):
        assert build_policy_context([]) == ""


class TestDraftWriter:
    @pytest.mark.asyncio
    async def test_provider_draft_is_normalised(self, policies):
        provider = make_drafter("groq", draft="Hi Sarah, your order ships Monday.")
        writer = DraftWriter([provider])

        draft = await writer.generate_draft(
            "Where&#39;s my order?", "Sarah Jenkins", policies, "Clay Studio", "- Jo"
        )

        assert draft == "Hi {NAME}, your order ships Monday."
        request = provider.draft_reply.await_args.args[0]
        assert request.message_text == "Where's my order?"
        assert "Shipping Policy:" in request.policy_context
        assert request.business_name == "Clay Studio"
        assert request.signature == "- Jo"

    @pytest.mark.asyncio
    async def test_failed_and_empty_providers_cascade(self):
        failing = make_drafter("groq", error=ProviderError("groq", "timeout"))
        empty = make_drafter("other", draft="   ")
        working = make_drafter("ollama", draft="Hi {NAME}, on it.")

        draft = await DraftWriter([failing, empty, working]).generate_draft("Help", "Mike Ross")

        assert draft == "Hi {NAME}, on it."

    @pytest.mark.asyncio
    async def test_template_when_no_provider_answers(self):
        failing = make_drafter("groq", error=ProviderError("groq", "down"))
        draft = await DraftWriter([failing]).generate_draft("Help", "Mike Ross", business_name="Clay Studio")
        assert draft == template_draft("Mike Ross", "Clay Studio")
        assert NAME_PLACEHOLDER in draft

    @pytest.mark.asyncio
    async def test_message_is_truncated(self):
        provider = make_drafter("groq", draft="ok")
        await DraftWriter([provider]).generate_draft("x" * 5000, "Sam")
        assert len(provider.draft_reply.await_args.args[0].message_text) == 1500


class TestPlanBulkReply:
    def test_defaults_to_unreplied_matches(self, make_message):
        target = make_message("t", sender_name="Sarah Jenkins")
        open_match = make_message("a", sender_name="David Chen")
        replied = make_message("b", sender_name="Lisa Kudrow", is_replied=True)

        plans = DraftWriter().plan_bulk_reply(target, "Hi {NAME},", [open_match, replied])

        assert [p.message_id for p in plans] == ["t", "a"]
        assert [p.reply_text for p in plans] == ["Hi Sarah,", "Hi David,"]
        assert plans[1].recipient_handle == open_match.sender_handle

    def test_explicit_selection(self, make_message):
        target = make_message("t")
        matches = [make_message("a"), make_message("b", is_replied=True), make_message("c")]
        plans = DraftWriter().plan_bulk_reply(target, "Hi", matches, selected_ids=["b"])
        assert [p.message_id for p in plans] == ["t", "b"]

    def test_target_first_without_duplicates(self, make_message):
        target = make_message("t")
        a = make_message("a")
        plans = DraftWriter().plan_bulk_reply(target, "Hi", [a, target, a], selected_ids=["a", "t", "a"])
        assert [p.message_id for p in plans] == ["t", "a"]

    def test_empty_selection_is_target_only(self, make_message):
        target = make_message("t")
        plans = DraftWriter().plan_bulk_reply(target, "Hi", [make_message("a")], selected_ids=[])
        assert [p.message_id for p in plans] == ["t"]
