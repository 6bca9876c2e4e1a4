"""
Tests for mailbox payload normalisation, message filters and date parsing.
"""

from datetime import datetime, timezone

import pytest

from src.email_processing.handlers.ingestion import (
    clamp_max_results,
    filter_by_feature,
    filter_by_search,
    get_header_value,
    latest_sent_ms,
    normalize_provider_message,
    parse_from_header,
)
from src.email_processing.models import Channel, MessageCategory, ResponseCost
from src.utils.date_utils import format_iso_date, parse_email_date

RECEIVED_MS = 1760436000000  # 2025-10-14 10:00:00 UTC


def raw_message(message_id="gm-1", **overrides):
    raw = {
        "id": message_id,
        "threadId": "th-1",
        "internalDate": str(RECEIVED_MS),
        "labelIds": ["INBOX", "UNREAD"],
        "snippet": "Where&#39;s my order? It&#39;s been a week.",
        "payload": {"headers": [
            {"name": "From", "value": '"Sarah Jenkins" <sarah@example.com>'},
            {"name": "subject", "value": "Order #9921"},
            {"name": "Date", "value": "Tue, 14 Oct 2025 10:00:00 +0000"},
        ]},
    }
    raw.update(overrides)
    return raw


class TestHeaders:
    def test_header_lookup_is_case_insensitive(self):
        headers = [{"name": "SUBJECT", "value": "Hi"}]
        assert get_header_value(headers, "Subject") == "Hi"
        assert get_header_value(headers, "From") == ""

    @pytest.mark.parametrize("header,expected", [
        ('"Jane Doe" <jane@example.com>', ("Jane Doe", "jane@example.com")),
        ("Jane Doe <jane@example.com>", ("Jane Doe", "jane@example.com")),
        ("jane@example.com", ("jane@example.com", "jane@example.com")),
        ("", ("", "")),
    ])
    def test_parse_from_header(self, header, expected):
        assert parse_from_header(header) == expected


class TestNormalizeProviderMessage:
    def test_basic_fields(self):
        message = normalize_provider_message(raw_message())

        assert message.id == "gm-1"
        assert message.thread_id == "th-1"
        assert message.channel == Channel.EMAIL
        assert message.sender_name == "Sarah Jenkins"
        assert message.sender_handle == "sarah@example.com"
        assert message.subject == "Order #9921"
        assert message.body == "Where's my order? It's been a week."
        assert message.timestamp == datetime(2025, 10, 14, 10, 0, tzinfo=timezone.utc)
        assert message.is_read is False
        assert message.is_replied is False
        assert message.category == MessageCategory.GENERAL

    def test_read_when_unread_label_missing(self):
        assert normalize_provider_message(raw_message(labelIds=["INBOX"])).is_read is True

    def test_replied_when_later_sent_message_in_thread(self):
        thread = {"messages": [
            {"id": "gm-1", "internalDate": str(RECEIVED_MS), "labelIds": ["INBOX"]},
            {"id": "gm-2", "internalDate": str(RECEIVED_MS + 60000), "labelIds": ["SENT"]},
        ]}
        sent = latest_sent_ms(thread)
        assert sent == RECEIVED_MS + 60000
        assert normalize_provider_message(raw_message(), sent).is_replied is True

    def test_earlier_sent_message_is_not_a_reply(self):
        assert normalize_provider_message(raw_message(), RECEIVED_MS - 1).is_replied is False

    def test_thread_without_sent_messages(self):
        assert latest_sent_ms({"messages": [{"labelIds": ["INBOX"], "internalDate": "5"}]}) is None
        assert latest_sent_ms({}) is None

    def test_date_header_fallback(self):
        message = normalize_provider_message(raw_message(internalDate=None))
        assert message.timestamp == datetime(2025, 10, 14, 10, 0, tzinfo=timezone.utc)

    def test_subject_falls_back_to_first_body_line(self):
        raw = raw_message(payload={"headers": [{"name": "From", "value": "sarah@example.com"}]})
        assert normalize_provider_message(raw).subject == "Where's my order? It's been a week."

    def test_missing_id(self):
        with pytest.raises(ValueError):
            normalize_provider_message(raw_message(message_id=None))


class TestClampMaxResults:
    @pytest.mark.parametrize("value,expected", [
        (None, 30),
        ("abc", 30),
        (10, 10),
        ("25", 25),
        (0, 1),
        (500, 50),
    ])
    def test_clamp(self, value, expected):
        assert clamp_max_results(value) == expected


class TestFilters:
    @pytest.fixture
    def inbox(self, make_message):
        return [
            make_message("a", body="Where is my package?", category=MessageCategory.SHIPPING,
                         sender_name="Sarah Jenkins", predicted_cost=ResponseCost.LOW),
            make_message("b", body="I want my money back", category=MessageCategory.RETURNS,
                         predicted_cost=ResponseCost.HIGH, subject="Refund request"),
            make_message("c", body="Can you make a blue mug?", category=MessageCategory.CUSTOM,
                         predicted_cost=ResponseCost.MEDIUM),
        ]

    def test_search_matches_name_body_and_subject(self, inbox):
        assert [m.id for m in filter_by_search(inbox, "sarah")] == ["a"]
        assert [m.id for m in filter_by_search(inbox, "MUG")] == ["c"]
        assert [m.id for m in filter_by_search(inbox, "refund")] == ["b"]
        assert len(filter_by_search(inbox, "")) == 3

    def test_feature_filters_combine(self, inbox):
        assert [m.id for m in filter_by_feature(inbox, [MessageCategory.SHIPPING, MessageCategory.CUSTOM])] == ["a", "c"]
        assert [m.id for m in filter_by_feature(inbox, urgencies=[ResponseCost.HIGH])] == ["b"]
        assert filter_by_feature(inbox, [MessageCategory.SHIPPING], [ResponseCost.HIGH]) == []
        assert len(filter_by_feature(inbox)) == 3


class TestDateUtils:
    def test_rfc2822(self):
        parsed, ok = parse_email_date("Tue, 14 Oct 2025 12:00:00 +0200")
        assert ok
        assert parsed == datetime(2025, 10, 14, 10, 0, tzinfo=timezone.utc)

    def test_iso(self):
        parsed, ok = parse_email_date("2025-10-14T10:00:00Z")
        assert ok
        assert parsed.tzinfo is not None

    def test_unparseable(self):
        parsed, ok = parse_email_date("not a date")
        assert not ok
        assert parsed.tzinfo is not None

    def test_format_naive_as_utc(self):
        assert format_iso_date(datetime(2025, 10, 14, 10, 0)) == "2025-10-14T10:00:00+00:00"
