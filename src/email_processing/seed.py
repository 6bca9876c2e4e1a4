"""
Demo policies and messages for a fresh workspace.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from src.email_processing.models import (
    BusinessPolicy,
    Channel,
    Message,
    MessageCategory,
    ResponseCost,
    Sentiment,
)


def demo_policies() -> List[BusinessPolicy]:
    return [
        BusinessPolicy(
            id="1",
            title="Shipping Policy",
            content=(
                "We ship worldwide via DHL Express. Standard processing time is 1-2 business days. "
                "Domestic shipping is free for orders over $50. International shipping starts at $15. "
                "Tracking numbers are emailed automatically upon dispatch."
            ),
            category=MessageCategory.SHIPPING.value,
        ),
        BusinessPolicy(
            id="2",
            title="Returns & Refunds",
            content=(
                "We accept returns within 30 days of delivery. Items must be unused and in original "
                "packaging. Return shipping is covered by the customer unless the item arrived damaged. "
                "Refunds are processed to the original payment method within 5-7 business days of receipt."
            ),
            category=MessageCategory.RETURNS.value,
        ),
        BusinessPolicy(
            id="3",
            title="Custom Orders",
            content=(
                "We love custom orders! Customization fees start at $20. Please allow an extra 3-5 "
                "business days for production. Custom items are non-refundable."
            ),
            category=MessageCategory.CUSTOM.value,
        ),
    ]


def demo_messages(now: Optional[datetime] = None) -> List[Message]:
    """Six sample messages across channels, timestamped relative to now."""
    now = now or datetime.now(timezone.utc)
    return [
        Message(
            id="m1",
            sender_name="Sarah Jenkins",
            sender_handle="@sarahj_crafts",
            channel=Channel.INSTAGRAM,
            body=(
                "Hey! I ordered the ceramic vase (Order #9921) last week but haven't received "
                "a tracking number yet. Is it on its way?"
            ),
            timestamp=now - timedelta(minutes=30),
            category=MessageCategory.SHIPPING,
            sentiment=Sentiment.NEUTRAL,
            predicted_cost=ResponseCost.LOW,
            tags=["Order Status", "Tracking"],
        ),
        Message(
            id="m2",
            sender_name="Mike Ross",
            sender_handle="mike.ross@example.com",
            channel=Channel.EMAIL,
            subject="Damaged Item Received",
            body=(
                "I am very disappointed. My package arrived today and the vintage lamp is completely "
                "shattered. I need a refund immediately or I will file a chargeback."
            ),
            timestamp=now - timedelta(hours=2),
            category=MessageCategory.COMPLAINT,
            sentiment=Sentiment.NEGATIVE,
            predicted_cost=ResponseCost.HIGH,
            tags=["Damaged", "Refund", "Urgent"],
        ),
        Message(
            id="m3",
            sender_name="EtsyBuyer_99",
            sender_handle="Etsy Message",
            channel=Channel.ETSY,
            body="Hi there, do you do these customized with initials? I want to get one for my wedding party.",
            timestamp=now - timedelta(hours=5),
            is_read=True,
            category=MessageCategory.CUSTOM,
            sentiment=Sentiment.POSITIVE,
            predicted_cost=ResponseCost.MEDIUM,
            tags=["Custom Request", "Wedding"],
        ),
        Message(
            id="m4",
            sender_name="Shopify Notifier",
            sender_handle="System",
            channel=Channel.SHOPIFY,
            body="New order #10234 placed by John Doe. Total: $125.00",
            timestamp=now - timedelta(days=1),
            is_read=True,
            is_replied=True,
            category=MessageCategory.GENERAL,
            sentiment=Sentiment.NEUTRAL,
            predicted_cost=ResponseCost.LOW,
            tags=["Notification"],
        ),
        Message(
            id="m5",
            sender_name="David Chen",
            sender_handle="david.c@gmail.com",
            channel=Channel.EMAIL,
            subject="Tracking info?",
            body="Hello, I haven't gotten my tracking number yet for order #9925. Can you please check?",
            timestamp=now - timedelta(minutes=45),
            category=MessageCategory.SHIPPING,
            sentiment=Sentiment.NEUTRAL,
            predicted_cost=ResponseCost.LOW,
            tags=["Tracking", "Order Status"],
        ),
        Message(
            id="m6",
            sender_name="Lisa Kudrow",
            sender_handle="@phoebe",
            channel=Channel.INSTAGRAM,
            body="Can I add custom text to the mug? It is for a birthday.",
            timestamp=now - timedelta(hours=6),
            category=MessageCategory.CUSTOM,
            sentiment=Sentiment.POSITIVE,
            predicted_cost=ResponseCost.MEDIUM,
            tags=["Custom Request", "Birthday"],
        ),
    ]
