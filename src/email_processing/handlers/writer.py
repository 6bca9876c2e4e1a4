"""
Reply drafting and bulk-reply personalisation.

Drafts are produced by the first provider that answers and fall back to a
deterministic template, so the operator always gets something to edit.
Stored drafts address the customer with a {NAME} placeholder; the
placeholder is replaced with each recipient's first name when a reply
goes out, which is what lets one draft answer a whole group of similar
messages.

Design Considerations:
- Policy context and message text are truncated before prompting
- A model that writes the customer's name instead of {NAME} is corrected
- Bulk selection defaults to the target plus every unreplied match
"""

import logging
import re
from typing import Iterable, List, Optional, Sequence

from src.config.analyzer_config import ANALYZER_CONFIG
from src.email_processing.base import BaseLLMProvider, DraftRequest
from src.email_processing.handlers.content import decode_html_entities, get_first_name, truncate
from src.email_processing.models import BusinessPolicy, Message, ReplyPlan

logger = logging.getLogger(__name__)

NAME_PLACEHOLDER = "{NAME}"


def build_policy_context(policies: Iterable[BusinessPolicy], limit: Optional[int] = None) -> str:
    """Join policies as "title: content" blocks, truncated to the limit."""
    limit = limit or ANALYZER_CONFIG["draft"]["policy_context_chars"]
    context = "\n\n".join(f"{p.title}: {p.content}" for p in policies)
    return truncate(context, limit)


def normalize_draft_name(draft: str, sender_name: Optional[str]) -> str:
    """
    Replace the sender's first name with {NAME}.

    Drafts that already contain the placeholder, or senders without a
    name, are returned unchanged.
    """
    if NAME_PLACEHOLDER in draft:
        return draft
    first_name = get_first_name(sender_name)
    if not first_name:
        return draft
    return re.sub(rf"\b{re.escape(first_name)}\b", NAME_PLACEHOLDER, draft)


def personalize(draft: str, sender_name: Optional[str]) -> str:
    """Replace every {NAME} with the recipient's first name."""
    return draft.replace(NAME_PLACEHOLDER, get_first_name(sender_name) or "there")


def template_draft(sender_name: Optional[str], business_name: Optional[str],
                   signature: Optional[str] = None) -> str:
    greeting = NAME_PLACEHOLDER if get_first_name(sender_name) else "there"
    draft = (
        f"Hi {greeting},\n\n"
        f"Thanks for reaching out to {business_name or 'us'}. "
        "I'm looking into this now and will help get it resolved. "
        "Could you confirm your order number and any relevant details "
        "(e.g., tracking number or photos if applicable)?\n\n"
        "Thanks!"
    )
    if signature:
        draft = f"{draft}\n{signature}"
    return draft


class DraftWriter:
    """Drafts customer replies with ordered providers and a template fallback."""

    def __init__(self, providers: Sequence[BaseLLMProvider] = ()):
        self.providers = list(providers)
        self.message_chars = ANALYZER_CONFIG["draft"]["message_chars"]

    async def generate_draft(self,
                             message_text: str,
                             sender_name: str = "",
                             policies: Sequence[BusinessPolicy] = (),
                             business_name: Optional[str] = None,
                             signature: Optional[str] = None) -> str:
        """
        Draft a reply to one message.

        Args:
            message_text: Customer message body, entities allowed
            sender_name: Customer display name
            policies: Business policies to ground the reply in
            business_name: Business the reply is written for
            signature: Closing line for the reply

        Returns:
            Draft text using the {NAME} placeholder for the customer
        """
        request = DraftRequest(
            message_text=truncate(decode_html_entities(message_text), self.message_chars),
            sender_name=sender_name or "",
            policies=list(policies),
            business_name=business_name,
            signature=signature,
            policy_context=build_policy_context(policies)
        )

        for provider in self.providers:
            try:
                draft = (await provider.draft_reply(request)).strip()
                if draft:
                    logger.info(f"Draft generated by {provider.name}")
                    return normalize_draft_name(draft, sender_name)
                logger.warning(f"{provider.name} returned an empty draft")
            except Exception as e:
                logger.warning(f"Draft generation with {provider.name} failed: {e}")

        logger.info("Using template draft")
        return template_draft(sender_name, business_name, signature)

    def plan_bulk_reply(self,
                        target: Message,
                        draft: str,
                        matches: Sequence[Message],
                        selected_ids: Optional[Iterable[str]] = None) -> List[ReplyPlan]:
        """
        Personalised replies for the target and the selected matches.

        Args:
            target: Message the draft was written for
            draft: Draft text with {NAME} placeholders
            matches: Similar messages offered for bulk reply
            selected_ids: Ids chosen by the operator; defaults to every
                unreplied match

        Returns:
            One ReplyPlan per recipient, target first, no duplicates
        """
        if selected_ids is None:
            selected = {m.id for m in matches if not m.is_replied}
        else:
            selected = set(selected_ids)

        recipients = [target] + [m for m in matches if m.id in selected and m.id != target.id]
        plans = []
        seen = set()
        for message in recipients:
            if message.id in seen:
                continue
            seen.add(message.id)
            plans.append(ReplyPlan(
                message_id=message.id,
                recipient_name=message.sender_name,
                recipient_handle=message.sender_handle,
                reply_text=personalize(draft, message.sender_name)
            ))
        return plans
