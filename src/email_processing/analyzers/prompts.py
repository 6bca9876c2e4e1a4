# email_processing/analyzers/prompts.py

import json
from typing import Dict, List

from src.email_processing.base import DraftRequest
from src.email_processing.models import MessageCategory, ResponseCost, Sentiment

# Sampling settings per task, shared by every chat provider
TASK_SETTINGS = {
    'message_classification': {
        'temperature': 0.0,
        'max_tokens': 300,
        'json_mode': True
    },
    'similarity_judgment': {
        'temperature': 0.0,
        'max_tokens': 400,
        'json_mode': True
    },
    'relevance_check': {
        'temperature': 0.0,
        'max_tokens': 150,
        'json_mode': True
    },
    'reply_drafting': {
        'temperature': 0.4,
        'max_tokens': 700,
        'json_mode': False
    }
}

_CATEGORIES = ", ".join(c.value for c in MessageCategory)
_SENTIMENTS = ", ".join(s.value for s in Sentiment)
_COSTS = ", ".join(c.value for c in ResponseCost)

CLASSIFICATION_SYSTEM_PROMPT = f"""You triage customer messages for a small online business.
Classify the message.

category: one of {_CATEGORIES}.
sentiment: one of {_SENTIMENTS}.
predicted_cost: one of {_COSTS}. Ask yourself "what happens if the business doesn't respond soon?"
- High: a lost sale, a chargeback, a public complaint or an angry customer is likely
- Medium: the customer is waiting on something and will become frustrated
- Low: no sign of dissatisfaction, a slow reply costs nothing
tags: up to 3 short lowercase keywords.

Respond with ONLY a JSON object:
{{"category": "...", "sentiment": "...", "predicted_cost": "...", "tags": ["..."], "reason": "..."}}"""

SIMILARITY_SYSTEM_PROMPT = """You compare customer messages for a small online business.
Given a target message and a list of candidate messages, return the ids of the candidates
that describe the same situation or request as the target, even when worded differently.
Small differences in numbers or dates do not make messages different.

Respond with ONLY a JSON object: {"similarIds": ["id1", "id2"]}
Return {"similarIds": []} when no candidate matches."""

RELEVANCE_SYSTEM_PROMPT = """You filter an inbox for a small online business.
Decide whether the email is a genuine customer message that needs the business's attention
(orders, shipping, returns, products, custom requests, complaints, support).
Newsletters, marketing, notifications, receipts sent by services and spam are not relevant.

Respond with ONLY a JSON object: {"relevant": true, "reason": "..."}"""

DRAFT_SYSTEM_PROMPT = """You write customer support replies for {business}.
Write a concise, friendly and professional reply to the customer message.
Ground the answer in the business policies when they apply and never invent order
details, tracking numbers or promises the policies do not support.
Address the customer with the literal placeholder {{NAME}} instead of their name.
Reply with the email body only, no subject line."""


def classification_messages(text: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": CLASSIFICATION_SYSTEM_PROMPT},
        {"role": "user", "content": f"Customer message:\n{text}"}
    ]


def similarity_messages(target_text: str, candidates: List[Dict[str, str]]) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SIMILARITY_SYSTEM_PROMPT},
        {"role": "user", "content": (
            f"Target message:\n{target_text}\n\n"
            f"Candidates:\n{json.dumps(candidates, ensure_ascii=False, indent=2)}"
        )}
    ]


def relevance_messages(subject: str, body: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": RELEVANCE_SYSTEM_PROMPT},
        {"role": "user", "content": f"Subject: {subject}\n\nContent: {body}"}
    ]


def draft_messages(request: DraftRequest) -> List[Dict[str, str]]:
    business = request.business_name or "the business"
    parts = []
    if request.policy_context:
        parts.append(f"Business policies:\n{request.policy_context}")
    parts.append(f"Customer ({request.sender_name or 'unknown'}) wrote:\n{request.message_text}")
    if request.signature:
        parts.append(f"End the reply with this signature:\n{request.signature}")
    return [
        {"role": "system", "content": DRAFT_SYSTEM_PROMPT.format(business=business)},
        {"role": "user", "content": "\n\n".join(parts)}
    ]
