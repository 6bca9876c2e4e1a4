"""
Inbox Message API Routes

Endpoints for listing, ingesting and classifying messages, finding similar
messages, and drafting single and bulk replies.

Design Considerations:
- Every endpoint is scoped to the caller's user id
- Missing messages propagate as LookupError to the 404 handler
- Invalid reply requests map to 400, unexpected failures to 500
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query, status

from api.models.messages import (
    BackfillResponse,
    BulkReplyRequest,
    BulkReplyResponse,
    ClassificationResponse,
    DraftRequest,
    DraftResponse,
    IngestRequest,
    IngestResponse,
    MessageListResponse,
    MessageSummary,
    SimilarMessage,
    SimilarMessagesResponse,
)
from api.services.message_service import MessageService, get_message_service, get_user_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["Messages"])


@router.get(
    "",
    response_model=MessageListResponse,
    summary="List inbox messages"
)
async def list_messages(
    search: Optional[str] = Query(None, description="Case-insensitive text search over sender, subject and body"),
    category: Optional[List[str]] = Query(None, description="Keep messages in any of these categories"),
    urgency: Optional[List[str]] = Query(None, description="Keep messages with any of these predicted costs"),
    user_id: str = Depends(get_user_id),
    service: MessageService = Depends(get_message_service)
):
    """
    Retrieve the user's messages, newest first.

    Args:
        search: Optional search text
        category: Optional category filters (repeatable)
        urgency: Optional urgency filters (repeatable)

    Returns:
        Matching messages
    """
    try:
        messages = await service.list_messages(user_id, search, category or [], urgency or [])
        return MessageListResponse(
            messages=[MessageSummary.from_message(m) for m in messages],
            total=len(messages)
        )
    except Exception as e:
        logger.error(f"Error listing messages for {user_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to retrieve messages: {str(e)}"
        )


@router.post(
    "/ingest",
    response_model=IngestResponse,
    summary="Ingest raw mailbox messages"
)
async def ingest_messages(
    request: IngestRequest,
    user_id: str = Depends(get_user_id),
    service: MessageService = Depends(get_message_service)
):
    """
    Normalise, filter, classify and store a batch of mailbox messages.

    Known messages only have their read and reply state refreshed.
    """
    try:
        report = await service.ingest(
            user_id, request.messages, threads=request.threads, purge_irrelevant=request.purge_irrelevant
        )
        return IngestResponse(
            synced=report.synced,
            updated=report.updated,
            skipped=report.skipped,
            purged=report.purged,
            ids=report.ids,
            message=report.summary
        )
    except Exception as e:
        logger.error(f"Error ingesting messages for {user_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to ingest messages: {str(e)}"
        )


@router.post(
    "/classify-backfill",
    response_model=BackfillResponse,
    summary="Classify unclassified and General messages"
)
async def classify_backfill(
    user_id: str = Depends(get_user_id),
    service: MessageService = Depends(get_message_service)
):
    try:
        return BackfillResponse(classified=await service.backfill(user_id))
    except Exception as e:
        logger.error(f"Error during classification backfill for {user_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to classify messages: {str(e)}"
        )


@router.post(
    "/{message_id}/classify",
    response_model=ClassificationResponse,
    summary="Re-classify one message"
)
async def classify_message(
    message_id: str = Path(..., description="Message ID"),
    user_id: str = Depends(get_user_id),
    service: MessageService = Depends(get_message_service)
):
    """
    Classify a stored message and persist the result.

    Returns classified=False when the message is already being classified.

    Raises:
        LookupError: If the message does not exist
    """
    try:
        analysis = await service.classify(user_id, message_id)
    except LookupError:
        raise
    except Exception as e:
        logger.error(f"Error classifying message {message_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to classify message: {str(e)}"
        )

    if analysis is None:
        return ClassificationResponse(message_id=message_id, classified=False)
    return ClassificationResponse(
        message_id=message_id,
        classified=True,
        category=analysis.category.value,
        sentiment=analysis.sentiment.value,
        predicted_cost=analysis.predicted_cost.value,
        tags=analysis.tags
    )


@router.get(
    "/{message_id}/similar",
    response_model=SimilarMessagesResponse,
    summary="Find messages similar to one message"
)
async def similar_messages(
    message_id: str = Path(..., description="Target message ID"),
    user_id: str = Depends(get_user_id),
    service: MessageService = Depends(get_message_service)
):
    """
    Run the similarity pipeline for a message against the user's inbox.

    Returns:
        Similar messages, best match first, and the tier that found them
    """
    try:
        result, pool = await service.similar(user_id, message_id)
    except LookupError:
        raise
    except Exception as e:
        logger.error(f"Error finding messages similar to {message_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to find similar messages: {str(e)}"
        )

    by_id = {m.id: m for m in pool}
    return SimilarMessagesResponse(
        message_id=message_id,
        method=result.method.value,
        similar=[
            SimilarMessage(message=MessageSummary.from_message(by_id[match.message_id]), score=match.score)
            for match in result.matches
            if match.message_id in by_id
        ]
    )


@router.post(
    "/{message_id}/draft",
    response_model=DraftResponse,
    summary="Draft a reply to one message"
)
async def draft_reply(
    message_id: str = Path(..., description="Message ID"),
    request: Optional[DraftRequest] = Body(None),
    user_id: str = Depends(get_user_id),
    service: MessageService = Depends(get_message_service)
):
    """
    Draft a reply grounded in the user's policies and store it on the message.
    """
    request = request or DraftRequest()
    try:
        draft = await service.draft(user_id, message_id, request.business_name, request.signature)
        return DraftResponse(message_id=message_id, draft=draft)
    except LookupError:
        raise
    except Exception as e:
        logger.error(f"Error drafting reply for {message_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to draft reply: {str(e)}"
        )


@router.post(
    "/{message_id}/bulk-reply",
    response_model=BulkReplyResponse,
    summary="Reply to a message and its similar messages"
)
async def bulk_reply(
    request: BulkReplyRequest,
    message_id: str = Path(..., description="Target message ID"),
    user_id: str = Depends(get_user_id),
    service: MessageService = Depends(get_message_service)
):
    """
    Send or store one personalised reply for the target and selected messages.

    Raises:
        HTTPException: 400 for an empty draft or AutoSend without delivery
    """
    try:
        report = await service.bulk_reply(
            user_id, message_id, request.draft, request.selected_ids, request.mode
        )
    except LookupError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Error sending bulk reply for {message_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to send bulk reply: {str(e)}"
        )

    return BulkReplyResponse(
        mode=report.mode.value,
        drafted=report.drafted,
        sent=report.sent,
        failed=report.failed
    )
