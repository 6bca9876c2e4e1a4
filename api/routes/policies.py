"""
Business Policy API Routes

CRUD endpoints for the free-text policies that ground drafted replies.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path, status

from api.models.messages import PolicyCreateRequest, PolicyModel, PolicyUpdateRequest
from api.services.message_service import MessageService, get_message_service, get_user_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/policies", tags=["Policies"])


@router.get("", response_model=List[PolicyModel], summary="List business policies")
async def list_policies(
    user_id: str = Depends(get_user_id),
    service: MessageService = Depends(get_message_service)
):
    try:
        return [PolicyModel.from_policy(p) for p in await service.list_policies(user_id)]
    except Exception as e:
        logger.error(f"Error listing policies for {user_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to retrieve policies: {str(e)}"
        )


@router.post(
    "",
    response_model=PolicyModel,
    status_code=status.HTTP_201_CREATED,
    summary="Create a business policy"
)
async def create_policy(
    request: PolicyCreateRequest,
    user_id: str = Depends(get_user_id),
    service: MessageService = Depends(get_message_service)
):
    try:
        policy = await service.create_policy(user_id, request.title, request.content, request.category)
        return PolicyModel.from_policy(policy)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating policy for {user_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create policy: {str(e)}"
        )


@router.put("/{policy_id}", response_model=PolicyModel, summary="Update a business policy")
async def update_policy(
    request: PolicyUpdateRequest,
    policy_id: str = Path(..., description="Policy ID"),
    user_id: str = Depends(get_user_id),
    service: MessageService = Depends(get_message_service)
):
    """
    Update the provided fields of a policy.

    Raises:
        LookupError: If the policy does not exist
    """
    try:
        policy = await service.update_policy(
            user_id, policy_id, request.title, request.content, request.category
        )
        return PolicyModel.from_policy(policy)
    except LookupError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating policy {policy_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update policy: {str(e)}"
        )


@router.delete("/{policy_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a business policy")
async def delete_policy(
    policy_id: str = Path(..., description="Policy ID"),
    user_id: str = Depends(get_user_id),
    service: MessageService = Depends(get_message_service)
):
    try:
        await service.delete_policy(user_id, policy_id)
    except LookupError:
        raise
    except Exception as e:
        logger.error(f"Error deleting policy {policy_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to delete policy: {str(e)}"
        )
