# genova/routes/v1/consortiums.py
"""
Consortium routes - API v1

Endpoints:
    PUT /{consortium_id}/revenue-shares - Replace member revenue shares
"""

import asyncio
import logging
from typing import List

from fastapi import APIRouter, Depends

from ...api.dependencies import get_consortium_service, get_current_active_user
from ...core.exceptions import DomainException
from ...errors import handle_domain_exception
from ...models.user import User
from ...schemas.base import ApiResponse
from ...schemas.consortium import ConsortiumMemberResponse, RevenueSharesUpdate
from ...services.consortium_service import ConsortiumService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["consortiums-v1"])


@router.put(
    "/{consortium_id}/revenue-shares",
    response_model=ApiResponse[List[ConsortiumMemberResponse]],
)
async def update_revenue_shares(
    consortium_id: str,
    payload: RevenueSharesUpdate,
    current_user: User = Depends(get_current_active_user),
    service: ConsortiumService = Depends(get_consortium_service),
) -> ApiResponse[List[ConsortiumMemberResponse]]:
    shares = {item.tutor_id: item.revenue_share for item in payload.shares}
    try:
        members = await asyncio.to_thread(
            service.update_revenue_shares, consortium_id, shares, current_user
        )
        return ApiResponse(
            data=[ConsortiumMemberResponse.model_validate(m) for m in members],
            message="Revenue shares updated successfully",
        )
    except DomainException as e:
        handle_domain_exception(e)
