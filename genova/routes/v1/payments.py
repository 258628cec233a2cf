# genova/routes/v1/payments.py
"""
Payment routes - API v1

Endpoints:
    POST /holds - Hold the session price from the student's wallet
    GET /wallet - Wallet balance and loyalty points of the current user
    GET /transactions - Transactions the current user paid or received
"""

import asyncio
import logging
from typing import List

from fastapi import APIRouter, Depends, Query, status

from ...api.dependencies import (
    get_current_active_user,
    get_settlement_service,
    get_wallet_service,
)
from ...core.exceptions import DomainException
from ...errors import handle_domain_exception
from ...models.user import User
from ...schemas.base import ApiResponse
from ...schemas.payment import (
    PaymentHoldCreate,
    TransactionHistoryItem,
    TransactionResponse,
    WalletResponse,
)
from ...services.settlement_service import SettlementService
from ...services.wallet_service import WalletService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments-v1"])


@router.post(
    "/holds",
    response_model=ApiResponse[TransactionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def place_payment_hold(
    payload: PaymentHoldCreate,
    current_user: User = Depends(get_current_active_user),
    service: SettlementService = Depends(get_settlement_service),
) -> ApiResponse[TransactionResponse]:
    """Held funds are paid out at completion or refunded on absence or cancellation."""
    try:
        hold = await asyncio.to_thread(
            service.place_payment_hold, payload.session_id, current_user.id, payload.amount
        )
        return ApiResponse(
            data=TransactionResponse.model_validate(hold),
            message="Payment held successfully",
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/wallet", response_model=ApiResponse[WalletResponse])
async def get_wallet(
    current_user: User = Depends(get_current_active_user),
    service: WalletService = Depends(get_wallet_service),
) -> ApiResponse[WalletResponse]:
    try:
        balance = await asyncio.to_thread(service.get_balance, current_user.id)
        return ApiResponse(
            data=WalletResponse(
                user_id=current_user.id,
                balance=balance,
                loyalty_points=current_user.loyalty_points or 0,
            )
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/transactions", response_model=ApiResponse[List[TransactionHistoryItem]])
async def get_transaction_history(
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_active_user),
    service: SettlementService = Depends(get_settlement_service),
) -> ApiResponse[List[TransactionHistoryItem]]:
    """Holds, payouts and refunds of the current user, newest first."""
    try:
        transactions = await asyncio.to_thread(
            service.get_transaction_history, current_user.id, limit
        )
        return ApiResponse(
            data=[TransactionHistoryItem.model_validate(t) for t in transactions]
        )
    except DomainException as e:
        handle_domain_exception(e)
