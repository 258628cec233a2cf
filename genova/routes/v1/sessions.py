# genova/routes/v1/sessions.py
"""
Tutoring session routes - API v1

Endpoints:
    POST / - Book a session for a class
    GET / - Sessions of the current user (filters: status, startDate, endDate)
    GET /availability - Tutor conflict check for a time range
    GET /class/{class_id} - Sessions of one class
    GET /{session_id} - Session details
    PUT /{session_id} - Update fields or assign a tutor
    PUT /{session_id}/status - Confirm, complete or cancel
    POST /{session_id}/confirm - Tutor confirms a pending session
    POST /{session_id}/cancel - Cancel with lead-time refund
    POST /{session_id}/reschedule - Move a session
"""

import asyncio
from datetime import datetime
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ...api.dependencies import get_current_active_user, get_session_service
from ...api.dependencies.services import get_availability_checker
from ...core.exceptions import DomainException
from ...errors import handle_domain_exception
from ...models.session import SessionStatus
from ...models.user import User
from ...schemas.base import ApiResponse
from ...schemas.session import (
    AvailabilityResponse,
    CancellationResponse,
    SessionCancel,
    SessionCreate,
    SessionReschedule,
    SessionResponse,
    SessionStatusUpdate,
    SessionUpdate,
)
from ...services.availability_checker import AvailabilityChecker
from ...services.session_service import SessionService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sessions-v1"])

_STATUS_MESSAGES = {
    SessionStatus.CONFIRMED.value: "Session confirmed successfully",
    SessionStatus.COMPLETED.value: "Session completed successfully",
    SessionStatus.CANCELLED.value: "Session cancelled successfully",
}


# ============================================================================
# Static routes (no path parameters)
# ============================================================================


@router.post(
    "",
    response_model=ApiResponse[SessionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_session(
    payload: SessionCreate,
    current_user: User = Depends(get_current_active_user),
    service: SessionService = Depends(get_session_service),
) -> ApiResponse[SessionResponse]:
    try:
        session = await asyncio.to_thread(service.create_session, current_user, payload)
        return ApiResponse(
            data=SessionResponse.model_validate(session),
            message="Session created successfully",
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.get("", response_model=ApiResponse[List[SessionResponse]])
async def list_sessions(
    status_filter: Optional[str] = Query(
        None, alias="status", description="Comma-separated statuses"
    ),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    current_user: User = Depends(get_current_active_user),
    service: SessionService = Depends(get_session_service),
) -> ApiResponse[List[SessionResponse]]:
    """Sessions of the current user's classes and sessions they teach, newest first."""
    try:
        sessions = await asyncio.to_thread(
            service.list_user_sessions,
            current_user,
            status=status_filter,
            start_date=start_date,
            end_date=end_date,
        )
        return ApiResponse(data=[SessionResponse.model_validate(s) for s in sessions])
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/availability", response_model=ApiResponse[AvailabilityResponse])
async def check_availability(
    tutor_id: str = Query(..., alias="tutorId"),
    start_time: datetime = Query(..., alias="startTime"),
    end_time: datetime = Query(..., alias="endTime"),
    current_user: User = Depends(get_current_active_user),
    checker: AvailabilityChecker = Depends(get_availability_checker),
) -> ApiResponse[AvailabilityResponse]:
    try:
        result = await asyncio.to_thread(
            checker.check_tutor_availability, tutor_id, start_time, end_time
        )
        return ApiResponse(data=AvailabilityResponse.model_validate(result))
    except DomainException as e:
        handle_domain_exception(e)


# ============================================================================
# Dynamic routes
# ============================================================================


@router.get("/class/{class_id}", response_model=ApiResponse[List[SessionResponse]])
async def list_class_sessions(
    class_id: str,
    status_filter: Optional[str] = Query(None, alias="status"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    current_user: User = Depends(get_current_active_user),
    service: SessionService = Depends(get_session_service),
) -> ApiResponse[List[SessionResponse]]:
    try:
        sessions = await asyncio.to_thread(
            service.list_class_sessions,
            class_id,
            current_user,
            status=status_filter,
            start_date=start_date,
            end_date=end_date,
        )
        return ApiResponse(data=[SessionResponse.model_validate(s) for s in sessions])
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{session_id}", response_model=ApiResponse[SessionResponse])
async def get_session(
    session_id: str,
    current_user: User = Depends(get_current_active_user),
    service: SessionService = Depends(get_session_service),
) -> ApiResponse[SessionResponse]:
    try:
        session = await asyncio.to_thread(service.get_session_for_user, session_id, current_user)
        return ApiResponse(data=SessionResponse.model_validate(session))
    except DomainException as e:
        handle_domain_exception(e)


@router.put("/{session_id}", response_model=ApiResponse[SessionResponse])
async def update_session(
    session_id: str,
    payload: SessionUpdate,
    current_user: User = Depends(get_current_active_user),
    service: SessionService = Depends(get_session_service),
) -> ApiResponse[SessionResponse]:
    try:
        session = await asyncio.to_thread(
            service.update_session, session_id, current_user, payload
        )
        return ApiResponse(
            data=SessionResponse.model_validate(session),
            message="Session updated successfully",
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.put("/{session_id}/status", response_model=ApiResponse[SessionResponse])
async def update_session_status(
    session_id: str,
    payload: SessionStatusUpdate,
    current_user: User = Depends(get_current_active_user),
    service: SessionService = Depends(get_session_service),
) -> ApiResponse[SessionResponse]:
    try:
        session = await asyncio.to_thread(
            service.update_session_status,
            session_id,
            current_user,
            payload.status,
            payload.reason,
        )
        return ApiResponse(
            data=SessionResponse.model_validate(session),
            message=_STATUS_MESSAGES.get(payload.status),
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{session_id}/confirm", response_model=ApiResponse[SessionResponse])
async def confirm_session(
    session_id: str,
    current_user: User = Depends(get_current_active_user),
    service: SessionService = Depends(get_session_service),
) -> ApiResponse[SessionResponse]:
    try:
        session = await asyncio.to_thread(service.confirm_session, session_id, current_user)
        return ApiResponse(
            data=SessionResponse.model_validate(session),
            message="Session confirmed successfully",
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{session_id}/cancel", response_model=ApiResponse[CancellationResponse])
async def cancel_session(
    session_id: str,
    payload: Optional[SessionCancel] = None,
    current_user: User = Depends(get_current_active_user),
    service: SessionService = Depends(get_session_service),
) -> ApiResponse[CancellationResponse]:
    """Cancel a session; outstanding holds are refunded by lead time (100/50/0 %)."""
    reason = payload.reason if payload else None
    try:
        result = await asyncio.to_thread(
            service.cancel_session, session_id, current_user, reason
        )
        return ApiResponse(
            data=CancellationResponse(
                session=SessionResponse.model_validate(result["session"]),
                refund_amount=result["refund_amount"],
                refund_percentage=result["refund_percentage"],
            ),
            message="Session cancelled successfully",
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{session_id}/reschedule", response_model=ApiResponse[SessionResponse])
async def reschedule_session(
    session_id: str,
    payload: SessionReschedule,
    current_user: User = Depends(get_current_active_user),
    service: SessionService = Depends(get_session_service),
) -> ApiResponse[SessionResponse]:
    try:
        session = await asyncio.to_thread(
            service.reschedule_session,
            session_id,
            current_user,
            payload.scheduled_start,
            payload.scheduled_end,
        )
        return ApiResponse(
            data=SessionResponse.model_validate(session),
            message="Session rescheduled successfully",
        )
    except DomainException as e:
        handle_domain_exception(e)
