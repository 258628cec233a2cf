# genova/routes/v1/attendance.py
"""
Attendance routes - API v1

Endpoints:
    POST /checkin - Student checks in with a PIN or QR code
    POST /checkout - Tutor closes the session
    GET /dashboard - Attendance summary of the current student
    GET /sessions/{session_id}/pin - Issue a check-in PIN
    GET /sessions/{session_id}/qr - Issue a check-in QR code
    POST /sessions/{session_id}/mark-absent - Record absences after the session
    GET /sessions/{session_id} - Attendance records of a session
    GET /classes/{class_id}/statistics - Per-student attendance of a class
    PUT /{attendance_id} - Correct an attendance record
"""

import asyncio
from datetime import datetime
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ...api.dependencies import get_attendance_service, get_current_active_user
from ...core.exceptions import DomainException
from ...errors import handle_domain_exception
from ...models.user import User
from ...schemas.attendance import (
    AttendanceResponse,
    AttendanceUpdate,
    CheckInRequest,
    CheckOutRequest,
    CheckOutResponse,
    ClassStatisticsResponse,
    PinResponse,
    QrCodeResponse,
    StudentDashboardResponse,
)
from ...schemas.base import ApiResponse
from ...services.attendance_service import AttendanceService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["attendance-v1"])


@router.post("/checkin", response_model=ApiResponse[AttendanceResponse])
async def check_in(
    payload: CheckInRequest,
    current_user: User = Depends(get_current_active_user),
    service: AttendanceService = Depends(get_attendance_service),
) -> ApiResponse[AttendanceResponse]:
    """Check the current user in with the live PIN or QR code of the session."""
    try:
        attendance = await asyncio.to_thread(
            service.check_in,
            payload.session_id,
            current_user.id,
            payload.method,
            payload.code,
        )
        return ApiResponse(
            data=AttendanceResponse.model_validate(attendance),
            message="Checked in successfully",
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/checkout", response_model=ApiResponse[CheckOutResponse])
async def check_out(
    payload: CheckOutRequest,
    current_user: User = Depends(get_current_active_user),
    service: AttendanceService = Depends(get_attendance_service),
) -> ApiResponse[CheckOutResponse]:
    try:
        result = await asyncio.to_thread(service.check_out, payload.session_id, current_user)
        message = (
            "Checked out successfully. Session flagged for review due to duration discrepancy."
            if result["flagged_for_review"]
            else "Checked out successfully"
        )
        return ApiResponse(data=CheckOutResponse.model_validate(result), message=message)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/dashboard", response_model=ApiResponse[StudentDashboardResponse])
async def get_dashboard(
    class_id: Optional[str] = Query(None, alias="classId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    current_user: User = Depends(get_current_active_user),
    service: AttendanceService = Depends(get_attendance_service),
) -> ApiResponse[StudentDashboardResponse]:
    try:
        dashboard = await asyncio.to_thread(
            service.get_student_dashboard,
            current_user.id,
            class_id=class_id,
            start_date=start_date,
            end_date=end_date,
        )
        return ApiResponse(data=StudentDashboardResponse.model_validate(dashboard))
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/sessions/{session_id}/pin", response_model=ApiResponse[PinResponse])
async def generate_pin(
    session_id: str,
    current_user: User = Depends(get_current_active_user),
    service: AttendanceService = Depends(get_attendance_service),
) -> ApiResponse[PinResponse]:
    try:
        entry = await asyncio.to_thread(service.issue_pin, session_id, current_user)
        return ApiResponse(
            data=PinResponse(pin=entry.code, expires_in=service.code_store.ttl_seconds),
            message="PIN generated successfully",
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/sessions/{session_id}/qr", response_model=ApiResponse[QrCodeResponse])
async def generate_qr_code(
    session_id: str,
    current_user: User = Depends(get_current_active_user),
    service: AttendanceService = Depends(get_attendance_service),
) -> ApiResponse[QrCodeResponse]:
    try:
        entry = await asyncio.to_thread(service.issue_qr, session_id, current_user)
        return ApiResponse(
            data=QrCodeResponse(qr_code=entry.code, expires_in=service.code_store.ttl_seconds),
            message="QR code generated successfully",
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "/sessions/{session_id}/mark-absent",
    response_model=ApiResponse[List[AttendanceResponse]],
)
async def mark_absent(
    session_id: str,
    current_user: User = Depends(get_current_active_user),
    service: AttendanceService = Depends(get_attendance_service),
) -> ApiResponse[List[AttendanceResponse]]:
    try:
        created = await asyncio.to_thread(service.mark_absent, session_id, current_user)
        return ApiResponse(
            data=[AttendanceResponse.model_validate(row) for row in created],
            message=f"Marked {len(created)} students as absent",
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/sessions/{session_id}", response_model=ApiResponse[List[AttendanceResponse]])
async def get_session_attendance(
    session_id: str,
    current_user: User = Depends(get_current_active_user),
    service: AttendanceService = Depends(get_attendance_service),
) -> ApiResponse[List[AttendanceResponse]]:
    try:
        records = await asyncio.to_thread(
            service.get_session_attendance, session_id, current_user
        )
        return ApiResponse(data=[AttendanceResponse.model_validate(r) for r in records])
    except DomainException as e:
        handle_domain_exception(e)


@router.get(
    "/classes/{class_id}/statistics",
    response_model=ApiResponse[ClassStatisticsResponse],
)
async def get_class_statistics(
    class_id: str,
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    current_user: User = Depends(get_current_active_user),
    service: AttendanceService = Depends(get_attendance_service),
) -> ApiResponse[ClassStatisticsResponse]:
    try:
        stats = await asyncio.to_thread(
            service.get_class_statistics, class_id, current_user, start_date, end_date
        )
        return ApiResponse(data=ClassStatisticsResponse.model_validate(stats))
    except DomainException as e:
        handle_domain_exception(e)


@router.put("/{attendance_id}", response_model=ApiResponse[AttendanceResponse])
async def update_attendance(
    attendance_id: str,
    payload: AttendanceUpdate,
    current_user: User = Depends(get_current_active_user),
    service: AttendanceService = Depends(get_attendance_service),
) -> ApiResponse[AttendanceResponse]:
    try:
        attendance = await asyncio.to_thread(
            service.update_attendance,
            attendance_id,
            current_user,
            payload.status,
            payload.notes,
        )
        return ApiResponse(
            data=AttendanceResponse.model_validate(attendance),
            message="Attendance status updated successfully",
        )
    except DomainException as e:
        handle_domain_exception(e)
