# genova/core/exceptions.py
"""
Domain-specific exceptions for the Genova sessions backend.

Services raise these with a human-readable message; the API layer
converts them to HTTP errors without rewording.
"""

from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code: str = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised for malformed input or a disallowed state transition."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "VALIDATION_ERROR"


class UnauthorizedException(DomainException):
    """Raised when the caller is not authenticated."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = "UNAUTHORIZED"


class ForbiddenException(DomainException):
    """Raised when the caller is the wrong actor for the action."""

    status_code = status.HTTP_403_FORBIDDEN
    default_code = "AUTHORIZATION_ERROR"


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"


class ConflictException(DomainException):
    """Raised when the request conflicts with existing data."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "CONFLICT"


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details,
            },
        )


# Specific business exceptions


class SessionConflictException(ConflictException):
    """Raised when a tutor already has an overlapping session."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "Tutor is not available at this time",
            code="SESSION_CONFLICT",
            details=details or {},
        )


class DuplicateCheckInException(ConflictException):
    """Raised when a student checks in to the same session twice."""

    def __init__(self, session_id: str, student_id: str):
        super().__init__(
            message="Student has already checked in to this session",
            code="DUPLICATE_CHECK_IN",
            details={"session_id": session_id, "student_id": student_id},
        )


class SettlementException(ServiceException):
    """Raised when one or more payment holds could not be settled."""

    default_code = "SETTLEMENT_FAILED"

    def __init__(self, session_id: str, failed_transaction_ids: List[str]):
        super().__init__(
            message=(
                f"Settlement failed for {len(failed_transaction_ids)} transaction(s) "
                f"of session {session_id}"
            ),
            details={
                "session_id": session_id,
                "failed_transaction_ids": failed_transaction_ids,
            },
        )
        self.session_id = session_id
        self.failed_transaction_ids = failed_transaction_ids


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    Used when data access operations fail, such as connection issues,
    query failures, or constraint violations.
    """
