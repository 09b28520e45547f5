# tutor_availability/core/exceptions.py
"""
Domain-specific exceptions for the tutor availability engine.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException carrying the subclass status code."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific availability exceptions


class ParseError(ValidationException):
    """Raised when a time-of-day string or slot key cannot be parsed."""

    def __init__(self, text: str, reason: Optional[str] = None):
        super().__init__(
            message=f"Cannot parse time of day: {text!r}" + (f" ({reason})" if reason else ""),
            code="TIME_PARSE_ERROR",
            details={"text": text, "reason": reason},
        )
        self.text = text


class InvariantViolation(DomainException):
    """Raised (or logged) when stored availability breaks a structural invariant."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INVARIANT_VIOLATION", details=details or {})


class SlotConflict(ConflictException):
    """Raised when a booking collides with an active booking for the same tutor."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot conflicts with an existing booking",
            code="SLOT_CONFLICT",
            details=details or {},
        )


class SlotUnavailable(ConflictException):
    """Raised when the requested lesson is outside the tutor's published availability."""

    def __init__(self, message: Optional[str] = None, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message or "This time slot is not available for booking",
            code="SLOT_UNAVAILABLE",
            details=details or {},
        )


class PolicyViolation(BusinessRuleException):
    """Raised when a reschedule/cancel is attempted inside the change window."""

    def __init__(self, action: str, required_hours: int, hours_until: float):
        super().__init__(
            message=(
                f"Lessons cannot be {action} less than {required_hours} hours before they start"
            ),
            code="POLICY_VIOLATION",
            details={
                "action": action,
                "required_hours": required_hours,
                "hours_until": round(max(hours_until, 0.0), 2),
            },
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
