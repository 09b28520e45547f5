from fastapi import HTTPException
import pytest

from tutor_availability.core.exceptions import (
    BusinessRuleException,
    ConflictException,
    DomainException,
    NotFoundException,
    ParseError,
    PolicyViolation,
    ServiceException,
    SlotConflict,
    SlotUnavailable,
    ValidationException,
)


@pytest.mark.parametrize(
    "exc, status_code, code",
    [
        (ValidationException("bad"), 400, "ValidationException"),
        (NotFoundException("missing", code="BOOKING_NOT_FOUND"), 404, "BOOKING_NOT_FOUND"),
        (ConflictException("taken"), 409, "ConflictException"),
        (BusinessRuleException("nope"), 422, "BusinessRuleException"),
        (ServiceException("db down"), 500, "ServiceException"),
        (ParseError("noon"), 400, "TIME_PARSE_ERROR"),
        (SlotConflict(), 409, "SLOT_CONFLICT"),
        (SlotUnavailable(), 409, "SLOT_UNAVAILABLE"),
        (PolicyViolation("cancelled", 24, 3.5), 422, "POLICY_VIOLATION"),
    ],
)
def test_domain_exceptions_map_to_http(exc, status_code, code):
    http_exc = exc.to_http_exception()
    assert isinstance(http_exc, HTTPException)
    assert http_exc.status_code == status_code
    assert http_exc.detail["code"] == code
    assert http_exc.detail["message"] == exc.message


def test_policy_violation_details():
    exc = PolicyViolation("rescheduled", 24, -2.0)
    assert isinstance(exc, BusinessRuleException)
    assert exc.details == {"action": "rescheduled", "required_hours": 24, "hours_until": 0.0}
    assert "24 hours" in exc.message


def test_parse_error_is_a_validation_error():
    exc = ParseError("25:00", "out of range")
    assert isinstance(exc, DomainException)
    assert exc.details == {"text": "25:00", "reason": "out of range"}
    assert "out of range" in str(exc)


def test_slot_conflict_carries_details():
    exc = SlotConflict(details={"conflicting_booking_ids": ["b1"]})
    assert exc.to_http_exception().detail["details"] == {"conflicting_booking_ids": ["b1"]}
