import pytest

from tutor_availability.repositories import AvailabilityCache
from tutor_availability.services.availability_service import AvailabilityService
from tutor_availability.services.booking_service import BookingService

from ..helpers import NINE_TO_FIVE_MONDAY, TUTOR_ID


@pytest.fixture
def cache() -> AvailabilityCache:
    return AvailabilityCache(ttl_seconds=60, max_entries=100)


@pytest.fixture
def availability_service(db, cache, clock) -> AvailabilityService:
    """Service for a UTC tutor free 9-5 on Mondays."""
    service = AvailabilityService(db, cache=cache, clock=clock)
    service.save_weekly_template(TUTOR_ID, NINE_TO_FIVE_MONDAY, timezone="UTC")
    return service


@pytest.fixture
def booking_service(db, cache, clock, availability_service) -> BookingService:
    return BookingService(
        db, availability_service=availability_service, cache=cache, clock=clock
    )
