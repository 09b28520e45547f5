"""
Database models for the tutor availability engine.

- Availability: per-tutor header, weekly template ranges, dated exceptions
- Bookings: lessons that occupy tutor time
"""

from .availability import AvailabilityException, TutorAvailability, WeeklyAvailabilityRange
from .booking import Booking

__all__ = [
    "AvailabilityException",
    "Booking",
    "TutorAvailability",
    "WeeklyAvailabilityRange",
]
