"""
Repository layer for the tutor availability engine.

Repositories own all SQLAlchemy access; services receive plain snapshots
(WeeklyTemplate, ExceptionEntry lists, booking rows) and never build queries.
"""

from .availability_cache import AvailabilityCache
from .availability_repository import AvailabilityRepository
from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .factory import RepositoryFactory

__all__ = [
    "AvailabilityCache",
    "AvailabilityRepository",
    "BaseRepository",
    "BookingRepository",
    "RepositoryFactory",
]
