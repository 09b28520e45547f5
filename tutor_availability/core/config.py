# tutor_availability/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import SLOT_MINUTES

logger = logging.getLogger(__name__)


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).resolve().parents[2] / ".env"
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: Literal["development", "test", "staging", "production"] = "development"

    # Persistence collaborator
    database_url: str = Field(
        default="sqlite:///./tutor_availability.db",
        description="SQLAlchemy URL for the availability/booking store",
    )
    database_echo: bool = False

    # Optional Redis used for the per-tutor booking mutex
    redis_url: Optional[str] = Field(default=None, description="Redis URL for booking locks")
    booking_lock_ttl_seconds: int = 30

    # Live availability updates (broadcaster backend URL)
    broadcast_url: str = Field(
        default="memory://",
        description="broadcaster backend, e.g. memory:// or redis://host:6379",
    )

    # Availability engine
    default_lesson_duration_minutes: int = 60
    exception_span_minutes: int = Field(
        default=60,
        description="Width of the calendar cell an Add/Remove exception opens or closes",
    )
    tutor_search_window_minutes: int = 60
    default_timezone: str = "America/New_York"

    # Booking policy
    change_policy_hours: int = Field(
        default=24, description="Reschedule/cancel is refused inside this many hours"
    )
    payment_hold_minutes: int = 30

    # Explicit availability cache
    availability_cache_ttl_seconds: int = 30
    availability_cache_max_entries: int = 1024

    is_testing: bool = False

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("default_lesson_duration_minutes", "payment_hold_minutes")
    @classmethod
    def _positive_minutes(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("duration must be a positive number of minutes")
        return value

    @field_validator("exception_span_minutes", "tutor_search_window_minutes")
    @classmethod
    def _grid_aligned(cls, value: int) -> int:
        if value <= 0 or value % SLOT_MINUTES:
            raise ValueError(f"must be a positive multiple of {SLOT_MINUTES} minutes")
        return value

    @field_validator("availability_cache_ttl_seconds", "availability_cache_max_entries")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value


settings = Settings()
if is_running_tests():
    settings.is_testing = True
