"""
Per tutor-day booking mutex backed by Redis.

The database transaction in BookingRepository.insert_booking_atomic is the
authority on conflicts; this lock only narrows the window in which two
requests for the same tutor and day race each other. It fails open: without
Redis (or when Redis errors) the caller proceeds and relies on the database.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date
import logging
import threading
import time
from typing import Iterator, Optional

from redis import Redis

from .config import settings

logger = logging.getLogger(__name__)

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_LOCK = threading.Lock()


def _lock_key(tutor_id: str, day: date) -> str:
    return f"tutor-availability:lock:booking:{tutor_id}:{day.isoformat()}"


def _get_sync_redis() -> Optional[Redis]:
    global _SYNC_REDIS
    if not settings.redis_url:
        return None
    if _SYNC_REDIS is not None:
        return _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        if _SYNC_REDIS is not None:
            return _SYNC_REDIS
        try:
            client = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            client.ping()
        except Exception as exc:
            logger.warning("booking_lock_sync_redis_unavailable: %s", exc)
            return None
        _SYNC_REDIS = client
        return _SYNC_REDIS


def acquire_booking_lock(tutor_id: str, day: date, ttl_s: Optional[int] = None) -> bool:
    client = _get_sync_redis()
    if client is None:
        return True
    try:
        return bool(
            client.set(
                _lock_key(tutor_id, day),
                str(time.time()),
                nx=True,
                ex=ttl_s or settings.booking_lock_ttl_seconds,
            )
        )
    except Exception as exc:
        logger.warning(
            "booking_lock_sync_failed",
            extra={
                "tutor_id": tutor_id,
                "day": day.isoformat(),
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )
        return True


def release_booking_lock(tutor_id: str, day: date) -> None:
    client = _get_sync_redis()
    if client is None:
        return
    try:
        client.delete(_lock_key(tutor_id, day))
    except Exception as exc:
        logger.warning(
            "booking_lock_sync_release_failed",
            extra={
                "tutor_id": tutor_id,
                "day": day.isoformat(),
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )


@contextmanager
def booking_lock(tutor_id: str, day: date, ttl_s: Optional[int] = None) -> Iterator[bool]:
    """Hold the tutor-day mutex for the duration of the block; yields whether it was acquired."""
    acquired = acquire_booking_lock(tutor_id, day, ttl_s=ttl_s)
    try:
        yield acquired
    finally:
        if acquired:
            release_booking_lock(tutor_id, day)
