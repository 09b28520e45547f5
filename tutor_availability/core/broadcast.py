# tutor_availability/core/broadcast.py
"""
Shared broadcast manager for live availability updates.

Availability saves and booking mutations publish an ``availability.changed``
event on ``availability:{tutor_id}``. Open calendar sessions subscribe to the
channel and drop their cached day resolutions so the next render recomputes
from fresh snapshots.

Architecture:
- One Broadcaster instance per worker process (memory:// in tests,
  redis:// in deployment)
- Sync service code publishes fire-and-forget onto the broadcaster's event
  loop, from that loop or from a worker thread
- Subscribers receive AvailabilityChangedEvent objects
"""

import asyncio
from contextlib import asynccontextmanager
import logging
from typing import TYPE_CHECKING, AsyncIterator, Optional, Set

from broadcaster import Broadcast

from ..schemas.availability import AvailabilityChangedEvent
from .config import settings

if TYPE_CHECKING:
    from ..repositories.availability_cache import AvailabilityCache

logger = logging.getLogger(__name__)

# Single broadcast instance per worker process
_broadcast: Optional[Broadcast] = None
_pending: Set["asyncio.Task[None]"] = set()
# Loop that connected the broadcaster; worker threads publish through it
_loop: Optional[asyncio.AbstractEventLoop] = None


def availability_channel(tutor_id: str) -> str:
    return f"availability:{tutor_id}"


def get_broadcast() -> Broadcast:
    """
    Get the shared broadcast instance.

    Raises:
        RuntimeError: If broadcast is not initialized (call connect_broadcast first)
    """
    if _broadcast is None:
        raise RuntimeError("Broadcast not initialized. Call connect_broadcast() during startup.")
    return _broadcast


def is_broadcast_initialized() -> bool:
    return _broadcast is not None


async def connect_broadcast(url: Optional[str] = None) -> None:
    """Connect the shared broadcaster. Call during application startup."""
    global _broadcast, _loop

    backend_url = url or settings.broadcast_url
    _broadcast = Broadcast(backend_url)
    await _broadcast.connect()
    _loop = asyncio.get_running_loop()
    logger.info("[BROADCAST] Connected availability broadcaster: %s", backend_url)


async def disconnect_broadcast() -> None:
    """Disconnect the shared broadcaster. Call during application shutdown."""
    global _broadcast, _loop

    if _broadcast is not None:
        if _pending:
            await asyncio.gather(*list(_pending), return_exceptions=True)
        await _broadcast.disconnect()
        _broadcast = None
        _loop = None
        logger.info("[BROADCAST] Disconnected availability broadcaster")


async def publish_availability_changed(event: AvailabilityChangedEvent) -> None:
    """Publish a change event to every open session watching the tutor."""
    broadcast = get_broadcast()
    await broadcast.publish(
        channel=availability_channel(event.tutor_id),
        message=event.model_dump_json(),
    )


def notify_availability_changed(event: AvailabilityChangedEvent) -> None:
    """
    Fire-and-forget publish for synchronous service code.

    Safe to call from the broadcaster's loop or from a worker thread (sync
    routes run in a threadpool); off-loop calls are handed to the loop that
    connected the broadcaster. Without a connected broadcaster or a live loop
    the event is dropped and the cache TTL still bounds staleness.
    """
    if _broadcast is None:
        logger.debug("Broadcast not initialized; dropping %s for %s", event.reason, event.tutor_id)
        return
    try:
        running = asyncio.get_running_loop()
    except RuntimeError:
        running = None

    if running is not None and running is _loop:
        _schedule_publish(event)
        return
    if _loop is None or _loop.is_closed() or not _loop.is_running():
        logger.debug(
            "No broadcaster loop running; dropping %s for %s", event.reason, event.tutor_id
        )
        return
    _loop.call_soon_threadsafe(_schedule_publish, event)


def _schedule_publish(event: AvailabilityChangedEvent) -> None:
    # Runs on the broadcaster's loop; _pending is only touched from there
    if _broadcast is None:
        return
    task = asyncio.get_running_loop().create_task(publish_availability_changed(event))
    _pending.add(task)
    task.add_done_callback(_finish_publish)


def _finish_publish(task: "asyncio.Task[None]") -> None:
    _pending.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(
            "availability_broadcast_publish_failed",
            extra={"error": str(exc), "error_type": type(exc).__name__},
        )


@asynccontextmanager
async def subscribe_availability_changes(
    tutor_id: str,
) -> AsyncIterator[AsyncIterator[AvailabilityChangedEvent]]:
    """
    Subscribe to a tutor's change feed.

    Usage:
        async with subscribe_availability_changes(tutor_id) as events:
            async for event in events:
                ...
    """
    broadcast = get_broadcast()
    async with broadcast.subscribe(channel=availability_channel(tutor_id)) as subscriber:

        async def _events() -> AsyncIterator[AvailabilityChangedEvent]:
            async for raw in subscriber:
                yield AvailabilityChangedEvent.model_validate_json(raw.message)

        yield _events()


async def invalidate_on_change(cache: "AvailabilityCache", tutor_id: str) -> None:
    """Drop cached resolutions for ``tutor_id`` whenever a change lands; runs until cancelled."""
    async with subscribe_availability_changes(tutor_id) as events:
        async for event in events:
            dropped = cache.invalidate(event.tutor_id, event.dates or None)
            logger.debug(
                "Invalidated %d cached availability entries for %s (%s)",
                dropped,
                event.tutor_id,
                event.reason,
            )
