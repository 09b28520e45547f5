from unittest.mock import MagicMock

from tutor_availability.core import booking_lock as booking_lock_module
from tutor_availability.core.booking_lock import (
    _lock_key,
    acquire_booking_lock,
    booking_lock,
)

from ..helpers import MONDAY, TUTOR_ID


def _use_client(monkeypatch, client):
    monkeypatch.setattr(booking_lock_module, "_get_sync_redis", lambda: client)


class TestBookingLock:
    def test_lock_key(self):
        assert _lock_key(TUTOR_ID, MONDAY) == "tutor-availability:lock:booking:tutor-1:2030-01-07"

    def test_without_redis_lock_is_always_granted(self, monkeypatch):
        _use_client(monkeypatch, None)
        with booking_lock(TUTOR_ID, MONDAY) as acquired:
            assert acquired is True

    def test_acquires_and_releases(self, monkeypatch):
        client = MagicMock()
        client.set.return_value = True
        _use_client(monkeypatch, client)

        with booking_lock(TUTOR_ID, MONDAY, ttl_s=5) as acquired:
            assert acquired is True

        key = _lock_key(TUTOR_ID, MONDAY)
        _, kwargs = client.set.call_args
        assert client.set.call_args[0][0] == key
        assert kwargs["nx"] is True
        assert kwargs["ex"] == 5
        client.delete.assert_called_once_with(key)

    def test_held_lock_is_not_released_by_loser(self, monkeypatch):
        client = MagicMock()
        client.set.return_value = None
        _use_client(monkeypatch, client)

        with booking_lock(TUTOR_ID, MONDAY) as acquired:
            assert acquired is False
        client.delete.assert_not_called()

    def test_redis_errors_fail_open(self, monkeypatch):
        client = MagicMock()
        client.set.side_effect = ConnectionError("redis down")
        _use_client(monkeypatch, client)
        assert acquire_booking_lock(TUTOR_ID, MONDAY) is True
