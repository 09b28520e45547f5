from pydantic import ValidationError
import pytest

from tutor_availability.core.config import Settings, is_running_tests


def test_detects_pytest():
    assert is_running_tests()


def test_defaults():
    configured = Settings(_env_file=None)
    assert configured.default_lesson_duration_minutes == 60
    assert configured.exception_span_minutes == 60
    assert configured.change_policy_hours == 24
    assert configured.broadcast_url == "memory://"


def test_span_must_be_grid_aligned():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, exception_span_minutes=45)
    assert Settings(_env_file=None, exception_span_minutes=30).exception_span_minutes == 30


@pytest.mark.parametrize("field", ["default_lesson_duration_minutes", "payment_hold_minutes"])
def test_durations_must_be_positive(field):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: 0})


def test_cache_ttl_may_be_zero_but_not_negative():
    configured = Settings(_env_file=None, availability_cache_ttl_seconds=0)
    assert configured.availability_cache_ttl_seconds == 0
    with pytest.raises(ValidationError):
        Settings(_env_file=None, availability_cache_ttl_seconds=-1)


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CHANGE_POLICY_HOURS", "48")
    assert Settings(_env_file=None).change_policy_hours == 48
