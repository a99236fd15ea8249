from dataclasses import replace
from decimal import Decimal

import pytest

from donatelive.config import Settings
from donatelive.helpers import from_minor, money, to_minor
from donatelive.errors import ValidationError


def test_defaults_from_empty_env(monkeypatch):
    for name in ("DATABASE_URL", "PORT", "FUNDRAISING_GOAL", "MIN_DONATION",
                 "BROADCAST_BACKEND", "MOCKPAY_ENABLED",
                 "PAYSTACK_SECRET_KEY"):
        monkeypatch.delenv(name, raising=False)

    s = Settings.from_env()
    assert s.port == 3000
    assert s.fundraising_goal == Decimal("1000000")
    assert s.min_donation == Decimal("100")
    assert s.broadcast_backend == "memory"
    assert s.mockpay_enabled is False
    assert s.paystack_secret_key == ""
    assert s.rate_limit_window_seconds == 900
    assert s.rate_limit_max == 100


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("MIN_DONATION", "50.5")
    monkeypatch.setenv("BROADCAST_BACKEND", "REDIS")
    monkeypatch.setenv("MOCKPAY_ENABLED", "yes")
    monkeypatch.setenv("RATE_LIMIT_MAX", "10")

    s = Settings.from_env()
    assert s.port == 8080
    assert s.min_donation == Decimal("50.5")
    assert s.broadcast_backend == "redis"
    assert s.mockpay_enabled is True
    assert s.rate_limit_max == 10


@pytest.mark.parametrize("name, value", [
    ("PORT", "eighty"),
    ("MIN_DONATION", "0"),
    ("MIN_DONATION", "cheap"),
    ("BROADCAST_BACKEND", "kafka"),
    ("STORAGE_TIMEOUT_SECONDS", "-1"),
    ("MIN_DONATION", "100.005"),
    ("MIN_DONATION", "NaN"),
    ("DB_POOL_SIZE", "0"),
    ("DB_MAX_OVERFLOW", "-1"),
    ("DB_POOL_TIMEOUT", "0"),
    ("DB_GATE_LIMIT", "0"),
    ("DB_GATE_LIMIT", "many"),
])
def test_bad_env_values_fail_at_startup(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        Settings.from_env()


def test_pool_and_gate_options(monkeypatch):
    for name in ("DB_POOL_SIZE", "DB_MAX_OVERFLOW", "DB_GATE_LIMIT"):
        monkeypatch.delenv(name, raising=False)
    s = Settings.from_env()
    assert (s.db_pool_size, s.db_max_overflow) == (10, 10)
    assert s.db_gate_limit is None

    monkeypatch.setenv("DB_POOL_SIZE", "4")
    monkeypatch.setenv("DB_MAX_OVERFLOW", "0")
    monkeypatch.setenv("DB_POOL_TIMEOUT", "2.5")
    monkeypatch.setenv("DB_GATE_LIMIT", "3")
    s = Settings.from_env()
    assert s.db_pool_size == 4
    assert s.db_max_overflow == 0
    assert s.db_pool_timeout_seconds == 2.5
    assert s.db_gate_limit == 3


def test_min_donation_must_be_a_pledgeable_amount():
    with pytest.raises(ValueError):
        replace(Settings(), min_donation=Decimal("100.005")).validate()
    replace(Settings(), min_donation=Decimal("100.50")).validate()


def test_money_round_trip_is_exact():
    assert to_minor("0.1") + to_minor("0.2") == to_minor("0.3")
    assert to_minor(100.1) == 10010
    assert from_minor(10010) == Decimal("100.10")
    assert money(5) == "0.05"


@pytest.mark.parametrize("value", ["1e400000", "NaN", "Infinity", "", []])
def test_to_minor_rejects_non_amounts(value):
    with pytest.raises(ValidationError):
        to_minor(value)
