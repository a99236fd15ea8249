"""
Configuration for DonateLive.

All recognized options come from the environment and are read exactly once
into a frozen ``Settings`` object, which is handed to ``create_app()``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from .errors import ValidationError
from .helpers import to_minor


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return _env_int(name, 0)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_decimal(name: str, default: str) -> Decimal:
    raw = os.getenv(name) or default
    try:
        return Decimal(raw.strip())
    except InvalidOperation:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./donations.db"

    # payment provider
    paystack_public_key: str = ""
    paystack_secret_key: str = ""

    # http
    port: int = 3000

    # fundraising
    fundraising_goal: Decimal = Decimal("1000000")
    min_donation: Decimal = Decimal("100")
    currency: str = "NGN"
    recent_donations_limit: int = 20

    # consumed by whatever fronts the app; not enforced here
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max: int = 100

    storage_timeout_seconds: float = 5.0
    db_pool_size: int = 10
    db_max_overflow: int = 10
    db_pool_timeout_seconds: float = 30.0
    # defaults to db_pool_size
    db_gate_limit: Optional[int] = None

    # 'memory' | 'redis'
    broadcast_backend: str = "memory"
    redis_url: str = "redis://127.0.0.1:6379"

    # development payment simulator
    mockpay_enabled: bool = False
    webhook_url: str = "http://localhost:3000/paystack/webhook"

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        settings = cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            paystack_public_key=os.getenv("PAYSTACK_PUBLIC_KEY", ""),
            paystack_secret_key=os.getenv("PAYSTACK_SECRET_KEY", ""),
            port=_env_int("PORT", cls.port),
            fundraising_goal=_env_decimal("FUNDRAISING_GOAL", "1000000"),
            min_donation=_env_decimal("MIN_DONATION", "100"),
            currency=os.getenv("CURRENCY", cls.currency),
            recent_donations_limit=_env_int(
                "RECENT_DONATIONS_LIMIT", cls.recent_donations_limit
            ),
            rate_limit_window_seconds=_env_int(
                "RATE_LIMIT_WINDOW_SECONDS", cls.rate_limit_window_seconds
            ),
            rate_limit_max=_env_int("RATE_LIMIT_MAX", cls.rate_limit_max),
            storage_timeout_seconds=_env_float(
                "STORAGE_TIMEOUT_SECONDS", cls.storage_timeout_seconds
            ),
            db_pool_size=_env_int("DB_POOL_SIZE", cls.db_pool_size),
            db_max_overflow=_env_int("DB_MAX_OVERFLOW", cls.db_max_overflow),
            db_pool_timeout_seconds=_env_float(
                "DB_POOL_TIMEOUT", cls.db_pool_timeout_seconds
            ),
            db_gate_limit=_env_optional_int("DB_GATE_LIMIT"),
            broadcast_backend=os.getenv(
                "BROADCAST_BACKEND", cls.broadcast_backend
            ).lower(),
            redis_url=os.getenv("REDIS_URL", cls.redis_url),
            mockpay_enabled=_env_bool("MOCKPAY_ENABLED"),
            webhook_url=os.getenv("WEBHOOK_URL", cls.webhook_url),
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        # same parser the ledger applies to pledges
        try:
            to_minor(self.min_donation)
        except ValidationError as e:
            raise ValueError(f"MIN_DONATION is not a valid amount: {e}")
        if self.recent_donations_limit < 1:
            raise ValueError("RECENT_DONATIONS_LIMIT must be at least 1")
        if self.storage_timeout_seconds <= 0:
            raise ValueError("STORAGE_TIMEOUT_SECONDS must be positive")
        if self.db_pool_size < 1 or self.db_max_overflow < 0:
            raise ValueError("DB_POOL_SIZE must be at least 1 and "
                             "DB_MAX_OVERFLOW not negative")
        if self.db_pool_timeout_seconds <= 0:
            raise ValueError("DB_POOL_TIMEOUT must be positive")
        if self.db_gate_limit is not None and self.db_gate_limit < 1:
            raise ValueError("DB_GATE_LIMIT must be at least 1")
        if self.broadcast_backend not in ("memory", "redis"):
            raise ValueError(
                "BROADCAST_BACKEND must be 'memory' or 'redis', "
                f"got {self.broadcast_backend!r}"
            )
