import time
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
import hmac
from typing import Any, Optional

from .errors import ValidationError

# kobo per naira
MINOR_UNITS = 100
# one hundred billion naira
MAX_MINOR = 10 ** 13


# ----------------------------
# Helpers
# ----------------------------
def now_ts() -> float:
    return time.time()


def to_iso(ts: float | None) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def is_valid_email(email: Optional[str]) -> bool:
    if not email:
        return False
    email = email.strip()
    # simple but effective email check
    return re.match(r"^[^@\s]+@[^@\s]+\.[^@\s]+$", email) is not None


def ct_equal(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode(), b.encode())


# ----------------------------
# Money
# ----------------------------
def to_minor(amount: Any) -> int:
    """Parse a caller-supplied amount into integer minor units.

    Accepts ints, Decimals and numeric strings. Floats go through ``str()``
    so ``100.1`` means exactly 100.10. Raises ``ValidationError`` for
    anything that is not a finite, positive amount with at most two
    fractional digits.
    """
    if amount is None or isinstance(amount, bool):
        raise ValidationError("amount is required")
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise ValidationError("amount must be a number")
    if not value.is_finite():
        raise ValidationError("amount must be a number")
    minor = value * MINOR_UNITS
    if minor != minor.to_integral_value():
        raise ValidationError("amount must have at most two decimal places")
    if minor <= 0:
        raise ValidationError("amount must be positive")
    if minor > MAX_MINOR:
        raise ValidationError("amount is too large")
    return int(minor)


def from_minor(minor: int) -> Decimal:
    return (Decimal(int(minor)) / MINOR_UNITS).quantize(Decimal("0.01"))


def money(minor: int) -> str:
    # JSON-safe rendering; orjson does not serialize Decimal
    return str(from_minor(minor))
