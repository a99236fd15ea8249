import hashlib
import hmac
from typing import Optional

from .helpers import ct_equal


def compute_signature(secret: str, payload: bytes) -> str:
    """HMAC-SHA512 over the payload bytes, hex encoded."""
    return hmac.new(secret.encode(), payload, hashlib.sha512).hexdigest()


def verify_signature(
    secret: str, payload: bytes, signature: Optional[str]
) -> bool:
    """True when ``signature`` was produced from ``payload`` with ``secret``.

    ``payload`` must be the verbatim request body: re-serializing parsed
    JSON before hashing changes the bytes and breaks the match. A mismatch
    is an expected outcome and is reported as ``False``, never raised.
    """
    if not secret or not signature:
        return False
    expected = compute_signature(secret, payload)
    return ct_equal(expected, signature.strip().lower())
