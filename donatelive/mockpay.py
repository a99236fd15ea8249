"""
Development payment simulator.

Stands in for the provider during local runs: it builds the same
``charge.success`` notification Paystack would send for a pending pledge,
signs it with the shared secret and posts it to our own webhook.
"""
import json
import logging
import time
from typing import Tuple

import httpx

from .model.donation import DonationRecord
from .payments import Paystack
from .signature import compute_signature

logger = logging.getLogger(__name__)


def build_charge_event(record: DonationRecord, currency: str = "NGN") -> bytes:
    event = {
        "event": Paystack.success_event,
        "data": {
            "reference": record.reference,
            "amount": record.amount_minor,
            "currency": currency,
            "status": "success",
            "paid_at": int(time.time()),
            "customer": {"email": record.email},
        },
    }
    return json.dumps(event).encode()


def signed_request(secret: str, payload: bytes) -> Tuple[bytes, dict]:
    return payload, {
        Paystack.signature_header: compute_signature(secret, payload),
        "content-type": "application/json",
    }


async def emit_charge_success(
    http: httpx.AsyncClient, webhook_url: str, secret: str,
    record: DonationRecord, currency: str = "NGN",
) -> bool:
    """Post a signed success notification; True when it was delivered."""
    payload, headers = signed_request(
        secret, build_charge_event(record, currency)
    )
    try:
        r = await http.post(webhook_url, content=payload, headers=headers)
        r.raise_for_status()
    except httpx.HTTPError as e:
        # the pledge stays pending; the user can emit again
        logger.warning("mock webhook delivery for %s failed: %s",
                       record.reference, e)
        return False
    return True
