import json
from decimal import Decimal

import pytest

from donatelive.broadcast import BroadcastChannel
from donatelive.config import Settings
from donatelive.infra.sql import make_async_engine
from donatelive.ledger import DonationLedger
from donatelive.model.donationstore import DonationStore, create_schema
from donatelive.payments import Paystack
from donatelive.signature import compute_signature

SECRET = "sk_test_secret"


def charge_event(reference, amount_minor=None, event="charge.success"):
    data = {"reference": reference, "status": "success"}
    if amount_minor is not None:
        data["amount"] = amount_minor
    return json.dumps({"event": event, "data": data}).encode()


def sign(payload, secret=SECRET):
    return compute_signature(secret, payload)


class RecordingChannel(BroadcastChannel):
    """BroadcastChannel that also remembers what it published."""

    def __init__(self):
        super().__init__()
        self.published = []

    def publish(self, event_type, data):
        self.published.append((event_type, data))
        super().publish(event_type, data)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'donations.db'}",
        paystack_public_key="pk_test_public",
        paystack_secret_key=SECRET,
        min_donation=Decimal("100"),
        recent_donations_limit=5,
    )


@pytest.fixture
async def store(settings):
    db = make_async_engine(settings.database_url)
    await create_schema(db.engine)
    try:
        yield DonationStore(sessions=db.sessions, gated=db.gated,
                            timeout_seconds=settings.storage_timeout_seconds)
    finally:
        await db.dispose()


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def ledger(store, channel, settings):
    return DonationLedger(
        store=store,
        channel=channel,
        adapter=Paystack(SECRET),
        min_amount=settings.min_donation,
        recent_limit=settings.recent_donations_limit,
    )
