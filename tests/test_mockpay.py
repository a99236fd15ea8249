import json

import httpx
import pytest

from donatelive import mockpay
from donatelive.model.donation import Status

from tests.conftest import SECRET

WEBHOOK_URL = "http://testserver/paystack/webhook"


@pytest.mark.asyncio
async def test_emitted_event_is_accepted_by_ledger(ledger, channel):
    record = await ledger.create_pledge("a@x.com", "250.75", name="Ada")
    captured = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"ok": True})

    async with httpx.AsyncClient(
        transport=httpx.MockTransport(handler)
    ) as http:
        delivered = await mockpay.emit_charge_success(
            http, WEBHOOK_URL, SECRET, record
        )

    assert delivered is True
    request = captured[0]
    event = json.loads(request.content)
    assert event["event"] == "charge.success"
    assert event["data"]["reference"] == record.reference
    assert event["data"]["amount"] == 25075

    confirmation = await ledger.confirm_pledge(
        request.content, request.headers["x-paystack-signature"]
    )
    assert confirmation.record.status is Status.SUCCESS
    assert len(channel.published) == 1


@pytest.mark.asyncio
async def test_failed_delivery_reports_false(ledger):
    record = await ledger.create_pledge("a@x.com", 500)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    async with httpx.AsyncClient(
        transport=httpx.MockTransport(handler)
    ) as http:
        delivered = await mockpay.emit_charge_success(
            http, WEBHOOK_URL, SECRET, record
        )

    assert delivered is False
    assert (await ledger.get_pledge(record.reference)).status is \
        Status.PENDING
