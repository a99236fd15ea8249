from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import httpx
import orjson
import redis.asyncio as redis
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, ORJSONResponse
from fastapi.templating import Jinja2Templates
from sse_starlette.sse import EventSourceResponse

from . import mockpay
from .broadcast import BroadcastChannel, new_channel
from .config import Settings
from .errors import (
    AuthenticationError, DonationError, NotFoundError, StorageError,
    ValidationError,
)
from .helpers import money
from .infra.sql import make_async_engine
from .ledger import DonationLedger, Summary
from .logging_config import setup_logging
from .model.donationstore import DonationStore, create_schema
from .payments import Paystack

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

# idle seconds between disconnect checks on the live stream
STREAM_POLL_SECONDS = 15.0

router = APIRouter()


# ----------------------------
# Dependencies
# ----------------------------
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_ledger(request: Request) -> DonationLedger:
    ledger = getattr(request.app.state, "ledger", None)
    if ledger is None:
        raise RuntimeError("Donation ledger not initialized")
    return ledger


def get_channel(request: Request) -> BroadcastChannel:
    channel = getattr(request.app.state, "channel", None)
    if channel is None:
        raise RuntimeError("Broadcast channel not initialized")
    return channel


def _summary_json(summary: Summary, settings: Settings) -> dict:
    return {
        "raised": money(summary.total_minor),
        "goal": str(settings.fundraising_goal),
        "currency": settings.currency,
        "donor_count": summary.donor_count,
        "donations": [r.public_view() for r in summary.recent],
    }


# ----------------------------
# Landing page
# ----------------------------
@router.get("/", response_class=HTMLResponse)
async def landing_page(
    request: Request,
    ledger: DonationLedger = Depends(get_ledger),
    settings: Settings = Depends(get_settings),
):
    summary = await ledger.get_summary()
    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "summary": _summary_json(summary, settings),
            "public_key": settings.paystack_public_key,
            "mockpay_enabled": settings.mockpay_enabled,
        },
    )


@router.get("/api/summary")
async def api_summary(
    ledger: DonationLedger = Depends(get_ledger),
    settings: Settings = Depends(get_settings),
):
    return _summary_json(await ledger.get_summary(), settings)


# ----------------------------
# Pledges
# ----------------------------
_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


async def _pledge_fields(request: Request) -> dict:
    """Pledge fields from a JSON object or an HTML form post."""
    content_type = request.headers.get("content-type", "").lower()
    if content_type.startswith(_FORM_TYPES):
        form = await request.form()
        return {k: v for k, v in form.items() if isinstance(v, str)}
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError("request body must be valid JSON")
    if not isinstance(payload, dict):
        raise ValidationError("request body must be a JSON object")
    return payload


@router.post("/donate")
async def donate(
    request: Request,
    ledger: DonationLedger = Depends(get_ledger),
):
    payload = await _pledge_fields(request)
    record = await ledger.create_pledge(
        email=payload.get("email"),
        amount=payload.get("amount"),
        name=payload.get("name"),
        comment=payload.get("comment"),
    )
    return {"reference": record.reference}


# polled by the payer page until the webhook lands
@router.get("/api/donations/{reference}")
async def get_donation(
    reference: str, ledger: DonationLedger = Depends(get_ledger)
):
    record = await ledger.get_pledge(reference)
    return record.public_view()


# ----------------------------
# Webhook endpoint
# ----------------------------
@router.post("/paystack/webhook")
async def paystack_webhook(
    request: Request, ledger: DonationLedger = Depends(get_ledger)
):
    payload = await request.body()
    if not payload:
        raise HTTPException(400, detail="empty body")
    signature = request.headers.get(ledger.adapter.signature_header)

    # The provider only retries on non-2xx, so every outcome past this
    # point is acknowledged and investigated from the logs instead.
    try:
        confirmation = await ledger.confirm_pledge(payload, signature)
    except AuthenticationError:
        logger.warning("rejected webhook with bad signature from %s",
                       request.client.host if request.client else "?")
    except DonationError as e:
        logger.error("webhook not applied: %s: %s", type(e).__name__, e)
    except Exception:
        logger.exception("unexpected error while handling webhook")
    else:
        if confirmation is not None:
            return {"ok": True, "confirmed": confirmation.record.reference}
    return {"ok": True}


# ----------------------------
# Live stream (SSE)
# ----------------------------
@router.get("/api/stream")
async def stream_donations(
    request: Request, channel: BroadcastChannel = Depends(get_channel)
):
    """Stream confirmed donations and the new total via SSE."""
    async def event_generator():
        q = await channel.subscribe()
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    message = await asyncio.wait_for(
                        q.get(), timeout=STREAM_POLL_SECONDS
                    )
                except asyncio.TimeoutError:
                    continue
                yield {
                    "event": message["event"],
                    "data": orjson.dumps(message["data"]).decode(),
                }
        finally:
            await channel.unsubscribe(q)

    return EventSourceResponse(event_generator(), ping=15)


# ----------------------------
# MockPay (development only)
# ----------------------------
mockpay_router = APIRouter()


@mockpay_router.post("/mockpay/{reference}/emit")
async def mockpay_emit(
    reference: str, request: Request,
    ledger: DonationLedger = Depends(get_ledger),
    settings: Settings = Depends(get_settings),
):
    record = await ledger.get_pledge(reference)
    delivered = await mockpay.emit_charge_success(
        request.app.state.http,
        settings.webhook_url,
        settings.paystack_secret_key,
        record,
        settings.currency,
    )
    return {"ok": True, "delivered": delivered}


# ----------------------------
# Error translation
# ----------------------------
def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError):
        return ORJSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError):
        return ORJSONResponse({"error": str(exc)}, status_code=404)

    @app.exception_handler(StorageError)
    async def _storage_error(request: Request, exc: StorageError):
        logger.error("storage failure on %s: %s", request.url.path, exc)
        return ORJSONResponse({"error": "Database error"}, status_code=500)


# ----------------------------
# App factory, startup / shutdown
# ----------------------------
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    settings.validate()
    setup_logging(level=settings.log_level)

    app = FastAPI(
        title="DonateLive",
        default_response_class=ORJSONResponse,
    )
    app.state.settings = settings
    app.include_router(router)
    if settings.mockpay_enabled:
        app.include_router(mockpay_router)
    _install_error_handlers(app)

    @app.on_event("startup")
    async def _say_hello():
        logger.info("DonateLive is starting up")
        logger.info("   - Record store: %s",
                    settings.database_url.split("://", 1)[0])
        logger.info("   - Broadcast backend: %s", settings.broadcast_backend)
        if not settings.paystack_secret_key:
            logger.warning("PAYSTACK_SECRET_KEY is not set: every webhook "
                           "will be rejected")
        if settings.mockpay_enabled:
            logger.warning("MockPay is enabled; do not run this in "
                           "production")

    @app.on_event("startup")
    async def _db_init():
        db = make_async_engine(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout_seconds,
            gate_limit=settings.db_gate_limit,
        )
        await create_schema(db.engine)
        app.state.db = db
        app.state.store = DonationStore(
            sessions=db.sessions, gated=db.gated,
            timeout_seconds=settings.storage_timeout_seconds,
        )

    @app.on_event("startup")
    async def _broadcast_start():
        r = None
        if settings.broadcast_backend == "redis":
            r = redis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_connect_timeout=2.0,
                retry_on_timeout=True,
            )
            app.state.redis = r
        channel = new_channel(settings.broadcast_backend, r=r)
        await channel.start()
        app.state.channel = channel

    @app.on_event("startup")
    async def _ledger_start():
        app.state.ledger = DonationLedger(
            store=app.state.store,
            channel=app.state.channel,
            adapter=Paystack(settings.paystack_secret_key),
            min_amount=settings.min_donation,
            recent_limit=settings.recent_donations_limit,
        )

    @app.on_event("startup")
    async def _http_client_start():
        if settings.mockpay_enabled:
            app.state.http = httpx.AsyncClient(timeout=5.0)

    @app.on_event("shutdown")
    async def _http_client_stop():
        http = getattr(app.state, "http", None)
        if http is not None:
            await http.aclose()
            app.state.http = None

    @app.on_event("shutdown")
    async def _broadcast_stop():
        channel = getattr(app.state, "channel", None)
        if channel is not None:
            await channel.stop()
        r = getattr(app.state, "redis", None)
        if r is not None:
            await r.aclose()
            app.state.redis = None

    @app.on_event("shutdown")
    async def _db_stop():
        app.state.ledger = None
        db = getattr(app.state, "db", None)
        if db is not None:
            await db.dispose()
            app.state.db = None

    return app
