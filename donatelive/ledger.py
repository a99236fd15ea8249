from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, List, Optional

from .broadcast import BroadcastChannel
from .errors import (
    AuthenticationError, NotFoundError, StorageError, ValidationError
)
from .helpers import from_minor, is_valid_email, money, now_ts, to_minor
from .model.donation import ANONYMOUS, DonationRecord, Status
from .model.donationstore import DonationStore
from .payments import PaymentAdapter
from .references import ReferenceGenerator

logger = logging.getLogger(__name__)

NEW_DONATION_EVENT = "new_donation"
MAX_NAME_LENGTH = 100
MAX_COMMENT_LENGTH = 500
# fresh references to try before giving up on a colliding insert
REFERENCE_ATTEMPTS = 3


@dataclass(frozen=True)
class Confirmation:
    record: DonationRecord
    # None when the total could not be read after the commit
    total_minor: Optional[int]

    @property
    def total(self) -> Optional[Decimal]:
        if self.total_minor is None:
            return None
        return from_minor(self.total_minor)


@dataclass(frozen=True)
class Summary:
    total_minor: int
    donor_count: int
    recent: List[DonationRecord]

    @property
    def total(self) -> Decimal:
        return from_minor(self.total_minor)


def _clean_text(value: Any, field: str, limit: int) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if len(value) > limit:
        raise ValidationError(f"{field} must be at most {limit} characters")
    return value or None


class DonationLedger:
    """Pledge creation, webhook-driven confirmation and the running total.

    The ledger is the only writer of status transitions. It raises typed
    errors from ``donatelive.errors`` and leaves it to the HTTP layer to
    decide which ones a caller gets to see.
    """

    def __init__(
        self, *, store: DonationStore, channel: BroadcastChannel,
        adapter: PaymentAdapter, min_amount: Decimal = Decimal("100"),
        recent_limit: int = 20,
        references: Optional[ReferenceGenerator] = None,
    ) -> None:
        self.store = store
        self.channel = channel
        self.adapter = adapter
        self.min_amount_minor = to_minor(min_amount)
        self.recent_limit = recent_limit
        self.references = references or ReferenceGenerator()

    # ------------------------------------------------------------------
    # pledges
    # ------------------------------------------------------------------
    async def create_pledge(
        self, email: Any, amount: Any, name: Any = None, comment: Any = None
    ) -> DonationRecord:
        if email is not None and not isinstance(email, str):
            raise ValidationError("email must be a string")
        email = (email or "").strip()
        if not email:
            raise ValidationError("email is required")
        if not is_valid_email(email):
            raise ValidationError("email must be a valid email address")

        amount_minor = to_minor(amount)
        if amount_minor < self.min_amount_minor:
            raise ValidationError(
                f"Minimum donation is {money(self.min_amount_minor)}"
            )

        donor_name = _clean_text(name, "name", MAX_NAME_LENGTH) or ANONYMOUS
        comment = _clean_text(comment, "comment", MAX_COMMENT_LENGTH)

        for _ in range(REFERENCE_ATTEMPTS):
            record = DonationRecord(
                reference=self.references(),
                amount_minor=amount_minor,
                email=email,
                donor_name=donor_name,
                comment=comment,
                status=Status.PENDING,
                created_at=now_ts(),
            )
            if await self.store.insert_pending(record):
                logger.info("pledge %s created: %s by %s", record.reference,
                            money(amount_minor), donor_name)
                return record
            logger.warning("reference %s already taken, retrying",
                           record.reference)
        raise StorageError("could not allocate a unique reference")

    async def get_pledge(self, reference: str) -> DonationRecord:
        record = await self.store.get(reference)
        if record is None:
            raise NotFoundError(f"no donation with reference {reference!r}")
        return record

    # ------------------------------------------------------------------
    # confirmation
    # ------------------------------------------------------------------
    async def confirm_pledge(
        self, payload: bytes, signature: Optional[str]
    ) -> Optional[Confirmation]:
        """Apply a provider notification.

        ``payload`` is the raw request body as received. Returns the
        confirmation when this call moved a pledge to success, ``None``
        for every benign no-op (other event types, unknown references,
        repeated deliveries).
        """
        if not self.adapter.verify_webhook(payload, signature):
            raise AuthenticationError("webhook signature mismatch")

        event = self.adapter.parse_event(payload)
        if not self.adapter.is_successful_charge(event):
            logger.info("ignoring %r notification", event.get("event"))
            return None

        reference = self.adapter.event_reference(event)
        if not reference:
            raise ValidationError("notification carries no reference")

        return await self.confirm_reference(
            reference, reported_amount=self.adapter.event_amount(event)
        )

    async def confirm_reference(
        self, reference: str, reported_amount: Optional[int] = None
    ) -> Optional[Confirmation]:
        record = await self.store.get(reference)
        if record is None:
            logger.warning("notification for unknown reference %s", reference)
            return None
        if record.is_confirmed:
            logger.info("duplicate notification for %s", reference)
            return None

        if (reported_amount is not None
                and reported_amount != record.amount_minor):
            # the pledged amount stays authoritative
            logger.warning(
                "amount mismatch for %s: pledged %s, provider reported %s",
                reference, money(record.amount_minor), money(reported_amount),
            )

        paid_at = now_ts()
        if not await self.store.mark_success(reference, paid_at):
            # a concurrent delivery got there first
            logger.info("notification for %s lost the confirm race",
                        reference)
            return None

        confirmed = replace(record, status=Status.SUCCESS, paid_at=paid_at)
        # The transition is committed: this caller is the only one that
        # will ever announce it, total or not.
        total_minor: Optional[int] = None
        try:
            total_minor, _ = await self.store.success_totals()
        except StorageError as e:
            logger.error("pledge %s confirmed but the total could not be "
                         "read, broadcasting without it: %s", reference, e)
        else:
            logger.info("pledge %s confirmed, total raised %s", reference,
                        money(total_minor))

        self.channel.publish(NEW_DONATION_EVENT, {
            "donor_name": confirmed.donor_name,
            "amount": money(confirmed.amount_minor),
            "comment": confirmed.comment,
            "total_raised": (
                None if total_minor is None else money(total_minor)
            ),
        })
        return Confirmation(record=confirmed, total_minor=total_minor)

    # ------------------------------------------------------------------
    # aggregate
    # ------------------------------------------------------------------
    async def get_summary(self) -> Summary:
        total_minor, count, recent = await self.store.summary(
            self.recent_limit
        )
        return Summary(total_minor=total_minor, donor_count=count,
                       recent=recent)
