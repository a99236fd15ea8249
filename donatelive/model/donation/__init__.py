from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional

from ...helpers import from_minor, money, to_iso
from .orm import Base, Donation

ANONYMOUS = "Anonymous"


class Status(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"


@dataclass(frozen=True)
class DonationRecord:
    reference: str
    amount_minor: int
    email: str
    donor_name: str = ANONYMOUS
    comment: Optional[str] = None
    status: Status = Status.PENDING
    created_at: float = 0.0
    paid_at: Optional[float] = None

    @property
    def amount(self) -> Decimal:
        return from_minor(self.amount_minor)

    @property
    def is_confirmed(self) -> bool:
        return self.status is Status.SUCCESS

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "DonationRecord":
        return cls(
            reference=row["reference"],
            amount_minor=int(row["amount"]),
            email=row["email"],
            donor_name=row["donor_name"] or ANONYMOUS,
            comment=row["comment"],
            status=Status(row["status"]),
            created_at=float(row["created_at"]),
            paid_at=(
                None if row["paid_at"] is None else float(row["paid_at"])
            ),
        )

    def public_view(self) -> dict:
        # no email: this goes to browsers and the live stream
        return {
            "reference": self.reference,
            "donor_name": self.donor_name,
            "amount": money(self.amount_minor),
            "comment": self.comment,
            "status": self.status.value,
            "created_at": to_iso(self.created_at),
            "paid_at": to_iso(self.paid_at),
        }


__all__ = ["ANONYMOUS", "Base", "Donation", "DonationRecord", "Status"]
