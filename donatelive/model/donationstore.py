from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Tuple, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ..errors import StorageError
from ..infra.sql import Gated
from .donation import Base, DonationRecord, Status

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def create_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


class DonationStore:
    """Durable home of every donation record.

    Each call runs in its own short transaction behind the DB gate and is
    bounded by ``timeout_seconds``. Driver failures and timeouts come out
    as ``StorageError``; nothing else leaks.
    """

    def __init__(
        self, *, sessions: async_sessionmaker, gated: Gated,
        timeout_seconds: float = 5.0,
    ) -> None:
        self.sessions = sessions
        self.gated = gated
        self.timeout = timeout_seconds

    async def _run(
        self, op: str, fn: Callable[[AsyncSession], Awaitable[T]]
    ) -> T:
        async def _tx() -> T:
            async with self.gated():
                async with self.sessions() as db:
                    async with db.begin():
                        return await fn(db)

        try:
            return await asyncio.wait_for(_tx(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error("storage %s timed out after %.1fs", op, self.timeout)
            raise StorageError(f"{op} timed out") from e
        except SQLAlchemyError as e:
            logger.error("storage %s failed: %s", op, e)
            raise StorageError(f"{op} failed") from e

    async def insert_pending(self, record: DonationRecord) -> bool:
        """Insert a new pending record.

        Returns False, without touching the existing row, when the
        reference is already taken.
        """
        async def _insert(db: AsyncSession) -> bool:
            row = (await db.execute(text("""
              INSERT INTO donations(
                reference, amount, email, donor_name, comment, status,
                created_at, paid_at
              ) VALUES (
                :reference, :amount, :email, :donor_name, :comment,
                :status, :created_at, NULL
              )
              ON CONFLICT (reference) DO NOTHING
              RETURNING reference
            """), {
                "reference": record.reference,
                "amount": record.amount_minor,
                "email": record.email,
                "donor_name": record.donor_name,
                "comment": record.comment,
                "status": Status.PENDING.value,
                "created_at": record.created_at,
            })).first()
            return row is not None

        return await self._run("insert_pending", _insert)

    async def get(self, reference: str) -> Optional[DonationRecord]:
        async def _get(db: AsyncSession) -> Optional[DonationRecord]:
            row = (await db.execute(text("""
              SELECT * FROM donations WHERE reference = :reference
            """), {"reference": reference})).mappings().first()
            return DonationRecord.from_row(row) if row is not None else None

        return await self._run("get", _get)

    async def mark_success(self, reference: str, paid_at: float) -> bool:
        """Conditional pending -> success transition.

        Only one caller per reference ever gets True: the update matches
        the row only while it is still pending.
        """
        async def _mark(db: AsyncSession) -> bool:
            result = await db.execute(text("""
              UPDATE donations
              SET status = :success, paid_at = :paid_at
              WHERE reference = :reference AND status = :pending
            """), {
                "success": Status.SUCCESS.value,
                "pending": Status.PENDING.value,
                "paid_at": paid_at,
                "reference": reference,
            })
            return result.rowcount == 1

        return await self._run("mark_success", _mark)

    async def success_totals(self) -> Tuple[int, int]:
        """(sum of amounts in kobo, number of records) over success rows."""
        async def _totals(db: AsyncSession) -> Tuple[int, int]:
            row = (await db.execute(text("""
              SELECT COALESCE(SUM(amount), 0) AS total, COUNT(*) AS n
              FROM donations WHERE status = :success
            """), {"success": Status.SUCCESS.value})).mappings().one()
            return int(row["total"]), int(row["n"])

        return await self._run("success_totals", _totals)

    async def recent_success(self, limit: int = 20) -> List[DonationRecord]:
        async def _recent(db: AsyncSession) -> List[DonationRecord]:
            rows = (await db.execute(text("""
              SELECT * FROM donations
              WHERE status = :success
              ORDER BY created_at DESC, reference DESC
              LIMIT :lim
            """), {
                "success": Status.SUCCESS.value,
                "lim": max(1, int(limit)),
            })).mappings().all()
            return [DonationRecord.from_row(r) for r in rows]

        return await self._run("recent_success", _recent)

    async def summary(
        self, limit: int = 20
    ) -> Tuple[int, int, List[DonationRecord]]:
        """Totals and the recent list from a single statement.

        The window aggregates run over every success row before LIMIT, so
        the count and the list always come from the same snapshot. No rows
        means nothing has been confirmed yet.
        """
        async def _summary(
            db: AsyncSession,
        ) -> Tuple[int, int, List[DonationRecord]]:
            rows = (await db.execute(text("""
              SELECT d.*,
                     SUM(d.amount) OVER () AS total_amount,
                     COUNT(*) OVER () AS success_count
              FROM donations d
              WHERE d.status = :success
              ORDER BY d.created_at DESC, d.reference DESC
              LIMIT :lim
            """), {
                "success": Status.SUCCESS.value,
                "lim": max(1, int(limit)),
            })).mappings().all()
            if not rows:
                return 0, 0, []
            head = rows[0]
            return (int(head["total_amount"]), int(head["success_count"]),
                    [DonationRecord.from_row(r) for r in rows])

        return await self._run("summary", _summary)
