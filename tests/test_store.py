import asyncio
from contextlib import asynccontextmanager

import pytest

from donatelive.errors import StorageError
from donatelive.infra.sql import make_async_engine, normalize_async_url
from donatelive.model.donation import DonationRecord, Status
from donatelive.model.donationstore import DonationStore


def _record(reference, amount_minor=10000, created_at=1.0):
    return DonationRecord(reference=reference, amount_minor=amount_minor,
                          email="a@x.com", created_at=created_at)


def test_normalize_async_url():
    assert normalize_async_url("sqlite:///./d.db") == \
        "sqlite+aiosqlite:///./d.db"
    assert normalize_async_url("postgres://u@h/db") == \
        "postgresql+asyncpg://u@h/db"
    assert normalize_async_url("postgresql://u@h/db") == \
        "postgresql+asyncpg://u@h/db"
    assert normalize_async_url("sqlite+aiosqlite:///x") == \
        "sqlite+aiosqlite:///x"


@pytest.mark.asyncio
async def test_insert_is_keyed_on_reference(store):
    assert await store.insert_pending(_record("REF-1"))
    assert not await store.insert_pending(_record("REF-1", 99900))
    assert (await store.get("REF-1")).amount_minor == 10000
    assert await store.get("REF-2") is None


@pytest.mark.asyncio
async def test_mark_success_only_from_pending(store):
    await store.insert_pending(_record("REF-1"))

    assert await store.mark_success("REF-1", 5.0) is True
    assert await store.mark_success("REF-1", 6.0) is False
    assert await store.mark_success("REF-unknown", 6.0) is False

    record = await store.get("REF-1")
    assert record.status is Status.SUCCESS
    assert record.paid_at == 5.0


@pytest.mark.asyncio
async def test_totals_and_recent_only_count_success(store):
    await store.insert_pending(_record("REF-1", 10010, created_at=1.0))
    await store.insert_pending(_record("REF-2", 20020, created_at=2.0))
    await store.insert_pending(_record("REF-3", 30030, created_at=3.0))
    await store.mark_success("REF-1", 4.0)
    await store.mark_success("REF-3", 4.0)

    assert await store.success_totals() == (40040, 2)
    recent = await store.recent_success(limit=10)
    assert [r.reference for r in recent] == ["REF-3", "REF-1"]


@pytest.mark.asyncio
async def test_timeout_becomes_storage_error(store):
    @asynccontextmanager
    async def slow_gate():
        await asyncio.sleep(1)
        yield

    slow = DonationStore(sessions=store.sessions, gated=slow_gate,
                         timeout_seconds=0.05)
    with pytest.raises(StorageError):
        await slow.get("REF-1")


@pytest.mark.asyncio
async def test_driver_error_becomes_storage_error(tmp_path):
    # no schema created: every query fails in the driver
    db = make_async_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    try:
        bare = DonationStore(sessions=db.sessions, gated=db.gated)
        with pytest.raises(StorageError):
            await bare.get("REF-1")
        with pytest.raises(StorageError):
            await bare.insert_pending(_record("REF-1"))
    finally:
        await db.dispose()


@pytest.mark.asyncio
async def test_summary_reads_totals_and_recent_together(store):
    await store.insert_pending(_record("REF-1", 10010, created_at=1.0))
    await store.insert_pending(_record("REF-2", 20020, created_at=2.0))
    await store.insert_pending(_record("REF-3", 30030, created_at=3.0))
    await store.mark_success("REF-1", 4.0)
    await store.mark_success("REF-2", 4.0)
    await store.mark_success("REF-3", 4.0)

    total, count, recent = await store.summary(limit=2)
    # totals cover every success row, not just the listed ones
    assert (total, count) == (60060, 3)
    assert [r.reference for r in recent] == ["REF-3", "REF-2"]
    assert (total, count) == await store.success_totals()


@pytest.mark.asyncio
async def test_summary_with_nothing_confirmed(store):
    await store.insert_pending(_record("REF-1"))
    assert await store.summary() == (0, 0, [])


@pytest.mark.asyncio
async def test_gate_limit_defaults_to_pool_size(tmp_path):
    url = f"sqlite:///{tmp_path / 'gate.db'}"

    db = make_async_engine(url, pool_size=2)
    try:
        async with db.gated():
            assert not db.gate.locked()
            async with db.gated():
                assert db.gate.locked()
    finally:
        await db.dispose()

    db = make_async_engine(url, pool_size=2, gate_limit=1)
    try:
        async with db.gated():
            assert db.gate.locked()
    finally:
        await db.dispose()
