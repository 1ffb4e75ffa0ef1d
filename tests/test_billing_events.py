import pytest

from app.core.exceptions import StoreUnavailableError
from app.db import mongo
from app.services import billing_events


async def test_first_acquire_is_new(db):
    result = await billing_events.acquire("evt_1", "checkout.session.completed")
    assert result.is_new
    assert result.event_id == "evt_1"

    record = await billing_events.get_event("evt_1")
    assert record["type"] == "checkout.session.completed"
    assert record["processed_at"] is None


async def test_second_acquire_is_not_new(db):
    await billing_events.acquire("evt_1", "invoice.payment_failed")
    again = await billing_events.acquire("evt_1", "invoice.payment_failed")
    assert not again.is_new


async def test_acquire_keys_on_event_id_only(db):
    # Same id with a different type is still the same event
    await billing_events.acquire("evt_1", "invoice.payment_failed")
    again = await billing_events.acquire("evt_1", "invoice.payment_succeeded")
    assert not again.is_new


async def test_mark_done_once(db):
    await billing_events.acquire("evt_1", "customer.subscription.deleted")

    assert await billing_events.mark_done("evt_1", "processed")
    assert not await billing_events.mark_done("evt_1", "processed")

    record = await billing_events.get_event("evt_1")
    assert record["processed_at"] is not None
    assert record["outcome"] == "processed"


async def test_unfinished_claim_blocks_replays(db):
    await billing_events.acquire("evt_crash", "checkout.session.completed")
    await billing_events.record_failure("evt_crash", "boom")

    assert not (await billing_events.acquire("evt_crash", "checkout.session.completed")).is_new

    unfinished = await billing_events.list_unfinished()
    assert [e["event_id"] for e in unfinished] == ["evt_crash"]
    assert unfinished[0]["error"] == "boom"


async def test_list_unfinished_skips_done(db):
    await billing_events.acquire("evt_a", "x")
    await billing_events.acquire("evt_b", "x")
    await billing_events.mark_done("evt_a")

    assert [e["event_id"] for e in await billing_events.list_unfinished()] == ["evt_b"]


async def test_store_down_raises(monkeypatch):
    monkeypatch.setattr(mongo, "_database", None)
    with pytest.raises(StoreUnavailableError) as exc:
        await billing_events.acquire("evt_1", "x")
    assert exc.value.status_code == 503
