"""Daily collection digest."""

from app.services import debt_service
from app.services.reminder_service import (
    build_digest,
    pick_debts_to_remind,
    select_items,
    send_daily_digests,
)
from tests.conftest import OWNER, FakeSender

OTHER_OWNER = "+5215522222222"


async def seed():
    await debt_service.add_debt(OWNER, "Juan", 8500, "mayo")
    await debt_service.add_debt(OWNER, "Ana", 150)
    await debt_service.add_debt(OTHER_OWNER, "Luis", 900)
    paid = await debt_service.add_debt(OWNER, "Rosa", 700)
    await debt_service.mark_paid(OWNER, "Rosa")
    return paid


def test_select_items_hides_small_amounts():
    debts = [{"amount": 50}, {"amount": 500}, {"amount": 900}]
    assert select_items(debts, min_amount=200, max_items=5) == [{"amount": 500}, {"amount": 900}]
    # Nothing above the threshold: show what there is
    assert select_items([{"amount": 50}], min_amount=200, max_items=5) == [{"amount": 50}]
    assert len(select_items(debts, min_amount=0, max_items=2)) == 2


def test_build_digest_mentions_hidden_count_and_total():
    debts = [
        {"client_name": "Juan", "amount": 800, "since_text": "mayo"},
        {"client_name": "Cliente", "amount": 600},
        {"client_name": "Ana", "amount": 400},
    ]
    text = build_digest(debts, debts[:2], min_amount=200)

    assert "*Juan*: $800.00 (desde: mayo)" in text
    assert "Cliente (sin nombre)" in text
    assert "(+1 más pendientes)" in text
    assert "$1,400.00" in text


async def test_pick_groups_pending_by_owner(db):
    await seed()

    by_owner = await pick_debts_to_remind()

    assert set(by_owner) == {OWNER, OTHER_OWNER}
    assert [d["client_name"] for d in by_owner[OWNER]] == ["Juan", "Ana"]


async def test_send_daily_digests_respects_cooldown(db):
    await seed()
    sender = FakeSender()

    stats = await send_daily_digests(sender)
    assert stats == {"sent": 2, "failed": 0}
    assert {phone for phone, _ in sender.sent} == {OWNER, OTHER_OWNER}

    # Everything was just included, so a second run has nothing to send
    again = await send_daily_digests(sender)
    assert again == {"sent": 0, "failed": 0}


async def test_failed_digest_is_retried_next_run(db):
    await seed()

    failing = FakeSender(fail=True)
    assert (await send_daily_digests(failing))["failed"] == 2

    working = FakeSender()
    assert (await send_daily_digests(working))["sent"] == 2
