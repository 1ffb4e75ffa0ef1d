"""Multi-turn flows driven through the dispatcher."""

import pytest

from app.db.mongo import (
    get_reminders_collection,
    get_support_tickets_collection,
    get_users_collection,
)
from app.flow.dispatcher import dispatch_message
from app.flow.handlers.confirm_send import handle_confirm_send
from app.flow.states import (
    PendingAction,
    StepResult,
    is_valid_transition,
    parse_pending_action,
    stored_value,
)
from app.services import session_service
from app.services.user_service import get_or_create_user, get_user_by_phone
from utils.constants import (
    ALREADY_PRO_MESSAGE,
    ASK_NAME_MESSAGE,
    CANCELLED_MESSAGE,
    CHOOSE_TONE_RETRY_MESSAGE,
    CONFIRM_SEND_RETRY_MESSAGE,
    DEBT_LIST_HEADER,
    REMINDER_DISCARDED_MESSAGE,
    WELCOME_MESSAGE,
)
from tests.conftest import OWNER, make_message

DEBTOR_PHONE = "+525512345678"


async def say(services, text):
    return await dispatch_message(make_message(text), services)


async def state_of(phone=OWNER):
    user = await get_user_by_phone(phone)
    return parse_pending_action(user.get("pending_action")), user.get("pending_payload")


async def setup_reminder(services):
    await say(services, "Juan me debe 500 desde marzo")
    await say(services, "guarda tel de Juan 5512345678")
    return await say(services, "Recuérdale a Juan")


def test_state_helpers():
    assert parse_pending_action(None) == PendingAction.IDLE
    assert parse_pending_action("bogus") == PendingAction.IDLE
    assert parse_pending_action("confirm_send") == PendingAction.CONFIRM_SEND
    assert stored_value(PendingAction.IDLE) is None
    assert is_valid_transition(PendingAction.CHOOSE_TONE, PendingAction.CONFIRM_SEND)
    assert not is_valid_transition(PendingAction.CONFIRM_SEND, PendingAction.CHOOSE_TONE)


async def test_welcome_only_on_first_reply(services):
    first = await say(services, "hola")
    second = await say(services, "precios")

    assert first.startswith(WELCOME_MESSAGE)
    assert WELCOME_MESSAGE not in second


async def test_remind_enters_choose_tone(services):
    reply = await setup_reminder(services)

    assert "Juan" in reply
    state, payload = await state_of()
    assert state == PendingAction.CHOOSE_TONE
    assert payload == {"client_name": "Juan", "to_phone": DEBTOR_PHONE, "amount": 500.0}


async def test_unrelated_command_aborts_choose_tone(services):
    await setup_reminder(services)

    reply = await say(services, "¿Quién me debe?")

    assert reply.startswith(DEBT_LIST_HEADER)
    assert "Juan" in reply
    state, payload = await state_of()
    assert state == PendingAction.IDLE
    assert payload is None


async def test_noise_in_choose_tone_reprompts(services):
    await setup_reminder(services)

    assert await say(services, "mmm no sé") == CHOOSE_TONE_RETRY_MESSAGE
    state, _ = await state_of()
    assert state == PendingAction.CHOOSE_TONE


async def test_cancel_from_any_step(services):
    await setup_reminder(services)

    assert await say(services, "cancelar") == CANCELLED_MESSAGE
    state, _ = await state_of()
    assert state == PendingAction.IDLE


async def test_tone_then_confirm_sends_once(services, sender):
    await setup_reminder(services)

    reply = await say(services, "firme")
    assert "¿Lo envío?" in reply
    state, payload = await state_of()
    assert state == PendingAction.CONFIRM_SEND
    assert payload["tone"] == "firme"

    reply = await say(services, "sí")
    assert "le envié el recordatorio a *Juan*" in reply
    assert len(sender.sent) == 1
    to_phone, text = sender.sent[0]
    assert to_phone == DEBTOR_PHONE
    assert "$500.00" in text

    state, _ = await state_of()
    assert state == PendingAction.IDLE

    logged = await get_reminders_collection().find_one({"owner": OWNER})
    assert logged["status"] == "sent"


async def test_tone_in_remind_command_skips_choice(services):
    await say(services, "Ana me debe 2k")
    await say(services, "guarda tel de Ana 5512345679")

    reply = await say(services, "recuérdale a Ana en tono amable")

    assert "¿Lo envío?" in reply
    state, payload = await state_of()
    assert state == PendingAction.CONFIRM_SEND
    assert payload["amount"] == 2000.0


async def test_concurrent_confirmations_send_once(services, sender):
    await setup_reminder(services)
    await say(services, "amable")

    # Both deliveries observed the same confirm_send snapshot
    stale_user = await get_user_by_phone(OWNER)
    first = await handle_confirm_send(stale_user, "sí", services)
    second = await handle_confirm_send(stale_user, "si", services)

    assert first.reply is not None
    assert second == StepResult()
    assert len(sender.sent) == 1


async def test_failed_send_still_clears_state(services, sender):
    sender.fail = True
    await setup_reminder(services)
    await say(services, "formal")

    reply = await say(services, "sí")

    assert "No pude enviar" in reply
    state, _ = await state_of()
    assert state == PendingAction.IDLE
    logged = await get_reminders_collection().find_one({"owner": OWNER})
    assert logged["status"] == "failed"


async def test_confirm_send_no_discards(services, sender):
    await setup_reminder(services)
    await say(services, "amable")

    assert await say(services, "no") == REMINDER_DISCARDED_MESSAGE
    assert sender.sent == []


async def test_confirm_send_reprompts_on_noise(services):
    await setup_reminder(services)
    await say(services, "amable")

    assert await say(services, "tal vez luego") == CONFIRM_SEND_RETRY_MESSAGE
    state, _ = await state_of()
    assert state == PendingAction.CONFIRM_SEND


async def test_remind_without_phone_asks_for_it(services):
    await say(services, "Pedro me debe 300")
    reply = await say(services, "recuérdale a Pedro")

    assert "No tengo el número de *Pedro*" in reply
    state, _ = await state_of()
    assert state == PendingAction.IDLE


async def test_trial_flow(services):
    assert await say(services, "quiero pro") == join_welcome(ASK_NAME_MESSAGE)

    reply = await say(services, "Tortillería Lupe")
    assert "Mensual" in reply
    state, payload = await state_of()
    assert state == PendingAction.ASK_CYCLE
    assert payload == {"purpose": "trial", "business_name": "Tortillería Lupe"}

    reply = await say(services, "anual")
    assert "Tortillería Lupe" in reply
    user = await get_user_by_phone(OWNER)
    assert user["plan_source"] == "trial"
    assert user["trial_used"] is True
    assert user["billing_cycle"] == "yearly"

    assert await say(services, "activar pro") == ALREADY_PRO_MESSAGE


async def test_trial_is_one_time(services):
    await say(services, "quiero pro")
    await say(services, "Abarrotes Lupe")
    await say(services, "mensual")

    # Expire the trial; the flag remains
    await get_users_collection().update_one(
        {"phone": OWNER}, {"$set": {"plan": "free", "plan_source": None, "plan_until": None}}
    )

    reply = await say(services, "prueba gratis")
    assert "Ya usaste tu prueba" in reply


async def test_pay_asks_cycle_then_links(services, checkout):
    await say(services, "pagar")
    state, payload = await state_of()
    assert state == PendingAction.ASK_CYCLE
    assert payload == {"purpose": "checkout"}

    reply = await say(services, "mensual")
    assert checkout.url in reply
    assert checkout.calls == [(OWNER, "monthly")]
    user = await get_user_by_phone(OWNER)
    assert user["billing_cycle"] == "monthly"


async def test_unrelated_command_aborts_ask_cycle(services):
    await say(services, "pagar")

    reply = await say(services, "ayuda")

    assert "Así te ayudo" in reply
    state, _ = await state_of()
    assert state == PendingAction.IDLE


async def test_support_flow(services):
    await say(services, "soporte")
    state, _ = await state_of()
    assert state == PendingAction.SUPPORT_COLLECT

    # Free text, even when it looks like a command, is the report
    reply = await say(services, "precios no carga")
    assert "registré tu reporte" in reply

    ticket = await get_support_tickets_collection().find_one({"phone": OWNER})
    assert ticket["text"] == "precios no carga"


@pytest.mark.parametrize("start", ["quiero pro", "soporte"])
async def test_payment_keyword_escapes_free_text_states(services, checkout, start):
    await say(services, start)

    await say(services, "pagar")
    state, payload = await state_of()
    assert state == PendingAction.ASK_CYCLE
    assert payload == {"purpose": "checkout"}
    user = await get_user_by_phone(OWNER)
    assert user.get("business_name") != "pagar"
    assert await get_support_tickets_collection().count_documents({}) == 0

    reply = await say(services, "mensual")
    assert checkout.url in reply
    assert checkout.calls == [(OWNER, "monthly")]


async def test_advance_rejects_invalid_transition(db):
    await get_or_create_user(OWNER)
    with pytest.raises(ValueError):
        await session_service.advance(OWNER, PendingAction.CONFIRM_SEND, PendingAction.ASK_NAME)


async def test_stale_expected_state_loses(db):
    await get_or_create_user(OWNER)
    assert await session_service.begin_flow(OWNER, PendingAction.SUPPORT_COLLECT)
    assert not await session_service.begin_flow(OWNER, PendingAction.ASK_NAME)
    assert not await session_service.clear_pending(OWNER, PendingAction.ASK_NAME)
    assert await session_service.clear_pending(OWNER, PendingAction.SUPPORT_COLLECT)


def join_welcome(text):
    return f"{WELCOME_MESSAGE}\n\n{text}"
