"""
app/flow/dispatcher.py

Purpose: Central message dispatcher

- Admission (dedup + rate limit) before anything else
- Routes to the pending flow's handler when one is running
- Otherwise resolves the intent, applies the paywall and executes it
- Every failure becomes a reply; nothing propagates to the webhook
"""

from typing import Awaitable, Callable, Dict, Optional

from app.core.logging import get_logger, LogContext
from app.flow.handlers.confirm_send import handle_confirm_send
from app.flow.handlers.intents import execute_intent
from app.flow.handlers.support import handle_support_collect
from app.flow.handlers.tone import handle_choose_tone
from app.flow.handlers.upgrade import handle_ask_cycle, handle_ask_name
from app.flow.handlers.welcome import welcome_prefix
from app.flow.states import PendingAction, StepResult, parse_pending_action
from app.schemas.webhook import InboundMessage
from app.services.session_service import clear_pending
from app.services.user_service import get_or_create_user
from utils.constants import (
    CANCEL_WORDS,
    CANCELLED_MESSAGE,
    ERROR_MESSAGE,
    LOW_BALANCE_MESSAGE,
    PAYWALL_MESSAGE,
    THROTTLE_MESSAGE,
)
from utils.validation_utils import prepare_text
from utils.whatsapp_utils import join_messages

logger = get_logger(__name__)

StateHandler = Callable[..., Awaitable[StepResult]]

STATE_HANDLERS: Dict[PendingAction, StateHandler] = {
    PendingAction.CHOOSE_TONE: handle_choose_tone,
    PendingAction.CONFIRM_SEND: handle_confirm_send,
    PendingAction.ASK_NAME: handle_ask_name,
    PendingAction.ASK_CYCLE: handle_ask_cycle,
    PendingAction.SUPPORT_COLLECT: handle_support_collect,
}


async def run_pending_step(user: dict, text: str, services) -> Optional[StepResult]:
    """
    Handles a message for a user with a flow in progress.

    Returns:
        None when the user is idle, otherwise the handler's StepResult
    """
    state = parse_pending_action(user.get("pending_action"))
    if state == PendingAction.IDLE:
        return None

    with LogContext(pending_action=state.value):
        if prepare_text(text) in CANCEL_WORDS:
            logger.info("Flow cancelled by user")
            await clear_pending(user["phone"])
            return StepResult.respond(CANCELLED_MESSAGE)

        # The payment keyword is never a flow answer, not even in free-text states
        if services.resolver.guard(text) is not None:
            logger.info("Payment keyword aborts the flow")
            await clear_pending(user["phone"])
            return StepResult.abort()

        handler = STATE_HANDLERS.get(state)
        if handler is None:
            logger.warning(f"No handler for state {state.value}, resetting")
            await clear_pending(user["phone"])
            return StepResult.abort()

        return await handler(user, text, services)


async def dispatch_message(message: InboundMessage, services) -> Optional[str]:
    """
    Main dispatcher for incoming WhatsApp messages

    Args:
        message: Normalized message object
        services: Services container

    Returns:
        Reply text, or None when nothing should be sent (duplicate delivery)
    """
    with LogContext(phone=message.phone):
        try:
            admission = await services.admission.admit(message.phone, message.message_id, message.text)
            if not admission.admitted:
                if admission.reason == "rate_limited":
                    return THROTTLE_MESSAGE
                return None

            user = await get_or_create_user(message.phone, message.name)
            welcome = await welcome_prefix(user)

            step = await run_pending_step(user, message.text, services)
            if step is not None and not step.fall_through:
                return join_messages(welcome, step.reply) or None

            if step is not None:
                # The handler cleared the flow; the message is a fresh command
                user = {**user, "pending_action": None, "pending_payload": None}

            intent = await services.resolver.resolve(message.text)

            with LogContext(intent=intent.intent, source=intent.source):
                logger.info("Intent resolved")

                gate = await services.meter.gate(user, intent)
                if gate.blocked:
                    return join_messages(welcome, PAYWALL_MESSAGE.format(limit=services.meter.daily_limit))

                reply = await execute_intent(user, intent, services)

                nudge = LOW_BALANCE_MESSAGE.format(remaining=gate.remaining) if gate.warn else None
                return join_messages(welcome, reply, nudge)

        except Exception as e:
            logger.error(f"❌ Dispatcher error: {e}", exc_info=True)
            return ERROR_MESSAGE
