"""
app/schemas/intents.py

Purpose: Resolved user intents

- One pydantic model per intent, each carrying only its own slots
- Discriminated union keyed on `intent`
- `source` records which resolver layer produced it
- parse_intent() validates untrusted (NLP) payloads into the union
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

IntentSource = Literal["guard", "local", "nlp", "fallback"]


class BaseIntent(BaseModel):
    source: IntentSource = "local"


class AddDebtIntent(BaseIntent):
    intent: Literal["add_debt"] = "add_debt"
    client_name: str = "Cliente"
    amount: Optional[float] = Field(None, gt=0)
    since_text: Optional[str] = None


class ListDebtsIntent(BaseIntent):
    intent: Literal["list_debts"] = "list_debts"


class PrioritizeIntent(BaseIntent):
    intent: Literal["prioritize"] = "prioritize"


class RemindIntent(BaseIntent):
    intent: Literal["remind"] = "remind"
    client_name: Optional[str] = None
    tone: Optional[Literal["amable", "firme", "formal"]] = None


class MarkPaidIntent(BaseIntent):
    intent: Literal["mark_paid"] = "mark_paid"
    client_name: str


class SavePhoneIntent(BaseIntent):
    intent: Literal["save_phone"] = "save_phone"
    client_name: str
    phone: Optional[str] = None


class PricingIntent(BaseIntent):
    intent: Literal["pricing"] = "pricing"


class WantProIntent(BaseIntent):
    intent: Literal["want_pro"] = "want_pro"


class PayIntent(BaseIntent):
    intent: Literal["pay"] = "pay"


class MyPlanIntent(BaseIntent):
    intent: Literal["my_plan"] = "my_plan"


class HelpIntent(BaseIntent):
    intent: Literal["help"] = "help"


class SupportIntent(BaseIntent):
    intent: Literal["support"] = "support"


class CancelIntent(BaseIntent):
    intent: Literal["cancel"] = "cancel"


class UnknownIntent(BaseIntent):
    intent: Literal["unknown"] = "unknown"
    reason: Optional[str] = None


Intent = Annotated[
    Union[
        AddDebtIntent,
        ListDebtsIntent,
        PrioritizeIntent,
        RemindIntent,
        MarkPaidIntent,
        SavePhoneIntent,
        PricingIntent,
        WantProIntent,
        PayIntent,
        MyPlanIntent,
        HelpIntent,
        SupportIntent,
        CancelIntent,
        UnknownIntent,
    ],
    Field(discriminator="intent"),
]

_intent_adapter = TypeAdapter(Intent)


def parse_intent(payload: dict) -> Intent:
    """
    Validates a raw payload into one Intent variant.

    Anything that does not fit a variant becomes UnknownIntent; this
    never raises.
    """
    try:
        return _intent_adapter.validate_python(payload)
    except ValidationError as e:
        return UnknownIntent(
            source=payload.get("source", "fallback") if isinstance(payload, dict) else "fallback",
            reason=f"invalid_payload: {e.error_count()} error(s)",
        )
