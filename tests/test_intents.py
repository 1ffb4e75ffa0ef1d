"""Intent resolution: payment guard, local router, NLP fallback."""

import asyncio
from types import SimpleNamespace

import pytest

from app.db.mongo import get_intent_misses_collection
from app.flow.router import route
from app.schemas.intents import UnknownIntent, parse_intent
from app.services.intent_service import IntentResolver
from app.services.nlp_service import OpenAIIntentParser
from tests.conftest import FakeParser


@pytest.mark.parametrize(
    "text, expected",
    [
        ("¿Quién me debe?", "list_debts"),
        ("quienes me deben", "list_debts"),
        ("¿A quién cobro primero?", "prioritize"),
        ("guarda tel de Juan 5512345678", "save_phone"),
        ("Recuérdale a Juan", "remind"),
        ("Juan ya pagó", "mark_paid"),
        ("Juan me debe 8500 desde el 3 de mayo", "add_debt"),
        ("precios", "pricing"),
        ("quiero pro", "want_pro"),
        ("quiero pagar", "pay"),
        ("mi plan", "my_plan"),
        ("Hola", "help"),
        ("soporte", "support"),
        ("cancelar", "cancel"),
    ],
)
def test_router_intents(text, expected):
    intent = route(text)
    assert intent is not None
    assert intent.intent == expected
    assert intent.source == "local"


def test_list_debts_beats_add_debt():
    # "quién me debe" also fits "<name> me debe ..."
    assert route("quién me debe").intent == "list_debts"


def test_add_debt_slots():
    intent = route("Juan Pérez me debe $8,500 desde el 3 de mayo")
    assert intent.client_name == "Juan Pérez"
    assert intent.amount == 8500.0
    assert intent.since_text == "el 3 de mayo"


def test_add_debt_date_is_not_amount():
    intent = route("Luis me debe desde el 3 de mayo")
    assert intent.intent == "add_debt"
    assert intent.amount is None


def test_add_debt_thousands_shorthand():
    assert route("me deben 2k").amount == 2000.0
    assert route("Pedro quedó a deber 2 mil").amount == 2000.0


def test_add_debt_without_name_defaults():
    assert route("me debe 300").client_name == "Cliente"


def test_remind_with_tone():
    intent = route("recuérdale a María de forma firme")
    assert intent.client_name == "María"
    assert intent.tone == "firme"


def test_save_phone_normalizes():
    intent = route("guarda el teléfono de Ana: 55 1234 5678")
    assert intent.client_name == "Ana"
    assert intent.phone == "+525512345678"


def test_unmatched_returns_none():
    assert route("el clima está bonito") is None
    assert route("") is None


def test_guard_matches_exact_keyword_only():
    resolver = IntentResolver(parser=None, record_misses=False)

    for text in ("pagar", "PAGAR", "  Pagar. "):
        intent = resolver.guard(text)
        assert intent.intent == "pay"
        assert intent.source == "guard"

    assert resolver.guard("voy a pagar mañana") is None


async def test_guard_wins_over_parser():
    parser = FakeParser(result={"intent": "help"})
    resolver = IntentResolver(parser=parser, record_misses=False)

    intent = await resolver.resolve("pagar")

    assert intent.intent == "pay"
    assert parser.calls == []


async def test_local_match_skips_parser():
    parser = FakeParser(result={"intent": "help"})
    resolver = IntentResolver(parser=parser, record_misses=False)

    assert (await resolver.resolve("mi plan")).intent == "my_plan"
    assert parser.calls == []


async def test_nlp_add_debt_with_thousands_correction():
    parser = FakeParser(result={"intent": "add_debt", "client_name": "don chuy", "amount_due": 3, "since_text": "la quincena"})
    resolver = IntentResolver(parser=parser, record_misses=False)

    intent = await resolver.resolve("oye don chuy se llevó fiado como 3k la quincena")

    assert intent.intent == "add_debt"
    assert intent.source == "nlp"
    assert intent.client_name == "Don Chuy"
    assert intent.amount == 3000.0
    assert intent.since_text == "la quincena"


@pytest.mark.parametrize("forbidden", ["pay", "want_pro", "save_phone", "cancel", "delete_everything"])
async def test_nlp_cannot_produce_restricted_intents(forbidden, db):
    resolver = IntentResolver(parser=FakeParser(result={"intent": forbidden}))

    intent = await resolver.resolve("algo raro que el modelo interpretó")

    assert intent.intent == "unknown"
    assert intent.source == "nlp"
    assert intent.reason.startswith("disallowed_intent")


async def test_nlp_mark_paid_needs_client():
    resolver = IntentResolver(parser=FakeParser(result={"intent": "mark_paid"}), record_misses=False)
    intent = await resolver.resolve("ya me liquidaron")
    assert intent.intent == "unknown"


async def test_nlp_invalid_tone_dropped():
    parser = FakeParser(result={"intent": "remind", "client_name": "rosa", "tone": "agresivo"})
    resolver = IntentResolver(parser=parser, record_misses=False)

    intent = await resolver.resolve("échale un grito a rosa")

    assert intent.intent == "remind"
    assert intent.client_name == "Rosa"
    assert intent.tone is None


async def test_parser_failure_falls_back(db):
    resolver = IntentResolver(parser=FakeParser(error=asyncio.TimeoutError()))

    intent = await resolver.resolve("texto sin sentido")

    assert intent.intent == "unknown"
    assert intent.source == "fallback"
    miss = await get_intent_misses_collection().find_one({})
    assert miss["text"] == "texto sin sentido"
    assert miss["source"] == "fallback"


async def test_no_parser_configured():
    resolver = IntentResolver(parser=None, record_misses=False)
    intent = await resolver.resolve("texto sin sentido")
    assert intent == UnknownIntent(source="fallback", reason="no_parse")


def test_looks_like_command():
    resolver = IntentResolver(parser=None, record_misses=False)
    assert resolver.looks_like_command("quién me debe")
    assert resolver.looks_like_command("pagar")
    assert not resolver.looks_like_command("cancelar")
    assert not resolver.looks_like_command("mmm")


def test_parse_intent_rejects_bad_payload():
    assert parse_intent({"intent": "add_debt", "amount": -5}).intent == "unknown"
    assert parse_intent({"intent": "nope"}).intent == "unknown"
    assert parse_intent({"intent": "list_debts"}).intent == "list_debts"


@pytest.mark.parametrize(
    "payload",
    [
        {"intent": ["add_debt"]},
        {"intent": {"name": "remind"}},
        {"intent": "remind", "client_name": "rosa", "tone": ["firme"]},
        {"intent": "add_debt", "client_name": 123, "amount_due": 500},
        {"intent": "mark_paid", "client_name": ["juan"]},
        {"intent": "add_debt", "amount_due": "500"},
    ],
)
async def test_malformed_nlp_output_never_raises(payload, db):
    resolver = IntentResolver(parser=FakeParser(result=payload))

    intent = await resolver.resolve("mensaje que el modelo no entendió bien")

    assert intent.source == "nlp"
    assert intent.intent in ("unknown", "add_debt", "remind")
    if intent.intent == "remind":
        assert intent.tone is None
    if intent.intent == "add_debt":
        assert intent.client_name == "Cliente"


async def test_malformed_nlp_output_is_recorded_as_miss(db):
    resolver = IntentResolver(parser=FakeParser(result={"intent": ["add_debt"]}))

    intent = await resolver.resolve("algo")

    assert intent.intent == "unknown"
    assert await get_intent_misses_collection().count_documents({}) == 1


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _openai_parser(create, timeout=5.0):
    parser = OpenAIIntentParser(api_key="sk-test", timeout=timeout)
    parser.client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    return parser


async def _slow_create(**kwargs):
    await asyncio.sleep(1)
    return _completion('{"intent": "help"}')


async def _not_json_create(**kwargs):
    return _completion("claro, aquí tienes: intent=help")


async def _json_list_create(**kwargs):
    return _completion('["help"]')


@pytest.mark.parametrize(
    "create, timeout",
    [(_slow_create, 0.05), (_not_json_create, 5.0), (_json_list_create, 5.0)],
    ids=["timeout", "not_json", "json_list"],
)
async def test_openai_parser_bad_responses_resolve_unknown(create, timeout):
    parser = _openai_parser(create, timeout)

    assert await parser.parse("oye qué onda") is None

    intent = await IntentResolver(parser=parser, record_misses=False).resolve("oye qué onda")
    assert intent.intent == "unknown"


async def test_openai_parser_returns_object():
    async def create(**kwargs):
        assert kwargs["response_format"] == {"type": "json_object"}
        return _completion('{"intent": "list_debts"}')

    assert await _openai_parser(create).parse("quién me debe lana") == {"intent": "list_debts"}
