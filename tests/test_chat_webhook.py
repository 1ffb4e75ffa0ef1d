"""Twilio WhatsApp webhook endpoint."""

from types import SimpleNamespace

from app import main
from app.core.config import settings
from app.services.dedup_service import AdmissionService, DedupStore
from app.services.rate_limiter import SlidingWindowRateLimiter
from utils.constants import ERROR_MESSAGE, THROTTLE_MESSAGE
from utils.whatsapp_utils import EMPTY_TWIML, create_twiml_message
from tests.conftest import OWNER

URL = f"{settings.API_PREFIX}/webhook/whatsapp"


def form(body, sid, phone=OWNER):
    return {
        "From": f"whatsapp:{phone}",
        "Body": body,
        "ProfileName": "Doña Lupe",
        "MessageSid": sid,
    }


async def test_reply_is_twiml(client, db):
    response = client.post(URL, data=form("precios", "SM1"))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/xml")
    assert response.text.startswith('<?xml version="1.0" encoding="UTF-8"?><Response><Message>')
    assert "Planes CobraYa" in response.text


async def test_duplicate_delivery_gets_empty_response(client, db):
    first = client.post(URL, data=form("Juan me debe 500", "SM1"))
    second = client.post(URL, data=form("Juan me debe 500", "SM1"))

    assert "Registrado" in first.text
    assert second.status_code == 200
    assert second.text == EMPTY_TWIML


async def test_retry_with_new_sid_inside_window_is_dropped(client, db):
    client.post(URL, data=form("Juan me debe 500", "SM1"))
    retry = client.post(URL, data=form("Juan me debe 500", "SM2"))
    assert retry.text == EMPTY_TWIML


async def test_missing_sender_ignored(client, db):
    response = client.post(URL, data={"Body": "hola"})
    assert response.status_code == 200
    assert response.text == EMPTY_TWIML


async def test_rate_limited_sender_gets_throttle(client, db, services):
    services.admission = AdmissionService(
        store=DedupStore(),
        rate_limiter=SlidingWindowRateLimiter(max_events=2, window_seconds=60),
    )

    client.post(URL, data=form("hola", "SM1"))
    client.post(URL, data=form("precios", "SM2"))
    response = client.post(URL, data=form("mi plan", "SM3"))

    assert response.text == create_twiml_message(THROTTLE_MESSAGE)


async def test_internal_failure_becomes_error_reply(client, db, services, monkeypatch):
    async def broken(text):
        raise RuntimeError("resolver exploded")

    monkeypatch.setattr(services.resolver, "resolve", broken)
    response = client.post(URL, data=form("algo", "SM1"))

    assert response.status_code == 200
    assert response.text == create_twiml_message(ERROR_MESSAGE)


async def test_reply_is_xml_escaped(client, db):
    response = client.post(URL, data=form("Tom & Jerry me debe 100", "SM1"))
    assert "Tom &amp; Jerry" in response.text


async def test_get_verification(client):
    response = client.get(URL)
    assert response.json()["status"] == "ok"


async def test_health_reports_admission(client, db):
    client.post(URL, data=form("hola", "SM1"))

    data = client.get("/health").json()

    assert data["admission"]["admitted"] == 1
    assert data["admission"]["fail_open"] == 0
    assert "dedup" not in data["checks"]


async def test_live(client):
    assert client.get("/live").json() == {"status": "alive"}




async def test_sweep_survives_failure(monkeypatch, services):
    def broken_sweep():
        raise RuntimeError("boom")

    monkeypatch.setattr(main, "get_services", lambda: SimpleNamespace(admission=SimpleNamespace(sweep=broken_sweep)))
    assert await main.sweep_once() is None

    monkeypatch.setattr(main, "get_services", lambda: services)
    assert await main.sweep_once() == services.admission.sweep()
