import pytest

from utils.validation_utils import (
    clean_client_name,
    client_key,
    correct_thousands,
    normalize_phone,
    parse_amount,
    parse_since,
    prepare_text,
)
from utils.whatsapp_utils import format_debt_lines, format_money, join_messages, to_whatsapp_address


@pytest.mark.parametrize(
    "text, expected",
    [
        ("8500", 8500.0),
        ("$8,500.00", 8500.0),
        ("me debe 2k", 2000.0),
        ("2,5k", 2500.0),
        ("2.5 mil", 2500.0),
        ("como 1200.50 pesos", 1200.5),
        ("nada", None),
        ("0", None),
        ("", None),
    ],
)
def test_parse_amount(text, expected):
    assert parse_amount(text) == expected


def test_correct_thousands():
    assert correct_thousands(2, "me debe 2k") == 2000.0
    assert correct_thousands(2000, "me debe 2k") == 2000
    assert correct_thousands(None, "me debe 3 mil") == 3000.0
    assert correct_thousands(None, "me debe algo") is None
    assert correct_thousands(450, "me debe 450") == 450


def test_prepare_text():
    assert prepare_text("  ¿Quién   me DEBE? ") == "quién me debe"
    assert prepare_text("*ayuda*") == "ayuda"
    assert prepare_text(None) == ""


def test_client_names():
    assert clean_client_name("  juan   pérez. ") == "Juan Pérez"
    assert clean_client_name("¿?") is None
    assert clean_client_name(123) is None
    assert clean_client_name(["juan"]) is None
    assert client_key("Juan  Pérez") == "juan pérez"


def test_parse_since():
    assert parse_since("500 desde el 3 de mayo.") == "el 3 de mayo"
    assert parse_since("500") is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("whatsapp:+5215512345678", "+5215512345678"),
        ("+52 55 1234 5678", "+525512345678"),
        ("55-1234-5678", "+525512345678"),
        ("12345", None),
        (None, None),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


def test_whatsapp_helpers():
    assert format_money(8500) == "$8,500.00"
    assert format_money("oops") == "$0.00"
    assert to_whatsapp_address("+5215512345678") == "whatsapp:+5215512345678"
    assert to_whatsapp_address("whatsapp:+1") == "whatsapp:+1"
    assert join_messages("a", None, "", "b") == "a\n\nb"
    assert format_debt_lines([{"client_name": "Juan", "amount": 10, "since_text": "mayo"}]) == [
        "1) Juan: $10.00 (desde mayo)"
    ]
