from datetime import datetime, timedelta, timezone

import pytest

from app.schemas.webhook import GatewayEvent, connection_state, parse_telegram_update
from utils.telegram_utils import callback_data, create_button, format_brl, mask_token, parse_callback_data, parse_command
from utils.time_utils import extend_expiration, format_date
from utils.validation_utils import (
    extract_tenant_id_from_email,
    extract_tenant_id_from_external_id,
    is_valid_bot_token,
    parse_int,
    parse_price,
    sanitize_input,
)

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize("text, command", [
    ("/start", "start"),
    ("/Admin@AcmeBot extra", "admin"),
    ("hello", None),
    ("/", None),
    (None, None),
])
def test_parse_command(text, command):
    assert parse_command(text) == command


def test_callback_argument_keeps_later_separators():
    assert parse_callback_data(callback_data("inst_qr", "user_1_000001")) == ("inst_qr", "user_1_000001")
    assert parse_callback_data("set_model:gpt:4") == ("set_model", "gpt:4")
    assert parse_callback_data("m_home") == ("m_home", None)


def test_callback_data_size_limit():
    with pytest.raises(ValueError):
        create_button("x", "a" * 65)


def test_mask_token_and_price_format():
    assert mask_token("123456:ABCDEF") == "...BCDEF"
    assert mask_token(None) == "-"
    assert format_brl(49.9) == "49,90"


@pytest.mark.parametrize("text, value", [("50", 50), (" 30 ", 30), ("1.5", None), ("abc", None)])
def test_parse_int(text, value):
    assert parse_int(text) == value


@pytest.mark.parametrize("text, value", [("99,90", 99.9), ("129.90", 129.9), ("free", None), ("nan", None), ("", None)])
def test_parse_price(text, value):
    assert parse_price(text) == value


def test_bot_token_shape():
    assert is_valid_bot_token("123:abc")
    assert not is_valid_bot_token("123abc")


def test_sanitize_input_strips_control_characters():
    assert sanitize_input("  Acme\x00 Store\x07 ", max_length=100) == "Acme Store"
    assert len(sanitize_input("x" * 200, max_length=64)) == 64


def test_tenant_id_extraction():
    assert extract_tenant_id_from_email("tenant_42@botfleet.app") == 42
    assert extract_tenant_id_from_email("owner@acme.com") is None
    assert extract_tenant_id_from_external_id("SUB_42") == 42
    assert extract_tenant_id_from_external_id("SUB_x") is None
    assert extract_tenant_id_from_external_id("SUB_²") is None
    assert extract_tenant_id_from_external_id("SUB_") is None


def test_extend_expiration():
    assert extend_expiration(NOW + timedelta(days=5), 30, now=NOW) == NOW + timedelta(days=35)
    assert extend_expiration(NOW - timedelta(days=5), 30, now=NOW) == NOW + timedelta(days=30)
    assert extend_expiration(None, 30, now=NOW) == NOW + timedelta(days=30)
    naive = datetime(2026, 3, 11)
    assert extend_expiration(naive, 1, now=NOW) == datetime(2026, 3, 12, tzinfo=timezone.utc)


def test_format_date():
    assert format_date(NOW) == "01/03/2026"
    assert format_date(None) == "No date"


def test_parse_message_update():
    event = parse_telegram_update({
        "update_id": 5,
        "message": {"message_id": 9, "chat": {"id": 42}, "from": {"first_name": "Ana"}, "text": "/start"},
    })

    assert event.kind == "message"
    assert event.chat_id == "42"
    assert event.command == "start"


def test_parse_callback_update():
    event = parse_telegram_update({
        "update_id": 6,
        "callback_query": {"id": "cb", "data": "inst_menu", "from": {"id": 42}, "message": {"message_id": 3, "chat": {"id": 42}}},
    })

    assert event.kind == "callback"
    assert event.callback_data == "inst_menu"
    assert event.command is None


def test_unhandled_update_types():
    assert parse_telegram_update({"update_id": 7, "edited_message": {}}) is None
    assert parse_telegram_update({"message": {"chat": {"id": 1}}}) is None


def test_connection_state():
    assert connection_state(GatewayEvent(type="Connected")) is True
    assert connection_state(GatewayEvent(type="LoggedOut")) is False
    assert connection_state(GatewayEvent(type="ReadReceipt")) is None
