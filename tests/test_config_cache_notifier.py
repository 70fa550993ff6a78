import json

import httpx
import pytest
from pydantic import ValidationError

from src.backoffice.controllers.signatures_controller import describe_device
from src.database import redis as redis_module
from src.database.redis import RedisCache
from src.integrations.telegram.notifier import TelegramNotifier
from src.utils.config_loader import TelegramConfig, load_app_config


def test_missing_config_file_falls_back_to_defaults(tmp_path):
    cfg = load_app_config(tmp_path / "absent.yml")
    assert cfg.auth.access_token_minutes == 15
    assert cfg.auth.owner_refresh_token_days == 30
    assert cfg.agreements.default_city == "Phuket"
    assert cfg.ai_editor.model == "gemini-2.5-flash"
    assert "notes" in cfg.requests.editable_fields


def test_config_file_overrides_and_validation(tmp_path):
    path = tmp_path / "app_config.yml"
    path.write_text("agreements:\n  default_city: Bangkok\ntelegram:\n  timeout_seconds: 5\n", encoding="utf-8")
    cfg = load_app_config(path)
    assert cfg.agreements.default_city == "Bangkok"
    assert cfg.agreements.print_token_ttl_seconds == 300
    assert cfg.telegram.timeout_seconds == 5

    path.write_text("auth:\n  access_token_minutes: 0\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_app_config(path)


def test_print_tokens_are_single_use():
    cache = RedisCache()
    cache.set_print_token("abc", {"agreement_id": 1, "user_id": 2})

    assert cache.get_print_token("abc") == {"agreement_id": 1, "user_id": 2}
    assert cache.consume_print_token("abc") == {"agreement_id": 1, "user_id": 2}
    assert cache.consume_print_token("abc") is None
    assert cache.ping() is True


def test_print_tokens_expire(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(redis_module.time, "monotonic", lambda: now[0])
    cache = RedisCache()
    cache.set_print_token("abc", {"agreement_id": 1}, ttl=60)

    now[0] += 59
    assert cache.get_print_token("abc") is not None
    now[0] += 1
    assert cache.get_print_token("abc") is None


def test_unused_print_tokens_are_swept_on_write(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(redis_module.time, "monotonic", lambda: now[0])
    cache = RedisCache()
    cache.set_print_token("old-1", {"agreement_id": 1}, ttl=60)
    cache.set_print_token("old-2", {"agreement_id": 2}, ttl=600)

    now[0] += 120
    cache.set_print_token("new", {"agreement_id": 3}, ttl=60)

    assert set(cache._store) == {"print_token:old-2", "print_token:new"}


def _notifier(handler, token="test"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    cfg = TelegramConfig(api_base="https://tg.test")
    return TelegramNotifier(token=token, client=client, cfg=cfg, frontend_url="http://front.test/")


@pytest.mark.asyncio
async def test_send_message_posts_html_payload():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    notifier = _notifier(handler)
    keyboard = notifier.accept_keyboard(7, "http://front.test/chat/x", "View")
    assert await notifier.send_message(-100, "<b>hi</b>", reply_markup=keyboard) is True

    assert str(seen[0].url) == "https://tg.test/bottest/sendMessage"
    body = json.loads(seen[0].content)
    assert body["chat_id"] == "-100"
    assert body["parse_mode"] == "HTML"
    assert body["reply_markup"]["inline_keyboard"][1][0]["callback_data"] == "accept_request:7"


@pytest.mark.asyncio
async def test_send_message_failures_return_false(monkeypatch):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    assert await _notifier(handler).send_message("1", "x") is False
    assert await _notifier(handler, token="").send_message("1", "x") is False
    assert await _notifier(handler).send_message("", "x") is False
    assert len(calls) == 1

    monkeypatch.delenv("TELEGRAM_ADMIN_CHAT_ID", raising=False)
    assert await _notifier(handler).notify_admin("x") is False


def test_message_builders_escape_html():
    text = TelegramNotifier.new_request_text("REQ-1", {"first_name": "<Ivan>", "username": "ivan_p", "telegram_id": 5})
    assert "&lt;Ivan&gt;" in text
    assert "Username: @ivan_p" in text

    keyboard = TelegramNotifier.contact_keyboard({"request_source": "whatsapp", "whatsapp_phone": "+66 81-234"})
    assert keyboard["inline_keyboard"][0][0]["url"] == "https://wa.me/+6681234"
    keyboard = TelegramNotifier.contact_keyboard({"client_telegram_id": 42})
    assert keyboard["inline_keyboard"][0][0]["url"] == "tg://user?id=42"

    notifier = TelegramNotifier(token="t", cfg=TelegramConfig(), frontend_url="http://front.test/")
    ready = notifier.agreement_ready_text(
        "REQ-1",
        {"agreement_number": "AGR-1", "verify_link": "v1", "deposit_amount": 80000},
        [{"signer_name": "Ann", "signer_role": "landlord", "signature_link": "s1"}],
    )
    assert "http://front.test/sign/s1" in ready
    assert "http://front.test/agreement-verify/v1" in ready
    assert "Period" not in ready


def test_describe_device():
    iphone = (
        "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
    )
    assert describe_device(iphone)["device_type"] == "mobile"
    assert describe_device(iphone)["os"].startswith("iOS")
    assert describe_device("")["device_type"] == "desktop"


def test_health_endpoints(client):
    root = client.get("/").json()
    assert root["status"] == "healthy"
    health = client.get("/health").json()
    assert health["cache"] is True
