import json

import httpx
import pytest

from infrastructure.external.notifications.exceptions import (
    NotificationDeliveryError,
    NotificationRecoverableError,
)
from infrastructure.external.notifications.telegram import TelegramClient


def _client(handler, max_attempts=3):
    return TelegramClient(
        "123:abc",
        api_base="https://telegram.test",
        timeout=2.0,
        max_attempts=max_attempts,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_send_message_posts_to_bot_endpoint():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 9}})

    async with _client(handler) as client:
        result = await client.send_message(555, "hello")

    assert result == {"message_id": 9}
    assert seen[0].url.path == "/bot123:abc/sendMessage"
    assert json.loads(seen[0].content) == {"chat_id": 555, "text": "hello", "parse_mode": "Markdown"}


@pytest.mark.asyncio
async def test_rate_limit_is_retried():
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(429, json={"ok": False, "description": "Too Many Requests", "parameters": {"retry_after": 1}})
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 10}})

    async with _client(handler) as client:
        result = await client.send_message(555, "again", parse_mode=None)

    assert calls["n"] == 2
    assert result["message_id"] == 10


@pytest.mark.asyncio
async def test_server_errors_exhaust_attempts():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    async with _client(handler, max_attempts=1) as client:
        with pytest.raises(NotificationRecoverableError) as exc_info:
            await client.send_message(555, "hi")

    assert exc_info.value.details["status_code"] == 502


@pytest.mark.asyncio
async def test_blocked_chat_is_final():
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(403, json={"ok": False, "description": "Forbidden: bot was blocked by the user"})

    async with _client(handler) as client:
        with pytest.raises(NotificationDeliveryError) as exc_info:
            await client.send_message(555, "hi")

    assert calls["n"] == 1
    assert "blocked" in exc_info.value.message


def test_token_required(monkeypatch):
    from core.config import settings

    monkeypatch.setattr(settings.telegram, "bot_token", None)
    with pytest.raises(RuntimeError):
        TelegramClient()
