"""
Telegram Bot API client (sendMessage only).

Retries transport errors, 429 and 5xx with exponential backoff; any other
non-2xx answer (blocked bot, unknown chat) is final.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.config import settings
from core.logging_config import get_logger
from .exceptions import NotificationDeliveryError, NotificationRecoverableError


logger = get_logger(__name__)

RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class TelegramClient:
    channel = "telegram"

    def __init__(
        self,
        bot_token: Optional[str] = None,
        *,
        api_base: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        cfg = settings.telegram
        self._token = bot_token or cfg.bot_token
        if not self._token:
            raise RuntimeError("TELEGRAM__BOT_TOKEN not configured")
        self._api_base = (api_base or cfg.api_base).rstrip("/")
        self._timeout = timeout if timeout is not None else cfg.timeout
        self._max_attempts = max_attempts if max_attempts is not None else cfg.max_attempts
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "TelegramClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self._api_base}/bot{self._token}",
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        parse_mode: Optional[str] = "Markdown",
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=10),
            retry=retry_if_exception_type((NotificationRecoverableError, httpx.TransportError)),
            reraise=True,
        ):
            with attempt:
                return await self._post("sendMessage", payload)
        raise AssertionError("unreachable")  # pragma: no cover

    async def _post(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self._get_client().post(f"/{method}", json=payload)
        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code in RETRY_STATUS_CODES:
            retry_after = (body.get("parameters") or {}).get("retry_after")
            logger.warning(
                "telegram_request_retryable",
                method=method,
                status_code=response.status_code,
                retry_after=retry_after,
            )
            raise NotificationRecoverableError(
                body.get("description") or f"Telegram {method} failed",
                channel=self.channel,
                status_code=response.status_code,
                retry_after=retry_after,
            )
        if response.is_error or not body.get("ok", False):
            raise NotificationDeliveryError(
                body.get("description") or f"Telegram {method} failed",
                channel=self.channel,
                status_code=response.status_code,
                details={"method": method},
            )

        logger.info("telegram_request_ok", method=method, chat_id=payload.get("chat_id"))
        return body.get("result") or {}
