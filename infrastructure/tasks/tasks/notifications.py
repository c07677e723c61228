"""User-facing notification tasks (Telegram chat message, email).

Both tasks look the recipient up by internal user id at delivery time, so a
user who has since changed chat or address gets the current one.
"""
from __future__ import annotations

import asyncio
import smtplib
from typing import Optional

import httpx
from celery import shared_task

from core.config import settings
from core.logging_config import get_logger
from domain.user.entity import User
from infrastructure.database import create_engine, create_session_factory
from infrastructure.external.notifications.email import SmtpEmailSender
from infrastructure.external.notifications.exceptions import NotificationRecoverableError
from infrastructure.external.notifications.telegram import TelegramClient
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from ..utils.base_task import BaseTask


logger = get_logger(__name__)

SEND_TELEGRAM_MESSAGE = "notifications.send_telegram_message"
SEND_EMAIL = "notifications.send_email"


async def _load_recipient(user_id: int) -> Optional[User]:
    # Each task run owns its loop, so the engine cannot be shared across runs.
    engine = create_engine()
    try:
        async with SQLAlchemyUnitOfWork(create_session_factory(engine), readonly=True) as uow:
            return await uow.user_repository.get_by_id(user_id)
    finally:
        await engine.dispose()


@shared_task(
    name=SEND_TELEGRAM_MESSAGE,
    bind=True,
    base=BaseTask,
    autoretry_for=(NotificationRecoverableError, httpx.TransportError),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def send_telegram_message(self, user_id: int, message: str) -> dict:
    if not settings.telegram.bot_token:
        logger.info("telegram_not_configured", user_id=user_id)
        return {"sent": False, "reason": "not_configured"}

    async def _run() -> dict:
        user = await _load_recipient(user_id)
        if user is None:
            logger.warning("notification_recipient_missing", user_id=user_id, channel="telegram")
            return {"sent": False, "reason": "user_not_found"}
        async with TelegramClient() as client:
            await client.send_message(user.telegram_id, message)
        return {"sent": True}

    return asyncio.run(_run())


@shared_task(
    name=SEND_EMAIL,
    bind=True,
    base=BaseTask,
    autoretry_for=(smtplib.SMTPServerDisconnected, smtplib.SMTPConnectError, ConnectionError, TimeoutError),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def send_email(self, user_id: int, subject: str, body: str) -> dict:
    sender = SmtpEmailSender()
    if not sender.configured:
        logger.info("email_not_configured", user_id=user_id)
        return {"sent": False, "reason": "not_configured"}

    user = asyncio.run(_load_recipient(user_id))
    if user is None or not user.email:
        logger.info("email_recipient_missing", user_id=user_id)
        return {"sent": False, "reason": "no_address"}

    sender.send(user.email, subject, body)
    return {"sent": True}
