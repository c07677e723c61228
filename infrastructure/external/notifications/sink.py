"""
Notification sink backed by the Celery notification queue.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from core.logging_config import get_logger
from infrastructure.tasks.utils.dispatcher import TaskDispatcher


logger = get_logger(__name__)


class CeleryNotificationSink:
    """Enqueue Telegram (and optionally email) delivery; never raises."""

    def __init__(self, dispatcher: Optional[TaskDispatcher] = None) -> None:
        self._dispatcher = dispatcher or TaskDispatcher()

    async def notify(self, user_id: int, message: str, *, email_subject: Optional[str] = None) -> None:
        # Broker publishing blocks; eager mode runs the task inline, so keep it off the loop.
        try:
            await asyncio.to_thread(self._dispatcher.send_telegram_message, user_id, message)
            if email_subject:
                await asyncio.to_thread(self._dispatcher.send_email, user_id, email_subject, message)
        except Exception as exc:
            logger.error("notification_enqueue_failed", user_id=user_id, error=str(exc))
            return
        logger.info("notification_enqueued", user_id=user_id, email=bool(email_subject))
