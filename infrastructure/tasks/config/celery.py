"""Celery application for out-of-band fan notifications.

The webhook path only enqueues; Telegram and SMTP delivery happen here so a
slow channel never holds a payment confirmation open.
"""
from __future__ import annotations

import os

from celery import Celery
from celery.signals import setup_logging
from kombu import Queue

from core.config import settings
from core.logging_config import configure_logging, get_logger


NOTIFICATIONS_QUEUE = "notifications"
DEFAULT_QUEUE = "default"

# Task modules imported by the worker at start-up.
CELERY_IMPORTS = (
    "infrastructure.tasks.tasks.notifications",
)

# Telegram allows roughly 30 messages per second per bot; stay under it.
TELEGRAM_RATE_LIMIT = "25/s"


celery_app = Celery("fan_payments", include=list(CELERY_IMPORTS))

broker_url = settings.redis.url or os.getenv("CELERY_BROKER_URL")
celery_app.conf.update(
    broker_url=broker_url,
    result_backend=settings.redis.url or os.getenv("CELERY_RESULT_BACKEND"),
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # A notification is delivered at least once: ack only after the send.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,
    task_soft_time_limit=30,
    task_time_limit=60,
    task_default_queue=DEFAULT_QUEUE,
    task_default_retry_delay=5,
    task_queues=(
        Queue(NOTIFICATIONS_QUEUE),
        Queue(DEFAULT_QUEUE),
    ),
    task_routes={
        "notifications.*": {"queue": NOTIFICATIONS_QUEUE},
    },
    task_annotations={
        "notifications.send_telegram_message": {"rate_limit": TELEGRAM_RATE_LIMIT},
    },
    broker_connection_retry_on_startup=True,
)

# 开发与测试环境内联执行，无需 Redis
if (settings.ENVIRONMENT or "production").lower() in {"development", "dev", "test", "testing"}:
    celery_app.conf.task_always_eager = True


logger = get_logger(__name__)


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    # Connecting this signal stops Celery from installing its own root handlers.
    configure_logging()


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info(
        "celery_configured",
        broker_configured=bool(sender.conf.broker_url),
        eager=bool(sender.conf.task_always_eager),
    )
