"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict

from ..config.celery import celery_app
from ..tasks import notifications  # noqa: F401  registers the notification tasks


class TaskDispatcher:
    """Internal facade used by the application layer to schedule tasks."""

    def send_telegram_message(self, user_id: int, message: str) -> None:
        self.enqueue(notifications.SEND_TELEGRAM_MESSAGE, kwargs={"user_id": user_id, "message": message})

    def send_email(self, user_id: int, subject: str, body: str) -> None:
        self.enqueue(notifications.SEND_EMAIL, kwargs={"user_id": user_id, "subject": subject, "body": body})

    def enqueue(self, task_name: str, *, args: tuple | None = None, kwargs: Dict[str, Any] | None = None) -> None:
        """Schedule a task by name.

        Registered tasks go through `apply_async` so eager mode is honoured;
        unknown names are sent to the broker for a worker that knows them.
        """
        task = celery_app.tasks.get(task_name)
        if task is not None:
            task.apply_async(args=args or (), kwargs=kwargs or {})
        else:
            celery_app.send_task(task_name, args=args or (), kwargs=kwargs or {})
