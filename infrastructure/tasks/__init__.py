"""Background delivery of fan notifications.

`celery_app` is the worker entry point; callers outside this package only
need `TaskDispatcher`.
"""
from .config.celery import celery_app
from .utils.dispatcher import TaskDispatcher

__all__ = ["celery_app", "TaskDispatcher"]
