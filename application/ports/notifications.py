"""
Notification sink port.

Delivery is fire-and-forget: implementations queue or send and must not raise
into the caller. Retries belong to the sink's own queue.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class NotificationSink(Protocol):
    async def notify(self, user_id: int, message: str, *, email_subject: Optional[str] = None) -> None: ...
